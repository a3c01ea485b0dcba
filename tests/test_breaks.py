"""Tests for break validation and lifecycle."""

from datetime import date, timedelta

import pytest

from safeping.breaks import (
    cancel_break,
    end_break_early,
    initial_status,
    is_suppressing,
    refresh_status,
    status_for,
    validate_break,
)
from safeping.errors import BreakErrorKind, BreakTransitionError, BreakWarning
from safeping.models import Break, BreakStatus

TODAY = date(2025, 3, 10)


def _brk(start, end, status=BreakStatus.SCHEDULED, sender="alice", id=1):
    return Break(sender_id=sender, start_date=start, end_date=end, status=status, id=id)


class TestValidateBreak:
    def test_valid_future_break(self):
        result = validate_break("alice", date(2025, 3, 12), date(2025, 3, 14), [], TODAY)
        assert result.is_valid is True
        assert result.error_kind is None
        assert result.warning is None

    def test_end_before_start(self):
        result = validate_break("alice", date(2025, 3, 14), date(2025, 3, 12), [], TODAY)
        assert result.is_valid is False
        assert result.error_kind is BreakErrorKind.INVALID_RANGE
        assert result.message == "End date must be on or after start date"

    def test_invalid_range_checked_before_past_start(self):
        result = validate_break("alice", date(2025, 3, 5), date(2025, 3, 1), [], TODAY)
        assert result.error_kind is BreakErrorKind.INVALID_RANGE

    def test_start_in_past(self):
        result = validate_break("alice", date(2025, 3, 9), date(2025, 3, 12), [], TODAY)
        assert result.is_valid is False
        assert result.error_kind is BreakErrorKind.START_IN_PAST

    def test_start_today_is_allowed(self):
        assert validate_break("alice", TODAY, TODAY + timedelta(days=2), [], TODAY).is_valid

    def test_zero_length_break_is_valid(self):
        assert validate_break("alice", TODAY, TODAY, [], TODAY).is_valid

    def test_overlap_with_active_break(self):
        existing = [_brk(date(2025, 3, 12), date(2025, 3, 20), BreakStatus.ACTIVE)]
        result = validate_break("alice", date(2025, 3, 10), date(2025, 3, 15), existing, TODAY)
        assert result.is_valid is False
        assert result.error_kind is BreakErrorKind.OVERLAPPING_BREAK
        assert result.message == "You already have a break during this period"

    @pytest.mark.parametrize(
        "start, end",
        [
            (date(2025, 3, 14), date(2025, 3, 16)),  # nested
            (date(2025, 3, 10), date(2025, 3, 13)),  # overlapping left
            (date(2025, 3, 18), date(2025, 3, 25)),  # overlapping right
            (date(2025, 3, 13), date(2025, 3, 18)),  # identical
            (date(2025, 3, 11), date(2025, 3, 25)),  # enclosing
            (date(2025, 3, 18), date(2025, 3, 18)),  # touching last day
        ],
    )
    def test_all_overlaps_rejected(self, start, end):
        existing = [_brk(date(2025, 3, 13), date(2025, 3, 18))]
        result = validate_break("alice", start, end, existing, TODAY)
        assert result.error_kind is BreakErrorKind.OVERLAPPING_BREAK

    @pytest.mark.parametrize(
        "start, end",
        [
            (date(2025, 3, 10), date(2025, 3, 12)),  # adjacent before
            (date(2025, 3, 19), date(2025, 3, 22)),  # adjacent after
            (date(2025, 4, 1), date(2025, 4, 5)),  # disjoint
        ],
    )
    def test_disjoint_ranges_allowed(self, start, end):
        existing = [_brk(date(2025, 3, 13), date(2025, 3, 18))]
        assert validate_break("alice", start, end, existing, TODAY).is_valid

    def test_canceled_break_does_not_block(self):
        existing = [_brk(date(2025, 3, 13), date(2025, 3, 18), BreakStatus.CANCELED)]
        assert validate_break("alice", date(2025, 3, 14), date(2025, 3, 15), existing, TODAY).is_valid

    def test_stored_completed_status_follows_dates(self):
        existing = [_brk(date(2025, 3, 1), date(2025, 3, 10), BreakStatus.COMPLETED)]
        # last day is today, so it still counts as active
        assert not validate_break("alice", TODAY, TODAY, existing, TODAY).is_valid
        later = TODAY + timedelta(days=1)
        assert validate_break("alice", later, later, existing, later).is_valid

    def test_other_senders_breaks_ignored(self):
        existing = [_brk(date(2025, 3, 13), date(2025, 3, 18), sender="bob")]
        assert validate_break("alice", date(2025, 3, 14), date(2025, 3, 15), existing, TODAY).is_valid

    def test_excluded_break_ignored(self):
        existing = [_brk(date(2025, 3, 13), date(2025, 3, 18), id=7)]
        result = validate_break(
            "alice", date(2025, 3, 14), date(2025, 3, 20), existing, TODAY, exclude_break_id=7
        )
        assert result.is_valid

    def test_365_days_no_warning(self):
        result = validate_break("alice", TODAY, TODAY + timedelta(days=365), [], TODAY)
        assert result.is_valid
        assert result.warning is None

    def test_366_days_warns(self):
        result = validate_break("alice", TODAY, TODAY + timedelta(days=366), [], TODAY)
        assert result.is_valid
        assert result.warning is BreakWarning.LONG_BREAK
        assert result.warning_message == "Breaks longer than 1 year may affect your account"

    def test_400_day_break_is_valid_with_warning(self):
        result = validate_break("alice", TODAY, TODAY + timedelta(days=400), [], TODAY)
        assert result.is_valid is True
        assert result.warning is BreakWarning.LONG_BREAK

    def test_same_snapshot_same_verdict(self):
        existing = [_brk(date(2025, 3, 13), date(2025, 3, 18))]
        first = validate_break("alice", date(2025, 3, 15), date(2025, 3, 16), existing, TODAY)
        second = validate_break("alice", date(2025, 3, 15), date(2025, 3, 16), existing, TODAY)
        assert first == second

    def test_to_dict(self):
        result = validate_break("alice", date(2025, 3, 9), date(2025, 3, 12), [], TODAY)
        data = result.to_dict()
        assert data["is_valid"] is False
        assert data["error_kind"] == "start_in_past"
        assert data["message"] == "Start date cannot be in the past"


class TestStatusFor:
    def test_before_start_is_scheduled(self):
        assert status_for(_brk(date(2025, 3, 12), date(2025, 3, 14)), TODAY) is BreakStatus.SCHEDULED

    def test_within_range_is_active(self):
        brk = _brk(date(2025, 3, 8), date(2025, 3, 10))
        assert status_for(brk, TODAY) is BreakStatus.ACTIVE

    def test_after_end_is_completed(self):
        brk = _brk(date(2025, 3, 1), date(2025, 3, 9), BreakStatus.ACTIVE)
        assert status_for(brk, TODAY) is BreakStatus.COMPLETED

    def test_canceled_is_sticky(self):
        brk = _brk(date(2025, 3, 8), date(2025, 3, 12), BreakStatus.CANCELED)
        assert status_for(brk, TODAY) is BreakStatus.CANCELED

    def test_refresh_status_returns_same_object_when_unchanged(self):
        brk = _brk(date(2025, 3, 12), date(2025, 3, 14))
        assert refresh_status(brk, TODAY) is brk

    def test_refresh_status_updates(self):
        brk = _brk(date(2025, 3, 8), date(2025, 3, 12))
        assert refresh_status(brk, TODAY).status is BreakStatus.ACTIVE

    def test_initial_status(self):
        assert initial_status(TODAY, TODAY) is BreakStatus.ACTIVE
        assert initial_status(TODAY + timedelta(days=1), TODAY) is BreakStatus.SCHEDULED


class TestIsSuppressing:
    def test_scheduled_break_starting_today_suppresses(self):
        brk = _brk(TODAY, TODAY + timedelta(days=3), BreakStatus.SCHEDULED)
        assert is_suppressing("alice", TODAY, [brk]) is True

    def test_end_date_inclusive(self):
        brk = _brk(date(2025, 3, 5), TODAY, BreakStatus.ACTIVE)
        assert is_suppressing("alice", TODAY, [brk]) is True
        assert is_suppressing("alice", TODAY + timedelta(days=1), [brk]) is False

    def test_canceled_break_never_suppresses(self):
        brk = _brk(date(2025, 3, 5), date(2025, 3, 15), BreakStatus.CANCELED)
        assert is_suppressing("alice", TODAY, [brk]) is False

    def test_other_sender_not_suppressed(self):
        brk = _brk(date(2025, 3, 5), date(2025, 3, 15), sender="bob")
        assert is_suppressing("alice", TODAY, [brk]) is False

    def test_no_breaks(self):
        assert is_suppressing("alice", TODAY, []) is False


class TestTransitions:
    def test_cancel_scheduled(self):
        brk = _brk(date(2025, 3, 12), date(2025, 3, 14))
        assert cancel_break(brk, TODAY).status is BreakStatus.CANCELED
        assert brk.status is BreakStatus.SCHEDULED

    def test_cancel_completed_raises(self):
        brk = _brk(date(2025, 3, 1), date(2025, 3, 5), BreakStatus.ACTIVE)
        with pytest.raises(BreakTransitionError):
            cancel_break(brk, TODAY)

    def test_cancel_twice_raises(self):
        brk = cancel_break(_brk(date(2025, 3, 12), date(2025, 3, 14)), TODAY)
        with pytest.raises(BreakTransitionError):
            cancel_break(brk, TODAY)

    def test_end_early_truncates_to_today(self):
        brk = _brk(date(2025, 3, 8), date(2025, 3, 20), BreakStatus.ACTIVE)
        ended = end_break_early(brk, TODAY)
        assert ended.end_date == TODAY
        assert ended.status is BreakStatus.CANCELED

    def test_end_early_requires_active(self):
        brk = _brk(date(2025, 3, 12), date(2025, 3, 20))
        with pytest.raises(BreakTransitionError):
            end_break_early(brk, TODAY)

    def test_duration_days_inclusive(self):
        assert _brk(TODAY, TODAY).duration_days == 1
        assert _brk(date(2025, 3, 10), date(2025, 3, 16)).duration_days == 7
