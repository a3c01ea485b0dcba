"""Break validation and lifecycle for safeping.

Pure functions over a snapshot of a sender's breaks. A break's status is
derived from today's date every time it is asked for; only "canceled" is
stored state that date arithmetic never overrides.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date
from typing import Iterable

from safeping.clock import days_between
from safeping.errors import (
    BreakErrorKind,
    BreakTransitionError,
    BreakWarning,
    ValidationResult,
)
from safeping.models import OPEN_BREAK_STATUSES, Break, BreakStatus

LONG_BREAK_DAYS = 365


def status_for(brk: Break, today: date) -> BreakStatus:
    """Effective status of a break on `today`."""
    if brk.status is BreakStatus.CANCELED:
        return BreakStatus.CANCELED
    if today < brk.start_date:
        return BreakStatus.SCHEDULED
    if today <= brk.end_date:
        return BreakStatus.ACTIVE
    return BreakStatus.COMPLETED


def refresh_status(brk: Break, today: date) -> Break:
    """Return the break with its stored status synced to the derived one."""
    effective = status_for(brk, today)
    if effective is brk.status:
        return brk
    return replace(brk, status=effective)


def initial_status(start: date, today: date) -> BreakStatus:
    """A break starting today (or earlier) is active straight away."""
    return BreakStatus.ACTIVE if start <= today else BreakStatus.SCHEDULED


def ranges_overlap(a_start: date, a_end: date, b_start: date, b_end: date) -> bool:
    return a_start <= b_end and b_start <= a_end


def validate_break(
    sender_id: str,
    proposed_start: date,
    proposed_end: date,
    existing_breaks: Iterable[Break],
    today: date,
    exclude_break_id: int | None = None,
) -> ValidationResult:
    """Check a proposed break against date rules and the sender's open breaks.

    Rules are applied in order: end before start, start in the past,
    overlap with a scheduled/active break. A valid break longer than
    LONG_BREAK_DAYS carries a warning but is still accepted.
    """
    if proposed_end < proposed_start:
        return ValidationResult.fail(BreakErrorKind.INVALID_RANGE)

    if proposed_start < today:
        return ValidationResult.fail(BreakErrorKind.START_IN_PAST)

    for existing in existing_breaks:
        if existing.sender_id != sender_id:
            continue
        if exclude_break_id is not None and existing.id == exclude_break_id:
            continue
        if status_for(existing, today) not in OPEN_BREAK_STATUSES:
            continue
        if ranges_overlap(proposed_start, proposed_end, existing.start_date, existing.end_date):
            return ValidationResult.fail(BreakErrorKind.OVERLAPPING_BREAK)

    if days_between(proposed_start, proposed_end) > LONG_BREAK_DAYS:
        return ValidationResult.ok(warning=BreakWarning.LONG_BREAK)
    return ValidationResult.ok()


def is_suppressing(sender_id: str, day: date, breaks_for_sender: Iterable[Break]) -> bool:
    """True if an open break of this sender covers `day`.

    The status check is made relative to `day` itself, so a scheduled break
    starting on `day` suppresses it, and a past break still explains the
    days it covered.
    """
    for brk in breaks_for_sender:
        if brk.sender_id != sender_id:
            continue
        if brk.covers(day) and status_for(brk, day) in OPEN_BREAK_STATUSES:
            return True
    return False


def cancel_break(brk: Break, today: date) -> Break:
    """Cancel a scheduled or active break."""
    effective = status_for(brk, today)
    if effective not in OPEN_BREAK_STATUSES:
        raise BreakTransitionError(f"Cannot cancel a {effective.value} break")
    return replace(brk, status=BreakStatus.CANCELED)


def end_break_early(brk: Break, today: date) -> Break:
    """End an active break today. The break is recorded as canceled."""
    effective = status_for(brk, today)
    if effective is not BreakStatus.ACTIVE:
        raise BreakTransitionError(f"Only an active break can be ended early (break is {effective.value})")
    return replace(brk, end_date=today, status=BreakStatus.CANCELED)
