"""Tests for CLI commands and display helpers."""

from __future__ import annotations

from datetime import datetime, timedelta
from unittest.mock import patch
from zoneinfo import ZoneInfo

import pytest

from safeping.cli import (
    build_parser,
    do_break_add,
    do_break_cancel,
    do_break_end,
    do_break_list,
    do_check_missed,
    do_generate,
    do_ping,
    do_sender_add,
    do_status,
    do_streak,
    main,
    run_command,
)
from safeping.clock import FixedClock
from safeping.db import Database
from safeping.display import format_time_remaining
from safeping.errors import SafePingError
from safeping.service import CheckInService

NY = ZoneInfo("America/New_York")


@pytest.fixture
def db(tmp_path):
    """Create a temporary database for testing."""
    db_path = tmp_path / "test.db"
    database = Database(db_path=db_path)
    yield database
    database.close()


@pytest.fixture
def clock():
    return FixedClock(datetime(2025, 3, 10, 9, 5, tzinfo=NY))


@pytest.fixture
def service(db, clock):
    svc = CheckInService(db, clock=clock)
    do_sender_add(svc, "alice", "09:00", "America/New_York", 90)
    return svc


# ── Argument Parsing ──────────────────────────────────────────────────────────


class TestArgumentParsing:
    def test_no_args_defaults_to_none_command(self):
        args = build_parser().parse_args([])
        assert args.command is None

    def test_sender_add(self):
        args = build_parser().parse_args(["sender", "add", "alice", "--ping-time", "08:30", "-z", "Europe/Berlin"])
        assert args.sender_command == "add"
        assert args.ping_time == "08:30"
        assert args.timezone == "Europe/Berlin"
        assert args.grace == 90
        assert args.disabled is False

    def test_ping_in_person(self):
        args = build_parser().parse_args(["ping", "alice", "--in-person"])
        assert args.command == "ping"
        assert args.in_person is True

    def test_break_add(self):
        args = build_parser().parse_args(["break", "add", "alice", "2025-03-12", "2025-03-14", "--notes", "trip"])
        assert args.break_command == "add"
        assert (args.start, args.end, args.notes) == ("2025-03-12", "2025-03-14", "trip")

    def test_break_cancel_id_is_int(self):
        args = build_parser().parse_args(["break", "cancel", "alice", "3"])
        assert args.break_id == 3

    def test_verbose_flag(self):
        args = build_parser().parse_args(["-v", "generate"])
        assert args.verbose is True
        assert args.command == "generate"


# ── Commands ──────────────────────────────────────────────────────────────────


class TestSenderAdd:
    def test_returns_config(self, service):
        result = do_sender_add(service, "carol", "18:15", "Europe/Berlin", 30)
        assert result["ok"] is True
        assert result["ping_time"] == "18:15"
        assert result["grace_period_minutes"] == 30

    def test_bad_time(self, service):
        with pytest.raises(SafePingError):
            do_sender_add(service, "carol", "quarter past six")


class TestStatusAndPing:
    def test_status_pending(self, service):
        data = do_status(service, "alice")
        assert data["status"] == "pending"
        assert data["time_remaining"] == "1h 25m remaining"
        assert data["current_streak"] == 0

    def test_ping_then_status(self, service):
        result = do_ping(service, "alice")
        assert result["status"] == "completed"
        assert result["method"] == "tap"
        data = do_status(service, "alice")
        assert data["status"] == "completed"
        assert data["current_streak"] == 1

    def test_ping_in_person(self, service):
        assert do_ping(service, "alice", in_person=True)["method"] == "in_person"

    def test_late_ping(self, service, clock):
        clock.set(datetime(2025, 3, 10, 10, 45, tzinfo=NY))
        result = do_ping(service, "alice")
        assert result["was_late"] is True

    def test_streak(self, service):
        do_ping(service, "alice")
        data = do_streak(service, "alice")
        assert data["current_streak"] == 1
        assert data["last_qualifying_date"] == "2025-03-10"


class TestBreakCommands:
    def test_add_and_list(self, service):
        result = do_break_add(service, "alice", "2025-03-12", "2025-03-14", "trip")
        assert result["ok"] is True
        assert result["break"]["duration_days"] == 3
        listed = do_break_list(service, "alice")
        assert listed["count"] == 1
        assert listed["breaks"][0]["status"] == "scheduled"

    def test_add_invalid_is_reported_not_raised(self, service):
        result = do_break_add(service, "alice", "2025-03-14", "2025-03-12")
        assert result["ok"] is False
        assert result["validation"]["message"] == "End date must be on or after start date"
        assert "break" not in result

    def test_add_bad_date(self, service):
        with pytest.raises(SafePingError):
            do_break_add(service, "alice", "next week", "2025-03-12")

    def test_cancel(self, service):
        added = do_break_add(service, "alice", "2025-03-12", "2025-03-14")
        result = do_break_cancel(service, "alice", added["break"]["id"])
        assert result["break"]["status"] == "canceled"

    def test_end(self, service):
        added = do_break_add(service, "alice", "2025-03-10", "2025-03-14")
        result = do_break_end(service, "alice", added["break"]["id"])
        assert result["break"]["end_date"] == "2025-03-10"


class TestBatchCommands:
    def test_generate_and_check_missed(self, service, clock):
        assert do_generate(service)["created"] == 1
        clock.set(datetime(2025, 3, 10, 11, 0, tzinfo=NY))
        result = do_check_missed(service)
        assert result["count"] == 1
        assert result["missed"][0] == {"sender_id": "alice", "ping_date": "2025-03-10"}

    def test_run_command_dispatches(self, service):
        args = build_parser().parse_args(["status", "alice"])
        assert run_command(service, args)["status"] == "pending"

    def test_run_command_unknown(self, service):
        args = build_parser().parse_args(["break"])
        assert run_command(service, args) is None


class TestMain:
    @patch("safeping.cli.configure_logging")
    @patch("safeping.cli.get_lookback_days", return_value=730)
    @patch("safeping.cli.get_db_path")
    def test_error_exits_with_status_1(self, mock_db_path, _lookback, _logging, tmp_path):
        mock_db_path.return_value = tmp_path / "main.db"
        with patch("sys.argv", ["safeping", "status", "ghost"]):
            with pytest.raises(SystemExit) as exc_info:
                main()
        assert exc_info.value.code == 1

    @patch("safeping.cli.configure_logging")
    @patch("safeping.cli.get_lookback_days", return_value=730)
    @patch("safeping.cli.get_db_path")
    def test_sender_add_runs(self, mock_db_path, _lookback, _logging, tmp_path):
        mock_db_path.return_value = tmp_path / "main.db"
        with patch("sys.argv", ["safeping", "sender", "add", "alice", "--ping-time", "09:00"]):
            main()
        database = Database(db_path=tmp_path / "main.db")
        assert database.get_sender("alice").timezone == "UTC"
        database.close()


# ── Display ───────────────────────────────────────────────────────────────────


class TestFormatTimeRemaining:
    def test_hours_and_minutes(self):
        assert format_time_remaining(timedelta(minutes=85)) == "1h 25m remaining"

    def test_minutes_only(self):
        assert format_time_remaining(timedelta(minutes=4, seconds=30)) == "4m remaining"

    def test_expired(self):
        assert format_time_remaining(timedelta(0)) == "Expired"
