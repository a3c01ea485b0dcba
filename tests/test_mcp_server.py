"""Tests for the MCP server tool functions."""
from datetime import datetime, time
from unittest.mock import patch
from zoneinfo import ZoneInfo

import pytest

from safeping.clock import FixedClock
from safeping.db import Database
from safeping.mcp_server import get_status, get_streak, list_breaks, validate_break
from safeping.service import CheckInService

NY = ZoneInfo("America/New_York")


@pytest.fixture
def make_service(tmp_path):
    db_path = tmp_path / "mcp.db"
    clock = FixedClock(datetime(2025, 3, 10, 9, 5, tzinfo=NY))

    def factory():
        return CheckInService(Database(db_path=db_path), clock=clock)

    setup = factory()
    setup.register_sender("alice", time(9, 0), "America/New_York")
    setup.db.close()
    return factory


class TestGetStatus:
    def test_pending(self, make_service):
        with patch("safeping.mcp_server._get_service", side_effect=make_service):
            result = get_status("alice")
        assert result["status"] == "pending"
        assert result["date"] == "2025-03-10"

    def test_unknown_sender(self, make_service):
        with patch("safeping.mcp_server._get_service", side_effect=make_service):
            result = get_status("ghost")
        assert "error" in result


class TestGetStreak:
    def test_streak_after_completion(self, make_service):
        service = make_service()
        service.complete_ping("alice")
        service.db.close()
        with patch("safeping.mcp_server._get_service", side_effect=make_service):
            result = get_streak("alice")
        assert result["current_streak"] == 1
        assert result["longest_streak"] == 1


class TestBreaks:
    def test_validate_overlap(self, make_service):
        service = make_service()
        service.schedule_break("alice", datetime(2025, 3, 12).date(), datetime(2025, 3, 20).date())
        service.db.close()
        with patch("safeping.mcp_server._get_service", side_effect=make_service):
            result = validate_break("alice", "2025-03-10", "2025-03-15")
            listed = list_breaks("alice")
        assert result["is_valid"] is False
        assert result["error_kind"] == "overlapping_break"
        assert listed["count"] == 1

    def test_validate_bad_dates(self):
        result = validate_break("alice", "tomorrow", "2025-03-15")
        assert result == {"error": "Dates must be YYYY-MM-DD"}

    def test_validate_valid(self, make_service):
        with patch("safeping.mcp_server._get_service", side_effect=make_service):
            result = validate_break("alice", "2025-03-11", "2025-03-12")
        assert result["is_valid"] is True
