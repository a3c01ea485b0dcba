"""MCP server for safeping.

Exposes check-in status, streaks and break validation as MCP tools.
Run via: python3 -m safeping.mcp_server
"""
from __future__ import annotations

from datetime import date
from typing import Any

from mcp.server.fastmcp import FastMCP

from safeping.errors import SafePingError

mcp = FastMCP(name="safeping")


def _get_service():
    from safeping.config import get_db_path, get_lookback_days
    from safeping.db import Database
    from safeping.service import CheckInService
    return CheckInService(Database(get_db_path()), lookback_days=get_lookback_days())


@mcp.tool()
def get_status(sender_id: str) -> dict[str, Any]:
    """Get today's ping status for a sender: status, deadline, completion."""
    service = _get_service()
    try:
        return service.today_status(sender_id).to_dict()
    except SafePingError as exc:
        return {"error": str(exc)}
    finally:
        service.db.close()


@mcp.tool()
def get_streak(sender_id: str) -> dict[str, Any]:
    """Get the sender's current and longest check-in streak."""
    service = _get_service()
    try:
        info = service.streak_info(sender_id)
        return {
            "sender_id": sender_id,
            "current_streak": info.current_streak,
            "longest_streak": info.longest_streak,
            "last_qualifying_date": info.last_qualifying_date.isoformat() if info.last_qualifying_date else None,
        }
    except SafePingError as exc:
        return {"error": str(exc)}
    finally:
        service.db.close()


@mcp.tool()
def list_breaks(sender_id: str) -> dict[str, Any]:
    """List the sender's breaks with their current status."""
    service = _get_service()
    try:
        breaks = [
            {
                "id": b.id, "start_date": b.start_date.isoformat(), "end_date": b.end_date.isoformat(),
                "status": b.status.value, "duration_days": b.duration_days, "notes": b.notes,
            }
            for b in service.list_breaks(sender_id)
        ]
        return {"breaks": breaks, "count": len(breaks)}
    except SafePingError as exc:
        return {"error": str(exc)}
    finally:
        service.db.close()


@mcp.tool()
def validate_break(sender_id: str, start_date: str, end_date: str) -> dict[str, Any]:
    """Check whether a break from start_date to end_date (YYYY-MM-DD) could be scheduled."""
    try:
        start = date.fromisoformat(start_date)
        end = date.fromisoformat(end_date)
    except ValueError:
        return {"error": "Dates must be YYYY-MM-DD"}
    service = _get_service()
    try:
        return service.validate_break(sender_id, start, end).to_dict()
    except SafePingError as exc:
        return {"error": str(exc)}
    finally:
        service.db.close()


def main() -> None:
    mcp.run()


if __name__ == "__main__":
    main()
