"""CLI commands for safeping."""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import date, time

from rich.logging import RichHandler

from safeping.config import get_db_path, get_log_level, get_lookback_days
from safeping.db import Database
from safeping.display import (
    console,
    format_time_remaining,
    print_break_result,
    print_breaks,
    print_error,
    print_generate_result,
    print_missed_result,
    print_ping_result,
    print_status,
    print_streak,
)
from safeping.errors import SafePingError
from safeping.models import Break, CompletionMethod, DEFAULT_GRACE_PERIOD_MINUTES
from safeping.pings import time_remaining
from safeping.service import CheckInService


def build_parser() -> argparse.ArgumentParser:
    """Build and return the argument parser."""
    parser = argparse.ArgumentParser(
        prog="safeping",
        description="Daily safety check-ins with breaks and streaks",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command")

    sender_p = subparsers.add_parser("sender", help="Manage senders")
    sender_sub = sender_p.add_subparsers(dest="sender_command")
    add_p = sender_sub.add_parser("add", help="Create or update a sender")
    add_p.add_argument("sender_id")
    add_p.add_argument("--ping-time", required=True, help="Daily ping time, HH:MM local")
    add_p.add_argument("--timezone", "-z", default="UTC", help="IANA time zone name")
    add_p.add_argument("--grace", type=int, default=DEFAULT_GRACE_PERIOD_MINUTES, help="Grace period in minutes")
    add_p.add_argument("--disabled", action="store_true", help="Create with pings disabled")

    status_p = subparsers.add_parser("status", help="Show today's ping status")
    status_p.add_argument("sender_id")

    ping_p = subparsers.add_parser("ping", help="Complete today's ping")
    ping_p.add_argument("sender_id")
    ping_p.add_argument("--in-person", action="store_true", help="Verified in person")

    streak_p = subparsers.add_parser("streak", help="Show the sender's streak")
    streak_p.add_argument("sender_id")

    break_p = subparsers.add_parser("break", help="Manage breaks")
    break_sub = break_p.add_subparsers(dest="break_command")
    b_add = break_sub.add_parser("add", help="Schedule a break")
    b_add.add_argument("sender_id")
    b_add.add_argument("start", help="Start date, YYYY-MM-DD")
    b_add.add_argument("end", help="End date, YYYY-MM-DD")
    b_add.add_argument("--notes", default=None)
    b_cancel = break_sub.add_parser("cancel", help="Cancel a scheduled or active break")
    b_cancel.add_argument("sender_id")
    b_cancel.add_argument("break_id", type=int)
    b_end = break_sub.add_parser("end", help="End an active break today")
    b_end.add_argument("sender_id")
    b_end.add_argument("break_id", type=int)
    b_list = break_sub.add_parser("list", help="List breaks")
    b_list.add_argument("sender_id")

    subparsers.add_parser("generate", help="Create today's ping for every sender")
    subparsers.add_parser("check-missed", help="Mark overdue pings as missed")
    return parser


def configure_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else get_log_level()
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def _parse_hhmm(value: str) -> time:
    try:
        return time.fromisoformat(value)
    except ValueError as exc:
        raise SafePingError(f"Invalid time {value!r}, expected HH:MM") from exc


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise SafePingError(f"Invalid date {value!r}, expected YYYY-MM-DD") from exc


def _break_dict(brk: Break) -> dict:
    return {
        "id": brk.id,
        "sender_id": brk.sender_id,
        "start_date": brk.start_date.isoformat(),
        "end_date": brk.end_date.isoformat(),
        "status": brk.status.value,
        "duration_days": brk.duration_days,
        "notes": brk.notes,
    }


def do_sender_add(
    service: CheckInService,
    sender_id: str,
    ping_time: str,
    timezone: str = "UTC",
    grace: int = DEFAULT_GRACE_PERIOD_MINUTES,
    enabled: bool = True,
) -> dict:
    sender = service.register_sender(sender_id, _parse_hhmm(ping_time), timezone, grace, enabled)
    result = {
        "ok": True,
        "sender_id": sender.id,
        "ping_time": sender.ping_time.strftime("%H:%M"),
        "timezone": sender.timezone,
        "grace_period_minutes": sender.grace_period_minutes,
    }
    console.print(
        f"[green]Sender {sender.id}: daily ping at {result['ping_time']} {sender.timezone}, "
        f"{sender.grace_period_minutes} min grace[/]"
    )
    return result


def do_status(service: CheckInService, sender_id: str) -> dict:
    """Show today's resolved status with countdown and streak."""
    resolved = service.today_status(sender_id)
    data = resolved.to_dict()
    data["time_remaining"] = format_time_remaining(time_remaining(resolved.deadline, service.clock.now()))
    data["current_streak"] = service.current_streak(sender_id)
    print_status(data)
    return data


def do_ping(service: CheckInService, sender_id: str, in_person: bool = False) -> dict:
    method = CompletionMethod.IN_PERSON if in_person else CompletionMethod.TAP
    ping = service.complete_ping(sender_id, method)
    result = {
        "ok": True,
        "date": ping.ping_date.isoformat(),
        "status": ping.status.value,
        "completed_at": ping.completed_at.isoformat() if ping.completed_at else None,
        "method": ping.completion_method.value if ping.completion_method else None,
        "was_late": ping.was_late,
    }
    print_ping_result(result)
    return result


def do_streak(service: CheckInService, sender_id: str) -> dict:
    info = service.streak_info(sender_id)
    data = {
        "current_streak": info.current_streak,
        "longest_streak": info.longest_streak,
        "last_qualifying_date": info.last_qualifying_date.isoformat() if info.last_qualifying_date else None,
        "is_qualifying_today": info.is_qualifying_today,
    }
    print_streak(data)
    return data


def do_break_add(service: CheckInService, sender_id: str, start: str, end: str, notes: str | None = None) -> dict:
    validation, brk = service.schedule_break(sender_id, _parse_date(start), _parse_date(end), notes)
    result = {"ok": validation.is_valid, "validation": validation.to_dict()}
    if brk is not None:
        result["break"] = _break_dict(brk)
    print_break_result(result)
    return result


def do_break_cancel(service: CheckInService, sender_id: str, break_id: int) -> dict:
    brk = service.cancel_break(sender_id, break_id)
    console.print(f"[green]Break #{brk.id} canceled.[/]")
    return {"ok": True, "break": _break_dict(brk)}


def do_break_end(service: CheckInService, sender_id: str, break_id: int) -> dict:
    brk = service.end_break_early(sender_id, break_id)
    console.print(f"[green]Break #{brk.id} ended. Today's ping is due again.[/]")
    return {"ok": True, "break": _break_dict(brk)}


def do_break_list(service: CheckInService, sender_id: str) -> dict:
    breaks = [_break_dict(b) for b in service.list_breaks(sender_id)]
    print_breaks(breaks)
    return {"ok": True, "breaks": breaks, "count": len(breaks)}


def do_generate(service: CheckInService) -> dict:
    result = service.generate_daily_pings()
    print_generate_result(result)
    return result


def do_check_missed(service: CheckInService) -> dict:
    missed = [
        {"sender_id": event.sender_id, "ping_date": event.ping_date.isoformat()}
        for event in service.check_missed_pings()
    ]
    print_missed_result(missed)
    return {"ok": True, "missed": missed, "count": len(missed)}


def run_command(service: CheckInService, args: argparse.Namespace) -> dict | None:
    command = args.command
    if command == "sender" and getattr(args, "sender_command", None) == "add":
        return do_sender_add(
            service, args.sender_id, args.ping_time, args.timezone, args.grace, not args.disabled
        )
    if command == "status":
        return do_status(service, args.sender_id)
    if command == "ping":
        return do_ping(service, args.sender_id, in_person=args.in_person)
    if command == "streak":
        return do_streak(service, args.sender_id)
    if command == "break":
        b_cmd = getattr(args, "break_command", None)
        if b_cmd == "add":
            return do_break_add(service, args.sender_id, args.start, args.end, args.notes)
        if b_cmd == "cancel":
            return do_break_cancel(service, args.sender_id, args.break_id)
        if b_cmd == "end":
            return do_break_end(service, args.sender_id, args.break_id)
        if b_cmd == "list":
            return do_break_list(service, args.sender_id)
    if command == "generate":
        return do_generate(service)
    if command == "check-missed":
        return do_check_missed(service)
    return None


def main() -> None:
    """Entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args()
    if args.command is None:
        parser.print_help()
        return
    configure_logging(args.verbose)

    db = Database(get_db_path())
    service = CheckInService(db, lookback_days=get_lookback_days())
    try:
        if run_command(service, args) is None:
            parser.print_help()
    except SafePingError as exc:
        print_error(str(exc))
        sys.exit(1)
    finally:
        db.close()
