"""Rich terminal display for safeping."""

from __future__ import annotations

from datetime import datetime, timedelta

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

console = Console()

_STATUS_STYLE: dict[str, str] = {
    "pending": "yellow",
    "completed": "green",
    "missed": "red1",
    "on_break": "deep_sky_blue1",
}

_BREAK_STYLE: dict[str, str] = {
    "scheduled": "cyan",
    "active": "deep_sky_blue1",
    "completed": "grey70",
    "canceled": "grey50",
}


def format_time_remaining(remaining: timedelta) -> str:
    """Countdown text: '1h 25m remaining', '4m remaining' or 'Expired'."""
    seconds = int(remaining.total_seconds())
    if seconds <= 0:
        return "Expired"
    hours, rest = divmod(seconds, 3600)
    minutes = rest // 60
    if hours > 0:
        return f"{hours}h {minutes}m remaining"
    return f"{minutes}m remaining"


def _clock(value: str | None) -> str:
    if not value:
        return "-"
    return datetime.fromisoformat(value).strftime("%H:%M")


def print_status(data: dict) -> None:
    """Print today's ping status panel."""
    status = data.get("status", "pending")
    style = _STATUS_STYLE.get(status, "white")
    lines: list[str] = []
    lines.append("")
    lines.append(f"  [bold {style}]{status.replace('_', ' ').upper()}[/]")
    lines.append("")
    lines.append(f"  Date:       {data.get('date', '')}")
    lines.append(f"  Scheduled:  {_clock(data.get('scheduled_time'))}")
    lines.append(f"  Deadline:   {_clock(data.get('deadline'))}")
    if status == "pending" and data.get("time_remaining"):
        lines.append(f"  ⏳ {data['time_remaining']}")
    if data.get("completed_at"):
        late = " (late)" if data.get("was_late") else ""
        lines.append(f"  Completed:  {_clock(data['completed_at'])}{late}")
    if data.get("voluntary_completion"):
        lines.append("  Checked in while on break")
    if "current_streak" in data:
        lines.append("")
        lines.append(f"  \U0001f525 Streak: {data['current_streak']} days")
    lines.append("")

    panel = Panel(
        "\n".join(lines),
        title=f"[bold]{data.get('sender_id', 'SAFEPING')}[/]",
        box=box.ROUNDED,
        border_style=style,
        width=50,
    )
    console.print(panel)


def print_streak(data: dict) -> None:
    """Print current and longest streak."""
    table = Table(title="Streak", box=box.ROUNDED, show_header=True, header_style="bold")
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Current Streak", f"{data.get('current_streak', 0)} days")
    table.add_row("Longest Streak", f"{data.get('longest_streak', 0)} days")
    table.add_row("Last Check-in Day", data.get("last_qualifying_date") or "-")
    table.add_row("Counted Today", "yes" if data.get("is_qualifying_today") else "no")
    console.print(table)


def print_breaks(breaks: list[dict]) -> None:
    """Print a sender's breaks, newest first."""
    if not breaks:
        console.print("[grey50]No breaks scheduled.[/]")
        return
    table = Table(title="Breaks", box=box.ROUNDED, show_header=True, header_style="bold")
    table.add_column("ID", justify="right")
    table.add_column("Start")
    table.add_column("End")
    table.add_column("Days", justify="right")
    table.add_column("Status")
    table.add_column("Notes")
    for brk in sorted(breaks, key=lambda b: b["start_date"], reverse=True):
        style = _BREAK_STYLE.get(brk["status"], "white")
        table.add_row(
            str(brk["id"]),
            brk["start_date"],
            brk["end_date"],
            str(brk["duration_days"]),
            f"[{style}]{brk['status']}[/]",
            brk.get("notes") or "",
        )
    console.print(table)


def print_break_result(result: dict) -> None:
    """Print the outcome of scheduling a break."""
    validation = result.get("validation", {})
    if not validation.get("is_valid"):
        console.print(f"[red]{validation.get('message', 'Invalid break')}[/]")
        return
    brk = result.get("break", {})
    lines = [
        "",
        f"  Break #{brk.get('id')}: {brk.get('start_date')} → {brk.get('end_date')}",
        f"  Status: {brk.get('status')}",
    ]
    if validation.get("warning_message"):
        lines.append(f"  [yellow]⚠ {validation['warning_message']}[/]")
    lines.append("")
    console.print(Panel("\n".join(lines), title="[bold]Break Scheduled[/]", box=box.ROUNDED, border_style="green", width=50))


def print_ping_result(result: dict) -> None:
    if result.get("status") == "on_break":
        console.print("[deep_sky_blue1]Check-in recorded. You are on break today.[/]")
    elif result.get("was_late"):
        console.print("[yellow]Late check-in recorded.[/]")
    else:
        console.print("[green]Check-in recorded. Your receivers know you're okay.[/]")


def print_generate_result(result: dict) -> None:
    lines = [
        "",
        f"  Created:   {result.get('created', 0)}",
        f"  Existing:  {result.get('existing', 0)}",
        f"  On break:  {result.get('on_break', 0)}",
    ]
    failed = result.get("failed", [])
    if failed:
        lines.append(f"  [red]Failed:    {', '.join(failed)}[/]")
    lines.append("")
    border = "red" if failed else "green"
    console.print(Panel("\n".join(lines), title="[bold]Daily Pings[/]", box=box.ROUNDED, border_style=border, width=50))


def print_missed_result(missed: list[dict]) -> None:
    if not missed:
        console.print("[green]No newly missed pings.[/]")
        return
    for item in missed:
        console.print(f"[red1]⚠ {item['sender_id']} missed the ping for {item['ping_date']}[/]")


def print_error(message: str) -> None:
    console.print(f"[red]{message}[/]")
