"""Streak calculation for safeping.

A streak is the number of consecutive calendar days, walking back from
today, whose ping was completed or covered by a break. A missed day ends
the walk; so does a day without any record once counting has started.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable

from safeping.models import Ping, PingStatus

DEFAULT_LOOKBACK_DAYS = 730  # two years

# Higher wins when several records land on the same day
STATUS_PRIORITY: dict[PingStatus, int] = {
    PingStatus.COMPLETED: 3,
    PingStatus.ON_BREAK: 2,
    PingStatus.PENDING: 1,
    PingStatus.MISSED: 0,
}

QUALIFYING = frozenset({PingStatus.COMPLETED, PingStatus.ON_BREAK})


@dataclass
class StreakInfo:
    current_streak: int
    longest_streak: int
    last_qualifying_date: date | None
    is_qualifying_today: bool


def _record_status(ping: Ping) -> PingStatus:
    # A completion stored on a non-break day counts even if the status column lags
    if ping.completed_at is not None and ping.status is not PingStatus.ON_BREAK:
        return PingStatus.COMPLETED
    return ping.status


def effective_statuses(history: Iterable[Ping]) -> dict[date, PingStatus]:
    """Collapse raw records to one status per day, best status first."""
    by_day: dict[date, PingStatus] = {}
    for ping in history:
        status = _record_status(ping)
        current = by_day.get(ping.ping_date)
        if current is None or STATUS_PRIORITY[status] > STATUS_PRIORITY[current]:
            by_day[ping.ping_date] = status
    return by_day


def compute_streak(
    sender_id: str,
    ping_history: Iterable[Ping],
    today: date,
    lookback_limit_days: int = DEFAULT_LOOKBACK_DAYS,
) -> int:
    """Current streak for `sender_id` as of `today`.

    The walk covers at most `lookback_limit_days` calendar days, today
    included, so the result never exceeds that number.
    """
    if lookback_limit_days <= 0:
        raise ValueError("lookback_limit_days must be positive")

    statuses = effective_statuses(p for p in ping_history if p.sender_id == sender_id)
    if not statuses:
        return 0

    today_status = statuses.get(today)
    if today_status is PingStatus.MISSED:
        return 0

    streak = 1 if today_status in QUALIFYING else 0
    counting = streak > 0
    earliest = min(statuses)
    oldest = today - timedelta(days=lookback_limit_days - 1)

    current = today - timedelta(days=1)
    while current >= oldest:
        if current < earliest:
            break
        status = statuses.get(current)
        if status is None or status is PingStatus.PENDING:
            if counting:
                break
        elif status is PingStatus.MISSED:
            break
        else:
            streak += 1
            counting = True
        current -= timedelta(days=1)

    return streak


def longest_streak(statuses: dict[date, PingStatus]) -> int:
    """Longest run of consecutive qualifying days anywhere in `statuses`."""
    longest = 0
    run = 0
    previous: date | None = None
    for day in sorted(statuses):
        if statuses[day] not in QUALIFYING:
            run = 0
        elif previous is not None and run and (day - previous).days == 1:
            run += 1
        else:
            run = 1
        previous = day
        longest = max(longest, run)
    return longest


def calculate_streak_info(
    sender_id: str,
    ping_history: Iterable[Ping],
    today: date,
    lookback_limit_days: int = DEFAULT_LOOKBACK_DAYS,
) -> StreakInfo:
    """Current and longest streak plus the last qualifying day."""
    history = [p for p in ping_history if p.sender_id == sender_id]
    oldest = today - timedelta(days=lookback_limit_days - 1)
    statuses = {
        day: status
        for day, status in effective_statuses(history).items()
        if oldest <= day <= today
    }

    current = compute_streak(sender_id, history, today, lookback_limit_days)
    qualifying_days = [day for day, status in statuses.items() if status in QUALIFYING]

    return StreakInfo(
        current_streak=current,
        longest_streak=max(longest_streak(statuses), current),
        last_qualifying_date=max(qualifying_days) if qualifying_days else None,
        is_qualifying_today=statuses.get(today) in QUALIFYING,
    )
