"""Daily ping resolution for safeping.

A sender has at most one ping per calendar day in their own time zone.
Its status is derived here from the sender's configuration, the stored
record (if any) and the sender's breaks:

    no record -> pending -> completed | missed
    any day covered by an open break -> on_break (pre-empts the above)

A missed ping can still be completed late; the lateness is kept in
`was_late` so "is it done" and "was it on time" never overwrite each other.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta
from typing import Iterable

from safeping.breaks import is_suppressing
from safeping.clock import add_duration, at_local_time, get_zone, start_of_day
from safeping.errors import InvalidConfiguration
from safeping.models import Break, CompletionMethod, Ping, PingStatus, Sender

logger = logging.getLogger(__name__)

MANUAL_METHODS = frozenset({CompletionMethod.TAP, CompletionMethod.IN_PERSON})


@dataclass(frozen=True)
class ResolvedStatus:
    sender_id: str
    day: date
    status: PingStatus
    scheduled_time: datetime
    deadline: datetime
    completed_at: datetime | None = None
    completion_method: CompletionMethod | None = None
    was_late: bool = False
    # Completion recorded on a day that still displays as on_break
    voluntary_completion: bool = False

    def to_dict(self) -> dict:
        return {
            "sender_id": self.sender_id,
            "date": self.day.isoformat(),
            "status": self.status.value,
            "scheduled_time": self.scheduled_time.isoformat(),
            "deadline": self.deadline.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "completion_method": self.completion_method.value if self.completion_method else None,
            "was_late": self.was_late,
            "voluntary_completion": self.voluntary_completion,
        }


def validate_sender(sender: Sender) -> None:
    """Fail fast on configuration that would corrupt deadline math."""
    problem = None
    if sender.ping_time is None:
        problem = "ping time is not set"
    elif sender.grace_period_minutes is None:
        problem = "grace period is not set"
    elif sender.grace_period_minutes <= 0:
        problem = f"grace period must be positive, got {sender.grace_period_minutes}"
    if problem is None:
        try:
            get_zone(sender.timezone)
        except InvalidConfiguration as exc:
            problem = str(exc)
    if problem is not None:
        logger.error("Invalid ping configuration for sender %s: %s", sender.id, problem)
        raise InvalidConfiguration(f"Sender {sender.id}: {problem}")


def scheduled_time_for(sender: Sender, day: date) -> datetime:
    validate_sender(sender)
    return at_local_time(day, sender.ping_time, sender.timezone)


def deadline_for(sender: Sender, day: date) -> datetime:
    """Scheduled time plus the grace period, in absolute time."""
    scheduled = scheduled_time_for(sender, day)
    return add_duration(scheduled, timedelta(minutes=sender.grace_period_minutes))


def resolve_day(
    sender: Sender,
    day: date,
    existing_ping: Ping | None,
    breaks_for_sender: Iterable[Break],
    now: datetime,
) -> ResolvedStatus:
    """Derive the status of `sender`'s ping for `day` as of `now`.

    A stored record keeps the schedule it was created with; the sender's
    current ping time and grace period only apply to days without a record.
    """
    validate_sender(sender)
    if existing_ping is not None and existing_ping.ping_date != day:
        existing_ping = None
    if existing_ping is not None:
        scheduled = existing_ping.scheduled_time
        deadline = existing_ping.deadline_time
    else:
        scheduled = scheduled_time_for(sender, day)
        deadline = deadline_for(sender, day)

    if is_suppressing(sender.id, day, breaks_for_sender):
        voluntary = (
            existing_ping is not None
            and existing_ping.completed_at is not None
            and existing_ping.completion_method is not CompletionMethod.AUTO_BREAK
        )
        return ResolvedStatus(
            sender_id=sender.id,
            day=day,
            status=PingStatus.ON_BREAK,
            scheduled_time=scheduled,
            deadline=deadline,
            completed_at=existing_ping.completed_at if voluntary else None,
            completion_method=existing_ping.completion_method if voluntary else None,
            voluntary_completion=voluntary,
        )

    if existing_ping is not None and existing_ping.completed_at is not None:
        return ResolvedStatus(
            sender_id=sender.id,
            day=day,
            status=PingStatus.COMPLETED,
            scheduled_time=scheduled,
            deadline=deadline,
            completed_at=existing_ping.completed_at,
            completion_method=existing_ping.completion_method,
            was_late=existing_ping.was_late,
        )

    if existing_ping is not None and existing_ping.status is PingStatus.MISSED:
        # missed only ends with a late completion
        status = PingStatus.MISSED
    elif now < deadline:
        status = PingStatus.PENDING
    else:
        status = PingStatus.MISSED
    return ResolvedStatus(
        sender_id=sender.id,
        day=day,
        status=status,
        scheduled_time=scheduled,
        deadline=deadline,
    )


def resolve_today(
    sender: Sender,
    existing_ping: Ping | None,
    breaks_for_sender: Iterable[Break],
    now: datetime,
) -> ResolvedStatus:
    """Resolve the ping for the sender's current calendar day."""
    validate_sender(sender)
    today = start_of_day(now, sender.timezone)
    return resolve_day(sender, today, existing_ping, breaks_for_sender, now)


def new_ping(sender: Sender, day: date, breaks_for_sender: Iterable[Break]) -> Ping:
    """Build the record the daily generation pass stores for `day`."""
    scheduled = scheduled_time_for(sender, day)
    deadline = deadline_for(sender, day)
    if is_suppressing(sender.id, day, breaks_for_sender):
        return Ping(
            sender_id=sender.id,
            ping_date=day,
            scheduled_time=scheduled,
            deadline_time=deadline,
            status=PingStatus.ON_BREAK,
            completion_method=CompletionMethod.AUTO_BREAK,
        )
    return Ping(
        sender_id=sender.id,
        ping_date=day,
        scheduled_time=scheduled,
        deadline_time=deadline,
    )


def apply_resolution(ping: Ping, resolved: ResolvedStatus) -> Ping:
    """Sync a stored ping with a freshly resolved status."""
    method = ping.completion_method
    if resolved.status is PingStatus.ON_BREAK and not resolved.voluntary_completion:
        method = CompletionMethod.AUTO_BREAK
    elif method is CompletionMethod.AUTO_BREAK:
        method = None
    return replace(
        ping,
        status=resolved.status,
        scheduled_time=resolved.scheduled_time,
        deadline_time=resolved.deadline,
        completion_method=method,
    )


def complete_ping(ping: Ping, now: datetime, method: CompletionMethod = CompletionMethod.TAP) -> Ping:
    """Record a manual completion.

    - pending or missed: becomes completed; was_late records whether the
      deadline had already passed
    - on_break: stays on_break with the completion kept alongside it
    - already completed: unchanged, the first completion wins
    """
    if method not in MANUAL_METHODS:
        raise ValueError(f"{method.value} is not a manual completion method")
    if ping.status is PingStatus.COMPLETED and ping.completed_at is not None:
        return ping
    if ping.status is PingStatus.ON_BREAK:
        if ping.completed_at is not None and ping.completion_method in MANUAL_METHODS:
            return ping
        return replace(ping, completed_at=now, completion_method=method)
    return replace(
        ping,
        status=PingStatus.COMPLETED,
        completed_at=now,
        completion_method=method,
        was_late=now >= ping.deadline_time,
    )


def expire_ping(ping: Ping, now: datetime) -> Ping:
    """Move a pending ping to missed once its deadline has passed."""
    if ping.status is PingStatus.PENDING and ping.completed_at is None and now >= ping.deadline_time:
        return replace(ping, status=PingStatus.MISSED)
    return ping


def time_remaining(deadline: datetime, now: datetime) -> timedelta:
    return max(deadline - now, timedelta(0))
