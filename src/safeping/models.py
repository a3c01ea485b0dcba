"""Core records for safeping: senders, pings and breaks."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time
from enum import Enum

DEFAULT_GRACE_PERIOD_MINUTES = 90


class PingStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    MISSED = "missed"
    ON_BREAK = "on_break"


class CompletionMethod(str, Enum):
    TAP = "tap"
    IN_PERSON = "in_person"
    AUTO_BREAK = "auto_break"


class BreakStatus(str, Enum):
    SCHEDULED = "scheduled"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELED = "canceled"


# Break statuses that still block new breaks and suppress pings
OPEN_BREAK_STATUSES = frozenset({BreakStatus.SCHEDULED, BreakStatus.ACTIVE})


@dataclass
class Sender:
    id: str
    ping_time: time | None
    timezone: str
    grace_period_minutes: int | None = DEFAULT_GRACE_PERIOD_MINUTES
    ping_enabled: bool = True


@dataclass
class Ping:
    sender_id: str
    ping_date: date
    scheduled_time: datetime
    deadline_time: datetime
    status: PingStatus = PingStatus.PENDING
    completed_at: datetime | None = None
    completion_method: CompletionMethod | None = None
    was_late: bool = False  # completed after the deadline had passed
    notes: str | None = None
    id: int | None = None


@dataclass
class Break:
    sender_id: str
    start_date: date
    end_date: date
    status: BreakStatus = BreakStatus.SCHEDULED
    notes: str | None = None
    id: int | None = None
    created_at: datetime | None = None

    @property
    def duration_days(self) -> int:
        """Number of days covered, counting both ends."""
        return (self.end_date - self.start_date).days + 1

    def covers(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date
