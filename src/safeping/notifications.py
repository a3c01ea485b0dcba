"""Notification preferences, events and the eligibility filter.

Nothing here delivers anything: `should_notify` and `decide` only say
whether a resolved event ought to reach a given user.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields, replace
from datetime import date, datetime, time
from enum import Enum
from typing import Union

from safeping.clock import local_time
from safeping.models import BreakStatus, CompletionMethod, PingStatus
from safeping.pings import ResolvedStatus

logger = logging.getLogger(__name__)


class NotificationType(str, Enum):
    PING_REMINDER = "ping_reminder"
    DEADLINE_WARNING = "deadline_warning"
    DEADLINE_FINAL = "deadline_final"
    MISSED_PING = "missed_ping"
    PING_COMPLETED_ONTIME = "ping_completed_ontime"
    PING_COMPLETED_LATE = "ping_completed_late"
    BREAK_STARTED = "break_started"
    BREAK_NOTIFICATION = "break_notification"
    CONNECTION_REQUEST = "connection_request"
    PAYMENT_REMINDER = "payment_reminder"
    TRIAL_ENDING = "trial_ending"
    DATA_EXPORT_READY = "data_export_ready"
    DATA_EXPORT_EMAIL_SENT = "data_export_email_sent"
    PING_TIME_CHANGED = "ping_time_changed"


# Preference flag gating each type; None means always delivered
_CATEGORY_FLAG: dict[NotificationType, str | None] = {
    NotificationType.PING_REMINDER: "ping_reminders",
    NotificationType.DEADLINE_WARNING: "fifteen_minute_warning",
    NotificationType.DEADLINE_FINAL: "deadline_warning",
    NotificationType.MISSED_PING: "missed_ping_alerts",
    NotificationType.PING_COMPLETED_ONTIME: "ping_completed_notifications",
    NotificationType.PING_COMPLETED_LATE: "ping_completed_notifications",
    NotificationType.BREAK_STARTED: "ping_completed_notifications",
    NotificationType.BREAK_NOTIFICATION: "ping_completed_notifications",
    NotificationType.CONNECTION_REQUEST: "connection_requests",
    NotificationType.PAYMENT_REMINDER: None,
    NotificationType.TRIAL_ENDING: None,
    NotificationType.DATA_EXPORT_READY: None,
    NotificationType.DATA_EXPORT_EMAIL_SENT: None,
    NotificationType.PING_TIME_CHANGED: "ping_reminders",
}


def parse_hhmm(value: str | None) -> time | None:
    """Parse 'HH:MM'. Returns None for missing or malformed values."""
    if not value:
        return None
    try:
        hours, minutes = value.split(":")
        return time(int(hours), int(minutes))
    except ValueError:
        return None


@dataclass
class NotificationPreferences:
    notifications_enabled: bool = True
    ping_reminders: bool = True
    fifteen_minute_warning: bool = True
    deadline_warning: bool = True
    ping_completed_notifications: bool = True
    missed_ping_alerts: bool = True
    connection_requests: bool = True
    payment_reminders: bool = True
    muted_sender_ids: frozenset[str] = field(default_factory=frozenset)
    sound_enabled: bool = True
    vibration_enabled: bool = True
    quiet_hours_enabled: bool = False
    quiet_hours_start: str | None = None  # HH:MM, 24-hour
    quiet_hours_end: str | None = None

    def is_sender_muted(self, sender_id: str) -> bool:
        return sender_id in self.muted_sender_ids

    def muting(self, sender_id: str) -> NotificationPreferences:
        return replace(self, muted_sender_ids=self.muted_sender_ids | {sender_id})

    def unmuting(self, sender_id: str) -> NotificationPreferences:
        return replace(self, muted_sender_ids=self.muted_sender_ids - {sender_id})

    def with_quiet_hours(self, start: str, end: str) -> NotificationPreferences:
        if parse_hhmm(start) is None or parse_hhmm(end) is None:
            raise ValueError(f"Quiet hours must be HH:MM, got {start!r}-{end!r}")
        return replace(self, quiet_hours_enabled=True, quiet_hours_start=start, quiet_hours_end=end)

    def without_quiet_hours(self) -> NotificationPreferences:
        return replace(self, quiet_hours_enabled=False, quiet_hours_start=None, quiet_hours_end=None)

    def to_dict(self) -> dict:
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data["muted_sender_ids"] = sorted(self.muted_sender_ids)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> NotificationPreferences:
        known = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in data.items() if k in known}
        kwargs["muted_sender_ids"] = frozenset(data.get("muted_sender_ids") or ())
        return cls(**kwargs)


def is_in_quiet_hours(prefs: NotificationPreferences, at: time) -> bool:
    """True if `at` falls in [start, end); start > end wraps past midnight."""
    if not prefs.quiet_hours_enabled:
        return False
    start = parse_hhmm(prefs.quiet_hours_start)
    end = parse_hhmm(prefs.quiet_hours_end)
    if start is None or end is None:
        return False
    at = at.replace(second=0, microsecond=0, tzinfo=None)
    if start > end:
        return at >= start or at < end
    return start <= at < end


def should_notify(
    prefs: NotificationPreferences,
    event_type: NotificationType,
    sender_id: str | None,
    now: datetime,
    tz_name: str = "UTC",
) -> bool:
    """Decide whether an event of `event_type` may reach this user now.

    Master toggle, then quiet hours (in the user's `tz_name`), then
    per-sender mute, then the category flag.
    """
    if not prefs.notifications_enabled:
        return False
    if is_in_quiet_hours(prefs, local_time(now, tz_name)):
        return False
    if sender_id is not None and prefs.is_sender_muted(sender_id):
        return False
    flag = _CATEGORY_FLAG.get(event_type)
    if flag is None:
        return True
    return bool(getattr(prefs, flag))


# ── Events ────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class PingReminder:
    sender_id: str
    deadline: datetime

    @property
    def type(self) -> NotificationType:
        return NotificationType.PING_REMINDER


@dataclass(frozen=True)
class DeadlineWarning:
    sender_id: str
    deadline: datetime
    minutes_remaining: int

    @property
    def type(self) -> NotificationType:
        return NotificationType.DEADLINE_WARNING


@dataclass(frozen=True)
class DeadlineFinal:
    sender_id: str
    deadline: datetime

    @property
    def type(self) -> NotificationType:
        return NotificationType.DEADLINE_FINAL


@dataclass(frozen=True)
class PingMissed:
    sender_id: str
    ping_date: date
    last_seen: datetime | None = None

    @property
    def type(self) -> NotificationType:
        return NotificationType.MISSED_PING


@dataclass(frozen=True)
class PingCompleted:
    sender_id: str
    completed_at: datetime
    method: CompletionMethod
    is_late: bool = False

    @property
    def type(self) -> NotificationType:
        if self.is_late:
            return NotificationType.PING_COMPLETED_LATE
        return NotificationType.PING_COMPLETED_ONTIME


@dataclass(frozen=True)
class BreakStarted:
    sender_id: str
    start_date: date
    end_date: date

    @property
    def type(self) -> NotificationType:
        return NotificationType.BREAK_STARTED


@dataclass(frozen=True)
class BreakStatusChanged:
    sender_id: str
    break_id: int
    status: BreakStatus

    @property
    def type(self) -> NotificationType:
        return NotificationType.BREAK_NOTIFICATION


@dataclass(frozen=True)
class ConnectionRequest:
    requester_id: str

    @property
    def type(self) -> NotificationType:
        return NotificationType.CONNECTION_REQUEST


@dataclass(frozen=True)
class PaymentReminder:
    amount_due: str

    @property
    def type(self) -> NotificationType:
        return NotificationType.PAYMENT_REMINDER


@dataclass(frozen=True)
class TrialEnding:
    days_left: int

    @property
    def type(self) -> NotificationType:
        return NotificationType.TRIAL_ENDING


@dataclass(frozen=True)
class DataExportReady:
    download_url: str
    emailed: bool = False

    @property
    def type(self) -> NotificationType:
        if self.emailed:
            return NotificationType.DATA_EXPORT_EMAIL_SENT
        return NotificationType.DATA_EXPORT_READY


@dataclass(frozen=True)
class PingTimeChanged:
    sender_id: str
    new_ping_time: time

    @property
    def type(self) -> NotificationType:
        return NotificationType.PING_TIME_CHANGED


Event = Union[
    PingReminder,
    DeadlineWarning,
    DeadlineFinal,
    PingMissed,
    PingCompleted,
    BreakStarted,
    BreakStatusChanged,
    ConnectionRequest,
    PaymentReminder,
    TrialEnding,
    DataExportReady,
    PingTimeChanged,
]


@dataclass(frozen=True)
class NotificationDecision:
    event: Event
    deliver: bool


def event_sender(event: Event) -> str | None:
    return getattr(event, "sender_id", None)


def decide(
    prefs: NotificationPreferences,
    event: Event,
    now: datetime,
    tz_name: str = "UTC",
) -> NotificationDecision:
    deliver = should_notify(prefs, event.type, event_sender(event), now, tz_name)
    if not deliver:
        logger.debug("Suppressed %s notification for sender %s", event.type.value, event_sender(event))
    return NotificationDecision(event=event, deliver=deliver)


def events_for_transition(before: ResolvedStatus | None, after: ResolvedStatus) -> list[Event]:
    """Events a receiver should see when a day's resolved status changes."""
    if before is not None and before.status is after.status and before.completed_at == after.completed_at:
        return []

    if after.status is PingStatus.MISSED:
        return [PingMissed(sender_id=after.sender_id, ping_date=after.day)]
    if after.status is PingStatus.COMPLETED and after.completed_at is not None:
        return [
            PingCompleted(
                sender_id=after.sender_id,
                completed_at=after.completed_at,
                method=after.completion_method or CompletionMethod.TAP,
                is_late=after.was_late,
            )
        ]
    return []
