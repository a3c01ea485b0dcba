"""Check-in orchestration for safeping.

Binds the pure resolver, validator and streak functions to a Database, a
Clock and (optionally) a notifier. Collaborators are passed in, never
looked up globally, so tests can run against a temp database and a
FixedClock.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import date, datetime, time
from typing import Callable, Iterable

from safeping import breaks as break_rules
from safeping.breaks import initial_status, refresh_status, validate_break
from safeping.clock import Clock, add_days, start_of_day
from safeping.db import Database
from safeping.errors import InvalidConfiguration, PingsDisabled, RecordNotFound, ValidationResult
from safeping.models import (
    DEFAULT_GRACE_PERIOD_MINUTES,
    Break,
    BreakStatus,
    CompletionMethod,
    Ping,
    PingStatus,
    Sender,
)
from safeping.notifications import (
    BreakStarted,
    BreakStatusChanged,
    Event,
    NotificationDecision,
    PingMissed,
    decide,
    events_for_transition,
)
from safeping.pings import (
    ResolvedStatus,
    apply_resolution,
    complete_ping,
    expire_ping,
    new_ping,
    resolve_day,
    validate_sender,
)
from safeping.streaks import DEFAULT_LOOKBACK_DAYS, StreakInfo, calculate_streak_info, compute_streak

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Receiver:
    id: str
    timezone: str = "UTC"


Notifier = Callable[[str, Event], None]
ReceiverLookup = Callable[[str], Iterable[Receiver]]


class CheckInService:
    def __init__(
        self,
        db: Database,
        clock: Clock | None = None,
        notifier: Notifier | None = None,
        receivers_for: ReceiverLookup | None = None,
        lookback_days: int = DEFAULT_LOOKBACK_DAYS,
    ) -> None:
        self.db = db
        self.clock = clock or Clock()
        self.notifier = notifier
        self.receivers_for = receivers_for
        self.lookback_days = lookback_days

    # ── Lookups ──────────────────────────────────────────────────────────────

    def get_sender(self, sender_id: str) -> Sender:
        sender = self.db.get_sender(sender_id)
        if sender is None:
            raise RecordNotFound(f"Unknown sender: {sender_id}")
        return sender

    def _get_break(self, sender_id: str, break_id: int) -> Break:
        brk = self.db.get_break(break_id)
        if brk is None or brk.sender_id != sender_id:
            raise RecordNotFound(f"Unknown break {break_id} for sender {sender_id}")
        return brk

    def today_for(self, sender: Sender, now: datetime | None = None) -> date:
        validate_sender(sender)
        return start_of_day(now or self.clock.now(), sender.timezone)

    # ── Senders ──────────────────────────────────────────────────────────────

    def register_sender(
        self,
        sender_id: str,
        ping_time: time,
        timezone: str,
        grace_period_minutes: int = DEFAULT_GRACE_PERIOD_MINUTES,
        ping_enabled: bool = True,
    ) -> Sender:
        """Create or update a sender; rejects configuration that cannot be resolved."""
        sender = Sender(
            id=sender_id,
            ping_time=ping_time,
            timezone=timezone,
            grace_period_minutes=grace_period_minutes,
            ping_enabled=ping_enabled,
        )
        validate_sender(sender)
        self.db.upsert_sender(sender)
        return sender

    # ── Pings ────────────────────────────────────────────────────────────────

    def _sync_day(
        self,
        sender: Sender,
        day: date,
        breaks: list[Break],
        now: datetime,
        create: bool = False,
    ) -> tuple[Ping | None, ResolvedStatus]:
        """Resolve `day` and write the result back if it changed the stored row."""
        existing = self.db.get_ping(sender.id, day)
        resolved = resolve_day(sender, day, existing, breaks, now)
        if existing is None and not (create and sender.ping_enabled):
            return None, resolved
        stored = existing or new_ping(sender, day, breaks)
        synced = apply_resolution(stored, resolved)
        if existing is None or synced != existing:
            synced = self.db.upsert_ping(synced)
        return synced, resolved

    def today_status(self, sender_id: str) -> ResolvedStatus:
        """Resolve today's ping, creating the row on first read."""
        sender = self.get_sender(sender_id)
        now = self.clock.now()
        with self.db.transaction():
            breaks = self.db.get_breaks(sender.id)
            _, resolved = self._sync_day(sender, self.today_for(sender, now), breaks, now, create=True)
        return resolved

    def complete_ping(self, sender_id: str, method: CompletionMethod = CompletionMethod.TAP) -> Ping:
        """Record the sender's check-in for today, late or not."""
        sender = self.get_sender(sender_id)
        if not sender.ping_enabled:
            raise PingsDisabled(f"Pings are disabled for sender {sender.id}")
        now = self.clock.now()
        with self.db.transaction():
            breaks = self.db.get_breaks(sender.id)
            ping, before = self._sync_day(sender, self.today_for(sender, now), breaks, now, create=True)
            completed = complete_ping(ping, now, method)
            if completed != ping:
                completed = self.db.upsert_ping(completed)
            after = resolve_day(sender, before.day, completed, breaks, now)

        if completed.was_late:
            logger.info("Sender %s completed %s late", sender.id, before.day)
        self.announce(sender.id, events_for_transition(before, after))
        return completed

    # ── Breaks ───────────────────────────────────────────────────────────────

    def schedule_break(
        self,
        sender_id: str,
        start: date,
        end: date,
        notes: str | None = None,
    ) -> tuple[ValidationResult, Break | None]:
        """Validate and store a break. Invalid requests come back as a result, not an error."""
        sender = self.get_sender(sender_id)
        now = self.clock.now()
        today = self.today_for(sender, now)
        with self.db.transaction():
            existing = self.db.get_breaks(sender.id)
            result = validate_break(sender.id, start, end, existing, today)
            if not result.is_valid:
                logger.info("Rejected break %s..%s for %s: %s", start, end, sender.id, result.error_kind.value)
                return result, None
            stored = self.db.insert_break(
                Break(
                    sender_id=sender.id,
                    start_date=start,
                    end_date=end,
                    status=initial_status(start, today),
                    notes=notes,
                    created_at=now,
                )
            )
            if stored.covers(today):
                self._sync_day(sender, today, existing + [stored], now)

        logger.info("Scheduled break %s for %s: %s..%s", stored.id, sender.id, start, end)
        if stored.status is BreakStatus.ACTIVE:
            self.announce(sender.id, [BreakStarted(sender_id=sender.id, start_date=start, end_date=end)])
        return result, stored

    def _resync_from(self, sender: Sender, first_day: date, last_day: date, now: datetime) -> None:
        """Re-resolve stored on_break pings after a break stopped covering them."""
        breaks = self.db.get_breaks(sender.id)
        for ping in self.db.get_ping_history(sender.id, first_day, last_day):
            if ping.status is PingStatus.ON_BREAK:
                self._sync_day(sender, ping.ping_date, breaks, now)

    def cancel_break(self, sender_id: str, break_id: int) -> Break:
        sender = self.get_sender(sender_id)
        now = self.clock.now()
        today = self.today_for(sender, now)
        with self.db.transaction():
            brk = self._get_break(sender.id, break_id)
            canceled = break_rules.cancel_break(brk, today)
            self.db.update_break(canceled)
            self._resync_from(sender, max(today, brk.start_date), brk.end_date, now)

        logger.info("Canceled break %s for %s", break_id, sender.id)
        self.announce(sender.id, [BreakStatusChanged(sender.id, break_id, BreakStatus.CANCELED)])
        return canceled

    def end_break_early(self, sender_id: str, break_id: int) -> Break:
        """End an active break today; today's ping is required again."""
        sender = self.get_sender(sender_id)
        now = self.clock.now()
        today = self.today_for(sender, now)
        with self.db.transaction():
            brk = self._get_break(sender.id, break_id)
            ended = break_rules.end_break_early(brk, today)
            self.db.update_break(ended)
            self._resync_from(sender, today, brk.end_date, now)

        logger.info("Ended break %s early for %s", break_id, sender.id)
        self.announce(sender.id, [BreakStatusChanged(sender.id, break_id, ended.status)])
        return ended

    def list_breaks(self, sender_id: str) -> list[Break]:
        """All breaks for a sender with their stored status brought up to date."""
        sender = self.get_sender(sender_id)
        today = self.today_for(sender)
        result = []
        changes: list[BreakStatusChanged] = []
        with self.db.transaction():
            for brk in self.db.get_breaks(sender.id):
                refreshed = refresh_status(brk, today)
                if refreshed is not brk:
                    self.db.update_break(refreshed)
                    changes.append(BreakStatusChanged(sender.id, brk.id, refreshed.status))
                result.append(refreshed)

        for event in changes:
            logger.info("Break %s for %s is now %s", event.break_id, sender.id, event.status.value)
        self.announce(sender.id, changes)
        return result

    def validate_break(self, sender_id: str, start: date, end: date) -> ValidationResult:
        sender = self.get_sender(sender_id)
        return validate_break(sender.id, start, end, self.db.get_breaks(sender.id), self.today_for(sender))

    # ── Streaks ──────────────────────────────────────────────────────────────

    def _history(self, sender: Sender, today: date) -> list[Ping]:
        return self.db.get_ping_history(sender.id, add_days(today, -(self.lookback_days - 1)), today)

    def current_streak(self, sender_id: str) -> int:
        resolved = self.today_status(sender_id)
        sender = self.get_sender(sender_id)
        return compute_streak(sender.id, self._history(sender, resolved.day), resolved.day, self.lookback_days)

    def streak_info(self, sender_id: str) -> StreakInfo:
        resolved = self.today_status(sender_id)
        sender = self.get_sender(sender_id)
        return calculate_streak_info(sender.id, self._history(sender, resolved.day), resolved.day, self.lookback_days)

    # ── Batch passes ─────────────────────────────────────────────────────────

    def generate_daily_pings(self) -> dict:
        """Materialize today's ping row for every enabled sender.

        A sender with broken configuration is reported and skipped; the rest
        of the batch still runs.
        """
        now = self.clock.now()
        created = existing = on_break = 0
        failed: list[str] = []
        for sender in self.db.list_senders(enabled_only=True):
            try:
                today = self.today_for(sender, now)
                ping = new_ping(sender, today, self.db.get_breaks(sender.id))
            except InvalidConfiguration:
                failed.append(sender.id)
                continue
            stored, was_created = self.db.insert_ping_if_missing(ping)
            if not was_created:
                existing += 1
                continue
            created += 1
            if stored.status is PingStatus.ON_BREAK:
                on_break += 1

        if failed:
            logger.error("Ping generation skipped %d misconfigured sender(s): %s", len(failed), ", ".join(failed))
        logger.info("Generated %d ping(s), %d already present", created, existing)
        return {"created": created, "existing": existing, "on_break": on_break, "failed": failed}

    def check_missed_pings(self) -> list[PingMissed]:
        """Move pending pings past their deadline to missed and announce them."""
        now = self.clock.now()
        missed: list[PingMissed] = []
        for ping in self.db.get_pings_by_status(PingStatus.PENDING):
            sender = self.db.get_sender(ping.sender_id)
            if sender is None:
                logger.warning("Pending ping %s belongs to unknown sender %s", ping.id, ping.sender_id)
                continue
            if not sender.ping_enabled:
                continue
            with self.db.transaction():
                current = self.db.get_ping(sender.id, ping.ping_date)
                if current is None or current.status is not PingStatus.PENDING:
                    continue
                breaks = self.db.get_breaks(sender.id)
                if break_rules.is_suppressing(sender.id, current.ping_date, breaks):
                    self.db.upsert_ping(
                        replace(current, status=PingStatus.ON_BREAK, completion_method=CompletionMethod.AUTO_BREAK)
                    )
                    continue
                expired = expire_ping(current, now)
                if expired is current:
                    continue
                self.db.upsert_ping(expired)
            event = PingMissed(
                sender_id=sender.id,
                ping_date=ping.ping_date,
                last_seen=self.db.get_last_completed_at(sender.id),
            )
            logger.info("Sender %s missed the ping for %s", sender.id, ping.ping_date)
            missed.append(event)
            self.announce(sender.id, [event])
        return missed

    # ── Notifications ────────────────────────────────────────────────────────

    def dispatch(self, receiver: Receiver, event: Event) -> NotificationDecision:
        """Filter an event through the receiver's preferences and hand it on."""
        prefs = self.db.get_preferences(receiver.id)
        decision = decide(prefs, event, self.clock.now(), receiver.timezone)
        if decision.deliver and self.notifier is not None:
            self.notifier(receiver.id, event)
        return decision

    def announce(self, sender_id: str, events: Iterable[Event]) -> list[NotificationDecision]:
        if self.receivers_for is None:
            return []
        decisions = []
        receivers = list(self.receivers_for(sender_id))
        for event in events:
            for receiver in receivers:
                decisions.append(self.dispatch(receiver, event))
        return decisions
