"""SQLite persistence layer for safeping."""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime, time
from pathlib import Path
from typing import Iterable, Iterator

from safeping.models import (
    Break,
    BreakStatus,
    CompletionMethod,
    Ping,
    PingStatus,
    Sender,
)
from safeping.notifications import NotificationPreferences

DEFAULT_DB_PATH = Path.home() / ".safeping" / "data.db"


def _dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _sender_from_row(row: sqlite3.Row) -> Sender:
    return Sender(
        id=row["id"],
        ping_time=time.fromisoformat(row["ping_time"]) if row["ping_time"] else None,
        timezone=row["timezone"],
        grace_period_minutes=row["grace_period_minutes"],
        ping_enabled=bool(row["ping_enabled"]),
    )


def _ping_from_row(row: sqlite3.Row) -> Ping:
    return Ping(
        id=row["id"],
        sender_id=row["sender_id"],
        ping_date=date.fromisoformat(row["ping_date"]),
        scheduled_time=datetime.fromisoformat(row["scheduled_time"]),
        deadline_time=datetime.fromisoformat(row["deadline_time"]),
        status=PingStatus(row["status"]),
        completed_at=_dt(row["completed_at"]),
        completion_method=CompletionMethod(row["completion_method"]) if row["completion_method"] else None,
        was_late=bool(row["was_late"]),
        notes=row["notes"],
    )


def _break_from_row(row: sqlite3.Row) -> Break:
    return Break(
        id=row["id"],
        sender_id=row["sender_id"],
        start_date=date.fromisoformat(row["start_date"]),
        end_date=date.fromisoformat(row["end_date"]),
        status=BreakStatus(row["status"]),
        notes=row["notes"],
        created_at=_dt(row["created_at"]),
    )


class Database:
    """SQLite database manager with WAL mode."""

    def __init__(self, db_path: Path | None = None) -> None:
        self.db_path = db_path or DEFAULT_DB_PATH
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(str(self.db_path))
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")
        self._transaction_depth = 0
        self.init_db()

    def init_db(self) -> None:
        """Create tables if they do not exist."""
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS senders (
                id TEXT PRIMARY KEY,
                ping_time TEXT,
                timezone TEXT NOT NULL DEFAULT 'UTC',
                grace_period_minutes INTEGER,
                ping_enabled BOOLEAN DEFAULT 1
            );

            CREATE TABLE IF NOT EXISTS pings (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                sender_id TEXT NOT NULL,
                ping_date TEXT NOT NULL,
                scheduled_time TEXT NOT NULL,
                deadline_time TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'pending',
                completed_at TEXT,
                completion_method TEXT,
                was_late BOOLEAN DEFAULT 0,
                notes TEXT,
                UNIQUE (sender_id, ping_date)
            );

            CREATE TABLE IF NOT EXISTS breaks (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                sender_id TEXT NOT NULL,
                start_date TEXT NOT NULL,
                end_date TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'scheduled',
                notes TEXT,
                created_at TEXT
            );

            CREATE INDEX IF NOT EXISTS idx_breaks_sender ON breaks (sender_id, status);

            CREATE TABLE IF NOT EXISTS notification_preferences (
                user_id TEXT PRIMARY KEY,
                data TEXT NOT NULL
            );
        """)
        self.conn.commit()

    def _commit(self) -> None:
        if self._transaction_depth == 0:
            self.conn.commit()

    @contextmanager
    def transaction(self) -> Iterator[Database]:
        """Hold the write lock for a read-modify-write sequence.

        BEGIN IMMEDIATE makes a second writer wait here, so two requests
        cannot both validate against the same stale snapshot.
        """
        if self._transaction_depth == 0:
            if self.conn.in_transaction:
                self.conn.commit()
            self.conn.execute("BEGIN IMMEDIATE")
        self._transaction_depth += 1
        try:
            yield self
        except Exception:
            self._transaction_depth -= 1
            if self._transaction_depth == 0:
                self.conn.rollback()
            raise
        self._transaction_depth -= 1
        if self._transaction_depth == 0:
            self.conn.commit()

    # ── Senders ──────────────────────────────────────────────────────────────

    def upsert_sender(self, sender: Sender) -> None:
        """Insert or update a sender's ping configuration."""
        self.conn.execute(
            "INSERT INTO senders (id, ping_time, timezone, grace_period_minutes, ping_enabled) "
            "VALUES (?, ?, ?, ?, ?) "
            "ON CONFLICT(id) DO UPDATE SET ping_time = excluded.ping_time, "
            "timezone = excluded.timezone, grace_period_minutes = excluded.grace_period_minutes, "
            "ping_enabled = excluded.ping_enabled",
            (
                sender.id,
                sender.ping_time.isoformat(timespec="minutes") if sender.ping_time else None,
                sender.timezone,
                sender.grace_period_minutes,
                sender.ping_enabled,
            ),
        )
        self._commit()

    def get_sender(self, sender_id: str) -> Sender | None:
        row = self.conn.execute(
            "SELECT * FROM senders WHERE id = ?", (sender_id,)
        ).fetchone()
        return _sender_from_row(row) if row else None

    def list_senders(self, enabled_only: bool = False) -> list[Sender]:
        """Return all senders ordered by id."""
        query = "SELECT * FROM senders"
        if enabled_only:
            query += " WHERE ping_enabled = 1"
        rows = self.conn.execute(query + " ORDER BY id").fetchall()
        return [_sender_from_row(row) for row in rows]

    # ── Pings ────────────────────────────────────────────────────────────────

    def get_ping(self, sender_id: str, day: date) -> Ping | None:
        """Get the ping for a sender's calendar day."""
        row = self.conn.execute(
            "SELECT * FROM pings WHERE sender_id = ? AND ping_date = ?",
            (sender_id, day.isoformat()),
        ).fetchone()
        return _ping_from_row(row) if row else None

    def upsert_ping(self, ping: Ping) -> Ping:
        """Insert or update the ping keyed by (sender_id, ping_date)."""
        self.conn.execute(
            "INSERT INTO pings (sender_id, ping_date, scheduled_time, deadline_time, status, "
            "completed_at, completion_method, was_late, notes) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?) "
            "ON CONFLICT(sender_id, ping_date) DO UPDATE SET "
            "scheduled_time = excluded.scheduled_time, deadline_time = excluded.deadline_time, "
            "status = excluded.status, completed_at = excluded.completed_at, "
            "completion_method = excluded.completion_method, was_late = excluded.was_late, "
            "notes = excluded.notes",
            (
                ping.sender_id,
                ping.ping_date.isoformat(),
                ping.scheduled_time.isoformat(),
                ping.deadline_time.isoformat(),
                ping.status.value,
                ping.completed_at.isoformat() if ping.completed_at else None,
                ping.completion_method.value if ping.completion_method else None,
                ping.was_late,
                ping.notes,
            ),
        )
        self._commit()
        return self.get_ping(ping.sender_id, ping.ping_date)

    def insert_ping_if_missing(self, ping: Ping) -> tuple[Ping, bool]:
        """Store `ping` unless the day already has one. Returns (stored, created)."""
        cursor = self.conn.execute(
            "INSERT INTO pings (sender_id, ping_date, scheduled_time, deadline_time, status, "
            "completion_method) VALUES (?, ?, ?, ?, ?, ?) "
            "ON CONFLICT(sender_id, ping_date) DO NOTHING",
            (
                ping.sender_id,
                ping.ping_date.isoformat(),
                ping.scheduled_time.isoformat(),
                ping.deadline_time.isoformat(),
                ping.status.value,
                ping.completion_method.value if ping.completion_method else None,
            ),
        )
        self._commit()
        return self.get_ping(ping.sender_id, ping.ping_date), cursor.rowcount == 1

    def get_ping_history(self, sender_id: str, start: date, end: date) -> list[Ping]:
        """Pings for a sender in [start, end], newest first."""
        rows = self.conn.execute(
            "SELECT * FROM pings WHERE sender_id = ? AND ping_date >= ? AND ping_date <= ? "
            "ORDER BY ping_date DESC",
            (sender_id, start.isoformat(), end.isoformat()),
        ).fetchall()
        return [_ping_from_row(row) for row in rows]

    def get_pings_by_status(self, status: PingStatus) -> list[Ping]:
        rows = self.conn.execute(
            "SELECT * FROM pings WHERE status = ? ORDER BY ping_date, sender_id",
            (status.value,),
        ).fetchall()
        return [_ping_from_row(row) for row in rows]

    def get_last_completed_at(self, sender_id: str) -> datetime | None:
        row = self.conn.execute(
            "SELECT completed_at FROM pings WHERE sender_id = ? AND completed_at IS NOT NULL "
            "ORDER BY completed_at DESC LIMIT 1",
            (sender_id,),
        ).fetchone()
        return _dt(row["completed_at"]) if row else None

    # ── Breaks ───────────────────────────────────────────────────────────────

    def insert_break(self, brk: Break) -> Break:
        cursor = self.conn.execute(
            "INSERT INTO breaks (sender_id, start_date, end_date, status, notes, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (
                brk.sender_id,
                brk.start_date.isoformat(),
                brk.end_date.isoformat(),
                brk.status.value,
                brk.notes,
                brk.created_at.isoformat() if brk.created_at else None,
            ),
        )
        self._commit()
        return self.get_break(cursor.lastrowid)

    def update_break(self, brk: Break) -> None:
        """Persist status, dates and notes of an existing break."""
        self.conn.execute(
            "UPDATE breaks SET start_date = ?, end_date = ?, status = ?, notes = ? WHERE id = ?",
            (brk.start_date.isoformat(), brk.end_date.isoformat(), brk.status.value, brk.notes, brk.id),
        )
        self._commit()

    def get_break(self, break_id: int) -> Break | None:
        row = self.conn.execute(
            "SELECT * FROM breaks WHERE id = ?", (break_id,)
        ).fetchone()
        return _break_from_row(row) if row else None

    def get_breaks(self, sender_id: str, statuses: Iterable[BreakStatus] | None = None) -> list[Break]:
        """Breaks for a sender ordered by start date, optionally filtered by stored status."""
        query = "SELECT * FROM breaks WHERE sender_id = ?"
        params: list[str] = [sender_id]
        if statuses is not None:
            values = [s.value for s in statuses]
            query += f" AND status IN ({', '.join(['?'] * len(values))})"
            params.extend(values)
        rows = self.conn.execute(query + " ORDER BY start_date, id", params).fetchall()
        return [_break_from_row(row) for row in rows]

    # ── Notification preferences ─────────────────────────────────────────────

    def get_preferences(self, user_id: str) -> NotificationPreferences:
        """Stored preferences, or the defaults if the user never changed any."""
        row = self.conn.execute(
            "SELECT data FROM notification_preferences WHERE user_id = ?", (user_id,)
        ).fetchone()
        if row is None:
            return NotificationPreferences()
        return NotificationPreferences.from_dict(json.loads(row["data"]))

    def save_preferences(self, user_id: str, prefs: NotificationPreferences) -> None:
        self.conn.execute(
            "INSERT INTO notification_preferences (user_id, data) VALUES (?, ?) "
            "ON CONFLICT(user_id) DO UPDATE SET data = excluded.data",
            (user_id, json.dumps(prefs.to_dict())),
        )
        self._commit()

    def close(self) -> None:
        """Close the database connection."""
        self.conn.close()
