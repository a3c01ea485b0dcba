"""Clock and calendar helpers for safeping.

Everything that needs "now" or a calendar day goes through this module so
tests can pin time with FixedClock.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from safeping.errors import InvalidConfiguration


class Clock:
    """Wall clock returning timezone-aware UTC instants."""

    def now(self) -> datetime:
        return datetime.now(tz=timezone.utc)


class FixedClock(Clock):
    """Clock pinned to a given instant; only moves when told to."""

    def __init__(self, instant: datetime) -> None:
        self._instant = _as_aware(instant)

    def now(self) -> datetime:
        return self._instant

    def set(self, instant: datetime) -> None:
        self._instant = _as_aware(instant)

    def advance(self, **kwargs: float) -> datetime:
        """Move forward by timedelta(**kwargs) and return the new instant."""
        self._instant = self._instant + timedelta(**kwargs)
        return self._instant


def _as_aware(instant: datetime) -> datetime:
    # Naive instants are taken to be UTC
    if instant.tzinfo is None:
        return instant.replace(tzinfo=timezone.utc)
    return instant


def get_zone(name: str | None) -> ZoneInfo:
    """Resolve an IANA time zone name. Raises InvalidConfiguration if unknown."""
    if not name:
        raise InvalidConfiguration("Time zone is not set")
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise InvalidConfiguration(f"Unknown time zone: {name!r}") from exc


def start_of_day(instant: datetime, tz_name: str) -> date:
    """Calendar date of `instant` as seen in `tz_name`."""
    return _as_aware(instant).astimezone(get_zone(tz_name)).date()


def local_time(instant: datetime, tz_name: str) -> time:
    """Time of day of `instant` in `tz_name` (no tzinfo attached)."""
    return _as_aware(instant).astimezone(get_zone(tz_name)).time()


def add_days(d: date, n: int) -> date:
    return d + timedelta(days=n)


def days_between(a: date, b: date) -> int:
    """Signed number of calendar days from a to b."""
    return (b - a).days


def at_local_time(d: date, t: time, tz_name: str) -> datetime:
    """Aware datetime for wall time `t` on day `d` in `tz_name`."""
    return datetime.combine(d, t.replace(tzinfo=None), tzinfo=get_zone(tz_name))


def add_duration(instant: datetime, delta: timedelta) -> datetime:
    """Add an absolute duration, ignoring wall-clock jumps (DST)."""
    aware = _as_aware(instant)
    return (aware.astimezone(timezone.utc) + delta).astimezone(aware.tzinfo)
