"""Civil-time helpers for the fixed Europe/Moscow wall clock.

Moscow has been on a constant UTC+3 offset since 2014, so conversion is plain
offset arithmetic rather than a tz-database lookup. If the zone ever observes
DST again, `to_absolute` / `to_civil` must switch to ``zoneinfo``.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import NamedTuple

OFFSET_HOURS = 3
CIVIL_TZ = timezone(timedelta(hours=OFFSET_HOURS), "MSK")
ZONE_NAME = "Europe/Moscow"


class CivilDateTime(NamedTuple):
    year: int
    month: int
    day: int
    hour: int
    minute: int

    @property
    def date(self) -> date:
        return date(self.year, self.month, self.day)

    @property
    def weekday(self) -> int:
        """Monday is 0, like ``date.weekday()``."""
        return self.date.weekday()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_civil(instant: datetime) -> CivilDateTime:
    if instant.tzinfo is None:
        raise ValueError("instant must be timezone-aware")
    local = instant.astimezone(timezone.utc) + timedelta(hours=OFFSET_HOURS)
    return CivilDateTime(local.year, local.month, local.day, local.hour, local.minute)


def civil_now(now: datetime | None = None) -> CivilDateTime:
    return to_civil(now or utc_now())


def to_absolute(year: int, month: int, day: int, hour: int, minute: int) -> datetime:
    """Convert a civil wall-clock point to an aware UTC instant.

    Raises ``ValueError`` for dates that do not exist (31.02 etc).
    """
    wall = datetime(year, month, day, hour, minute, tzinfo=timezone.utc)
    return wall - timedelta(hours=OFFSET_HOURS)


def add_civil_days(civil_date: date, n: int) -> date:
    return civil_date + timedelta(days=n)


def day_key(instant: datetime) -> str:
    return to_civil(instant).date.isoformat()


def range_for_day(key: str) -> tuple[datetime, datetime]:
    """Half-open ``[start, end)`` UTC bounds of the civil day ``YYYY-MM-DD``."""
    day = date.fromisoformat(key)
    start = to_absolute(day.year, day.month, day.day, 0, 0)
    return start, start + timedelta(days=1)


def today_range(now: datetime | None = None) -> tuple[datetime, datetime]:
    return range_for_day(day_key(now or utc_now()))


def format_time(instant: datetime) -> str:
    c = to_civil(instant)
    return f"{c.hour:02d}:{c.minute:02d}"


def format_date(instant: datetime) -> str:
    c = to_civil(instant)
    return f"{c.day:02d}.{c.month:02d}"


def format_date_time(instant: datetime) -> str:
    return f"{format_date(instant)} {format_time(instant)}"