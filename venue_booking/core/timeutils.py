from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo


def as_utc(value: datetime) -> datetime:
    """Normalise to an aware UTC datetime; naive input is read as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def overlaps(start1: datetime, end1: datetime, start2: datetime, end2: datetime) -> bool:
    # Half-open: touching intervals do not overlap
    return start1 < end2 and end1 > start2


def expand(start: datetime, end: datetime, minutes: int) -> tuple[datetime, datetime]:
    pad = timedelta(minutes=minutes)
    return start - pad, end + pad


def day_of_week(local: datetime | date) -> int:
    """0 = Sunday ... 6 = Saturday."""
    return (local.weekday() + 1) % 7


def local_bounds(day: date, open_time: time, close_time: time, tz: ZoneInfo) -> tuple[datetime, datetime]:
    """Absolute UTC bounds of a wall-clock window on ``day`` in ``tz``."""
    start_local = datetime.combine(day, open_time).replace(tzinfo=tz)
    end_local = datetime.combine(day, close_time).replace(tzinfo=tz)
    return start_local.astimezone(timezone.utc), end_local.astimezone(timezone.utc)


def duration_minutes(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / 60


def fmt_hhmm(value: time) -> str:
    return value.strftime("%H:%M")
