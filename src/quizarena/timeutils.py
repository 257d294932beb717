"""Calendar helpers shared by streaks, daily limits and competition windows.

All calendar arithmetic is done in UTC. SQLite hands back naive
datetimes, so values read from the database go through ``ensure_utc``
before being compared with ``utcnow()``.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Attach UTC to naive datetimes, convert aware ones to UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def utc_date(dt: datetime) -> date:
    """Calendar date of dt in UTC."""
    return ensure_utc(dt).date()


def day_bounds(now: datetime) -> tuple[datetime, datetime]:
    """Get [00:00, next 00:00) UTC for the calendar day containing now."""
    start = datetime.combine(utc_date(now), time.min, tzinfo=timezone.utc)
    return start, start + timedelta(days=1)


def within_window(now: datetime, start: datetime, end: datetime) -> bool:
    """True iff start <= now <= end (inclusive on both ends)."""
    return ensure_utc(start) <= ensure_utc(now) <= ensure_utc(end)
