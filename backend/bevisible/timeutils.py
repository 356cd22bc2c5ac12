"""Timezone helpers. All stored timestamps are UTC."""

from datetime import date, datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on round-trip)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def hours_between(earlier: Optional[datetime], later: datetime) -> float:
    """Hours from `earlier` to `later`; infinity when `earlier` is unknown."""
    if earlier is None:
        return float("inf")
    return (as_utc(later) - as_utc(earlier)).total_seconds() / 3600.0


def local_today(tz_name: str, now: Optional[datetime] = None) -> date:
    now = now or utcnow()
    return as_utc(now).astimezone(ZoneInfo(tz_name)).date()


def local_tomorrow(tz_name: str, now: Optional[datetime] = None) -> date:
    return local_today(tz_name, now) + timedelta(days=1)
