"""
Timezone utilities for the reservation engine.

All persisted instants are UTC. Staff working hours are wall-clock times in the
availability timezone, so weekday and minute-of-day are computed there.
"""

from datetime import datetime, time, timezone
from typing import Optional

import pytz

from .config import settings

MINUTES_PER_DAY = 24 * 60


def ensure_utc(value: datetime) -> datetime:
    """
    Normalize a datetime to timezone-aware UTC.

    Naive values are assumed to already be UTC (SQLite hands them back that way).
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def get_availability_timezone(name: Optional[str] = None) -> pytz.BaseTzInfo:
    """Return the timezone staff schedules are expressed in."""
    return pytz.timezone(name or settings.availability_timezone)


def to_local(value: datetime, tz_name: Optional[str] = None) -> datetime:
    """Convert an instant into the availability timezone."""
    return ensure_utc(value).astimezone(get_availability_timezone(tz_name))


def day_of_week(value: datetime, tz_name: Optional[str] = None) -> int:
    """
    Weekday of an instant in the availability timezone, 0 = Sunday.

    Python's weekday() is Monday-based; schedules are stored Sunday-based.
    """
    return (to_local(value, tz_name).weekday() + 1) % 7


def time_to_minutes(value: time) -> int:
    return value.hour * 60 + value.minute


def minutes_of_day(value: datetime, anchor: Optional[datetime] = None, tz_name: Optional[str] = None) -> int:
    """
    Minutes since local midnight of ``anchor``'s day (defaults to ``value``'s own day).

    An instant past midnight relative to the anchor day yields a value above
    MINUTES_PER_DAY, which is how bookings spanning midnight fail containment.
    """
    local_value = to_local(value, tz_name)
    local_anchor = to_local(anchor, tz_name) if anchor is not None else local_value
    day_offset = (local_value.date() - local_anchor.date()).days
    return day_offset * MINUTES_PER_DAY + local_value.hour * 60 + local_value.minute


def isoformat_utc(value: datetime) -> str:
    """Stable UTC ISO-8601 rendering with second precision."""
    return ensure_utc(value).replace(microsecond=0).isoformat()
