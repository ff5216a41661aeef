"""Shared constants and builders for reservation engine tests."""

from datetime import datetime, timedelta, timezone

TENANT_ID = "tenant-1"
OTHER_TENANT_ID = "tenant-2"

# 2030-01-07 is a Monday
BOOKING_DAY = datetime(2030, 1, 7, tzinfo=timezone.utc)
NOW = datetime(2030, 1, 1, 9, 0, tzinfo=timezone.utc)


def at(hour: int, minute: int = 0, day: datetime = BOOKING_DAY) -> datetime:
    """UTC instant on the booking day."""
    return day.replace(hour=hour, minute=minute)


class FrozenClock:
    """Clock whose time only moves when a test moves it."""

    def __init__(self, now: datetime = NOW):
        self._now = now

    def now(self) -> datetime:
        return self._now

    def advance(self, **kwargs) -> datetime:
        self._now = self._now + timedelta(**kwargs)
        return self._now
