# backend/tests/unit/core/test_timezone_utils.py
from datetime import datetime, time, timedelta, timezone

from app.core.timezone_utils import (
    MINUTES_PER_DAY,
    day_of_week,
    ensure_utc,
    isoformat_utc,
    minutes_of_day,
    time_to_minutes,
)


def test_ensure_utc_tags_naive_values():
    value = ensure_utc(datetime(2030, 1, 7, 10, 0))
    assert value.tzinfo == timezone.utc
    assert value.hour == 10


def test_ensure_utc_converts_offsets():
    value = ensure_utc(datetime(2030, 1, 7, 12, 0, tzinfo=timezone(timedelta(hours=2))))
    assert value == datetime(2030, 1, 7, 10, 0, tzinfo=timezone.utc)
    assert value.tzinfo == timezone.utc


def test_day_of_week_is_sunday_based():
    assert day_of_week(datetime(2030, 1, 6, 12, 0, tzinfo=timezone.utc)) == 0  # Sunday
    assert day_of_week(datetime(2030, 1, 7, 12, 0, tzinfo=timezone.utc)) == 1  # Monday
    assert day_of_week(datetime(2030, 1, 12, 12, 0, tzinfo=timezone.utc)) == 6  # Saturday


def test_day_of_week_uses_schedule_timezone():
    # Monday 03:00 UTC is still Sunday evening in New York
    instant = datetime(2030, 1, 7, 3, 0, tzinfo=timezone.utc)
    assert day_of_week(instant, "America/New_York") == 0


def test_minutes_of_day():
    instant = datetime(2030, 1, 7, 9, 30, tzinfo=timezone.utc)
    assert minutes_of_day(instant) == 570
    assert time_to_minutes(time(17, 45)) == 17 * 60 + 45


def test_minutes_past_midnight_relative_to_anchor():
    start = datetime(2030, 1, 7, 23, 0, tzinfo=timezone.utc)
    end = datetime(2030, 1, 8, 1, 0, tzinfo=timezone.utc)
    assert minutes_of_day(end, anchor=start) == MINUTES_PER_DAY + 60


def test_isoformat_utc_drops_microseconds_and_offset():
    value = datetime(2030, 1, 7, 12, 0, 5, 123456, tzinfo=timezone(timedelta(hours=2)))
    assert isoformat_utc(value) == "2030-01-07T10:00:05+00:00"
