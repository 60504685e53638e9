"""Canonical calendar-day helpers."""

from datetime import date, datetime, timedelta, timezone

import pytz

from app.utils import time_utils


def test_calendar_day_uses_canonical_zone_not_caller_offset():
    # 23:30 in New York on the 7th is already the 8th in UTC
    new_york = pytz.timezone("America/New_York")
    local = new_york.localize(datetime(2026, 3, 7, 23, 30))
    assert time_utils.calendar_day(local) == date(2026, 3, 8)


def test_naive_datetimes_are_utc():
    assert time_utils.calendar_day(datetime(2026, 3, 7, 23, 59)) == date(2026, 3, 7)


def test_days_between():
    assert time_utils.days_between(None, date(2026, 3, 7)) is None
    assert time_utils.days_between(date(2026, 3, 7), date(2026, 3, 7)) == 0
    assert time_utils.days_between(date(2026, 2, 28), date(2026, 3, 1)) == 1
    assert time_utils.days_between(date(2026, 3, 1), date(2026, 3, 7)) == 6


def test_next_day_start_is_next_midnight():
    now = datetime(2026, 3, 7, 15, 45, tzinfo=timezone.utc)
    start = time_utils.next_day_start(now)
    assert start.date() == date(2026, 3, 8)
    assert (start.hour, start.minute) == (0, 0)
    assert start - now == timedelta(hours=8, minutes=15)


def test_day_key():
    assert time_utils.day_key(date(2026, 1, 5)) == "2026-01-05"
