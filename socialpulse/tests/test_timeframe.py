from datetime import datetime, timezone, timedelta

import pytest

from socialpulse.services.timeframe import (
    parse_timeframe, as_utc, window_start, MAX_TIMEFRAME_HOURS, TimeframeTooLargeError,
)

@pytest.mark.parametrize("text,expected", [
    ("12h", 12),
    ("30d", 720),
    ("2w", 336),
    ("last 3d please", 72),
])
def test_parse_timeframe_units(text, expected):
    assert parse_timeframe(text, 1) == expected

@pytest.mark.parametrize("text", ["", None, "90m", "soon"])
def test_parse_timeframe_falls_back_to_caller_default(text):
    assert parse_timeframe(text, 168) == 168
    assert parse_timeframe(text, 24) == 24

def test_as_utc_treats_naive_values_as_utc():
    naive = datetime(2026, 1, 1, 10, 0)
    assert as_utc(naive) == datetime(2026, 1, 1, 10, 0, tzinfo=timezone.utc)

    eastern = datetime(2026, 1, 1, 5, 0, tzinfo=timezone(timedelta(hours=-5)))
    assert as_utc(eastern).hour == 10

@pytest.mark.parametrize("text", ["366d", "52w", "8784h"])
def test_parse_timeframe_accepts_up_to_a_year(text):
    assert parse_timeframe(text, 1) <= MAX_TIMEFRAME_HOURS

@pytest.mark.parametrize("text", ["367d", "99999w", "1000000h"])
def test_parse_timeframe_rejects_more_than_a_year(text):
    with pytest.raises(TimeframeTooLargeError):
        parse_timeframe(text, 1)

def test_window_start():
    now = datetime(2026, 10, 14, 12, 0, tzinfo=timezone.utc)
    assert window_start("2d", 1, now) == datetime(2026, 10, 12, 12, 0, tzinfo=timezone.utc)
    assert window_start("whenever", 3, now) == datetime(2026, 10, 14, 9, 0, tzinfo=timezone.utc)
