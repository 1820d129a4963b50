"""
Tests for role time display helpers.
"""

from datetime import date

import pytest

from volunteer_hub.utils import time_display


@pytest.mark.parametrize(
    "start,end,expected",
    [
        ("00:00", "00:00", True),
        ("00:00:00", "00:00:00", True),
        ("flexible", "17:00", True),
        ("Flexible", None, True),
        ("07:00", "09:00", False),
        ("00:00", "09:00", False),
        (None, None, False),
    ],
)
def test_is_flexible_time(start, end, expected):
    assert time_display.is_flexible_time(start, end) is expected


def test_format_time_range():
    assert time_display.format_time_range("07:00", "13:30") == "7:00 AM – 1:30 PM"
    assert time_display.format_time_range("00:00", "00:00") == "Flexible"
    assert time_display.format_time_range(None, None) == "TBD"
    assert time_display.format_time_range("07:00", None) == "TBD"


def test_format_time_handles_noon_and_midnight():
    assert time_display.format_time("12:05") == "12:05 PM"
    assert time_display.format_time("00:15:00") == "12:15 AM"
    assert time_display.format_time("") == ""


def test_calculate_duration():
    assert time_display.calculate_duration("07:00", "10:30") == 3.5
    assert time_display.calculate_duration("00:00", "00:00") is None
    assert time_display.calculate_duration("07:00", None) is None


def test_normalize_role_times():
    assert time_display.normalize_role_times("flexible", "flexible") == ("00:00", "00:00")
    assert time_display.normalize_role_times("08:00", "12:00") == ("08:00", "12:00")


def test_format_event_date_stays_on_calendar_day():
    assert time_display.format_event_date(date(2026, 4, 19)) == "Sun, Apr 19"
    assert time_display.format_event_date("2026-04-19", "long") == "Sunday, April 19, 2026"
    assert time_display.format_event_date(None) == "TBD"
    assert time_display.format_event_date("soon") == "TBD"
