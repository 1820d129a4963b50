"""
Time display helpers for volunteer roles.

Roles with flexible times are stored as start_time "00:00", end_time "00:00".
Event dates are displayed in Pacific time throughout the app.
"""

import re
from datetime import date, datetime
from typing import Optional, Union
import pytz

FLEXIBLE_START = "00:00"
FLEXIBLE_END = "00:00"
PACIFIC_TZ = pytz.timezone("America/Los_Angeles")
TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d(:[0-5]\d)?$")


def is_valid_time(value: Optional[str]) -> bool:
    """True for "HH:MM" or "HH:MM:SS" on a 24-hour clock."""
    if value is None:
        return False
    return bool(TIME_PATTERN.match(str(value).strip()))


def _normalize_time(value: Optional[str]) -> str:
    if value is None:
        return ""
    s = str(value).strip()
    return "00:00" if s.startswith("00:00") else s


def is_flexible_time(start_time: Optional[str], end_time: Optional[str]) -> bool:
    """True for 00:00/00:00, or when either side is the literal "flexible"."""
    start = str(start_time or "").strip().lower()
    end = str(end_time or "").strip().lower()
    if start == "flexible" or end == "flexible":
        return True
    return _normalize_time(start_time) == FLEXIBLE_START and _normalize_time(end_time) == FLEXIBLE_END


def normalize_role_times(start_time: Optional[str], end_time: Optional[str]) -> tuple:
    """Collapse any flexible spelling to the stored sentinel pair."""
    if is_flexible_time(start_time, end_time):
        return FLEXIBLE_START, FLEXIBLE_END
    return start_time, end_time


def format_time(value: Optional[str]) -> str:
    """Format "HH:MM" or "HH:MM:SS" as "7:00 AM"."""
    if not value:
        return ""
    part = str(value).strip()[:5]
    pieces = part.split(":")
    try:
        hour = int(pieces[0])
    except ValueError:
        hour = 0
    try:
        minute = int(pieces[1]) if len(pieces) > 1 else 0
    except ValueError:
        minute = 0
    ampm = "PM" if hour >= 12 else "AM"
    display_hour = hour % 12 or 12
    return f"{display_hour}:{minute:02d} {ampm}"


def format_time_range(start_time: Optional[str], end_time: Optional[str]) -> str:
    """Return TBD when no times are set, Flexible for the sentinel, else a 12-hour range."""
    if not start_time and not end_time:
        return "TBD"
    if is_flexible_time(start_time, end_time):
        return "Flexible"
    if not start_time or not end_time:
        return "TBD"
    return f"{format_time(start_time)} – {format_time(end_time)}"


def calculate_duration(start_time: Optional[str], end_time: Optional[str]) -> Optional[float]:
    """Duration in hours, or None if flexible or unset."""
    if not start_time or not end_time:
        return None
    if is_flexible_time(start_time, end_time):
        return None
    start = datetime.strptime(_normalize_time(start_time)[:5], "%H:%M")
    end = datetime.strptime(_normalize_time(end_time)[:5], "%H:%M")
    return (end - start).total_seconds() / 3600


def format_event_date(value: Union[str, date, None], style: str = "short") -> str:
    """
    Format an event date for display in Pacific time.

    style: 'short' => "Sun, Apr 19"  |  'long' => "Sunday, April 19, 2026"
    """
    if value is None:
        return "TBD"
    if isinstance(value, str):
        try:
            value = datetime.strptime(value.strip(), "%Y-%m-%d").date()
        except ValueError:
            return "TBD"
    # Noon UTC keeps the calendar day stable after conversion
    noon_utc = pytz.UTC.localize(datetime(value.year, value.month, value.day, 12, 0))
    local = noon_utc.astimezone(PACIFIC_TZ)
    if style == "long":
        return f"{local.strftime('%A, %B')} {local.day}, {local.year}"
    return f"{local.strftime('%a, %b')} {local.day}"
