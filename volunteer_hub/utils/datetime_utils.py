"""
Datetime utility functions.
Provides replacements for deprecated datetime functions.
"""

from datetime import datetime
from typing import Optional, Union
import pytz


def utcnow() -> datetime:
    """
    Get current UTC datetime using pytz.UTC.

    Returns:
        Current UTC datetime with pytz timezone information
    """
    return datetime.now(pytz.UTC)


def parse_iso_datetime(value: Union[str, datetime, None]) -> Optional[datetime]:
    """
    Parse an ISO 8601 timestamp into an aware UTC datetime.

    Accepts the trailing "Z" used by the auth provider. Naive values are
    assumed to be UTC.

    Args:
        value: ISO string, datetime, or None

    Returns:
        Aware datetime in UTC, or None if value is empty
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = pytz.UTC.localize(parsed)
    return parsed.astimezone(pytz.UTC)
