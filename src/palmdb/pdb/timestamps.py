"""
Palm OS Timestamp Conversion
============================

Palm OS stores dates as unsigned 32-bit counts of seconds since
midnight, January 1st 1904, in the device's local time. This module
converts between that representation and naive ``datetime`` values.

Aware datetimes are converted to UTC before being stored, since the
file format has no notion of a time zone.

Reference
---------
- Palm File Format Specification, "Database Header"
"""

from datetime import datetime, timedelta, timezone
from typing import Optional


# Start of the Palm OS epoch
PALM_EPOCH = datetime(1904, 1, 1)

# Largest value that fits the on-disk field
MAX_PALM_SECONDS = 0xFFFFFFFF


def from_palm(seconds: int) -> datetime:
    """
    Convert Palm epoch seconds to a naive datetime.

    Args:
        seconds: Seconds since 1904-01-01 00:00:00

    Returns:
        The corresponding naive datetime

    Example:
        >>> from_palm(0)
        datetime.datetime(1904, 1, 1, 0, 0)
    """
    return PALM_EPOCH + timedelta(seconds=seconds)


def to_palm(value: datetime) -> int:
    """
    Convert a datetime to Palm epoch seconds.

    Args:
        value: The datetime to convert (naive values are stored as-is)

    Returns:
        Whole seconds since 1904-01-01 00:00:00

    Raises:
        ValueError: If the datetime cannot be represented in 32 bits
    """
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)

    seconds = int((value - PALM_EPOCH).total_seconds())
    if not 0 <= seconds <= MAX_PALM_SECONDS:
        raise ValueError(f"{value.isoformat()} is outside the Palm OS date range")
    return seconds


def from_palm_optional(seconds: int) -> Optional[datetime]:
    """Like from_palm(), but a zero field ("never") becomes None."""
    if seconds == 0:
        return None
    return from_palm(seconds)
