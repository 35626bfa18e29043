"""
Datetime utilities for consistent timezone handling across the application.

All business logic runs in the clinic's local time. Booking start/end values
are stored as naive datetimes that represent clinic local time; audit
timestamps are timezone-aware in the clinic's fixed UTC offset.

Wall-clock values ("HH:MM") are always parsed into ``datetime.time`` and
combined with a concrete date before they are compared.
"""

import logging
import re
from datetime import datetime, timezone, timedelta, date, time

from core.config import CLINIC_UTC_OFFSET_HOURS

logger = logging.getLogger(__name__)

# Clinic timezone constant (fixed offset from UTC)
CLINIC_TZ = timezone(timedelta(hours=CLINIC_UTC_OFFSET_HOURS))

# Strict 24-hour "HH:MM" (00:00 .. 23:59)
WALL_TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def clinic_now() -> datetime:
    """
    Get current clinic datetime.

    Returns:
        Current datetime with the clinic timezone
    """
    return datetime.now(CLINIC_TZ)


def to_clinic_naive(dt: datetime) -> datetime:
    """
    Convert a datetime to naive clinic local time.

    Naive input is assumed to already be clinic local time and is returned
    unchanged; aware input is converted to the clinic timezone first.
    """
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(CLINIC_TZ).replace(tzinfo=None)


def parse_wall_time(value: str) -> time:
    """
    Parse a strict 24-hour "HH:MM" wall-clock string.

    Args:
        value: Time string such as "09:00" or "17:30"

    Returns:
        time object

    Raises:
        ValueError: If the string is not a valid "HH:MM" value
    """
    if not isinstance(value, str) or not WALL_TIME_PATTERN.match(value.strip()):
        raise ValueError(f"Invalid time format (expected HH:MM): {value!r}")
    hours, minutes = value.strip().split(":")
    return time(int(hours), int(minutes))


def format_wall_time(value: time) -> str:
    """Format a time as "HH:MM"."""
    return value.strftime("%H:%M")


def combine(target_date: date, wall_time: time) -> datetime:
    """Anchor a wall-clock time to a concrete date (naive clinic local time)."""
    return datetime.combine(target_date, wall_time)


def date_range(start_date: date, end_date: date):
    """Yield every date from start_date to end_date inclusive."""
    current = start_date
    while current <= end_date:
        yield current
        current += timedelta(days=1)
