"""Helpers for "HH:MM" wall-clock strings."""

import datetime as dt
import re

from clinic_os.scheduling.errors import SchedulingValidationError

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
TIME_PATTERN = re.compile(r"^\d{2}:\d{2}$")

# Stores may report single-digit hours ("9:00").
_LENIENT_TIME = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")

MINUTES_PER_DAY = 24 * 60


def normalize_time(value: str) -> str:
    """Return *value* as a zero-padded "HH:MM" string."""
    m = _LENIENT_TIME.match(value.strip()) if isinstance(value, str) else None
    if not m:
        raise SchedulingValidationError(f"Invalid time {value!r}, expected HH:MM")
    return f"{int(m.group(1)):02d}:{m.group(2)}"


def to_minutes(value: str) -> int:
    """Convert "HH:MM" to minutes from midnight."""
    hour, minute = normalize_time(value).split(":")
    return int(hour) * 60 + int(minute)


def from_minutes(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def duration_between(start: str, end: str) -> int:
    """Minutes from *start* to *end* (negative when end is earlier)."""
    return to_minutes(end) - to_minutes(start)


def add_minutes(value: str, minutes: int) -> str:
    """Add *minutes* to a time, wrapping around midnight."""
    return from_minutes((to_minutes(value) + minutes) % MINUTES_PER_DAY)


def format_time_12h(value: str) -> str:
    """Format "14:30" as "2:30 PM"."""
    total = to_minutes(value)
    hour, minute = divmod(total, 60)
    period = "PM" if hour >= 12 else "AM"
    display_hour = hour % 12 or 12
    return f"{display_hour}:{minute:02d} {period}"


def parse_date(value: str, field: str = "date") -> dt.date:
    """Parse a "YYYY-MM-DD" string, rejecting impossible calendar days."""
    if not isinstance(value, str) or not DATE_PATTERN.match(value):
        raise SchedulingValidationError(f"Invalid {field} {value!r}, expected YYYY-MM-DD")
    try:
        return dt.date.fromisoformat(value)
    except ValueError as e:
        raise SchedulingValidationError(f"Invalid {field} {value!r}, no such calendar day") from e


def validate_date_string(value: str, field: str = "date") -> str:
    parse_date(value, field)
    return value


def validate_time_string(value: str, field: str = "time") -> str:
    if not isinstance(value, str) or not TIME_PATTERN.match(value):
        raise SchedulingValidationError(f"Invalid {field} {value!r}, expected HH:MM")
    hour, minute = (int(p) for p in value.split(":"))
    if hour > 23 or minute > 59:
        raise SchedulingValidationError(f"Invalid {field} {value!r}, out of range")
    return value
