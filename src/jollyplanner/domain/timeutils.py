"""Time and calendar helpers for the weekly planner.

Times of day are handled as minute offsets from midnight. Booking times are
stored as zero-padded 24-hour "HH:MM" strings and recurring working hours as
"HH:MM - HH:MM" ranges.
"""

import re
from datetime import date, datetime, timedelta
from typing import Union

from jollyplanner.errors import ParseError

WEEKDAY_NAMES = (
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
)

_TIME_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")
_RANGE_RE = re.compile(r"^\s*(\S+)\s*-\s*(\S+)\s*$")

DateLike = Union[date, datetime, str]


def to_date(value: DateLike) -> date:
    """Normalize a date, datetime or ISO "YYYY-MM-DD" string to a date.

    Datetimes are truncated to their calendar day.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError:
        raise ParseError(f"Invalid ISO date: {value!r}", value=str(value))


def date_key(value: DateLike) -> str:
    """ISO date string used as the per-day key of a schedule."""
    return to_date(value).isoformat()


def week_dates(reference: DateLike) -> list[date]:
    """Monday to Sunday of the ISO week containing the reference date.

    A Sunday belongs to the week that started on the preceding Monday.
    """
    day = to_date(reference)
    monday = day - timedelta(days=day.weekday())
    return [monday + timedelta(days=i) for i in range(7)]


def weekday_name(value: DateLike) -> str:
    """English weekday name of a date ("Monday" .. "Sunday")."""
    return WEEKDAY_NAMES[to_date(value).weekday()]


def parse_time(value: str) -> int:
    """Parse a zero-padded 24-hour "HH:MM" string into minutes from midnight.

    Raises:
        ParseError: If the string is not a valid time.
    """
    match = _TIME_RE.match(value.strip()) if isinstance(value, str) else None
    if not match:
        raise ParseError(f"Invalid time {value!r}, expected HH:MM", value=str(value))
    hours, minutes = match.groups()
    return int(hours) * 60 + int(minutes)


def parse_hours_range(value: str) -> tuple[int, int]:
    """Parse "HH:MM - HH:MM" into (start_minutes, end_minutes).

    Raises:
        ParseError: If the separator is missing or either half is invalid.
    """
    match = _RANGE_RE.match(value) if isinstance(value, str) else None
    if not match:
        raise ParseError(
            f"Invalid hours range {value!r}, expected 'HH:MM - HH:MM'",
            value=str(value),
        )
    start, end = match.groups()
    try:
        return parse_time(start), parse_time(end)
    except ParseError:
        raise ParseError(
            f"Invalid hours range {value!r}, expected 'HH:MM - HH:MM'",
            value=str(value),
        )


def split_hours_range(value: str) -> tuple[str, str]:
    """Parse an hours range and return its normalized ("HH:MM", "HH:MM") halves."""
    start, end = parse_hours_range(value)
    return format_minutes(start), format_minutes(end)


def format_minutes(minutes: int) -> str:
    """Format minutes from midnight as "HH:MM"."""
    hours, mins = divmod(minutes, 60)
    return f"{hours:02d}:{mins:02d}"


def intervals_overlap(a_start: int, a_end: int, b_start: int, b_end: int) -> bool:
    """Check whether two half-open intervals [start, end) overlap.

    Zero-length or inverted intervals never overlap anything.
    """
    if a_end <= a_start or b_end <= b_start:
        return False
    return a_start < b_end and b_start < a_end


def duration_hours(start: int, end: int) -> float:
    """Length of [start, end) in hours; 0 for zero-length or inverted intervals."""
    if end <= start:
        return 0.0
    return (end - start) / 60


def hours_between(start_time: str, end_time: str) -> float:
    """Hours between two "HH:MM" strings, 0 if either cannot be parsed."""
    try:
        return duration_hours(parse_time(start_time), parse_time(end_time))
    except ParseError:
        return 0.0
