"""Business hours parsing - turns "9am - 5pm" style spans into minute offsets"""

import re
from functools import lru_cache
from typing import Optional

from ...models import WEEKDAYS

_TWELVE_HOUR = re.compile(r"^(\d{1,2})(?::(\d{2}))?\s*(am|pm)$")
_TWENTY_FOUR_HOUR = re.compile(r"^(\d{1,2})(?::(\d{2}))?$")

# Used when no business hours have been stored yet
DEFAULT_BUSINESS_HOURS: dict[str, str] = {
    "monday": "7am - 5pm",
    "tuesday": "9am - 5pm",
    "wednesday": "7am - 5pm",
    "thursday": "9am - 6pm",
    "friday": "8am - 5pm",
    "saturday": "9am - 5pm",
    "sunday": "9am - 5pm",
}


def parse_time_to_minutes(value: str) -> Optional[int]:
    """
    Convert a single time of day to minutes from midnight.

    Accepts 12-hour ("9am", "5:30 pm", "12am" -> 0, "12pm" -> 720) and
    24-hour ("09:00", "17") forms. Returns None when the value is malformed.
    """
    text = value.strip().lower()

    match = _TWELVE_HOUR.match(text)
    if match:
        hour = int(match.group(1))
        minute = int(match.group(2) or 0)
        if hour > 12 or minute > 59:
            return None
        if hour == 12:
            hour = 0
        if match.group(3) == "pm":
            hour += 12
        return hour * 60 + minute

    match = _TWENTY_FOUR_HOUR.match(text)
    if match:
        hour = int(match.group(1))
        minute = int(match.group(2) or 0)
        if hour > 23 or minute > 59:
            return None
        return hour * 60 + minute

    return None


@lru_cache(maxsize=256)
def parse_hours_span(span: str) -> Optional[tuple[int, int]]:
    """
    Parse an "open - close" span into (open_minutes, close_minutes).

    Returns None unless the span splits on "-" into exactly two valid times.
    """
    parts = [p.strip() for p in span.split("-")]
    if len(parts) != 2:
        return None

    open_minutes = parse_time_to_minutes(parts[0])
    close_minutes = parse_time_to_minutes(parts[1])
    if open_minutes is None or close_minutes is None:
        return None
    return open_minutes, close_minutes


def format_span(open_time: str, close_time: str) -> str:
    return f"{open_time.strip()} - {close_time.strip()}"


def weekday_name(day) -> str:
    """Lowercase English weekday for a date, e.g. "monday" """
    return WEEKDAYS[day.weekday()]


def parsed_hours_table(hours: dict[str, str]) -> dict[str, dict]:
    """Parsed view of a weekday -> span table; unparseable days are omitted"""
    parsed = {}
    for day, span in hours.items():
        result = parse_hours_span(span)
        if result is None:
            continue
        parsed[day.lower()] = {"raw": span, "startMinutes": result[0], "endMinutes": result[1]}
    return parsed
