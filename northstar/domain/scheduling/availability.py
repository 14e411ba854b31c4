"""
Availability computation

Pure function over a date, the business hours table and the known busy
intervals. No database or network access happens here.
"""

from collections.abc import Iterable, Mapping
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Optional

from .hours import parse_hours_span, weekday_name
from .schemas import AvailabilityResponse, Booking, ExternalBusyInterval, TimeSlot


def as_aware(value: datetime) -> datetime:
    """Stored datetimes are naive UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _overlaps(slot_start: datetime, slot_end: datetime, start: datetime, end: datetime) -> bool:
    return slot_start < end and slot_end > start


def compute_availability(
    day: date,
    hours: Mapping[str, str],
    bookings: Iterable[Booking],
    external: Optional[Iterable[ExternalBusyInterval]] = None,
    slot_minutes: int = 30,
    buffer_minutes: int = 0,
    tz: tzinfo = timezone.utc,
) -> AvailabilityResponse:
    """
    Produce the candidate slots for a day, flagged available/unavailable.

    Days without hours, or with hours that do not parse, yield an empty slot
    list with null open/close minutes rather than an error. Slots tile the
    open interval and the last slot is kept when it ends exactly at closing
    time. A slot is unavailable when it overlaps a scheduled booking or an
    external busy interval, each widened by buffer_minutes on both sides.
    """
    empty = AvailabilityResponse(date=day.isoformat(), slots=[], openMinutes=None, closeMinutes=None)

    span = hours.get(weekday_name(day))
    if not span:
        return empty

    parsed = parse_hours_span(span)
    if parsed is None:
        return empty
    open_minutes, close_minutes = parsed

    buffer = timedelta(minutes=buffer_minutes)
    blocked = [
        (as_aware(b.start) - buffer, as_aware(b.end) + buffer)
        for b in bookings
        if b.status == "scheduled"
    ]
    for interval in external or ():
        blocked.append((interval.start - buffer, (interval.end or interval.start) + buffer))

    midnight = datetime.combine(day, time(0), tzinfo=tz)
    start = midnight + timedelta(minutes=open_minutes)
    end = midnight + timedelta(minutes=close_minutes)
    length = timedelta(minutes=slot_minutes)

    slots = []
    while start + length <= end:
        slot_end = start + length
        conflict = any(_overlaps(start, slot_end, b_start, b_end) for b_start, b_end in blocked)
        slots.append(TimeSlot(start=start, end=slot_end, available=not conflict))
        start = slot_end

    return AvailabilityResponse(
        date=day.isoformat(),
        slots=slots,
        openMinutes=open_minutes,
        closeMinutes=close_minutes,
    )
