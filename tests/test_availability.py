"""Tests for slot computation and the availability service."""

import asyncio
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from conftest import MONDAY, FailingCalendarSource, StaticCalendarSource
from northstar.domain.scheduling.availability import compute_availability
from northstar.domain.scheduling.schemas import Booking, ExternalBusyInterval
from northstar.domain.scheduling.service import AvailabilityService
from northstar.models import Meeting

NINE_TO_FIVE = {"monday": "9am - 5pm"}


def utc(hour: int, minute: int = 0) -> datetime:
    return datetime(2025, 3, 10, hour, minute, tzinfo=timezone.utc)


def slot_at(result, hour: int, minute: int = 0):
    target = utc(hour, minute)
    return next(s for s in result.slots if s.start == target)


class TestSlotTiling:
    def test_full_day_of_half_hour_slots(self):
        result = compute_availability(MONDAY, NINE_TO_FIVE, [])

        assert result.date == "2025-03-10"
        assert result.openMinutes == 540
        assert result.closeMinutes == 1020
        assert len(result.slots) == 16
        assert result.slots[0].start == utc(9)
        assert result.slots[-1].end == utc(17)
        assert all(s.end - s.start == timedelta(minutes=30) for s in result.slots)
        assert all(s.available for s in result.slots)

    def test_partial_final_slot_is_dropped(self):
        result = compute_availability(MONDAY, {"monday": "9:00am - 4:45pm"}, [])
        assert len(result.slots) == 15
        assert result.slots[-1].end == utc(16, 30)

    def test_custom_slot_length(self):
        result = compute_availability(MONDAY, NINE_TO_FIVE, [], slot_minutes=60)
        assert len(result.slots) == 8

    def test_no_hours_for_weekday(self):
        result = compute_availability(MONDAY, {"tuesday": "9am - 5pm"}, [])
        assert result.slots == []
        assert result.openMinutes is None
        assert result.closeMinutes is None

    def test_malformed_hours_yield_empty_result(self):
        result = compute_availability(MONDAY, {"monday": "9am to 5pm"}, [])
        assert result.slots == []
        assert result.openMinutes is None
        assert result.closeMinutes is None

    def test_business_timezone(self):
        # Chicago is on CDT (UTC-5) on 2025-03-10
        result = compute_availability(MONDAY, NINE_TO_FIVE, [], tz=ZoneInfo("America/Chicago"))
        assert result.slots[0].start == utc(14)
        assert result.slots[-1].end == utc(22)


class TestConflicts:
    def test_scheduled_booking_blocks_overlapping_slot(self):
        booking = Booking(start=utc(10), end=utc(10, 30), status="scheduled")
        result = compute_availability(MONDAY, NINE_TO_FIVE, [booking])

        assert slot_at(result, 10).available is False
        assert slot_at(result, 10, 30).available is True
        assert slot_at(result, 9, 30).available is True

    def test_naive_booking_times_are_utc(self):
        booking = Booking(start=datetime(2025, 3, 10, 10), end=datetime(2025, 3, 10, 10, 30))
        result = compute_availability(MONDAY, NINE_TO_FIVE, [booking])
        assert slot_at(result, 10).available is False

    def test_cancelled_booking_does_not_block(self):
        booking = Booking(start=utc(10), end=utc(10, 30), status="cancelled")
        result = compute_availability(MONDAY, NINE_TO_FIVE, [booking])
        assert all(s.available for s in result.slots)

    def test_external_interval_blocks(self):
        busy = ExternalBusyInterval(start=utc(13), end=utc(14, 15))
        result = compute_availability(MONDAY, NINE_TO_FIVE, [], [busy])

        assert slot_at(result, 13).available is False
        assert slot_at(result, 13, 30).available is False
        assert slot_at(result, 14).available is False
        assert slot_at(result, 14, 30).available is True

    def test_external_interval_without_end_is_zero_width(self):
        busy = ExternalBusyInterval(start=utc(11, 15))
        assert busy.end == busy.start

        result = compute_availability(MONDAY, NINE_TO_FIVE, [], [busy])
        assert slot_at(result, 11).available is False
        assert slot_at(result, 10, 30).available is True
        assert slot_at(result, 11, 30).available is True

    def test_buffer_widens_busy_intervals(self):
        booking = Booking(start=utc(10), end=utc(10, 30))
        result = compute_availability(MONDAY, NINE_TO_FIVE, [booking], buffer_minutes=15)

        assert slot_at(result, 9, 30).available is False
        assert slot_at(result, 10).available is False
        assert slot_at(result, 10, 30).available is False
        assert slot_at(result, 11).available is True

    def test_busy_interval_must_be_timezone_aware(self):
        with pytest.raises(ValueError):
            ExternalBusyInterval(start=datetime(2025, 3, 10, 9))

    def test_busy_interval_cannot_end_before_start(self):
        with pytest.raises(ValueError):
            ExternalBusyInterval(start=utc(10), end=utc(9))


def add_meeting(db, start: datetime, end: datetime, status: str = "scheduled") -> Meeting:
    meeting = Meeting(consultation_id="c-1", start=start, end=end, status=status)
    db.add(meeting)
    db.commit()
    return meeting


class SlowCalendarSource(StaticCalendarSource):
    async def fetch_busy_intervals(self, session, day, tz):
        await asyncio.sleep(1)
        return []


class TestAvailabilityService:
    @pytest.mark.asyncio
    async def test_external_failure_degrades_to_internal_bookings(self, db, admin, icloud_integration):
        add_meeting(db, datetime(2025, 3, 10, 10), datetime(2025, 3, 10, 10, 30))
        service = AvailabilityService(db, FailingCalendarSource(), use_cache=False)

        result = await service.get_availability(admin, MONDAY)

        # Default Monday hours are 7am - 5pm
        assert len(result.slots) == 20
        assert slot_at(result, 10).available is False
        assert sum(1 for s in result.slots if not s.available) == 1

    @pytest.mark.asyncio
    async def test_external_timeout_degrades(self, db, admin, icloud_integration):
        service = AvailabilityService(db, SlowCalendarSource(), timeout=0.05, use_cache=False)

        result = await service.get_availability(admin, MONDAY)

        assert len(result.slots) == 20
        assert all(s.available for s in result.slots)

    @pytest.mark.asyncio
    async def test_external_intervals_are_applied(self, db, admin, icloud_integration):
        source = StaticCalendarSource([ExternalBusyInterval(start=utc(15), end=utc(16))])
        service = AvailabilityService(db, source, use_cache=False)

        result = await service.get_availability(admin, MONDAY)

        assert source.calls == 1
        assert slot_at(result, 15).available is False
        assert slot_at(result, 15, 30).available is False
        assert slot_at(result, 16).available is True

    @pytest.mark.asyncio
    async def test_no_integration_skips_external_lookup(self, db, admin):
        source = StaticCalendarSource([ExternalBusyInterval(start=utc(15), end=utc(16))])
        service = AvailabilityService(db, source, use_cache=False)

        result = await service.get_availability(admin, MONDAY)

        assert source.calls == 0
        assert all(s.available for s in result.slots)

    @pytest.mark.asyncio
    async def test_meetings_on_other_days_are_ignored(self, db, admin):
        add_meeting(db, datetime(2025, 3, 11, 10), datetime(2025, 3, 11, 10, 30))
        add_meeting(db, datetime(2025, 3, 10, 12), datetime(2025, 3, 10, 13), status="cancelled")
        service = AvailabilityService(db, StaticCalendarSource(), use_cache=False)

        result = await service.get_availability(admin, MONDAY)

        assert all(s.available for s in result.slots)
