"""Scheduling service - Business logic for hours, availability, meetings and iCloud"""

import asyncio
import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

import httpx
from fastapi import HTTPException
from pydantic import ValidationError
from sqlalchemy.orm import Session

from ...cache import (
    get_busy_intervals_cached,
    invalidate_busy_intervals_cache,
    set_busy_intervals_cached,
)
from ...config import BUSINESS_TIMEZONE, EXTERNAL_CALENDAR_TIMEOUT, EXTERNAL_EVENTS_CACHE_TTL
from ...models import BusinessHours, Meeting, User
from ...models_icloud import ICloudIntegration
from ...security_utils import decrypt_secret, encrypt_secret
from .availability import compute_availability
from .calendar_source import CalendarSourceError, ICloudCalendarSource, ICloudSession
from .hours import DEFAULT_BUSINESS_HOURS, format_span, parse_hours_span, parsed_hours_table
from .repository import SchedulingRepository
from .schemas import (
    AvailabilityResponse,
    Booking,
    BusinessHoursUpdate,
    ExternalBusyInterval,
    ICloudConnectRequest,
    MeetingCreate,
)

logger = logging.getLogger(__name__)


def business_timezone() -> ZoneInfo:
    return ZoneInfo(BUSINESS_TIMEZONE)


def _to_utc_naive(value: datetime) -> datetime:
    """Meetings are stored as naive UTC"""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class BusinessHoursService:
    """Service layer for the weekly business hours table"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = SchedulingRepository()

    def get_hours_table(self) -> tuple[str, dict[str, str]]:
        """Weekday -> span for open days, and whether it came from the database or the defaults"""
        rows = self.repo.list_business_hours(self.db)
        if not rows:
            return "default", dict(DEFAULT_BUSINESS_HOURS)
        return "database", {row.day_of_week: row.display_format for row in rows if not row.is_closed}

    def get_public_hours(self) -> dict:
        source, table = self.get_hours_table()
        return {"ok": True, "source": source, "hours": parsed_hours_table(table)}

    def list_admin_hours(self) -> list[BusinessHours]:
        return self.repo.list_business_hours(self.db)

    def update_day(self, day: str, data: BusinessHoursUpdate) -> BusinessHours:
        """Validate and store the hours for one weekday; a closed day ignores its times"""
        if data.is_closed:
            logger.info(f"🔄 Marking {day} as closed")
            return self.repo.upsert_business_hours(
                self.db,
                day,
                open_time="",
                close_time="",
                is_closed=True,
                display_format="Closed",
                start_minutes=0,
                end_minutes=0,
            )

        span = format_span(data.open_time, data.close_time)
        parsed = parse_hours_span(span)
        if parsed is None:
            raise HTTPException(
                status_code=400,
                detail=f"Invalid time format: {span}. Use formats like '9am', '5:30pm' or '17:00'",
            )
        if parsed[1] <= parsed[0]:
            raise HTTPException(status_code=400, detail="Closing time must be after opening time")

        logger.info(f"🔄 Updating business hours for {day}: {span}")
        return self.repo.upsert_business_hours(
            self.db,
            day,
            open_time=data.open_time.strip(),
            close_time=data.close_time.strip(),
            is_closed=False,
            display_format=span,
            start_minutes=parsed[0],
            end_minutes=parsed[1],
        )

    def initialize_defaults(self) -> list[BusinessHours]:
        """Seed the table with the default hours; refuses once any row exists"""
        if self.repo.count_business_hours(self.db) > 0:
            raise HTTPException(status_code=400, detail="Business hours already initialized")

        rows = []
        for day, span in DEFAULT_BUSINESS_HOURS.items():
            open_time, close_time = (p.strip() for p in span.split("-"))
            start_minutes, end_minutes = parse_hours_span(span)
            rows.append(
                {
                    "day_of_week": day,
                    "open_time": open_time,
                    "close_time": close_time,
                    "is_closed": False,
                    "display_format": span,
                    "start_minutes": start_minutes,
                    "end_minutes": end_minutes,
                }
            )
        created = self.repo.bulk_create_business_hours(self.db, rows)
        logger.info(f"✅ Initialized {len(created)} days of business hours")
        return created


class MeetingService:
    """Service layer for internal bookings"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = SchedulingRepository()

    def list_meetings(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        status: Optional[str] = None,
    ) -> list[Meeting]:
        return self.repo.list_meetings(
            self.db,
            start=_to_utc_naive(start) if start else None,
            end=_to_utc_naive(end) if end else None,
            status=status,
        )

    def schedule_meeting(self, data: MeetingCreate) -> Meeting:
        start = _to_utc_naive(data.start)
        end = _to_utc_naive(data.end)

        conflicts = self.repo.list_meetings(self.db, start=start, end=end, status="scheduled")
        if conflicts:
            logger.warning(f"⚠️ Meeting request {start} - {end} overlaps meeting {conflicts[0].id}")
            raise HTTPException(status_code=409, detail="Time slot overlaps an existing meeting")

        meeting = self.repo.create_meeting(
            self.db,
            consultation_id=data.consultation_id,
            client_id=data.client_id,
            start=start,
            end=end,
            provider=data.provider,
            join_url=data.join_url,
            status="scheduled",
        )
        logger.info(f"✅ Scheduled meeting {meeting.id} for consultation {meeting.consultation_id}")
        return meeting

    def cancel_meeting(self, meeting_id: int) -> Meeting:
        meeting = self.repo.get_meeting(self.db, meeting_id)
        if not meeting:
            raise HTTPException(status_code=404, detail="Meeting not found")
        if meeting.status != "scheduled":
            raise HTTPException(status_code=400, detail=f"Meeting is already {meeting.status}")

        meeting = self.repo.update_meeting_status(self.db, meeting, "cancelled")
        logger.info(f"✅ Cancelled meeting {meeting.id}")
        return meeting


class ICloudService:
    """Connects, disconnects and describes a user's iCloud calendar session"""

    def __init__(self, db: Session, calendar_source: Optional[ICloudCalendarSource] = None):
        self.db = db
        self.repo = SchedulingRepository()
        self.calendar_source = calendar_source or ICloudCalendarSource()

    @staticmethod
    def build_session(integration: ICloudIntegration) -> ICloudSession:
        return ICloudSession(
            user_id=integration.user_id,
            apple_id=integration.apple_id,
            app_password=decrypt_secret(integration.app_password),
            calendar_href=integration.calendar_href,
            busy_calendar_urls=tuple(integration.busy_calendar_urls or ()),
        )

    def get_session(self, user: User) -> Optional[ICloudSession]:
        integration = self.repo.get_icloud_integration(self.db, user.id)
        if integration is None:
            return None
        return self.build_session(integration)

    async def connect(self, user: User, data: ICloudConnectRequest) -> ICloudIntegration:
        session = ICloudSession(
            user_id=user.id,
            apple_id=data.apple_id,
            app_password=data.app_password,
            calendar_href=data.calendar_href,
            busy_calendar_urls=tuple(data.busy_calendar_urls),
        )

        try:
            accepted = await self.calendar_source.verify_credentials(session)
        except (CalendarSourceError, httpx.HTTPError) as e:
            logger.error(f"❌ Could not reach iCloud for {data.apple_id}: {e}")
            raise HTTPException(status_code=502, detail="Could not reach iCloud") from e
        if not accepted:
            raise HTTPException(status_code=400, detail="iCloud rejected the Apple ID or app-specific password")

        integration = self.repo.save_icloud_integration(
            self.db,
            user.id,
            apple_id=data.apple_id,
            app_password=encrypt_secret(data.app_password),
            calendar_href=data.calendar_href,
            busy_calendar_urls=list(data.busy_calendar_urls),
        )
        invalidate_busy_intervals_cache(user.id)
        logger.info(f"✅ iCloud connected for user {user.id}")
        return integration

    def disconnect(self, user: User) -> dict:
        integration = self.repo.get_icloud_integration(self.db, user.id)
        if integration is None:
            return {"ok": True, "connected": False}
        self.repo.delete_icloud_integration(self.db, integration)
        invalidate_busy_intervals_cache(user.id)
        logger.info(f"✅ iCloud disconnected for user {user.id}")
        return {"ok": True, "connected": False}

    def status(self, user: User) -> dict:
        integration = self.repo.get_icloud_integration(self.db, user.id)
        if integration is None:
            return {"connected": False}
        return {
            "connected": True,
            "apple_id": integration.apple_id,
            "calendar_href": integration.calendar_href,
            "busy_calendar_urls": integration.busy_calendar_urls or [],
            "connected_at": integration.connected_at,
        }


class AvailabilityService:
    """Combines hours, meetings and the external calendar into a day of slots"""

    def __init__(
        self,
        db: Session,
        calendar_source: Optional[ICloudCalendarSource] = None,
        timeout: float = EXTERNAL_CALENDAR_TIMEOUT,
        use_cache: bool = True,
    ):
        self.db = db
        self.repo = SchedulingRepository()
        self.hours = BusinessHoursService(db)
        self.icloud = ICloudService(db, calendar_source)
        self.timeout = timeout
        self.use_cache = use_cache

    async def _external_busy_intervals(self, user: User, day: date, tz) -> list[ExternalBusyInterval]:
        """Best-effort external intervals; any failure degrades to an empty list"""
        session = self.icloud.get_session(user)
        if session is None:
            return []

        day_key = day.isoformat()
        if self.use_cache:
            cached = get_busy_intervals_cached(user.id, day_key)
            if cached is not None:
                try:
                    return [ExternalBusyInterval.model_validate(item) for item in cached]
                except ValidationError as e:
                    logger.warning(f"⚠️ Ignoring malformed cached busy intervals: {e}")

        try:
            intervals = await asyncio.wait_for(
                self.icloud.calendar_source.fetch_busy_intervals(session, day, tz),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"⚠️ iCloud lookup timed out after {self.timeout}s - using internal bookings only")
            return []
        except Exception as e:
            logger.warning(f"⚠️ iCloud lookup failed - using internal bookings only: {e}")
            return []

        if self.use_cache:
            set_busy_intervals_cached(
                user.id,
                day_key,
                [i.model_dump(mode="json") for i in intervals],
                ttl=EXTERNAL_EVENTS_CACHE_TTL,
            )
        return intervals

    async def get_availability(
        self,
        user: User,
        day: date,
        slot_minutes: int = 30,
        buffer_minutes: int = 0,
    ) -> AvailabilityResponse:
        tz = business_timezone()
        _, hours = self.hours.get_hours_table()

        # Widen the window so buffered meetings just outside the day still count
        day_start = datetime.combine(day, time(0), tzinfo=tz) - timedelta(minutes=buffer_minutes)
        day_end = day_start + timedelta(days=1, minutes=2 * buffer_minutes)
        meetings = self.repo.list_meetings(
            self.db, start=_to_utc_naive(day_start), end=_to_utc_naive(day_end), status="scheduled"
        )
        bookings = [Booking.model_validate(m) for m in meetings]
        external = await self._external_busy_intervals(user, day, tz)

        result = compute_availability(
            day,
            hours,
            bookings,
            external,
            slot_minutes=slot_minutes,
            buffer_minutes=buffer_minutes,
            tz=tz,
        )
        available = sum(1 for s in result.slots if s.available)
        logger.info(
            f"📅 Availability for {result.date}: {len(result.slots)} slots, {available} available "
            f"({len(bookings)} meetings, {len(external)} external intervals)"
        )
        return result
