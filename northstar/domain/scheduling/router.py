"""Scheduling router - FastAPI endpoints for availability, hours, meetings and iCloud"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ...auth import require_admin
from ...config import DEFAULT_SLOT_MINUTES
from ...database import get_db
from ...models import User
from .calendar_source import ICloudCalendarSource
from .schemas import (
    MEETING_STATUSES,
    AvailabilityResponse,
    BusinessHoursResponse,
    BusinessHoursTableResponse,
    BusinessHoursUpdate,
    ICloudConnectRequest,
    ICloudStatusResponse,
    MeetingCreate,
    MeetingResponse,
    validate_weekday,
)
from .service import (
    AvailabilityService,
    BusinessHoursService,
    ICloudService,
    MeetingService,
    business_timezone,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Scheduling"])


def get_calendar_source() -> ICloudCalendarSource:
    """Dependency injection for the external calendar source"""
    return ICloudCalendarSource()


def get_availability_service(
    db: Session = Depends(get_db),
    calendar_source: ICloudCalendarSource = Depends(get_calendar_source),
) -> AvailabilityService:
    """Dependency injection for AvailabilityService"""
    return AvailabilityService(db, calendar_source)


def get_hours_service(db: Session = Depends(get_db)) -> BusinessHoursService:
    """Dependency injection for BusinessHoursService"""
    return BusinessHoursService(db)


def get_meeting_service(db: Session = Depends(get_db)) -> MeetingService:
    """Dependency injection for MeetingService"""
    return MeetingService(db)


def get_icloud_service(
    db: Session = Depends(get_db),
    calendar_source: ICloudCalendarSource = Depends(get_calendar_source),
) -> ICloudService:
    """Dependency injection for ICloudService"""
    return ICloudService(db, calendar_source)


# ============================================================================
# AVAILABILITY
# ============================================================================


@router.get("/availability", response_model=AvailabilityResponse)
async def get_availability(
    date: Optional[str] = Query(None, description="YYYY-MM-DD, defaults to today"),
    duration: int = Query(DEFAULT_SLOT_MINUTES, description="Slot length in minutes (15-240)"),
    buffer: int = Query(0, description="Minutes kept free around busy times (0-60)"),
    current_user: User = Depends(require_admin),
    service: AvailabilityService = Depends(get_availability_service),
):
    """Candidate appointment slots for a day, flagged available/unavailable"""
    if date:
        try:
            day = datetime.fromisoformat(date).date()
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid date format. Expected YYYY-MM-DD") from None
    else:
        day = datetime.now(business_timezone()).date()

    slot_minutes = max(15, min(240, duration))
    buffer_minutes = max(0, min(60, buffer))

    return await service.get_availability(current_user, day, slot_minutes, buffer_minutes)


# ============================================================================
# BUSINESS HOURS
# ============================================================================


@router.get("/hours", response_model=BusinessHoursTableResponse)
async def get_business_hours(service: BusinessHoursService = Depends(get_hours_service)):
    """Public business hours table (defaults when nothing is stored)"""
    return service.get_public_hours()


@router.get("/hours/admin", response_model=list[BusinessHoursResponse])
async def list_business_hours(
    current_user: User = Depends(require_admin),
    service: BusinessHoursService = Depends(get_hours_service),
):
    """Stored business hours rows"""
    return service.list_admin_hours()


@router.put("/hours/admin/{day}", response_model=BusinessHoursResponse)
async def update_business_hours(
    day: str,
    data: BusinessHoursUpdate,
    current_user: User = Depends(require_admin),
    service: BusinessHoursService = Depends(get_hours_service),
):
    """Update the hours for one weekday"""
    try:
        weekday = validate_weekday(day)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from None
    return service.update_day(weekday, data)


@router.post("/hours/admin/init", response_model=list[BusinessHoursResponse])
async def initialize_business_hours(
    current_user: User = Depends(require_admin),
    service: BusinessHoursService = Depends(get_hours_service),
):
    """Seed the default business hours"""
    return service.initialize_defaults()


# ============================================================================
# MEETINGS
# ============================================================================


@router.get("/meetings", response_model=list[MeetingResponse])
async def list_meetings(
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    status: Optional[str] = Query(None),
    current_user: User = Depends(require_admin),
    service: MeetingService = Depends(get_meeting_service),
):
    """List meetings, optionally within a time range or by status"""
    if status is not None and status not in MEETING_STATUSES:
        raise HTTPException(status_code=400, detail=f"Invalid status. Must be one of: {', '.join(MEETING_STATUSES)}")
    return service.list_meetings(start=start, end=end, status=status)


@router.post("/meetings", response_model=MeetingResponse, status_code=201)
async def schedule_meeting(
    data: MeetingCreate,
    current_user: User = Depends(require_admin),
    service: MeetingService = Depends(get_meeting_service),
):
    """Book a meeting; rejected when it overlaps a scheduled meeting"""
    return service.schedule_meeting(data)


@router.post("/meetings/{meeting_id}/cancel", response_model=MeetingResponse)
async def cancel_meeting(
    meeting_id: int,
    current_user: User = Depends(require_admin),
    service: MeetingService = Depends(get_meeting_service),
):
    """Cancel a scheduled meeting"""
    return service.cancel_meeting(meeting_id)


# ============================================================================
# ICLOUD
# ============================================================================


@router.post("/icloud/connect", response_model=ICloudStatusResponse)
async def connect_icloud(
    data: ICloudConnectRequest,
    current_user: User = Depends(require_admin),
    service: ICloudService = Depends(get_icloud_service),
):
    """Verify and store an iCloud session for the current user"""
    integration = await service.connect(current_user, data)
    return ICloudStatusResponse(
        connected=True,
        apple_id=integration.apple_id,
        calendar_href=integration.calendar_href,
        busy_calendar_urls=integration.busy_calendar_urls or [],
        connected_at=integration.connected_at,
    )


@router.post("/icloud/disconnect")
async def disconnect_icloud(
    current_user: User = Depends(require_admin),
    service: ICloudService = Depends(get_icloud_service),
):
    """Drop the stored iCloud session"""
    return service.disconnect(current_user)


@router.get("/icloud/status", response_model=ICloudStatusResponse)
async def icloud_status(
    current_user: User = Depends(require_admin),
    service: ICloudService = Depends(get_icloud_service),
):
    """Whether an iCloud session is connected"""
    return service.status(current_user)
