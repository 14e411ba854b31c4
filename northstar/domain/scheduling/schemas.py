"""Scheduling domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from ...models import WEEKDAYS

MEETING_STATUSES = ("scheduled", "cancelled", "completed")


# ============================================================================
# AVAILABILITY
# ============================================================================


class TimeSlot(BaseModel):
    start: datetime
    end: datetime
    available: bool


class AvailabilityResponse(BaseModel):
    """Slots for one day; openMinutes/closeMinutes are null when the day has no usable hours"""

    date: str  # YYYY-MM-DD
    slots: list[TimeSlot] = []
    openMinutes: Optional[int] = None
    closeMinutes: Optional[int] = None


class Booking(BaseModel):
    """Internal booking as seen by the availability computer"""

    model_config = ConfigDict(from_attributes=True)

    start: datetime
    end: datetime
    status: str = "scheduled"


class ExternalBusyInterval(BaseModel):
    """Busy range from a third-party calendar; a missing end means a zero-width interval"""

    start: datetime
    end: Optional[datetime] = None
    summary: Optional[str] = None

    @model_validator(mode="after")
    def default_end_to_start(self) -> "ExternalBusyInterval":
        if self.end is None:
            self.end = self.start
        if self.start.tzinfo is None or self.end.tzinfo is None:
            raise ValueError("busy interval times must be timezone-aware")
        if self.end < self.start:
            raise ValueError("busy interval ends before it starts")
        return self


# ============================================================================
# BUSINESS HOURS
# ============================================================================


class BusinessHoursUpdate(BaseModel):
    open_time: Optional[str] = None  # e.g. "9am"
    close_time: Optional[str] = None  # e.g. "5pm"
    is_closed: bool = False

    @model_validator(mode="after")
    def require_times_when_open(self) -> "BusinessHoursUpdate":
        if not self.is_closed and (not self.open_time or not self.close_time):
            raise ValueError("open_time and close_time are required unless the day is closed")
        return self


class BusinessHoursResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    day_of_week: str
    open_time: str
    close_time: str
    is_closed: bool
    display_format: str
    start_minutes: int
    end_minutes: int


class BusinessHoursTableResponse(BaseModel):
    ok: bool = True
    source: str  # "database" or "default"
    hours: dict[str, dict]


def validate_weekday(day: str) -> str:
    normalized = day.strip().lower()
    if normalized not in WEEKDAYS:
        raise ValueError(f"Invalid day of week: {day}")
    return normalized


# ============================================================================
# MEETINGS
# ============================================================================


class MeetingCreate(BaseModel):
    consultation_id: str
    client_id: Optional[int] = None
    start: datetime
    end: datetime
    provider: Optional[str] = None
    join_url: Optional[str] = None

    @model_validator(mode="after")
    def validate_range(self) -> "MeetingCreate":
        if self.end <= self.start:
            raise ValueError("Meeting end must be after its start")
        return self


class MeetingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    consultation_id: str
    client_id: Optional[int] = None
    start: datetime
    end: datetime
    provider: Optional[str] = None
    join_url: Optional[str] = None
    status: str
    created_at: Optional[datetime] = None


# ============================================================================
# ICLOUD
# ============================================================================


class ICloudConnectRequest(BaseModel):
    apple_id: str
    app_password: str
    calendar_href: Optional[str] = None
    busy_calendar_urls: list[str] = []

    @field_validator("apple_id", "app_password")
    @classmethod
    def validate_required(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("apple_id and app_password are required")
        return v.strip()

    @model_validator(mode="after")
    def require_a_calendar(self) -> "ICloudConnectRequest":
        if not self.calendar_href and not self.busy_calendar_urls:
            raise ValueError("Provide calendar_href or at least one busy calendar URL")
        return self


class ICloudStatusResponse(BaseModel):
    connected: bool
    apple_id: Optional[str] = None
    calendar_href: Optional[str] = None
    busy_calendar_urls: list[str] = []
    connected_at: Optional[datetime] = None
