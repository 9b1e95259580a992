from typing import Any, Dict, List, Optional
import datetime as dt
from pydantic import BaseModel, Field

from mytor.models.db_models import (
    Booking,
    BookingStatus,
    BusinessProfile,
    DateException,
    LayoutEntry,
    ServiceDefinition,
    TimeWindow,
)
from mytor.models.workflow_models import BookingDraft


# --- Public ---

class PublicBusinessResponse(BaseModel):
    id: str
    slug: str
    name: str
    services: List[ServiceDefinition]
    windows: List[TimeWindow]
    exceptions: List[DateException]

    @classmethod
    def from_profile(cls, profile: BusinessProfile) -> "PublicBusinessResponse":
        return cls(
            id=profile.id,
            slug=profile.slug,
            name=profile.name,
            services=profile.active_services(),
            windows=[w for w in profile.windows if w.active],
            exceptions=profile.exceptions,
        )


class AvailableSlotsResponse(BaseModel):
    date: dt.date
    service_id: str
    service_name: str
    duration_minutes: int
    available_slots: List[str]
    total_slots: int


class BookedIntervalResponse(BaseModel):
    """A taken stretch of the day, without who took it."""
    start_time: str
    end_time: str
    duration_minutes: int

    @classmethod
    def from_booking(cls, booking: Booking) -> "BookedIntervalResponse":
        return cls(start_time=booking.start_time, end_time=booking.end_time, duration_minutes=booking.duration_minutes)


class AdvanceRequest(BaseModel):
    draft: BookingDraft
    step: str
    payload: Dict[str, Any] = Field(default_factory=dict)


class ResendRequest(BaseModel):
    draft: BookingDraft
    channel: Optional[str] = None


class AbandonRequest(BaseModel):
    draft: BookingDraft


class PublicBookingRequest(BaseModel):
    service_id: str
    date: str
    start_time: str
    client_name: str
    client_phone: str
    note: Optional[str] = None


class OtpSendRequest(BaseModel):
    phone: str
    channel: str = "sms"


class OtpVerifyRequest(BaseModel):
    phone: str
    code: str


# --- Owner ---

class OwnerBookingRequest(BaseModel):
    date: str
    start_time: str
    client_name: str
    client_phone: str = ""
    service_id: Optional[str] = None
    end_time: Optional[str] = None
    note: Optional[str] = None
    status: str = BookingStatus.CONFIRMED.value


class ConflictCheckRequest(BaseModel):
    date: str
    start_time: str
    service_id: Optional[str] = None
    end_time: Optional[str] = None
    exclude_booking_id: Optional[str] = None


class ConflictCheckResponse(BaseModel):
    has_conflict: bool
    conflicting_booking_id: Optional[str] = None
    conflicting_start: Optional[str] = None
    conflicting_end: Optional[str] = None


class RescheduleRequest(BaseModel):
    date: Optional[str] = None
    start_time: Optional[str] = None
    service_id: Optional[str] = None
    end_time: Optional[str] = None
    note: Optional[str] = None


class StatusUpdateRequest(BaseModel):
    status: str


class BookingResponse(BaseModel):
    id: str
    business_id: str
    service_id: Optional[str] = None
    date: dt.date
    start_time: str
    end_time: str
    duration_minutes: int
    status: BookingStatus
    client_name: str
    client_phone: str
    note: Optional[str] = None
    client_verified: bool
    created_at: dt.datetime
    updated_at: dt.datetime

    @classmethod
    def from_booking(cls, booking: Booking) -> "BookingResponse":
        return cls(end_time=booking.end_time, **booking.model_dump())


class CalendarResponse(BaseModel):
    date: dt.date
    bookings: List[BookingResponse]
    layout: List[LayoutEntry]


class NearestSlotResponse(BaseModel):
    preferred_time: str
    nearest_slot: Optional[str] = None
