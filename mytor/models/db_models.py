from enum import Enum
from typing import Optional, List
import datetime as dt
from datetime import datetime, timedelta
from uuid import uuid4
from pydantic import BaseModel, Field, field_validator, model_validator

from mytor.core.exceptions import ValidationError
from mytor.services import time_utils


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    DECLINED = "declined"
    CANCELLED = "cancelled"


# Statuses that occupy the calendar
ACTIVE_STATUSES = frozenset({BookingStatus.PENDING, BookingStatus.CONFIRMED})

STATUS_TRANSITIONS = {
    BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.DECLINED, BookingStatus.CANCELLED}),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.CANCELLED}),
    BookingStatus.DECLINED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
}


def _checked_time(value: str) -> str:
    # pydantic only wraps ValueError into its own validation error
    try:
        return time_utils.normalize_time(value)
    except ValidationError as e:
        raise ValueError(e.reason)


class TimeWindow(BaseModel):
    """Recurring weekly open interval. `weekday` follows date.weekday() (Monday = 0)."""
    weekday: int = Field(ge=0, le=6)
    start: str
    end: str
    active: bool = True

    @field_validator("start", "end")
    @classmethod
    def _normalize(cls, value: str) -> str:
        return _checked_time(value)

    @model_validator(mode="after")
    def _check_order(self):
        if time_utils.to_minutes(self.start) >= time_utils.to_minutes(self.end):
            raise ValueError(f"window start {self.start} must be before end {self.end}")
        return self

    @property
    def start_minutes(self) -> int:
        return time_utils.to_minutes(self.start)

    @property
    def end_minutes(self) -> int:
        return time_utils.to_minutes(self.end)


class DateException(BaseModel):
    date: dt.date
    reason: Optional[str] = None


class ServiceDefinition(BaseModel):
    id: str
    name: str = ""
    duration_minutes: int = Field(gt=0, lt=time_utils.MINUTES_PER_DAY)
    active: bool = True


class BusinessProfile(BaseModel):
    id: str
    slug: str
    name: str = ""
    owner_email: Optional[str] = None
    is_active: bool = True
    services: List[ServiceDefinition] = Field(default_factory=list)
    windows: List[TimeWindow] = Field(default_factory=list)
    exceptions: List[DateException] = Field(default_factory=list)

    def active_services(self) -> List[ServiceDefinition]:
        return [s for s in self.services if s.active]

    def find_service(self, service_id: str) -> Optional[ServiceDefinition]:
        for service in self.services:
            if service.id == service_id:
                return service
        return None


class Booking(BaseModel):
    id: str = Field(default_factory=lambda: uuid4().hex)
    business_id: str
    service_id: Optional[str] = None
    date: dt.date
    start_time: str
    duration_minutes: int = Field(gt=0)
    status: BookingStatus = BookingStatus.PENDING
    client_name: str
    client_phone: str = ""
    note: Optional[str] = None
    client_verified: bool = False
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    @field_validator("start_time")
    @classmethod
    def _normalize_start(cls, value: str) -> str:
        return _checked_time(value)

    @model_validator(mode="after")
    def _check_same_day(self):
        if self.start_minutes + self.duration_minutes > time_utils.MINUTES_PER_DAY:
            raise ValueError("booking may not run past midnight")
        return self

    @property
    def start_minutes(self) -> int:
        return time_utils.to_minutes(self.start_time)

    @property
    def end_minutes(self) -> int:
        return self.start_minutes + self.duration_minutes

    @property
    def end_time(self) -> str:
        # 24:00 is a valid end for a booking that runs to midnight
        if self.end_minutes == time_utils.MINUTES_PER_DAY:
            return "24:00"
        return time_utils.to_time_string(self.end_minutes)

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES


class VerificationCode(BaseModel):
    phone: str
    code: str
    channel: str = "sms"
    issued_at: datetime
    ttl_seconds: int
    consumed: bool = False

    def expires_at(self) -> datetime:
        return self.issued_at + timedelta(seconds=self.ttl_seconds)

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at()


class LayoutEntry(BaseModel):
    booking_id: str
    column: int
    total_columns: int
    left: float
    width: float
