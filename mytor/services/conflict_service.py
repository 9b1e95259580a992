"""
Overlap Detection Service

Detects scheduling conflicts between a candidate booking and the active
(pending or confirmed) bookings of the same business on the same date.
"""
from datetime import date, datetime, timedelta
from typing import Iterable, Optional

from mytor.core.exceptions import ValidationError
from mytor.core.logger import logger
from mytor.models.db_models import ACTIVE_STATUSES, Booking, ServiceDefinition
from mytor.services import time_utils
from mytor.services.ports import BookingRepository


def find_conflict(
    bookings: Iterable[Booking],
    start_time: str,
    duration: int,
    exclude_booking_id: Optional[str] = None,
) -> Optional[Booking]:
    """First active booking overlapping [start, start + duration), skipping `exclude_booking_id`."""
    start = time_utils.to_minutes(start_time)
    for existing in bookings:
        if existing.id == exclude_booking_id or existing.status not in ACTIVE_STATUSES:
            continue
        if time_utils.overlaps(start, duration, existing.start_minutes, existing.duration_minutes):
            return existing
    return None


def resolve_duration(
    start_time: str,
    service: Optional[ServiceDefinition] = None,
    end_time: Optional[str] = None,
) -> int:
    """
    Duration of an owner-entered booking.
    An explicit end time wins over the service duration.
    """
    if end_time:
        # "24:00" lets a booking run to midnight
        end = time_utils.MINUTES_PER_DAY if end_time.strip() == "24:00" else time_utils.to_minutes(end_time)
        duration = end - time_utils.to_minutes(start_time)
        if duration <= 0:
            raise ValidationError("End time must be after start time")
        return duration
    if service is not None:
        return service.duration_minutes
    raise ValidationError("Either a service or an end time is required to know the booking length")


def is_editable(booking: Booking, now: datetime, margin_hours: int = 1) -> bool:
    starts_at = datetime.combine(booking.date, datetime.min.time()) + timedelta(minutes=booking.start_minutes)
    return now < starts_at - timedelta(hours=margin_hours)


class ConflictService:
    def __init__(self, bookings: BookingRepository):
        self.bookings = bookings

    async def find_conflict(
        self,
        business_id: str,
        target_date: date,
        start_time: str,
        duration: int,
        exclude_booking_id: Optional[str] = None,
    ) -> Optional[Booking]:
        existing = await self.bookings.list_for_date(business_id, target_date, ACTIVE_STATUSES)
        conflict = find_conflict(existing, start_time, duration, exclude_booking_id)
        if conflict:
            logger.info(
                f"⛔ Conflict for {business_id} on {target_date} {start_time}+{duration}m "
                f"with booking {conflict.id} ({conflict.start_time}-{conflict.end_time})"
            )
        return conflict

    async def has_conflict(
        self,
        business_id: str,
        target_date: date,
        start_time: str,
        duration: int,
        exclude_booking_id: Optional[str] = None,
    ) -> bool:
        return await self.find_conflict(business_id, target_date, start_time, duration, exclude_booking_id) is not None
