"""
Slot Generation Service

Computes the free start times a client can pick for a service on a date:
- every `step` minutes inside each open window, last exact fit included
- minus starts whose [start, start + duration) overlaps an active booking
- minus starts already passed when the date is today
"""
import datetime as dt
from datetime import date, datetime
from typing import Callable, Iterable, List, Optional

from pydantic import BaseModel

from mytor.core.config import settings
from mytor.core.exceptions import NotFoundError, ValidationError
from mytor.core.logger import logger
from mytor.models.db_models import ACTIVE_STATUSES, Booking, ServiceDefinition
from mytor.services import time_utils
from mytor.services.availability import AvailabilityModel
from mytor.services.ports import BookingRepository, BusinessDirectory


class SlotQueryResult(BaseModel):
    date: dt.date
    service: ServiceDefinition
    available_slots: List[str]

    @property
    def total_slots(self) -> int:
        return len(self.available_slots)


def _is_taken(start: int, duration: int, bookings: Iterable[Booking]) -> bool:
    return any(
        time_utils.overlaps(start, duration, b.start_minutes, b.duration_minutes)
        for b in bookings
    )


def generate_slots(
    target_date: date,
    duration: int,
    availability: AvailabilityModel,
    bookings: Iterable[Booking],
    now: datetime,
    step: int = 15,
) -> List[str]:
    if duration <= 0:
        raise ValidationError("Service duration must be positive")
    if step <= 0:
        raise ValidationError("Slot step must be positive")

    if time_utils.is_past_date(target_date, now):
        return []

    active = [b for b in bookings if b.status in ACTIVE_STATUSES and b.date == target_date]
    cutoff = time_utils.now_minutes(now) if target_date == now.date() else None

    starts = set()
    for window in availability.windows_for(target_date):
        start = window.start_minutes
        while start + duration <= window.end_minutes:
            if (cutoff is None or start > cutoff) and not _is_taken(start, duration, active):
                starts.add(start)
            start += step

    return [time_utils.to_time_string(m) for m in sorted(starts)]


def find_nearest_available_slot(
    preferred_time: str,
    duration: int,
    bookings: Iterable[Booking],
    target_date: date,
    now: datetime,
    step: int = 15,
    search_hours: int = 3,
) -> Optional[str]:
    """
    Walks outward from `preferred_time` (forward first, then backward) and
    returns the first start that fits the day and collides with nothing.
    Business hours are not consulted; this serves the owner calendar.
    """
    preferred = time_utils.to_minutes(preferred_time)
    active = [b for b in bookings if b.status in ACTIVE_STATUSES and b.date == target_date]
    cutoff = time_utils.now_minutes(now) if target_date == now.date() else None

    def usable(start: int) -> bool:
        if start < 0 or start + duration > time_utils.MINUTES_PER_DAY:
            return False
        if cutoff is not None and start <= cutoff:
            return False
        return not _is_taken(start, duration, active)

    if time_utils.is_past_date(target_date, now):
        return None

    for offset in range(0, search_hours * 60 + 1, step):
        if usable(preferred + offset):
            return time_utils.to_time_string(preferred + offset)
        if offset and usable(preferred - offset):
            return time_utils.to_time_string(preferred - offset)
    return None


class SlotService:
    def __init__(
        self,
        directory: BusinessDirectory,
        bookings: BookingRepository,
        step_minutes: int = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.directory = directory
        self.bookings = bookings
        self.step_minutes = step_minutes or settings.SLOT_STEP_MINUTES
        self.clock = clock

    async def get_available_slots(self, slug: str, target_date, service_id: str) -> SlotQueryResult:
        """Free start times for `service_id` at business `slug` on `target_date`."""
        target_date = time_utils.parse_date(target_date)
        profile = await self.directory.get_by_slug(slug)

        service = profile.find_service(service_id)
        if service is None or not service.active:
            logger.warning(f"⚠️ Service '{service_id}' not found for business {profile.slug}")
            raise NotFoundError("Service not found or inactive")

        availability = AvailabilityModel.from_profile(profile)
        if not availability.is_open(target_date):
            logger.info(f"🚫 {profile.slug} closed on {target_date}")
            return SlotQueryResult(date=target_date, service=service, available_slots=[])

        existing = await self.bookings.list_for_date(profile.id, target_date, ACTIVE_STATUSES)
        slots = generate_slots(
            target_date,
            service.duration_minutes,
            availability,
            existing,
            now=self.clock(),
            step=self.step_minutes,
        )
        logger.info(f"🕐 {len(slots)} free slots for {profile.slug}/{service.id} on {target_date} ({len(existing)} active bookings)")
        return SlotQueryResult(date=target_date, service=service, available_slots=slots)

    async def find_nearest_slot(
        self,
        business_id: str,
        service_id: str,
        target_date,
        preferred_time: str,
        search_hours: int = None,
    ) -> Optional[str]:
        target_date = time_utils.parse_date(target_date)
        preferred_time = time_utils.normalize_time(preferred_time)
        profile = await self.directory.get_by_id(business_id)
        service = profile.find_service(service_id)
        if service is None:
            raise NotFoundError("Service not found")

        existing = await self.bookings.list_for_date(business_id, target_date, ACTIVE_STATUSES)
        return find_nearest_available_slot(
            preferred_time,
            service.duration_minutes,
            existing,
            target_date,
            now=self.clock(),
            step=self.step_minutes,
            search_hours=search_hours or settings.NEAREST_SLOT_SEARCH_HOURS,
        )
