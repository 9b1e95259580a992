from __future__ import annotations

from datetime import date
from typing import Dict, Iterable, List, Optional

from mytor.core.exceptions import NotFoundError
from mytor.models.db_models import Booking, BookingStatus, BusinessProfile
from mytor.services.ports import BookingRepository, BusinessDirectory


class MemoryBusinessDirectory(BusinessDirectory):
    def __init__(self, profiles: Iterable[BusinessProfile] = ()) -> None:
        self._by_id: Dict[str, BusinessProfile] = {}
        for profile in profiles:
            self.add(profile)

    def add(self, profile: BusinessProfile) -> None:
        self._by_id[profile.id] = profile

    async def get_by_slug(self, slug: str) -> BusinessProfile:
        for profile in self._by_id.values():
            if profile.slug == slug and profile.is_active:
                return profile
        raise NotFoundError(f"Business '{slug}' not found or inactive")

    async def get_by_id(self, business_id: str) -> BusinessProfile:
        profile = self._by_id.get(business_id)
        if profile is None:
            raise NotFoundError(f"Business '{business_id}' not found")
        return profile


class MemoryBookingRepository(BookingRepository):
    def __init__(self, bookings: Iterable[Booking] = ()) -> None:
        self._bookings: Dict[str, Booking] = {}
        for booking in bookings:
            self._bookings[booking.id] = booking

    async def get(self, booking_id: str) -> Booking:
        booking = self._bookings.get(booking_id)
        if booking is None:
            raise NotFoundError(f"Booking '{booking_id}' not found")
        return booking

    async def list_for_date(
        self,
        business_id: str,
        target_date: date,
        statuses: Optional[Iterable[BookingStatus]] = None,
    ) -> List[Booking]:
        wanted = set(statuses) if statuses is not None else None
        found = [
            b for b in self._bookings.values()
            if b.business_id == business_id
            and b.date == target_date
            and (wanted is None or b.status in wanted)
        ]
        return sorted(found, key=lambda b: (b.start_minutes, b.created_at))

    async def create(self, booking: Booking) -> Booking:
        self._bookings[booking.id] = booking
        return booking

    async def update(self, booking: Booking) -> Booking:
        if booking.id not in self._bookings:
            raise NotFoundError(f"Booking '{booking.id}' not found")
        self._bookings[booking.id] = booking
        return booking
