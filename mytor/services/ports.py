from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date
from typing import Iterable, List, Optional

from mytor.models.db_models import Booking, BookingStatus, BusinessProfile


class BusinessDirectory(ABC):
    """Read-only access to business profiles (services, windows, blocked dates)."""

    @abstractmethod
    async def get_by_slug(self, slug: str) -> BusinessProfile:
        """Return the active business for `slug`. Raises NotFoundError."""
        raise NotImplementedError

    @abstractmethod
    async def get_by_id(self, business_id: str) -> BusinessProfile:
        """Raises NotFoundError."""
        raise NotImplementedError


class BookingRepository(ABC):
    @abstractmethod
    async def get(self, booking_id: str) -> Booking:
        """Raises NotFoundError."""
        raise NotImplementedError

    @abstractmethod
    async def list_for_date(
        self,
        business_id: str,
        target_date: date,
        statuses: Optional[Iterable[BookingStatus]] = None,
    ) -> List[Booking]:
        raise NotImplementedError

    @abstractmethod
    async def create(self, booking: Booking) -> Booking:
        raise NotImplementedError

    @abstractmethod
    async def update(self, booking: Booking) -> Booking:
        raise NotImplementedError


class CodeSender(ABC):
    @abstractmethod
    async def send_code(self, phone: str, code: str, channel: str) -> None:
        """Deliver a one-time code. Raises TransientError when delivery should be retried."""
        raise NotImplementedError
