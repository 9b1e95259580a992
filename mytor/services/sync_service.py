"""
Booking change propagation for the owner calendar.

BookingService publishes a BookingChangeEvent on every write. A BookingFeed
holds one business/day and merges events by booking id; after a dropped
subscription, `resync()` pulls the day again and replaces the snapshot.
"""
from datetime import date, datetime
from enum import Enum
from typing import Callable, Dict, List

from pydantic import BaseModel, Field

from mytor.core.logger import logger
from mytor.models.db_models import ACTIVE_STATUSES, Booking
from mytor.services.ports import BookingRepository


class ChangeKind(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


class BookingChangeEvent(BaseModel):
    kind: ChangeKind
    booking: Booking
    occurred_at: datetime = Field(default_factory=datetime.now)


Listener = Callable[[BookingChangeEvent], None]


class BookingEventBus:
    def __init__(self):
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Registers `listener`; returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def publish(self, event: BookingChangeEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                # A broken subscriber must not fail the write that produced the event
                logger.error(f"❌ Booking listener failed on {event.kind.value} {event.booking.id}: {e}")


class BookingFeed:
    def __init__(self, repository: BookingRepository, business_id: str, day: date):
        self.repository = repository
        self.business_id = business_id
        self.day = day
        self._bookings: Dict[str, Booking] = {}

    def on_booking_changed(self, event: BookingChangeEvent) -> None:
        booking = event.booking
        if booking.business_id != self.business_id:
            return

        held = self._bookings.get(booking.id)
        if held is not None and booking.updated_at < held.updated_at:
            # Out-of-order delivery of an older version
            return

        if event.kind == ChangeKind.DELETED or booking.date != self.day:
            # Deleted, or rescheduled away from this day
            self._bookings.pop(booking.id, None)
            return

        self._bookings[booking.id] = booking

    async def resync(self) -> None:
        fresh = await self.repository.list_for_date(self.business_id, self.day)
        self._bookings = {b.id: b for b in fresh}
        logger.info(f"🔄 Feed for {self.business_id} on {self.day} resynced ({len(fresh)} bookings)")

    def bookings(self) -> List[Booking]:
        return sorted(self._bookings.values(), key=lambda b: (b.start_minutes, b.created_at))

    def active_bookings(self) -> List[Booking]:
        return [b for b in self.bookings() if b.status in ACTIVE_STATUSES]
