import asyncio
from collections import defaultdict
from datetime import datetime
from typing import Callable, Iterable, List, Optional

from mytor.core.config import settings
from mytor.core.exceptions import (
    ConflictError,
    NotFoundError,
    ValidationError,
    VerificationRequiredError,
)
from mytor.core.logger import logger
from mytor.models.db_models import (
    ACTIVE_STATUSES,
    STATUS_TRANSITIONS,
    Booking,
    BookingStatus,
    BusinessProfile,
)
from mytor.services import time_utils
from mytor.services.availability import AvailabilityModel
from mytor.services.conflict_service import ConflictService, find_conflict, is_editable, resolve_duration
from mytor.services.notification_service import notify_client_status, notify_owner_new_request
from mytor.services.ports import BookingRepository, BusinessDirectory
from mytor.services.slot_service import generate_slots
from mytor.services.sync_service import BookingChangeEvent, BookingEventBus, BookingFeed, ChangeKind
from mytor.services.validators import normalize_phone, validate_name, validate_phone
from mytor.services.verification_service import VerificationService


class BookingService:
    def __init__(
        self,
        directory: BusinessDirectory,
        bookings: BookingRepository,
        verification: VerificationService,
        events: Optional[BookingEventBus] = None,
        clock: Callable[[], datetime] = datetime.now,
        edit_margin_hours: int = None,
        step_minutes: int = None,
    ):
        self.directory = directory
        self.bookings = bookings
        self.conflicts = ConflictService(bookings)
        self.verification = verification
        self.events = events or BookingEventBus()
        self.clock = clock
        self.edit_margin_hours = settings.OWNER_EDIT_MARGIN_HOURS if edit_margin_hours is None else edit_margin_hours
        self.step_minutes = step_minutes or settings.SLOT_STEP_MINUTES
        # Conflict check and write happen under one lock per business
        self._locks = defaultdict(asyncio.Lock)

    def _check_not_past(self, target_date, start_time: str) -> None:
        now = self.clock()
        if time_utils.is_past_date(target_date, now):
            raise ValidationError("Cannot book a date in the past")
        if time_utils.is_past_time(start_time, target_date, now):
            raise ValidationError("Cannot book a time that has already passed")

    async def _commit(self, booking: Booking, availability: Optional[AvailabilityModel] = None) -> Booking:
        """
        Writes `booking` if nothing overlaps it.
        With `availability` the start must also be one of the day's generated slots
        (fits a window, sits on the step grid, not passed).
        """
        async with self._locks[booking.business_id]:
            existing = await self.bookings.list_for_date(booking.business_id, booking.date, ACTIVE_STATUSES)
            conflict = find_conflict(existing, booking.start_time, booking.duration_minutes)
            if conflict:
                logger.info(f"⛔ Booking at {booking.start_time} overlaps {conflict.id} ({conflict.start_time}-{conflict.end_time})")
                raise ConflictError(
                    f"The time is taken, it overlaps a booking at {conflict.start_time}",
                    conflicting_start=conflict.start_time,
                    conflicting_booking_id=conflict.id,
                )

            if availability is not None:
                slots = generate_slots(
                    booking.date,
                    booking.duration_minutes,
                    availability,
                    existing,
                    now=self.clock(),
                    step=self.step_minutes,
                )
                if booking.start_time not in slots:
                    logger.warning(f"⚠️ {booking.start_time} on {booking.date} is not an offered slot ({len(slots)} free)")
                    raise ValidationError(f"The time {booking.start_time} is not available for this service")

            created = await self.bookings.create(booking)

        self.events.publish(BookingChangeEvent(kind=ChangeKind.CREATED, booking=created, occurred_at=self.clock()))
        return created

    async def request_booking(
        self,
        slug: str,
        service_id: str,
        target_date,
        start_time: str,
        client_name: str,
        client_phone: str,
        note: Optional[str] = None,
    ) -> Booking:
        """
        Public booking request from a verified client (Async).
        The slot is re-validated here; whatever the client saw earlier is not trusted.
        """
        # 1. Input
        client_name = validate_name(client_name)
        client_phone = validate_phone(client_phone)
        target_date = time_utils.parse_date(target_date)
        start_time = time_utils.normalize_time(start_time)
        logger.info(f"📥 Booking request - {slug} {target_date} {start_time} for {client_phone}")

        # 2. Business and service
        profile = await self.directory.get_by_slug(slug)
        service = profile.find_service(service_id)
        if service is None or not service.active:
            raise NotFoundError("Service not found or inactive")

        # 3. Phone verification
        if not self.verification.is_verified(client_phone):
            logger.warning(f"⚠️ Booking request for unverified phone {client_phone}")
            raise VerificationRequiredError("Phone verification is required")

        # 4. Business hours
        self._check_not_past(target_date, start_time)
        availability = AvailabilityModel.from_profile(profile)
        if not availability.is_open(target_date):
            raise ValidationError("The business is closed on this day")
        if not availability.is_time_within_hours(target_date, start_time):
            raise ValidationError(f"The time {start_time} is outside business hours")

        # 5. Conflict re-check and write
        booking = Booking(
            business_id=profile.id,
            service_id=service.id,
            date=target_date,
            start_time=start_time,
            duration_minutes=service.duration_minutes,
            status=BookingStatus.PENDING,
            client_name=client_name,
            client_phone=client_phone,
            note=(note or "").strip() or None,
            client_verified=True,
            created_at=self.clock(),
            updated_at=self.clock(),
        )
        created = await self._commit(booking, availability)
        self.verification.consume_verification(client_phone)
        logger.info(f"✅ Booking {created.id} created as pending for {profile.slug}")

        # 6. Owner notification never fails the booking
        try:
            await asyncio.to_thread(notify_owner_new_request, profile, created)
        except Exception as e:
            logger.error(f"❌ Owner notification failed for booking {created.id}: {e}")

        return created

    async def create_owner_booking(
        self,
        business_id: str,
        target_date,
        start_time: str,
        client_name: str,
        client_phone: str = "",
        service_id: Optional[str] = None,
        end_time: Optional[str] = None,
        note: Optional[str] = None,
        status: BookingStatus = BookingStatus.CONFIRMED,
    ) -> Booking:
        """
        Booking entered by the owner. Business hours are not enforced, overlaps are.
        Length comes from `end_time` when given, else from the service.
        """
        profile = await self.directory.get_by_id(business_id)
        client_name = validate_name(client_name)
        client_phone = validate_phone(client_phone) if normalize_phone(client_phone) else ""
        target_date = time_utils.parse_date(target_date)
        start_time = time_utils.normalize_time(start_time)

        status = self.parse_status(status)
        if status not in ACTIVE_STATUSES:
            raise ValidationError("A new booking must be pending or confirmed")

        service = self._service_or_none(profile, service_id)
        duration = resolve_duration(start_time, service=service, end_time=end_time)
        self._check_not_past(target_date, start_time)
        if time_utils.to_minutes(start_time) + duration > time_utils.MINUTES_PER_DAY:
            raise ValidationError("A booking may not run past midnight")

        booking = Booking(
            business_id=profile.id,
            service_id=service.id if service else None,
            date=target_date,
            start_time=start_time,
            duration_minutes=duration,
            status=status,
            client_name=client_name,
            client_phone=client_phone,
            note=(note or "").strip() or None,
            created_at=self.clock(),
            updated_at=self.clock(),
        )
        created = await self._commit(booking)
        logger.info(f"✅ Owner booking {created.id} created ({created.start_time}-{created.end_time}, {created.status.value})")
        return created

    async def reschedule_booking(
        self,
        booking_id: str,
        target_date=None,
        start_time: Optional[str] = None,
        service_id: Optional[str] = None,
        end_time: Optional[str] = None,
        note: Optional[str] = None,
    ) -> Booking:
        booking = await self.bookings.get(booking_id)
        if booking.status not in ACTIVE_STATUSES:
            raise ValidationError(f"A {booking.status.value} booking cannot be edited")
        if not is_editable(booking, self.clock(), self.edit_margin_hours):
            raise ValidationError(f"Bookings can only be edited up to {self.edit_margin_hours}h before they start")

        profile = await self.directory.get_by_id(booking.business_id)
        new_date = time_utils.parse_date(target_date) if target_date else booking.date
        new_start = time_utils.normalize_time(start_time) if start_time else booking.start_time

        service = self._service_or_none(profile, service_id)
        if end_time or service is not None:
            duration = resolve_duration(new_start, service=service, end_time=end_time)
        else:
            duration = booking.duration_minutes

        self._check_not_past(new_date, new_start)
        if time_utils.to_minutes(new_start) + duration > time_utils.MINUTES_PER_DAY:
            raise ValidationError("A booking may not run past midnight")

        updates = {
            "date": new_date,
            "start_time": new_start,
            "duration_minutes": duration,
            "updated_at": self.clock(),
        }
        if service is not None:
            updates["service_id"] = service.id
        if note is not None:
            updates["note"] = note.strip() or None
        changed = booking.model_copy(update=updates)

        async with self._locks[booking.business_id]:
            conflict = await self.conflicts.find_conflict(
                changed.business_id, changed.date, changed.start_time, changed.duration_minutes,
                exclude_booking_id=changed.id,
            )
            if conflict:
                raise ConflictError(
                    f"The new time overlaps a booking at {conflict.start_time}-{conflict.end_time}",
                    conflicting_start=conflict.start_time,
                    conflicting_booking_id=conflict.id,
                )
            saved = await self.bookings.update(changed)

        logger.info(f"✏️ Booking {saved.id} moved to {saved.date} {saved.start_time}-{saved.end_time}")
        self.events.publish(BookingChangeEvent(kind=ChangeKind.UPDATED, booking=saved, occurred_at=self.clock()))
        return saved

    async def update_status(self, booking_id: str, status) -> Booking:
        status = self.parse_status(status)
        booking = await self.bookings.get(booking_id)

        if booking.status == status:
            return booking
        if status not in STATUS_TRANSITIONS[booking.status]:
            raise ValidationError(f"Cannot change a {booking.status.value} booking to {status.value}")

        saved = await self.bookings.update(booking.model_copy(update={"status": status, "updated_at": self.clock()}))
        logger.info(f"🔁 Booking {saved.id}: {booking.status.value} -> {saved.status.value}")
        self.events.publish(BookingChangeEvent(kind=ChangeKind.UPDATED, booking=saved, occurred_at=self.clock()))

        if saved.status in (BookingStatus.CONFIRMED, BookingStatus.DECLINED) and saved.client_phone:
            try:
                profile = await self.directory.get_by_id(saved.business_id)
                await asyncio.to_thread(notify_client_status, profile, saved)
            except Exception as e:
                logger.error(f"❌ Client notification failed for booking {saved.id}: {e}")
        return saved

    async def check_conflict(
        self,
        business_id: str,
        target_date,
        start_time: str,
        service_id: Optional[str] = None,
        end_time: Optional[str] = None,
        exclude_booking_id: Optional[str] = None,
    ) -> Optional[Booking]:
        """Dry-run overlap check for the owner forms; returns the clashing booking or None."""
        profile = await self.directory.get_by_id(business_id)
        start_time = time_utils.normalize_time(start_time)
        duration = resolve_duration(start_time, service=self._service_or_none(profile, service_id), end_time=end_time)
        return await self.conflicts.find_conflict(
            profile.id, time_utils.parse_date(target_date), start_time, duration, exclude_booking_id
        )

    async def get_booking(self, booking_id: str) -> Booking:
        return await self.bookings.get(booking_id)

    async def list_bookings(
        self,
        business_id: str,
        target_date,
        statuses: Optional[Iterable[BookingStatus]] = None,
    ) -> List[Booking]:
        await self.directory.get_by_id(business_id)
        return await self.bookings.list_for_date(business_id, time_utils.parse_date(target_date), statuses)

    async def day_feed(self, business_id: str, target_date) -> BookingFeed:
        """
        Feed of one business day, pulled fresh from storage.
        Callers that stay connected can keep it current with
        `self.events.subscribe(feed.on_booking_changed)`.
        """
        await self.directory.get_by_id(business_id)
        feed = BookingFeed(self.bookings, business_id, time_utils.parse_date(target_date))
        await feed.resync()
        return feed

    @staticmethod
    def parse_status(status) -> BookingStatus:
        try:
            return BookingStatus(status)
        except ValueError:
            raise ValidationError(f"Invalid status '{status}'")

    @staticmethod
    def _service_or_none(profile: BusinessProfile, service_id: Optional[str]):
        if not service_id:
            return None
        service = profile.find_service(service_id)
        if service is None:
            raise NotFoundError("Service not found")
        return service
