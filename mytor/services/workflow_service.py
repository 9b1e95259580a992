"""
Client Booking Workflow

Drives one booking attempt through
service -> date -> time -> contact details -> code verification -> committed.

Every call takes the client-held BookingDraft and returns a WorkflowResult
holding the next draft and, on failure, a user-facing error. Input problems
never raise: the unchanged draft comes back with the reason.
"""
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from mytor.core.config import settings
from mytor.core.exceptions import (
    BookingEngineError,
    CodeMismatchError,
    ConflictError,
    ExpiredCodeError,
    ValidationError,
)
from mytor.core.logger import logger
from mytor.core.retry import retry_transient
from mytor.models.workflow_models import (
    STEP_ORDER,
    BookingDraft,
    ContactDetails,
    WorkflowError,
    WorkflowResult,
    WorkflowStep,
)
from mytor.services import time_utils
from mytor.services.availability import AvailabilityModel
from mytor.services.booking_service import BookingService
from mytor.services.ports import BusinessDirectory
from mytor.services.slot_service import SlotService
from mytor.services.validators import validate_name, validate_phone
from mytor.services.verification_service import CHANNELS, VerificationService


def _failure(draft: BookingDraft, error: BookingEngineError) -> WorkflowResult:
    return WorkflowResult(
        draft=draft,
        error=WorkflowError(
            kind=error.kind,
            message=error.reason,
            retry_after=getattr(error, "retry_after", None),
        ),
    )


class BookingWorkflow:
    def __init__(
        self,
        directory: BusinessDirectory,
        slot_service: SlotService,
        verification: VerificationService,
        booking_service: BookingService,
        clock: Callable[[], datetime] = datetime.now,
        retry_attempts: int = None,
        retry_delay_seconds: float = 0.2,
    ):
        self.directory = directory
        self.slot_service = slot_service
        self.verification = verification
        self.booking_service = booking_service
        self.clock = clock
        self.retry_attempts = retry_attempts or settings.TRANSIENT_RETRY_ATTEMPTS
        self.retry_delay_seconds = retry_delay_seconds

        self._handlers = {
            WorkflowStep.SERVICE_SELECTION: self._select_service,
            WorkflowStep.DATE_SELECTION: self._select_date,
            WorkflowStep.TIME_SELECTION: self._select_time,
            WorkflowStep.CONTACT_DETAILS: self._submit_contact,
            WorkflowStep.VERIFICATION: self._submit_code,
        }

    async def _retry(self, operation, label: str):
        return await retry_transient(
            operation,
            attempts=self.retry_attempts,
            delay_seconds=self.retry_delay_seconds,
            label=label,
        )

    async def begin(self, slug: str) -> WorkflowResult:
        """
        Starts a draft for business `slug`.
        A single active service is pre-selected; the client still confirms it.
        """
        profile = await self._retry(lambda: self.directory.get_by_slug(slug), "business lookup")
        draft = BookingDraft(business_slug=profile.slug)

        services = profile.active_services()
        if len(services) == 1:
            draft = draft.model_copy(update={
                "service_id": services[0].id,
                "service_duration": services[0].duration_minutes,
            })

        logger.info(f"🆕 Booking flow started for {profile.slug} ({len(services)} active services)")
        return WorkflowResult(draft=draft)

    async def advance(self, draft: BookingDraft, step, payload: Optional[Dict[str, Any]] = None) -> WorkflowResult:
        """Submits `step` with `payload`; the current step or any earlier one may be submitted."""
        if draft.is_terminal:
            return _failure(draft, ValidationError(f"This booking flow is already {draft.state.value}"))

        try:
            step = WorkflowStep(step)
        except ValueError:
            return _failure(draft, ValidationError(f"Unknown step '{step}'"))

        if step not in STEP_ORDER or STEP_ORDER.index(step) > STEP_ORDER.index(draft.state):
            return _failure(draft, ValidationError(f"Step '{step.value}' is not available yet"))

        try:
            return await self._handlers[step](draft, payload or {})
        except BookingEngineError as e:
            logger.info(f"↩️ Step {step.value} rejected for {draft.business_slug}: {e.reason}")
            return _failure(draft, e)

    async def resend_code(self, draft: BookingDraft, channel: Optional[str] = None) -> WorkflowResult:
        if draft.state != WorkflowStep.VERIFICATION or draft.contact is None:
            return _failure(draft, ValidationError("There is no code to resend at this step"))

        channel = channel or draft.channel
        try:
            await self._send_code(draft.contact.phone, channel)
        except BookingEngineError as e:
            return _failure(draft, e)
        return WorkflowResult(draft=draft.model_copy(update={"channel": channel, "code_attempt": None}))

    async def abandon(self, draft: BookingDraft) -> WorkflowResult:
        if draft.state == WorkflowStep.COMMITTED:
            return _failure(draft, ValidationError("The booking was already submitted"))
        if draft.state != WorkflowStep.ABANDONED:
            logger.info(f"🚪 Booking flow abandoned for {draft.business_slug} at {draft.state.value}")
        return WorkflowResult(draft=draft.model_copy(update={"state": WorkflowStep.ABANDONED}))

    # --- Steps ---

    async def _select_service(self, draft: BookingDraft, payload: Dict[str, Any]) -> WorkflowResult:
        service_id = payload.get("service_id")
        if not service_id:
            raise ValidationError("Please choose a service")

        profile = await self._retry(lambda: self.directory.get_by_slug(draft.business_slug), "business lookup")
        service = profile.find_service(service_id)
        if service is None or not service.active:
            raise ValidationError("This service is not available")

        updates = {
            "service_id": service.id,
            "service_duration": service.duration_minutes,
            "state": WorkflowStep.DATE_SELECTION,
        }
        if draft.service_duration != service.duration_minutes:
            # Slot list and chosen time were computed for another length
            updates.update({"start_time": None, "available_slots": []})
        return WorkflowResult(draft=draft.model_copy(update=updates))

    async def _select_date(self, draft: BookingDraft, payload: Dict[str, Any]) -> WorkflowResult:
        if not draft.service_id:
            raise ValidationError("Please choose a service first")

        target_date = time_utils.parse_date(payload.get("date"))
        if time_utils.is_past_date(target_date, self.clock()):
            raise ValidationError("Please choose a date that is not in the past")

        profile = await self._retry(lambda: self.directory.get_by_slug(draft.business_slug), "business lookup")
        if not AvailabilityModel.from_profile(profile).is_open(target_date):
            raise ValidationError("The business is closed on this day")

        result = await self._retry(
            lambda: self.slot_service.get_available_slots(draft.business_slug, target_date, draft.service_id),
            "slot fetch",
        )

        updates = {
            "date": target_date,
            "available_slots": result.available_slots,
            "state": WorkflowStep.TIME_SELECTION,
        }
        if draft.date != target_date or draft.start_time not in result.available_slots:
            updates["start_time"] = None
        return WorkflowResult(draft=draft.model_copy(update=updates))

    async def _select_time(self, draft: BookingDraft, payload: Dict[str, Any]) -> WorkflowResult:
        if not draft.service_id or draft.date is None:
            raise ValidationError("Please choose a service and a date first")
        start_time = time_utils.normalize_time(payload.get("start_time") or "")

        # The draft's slot list comes back from the client, so it is fetched again here
        result = await self._retry(
            lambda: self.slot_service.get_available_slots(draft.business_slug, draft.date, draft.service_id),
            "slot fetch",
        )
        if start_time not in result.available_slots:
            failed = draft.model_copy(update={"available_slots": result.available_slots})
            return _failure(failed, ValidationError(f"The time {start_time} is not available, please pick one from the list"))

        return WorkflowResult(draft=draft.model_copy(update={
            "start_time": start_time,
            "available_slots": result.available_slots,
            "service_duration": result.service.duration_minutes,
            "state": WorkflowStep.CONTACT_DETAILS,
        }))

    async def _submit_contact(self, draft: BookingDraft, payload: Dict[str, Any]) -> WorkflowResult:
        name = validate_name(payload.get("name"))
        phone = validate_phone(payload.get("phone"))
        note = (payload.get("note") or "").strip() or None
        channel = payload.get("channel") or draft.channel

        # A phone verified moments ago (e.g. before a slot conflict) is not sent a new code
        if not self.verification.is_verified(phone):
            await self._send_code(phone, channel)

        return WorkflowResult(draft=draft.model_copy(update={
            "contact": ContactDetails(name=name, phone=phone, note=note),
            "channel": channel,
            "code_attempt": None,
            "state": WorkflowStep.VERIFICATION,
        }))

    async def _submit_code(self, draft: BookingDraft, payload: Dict[str, Any]) -> WorkflowResult:
        if draft.contact is None or not draft.start_time:
            raise ValidationError("Booking details are incomplete")

        code = str(payload.get("code") or draft.code_attempt or "").strip()
        phone = draft.contact.phone

        if not self.verification.is_verified(phone):
            if not code:
                raise ValidationError("Please enter the code you received")
            try:
                await self.verification.verify(phone, code)
            except (CodeMismatchError, ExpiredCodeError) as e:
                return _failure(draft.model_copy(update={"code_attempt": None}), e)

        try:
            booking = await self.booking_service.request_booking(
                draft.business_slug,
                draft.service_id,
                draft.date,
                draft.start_time,
                draft.contact.name,
                phone,
                draft.contact.note,
            )
        except ConflictError as e:
            logger.warning(f"⚠️ Slot {draft.start_time} on {draft.date} was taken before commit, back to time selection")
            result = await self._retry(
                lambda: self.slot_service.get_available_slots(draft.business_slug, draft.date, draft.service_id),
                "slot fetch",
            )
            regressed = draft.model_copy(update={
                "state": WorkflowStep.TIME_SELECTION,
                "start_time": None,
                "available_slots": result.available_slots,
                "code_attempt": None,
            })
            return _failure(regressed, e)

        logger.info(f"🎉 Booking flow committed for {draft.business_slug}: booking {booking.id}")
        return WorkflowResult(draft=draft.model_copy(update={
            "state": WorkflowStep.COMMITTED,
            "booking_id": booking.id,
            "code_attempt": None,
        }))

    async def _send_code(self, phone: str, channel: str) -> None:
        if channel not in CHANNELS:
            raise ValidationError(f"Unknown delivery channel '{channel}'")
        await self._retry(lambda: self.verification.send(phone, channel), "code delivery")
