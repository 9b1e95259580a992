from typing import List

from fastapi import APIRouter, Depends, Query

from mytor.api.deps import get_booking_service, get_business_directory, get_slot_service, get_workflow
from mytor.core.exceptions import ValidationError
from mytor.core.security import rate_limit_public
from mytor.models.api_models import (
    AbandonRequest,
    AdvanceRequest,
    AvailableSlotsResponse,
    BookedIntervalResponse,
    PublicBookingRequest,
    PublicBusinessResponse,
    ResendRequest,
)
from mytor.models.db_models import ACTIVE_STATUSES
from mytor.models.workflow_models import BookingDraft, WorkflowResult
from mytor.services.booking_service import BookingService
from mytor.services.ports import BusinessDirectory
from mytor.services.slot_service import SlotService
from mytor.services.workflow_service import BookingWorkflow

router = APIRouter(prefix="/public", tags=["Public"], dependencies=[Depends(rate_limit_public)])


def _check_slug(slug: str, draft: BookingDraft):
    if draft.business_slug != slug:
        raise ValidationError("The booking draft belongs to another business")


@router.get("/{slug}", response_model=PublicBusinessResponse)
async def get_business(slug: str, directory: BusinessDirectory = Depends(get_business_directory)):
    profile = await directory.get_by_slug(slug)
    return PublicBusinessResponse.from_profile(profile)


@router.get("/{slug}/available-slots", response_model=AvailableSlotsResponse)
async def get_available_slots(
    slug: str,
    date: str = Query(...),
    service_id: str = Query(...),
    slot_service: SlotService = Depends(get_slot_service),
):
    result = await slot_service.get_available_slots(slug, date, service_id)
    return AvailableSlotsResponse(
        date=result.date,
        service_id=result.service.id,
        service_name=result.service.name,
        duration_minutes=result.service.duration_minutes,
        available_slots=result.available_slots,
        total_slots=result.total_slots,
    )


@router.get("/{slug}/appointments", response_model=List[BookedIntervalResponse])
async def list_booked_intervals(
    slug: str,
    date: str = Query(...),
    directory: BusinessDirectory = Depends(get_business_directory),
    booking_service: BookingService = Depends(get_booking_service),
):
    # Occupied times only, client details stay with the owner
    profile = await directory.get_by_slug(slug)
    bookings = await booking_service.list_bookings(profile.id, date, ACTIVE_STATUSES)
    return [BookedIntervalResponse.from_booking(b) for b in sorted(bookings, key=lambda b: b.start_minutes)]


@router.post("/{slug}/booking/start", response_model=WorkflowResult)
async def start_booking(slug: str, workflow: BookingWorkflow = Depends(get_workflow)):
    return await workflow.begin(slug)


@router.post("/{slug}/booking/advance", response_model=WorkflowResult)
async def advance_booking(slug: str, req: AdvanceRequest, workflow: BookingWorkflow = Depends(get_workflow)):
    _check_slug(slug, req.draft)
    return await workflow.advance(req.draft, req.step, req.payload)


@router.post("/{slug}/booking/resend", response_model=WorkflowResult)
async def resend_code(slug: str, req: ResendRequest, workflow: BookingWorkflow = Depends(get_workflow)):
    _check_slug(slug, req.draft)
    return await workflow.resend_code(req.draft, req.channel)


@router.post("/{slug}/booking/abandon", response_model=WorkflowResult)
async def abandon_booking(slug: str, req: AbandonRequest, workflow: BookingWorkflow = Depends(get_workflow)):
    _check_slug(slug, req.draft)
    return await workflow.abandon(req.draft)


@router.post("/{slug}/appointments", status_code=201)
async def request_appointment(
    slug: str,
    req: PublicBookingRequest,
    booking_service: BookingService = Depends(get_booking_service),
):
    booking = await booking_service.request_booking(
        slug,
        req.service_id,
        req.date,
        req.start_time,
        req.client_name,
        req.client_phone,
        req.note,
    )
    return {
        "message": "Booking request sent",
        "appointment_id": booking.id,
        "status": booking.status.value,
    }
