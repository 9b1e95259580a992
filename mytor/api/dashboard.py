from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from mytor.api.deps import get_booking_service, get_slot_service
from mytor.core.security import verify_owner_token
from mytor.models.api_models import (
    BookingResponse,
    CalendarResponse,
    ConflictCheckRequest,
    ConflictCheckResponse,
    NearestSlotResponse,
    OwnerBookingRequest,
    RescheduleRequest,
    StatusUpdateRequest,
)
from mytor.services import time_utils
from mytor.services.booking_service import BookingService
from mytor.services.layout_service import compute_overlap_layout
from mytor.services.slot_service import SlotService

router = APIRouter(tags=["Dashboard"], dependencies=[Depends(verify_owner_token)])


@router.get("/businesses/{business_id}/appointments", response_model=List[BookingResponse])
async def list_appointments(
    business_id: str,
    date: str = Query(...),
    status: Optional[str] = Query(None),
    booking_service: BookingService = Depends(get_booking_service),
):
    statuses = [BookingService.parse_status(s) for s in status.split(",")] if status else None
    bookings = await booking_service.list_bookings(business_id, date, statuses)
    return [BookingResponse.from_booking(b) for b in bookings]


@router.get("/businesses/{business_id}/calendar", response_model=CalendarResponse)
async def get_calendar(
    business_id: str,
    date: str = Query(...),
    booking_service: BookingService = Depends(get_booking_service),
):
    feed = await booking_service.day_feed(business_id, date)
    bookings = feed.active_bookings()
    return CalendarResponse(
        date=feed.day,
        bookings=[BookingResponse.from_booking(b) for b in bookings],
        layout=compute_overlap_layout(bookings),
    )


@router.post("/businesses/{business_id}/appointments", response_model=BookingResponse, status_code=201)
async def create_appointment(
    business_id: str,
    req: OwnerBookingRequest,
    booking_service: BookingService = Depends(get_booking_service),
):
    booking = await booking_service.create_owner_booking(
        business_id,
        req.date,
        req.start_time,
        req.client_name,
        client_phone=req.client_phone,
        service_id=req.service_id,
        end_time=req.end_time,
        note=req.note,
        status=req.status,
    )
    return BookingResponse.from_booking(booking)


@router.post("/businesses/{business_id}/appointments/check-conflict", response_model=ConflictCheckResponse)
async def check_conflict(
    business_id: str,
    req: ConflictCheckRequest,
    booking_service: BookingService = Depends(get_booking_service),
):
    conflict = await booking_service.check_conflict(
        business_id,
        req.date,
        req.start_time,
        service_id=req.service_id,
        end_time=req.end_time,
        exclude_booking_id=req.exclude_booking_id,
    )
    if conflict is None:
        return ConflictCheckResponse(has_conflict=False)
    return ConflictCheckResponse(
        has_conflict=True,
        conflicting_booking_id=conflict.id,
        conflicting_start=conflict.start_time,
        conflicting_end=conflict.end_time,
    )


@router.get("/businesses/{business_id}/nearest-slot", response_model=NearestSlotResponse)
async def nearest_slot(
    business_id: str,
    date: str = Query(...),
    time: str = Query(...),
    service_id: str = Query(...),
    slot_service: SlotService = Depends(get_slot_service),
):
    slot = await slot_service.find_nearest_slot(business_id, service_id, date, time)
    return NearestSlotResponse(preferred_time=time_utils.normalize_time(time), nearest_slot=slot)


@router.get("/appointments/{booking_id}", response_model=BookingResponse)
async def get_appointment(booking_id: str, booking_service: BookingService = Depends(get_booking_service)):
    return BookingResponse.from_booking(await booking_service.get_booking(booking_id))


@router.patch("/appointments/{booking_id}", response_model=BookingResponse)
async def update_appointment(
    booking_id: str,
    req: RescheduleRequest,
    booking_service: BookingService = Depends(get_booking_service),
):
    booking = await booking_service.reschedule_booking(
        booking_id,
        target_date=req.date,
        start_time=req.start_time,
        service_id=req.service_id,
        end_time=req.end_time,
        note=req.note,
    )
    return BookingResponse.from_booking(booking)


@router.patch("/appointments/{booking_id}/status", response_model=BookingResponse)
async def update_appointment_status(
    booking_id: str,
    req: StatusUpdateRequest,
    booking_service: BookingService = Depends(get_booking_service),
):
    booking = await booking_service.update_status(booking_id, req.status)
    return BookingResponse.from_booking(booking)
