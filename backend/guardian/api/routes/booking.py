"""
Booking API routes.
"""
from fastapi import APIRouter, Depends, HTTPException, Query
from typing import Optional
import logging

from ..dependencies import get_booking_service, http_error
from ...booking import BookingService
from ...errors import GuardianError
from ...models.schemas import (
    BookingCancelRequest, BookingCreateRequest, BookingSearchRequest,
    BookingSimulateRequest, BookingUpdateRequest, PreferencesRequest
)
from ...utils import utcnow_iso

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", status_code=201)
async def create_booking(
    request: BookingCreateRequest,
    service: BookingService = Depends(get_booking_service)
):
    """
    Validate, confirm and persist a booking.

    Returns 400 when the booking data is invalid and 500 only when
    neither storage backend accepted the write.
    """
    try:
        booking, result = await service.create(request.user_id, request.booking_data)
    except GuardianError as e:
        raise http_error(e)

    return {
        "success": True,
        "booking": booking,
        "message": f"{booking['type'].capitalize()} booking confirmed successfully",
        "storage": result.to_dict()
    }


@router.get("/user/{user_id}")
async def get_user_bookings(
    user_id: str,
    status: Optional[str] = None,
    booking_type: Optional[str] = Query(None, alias="type"),
    limit: int = Query(50, ge=1, le=500),
    service: BookingService = Depends(get_booking_service)
):
    try:
        bookings = await service.list_for_user(user_id, status=status, booking_type=booking_type, limit=limit)
    except GuardianError as e:
        raise http_error(e)

    return {"success": True, "bookings": bookings, "count": len(bookings)}


@router.get("/stats/{user_id}")
async def get_booking_stats(
    user_id: str,
    service: BookingService = Depends(get_booking_service)
):
    try:
        stats = await service.stats(user_id)
    except GuardianError as e:
        raise http_error(e)

    return {"success": True, "stats": stats}


@router.post("/search")
async def search_bookings(
    request: BookingSearchRequest,
    service: BookingService = Depends(get_booking_service)
):
    try:
        bookings, criteria = await service.search(request.criteria, request.user_id)
    except GuardianError as e:
        raise http_error(e)

    return {"success": True, "bookings": bookings, "count": len(bookings), "searchCriteria": criteria}


@router.post("/simulate")
async def simulate_booking(
    request: BookingSimulateRequest,
    service: BookingService = Depends(get_booking_service)
):
    """Priced options for a booking request, cheapest first. Nothing is stored."""
    try:
        options = service.simulate(request.booking_data)
    except GuardianError as e:
        raise http_error(e)

    return {
        "success": True,
        "options": options,
        "searchCriteria": request.booking_data,
        "timestamp": utcnow_iso()
    }


@router.post("/preferences/{user_id}")
async def save_preferences(
    user_id: str,
    request: PreferencesRequest,
    service: BookingService = Depends(get_booking_service)
):
    try:
        await service.save_preferences(user_id, request.preferences)
    except GuardianError as e:
        raise http_error(e)

    return {"success": True, "message": "Preferences saved successfully"}


@router.get("/preferences/{user_id}")
async def get_preferences(
    user_id: str,
    service: BookingService = Depends(get_booking_service)
):
    try:
        preferences = await service.get_preferences(user_id)
    except GuardianError as e:
        raise http_error(e)

    return {"success": True, "preferences": preferences}


@router.get("/{booking_id}")
async def get_booking(
    booking_id: str,
    service: BookingService = Depends(get_booking_service)
):
    try:
        booking = await service.get(booking_id)
    except GuardianError as e:
        raise http_error(e)

    return {"success": True, "booking": booking}


@router.put("/{booking_id}")
async def update_booking(
    booking_id: str,
    request: BookingUpdateRequest,
    service: BookingService = Depends(get_booking_service)
):
    """Apply an update. Only the booking's owner may update it (403 otherwise)."""
    if not request.updates:
        raise HTTPException(status_code=400, detail="No updates provided")

    try:
        booking = await service.update(booking_id, request.user_id, request.updates)
    except GuardianError as e:
        raise http_error(e)

    return {"success": True, "booking": booking, "message": "Booking updated successfully"}


@router.delete("/{booking_id}")
async def cancel_booking(
    booking_id: str,
    request: BookingCancelRequest,
    service: BookingService = Depends(get_booking_service)
):
    """Cancel a booking. The record is kept with status cancelled."""
    try:
        booking = await service.cancel(booking_id, request.user_id, request.reason)
    except GuardianError as e:
        raise http_error(e)

    return {"success": True, "booking": booking, "message": "Booking cancelled successfully"}
