"""
Booking endpoints: list, create, approve/reject, cancel.
Every successful mutation is followed by a booking_change broadcast.
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from roombook.api.deps import get_change_source
from roombook.db.session import get_db
from roombook.models.booking import STATUS_APPROVED, STATUS_REJECTED
from roombook.schemas.booking import (
    BookingProposal,
    BookingRejection,
    BookingResponse,
    CancelResponse,
    StatusChangeResponse,
)
from roombook.services.booking_service import (
    cancel_booking,
    cancel_bookings,
    create_booking,
    set_booking_status,
)
from roombook.services.booking_store import list_bookings
from roombook.services.change_source import ChangeSource
from roombook.core.security import get_current_role, require_admin
from roombook.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/bookings", tags=["Bookings"])


@router.get("", response_model=list[BookingResponse])
async def list_bookings_endpoint(
    room_id: Optional[str] = Query(None),
    booking_date: Optional[date] = Query(None, alias="date"),
    booking_status: Optional[str] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
):
    """All bookings, newest first. Order is stable for client reconciliation."""
    return await list_bookings(db, room_id, booking_date, booking_status)


@router.post(
    "",
    response_model=BookingResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"model": BookingRejection}, 503: {"model": BookingRejection}},
)
async def create_booking_endpoint(
    proposal: BookingProposal,
    role: str = Depends(get_current_role),
    db: AsyncSession = Depends(get_db),
    changes: ChangeSource = Depends(get_change_source),
):
    """
    Book a room.

    The proposal goes through the full validator right before the insert.
    A conflict or rule violation returns 409 with the reasons; a store
    failure returns 503.
    """
    booking = await create_booking(db, proposal, role)
    await changes.publish_created(booking)
    return booking


@router.post("/{booking_id}/approve", response_model=StatusChangeResponse)
async def approve_booking_endpoint(
    booking_id: str,
    _admin: str = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    changes: ChangeSource = Depends(get_change_source),
):
    booking = await set_booking_status(db, booking_id, STATUS_APPROVED)
    await changes.publish_status_change(booking)
    return StatusChangeResponse(
        message="Booking approved",
        booking_id=booking.booking_id,
        status=booking.status,
    )


@router.post("/{booking_id}/reject", response_model=StatusChangeResponse)
async def reject_booking_endpoint(
    booking_id: str,
    _admin: str = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    changes: ChangeSource = Depends(get_change_source),
):
    booking = await set_booking_status(db, booking_id, STATUS_REJECTED)
    await changes.publish_status_change(booking)
    return StatusChangeResponse(
        message="Booking rejected",
        booking_id=booking.booking_id,
        status=booking.status,
    )


@router.delete("", response_model=CancelResponse)
async def cancel_bookings_endpoint(
    room_id: str = Query(..., min_length=1),
    booking_date: str = Query(..., alias="date"),
    db: AsyncSession = Depends(get_db),
    changes: ChangeSource = Depends(get_change_source),
):
    """Cancel every booking for a room on a date."""
    deleted = await cancel_bookings(db, room_id, booking_date)
    await changes.publish_deleted(deleted)
    return CancelResponse(
        message=f"Cancelled {len(deleted)} booking(s)",
        deleted=[BookingResponse.model_validate(b) for b in deleted],
    )


@router.delete("/{booking_id}", response_model=CancelResponse)
async def cancel_booking_endpoint(
    booking_id: str,
    db: AsyncSession = Depends(get_db),
    changes: ChangeSource = Depends(get_change_source),
):
    booking = await cancel_booking(db, booking_id)
    await changes.publish_deleted([booking])
    return CancelResponse(
        message="Booking cancelled successfully",
        deleted=[BookingResponse.model_validate(booking)],
    )
