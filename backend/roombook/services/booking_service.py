"""
Booking write path with a final availability check before every insert.

CONCURRENCY STRATEGY: Re-check under a per-slot lock
=====================================================

Problem:
  A proposal can be validated well before it is written (the chat flow
  validates, builds a reply, then writes). Another booking for the same
  room and date can land in between. Two requests can also validate the
  same free slot at the same moment and both insert.

Solution:
  1. commit_proposal() always re-runs validate_booking() right before the
     insert, whatever ran upstream.
  2. Check + insert for one (room, date) runs under an asyncio.Lock keyed by
     that pair, so inside this process the check cannot go stale before the
     row is written.
  3. On PostgreSQL an exclusion constraint over
     (room_id, tsrange(date + start_time, date + end_time)) for non-rejected
     rows is the final safety net across processes. Tripping it is reported
     as a conflict, not a server error.

  A rejection at the final gate is an outcome, not an exception: batch
  callers log it and move on to the next proposal.
"""

import asyncio
import secrets
import string
import weakref
from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from roombook.core.logging import get_logger
from roombook.core.metrics import record_booking_write, status_transitions
from roombook.core.timeutils import parse_hhmm
from roombook.models.booking import (
    Booking,
    STATUS_APPROVED,
    STATUS_PENDING,
    STATUS_REJECTED,
    initial_status_for,
)
from roombook.schemas.booking import BookingProposal, BookingRejection, BookingResponse
from roombook.services import booking_store
from roombook.services.room_service import get_room
from roombook.services.validator import validate_booking

logger = get_logger(__name__)

MAX_RETRY_ATTEMPTS = 3
BOOKING_ID_ALPHABET = string.ascii_uppercase + string.digits

_slot_locks: "weakref.WeakValueDictionary[tuple[str, str], asyncio.Lock]" = (
    weakref.WeakValueDictionary()
)


def generate_booking_id() -> str:
    return "BK-" + "".join(secrets.choice(BOOKING_ID_ALPHABET) for _ in range(5))


def _slot_lock(proposal: BookingProposal) -> asyncio.Lock:
    key = ((proposal.room_id or "").strip().lower(), (proposal.date or "").strip())
    lock = _slot_locks.get(key)
    if lock is None:
        lock = asyncio.Lock()
        _slot_locks[key] = lock
    return lock


@dataclass
class WriteOutcome:
    proposal: BookingProposal
    booking: Optional[Booking] = None
    reasons: list[str] = field(default_factory=list)
    conflicts: list[Booking] = field(default_factory=list)
    infrastructure_error: bool = False
    unknown_room: bool = False

    @property
    def created(self) -> bool:
        return self.booking is not None


async def _canonical_proposal(db: AsyncSession, proposal: BookingProposal):
    """Swap the requested room id for the registry's spelling of it."""
    if not proposal.room_id or not proposal.room_id.strip():
        return proposal, None
    room = await get_room(db, proposal.room_id)
    if room is None:
        return proposal, None
    return proposal.model_copy(update={"room_id": room.room_id}), room


async def commit_proposal(
    db: AsyncSession,
    proposal: BookingProposal,
    role: str,
    today: Optional[date] = None,
) -> WriteOutcome:
    """
    Final gate + insert for one proposal. Never raises for a bad proposal or
    a store failure; the outcome says what happened.
    """
    try:
        proposal, room = await _canonical_proposal(db, proposal)
    except (SQLAlchemyError, OSError) as e:
        logger.error("room_lookup_failed", room_id=proposal.room_id, error=str(e))
        record_booking_write("error")
        return WriteOutcome(
            proposal=proposal,
            reasons=[f"Could not verify the room registry due to a database error: {e}"],
            infrastructure_error=True,
        )

    async with _slot_lock(proposal):
        check = await validate_booking(db, proposal, today=today)
        if not check.valid:
            logger.warning(
                "final_gate_blocked",
                room_id=proposal.room_id,
                date=proposal.date,
                reasons=check.reasons,
            )
            record_booking_write("error" if check.infrastructure_error else "blocked")
            return WriteOutcome(
                proposal=proposal,
                reasons=check.reasons,
                conflicts=check.conflicts,
                infrastructure_error=check.infrastructure_error,
            )

        if room is None:
            record_booking_write("blocked")
            return WriteOutcome(
                proposal=proposal,
                reasons=[f"Unknown room: {proposal.room_id}."],
                unknown_room=True,
            )

        for attempt in range(1, MAX_RETRY_ATTEMPTS + 1):
            booking = Booking(
                booking_id=generate_booking_id(),
                room_id=proposal.room_id,
                date=date.fromisoformat(proposal.date.strip()),
                start_time=parse_hhmm(proposal.start_time),
                end_time=parse_hhmm(proposal.end_time),
                status=initial_status_for(role),
                owner_role=role,
            )
            try:
                await booking_store.insert_booking(db, booking)
                await db.commit()
            except IntegrityError as e:
                await db.rollback()
                # Either the storage exclusion constraint fired or the id collided
                recheck = await validate_booking(db, proposal, today=today)
                if not recheck.valid:
                    logger.warning(
                        "storage_constraint_conflict",
                        room_id=proposal.room_id,
                        date=proposal.date,
                        error=str(e.orig),
                    )
                    record_booking_write("conflict")
                    return WriteOutcome(
                        proposal=proposal,
                        reasons=recheck.reasons,
                        conflicts=recheck.conflicts,
                        infrastructure_error=recheck.infrastructure_error,
                    )
                logger.info("booking_id_collision", attempt=attempt)
                continue
            except (SQLAlchemyError, OSError) as e:
                await db.rollback()
                logger.error("booking_insert_failed", room_id=proposal.room_id, error=str(e))
                record_booking_write("error")
                return WriteOutcome(
                    proposal=proposal,
                    reasons=[f"Could not save the booking due to a database error: {e}"],
                    infrastructure_error=True,
                )

            logger.info(
                "booking_created",
                booking_id=booking.booking_id,
                room_id=booking.room_id,
                date=booking.date.isoformat(),
                start=proposal.start_time,
                end=proposal.end_time,
                status=booking.status,
                role=role,
                attempt=attempt,
            )
            record_booking_write("created")
            if booking.status == STATUS_PENDING:
                logger.info(
                    "approval_requested",
                    booking_id=booking.booking_id,
                    room_id=booking.room_id,
                )
            return WriteOutcome(proposal=proposal, booking=booking)

    record_booking_write("error")
    return WriteOutcome(
        proposal=proposal,
        reasons=["Booking failed unexpectedly. Please try again."],
        infrastructure_error=True,
    )


def _rejection_detail(message: str, outcome: WriteOutcome) -> dict:
    return BookingRejection(
        message=message,
        reasons=outcome.reasons,
        conflicts=[BookingResponse.model_validate(b) for b in outcome.conflicts],
    ).model_dump(mode="json")


async def create_booking(
    db: AsyncSession,
    proposal: BookingProposal,
    role: str,
    today: Optional[date] = None,
) -> Booking:
    """REST create: same gate as the chat flow, failures mapped to HTTP errors."""
    outcome = await commit_proposal(db, proposal, role, today=today)
    if outcome.created:
        return outcome.booking

    if outcome.infrastructure_error:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=_rejection_detail("Booking store unavailable. Please try again later.", outcome),
        )
    if outcome.unknown_room:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=_rejection_detail("Unknown room", outcome),
        )
    raise HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail=_rejection_detail("Booking is not possible", outcome),
    )


async def _get_or_404(db: AsyncSession, booking_id: str) -> Booking:
    booking = await booking_store.get_booking(db, booking_id)
    if not booking:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Booking {booking_id} not found",
        )
    return booking


async def set_booking_status(db: AsyncSession, booking_id: str, new_status: str) -> Booking:
    """Pending -> Approved / Rejected. Anything else is a 400."""
    if new_status not in (STATUS_APPROVED, STATUS_REJECTED):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Cannot move a booking to {new_status}",
        )

    booking = await _get_or_404(db, booking_id)
    if booking.status != STATUS_PENDING:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Booking is already {booking.status}",
        )

    await booking_store.update_booking_status(db, booking, new_status)
    await db.commit()
    status_transitions.labels(status=new_status).inc()

    logger.info("booking_status_changed", booking_id=booking_id, status=new_status)
    return booking


def _parse_date_or_400(value: str) -> date:
    try:
        return date.fromisoformat(value.strip())
    except (AttributeError, ValueError):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid date: {value} (expected YYYY-MM-DD)",
        )


async def cancel_bookings(db: AsyncSession, room_id: str, booking_date: str) -> list[Booking]:
    """Delete every booking for a room on a date; returns the deleted rows."""
    target = _parse_date_or_400(booking_date)
    deleted = await booking_store.delete_bookings(db, room_id, target)
    await db.commit()

    logger.info(
        "bookings_cancelled",
        room_id=room_id,
        date=target.isoformat(),
        booking_ids=[b.booking_id for b in deleted],
    )
    return deleted


async def cancel_booking(db: AsyncSession, booking_id: str) -> Booking:
    booking = await _get_or_404(db, booking_id)
    await booking_store.delete_booking(db, booking)
    await db.commit()

    logger.info("booking_cancelled", booking_id=booking_id, room_id=booking.room_id)
    return booking
