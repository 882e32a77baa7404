"""
Deterministic booking validator.

RULE ORDER
==========

Every proposal, whoever produced it, goes through the same ordered rules.
The first failing rule ends evaluation, so a proposal carries exactly one
static reason or the list of conflicts, never a mix:

  1. Completeness     room, date, start and end are all present
  2. Ordering         start < end (unparseable times fail here)
  3. Not in the past  ISO date >= today (string comparison on YYYY-MM-DD)
  4. Operating hours  start >= OPENING_TIME and end <= CLOSING_TIME
  5. Max duration     end - start <= MAX_BOOKING_MINUTES
  6. Conflicts        no overlapping Pending/Approved booking for the room/date

Rules 1-5 need no I/O and run first; they also guarantee that the conflict
query in rule 6 is only ever issued with a well-formed room/date.

If the conflict query fails, the proposal is invalid: availability that
cannot be confirmed is treated as unavailable.
"""

import re
import time
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from roombook.core.config import Settings, get_settings
from roombook.core.logging import get_logger
from roombook.core.metrics import record_validation, validation_latency
from roombook.core.timeutils import format_hhmm, overlaps, to_minutes
from roombook.models.booking import Booking, STATUS_REJECTED
from roombook.schemas.booking import BookingProposal
from roombook.services.booking_store import query_bookings

logger = get_logger(__name__)

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


@dataclass
class ValidationResult:
    valid: bool = True
    conflicts: list[Booking] = field(default_factory=list)
    reasons: list[str] = field(default_factory=list)
    infrastructure_error: bool = False

    def fail(self, reason: str) -> "ValidationResult":
        self.valid = False
        self.reasons.append(reason)
        return self


def _clean(value: Optional[str]) -> str:
    return value.strip() if isinstance(value, str) else ""


def _parse_iso_date(value: str) -> Optional[date]:
    if not _ISO_DATE.match(value):
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None


def check_static_rules(
    proposal: BookingProposal,
    today: date,
    settings: Settings,
) -> ValidationResult:
    """Rules 1-5. Pure; never touches storage."""
    result = ValidationResult()
    room_id = _clean(proposal.room_id)
    booking_date = _clean(proposal.date)
    start = _clean(proposal.start_time)
    end = _clean(proposal.end_time)

    if not (room_id and booking_date and start and end):
        return result.fail("Missing required fields: room, date, start time, or end time.")

    start_min, end_min = to_minutes(start), to_minutes(end)
    if start_min is None or end_min is None:
        return result.fail(
            f"Invalid time range: {start} to {end} could not be read (expected HH:MM)."
        )
    if start_min >= end_min:
        return result.fail(f"Invalid time range: {start} is not before {end}.")

    today_iso = today.isoformat()
    if _parse_iso_date(booking_date) is None:
        return result.fail(f"Invalid date: {booking_date} (expected YYYY-MM-DD).")
    if booking_date < today_iso:
        return result.fail(
            f"Cannot book in the past. Requested date: {booking_date}, today is {today_iso}."
        )

    opening, closing = to_minutes(settings.OPENING_TIME), to_minutes(settings.CLOSING_TIME)
    if start_min < opening or end_min > closing:
        return result.fail(
            f"Bookings must be within operating hours ({settings.OPENING_TIME} - "
            f"{settings.CLOSING_TIME}). Requested: {start}-{end}."
        )

    duration = end_min - start_min
    if duration > settings.MAX_BOOKING_MINUTES:
        return result.fail(
            f"Maximum booking duration is {settings.MAX_BOOKING_MINUTES / 60:g} hours. "
            f"Requested duration: {duration / 60:g} hours."
        )

    return result


async def validate_booking(
    db: AsyncSession,
    proposal: BookingProposal,
    today: Optional[date] = None,
    settings: Optional[Settings] = None,
    clock: Callable[[], date] = date.today,
) -> ValidationResult:
    """Run all six rules against one proposal."""
    settings = settings or get_settings()
    today = today or clock()
    started = time.perf_counter()

    result = check_static_rules(proposal, today, settings)
    if not result.valid:
        logger.info("booking_invalid", rule="static", reason=result.reasons[0])
        record_validation(False)
        return result

    room_id = _clean(proposal.room_id)
    booking_date = date.fromisoformat(_clean(proposal.date))
    start, end = _clean(proposal.start_time), _clean(proposal.end_time)

    try:
        existing = await query_bookings(db, room_id, booking_date, exclude_status=STATUS_REJECTED)
    except (SQLAlchemyError, OSError) as e:
        logger.error(
            "availability_check_failed",
            room_id=room_id,
            date=booking_date.isoformat(),
            error=str(e),
        )
        result.infrastructure_error = True
        result.fail(f"Could not verify room availability due to a database error: {e}")
        record_validation(False, infrastructure_error=True)
        return result

    for booking in existing:
        # Rejected rows never occupy a slot
        if booking.status == STATUS_REJECTED:
            continue
        if overlaps(
            start, end, booking.start_time, booking.end_time,
            fail_closed=settings.OVERLAP_FAIL_CLOSED,
        ):
            result.valid = False
            result.conflicts.append(booking)
            result.reasons.append(
                f"Room {room_id} is already {booking.status.lower()} from "
                f"{format_hhmm(booking.start_time)}-{format_hhmm(booking.end_time)} "
                f"on {booking_date.isoformat()} (Booking ID: {booking.booking_id}, "
                f"held by {booking.owner_role})."
            )

    validation_latency.observe(time.perf_counter() - started)
    record_validation(result.valid)
    if result.conflicts:
        logger.info(
            "booking_conflict",
            room_id=room_id,
            date=booking_date.isoformat(),
            conflicts=[b.booking_id for b in result.conflicts],
        )
    return result
