"""
Chat booking assistant: proposal source -> validator -> final gate -> write.

The proposal source only suggests. Each suggested booking is checked once
up front (the preview that decides what to try) and then again by
commit_proposal() right before its insert. Entries are independent: one
failing entry is reported and skipped, the rest still go through.
Entries the source returned in a shape that could not be read at all are
reported as rejected too.

Before asking the source, the room registry, the upcoming schedule and
the last few conversation turns are gathered into a ProposalContext.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from roombook.core.logging import get_logger
from roombook.models.booking import Booking
from roombook.schemas.booking import BookingProposal, BookingResponse, CancellationRequest
from roombook.schemas.chat import (
    MAX_HISTORY_MESSAGES,
    ChatMessage,
    Extraction,
    MalformedProposal,
    ProposalContext,
)
from roombook.schemas.room import RoomResponse
from roombook.services.booking_service import WriteOutcome, commit_proposal
from roombook.services.booking_store import delete_bookings, list_upcoming
from roombook.services.interfaces.proposal_source import ProposalSource
from roombook.services.room_service import list_rooms
from roombook.services.validator import validate_booking

logger = get_logger(__name__)

MAX_CONTEXT_BOOKINGS = 100
MALFORMED_REASON = "Malformed proposal from the assistant"

NO_PROPOSAL_MESSAGE = (
    "I couldn't find a booking request in that message. "
    "Try something like \"Book CSIS-101 tomorrow from 09:00 to 11:00\"."
)


@dataclass
class ChatResult:
    intent: str
    created: list[Booking] = field(default_factory=list)
    rejected: list[WriteOutcome] = field(default_factory=list)
    cancelled: list[Booking] = field(default_factory=list)
    skipped_cancellations: list[CancellationRequest] = field(default_factory=list)
    assistant_message: str = ""


def _describe(proposal: BookingProposal) -> str:
    return (
        f"{proposal.room_id or '?'} on {proposal.date or '?'} "
        f"{proposal.start_time or '?'}-{proposal.end_time or '?'}"
    )


async def build_context(
    db: AsyncSession,
    role: str,
    today: date,
    history: Optional[list[ChatMessage]] = None,
) -> ProposalContext:
    rooms = await list_rooms(db)
    upcoming = await list_upcoming(db, today, limit=MAX_CONTEXT_BOOKINGS)
    return ProposalContext(
        rooms=[RoomResponse.model_validate(r) for r in rooms],
        schedule=[BookingResponse.model_validate(b) for b in upcoming],
        history=list(history or [])[-MAX_HISTORY_MESSAGES:],
        role=role,
    )


def _report_malformed(malformed: list[MalformedProposal], result: ChatResult) -> None:
    for entry in malformed:
        result.rejected.append(
            WriteOutcome(proposal=entry.proposal, reasons=[f"{MALFORMED_REASON}: {entry.error}."])
        )


async def _book(
    db: AsyncSession,
    proposals: list[BookingProposal],
    role: str,
    today: date,
    result: ChatResult,
) -> None:
    for proposal in proposals:
        preview = await validate_booking(db, proposal, today=today)
        if not preview.valid:
            result.rejected.append(
                WriteOutcome(
                    proposal=proposal,
                    reasons=preview.reasons,
                    conflicts=preview.conflicts,
                    infrastructure_error=preview.infrastructure_error,
                )
            )
            continue

        outcome = await commit_proposal(db, proposal, role, today=today)
        if outcome.created:
            result.created.append(outcome.booking)
        else:
            logger.warning("chat_booking_skipped", proposal=_describe(proposal), reasons=outcome.reasons)
            result.rejected.append(outcome)


async def _cancel(
    db: AsyncSession,
    cancellations: list[CancellationRequest],
    result: ChatResult,
) -> None:
    for request in cancellations:
        room_id = (request.room_id or "").strip()
        try:
            target = date.fromisoformat((request.date or "").strip())
        except ValueError:
            target = None
        if not room_id or target is None:
            logger.warning("chat_cancellation_skipped", room_id=request.room_id, date=request.date)
            result.skipped_cancellations.append(request)
            continue

        deleted = await delete_bookings(db, room_id, target)
        await db.commit()
        result.cancelled.extend(deleted)
        logger.info(
            "chat_cancellation",
            room_id=room_id,
            date=target.isoformat(),
            booking_ids=[b.booking_id for b in deleted],
        )


def _compose_message(result: ChatResult) -> str:
    lines: list[str] = []
    for booking in result.created:
        note = " It is pending approval." if booking.status == "Pending" else ""
        lines.append(
            f"Booked {booking.room_id} on {booking.date.isoformat()} "
            f"{booking.start_time.strftime('%H:%M')}-{booking.end_time.strftime('%H:%M')} "
            f"(Booking ID: {booking.booking_id}).{note}"
        )
    for outcome in result.rejected:
        lines.append(f"Could not book {_describe(outcome.proposal)}: {' '.join(outcome.reasons)}")
    if result.cancelled:
        ids = ", ".join(b.booking_id for b in result.cancelled)
        lines.append(f"Cancelled {len(result.cancelled)} booking(s): {ids}.")
    for request in result.skipped_cancellations:
        lines.append(f"Could not cancel {request.room_id or '?'} on {request.date or '?'}: missing room or date.")
    if result.intent == "CANCEL" and not result.cancelled and not result.skipped_cancellations:
        lines.append("There was nothing to cancel for that room and date.")
    return "\n".join(lines) or NO_PROPOSAL_MESSAGE


async def handle_chat(
    db: AsyncSession,
    source: ProposalSource,
    message: str,
    role: str,
    today: Optional[date] = None,
    history: Optional[list[ChatMessage]] = None,
) -> ChatResult:
    today = today or date.today()
    context = await build_context(db, role, today, history)
    extraction: Optional[Extraction] = await source.extract(message, today, context)

    if extraction is None or (
        extraction.intent == "INQUIRY"
        or (not extraction.bookings and not extraction.cancellations and not extraction.malformed)
    ):
        return ChatResult(intent="INQUIRY", assistant_message=NO_PROPOSAL_MESSAGE)

    result = ChatResult(intent=extraction.intent)
    if extraction.intent == "BOOK":
        _report_malformed(extraction.malformed, result)
        await _book(db, extraction.bookings, role, today, result)
        if result.rejected and not result.created:
            result.intent = "CONFLICT"
    elif extraction.intent == "CANCEL":
        await _cancel(db, extraction.cancellations, result)

    result.assistant_message = _compose_message(result)
    logger.info(
        "chat_handled",
        intent=result.intent,
        created=[b.booking_id for b in result.created],
        rejected=len(result.rejected),
        cancelled=[b.booking_id for b in result.cancelled],
    )
    return result
