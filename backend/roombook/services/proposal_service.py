"""
LLM-backed proposal source.

The model is only asked to extract structure (room, date, times, intent);
it never decides whether a booking is allowed. Whatever comes back is
parsed defensively and handed to the validator as untrusted input.

The prompt carries the room registry and the upcoming schedule so that
descriptions ("the big lecture hall with a projector") can be resolved to
a room id, and recent conversation turns so follow-ups ("make it 3pm
instead") have something to refer to.
"""

import json
import re
from datetime import date, timedelta
from typing import Any, Iterable, Optional

from openai import AsyncOpenAI, OpenAIError
from pydantic import ValidationError

from roombook.core.config import Settings
from roombook.core.logging import get_logger
from roombook.core.timeutils import format_hhmm
from roombook.schemas.booking import BookingProposal, BookingResponse, CancellationRequest
from roombook.schemas.chat import Extraction, MalformedProposal, ProposalContext
from roombook.schemas.room import RoomResponse
from roombook.services.interfaces.proposal_source import ProposalSource

logger = get_logger(__name__)

_CODE_FENCE = re.compile(r"```(?:json)?", re.IGNORECASE)


def _room_lines(rooms: Iterable[RoomResponse]) -> str:
    lines = []
    for room in rooms:
        details = [room.room_type or "Room"]
        if room.capacity is not None:
            details.append(f"seats {room.capacity}")
        if room.features:
            details.append("features: " + ", ".join(room.features))
        lines.append(f"- {room.room_id} ({room.name}): " + "; ".join(details))
    return "\n".join(lines) or "- (no rooms registered)"


def _schedule_lines(schedule: Iterable[BookingResponse], role: Optional[str]) -> str:
    lines = []
    for b in schedule:
        mine = " [yours]" if role and b.owner_role == role else ""
        lines.append(
            f"- {b.booking_id}: {b.room_id} on {b.date.isoformat()} "
            f"{format_hhmm(b.start_time)}-{format_hhmm(b.end_time)} ({b.status}){mine}"
        )
    return "\n".join(lines) or "- (nothing booked)"


def build_system_prompt(today: date, context: Optional[ProposalContext] = None) -> str:
    context = context or ProposalContext()
    tomorrow = today + timedelta(days=1)
    calendar = "\n".join(
        f"- {day.strftime('%A')} {day.isoformat()}"
        for day in (today + timedelta(days=i) for i in range(8))
    )
    return f"""You extract room booking requests. Today is {today.isoformat()} ({today.strftime('%A')}).

Reference calendar (next 7 days):
{calendar}

Rooms:
{_room_lines(context.rooms)}

Upcoming bookings (taken slots):
{_schedule_lines(context.schedule, context.role)}

Output ONLY a JSON object in this exact shape:
{{
  "intent": "BOOK" | "CANCEL" | "INQUIRY",
  "bookings": [{{"room_id": "CSIS-101", "date": "YYYY-MM-DD", "start_time": "HH:MM", "end_time": "HH:MM"}}],
  "cancellations": [{{"room_id": "CSIS-101", "date": "YYYY-MM-DD"}}]
}}

Rules:
- "tomorrow" = {tomorrow.isoformat()}; compute other relative dates from today.
- Use 24-hour times ("08:00", "13:30").
- Use a room_id from the Rooms list; match a described room by its type, seats and features.
- Use "BOOK" only when the user asks to reserve a room, "CANCEL" only when they ask to cancel.
- Questions and chitchat are "INQUIRY" with empty lists.
- Never invent a room, date or time the user did not give; leave the field out instead.
"""


def _items(data: dict, key: str) -> list:
    value = data.get(key) or []
    if not isinstance(value, list):
        return []
    return value


def _salvage(item: Any) -> BookingProposal:
    """Keep whatever plain string fields a broken entry still has, for reporting."""
    if not isinstance(item, dict):
        return BookingProposal()
    return BookingProposal.model_validate({k: v for k, v in item.items() if isinstance(v, str)})


def _summarize(error: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in err['loc']) or 'entry'}: {err['msg']}"
        for err in error.errors()
    )


def parse_extraction(raw: str) -> Optional[Extraction]:
    """
    Model output -> Extraction. Returns None when the text is not usable
    JSON. Booking entries that do not fit the proposal shape are kept
    aside as malformed so the caller can report them.
    """
    text = _CODE_FENCE.sub("", raw or "").strip()
    try:
        data: Any = json.loads(text)
    except ValueError:
        logger.warning("extraction_parse_failed", raw=text[:200])
        return None
    if not isinstance(data, dict):
        logger.warning("extraction_not_an_object", raw=text[:200])
        return None

    intent = str(data.get("intent", "INQUIRY")).upper()
    if data.get("is_booking_request") is True:
        intent = "BOOK"
    if intent not in ("BOOK", "CANCEL", "INQUIRY"):
        intent = "INQUIRY"

    bookings: list[BookingProposal] = []
    malformed: list[MalformedProposal] = []
    for item in _items(data, "bookings"):
        if not isinstance(item, dict):
            error = f"expected an object, got {type(item).__name__}"
        else:
            try:
                bookings.append(BookingProposal.model_validate(item))
                continue
            except ValidationError as e:
                error = _summarize(e)
        logger.warning("extraction_booking_malformed", item=item, error=error)
        malformed.append(MalformedProposal(proposal=_salvage(item), error=error))

    cancellations: list[CancellationRequest] = []
    for item in _items(data, "cancellations"):
        try:
            cancellations.append(CancellationRequest.model_validate(item))
        except ValidationError as e:
            logger.warning("extraction_cancellation_dropped", item=item, error=str(e))

    return Extraction(
        intent=intent, bookings=bookings, cancellations=cancellations, malformed=malformed
    )


class OpenAIProposalSource(ProposalSource):
    def __init__(self, client: AsyncOpenAI, model: str):
        self.client = client
        self.model = model

    @classmethod
    def from_settings(cls, settings: Settings) -> "OpenAIProposalSource":
        client = AsyncOpenAI(api_key=settings.OPENAI_API_KEY, timeout=settings.OPENAI_TIMEOUT)
        return cls(client, settings.OPENAI_MODEL)

    async def extract(
        self, message: str, today: date, context: Optional[ProposalContext] = None
    ) -> Optional[Extraction]:
        context = context or ProposalContext()
        messages = [{"role": "system", "content": build_system_prompt(today, context)}]
        messages += [{"role": m.role, "content": m.content} for m in context.history]
        messages.append({"role": "user", "content": message})

        try:
            completion = await self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                response_format={"type": "json_object"},
                temperature=0,
            )
        except OpenAIError as e:
            logger.warning("extraction_request_failed", error=str(e))
            return None

        raw = completion.choices[0].message.content or ""
        extraction = parse_extraction(raw)
        if extraction is not None:
            logger.info(
                "extraction_completed",
                intent=extraction.intent,
                bookings=len(extraction.bookings),
                cancellations=len(extraction.cancellations),
                malformed=len(extraction.malformed),
            )
        return extraction
