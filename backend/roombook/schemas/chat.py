"""
Pydantic schemas for the chat booking assistant.
"""

from typing import Literal, Optional
from pydantic import BaseModel, Field

from roombook.schemas.booking import BookingProposal, BookingResponse, CancellationRequest
from roombook.schemas.room import RoomResponse

Intent = Literal["BOOK", "CANCEL", "INQUIRY", "CONFLICT"]

MAX_HISTORY_MESSAGES = 10


class MalformedProposal(BaseModel):
    """An extracted booking entry that did not fit the proposal shape."""

    proposal: BookingProposal = BookingProposal()
    error: str


class Extraction(BaseModel):
    """Structured candidate produced by an untrusted proposal source."""

    intent: Literal["BOOK", "CANCEL", "INQUIRY"] = "INQUIRY"
    bookings: list[BookingProposal] = []
    cancellations: list[CancellationRequest] = []
    malformed: list[MalformedProposal] = []


class ChatMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str = Field(..., max_length=4000)


class ProposalContext(BaseModel):
    """
    What a proposal source may look at besides the message: the room
    registry, the upcoming schedule and the recent conversation.
    `role` marks which schedule entries belong to the caller.
    """

    rooms: list[RoomResponse] = []
    schedule: list[BookingResponse] = []
    history: list[ChatMessage] = []
    role: Optional[str] = None


class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=2000)
    history: list[ChatMessage] = []

    def recent_history(self) -> list[ChatMessage]:
        return self.history[-MAX_HISTORY_MESSAGES:]


class RejectedProposal(BaseModel):
    proposal: BookingProposal
    reasons: list[str]
    conflicts: list[BookingResponse] = []


class ChatResponse(BaseModel):
    intent: Intent
    created: list[BookingResponse] = []
    rejected: list[RejectedProposal] = []
    cancelled: list[BookingResponse] = []
    assistant_message: str
    role: Optional[str] = None
