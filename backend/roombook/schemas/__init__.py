from roombook.schemas.booking import (
    BookingProposal, CancellationRequest, BookingSnapshot, BookingResponse,
    BookingRejection, StatusChangeResponse, CancelResponse, BookingChangeEvent,
)
from roombook.schemas.room import RoomResponse
from roombook.schemas.chat import (
    Extraction, MalformedProposal, ChatMessage, ChatRequest, ChatResponse,
    ProposalContext, RejectedProposal,
)

__all__ = [
    "BookingProposal", "CancellationRequest", "BookingSnapshot", "BookingResponse",
    "BookingRejection", "StatusChangeResponse", "CancelResponse", "BookingChangeEvent",
    "RoomResponse",
    "Extraction", "MalformedProposal", "ChatMessage", "ChatRequest", "ChatResponse",
    "ProposalContext", "RejectedProposal",
]
