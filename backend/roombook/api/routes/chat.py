"""
Chat booking assistant endpoint.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from roombook.api.deps import get_change_source
from roombook.core.security import get_current_role
from roombook.db.session import get_db
from roombook.schemas.booking import BookingResponse
from roombook.schemas.chat import ChatRequest, ChatResponse, RejectedProposal
from roombook.services.change_source import ChangeSource
from roombook.services.chat_service import handle_chat
from roombook.services.interfaces.proposal_source import ProposalSource
from roombook.services.strategy_factory import get_proposal_source

router = APIRouter(prefix="/chat", tags=["Chat"])


@router.post("", response_model=ChatResponse)
async def chat(
    request: ChatRequest,
    role: str = Depends(get_current_role),
    source: ProposalSource = Depends(get_proposal_source),
    db: AsyncSession = Depends(get_db),
    changes: ChangeSource = Depends(get_change_source),
):
    """
    Turn a message into bookings or cancellations. `history` carries earlier
    turns of the conversation; only the last few are passed on.

    Each extracted booking is validated and written on its own; entries
    that fail are listed under `rejected` with their reasons while the rest
    still go through.
    """
    result = await handle_chat(db, source, request.message, role, history=request.recent_history())

    for booking in result.created:
        await changes.publish_created(booking)
    await changes.publish_deleted(result.cancelled)

    return ChatResponse(
        intent=result.intent,
        created=[BookingResponse.model_validate(b) for b in result.created],
        rejected=[
            RejectedProposal(
                proposal=outcome.proposal,
                reasons=outcome.reasons,
                conflicts=[BookingResponse.model_validate(b) for b in outcome.conflicts],
            )
            for outcome in result.rejected
        ],
        cancelled=[BookingResponse.model_validate(b) for b in result.cancelled],
        assistant_message=result.assistant_message,
        role=role,
    )
