"""
Proposal source interface.

A proposal source turns a chat message into structured booking candidates.
It is untrusted: whatever it returns goes through the validator like any
other input, and any status it suggests is ignored.
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import Optional

from roombook.schemas.chat import Extraction, ProposalContext


class ProposalSource(ABC):
    """
    Implementations:
    - OpenAIProposalSource: LLM extraction in JSON mode
    - NullProposalSource: never proposes anything
    """

    @abstractmethod
    async def extract(
        self, message: str, today: date, context: Optional[ProposalContext] = None
    ) -> Optional[Extraction]:
        """
        Extract booking intent from a message.

        Args:
            message: Raw user text
            today: Reference date for relative expressions ("tomorrow")
            context: Rooms, upcoming schedule and recent conversation, when known

        Returns:
            An Extraction, or None when there is no usable proposal.
            Must not raise for bad model output.
        """
        pass


class NullProposalSource(ProposalSource):
    """Used when no extractor is configured."""

    async def extract(
        self, message: str, today: date, context: Optional[ProposalContext] = None
    ) -> Optional[Extraction]:
        return None
