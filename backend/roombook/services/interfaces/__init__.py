"""
Service interfaces for dependency inversion.
Allows swapping implementations without changing business logic.
"""

from .change_feed import ChangeFeed, FeedHandler
from .null_feed import NullChangeFeed
from .proposal_source import ProposalSource, NullProposalSource

__all__ = ['ChangeFeed', 'FeedHandler', 'NullChangeFeed', 'ProposalSource', 'NullProposalSource']
