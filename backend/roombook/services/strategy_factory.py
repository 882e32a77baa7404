"""
Pluggable collaborator factory.
Configures which change feed and which proposal source the app runs with.
"""

from roombook.core.config import Settings, get_settings
from roombook.core.logging import get_logger
from roombook.services.interfaces import ChangeFeed, NullChangeFeed, ProposalSource, NullProposalSource

logger = get_logger(__name__)


def get_change_feed(settings: Settings | None = None) -> ChangeFeed:
    """
    Get configured native change feed.

    - "postgres": LISTEN/NOTIFY on CHANGE_FEED_CHANNEL (needs the migration trigger)
    - anything else: no native feed, explicit notifications only

    Set via the CHANGE_FEED env var.
    """
    settings = settings or get_settings()

    if settings.CHANGE_FEED == "postgres":
        from roombook.infrastructure.pg_listener import PostgresChangeFeed

        return PostgresChangeFeed(settings.DATABASE_URL, settings.CHANGE_FEED_CHANNEL)
    return NullChangeFeed()


def get_proposal_source_strategy(settings: Settings | None = None) -> ProposalSource:
    """
    Get configured proposal source.

    - "openai": LLM extraction (requires OPENAI_API_KEY)
    - anything else: NullProposalSource

    Set via the PROPOSAL_SOURCE env var.
    """
    settings = settings or get_settings()

    if settings.PROPOSAL_SOURCE == "openai":
        if not settings.OPENAI_API_KEY:
            logger.warning("proposal_source_disabled", reason="OPENAI_API_KEY not set")
            return NullProposalSource()
        from roombook.services.proposal_service import OpenAIProposalSource

        return OpenAIProposalSource.from_settings(settings)
    return NullProposalSource()


# Singleton instance
_proposal_source: ProposalSource | None = None


def get_proposal_source() -> ProposalSource:
    """Proposal source singleton; also the FastAPI dependency."""
    global _proposal_source
    if _proposal_source is None:
        _proposal_source = get_proposal_source_strategy()
    return _proposal_source
