"""
Native change feed interface.
Lets the change source subscribe to the store's own notifications without
knowing which store is behind it.
"""

from abc import ABC, abstractmethod
from typing import Awaitable, Callable

FeedHandler = Callable[[str], Awaitable[None]]


class ChangeFeed(ABC):
    """
    Interface for store change feeds.

    Implementations:
    - NullChangeFeed: no native feed; explicit notifications are the only signal
    - PostgresChangeFeed: LISTEN/NOTIFY fed by a trigger on the bookings table
    """

    @abstractmethod
    async def start(self, handler: FeedHandler) -> None:
        """
        Begin delivering raw feed messages.

        Args:
            handler: Coroutine called with each raw JSON payload
        """
        pass

    @abstractmethod
    async def stop(self) -> None:
        """Stop listening and release the underlying connection."""
        pass
