"""
No-op change feed for stores without native notifications.
"""

from roombook.services.interfaces.change_feed import ChangeFeed, FeedHandler


class NullChangeFeed(ChangeFeed):
    """
    Never delivers anything. The write path's explicit notifications are
    then the only source of change events.
    """

    async def start(self, handler: FeedHandler) -> None:
        pass

    async def stop(self) -> None:
        pass
