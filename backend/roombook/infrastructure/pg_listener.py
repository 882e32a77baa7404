"""
PostgreSQL LISTEN/NOTIFY change feed.

The initial migration installs a trigger on `bookings` that calls
pg_notify('booking_changes', {"eventType", "new", "old"}) after every
insert, update and delete. This picks up writes from any client, including
manual edits made outside the API.

A dedicated asyncpg connection (outside the SQLAlchemy pool) holds the
LISTEN for the lifetime of the application.
"""

import asyncio
from typing import Optional

import asyncpg

from roombook.core.logging import get_logger
from roombook.services.interfaces.change_feed import ChangeFeed, FeedHandler

logger = get_logger(__name__)


def asyncpg_dsn(database_url: str) -> str:
    """SQLAlchemy URL -> plain libpq DSN asyncpg understands."""
    return database_url.replace("postgresql+asyncpg://", "postgresql://", 1)


class PostgresChangeFeed(ChangeFeed):
    def __init__(self, database_url: str, channel: str = "booking_changes"):
        self.dsn = asyncpg_dsn(database_url)
        self.channel = channel
        self._connection: Optional[asyncpg.Connection] = None
        self._handler: Optional[FeedHandler] = None
        self._pending: set[asyncio.Task] = set()

    def _on_notify(self, connection, pid, channel, payload) -> None:
        if self._handler is None:
            return
        task = asyncio.create_task(self._handler(payload))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def start(self, handler: FeedHandler) -> None:
        self._handler = handler
        try:
            self._connection = await asyncpg.connect(self.dsn)
            await self._connection.add_listener(self.channel, self._on_notify)
            logger.info("change_feed_listening", channel=self.channel)
        except (OSError, asyncpg.PostgresError) as e:
            # Explicit notifications still flow; clients also poll
            logger.error("change_feed_unavailable", channel=self.channel, error=str(e))
            self._connection = None

    async def stop(self) -> None:
        if self._connection is not None:
            try:
                await self._connection.remove_listener(self.channel, self._on_notify)
            finally:
                await self._connection.close()
                self._connection = None
        for task in list(self._pending):
            task.cancel()
        logger.info("change_feed_stopped", channel=self.channel)
