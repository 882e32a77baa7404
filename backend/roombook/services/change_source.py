"""
Change source: one normalized `booking_change` event per write, whichever
way the write was observed.

Two origins feed the same publish():
  - explicit: the API calls publish_* right after a successful commit
  - feed:     the store's native change feed (see infrastructure/pg_listener)

With a native feed configured, one logical write is broadcast twice.
Delivery is at-least-once; clients dedupe by booking_id.
"""

import json
from typing import Any, Iterable, Optional

from pydantic import ValidationError

from roombook.core.logging import get_logger
from roombook.core.metrics import record_change_event
from roombook.models.booking import STATUS_PENDING, Booking
from roombook.schemas.booking import BookingChangeEvent, BookingSnapshot
from roombook.services.broadcaster import EventBroadcaster
from roombook.services.cache_service import invalidate_schedule_cache
from roombook.services.interfaces.change_feed import ChangeFeed

logger = get_logger(__name__)

BOOKING_CHANGE = "booking_change"


def normalize_record(record: Any) -> Optional[dict]:
    """ORM row, feed row or partial dict -> API field names, "HH:MM" times."""
    if record is None:
        return None
    return BookingSnapshot.model_validate(record).model_dump(mode="json", exclude_none=True)


class ChangeSource:
    def __init__(self, broadcaster: EventBroadcaster, feed: Optional[ChangeFeed] = None):
        self.broadcaster = broadcaster
        self.feed = feed

    async def start(self) -> None:
        if self.feed is not None:
            await self.feed.start(self.handle_feed_message)

    async def stop(self) -> None:
        if self.feed is not None:
            await self.feed.stop()

    async def publish(
        self,
        event_type: str,
        new: Any = None,
        old: Any = None,
        origin: str = "explicit",
    ) -> dict:
        payload = {
            "eventType": event_type,
            "new": normalize_record(new),
            "old": normalize_record(old),
        }
        await invalidate_schedule_cache()
        delivered = self.broadcaster.broadcast(BOOKING_CHANGE, payload)
        record_change_event(origin, event_type)

        booking_id = (payload["new"] or payload["old"] or {}).get("booking_id")
        logger.info(
            "booking_change_published",
            event_type=event_type,
            booking_id=booking_id,
            origin=origin,
            delivered=delivered,
        )
        return payload

    async def publish_created(self, booking: Booking) -> dict:
        return await self.publish("INSERT", new=booking)

    async def publish_status_change(
        self, booking: Booking, previous_status: str = STATUS_PENDING
    ) -> dict:
        return await self.publish(
            "UPDATE",
            new=booking,
            old={"booking_id": booking.booking_id, "status": previous_status},
        )

    async def publish_deleted(self, bookings: Iterable[Booking]) -> list[dict]:
        return [await self.publish("DELETE", old=booking) for booking in bookings]

    async def handle_feed_message(self, raw: str) -> None:
        """Normalize one native feed payload. Malformed payloads are logged and dropped."""
        try:
            event = BookingChangeEvent.model_validate(json.loads(raw))
            await self.publish(event.eventType, new=event.new, old=event.old, origin="feed")
        except (ValueError, ValidationError) as e:
            logger.warning("change_feed_message_invalid", error=str(e), raw=raw[:200])
