"""
Server-sent event stream of booking changes.

Frames:
  event: connected        first frame on every connection, {timestamp}
  event: booking_change   {eventType, new, old, timestamp}
  : heartbeat             comment line every SSE_HEARTBEAT_SECONDS
"""

from typing import AsyncIterator

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from roombook.api.deps import get_broadcaster
from roombook.services.broadcaster import Channel, EventBroadcaster

router = APIRouter(prefix="/bookings", tags=["Realtime"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    # Disable response buffering in nginx
    "X-Accel-Buffering": "no",
}


async def event_stream(
    broadcaster: EventBroadcaster,
    channel: Channel,
) -> AsyncIterator[str]:
    """Drain one channel until it is closed; always unregisters on exit."""
    try:
        async for frame in channel.frames():
            yield frame
    finally:
        broadcaster.unregister(channel)


@router.get("/stream")
async def booking_stream(
    request: Request,
    broadcaster: EventBroadcaster = Depends(get_broadcaster),
):
    client = request.client.host if request.client else None
    channel = broadcaster.open_channel(client=client)
    return StreamingResponse(
        event_stream(broadcaster, channel),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
