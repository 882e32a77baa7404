"""
Event broadcaster: the registry of open event-stream channels.

FAN-OUT MODEL
=============

Each connected client owns a Channel: a bounded in-memory queue drained by
its streaming response. broadcast() serializes an event once and does a
non-blocking put on every channel. A channel that is closed or whose queue
is full (the client stopped reading) fails the write and is dropped from
the registry during that same call. There is no separate reaper.

A heartbeat comment is written to every channel on a fixed interval so
idle connections survive proxies with read timeouts. Heartbeat failures get
the same cleanup as broadcast failures.

The registry is only touched from the event loop thread. broadcast() and
heartbeat() iterate over a snapshot, so register/unregister calls made
while a fan-out is in progress never disturb it.
"""

import asyncio
import json
from datetime import datetime, timezone
from typing import Optional

from roombook.core.logging import get_logger
from roombook.core.metrics import broadcast_events, dropped_channels, sse_channels

logger = get_logger(__name__)

HEARTBEAT_FRAME = ": heartbeat\n\n"


class ChannelClosed(Exception):
    """Raised when writing to a channel whose client is gone."""


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def format_sse(event: str, data: dict) -> str:
    return f"event: {event}\ndata: {json.dumps(data, default=str)}\n\n"


class Channel:
    """One client's outbound event queue."""

    def __init__(self, maxsize: int = 100, client: Optional[str] = None):
        self.queue: asyncio.Queue[Optional[str]] = asyncio.Queue(maxsize=maxsize)
        self.client = client
        self.closed = False

    def send(self, frame: str) -> None:
        if self.closed:
            raise ChannelClosed(self.client)
        try:
            self.queue.put_nowait(frame)
        except asyncio.QueueFull:
            raise ChannelClosed(f"{self.client}: queue full")

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        # Wake the reader so its stream can end; drop a frame if needed
        try:
            self.queue.put_nowait(None)
        except asyncio.QueueFull:
            self.queue.get_nowait()
            self.queue.put_nowait(None)

    async def frames(self):
        """Frames until the channel is closed."""
        while True:
            frame = await self.queue.get()
            if frame is None:
                return
            yield frame


class EventBroadcaster:
    def __init__(self, heartbeat_interval: float = 25.0, queue_size: int = 100):
        self.heartbeat_interval = heartbeat_interval
        self.queue_size = queue_size
        self._channels: set[Channel] = set()
        self._heartbeat_task: Optional[asyncio.Task] = None

    @property
    def channel_count(self) -> int:
        return len(self._channels)

    def open_channel(self, client: Optional[str] = None) -> Channel:
        """Create a channel sized for this broadcaster and register it."""
        channel = Channel(maxsize=self.queue_size, client=client)
        self.register(channel)
        return channel

    def register(self, channel: Channel) -> None:
        self._channels.add(channel)
        sse_channels.set(len(self._channels))
        logger.info("sse_client_connected", client=channel.client, channels=len(self._channels))
        # Liveness for the new client only
        try:
            channel.send(format_sse("connected", {"timestamp": utc_timestamp()}))
        except ChannelClosed:
            self._drop(channel)

    def unregister(self, channel: Channel) -> None:
        if channel in self._channels:
            self._channels.discard(channel)
            sse_channels.set(len(self._channels))
            logger.info(
                "sse_client_disconnected", client=channel.client, channels=len(self._channels)
            )
        channel.close()

    def _drop(self, channel: Channel) -> None:
        self._channels.discard(channel)
        channel.close()
        dropped_channels.inc()
        sse_channels.set(len(self._channels))
        logger.info("sse_client_dropped", client=channel.client, channels=len(self._channels))

    def _fan_out(self, frame: str) -> int:
        delivered = 0
        for channel in list(self._channels):
            if channel not in self._channels:
                continue
            try:
                channel.send(frame)
                delivered += 1
            except ChannelClosed:
                self._drop(channel)
        return delivered

    def broadcast(self, event: str, payload: dict) -> int:
        """Send an event to every channel. Returns how many accepted it."""
        frame = format_sse(event, {**payload, "timestamp": utc_timestamp()})
        delivered = self._fan_out(frame)
        broadcast_events.labels(event=event).inc()
        logger.debug("broadcast", event=event, delivered=delivered)
        return delivered

    def heartbeat(self) -> int:
        return self._fan_out(HEARTBEAT_FRAME)

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            self.heartbeat()

    def start(self) -> None:
        if self._heartbeat_task is None:
            self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())

    async def close(self) -> None:
        """Stop heartbeats and close every channel."""
        if self._heartbeat_task is not None:
            self._heartbeat_task.cancel()
            try:
                await self._heartbeat_task
            except asyncio.CancelledError:
                pass
            self._heartbeat_task = None

        for channel in list(self._channels):
            channel.close()
        self._channels.clear()
        sse_channels.set(0)
        logger.info("broadcaster_closed")
