"""
Tests for the event-stream channel registry.
"""

import asyncio
import json

import pytest

from roombook.services.broadcaster import (
    HEARTBEAT_FRAME,
    Channel,
    ChannelClosed,
    EventBroadcaster,
    format_sse,
)


def drain(channel: Channel) -> list[str]:
    frames = []
    while not channel.queue.empty():
        frames.append(channel.queue.get_nowait())
    return frames


def parse_frame(frame: str) -> tuple[str, dict]:
    event_line, data_line, *_ = frame.split("\n")
    return event_line.removeprefix("event: "), json.loads(data_line.removeprefix("data: "))


def test_format_sse():
    assert format_sse("booking_change", {"a": 1}) == 'event: booking_change\ndata: {"a": 1}\n\n'


@pytest.mark.asyncio
async def test_register_sends_connected_to_new_channel_only(broadcaster: EventBroadcaster):
    first = broadcaster.open_channel("first")
    drain(first)

    second = broadcaster.open_channel("second")

    assert drain(first) == []
    frames = drain(second)
    assert len(frames) == 1
    event, data = parse_frame(frames[0])
    assert event == "connected"
    assert "timestamp" in data
    assert broadcaster.channel_count == 2


@pytest.mark.asyncio
async def test_broadcast_reaches_every_channel(broadcaster: EventBroadcaster):
    channels = [broadcaster.open_channel(f"c{i}") for i in range(3)]
    for channel in channels:
        drain(channel)

    delivered = broadcaster.broadcast("booking_change", {"eventType": "INSERT"})

    assert delivered == 3
    for channel in channels:
        (frame,) = drain(channel)
        event, data = parse_frame(frame)
        assert event == "booking_change"
        assert data["eventType"] == "INSERT"
        assert "timestamp" in data


@pytest.mark.asyncio
async def test_broadcast_with_no_channels(broadcaster: EventBroadcaster):
    assert broadcaster.broadcast("booking_change", {"eventType": "DELETE"}) == 0


@pytest.mark.asyncio
async def test_closed_channel_is_dropped_during_broadcast(broadcaster: EventBroadcaster):
    alive = broadcaster.open_channel("alive")
    dead = broadcaster.open_channel("dead")
    dead.closed = True

    delivered = broadcaster.broadcast("booking_change", {"eventType": "INSERT"})

    assert delivered == 1
    assert broadcaster.channel_count == 1
    assert len(drain(alive)) == 2


@pytest.mark.asyncio
async def test_full_channel_is_dropped():
    broadcaster = EventBroadcaster(heartbeat_interval=3600, queue_size=2)
    slow = broadcaster.open_channel("slow")
    fast = broadcaster.open_channel("fast")

    broadcaster.broadcast("booking_change", {"n": 1})
    drain(fast)
    broadcaster.broadcast("booking_change", {"n": 2})

    assert broadcaster.channel_count == 1
    assert slow.closed is True
    assert fast.closed is False
    await broadcaster.close()


@pytest.mark.asyncio
async def test_unregister_stops_delivery(broadcaster: EventBroadcaster):
    channel = broadcaster.open_channel("leaving")
    broadcaster.unregister(channel)

    assert broadcaster.channel_count == 0
    assert broadcaster.broadcast("booking_change", {}) == 0
    with pytest.raises(ChannelClosed):
        channel.send("late")


@pytest.mark.asyncio
async def test_unregister_unknown_channel_is_harmless(broadcaster: EventBroadcaster):
    broadcaster.unregister(Channel(client="stranger"))
    assert broadcaster.channel_count == 0


@pytest.mark.asyncio
async def test_heartbeat_frame(broadcaster: EventBroadcaster):
    channel = broadcaster.open_channel()
    drain(channel)

    assert broadcaster.heartbeat() == 1
    assert drain(channel) == [HEARTBEAT_FRAME]


@pytest.mark.asyncio
async def test_heartbeat_loop_runs_on_interval():
    broadcaster = EventBroadcaster(heartbeat_interval=0.01)
    channel = broadcaster.open_channel()
    broadcaster.start()

    await asyncio.sleep(0.05)
    await broadcaster.close()

    assert HEARTBEAT_FRAME in [f for f in drain(channel) if f is not None]


@pytest.mark.asyncio
async def test_registration_during_fan_out_is_safe(broadcaster: EventBroadcaster):
    """A channel added while a broadcast iterates is not part of that broadcast."""
    late = []

    class RegisteringChannel(Channel):
        def send(self, frame):
            super().send(frame)
            if frame.startswith("event: booking_change") and not late:
                late.append(broadcaster.open_channel("late"))

    broadcaster.register(RegisteringChannel(client="trigger"))
    delivered = broadcaster.broadcast("booking_change", {})

    assert delivered == 1
    assert broadcaster.channel_count == 2
    assert [parse_frame(f)[0] for f in drain(late[0])] == ["connected"]


@pytest.mark.asyncio
async def test_close_ends_every_stream():
    broadcaster = EventBroadcaster(heartbeat_interval=3600)
    channel = broadcaster.open_channel()

    await broadcaster.close()

    received = [frame async for frame in channel.frames()]
    assert len(received) == 1
    assert broadcaster.channel_count == 0
