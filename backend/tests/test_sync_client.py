"""
Tests for the real-time sync client: fetching, stream handling and the
connecting/live/polling/error state machine.
"""

import asyncio
import json

import httpx
import pytest
import pytest_asyncio

from roombook.client import ConnectionStatus, RealtimeBookings
from roombook.client.sse import ServerSentEvent, iter_sse

BOOKING = {"booking_id": "BK-AAAAA", "room_id": "CSIS-101", "date": "2026-03-05",
           "start_time": "09:00", "end_time": "10:00", "status": "Pending", "owner_role": "student"}


class FakeServer:
    """Answers /bookings, /schedule and /bookings/stream; can be switched off."""

    def __init__(self, stream_body: str = ""):
        self.bookings = [BOOKING]
        self.schedule = {"2026-03-05": [BOOKING]}
        self.stream_body = stream_body
        self.down = False
        self.stream_down = False
        self.hits: dict[str, int] = {}

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.hits[path] = self.hits.get(path, 0) + 1
        if path == "/api/v1/bookings/stream":
            if self.stream_down:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(200, headers={"content-type": "text/event-stream"},
                                  content=self.stream_body.encode())
        if self.down:
            return httpx.Response(503, json={"detail": "down"})
        if path == "/api/v1/bookings":
            return httpx.Response(200, json=self.bookings)
        if path == "/api/v1/schedule":
            return httpx.Response(200, json=self.schedule)
        return httpx.Response(404)


def frame(event: str, data: dict) -> str:
    return f"event: {event}\ndata: {json.dumps(data)}\n\n"


@pytest.fixture
def server() -> FakeServer:
    return FakeServer()


@pytest_asyncio.fixture
async def sync(server: FakeServer):
    async with httpx.AsyncClient(transport=httpx.MockTransport(server.handler),
                                 base_url="http://test") as http:
        client = RealtimeBookings(client=http, reconnect_delay=0.01, refresh_delay=0)
        yield client
        await client.close()


async def settle() -> None:
    for _ in range(20):
        await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_iter_sse_parses_frames_and_skips_comments():
    async def lines():
        for line in ["event: connected", 'data: {"a": 1}', "", ": heartbeat", "",
                     "data: line one", "data: line two", ""]:
            yield line

    events = [e async for e in iter_sse(lines())]

    assert events == [
        ServerSentEvent(event="connected", data='{"a": 1}'),
        ServerSentEvent(event="message", data="line one\nline two"),
    ]


@pytest.mark.asyncio
async def test_fetch_all_populates_view(sync: RealtimeBookings):
    assert await sync.fetch_all() is True

    assert sync.bookings == [BOOKING]
    assert sync.schedule == {"2026-03-05": [BOOKING]}
    assert sync.last_updated is not None


@pytest.mark.asyncio
async def test_failed_fetch_keeps_last_state(sync: RealtimeBookings, server: FakeServer):
    await sync.fetch_all()
    server.down = True

    assert await sync.fetch_all() is False

    assert sync.bookings == [BOOKING]
    assert sync.status == ConnectionStatus.CONNECTING


@pytest.mark.asyncio
async def test_fetch_rejects_unexpected_shape(sync: RealtimeBookings, server: FakeServer):
    server.bookings = {"not": "a list"}

    assert await sync.fetch_bookings() is False
    assert sync.bookings == []


@pytest.mark.asyncio
async def test_connected_event_goes_live(sync: RealtimeBookings):
    sync._handle_event(ServerSentEvent(event="connected", data="{}"))

    assert sync.status == ConnectionStatus.LIVE
    assert sync.poll_interval == 30.0
    await settle()
    assert sync.bookings == [BOOKING]


@pytest.mark.asyncio
async def test_stream_loss_switches_to_fast_polling(sync: RealtimeBookings):
    sync._handle_event(ServerSentEvent(event="connected", data="{}"))

    sync._on_stream_lost()

    assert sync.status == ConnectionStatus.POLLING
    assert sync.poll_interval == 5.0


@pytest.mark.asyncio
async def test_repeated_failures_while_polling_go_offline(sync: RealtimeBookings, server: FakeServer):
    sync._on_stream_lost()
    server.down = True

    await sync.fetch_all()
    await sync.fetch_all()
    assert sync.status == ConnectionStatus.POLLING
    await sync.fetch_all()
    assert sync.status == ConnectionStatus.ERROR

    server.down = False
    await sync.fetch_all()
    assert sync.status == ConnectionStatus.POLLING


@pytest.mark.asyncio
async def test_failures_while_live_do_not_change_state(sync: RealtimeBookings, server: FakeServer):
    sync._handle_event(ServerSentEvent(event="connected", data="{}"))
    await settle()
    server.down = True

    for _ in range(4):
        await sync.fetch_all()

    assert sync.status == ConnectionStatus.LIVE


@pytest.mark.asyncio
async def test_reconnect_from_error_goes_live(sync: RealtimeBookings, server: FakeServer):
    sync._on_stream_lost()
    server.down = True
    for _ in range(3):
        await sync.fetch_all()
    assert sync.status == ConnectionStatus.ERROR

    sync._on_stream_lost()
    assert sync.status == ConnectionStatus.ERROR

    sync._handle_event(ServerSentEvent(event="connected", data="{}"))
    assert sync.status == ConnectionStatus.LIVE


@pytest.mark.asyncio
async def test_change_events_are_applied(sync: RealtimeBookings, server: FakeServer):
    new = dict(BOOKING, booking_id="BK-BBBBB", start_time="11:00", end_time="12:00")

    sync._handle_event(ServerSentEvent("booking_change", json.dumps(
        {"eventType": "INSERT", "new": new, "old": None, "timestamp": "t"})))
    sync._handle_event(ServerSentEvent("booking_change", json.dumps(
        {"eventType": "INSERT", "new": new, "old": None, "timestamp": "t"})))

    assert [b["booking_id"] for b in sync.bookings] == ["BK-BBBBB"]
    assert server.hits == {}


@pytest.mark.asyncio
async def test_update_event_refetches_schedule(sync: RealtimeBookings, server: FakeServer):
    sync._handle_event(ServerSentEvent("booking_change", json.dumps(
        {"eventType": "UPDATE", "new": dict(BOOKING, status="Approved"),
         "old": {"booking_id": "BK-AAAAA", "status": "Pending"}})))
    await settle()

    assert server.hits == {"/api/v1/schedule": 1}
    assert sync.schedule == {"2026-03-05": [BOOKING]}


@pytest.mark.asyncio
async def test_unreadable_event_triggers_full_fetch(sync: RealtimeBookings, server: FakeServer):
    sync._handle_event(ServerSentEvent("booking_change", "{not json"))
    await settle()

    assert server.hits == {"/api/v1/bookings": 1, "/api/v1/schedule": 1}


@pytest.mark.asyncio
async def test_trigger_refresh(sync: RealtimeBookings, server: FakeServer):
    await sync.trigger_refresh()

    assert server.hits["/api/v1/bookings"] == 1
    assert sync.bookings == [BOOKING]


@pytest.mark.asyncio
async def test_consume_stream(server: FakeServer):
    inserted = dict(BOOKING, booking_id="BK-CCCCC", date="2026-03-06")
    server.bookings = [inserted, BOOKING]
    server.schedule = {"2026-03-05": [BOOKING], "2026-03-06": [inserted]}
    server.stream_body = (
        frame("connected", {"timestamp": "t"})
        + ": heartbeat\n\n"
        + frame("booking_change", {"eventType": "INSERT", "new": inserted, "old": None})
    )

    async with httpx.AsyncClient(transport=httpx.MockTransport(server.handler),
                                 base_url="http://test") as http:
        sync = RealtimeBookings(client=http)
        await sync._consume_stream()
        await settle()

        assert sync.status == ConnectionStatus.LIVE
        assert sync.poll_interval == 30.0
        assert [b["booking_id"] for b in sync.bookings] == ["BK-CCCCC", "BK-AAAAA"]
        assert "2026-03-06" in sync.schedule
        await sync.close()


@pytest.mark.asyncio
async def test_start_with_stream_down_falls_back_to_polling(sync: RealtimeBookings, server: FakeServer):
    server.stream_down = True

    await sync.start()
    await asyncio.sleep(0.05)

    assert sync.status == ConnectionStatus.POLLING
    assert sync.poll_interval == 5.0
    assert server.hits["/api/v1/bookings/stream"] >= 2
    assert sync.bookings == [BOOKING]


@pytest.mark.asyncio
async def test_close_cancels_everything(server: FakeServer):
    server.stream_down = True
    seen = []

    async with httpx.AsyncClient(transport=httpx.MockTransport(server.handler),
                                 base_url="http://test") as http:
        async with RealtimeBookings(client=http, reconnect_delay=0.01,
                                    on_change=lambda s: seen.append(s.status)) as sync:
            await asyncio.sleep(0.03)

        hits = dict(server.hits)
        await asyncio.sleep(0.03)

        assert server.hits == hits
        assert sync._stream_task is None
        assert sync._poll_task is None
        assert sync._tasks == set()
        assert ConnectionStatus.POLLING in seen


@pytest.mark.asyncio
async def test_malformed_change_keeps_stream_alive(sync: RealtimeBookings, server: FakeServer):
    server.stream_body = (
        frame("connected", {"timestamp": "t"})
        + frame("booking_change", {"eventType": "DELETE", "new": None,
                                   "old": {"booking_id": "BK-AAAAA", "date": ["2026-03-05"]}})
        + frame("booking_change", {"eventType": "INSERT", "new": ["BK-ZZZZZ"], "old": None})
    )

    await sync.start()
    await asyncio.sleep(0.1)

    assert not sync._stream_task.done()
    assert server.hits["/api/v1/bookings/stream"] >= 2
    assert server.hits["/api/v1/bookings"] >= 2


@pytest.mark.asyncio
async def test_unexpected_stream_failure_reconnects(sync: RealtimeBookings, server: FakeServer,
                                                   monkeypatch):
    consume = sync._consume_stream
    attempts = []

    async def failing_once():
        attempts.append(1)
        if len(attempts) == 1:
            raise RuntimeError("reader blew up")
        await consume()

    monkeypatch.setattr(sync, "_consume_stream", failing_once)

    await sync.start()
    await asyncio.sleep(0.05)

    assert len(attempts) >= 2
    assert not sync._stream_task.done()
    assert sync.status == ConnectionStatus.POLLING


@pytest.mark.asyncio
async def test_raising_callback_does_not_stop_sync(server: FakeServer):
    server.stream_body = frame("connected", {"timestamp": "t"})

    def explode(_):
        raise RuntimeError("ui gone")

    async with httpx.AsyncClient(transport=httpx.MockTransport(server.handler),
                                 base_url="http://test") as http:
        async with RealtimeBookings(client=http, reconnect_delay=0.01,
                                    on_change=explode) as sync:
            await asyncio.sleep(0.05)

            assert not sync._stream_task.done()
            assert server.hits["/api/v1/bookings/stream"] >= 2
            assert sync.bookings == [BOOKING]
