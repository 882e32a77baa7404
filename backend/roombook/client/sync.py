"""
Real-time booking sync client.

SYNC STRATEGY: Stream first, polling as backstop
================================================

  connecting --(connected event)--> live
  live       --(stream error/drop)--> polling
  polling    --(reconnect + connected event)--> live
  polling    --(stream down and N fetches failed in a row)--> error
  error      --(fetch succeeds)--> polling, --(connected event)--> live

- On start: one full fetch of bookings + schedule, independent of the stream.
- Live: the event stream is primary; a slow poll (30s) catches anything missed.
- Stream down: fast poll (5s) and a reconnect attempt every 5s, forever.
- A failed fetch on its own never changes state; it is logged and retried
  on the next tick.

Everything runs on one event loop. Timers are tasks owned by this object
and close() cancels all of them.
"""

import asyncio
import json
from datetime import datetime, timezone
from enum import Enum
from typing import Awaitable, Callable, Optional

import httpx

from roombook.client.sse import ServerSentEvent, iter_sse
from roombook.client.state import BookingView
from roombook.core.logging import get_logger

logger = get_logger(__name__)

POLL_INTERVAL_NORMAL = 30.0
POLL_INTERVAL_FALLBACK = 5.0
RECONNECT_DELAY = 5.0
REFRESH_DELAY = 0.3
OFFLINE_AFTER_FAILURES = 3
STREAM_READ_TIMEOUT = 60.0  # > 2 heartbeats


class ConnectionStatus(str, Enum):
    CONNECTING = "connecting"
    LIVE = "live"
    POLLING = "polling"
    ERROR = "error"


class RealtimeBookings:
    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        *,
        client: Optional[httpx.AsyncClient] = None,
        api_prefix: str = "/api/v1",
        poll_interval_normal: float = POLL_INTERVAL_NORMAL,
        poll_interval_fallback: float = POLL_INTERVAL_FALLBACK,
        reconnect_delay: float = RECONNECT_DELAY,
        refresh_delay: float = REFRESH_DELAY,
        offline_after_failures: int = OFFLINE_AFTER_FAILURES,
        on_change: Optional[Callable[["RealtimeBookings"], None]] = None,
    ):
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(base_url=base_url, timeout=10.0)
        self.api_prefix = api_prefix.rstrip("/")
        self.poll_interval_normal = poll_interval_normal
        self.poll_interval_fallback = poll_interval_fallback
        self.reconnect_delay = reconnect_delay
        self.refresh_delay = refresh_delay
        self.offline_after_failures = offline_after_failures
        self.on_change = on_change

        self.view = BookingView()
        self.status = ConnectionStatus.CONNECTING
        self.last_updated: Optional[datetime] = None
        self.poll_interval: Optional[float] = None

        self._failures = 0
        self._closed = False
        self._stream_task: Optional[asyncio.Task] = None
        self._poll_task: Optional[asyncio.Task] = None
        self._tasks: set[asyncio.Task] = set()

    # -- public surface ---------------------------------------------------

    @property
    def bookings(self) -> list[dict]:
        return self.view.bookings

    @property
    def schedule(self) -> dict[str, list[dict]]:
        return self.view.schedule

    async def start(self) -> None:
        self._set_status(ConnectionStatus.CONNECTING)
        self._spawn(self.fetch_all())
        self._stream_task = asyncio.create_task(self._run_stream())

    def trigger_refresh(self) -> asyncio.Task:
        """Full fetch after a short delay, for callers expecting a change soon."""
        return self._spawn(self._delayed_refresh())

    async def close(self) -> None:
        self._closed = True
        tasks = [t for t in (self._stream_task, self._poll_task, *self._tasks) if t is not None]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._stream_task = self._poll_task = None
        self._tasks.clear()
        if self._owns_client:
            await self.client.aclose()
        logger.info("sync_closed")

    async def __aenter__(self) -> "RealtimeBookings":
        await self.start()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    # -- fetching ---------------------------------------------------------

    async def _get_json(self, path: str):
        response = await self.client.get(f"{self.api_prefix}{path}")
        response.raise_for_status()
        return response.json()

    async def fetch_bookings(self) -> bool:
        try:
            data = await self._get_json("/bookings")
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("fetch_bookings_failed", error=str(e))
            return False
        if not isinstance(data, list):
            logger.warning("fetch_bookings_unexpected", type=type(data).__name__)
            return False
        self.view.replace_bookings(data)
        self._touch()
        return True

    async def fetch_schedule(self) -> bool:
        try:
            data = await self._get_json("/schedule")
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("fetch_schedule_failed", error=str(e))
            return False
        if not isinstance(data, dict):
            logger.warning("fetch_schedule_unexpected", type=type(data).__name__)
            return False
        self.view.replace_schedule(data)
        self._touch()
        return True

    async def fetch_all(self) -> bool:
        results = await asyncio.gather(self.fetch_bookings(), self.fetch_schedule())
        ok = all(results)
        self._record_fetch(ok)
        return ok

    def _record_fetch(self, ok: bool) -> None:
        if ok:
            self._failures = 0
            if self.status == ConnectionStatus.ERROR:
                self._set_status(ConnectionStatus.POLLING)
            return

        self._failures += 1
        if (
            self.status == ConnectionStatus.POLLING
            and self._failures >= self.offline_after_failures
        ):
            self._set_status(ConnectionStatus.ERROR)

    async def _delayed_refresh(self) -> None:
        await asyncio.sleep(self.refresh_delay)
        await self.fetch_all()

    # -- polling ----------------------------------------------------------

    def _set_poll_interval(self, interval: float) -> None:
        if self._poll_task is not None:
            if self.poll_interval == interval and not self._poll_task.done():
                return
            self._poll_task.cancel()
        self.poll_interval = interval
        self._poll_task = asyncio.create_task(self._poll_loop(interval))

    async def _poll_loop(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            await self.fetch_all()

    # -- stream -----------------------------------------------------------

    async def _run_stream(self) -> None:
        while not self._closed:
            try:
                await self._consume_stream()
                logger.warning("stream_ended")
            except httpx.HTTPError as e:
                logger.warning("stream_error", error=str(e))
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception("stream_failed", error=str(e))
            self._on_stream_lost()
            await asyncio.sleep(self.reconnect_delay)

    async def _consume_stream(self) -> None:
        timeout = httpx.Timeout(10.0, read=STREAM_READ_TIMEOUT)
        async with self.client.stream(
            "GET",
            f"{self.api_prefix}/bookings/stream",
            headers={"Accept": "text/event-stream"},
            timeout=timeout,
        ) as response:
            response.raise_for_status()
            async for event in iter_sse(response.aiter_lines()):
                self._handle_event(event)

    def _handle_event(self, event: ServerSentEvent) -> None:
        if event.event == "connected":
            self._on_connected()
            return
        if event.event != "booking_change":
            return

        try:
            data = json.loads(event.data)
            event_type = data["eventType"]
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("stream_event_unreadable", error=str(e))
            self._spawn(self.fetch_all())
            return

        new, old = data.get("new"), data.get("old")
        try:
            logger.debug(
                "booking_change_received",
                event_type=event_type,
                booking_id=(new or old or {}).get("booking_id"),
            )
            schedule_stale = self.view.apply(event_type, new, old)
        except (TypeError, AttributeError, ValueError, KeyError) as e:
            logger.warning("stream_event_unapplied", event_type=event_type, error=str(e))
            self._spawn(self.fetch_all())
            return
        self._touch()
        if schedule_stale:
            self._spawn(self.fetch_schedule())

    def _on_connected(self) -> None:
        logger.info("stream_connected")
        self._failures = 0
        self._set_status(ConnectionStatus.LIVE)
        self._set_poll_interval(self.poll_interval_normal)
        self._spawn(self.fetch_all())

    def _on_stream_lost(self) -> None:
        if self.status != ConnectionStatus.ERROR:
            self._set_status(ConnectionStatus.POLLING)
        self._set_poll_interval(self.poll_interval_fallback)

    # -- helpers ----------------------------------------------------------

    def _spawn(self, coro: Awaitable) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _set_status(self, status: ConnectionStatus) -> None:
        if status != self.status:
            logger.info("sync_status_changed", old=self.status.value, new=status.value)
        self.status = status
        self._notify()

    def _touch(self) -> None:
        self.last_updated = datetime.now(timezone.utc)
        self._notify()

    def _notify(self) -> None:
        if self.on_change is None:
            return
        try:
            self.on_change(self)
        except Exception:
            logger.exception("on_change_failed")
