"""
Minimal text/event-stream decoder for the booking stream.

Only the fields the server emits are interpreted (event, data). Comment
lines such as ": heartbeat" are skipped; they exist to keep the transport
alive, not to carry data.
"""

from dataclasses import dataclass
from typing import AsyncIterable, AsyncIterator


@dataclass
class ServerSentEvent:
    event: str = "message"
    data: str = ""


async def iter_sse(lines: AsyncIterable[str]) -> AsyncIterator[ServerSentEvent]:
    event_name = ""
    data: list[str] = []

    async for raw in lines:
        line = raw.rstrip("\r\n")

        if not line:
            if data or event_name:
                yield ServerSentEvent(event=event_name or "message", data="\n".join(data))
            event_name, data = "", []
            continue

        if line.startswith(":"):
            continue

        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]

        if name == "event":
            event_name = value
        elif name == "data":
            data.append(value)
