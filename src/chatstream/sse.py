"""Server-Sent Events adapter for parsed response events."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from dataclasses import asdict

from chatstream.events import ResponseEvent


async def sse_generator(
    event_stream: AsyncIterator[ResponseEvent],
) -> AsyncIterator[str]:
    """Convert a ResponseEvent async iterator into SSE-formatted strings."""
    async for event in event_stream:
        event_type = type(event).__name__
        data = json.dumps(asdict(event), ensure_ascii=False)
        yield f"event: {event_type}\ndata: {data}\n\n"
    yield "event: done\ndata: {}\n\n"
