import asyncio
import json

import pytest

from chatstream.config import StreamSettings
from chatstream.events import TextEvent, ThinkingEvent, ToolCallEvent
from chatstream.parser import StreamParser


# ---------------------------------------------------------------------------
# SSE frame builders (mirror the OpenAI chunk shape)
# ---------------------------------------------------------------------------

DONE = "data: [DONE]\n"


def sse(payload: dict) -> str:
    """One ``data:`` line carrying *payload*."""
    return f"data: {json.dumps(payload)}\n"


def content_chunk(text: str, finish_reason: str | None = None) -> str:
    """Chat-style chunk with ``delta.content``."""
    return sse({"choices": [{
        "index": 0,
        "delta": {"content": text},
        "finish_reason": finish_reason,
    }]})


def completion_chunk(text: str) -> str:
    """Completion-style chunk with ``choices[0].text``."""
    return sse({"choices": [{"index": 0, "text": text}]})


def tool_call_chunk(
    index: int = 0,
    call_id: str | None = None,
    name: str | None = None,
    arguments: str | None = None,
    finish_reason: str | None = None,
) -> str:
    """Chunk carrying a single structured tool-call delta."""
    function = {}
    if name is not None:
        function["name"] = name
    if arguments is not None:
        function["arguments"] = arguments
    call = {"index": index, "function": function}
    if call_id is not None:
        call["id"] = call_id
    return sse({"choices": [{
        "index": 0,
        "delta": {"tool_calls": [call]},
        "finish_reason": finish_reason,
    }]})


def finish_chunk(reason: str) -> str:
    return sse({"choices": [{"index": 0, "delta": {}, "finish_reason": reason}]})


# ---------------------------------------------------------------------------
# Byte sources
# ---------------------------------------------------------------------------

async def byte_source(*chunks):
    """Async byte source yielding each chunk (str chunks are UTF-8 encoded)."""
    for chunk in chunks:
        yield chunk.encode("utf-8") if isinstance(chunk, str) else chunk


def split_every(data: bytes, size: int) -> list[bytes]:
    return [data[i:i + size] for i in range(0, len(data), size)]


class FailingSource:
    """Yields *chunks*, then raises *error* on the next read."""

    def __init__(self, chunks, error: Exception):
        self.chunks = [c.encode("utf-8") if isinstance(c, str) else c for c in chunks]
        self.error = error
        self.closed = False

    def __aiter__(self):
        return self

    async def __anext__(self):
        if self.chunks:
            return self.chunks.pop(0)
        raise self.error

    async def aclose(self):
        self.closed = True


class StallingSource(FailingSource):
    """Yields *chunks*, then never produces another one."""

    def __init__(self, chunks):
        super().__init__(chunks, error=RuntimeError("unused"))

    async def __anext__(self):
        if self.chunks:
            return self.chunks.pop(0)
        await asyncio.sleep(3600)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

async def collect(parser: StreamParser, source, cancel=None) -> list:
    return [e async for e in parser.iter(source, cancel)]


def texts(events) -> list[str]:
    return [e.text for e in events if isinstance(e, TextEvent)]


def tool_calls(events) -> list[ToolCallEvent]:
    return [e for e in events if isinstance(e, ToolCallEvent)]


def without_ids(events) -> list:
    """Events with generated tool-call ids blanked, for comparisons."""
    out = []
    for e in events:
        if isinstance(e, ToolCallEvent):
            out.append(ToolCallEvent(id="", name=e.name, arguments=e.arguments))
        else:
            out.append(e)
    return out


def kinds(events) -> list[str]:
    names = {TextEvent: "text", ThinkingEvent: "thinking", ToolCallEvent: "tool_call"}
    return [names[type(e)] for e in events]


@pytest.fixture
def settings():
    return StreamSettings(idle_timeout=0.2)


@pytest.fixture
def parser(settings):
    return StreamParser(settings)
