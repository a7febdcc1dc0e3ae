from chatstream.config import StreamSettings, configure_logging
from chatstream.errors import (
    ConnectionLostError,
    InvalidToolCallError,
    StreamError,
    StreamTimeoutError,
    UpstreamError,
)
from chatstream.events import ResponseEvent, TextEvent, ThinkingEvent, ToolCallEvent
from chatstream.instrumentation import instrument, uninstrument
from chatstream.parser import StreamOutcome, StreamParser, StreamState
from chatstream.provider import OpenAICompatibleProvider, TextGenerationProvider

__all__ = [
    "ConnectionLostError",
    "InvalidToolCallError",
    "OpenAICompatibleProvider",
    "ResponseEvent",
    "StreamError",
    "StreamOutcome",
    "StreamParser",
    "StreamSettings",
    "StreamState",
    "StreamTimeoutError",
    "TextEvent",
    "TextGenerationProvider",
    "ThinkingEvent",
    "ToolCallEvent",
    "UpstreamError",
    "configure_logging",
    "instrument",
    "uninstrument",
]
