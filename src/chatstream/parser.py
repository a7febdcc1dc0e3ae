"""Lifecycle of one response stream.

:class:`StreamParser` reads a byte source chunk by chunk, pushes each line
through the dispatcher and yields the resulting events.  It owns the
policies around consumption:

* an idle timeout once the first chunk has arrived;
* cooperative cancellation, checked before every read;
* a fallback text event so the caller never ends up with nothing to show;
* releasing the reader and clearing the session on every exit path.

``run()`` drains ``iter()`` into a callback sink.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterable, AsyncIterator, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from chatstream.config import StreamSettings
from chatstream.dispatch import EventDispatcher
from chatstream.errors import ConnectionLostError, StreamError, StreamTimeoutError
from chatstream.events import ResponseEvent, TextEvent, ThinkingEvent, ToolCallEvent
from chatstream.frames import FrameDecoder
from chatstream.session import StreamSession

logger = logging.getLogger(__name__)


class CancellationSignal(Protocol):
    """Anything with ``is_set()``, e.g. :class:`asyncio.Event`."""

    def is_set(self) -> bool: ...


class StreamState(Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    COMPLETED = "completed"
    ERRORED = "errored"
    CANCELLED = "cancelled"


@dataclass
class StreamOutcome:
    """Summary of one parsed stream."""

    state: StreamState = StreamState.IDLE
    text_events: int = 0
    thinking_events: int = 0
    tool_calls: int = 0
    emitted_text: bool = False


class StreamParser:
    """Parses one OpenAI-compatible SSE response at a time.

    A parser is not safe for concurrent streams: starting a second
    ``iter()`` while one is still running raises :class:`RuntimeError`.
    Create one parser per request, or wait for the previous stream.

    Args:
        settings: Timeouts, markers and fallback texts.
    """

    def __init__(self, settings: StreamSettings | None = None):
        self.settings = settings or StreamSettings()
        self.session = StreamSession()
        self.state = StreamState.IDLE
        self.outcome = StreamOutcome()
        self._busy = False

    async def run(
        self,
        source: AsyncIterable[bytes],
        report: Callable[[ResponseEvent], None],
        cancel: CancellationSignal | None = None,
    ) -> StreamOutcome:
        """Parse *source*, handing every event to *report*.

        Exceptions raised by *report* are logged and never reach the
        parser.
        """
        async for event in self.iter(source, cancel):
            try:
                report(event)
            except Exception as e:
                logger.error(f"Progress report failed for {type(event).__name__}: {e}")
        return self.outcome

    async def iter(
        self,
        source: AsyncIterable[bytes],
        cancel: CancellationSignal | None = None,
    ) -> AsyncIterator[ResponseEvent]:
        """Parse *source*, yielding events as frames complete."""
        if self._busy:
            raise RuntimeError("StreamParser is already consuming a stream")
        self._busy = True
        self.session = session = StreamSession()
        self.state = StreamState.IDLE
        self.outcome = StreamOutcome()
        dispatcher = EventDispatcher(session, self.settings)
        decoder = FrameDecoder()
        reader = aiter(source)

        try:
            while not self._cancelled(cancel):
                chunk = await self._read(reader)
                if chunk is None:
                    logger.debug("Stream ended normally")
                    break
                if self.state is StreamState.IDLE:
                    self.state = StreamState.STREAMING
                    logger.debug("Stream started - receiving data")
                for line in decoder.feed(chunk):
                    dispatcher.dispatch(line)
                    for event in session.drain():
                        yield self._record(event)

            if self._cancelled(cancel):
                self.state = StreamState.CANCELLED
                logger.info("Stream cancelled by caller")
                return

            dispatcher.finish()
            for event in session.drain():
                yield self._record(event)
            self.state = StreamState.COMPLETED
            if not session.has_emitted_text:
                logger.warning("Stream completed but no content was emitted to user")
                yield self._record(TextEvent(text=self.settings.empty_response_message))
        except Exception as e:
            self.state = StreamState.ERRORED
            logger.error(f"Error during stream processing: {type(e).__name__}: {e}")
            for event in session.drain():
                yield self._record(event)
            if not session.has_emitted_text:
                logger.warning("Emitting error message to user due to stream error with no prior content")
                yield self._record(TextEvent(text=self.settings.error_message))
            raise
        finally:
            if self.state in (StreamState.IDLE, StreamState.STREAMING):
                self.state = StreamState.CANCELLED
            self.outcome.state = self.state
            self.outcome.emitted_text = session.has_emitted_text
            decoder.close()
            await self._release(reader)
            session.reset()
            self._busy = False

    async def _read(self, reader: AsyncIterator[bytes]) -> bytes | None:
        # No idle timeout until the first chunk; the transport bounds that wait.
        timeout = self.settings.idle_timeout if self.state is StreamState.STREAMING else None
        try:
            return await asyncio.wait_for(self._next_chunk(reader), timeout)
        except asyncio.TimeoutError:
            logger.error(f"Stream timeout - no data received for {timeout} seconds")
            raise StreamTimeoutError(
                "Response timeout: No data received from server",
                details={"timeout": timeout},
            ) from None

    async def _next_chunk(self, reader: AsyncIterator[bytes]) -> bytes | None:
        # Wrapped inside the wait: only the idle window may surface as TimeoutError.
        try:
            return await anext(reader, None)
        except StreamError:
            raise
        except Exception as e:
            logger.error(f"Stream read error - connection may have dropped: {e}")
            raise ConnectionLostError(
                "Connection lost while reading response stream",
                details={"error": str(e)},
            ) from e

    async def _release(self, reader: AsyncIterator[bytes]) -> None:
        aclose = getattr(reader, "aclose", None)
        if aclose is None:
            return
        try:
            await aclose()
        except Exception as e:
            logger.warning(f"Failed to release stream reader: {e}")

    def _record(self, event: ResponseEvent) -> ResponseEvent:
        if isinstance(event, TextEvent):
            self.outcome.text_events += 1
        elif isinstance(event, ThinkingEvent):
            self.outcome.thinking_events += 1
        elif isinstance(event, ToolCallEvent):
            self.outcome.tool_calls += 1
        return event

    @staticmethod
    def _cancelled(cancel: CancellationSignal | None) -> bool:
        return cancel is not None and cancel.is_set()
