"""Classification of SSE lines and normalisation of chunk deltas.

Backends disagree on the shape of a chunk: chat routers put text in
``choices[0].delta.content`` while text-generation servers answering the
completions endpoint use ``choices[0].text``; reasoning arrives either as
a plain string or as ``{"text", "id", "metadata"}``.  Everything is folded
into a :class:`Delta` here so the rest of the pipeline never looks at the
raw JSON again.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from chatstream.config import StreamSettings
from chatstream.events import ThinkingEvent
from chatstream.session import StreamSession
from chatstream.streaming import ToolCallFragment

logger = logging.getLogger(__name__)


class FrameKind(Enum):
    IGNORED = "ignored"
    TERMINATOR = "terminator"
    MALFORMED = "malformed"
    DATA = "data"


@dataclass
class Frame:
    """One classified line of the event stream."""

    kind: FrameKind
    payload: dict | None = None


@dataclass
class Thinking:
    text: str
    id: str | None = None
    metadata: Any = None


@dataclass
class Delta:
    """Normalised content of one streamed choice."""

    text: str | None = None
    thinking: Thinking | None = None
    tool_calls: list[ToolCallFragment] = field(default_factory=list)
    finish_reason: str | None = None


def parse_frame(line: str, settings: StreamSettings | None = None) -> Frame:
    """Classify *line* as ignored, terminator, malformed or data."""
    settings = settings or StreamSettings()
    if not line.startswith(settings.data_prefix):
        return Frame(FrameKind.IGNORED)
    data = line[len(settings.data_prefix):]
    if data.startswith(" "):
        data = data[1:]
    if data.strip() == settings.terminator:
        return Frame(FrameKind.TERMINATOR)
    try:
        payload = json.loads(data)
    except (json.JSONDecodeError, RecursionError) as e:
        logger.warning(f"Failed to parse SSE line: {e} {data[:200]!r}")
        return Frame(FrameKind.MALFORMED)
    if not isinstance(payload, dict):
        logger.warning(f"Ignoring non-object SSE payload {data[:200]!r}")
        return Frame(FrameKind.MALFORMED)
    return Frame(FrameKind.DATA, payload)


def normalize_thinking(raw) -> Thinking | None:
    """Accept ``"text"`` or ``{"text", "id", "metadata"}``; ``None`` if empty."""
    if isinstance(raw, str):
        return Thinking(text=raw) if raw else None
    if isinstance(raw, dict):
        text = raw.get("text")
        if not isinstance(text, str) or not text:
            return None
        thinking_id = raw.get("id")
        return Thinking(
            text=text,
            id=thinking_id if isinstance(thinking_id, str) else None,
            metadata=raw.get("metadata"),
        )
    return None


def normalize_tool_call(raw: dict) -> ToolCallFragment:
    index = raw.get("index")
    call_id = raw.get("id")
    function = raw.get("function")
    if not isinstance(function, dict):
        function = {}
    name = function.get("name")
    arguments = function.get("arguments")
    return ToolCallFragment(
        index=index if isinstance(index, int) else 0,
        call_id=call_id if isinstance(call_id, str) and call_id else None,
        name=name if isinstance(name, str) and name else None,
        arguments_delta=arguments if isinstance(arguments, str) else None,
    )


def normalize_choice(choice: dict) -> Delta:
    """Fold a raw ``choices[i]`` object into a :class:`Delta`."""
    delta = choice.get("delta")
    if not isinstance(delta, dict):
        delta = {}

    thinking = choice.get("thinking")
    if thinking is None:
        thinking = delta.get("thinking")

    text = delta.get("content") or choice.get("text")

    raw_calls = delta.get("tool_calls")
    if not isinstance(raw_calls, list):
        raw_calls = []

    finish_reason = choice.get("finish_reason")
    return Delta(
        text=str(text) if text else None,
        thinking=normalize_thinking(thinking),
        tool_calls=[normalize_tool_call(tc) for tc in raw_calls if isinstance(tc, dict)],
        finish_reason=finish_reason if isinstance(finish_reason, str) else None,
    )


class EventDispatcher:
    """Routes each line of the stream into the session's components.

    Args:
        session: State of the response being parsed.
        settings: Data prefix, terminator and strict finish reasons.
    """

    def __init__(self, session: StreamSession, settings: StreamSettings | None = None):
        self.session = session
        self.settings = settings or StreamSettings()

    def dispatch(self, line: str) -> None:
        frame = parse_frame(line, self.settings)
        if frame.kind is FrameKind.TERMINATOR:
            self.finish()
            logger.debug(f"Received [DONE] signal. Has emitted text: {self.session.has_emitted_text}")
            if not self.session.has_emitted_text:
                logger.warning("Stream completed but no text was emitted - possible server error")
            return
        if frame.kind is not FrameKind.DATA:
            return

        choices = frame.payload.get("choices")
        if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
            logger.debug(f"Skipping chunk without choices {json.dumps(frame.payload)[:300]}")
            return
        self.process_delta(normalize_choice(choices[0]))

    def process_delta(self, delta: Delta) -> None:
        session = self.session
        if delta.thinking is not None:
            session.emit(ThinkingEvent(
                text=delta.thinking.text,
                id=delta.thinking.id,
                metadata=delta.thinking.metadata,
            ))

        if delta.text:
            logger.debug(f"Processing text content: {delta.text[:100]!r}")
            if session.inline.feed(delta.text):
                session.has_emitted_text = True

        for fragment in delta.tool_calls:
            session.tool_calls.feed(fragment)

        if delta.finish_reason in self.settings.strict_finish_reasons:
            session.tool_calls.flush(strict=True)

    def finish(self) -> None:
        """Non-strict flush of everything still buffered.

        Safe to call more than once; a second call finds nothing left.
        """
        self.session.tool_calls.flush(strict=False)
        if self.session.inline.flush():
            self.session.has_emitted_text = True
