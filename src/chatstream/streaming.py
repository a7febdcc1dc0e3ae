"""Streaming primitives for structured tool-call deltas.

OpenAI-compatible backends split a tool call across many chunks: the id
and function name usually arrive first, then the JSON arguments in
arbitrary fragments.  :class:`ToolCallAccumulator` reassembles them per
``index`` and emits a :class:`~chatstream.events.ToolCallEvent` as soon as
the arguments parse as a JSON object, without waiting for a finish reason.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass

from chatstream.emission import EmissionGuard, new_call_id
from chatstream.errors import InvalidToolCallError
from chatstream.events import ResponseEvent, ToolCallEvent

logger = logging.getLogger(__name__)

UNKNOWN_TOOL_NAME = "unknown_tool"


def try_parse_object(text: str | None) -> dict | None:
    """Return *text* parsed as JSON if it is an object, else ``None``.

    Safe to call after every buffer mutation; it never raises.
    """
    if not text:
        return None
    try:
        value = json.loads(text)
    except (json.JSONDecodeError, TypeError, ValueError, RecursionError):
        return None
    if not isinstance(value, dict):
        return None
    return value


@dataclass
class ToolCallFragment:
    """A fragment of a tool call from a streaming chunk."""

    index: int
    call_id: str | None = None
    name: str | None = None
    arguments_delta: str | None = None


@dataclass
class PartialToolCall:
    """Buffered state of one tool call that has not been emitted yet."""

    id: str | None = None
    name: str | None = None
    arguments: str = ""


class ToolCallAccumulator:
    """Assembles complete tool calls from streaming fragments.

    Args:
        emit: Receives each completed :class:`ToolCallEvent`.
        guard: Shared dedup registry, so inline calls and structured
            calls of one session never duplicate each other.
    """

    def __init__(
        self,
        emit: Callable[[ResponseEvent], None],
        guard: EmissionGuard | None = None,
    ) -> None:
        self._emit = emit
        self._guard = guard or EmissionGuard()
        self._pending: dict[int, PartialToolCall] = {}
        self._completed: set[int] = set()

    @property
    def pending(self) -> dict[int, PartialToolCall]:
        return self._pending

    @property
    def completed(self) -> set[int]:
        return self._completed

    def feed(self, fragment: ToolCallFragment) -> None:
        # Late or repeated deltas for a finished call are ignored.
        if fragment.index in self._completed:
            logger.debug(f"Ignoring delta for completed tool call {fragment.index}")
            return
        if fragment.index not in self._pending:
            self._pending[fragment.index] = PartialToolCall()
        tc = self._pending[fragment.index]
        if fragment.call_id is not None:
            tc.id = fragment.call_id
        if fragment.name is not None:
            tc.name = fragment.name
        if fragment.arguments_delta is not None:
            tc.arguments += fragment.arguments_delta
        self._try_emit(fragment.index)

    def flush(self, strict: bool) -> None:
        """Emit every buffered call whose arguments are a JSON object.

        With ``strict`` set, a call whose arguments never became valid
        raises :class:`InvalidToolCallError`.  Otherwise it is dropped.
        """
        for index in sorted(self._pending):
            tc = self._pending[index]
            arguments = try_parse_object(tc.arguments)
            if arguments is None:
                snippet = tc.arguments[:200]
                if strict:
                    logger.error(f"Invalid JSON for tool call {index}: {snippet!r}")
                    raise InvalidToolCallError(index, snippet)
                logger.debug(f"Dropping incomplete tool call {index}: {snippet!r}")
                del self._pending[index]
                continue
            self._complete(index, tc, tc.name or UNKNOWN_TOOL_NAME, arguments)

    def reset(self) -> None:
        self._pending.clear()
        self._completed.clear()

    def _try_emit(self, index: int) -> None:
        tc = self._pending.get(index)
        if tc is None or not tc.name:
            return
        arguments = try_parse_object(tc.arguments)
        if arguments is None:
            return
        self._complete(index, tc, tc.name, arguments)

    def _complete(
        self, index: int, tc: PartialToolCall, name: str, arguments: dict,
    ) -> None:
        del self._pending[index]
        self._completed.add(index)
        if not self._guard.admit(name, arguments, index):
            return
        self._emit(ToolCallEvent(
            id=tc.id or new_call_id("call"), name=name, arguments=arguments,
        ))
