"""Tool calls embedded as control tokens in the plain-text stream.

Some backends do not send structured ``tool_calls`` deltas and instead
write the call into the content stream::

    <|tool_call_begin|>lookup:0<|tool_call_argument_begin|>{"x": 1}<|tool_call_end|>

The header is the tool name with an optional ``:index`` suffix.  A header
followed directly by ``<|tool_call_end|>`` is a call without arguments.
Section markers such as ``<|tool_calls_section_begin|>`` carry no
information and are removed from visible text.

Text arrives in arbitrary pieces, so markers can be split across chunks.
:class:`InlineToolCallTokenizer` withholds any trailing text that could be
the start of a marker and retries it with the next chunk.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass

from chatstream.emission import EmissionGuard, new_call_id
from chatstream.events import ResponseEvent, TextEvent, ToolCallEvent
from chatstream.streaming import UNKNOWN_TOOL_NAME, try_parse_object

logger = logging.getLogger(__name__)

TOOL_CALL_BEGIN = "<|tool_call_begin|>"
TOOL_CALL_ARGUMENT_BEGIN = "<|tool_call_argument_begin|>"
TOOL_CALL_END = "<|tool_call_end|>"

_SECTION_TOKEN = re.compile(r"<\|[a-zA-Z0-9_-]+_section_(?:begin|end)\|>")
_CALL_TOKEN = re.compile(r"<\|tool_call_(?:argument_)?(?:begin|end)\|>")
_HEADER = re.compile(r"^([A-Za-z0-9_\-.]+)(?::(\d+))?")


def strip_control_tokens(text: str) -> str:
    """Remove section and tool-call markers from visible text."""
    return _CALL_TOKEN.sub("", _SECTION_TOKEN.sub("", text))


def partial_marker_length(text: str, marker: str) -> int:
    """Length of the longest suffix of *text* that is a strict prefix of *marker*."""
    for k in range(min(len(marker) - 1, len(text)), 0, -1):
        if text.endswith(marker[:k]):
            return k
    return 0


def parse_header(header: str) -> tuple[str | None, int | None]:
    """Split ``name`` or ``name:index`` into its parts."""
    match = _HEADER.match(header.strip())
    if match is None:
        return None, None
    name, index = match.group(1), match.group(2)
    return name, int(index) if index is not None else None


@dataclass
class InlineToolCall:
    """The inline call currently being read."""

    name: str | None = None
    index: int | None = None
    arguments: str = ""
    emitted: bool = False


class InlineToolCallTokenizer:
    """Separates visible text from inline tool calls, chunk by chunk.

    Visible text of one chunk goes out as a single
    :class:`~chatstream.events.TextEvent`, except that text preceding a
    tool call is emitted before that call so ordering is preserved.

    Args:
        emit: Receives text and tool-call events in stream order.
        guard: Shared dedup registry for the session.
    """

    def __init__(
        self,
        emit: Callable[[ResponseEvent], None],
        guard: EmissionGuard | None = None,
    ) -> None:
        self._emit = emit
        self._guard = guard or EmissionGuard()
        self.carry = ""
        self.active: InlineToolCall | None = None
        self._visible: list[str] = []
        self._emitted_text = False

    def feed(self, text: str) -> bool:
        """Process one chunk of streamed text.

        Returns ``True`` if any visible text was emitted for it.
        """
        self._emitted_text = False
        data = self.carry + text
        self.carry = ""

        while data:
            if self.active is None:
                data = self._scan_text(data)
            else:
                data = self._scan_arguments(data)

        self._flush_visible()
        return self._emitted_text

    def flush(self) -> bool:
        """Finish the stream: emit a still-open call if its JSON is complete.

        An open call with invalid arguments or an unfinished header is
        discarded.  Withheld text that only looked like the start of a
        marker is released as visible text.
        """
        self._emitted_text = False
        call, carry = self.active, self.carry
        self.active = None
        self.carry = ""
        if call is not None:
            if not call.emitted and not self._emit_call(call, call.arguments):
                logger.debug(
                    f"Discarding unfinished inline tool call {call.name}: "
                    f"{call.arguments[:200]!r}"
                )
        elif carry.startswith(TOOL_CALL_BEGIN):
            logger.debug(f"Discarding unfinished inline tool call header {carry[:200]!r}")
        elif carry:
            self._visible.append(strip_control_tokens(carry))
        self._flush_visible()
        return self._emitted_text

    def reset(self) -> None:
        self.carry = ""
        self.active = None
        self._visible.clear()
        self._emitted_text = False

    # ------------------------------------------------------------------
    # Scanning
    # ------------------------------------------------------------------

    def _scan_text(self, data: str) -> str:
        begin = data.find(TOOL_CALL_BEGIN)
        if begin == -1:
            withheld = partial_marker_length(data, TOOL_CALL_BEGIN)
            if withheld:
                self.carry = data[-withheld:]
                data = data[:-withheld]
            self._visible.append(strip_control_tokens(data))
            return ""

        self._visible.append(strip_control_tokens(data[:begin]))
        rest = data[begin + len(TOOL_CALL_BEGIN):]

        arg_begin = rest.find(TOOL_CALL_ARGUMENT_BEGIN)
        end = rest.find(TOOL_CALL_END)
        if arg_begin != -1 and (end == -1 or arg_begin < end):
            name, index = parse_header(rest[:arg_begin])
            self.active = InlineToolCall(name=name, index=index)
            return rest[arg_begin + len(TOOL_CALL_ARGUMENT_BEGIN):]
        if end != -1:
            name, index = parse_header(rest[:end])
            self._emit_call(InlineToolCall(name=name, index=index), "{}")
            return rest[end + len(TOOL_CALL_END):]

        # Header not terminated yet; keep the marker for the next chunk.
        self.carry = TOOL_CALL_BEGIN + rest
        return ""

    def _scan_arguments(self, data: str) -> str:
        call = self.active
        end = data.find(TOOL_CALL_END)
        if end == -1:
            withheld = partial_marker_length(data, TOOL_CALL_END)
            if withheld:
                self.carry = data[-withheld:]
                data = data[:-withheld]
            call.arguments += data
            if not call.emitted:
                call.emitted = self._emit_call(call, call.arguments)
            return ""

        call.arguments += data[:end]
        if not call.emitted:
            self._emit_call(call, call.arguments)
        self.active = None
        return data[end + len(TOOL_CALL_END):]

    # ------------------------------------------------------------------
    # Emission
    # ------------------------------------------------------------------

    def _emit_call(self, call: InlineToolCall, argument_text: str) -> bool:
        arguments = try_parse_object(argument_text)
        if arguments is None:
            return False
        name = call.name or UNKNOWN_TOOL_NAME
        if not self._guard.admit(name, arguments, call.index):
            return False
        self._flush_visible()
        self._emit(ToolCallEvent(
            id=new_call_id("tct"), name=name, arguments=arguments,
        ))
        return True

    def _flush_visible(self) -> None:
        text = "".join(self._visible)
        self._visible.clear()
        if text:
            self._emit(TextEvent(text=text))
            self._emitted_text = True
