from chatstream.emission import EmissionGuard
from chatstream.events import ResponseEvent, TextEvent, ToolCallEvent
from chatstream.inline import InlineToolCallTokenizer
from chatstream.streaming import ToolCallAccumulator

# Emitted once before the first tool call that follows visible text, so
# downstream text renderers flush their buffers.
TOOL_CALL_HINT = " "


class StreamSession:
    """Mutable state of one in-flight response.

    Owns the structured tool-call buffers, the inline tokenizer carry
    buffer, the dedup registry and the text flags.  Every component
    reports through :meth:`emit`; the lifecycle controller collects the
    result with :meth:`drain` after each frame.

    A session belongs to exactly one request.  Build a new one (or call
    :meth:`reset`) before parsing another stream.
    """

    def __init__(self) -> None:
        self.guard = EmissionGuard()
        self.tool_calls = ToolCallAccumulator(self.emit, self.guard)
        self.inline = InlineToolCallTokenizer(self.emit, self.guard)
        self.has_emitted_text = False
        self.emitted_tool_call_hint = False
        self._outbox: list[ResponseEvent] = []

    def emit(self, event: ResponseEvent) -> None:
        if (
            isinstance(event, ToolCallEvent)
            and self.has_emitted_text
            and not self.emitted_tool_call_hint
        ):
            self._outbox.append(TextEvent(text=TOOL_CALL_HINT))
            self.emitted_tool_call_hint = True
        self._outbox.append(event)

    def drain(self) -> list[ResponseEvent]:
        events, self._outbox = self._outbox, []
        return events

    def reset(self) -> None:
        self.tool_calls.reset()
        self.inline.reset()
        self.guard.clear()
        self.has_emitted_text = False
        self.emitted_tool_call_hint = False
        self._outbox.clear()
