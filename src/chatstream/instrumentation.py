"""OpenTelemetry spans around provider streams.

Tracing stays off until :func:`instrument` is called.  Each
``OpenAICompatibleProvider.stream()`` then opens one ``chat`` span and
tags it with the :class:`~chatstream.parser.StreamOutcome` counts.
"""

import importlib.util
import logging
from contextlib import asynccontextmanager

logger = logging.getLogger(__name__)

_tracer = None


def instrument(*, tracer_name: str = "chatstream") -> None:
    """Start emitting a span per provider stream.

    Configure the global TracerProvider first; ``examples/stream_chat.py``
    shows a console exporter setup.

    Raises:
        ImportError: ``opentelemetry-api`` is missing
            (``pip install chatstream[otel]``).
    """
    global _tracer
    if importlib.util.find_spec("opentelemetry.trace") is None:
        raise ImportError(
            "Tracing needs opentelemetry-api: pip install chatstream[otel]"
        )
    from opentelemetry import trace
    _tracer = trace.get_tracer(tracer_name)
    if isinstance(_tracer, trace.NoOpTracer):
        logger.info(f"Tracer {tracer_name} is a no-op until a TracerProvider is set")
    else:
        logger.info(f"Tracing provider streams with {tracer_name}")


def uninstrument() -> None:
    global _tracer
    _tracer = None


@asynccontextmanager
async def stream_span(system: str, model: str):
    """Wrap one provider stream in a ``chat`` span."""
    if _tracer is None:
        yield None
        return
    from opentelemetry.trace import SpanKind

    with _tracer.start_as_current_span(
        f"chat {model}",
        kind=SpanKind.CLIENT,
        attributes={
            "gen_ai.operation.name": "chat",
            "gen_ai.provider.name": system,
            "gen_ai.request.model": model,
        },
    ) as span:
        yield span


def record_stream(span, outcome) -> None:
    """Set event-count attributes from a ``StreamOutcome`` on a span."""
    if span is None or outcome is None:
        return
    span.set_attribute("chatstream.state", outcome.state.value)
    span.set_attribute("chatstream.text_events", outcome.text_events)
    span.set_attribute("chatstream.thinking_events", outcome.thinking_events)
    span.set_attribute("chatstream.tool_calls", outcome.tool_calls)


def record_error(span, exception: BaseException) -> None:
    """Mark *span* failed with the exception that aborted the stream."""
    if span is None:
        return
    from opentelemetry.trace import StatusCode

    span.set_attribute("error.type", type(exception).__name__)
    span.record_exception(exception)
    span.set_status(StatusCode.ERROR, str(exception))
