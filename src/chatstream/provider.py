import asyncio
import logging
import math
import os
from collections.abc import AsyncIterator
from contextlib import AsyncExitStack

import httpx
from openai import APIConnectionError, APIStatusError, AsyncOpenAI

from chatstream.config import COMPLETION_EMPTY_RESPONSE_MESSAGE, StreamSettings
from chatstream.errors import UpstreamError
from chatstream.events import ResponseEvent
from chatstream.instrumentation import record_error, record_stream, stream_span
from chatstream.parser import CancellationSignal, StreamParser

logger = logging.getLogger(__name__)


def estimate_tokens(text: str | list[dict] | None) -> int:
    """Rough token count: one token per four characters.

    Accepts a string or a list of chat messages; only string ``content``
    fields of messages are counted.
    """
    if not text:
        return 0
    if isinstance(text, str):
        return math.ceil(len(text) / 4)
    return sum(
        math.ceil(len(m["content"]) / 4)
        for m in text
        if isinstance(m.get("content"), str)
    )


class StreamingProvider:
    """Base for providers that stream parsed response events."""

    system = "unknown"

    def __init__(self, settings: StreamSettings | None = None):
        self.settings = settings or StreamSettings()

    async def stream(
            self,
            model: str,
            messages: list[dict] | None = None,
            prompt: str | None = None,
            tools: list[dict] | None = None,
            cancel: CancellationSignal | None = None,
            **options,
    ) -> AsyncIterator[ResponseEvent]:
        """Send a request and yield parsed events from its response."""
        raise NotImplementedError


class OpenAICompatibleProvider(StreamingProvider):
    """Streams chat completions from any OpenAI-compatible endpoint.

    The SDK is only used as transport: the raw SSE bytes are handed to a
    fresh :class:`~chatstream.parser.StreamParser` per request, so inline
    tool-call tokens and non-standard ``thinking`` fields survive.  Only
    opening the connection is retried, with a linearly growing delay.

    Args:
        base_url: API root, e.g. ``https://router.huggingface.co/v1``.
            ``None`` uses the SDK default.
        api_key: Bearer token; read from *api_key_env* when omitted.
        api_key_env: Environment variable holding the key.
        settings: Parser and retry settings.
        connect_timeout: Seconds allowed to connect and send the request.
    """

    system = "openai"
    completion_style = False

    def __init__(
            self,
            base_url: str | None = None,
            api_key: str | None = None,
            api_key_env: str = "OPENAI_API_KEY",
            settings: StreamSettings | None = None,
            connect_timeout: float = 30.0,
    ):
        super().__init__(settings)
        if not api_key:
            api_key = os.getenv(api_key_env)
        self.base_url = base_url
        self.client = AsyncOpenAI(
            base_url=base_url,
            api_key=api_key,
            max_retries=0,
            # Idle reads are policed by the parser, not the transport.
            timeout=httpx.Timeout(connect_timeout, read=None),
        )

    def build_request(
            self,
            model: str,
            messages: list[dict] | None = None,
            prompt: str | None = None,
            tools: list[dict] | None = None,
            **options,
    ) -> dict:
        if self.completion_style:
            if prompt is None:
                prompt = (messages or [{}])[-1].get("content") or ""
            body = {"model": model, "prompt": prompt, "stream": True}
        else:
            body = {"model": model, "messages": messages or [], "stream": True}
            if tools:
                body["tools"] = tools
                body["tool_choice"] = "auto"
        body.update(options)
        return body

    async def stream(
            self,
            model: str,
            messages: list[dict] | None = None,
            prompt: str | None = None,
            tools: list[dict] | None = None,
            cancel: CancellationSignal | None = None,
            **options,
    ) -> AsyncIterator[ResponseEvent]:
        body = self.build_request(model, messages, prompt, tools, **options)
        logger.debug(
            f"Request prepared for {model}: "
            f"~{estimate_tokens(prompt if self.completion_style else messages)} prompt tokens"
        )
        parser = StreamParser(self.settings)
        async with stream_span(self.system, model) as span:
            try:
                async with AsyncExitStack() as stack:
                    response = await self._connect(stack, body)
                    async for event in parser.iter(response.iter_bytes(), cancel):
                        yield event
            except Exception as e:
                logger.error(f"Chat request failed for {model}: {type(e).__name__}: {e}")
                record_error(span, e)
                raise
            record_stream(span, parser.outcome)

    async def _connect(self, stack: AsyncExitStack, body: dict):
        attempt = 0
        while True:
            try:
                return await stack.enter_async_context(self._open(body))
            except APIStatusError as e:
                logger.error(f"API error response {e.status_code}: {str(e)[:200]}")
                raise UpstreamError(
                    f"API error: {e.status_code}",
                    status_code=e.status_code,
                    details={"body": str(e)[:200]},
                ) from e
            except APIConnectionError as e:
                if attempt < self.settings.max_retries:
                    attempt += 1
                    delay = attempt * self.settings.retry_delay
                    logger.warning(
                        f"Request failed, retrying in {delay}s "
                        f"(retry {attempt}/{self.settings.max_retries}): {e}"
                    )
                    await asyncio.sleep(delay)
                    continue
                logger.error(f"Failed to send request after {attempt} retries: {e}")
                raise UpstreamError(
                    f"Failed to connect to {self.client.base_url}: {e}",
                    details={"retries": attempt},
                ) from e

    def _open(self, body: dict):
        if self.completion_style:
            return self.client.completions.with_streaming_response.create(**body)
        return self.client.chat.completions.with_streaming_response.create(**body)


class TextGenerationProvider(OpenAICompatibleProvider):
    """Self-hosted text-generation server answering ``/v1/completions``.

    These servers are often still loading or restarting, so connecting is
    retried twice by default, and the empty-response fallback points at
    the usual server-side causes.  Both defaults also apply to passed-in
    *settings* that leave ``max_retries`` or ``empty_response_message``
    unset, e.g. ``StreamSettings.from_env()`` without retry variables.
    """

    system = "text-generation"
    completion_style = True

    def __init__(
            self,
            endpoint_url: str,
            api_key: str = "DUMMY",
            settings: StreamSettings | None = None,
            connect_timeout: float = 30.0,
    ):
        base_url = endpoint_url.strip().rstrip("/")
        if not base_url.endswith("/v1"):
            base_url = f"{base_url}/v1"
        settings = settings or StreamSettings()
        defaults = {
            "max_retries": 2,
            "empty_response_message": COMPLETION_EMPTY_RESPONSE_MESSAGE,
        }
        settings = settings.model_copy(update={
            name: value for name, value in defaults.items()
            if name not in settings.model_fields_set
        })
        super().__init__(
            base_url=base_url,
            api_key=api_key,
            settings=settings,
            connect_timeout=connect_timeout,
        )
