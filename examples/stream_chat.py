"""Interactive chat that prints a parsed response stream as it arrives.

Demonstrates:
- Streaming from a chat router or a self-hosted text-generation server
- Rendering text, thinking and tool-call events separately
- Cancelling a response once it grows past --max-chars

Usage:
    uv run --env-file=.env examples/stream_chat.py --provider openai --model gpt-4o-mini --trace
    uv run examples/stream_chat.py --provider hf --model Qwen/Qwen3-8B
    uv run examples/stream_chat.py --provider tgi --url localhost:8080 --model starcoder
"""

import argparse
import asyncio
import json
import logging

from chatstream import (
    OpenAICompatibleProvider,
    StreamError,
    StreamSettings,
    TextEvent,
    TextGenerationProvider,
    ThinkingEvent,
    ToolCallEvent,
    UpstreamError,
    configure_logging,
)

PROVIDERS = {
    "openai": lambda url: OpenAICompatibleProvider(settings=StreamSettings.from_env()),
    "hf": lambda url: OpenAICompatibleProvider(
        base_url="https://router.huggingface.co/v1",
        api_key_env="HF_TOKEN",
        settings=StreamSettings.from_env(),
    ),
    "tgi": lambda url: TextGenerationProvider(url, settings=StreamSettings.from_env()),
}

WEATHER_TOOL = {
    "type": "function",
    "function": {
        "name": "get_weather",
        "description": "Current weather for a city.",
        "parameters": {
            "type": "object",
            "properties": {"city": {"type": "string"}},
            "required": ["city"],
        },
    },
}


def make_provider(provider: str, url: str | None):
    if provider == "tgi" and not url:
        raise SystemExit("--url is required for tgi provider")
    if url and not url.startswith("http"):
        url = f"http://{url}"
    return PROVIDERS[provider](url)


def setup_tracing(service_name: str):
    from opentelemetry import trace
    from opentelemetry.sdk.resources import SERVICE_NAME, Resource
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import (
        SimpleSpanProcessor, ConsoleSpanExporter,
    )
    from chatstream.instrumentation import instrument

    provider = TracerProvider(
        resource=Resource({SERVICE_NAME: service_name})
    )
    provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
    trace.set_tracer_provider(provider)
    instrument()


async def answer(provider, model: str, messages: list[dict], tools: list[dict], max_chars: int) -> str:
    cancel = asyncio.Event()
    reply = []
    size = 0
    try:
        async for event in provider.stream(model, messages, tools=tools, cancel=cancel):
            if isinstance(event, ThinkingEvent):
                print(f"\033[2m{event.text}\033[0m", end="", flush=True)
            elif isinstance(event, TextEvent):
                reply.append(event.text)
                size += len(event.text)
                print(event.text, end="", flush=True)
                if max_chars and size >= max_chars:
                    cancel.set()
            elif isinstance(event, ToolCallEvent):
                print(f"\n[tool call] {event.name}({json.dumps(event.arguments)})", flush=True)
    except (StreamError, UpstreamError) as e:
        print(f"\n[error] {e}")
    if cancel.is_set():
        print("\n[cancelled]")
    print()
    return "".join(reply)


async def main():
    parser = argparse.ArgumentParser(description="Streaming chat")
    parser.add_argument("--provider", choices=PROVIDERS, default="openai")
    parser.add_argument("--model", default="gpt-4o-mini")
    parser.add_argument("--url", default=None)
    parser.add_argument("--no-tools", action="store_true")
    parser.add_argument("--max-chars", type=int, default=0)
    parser.add_argument("--debug", action="store_true")
    parser.add_argument("--trace", action="store_true")
    args = parser.parse_args()

    configure_logging(logging.DEBUG if args.debug else logging.WARNING)
    if args.trace:
        setup_tracing("stream-chat")

    provider = make_provider(args.provider, args.url)
    tools = [] if args.no_tools else [WEATHER_TOOL]
    messages = []

    print("Streaming chat (Ctrl-D to quit)\n")

    while True:
        try:
            user_input = input("You: ")
        except (KeyboardInterrupt, EOFError):
            print("\nGoodbye!")
            break

        messages.append({"role": "user", "content": user_input})
        print("Assistant: ", end="", flush=True)
        reply = await answer(provider, args.model, messages, tools, args.max_chars)
        messages.append({"role": "assistant", "content": reply})


if __name__ == "__main__":
    asyncio.run(main())
