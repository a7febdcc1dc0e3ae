import logging
import os

from pydantic import BaseModel

EMPTY_RESPONSE_MESSAGE = "The server returned an empty response."

COMPLETION_EMPTY_RESPONSE_MESSAGE = (
    "The text-generation server returned an empty response. Common causes:\n"
    "1. Model crashed during generation (check the server logs)\n"
    "2. Input prompt exceeded context length\n"
    "3. Out of GPU memory"
)

ERROR_MESSAGE = (
    "I encountered an error while processing the response. "
    "Please check the logs for details."
)

LOG_FORMAT = '%(asctime)s:%(name)s:%(levelname)s:%(message)s'
LOG_DATEFMT = '%Y-%m-%d %H:%M:%S'


class StreamSettings(BaseModel):
    """Tunables for one :class:`~chatstream.parser.StreamParser`.

    The defaults match what OpenAI-compatible routers and self-hosted
    text-generation servers send.  Override per backend, e.g. a longer
    ``idle_timeout`` for slow local models.

    Example:
        settings = StreamSettings(idle_timeout=120.0)
        parser = StreamParser(settings)
    """

    data_prefix: str = "data:"
    terminator: str = "[DONE]"
    idle_timeout: float = 60.0
    strict_finish_reasons: frozenset[str] = frozenset({"stop", "tool_calls"})
    empty_response_message: str = EMPTY_RESPONSE_MESSAGE
    error_message: str = ERROR_MESSAGE
    max_retries: int = 0
    retry_delay: float = 1.0

    @classmethod
    def from_env(cls, **overrides) -> "StreamSettings":
        """Build settings, reading timeouts and retries from the environment.

        Recognised variables: ``CHATSTREAM_IDLE_TIMEOUT``,
        ``CHATSTREAM_MAX_RETRIES`` and ``CHATSTREAM_RETRY_DELAY``.
        Explicit keyword overrides win over the environment.
        """
        env_fields = {
            "CHATSTREAM_IDLE_TIMEOUT": ("idle_timeout", float),
            "CHATSTREAM_MAX_RETRIES": ("max_retries", int),
            "CHATSTREAM_RETRY_DELAY": ("retry_delay", float),
        }
        values = {}
        for env_name, (field_name, cast) in env_fields.items():
            raw = os.getenv(env_name)
            if raw:
                values[field_name] = cast(raw)
        values.update(overrides)
        return cls(**values)


def configure_logging(
    level: int = logging.INFO,
    log_file: str | None = None,
) -> None:
    """Send chatstream logs to stderr, and optionally to *log_file*."""
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
        handlers=handlers,
    )
