"""Exceptions raised while consuming an upstream response stream.

Frame-local problems (a malformed ``data:`` line, a tool call whose
arguments never became valid JSON before ``[DONE]``) are logged and
skipped.  Everything here aborts the whole request.
"""


class StreamError(Exception):
    """Base class for session-level streaming failures.

    Args:
        message: Human readable description.
        details: Extra context for logs (endpoint, index, snippet...).
    """

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class StreamTimeoutError(StreamError):
    """No chunk arrived within the idle window after the stream started."""


class ConnectionLostError(StreamError):
    """Reading the next chunk from the byte source failed."""


class InvalidToolCallError(StreamError):
    """A finish reason closed a tool call whose arguments are not a JSON object."""

    def __init__(self, index: int, snippet: str):
        super().__init__(
            "Invalid JSON for tool call",
            details={"index": index, "snippet": snippet},
        )
        self.index = index
        self.snippet = snippet


class UpstreamError(StreamError):
    """Opening the upstream stream failed.

    ``status_code`` is set when the server answered with an error status,
    and is ``None`` when no connection could be made at all.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        details: dict | None = None,
    ):
        super().__init__(message, details)
        self.status_code = status_code
