"""Typed events produced while parsing a response stream."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class ResponseEvent:
    """Base for all parsed response events."""


@dataclass
class TextEvent(ResponseEvent):
    """Visible assistant text, control tokens already removed."""

    text: str = ""


@dataclass
class ThinkingEvent(ResponseEvent):
    """Reasoning text the backend streams alongside the answer.

    ``id`` and ``metadata`` are only set when the backend sends the
    structured ``{"text", "id", "metadata"}`` form.
    """

    text: str = ""
    id: str | None = None
    metadata: Any = None


@dataclass
class ToolCallEvent(ResponseEvent):
    """A complete tool invocation.

    ``arguments`` is always a parsed JSON object, never a string.
    """

    id: str = ""
    name: str = ""
    arguments: dict = field(default_factory=dict)
