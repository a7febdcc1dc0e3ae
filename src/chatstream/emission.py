"""Exactly-once bookkeeping for tool calls.

Structured deltas and inline control tokens can both describe the same
call.  :class:`EmissionGuard` remembers every call that went out so a
later duplicate from either path is dropped.

Identity rule:

* with a declared index, a call is ``(name, index)``; argument content
  does not matter.
* without one, a call is ``(name, canonical JSON of its arguments)``.
"""

from __future__ import annotations

import json
import logging
import uuid

logger = logging.getLogger(__name__)


def canonical_json(value) -> str:
    """Serialise *value* so equal objects give equal strings."""
    return json.dumps(
        value, sort_keys=True, separators=(",", ":"), ensure_ascii=False,
    )


def new_call_id(prefix: str) -> str:
    """Return a short random id such as ``call_1a2b3c4d``."""
    return f"{prefix}_{uuid.uuid4().hex[:8]}"


class EmissionGuard:
    """Registry of tool-call identities already emitted in one session."""

    def __init__(self) -> None:
        self._by_content: set[tuple[str, str]] = set()
        self._by_index: set[tuple[str, int]] = set()

    def admit(self, name: str, arguments: dict, index: int | None = None) -> bool:
        """Register a call and report whether it may be emitted.

        Returns ``False`` for a duplicate.  The identity is recorded before
        returning ``True``, so callers must emit right after admission.
        """
        content_key = (name, canonical_json(arguments))
        if index is not None:
            index_key = (name, index)
            if index_key in self._by_index:
                logger.debug(f"Suppressing duplicate tool call {name}:{index}")
                return False
            self._by_index.add(index_key)
        elif content_key in self._by_content:
            logger.debug(f"Suppressing duplicate tool call {name} {content_key[1][:200]}")
            return False
        self._by_content.add(content_key)
        return True

    def clear(self) -> None:
        self._by_content.clear()
        self._by_index.clear()
