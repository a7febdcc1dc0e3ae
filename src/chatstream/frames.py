"""Newline framing of a raw byte stream.

Chunks from the network split lines, and UTF-8 characters, at arbitrary
points.  :class:`FrameDecoder` keeps the unterminated tail of each chunk
and prepends it to the next one.
"""

from __future__ import annotations

import codecs
import logging
from collections.abc import AsyncIterable, AsyncIterator

logger = logging.getLogger(__name__)


class FrameDecoder:
    """Turns byte chunks into complete text lines."""

    def __init__(self, encoding: str = "utf-8") -> None:
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._buffer = ""

    def feed(self, chunk: bytes) -> list[str]:
        """Return the lines completed by *chunk*, without line endings."""
        self._buffer += self._decoder.decode(chunk)
        *lines, self._buffer = self._buffer.split("\n")
        return [line.removesuffix("\r") for line in lines]

    def close(self) -> None:
        """Drop any unterminated tail; it never forms a frame."""
        tail = self._buffer + self._decoder.decode(b"", final=True)
        if tail:
            logger.debug(f"Discarding unterminated frame {tail[:200]!r}")
        self._buffer = ""
        self._decoder.reset()


async def iter_frames(source: AsyncIterable[bytes]) -> AsyncIterator[str]:
    """Yield the lines of *source*; the unterminated tail is dropped."""
    decoder = FrameDecoder()
    async for chunk in source:
        for line in decoder.feed(chunk):
            yield line
    decoder.close()
