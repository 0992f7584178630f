"""Incremental frame splitting for event-stream responses.

Network reads do not line up with protocol frames: a single read may carry
several frames, and a frame (or its blank-line delimiter) may be split
across reads. ``FrameDecoder`` keeps an accumulation buffer and only hands
out text that sits before a complete delimiter.
"""

from __future__ import annotations

import codecs

from loguru import logger

FRAME_DELIMITER = "\n\n"


class FrameDecoder:
    """Split a chunked byte stream into blank-line delimited frames."""

    def __init__(self, encoding: str = "utf-8") -> None:
        # Incremental decoder keeps multi-byte characters that straddle reads.
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._buffer = ""

    @property
    def pending(self) -> str:
        """Text received but not yet part of a complete frame."""
        return self._buffer

    def feed(self, chunk: bytes | str) -> list[str]:
        """Add one network chunk and return every frame it completes, in order."""
        if isinstance(chunk, bytes):
            text = self._decoder.decode(chunk)
        else:
            text = chunk
        if not text:
            return []

        self._buffer += text
        frames: list[str] = []
        while True:
            pos = self._buffer.find(FRAME_DELIMITER)
            if pos == -1:
                break
            frames.append(self._buffer[:pos])
            self._buffer = self._buffer[pos + len(FRAME_DELIMITER):]
        return frames

    def close(self) -> None:
        """Signal end of stream. An undelimited remainder is not a frame and is dropped."""
        tail = self._buffer + self._decoder.decode(b"", final=True)
        if tail.strip():
            logger.debug(f"[stream] Discarding {len(tail)} undelimited trailing chars at stream end")
        self._buffer = ""
