# Copyright (c) 2025 Bytedance Ltd. and/or its affiliates
# SPDX-License-Identifier: MIT

"""Incremental decoder for the newline-delimited ``event:``/``data:`` wire format.

Chunks arrive with arbitrary boundaries. The decoder carries the unterminated
tail of the previous chunk forward and only emits lines once their ``\\n`` has
been seen. Bytes are decoded incrementally so a multi-byte character split
across two chunks is reassembled instead of being replaced.
"""

from __future__ import annotations

import codecs
import logging
from typing import Optional, Union

logger = logging.getLogger(__name__)

EVENT_MARKER = "event:"
DATA_MARKER = "data:"

Chunk = Union[bytes, bytearray, memoryview, str]


def classify_line(line: str) -> tuple[str, str]:
    """Return ``(kind, value)`` for one trimmed line.

    ``kind`` is ``"event"``, ``"data"`` or ``"noise"``.
    """
    if line.startswith(EVENT_MARKER):
        return "event", line[len(EVENT_MARKER):].strip()
    if line.startswith(DATA_MARKER):
        return "data", line[len(DATA_MARKER):].strip()
    return "noise", line


class FrameDecoder:
    """Reassembles protocol lines from chunks and extracts ``data:`` payloads."""

    def __init__(self, encoding: str = "utf-8") -> None:
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._buffer = ""
        self._closed = False
        self.last_event_name: Optional[str] = None

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> str:
        """Text received but not yet terminated by a line break."""
        return self._buffer

    def feed(self, chunk: Chunk) -> list[str]:
        """Consume one chunk and return the payloads it completed, in order."""
        if self._closed:
            return []

        if isinstance(chunk, str):
            # Bytes still held by the decoder arrived first and must stay ahead.
            text = self._decoder.decode(b"", final=True) + chunk
        else:
            text = self._decoder.decode(bytes(chunk))
        if not text:
            return []

        self._buffer += text
        payloads: list[str] = []
        while True:
            newline_index = self._buffer.find("\n")
            if newline_index == -1:
                break
            line = self._buffer[:newline_index].strip()
            self._buffer = self._buffer[newline_index + 1:]
            payload = self._handle_line(line)
            if payload is not None:
                payloads.append(payload)
        return payloads

    def close(self) -> None:
        """Mark end of stream. An unterminated tail is discarded."""
        if self._closed:
            return
        self._buffer += self._decoder.decode(b"", final=True)
        if self._buffer.strip():
            logger.debug("Discarding %d unterminated characters at end of stream", len(self._buffer))
        self._buffer = ""
        self._closed = True

    def _handle_line(self, line: str) -> Optional[str]:
        if not line:
            return None
        kind, value = classify_line(line)
        if kind == "event":
            self.last_event_name = value
            return None
        if kind == "data":
            return value or None
        return None
