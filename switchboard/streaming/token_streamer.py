"""
Token streamer — coalesces partial text into token chunks.

Flushes when:
  - the buffer reaches buffer_size characters
    (word_boundary mode emits up to and including the last space and keeps
    the rest for the next write)
  - flush_interval_ms elapses without the buffer filling
  - done() is called

error() throws the buffer away. An error chunk is a reset, not a flush.
"""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Callable

from switchboard.models import StreamChunk
from switchboard.streaming.handler import create_stream_chunk

logger = logging.getLogger(__name__)


class TokenStreamer:
    def __init__(self, buffer_size: int = 1, flush_interval_ms: int = 50, word_boundary: bool = False):
        self.buffer_size = buffer_size
        self.flush_interval_ms = flush_interval_ms
        self.word_boundary = word_boundary
        self._buffer = ""
        self._timer: asyncio.TimerHandle | None = None
        self._emit: Callable[[StreamChunk], None] | None = None

    def on_emit(self, callback: Callable[[StreamChunk], None]) -> "TokenStreamer":
        """Register the sink that also receives timer-driven flushes."""
        self._emit = callback
        return self

    @property
    def buffer(self) -> str:
        return self._buffer

    def write(self, text: str) -> list[StreamChunk]:
        self._buffer += text
        if len(self._buffer) < self.buffer_size:
            self._schedule_flush()
            return []

        if self.word_boundary:
            last_space = self._buffer.rfind(" ")
            if last_space > 0:
                content = self._buffer[: last_space + 1]
                self._buffer = self._buffer[last_space + 1:]
                return [self._emit_token(content)]

        return self.flush()

    def flush(self) -> list[StreamChunk]:
        self._cancel_timer()
        if not self._buffer:
            return []
        content, self._buffer = self._buffer, ""
        return [self._emit_token(content)]

    def done(self, metadata: dict | None = None) -> list[StreamChunk]:
        """Flush what is left, then the terminal chunk. Returns both, in order."""
        chunks = self.flush()
        chunks.append(create_stream_chunk("done", None, metadata))
        return chunks

    def error(self, message: str) -> StreamChunk:
        self.reset()
        return create_stream_chunk("error", message)

    def reset(self):
        self._buffer = ""
        self._cancel_timer()

    def _emit_token(self, content: str) -> StreamChunk:
        chunk = create_stream_chunk("token", content)
        if self._emit is not None:
            self._emit(chunk)
        return chunk

    def _schedule_flush(self):
        if self._timer is not None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop: the buffer waits for the next write, flush() or done()
            return
        self._timer = loop.call_later(self.flush_interval_ms / 1000, self._on_timer)

    def _on_timer(self):
        self._timer = None
        self.flush()

    def _cancel_timer(self):
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None


async def transform_stream(
    source: AsyncIterator[StreamChunk],
    transform: Callable[[StreamChunk], StreamChunk | None],
) -> AsyncIterator[StreamChunk]:
    """Map each chunk; a None result drops it."""
    async for chunk in source:
        out = transform(chunk)
        if out is not None:
            yield out


async def filter_stream(source: AsyncIterator[StreamChunk], types: list[str]) -> AsyncIterator[StreamChunk]:
    async for chunk in source:
        if chunk.type in types:
            yield chunk


async def collect_stream(source: AsyncIterator[StreamChunk]) -> list[StreamChunk]:
    return [chunk async for chunk in source]
