"""
Stream handler — SSE framing and chunk lifecycle.

Every chunk on the wire is one SSE event:

    event: token
    data: {"type":"token","data":"Hel","timestamp":1718000000000}

A stream ends with exactly one terminal chunk (`done` or `error`).
"""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator, Callable

from switchboard.models import CHUNK_TYPES, StreamChunk

logger = logging.getLogger(__name__)

TERMINAL_CHUNK_TYPES = ("done", "error")


def create_stream_chunk(type: str, data: Any = None, metadata: dict | None = None) -> StreamChunk:
    if type not in CHUNK_TYPES:
        raise ValueError(f"Unknown chunk type '{type}'")
    return StreamChunk(type=type, data=data, metadata=metadata)


def format_sse(chunk: StreamChunk) -> str:
    """Render a chunk as a single SSE event string."""
    payload = {"type": chunk.type, "data": chunk.data, "timestamp": chunk.timestamp}
    if chunk.metadata is not None:
        payload["metadata"] = chunk.metadata
    data = json.dumps(payload, separators=(",", ":"), default=str)
    return f"event: {chunk.type}\ndata: {data}\n\n"


class StreamCollector:
    """Accumulates chunks into a full response."""

    def __init__(self):
        self._chunks: list[StreamChunk] = []
        self._content: list[str] = []
        self.done = False
        self.error: str | None = None

    def add(self, chunk: StreamChunk):
        self._chunks.append(chunk)
        if chunk.type == "token" and isinstance(chunk.data, str):
            self._content.append(chunk.data)
        elif chunk.type == "done":
            self.done = True
        elif chunk.type == "error":
            self.error = str(chunk.data)

    @property
    def content(self) -> str:
        return "".join(self._content)

    @property
    def chunks(self) -> list[StreamChunk]:
        return list(self._chunks)

    @property
    def count(self) -> int:
        return len(self._chunks)

    def reset(self):
        self._chunks.clear()
        self._content.clear()
        self.done = False
        self.error = None


class StreamHandler:
    """
    Wraps a chunk source with lifecycle callbacks.

    handle() re-yields chunks until the first terminal chunk, an abort(), or
    source exhaustion. The source is closed on every exit path, including
    when the consumer stops iterating early.
    """

    def __init__(self):
        self._on_chunk: list[Callable[[StreamChunk], None]] = []
        self._on_done: list[Callable[[], None]] = []
        self._on_error: list[Callable[[str], None]] = []
        self._aborted = False

    def on_chunk(self, callback: Callable[[StreamChunk], None]) -> "StreamHandler":
        self._on_chunk.append(callback)
        return self

    def on_done(self, callback: Callable[[], None]) -> "StreamHandler":
        self._on_done.append(callback)
        return self

    def on_error(self, callback: Callable[[str], None]) -> "StreamHandler":
        self._on_error.append(callback)
        return self

    def abort(self):
        self._aborted = True

    @property
    def aborted(self) -> bool:
        return self._aborted

    async def handle(self, source: AsyncIterator[StreamChunk]) -> AsyncIterator[StreamChunk]:
        try:
            async for chunk in source:
                if self._aborted:
                    logger.debug("Stream aborted by caller")
                    break

                for cb in self._on_chunk:
                    cb(chunk)

                yield chunk

                if chunk.type == "done":
                    for cb in self._on_done:
                        cb()
                    break
                if chunk.type == "error":
                    for cb in self._on_error:
                        cb(str(chunk.data))
                    break
        finally:
            aclose = getattr(source, "aclose", None)
            if aclose is not None:
                await aclose()
