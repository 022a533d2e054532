"""
Streaming: SSE framing, chunk collection and token buffering.
"""
from switchboard.streaming.handler import (
    StreamCollector,
    StreamHandler,
    create_stream_chunk,
    format_sse,
)
from switchboard.streaming.token_streamer import (
    TokenStreamer,
    collect_stream,
    filter_stream,
    transform_stream,
)

__all__ = [
    "StreamCollector",
    "StreamHandler",
    "create_stream_chunk",
    "format_sse",
    "TokenStreamer",
    "collect_stream",
    "filter_stream",
    "transform_stream",
]
