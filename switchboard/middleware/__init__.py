"""
Middleware: priority-ordered interceptors that can inspect, modify, or block
a request before it reaches the provider.
"""
from switchboard.middleware.pipeline import (
    Middleware,
    MiddlewarePipeline,
    compose_middleware,
    create_middleware,
)
from switchboard.middleware.rate_limiter import RateLimiter, create_rate_limiter
from switchboard.middleware.content_filter import (
    DEFAULT_FILTER_RULES,
    ContentFilter,
    ContentFilterRule,
    create_content_filter,
    filter_content,
)
from switchboard.middleware.logger import ChatLogger, LogEntry, LogStore, create_logger

__all__ = [
    "Middleware",
    "MiddlewarePipeline",
    "compose_middleware",
    "create_middleware",
    "RateLimiter",
    "create_rate_limiter",
    "DEFAULT_FILTER_RULES",
    "ContentFilter",
    "ContentFilterRule",
    "create_content_filter",
    "filter_content",
    "ChatLogger",
    "LogEntry",
    "LogStore",
    "create_logger",
]
