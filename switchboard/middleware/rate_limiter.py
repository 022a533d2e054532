"""
Rate limiter middleware — one token bucket per conversation id.

Capacity is max_requests; one token comes back every window_ms / max_requests
milliseconds. Refill is computed lazily from elapsed time on each check, so
there is no background timer. Bucket state belongs to the RateLimiter
instance (one per engine), never to the module.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from typing import Callable

from switchboard.config import RateLimitConfig
from switchboard.middleware.pipeline import Middleware, NextFn
from switchboard.models import MiddlewareContext, MiddlewareResult

logger = logging.getLogger(__name__)


def _monotonic_ms() -> float:
    return time.monotonic() * 1000


@dataclass
class TokenBucket:
    tokens: float
    last_refill: float


@dataclass
class RateLimitDecision:
    allowed: bool
    remaining: int = 0
    retry_after_ms: int = 0


class RateLimiter:
    """Token-bucket limiter keyed by an arbitrary string (the conversation id)."""

    name = "rate-limiter"
    priority = -100

    def __init__(self, config: RateLimitConfig, clock: Callable[[], float] | None = None):
        self.max_requests = config.max_requests
        self.window_ms = config.window_ms
        self.refill_interval_ms = config.window_ms / config.max_requests
        self._clock = clock or _monotonic_ms
        self._buckets: dict[str, TokenBucket] = {}

    def _bucket(self, key: str) -> TokenBucket:
        bucket = self._buckets.get(key)
        if bucket is None:
            bucket = TokenBucket(tokens=self.max_requests, last_refill=self._clock())
            self._buckets[key] = bucket
        return bucket

    def _refill(self, bucket: TokenBucket):
        now = self._clock()
        to_add = math.floor((now - bucket.last_refill) / self.refill_interval_ms)
        if to_add > 0:
            bucket.tokens = min(self.max_requests, bucket.tokens + to_add)
            bucket.last_refill = now

    def try_consume(self, key: str) -> RateLimitDecision:
        bucket = self._bucket(key)
        self._refill(bucket)

        if bucket.tokens >= 1:
            bucket.tokens -= 1
            return RateLimitDecision(allowed=True, remaining=int(bucket.tokens))

        retry_after = math.ceil(self.refill_interval_ms - (self._clock() - bucket.last_refill))
        return RateLimitDecision(allowed=False, remaining=0, retry_after_ms=max(0, retry_after))

    def remaining(self, key: str) -> int:
        bucket = self._bucket(key)
        self._refill(bucket)
        return int(bucket.tokens)

    def reset(self, key: str | None = None):
        if key is None:
            self._buckets.clear()
        else:
            self._buckets.pop(key, None)

    async def execute(self, context: MiddlewareContext, next: NextFn) -> MiddlewareResult:
        key = context.conversation.id
        decision = self.try_consume(key)

        if not decision.allowed:
            logger.info(
                "Rate limit hit for %s, retry after %dms", key[:16], decision.retry_after_ms,
            )
            context.metadata["retry_after_ms"] = decision.retry_after_ms
            return MiddlewareResult(
                proceed=False,
                context=context,
                error=f"Rate limit exceeded. Retry after {decision.retry_after_ms}ms",
            )

        context.metadata["rate_limit_remaining"] = decision.remaining
        return await next()

    def as_middleware(self) -> Middleware:
        return Middleware(
            name=self.name,
            execute=self.execute,
            priority=self.priority,
            description=f"Token bucket rate limiter: {self.max_requests} requests per {self.window_ms}ms",
        )


def create_rate_limiter(config: RateLimitConfig, clock: Callable[[], float] | None = None) -> Middleware:
    return RateLimiter(config, clock=clock).as_middleware()
