"""
Retry wrapper for providers with exponential backoff.

Wraps any provider to add retry logic for transient errors:
- 429: Rate limited
- 5xx: Server errors
- Timeouts and connection failures (no status code)

Non-retried errors (permanent):
- 401, 403: Auth/permission errors
- 400, 404: Bad request / unknown model
"""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator

from switchboard.errors import ProviderError, ProviderTimeoutError
from switchboard.models import ProviderRequest, ProviderResponse, StreamChunk
from switchboard.providers.base import BaseProvider

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = (429, 500, 502, 503, 504)


class RetryableProvider(BaseProvider):
    """
    Wraps any provider with exponential backoff retry logic.
    Streams are retried only while nothing has been yielded yet; once a
    chunk has reached the caller, a failure propagates as-is.
    """

    def __init__(
        self,
        provider: BaseProvider,
        max_retries: int = 2,
        backoff_base: float = 1.5,
        backoff_max: float = 10.0,
    ):
        self.provider = provider
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self.name = provider.name

    def _is_retryable(self, error: ProviderError) -> bool:
        if isinstance(error, ProviderTimeoutError):
            return True
        return error.status_code is None or error.status_code in RETRYABLE_STATUS

    def _backoff_seconds(self, attempt: int) -> float:
        """Backoff for attempt N (exponential, capped)."""
        return min(self.backoff_base ** attempt, self.backoff_max)

    async def complete(self, request: ProviderRequest) -> ProviderResponse:
        for attempt in range(self.max_retries + 1):
            try:
                return await self.provider.complete(request)
            except ProviderError as e:
                if not self._is_retryable(e):
                    logger.debug("Provider '%s' non-retryable error: %s", self.name, e)
                    raise
                if attempt >= self.max_retries:
                    logger.error("Provider '%s' exhausted retries (last: %s)", self.name, e)
                    raise
                backoff = self._backoff_seconds(attempt + 1)
                logger.warning(
                    "Provider '%s' transient error, retry in %.1fs (%d/%d): %s",
                    self.name, backoff, attempt + 1, self.max_retries, e,
                )
                await asyncio.sleep(backoff)
        raise AssertionError("unreachable")

    async def stream(self, request: ProviderRequest) -> AsyncIterator[StreamChunk]:
        for attempt in range(self.max_retries + 1):
            started = False
            source = self.provider.stream(request)
            try:
                async for chunk in source:
                    started = True
                    yield chunk
                return
            except ProviderError as e:
                if started or not self._is_retryable(e) or attempt >= self.max_retries:
                    raise
                backoff = self._backoff_seconds(attempt + 1)
                logger.warning(
                    "Provider '%s' stream error before first chunk, retry in %.1fs: %s",
                    self.name, backoff, e,
                )
                await asyncio.sleep(backoff)
            finally:
                await source.aclose()
