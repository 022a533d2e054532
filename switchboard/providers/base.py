"""
Base provider abstraction.
Every provider implements this interface so the engine can treat them uniformly.
"""

from __future__ import annotations

import abc
import logging
from typing import AsyncIterator

from switchboard.models import ProviderRequest, ProviderResponse, StreamChunk

logger = logging.getLogger(__name__)


class BaseProvider(abc.ABC):
    """
    Abstract base for model providers.

    complete() returns one ProviderResponse. stream() is an async generator
    of StreamChunks ending in a single `done` (or `error`) chunk; the joined
    `token` data must equal what complete() would have returned.
    Failures raise ProviderError (or ProviderTimeoutError).
    """

    name: str = "base"

    @abc.abstractmethod
    async def complete(self, request: ProviderRequest) -> ProviderResponse:
        ...

    @abc.abstractmethod
    def stream(self, request: ProviderRequest) -> AsyncIterator[StreamChunk]:
        ...

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
