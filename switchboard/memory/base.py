"""
Base memory strategy.
Every strategy is a pure store keyed by conversation id, implementing the
same interface so the engine can treat them uniformly.
"""

from __future__ import annotations

import abc
from dataclasses import dataclass

from switchboard.messages import estimate_messages_tokens
from switchboard.models import Message


@dataclass
class MemoryStats:
    conversation_id: str
    message_count: int
    estimated_tokens: int
    oldest_message_timestamp: int | None = None
    newest_message_timestamp: int | None = None


class MemoryStrategy(abc.ABC):
    """Decides which messages are retained and how context is assembled."""

    name: str = ""

    def __init__(self):
        self._store: dict[str, list[Message]] = {}

    @abc.abstractmethod
    async def save(self, conversation_id: str, messages: list[Message]) -> None:
        """Append messages, applying this strategy's retention policy."""
        ...

    async def load(self, conversation_id: str) -> list[Message]:
        return list(self._store.get(conversation_id, []))

    @abc.abstractmethod
    async def get_context(self, conversation_id: str, max_tokens: int) -> list[Message]:
        """Messages to hand the provider, within max_tokens where the strategy enforces it."""
        ...

    async def search(self, conversation_id: str, query: str, limit: int | None = None) -> list[Message]:
        needle = query.lower()
        matches = [m for m in self._store.get(conversation_id, []) if needle in m.content.lower()]
        return matches[:limit] if limit else matches

    async def clear(self, conversation_id: str) -> None:
        self._store.pop(conversation_id, None)

    async def clear_all(self) -> None:
        self._store.clear()

    async def get_stats(self, conversation_id: str) -> MemoryStats:
        messages = self._store.get(conversation_id, [])
        return MemoryStats(
            conversation_id=conversation_id,
            message_count=len(messages),
            estimated_tokens=estimate_messages_tokens(messages),
            oldest_message_timestamp=messages[0].metadata.timestamp if messages else None,
            newest_message_timestamp=messages[-1].metadata.timestamp if messages else None,
        )

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} conversations={len(self._store)}>"
