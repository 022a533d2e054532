"""
Unbounded memory: keeps every message, never evicts.
Fine for short-lived conversations and tests. get_context ignores the
token budget; use sliding-window or summary when eviction matters.
"""

from __future__ import annotations

from switchboard.memory.base import MemoryStrategy
from switchboard.models import Message


class InMemoryStorage(MemoryStrategy):
    name = "in-memory"

    async def save(self, conversation_id: str, messages: list[Message]) -> None:
        self._store[conversation_id] = self._store.get(conversation_id, []) + list(messages)

    async def get_context(self, conversation_id: str, max_tokens: int) -> list[Message]:
        return await self.load(conversation_id)
