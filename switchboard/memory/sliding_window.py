"""
Sliding-window memory — keep the most recent N messages.

Two independent limits:
  - count, at write time: save() trims non-system messages to window_size
  - tokens, at read time: get_context() truncates the stored window to the
    caller's budget

System messages are always retained (when keep_system is on) and do not
count against the window.
"""

from __future__ import annotations

from switchboard.memory.base import MemoryStrategy
from switchboard.messages import truncate_messages
from switchboard.models import Message


class SlidingWindowMemory(MemoryStrategy):
    name = "sliding-window"

    def __init__(self, window_size: int = 20, keep_system: bool = True):
        super().__init__()
        if window_size <= 0:
            raise ValueError("window_size must be positive")
        self.window_size = window_size
        self.keep_system = keep_system

    def _apply_window(self, messages: list[Message]) -> list[Message]:
        if self.keep_system:
            system = [m for m in messages if m.role == "system"]
            rest = [m for m in messages if m.role != "system"]
        else:
            system, rest = [], messages
        return system + rest[-self.window_size:]

    async def save(self, conversation_id: str, messages: list[Message]) -> None:
        combined = self._store.get(conversation_id, []) + list(messages)
        self._store[conversation_id] = self._apply_window(combined)

    async def get_context(self, conversation_id: str, max_tokens: int) -> list[Message]:
        return truncate_messages(
            self._store.get(conversation_id, []),
            max_tokens,
            keep_system=self.keep_system,
        )
