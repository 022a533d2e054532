"""
Summary memory — collapse older turns into a running summary.

On save, once a conversation holds more than `recent_count` messages, the
overflow (oldest first) is rendered as "role: content" lines, appended to the
previous summary text and handed to the summarizer. The result REPLACES the
previous summary; only the newest `recent_count` messages stay raw.

load() prepends the summary as a system message:

    Previous conversation summary:
    <summary text>

The default summarizer is a lossy 500-character truncation. It is a
placeholder; pass `summarizer=` (or use provider_summarizer) for a real one.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable

from switchboard.memory.base import MemoryStats, MemoryStrategy
from switchboard.messages import (
    create_message,
    estimate_message_tokens,
    estimate_messages_tokens,
    estimate_tokens,
)
from switchboard.models import Message, ProviderRequest
from switchboard.utils import maybe_await

logger = logging.getLogger(__name__)

SUMMARY_PREFIX = "Previous conversation summary:\n"
SUMMARY_MAX_CHARS = 500
DEFAULT_SUMMARY_PROMPT = (
    "Summarise the following conversation history concisely. "
    "Preserve key facts, decisions, and context. "
    "Write in third person. Be brief: 3-6 sentences maximum.\n\n"
)

Summarizer = Callable[[list[Message]], "Awaitable[str] | str"]


async def default_summarizer(messages: list[Message]) -> str:
    """Join and truncate. Not a semantic summary."""
    content = "\n".join(m.content for m in messages)
    if len(content) > SUMMARY_MAX_CHARS:
        return content[:SUMMARY_MAX_CHARS - 3] + "..."
    return content


def provider_summarizer(provider, model: str, prompt: str | None = None, max_tokens: int = 512) -> Summarizer:
    """
    Build a summarizer that asks a provider for the summary.
    Falls back to the truncating summarizer when the call fails or returns
    nothing, so save() never loses the overflow.
    """
    prefix = prompt or DEFAULT_SUMMARY_PROMPT

    async def summarize(messages: list[Message]) -> str:
        history = "\n".join(m.content for m in messages)
        request = ProviderRequest(
            messages=[create_message("user", f"{prefix}{history}")],
            model=model,
            temperature=0.0,
            max_tokens=max_tokens,
        )
        try:
            response = await provider.complete(request)
            text = response.message.content.strip()
        except Exception as e:
            logger.warning("summary: provider call failed, truncating instead: %s", e)
            return await default_summarizer(messages)

        if not text:
            logger.warning("summary: empty summary returned, truncating instead")
            return await default_summarizer(messages)
        return text

    return summarize


class SummaryMemory(MemoryStrategy):
    name = "summary"

    def __init__(self, recent_count: int = 10, summarizer: Summarizer | None = None):
        super().__init__()
        if recent_count <= 0:
            raise ValueError("recent_count must be positive")
        self.recent_count = recent_count
        self.summarizer = summarizer or default_summarizer
        self._summaries: dict[str, str] = {}

    async def save(self, conversation_id: str, messages: list[Message]) -> None:
        combined = self._store.get(conversation_id, []) + list(messages)

        if len(combined) <= self.recent_count:
            self._store[conversation_id] = combined
            return

        overflow = combined[:-self.recent_count]
        recent = combined[-self.recent_count:]

        previous = self._summaries.get(conversation_id, "")
        new_content = "\n".join(f"{m.role}: {m.content}" for m in overflow)
        text = f"{previous}\n{new_content}" if previous else new_content

        summary = await maybe_await(self.summarizer([create_message("system", text)]))
        self._summaries[conversation_id] = summary
        self._store[conversation_id] = recent
        logger.debug(
            "summary: folded %d messages into summary for %s (%d kept raw)",
            len(overflow), conversation_id[:16], len(recent),
        )

    async def load(self, conversation_id: str) -> list[Message]:
        messages = list(self._store.get(conversation_id, []))
        summary = self._summaries.get(conversation_id)
        if summary:
            return [create_message("system", f"{SUMMARY_PREFIX}{summary}")] + messages
        return messages

    async def get_context(self, conversation_id: str, max_tokens: int) -> list[Message]:
        """Drop the oldest raw messages until the budget fits; never the summary."""
        result = await self.load(conversation_id)
        first_raw = 1 if self._summaries.get(conversation_id) else 0
        total = estimate_messages_tokens(result)

        while total > max_tokens and len(result) > max(1, first_raw):
            dropped = result.pop(first_raw)
            total -= estimate_message_tokens(dropped)

        return result

    async def search(self, conversation_id: str, query: str, limit: int | None = None) -> list[Message]:
        matches = await super().search(conversation_id, query)
        summary = self._summaries.get(conversation_id)
        if summary and query.lower() in summary.lower():
            matches.insert(0, create_message("system", f"[From summary]: {summary}"))
        return matches[:limit] if limit else matches

    async def clear(self, conversation_id: str) -> None:
        await super().clear(conversation_id)
        self._summaries.pop(conversation_id, None)

    async def clear_all(self) -> None:
        await super().clear_all()
        self._summaries.clear()

    async def get_stats(self, conversation_id: str) -> MemoryStats:
        stats = await super().get_stats(conversation_id)
        summary = self._summaries.get(conversation_id)
        if summary:
            stats.estimated_tokens += estimate_tokens(summary)
        return stats

    def get_summary(self, conversation_id: str) -> str | None:
        return self._summaries.get(conversation_id)
