"""
Message helpers: creation, token estimation, truncation, validation.

Token counts here are an approximation (~4 characters per token), not the
output of a real tokenizer. Anything that needs exact counts should pass its
own TokenCounter; truncation and windowing only depend on `count()`.
"""

from __future__ import annotations

import math
from typing import Protocol

from switchboard.models import Message, MessageMetadata

MAX_MESSAGE_CHARS = 100_000
MESSAGE_OVERHEAD_TOKENS = 4


class TokenCounter(Protocol):
    def count(self, text: str) -> int: ...


class HeuristicTokenCounter:
    """ceil(chars / 4). Cheap and deterministic; wrong for CJK, code, etc."""

    def count(self, text: str) -> int:
        return math.ceil(len(text) / 4)


_default_counter: TokenCounter = HeuristicTokenCounter()


def create_message(
    role: str,
    content: str,
    *,
    id: str | None = None,
    name: str | None = None,
    model: str | None = None,
    tool_call_id: str | None = None,
    tool_name: str | None = None,
    tokens: int | None = None,
    latency_ms: float | None = None,
    finish_reason: str | None = None,
) -> Message:
    """Build a new immutable Message stamped with the current time."""
    metadata = MessageMetadata(
        model=model,
        tokens=tokens,
        latency_ms=latency_ms,
        tool_call_id=tool_call_id,
        tool_name=tool_name,
        finish_reason=finish_reason,
    )
    if id is None:
        return Message(role=role, content=content, name=name, metadata=metadata)
    return Message(id=id, role=role, content=content, name=name, metadata=metadata)


def estimate_tokens(text: str, counter: TokenCounter | None = None) -> int:
    return (counter or _default_counter).count(text)


def estimate_message_tokens(message: Message, counter: TokenCounter | None = None) -> int:
    """Content + fixed per-message overhead, plus the name and one more if named."""
    total = estimate_tokens(message.content, counter) + MESSAGE_OVERHEAD_TOKENS
    if message.name:
        total += estimate_tokens(message.name, counter) + 1
    return total


def estimate_messages_tokens(messages: list[Message], counter: TokenCounter | None = None) -> int:
    return sum(estimate_message_tokens(m, counter) for m in messages)


def truncate_messages(
    messages: list[Message],
    max_tokens: int,
    keep_system: bool = True,
    counter: TokenCounter | None = None,
) -> list[Message]:
    """
    Fit messages into a token budget.

    System messages (when keep_system) are always kept and paid for first.
    The rest are taken newest-first until the next older one would not fit,
    so the result is always the system messages plus a contiguous suffix.
    """
    if keep_system:
        system = [m for m in messages if m.role == "system"]
        rest = [m for m in messages if m.role != "system"]
    else:
        system = []
        rest = list(messages)

    remaining = max_tokens - estimate_messages_tokens(system, counter)
    if remaining <= 0:
        return system

    used = 0
    start = len(rest)
    for i in range(len(rest) - 1, -1, -1):
        cost = estimate_message_tokens(rest[i], counter)
        if used + cost > remaining:
            break
        used += cost
        start = i

    return system + rest[start:]


def validate_message_content(content: str) -> tuple[bool, str | None]:
    if not content or not content.strip():
        return False, "Message content cannot be empty"
    if len(content) > MAX_MESSAGE_CHARS:
        return False, f"Message content exceeds maximum length ({MAX_MESSAGE_CHARS:,} characters)"
    return True, None


def format_messages(messages: list[Message]) -> str:
    """Render as `[ROLE (name)]: content` lines, for debugging."""
    lines = []
    for msg in messages:
        name = f" ({msg.name})" if msg.name else ""
        lines.append(f"[{msg.role.upper()}{name}]: {msg.content}")
    return "\n".join(lines)
