"""
Data models for the orchestration layer.
These define the shape of data flowing through the engine, the middleware
pipeline, memory strategies and providers.

Timestamps are integer epoch milliseconds throughout, so they serialize
cleanly into JSON and SSE frames.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field, asdict
from typing import Any, Callable, Literal
from uuid import uuid4

Role = Literal["system", "user", "assistant", "tool"]
FinishReason = Literal["stop", "length", "tool_calls", "content_filter", "error"]
ChunkType = Literal["token", "tool_call", "tool_result", "metadata", "error", "done"]

ROLES: tuple[str, ...] = ("system", "user", "assistant", "tool")
FINISH_REASONS: tuple[str, ...] = ("stop", "length", "tool_calls", "content_filter", "error")
CHUNK_TYPES: tuple[str, ...] = ("token", "tool_call", "tool_result", "metadata", "error", "done")


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MessageMetadata:
    timestamp: int = field(default_factory=now_ms)
    tokens: int | None = None
    model: str | None = None
    latency_ms: float | None = None
    tool_call_id: str | None = None
    tool_name: str | None = None
    finish_reason: str | None = None


@dataclass(frozen=True)
class Message:
    """A single turn. Never mutated; an update is a new Message."""
    role: str
    content: str
    id: str = field(default_factory=lambda: uuid4().hex)
    name: str | None = None
    metadata: MessageMetadata = field(default_factory=MessageMetadata)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Message":
        meta = data.get("metadata") or {}
        return cls(
            id=data["id"],
            role=data["role"],
            content=data.get("content", ""),
            name=data.get("name"),
            metadata=MessageMetadata(**meta),
        )

    def to_openai_format(self) -> dict:
        """Export in OpenAI messages array format (the portable standard)."""
        out = {"role": self.role, "content": self.content}
        if self.name:
            out["name"] = self.name
        if self.role == "tool" and self.metadata.tool_call_id:
            out["tool_call_id"] = self.metadata.tool_call_id
        return out


# ---------------------------------------------------------------------------
# Conversations
# ---------------------------------------------------------------------------

@dataclass
class ConversationMetadata:
    title: str | None = None
    tags: list[str] = field(default_factory=list)
    system_prompt: str | None = None
    model: str | None = None
    total_tokens: int = 0
    message_count: int = 0


@dataclass
class Conversation:
    """An ordered thread of messages. Owned by the ConversationManager."""
    id: str = field(default_factory=lambda: uuid4().hex)
    messages: list[Message] = field(default_factory=list)
    metadata: ConversationMetadata = field(default_factory=ConversationMetadata)
    created_at: int = field(default_factory=now_ms)
    updated_at: int = field(default_factory=now_ms)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "messages": [m.to_dict() for m in self.messages],
            "metadata": asdict(self.metadata),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Conversation":
        messages = [Message.from_dict(m) for m in data.get("messages", [])]
        meta = dict(data.get("metadata") or {})
        meta.setdefault("message_count", len(messages))
        return cls(
            id=data["id"],
            messages=messages,
            metadata=ConversationMetadata(**meta),
            created_at=data.get("created_at", now_ms()),
            updated_at=data.get("updated_at", now_ms()),
        )


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------

@dataclass
class ToolCall:
    id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass
class ToolDefinition:
    """A callable tool. `execute` may be sync or async; None means declared only."""
    name: str
    description: str
    parameters: dict[str, Any] = field(default_factory=dict)
    execute: Callable[[dict[str, Any]], Any] | None = None

    def to_openai_format(self) -> dict:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


# ---------------------------------------------------------------------------
# Requests / responses
# ---------------------------------------------------------------------------

@dataclass
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass
class ChatOptions:
    temperature: float | None = None
    max_tokens: int | None = None
    model: str | None = None
    tools: list[ToolDefinition] | None = None


@dataclass
class ChatRequest:
    message: str
    conversation_id: str | None = None
    role: str = "user"
    stream: bool = False
    options: ChatOptions | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "ChatRequest":
        opts = data.get("options")
        options = None
        if opts:
            options = ChatOptions(
                temperature=opts.get("temperature"),
                max_tokens=opts.get("max_tokens"),
                model=opts.get("model"),
            )
        return cls(
            message=data.get("message", ""),
            conversation_id=data.get("conversation_id"),
            role=data.get("role", "user"),
            stream=bool(data.get("stream", False)),
            options=options,
        )


@dataclass
class ChatResponse:
    message: Message
    conversation_id: str
    usage: TokenUsage | None = None
    tool_calls: list[ToolCall] | None = None
    finish_reason: str = "stop"

    def to_dict(self) -> dict:
        return {
            "message": self.message.to_dict(),
            "conversation_id": self.conversation_id,
            "usage": asdict(self.usage) if self.usage else None,
            "tool_calls": [asdict(t) for t in self.tool_calls] if self.tool_calls else None,
            "finish_reason": self.finish_reason,
        }


@dataclass
class ProviderRequest:
    messages: list[Message]
    model: str
    temperature: float
    max_tokens: int
    tools: list[ToolDefinition] | None = None
    stream: bool = False


@dataclass
class ProviderResponse:
    message: Message
    usage: TokenUsage = field(default_factory=TokenUsage)
    tool_calls: list[ToolCall] | None = None
    finish_reason: str = "stop"


# ---------------------------------------------------------------------------
# Streaming
# ---------------------------------------------------------------------------

@dataclass
class StreamChunk:
    type: str
    data: Any = None
    timestamp: int = field(default_factory=now_ms)
    metadata: dict[str, Any] | None = None


# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------

@dataclass
class MiddlewareContext:
    """Per-request value threaded through the pipeline; discarded afterwards."""
    request: ChatRequest
    conversation: Conversation
    config: Any
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class MiddlewareResult:
    proceed: bool
    context: MiddlewareContext
    error: str | None = None
