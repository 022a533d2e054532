"""
switchboard — conversational AI orchestration.

Conversations, pluggable memory, a priority-ordered middleware pipeline,
plugins and tools in front of any chat-completion provider.
"""
from switchboard.config import ChatConfig, MemoryConfig, RateLimitConfig, StreamConfig
from switchboard.conversation import ConversationManager
from switchboard.engine import ChatEngine
from switchboard.errors import (
    DuplicateIdError,
    NotFoundError,
    PluginError,
    ProviderError,
    ProviderTimeoutError,
    SwitchboardError,
    ToolNotFoundError,
    ValidationError,
)
from switchboard.messages import create_message, estimate_tokens, truncate_messages
from switchboard.models import (
    ChatOptions,
    ChatRequest,
    ChatResponse,
    Conversation,
    Message,
    StreamChunk,
    ToolCall,
    ToolDefinition,
)

__version__ = "0.1.0"

__all__ = [
    "ChatConfig",
    "MemoryConfig",
    "RateLimitConfig",
    "StreamConfig",
    "ConversationManager",
    "ChatEngine",
    "DuplicateIdError",
    "NotFoundError",
    "PluginError",
    "ProviderError",
    "ProviderTimeoutError",
    "SwitchboardError",
    "ToolNotFoundError",
    "ValidationError",
    "create_message",
    "estimate_tokens",
    "truncate_messages",
    "ChatOptions",
    "ChatRequest",
    "ChatResponse",
    "Conversation",
    "Message",
    "StreamChunk",
    "ToolCall",
    "ToolDefinition",
]
