"""
Exception types.

Policy rejections from middleware are NOT exceptions; they come back as a
ChatResponse with finish_reason="error". Everything here is out-of-band.
"""

from __future__ import annotations


class SwitchboardError(Exception):
    """Base for all switchboard errors."""


class ValidationError(SwitchboardError):
    """Request rejected before any state was touched."""


class NotFoundError(SwitchboardError):
    """Raw CRUD on a conversation id that does not exist."""

    def __init__(self, conversation_id: str):
        super().__init__(f"Conversation not found: {conversation_id}")
        self.conversation_id = conversation_id


class DuplicateIdError(SwitchboardError):
    """create() called with an explicit id that is already taken."""

    def __init__(self, conversation_id: str):
        super().__init__(f"Conversation already exists: {conversation_id}")
        self.conversation_id = conversation_id


class PluginError(SwitchboardError):
    pass


class ProviderError(SwitchboardError):
    """Network / HTTP failure from a model provider."""

    def __init__(self, message: str, status_code: int | None = None, provider: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.provider = provider


class ProviderTimeoutError(ProviderError):
    """Provider call exceeded its bounded duration."""


class ToolNotFoundError(SwitchboardError):
    """A tool call named a tool that is not registered (or has no executor)."""

    def __init__(self, name: str):
        super().__init__(f"Tool not found: {name}")
        self.name = name
