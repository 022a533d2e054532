"""
In-process conversation store.

Conversations live for the lifetime of the manager. There is no automatic
expiry; hosts sweep with list()/delete() if they need to.
"""

from __future__ import annotations

import json
import logging
from dataclasses import replace

from switchboard.errors import DuplicateIdError, NotFoundError
from switchboard.messages import estimate_message_tokens, TokenCounter
from switchboard.models import Conversation, ConversationMetadata, Message, now_ms

logger = logging.getLogger(__name__)

SORT_FIELDS = ("created_at", "updated_at")


class ConversationManager:
    """CRUD, token bookkeeping, search and export/import over conversations."""

    def __init__(self, counter: TokenCounter | None = None):
        self._conversations: dict[str, Conversation] = {}
        self.counter = counter

    def create(
        self,
        id: str | None = None,
        title: str | None = None,
        system_prompt: str | None = None,
        tags: list[str] | None = None,
        model: str | None = None,
    ) -> Conversation:
        if id is not None and id in self._conversations:
            raise DuplicateIdError(id)

        metadata = ConversationMetadata(
            title=title,
            tags=list(tags or []),
            system_prompt=system_prompt,
            model=model,
        )
        conversation = Conversation(metadata=metadata) if id is None else Conversation(id=id, metadata=metadata)
        conversation.updated_at = conversation.created_at
        self._conversations[conversation.id] = conversation
        logger.debug("Created conversation %s", conversation.id[:16])
        return conversation

    def get(self, id: str) -> Conversation | None:
        return self._conversations.get(id)

    def get_or_create(
        self,
        id: str,
        system_prompt: str | None = None,
        model: str | None = None,
    ) -> Conversation:
        """Idempotent entry point: a caller-chosen id never conflicts."""
        existing = self._conversations.get(id)
        if existing is not None:
            return existing
        return self.create(id=id, system_prompt=system_prompt, model=model)

    def _require(self, id: str) -> Conversation:
        conversation = self._conversations.get(id)
        if conversation is None:
            raise NotFoundError(id)
        return conversation

    def add_message(self, id: str, message: Message) -> Conversation:
        conversation = self._require(id)
        conversation.messages.append(message)
        conversation.metadata.message_count = len(conversation.messages)
        conversation.metadata.total_tokens += estimate_message_tokens(message, self.counter)
        conversation.updated_at = now_ms()
        return conversation

    def get_messages(
        self,
        id: str,
        limit: int | None = None,
        offset: int = 0,
        roles: list[str] | None = None,
    ) -> list[Message]:
        conversation = self._conversations.get(id)
        if conversation is None:
            return []

        messages = list(conversation.messages)
        if roles:
            messages = [m for m in messages if m.role in roles]

        end = None if limit is None else offset + limit
        return messages[offset:end]

    def update_metadata(self, id: str, **updates) -> Conversation:
        conversation = self._require(id)
        conversation.metadata = replace(conversation.metadata, **updates)
        conversation.updated_at = now_ms()
        return conversation

    def list(
        self,
        limit: int = 50,
        offset: int = 0,
        tags: list[str] | None = None,
        sort_by: str = "updated_at",
        order: str = "desc",
    ) -> list[Conversation]:
        """
        Snapshot of conversations, filtered by shared tags, sorted, paginated.
        sorted() is stable in both directions, so equal timestamps keep
        insertion order.
        """
        if sort_by not in SORT_FIELDS:
            raise ValueError(f"sort_by must be one of {SORT_FIELDS}")

        conversations = list(self._conversations.values())
        if tags:
            wanted = set(tags)
            conversations = [c for c in conversations if wanted & set(c.metadata.tags)]

        conversations = sorted(
            conversations,
            key=lambda c: getattr(c, sort_by),
            reverse=(order == "desc"),
        )
        return conversations[offset:offset + limit]

    def search(
        self,
        query: str,
        conversation_id: str | None = None,
        limit: int | None = None,
    ) -> list[Message]:
        """Case-insensitive substring search over message content."""
        needle = query.lower()
        if conversation_id is not None:
            pool = [self._conversations[conversation_id]] if conversation_id in self._conversations else []
        else:
            pool = list(self._conversations.values())

        matches = [m for c in pool for m in c.messages if needle in m.content.lower()]
        return matches[:limit] if limit else matches

    def delete(self, id: str) -> bool:
        return self._conversations.pop(id, None) is not None

    def clear(self):
        self._conversations.clear()

    def __len__(self) -> int:
        return len(self._conversations)

    def __contains__(self, id: str) -> bool:
        return id in self._conversations

    def export(self, id: str) -> str | None:
        """Export a conversation as pretty-printed JSON."""
        conversation = self._conversations.get(id)
        if conversation is None:
            return None
        return json.dumps(conversation.to_dict(), indent=2, ensure_ascii=False)

    def import_json(self, data: str) -> Conversation:
        """Import a conversation from export() output. Replaces any same-id conversation."""
        conversation = Conversation.from_dict(json.loads(data))
        self._conversations[conversation.id] = conversation
        return conversation
