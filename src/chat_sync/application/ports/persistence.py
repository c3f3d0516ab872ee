from __future__ import annotations

from typing import Protocol
from uuid import UUID

from chat_sync.application.dto.message import NewMessage
from chat_sync.domain.entities.conversation import Conversation
from chat_sync.domain.entities.message import Message
from chat_sync.domain.value_objects.enums import ThreadKind


class ChatGateway(Protocol):
    """Remote persistence/query service for conversations and messages.

    Implementations raise ``NetworkError`` for transport failures.
    """

    async def list_conversations(self, user_id: UUID) -> list[Conversation]: ...

    async def get_unread_counts(self, user_id: UUID) -> dict[UUID, int]:
        """Unread counter of ``user_id`` for each of their conversations."""
        ...

    async def list_messages(
        self, thread_id: UUID, kind: ThreadKind = ThreadKind.CONVERSATION,
    ) -> list[Message]:
        """Messages of a conversation or an order, ascending by server created_at."""
        ...

    async def insert_message(self, message: NewMessage) -> Message:
        """Persist and return the authoritative row (server id and created_at)."""
        ...

    async def mark_messages_read(
        self, thread_id: UUID, user_id: UUID, message_ids: list[UUID],
    ) -> None:
        """Flip incoming messages of the thread to read; conversation counters follow."""
        ...

    async def get_or_create_conversation(
        self, user_id: UUID, other_user_id: UUID,
    ) -> tuple[Conversation, bool]: ...
