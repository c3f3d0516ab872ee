from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from chat_sync.domain.value_objects.enums import MessageType


@dataclass(frozen=True, slots=True)
class Attachment:
    url: str
    type: str
    name: str | None = None


@dataclass(frozen=True, slots=True)
class Message:
    id: UUID
    conversation_id: UUID | None
    sender_id: UUID
    content: str
    read: bool
    created_at: datetime
    message_type: str = MessageType.TEXT
    attachment: Attachment | None = None
    order_id: UUID | None = None

    @property
    def thread_id(self) -> UUID | None:
        """Conversation the message belongs to, or the order for order threads."""
        return self.conversation_id or self.order_id


def sort_key(message: Message) -> tuple[datetime, str]:
    """Server timestamp order, ties broken by id so the order is total."""
    return message.created_at, str(message.id)
