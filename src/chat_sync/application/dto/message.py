from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from chat_sync.domain.entities.message import Attachment
from chat_sync.domain.value_objects.enums import MessageType


@dataclass(frozen=True, slots=True)
class NewMessage:
    """Outgoing message for exactly one thread: a conversation or an order."""

    conversation_id: UUID | None
    sender_id: UUID
    content: str
    message_type: MessageType = MessageType.TEXT
    attachment: Attachment | None = None
    order_id: UUID | None = None

    def __post_init__(self) -> None:
        if (self.conversation_id is None) == (self.order_id is None):
            raise ValueError("NewMessage needs exactly one of conversation_id or order_id")

    @property
    def thread_id(self) -> UUID:
        return self.conversation_id or self.order_id  # type: ignore[return-value]
