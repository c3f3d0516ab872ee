"""Realtime event envelope models."""
from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel

from chat_sync.domain.entities.message import Attachment, Message
from chat_sync.domain.value_objects.enums import MessageType, RealtimeEventType


class RealtimeEvent(BaseModel):
    """Row change (or typing broadcast) delivered on a realtime topic."""

    type: RealtimeEventType
    table: str  # messages | conversation_participants | conversations | typing
    record: dict[str, Any] = {}
    old_record: dict[str, Any] | None = None

    @property
    def is_database_change(self) -> bool:
        return self.type != RealtimeEventType.TYPING


class MessageRecord(BaseModel):
    """Row of the messages table as carried in a realtime payload."""

    id: UUID
    conversation_id: UUID | None = None
    order_id: UUID | None = None
    sender_id: UUID
    content: str = ""
    read: bool = False
    created_at: datetime
    message_type: MessageType = MessageType.TEXT
    attachment_url: str | None = None
    attachment_type: str | None = None
    attachment_name: str | None = None

    def to_entity(self) -> Message:
        attachment = None
        if self.attachment_url:
            attachment = Attachment(
                url=self.attachment_url,
                type=self.attachment_type or "application/octet-stream",
                name=self.attachment_name,
            )
        return Message(
            id=self.id,
            conversation_id=self.conversation_id,
            order_id=self.order_id,
            sender_id=self.sender_id,
            content=self.content,
            read=self.read,
            created_at=self.created_at,
            message_type=self.message_type,
            attachment=attachment,
        )


class TypingRecord(BaseModel):
    conversation_id: UUID
    user_id: UUID
    is_typing: bool
