from __future__ import annotations

from chat_sync.domain.entities.message import Attachment, Message
from chat_sync.infrastructure.db.models.message import MessageModel


def model_to_entity(model: MessageModel) -> Message:
    attachment = None
    if model.attachment_url:
        attachment = Attachment(
            url=model.attachment_url,
            type=model.attachment_type or "application/octet-stream",
            name=model.attachment_name,
        )
    return Message(
        id=model.id,
        conversation_id=model.conversation_id,
        order_id=model.order_id,
        sender_id=model.sender_id,
        content=model.content,
        read=model.read,
        created_at=model.created_at,
        message_type=model.message_type,
        attachment=attachment,
    )
