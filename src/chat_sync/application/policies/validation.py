from __future__ import annotations

from uuid import UUID

from chat_sync.application.exceptions import AttachmentError, ValidationError
from chat_sync.config import Settings
from chat_sync.domain.entities.message import Attachment


def assert_sendable(
    content: str | None,
    attachment: Attachment | None,
    settings: Settings,
) -> str:
    """Raise unless the message has text or an attachment; return the text."""
    text = content or ""
    if not text.strip() and attachment is None:
        raise ValidationError("Message cannot be empty")
    if len(text) > settings.MESSAGE_MAX_LENGTH:
        raise ValidationError(
            f"Message must not exceed {settings.MESSAGE_MAX_LENGTH} characters"
        )
    if attachment is not None and not attachment.url:
        raise AttachmentError("Attachment has no URL")
    return text


def assert_attachment_allowed(
    size: int,
    content_type: str,
    settings: Settings,
) -> None:
    if size <= 0:
        raise AttachmentError("Attachment is empty")
    if size > settings.ATTACHMENT_MAX_BYTES:
        raise AttachmentError(
            f"Attachment exceeds {settings.ATTACHMENT_MAX_BYTES // (1024 * 1024)} MB"
        )
    if content_type not in settings.ATTACHMENT_ALLOWED_TYPES:
        raise AttachmentError(f"Attachment type {content_type} is not allowed")


def assert_two_parties(user_id: UUID, other_user_id: UUID) -> None:
    if user_id == other_user_id:
        raise ValidationError("A conversation needs two different participants")
