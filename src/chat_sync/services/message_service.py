from __future__ import annotations

import logging
from uuid import UUID

from chat_sync.application.dto.events import RealtimeEvent
from chat_sync.application.dto.message import NewMessage
from chat_sync.application.exceptions import AttachmentError, ModerationError, StorageError
from chat_sync.application.policies.validation import assert_attachment_allowed, assert_sendable
from chat_sync.domain.entities.message import Attachment, Message
from chat_sync.domain.events.conversation_updated import ConversationUpdated
from chat_sync.domain.events.message_received import MessageReceived
from chat_sync.domain.events.moderation_warning import ModerationWarning
from chat_sync.domain.events.typing_changed import TypingChanged
from chat_sync.domain.value_objects.enums import (
    ChannelPurpose,
    LoadState,
    MessageType,
    NotificationType,
    RealtimeEventType,
    RequestPriority,
    ThreadKind,
)
from chat_sync.infrastructure.cache.keys import thread_key
from chat_sync.infrastructure.realtime.channel_registry import channel_name
from chat_sync.services.context import SyncContext
from chat_sync.services.conversation_service import MAX_REFETCHES

logger = logging.getLogger(__name__)


async def fetch_messages(
    ctx: SyncContext,
    conversation_id: UUID,
    *,
    priority: RequestPriority = RequestPriority.MEDIUM,
    kind: ThreadKind = ThreadKind.CONVERSATION,
) -> list[Message]:
    """Return the thread's messages in server order.

    ``conversation_id`` is the order id when ``kind`` is ``ORDER``.
    Fetched rows are merged into the store, so a message already read
    locally stays read. Unread incoming messages only become read-state
    candidates; nothing is marked read here.
    """
    key = thread_key(conversation_id, kind)
    store = ctx.store

    async def _load() -> LoadState:
        generation = store.generation(conversation_id)
        store.begin_loading(conversation_id)
        try:
            rows = await ctx.gateway.list_messages(conversation_id, kind)
        except Exception as exc:
            store.fail_loading(conversation_id, str(exc) or type(exc).__name__)
            raise
        if store.apply_messages(conversation_id, rows, generation):
            ctx.cache.set(key, rows, ttl=ctx.settings.MESSAGES_TTL_SECONDS, priority=priority)
        state = store.state_of(conversation_id)
        if state != LoadState.UNLOADED:
            ctx.reconciler.enqueue_candidates(conversation_id, store.messages(conversation_id))
        return state

    for _ in range(MAX_REFETCHES):
        cached = ctx.cache.get(key)
        if cached is not None:
            state = store.state_of(conversation_id)
            if state == LoadState.LOADED:
                return store.messages(conversation_id)
            if state == LoadState.UNLOADED:
                # Released view reopened while the cached rows are still fresh.
                store.begin_loading(conversation_id)
                store.apply_messages(conversation_id, cached, store.generation(conversation_id))
                ctx.reconciler.enqueue_candidates(conversation_id, store.messages(conversation_id))
                return store.messages(conversation_id)
        state = await ctx.coordinator.schedule_request(key, _load, priority)
        if state != LoadState.STALE:
            return store.messages(conversation_id)
    logger.warning("Messages of %s still stale after %d loads", conversation_id, MAX_REFETCHES)
    return store.messages(conversation_id)


async def send_message(
    ctx: SyncContext,
    conversation_id: UUID,
    sender_id: UUID,
    content: str | None,
    attachment: Attachment | None = None,
    *,
    kind: ThreadKind = ThreadKind.CONVERSATION,
) -> Message:
    text = assert_sendable(content, attachment, ctx.settings)

    warning: str | None = None
    notify_moderator = False
    if text.strip():
        result = await ctx.validator.validate(text)
        if not result.is_valid:
            raise ModerationError(
                result.warning_message or "Message rejected by moderation",
                errors=result.errors,
            )
        text = result.message
        warning = result.warning_message
        notify_moderator = result.should_notify_moderator

    message = await ctx.gateway.insert_message(
        NewMessage(
            conversation_id=conversation_id if kind == ThreadKind.CONVERSATION else None,
            order_id=conversation_id if kind == ThreadKind.ORDER else None,
            sender_id=sender_id,
            content=text,
            message_type=MessageType.ATTACHMENT if attachment else MessageType.TEXT,
            attachment=attachment,
        )
    )

    ctx.store.add_message(message)
    ctx.store.touch_conversation(message)
    ctx.notifications.publish(
        NotificationType.MESSAGE_RECEIVED,
        MessageReceived(message=message, own=message.sender_id == ctx.user_id),
    )
    if kind == ThreadKind.CONVERSATION:
        ctx.notifications.publish(
            NotificationType.CONVERSATION_UPDATED,
            ConversationUpdated(conversation_id=conversation_id, action="message"),
        )
    if warning or notify_moderator:
        ctx.notifications.publish(
            NotificationType.MODERATION_WARNING,
            ModerationWarning(
                thread_id=conversation_id,
                message_id=message.id,
                warning=warning,
                notify_moderator=notify_moderator,
            ),
        )
    logger.debug("Message %s sent to %s", message.id, conversation_id)
    return message


async def set_typing(
    ctx: SyncContext,
    conversation_id: UUID,
    user_id: UUID,
    is_typing: bool,
) -> None:
    """Update the local typing flag and broadcast it; the broadcast is best-effort."""
    if ctx.store.set_typing(conversation_id, user_id, is_typing):
        ctx.notifications.publish(
            NotificationType.TYPING_CHANGED,
            TypingChanged(conversation_id=conversation_id, user_id=user_id, is_typing=is_typing),
        )
    event = RealtimeEvent(
        type=RealtimeEventType.TYPING,
        table="typing",
        record={
            "conversation_id": str(conversation_id),
            "user_id": str(user_id),
            "is_typing": is_typing,
        },
    )
    try:
        await ctx.realtime.publish(
            channel_name(ChannelPurpose.CONVERSATION_MESSAGES, conversation_id), event,
        )
    except Exception:
        logger.warning("Typing broadcast failed for %s", conversation_id, exc_info=True)


async def upload_attachment(
    ctx: SyncContext,
    data: bytes,
    filename: str,
    content_type: str,
) -> Attachment:
    assert_attachment_allowed(len(data), content_type, ctx.settings)
    if ctx.storage is None:
        raise StorageError("File storage is not configured")
    try:
        url = await ctx.storage.upload(data, filename, content_type)
    except (AttachmentError, StorageError):
        raise
    except Exception as exc:
        raise StorageError(str(exc) or type(exc).__name__) from exc
    return Attachment(url=url, type=content_type, name=filename)
