from __future__ import annotations

from enum import IntEnum, StrEnum


class ConversationStatus(StrEnum):
    ACTIVE = "active"
    CLOSED = "closed"
    ARCHIVED = "archived"


class MessageType(StrEnum):
    TEXT = "text"
    ATTACHMENT = "attachment"
    SYSTEM = "system"


class LoadState(StrEnum):
    UNLOADED = "unloaded"
    LOADING = "loading"
    LOADED = "loaded"
    STALE = "stale"


class RequestPriority(IntEnum):
    """Lower value is served first when the coordinator queue is full."""

    HIGH = 0
    MEDIUM = 1
    LOW = 2


class ThreadKind(StrEnum):
    """What a message thread hangs off: a two-party conversation or an order."""

    CONVERSATION = "conversation"
    ORDER = "order"


class ChannelPurpose(StrEnum):
    CONVERSATION_MESSAGES = "conversation-messages"
    ORDER_MESSAGES = "order-messages"
    USER_CONVERSATIONS = "user-conversations"


class RealtimeEventType(StrEnum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    TYPING = "TYPING"


class ErrorReason(StrEnum):
    NETWORK = "network"
    VALIDATION = "validation"
    MODERATION = "moderation"
    UNKNOWN = "unknown"


class NotificationType(StrEnum):
    MESSAGES_READ = "messages-read"
    CONVERSATION_UPDATED = "conversation-updated"
    MESSAGE_RECEIVED = "message-received"
    TYPING_CHANGED = "typing-changed"
    UNREAD_COUNTS_CHANGED = "unread-counts-changed"
    MODERATION_WARNING = "moderation-warning"
