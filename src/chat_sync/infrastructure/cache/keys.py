"""Cache key helpers.

Keys are plain strings; the prefix identifies the resource family so a
whole family can be invalidated at once.
"""
from __future__ import annotations

from uuid import UUID

from chat_sync.domain.value_objects.enums import ThreadKind

CONVERSATIONS_PREFIX = "conversations:"
MESSAGES_PREFIX = "messages:"
ORDER_MESSAGES_PREFIX = "order-messages:"

_THREAD_PREFIXES = {
    ThreadKind.CONVERSATION: MESSAGES_PREFIX,
    ThreadKind.ORDER: ORDER_MESSAGES_PREFIX,
}


def conversations_key(user_id: UUID) -> str:
    return f"{CONVERSATIONS_PREFIX}{user_id}"


def messages_key(conversation_id: UUID) -> str:
    return f"{MESSAGES_PREFIX}{conversation_id}"


def order_messages_key(order_id: UUID) -> str:
    return f"{ORDER_MESSAGES_PREFIX}{order_id}"


def thread_key(thread_id: UUID, kind: ThreadKind = ThreadKind.CONVERSATION) -> str:
    if kind == ThreadKind.ORDER:
        return order_messages_key(thread_id)
    return messages_key(thread_id)


def parse_thread_key(key: str) -> tuple[UUID, ThreadKind] | None:
    """Inverse of :func:`thread_key`; None for keys of other families."""
    for kind, prefix in _THREAD_PREFIXES.items():
        if key.startswith(prefix):
            try:
                return UUID(key[len(prefix):]), kind
            except ValueError:
                return None
    return None
