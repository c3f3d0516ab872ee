from __future__ import annotations

import logging
from uuid import UUID

from chat_sync.application.policies.validation import assert_two_parties
from chat_sync.domain.entities.conversation import Conversation
from chat_sync.domain.events.conversation_updated import ConversationUpdated
from chat_sync.domain.events.unread_counts_changed import UnreadCountsChanged
from chat_sync.domain.value_objects.enums import LoadState, NotificationType, RequestPriority
from chat_sync.infrastructure.cache.keys import conversations_key
from chat_sync.services.context import SyncContext

logger = logging.getLogger(__name__)

# Bound on refetches when invalidations keep arriving during a load.
MAX_REFETCHES = 3


async def fetch_conversations(
    ctx: SyncContext,
    user_id: UUID,
    *,
    priority: RequestPriority = RequestPriority.MEDIUM,
) -> list[Conversation]:
    """Return the user's conversations, most recent activity first.

    A fresh cache entry short-circuits the network. Otherwise the load goes
    through the coordinator, so concurrent callers share one request. A load
    that began before the latest invalidation is applied but not trusted:
    the caller waits for it and then schedules a new one.
    """
    key = conversations_key(user_id)
    store = ctx.store

    async def _load() -> bool:
        generation = store.conversations_generation
        store.begin_conversations_load()
        try:
            conversations = await ctx.gateway.list_conversations(user_id)
            unread_counts = await ctx.gateway.get_unread_counts(user_id)
        except Exception:
            store.fail_conversations_load()
            raise
        fresh = store.apply_conversations(conversations, unread_counts, generation)
        if fresh:
            ctx.cache.set(
                key,
                conversations,
                ttl=ctx.settings.CONVERSATIONS_TTL_SECONDS,
                priority=priority,
            )
        ctx.notifications.publish(
            NotificationType.UNREAD_COUNTS_CHANGED,
            UnreadCountsChanged(
                total=store.total_unread,
                by_conversation=store.unread_by_conversation(),
            ),
        )
        ctx.notifications.publish(
            NotificationType.CONVERSATION_UPDATED,
            ConversationUpdated(conversation_id=None, action="loaded"),
        )
        logger.debug("Loaded %d conversations for %s (fresh=%s)", len(conversations), user_id, fresh)
        return fresh

    for _ in range(MAX_REFETCHES):
        if ctx.cache.get(key) is not None and store.conversations_state == LoadState.LOADED:
            return store.conversations()
        if await ctx.coordinator.schedule_request(key, _load, priority):
            return store.conversations()
    logger.warning("Conversations for %s still stale after %d loads", user_id, MAX_REFETCHES)
    return store.conversations()


async def start_conversation(
    ctx: SyncContext,
    user_id: UUID,
    other_user_id: UUID,
) -> Conversation:
    """Return the two-party conversation between the users, creating it if needed."""
    assert_two_parties(user_id, other_user_id)
    conversation, created = await ctx.gateway.get_or_create_conversation(user_id, other_user_id)
    ctx.store.upsert_conversation(conversation)
    if created:
        ctx.cache.invalidate(conversations_key(user_id))
        ctx.store.invalidate_conversations()
        ctx.notifications.publish(
            NotificationType.CONVERSATION_UPDATED,
            ConversationUpdated(conversation_id=conversation.id, action="created"),
        )
        logger.info("Conversation %s created between %s and %s", conversation.id, user_id, other_user_id)
    return conversation
