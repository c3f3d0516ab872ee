"""Read-state reconciliation: batch "mark read" behind a settle window."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Iterable
from uuid import UUID

from chat_sync.application.ports.bus import NotificationBus
from chat_sync.application.ports.persistence import ChatGateway
from chat_sync.domain.entities.message import Message
from chat_sync.domain.events.messages_read import MessagesRead
from chat_sync.domain.events.unread_counts_changed import UnreadCountsChanged
from chat_sync.domain.value_objects.enums import NotificationType
from chat_sync.services.conversation_store import ConversationStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class PendingBatch:
    message_ids: list[UUID] = field(default_factory=list)
    timer: asyncio.Task[None] | None = None


class ReadStateReconciler:
    """Turns visibility passes into one remote read update per settle window.

    Only candidates are ever marked read: unread incoming messages handed
    over by a fetch or a realtime insert. Own messages and rows the reconciler
    never saw are left alone.

    Each pass replaces the pending batch of its conversation and restarts
    the timer, so a message is only committed after staying visible for the
    whole window. Commits are optimistic: local state is flipped first and a
    failed remote update is logged, never rolled back or retried.
    """

    def __init__(
        self,
        store: ConversationStore,
        gateway: ChatGateway,
        notifications: NotificationBus,
        *,
        settle_seconds: float = 1.0,
    ) -> None:
        self._store = store
        self._gateway = gateway
        self._notifications = notifications
        self.settle_seconds = settle_seconds
        self._batches: dict[UUID, PendingBatch] = {}
        self._candidates: dict[UUID, set[UUID]] = {}
        self._commits: set[asyncio.Task[list[UUID]]] = set()

    def enqueue_candidates(self, conversation_id: UUID, messages: Iterable[Message]) -> None:
        """Remember unread incoming messages that may be marked read once seen."""
        ids = {
            m.id for m in messages
            if not m.read and m.sender_id != self._store.user_id
        }
        if ids:
            self._candidates.setdefault(conversation_id, set()).update(ids)

    def candidates(self, conversation_id: UUID) -> list[UUID]:
        """Candidates still unread in the store, in server order."""
        wanted = self._candidates.get(conversation_id)
        if not wanted:
            return []
        return [m.id for m in self._store.unread_incoming(conversation_id) if m.id in wanted]

    def pending(self, conversation_id: UUID) -> list[UUID]:
        batch = self._batches.get(conversation_id)
        return list(batch.message_ids) if batch else []

    def observe_visible(self, conversation_id: UUID, visible_ids: Iterable[UUID]) -> list[UUID]:
        """Record one visibility pass; return the ids now waiting to settle."""
        visible = set(visible_ids)
        unread = [i for i in self.candidates(conversation_id) if i in visible]
        self.cancel(conversation_id)
        if not unread:
            return []
        batch = PendingBatch(message_ids=unread)
        batch.timer = asyncio.create_task(
            self._settle_after(conversation_id, batch),
            name=f"read-settle-{conversation_id}",
        )
        self._batches[conversation_id] = batch
        return list(unread)

    async def mark_read(
        self,
        conversation_id: UUID,
        message_ids: Iterable[UUID] | None = None,
    ) -> list[UUID]:
        """Commit immediately, skipping the settle window.

        Without ``message_ids`` every remaining candidate is committed.
        """
        self.cancel(conversation_id)
        if message_ids is None:
            ids = self.candidates(conversation_id)
        else:
            ids = list(message_ids)
        return await self.commit(conversation_id, ids)

    async def commit(self, conversation_id: UUID, message_ids: list[UUID]) -> list[UUID]:
        flipped = self._store.mark_read(conversation_id, message_ids)
        candidates = self._candidates.get(conversation_id)
        if candidates:
            candidates.difference_update(message_ids)
        if not flipped:
            return []

        remaining = self._store.decrement_unread(conversation_id, len(flipped))
        self._notifications.publish(
            NotificationType.MESSAGES_READ,
            MessagesRead(
                conversation_id=conversation_id,
                user_id=self._store.user_id,
                message_ids=tuple(flipped),
                unread_count=remaining,
            ),
        )
        self._notifications.publish(
            NotificationType.UNREAD_COUNTS_CHANGED,
            UnreadCountsChanged(
                total=self._store.total_unread,
                by_conversation=self._store.unread_by_conversation(),
            ),
        )

        try:
            await self._gateway.mark_messages_read(
                conversation_id, self._store.user_id, flipped,
            )
        except Exception:
            logger.exception(
                "Remote mark-read failed for %d messages in %s; keeping local state",
                len(flipped), conversation_id,
            )
        else:
            logger.debug("Marked %d messages read in %s", len(flipped), conversation_id)
        return flipped

    def cancel(self, conversation_id: UUID) -> None:
        """Drop the pending batch. A commit already under way is not interrupted."""
        batch = self._batches.pop(conversation_id, None)
        if batch is not None and batch.timer is not None:
            batch.timer.cancel()

    def cancel_all(self) -> None:
        for conversation_id in list(self._batches):
            self.cancel(conversation_id)
        self._candidates.clear()

    def forget(self, conversation_id: UUID) -> None:
        self.cancel(conversation_id)
        self._candidates.pop(conversation_id, None)

    async def wait_idle(self) -> None:
        """Wait until pending timers fired and their commits finished."""
        while True:
            timers = [b.timer for b in self._batches.values() if b.timer is not None]
            waiting = [t for t in (*timers, *self._commits) if not t.done()]
            if not waiting:
                return
            await asyncio.gather(*waiting, return_exceptions=True)

    async def _settle_after(self, conversation_id: UUID, batch: PendingBatch) -> None:
        await asyncio.sleep(self.settle_seconds)
        if self._batches.get(conversation_id) is not batch:
            return
        del self._batches[conversation_id]
        commit = asyncio.create_task(
            self.commit(conversation_id, batch.message_ids),
            name=f"read-commit-{conversation_id}",
        )
        self._commits.add(commit)
        commit.add_done_callback(self._commits.discard)
