"""Public facade of the sync engine: loads, realtime wiring, read state, retries."""
from __future__ import annotations

import asyncio
import logging
from functools import partial
from typing import Any, Awaitable, Callable, Iterable, TypeVar
from uuid import UUID

from chat_sync.application.dto.events import MessageRecord, RealtimeEvent, TypingRecord
from chat_sync.application.exceptions import ValidationError, as_sync_error
from chat_sync.application.ports.bus import NotificationCallback
from chat_sync.domain.entities.conversation import Conversation
from chat_sync.domain.entities.message import Attachment, Message
from chat_sync.domain.events.conversation_updated import ConversationUpdated
from chat_sync.domain.events.message_received import MessageReceived
from chat_sync.domain.events.typing_changed import TypingChanged
from chat_sync.domain.value_objects.enums import (
    ChannelPurpose,
    LoadState,
    NotificationType,
    RealtimeEventType,
    RequestPriority,
    ThreadKind,
)
from chat_sync.infrastructure.cache.keys import conversations_key, parse_thread_key, thread_key
from chat_sync.infrastructure.realtime.channel_registry import channel_name, thread_channel_name
from chat_sync.services import conversation_service, message_service
from chat_sync.services.context import SyncContext
from chat_sync.services.conversation_store import ConversationStore
from chat_sync.services.retry_controller import RetryController, Sleep

logger = logging.getLogger(__name__)

T = TypeVar("T")

Cleanup = Callable[[], Awaitable[None]]


class SyncOrchestrator:
    """Single entry point for the UI layer.

    Keys the UI is looking at (the conversation list after ``activate``,
    each conversation between ``open_conversation`` and
    ``close_conversation``, each order thread between ``open_order_thread``
    and ``close_order_thread``) are observed: a realtime change to them is
    refetched at once. Changes to anything else only mark it stale.

    Every public operation raises ``SyncError`` subclasses.
    """

    def __init__(self, ctx: SyncContext, *, sleep: Sleep = asyncio.sleep) -> None:
        self.ctx = ctx
        self._sleep = sleep
        self._observed: set[str] = set()
        self._loaders: dict[str, RetryController[Any]] = {}
        self._kinds: dict[UUID, ThreadKind] = {}
        self._refetches: set[asyncio.Task[None]] = set()
        self._cleanups: list[Cleanup] = []

    @property
    def user_id(self) -> UUID:
        return self.ctx.user_id

    @property
    def store(self) -> ConversationStore:
        return self.ctx.store

    def is_observed(self, key: str) -> bool:
        return key in self._observed

    def loader(self, key: str) -> RetryController[Any] | None:
        return self._loaders.get(key)

    def add_cleanup(self, cleanup: Cleanup) -> None:
        """Register a coroutine function to run at the end of ``aclose``."""
        self._cleanups.append(cleanup)

    # -- lifecycle ----------------------------------------------------------

    async def activate(self, user_id: UUID) -> list[Conversation]:
        """Subscribe the user-level channel and load the conversation list."""
        if user_id != self.ctx.user_id:
            raise ValidationError(f"Session belongs to {self.ctx.user_id}, not {user_id}")
        key = conversations_key(user_id)
        self._observed.add(key)
        await self._subscribe(
            channel_name(ChannelPurpose.USER_CONVERSATIONS, user_id), self._on_user_event,
        )
        loader = self._loader(
            key,
            lambda: conversation_service.fetch_conversations(
                self.ctx, user_id, priority=RequestPriority.HIGH,
            ),
        )
        return await self._guard(loader.run())

    async def open_conversation(self, conversation_id: UUID) -> list[Message]:
        self.ctx.store.active_conversation_id = conversation_id
        return await self._open_thread(conversation_id, ThreadKind.CONVERSATION)

    async def open_order_thread(self, order_id: UUID) -> list[Message]:
        """Watch the message thread attached to an order."""
        return await self._open_thread(order_id, ThreadKind.ORDER)

    async def close_conversation(self, conversation_id: UUID) -> None:
        """Stop watching the conversation; in-flight loads finish and are dropped."""
        await self._close_thread(conversation_id, ThreadKind.CONVERSATION)

    async def close_order_thread(self, order_id: UUID) -> None:
        await self._close_thread(order_id, ThreadKind.ORDER)

    async def subscribe_to_conversation(self, conversation_id: UUID) -> bool:
        return await self._subscribe_thread(conversation_id, ThreadKind.CONVERSATION)

    async def _open_thread(self, thread_id: UUID, kind: ThreadKind) -> list[Message]:
        key = thread_key(thread_id, kind)
        self._observed.add(key)
        self._kinds[thread_id] = kind
        await self._subscribe_thread(thread_id, kind)
        loader = self._loader(
            key,
            lambda: message_service.fetch_messages(
                self.ctx, thread_id, priority=RequestPriority.HIGH, kind=kind,
            ),
        )
        return await self._guard(loader.run())

    async def _close_thread(self, thread_id: UUID, kind: ThreadKind) -> None:
        key = thread_key(thread_id, kind)
        self._observed.discard(key)
        self._kinds.pop(thread_id, None)
        self.ctx.reconciler.forget(thread_id)
        loader = self._loaders.pop(key, None)
        if loader is not None:
            loader.cancel()
        await self.ctx.channels.remove_channel(thread_channel_name(thread_id, kind))
        self.ctx.store.release(thread_id)
        logger.debug("%s thread %s closed", kind, thread_id)

    async def _subscribe_thread(self, thread_id: UUID, kind: ThreadKind) -> bool:
        return await self._subscribe(
            thread_channel_name(thread_id, kind),
            partial(self._on_thread_event, thread_id, kind),
        )

    async def unsubscribe_all(self) -> int:
        return await self.ctx.channels.remove_all_channels()

    async def aclose(self) -> None:
        for loader in self._loaders.values():
            loader.cancel()
        self._loaders.clear()
        self._observed.clear()
        self._kinds.clear()
        for task in list(self._refetches):
            task.cancel()
        await self.ctx.aclose()
        for cleanup in reversed(self._cleanups):
            try:
                await cleanup()
            except Exception:
                logger.exception("Error during orchestrator cleanup")
        self._cleanups.clear()

    # -- reads --------------------------------------------------------------

    async def fetch_conversations(
        self, *, priority: RequestPriority = RequestPriority.MEDIUM,
    ) -> list[Conversation]:
        return await self._guard(
            conversation_service.fetch_conversations(self.ctx, self.ctx.user_id, priority=priority)
        )

    async def fetch_messages(
        self,
        conversation_id: UUID,
        *,
        priority: RequestPriority = RequestPriority.MEDIUM,
    ) -> list[Message]:
        return await self._guard(
            message_service.fetch_messages(self.ctx, conversation_id, priority=priority)
        )

    async def fetch_order_messages(
        self,
        order_id: UUID,
        *,
        priority: RequestPriority = RequestPriority.MEDIUM,
    ) -> list[Message]:
        self._kinds[order_id] = ThreadKind.ORDER
        return await self._guard(
            message_service.fetch_messages(
                self.ctx, order_id, priority=priority, kind=ThreadKind.ORDER,
            )
        )

    async def retry(self, key: str) -> Any:
        """Manually retry the initial load behind ``key``."""
        loader = self._loaders.get(key)
        if loader is None:
            raise ValidationError(f"No load registered for {key}")
        return await self._guard(loader.retry())

    async def refresh_stale(self) -> list[str]:
        """Refetch stale or expired observed resources at low priority.

        Failures are logged; the keys that refreshed are returned.
        """
        jobs: dict[str, Awaitable[Any]] = {}
        store = self.ctx.store
        list_key = conversations_key(self.ctx.user_id)
        if store.conversations_state == LoadState.STALE or (
            list_key in self._observed and self.ctx.cache.get(list_key) is None
        ):
            jobs[list_key] = conversation_service.fetch_conversations(
                self.ctx, self.ctx.user_id, priority=RequestPriority.LOW,
            )
        for thread_id, kind in self._refresh_candidates():
            jobs[thread_key(thread_id, kind)] = message_service.fetch_messages(
                self.ctx, thread_id, priority=RequestPriority.LOW, kind=kind,
            )
        if not jobs:
            return []

        results = await asyncio.gather(*jobs.values(), return_exceptions=True)
        refreshed: list[str] = []
        for key, result in zip(jobs, results):
            if isinstance(result, BaseException):
                error = as_sync_error(result)
                logger.warning("Refresh of %s failed (%s): %s", key, error.reason, error.detail)
            else:
                refreshed.append(key)
        return refreshed

    def _refresh_candidates(self) -> list[tuple[UUID, ThreadKind]]:
        candidates = [
            (thread_id, self._kinds.get(thread_id, ThreadKind.CONVERSATION))
            for thread_id in self.ctx.store.stale_conversations()
        ]
        for key in self._observed:
            parsed = parse_thread_key(key)
            if (
                parsed is not None
                and parsed not in candidates
                and self.ctx.cache.get(key) is None
            ):
                candidates.append(parsed)
        return candidates

    # -- writes -------------------------------------------------------------

    async def send_message(
        self,
        conversation_id: UUID,
        content: str | None,
        attachment: Attachment | None = None,
    ) -> Message:
        return await self._guard(
            message_service.send_message(
                self.ctx, conversation_id, self.ctx.user_id, content, attachment,
            )
        )

    async def send_order_message(
        self,
        order_id: UUID,
        content: str | None,
        attachment: Attachment | None = None,
    ) -> Message:
        return await self._guard(
            message_service.send_message(
                self.ctx, order_id, self.ctx.user_id, content, attachment,
                kind=ThreadKind.ORDER,
            )
        )

    async def start_conversation(self, other_user_id: UUID) -> Conversation:
        return await self._guard(
            conversation_service.start_conversation(self.ctx, self.ctx.user_id, other_user_id)
        )

    async def upload_attachment(self, data: bytes, filename: str, content_type: str) -> Attachment:
        return await self._guard(
            message_service.upload_attachment(self.ctx, data, filename, content_type)
        )

    async def set_typing(self, conversation_id: UUID, is_typing: bool) -> None:
        await self._guard(
            message_service.set_typing(self.ctx, conversation_id, self.ctx.user_id, is_typing)
        )

    async def mark_read(
        self,
        conversation_id: UUID,
        message_ids: Iterable[UUID] | None = None,
    ) -> list[UUID]:
        return await self._guard(self.ctx.reconciler.mark_read(conversation_id, message_ids))

    def observe_visible(self, conversation_id: UUID, visible_ids: Iterable[UUID]) -> list[UUID]:
        return self.ctx.reconciler.observe_visible(conversation_id, visible_ids)

    # -- notifications ------------------------------------------------------

    def subscribe(
        self, event: NotificationType, callback: NotificationCallback,
    ) -> Callable[[], None]:
        return self.ctx.notifications.subscribe(event, callback)

    async def wait_idle(self) -> None:
        """Wait for background refetches and read-state commits to finish."""
        while self._refetches:
            await asyncio.gather(*list(self._refetches), return_exceptions=True)
        await self.ctx.reconciler.wait_idle()

    # -- realtime -----------------------------------------------------------

    async def _on_user_event(self, event: RealtimeEvent) -> None:
        if not event.is_database_change:
            return
        user_id = self.ctx.user_id
        thread = _record_thread(event)
        if event.table == "messages" and thread is not None:
            thread_id, kind = thread
            key = thread_key(thread_id, kind)
            # Observed threads get the same event on their own channel.
            if key not in self._observed:
                self._kinds.setdefault(thread_id, kind)
                self._invalidate(
                    key,
                    partial(self.ctx.store.invalidate, thread_id),
                    lambda: message_service.fetch_messages(self.ctx, thread_id, kind=kind),
                )
            if kind == ThreadKind.ORDER:
                return
        conversation_id = thread[0] if thread is not None else None
        self._invalidate(
            conversations_key(user_id),
            self.ctx.store.invalidate_conversations,
            lambda: conversation_service.fetch_conversations(self.ctx, user_id),
        )
        self.ctx.notifications.publish(
            NotificationType.CONVERSATION_UPDATED,
            ConversationUpdated(conversation_id=conversation_id, action="invalidated"),
        )

    async def _on_thread_event(
        self, thread_id: UUID, kind: ThreadKind, event: RealtimeEvent,
    ) -> None:
        store = self.ctx.store
        if event.type == RealtimeEventType.TYPING:
            record = TypingRecord.model_validate(event.record)
            if record.user_id == self.ctx.user_id:
                return
            if store.set_typing(thread_id, record.user_id, record.is_typing):
                self.ctx.notifications.publish(
                    NotificationType.TYPING_CHANGED,
                    TypingChanged(
                        conversation_id=thread_id,
                        user_id=record.user_id,
                        is_typing=record.is_typing,
                    ),
                )
            return

        if (
            event.table == "messages"
            and event.type == RealtimeEventType.INSERT
            and store.state_of(thread_id) != LoadState.UNLOADED
        ):
            message = MessageRecord.model_validate(event.record).to_entity()
            if message.thread_id == thread_id and store.add_message(message):
                store.touch_conversation(message)
                self.ctx.reconciler.enqueue_candidates(thread_id, [message])
                self.ctx.notifications.publish(
                    NotificationType.MESSAGE_RECEIVED,
                    MessageReceived(message=message, own=message.sender_id == self.ctx.user_id),
                )

        self._invalidate(
            thread_key(thread_id, kind),
            partial(store.invalidate, thread_id),
            lambda: message_service.fetch_messages(self.ctx, thread_id, kind=kind),
        )

    def _invalidate(
        self,
        key: str,
        mark_stale: Callable[[], Any],
        refetch: Callable[[], Awaitable[Any]],
    ) -> None:
        self.ctx.cache.invalidate(key)
        mark_stale()
        if key not in self._observed:
            logger.debug("Deferring refresh of unobserved %s", key)
            return
        task = asyncio.create_task(self._refetch(key, refetch), name=f"refetch-{key}")
        self._refetches.add(task)
        task.add_done_callback(self._refetches.discard)

    async def _refetch(self, key: str, refetch: Callable[[], Awaitable[Any]]) -> None:
        try:
            await refetch()
        except Exception as exc:
            error = as_sync_error(exc)
            logger.warning("Realtime refetch of %s failed (%s): %s", key, error.reason, error.detail)

    # -- helpers ------------------------------------------------------------

    async def _subscribe(
        self,
        name: str,
        callback: Callable[[RealtimeEvent], Awaitable[None]],
    ) -> bool:
        try:
            handle = await self.ctx.realtime.subscribe(name, callback)
        except Exception:
            logger.exception("Subscription to %s failed; channel left unregistered", name)
            return False
        await self.ctx.channels.register_channel(name, handle)
        return True

    def _loader(self, key: str, operation: Callable[[], Awaitable[T]]) -> RetryController[T]:
        loader = self._loaders.get(key)
        if loader is None:
            loader = RetryController(
                operation,
                name=key,
                base_delay=self.ctx.settings.RETRY_BASE_DELAY_SECONDS,
                max_attempts=self.ctx.settings.RETRY_MAX_ATTEMPTS,
                sleep=self._sleep,
            )
            self._loaders[key] = loader
        return loader

    @staticmethod
    async def _guard(operation: Awaitable[T]) -> T:
        try:
            return await operation
        except Exception as exc:
            error = as_sync_error(exc)
            if error is exc:
                raise
            raise error from exc


def _record_thread(event: RealtimeEvent) -> tuple[UUID, ThreadKind] | None:
    """Thread a row change belongs to.

    Message rows name their conversation or their order; any other row names
    its conversation, or is the conversation itself.
    """
    record = event.record
    if event.table == "messages":
        candidates = (
            (record.get("conversation_id"), ThreadKind.CONVERSATION),
            (record.get("order_id"), ThreadKind.ORDER),
        )
    elif event.table == "conversations":
        candidates = ((record.get("id"), ThreadKind.CONVERSATION),)
    else:
        candidates = ((record.get("conversation_id"), ThreadKind.CONVERSATION),)
    for raw, kind in candidates:
        if raw is None:
            continue
        try:
            return UUID(str(raw)), kind
        except ValueError:
            return None
    return None
