"""Session-scoped context shared by the sync services."""
from __future__ import annotations

import logging
from uuid import UUID

from chat_sync.application.ports.clock import Clock, SystemClock
from chat_sync.application.ports.moderation import ContentValidator, PassthroughValidator
from chat_sync.application.ports.persistence import ChatGateway
from chat_sync.application.ports.realtime import RealtimeTransport
from chat_sync.application.ports.storage import FileStorage
from chat_sync.config import Settings, settings as default_settings
from chat_sync.infrastructure.cache.resource_cache import ResourceCache
from chat_sync.infrastructure.coordination.request_coordinator import RequestCoordinator
from chat_sync.infrastructure.realtime.channel_registry import ChannelRegistry
from chat_sync.services.conversation_store import ConversationStore
from chat_sync.services.notifications import NotificationHub
from chat_sync.services.read_state_service import ReadStateReconciler

logger = logging.getLogger(__name__)


class SyncContext:
    """Everything one signed-in session shares: state, cache, coordination, ports.

    Built once per session and handed to the service functions the way a
    unit of work is; nothing here is process-global.
    """

    def __init__(
        self,
        user_id: UUID,
        gateway: ChatGateway,
        realtime: RealtimeTransport,
        *,
        storage: FileStorage | None = None,
        validator: ContentValidator | None = None,
        settings: Settings | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.user_id = user_id
        self.settings = settings or default_settings
        self.clock = clock or SystemClock()
        self.gateway = gateway
        self.realtime = realtime
        self.storage = storage
        self.validator = validator or PassthroughValidator()

        self.cache = ResourceCache(
            default_ttl=self.settings.MESSAGES_TTL_SECONDS,
            max_entries=self.settings.CACHE_MAX_ENTRIES,
            clock=self.clock,
        )
        self.coordinator = RequestCoordinator(
            max_concurrency=self.settings.COORDINATOR_MAX_CONCURRENCY,
            clock=self.clock,
        )
        self.channels = ChannelRegistry()
        self.store = ConversationStore(user_id)
        self.notifications = NotificationHub()
        self.reconciler = ReadStateReconciler(
            self.store,
            gateway,
            self.notifications,
            settle_seconds=self.settings.READ_SETTLE_SECONDS,
        )
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.reconciler.cancel_all()
        self.coordinator.cancel_queued()
        await self.channels.remove_all_channels()
        self.cache.clear()
        self.notifications.clear()
        logger.info("Sync context closed for user %s", self.user_id)
