"""Production wiring: Redis realtime transport and Postgres gateway."""
from __future__ import annotations

import logging
from uuid import UUID

import redis.asyncio as aioredis

from chat_sync.application.ports.moderation import ContentValidator
from chat_sync.application.ports.storage import FileStorage
from chat_sync.config import Settings, settings as default_settings
from chat_sync.infrastructure.db.gateway import SqlAlchemyChatGateway
from chat_sync.infrastructure.db.session import create_engine, create_session_factory
from chat_sync.infrastructure.realtime.redis_transport import RedisRealtimeTransport
from chat_sync.services.context import SyncContext
from chat_sync.services.sync_orchestrator import SyncOrchestrator
from chat_sync.workers.stale_refresher import StaleRefresher

logger = logging.getLogger(__name__)


async def create_orchestrator(
    user_id: UUID,
    *,
    settings: Settings | None = None,
    storage: FileStorage | None = None,
    validator: ContentValidator | None = None,
    refresh: bool = True,
) -> SyncOrchestrator:
    """Build an orchestrator for one session.

    Its ``aclose`` also stops the stale refresher, disposes of the engine
    and closes the Redis client.
    """
    settings = settings or default_settings
    redis = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
    engine = create_engine(settings)
    gateway = SqlAlchemyChatGateway(create_session_factory(engine))

    ctx = SyncContext(
        user_id,
        gateway,
        RedisRealtimeTransport(redis, prefix=settings.REALTIME_TOPIC_PREFIX),
        storage=storage,
        validator=validator,
        settings=settings,
    )
    orchestrator = SyncOrchestrator(ctx)

    async def _close_redis() -> None:
        await redis.aclose()

    orchestrator.add_cleanup(_close_redis)
    orchestrator.add_cleanup(engine.dispose)

    if refresh:
        refresher = StaleRefresher(orchestrator, interval=settings.REFRESH_INTERVAL_SECONDS)
        refresher.start()
        orchestrator.add_cleanup(refresher.stop)

    logger.info("Sync orchestrator created for user %s", user_id)
    return orchestrator
