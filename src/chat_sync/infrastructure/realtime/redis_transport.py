"""Realtime transport over Redis Pub/Sub, one listener task per topic."""
from __future__ import annotations

import asyncio
import logging

import redis.asyncio as aioredis

from chat_sync.application.dto.events import RealtimeEvent
from chat_sync.application.ports.realtime import OnRealtimeEvent
from chat_sync.infrastructure.realtime.serializer import deserialize_event, serialize_event

logger = logging.getLogger(__name__)


class RedisChannelSubscription:
    """Background task that listens to one Redis channel and dispatches events.

    Implements application.ports.realtime.ChannelHandle.
    """

    def __init__(
        self,
        redis: aioredis.Redis,
        topic: str,
        callback: OnRealtimeEvent,
    ) -> None:
        self._redis = redis
        self.topic = topic
        self._callback = callback
        self._pubsub = redis.pubsub()
        self._task: asyncio.Task[None] | None = None

    async def start(self) -> None:
        # Subscribe before returning so no event published afterwards is missed.
        await self._pubsub.subscribe(self.topic)
        self._task = asyncio.create_task(self._listen(), name=f"realtime-{self.topic}")
        logger.info("Realtime subscription started on topic=%s", self.topic)

    async def unsubscribe(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        try:
            await self._pubsub.unsubscribe(self.topic)
        finally:
            await self._pubsub.aclose()
        logger.info("Realtime subscription stopped on topic=%s", self.topic)

    async def _listen(self) -> None:
        async for message in self._pubsub.listen():
            if message["type"] != "message":
                continue
            try:
                event = deserialize_event(message["data"])
                await self._callback(event)
            except Exception:
                logger.exception("Error processing realtime message on %s", self.topic)


class RedisRealtimeTransport:
    """Implements application.ports.realtime.RealtimeTransport."""

    def __init__(self, redis: aioredis.Redis, *, prefix: str = "chat.realtime") -> None:
        self._redis = redis
        self._prefix = prefix

    def _channel(self, topic: str) -> str:
        return f"{self._prefix}.{topic}"

    async def subscribe(self, topic: str, callback: OnRealtimeEvent) -> RedisChannelSubscription:
        subscription = RedisChannelSubscription(self._redis, self._channel(topic), callback)
        await subscription.start()
        return subscription

    async def publish(self, topic: str, event: RealtimeEvent) -> None:
        await self._redis.publish(self._channel(topic), serialize_event(event))
