"""Registry of live realtime subscriptions, one per (purpose, resource)."""
from __future__ import annotations

import logging
from uuid import UUID

from chat_sync.application.ports.realtime import ChannelHandle
from chat_sync.domain.value_objects.enums import ChannelPurpose, ThreadKind

logger = logging.getLogger(__name__)


def channel_name(purpose: ChannelPurpose, resource_id: UUID | str) -> str:
    return f"{purpose}:{resource_id}"


def thread_channel_name(thread_id: UUID, kind: ThreadKind = ThreadKind.CONVERSATION) -> str:
    purpose = (
        ChannelPurpose.ORDER_MESSAGES if kind == ThreadKind.ORDER
        else ChannelPurpose.CONVERSATION_MESSAGES
    )
    return channel_name(purpose, thread_id)


class ChannelRegistry:
    """Tracks channel handles by name. Cleanup is best-effort and never raises."""

    def __init__(self) -> None:
        self._channels: dict[str, ChannelHandle] = {}

    def __contains__(self, name: str) -> bool:
        return name in self._channels

    def __len__(self) -> int:
        return len(self._channels)

    def names(self) -> list[str]:
        return list(self._channels)

    def get(self, name: str) -> ChannelHandle | None:
        return self._channels.get(name)

    async def register_channel(self, name: str, handle: ChannelHandle) -> ChannelHandle:
        previous = self._channels.get(name)
        self._channels[name] = handle
        if previous is not None and previous is not handle:
            logger.debug("Replacing channel %s", name)
            await self._unsubscribe(name, previous)
        logger.debug("Channel registered: %s", name)
        return handle

    async def remove_channel(self, name: str) -> bool:
        handle = self._channels.pop(name, None)
        if handle is None:
            return False
        await self._unsubscribe(name, handle)
        logger.debug("Channel removed: %s", name)
        return True

    async def remove_all_channels(self) -> int:
        channels = list(self._channels.items())
        self._channels.clear()
        logger.info("Removing %d active channels", len(channels))
        for name, handle in channels:
            await self._unsubscribe(name, handle)
        return len(channels)

    async def _unsubscribe(self, name: str, handle: ChannelHandle) -> None:
        try:
            await handle.unsubscribe()
        except Exception:
            logger.exception("Error unsubscribing channel %s", name)
