from __future__ import annotations

from typing import Any, Callable, Coroutine, Protocol

from chat_sync.application.dto.events import RealtimeEvent

OnRealtimeEvent = Callable[[RealtimeEvent], Coroutine[Any, Any, None]]


class ChannelHandle(Protocol):
    topic: str

    async def unsubscribe(self) -> None: ...


class RealtimeTransport(Protocol):
    """Insert/update stream with at-least-once delivery and no ordering."""

    async def subscribe(self, topic: str, callback: OnRealtimeEvent) -> ChannelHandle: ...

    async def publish(self, topic: str, event: RealtimeEvent) -> None: ...
