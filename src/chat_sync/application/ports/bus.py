from __future__ import annotations

from typing import Any, Callable, Protocol

from chat_sync.domain.value_objects.enums import NotificationType

NotificationCallback = Callable[[Any], None]


class NotificationBus(Protocol):
    def publish(self, event: NotificationType, payload: Any) -> None: ...

    def subscribe(
        self, event: NotificationType, callback: NotificationCallback,
    ) -> Callable[[], None]: ...
