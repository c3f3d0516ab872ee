"""In-process publish/subscribe for UI-facing notifications."""
from __future__ import annotations

import logging
from typing import Any, Callable

from chat_sync.application.ports.bus import NotificationCallback
from chat_sync.domain.value_objects.enums import NotificationType

logger = logging.getLogger(__name__)


class NotificationHub:
    """Implements application.ports.bus.NotificationBus.

    Callbacks run synchronously in subscription order. A failing callback
    is logged and does not affect the others.
    """

    def __init__(self) -> None:
        self._subscribers: dict[NotificationType, list[NotificationCallback]] = {}

    def subscribe(
        self,
        event: NotificationType,
        callback: NotificationCallback,
    ) -> Callable[[], None]:
        self._subscribers.setdefault(event, []).append(callback)

        def _unsubscribe() -> None:
            callbacks = self._subscribers.get(event)
            if callbacks and callback in callbacks:
                callbacks.remove(callback)

        return _unsubscribe

    def publish(self, event: NotificationType, payload: Any) -> None:
        for callback in list(self._subscribers.get(event, ())):
            try:
                callback(payload)
            except Exception:
                logger.exception("Notification handler failed for %s", event)

    def clear(self) -> None:
        self._subscribers.clear()
