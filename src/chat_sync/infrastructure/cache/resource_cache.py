"""In-process TTL cache with advisory priorities."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from chat_sync.application.ports.clock import Clock, SystemClock
from chat_sync.domain.value_objects.enums import RequestPriority

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CacheEntry:
    key: str
    value: Any
    expires_at: datetime
    priority: RequestPriority


class ResourceCache:
    """Key/value store where every entry expires.

    Lookups never raise: a miss and an expired entry both return None.
    Priority is only consulted by the eviction hook when ``max_entries`` is set.
    """

    def __init__(
        self,
        *,
        default_ttl: float = 60.0,
        max_entries: int | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._entries: dict[str, CacheEntry] = {}
        self._default_ttl = default_ttl
        self._max_entries = max_entries
        self._clock = clock or SystemClock()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at <= self._clock.now():
            del self._entries[key]
            return None
        return entry.value

    def get_entry(self, key: str) -> CacheEntry | None:
        if self.get(key) is None:
            return None
        return self._entries[key]

    def set(
        self,
        key: str,
        value: Any,
        *,
        ttl: float | None = None,
        priority: RequestPriority = RequestPriority.MEDIUM,
    ) -> None:
        seconds = self._default_ttl if ttl is None else ttl
        self._entries[key] = CacheEntry(
            key=key,
            value=value,
            expires_at=self._clock.now() + timedelta(seconds=seconds),
            priority=priority,
        )
        self._evict_if_needed()

    def invalidate(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def invalidate_prefix(self, prefix: str) -> int:
        keys = [k for k in self._entries if k.startswith(prefix)]
        for k in keys:
            del self._entries[k]
        if keys:
            logger.debug("Invalidated %d cache keys with prefix %s", len(keys), prefix)
        return len(keys)

    def clear(self) -> None:
        self._entries.clear()

    def _evict_if_needed(self) -> None:
        if self._max_entries is None or len(self._entries) <= self._max_entries:
            return
        now = self._clock.now()
        for key in [k for k, e in self._entries.items() if e.expires_at <= now]:
            del self._entries[key]
        overflow = len(self._entries) - self._max_entries
        if overflow <= 0:
            return
        # LOW has the largest value: evict it first, soonest expiry first.
        victims = sorted(
            self._entries.values(),
            key=lambda e: (-e.priority, e.expires_at),
        )[:overflow]
        for entry in victims:
            del self._entries[entry.key]
        logger.debug("Evicted %d cache entries over capacity", len(victims))
