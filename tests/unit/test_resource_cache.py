from __future__ import annotations

from chat_sync.domain.value_objects.enums import RequestPriority
from chat_sync.infrastructure.cache.keys import conversations_key, messages_key
from chat_sync.infrastructure.cache.resource_cache import ResourceCache
from tests.conftest import FakeClock


def test_get_returns_value_until_ttl_expires():
    clock = FakeClock()
    cache = ResourceCache(default_ttl=60, clock=clock)

    cache.set("k", [1, 2])
    clock.advance(59)
    assert cache.get("k") == [1, 2]

    clock.advance(1)
    assert cache.get("k") is None
    assert len(cache) == 0


def test_explicit_ttl_overrides_default():
    clock = FakeClock()
    cache = ResourceCache(default_ttl=60, clock=clock)

    cache.set("k", "v", ttl=5)
    clock.advance(6)

    assert cache.get("k") is None


def test_invalidate_then_get_misses():
    cache = ResourceCache(clock=FakeClock())
    cache.set("k", "v")

    assert cache.invalidate("k") is True
    assert cache.get("k") is None
    assert cache.invalidate("k") is False


def test_missing_key_returns_none():
    cache = ResourceCache(clock=FakeClock())
    assert cache.get("nope") is None
    assert cache.get_entry("nope") is None
    assert "nope" not in cache


def test_invalidate_prefix_only_drops_matching_family(user_id, other_id):
    cache = ResourceCache(clock=FakeClock())
    cache.set(messages_key(user_id), [])
    cache.set(messages_key(other_id), [])
    cache.set(conversations_key(user_id), [])

    assert cache.invalidate_prefix("messages:") == 2
    assert conversations_key(user_id) in cache
    assert len(cache) == 1


def test_eviction_prefers_low_priority_entries():
    cache = ResourceCache(max_entries=2, clock=FakeClock())
    cache.set("low", 1, priority=RequestPriority.LOW)
    cache.set("high", 2, priority=RequestPriority.HIGH)
    cache.set("medium", 3, priority=RequestPriority.MEDIUM)

    assert cache.get("low") is None
    assert cache.get("high") == 2
    assert cache.get("medium") == 3


def test_eviction_drops_expired_entries_first():
    clock = FakeClock()
    cache = ResourceCache(max_entries=2, clock=clock)
    cache.set("old", 1, ttl=1, priority=RequestPriority.HIGH)
    cache.set("low", 2, priority=RequestPriority.LOW)
    clock.advance(2)
    cache.set("new", 3)

    assert cache.get("low") == 2
    assert cache.get("new") == 3


def test_get_entry_exposes_priority_and_expiry():
    clock = FakeClock()
    cache = ResourceCache(default_ttl=10, clock=clock)
    cache.set("k", "v", priority=RequestPriority.HIGH)

    entry = cache.get_entry("k")

    assert entry is not None
    assert entry.priority == RequestPriority.HIGH
    assert (entry.expires_at - clock.now()).total_seconds() == 10
