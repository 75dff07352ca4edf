"""
Tests for the in-memory lookup cache.
"""

import pytest

from oncosafe.core.cache import TTLCache


def test_entries_expire(clock):
    """Entries are not returned once their TTL has passed."""
    cache = TTLCache(max_entries=10, ttl=30, clock=clock)
    cache.set("warfarin", "11289")

    clock.advance(29)
    assert cache.get("warfarin") == "11289"

    clock.advance(2)
    assert cache.get("warfarin") is None
    assert len(cache) == 0


def test_per_entry_ttl_override(clock):
    cache = TTLCache(max_entries=10, ttl=30, clock=clock)
    cache.set("short", 1, ttl=5)
    cache.set("long", 2)

    clock.advance(10)

    assert cache.get("short") is None
    assert cache.get("long") == 2


def test_least_recently_used_entry_is_evicted(clock):
    """The cache never grows past max_entries."""
    cache = TTLCache(max_entries=2, ttl=60, clock=clock)
    cache.set("a", 1)
    cache.set("b", 2)
    cache.get("a")
    cache.set("c", 3)

    assert len(cache) == 2
    assert cache.get("b") is None
    assert cache.get("a") == 1
    assert cache.get("c") == 3


def test_purge_expired(clock):
    cache = TTLCache(max_entries=10, ttl=10, clock=clock)
    cache.set("a", 1)
    cache.set("b", 2, ttl=100)

    clock.advance(20)

    assert cache.purge_expired() == 1
    assert len(cache) == 1


def test_stats_track_hits_and_misses(clock):
    cache = TTLCache(max_entries=10, ttl=10, clock=clock)
    cache.set("a", 1)
    cache.get("a")
    cache.get("missing")

    stats = cache.stats()

    assert stats["hits"] == 1
    assert stats["misses"] == 1
    assert stats["entries"] == 1


def test_invalid_configuration():
    with pytest.raises(ValueError):
        TTLCache(max_entries=0)
    with pytest.raises(ValueError):
        TTLCache(ttl=0)
