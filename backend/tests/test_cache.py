# tests/test_cache.py — TTL cache contract
from datetime import timedelta

import pytest

from cache import TaskCache, task_cache_key


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return TaskCache(default_ttl=timedelta(minutes=5), clock=clock)


def test_get_after_set_returns_value(cache):
    cache.set("task:1", {"id": "1"}, ttl=timedelta(seconds=30))
    assert cache.get("task:1") == {"id": "1"}


def test_get_missing_key_is_none(cache):
    assert cache.get("task:nope") is None


def test_entry_expires_after_ttl(cache, clock):
    cache.set("task:1", {"id": "1"}, ttl=timedelta(seconds=30))
    clock.advance(29)
    assert cache.get("task:1") is not None
    clock.advance(1)
    assert cache.get("task:1") is None
    # Expired entries are evicted, not kept around
    assert len(cache) == 0


def test_default_ttl_applies_when_not_given(cache, clock):
    cache.set("task:1", "v")
    clock.advance(299)
    assert cache.get("task:1") == "v"
    clock.advance(1)
    assert cache.get("task:1") is None


def test_set_replaces_value_and_expiry(cache, clock):
    cache.set("task:1", "old", ttl=timedelta(seconds=10))
    clock.advance(8)
    cache.set("task:1", "new", ttl=timedelta(seconds=10))
    clock.advance(8)
    assert cache.get("task:1") == "new"
    assert len(cache) == 1


def test_remove_evicts_and_ignores_missing(cache):
    cache.set("task:1", "v")
    cache.remove("task:1")
    assert cache.get("task:1") is None
    cache.remove("task:never-set")


def test_purge_expired(cache, clock):
    cache.set("a", 1, ttl=timedelta(seconds=5))
    cache.set("b", 2, ttl=timedelta(seconds=50))
    clock.advance(10)
    assert cache.purge_expired() == 1
    assert cache.get("b") == 2


def test_non_positive_default_ttl_rejected():
    with pytest.raises(ValueError):
        TaskCache(default_ttl=timedelta(0))


def test_task_cache_key():
    assert task_cache_key("abc") == "task:abc"


def test_stats_counts_only_live_entries(cache, clock):
    cache.set("a", 1, ttl=timedelta(seconds=5))
    cache.set("b", 2)
    clock.advance(10)
    assert cache.stats() == {"entries": 1, "default_ttl_seconds": 300.0}
    assert len(cache) == 1
