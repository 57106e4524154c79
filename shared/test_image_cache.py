"""Tests for the in-memory image cache."""

import pytest

from shared.image_cache import KeyedBlobCache, bucket_item_photo_key, event_photo_key


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return KeyedBlobCache(capacity=3, ttl_seconds=100, clock=clock)


def test_put_and_get(cache):
    cache.put("a", b"payload-a")

    assert cache.get("a") == b"payload-a"
    assert cache.get("missing") is None


def test_size_never_exceeds_capacity(cache, clock):
    for i in range(10):
        clock.now = i
        cache.put(f"key-{i}", b"x")
        assert len(cache) <= cache.capacity

    assert len(cache) == 3


def test_evicts_entry_with_oldest_access_time(cache, clock):
    clock.now = 1
    cache.put("a", b"a")
    clock.now = 2
    cache.put("b", b"b")
    clock.now = 3
    cache.put("c", b"c")

    # Touch "a" so "b" becomes the least recently accessed
    clock.now = 4
    assert cache.get("a") == b"a"

    clock.now = 5
    cache.put("d", b"d")

    assert "b" not in cache
    assert "a" in cache
    assert "c" in cache
    assert "d" in cache


def test_overwrite_at_capacity_does_not_evict(cache, clock):
    cache.put("a", b"a")
    cache.put("b", b"b")
    cache.put("c", b"c")

    clock.now = 10
    cache.put("a", b"a2")

    assert len(cache) == 3
    assert cache.get("a") == b"a2"
    assert cache.get("b") == b"b"


def test_expired_entry_is_evicted_on_read(cache, clock):
    cache.put("a", b"a")

    clock.now = 101
    assert cache.get("a") is None
    assert "a" not in cache
    assert cache.get("a") is None


def test_entry_at_exact_ttl_is_still_valid(cache, clock):
    cache.put("a", b"a")

    clock.now = 100
    assert cache.get("a") == b"a"


def test_get_refreshes_access_time(cache, clock):
    cache.put("a", b"a")

    clock.now = 80
    assert cache.get("a") == b"a"

    clock.now = 160
    assert cache.get("a") == b"a"


def test_capacity_two_scenario(clock):
    """Capacity 2: the third put evicts the first, and a hit refreshes access time."""
    cache = KeyedBlobCache(capacity=2, ttl_seconds=1000, clock=clock)

    clock.now = 0
    cache.put("A", b"payload-a")
    clock.now = 1
    cache.put("B", b"payload-b")
    clock.now = 2
    cache.put("C", b"payload-c")

    assert "A" not in cache
    assert len(cache) == 2

    clock.now = 3
    assert cache.get("B") == b"payload-b"
    assert cache._last_access["B"] == 3

    # C (accessed at t2) is now older than B (t3)
    clock.now = 4
    cache.put("D", b"payload-d")
    assert "C" not in cache
    assert "B" in cache


def test_remove_and_clear_are_idempotent(cache):
    cache.put("a", b"a")
    cache.put("b", b"b")

    cache.remove("a")
    cache.remove("a")
    assert "a" not in cache

    cache.clear()
    cache.clear()
    assert len(cache) == 0


def test_purge_expired(cache, clock):
    cache.put("old", b"1")
    clock.now = 50
    cache.put("new", b"2")

    clock.now = 120
    removed = cache.purge_expired()

    assert removed == 1
    assert "old" not in cache
    assert "new" in cache


def test_stats(cache):
    cache.put("a", b"12345")
    cache.put("b", b"123")

    stats = cache.stats
    assert stats["count"] == 2
    assert stats["bytes"] == 8
    assert stats["memory_usage"] == "8 bytes"


def test_invalid_capacity():
    with pytest.raises(ValueError):
        KeyedBlobCache(capacity=0)


def test_key_derivation_is_deterministic():
    assert event_photo_key("e1", "events/e1/photo_1.jpg") == event_photo_key("e1", "events/e1/photo_1.jpg")
    assert event_photo_key("e1", "a.jpg") != event_photo_key("e1", "b.jpg")
    assert event_photo_key("e1", "a.jpg") != event_photo_key("e2", "a.jpg")


@pytest.mark.parametrize("entity_id", ["x", "bucket", "event:x", "bucket:x", ""])
def test_event_and_bucket_namespaces_never_collide(entity_id):
    ref = "shared/photo.jpg"
    for other_id in ["x", "bucket", "event:x", "bucket:x", ""]:
        assert event_photo_key(entity_id, ref) != bucket_item_photo_key(other_id, ref)
