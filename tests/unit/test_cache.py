"""
Unit tests for the in-process TTL cache.
"""
from invoicing_api.utils.cache import SimpleCache


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestSimpleCache:
    """Tests for SimpleCache."""

    def test_hit_and_miss_counters(self):
        cache = SimpleCache(clock=FakeClock())
        cache.set("customer:1:Acme", "58")

        assert cache.get("customer:1:Acme") == "58"
        assert cache.get("customer:1:Globex") is None
        assert (cache.hits, cache.misses) == (1, 1)

    def test_entries_expire(self):
        clock = FakeClock()
        cache = SimpleCache(clock=clock)
        cache.set("key", "value", ttl_seconds=300)

        clock.now += 299
        assert cache.get("key") == "value"
        clock.now += 1
        assert cache.get("key") is None

    def test_delete(self):
        cache = SimpleCache(clock=FakeClock())
        cache.set("key", "value")

        cache.delete("key")
        cache.delete("missing")

        assert cache.get("key") is None

    def test_cleanup_expired(self):
        clock = FakeClock()
        cache = SimpleCache(clock=clock)
        cache.set("short", 1, ttl_seconds=10)
        cache.set("long", 2, ttl_seconds=600)

        clock.now += 60

        assert cache.cleanup_expired() == 1
        assert cache.get("long") == 2
