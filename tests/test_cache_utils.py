"""Tests for utils/cache.py: the TTL cache behind the rollup endpoints."""
from utils.cache import TTLCache


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestTTLCache:
    def test_basic_set_get(self):
        cache = TTLCache()
        cache.set("key", "value")
        assert cache.get("key") == "value"

    def test_miss_returns_none(self):
        cache = TTLCache()
        assert cache.get("nonexistent") is None

    def test_ttl_expiry(self):
        clock = FakeClock()
        cache = TTLCache(ttl_seconds=60, clock=clock)
        cache.set("key", "value")
        clock.now += 59
        assert cache.get("key") == "value"
        clock.now += 2
        assert cache.get("key") is None

    def test_clear(self):
        cache = TTLCache()
        cache.set("k1", "v1")
        cache.set("k2", "v2")
        cache.clear()
        assert cache.get("k1") is None
        assert cache.get("k2") is None
        assert cache.generation == 1

    def test_stats_tracks_hits_misses(self):
        cache = TTLCache()
        cache.set("k", "v")
        cache.get("k")
        cache.get("nope")
        stats = cache.stats()
        assert stats["hits"] == 1
        assert stats["misses"] == 1

    def test_stats_size_drops_expired(self):
        clock = FakeClock()
        cache = TTLCache(ttl_seconds=10, clock=clock)
        cache.set("a", 1)
        clock.now += 5
        cache.set("b", 2)
        assert cache.stats()["size"] == 2
        clock.now += 6
        assert cache.stats()["size"] == 1

    def test_evicts_least_recently_used(self):
        cache = TTLCache(maxsize=2)
        cache.set("k1", "v1")
        cache.set("k2", "v2")
        cache.get("k1")
        cache.set("k3", "v3")
        assert cache.get("k2") is None
        assert cache.get("k1") == "v1"
        assert cache.get("k3") == "v3"

    def test_overwrite_existing(self):
        cache = TTLCache(maxsize=2)
        cache.set("k", "old")
        cache.set("k", "new")
        assert cache.get("k") == "new"
        assert cache.stats()["size"] == 1

    def test_delete(self):
        cache = TTLCache()
        cache.set("k", "v")
        cache.delete("k")
        cache.delete("missing")
        assert cache.get("k") is None

    def test_tuple_keys(self):
        cache = TTLCache()
        cache.set(("funders", "2025-10-01"), [1, 2])
        assert cache.get(("funders", "2025-10-01")) == [1, 2]
        assert cache.get(("funders", None)) is None

    def test_ttl_seconds_property(self):
        assert TTLCache(ttl_seconds=12).ttl_seconds == 12


class TestGetOrCompute:
    def test_computes_once(self):
        cache = TTLCache()
        calls = []

        def compute():
            calls.append(1)
            return {"total": 10}

        assert cache.get_or_compute("k", compute) == {"total": 10}
        assert cache.get_or_compute("k", compute) == {"total": 10}
        assert len(calls) == 1

    def test_recomputes_after_clear(self):
        cache = TTLCache()
        values = iter([1, 2])
        assert cache.get_or_compute("k", lambda: next(values)) == 1
        cache.clear()
        assert cache.get_or_compute("k", lambda: next(values)) == 2

    def test_result_discarded_when_cleared_during_compute(self):
        cache = TTLCache()

        def compute():
            cache.clear()
            return "stale"

        assert cache.get_or_compute("k", compute) == "stale"
        assert cache.get("k") is None
        assert cache.get_or_compute("k", lambda: "fresh") == "fresh"
        assert cache.get("k") == "fresh"
