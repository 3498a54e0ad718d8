"""Tests for the cache module: key building, memoisation, invalidation and expiry."""

from __future__ import annotations

import threading
import time

import pytest

from fragscore.core.config import CacheConfig
from fragscore.infra.cache import (
    CacheStats,
    MatchScopedCache,
    build_cache_key,
    compute_filter_hash,
)


class Producer:
    """Callable that counts invocations."""

    def __init__(self, value="result"):
        self.value = value
        self.calls = 0

    def __call__(self):
        self.calls += 1
        return self.value


class TestCacheKeys:
    """Deterministic keys from a name and a filter map."""

    def test_order_independent(self):
        assert build_cache_key("x", {"a": 1, "b": 2}) == build_cache_key("x", {"b": 2, "a": 1})

    def test_empty_filters_use_default_sentinel(self):
        assert build_cache_key("x", {}) == "x_default"
        assert build_cache_key("x") == "x_default"
        assert build_cache_key("x", None) == "x_default"

    def test_different_filters_differ(self):
        assert build_cache_key("x", {"map": "de_dust2"}) != build_cache_key("x", {"map": "de_inferno"})

    def test_different_names_differ(self):
        assert build_cache_key("x", {"a": 1}) != build_cache_key("y", {"a": 1})

    def test_key_shape(self):
        key = build_cache_key("aim-tracking", {"map": "de_mirage"})
        name, digest = key.split("_", 1)
        assert name == "aim-tracking"
        assert len(digest) == 32
        assert digest == compute_filter_hash({"map": "de_mirage"})

    def test_empty_name_rejected(self):
        with pytest.raises(ValueError):
            build_cache_key("", {"a": 1})


class TestRemember:
    """Compute once, serve many."""

    def test_producer_called_once(self):
        cache = MatchScopedCache()
        producer = Producer()
        for _ in range(5):
            assert cache.remember("k", 1, producer) == "result"
        assert producer.calls == 1

    def test_scopes_are_independent(self):
        cache = MatchScopedCache()
        producer = Producer()
        cache.remember("k", 1, producer)
        cache.remember("k", 2, producer)
        cache.remember("other", 1, producer)
        assert producer.calls == 3

    def test_recomputes_after_match_invalidation(self):
        cache = MatchScopedCache()
        producer = Producer()
        cache.remember("k", 1, producer)
        cache.remember("j", 1, producer)
        cache.remember("k", 2, producer)

        assert cache.invalidate_match(1) == 2
        cache.remember("k", 1, producer)
        cache.remember("k", 2, producer)
        assert producer.calls == 4

    def test_single_key_invalidation(self):
        cache = MatchScopedCache()
        cache.put("k", 1, "v")
        assert cache.invalidate(1, "k") is True
        assert cache.invalidate(1, "k") is False
        assert cache.get("k", 1) is None

    def test_disabled_cache_always_calls_producer(self):
        cache = MatchScopedCache(enabled=False)
        producer = Producer()
        cache.remember("k", 1, producer)
        cache.remember("k", 1, producer)
        assert producer.calls == 2
        assert cache.get_stats().total_entries == 0

    def test_disabled_cache_skips_storage(self):
        cache = MatchScopedCache(enabled=False)
        cache.put("k", 1, "v")
        assert cache.get("k", 1) is None
        assert not cache.has("k", 1)

    def test_producer_exception_not_cached(self):
        cache = MatchScopedCache()
        attempts = []

        def failing():
            attempts.append(1)
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError, match="boom"):
            cache.remember("k", 1, failing)
        assert not cache.has("k", 1)

        assert cache.remember("k", 1, Producer("ok")) == "ok"
        assert len(attempts) == 1

    def test_none_result_is_cached(self):
        cache = MatchScopedCache()
        producer = Producer(value=None)
        cache.remember("k", 1, producer)
        cache.remember("k", 1, producer)
        assert producer.calls == 1

    def test_concurrent_misses_coalesce(self):
        cache = MatchScopedCache()
        calls = []
        gate = threading.Event()

        def slow():
            calls.append(1)
            gate.wait(1)
            return "slow"

        results = []
        threads = [
            threading.Thread(target=lambda: results.append(cache.remember("k", 1, slow)))
            for _ in range(4)
        ]
        for t in threads:
            t.start()
        time.sleep(0.05)
        gate.set()
        for t in threads:
            t.join()

        assert results == ["slow"] * 4
        assert len(calls) == 1


class TestInvalidationRaces:
    """An invalidation landing while a producer runs wins over its result."""

    def run_blocked(self, cache, invalidate):
        started = threading.Event()
        release = threading.Event()

        def stale():
            started.set()
            release.wait(1)
            return "stale"

        results = []
        worker = threading.Thread(target=lambda: results.append(cache.remember("k", 1, stale)))
        worker.start()
        assert started.wait(1)
        invalidate()
        release.set()
        worker.join()
        return results

    def test_match_invalidation_discards_result(self):
        cache = MatchScopedCache()
        results = self.run_blocked(cache, lambda: cache.invalidate_match(1))

        # The caller still gets its own value
        assert results == ["stale"]
        assert not cache.has("k", 1)
        assert cache.remember("k", 1, lambda: "fresh") == "fresh"

    def test_key_invalidation_discards_result(self):
        cache = MatchScopedCache()
        self.run_blocked(cache, lambda: cache.invalidate(1, "k"))
        assert cache.remember("k", 1, lambda: "fresh") == "fresh"

    def test_clear_discards_result(self):
        cache = MatchScopedCache()
        self.run_blocked(cache, cache.clear)
        assert cache.get("k", 1) is None

    def test_other_match_invalidation_keeps_result(self):
        cache = MatchScopedCache()
        self.run_blocked(cache, lambda: cache.invalidate_match(2))
        assert cache.get("k", 1) == "stale"


class TestPayloadIsolation:
    """Callers never share the stored payload."""

    def test_mutating_remembered_value(self):
        cache = MatchScopedCache()
        first = cache.remember("k", 1, lambda: {"fragger": 60, "slots": [1, 2]})
        first["fragger"] = 0
        first["slots"].append(3)

        assert cache.remember("k", 1, Producer()) == {"fragger": 60, "slots": [1, 2]}

    def test_mutating_get_result(self):
        cache = MatchScopedCache()
        cache.put("k", 1, {"fragger": 60})
        cache.get("k", 1)["fragger"] = 0
        assert cache.get("k", 1) == {"fragger": 60}

    def test_mutating_put_argument(self):
        cache = MatchScopedCache()
        value = {"fragger": 60}
        cache.put("k", 1, value)
        value["fragger"] = 0
        assert cache.get("k", 1) == {"fragger": 60}


class TestHousekeeping:
    """Locks and expired entries do not accumulate."""

    def test_locks_released_after_compute(self):
        cache = MatchScopedCache()
        for i in range(1000):
            cache.remember(f"k{i}", i % 7, Producer())
        assert cache.in_flight() == 0
        assert cache.get_stats().total_entries == 1000

    def test_locks_released_after_failure(self):
        cache = MatchScopedCache()

        def failing():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            cache.remember("k", 1, failing)
        assert cache.in_flight() == 0

    def test_store_sweeps_expired_entries(self, clock):
        cache = MatchScopedCache(ttl_seconds=10, clock=clock)
        for i in range(5):
            cache.put(f"k{i}", 1, i)

        clock.advance(MatchScopedCache.SWEEP_INTERVAL_SECONDS + 1)
        cache.put("late", 2, "v")

        stats = cache.get_stats()
        assert stats.total_entries == 1
        assert stats.matches == 1

    def test_sweep_is_throttled(self, clock):
        cache = MatchScopedCache(ttl_seconds=10, clock=clock)
        cache.put("k", 1, "v")
        clock.advance(11)
        cache.put("j", 1, "v")
        # Expired but not yet swept
        assert cache.get_stats().total_entries == 2

    def test_purge_expired(self, clock):
        cache = MatchScopedCache(ttl_seconds=10, clock=clock)
        cache.put("k", 1, "v")
        cache.put("j", 1, "v", ttl_seconds=0)
        clock.advance(10)

        assert cache.purge_expired() == 1
        assert cache.get("j", 1) == "v"


class TestExpiry:
    """TTL handling with an injected clock."""

    def test_entry_expires(self, clock):
        cache = MatchScopedCache(ttl_seconds=60, clock=clock)
        producer = Producer()
        cache.remember("k", 1, producer)

        clock.advance(59)
        cache.remember("k", 1, producer)
        assert producer.calls == 1

        clock.advance(1)
        cache.remember("k", 1, producer)
        assert producer.calls == 2

    def test_per_entry_ttl_override(self, clock):
        cache = MatchScopedCache(ttl_seconds=60, clock=clock)
        cache.put("k", 1, "v", ttl_seconds=5)
        clock.advance(5)
        assert not cache.has("k", 1)

    def test_zero_ttl_never_expires(self, clock):
        cache = MatchScopedCache(ttl_seconds=0, clock=clock)
        cache.put("k", 1, "v")
        clock.advance(10**9)
        assert cache.get("k", 1) == "v"


class TestFromConfig:
    """The enable switch is threaded in from configuration."""

    def test_from_config(self):
        cache = MatchScopedCache.from_config(CacheConfig(enabled=False, ttl_seconds=30))
        assert cache.enabled is False
        assert cache.ttl_seconds == 30

    def test_defaults(self):
        cache = MatchScopedCache.from_config(CacheConfig())
        assert cache.enabled is True
        assert cache.ttl_seconds == 1800


class TestCacheStats:
    """Test CacheStats properties."""

    def test_hit_rate_zero_when_empty(self):
        stats = CacheStats(total_entries=0, matches=0)
        assert stats.hit_rate == 0.0

    def test_hit_rate_calculation(self):
        stats = CacheStats(total_entries=2, matches=1, hit_count=3, miss_count=1)
        assert stats.hit_rate == pytest.approx(75.0)

    def test_counts_hits_and_misses(self):
        cache = MatchScopedCache()
        cache.remember("k", 1, Producer())
        cache.remember("k", 1, Producer())
        cache.remember("k", 2, Producer())

        stats = cache.get_stats()
        assert stats.total_entries == 2
        assert stats.matches == 2
        assert stats.hit_count == 1
        assert stats.miss_count == 2
        assert stats.to_dict()["hit_rate_pct"] == pytest.approx(33.3)

    def test_clear_resets(self):
        cache = MatchScopedCache()
        cache.remember("k", 1, Producer())
        cache.clear()
        stats = cache.get_stats()
        assert stats.total_entries == 0
        assert stats.miss_count == 0

    def test_list_entries(self):
        cache = MatchScopedCache()
        cache.put("k", "player:1", {"a": 1})
        entries = cache.list_entries()
        assert entries[0]["key"] == "k"
        assert entries[0]["match_id"] == "player:1"
