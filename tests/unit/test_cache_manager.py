"""
Cache Manager Unit Tests (memory tier)

Validates TTL policy, fallback population, invalidation semantics and
LRU eviction without Redis.
"""

import pytest

from config.settings import CacheSettings
from optimization.cache_manager import CacheManager, CachePolicy, evolution_key, profile_key


class TestCachePolicy:
    def test_ttl_by_key_family(self):
        policy = CachePolicy(CacheSettings(profile_ttl=3600, evolution_score_ttl=300))
        assert policy.get_ttl(profile_key("u1")) == 3600
        assert policy.get_ttl(evolution_key("u1")) == 300

    def test_keys(self):
        assert profile_key("u1") == "profile:u1"
        assert evolution_key("u1") == "evolution:u1"


class TestMemoryCache:
    async def test_set_then_get(self, cache):
        await cache.set("profile:u1", {"voice_type": "casual"})
        assert await cache.get("profile:u1") == {"voice_type": "casual"}

    async def test_none_is_not_cached(self, cache):
        assert await cache.set("profile:u1", None) is False

    async def test_invalidate_twice_then_miss(self, cache):
        await cache.set_evolution_score("u1", 42)

        await cache.invalidate(evolution_key("u1"))
        assert await cache.get_evolution_score("u1") is None
        await cache.invalidate(evolution_key("u1"))
        assert await cache.get_evolution_score("u1") is None

    async def test_invalidate_absent_key_is_noop(self, cache):
        await cache.invalidate("profile:missing")
        assert cache.get_statistics()["global"]["invalidations"] == 0

    async def test_invalidate_user_drops_both_keys(self, cache):
        await cache.set_profile("u1", {"a": 1})
        await cache.set_evolution_score("u1", 10)

        await cache.invalidate_user("u1")

        assert await cache.get_profile("u1") is None
        assert await cache.get_evolution_score("u1") is None

    async def test_fallback_populates(self, cache):
        calls = []

        async def compute():
            calls.append(1)
            return 77

        assert await cache.get("evolution:u1", fallback=compute) == 77
        assert await cache.get("evolution:u1", fallback=compute) == 77
        assert len(calls) == 1

    async def test_invalidate_pattern(self, cache):
        await cache.set("profile:a", 1)
        await cache.set("profile:b", 2)
        await cache.set("evolution:a", 3)

        assert await cache.invalidate_pattern("profile:*") == 2
        assert await cache.get("evolution:a") == 3

    async def test_lru_eviction(self):
        cache = CacheManager(cache_settings=CacheSettings(max_memory_entries=10))
        for i in range(10):
            await cache.set(f"profile:{i}", i)
        await cache.get("profile:0")

        await cache.set("profile:new", "x")

        assert await cache.get("profile:0") == 0
        assert await cache.get("profile:1") is None
        assert cache.get_statistics()["memory_entries"] == 10

    async def test_statistics(self, cache, metrics):
        await cache.set("profile:u1", 1)
        await cache.get("profile:u1")
        await cache.get("profile:u2")

        stats = cache.get_statistics()
        assert stats["global"]["hits"] == 1
        assert stats["global"]["misses"] == 1
        assert stats["global"]["hit_rate"] == pytest.approx(50.0)
        hits = {"cache_level": "memory", "cache_type": "profile"}
        assert metrics.sample("cache_hits_total", hits) == 1

        cache.reset_statistics()
        assert cache.get_statistics()["global"]["hits"] == 0
