"""
Two-Tier Cache Integration Tests

Memory + Redis (fakeredis) behavior: promotion, cross-instance sharing,
invalidation reaching both tiers and evolution score caching.
"""

import pytest

from config.settings import CacheSettings
from intelligence.evolution_scorer import EvolutionScoringEngine
from optimization.cache_manager import CacheManager, evolution_key, profile_key
from services.atomic_profile_service import AtomicProfileUpdateService

pytestmark = pytest.mark.integration


@pytest.fixture
def peer_cache(redis, metrics) -> CacheManager:
    """Another worker's cache sharing the same Redis."""
    return CacheManager(
        redis_client=redis, cache_settings=CacheSettings(), metrics_collector=metrics
    )


class TestTwoTier:
    async def test_value_shared_through_redis(self, redis_cache, peer_cache):
        await redis_cache.set_profile("user-1", {"voice_type": "casual"})

        assert await peer_cache.get_profile("user-1") == {"voice_type": "casual"}
        assert peer_cache.get_statistics()["by_level"]["redis"]["hits"] == 1

    async def test_redis_hit_promotes_to_memory(self, redis_cache, peer_cache):
        await redis_cache.set("analytics:user-1", {"posts": 4})

        await peer_cache.get("analytics:user-1")
        await peer_cache.get("analytics:user-1")

        stats = peer_cache.get_statistics()["by_level"]
        assert stats["redis"]["hits"] == 1
        assert stats["memory"]["hits"] == 1

    async def test_per_user_families_are_not_promoted(self, redis_cache, peer_cache):
        await redis_cache.set_evolution_score("user-1", 40)

        await peer_cache.get_evolution_score("user-1")
        await peer_cache.get_evolution_score("user-1")

        stats = peer_cache.get_statistics()["by_level"]
        assert stats["redis"]["hits"] == 2
        assert stats["memory"]["hits"] == 0

    async def test_invalidation_by_one_worker_is_seen_by_another(
        self, redis_cache, peer_cache
    ):
        await redis_cache.set_evolution_score("user-1", 20)
        await redis_cache.set_profile("user-1", {"voice_type": "casual"})
        assert await peer_cache.get_evolution_score("user-1") == 20
        assert await peer_cache.get_profile("user-1") == {"voice_type": "casual"}

        await redis_cache.invalidate_user("user-1")

        assert await peer_cache.get_evolution_score("user-1") is None
        assert await peer_cache.get_profile("user-1") is None

    async def test_ttl_applied_in_redis(self, redis_cache, fake_redis):
        await redis_cache.set_evolution_score("user-1", 40)
        ttl = await fake_redis.ttl(evolution_key("user-1"))
        assert 0 < ttl <= CacheSettings().evolution_score_ttl

    async def test_invalidation_reaches_every_tier(self, redis_cache, peer_cache, fake_redis):
        await redis_cache.set_profile("user-1", {"a": 1})
        await redis_cache.set_evolution_score("user-1", 10)

        await peer_cache.invalidate_user("user-1")
        await peer_cache.invalidate_user("user-1")

        assert not await fake_redis.exists(profile_key("user-1"))
        assert not await fake_redis.exists(evolution_key("user-1"))
        assert await peer_cache.get_profile("user-1") is None

    async def test_pattern_invalidation(self, redis_cache, fake_redis):
        await redis_cache.set("profile:a", 1)
        await redis_cache.set("profile:b", 2)
        await redis_cache.set("evolution:a", 3)

        await redis_cache.invalidate_pattern("profile:*")

        assert not await fake_redis.exists("profile:a")
        assert await fake_redis.exists("evolution:a")


class TestScoreCaching:
    async def test_score_invalidated_by_profile_write(
        self,
        profile_store,
        content_store,
        redis_cache,
        metrics,
        make_profile,
        concurrency_settings,
    ):
        await profile_store.create(make_profile("user-1"))
        atomic = AtomicProfileUpdateService(
            profile_store, cache=redis_cache, concurrency_settings=concurrency_settings
        )
        scorer = EvolutionScoringEngine(
            profile_store, content_store, cache=redis_cache, metrics=metrics
        )

        assert await scorer.calculate_evolution_score("user-1") == 0
        await atomic.update_field("user-1", "sample_posts", ["first post"])

        assert await scorer.calculate_evolution_score("user-1") == 20
        assert metrics.sample("evolution_score_computations_total") == 2
