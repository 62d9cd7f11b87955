"""
Cache Manager - Unified Caching Orchestration
==============================================

Orchestrates the two-tier cache used by profile and evolution score
consumers:

L1: In-memory (Python dict) - Hot data, microsecond access
L2: Redis - Shared across workers, millisecond access (optional)

Features:
- Policy-driven TTLs per key family (profile:*, evolution:*)
- Invalidate-on-write helpers keyed by user id
- Hit-rate tracking
- Graceful degradation: cache failures read as misses, never raise

Invalidation removes the key from every tier, so an immediately
following ``get`` misses; invalidating an absent key is a no-op.

Per-user families (profile:*, evolution:*) are invalidated on every
profile write from any worker. With Redis configured they are served
from Redis only and never promoted to L1, so one worker's invalidation
is seen by every other worker on its next read.
"""

import asyncio
import fnmatch
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from loguru import logger

from config.constants import EVOLUTION_SCORE_CACHE_PREFIX, PROFILE_CACHE_PREFIX
from config.settings import CacheSettings, get_settings
from core.exceptions import CacheError
from infrastructure.monitoring import MetricsCollector
from infrastructure.redis_client import RedisClient


class CacheLevel(str, Enum):
    """Cache tier levels."""

    MEMORY = "memory"  # L1: In-memory
    REDIS = "redis"  # L2: Redis


@dataclass
class CacheStats:
    """Cache statistics for monitoring."""

    hits: int = 0
    misses: int = 0
    sets: int = 0
    invalidations: int = 0
    errors: int = 0

    @property
    def hit_rate(self) -> float:
        """Calculate hit rate percentage."""
        total = self.hits + self.misses
        return (self.hits / total * 100) if total > 0 else 0.0


@dataclass
class CacheEntry:
    """Cache entry with metadata."""

    key: str
    value: Any
    created_at: datetime
    accessed_at: datetime
    access_count: int = 0
    ttl_seconds: Optional[int] = None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """Check if entry has expired."""
        if self.ttl_seconds is None:
            return False
        age = ((now or datetime.now(timezone.utc)) - self.created_at).total_seconds()
        return age > self.ttl_seconds

    def touch(self) -> None:
        """Update access metadata."""
        self.accessed_at = datetime.now(timezone.utc)
        self.access_count += 1


class CachePolicy:
    """TTL policy per key family."""

    def __init__(self, cache_settings: CacheSettings):
        self._settings = cache_settings

    @staticmethod
    def should_cache(value: Any) -> bool:
        return value is not None

    def get_ttl(self, key: str) -> int:
        if key.startswith(EVOLUTION_SCORE_CACHE_PREFIX):
            return self._settings.evolution_score_ttl
        if key.startswith(PROFILE_CACHE_PREFIX):
            return self._settings.profile_ttl
        return self._settings.profile_ttl


def profile_key(user_id: str) -> str:
    return f"{PROFILE_CACHE_PREFIX}{user_id}"


def evolution_key(user_id: str) -> str:
    return f"{EVOLUTION_SCORE_CACHE_PREFIX}{user_id}"


class CacheManager:
    """
    Unified cache management system.

    Provides a single get/set/invalidate interface over memory and Redis
    with automatic promotion from L2 to L1.
    """

    def __init__(
        self,
        redis_client: Optional[RedisClient] = None,
        cache_settings: Optional[CacheSettings] = None,
        metrics_collector: Optional[MetricsCollector] = None,
    ):
        """
        Initialize cache manager.

        Args:
            redis_client: Redis client for L2; memory-only when None
            cache_settings: TTLs and L1 capacity
            metrics_collector: Optional metrics collector for Prometheus metrics
        """
        self._settings = cache_settings or get_settings().cache
        self._memory_cache: Dict[str, CacheEntry] = {}
        self.redis_client = redis_client
        self.max_memory_entries = self._settings.max_memory_entries
        self.policy = CachePolicy(self._settings)
        self.metrics_collector = metrics_collector

        self.stats_by_level = {level: CacheStats() for level in CacheLevel}
        self.global_stats = CacheStats()

        logger.info(
            f"Cache manager initialized (max memory entries: {self.max_memory_entries}, "
            f"redis: {'on' if redis_client else 'off'})"
        )

    @property
    def _levels(self) -> List[CacheLevel]:
        if self.redis_client is None:
            return [CacheLevel.MEMORY]
        return [CacheLevel.MEMORY, CacheLevel.REDIS]

    def _cache_type(self, key: str) -> str:
        return key.split(":", 1)[0] if ":" in key else "general"

    def _uses_memory(self, key: str) -> bool:
        """L1 holds a key unless it is a per-user family shared through Redis."""
        if self.redis_client is None:
            return True
        return not key.startswith((PROFILE_CACHE_PREFIX, EVOLUTION_SCORE_CACHE_PREFIX))

    # =========================================================================
    # UNIFIED GET/SET INTERFACE
    # =========================================================================

    async def get(
        self,
        key: str,
        fallback: Optional[Callable[[], Any]] = None,
    ) -> Optional[Any]:
        """
        Get value from cache with automatic fallback through tiers.

        Process:
        1. Check L1 (memory)
        2. If miss, check L2 (Redis) and promote to L1 (per-user families stay in L2)
        3. If miss and a fallback is given, compute, populate and return
        4. Return None if all miss

        Args:
            key: Cache key
            fallback: Optional sync or async function to compute value on miss

        Returns:
            Cached value or None
        """
        use_memory = self._uses_memory(key)
        if use_memory:
            value = self._get_from_memory(key)
            if value is not None:
                self._record_hit(CacheLevel.MEMORY, key)
                return value
            self.stats_by_level[CacheLevel.MEMORY].misses += 1

        if self.redis_client is not None:
            value = await self._get_from_redis(key)
            if value is not None:
                self._record_hit(CacheLevel.REDIS, key)
                if use_memory:
                    self._set_in_memory(key, value, self.policy.get_ttl(key))
                return value
            self.stats_by_level[CacheLevel.REDIS].misses += 1

        self.global_stats.misses += 1
        if self.metrics_collector:
            self.metrics_collector.record_cache_miss(self._cache_type(key))

        if fallback is None:
            return None

        value = await fallback() if asyncio.iscoroutinefunction(fallback) else fallback()
        if value is not None:
            await self.set(key, value)
        return value

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """
        Set value in every available tier.

        Returns:
            True if cached in at least one level
        """
        if not self.policy.should_cache(value):
            return False

        ttl = ttl or self.policy.get_ttl(key)
        success = False
        if self._uses_memory(key):
            success = self._set_in_memory(key, value, ttl)
            if success:
                self.stats_by_level[CacheLevel.MEMORY].sets += 1

        if self.redis_client is not None and await self._set_in_redis(key, value, ttl):
            self.stats_by_level[CacheLevel.REDIS].sets += 1
            success = True

        if success:
            self.global_stats.sets += 1
        return success

    async def invalidate(self, *keys: str) -> None:
        """Remove keys from every tier; absent keys are ignored."""
        for key in keys:
            if self._memory_cache.pop(key, None) is not None:
                self.stats_by_level[CacheLevel.MEMORY].invalidations += 1
                self.global_stats.invalidations += 1

        if self.redis_client is not None and keys:
            removed = await self.redis_client.delete(*keys)
            self.stats_by_level[CacheLevel.REDIS].invalidations += removed

    async def invalidate_pattern(self, pattern: str) -> int:
        """
        Invalidate all keys matching a glob pattern.

        Returns:
            Number of keys invalidated
        """
        matching = [k for k in self._memory_cache if fnmatch.fnmatch(k, pattern)]
        for key in matching:
            del self._memory_cache[key]
        count = len(matching)
        self.stats_by_level[CacheLevel.MEMORY].invalidations += count

        if self.redis_client is not None:
            try:
                redis_count = await self.redis_client.flush_cache(pattern)
            except CacheError as e:
                logger.warning(f"Redis pattern invalidation failed for {pattern}: {e}")
                self.stats_by_level[CacheLevel.REDIS].errors += 1
            else:
                count += redis_count
                self.stats_by_level[CacheLevel.REDIS].invalidations += redis_count

        self.global_stats.invalidations += count
        logger.info(f"Invalidated {count} keys matching pattern: {pattern}")
        return count

    # =========================================================================
    # PROFILE / EVOLUTION HELPERS
    # =========================================================================

    async def get_profile(self, user_id: str) -> Optional[dict]:
        return await self.get(profile_key(user_id))

    async def set_profile(self, user_id: str, profile: dict) -> bool:
        return await self.set(profile_key(user_id), profile)

    async def get_evolution_score(self, user_id: str) -> Optional[int]:
        value = await self.get(evolution_key(user_id))
        return int(value) if value is not None else None

    async def set_evolution_score(self, user_id: str, score: int) -> bool:
        return await self.set(evolution_key(user_id), score)

    async def invalidate_user(self, user_id: str) -> None:
        """Drop every cached view of one user's profile."""
        await self.invalidate(profile_key(user_id), evolution_key(user_id))
        logger.debug(f"Invalidated profile caches for {user_id}")

    # =========================================================================
    # L1: MEMORY CACHE OPERATIONS
    # =========================================================================

    def _get_from_memory(self, key: str) -> Optional[Any]:
        entry = self._memory_cache.get(key)
        if entry is None:
            return None
        if entry.is_expired():
            del self._memory_cache[key]
            return None
        entry.touch()
        return entry.value

    def _set_in_memory(self, key: str, value: Any, ttl: Optional[int]) -> bool:
        if key not in self._memory_cache and len(self._memory_cache) >= self.max_memory_entries:
            self._evict_lru()
        now = datetime.now(timezone.utc)
        self._memory_cache[key] = CacheEntry(
            key=key, value=value, created_at=now, accessed_at=now, ttl_seconds=ttl
        )
        return True

    def _evict_lru(self) -> None:
        victim = min(self._memory_cache.values(), key=lambda entry: entry.accessed_at)
        del self._memory_cache[victim.key]
        logger.debug(f"Evicted LRU cache entry: {victim.key}")

    # =========================================================================
    # L2: REDIS CACHE OPERATIONS
    # =========================================================================

    async def _get_from_redis(self, key: str) -> Optional[Any]:
        return await self.redis_client.get(key)

    async def _set_in_redis(self, key: str, value: Any, ttl: Optional[int]) -> bool:
        try:
            return await self.redis_client.set(key, value, ttl=ttl)
        except CacheError as e:
            logger.warning(f"Redis set failed for {key}: {e}")
            self.stats_by_level[CacheLevel.REDIS].errors += 1
            return False

    # =========================================================================
    # STATISTICS
    # =========================================================================

    def _record_hit(self, level: CacheLevel, key: str) -> None:
        self.stats_by_level[level].hits += 1
        self.global_stats.hits += 1
        if self.metrics_collector:
            self.metrics_collector.record_cache_hit(level.value, self._cache_type(key))

    def get_statistics(self) -> Dict[str, Any]:
        """
        Get cache statistics.

        Returns:
            Global and per-level hit/miss counters
        """
        return {
            "global": {
                "hits": self.global_stats.hits,
                "misses": self.global_stats.misses,
                "sets": self.global_stats.sets,
                "invalidations": self.global_stats.invalidations,
                "hit_rate": round(self.global_stats.hit_rate, 2),
            },
            "by_level": {
                level.value: {
                    "hits": stats.hits,
                    "misses": stats.misses,
                    "sets": stats.sets,
                    "invalidations": stats.invalidations,
                    "errors": stats.errors,
                }
                for level, stats in self.stats_by_level.items()
                if level in self._levels
            },
            "memory_entries": len(self._memory_cache),
        }

    def reset_statistics(self) -> None:
        self.stats_by_level = {level: CacheStats() for level in CacheLevel}
        self.global_stats = CacheStats()


__all__ = [
    "CacheLevel",
    "CacheStats",
    "CacheEntry",
    "CachePolicy",
    "CacheManager",
    "profile_key",
    "evolution_key",
]
