"""
Redis Client for Profile Caching and Coordination
==================================================

Provides async Redis operations used by:
- The L2 tier of the profile/evolution-score cache (JSON values with TTL)
- The distributed profile lock (raw connection access)
- Connection health monitoring
- Circuit breaker pattern for fault tolerance

Architecture: Connection pool with circuit breaker and transparent
JSON serialization layer. A pre-built ``redis.asyncio`` compatible
connection may be injected in place of the pool.
"""

import asyncio
import json
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

from loguru import logger
from redis.asyncio import Redis
from redis.asyncio.connection import ConnectionPool
from redis.exceptions import ConnectionError, TimeoutError

from config.settings import RedisSettings, get_settings
from core.exceptions import CacheError, CacheWriteError, InfrastructureError


class RedisConnectionPool:
    """
    Connection pool manager with health monitoring.

    Implements exponential backoff reconnection strategy and
    circuit breaker pattern to prevent cascade failures.
    """

    FAILURE_THRESHOLD = 3

    def __init__(
        self,
        redis_settings: Optional[RedisSettings] = None,
        connection: Optional[Redis] = None,
    ):
        self._settings = redis_settings or get_settings().redis
        self._pool: Optional[ConnectionPool] = None
        self._shared_connection = connection
        self._circuit_breaker_open = False
        self._failure_count = 0
        self._last_failure_time: Optional[float] = None
        self._backoff_multiplier = 1
        self._max_backoff = 300  # 5 minutes max backoff

    async def initialize(self) -> None:
        """Initialize Redis connection pool with optimized parameters."""
        if self._shared_connection is not None:
            return
        try:
            self._pool = ConnectionPool.from_url(
                str(self._settings.url),
                encoding="utf-8",
                decode_responses=True,
                max_connections=self._settings.max_connections,
                socket_timeout=self._settings.socket_timeout,
                socket_connect_timeout=self._settings.socket_connect_timeout,
                socket_keepalive=True,
                health_check_interval=30,
            )

            async with self.get_connection() as conn:
                await conn.ping()

            logger.info("Redis connection pool initialized successfully")
            self._circuit_breaker_open = False
            self._failure_count = 0

        except CacheError as e:
            self._pool = None
            logger.error(f"Failed to initialize Redis connection pool: {e}")
            raise InfrastructureError(f"Redis initialization failed: {e}", cause=e) from e

    @asynccontextmanager
    async def get_connection(self) -> AsyncGenerator[Redis, None]:
        """
        Context manager for acquiring Redis connections with circuit breaker.

        Yields:
            Redis connection from pool (or the injected connection)

        Raises:
            CacheError: When circuit breaker is open or connection fails
        """
        loop = asyncio.get_running_loop()
        if self._circuit_breaker_open:
            time_since_failure = loop.time() - (self._last_failure_time or 0)
            backoff_time = min(60 * self._backoff_multiplier, self._max_backoff)

            if time_since_failure < backoff_time:
                raise CacheError(
                    f"Circuit breaker open: Redis unavailable. "
                    f"Retry in {backoff_time - time_since_failure:.1f}s"
                )
            logger.info(f"Attempting to close Redis circuit breaker (backoff: {backoff_time}s)")
            self._circuit_breaker_open = False
            self._failure_count = 0

        if self._shared_connection is None and self._pool is None:
            await self.initialize()

        connection: Optional[Redis] = None
        try:
            if self._shared_connection is not None:
                yield self._shared_connection
            else:
                connection = Redis(connection_pool=self._pool)
                yield connection
            self._failure_count = 0
            self._backoff_multiplier = 1

        except (ConnectionError, TimeoutError) as e:
            self._failure_count += 1
            self._last_failure_time = loop.time()

            if self._failure_count >= self.FAILURE_THRESHOLD:
                self._circuit_breaker_open = True
                self._backoff_multiplier = min(self._backoff_multiplier * 2, 16)
                logger.error(
                    f"Circuit breaker opened after {self._failure_count} failures. "
                    f"Backoff multiplier: {self._backoff_multiplier}x"
                )

            raise CacheError(f"Redis connection error: {e}", retryable=True, cause=e) from e

        finally:
            if connection is not None:
                await connection.aclose()

    async def close(self) -> None:
        """Gracefully close connection pool."""
        if self._pool:
            await self._pool.disconnect()
            self._pool = None
            logger.info("Redis connection pool closed")


class RedisClient:
    """
    High-level Redis client with JSON serialization.

    Read paths degrade to ``None``/``False`` on failure; write paths raise
    ``CacheError`` so callers can decide whether a failed write matters.
    """

    def __init__(
        self,
        redis_settings: Optional[RedisSettings] = None,
        connection: Optional[Redis] = None,
        default_ttl: int = 3600,
    ):
        self._pool = RedisConnectionPool(redis_settings, connection)
        self._default_ttl = default_ttl

    async def initialize(self) -> None:
        """Initialize Redis client and verify connectivity."""
        await self._pool.initialize()

    def get_connection(self):
        """Raw connection context manager for callers needing native commands."""
        return self._pool.get_connection()

    # =========================================================================
    # GENERIC KEY-VALUE OPERATIONS
    # =========================================================================

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """
        Store a JSON-serializable value.

        Args:
            key: Storage key
            value: JSON-serializable Python object
            ttl: Time-to-live in seconds

        Returns:
            True if stored successfully
        """
        try:
            serialized = json.dumps(value, default=str)
            async with self._pool.get_connection() as conn:
                await conn.set(key, serialized, ex=ttl or self._default_ttl)
            return True
        except (CacheError, TypeError, ValueError) as e:
            logger.error(f"Failed to set key {key}: {e}")
            raise CacheWriteError(f"Set operation failed: {e}", cache_key=key, cause=e) from e

    async def get(self, key: str) -> Optional[Any]:
        """
        Retrieve and deserialize value.

        Returns:
            Deserialized Python object or None if not found or unavailable
        """
        try:
            async with self._pool.get_connection() as conn:
                data = await conn.get(key)
            if data is None:
                return None
            return json.loads(data)
        except (CacheError, ValueError) as e:
            logger.error(f"Failed to get key {key}: {e}")
            return None

    async def delete(self, *keys: str) -> int:
        """Delete keys; returns the number removed (0 on failure)."""
        if not keys:
            return 0
        try:
            async with self._pool.get_connection() as conn:
                return int(await conn.delete(*keys))
        except CacheError as e:
            logger.error(f"Failed to delete keys {keys}: {e}")
            return 0

    async def exists(self, key: str) -> bool:
        try:
            async with self._pool.get_connection() as conn:
                return bool(await conn.exists(key))
        except CacheError as e:
            logger.error(f"Failed to check existence of key {key}: {e}")
            return False

    async def flush_cache(self, pattern: str) -> int:
        """
        Delete cache entries matching a pattern.

        Args:
            pattern: Redis glob pattern (e.g., "profile:*")

        Returns:
            Number of keys deleted
        """
        try:
            async with self._pool.get_connection() as conn:
                keys = [key async for key in conn.scan_iter(match=pattern)]
                if not keys:
                    return 0
                deleted = await conn.delete(*keys)
            logger.warning(f"Flushed {deleted} keys matching '{pattern}'")
            return int(deleted)
        except CacheError as e:
            logger.error(f"Failed to flush cache: {e}")
            raise

    async def ping(self) -> bool:
        """Ping Redis to verify connectivity."""
        try:
            async with self._pool.get_connection() as conn:
                await conn.ping()
            return True
        except CacheError as e:
            logger.error(f"Redis ping failed: {e}")
            return False

    async def close(self) -> None:
        """Close Redis connection pool."""
        await self._pool.close()


__all__ = ["RedisConnectionPool", "RedisClient"]
