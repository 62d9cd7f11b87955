"""
Distributed Profile Lock
========================
Advisory, key-expiry based mutual exclusion keyed by user id.

Acquisition is ``SET key token NX PX ttl`` polled until a bounded
deadline, so a caller that cannot obtain the lock fails instead of
queuing indefinitely. Release only deletes the key while it still holds
this holder's token (checked under WATCH/MULTI) and is a no-op for a lock
that is not held.

Architecture: Strategy Pattern (abstract lock) + Scoped Acquisition
"""

import asyncio
import uuid
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from loguru import logger
from redis.exceptions import WatchError

from config.settings import ConcurrencySettings, get_settings
from core.exceptions import CacheError, LockAcquisitionError
from infrastructure.monitoring import MetricsCollector
from infrastructure.redis_client import RedisClient


class DistributedLock(ABC):
    """Best-effort mutual-exclusion primitive with timeout semantics."""

    @abstractmethod
    async def acquire(self, key: str, timeout: Optional[float] = None) -> Optional[str]:
        """
        Try to take ``key`` within ``timeout`` seconds; never raises on contention.

        Returns:
            The holder token to pass to ``release``, or None when not acquired
        """

    @abstractmethod
    async def release(self, key: str, token: str) -> None:
        """Release ``key`` if it is still held under ``token``; idempotent."""

    @asynccontextmanager
    async def hold(self, key: str, timeout: Optional[float] = None) -> AsyncGenerator[str, None]:
        """
        Scoped acquisition with guaranteed release.

        Raises:
            LockAcquisitionError: Lock not obtained within ``timeout``
        """
        token = await self.acquire(key, timeout)
        if token is None:
            raise LockAcquisitionError(key, timeout_seconds=timeout)
        try:
            yield token
        finally:
            await self.release(key, token)


class RedisDistributedLock(DistributedLock):
    """
    Redis-backed lock with per-holder tokens.

    The token lives with the caller that acquired the lock, never on this
    instance, so one shared instance can serve every coroutine. A holder
    whose TTL expired before release leaves the next holder's lock intact.
    """

    def __init__(
        self,
        redis_client: RedisClient,
        concurrency_settings: Optional[ConcurrencySettings] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self._redis = redis_client
        self._settings = concurrency_settings or get_settings().concurrency
        self._metrics = metrics

    def _record(self, outcome: str) -> None:
        if self._metrics:
            self._metrics.record_lock_attempt(outcome)

    async def acquire(self, key: str, timeout: Optional[float] = None) -> Optional[str]:
        timeout = self._settings.lock_acquire_timeout if timeout is None else timeout
        token = uuid.uuid4().hex
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        while True:
            try:
                async with self._redis.get_connection() as conn:
                    acquired = await conn.set(key, token, nx=True, px=self._settings.lock_ttl_ms)
            except CacheError as e:
                logger.warning(f"Lock backend unavailable for {key}: {e}")
                self._record("error")
                return None

            if acquired:
                logger.debug(f"Acquired lock {key}")
                self._record("acquired")
                return token

            remaining = deadline - loop.time()
            if remaining <= 0:
                logger.warning(f"Timed out acquiring lock {key} after {timeout:.2f}s")
                self._record("timeout")
                return None
            await asyncio.sleep(min(self._settings.lock_poll_interval, remaining))

    async def release(self, key: str, token: str) -> None:
        try:
            async with self._redis.get_connection() as conn:
                async with conn.pipeline(transaction=True) as pipe:
                    await pipe.watch(key)
                    current = await pipe.get(key)
                    if isinstance(current, bytes):
                        current = current.decode()
                    if current != token:
                        await pipe.unwatch()
                        logger.warning(f"Lock {key} expired before release")
                        return
                    pipe.multi()
                    pipe.delete(key)
                    await pipe.execute()
            logger.debug(f"Released lock {key}")
        except WatchError:
            logger.warning(f"Lock {key} changed during release; left to expire")
        except CacheError as e:
            logger.warning(f"Failed to release lock {key}, it will expire: {e}")

    def key_for(self, user_id: str) -> str:
        return f"{self._settings.lock_key_prefix}{user_id}"


__all__ = ["DistributedLock", "RedisDistributedLock"]
