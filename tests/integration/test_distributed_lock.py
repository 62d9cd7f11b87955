"""
Distributed Lock Integration Tests

Exercises the Redis lock against fakeredis: exclusivity, bounded waits,
token-checked release and scoped acquisition.
"""

import asyncio

import pytest

from core.exceptions import LockAcquisitionError
from infrastructure.distributed_lock import RedisDistributedLock

pytestmark = pytest.mark.integration

KEY = "lock:profile:user-1"


@pytest.fixture
def other_lock(redis, concurrency_settings, metrics) -> RedisDistributedLock:
    """A second holder sharing the same Redis."""
    return RedisDistributedLock(redis, concurrency_settings, metrics)


class TestAcquireRelease:
    async def test_acquire_sets_key_with_ttl(self, redis_lock, fake_redis):
        token = await redis_lock.acquire(KEY)

        assert token is not None
        assert await fake_redis.get(KEY) == token
        assert 0 < await fake_redis.pttl(KEY) <= 2000

    async def test_contended_acquire_times_out(self, redis_lock, other_lock, metrics):
        assert await redis_lock.acquire(KEY)

        assert await other_lock.acquire(KEY, timeout=0.05) is None
        assert metrics.sample("profile_lock_attempts_total", {"outcome": "timeout"}) == 1

    async def test_release_lets_next_holder_in(self, redis_lock, other_lock):
        token = await redis_lock.acquire(KEY)
        await redis_lock.release(KEY, token)

        assert await other_lock.acquire(KEY, timeout=0.05)

    async def test_waiter_gets_lock_once_released(self, redis_lock, other_lock):
        token = await redis_lock.acquire(KEY)

        waiter = asyncio.create_task(other_lock.acquire(KEY, timeout=1.0))
        await asyncio.sleep(0.02)
        await redis_lock.release(KEY, token)

        assert await waiter

    async def test_release_with_foreign_token_is_noop(self, redis_lock, fake_redis):
        await redis_lock.acquire(KEY)

        await redis_lock.release(KEY, "not-the-holder")
        await redis_lock.release("lock:profile:nobody", "not-the-holder")

        assert await fake_redis.exists(KEY)

    async def test_release_after_expiry_keeps_new_holder(self, redis_lock, fake_redis):
        token = await redis_lock.acquire(KEY)
        # simulate TTL expiry followed by another holder taking over
        await fake_redis.set(KEY, "someone-else", px=2000)

        await redis_lock.release(KEY, token)

        assert await fake_redis.get(KEY) == "someone-else"

    async def test_expired_holder_cannot_release_successor_on_shared_instance(
        self, redis, concurrency_settings, fake_redis
    ):
        settings = concurrency_settings.model_copy(update={"lock_ttl_ms": 100})
        shared = RedisDistributedLock(redis, settings)

        first = await shared.acquire(KEY, timeout=0)
        await asyncio.sleep(0.2)
        second = await shared.acquire(KEY, timeout=0)
        assert second is not None and second != first

        await shared.release(KEY, first)

        assert await fake_redis.get(KEY) == second

    async def test_keys_are_independent(self, redis_lock, other_lock):
        await redis_lock.acquire(KEY)
        assert await other_lock.acquire("lock:profile:user-2", timeout=0.05)


class TestHold:
    async def test_hold_releases_on_exit(self, redis_lock, fake_redis):
        async with redis_lock.hold(KEY) as token:
            assert await fake_redis.get(KEY) == token
        assert not await fake_redis.exists(KEY)

    async def test_hold_releases_on_error(self, redis_lock, fake_redis):
        with pytest.raises(RuntimeError):
            async with redis_lock.hold(KEY):
                raise RuntimeError("boom")
        assert not await fake_redis.exists(KEY)

    async def test_hold_raises_when_not_acquired(self, redis_lock, other_lock):
        await redis_lock.acquire(KEY)

        with pytest.raises(LockAcquisitionError):
            async with other_lock.hold(KEY, timeout=0.02):
                pass

    def test_key_for(self, redis_lock):
        assert redis_lock.key_for("user-9") == "lock:profile:user-9"
