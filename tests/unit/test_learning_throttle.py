"""
Learning Throttle Unit Tests

Rate limiter windows and edit batching driven by a controllable clock.
"""

import pytest

from config.settings import LearningSettings
from core.exceptions import InvalidConfigurationError
from optimization.learning_throttle import EditBatcher, LearningRateLimiter


@pytest.fixture
def limiter(clock) -> LearningRateLimiter:
    return LearningRateLimiter(window_seconds=300, clock=clock)


@pytest.fixture
def batcher(limiter, clock) -> EditBatcher:
    return EditBatcher(
        limiter, LearningSettings(batch_window_seconds=300), clock=clock
    )


class TestRateLimiter:
    def test_first_update_allowed(self, limiter):
        assert limiter.can_process("user-1")
        assert limiter.time_until_allowed("user-1") == 0.0

    def test_window_blocks_then_reopens(self, limiter, clock):
        limiter.record_update("user-1")
        clock.advance(120)

        assert not limiter.can_process("user-1")
        assert limiter.time_until_allowed("user-1") == pytest.approx(180)

        clock.advance(180)
        assert limiter.can_process("user-1")

    def test_users_are_independent(self, limiter):
        limiter.record_update("user-1")
        assert limiter.can_process("user-2")

    def test_reset(self, limiter):
        limiter.record_update("user-1")
        limiter.reset("user-1")
        assert limiter.can_process("user-1")

    def test_try_reserve_claims_window_once(self, limiter):
        assert limiter.try_reserve("user-1")
        assert not limiter.try_reserve("user-1")

        limiter.reset("user-1")
        assert limiter.try_reserve("user-1")

    def test_negative_window_rejected(self, clock):
        with pytest.raises(InvalidConfigurationError):
            LearningRateLimiter(window_seconds=-1, clock=clock)


class TestEditBatcher:
    def test_processes_immediately_when_allowed(self, batcher):
        decision = batcher.submit("user-1", "c1")

        assert decision.process_now
        assert decision.content_ids == ("c1",)
        assert not batcher.has_pending("user-1")

    def test_throttled_edit_opens_batch(self, batcher, limiter, clock):
        limiter.record_update("user-1")
        clock.advance(100)

        decision = batcher.submit("user-1", "c1")

        assert not decision.process_now
        assert decision.schedule_flush
        assert decision.flush_delay == pytest.approx(200)
        assert batcher.pending("user-1") == ["c1"]

    def test_open_batch_accumulates_without_new_flush(self, batcher, limiter):
        limiter.record_update("user-1")
        batcher.submit("user-1", "c1")

        second = batcher.submit("user-1", "c2")
        duplicate = batcher.submit("user-1", "c1")

        assert not second.process_now and not second.schedule_flush
        assert not duplicate.schedule_flush
        assert batcher.pending("user-1") == ["c1", "c2"]

    def test_drain_clears_batch(self, batcher, limiter):
        limiter.record_update("user-1")
        batcher.submit("user-1", "c1")

        assert batcher.drain("user-1") == ["c1"]
        assert batcher.drain("user-1") == []
        assert not batcher.has_pending("user-1")

    def test_flush_delay_capped_by_batch_window(self, limiter, clock):
        batcher = EditBatcher(limiter, LearningSettings(batch_window_seconds=60), clock=clock)
        limiter.record_update("user-1")

        assert batcher.submit("user-1", "c1").flush_delay == pytest.approx(60)
