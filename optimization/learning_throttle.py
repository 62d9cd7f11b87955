"""
Learning Throttle - Rate Limiting and Edit Batching
====================================================

Per-process, per-user throttles for the feedback learning pipeline:

- ``LearningRateLimiter``: at most one applied learning update per user
  per window.
- ``EditBatcher``: edits arriving while a user is throttled are coalesced
  into one pending batch that is flushed once the window reopens.

Both are ephemeral maps keyed by user id. Losing them on restart only
lifts the throttle temporarily; profile correctness never depends on them.
"""

import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from loguru import logger

from config.settings import LearningSettings, get_settings
from core.exceptions import InvalidConfigurationError

Clock = Callable[[], float]


class LearningRateLimiter:
    """Sliding single-slot limiter: one learning update per user per window."""

    def __init__(
        self,
        window_seconds: Optional[float] = None,
        clock: Clock = time.monotonic,
    ):
        self.window_seconds = (
            get_settings().learning.rate_limit_seconds if window_seconds is None else window_seconds
        )
        if self.window_seconds < 0:
            raise InvalidConfigurationError("window_seconds", self.window_seconds)
        self._clock = clock
        self._last_update: Dict[str, float] = {}

    def can_process(self, user_id: str) -> bool:
        """True when no update for ``user_id`` happened inside the window."""
        return self.time_until_allowed(user_id) <= 0

    def time_until_allowed(self, user_id: str) -> float:
        last = self._last_update.get(user_id)
        if last is None:
            return 0.0
        return max(0.0, self.window_seconds - (self._clock() - last))

    def record_update(self, user_id: str) -> None:
        self._last_update[user_id] = self._clock()

    def try_reserve(self, user_id: str) -> bool:
        """Check and claim the window in one step; ``reset`` gives it back."""
        if not self.can_process(user_id):
            return False
        self.record_update(user_id)
        return True

    def reset(self, user_id: Optional[str] = None) -> None:
        if user_id is None:
            self._last_update.clear()
        else:
            self._last_update.pop(user_id, None)


@dataclass
class PendingBatch:
    content_ids: List[str] = field(default_factory=list)
    opened_at: float = 0.0


@dataclass(frozen=True)
class BatchDecision:
    """
    What to do with a newly submitted edit.

    ``process_now`` means run learning immediately over ``content_ids``;
    otherwise the edit was queued and, when ``schedule_flush`` is set, the
    caller must arrange one flush after ``flush_delay`` seconds.
    """

    process_now: bool
    content_ids: tuple[str, ...] = ()
    schedule_flush: bool = False
    flush_delay: float = 0.0


class EditBatcher:
    """Coalesces edits that arrive while the rate limiter is closed."""

    def __init__(
        self,
        rate_limiter: LearningRateLimiter,
        learning_settings: Optional[LearningSettings] = None,
        clock: Clock = time.monotonic,
    ):
        self.rate_limiter = rate_limiter
        self._settings = learning_settings or get_settings().learning
        self._clock = clock
        self._batches: Dict[str, PendingBatch] = {}

    def submit(self, user_id: str, content_id: str) -> BatchDecision:
        """
        Route one edit.

        A user with an open batch always accumulates. Otherwise the edit is
        processed now if the limiter allows, or opens a new batch whose
        flush is due when the limiter reopens (capped at the batch window).
        """
        batch = self._batches.get(user_id)
        if batch is not None:
            if content_id not in batch.content_ids:
                batch.content_ids.append(content_id)
            logger.debug(f"Added content {content_id} to batch for user {user_id}")
            return BatchDecision(process_now=False)

        if self.rate_limiter.can_process(user_id):
            return BatchDecision(process_now=True, content_ids=(content_id,))

        self._batches[user_id] = PendingBatch(content_ids=[content_id], opened_at=self._clock())
        delay = min(
            self.rate_limiter.time_until_allowed(user_id), self._settings.batch_window_seconds
        )
        logger.info(f"Opened edit batch for user {user_id}; flush in {delay:.1f}s")
        return BatchDecision(
            process_now=False,
            content_ids=(content_id,),
            schedule_flush=True,
            flush_delay=delay,
        )

    def drain(self, user_id: str) -> List[str]:
        """Remove and return the user's pending content ids."""
        batch = self._batches.pop(user_id, None)
        return list(batch.content_ids) if batch else []

    def pending(self, user_id: str) -> List[str]:
        batch = self._batches.get(user_id)
        return list(batch.content_ids) if batch else []

    def has_pending(self, user_id: str) -> bool:
        return user_id in self._batches


__all__ = ["LearningRateLimiter", "EditBatcher", "BatchDecision", "PendingBatch"]
