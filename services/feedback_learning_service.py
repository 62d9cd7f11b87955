"""
Feedback Learning Service
=========================

Turns user edits of generated content into bounded style profile updates.

Flow for one learning run:
1. Rate-limit reservation (one applied update per user per window; a run
   that does not apply gives the window back)
2. Load the profile document; users without a profile are skipped
3. Detect patterns over the most recent edits
4. Gate tone changes on the user's total edit count
5. Compute the weighted update honoring manual overrides
6. Commit sections, a feedback snapshot and ``learning_iterations + 1``
   in one atomic write
7. Mark consumed edits processed, prune edit history beyond the cap and
   drop the cached evolution score

Edits arriving while a user is throttled are batched and flushed once the
window reopens.

Architecture: Orchestration Service + Pipeline Pattern
"""

import asyncio
from typing import Iterable, List, Optional, Set

from loguru import logger

from config.settings import LearningSettings, get_settings
from core.enums import LearningSkipReason, UpdateOperator, VersionSource
from core.exceptions import NoProfileError, handle_exception
from core.models import (
    LearningOutcome,
    PatternDetectionResult,
    ProfileUpdateOperation,
    UserProfileDocument,
)
from infrastructure.monitoring import MetricsCollector, get_logger
from intelligence.pattern_detector import PatternDetectionEngine
from intelligence.profile_updater import WeightedProfileUpdater
from knowledge.profile_store import ProfileStore
from optimization.cache_manager import evolution_key
from optimization.learning_throttle import EditBatcher, LearningRateLimiter
from services.atomic_profile_service import AtomicProfileUpdateService
from services.edit_metadata_service import EditMetadataStorageService
from services.profile_versioning_service import snapshot_operations

_LEARNED_SECTIONS = (
    "tone",
    "writing_traits",
    "structure_preferences",
    "common_phrases",
    "banned_phrases",
)

audit_log = get_logger(__name__)


class FeedbackLearningService:
    """
    Orchestrates pattern detection and weighted updates for one user at a time.

    Scheduled batch flushes run as background tasks owned by this service;
    call ``close()`` on shutdown to cancel the ones still pending.
    """

    def __init__(
        self,
        atomic_service: AtomicProfileUpdateService,
        profile_store: ProfileStore,
        edit_service: EditMetadataStorageService,
        pattern_engine: Optional[PatternDetectionEngine] = None,
        profile_updater: Optional[WeightedProfileUpdater] = None,
        rate_limiter: Optional[LearningRateLimiter] = None,
        batcher: Optional[EditBatcher] = None,
        learning_settings: Optional[LearningSettings] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self._settings = learning_settings or get_settings().learning
        self.atomic = atomic_service
        self.profiles = profile_store
        self.edits = edit_service
        self.patterns = pattern_engine or PatternDetectionEngine(self._settings)
        self.updater = profile_updater or WeightedProfileUpdater(self._settings)
        self.rate_limiter = rate_limiter or LearningRateLimiter(self._settings.rate_limit_seconds)
        self.batcher = batcher or EditBatcher(self.rate_limiter, self._settings)
        self.metrics = metrics
        self._flush_tasks: Set[asyncio.Task] = set()
        logger.debug("FeedbackLearningService initialized")

    # =========================================================================
    # EDIT SUBMISSION & BATCHING
    # =========================================================================

    async def submit_edit(self, user_id: str, content_id: str) -> LearningOutcome:
        """
        Route a freshly stored edit into the learning pipeline.

        Runs learning immediately when the user is not throttled; otherwise
        the edit joins the user's pending batch and a single flush is
        scheduled for when the throttle lifts.

        Returns:
            The learning outcome, or a ``batched`` skip
        """
        decision = self.batcher.submit(user_id, content_id)
        if decision.process_now:
            return await self.process_learning(user_id, decision.content_ids)

        if decision.schedule_flush:
            self._schedule_flush(user_id, decision.flush_delay)
        return LearningOutcome(user_id=user_id, skipped_reason=LearningSkipReason.BATCHED)

    def _schedule_flush(self, user_id: str, delay: float) -> None:
        task = asyncio.create_task(self._flush_after(user_id, delay))
        self._flush_tasks.add(task)
        task.add_done_callback(self._flush_tasks.discard)

    async def _flush_after(self, user_id: str, delay: float) -> None:
        await asyncio.sleep(delay)
        try:
            await self.flush_batch(user_id)
        except Exception as e:
            logger.error(f"Batched learning flush failed for user {user_id}")
            handle_exception(e, log_function=logger.error)

    async def flush_batch(self, user_id: str) -> Optional[LearningOutcome]:
        """Process the user's pending batch now; None when nothing is pending."""
        content_ids = self.batcher.drain(user_id)
        if not content_ids:
            return None
        logger.info(f"Processing batch of {len(content_ids)} edits for user {user_id}")
        return await self.process_learning(user_id, content_ids)

    @property
    def pending_flushes(self) -> int:
        return len(self._flush_tasks)

    async def close(self) -> None:
        """Cancel scheduled flushes that have not run yet."""
        tasks = list(self._flush_tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._flush_tasks.clear()

    # =========================================================================
    # LEARNING RUN
    # =========================================================================

    async def process_learning(
        self, user_id: str, content_ids: Iterable[str] = ()
    ) -> LearningOutcome:
        """
        Run one learning iteration for ``user_id``.

        Args:
            user_id: Profile owner
            content_ids: Edits that triggered the run; marked processed along
                with the analyzed window

        Returns:
            Outcome describing whether the profile was updated and why not
        """
        if not self.rate_limiter.try_reserve(user_id):
            logger.info(f"Rate limit hit for user {user_id}, skipping learning update")
            return self._skipped(user_id, LearningSkipReason.RATE_LIMITED)

        # the window stays claimed only by a run that applies an update
        outcome = None
        try:
            outcome = await self._run_learning(user_id, content_ids)
        finally:
            if outcome is None or not outcome.applied:
                self.rate_limiter.reset(user_id)
        return outcome

    async def _run_learning(self, user_id: str, content_ids: Iterable[str]) -> LearningOutcome:
        document = await self.profiles.load_by_user_id(user_id)
        if document is None:
            logger.warning(f"Learning requested for unknown user {user_id}")
            return self._skipped(user_id, LearningSkipReason.USER_NOT_FOUND)
        if not document.has_profile:
            logger.info(f"User {user_id} has no profile, skipping learning")
            return self._skipped(user_id, LearningSkipReason.NO_PROFILE)

        recent = await self.edits.get_recent_edits(user_id, limit=self._settings.recent_edits_limit)
        patterns = self.patterns.detect(recent)
        edit_count = await self.edits.get_edit_count(user_id)
        can_make_major_changes = edit_count >= self._settings.min_edits_for_major_changes

        result = await self.atomic.update_with(
            user_id,
            lambda doc: self._learning_operations(user_id, doc, patterns, can_make_major_changes),
        )
        if not result.success:
            logger.warning(
                f"Learning update for user {user_id} not applied: {result.error.message}"
            )
            if self.metrics:
                self.metrics.record_learning_run("failed")
            return LearningOutcome(
                user_id=user_id,
                skipped_reason=LearningSkipReason.UPDATE_FAILED,
                patterns=patterns,
                error=result.error,
            )

        consumed = list(dict.fromkeys([*(item.id for item in recent), *content_ids]))
        processed = await self.edits.mark_edits_as_processed(consumed)
        pruned = await self.edits.prune_old_edit_metadata(user_id)
        await self._invalidate_score(user_id)
        self.rate_limiter.record_update(user_id)

        iterations = result.user.style_profile.learning_iterations
        if self.metrics:
            self.metrics.record_learning_run("applied")
        logger.info(f"Updated profile for user {user_id} (iteration {iterations})")
        audit_log.info(
            "learning_run_applied",
            user_id=user_id,
            learning_iterations=iterations,
            edits_processed=processed,
            edits_pruned=pruned,
        )

        return LearningOutcome(
            user_id=user_id,
            applied=True,
            learning_iterations=iterations,
            patterns=patterns,
            edits_processed=processed,
            edits_pruned=pruned,
        )

    async def _invalidate_score(self, user_id: str) -> None:
        # the score reads edit history, which changed after the profile commit
        if self.atomic.cache is not None:
            await self.atomic.cache.invalidate(evolution_key(user_id))

    def _learning_operations(
        self,
        user_id: str,
        document: UserProfileDocument,
        patterns: PatternDetectionResult,
        can_make_major_changes: bool,
    ) -> List[ProfileUpdateOperation]:
        if not document.has_profile:
            raise NoProfileError(user_id)

        updated = self.updater.apply(
            document.style_profile,
            patterns,
            document.manual_overrides,
            can_make_major_changes=can_make_major_changes,
        )
        operations = snapshot_operations(
            document, VersionSource.FEEDBACK, self._settings.max_profile_versions
        )
        operations.extend(
            ProfileUpdateOperation(field=section, value=getattr(updated, section))
            for section in _LEARNED_SECTIONS
        )
        operations.append(
            ProfileUpdateOperation(
                field="learning_iterations", value=1, operation=UpdateOperator.INC
            )
        )
        return operations

    def _skipped(self, user_id: str, reason: LearningSkipReason) -> LearningOutcome:
        if self.metrics:
            self.metrics.record_learning_run(reason.value)
        return LearningOutcome(user_id=user_id, skipped_reason=reason)


__all__ = ["FeedbackLearningService"]
