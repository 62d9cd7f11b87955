"""
Evolution Scoring Engine
========================
Summarizes how mature a user's voice profile is.

Score components (each capped, total clamped to [0, 100] and rounded):
- Initial samples: 20 points when sample posts were provided
- Feedback iterations: linear ramp to 40 points at 10 learning iterations
- Profile completeness: 10 points each for common and banned phrases
- Edit consistency: linear ramp to 20 points at 10 processed edits

Scores are read cache-aside from ``evolution:{user_id}``; writes to the
profile invalidate that key.
"""

from typing import List, Optional

from loguru import logger

from config.constants import (
    EVOLUTION_WEIGHTS,
    MILESTONE_DESCRIPTIONS,
    MILESTONE_ITERATIONS,
    NO_TONE_CHANGE,
)
from core.enums import MilestoneType
from core.exceptions import NoProfileError
from core.models import (
    AnalyticsSummary,
    BeforeAfterExample,
    ContentItem,
    EditMetadata,
    Milestone,
    StyleProfile,
)
from infrastructure.monitoring import MetricsCollector
from knowledge.content_store import ContentStore
from knowledge.profile_store import ProfileStore
from optimization.cache_manager import CacheManager


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}" if count == 1 else f"{count} {noun}s"


def describe_improvements(metadata: EditMetadata) -> List[str]:
    """Human-readable list of what an edit changed, one entry per changed dimension."""
    improvements: List[str] = []

    if metadata.sentence_length_delta:
        direction = "longer" if metadata.sentence_length_delta > 0 else "shorter"
        improvements.append(f"Made sentences {direction}")

    emoji = metadata.emoji_changes
    if emoji.net_change > 0:
        improvements.append(f"Added {_plural(emoji.added, 'emoji')}")
    elif emoji.net_change < 0:
        improvements.append(f"Removed {_plural(emoji.removed, 'emoji')}")

    if metadata.structure_changes.bullets_added:
        improvements.append("Added bullet points")

    if metadata.tone_shift and metadata.tone_shift != NO_TONE_CHANGE:
        improvements.append(f"Tone shift: {metadata.tone_shift}")

    if metadata.phrases_added:
        improvements.append(f"Added {_plural(len(metadata.phrases_added), 'phrase')}")
    if metadata.phrases_removed:
        improvements.append(f"Removed {_plural(len(metadata.phrases_removed), 'phrase')}")

    return improvements


class EvolutionScoringEngine:
    """
    Computes evolution scores, milestone timelines and analytics.

    Read-only over the profile and content stores. Missing data yields zero
    or empty results; only ``get_analytics`` requires a profile.
    """

    def __init__(
        self,
        profile_store: ProfileStore,
        content_store: ContentStore,
        cache: Optional[CacheManager] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.profile_store = profile_store
        self.content_store = content_store
        self.cache = cache
        self.metrics = metrics

    # =========================================================================
    # SCORE
    # =========================================================================

    @staticmethod
    def score_profile(profile: Optional[StyleProfile], processed_edits: int) -> int:
        """
        Pure score computation.

        Args:
            profile: Style profile, or None
            processed_edits: Edits already consumed by learning

        Returns:
            Integer score in [0, 100]; 0 without a profile
        """
        if profile is None:
            return 0

        w = EVOLUTION_WEIGHTS
        score = 0.0
        if profile.sample_posts:
            score += w.INITIAL_SAMPLES
        score += min(profile.learning_iterations / w.ITERATIONS_FOR_FULL_CREDIT, 1.0) * (
            w.FEEDBACK_ITERATIONS
        )
        if profile.common_phrases:
            score += w.COMMON_PHRASES
        if profile.banned_phrases:
            score += w.BANNED_PHRASES
        score += min(processed_edits / w.PROCESSED_EDITS_FOR_FULL_CREDIT, 1.0) * (
            w.EDIT_CONSISTENCY
        )
        return int(max(0, min(w.MAX_SCORE, round(score))))

    async def calculate_evolution_score(self, user_id: str) -> int:
        """Cache-aside evolution score for ``user_id``."""
        if self.cache is not None:
            cached = await self.cache.get_evolution_score(user_id)
            if cached is not None:
                return cached

        document = await self.profile_store.find_by_id(user_id)
        if document is None or not document.has_profile:
            return 0

        processed = await self.content_store.count_edited(user_id, processed=True)
        score = self.score_profile(document.style_profile, processed)
        if self.metrics:
            self.metrics.record_score_computation()

        if self.cache is not None:
            await self.cache.set_evolution_score(user_id, score)
        logger.debug(f"Evolution score for {user_id}: {score}")
        return score

    # =========================================================================
    # TIMELINE
    # =========================================================================

    @staticmethod
    def _milestone(milestone_type: MilestoneType, timestamp) -> Milestone:
        return Milestone(
            type=milestone_type,
            description=MILESTONE_DESCRIPTIONS[milestone_type.value],
            timestamp=timestamp,
        )

    async def get_evolution_timeline(self, user_id: str) -> List[Milestone]:
        """
        Milestones reached by the user, in progression order.

        Iteration milestones are dated by the N-th processed edit when it
        exists, otherwise by the profile's last update.
        """
        document = await self.profile_store.find_by_id(user_id)
        if document is None or not document.has_profile:
            return []

        profile = document.style_profile
        processed: List[ContentItem] = await self.content_store.find_edited(
            user_id, processed=True, newest_first=False
        )

        milestones = [self._milestone(MilestoneType.PROFILE_CREATED, profile.last_updated)]
        if processed:
            milestones.append(
                self._milestone(MilestoneType.FIRST_EDIT, processed[0].edit_metadata.edit_timestamp)
            )

        for threshold in MILESTONE_ITERATIONS:
            if profile.learning_iterations < threshold:
                break
            timestamp = (
                processed[threshold - 1].edit_metadata.edit_timestamp
                if len(processed) >= threshold
                else profile.last_updated
            )
            milestones.append(self._milestone(MilestoneType.for_iterations(threshold), timestamp))

        return milestones

    # =========================================================================
    # ANALYTICS
    # =========================================================================

    async def get_analytics(self, user_id: str) -> AnalyticsSummary:
        """
        Full maturity report.

        Raises:
            NoProfileError: User missing or without a style profile
        """
        document = await self.profile_store.find_by_id(user_id)
        if document is None or not document.has_profile:
            raise NoProfileError(user_id)

        profile = document.style_profile
        return AnalyticsSummary(
            evolution_score=await self.calculate_evolution_score(user_id),
            total_edits=await self.content_store.count_edited(user_id),
            learning_iterations=profile.learning_iterations,
            tone=profile.tone,
            common_phrases=list(profile.common_phrases),
            banned_phrases=list(profile.banned_phrases),
            writing_traits=profile.writing_traits,
            profile_source=profile.profile_source,
            has_initial_samples=bool(profile.sample_posts),
        )

    async def get_before_after_examples(
        self, user_id: str, limit: int = 5
    ) -> List[BeforeAfterExample]:
        """Most recent edits as before/after pairs with derived improvements."""
        edits = await self.content_store.find_edited(user_id, limit=limit)
        return [
            BeforeAfterExample(
                before=item.edit_metadata.original_content,
                after=item.text,
                platform=item.platform,
                improvements=describe_improvements(item.edit_metadata),
                edited_at=item.edit_metadata.edit_timestamp,
            )
            for item in edits
        ]


__all__ = ["EvolutionScoringEngine", "describe_improvements"]
