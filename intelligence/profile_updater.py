"""
Weighted Profile Updater
========================
Folds detected patterns into a style profile as bounded, damped
adjustments while honoring manual overrides.

Rules:
- A pinned section is emitted exactly as pinned, whatever the patterns say.
- Sentence length moves a fixed fraction of the observed mean delta,
  rounded half up and clamped to the configured bounds. A step that
  rounds to zero words leaves the length unchanged.
- Emoji and CTA patterns are applied directly.
- Phrase candidates are appended without duplicates, keeping the newest.
- Tone is only nudged once the user has enough edits for major changes.

The updater is pure: it never touches a store and returns a new profile.
"""

import math
from typing import Optional

from loguru import logger

from config.constants import PROFILE_RANGES, TONE_SHIFT_ADJUSTMENTS
from config.settings import LearningSettings, get_settings
from core.enums import EndingStyle
from core.models import (
    ManualOverrides,
    PatternDetectionResult,
    Pinned,
    StructurePreferences,
    StyleProfile,
    ToneMetrics,
    WritingTraits,
)


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


def merge_phrases(existing: list[str], candidates: list[str], cap: int) -> list[str]:
    """Append unseen candidates and keep the ``cap`` most recent entries."""
    merged = list(existing)
    seen = set(merged)
    for phrase in candidates:
        if phrase not in seen:
            merged.append(phrase)
            seen.add(phrase)
    return merged[-cap:] if len(merged) > cap else merged


class WeightedProfileUpdater:
    """Applies pattern signals to a profile under manual-override constraints."""

    def __init__(self, learning_settings: Optional[LearningSettings] = None):
        self._settings = learning_settings or get_settings().learning

    def apply(
        self,
        profile: StyleProfile,
        patterns: PatternDetectionResult,
        overrides: Optional[ManualOverrides] = None,
        can_make_major_changes: bool = False,
    ) -> StyleProfile:
        """
        Compute the updated profile.

        Args:
            profile: Current committed profile
            patterns: Signals from the pattern detector
            overrides: Per-section pin state (all free when None)
            can_make_major_changes: Whether tone may be adjusted

        Returns:
            A new ``StyleProfile`` satisfying every range invariant
        """
        overrides = overrides or ManualOverrides()

        if isinstance(overrides.tone, Pinned):
            tone = overrides.tone.value.model_copy()
        else:
            tone = self._update_tone(profile.tone, patterns, can_make_major_changes)

        if isinstance(overrides.writing_traits, Pinned):
            traits = overrides.writing_traits.value.model_copy()
        else:
            traits = self._update_traits(profile.writing_traits, patterns)

        if isinstance(overrides.structure_preferences, Pinned):
            structure = overrides.structure_preferences.value.model_copy()
        else:
            structure = self._update_structure(profile.structure_preferences, patterns)

        cap = self._settings.max_phrases
        updated = profile.model_copy(
            update={
                "tone": tone,
                "writing_traits": traits,
                "structure_preferences": structure,
                "banned_phrases": merge_phrases(
                    profile.banned_phrases, patterns.banned_phrase_candidates, cap
                ),
                "common_phrases": merge_phrases(
                    profile.common_phrases, patterns.common_phrase_candidates, cap
                ),
            },
            deep=True,
        )
        # model_copy skips validation; round-trip to enforce the invariants
        return StyleProfile.model_validate(updated.model_dump())

    def _update_tone(
        self,
        tone: ToneMetrics,
        patterns: PatternDetectionResult,
        can_make_major_changes: bool,
    ) -> ToneMetrics:
        if not patterns.tone_pattern or not can_make_major_changes:
            return tone.model_copy()

        adjustment = TONE_SHIFT_ADJUSTMENTS.get(patterns.tone_pattern.lower())
        if adjustment is None:
            logger.debug(f"Ignoring unrecognized tone shift '{patterns.tone_pattern}'")
            return tone.model_copy()

        metric, step = adjustment
        current = getattr(tone, metric)
        return tone.model_copy(
            update={
                metric: _clamp(current + step, PROFILE_RANGES.TONE_MIN, PROFILE_RANGES.TONE_MAX)
            }
        )

    def _update_traits(
        self, traits: WritingTraits, patterns: PatternDetectionResult
    ) -> WritingTraits:
        changes = {}

        if patterns.sentence_length_pattern:
            changes["avg_sentence_length"] = self.adjust_sentence_length(
                traits.avg_sentence_length, patterns.sentence_length_pattern
            )

        if patterns.emoji_pattern and patterns.emoji_pattern.should_use:
            changes["uses_emojis"] = True
            changes["emoji_frequency"] = _clamp(
                patterns.emoji_pattern.frequency,
                PROFILE_RANGES.EMOJI_FREQUENCY_MIN,
                PROFILE_RANGES.EMOJI_FREQUENCY_MAX,
            )

        return traits.model_copy(update=changes)

    def _update_structure(
        self, structure: StructurePreferences, patterns: PatternDetectionResult
    ) -> StructurePreferences:
        if patterns.cta_pattern:
            return structure.model_copy(update={"ending_style": EndingStyle.CTA})
        return structure.model_copy()

    def adjust_sentence_length(self, current: int, pattern: float) -> int:
        """Move ``current`` a damped step in the direction of ``pattern``."""
        step = abs(pattern) * self._settings.adjustment_percentage
        magnitude = math.floor(step + 0.5)
        proposed = current + magnitude if pattern > 0 else current - magnitude
        return _clamp(
            proposed, self._settings.sentence_length_min, self._settings.sentence_length_max
        )


__all__ = ["WeightedProfileUpdater", "merge_phrases"]
