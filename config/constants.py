"""
System Constants & Invariants
==============================
Immutable domain constants defining profile value ranges, evolution
scoring weights, milestone thresholds and call-to-action cues.

Architecture: Value Objects + Namespace Organization
"""

from dataclasses import dataclass
from typing import Final

# =============================================================================
# PROFILE VALUE RANGES
# =============================================================================


@dataclass(frozen=True)
class ProfileRanges:
    """Closed numeric ranges enforced on every profile write."""

    TONE_MIN: int = 1
    TONE_MAX: int = 10
    EMOJI_FREQUENCY_MIN: int = 0
    EMOJI_FREQUENCY_MAX: int = 5


PROFILE_RANGES: Final = ProfileRanges()


# =============================================================================
# EVOLUTION SCORING
# =============================================================================


@dataclass(frozen=True)
class EvolutionScoreWeights:
    """
    Point allocation of the four evolution score components (20/40/20/20).

    Completeness is split evenly between common and banned phrases; edit
    consistency ramps linearly with the number of processed edits.
    """

    MAX_SCORE: int = 100
    INITIAL_SAMPLES: float = 20.0
    FEEDBACK_ITERATIONS: float = 40.0
    ITERATIONS_FOR_FULL_CREDIT: int = 10
    COMMON_PHRASES: float = 10.0
    BANNED_PHRASES: float = 10.0
    EDIT_CONSISTENCY: float = 20.0
    PROCESSED_EDITS_FOR_FULL_CREDIT: int = 10


EVOLUTION_WEIGHTS: Final = EvolutionScoreWeights()

# Learning-iteration thresholds that produce timeline milestones
MILESTONE_ITERATIONS: Final[tuple[int, ...]] = (5, 10, 25, 50)

MILESTONE_DESCRIPTIONS: Final[dict[str, str]] = {
    "profile_created": "Voice profile created",
    "first_edit": "First content edit - learning begins",
    "iterations_5": "5 learning iterations completed",
    "iterations_10": "10 learning iterations - voice well-trained",
    "iterations_25": "25 learning iterations - expert voice matching",
    "iterations_50": "50 learning iterations - master level",
}


# =============================================================================
# EDIT PATTERN VOCABULARY
# =============================================================================

# Substrings that mark an added phrase as call-to-action language
CTA_CUES: Final[tuple[str, ...]] = (
    "check out",
    "learn more",
    "click",
    "visit",
    "try",
    "get started",
    "sign up",
    "subscribe",
    "link in",
    "read more",
    "join",
)

NO_TONE_CHANGE: Final = "no change"

# Tone-shift label -> (tone metric, step)
TONE_SHIFT_ADJUSTMENTS: Final[dict[str, tuple[str, int]]] = {
    "more casual": ("formality", -1),
    "more professional": ("formality", 1),
    "more enthusiastic": ("enthusiasm", 1),
    "more subdued": ("enthusiasm", -1),
    "more direct": ("directness", 1),
    "more indirect": ("directness", -1),
    "more humorous": ("humor", 1),
    "more serious": ("humor", -1),
}

# Thread edit aggregation caps
MAX_THREAD_PHRASES: Final = 10
MAX_THREAD_SUBSTITUTIONS: Final = 10


# =============================================================================
# CACHE KEYS
# =============================================================================

PROFILE_CACHE_PREFIX: Final = "profile:"
EVOLUTION_SCORE_CACHE_PREFIX: Final = "evolution:"


__all__ = [
    "PROFILE_RANGES",
    "EVOLUTION_WEIGHTS",
    "MILESTONE_ITERATIONS",
    "MILESTONE_DESCRIPTIONS",
    "CTA_CUES",
    "NO_TONE_CHANGE",
    "TONE_SHIFT_ADJUSTMENTS",
    "MAX_THREAD_PHRASES",
    "MAX_THREAD_SUBSTITUTIONS",
    "PROFILE_CACHE_PREFIX",
    "EVOLUTION_SCORE_CACHE_PREFIX",
]
