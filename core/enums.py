"""
Domain Enumerations & Type Taxonomy
====================================
Exhaustive type-safe enumerations for voice profile modeling with
first-class support for serialization and exhaustive branching.

Architecture: Type-Driven Design + ADT (Algebraic Data Types)
"""

from enum import Enum, IntEnum


class VoiceType(str, Enum):
    """
    Dominant voice of a user's writing.

    String enum for JSON serialization compatibility and
    document storage without integer mapping fragility.
    """

    EDUCATIONAL = "educational"
    STORYTELLING = "storytelling"
    OPINIONATED = "opinionated"
    ANALYTICAL = "analytical"
    CASUAL = "casual"
    PROFESSIONAL = "professional"

    def __str__(self) -> str:
        """Human-readable representation."""
        return self.value.title()


class IntroStyle(str, Enum):
    """How a post opens."""

    HOOK = "hook"
    STORY = "story"
    PROBLEM = "problem"
    STATEMENT = "statement"


class BodyStyle(str, Enum):
    """How a post develops its point."""

    STEPS = "steps"
    NARRATIVE = "narrative"
    ANALYSIS = "analysis"
    BULLETS = "bullets"


class EndingStyle(str, Enum):
    """How a post closes."""

    CTA = "cta"  # Call-to-action
    REFLECTION = "reflection"
    SUMMARY = "summary"
    QUESTION = "question"


class VocabularyLevel(str, Enum):
    """Lexical sophistication of generated text."""

    SIMPLE = "simple"
    MEDIUM = "medium"
    ADVANCED = "advanced"


class ProfileSource(str, Enum):
    """Provenance tag of a style profile."""

    MANUAL = "manual"
    FILE = "file"
    FEEDBACK = "feedback"
    ARCHETYPE = "archetype"


class VersionSource(str, Enum):
    """Why a profile version snapshot was taken."""

    MANUAL = "manual"
    FEEDBACK = "feedback"
    ARCHETYPE = "archetype"
    ROLLBACK = "rollback"


class Platform(str, Enum):
    """Social platforms that generated content targets."""

    LINKEDIN = "linkedin"
    X = "x"


class UpdateOperator(str, Enum):
    """
    Field-level mutation operators understood by the profile store.

    SET replaces a value, INC adds a numeric delta, PUSH appends to a
    list, PULL removes every equal element from a list.
    """

    SET = "set"
    INC = "inc"
    PUSH = "push"
    PULL = "pull"


class UpdateErrorKind(str, Enum):
    """
    Discriminator for failed profile updates.

    Reported in results instead of raised so callers can branch
    without exception-based control flow.
    """

    NOT_FOUND = "not_found"
    VALIDATION = "validation"
    CONCURRENCY = "concurrency"
    LOCK = "lock"


class WriteStatus(str, Enum):
    """Outcome of a version-checked conditional write."""

    APPLIED = "applied"
    VERSION_MISMATCH = "version_mismatch"
    NOT_FOUND = "not_found"


class MilestoneType(str, Enum):
    """Evolution timeline milestone categories."""

    PROFILE_CREATED = "profile_created"
    FIRST_EDIT = "first_edit"
    ITERATIONS_5 = "iterations_5"
    ITERATIONS_10 = "iterations_10"
    ITERATIONS_25 = "iterations_25"
    ITERATIONS_50 = "iterations_50"

    @classmethod
    def for_iterations(cls, threshold: int) -> "MilestoneType":
        """Map an iteration threshold to its milestone."""
        return cls(f"iterations_{threshold}")


class LearningSkipReason(str, Enum):
    """Why a learning run did not update the profile."""

    RATE_LIMITED = "rate_limited"
    USER_NOT_FOUND = "user_not_found"
    NO_PROFILE = "no_profile"
    BATCHED = "batched"
    UPDATE_FAILED = "update_failed"


class ErrorSeverity(IntEnum):
    """
    Error classification by impact severity.

    Attached to every raised application error.
    """

    CRITICAL = 5  # System failure, immediate intervention required
    ERROR = 4  # Operation failed, automatic retry possible
    WARNING = 3  # Degraded performance, monitoring needed
    INFO = 2  # Notable event, no action required
    DEBUG = 1  # Diagnostic information


__all__ = [
    "VoiceType",
    "IntroStyle",
    "BodyStyle",
    "EndingStyle",
    "VocabularyLevel",
    "ProfileSource",
    "VersionSource",
    "Platform",
    "UpdateOperator",
    "UpdateErrorKind",
    "WriteStatus",
    "MilestoneType",
    "LearningSkipReason",
    "ErrorSeverity",
]
