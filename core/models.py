"""
Domain Data Models
==================
Complete Pydantic v2 schema definitions with:
- Type-safe validation and coercion
- Range invariants enforced on construction and assignment
- Computed properties and derived fields
- Discriminated results for profile mutations

Architecture: Domain-Driven Design + Value Objects
"""

from datetime import datetime, timezone
from typing import Annotated, Any, Generic, Literal, Optional, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from config.constants import NO_TONE_CHANGE, PROFILE_RANGES
from core.enums import (
    BodyStyle,
    EndingStyle,
    IntroStyle,
    LearningSkipReason,
    MilestoneType,
    Platform,
    ProfileSource,
    UpdateErrorKind,
    UpdateOperator,
    VersionSource,
    VocabularyLevel,
    VoiceType,
)


def utc_now() -> datetime:
    """Timezone-aware current timestamp used for every profile write."""
    return datetime.now(timezone.utc)


# =============================================================================
# CONFIGURATION
# =============================================================================


class BaseModelConfig(BaseModel):
    """Base configuration for all models."""

    model_config = ConfigDict(
        validate_assignment=True,  # Validate on field updates
        use_enum_values=False,  # Keep enum types (don't convert to strings)
        populate_by_name=True,
    )


# =============================================================================
# STYLE PROFILE MODELS
# =============================================================================


class ToneMetrics(BaseModelConfig):
    """Five tone dials, each strictly within [1, 10]."""

    formality: int = Field(default=5, ge=PROFILE_RANGES.TONE_MIN, le=PROFILE_RANGES.TONE_MAX)
    enthusiasm: int = Field(default=5, ge=PROFILE_RANGES.TONE_MIN, le=PROFILE_RANGES.TONE_MAX)
    directness: int = Field(default=5, ge=PROFILE_RANGES.TONE_MIN, le=PROFILE_RANGES.TONE_MAX)
    humor: int = Field(default=5, ge=PROFILE_RANGES.TONE_MIN, le=PROFILE_RANGES.TONE_MAX)
    emotionality: int = Field(default=5, ge=PROFILE_RANGES.TONE_MIN, le=PROFILE_RANGES.TONE_MAX)


class WritingTraits(BaseModelConfig):
    """Surface-level writing habits."""

    avg_sentence_length: int = Field(default=15, gt=0)
    uses_questions_often: bool = False
    uses_emojis: bool = False
    uses_bullet_points: bool = False
    uses_short_paragraphs: bool = True
    uses_hooks: bool = True
    emoji_frequency: int = Field(
        default=0,
        ge=PROFILE_RANGES.EMOJI_FREQUENCY_MIN,
        le=PROFILE_RANGES.EMOJI_FREQUENCY_MAX,
    )


class StructurePreferences(BaseModelConfig):
    """Preferred shape of a post."""

    intro_style: IntroStyle = IntroStyle.HOOK
    body_style: BodyStyle = BodyStyle.NARRATIVE
    ending_style: EndingStyle = EndingStyle.QUESTION


class StyleProfile(BaseModelConfig):
    """
    A user's learned writing voice.

    Owned by exactly one user document. Every write goes through the atomic
    update path, which re-validates the complete profile, so the range
    invariants declared here hold for every persisted state.
    """

    voice_type: VoiceType = VoiceType.PROFESSIONAL
    tone: ToneMetrics = Field(default_factory=ToneMetrics)
    writing_traits: WritingTraits = Field(default_factory=WritingTraits)
    structure_preferences: StructurePreferences = Field(default_factory=StructurePreferences)
    vocabulary_level: VocabularyLevel = VocabularyLevel.MEDIUM
    common_phrases: list[str] = Field(default_factory=list)
    banned_phrases: list[str] = Field(default_factory=list)
    sample_posts: list[str] = Field(default_factory=list)
    learning_iterations: int = Field(default=0, ge=0)
    last_updated: datetime = Field(default_factory=utc_now)
    profile_source: ProfileSource = ProfileSource.MANUAL
    archetype_base: Optional[str] = None

    @field_validator("common_phrases", "banned_phrases", "sample_posts", mode="before")
    @classmethod
    def coerce_null_list(cls, v: Any) -> Any:
        """Lists may be empty but never null."""
        return [] if v is None else v

    @computed_field
    @property
    def has_initial_samples(self) -> bool:
        """Whether the user supplied sample posts at onboarding."""
        return len(self.sample_posts) > 0


# =============================================================================
# MANUAL OVERRIDES (pinned vs. free sections)
# =============================================================================

SectionT = TypeVar("SectionT", ToneMetrics, WritingTraits, StructurePreferences)


class Pinned(BaseModel, Generic[SectionT]):
    """A profile section frozen to the user's chosen value."""

    kind: Literal["pinned"] = "pinned"
    value: SectionT


class Free(BaseModel):
    """A profile section the learning pipeline may adjust."""

    kind: Literal["free"] = "free"


ToneOverride = Annotated[Union[Pinned[ToneMetrics], Free], Field(discriminator="kind")]
TraitsOverride = Annotated[Union[Pinned[WritingTraits], Free], Field(discriminator="kind")]
StructureOverride = Annotated[
    Union[Pinned[StructurePreferences], Free], Field(discriminator="kind")
]


class ManualOverrides(BaseModelConfig):
    """
    Per-section pin state chosen by the user.

    Each section is either ``Pinned`` with the exact value to keep, or
    ``Free``. The learning pipeline must never touch a pinned section.
    """

    tone: ToneOverride = Field(default_factory=Free)
    writing_traits: TraitsOverride = Field(default_factory=Free)
    structure_preferences: StructureOverride = Field(default_factory=Free)

    @classmethod
    def pin(
        cls,
        *,
        tone: Optional[ToneMetrics] = None,
        writing_traits: Optional[WritingTraits] = None,
        structure_preferences: Optional[StructurePreferences] = None,
    ) -> "ManualOverrides":
        """Build overrides pinning the given sections and freeing the rest."""
        return cls(
            tone=Pinned[ToneMetrics](value=tone) if tone is not None else Free(),
            writing_traits=(
                Pinned[WritingTraits](value=writing_traits)
                if writing_traits is not None
                else Free()
            ),
            structure_preferences=(
                Pinned[StructurePreferences](value=structure_preferences)
                if structure_preferences is not None
                else Free()
            ),
        )

    @computed_field
    @property
    def pinned_sections(self) -> list[str]:
        return [
            name
            for name in ("tone", "writing_traits", "structure_preferences")
            if isinstance(getattr(self, name), Pinned)
        ]


# =============================================================================
# DOCUMENT MODELS
# =============================================================================


class ProfileVersion(BaseModelConfig):
    """Point-in-time snapshot of a style profile."""

    profile: StyleProfile
    timestamp: datetime = Field(default_factory=utc_now)
    source: VersionSource = VersionSource.MANUAL
    learning_iterations: int = Field(default=0, ge=0)


class UserProfileDocument(BaseModelConfig):
    """
    Store document holding one user's profile state.

    ``version`` is the optimistic-concurrency counter, bumped by the store
    on every successful conditional write and never by callers.
    """

    user_id: str = Field(..., min_length=1)
    style_profile: Optional[StyleProfile] = None
    manual_overrides: ManualOverrides = Field(default_factory=ManualOverrides)
    profile_versions: list[ProfileVersion] = Field(default_factory=list)
    version: int = Field(default=0, ge=0)

    @computed_field
    @property
    def has_profile(self) -> bool:
        return self.style_profile is not None


# =============================================================================
# EDIT METADATA MODELS
# =============================================================================


class EmojiChanges(BaseModelConfig):
    added: int = Field(default=0, ge=0)
    removed: int = Field(default=0, ge=0)
    net_change: int = 0


class StructureChanges(BaseModelConfig):
    paragraphs_added: int = Field(default=0, ge=0)
    paragraphs_removed: int = Field(default=0, ge=0)
    bullets_added: bool = False
    formatting_changes: list[str] = Field(default_factory=list)


class WordSubstitution(BaseModelConfig):
    original: str
    replacement: str


class VocabularyChanges(BaseModelConfig):
    words_substituted: list[WordSubstitution] = Field(default_factory=list)
    complexity_shift: int = 0


class StyleDelta(BaseModelConfig):
    """Style differences extracted from one original/edited pair."""

    sentence_length_delta: float = 0.0
    emoji_changes: EmojiChanges = Field(default_factory=EmojiChanges)
    structure_changes: StructureChanges = Field(default_factory=StructureChanges)
    tone_shift: str = NO_TONE_CHANGE
    vocabulary_changes: VocabularyChanges = Field(default_factory=VocabularyChanges)
    phrases_added: list[str] = Field(default_factory=list)
    phrases_removed: list[str] = Field(default_factory=list)


class EditMetadata(StyleDelta):
    """
    Immutable record of one user edit of generated content.

    ``learning_processed`` is the only field that changes after creation;
    it flips to True once the learning pipeline has consumed the edit.
    """

    original_content: str = ""
    original_length: int = Field(default=0, ge=0)
    edited_length: int = Field(default=0, ge=0)
    edit_timestamp: datetime = Field(default_factory=utc_now)
    learning_processed: bool = False

    @computed_field
    @property
    def length_delta(self) -> int:
        return self.edited_length - self.original_length


class ContentItem(BaseModelConfig):
    """Generated post owned by a user, optionally carrying edit metadata."""

    id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    platform: Platform = Platform.LINKEDIN
    text: str = ""
    created_at: datetime = Field(default_factory=utc_now)
    edit_metadata: Optional[EditMetadata] = None

    @computed_field
    @property
    def is_edited(self) -> bool:
        return self.edit_metadata is not None


# =============================================================================
# PATTERN MODELS
# =============================================================================


class EmojiPattern(BaseModelConfig):
    should_use: bool
    frequency: int = Field(
        ge=PROFILE_RANGES.EMOJI_FREQUENCY_MIN, le=PROFILE_RANGES.EMOJI_FREQUENCY_MAX
    )


class PatternDetectionResult(BaseModelConfig):
    """Signals consistent enough across recent edits to justify a profile change."""

    sentence_length_pattern: Optional[float] = None
    emoji_pattern: Optional[EmojiPattern] = None
    cta_pattern: bool = False
    tone_pattern: Optional[str] = None
    banned_phrase_candidates: list[str] = Field(default_factory=list)
    common_phrase_candidates: list[str] = Field(default_factory=list)
    edits_analyzed: int = Field(default=0, ge=0)

    @computed_field
    @property
    def has_patterns(self) -> bool:
        return bool(
            self.sentence_length_pattern is not None
            or self.emoji_pattern is not None
            or self.cta_pattern
            or self.tone_pattern
            or self.banned_phrase_candidates
            or self.common_phrase_candidates
        )


class FrequencyEntry(BaseModelConfig):
    value: str
    count: int = Field(ge=0)


class StructureTotals(BaseModelConfig):
    paragraphs_added: int = 0
    paragraphs_removed: int = 0
    bullets_added: int = 0


class PatternSummary(BaseModelConfig):
    """Aggregate statistics over a user's most recent edits."""

    total_edits: int = 0
    avg_sentence_length_delta: float = 0.0
    emoji_changes: EmojiChanges = Field(default_factory=EmojiChanges)
    tone_shifts: list[FrequencyEntry] = Field(default_factory=list)
    phrases_added: list[FrequencyEntry] = Field(default_factory=list)
    phrases_removed: list[FrequencyEntry] = Field(default_factory=list)
    structure_changes: StructureTotals = Field(default_factory=StructureTotals)


# =============================================================================
# UPDATE OPERATION & RESULT MODELS
# =============================================================================


class ProfileUpdateOperation(BaseModelConfig):
    """
    One field-level mutation.

    ``field`` is a dotted path relative to the style profile
    (``tone.formality``) or one of the document-level targets
    ``style_profile``, ``manual_overrides``, ``profile_versions``.
    """

    field: str = Field(..., min_length=1)
    value: Any = None
    operation: UpdateOperator = UpdateOperator.SET


class UpdateError(BaseModelConfig):
    kind: UpdateErrorKind
    message: str
    error_code: Optional[str] = None
    context: dict[str, Any] = Field(default_factory=dict)


class AtomicUpdateResult(BaseModelConfig):
    """Discriminated outcome of an atomic profile update."""

    success: bool
    user: Optional[UserProfileDocument] = None
    retries: int = Field(default=0, ge=0)
    error: Optional[UpdateError] = None

    @classmethod
    def ok(cls, user: UserProfileDocument, retries: int = 0) -> "AtomicUpdateResult":
        return cls(success=True, user=user, retries=retries)

    @classmethod
    def failure(cls, exc: Exception, retries: int = 0) -> "AtomicUpdateResult":
        """Translate a profile update exception into a failed result."""
        kind = getattr(exc, "kind", UpdateErrorKind.VALIDATION)
        return cls(
            success=False,
            retries=retries,
            error=UpdateError(
                kind=kind,
                message=getattr(exc, "message", str(exc)),
                error_code=getattr(exc, "error_code", None),
                context=getattr(exc, "context", {}),
            ),
        )

    @computed_field
    @property
    def error_kind(self) -> Optional[UpdateErrorKind]:
        return self.error.kind if self.error else None


# =============================================================================
# EVOLUTION MODELS
# =============================================================================


class Milestone(BaseModelConfig):
    type: MilestoneType
    description: str
    timestamp: datetime


class AnalyticsSummary(BaseModelConfig):
    """Profile maturity report for one user."""

    evolution_score: int = Field(ge=0, le=100)
    total_edits: int = Field(ge=0)
    learning_iterations: int = Field(ge=0)
    tone: ToneMetrics
    common_phrases: list[str]
    banned_phrases: list[str]
    writing_traits: WritingTraits
    profile_source: ProfileSource
    has_initial_samples: bool


class BeforeAfterExample(BaseModelConfig):
    before: str
    after: str
    platform: Platform
    improvements: list[str] = Field(default_factory=list)
    edited_at: Optional[datetime] = None


class LearningOutcome(BaseModelConfig):
    """Result of one feedback learning run."""

    user_id: str
    applied: bool = False
    skipped_reason: Optional[LearningSkipReason] = None
    learning_iterations: Optional[int] = None
    patterns: Optional[PatternDetectionResult] = None
    edits_processed: int = 0
    edits_pruned: int = 0
    error: Optional[UpdateError] = None


__all__ = [
    "utc_now",
    "BaseModelConfig",
    "ToneMetrics",
    "WritingTraits",
    "StructurePreferences",
    "StyleProfile",
    "Pinned",
    "Free",
    "ManualOverrides",
    "ProfileVersion",
    "UserProfileDocument",
    "EmojiChanges",
    "StructureChanges",
    "WordSubstitution",
    "VocabularyChanges",
    "StyleDelta",
    "EditMetadata",
    "ContentItem",
    "EmojiPattern",
    "PatternDetectionResult",
    "FrequencyEntry",
    "StructureTotals",
    "PatternSummary",
    "ProfileUpdateOperation",
    "UpdateError",
    "AtomicUpdateResult",
    "Milestone",
    "AnalyticsSummary",
    "BeforeAfterExample",
    "LearningOutcome",
]
