"""Consistent-signal detection over a user's recent edit window."""

import math
from collections import Counter
from typing import Iterable, List, Optional, Sequence

import numpy as np
from loguru import logger

from config.constants import CTA_CUES, NO_TONE_CHANGE
from config.settings import LearningSettings, get_settings
from core.models import ContentItem, EditMetadata, EmojiPattern, PatternDetectionResult


def _edit_records(edits: Iterable) -> List[EditMetadata]:
    records = []
    for edit in edits:
        metadata = edit.edit_metadata if isinstance(edit, ContentItem) else edit
        if metadata is not None:
            records.append(metadata)
    return records


def is_call_to_action(phrase: str, cues: Sequence[str] = CTA_CUES) -> bool:
    lowered = phrase.lower()
    return any(cue in lowered for cue in cues)


class PatternDetectionEngine:
    """
    Turns a window of edit records into candidate profile signals.

    Every detector has a minimum-consistency threshold so that one-off
    edits never move the profile. Phrase detectors count *distinct edits*
    and match phrases exactly.
    """

    def __init__(self, learning_settings: Optional[LearningSettings] = None) -> None:
        """Initialize detector thresholds.

        Args:
            learning_settings: Threshold overrides; process settings when omitted.
        """
        self._settings = learning_settings or get_settings().learning

    @property
    def min_consistent_edits(self) -> int:
        return self._settings.min_edits_for_pattern_detection

    def detect(self, edits: Iterable) -> PatternDetectionResult:
        """Run every detector over the window.

        Args:
            edits: Content items or edit metadata, most recent first.

        Returns:
            Detected patterns; an empty result for an empty window.
        """
        records = _edit_records(edits)
        if not records:
            return PatternDetectionResult()

        result = PatternDetectionResult(
            sentence_length_pattern=self.detect_sentence_length(records),
            emoji_pattern=self.detect_emoji(records),
            cta_pattern=self.detect_cta(records),
            tone_pattern=self.detect_tone(records),
            banned_phrase_candidates=self.detect_banned_phrases(records),
            common_phrase_candidates=self.detect_common_phrases(records),
            edits_analyzed=len(records),
        )
        logger.debug(
            f"Detected patterns over {len(records)} edits: "
            f"{result.model_dump(exclude={'edits_analyzed'})}"
        )
        return result

    def detect_sentence_length(self, records: Sequence[EditMetadata]) -> Optional[float]:
        """Mean delta of the dominant sign, if enough edits agree on it."""
        deltas = np.array([r.sentence_length_delta for r in records], dtype=float)
        longer = deltas[deltas > 0]
        shorter = deltas[deltas < 0]

        threshold = self.min_consistent_edits
        if len(longer) == len(shorter):
            return None
        dominant = longer if len(longer) > len(shorter) else shorter
        if len(dominant) < threshold:
            return None
        return float(np.mean(dominant))

    def detect_emoji(self, records: Sequence[EditMetadata]) -> Optional[EmojiPattern]:
        adding = [r for r in records if r.emoji_changes.net_change > 0]
        if len(adding) < self.min_consistent_edits:
            return None

        average_added = float(np.mean([r.emoji_changes.added for r in records]))
        frequency = min(5, max(1, math.ceil(average_added)))
        return EmojiPattern(should_use=True, frequency=frequency)

    def detect_cta(self, records: Sequence[EditMetadata]) -> bool:
        adding_cta = sum(
            1 for r in records if any(is_call_to_action(phrase) for phrase in r.phrases_added)
        )
        return adding_cta >= self.min_consistent_edits

    def detect_tone(self, records: Sequence[EditMetadata]) -> Optional[str]:
        shifts = [r.tone_shift for r in records if r.tone_shift and r.tone_shift != NO_TONE_CHANGE]
        if len(shifts) < self.min_consistent_edits:
            return None
        # Counter.most_common keeps first-seen order on ties, i.e. the most recent edit wins
        return Counter(shifts).most_common(1)[0][0]

    def detect_banned_phrases(self, records: Sequence[EditMetadata]) -> List[str]:
        return self._phrases_in_distinct_edits(
            (r.phrases_removed for r in records), self._settings.min_edits_for_banned_phrases
        )

    def detect_common_phrases(self, records: Sequence[EditMetadata]) -> List[str]:
        return self._phrases_in_distinct_edits(
            (r.phrases_added for r in records), self._settings.min_edits_for_common_phrases
        )

    @staticmethod
    def _phrases_in_distinct_edits(
        phrase_lists: Iterable[Sequence[str]], minimum: int
    ) -> List[str]:
        counts: Counter = Counter()
        for phrases in phrase_lists:
            # each phrase counts once per edit, in first-seen order
            counts.update(list(dict.fromkeys(phrases)))
        return [phrase for phrase, count in counts.items() if count >= minimum]


__all__ = ["PatternDetectionEngine", "is_call_to_action"]
