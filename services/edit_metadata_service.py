"""
Edit Metadata Storage Service
=============================

Stores, queries, aggregates and prunes the edit metadata attached to
generated content. Feeds the pattern detector with recent edit windows and
bounds how much edit history is retained per user.

Pruning clears ``edit_metadata`` on the oldest items only; the content
items themselves are always retained.

Architecture: Service Layer Pattern over ``ContentStore``
"""

from typing import Iterable, List, Optional, Sequence

import numpy as np
from loguru import logger

from config.constants import MAX_THREAD_PHRASES, MAX_THREAD_SUBSTITUTIONS, NO_TONE_CHANGE
from config.settings import LearningSettings, get_settings
from core.exceptions import ContentNotFoundError
from core.models import (
    ContentItem,
    EditMetadata,
    EmojiChanges,
    FrequencyEntry,
    PatternSummary,
    StructureChanges,
    StructureTotals,
    StyleDelta,
    VocabularyChanges,
    utc_now,
)
from knowledge.content_store import ContentStore


def frequency_table(values: Iterable[str], minimum: int = 2) -> List[FrequencyEntry]:
    """
    Count occurrences and keep values seen at least ``minimum`` times.

    Sorted by count descending, ties alphabetically.
    """
    items = [v for v in values if v]
    if not items:
        return []
    labels, counts = np.unique(np.array(items, dtype=object), return_counts=True)
    order = np.argsort(-counts, kind="stable")
    return [
        FrequencyEntry(value=str(labels[i]), count=int(counts[i]))
        for i in order
        if counts[i] >= minimum
    ]


def _most_common_tone(shifts: Sequence[str]) -> str:
    labelled = [s for s in shifts if s and s != NO_TONE_CHANGE]
    if not labelled:
        return NO_TONE_CHANGE
    table = frequency_table(labelled, minimum=1)
    return table[0].value


def aggregate_thread_deltas(
    deltas: Sequence[StyleDelta],
    original_texts: Sequence[str],
    edited_texts: Sequence[str],
) -> EditMetadata:
    """
    Fold per-post deltas of an edited thread into one edit record.

    Counts are summed, sentence length and complexity shifts averaged,
    phrase lists de-duplicated (first occurrence wins) and capped.
    """
    original_text = "\n\n".join(original_texts)
    edited_text = "\n\n".join(edited_texts)
    count = len(deltas)

    emoji_added = sum(d.emoji_changes.added for d in deltas)
    emoji_removed = sum(d.emoji_changes.removed for d in deltas)
    phrases_added = list(dict.fromkeys(p for d in deltas for p in d.phrases_added))
    phrases_removed = list(dict.fromkeys(p for d in deltas for p in d.phrases_removed))
    formatting = list(
        dict.fromkeys(f for d in deltas for f in d.structure_changes.formatting_changes)
    )
    substitutions = [s for d in deltas for s in d.vocabulary_changes.words_substituted]

    return EditMetadata(
        original_content=original_text,
        original_length=len(original_text),
        edited_length=len(edited_text),
        sentence_length_delta=(
            float(np.mean([d.sentence_length_delta for d in deltas])) if count else 0.0
        ),
        emoji_changes=EmojiChanges(
            added=emoji_added, removed=emoji_removed, net_change=emoji_added - emoji_removed
        ),
        structure_changes=StructureChanges(
            paragraphs_added=sum(d.structure_changes.paragraphs_added for d in deltas),
            paragraphs_removed=sum(d.structure_changes.paragraphs_removed for d in deltas),
            bullets_added=any(d.structure_changes.bullets_added for d in deltas),
            formatting_changes=formatting,
        ),
        tone_shift=_most_common_tone([d.tone_shift for d in deltas]),
        vocabulary_changes=VocabularyChanges(
            words_substituted=substitutions[:MAX_THREAD_SUBSTITUTIONS],
            complexity_shift=(
                int(round(np.mean([d.vocabulary_changes.complexity_shift for d in deltas])))
                if count
                else 0
            ),
        ),
        phrases_added=phrases_added[:MAX_THREAD_PHRASES],
        phrases_removed=phrases_removed[:MAX_THREAD_PHRASES],
        edit_timestamp=utc_now(),
        learning_processed=False,
    )


class EditMetadataStorageService:
    """
    Service for edit metadata persistence and analytics.

    All reads are ordered by edit timestamp; "recent" means most recent first.
    """

    def __init__(
        self,
        content_store: ContentStore,
        learning_settings: Optional[LearningSettings] = None,
    ):
        self.contents = content_store
        self._settings = learning_settings or get_settings().learning
        logger.debug("EditMetadataStorageService initialized")

    # =========================================================================
    # STORAGE
    # =========================================================================

    async def store_edit_metadata(self, content_id: str, metadata: EditMetadata) -> EditMetadata:
        """
        Attach edit metadata to a content item, resetting its processed flag.

        Raises:
            ContentNotFoundError: No content item with ``content_id``
        """
        record = metadata.model_copy(update={"learning_processed": False})
        if not await self.contents.set_edit_metadata(content_id, record):
            raise ContentNotFoundError(content_id)
        logger.info(f"Stored edit metadata for content {content_id}")
        return record

    async def store_thread_edit_metadata(
        self,
        content_id: str,
        deltas: Sequence[StyleDelta],
        original_texts: Sequence[str],
        edited_texts: Sequence[str],
    ) -> EditMetadata:
        """
        Store one aggregated record for an edited multi-post thread.

        Args:
            content_id: Thread content item
            deltas: Extracted style deltas, one per edited post
            original_texts: Original post texts in thread order
            edited_texts: Edited post texts in thread order

        Returns:
            The stored aggregate record

        Raises:
            ContentNotFoundError: No content item with ``content_id``
        """
        if await self.contents.get(content_id) is None:
            raise ContentNotFoundError(content_id)

        record = aggregate_thread_deltas(deltas, original_texts, edited_texts)
        stored = await self.store_edit_metadata(content_id, record)
        logger.info(f"Aggregated {len(deltas)} post edits for thread {content_id}")
        return stored

    # =========================================================================
    # QUERIES
    # =========================================================================

    async def get_recent_edits(
        self, user_id: str, limit: Optional[int] = None, include_processed: bool = True
    ) -> List[ContentItem]:
        """Edited content for ``user_id``, most recent first."""
        limit = limit or self._settings.recent_edits_limit
        edits = await self.contents.find_edited(
            user_id, limit=limit, processed=None if include_processed else False
        )
        logger.debug(f"Retrieved {len(edits)} recent edits for user {user_id}")
        return edits

    async def get_unprocessed_edits(
        self, user_id: str, limit: Optional[int] = None
    ) -> List[ContentItem]:
        return await self.get_recent_edits(user_id, limit=limit, include_processed=False)

    async def mark_edits_as_processed(self, content_ids: Iterable[str]) -> int:
        """Flip ``learning_processed``; already processed or unknown ids count 0."""
        flipped = await self.contents.mark_processed(list(content_ids))
        logger.debug(f"Marked {flipped} edits as processed")
        return flipped

    async def get_edit_count(self, user_id: str) -> int:
        return await self.contents.count_edited(user_id)

    # =========================================================================
    # RETENTION
    # =========================================================================

    async def prune_old_edit_metadata(self, user_id: str, cap: Optional[int] = None) -> int:
        """
        Keep only the ``cap`` most recent edit records for a user.

        Args:
            user_id: Owner
            cap: Records to keep (default ``max_edit_metadata_per_user``)

        Returns:
            Number of records pruned: ``count - cap`` when above the cap, else 0
        """
        cap = self._settings.max_edit_metadata_per_user if cap is None else cap
        count = await self.contents.count_edited(user_id)
        if count <= cap:
            logger.debug(f"No pruning needed for user {user_id} ({count} edits)")
            return 0

        oldest = await self.contents.find_edited(
            user_id, limit=count - cap, newest_first=False
        )
        pruned = await self.contents.clear_edit_metadata(item.id for item in oldest)
        logger.info(f"Pruned {pruned} old edit metadata entries for user {user_id}")
        return pruned

    # =========================================================================
    # AGGREGATION
    # =========================================================================

    async def aggregate_edit_patterns(
        self, user_id: str, limit: Optional[int] = None
    ) -> PatternSummary:
        """
        Summary statistics over the user's most recent edits.

        Frequency tables only keep values occurring more than once. A user
        without edits gets an all-zero summary.
        """
        limit = limit or self._settings.aggregation_limit
        edits = await self.contents.find_edited(user_id, limit=limit)
        records = [item.edit_metadata for item in edits if item.is_edited]
        if not records:
            return PatternSummary()

        added = sum(r.emoji_changes.added for r in records)
        removed = sum(r.emoji_changes.removed for r in records)
        return PatternSummary(
            total_edits=len(records),
            avg_sentence_length_delta=float(
                np.mean([r.sentence_length_delta for r in records])
            ),
            emoji_changes=EmojiChanges(
                added=added,
                removed=removed,
                net_change=sum(r.emoji_changes.net_change for r in records),
            ),
            tone_shifts=frequency_table(
                r.tone_shift for r in records if r.tone_shift != NO_TONE_CHANGE
            ),
            phrases_added=frequency_table(p for r in records for p in r.phrases_added),
            phrases_removed=frequency_table(p for r in records for p in r.phrases_removed),
            structure_changes=StructureTotals(
                paragraphs_added=sum(r.structure_changes.paragraphs_added for r in records),
                paragraphs_removed=sum(r.structure_changes.paragraphs_removed for r in records),
                bullets_added=sum(1 for r in records if r.structure_changes.bullets_added),
            ),
        )


__all__ = ["EditMetadataStorageService", "aggregate_thread_deltas", "frequency_table"]
