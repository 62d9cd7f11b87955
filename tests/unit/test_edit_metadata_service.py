"""
Edit Metadata Storage Service Unit Tests

Validates storage, recency queries, processed flags, retention pruning,
pattern aggregation and thread folding.
"""

import pytest

from core.exceptions import ContentNotFoundError
from core.models import (
    ContentItem,
    EmojiChanges,
    StructureChanges,
    StyleDelta,
    VocabularyChanges,
    WordSubstitution,
)
from services.edit_metadata_service import aggregate_thread_deltas, frequency_table


class TestFrequencyTable:
    def test_keeps_repeated_values_by_count(self):
        table = frequency_table(["b", "a", "b", "c", "a", "b"])
        assert [(e.value, e.count) for e in table] == [("b", 3), ("a", 2)]

    def test_ties_are_alphabetical(self):
        table = frequency_table(["zeta", "alpha", "zeta", "alpha"])
        assert [e.value for e in table] == ["alpha", "zeta"]

    def test_empty(self):
        assert frequency_table([]) == []


class TestStorage:
    async def test_store_resets_processed_flag(self, edit_service, content_store, edit_builder):
        await content_store.save(ContentItem(id="c1", user_id="user-1"))

        stored = await edit_service.store_edit_metadata("c1", edit_builder(processed=True))

        assert stored.learning_processed is False
        item = await content_store.get("c1")
        assert item.edit_metadata.learning_processed is False

    async def test_unknown_content(self, edit_service, edit_builder):
        with pytest.raises(ContentNotFoundError):
            await edit_service.store_edit_metadata("missing", edit_builder())


class TestQueries:
    async def test_recent_edits_newest_first(self, edit_service, add_edits):
        await add_edits("user-1", count=5)

        recent = await edit_service.get_recent_edits("user-1", limit=3)

        assert [item.id for item in recent] == [
            "user-1-content-4",
            "user-1-content-3",
            "user-1-content-2",
        ]

    async def test_default_window(self, edit_service, add_edits):
        await add_edits("user-1", count=25)
        assert len(await edit_service.get_recent_edits("user-1")) == 20

    async def test_unprocessed_only(self, edit_service, add_edits):
        await add_edits("user-1", count=3, processed=True)
        await add_edits("user-1", count=2, start=3)

        pending = await edit_service.get_unprocessed_edits("user-1")

        assert {item.id for item in pending} == {"user-1-content-3", "user-1-content-4"}

    async def test_users_are_isolated(self, edit_service, add_edits):
        await add_edits("user-1", count=2)
        await add_edits("user-2", count=4)

        assert await edit_service.get_edit_count("user-1") == 2
        assert await edit_service.get_edit_count("user-2") == 4

    async def test_mark_processed_is_idempotent(self, edit_service, add_edits):
        await add_edits("user-1", count=3)
        ids = ["user-1-content-0", "user-1-content-1", "missing"]

        assert await edit_service.mark_edits_as_processed(ids) == 2
        assert await edit_service.mark_edits_as_processed(ids) == 0
        assert len(await edit_service.get_unprocessed_edits("user-1")) == 1


class TestPruning:
    async def test_prunes_oldest_beyond_cap(self, edit_service, content_store, add_edits):
        await add_edits("user-1", count=60)

        pruned = await edit_service.prune_old_edit_metadata("user-1")

        assert pruned == 10
        assert await edit_service.get_edit_count("user-1") == 50
        assert len(await content_store.list_by_user("user-1")) == 60

        kept = await edit_service.get_recent_edits("user-1", limit=100)
        assert kept[-1].id == "user-1-content-10"
        oldest = await content_store.get("user-1-content-9")
        assert oldest.edit_metadata is None

    async def test_under_cap_prunes_nothing(self, edit_service, add_edits):
        await add_edits("user-1", count=30)
        assert await edit_service.prune_old_edit_metadata("user-1") == 0
        assert await edit_service.get_edit_count("user-1") == 30

    async def test_custom_cap(self, edit_service, add_edits):
        await add_edits("user-1", count=55)

        assert await edit_service.prune_old_edit_metadata("user-1", cap=5) == 50
        remaining = await edit_service.get_recent_edits("user-1", limit=100)
        assert [item.id for item in remaining][0] == "user-1-content-54"
        assert len(remaining) == 5


class TestAggregation:
    async def test_no_edits(self, edit_service):
        summary = await edit_service.aggregate_edit_patterns("user-1")
        assert summary.total_edits == 0
        assert summary.tone_shifts == []

    async def test_summary(self, edit_service, add_edits):
        await add_edits(
            "user-1",
            count=2,
            sentence_length_delta=-4.0,
            emoji_added=2,
            tone_shift="more casual",
            phrases_removed=["synergy"],
            bullets_added=True,
        )
        await add_edits(
            "user-1",
            count=2,
            start=2,
            sentence_length_delta=2.0,
            emoji_removed=1,
            phrases_added=["here's the thing"],
            paragraphs_added=1,
        )

        summary = await edit_service.aggregate_edit_patterns("user-1")

        assert summary.total_edits == 4
        assert summary.avg_sentence_length_delta == pytest.approx(-1.0)
        assert summary.emoji_changes == EmojiChanges(added=4, removed=2, net_change=2)
        assert [(e.value, e.count) for e in summary.tone_shifts] == [("more casual", 2)]
        assert [e.value for e in summary.phrases_removed] == ["synergy"]
        assert [e.value for e in summary.phrases_added] == ["here's the thing"]
        assert summary.structure_changes.bullets_added == 2
        assert summary.structure_changes.paragraphs_added == 2

    async def test_single_occurrences_are_dropped(self, edit_service, add_edits):
        await add_edits("user-1", count=1, phrases_added=["once"], tone_shift="more direct")

        summary = await edit_service.aggregate_edit_patterns("user-1")

        assert summary.phrases_added == []
        assert summary.tone_shifts == []


class TestThreadAggregation:
    def test_fold_post_deltas(self):
        deltas = [
            StyleDelta(
                sentence_length_delta=-4.0,
                emoji_changes=EmojiChanges(added=2, removed=0, net_change=2),
                structure_changes=StructureChanges(paragraphs_added=1, formatting_changes=["bold"]),
                tone_shift="more casual",
                vocabulary_changes=VocabularyChanges(
                    words_substituted=[WordSubstitution(original="utilize", replacement="use")],
                    complexity_shift=-1,
                ),
                phrases_added=["tl;dr"],
            ),
            StyleDelta(
                sentence_length_delta=-2.0,
                emoji_changes=EmojiChanges(added=0, removed=1, net_change=-1),
                structure_changes=StructureChanges(bullets_added=True, formatting_changes=["bold"]),
                tone_shift="no change",
                vocabulary_changes=VocabularyChanges(complexity_shift=-2),
                phrases_added=["tl;dr", "hot take"],
            ),
        ]

        record = aggregate_thread_deltas(deltas, ["first", "second"], ["1st", "2nd!"])

        assert record.original_content == "first\n\nsecond"
        assert record.original_length == len("first\n\nsecond")
        assert record.edited_length == len("1st\n\n2nd!")
        assert record.sentence_length_delta == pytest.approx(-3.0)
        assert record.emoji_changes == EmojiChanges(added=2, removed=1, net_change=1)
        assert record.structure_changes.paragraphs_added == 1
        assert record.structure_changes.bullets_added is True
        assert record.structure_changes.formatting_changes == ["bold"]
        assert record.tone_shift == "more casual"
        assert record.vocabulary_changes.complexity_shift == -2
        assert record.phrases_added == ["tl;dr", "hot take"]
        assert record.learning_processed is False

    def test_phrase_cap(self):
        deltas = [StyleDelta(phrases_added=[f"p{i}" for i in range(15)])]
        record = aggregate_thread_deltas(deltas, ["a"], ["b"])
        assert len(record.phrases_added) == 10

    async def test_store_thread(self, edit_service, content_store):
        await content_store.save(ContentItem(id="thread-1", user_id="user-1"))

        stored = await edit_service.store_thread_edit_metadata(
            "thread-1", [StyleDelta(phrases_added=["x"])], ["a"], ["b"]
        )

        item = await content_store.get("thread-1")
        assert item.edit_metadata == stored

    async def test_store_thread_unknown_content(self, edit_service):
        with pytest.raises(ContentNotFoundError):
            await edit_service.store_thread_edit_metadata("missing", [], [], [])
