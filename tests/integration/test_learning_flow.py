"""
End-to-End Learning Flow Integration Tests

Wires the real container against aiosqlite and fakeredis and walks one
user from profile creation through edits, learning, scoring and
rollback.
"""

from datetime import timedelta

import pytest
import pytest_asyncio
from dependency_injector import providers

from container import Container, ContainerManager
from core.enums import LearningSkipReason, MilestoneType, VersionSource
from core.models import ContentItem
from intelligence.evolution_scorer import EvolutionScoringEngine

pytestmark = pytest.mark.integration


@pytest_asyncio.fixture
async def wired(db, redis, metrics):
    container = Container()
    container.database.override(providers.Object(db))
    container.redis.override(providers.Object(redis))
    container.metrics.override(providers.Object(metrics))

    manager = ContainerManager(container)
    await manager.initialize()
    yield manager.get_container()
    await container.feedback_learning_service().close()


async def seed_edits(container, user_id: str, count: int, start_time, **edit_fields):
    contents = container.content_store()
    edits = container.edit_metadata_service()
    builder = edit_fields.pop("builder")
    ids = []
    for i in range(count):
        content_id = f"{user_id}-post-{i}"
        await contents.save(ContentItem(id=content_id, user_id=user_id, text=f"Post {i}"))
        await edits.store_edit_metadata(
            content_id, builder(timestamp=start_time + timedelta(minutes=i), **edit_fields)
        )
        ids.append(content_id)
    return ids


class TestLearningFlow:
    async def test_full_cycle(self, wired, make_profile, edit_builder, base_time, fake_redis):
        profiles = wired.profile_store()
        await profiles.create(make_profile("user-1", sample_posts=["My first post"]))
        scorer = wired.evolution_scorer()

        assert await scorer.calculate_evolution_score("user-1") == 20
        assert await fake_redis.exists("evolution:user-1")

        ids = await seed_edits(
            wired,
            "user-1",
            5,
            base_time,
            builder=edit_builder,
            emoji_added=2,
            tone_shift="more casual",
            phrases_removed=["synergy"],
        )

        learning = wired.feedback_learning_service()
        outcome = await learning.submit_edit("user-1", ids[-1])

        assert outcome.applied
        assert outcome.edits_processed == 5
        stored = await profiles.load_by_user_id("user-1")
        assert stored.version == 1
        assert stored.style_profile.tone.formality == 4
        assert stored.style_profile.banned_phrases == ["synergy"]
        assert stored.style_profile.writing_traits.uses_emojis is True
        assert stored.profile_versions[-1].source is VersionSource.FEEDBACK

        # the write invalidated the cached score
        assert not await fake_redis.exists("evolution:user-1")
        score = await scorer.calculate_evolution_score("user-1")
        assert score == EvolutionScoringEngine.score_profile(stored.style_profile, 5)
        assert score > 20

        timeline = await scorer.get_evolution_timeline("user-1")
        assert MilestoneType.FIRST_EDIT in [m.type for m in timeline]

    async def test_throttled_edits_batch_up(self, wired, make_profile, edit_builder, base_time):
        await wired.profile_store().create(make_profile("user-1"))
        ids = await seed_edits(wired, "user-1", 3, base_time, builder=edit_builder)
        learning = wired.feedback_learning_service()

        first = await learning.submit_edit("user-1", ids[0])
        second = await learning.submit_edit("user-1", ids[1])
        third = await learning.submit_edit("user-1", ids[2])

        assert first.applied
        assert second.skipped_reason is LearningSkipReason.BATCHED
        assert third.skipped_reason is LearningSkipReason.BATCHED
        assert learning.pending_flushes == 1
        assert wired.edit_batcher().pending("user-1") == ids[1:]

    async def test_rollback_after_learning(self, wired, make_profile, edit_builder, base_time):
        profiles = wired.profile_store()
        await profiles.create(make_profile("user-1"))
        ids = await seed_edits(
            wired, "user-1", 5, base_time, builder=edit_builder, tone_shift="more casual"
        )
        await wired.feedback_learning_service().process_learning("user-1", ids)

        versioning = wired.versioning_service()
        result = await versioning.rollback_to_version("user-1", -1)

        assert result.success
        assert result.user.style_profile.tone.formality == 5
        history = await versioning.get_version_history("user-1")
        assert [v.source for v in history] == [VersionSource.FEEDBACK, VersionSource.ROLLBACK]

    async def test_locked_update_through_container(self, wired, make_profile):
        await wired.profile_store().create(make_profile("user-1"))

        result = await wired.atomic_profile_service().update_field(
            "user-1", "tone.humor", 8, use_lock=True
        )

        assert result.success
        assert result.user.style_profile.tone.humor == 8
