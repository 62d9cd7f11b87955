"""
Pytest Configuration and Fixture Library

Shared test infrastructure providing:
- In-memory profile and content stores
- Fast concurrency/learning settings (no real backoff waits)
- fakeredis-backed Redis client, cache and distributed lock
- aiosqlite-backed database manager for the SQL repositories
- Test data builders for profiles and edited content

Design Pattern: Test Data Builder + Fixture Factory
"""

import os
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Callable, List, Optional

import pytest
import pytest_asyncio

# Set test environment variables before importing any modules
os.environ.update(
    {
        "DATABASE_URL": "sqlite+aiosqlite:///:memory:",
        "REDIS_URL": "redis://localhost:6379/15",
        "ENVIRONMENT": "development",
        "MONITORING_LOG_LEVEL": "DEBUG",
    }
)

import fakeredis
from prometheus_client import CollectorRegistry

from config.settings import (
    CacheSettings,
    ConcurrencySettings,
    DatabaseSettings,
    LearningSettings,
)
from core.enums import WriteStatus
from core.models import (
    ContentItem,
    EditMetadata,
    EmojiChanges,
    StructureChanges,
    StyleProfile,
    UserProfileDocument,
)
from infrastructure.database import DatabaseManager
from infrastructure.distributed_lock import RedisDistributedLock
from infrastructure.monitoring import MetricsCollector
from infrastructure.redis_client import RedisClient
from knowledge.content_store import InMemoryContentStore
from knowledge.profile_store import ConditionalWriteResult, InMemoryProfileStore
from optimization.cache_manager import CacheManager
from services.atomic_profile_service import AtomicProfileUpdateService
from services.edit_metadata_service import EditMetadataStorageService

BASE_TIME = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

# ============================================================================
# PYTEST CONFIGURATION
# ============================================================================


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "integration: mark test as integration test against fakeredis or sqlite"
    )
    config.addinivalue_line("markers", "slow: mark test as slow-running (>1s)")
    config.addinivalue_line("markers", "unit: mark test as unit test (no external dependencies)")


@pytest.fixture(autouse=True)
def reset_metrics_collector():
    """Reset MetricsCollector singleton before each test."""
    MetricsCollector.reset_singleton()
    yield
    MetricsCollector.reset_singleton()


# ============================================================================
# SETTINGS FIXTURES
# ============================================================================


@pytest.fixture
def concurrency_settings() -> ConcurrencySettings:
    return ConcurrencySettings(
        max_retries=3,
        retry_delay_base=0.0,
        lock_ttl_ms=2000,
        lock_acquire_timeout=2.0,
        lock_poll_interval=0.001,
    )


@pytest.fixture
def learning_settings() -> LearningSettings:
    return LearningSettings(rate_limit_seconds=300.0, batch_window_seconds=300.0)


@pytest.fixture
def cache_settings() -> CacheSettings:
    return CacheSettings()


# ============================================================================
# INFRASTRUCTURE FIXTURES
# ============================================================================


@pytest.fixture
def metrics() -> MetricsCollector:
    """Collector bound to a private registry."""
    return MetricsCollector(registry=CollectorRegistry())


@pytest_asyncio.fixture
async def fake_redis() -> AsyncGenerator[fakeredis.FakeAsyncRedis, None]:
    server = fakeredis.FakeServer()
    connection = fakeredis.FakeAsyncRedis(server=server, decode_responses=True)
    yield connection
    await connection.flushall()
    await connection.aclose()


@pytest.fixture
def redis(fake_redis) -> RedisClient:
    return RedisClient(connection=fake_redis)


@pytest.fixture
def redis_lock(redis, concurrency_settings, metrics) -> RedisDistributedLock:
    return RedisDistributedLock(redis, concurrency_settings, metrics)


@pytest.fixture
def cache(cache_settings, metrics) -> CacheManager:
    """Memory-only cache."""
    return CacheManager(cache_settings=cache_settings, metrics_collector=metrics)


@pytest.fixture
def redis_cache(redis, cache_settings, metrics) -> CacheManager:
    return CacheManager(
        redis_client=redis, cache_settings=cache_settings, metrics_collector=metrics
    )


@pytest_asyncio.fixture
async def db(tmp_path) -> AsyncGenerator[DatabaseManager, None]:
    """File-backed aiosqlite database with the schema created."""
    settings = DatabaseSettings(DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'profiles.db'}")
    manager = DatabaseManager(settings)
    await manager.initialize()
    await manager.create_schema()
    yield manager
    await manager.drop_schema()
    await manager.close()


# ============================================================================
# STORE & SERVICE FIXTURES
# ============================================================================


@pytest.fixture
def profile_store() -> InMemoryProfileStore:
    return InMemoryProfileStore()


@pytest.fixture
def content_store() -> InMemoryContentStore:
    return InMemoryContentStore()


@pytest.fixture
def atomic_service(profile_store, cache, metrics, concurrency_settings):
    return AtomicProfileUpdateService(
        profile_store,
        cache=cache,
        metrics=metrics,
        concurrency_settings=concurrency_settings,
    )


@pytest.fixture
def edit_service(content_store, learning_settings) -> EditMetadataStorageService:
    return EditMetadataStorageService(content_store, learning_settings)


# ============================================================================
# TEST DATA BUILDERS
# ============================================================================


def build_edit(
    *,
    sentence_length_delta: float = 0.0,
    emoji_added: int = 0,
    emoji_removed: int = 0,
    bullets_added: bool = False,
    paragraphs_added: int = 0,
    tone_shift: str = "no change",
    phrases_added: Optional[List[str]] = None,
    phrases_removed: Optional[List[str]] = None,
    timestamp: Optional[datetime] = None,
    processed: bool = False,
) -> EditMetadata:
    return EditMetadata(
        original_content="Original generated post.",
        original_length=24,
        edited_length=30,
        sentence_length_delta=sentence_length_delta,
        emoji_changes=EmojiChanges(
            added=emoji_added, removed=emoji_removed, net_change=emoji_added - emoji_removed
        ),
        structure_changes=StructureChanges(
            paragraphs_added=paragraphs_added, bullets_added=bullets_added
        ),
        tone_shift=tone_shift,
        phrases_added=phrases_added or [],
        phrases_removed=phrases_removed or [],
        edit_timestamp=timestamp or BASE_TIME,
        learning_processed=processed,
    )


@pytest.fixture
def make_profile() -> Callable[..., UserProfileDocument]:
    """Build a profile document; pass ``style_profile=None`` for a profile-less user."""

    def _make(user_id: str = "user-1", **profile_fields) -> UserProfileDocument:
        if "style_profile" in profile_fields:
            return UserProfileDocument(
                user_id=user_id, style_profile=profile_fields["style_profile"]
            )
        return UserProfileDocument(user_id=user_id, style_profile=StyleProfile(**profile_fields))

    return _make


@pytest_asyncio.fixture
async def seeded_user(profile_store, make_profile) -> UserProfileDocument:
    return await profile_store.create(make_profile("user-1"))


@pytest.fixture
def add_edits(content_store) -> Callable:
    """
    Store ``count`` edited content items for a user.

    Timestamps increase by one minute per item starting at ``BASE_TIME``;
    extra keyword arguments are forwarded to ``build_edit``.
    """

    async def _add(
        user_id: str = "user-1", count: int = 1, start: int = 0, **edit_fields
    ) -> List[ContentItem]:
        items = []
        for i in range(start, start + count):
            item = ContentItem(
                id=f"{user_id}-content-{i}",
                user_id=user_id,
                text=f"Edited post {i}",
                created_at=BASE_TIME + timedelta(minutes=i),
                edit_metadata=build_edit(timestamp=BASE_TIME + timedelta(minutes=i), **edit_fields),
            )
            items.append(await content_store.save(item))
        return items

    return _add


@pytest.fixture
def edit_builder() -> Callable[..., EditMetadata]:
    return build_edit


@pytest.fixture
def base_time() -> datetime:
    return BASE_TIME


class FakeClock:
    """Monotonic clock double advanced explicitly by tests."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


class FlakyProfileStore(InMemoryProfileStore):
    """Reports a version mismatch for the first ``conflicts`` writes."""

    def __init__(self, conflicts: int):
        super().__init__()
        self.conflicts = conflicts
        self.write_attempts = 0

    async def conditional_update(self, user_id, expected_version, document):
        self.write_attempts += 1
        if self.conflicts > 0:
            self.conflicts -= 1
            return ConditionalWriteResult(WriteStatus.VERSION_MISMATCH)
        return await super().conditional_update(user_id, expected_version, document)


@pytest.fixture
def flaky_store() -> Callable[..., FlakyProfileStore]:
    """Factory for a store that loses the first ``conflicts`` version races."""
    return FlakyProfileStore
