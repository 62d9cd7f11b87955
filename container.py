"""
Dependency Injection Container: Centralized Object Lifecycle Management

Wires the voice profile engine's object graph with dependency-injector:
settings, persistence, Redis, metrics, cache, distributed lock, stores,
learning components and services.

Architecture: Container Pattern + Dependency Injection + Singleton Registry

Dependency Graph (DAG):
Settings -> Infrastructure -> Knowledge -> Optimization -> Intelligence -> Services
"""

from typing import Optional

from dependency_injector import containers, providers
from dependency_injector.wiring import Provide, inject
from loguru import logger

from config.settings import Settings, get_settings

# Infrastructure layer imports
from infrastructure.database import DatabaseManager
from infrastructure.distributed_lock import RedisDistributedLock
from infrastructure.monitoring import MetricsCollector, configure_structlog
from infrastructure.redis_client import RedisClient

# Intelligence layer imports
from intelligence.evolution_scorer import EvolutionScoringEngine
from intelligence.pattern_detector import PatternDetectionEngine
from intelligence.profile_updater import WeightedProfileUpdater

# Knowledge layer imports
from knowledge.content_repository import ContentRepository
from knowledge.profile_repository import ProfileRepository

# Optimization layer imports
from optimization.cache_manager import CacheManager
from optimization.learning_throttle import EditBatcher, LearningRateLimiter

# Service layer imports
from services.atomic_profile_service import AtomicProfileUpdateService
from services.edit_metadata_service import EditMetadataStorageService
from services.feedback_learning_service import FeedbackLearningService
from services.profile_versioning_service import ProfileVersioningService


class Container(containers.DeclarativeContainer):
    """
    Central dependency injection container.

    Infrastructure, stores and the per-process learning throttles are
    singletons; stateless engines are factories.
    """

    # Configuration providers (singletons)
    config: providers.Singleton[Settings] = providers.Singleton(get_settings)

    # Infrastructure layer providers (singletons)
    database: providers.Singleton[DatabaseManager] = providers.Singleton(
        DatabaseManager,
        db_settings=config.provided.database,
    )

    redis: providers.Singleton[RedisClient] = providers.Singleton(
        RedisClient,
        redis_settings=config.provided.redis,
    )

    metrics: providers.Singleton[MetricsCollector] = providers.Singleton(
        MetricsCollector.get_instance
    )

    cache: providers.Singleton[CacheManager] = providers.Singleton(
        CacheManager,
        redis_client=redis,
        cache_settings=config.provided.cache,
        metrics_collector=metrics,
    )

    lock: providers.Singleton[RedisDistributedLock] = providers.Singleton(
        RedisDistributedLock,
        redis_client=redis,
        concurrency_settings=config.provided.concurrency,
        metrics=metrics,
    )

    # Knowledge layer providers (singletons)
    profile_store: providers.Singleton[ProfileRepository] = providers.Singleton(
        ProfileRepository,
        database_manager=database,
    )

    content_store: providers.Singleton[ContentRepository] = providers.Singleton(
        ContentRepository,
        database_manager=database,
    )

    # Optimization layer providers (per-process state, singletons)
    rate_limiter: providers.Singleton[LearningRateLimiter] = providers.Singleton(
        LearningRateLimiter,
        window_seconds=config.provided.learning.rate_limit_seconds,
    )

    edit_batcher: providers.Singleton[EditBatcher] = providers.Singleton(
        EditBatcher,
        rate_limiter=rate_limiter,
        learning_settings=config.provided.learning,
    )

    # Intelligence layer providers (factories)
    pattern_engine: providers.Factory[PatternDetectionEngine] = providers.Factory(
        PatternDetectionEngine,
        learning_settings=config.provided.learning,
    )

    profile_updater: providers.Factory[WeightedProfileUpdater] = providers.Factory(
        WeightedProfileUpdater,
        learning_settings=config.provided.learning,
    )

    evolution_scorer: providers.Factory[EvolutionScoringEngine] = providers.Factory(
        EvolutionScoringEngine,
        profile_store=profile_store,
        content_store=content_store,
        cache=cache,
        metrics=metrics,
    )

    # Service layer providers
    atomic_profile_service: providers.Singleton[AtomicProfileUpdateService] = (
        providers.Singleton(
            AtomicProfileUpdateService,
            profile_store=profile_store,
            lock=lock,
            cache=cache,
            metrics=metrics,
            concurrency_settings=config.provided.concurrency,
        )
    )

    edit_metadata_service: providers.Factory[EditMetadataStorageService] = providers.Factory(
        EditMetadataStorageService,
        content_store=content_store,
        learning_settings=config.provided.learning,
    )

    versioning_service: providers.Factory[ProfileVersioningService] = providers.Factory(
        ProfileVersioningService,
        atomic_service=atomic_profile_service,
        profile_store=profile_store,
        learning_settings=config.provided.learning,
    )

    feedback_learning_service: providers.Singleton[FeedbackLearningService] = (
        providers.Singleton(
            FeedbackLearningService,
            atomic_service=atomic_profile_service,
            profile_store=profile_store,
            edit_service=edit_metadata_service,
            pattern_engine=pattern_engine,
            profile_updater=profile_updater,
            rate_limiter=rate_limiter,
            batcher=edit_batcher,
            learning_settings=config.provided.learning,
            metrics=metrics,
        )
    )


# Global container instance
container = Container()


class ContainerManager:
    """
    Container lifecycle manager.

    Handles initialization and cleanup of the infrastructure that needs
    async setup. The database is critical; Redis is optional and its
    absence degrades caching to memory and makes locked updates fail
    with a LOCK result.
    """

    def __init__(self, target: Optional[Container] = None) -> None:
        self._container: Container = target or container
        self._initialized: bool = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """
        Initialize database and Redis connections.

        Raises:
            RuntimeError: If the database cannot be initialized
        """
        if self._initialized:
            logger.warning("Container already initialized - skipping re-initialization")
            return

        settings = self._container.config()
        logger.info(
            f"Initializing dependency injection container for "
            f"{settings.app_name} v{settings.app_version}"
        )
        configure_structlog(settings.monitoring.log_level, settings.monitoring.log_format)

        try:
            await self._container.database().initialize()
            await self._container.database().create_schema()
            logger.info("✓ Database initialized successfully")
        except Exception as db_error:
            logger.error(f"Database initialization failed: {db_error}")
            raise RuntimeError(
                f"Failed to initialize dependency injection container: {db_error}"
            ) from db_error

        try:
            await self._container.redis().initialize()
            logger.info("✓ Redis initialized successfully")
        except Exception as redis_error:
            logger.warning(f"Redis initialization failed: {redis_error}")
            logger.warning("Continuing without Redis - caching will use in-memory fallback")

        self._initialized = True

    async def cleanup(self) -> None:
        """
        Release infrastructure resources; idempotent.

        Cancels pending learning flushes before closing connections.
        """
        if not self._initialized:
            logger.debug("Container not initialized - skipping cleanup")
            return

        logger.info("Cleaning up dependency injection container")
        await self._container.feedback_learning_service().close()

        try:
            await self._container.database().close()
            logger.info("✓ Database connections closed")
        except Exception as db_error:
            logger.error(f"Database cleanup failed: {db_error}")

        try:
            await self._container.redis().close()
            logger.info("✓ Redis connections closed")
        except Exception as redis_error:
            logger.error(f"Redis cleanup failed: {redis_error}")

        self._initialized = False

    def get_container(self) -> Container:
        """Get the container instance."""
        if not self._initialized:
            raise RuntimeError("Container not initialized. Call initialize() first.")
        return self._container


# Global container manager instance
container_manager = ContainerManager()


# Convenience functions for dependency injection
@inject
def get_database(db: DatabaseManager = Provide[Container.database]) -> DatabaseManager:
    """Get database manager instance."""
    return db


@inject
def get_redis(redis: RedisClient = Provide[Container.redis]) -> RedisClient:
    """Get Redis client instance."""
    return redis


@inject
def get_metrics(metrics: MetricsCollector = Provide[Container.metrics]) -> MetricsCollector:
    """Get metrics collector instance."""
    return metrics


@inject
def get_cache(cache: CacheManager = Provide[Container.cache]) -> CacheManager:
    """Get cache manager instance."""
    return cache


@inject
def get_atomic_profile_service(
    service: AtomicProfileUpdateService = Provide[Container.atomic_profile_service],
) -> AtomicProfileUpdateService:
    return service


@inject
def get_edit_metadata_service(
    service: EditMetadataStorageService = Provide[Container.edit_metadata_service],
) -> EditMetadataStorageService:
    return service


@inject
def get_versioning_service(
    service: ProfileVersioningService = Provide[Container.versioning_service],
) -> ProfileVersioningService:
    return service


@inject
def get_feedback_learning_service(
    service: FeedbackLearningService = Provide[Container.feedback_learning_service],
) -> FeedbackLearningService:
    return service


@inject
def get_evolution_scorer(
    scorer: EvolutionScoringEngine = Provide[Container.evolution_scorer],
) -> EvolutionScoringEngine:
    return scorer


# Container wiring helper
def wire_container(*modules: str) -> None:
    """
    Wire the container to specified modules.

    Args:
        *modules: Module names to wire
    """
    container.wire(modules=modules)
    logger.info(f"Container wired to modules: {modules}")


def unwire_container(*modules: str) -> None:
    container.unwire(modules=modules)
    logger.info(f"Container unwired from modules: {modules}")


__all__ = [
    "Container",
    "ContainerManager",
    "container",
    "container_manager",
    "wire_container",
    "unwire_container",
    "get_database",
    "get_redis",
    "get_metrics",
    "get_cache",
    "get_atomic_profile_service",
    "get_edit_metadata_service",
    "get_versioning_service",
    "get_feedback_learning_service",
    "get_evolution_scorer",
]
