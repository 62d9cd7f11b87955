"""
Atomic Profile Update Service: Sole Write Path for Style Profiles
=================================================================

Applies field-level mutations to a user's profile document so that
concurrent writers never silently clobber each other and no persisted
state violates the profile's range invariants.

Algorithm (optimistic concurrency with retry):
1. Validate every operation against its field's declared type (no I/O)
2. Load the document and its version
3. Project the operations and re-validate the whole document
4. Conditional write: "replace iff version == observed version"
5. On version mismatch back off (base * 2**attempt) and retry from 2
6. After ``max_retries`` attempts report a CONCURRENCY failure

With ``use_lock`` the loop above runs while holding the user's
distributed lock; failing to acquire it reports LOCK without any write.

Errors are raised internally and surface as ``AtomicUpdateResult``
failures discriminated by ``UpdateErrorKind``.

Architecture: Service Layer Pattern + Optimistic Concurrency Control
"""

import asyncio
import time
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Union

from loguru import logger
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from config.settings import ConcurrencySettings, get_settings
from core.enums import UpdateErrorKind, UpdateOperator, WriteStatus
from core.exceptions import (
    ConcurrencyConflictError,
    LockAcquisitionError,
    ProfileUpdateException,
    ProfileValidationError,
    UserNotFoundError,
)
from core.models import AtomicUpdateResult, ProfileUpdateOperation, UserProfileDocument
from core.mutations import apply_operations, validate_operations
from infrastructure.distributed_lock import DistributedLock
from infrastructure.monitoring import MetricsCollector
from knowledge.profile_store import ProfileStore
from optimization.cache_manager import CacheManager

OperationLike = Union[ProfileUpdateOperation, dict]
OperationBuilder = Callable[[UserProfileDocument], Sequence[ProfileUpdateOperation]]


class _StaleVersion(Exception):
    """Conditional write lost the race; the attempt is retried."""


def _coerce_operations(operations: Sequence[OperationLike]) -> List[ProfileUpdateOperation]:
    return [
        op if isinstance(op, ProfileUpdateOperation) else ProfileUpdateOperation.model_validate(op)
        for op in operations
    ]


class AtomicProfileUpdateService:
    """
    Version-checked, optionally locked, all-or-nothing profile updates.

    Every public method returns an ``AtomicUpdateResult`` and never raises
    for not-found, validation, concurrency or lock failures.
    """

    def __init__(
        self,
        profile_store: ProfileStore,
        lock: Optional[DistributedLock] = None,
        cache: Optional[CacheManager] = None,
        metrics: Optional[MetricsCollector] = None,
        concurrency_settings: Optional[ConcurrencySettings] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize service.

        Args:
            profile_store: Store offering version-checked conditional writes
            lock: Distributed lock used when callers pass ``use_lock=True``
            cache: Cache whose per-user keys are invalidated after each write
            metrics: Optional Prometheus collector
            concurrency_settings: Retry and lock tuning
            sleep: Backoff primitive (injectable for tests)
        """
        self.profiles = profile_store
        self.lock = lock
        self.cache = cache
        self.metrics = metrics
        self._settings = concurrency_settings or get_settings().concurrency
        self._sleep = sleep
        logger.debug("AtomicProfileUpdateService initialized")

    # =========================================================================
    # PUBLIC OPERATIONS
    # =========================================================================

    async def update_field(
        self, user_id: str, field_path: str, value: Any, use_lock: bool = False
    ) -> AtomicUpdateResult:
        """
        Set one profile field.

        Args:
            user_id: Profile owner
            field_path: Dotted path relative to the style profile, e.g. ``tone.formality``
            value: New value, validated against the field's range or enum
            use_lock: Serialize through the user's distributed lock

        Returns:
            Update result carrying the committed document on success
        """
        return await self.update_style_profile_atomic(
            user_id,
            [ProfileUpdateOperation(field=field_path, value=value)],
            use_lock=use_lock,
        )

    async def increment_field(
        self, user_id: str, field_path: str, delta: Union[int, float] = 1, use_lock: bool = False
    ) -> AtomicUpdateResult:
        """Add ``delta`` to a numeric field through the conditional-write path."""
        return await self.update_style_profile_atomic(
            user_id,
            [ProfileUpdateOperation(field=field_path, value=delta, operation=UpdateOperator.INC)],
            use_lock=use_lock,
        )

    async def update_style_profile_atomic(
        self,
        user_id: str,
        operations: Sequence[OperationLike],
        use_lock: bool = False,
    ) -> AtomicUpdateResult:
        """
        Apply a batch of operations as one logical unit.

        If any operation fails validation none of them is applied and the
        store is never contacted.

        Args:
            user_id: Profile owner
            operations: ``ProfileUpdateOperation`` instances or equivalent dicts
            use_lock: Serialize through the user's distributed lock

        Returns:
            Update result
        """
        started = time.perf_counter()
        try:
            validated = validate_operations(_coerce_operations(operations))
        except ProfileUpdateException as e:
            logger.warning(f"Rejected profile update for {user_id}: {e.message}")
            return self._finish(user_id, AtomicUpdateResult.failure(e), started)
        except ValueError as e:
            # pydantic ValidationError subclasses ValueError
            error = ProfileValidationError(f"Malformed update operation: {e}", cause=e)
            return self._finish(user_id, AtomicUpdateResult.failure(error), started)

        result = await self._run(user_id, lambda _document: validated, use_lock)
        return self._finish(user_id, result, started)

    async def update_with(
        self,
        user_id: str,
        builder: OperationBuilder,
        use_lock: bool = False,
    ) -> AtomicUpdateResult:
        """
        Read-modify-write where the operations depend on the current document.

        ``builder`` is called with the freshly loaded document on every
        attempt, so a retry after a version conflict recomputes the batch
        from the state that will actually be replaced. An empty batch
        commits nothing and reports success with the current document.
        """
        started = time.perf_counter()

        def build(document: UserProfileDocument):
            operations = _coerce_operations(builder(document))
            return validate_operations(operations) if operations else []

        result = await self._run(user_id, build, use_lock)
        return self._finish(user_id, result, started)

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def lock_key(self, user_id: str) -> str:
        return f"{self._settings.lock_key_prefix}{user_id}"

    async def _run(self, user_id: str, build, use_lock: bool) -> AtomicUpdateResult:
        if not use_lock:
            return await self._optimistic_update(user_id, build)

        key = self.lock_key(user_id)
        timeout = self._settings.lock_acquire_timeout
        if self.lock is None:
            error = LockAcquisitionError(
                key, timeout_seconds=timeout, message=f"No distributed lock configured for {key}"
            )
            return AtomicUpdateResult.failure(error)

        try:
            async with self.lock.hold(key, timeout):
                return await self._optimistic_update(user_id, build)
        except LockAcquisitionError as e:
            logger.warning(f"Profile update for {user_id} skipped: {e.message}")
            return AtomicUpdateResult.failure(e)

    async def _optimistic_update(self, user_id: str, build) -> AtomicUpdateResult:
        max_retries = self._settings.max_retries
        conflicts = 0
        result: Optional[AtomicUpdateResult] = None

        def log_conflict(retry_state: RetryCallState) -> None:
            logger.debug(
                f"Version conflict on {user_id} "
                f"(attempt {retry_state.attempt_number}/{max_retries}), "
                f"retrying in {retry_state.next_action.sleep:.3f}s"
            )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(max_retries),
            wait=wait_exponential(multiplier=self._settings.retry_delay_base),
            retry=retry_if_exception_type(_StaleVersion),
            before_sleep=log_conflict,
            sleep=self._sleep,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    try:
                        result = await self._attempt(user_id, build, conflicts)
                    except _StaleVersion:
                        conflicts += 1
                        if self.metrics:
                            self.metrics.record_version_conflict()
                        raise
        except RetryError:
            error: ProfileUpdateException = ConcurrencyConflictError(
                user_id, attempts=max_retries
            )
        except ProfileUpdateException as e:
            error = e
        else:
            return result

        log = logger.warning if error.kind == UpdateErrorKind.CONCURRENCY else logger.info
        log(f"Profile update for {user_id} failed ({error.kind.value}): {error.message}")
        return AtomicUpdateResult.failure(error, conflicts)

    async def _attempt(self, user_id: str, build, retries: int) -> AtomicUpdateResult:
        """One load, project and conditional-write round."""
        document = await self.profiles.load_by_user_id(user_id)
        if document is None:
            raise UserNotFoundError(user_id)

        validated = build(document)
        if not validated:
            return AtomicUpdateResult.ok(document, retries)

        projected = apply_operations(document, validated)
        write = await self.profiles.conditional_update(user_id, document.version, projected)
        if write.status == WriteStatus.NOT_FOUND:
            raise UserNotFoundError(user_id)
        if not write.applied:
            raise _StaleVersion()

        await self._invalidate(user_id)
        logger.debug(
            f"Profile {user_id} updated to version {write.document.version} "
            f"after {retries} retries"
        )
        return AtomicUpdateResult.ok(write.document, retries)

    async def _invalidate(self, user_id: str) -> None:
        if self.cache is not None:
            await self.cache.invalidate_user(user_id)

    def _finish(
        self, user_id: str, result: AtomicUpdateResult, started: float
    ) -> AtomicUpdateResult:
        if self.metrics:
            self.metrics.record_profile_update(
                success=result.success,
                retries=result.retries,
                duration_seconds=time.perf_counter() - started,
                error_kind=result.error_kind.value if result.error_kind else None,
            )
        return result


__all__ = ["AtomicProfileUpdateService", "OperationBuilder"]
