"""
Profile Versioning Service
==========================

Keeps a bounded history of style profile snapshots on the user's
document and restores earlier snapshots on request.

Snapshots are written through ``AtomicProfileUpdateService`` like every
other profile mutation, so version history and the live profile always
change together under the same optimistic-concurrency check.
"""

from typing import List, Optional

from loguru import logger

from config.settings import LearningSettings, get_settings
from core.enums import VersionSource
from core.exceptions import VersionNotFoundError
from core.models import (
    AtomicUpdateResult,
    ProfileUpdateOperation,
    ProfileVersion,
    UserProfileDocument,
    utc_now,
)
from knowledge.profile_store import ProfileStore
from services.atomic_profile_service import AtomicProfileUpdateService


def _resolve_index(versions: List[ProfileVersion], index: int) -> Optional[int]:
    actual = len(versions) + index if index < 0 else index
    return actual if 0 <= actual < len(versions) else None


def snapshot_operations(
    document: UserProfileDocument, source: VersionSource, max_versions: int
) -> List[ProfileUpdateOperation]:
    """
    Operations appending a snapshot of the current profile to the history.

    The history is trimmed to the ``max_versions`` most recent entries.
    Returns no operations when the document has no profile.
    """
    profile = document.style_profile
    if profile is None:
        return []

    snapshot = ProfileVersion(
        profile=profile.model_copy(deep=True),
        timestamp=utc_now(),
        source=source,
        learning_iterations=profile.learning_iterations,
    )
    history = [*document.profile_versions, snapshot][-max_versions:]
    return [ProfileUpdateOperation(field="profile_versions", value=history)]


class ProfileVersioningService:
    """Snapshot, inspect and roll back style profile versions."""

    def __init__(
        self,
        atomic_service: AtomicProfileUpdateService,
        profile_store: ProfileStore,
        learning_settings: Optional[LearningSettings] = None,
    ):
        self.atomic = atomic_service
        self.profiles = profile_store
        self._settings = learning_settings or get_settings().learning

    @property
    def max_versions(self) -> int:
        return self._settings.max_profile_versions

    async def create_version_snapshot(
        self, user_id: str, source: VersionSource = VersionSource.MANUAL
    ) -> AtomicUpdateResult:
        """
        Append a snapshot of the current profile.

        A user without a style profile is left untouched and reported as a
        successful no-op.
        """
        result = await self.atomic.update_with(
            user_id, lambda doc: snapshot_operations(doc, source, self.max_versions)
        )
        if result.success:
            logger.debug(f"Snapshot ({source.value}) recorded for user {user_id}")
        return result

    async def rollback_to_version(self, user_id: str, index: int) -> AtomicUpdateResult:
        """
        Restore the profile stored in version ``index``.

        Negative indices count from the most recent snapshot (-1 is the
        latest). The current profile is snapshotted with source ``rollback``
        before it is replaced, in the same write.

        Args:
            user_id: Profile owner
            index: Position in the version history

        Returns:
            Update result whose document carries the restored profile

        Raises:
            VersionNotFoundError: ``index`` outside the history
        """

        def build(document: UserProfileDocument) -> List[ProfileUpdateOperation]:
            versions = document.profile_versions
            actual = _resolve_index(versions, index)
            if actual is None:
                raise VersionNotFoundError(user_id, index, len(versions))
            target = versions[actual]
            return [
                *snapshot_operations(document, VersionSource.ROLLBACK, self.max_versions),
                ProfileUpdateOperation(
                    field="style_profile", value=target.profile.model_copy(deep=True)
                ),
            ]

        result = await self.atomic.update_with(user_id, build)
        if result.success:
            logger.info(f"Rolled back profile for user {user_id} to version {index}")
        return result

    async def get_version_history(self, user_id: str) -> List[ProfileVersion]:
        document = await self.profiles.find_by_id(user_id)
        return list(document.profile_versions) if document else []

    async def get_version(self, user_id: str, index: int) -> ProfileVersion:
        """
        Read one snapshot without restoring it.

        Raises:
            VersionNotFoundError: Unknown user or ``index`` outside the history
        """
        versions = await self.get_version_history(user_id)
        actual = _resolve_index(versions, index)
        if actual is None:
            raise VersionNotFoundError(user_id, index, len(versions))
        return versions[actual]

    async def prune_versions(self, user_id: str, max_versions: Optional[int] = None) -> int:
        """Drop all but the ``max_versions`` most recent snapshots; returns the number dropped."""
        keep = self.max_versions if max_versions is None else max_versions
        pruned = 0

        def build(document: UserProfileDocument) -> List[ProfileUpdateOperation]:
            nonlocal pruned
            versions = document.profile_versions
            pruned = max(0, len(versions) - keep)
            if not pruned:
                return []
            kept = versions[-keep:] if keep else []
            return [ProfileUpdateOperation(field="profile_versions", value=kept)]

        result = await self.atomic.update_with(user_id, build)
        return pruned if result.success else 0

    async def clear_version_history(self, user_id: str) -> int:
        """Remove every snapshot; returns how many were removed."""
        cleared = 0

        def build(document: UserProfileDocument) -> List[ProfileUpdateOperation]:
            nonlocal cleared
            cleared = len(document.profile_versions)
            return [ProfileUpdateOperation(field="profile_versions", value=[])] if cleared else []

        result = await self.atomic.update_with(user_id, build)
        return cleared if result.success else 0


__all__ = ["ProfileVersioningService", "snapshot_operations"]
