"""
Profile Store: Version-Checked Document Persistence
===================================================

Abstract atomic per-document store for user profile documents. The only
write primitive for existing documents is ``conditional_update``, which
succeeds iff the stored ``version`` equals the caller's observed version
and bumps the version on success. "Document not found" is reported
distinctly from "version mismatch".

Architecture: Repository Pattern + Optimistic Concurrency (CAS)
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from loguru import logger

from core.enums import WriteStatus
from core.models import UserProfileDocument


@dataclass(frozen=True)
class ConditionalWriteResult:
    """Outcome of a version-checked write."""

    status: WriteStatus
    document: Optional[UserProfileDocument] = None

    @property
    def applied(self) -> bool:
        return self.status == WriteStatus.APPLIED


class ProfileStore(ABC):
    """Atomic per-user document store with compare-and-swap writes."""

    @abstractmethod
    async def load_by_user_id(self, user_id: str) -> Optional[UserProfileDocument]:
        """Load the document and its current version, or None."""

    async def find_by_id(self, user_id: str) -> Optional[UserProfileDocument]:
        """Plain read for consumers outside the mutation path."""
        return await self.load_by_user_id(user_id)

    @abstractmethod
    async def conditional_update(
        self,
        user_id: str,
        expected_version: int,
        document: UserProfileDocument,
    ) -> ConditionalWriteResult:
        """
        Replace the stored document iff its version equals ``expected_version``.

        Args:
            user_id: Document key
            expected_version: Version observed when ``document`` was projected
            document: Projected document (its ``version`` field is ignored)

        Returns:
            APPLIED with the stored document (version bumped by one),
            VERSION_MISMATCH, or NOT_FOUND
        """

    @abstractmethod
    async def create(self, document: UserProfileDocument) -> UserProfileDocument:
        """Insert a new document at version 0."""


class InMemoryProfileStore(ProfileStore):
    """
    Process-local store used for tests and single-process deployments.

    Every call yields to the event loop before touching state so concurrent
    callers interleave the way they would against a remote store.
    """

    def __init__(self):
        self._documents: dict[str, UserProfileDocument] = {}
        self._lock = asyncio.Lock()

    async def load_by_user_id(self, user_id: str) -> Optional[UserProfileDocument]:
        await asyncio.sleep(0)
        document = self._documents.get(user_id)
        return document.model_copy(deep=True) if document else None

    async def conditional_update(
        self,
        user_id: str,
        expected_version: int,
        document: UserProfileDocument,
    ) -> ConditionalWriteResult:
        await asyncio.sleep(0)
        async with self._lock:
            current = self._documents.get(user_id)
            if current is None:
                return ConditionalWriteResult(WriteStatus.NOT_FOUND)
            if current.version != expected_version:
                logger.debug(
                    f"Version mismatch for {user_id}: expected {expected_version}, "
                    f"found {current.version}"
                )
                return ConditionalWriteResult(WriteStatus.VERSION_MISMATCH)

            stored = document.model_copy(
                update={"user_id": user_id, "version": expected_version + 1}, deep=True
            )
            self._documents[user_id] = stored
            return ConditionalWriteResult(WriteStatus.APPLIED, stored.model_copy(deep=True))

    async def create(self, document: UserProfileDocument) -> UserProfileDocument:
        async with self._lock:
            if document.user_id in self._documents:
                raise ValueError(f"Profile document already exists for {document.user_id}")
            stored = document.model_copy(update={"version": 0}, deep=True)
            self._documents[document.user_id] = stored
            return stored.model_copy(deep=True)


__all__ = ["ConditionalWriteResult", "ProfileStore", "InMemoryProfileStore"]
