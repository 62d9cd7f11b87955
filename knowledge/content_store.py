"""
Content Store: Generated Content and Edit Metadata Persistence
==============================================================

Abstract access to generated content items and the edit metadata
attached to them. Edit records are ordered by ``edit_timestamp``;
clearing edit metadata never deletes the owning content item.

Architecture: Repository Pattern
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Iterable, Optional

from core.models import ContentItem, EditMetadata


class ContentStore(ABC):
    """Content items owned by users, optionally carrying edit metadata."""

    @abstractmethod
    async def get(self, content_id: str) -> Optional[ContentItem]:
        """Fetch one content item."""

    @abstractmethod
    async def save(self, item: ContentItem) -> ContentItem:
        """Insert or replace a content item."""

    @abstractmethod
    async def list_by_user(self, user_id: str) -> list[ContentItem]:
        """All content items for a user, edited or not."""

    @abstractmethod
    async def find_edited(
        self,
        user_id: str,
        *,
        limit: Optional[int] = None,
        processed: Optional[bool] = None,
        newest_first: bool = True,
    ) -> list[ContentItem]:
        """
        Content items of ``user_id`` that carry edit metadata.

        Args:
            user_id: Owner
            limit: Maximum number of items
            processed: Filter on ``learning_processed`` when not None
            newest_first: Order by edit timestamp descending when True
        """

    @abstractmethod
    async def count_edited(self, user_id: str, *, processed: Optional[bool] = None) -> int:
        """Number of content items with edit metadata."""

    @abstractmethod
    async def set_edit_metadata(self, content_id: str, metadata: EditMetadata) -> bool:
        """Attach edit metadata; False if the item does not exist."""

    @abstractmethod
    async def clear_edit_metadata(self, content_ids: Iterable[str]) -> int:
        """Remove edit metadata from the given items; returns items changed."""

    @abstractmethod
    async def mark_processed(self, content_ids: Iterable[str]) -> int:
        """Flip ``learning_processed`` to True; counts only actual transitions."""


class InMemoryContentStore(ContentStore):
    """Process-local content store used for tests and single-process runs."""

    def __init__(self):
        self._items: dict[str, ContentItem] = {}
        self._lock = asyncio.Lock()

    async def get(self, content_id: str) -> Optional[ContentItem]:
        item = self._items.get(content_id)
        return item.model_copy(deep=True) if item else None

    async def save(self, item: ContentItem) -> ContentItem:
        async with self._lock:
            self._items[item.id] = item.model_copy(deep=True)
        return item

    async def list_by_user(self, user_id: str) -> list[ContentItem]:
        return [
            item.model_copy(deep=True) for item in self._items.values() if item.user_id == user_id
        ]

    async def find_edited(
        self,
        user_id: str,
        *,
        limit: Optional[int] = None,
        processed: Optional[bool] = None,
        newest_first: bool = True,
    ) -> list[ContentItem]:
        await asyncio.sleep(0)
        edited = [
            item
            for item in self._items.values()
            if item.user_id == user_id
            and item.is_edited
            and (processed is None or item.edit_metadata.learning_processed == processed)
        ]
        edited.sort(key=lambda item: item.edit_metadata.edit_timestamp, reverse=newest_first)
        if limit is not None:
            edited = edited[:limit]
        return [item.model_copy(deep=True) for item in edited]

    async def count_edited(self, user_id: str, *, processed: Optional[bool] = None) -> int:
        return len(await self.find_edited(user_id, processed=processed))

    async def set_edit_metadata(self, content_id: str, metadata: EditMetadata) -> bool:
        async with self._lock:
            item = self._items.get(content_id)
            if item is None:
                return False
            item.edit_metadata = metadata.model_copy(deep=True)
            return True

    async def clear_edit_metadata(self, content_ids: Iterable[str]) -> int:
        changed = 0
        async with self._lock:
            for content_id in set(content_ids):
                item = self._items.get(content_id)
                if item is not None and item.is_edited:
                    item.edit_metadata = None
                    changed += 1
        return changed

    async def mark_processed(self, content_ids: Iterable[str]) -> int:
        changed = 0
        async with self._lock:
            for content_id in set(content_ids):
                item = self._items.get(content_id)
                metadata = item.edit_metadata if item else None
                if metadata is not None and not metadata.learning_processed:
                    metadata.learning_processed = True
                    changed += 1
        return changed


__all__ = ["ContentStore", "InMemoryContentStore"]
