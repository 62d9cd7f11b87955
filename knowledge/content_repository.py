"""
Content Repository: SQL-Backed Content Store
============================================

SQLAlchemy Core implementation of ``ContentStore``. Edit metadata is a
JSON column; its timestamp and processed flag are mirrored into plain
columns so ordering, filtering and pruning stay index-backed.

Architecture: Repository Pattern + SQLAlchemy Core
"""

from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from loguru import logger
from sqlalchemy import func, insert, select, update

from core.models import ContentItem, EditMetadata
from infrastructure.database import DatabaseManager
from infrastructure.schema import content_items_table
from knowledge.content_store import ContentStore


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite drops tzinfo on round trip
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _metadata_columns(metadata: Optional[EditMetadata]) -> dict[str, Any]:
    if metadata is None:
        return {"edit_metadata": None, "edit_timestamp": None, "learning_processed": None}
    return {
        "edit_metadata": metadata.model_dump(mode="json", exclude={"length_delta"}),
        "edit_timestamp": metadata.edit_timestamp,
        "learning_processed": metadata.learning_processed,
    }


class ContentRepository(ContentStore):
    """Repository for generated content items and their edit metadata."""

    def __init__(self, database_manager: DatabaseManager):
        self.database_manager = database_manager
        logger.debug("ContentRepository initialized")

    @staticmethod
    def _row_to_item(row) -> ContentItem:
        data = row._mapping
        return ContentItem.model_validate(
            {
                "id": data["id"],
                "user_id": data["user_id"],
                "platform": data["platform"],
                "text": data["text"],
                "created_at": _aware(data["created_at"]),
                "edit_metadata": data["edit_metadata"],
            }
        )

    async def get(self, content_id: str) -> Optional[ContentItem]:
        async with self.database_manager.session() as session:
            query = select(content_items_table).where(content_items_table.c.id == content_id)
            row = (await session.execute(query)).fetchone()
        return self._row_to_item(row) if row else None

    async def save(self, item: ContentItem) -> ContentItem:
        values = {
            "user_id": item.user_id,
            "platform": item.platform.value,
            "text": item.text,
            "created_at": item.created_at,
            **_metadata_columns(item.edit_metadata),
        }
        async with self.database_manager.session() as session:
            result = await session.execute(
                update(content_items_table)
                .where(content_items_table.c.id == item.id)
                .values(**values)
            )
            if result.rowcount == 0:
                await session.execute(insert(content_items_table).values(id=item.id, **values))
        return item

    async def list_by_user(self, user_id: str) -> list[ContentItem]:
        async with self.database_manager.session() as session:
            query = (
                select(content_items_table)
                .where(content_items_table.c.user_id == user_id)
                .order_by(content_items_table.c.created_at)
            )
            rows = (await session.execute(query)).fetchall()
        return [self._row_to_item(row) for row in rows]

    def _edited_filter(self, query, user_id: str, processed: Optional[bool]):
        query = query.where(content_items_table.c.user_id == user_id).where(
            content_items_table.c.edit_timestamp.isnot(None)
        )
        if processed is not None:
            query = query.where(content_items_table.c.learning_processed == processed)
        return query

    async def find_edited(
        self,
        user_id: str,
        *,
        limit: Optional[int] = None,
        processed: Optional[bool] = None,
        newest_first: bool = True,
    ) -> list[ContentItem]:
        order = content_items_table.c.edit_timestamp
        query = self._edited_filter(select(content_items_table), user_id, processed).order_by(
            order.desc() if newest_first else order.asc()
        )
        if limit is not None:
            query = query.limit(limit)
        async with self.database_manager.session() as session:
            rows = (await session.execute(query)).fetchall()
        return [self._row_to_item(row) for row in rows]

    async def count_edited(self, user_id: str, *, processed: Optional[bool] = None) -> int:
        query = self._edited_filter(
            select(func.count()).select_from(content_items_table), user_id, processed
        )
        async with self.database_manager.session() as session:
            return int((await session.execute(query)).scalar_one())

    async def set_edit_metadata(self, content_id: str, metadata: EditMetadata) -> bool:
        async with self.database_manager.session() as session:
            result = await session.execute(
                update(content_items_table)
                .where(content_items_table.c.id == content_id)
                .values(**_metadata_columns(metadata))
            )
        return result.rowcount > 0

    async def clear_edit_metadata(self, content_ids: Iterable[str]) -> int:
        ids = list(set(content_ids))
        if not ids:
            return 0
        async with self.database_manager.session() as session:
            result = await session.execute(
                update(content_items_table)
                .where(content_items_table.c.id.in_(ids))
                .where(content_items_table.c.edit_timestamp.isnot(None))
                .values(**_metadata_columns(None))
            )
        return result.rowcount

    async def mark_processed(self, content_ids: Iterable[str]) -> int:
        ids = list(set(content_ids))
        if not ids:
            return 0
        changed = 0
        async with self.database_manager.session() as session:
            query = (
                select(content_items_table.c.id, content_items_table.c.edit_metadata)
                .where(content_items_table.c.id.in_(ids))
                .where(content_items_table.c.learning_processed.is_(False))
            )
            for content_id, raw in (await session.execute(query)).fetchall():
                metadata = dict(raw or {})
                metadata["learning_processed"] = True
                result = await session.execute(
                    update(content_items_table)
                    .where(content_items_table.c.id == content_id)
                    .where(content_items_table.c.learning_processed.is_(False))
                    .values(edit_metadata=metadata, learning_processed=True)
                )
                changed += result.rowcount
        return changed


__all__ = ["ContentRepository"]
