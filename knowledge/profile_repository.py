"""
Profile Repository: SQL-Backed Profile Store
============================================

SQLAlchemy Core implementation of ``ProfileStore``. The conditional write
is a single ``UPDATE ... WHERE user_id = :id AND version = :expected``;
a zero rowcount is disambiguated into NOT_FOUND vs VERSION_MISMATCH with
a follow-up existence check.

Architecture: Repository Pattern + SQLAlchemy Core
"""

from typing import Any, Optional

from loguru import logger
from sqlalchemy import insert, select, update

from core.enums import WriteStatus
from core.models import UserProfileDocument
from infrastructure.database import DatabaseManager
from infrastructure.schema import user_profiles_table
from knowledge.profile_store import ConditionalWriteResult, ProfileStore


def _document_columns(document: UserProfileDocument) -> dict[str, Any]:
    data = document.model_dump(
        mode="json", include={"style_profile", "manual_overrides", "profile_versions"}
    )
    return {
        "style_profile": data["style_profile"],
        "manual_overrides": data["manual_overrides"],
        "profile_versions": data["profile_versions"],
    }


class ProfileRepository(ProfileStore):
    """
    Repository for user profile documents.

    All methods are async and use SQLAlchemy Core for performance.
    """

    def __init__(self, database_manager: DatabaseManager):
        """
        Initialize repository with database manager.

        Args:
            database_manager: Database manager for session management
        """
        self.database_manager = database_manager
        logger.debug("ProfileRepository initialized")

    @staticmethod
    def _row_to_document(row) -> UserProfileDocument:
        data = row._mapping
        return UserProfileDocument.model_validate(
            {
                "user_id": data["user_id"],
                "style_profile": data["style_profile"],
                "manual_overrides": data["manual_overrides"] or {},
                "profile_versions": data["profile_versions"] or [],
                "version": data["version"],
            }
        )

    async def load_by_user_id(self, user_id: str) -> Optional[UserProfileDocument]:
        """
        Retrieve a profile document by user ID.

        Returns:
            UserProfileDocument if found, None otherwise
        """
        async with self.database_manager.session() as session:
            query = select(user_profiles_table).where(user_profiles_table.c.user_id == user_id)
            row = (await session.execute(query)).fetchone()

        if row is None:
            logger.debug(f"Profile document not found: {user_id}")
            return None
        return self._row_to_document(row)

    async def conditional_update(
        self,
        user_id: str,
        expected_version: int,
        document: UserProfileDocument,
    ) -> ConditionalWriteResult:
        new_version = expected_version + 1
        async with self.database_manager.session() as session:
            statement = (
                update(user_profiles_table)
                .where(user_profiles_table.c.user_id == user_id)
                .where(user_profiles_table.c.version == expected_version)
                .values(**_document_columns(document), version=new_version)
            )
            result = await session.execute(statement)

            if result.rowcount == 0:
                version_query = select(user_profiles_table.c.version).where(
                    user_profiles_table.c.user_id == user_id
                )
                current = (await session.execute(version_query)).scalar_one_or_none()
                if current is None:
                    return ConditionalWriteResult(WriteStatus.NOT_FOUND)
                logger.debug(
                    f"Version mismatch for {user_id}: expected {expected_version}, found {current}"
                )
                return ConditionalWriteResult(WriteStatus.VERSION_MISMATCH)

        stored = document.model_copy(update={"user_id": user_id, "version": new_version})
        return ConditionalWriteResult(WriteStatus.APPLIED, stored)

    async def create(self, document: UserProfileDocument) -> UserProfileDocument:
        """
        Insert a new profile document at version 0.

        Raises:
            sqlalchemy.exc.IntegrityError: Document already exists
        """
        async with self.database_manager.session() as session:
            await session.execute(
                insert(user_profiles_table).values(
                    user_id=document.user_id, version=0, **_document_columns(document)
                )
            )
        logger.info(f"Created profile document for {document.user_id}")
        return document.model_copy(update={"version": 0})


__all__ = ["ProfileRepository"]
