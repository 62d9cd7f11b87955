"""
Database Schema: SQLAlchemy Core Table Definitions

Defines the profile and content tables using SQLAlchemy Core for
type-safe query building. Profile sub-documents are stored as JSON
columns; the integer ``version`` column backs optimistic concurrency.
"""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    func,
)

# Metadata instance for all tables
metadata = MetaData()

# User Profiles Table (one document per user)
user_profiles_table = Table(
    "user_profiles",
    metadata,
    Column("user_id", String(64), primary_key=True),
    Column("style_profile", JSON, nullable=True),
    Column("manual_overrides", JSON, nullable=False),
    Column("profile_versions", JSON, nullable=False),
    Column("version", Integer, nullable=False, default=0),
    Column("created_at", DateTime(timezone=True), default=func.now()),
    Column("updated_at", DateTime(timezone=True), default=func.now(), onupdate=func.now()),
)

# Generated Content Table
content_items_table = Table(
    "content_items",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("user_id", String(64), nullable=False, index=True),
    Column("platform", String(20), nullable=False),
    Column("text", Text, nullable=False, default=""),
    Column("created_at", DateTime(timezone=True), default=func.now()),
    Column("edit_metadata", JSON, nullable=True),
    # Denormalized from edit_metadata for ordering and filtering
    Column("edit_timestamp", DateTime(timezone=True), nullable=True),
    Column("learning_processed", Boolean, nullable=True),
    # Composite index for recent-edit queries
    Index("idx_content_user_edit_ts", "user_id", "edit_timestamp"),
)


__all__ = [
    "metadata",
    "user_profiles_table",
    "content_items_table",
]
