"""
Base Model for SQLModel ORM

Provides common fields for all database models. Timestamps are stored
timezone-aware (UTC).
"""

from datetime import datetime, timezone
from uuid import UUID, uuid4

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TimestampMixin(SQLModel):
    """Mixin providing timestamp fields for models."""

    created_at: datetime = Field(
        default_factory=utc_now,
        nullable=False,
        sa_type=DateTime(timezone=True),
        description="Record creation timestamp (UTC)",
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        nullable=False,
        sa_type=DateTime(timezone=True),
        sa_column_kwargs={"onupdate": utc_now},
        description="Last update timestamp (UTC)",
    )


class UUIDMixin(SQLModel):
    """Mixin providing UUID primary key."""

    id: UUID = Field(
        default_factory=uuid4,
        primary_key=True,
        nullable=False,
        description="Unique identifier (UUID v4)",
    )
