"""
Content Session Database Models

Exam/practice sessions and their (write-once) results.
"""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import JSON, DateTime, Index, Text
from sqlmodel import Field

from tafawoq.infrastructure.db.models.base import TimestampMixin, UUIDMixin


class ContentSessionModel(UUIDMixin, TimestampMixin, table=True):
    """Maps to the 'content_sessions' table."""

    __tablename__ = "content_sessions"
    __table_args__ = (
        Index("ix_content_sessions_quota", "user_id", "kind", "status", "started_at"),
    )

    user_id: UUID = Field(index=True, nullable=False)
    kind: str = Field(nullable=False)
    status: str = Field(default="in_progress", nullable=False)

    started_at: datetime = Field(nullable=False, sa_type=DateTime(timezone=True))
    completed_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))

    question_count: int = Field(nullable=False)
    questions_answered: int = Field(default=0)
    time_spent_seconds: int = Field(default=0)

    # Practice-only criteria
    section: Optional[str] = Field(default=None)
    categories: list[str] = Field(default_factory=list, sa_type=JSON)
    difficulty: Optional[str] = Field(default=None)

    # Exam-only criteria
    academic_track: Optional[str] = Field(default=None)

    questions: list[dict[str, Any]] = Field(default_factory=list, sa_type=JSON)
    generation_metadata: dict[str, Any] = Field(default_factory=dict, sa_type=JSON)


class SessionResultModel(UUIDMixin, table=True):
    """Maps to the 'session_results' table. One row per completed session."""

    __tablename__ = "session_results"

    session_id: UUID = Field(
        foreign_key="content_sessions.id",
        unique=True,
        index=True,
        nullable=False,
    )
    user_id: UUID = Field(index=True, nullable=False)
    kind: str = Field(nullable=False)

    section_scores: dict[str, float] = Field(default_factory=dict, sa_type=JSON)
    overall_score: float = Field(nullable=False)
    category_breakdown: dict[str, float] = Field(default_factory=dict, sa_type=JSON)
    strengths: list[dict[str, Any]] = Field(default_factory=list, sa_type=JSON)
    weaknesses: list[dict[str, Any]] = Field(default_factory=list, sa_type=JSON)
    improvement_advice: str = Field(default="", sa_type=Text)
    answer_fingerprint: str = Field(nullable=False)

    created_at: datetime = Field(nullable=False, sa_type=DateTime(timezone=True))
