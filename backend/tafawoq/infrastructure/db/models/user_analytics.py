"""
User Analytics Model

Per-user aggregate read model refreshed after each completed session.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import DateTime
from sqlmodel import Field

from tafawoq.infrastructure.db.models.base import TimestampMixin, UUIDMixin


class UserAnalyticsModel(UUIDMixin, TimestampMixin, table=True):
    """Maps to the 'user_analytics' table."""

    __tablename__ = "user_analytics"

    user_id: UUID = Field(unique=True, index=True, nullable=False)

    last_exam_verbal_score: Optional[float] = Field(default=None)
    last_exam_quantitative_score: Optional[float] = Field(default=None)
    last_exam_overall_average: Optional[float] = Field(default=None)

    total_exams_completed: int = Field(default=0)
    total_practices_completed: int = Field(default=0)
    total_practice_hours: float = Field(default=0.0)

    strongest_category: Optional[str] = Field(default=None)
    weakest_category: Optional[str] = Field(default=None)

    last_activity_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
