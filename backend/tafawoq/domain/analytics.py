"""
Analytics Domain Model

Per-user aggregate read model derived from completed sessions.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class UserAnalytics(BaseModel):
    """Aggregated performance of one user."""
    id: Optional[str] = None
    user_id: str
    last_exam_verbal_score: Optional[float] = None
    last_exam_quantitative_score: Optional[float] = None
    last_exam_overall_average: Optional[float] = None
    total_exams_completed: int = 0
    total_practices_completed: int = 0
    total_practice_hours: float = 0.0
    strongest_category: Optional[str] = None
    weakest_category: Optional[str] = None
    last_activity_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
