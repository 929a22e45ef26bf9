"""
User Analytics Repository

Counters are incremented in SQL so concurrent completions never lose an
update.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError as SQLIntegrityError
from sqlmodel import select

from tafawoq.domain.analytics import UserAnalytics
from tafawoq.infrastructure.db.models.base import utc_now
from tafawoq.infrastructure.db.models.user_analytics import UserAnalyticsModel
from tafawoq.infrastructure.db.repositories.base_repository import (
    BaseRepository,
    as_utc,
    to_uuid,
)


logger = logging.getLogger(__name__)


class AnalyticsRepository(BaseRepository):
    """Repository for the user_analytics read model."""

    table_name = "user_analytics"

    async def get_by_user_id(self, user_id: str) -> Optional[UserAnalytics]:
        async with self._session("get_analytics") as session:
            result = await session.execute(
                select(UserAnalyticsModel).where(UserAnalyticsModel.user_id == to_uuid(user_id))
            )
            model = result.scalar_one_or_none()
            return self._to_domain(model) if model else None

    async def ensure(self, user_id: str) -> UserAnalytics:
        """Get the user's analytics row, creating an empty one if missing."""
        existing = await self.get_by_user_id(user_id)
        if existing:
            return existing

        try:
            async with self._session("create_analytics") as session:
                model = UserAnalyticsModel(user_id=to_uuid(user_id))
                session.add(model)
                await session.flush()
                created = self._to_domain(model)
            logger.info(f"Created analytics row for user {user_id}")
            return created
        except SQLIntegrityError:
            existing = await self.get_by_user_id(user_id)
            if existing is None:
                raise
            return existing

    async def record_exam(
        self,
        user_id: str,
        verbal_score: Optional[float],
        quantitative_score: Optional[float],
        overall_average: float,
        strongest_category: Optional[str],
        weakest_category: Optional[str],
        completed_at: datetime,
    ) -> None:
        await self.ensure(user_id)
        async with self._session("record_exam") as session:
            await session.execute(
                update(UserAnalyticsModel)
                .where(UserAnalyticsModel.user_id == to_uuid(user_id))
                .values(
                    last_exam_verbal_score=verbal_score,
                    last_exam_quantitative_score=quantitative_score,
                    last_exam_overall_average=overall_average,
                    total_exams_completed=UserAnalyticsModel.total_exams_completed + 1,
                    strongest_category=strongest_category,
                    weakest_category=weakest_category,
                    last_activity_at=completed_at,
                    updated_at=utc_now(),
                )
            )

    async def record_practice(
        self,
        user_id: str,
        practice_hours: float,
        strongest_category: Optional[str],
        weakest_category: Optional[str],
        completed_at: datetime,
    ) -> None:
        await self.ensure(user_id)
        values = {
            "total_practices_completed": UserAnalyticsModel.total_practices_completed + 1,
            "total_practice_hours": UserAnalyticsModel.total_practice_hours + practice_hours,
            "last_activity_at": completed_at,
            "updated_at": utc_now(),
        }
        # A practice session only covers a few categories; keep exam-derived
        # highlights unless this session produced its own
        if strongest_category:
            values["strongest_category"] = strongest_category
        if weakest_category:
            values["weakest_category"] = weakest_category

        async with self._session("record_practice") as session:
            await session.execute(
                update(UserAnalyticsModel)
                .where(UserAnalyticsModel.user_id == to_uuid(user_id))
                .values(**values)
            )

    def _to_domain(self, model: UserAnalyticsModel) -> UserAnalytics:
        return UserAnalytics(
            id=str(model.id),
            user_id=str(model.user_id),
            last_exam_verbal_score=model.last_exam_verbal_score,
            last_exam_quantitative_score=model.last_exam_quantitative_score,
            last_exam_overall_average=model.last_exam_overall_average,
            total_exams_completed=model.total_exams_completed or 0,
            total_practices_completed=model.total_practices_completed or 0,
            total_practice_hours=model.total_practice_hours or 0.0,
            strongest_category=model.strongest_category,
            weakest_category=model.weakest_category,
            last_activity_at=as_utc(model.last_activity_at),
            updated_at=as_utc(model.updated_at),
        )
