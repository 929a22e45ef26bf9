"""
Analytics Service

Maintains the per-user analytics read model.
Follows Single Responsibility - only handles analytics concerns.
"""

import logging
from datetime import datetime

from tafawoq.domain.analytics import UserAnalytics
from tafawoq.domain.content import ContentKind, ContentSession, ResultRecord
from tafawoq.infrastructure.db.repositories.analytics_repository import AnalyticsRepository


logger = logging.getLogger(__name__)


class AnalyticsService:
    """
    Service for updating user analytics after domain events.

    Repositories handle the actual data access.
    """

    def __init__(self, repository: AnalyticsRepository):
        self._repo = repository

    async def ensure_user_analytics(self, user_id: str) -> UserAnalytics:
        """Create the user's analytics row if it does not exist yet."""
        return await self._repo.ensure(user_id)

    async def get_user_analytics(self, user_id: str) -> UserAnalytics:
        return await self._repo.ensure(user_id)

    async def record_session_result(
        self,
        session: ContentSession,
        result: ResultRecord,
        completed_at: datetime,
    ) -> None:
        """Fold one completed session into the user's aggregates."""
        strongest = result.strengths[0].category.value if result.strengths else None
        weakest = result.weaknesses[0].category.value if result.weaknesses else None

        if session.kind == ContentKind.EXAM:
            await self._repo.record_exam(
                user_id=session.user_id,
                verbal_score=result.verbal_score,
                quantitative_score=result.quantitative_score,
                overall_average=result.overall_score,
                strongest_category=strongest,
                weakest_category=weakest,
                completed_at=completed_at,
            )
        else:
            await self._repo.record_practice(
                user_id=session.user_id,
                practice_hours=round(session.time_spent_seconds / 3600, 4),
                strongest_category=strongest,
                weakest_category=weakest,
                completed_at=completed_at,
            )

        logger.debug(f"[ANALYTICS] Recorded {session.kind.value} session {session.id}")
