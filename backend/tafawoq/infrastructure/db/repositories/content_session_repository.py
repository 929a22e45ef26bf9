"""
Content Session Repository

Persistence for exam/practice sessions and their results. Status changes
are compare-and-set on ``in_progress`` so terminal states stay immutable
and concurrent submissions converge on a single result row.
"""

import logging
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError as SQLIntegrityError
from sqlmodel import select

from tafawoq.domain.content import (
    CategoryPerformance,
    ContentKind,
    ContentSession,
    ResultRecord,
    SessionStatus,
)
from tafawoq.infrastructure.db.models.base import utc_now
from tafawoq.infrastructure.db.models.content_session import (
    ContentSessionModel,
    SessionResultModel,
)
from tafawoq.infrastructure.db.repositories.base_repository import (
    BaseRepository,
    as_utc,
    to_uuid,
)


logger = logging.getLogger(__name__)


def _parse_id(value: str) -> Optional[UUID]:
    try:
        return to_uuid(value)
    except ValueError:
        return None


class ContentSessionRepository(BaseRepository):
    """Repository for content sessions and session results."""

    table_name = "content_sessions"

    # =========================================================================
    # Sessions
    # =========================================================================

    async def create(self, content_session: ContentSession) -> ContentSession:
        """Insert a new session and return it with its generated id."""
        async with self._session("create_session") as session:
            model = self._to_model(content_session)
            session.add(model)
            await session.flush()
            created = self._to_domain(model)

        logger.info(
            f"Created {created.kind.value} session {created.id} "
            f"({created.question_count} questions) for user {created.user_id}"
        )
        return created

    async def get(self, session_id: str) -> Optional[ContentSession]:
        """Get a session by id (None for unknown or malformed ids)."""
        session_uuid = _parse_id(session_id)
        if session_uuid is None:
            return None

        async with self._session("get_session") as session:
            model = await session.get(ContentSessionModel, session_uuid)
            return self._to_domain(model) if model else None

    async def list_for_user(
        self,
        user_id: str,
        kind: Optional[ContentKind] = None,
        limit: int = 20,
    ) -> List[ContentSession]:
        """Most recent sessions first."""
        async with self._session("list_sessions") as session:
            statement = select(ContentSessionModel).where(
                ContentSessionModel.user_id == to_uuid(user_id)
            )
            if kind is not None:
                statement = statement.where(ContentSessionModel.kind == kind.value)
            statement = statement.order_by(ContentSessionModel.started_at.desc()).limit(limit)

            result = await session.execute(statement)
            return [self._to_domain(model) for model in result.scalars().all()]

    async def count_completed(
        self,
        user_id: str,
        kind: ContentKind,
        window_start: datetime,
        window_end: datetime,
    ) -> int:
        """Count completed sessions of ``kind`` started in [window_start, window_end)."""
        async with self._session("count_completed") as session:
            statement = select(func.count()).select_from(ContentSessionModel).where(
                ContentSessionModel.user_id == to_uuid(user_id),
                ContentSessionModel.kind == kind.value,
                ContentSessionModel.status == SessionStatus.COMPLETED.value,
                ContentSessionModel.started_at >= window_start,
                ContentSessionModel.started_at < window_end,
            )
            result = await session.execute(statement)
            return int(result.scalar_one())

    async def abandon(self, session_id: str) -> bool:
        """in_progress -> abandoned. Returns False if the session was already terminal."""
        async with self._session("abandon_session") as session:
            result = await session.execute(
                update(ContentSessionModel)
                .where(
                    ContentSessionModel.id == to_uuid(session_id),
                    ContentSessionModel.status == SessionStatus.IN_PROGRESS.value,
                )
                .values(status=SessionStatus.ABANDONED.value, updated_at=utc_now())
            )
            return result.rowcount > 0

    async def complete_with_result(
        self,
        session_id: str,
        completed_at: datetime,
        questions_answered: int,
        time_spent_seconds: int,
        result: ResultRecord,
    ) -> Optional[ResultRecord]:
        """
        Complete a session and store its result in one transaction.

        Returns:
            The stored result, or None if another submission completed (or
            someone abandoned) the session first
        """
        try:
            async with self._session("complete_session") as session:
                updated = await session.execute(
                    update(ContentSessionModel)
                    .where(
                        ContentSessionModel.id == to_uuid(session_id),
                        ContentSessionModel.status == SessionStatus.IN_PROGRESS.value,
                    )
                    .values(
                        status=SessionStatus.COMPLETED.value,
                        completed_at=completed_at,
                        questions_answered=questions_answered,
                        time_spent_seconds=time_spent_seconds,
                        updated_at=utc_now(),
                    )
                )
                if updated.rowcount == 0:
                    return None

                model = self._result_to_model(result)
                session.add(model)
                await session.flush()
                stored = self._result_to_domain(model)
        except SQLIntegrityError:
            logger.info(f"Result for session {session_id} already stored by a concurrent submission")
            return None

        logger.info(f"Completed session {session_id} with overall score {stored.overall_score}")
        return stored

    # =========================================================================
    # Results
    # =========================================================================

    async def get_result(self, session_id: str) -> Optional[ResultRecord]:
        session_uuid = _parse_id(session_id)
        if session_uuid is None:
            return None

        async with self._session("get_result") as session:
            statement = select(SessionResultModel).where(
                SessionResultModel.session_id == session_uuid
            )
            result = await session.execute(statement)
            model = result.scalar_one_or_none()
            return self._result_to_domain(model) if model else None

    # =========================================================================
    # Mapping Methods
    # =========================================================================

    def _to_model(self, domain: ContentSession) -> ContentSessionModel:
        model = ContentSessionModel(
            user_id=to_uuid(domain.user_id),
            kind=domain.kind.value,
            status=domain.status.value,
            started_at=domain.started_at,
            completed_at=domain.completed_at,
            question_count=domain.question_count,
            questions_answered=domain.questions_answered,
            time_spent_seconds=domain.time_spent_seconds,
            section=domain.section.value if domain.section else None,
            categories=[c.value for c in domain.categories],
            difficulty=domain.difficulty.value if domain.difficulty else None,
            academic_track=domain.academic_track.value if domain.academic_track else None,
            questions=[q.model_dump(mode="json") for q in domain.questions],
            generation_metadata=domain.generation_metadata.model_dump(mode="json"),
        )
        if domain.id:
            model.id = to_uuid(domain.id)
        return model

    def _to_domain(self, model: ContentSessionModel) -> ContentSession:
        return ContentSession(
            id=str(model.id),
            user_id=str(model.user_id),
            kind=ContentKind(model.kind),
            status=SessionStatus(model.status),
            started_at=as_utc(model.started_at),
            completed_at=as_utc(model.completed_at),
            question_count=model.question_count,
            questions_answered=model.questions_answered or 0,
            time_spent_seconds=model.time_spent_seconds or 0,
            section=model.section,
            categories=model.categories or [],
            difficulty=model.difficulty,
            academic_track=model.academic_track,
            questions=model.questions or [],
            generation_metadata=model.generation_metadata or {},
            created_at=as_utc(model.created_at),
        )

    def _result_to_model(self, domain: ResultRecord) -> SessionResultModel:
        return SessionResultModel(
            session_id=to_uuid(domain.session_id),
            user_id=to_uuid(domain.user_id),
            kind=domain.kind.value,
            section_scores=dict(domain.section_scores),
            overall_score=domain.overall_score,
            category_breakdown=dict(domain.category_breakdown),
            strengths=[p.model_dump(mode="json") for p in domain.strengths],
            weaknesses=[p.model_dump(mode="json") for p in domain.weaknesses],
            improvement_advice=domain.improvement_advice,
            answer_fingerprint=domain.answer_fingerprint,
            created_at=domain.created_at or utc_now(),
        )

    def _result_to_domain(self, model: SessionResultModel) -> ResultRecord:
        return ResultRecord(
            id=str(model.id),
            session_id=str(model.session_id),
            user_id=str(model.user_id),
            kind=ContentKind(model.kind),
            section_scores=model.section_scores or {},
            overall_score=model.overall_score,
            category_breakdown=model.category_breakdown or {},
            strengths=[CategoryPerformance(**p) for p in model.strengths or []],
            weaknesses=[CategoryPerformance(**p) for p in model.weaknesses or []],
            improvement_advice=model.improvement_advice or "",
            answer_fingerprint=model.answer_fingerprint,
            created_at=as_utc(model.created_at),
        )
