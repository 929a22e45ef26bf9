"""
Generation Orchestrator

Creates exam and practice sessions from generated content, and takes them
through submission or abandonment.

    generate:  eligibility -> criteria -> generator (timeout) -> persist
    submit:    ownership -> answer checks -> score -> complete (CAS) + result
    abandon:   in_progress -> abandoned, no-op when already terminal

Generation failures are classified and re-raised; nothing is persisted for
a failed generation. Analytics updates after a submission are best effort.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional, Union

from tafawoq.domain.content import (
    AcademicTrack,
    ContentKind,
    ContentSession,
    ExamCriteria,
    GenerationRequest,
    PracticeCriteria,
    Question,
    ResultRecord,
    SessionStatus,
    SessionSubmission,
    answer_fingerprint,
)
from tafawoq.domain.interfaces import (
    AnalyticsRecorder,
    ContentGenerator,
    ProfileReader,
    SessionStore,
)
from tafawoq.domain.quota import validate_practice_criteria
from tafawoq.domain.scoring import SessionScorer
from tafawoq.domain.subscription import SubscriptionTier, get_tier_limits
from tafawoq.infrastructure.ai.errors import classify_generation_error
from tafawoq.infrastructure.exceptions import (
    ConfigurationError,
    GenerationError,
    GenerationFailureKind,
    IntegrityError,
    NotFoundError,
    QuotaExceededError,
    SessionStateError,
    SubmissionMismatchError,
    ValidationError,
)
from tafawoq.services.quota_ledger import QuotaLedger


logger = logging.getLogger(__name__)
ops_logger = logging.getLogger("tafawoq.ops")

Criteria = Union[ExamCriteria, PracticeCriteria, None]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class GenerationOrchestrator:
    """Session creation, submission and abandonment."""

    DEFAULT_EXAM_QUESTION_COUNT = 40
    DEFAULT_EXAM_TIMEOUT_SECONDS = 30.0
    DEFAULT_PRACTICE_TIMEOUT_SECONDS = 15.0

    def __init__(
        self,
        quota: QuotaLedger,
        sessions: SessionStore,
        generator: ContentGenerator,
        scorer: SessionScorer,
        analytics: AnalyticsRecorder,
        profiles: Optional[ProfileReader] = None,
        exam_question_count: int = DEFAULT_EXAM_QUESTION_COUNT,
        exam_timeout: float = DEFAULT_EXAM_TIMEOUT_SECONDS,
        practice_timeout: float = DEFAULT_PRACTICE_TIMEOUT_SECONDS,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self._quota = quota
        self._sessions = sessions
        self._generator = generator
        self._scorer = scorer
        self._analytics = analytics
        self._profiles = profiles
        self._exam_question_count = exam_question_count
        self._exam_timeout = exam_timeout
        self._practice_timeout = practice_timeout
        self._clock = clock

    # =========================================================================
    # Generation
    # =========================================================================

    async def generate(
        self,
        user_id: str,
        kind: ContentKind,
        criteria: Criteria = None,
    ) -> ContentSession:
        """
        Generate content and persist a new in-progress session.

        Args:
            user_id: Authenticated user
            kind: Exam or practice
            criteria: ExamCriteria (optional) or PracticeCriteria (required)

        Returns:
            The persisted session

        Raises:
            QuotaExceededError: weekly exam limit reached
            ValidationError: malformed criteria
            CriteriaExceedsLimitError: item count above the tier cap
            GenerationError: classified generator failure
        """
        now = self._clock()
        eligibility = await self._quota.check_eligibility(user_id, kind, now)
        if not eligibility.eligible:
            raise QuotaExceededError(
                eligibility.reason or f"No {kind.value} sessions available",
                kind=kind.value,
                next_available_at=eligibility.next_available_at,
            )

        request = await self._build_request(user_id, kind, criteria, eligibility.tier)
        timeout = self._exam_timeout if kind == ContentKind.EXAM else self._practice_timeout

        try:
            content = await asyncio.wait_for(self._generator.generate(request), timeout=timeout)
        except asyncio.TimeoutError as e:
            logger.error(f"{kind.value} generation for user {user_id} timed out after {timeout}s")
            raise GenerationError(
                GenerationFailureKind.TIMEOUT,
                f"Content generation timed out after {timeout:g}s",
                original_error=e,
            )
        except (GenerationError, ConfigurationError):
            raise
        except Exception as e:
            error = classify_generation_error(e)
            logger.error(
                f"{kind.value} generation for user {user_id} failed "
                f"({error.kind.value}): {e}"
            )
            raise error from e

        questions = content.questions
        if not request.include_explanations:
            questions = [self._without_explanation(q) for q in questions]

        session = ContentSession(
            user_id=user_id,
            kind=kind,
            status=SessionStatus.IN_PROGRESS,
            started_at=now,
            question_count=len(questions),
            section=request.section,
            categories=request.categories,
            difficulty=request.difficulty,
            academic_track=request.academic_track,
            questions=questions,
            generation_metadata=content.metadata,
        )
        created = await self._sessions.create(session)
        logger.info(
            f"Created {kind.value} session {created.id} for user {user_id} "
            f"with {created.question_count} questions"
        )
        return created

    async def _build_request(
        self,
        user_id: str,
        kind: ContentKind,
        criteria: Criteria,
        tier: SubscriptionTier,
    ) -> GenerationRequest:
        include_explanations = get_tier_limits(tier).has_solution_explanations

        if kind == ContentKind.EXAM:
            track = None
            if isinstance(criteria, ExamCriteria):
                track = criteria.academic_track
            if track is None:
                track = await self._profile_track(user_id)
            return GenerationRequest(
                kind=kind,
                tier=tier,
                question_count=self._exam_question_count,
                academic_track=track,
                include_explanations=include_explanations,
            )

        if not isinstance(criteria, PracticeCriteria):
            raise ValidationError("Practice criteria are required", {"field": "criteria"})

        categories = validate_practice_criteria(criteria, tier)
        return GenerationRequest(
            kind=kind,
            tier=tier,
            question_count=criteria.question_count,
            section=criteria.section,
            categories=categories,
            difficulty=criteria.difficulty,
            include_explanations=include_explanations,
        )

    async def _profile_track(self, user_id: str) -> AcademicTrack:
        if self._profiles is None:
            return AcademicTrack.SCIENTIFIC
        try:
            track = await self._profiles.get_academic_track(user_id)
        except Exception as e:
            logger.warning(f"Could not read academic track for user {user_id}: {e}")
            track = None
        return track or AcademicTrack.SCIENTIFIC

    @staticmethod
    def _without_explanation(question: Question) -> Question:
        if question.explanation is None:
            return question
        return question.model_copy(update={"explanation": None})

    # =========================================================================
    # Submission
    # =========================================================================

    async def submit(
        self,
        user_id: str,
        session_id: str,
        submission: SessionSubmission,
    ) -> ResultRecord:
        """
        Score a submission and complete the session.

        An identical resubmission of a completed session returns the stored
        result; a different answer set is an integrity error.

        Raises:
            NotFoundError: unknown session or not owned by the user
            ValidationError: answers reference foreign or repeated items
            SessionStateError: the session was abandoned
            SubmissionMismatchError: resubmission with different answers
        """
        session = await self._owned_session(user_id, session_id)
        self._check_answers(session, submission)
        fingerprint = answer_fingerprint(submission.answers)

        if session.status == SessionStatus.ABANDONED:
            raise SessionStateError(
                "Session was abandoned and cannot be submitted",
                session_id=session_id,
                status=session.status.value,
            )
        if session.status == SessionStatus.COMPLETED:
            return await self._existing_result(session_id, fingerprint)

        summary = self._scorer.score(session.kind, session.questions, submission.answers)
        completed_at = self._clock()
        result = ResultRecord(
            session_id=session_id,
            user_id=user_id,
            kind=session.kind,
            section_scores=summary.section_scores,
            overall_score=summary.overall_score,
            category_breakdown=summary.category_breakdown,
            strengths=summary.strengths,
            weaknesses=summary.weaknesses,
            improvement_advice=summary.improvement_advice,
            answer_fingerprint=fingerprint,
            created_at=completed_at,
        )

        stored = await self._sessions.complete_with_result(
            session_id,
            completed_at=completed_at,
            questions_answered=summary.answered_count,
            time_spent_seconds=submission.time_spent_seconds,
            result=result,
        )

        if stored is None:
            # Someone else moved the session out of in_progress first
            current = await self._owned_session(user_id, session_id)
            if current.status == SessionStatus.ABANDONED:
                raise SessionStateError(
                    "Session was abandoned and cannot be submitted",
                    session_id=session_id,
                    status=current.status.value,
                )
            return await self._existing_result(session_id, fingerprint)

        completed = session.model_copy(update={
            "status": SessionStatus.COMPLETED,
            "completed_at": completed_at,
            "questions_answered": summary.answered_count,
            "time_spent_seconds": submission.time_spent_seconds,
        })
        await self._record_analytics(completed, stored, completed_at)
        return stored

    def _check_answers(self, session: ContentSession, submission: SessionSubmission) -> None:
        known = {q.id for q in session.questions}
        seen: set[str] = set()
        foreign: List[str] = []
        repeated: List[str] = []

        for answer in submission.answers:
            if answer.question_id not in known:
                foreign.append(answer.question_id)
            elif answer.question_id in seen:
                repeated.append(answer.question_id)
            seen.add(answer.question_id)

        if foreign:
            raise ValidationError(
                "Answers reference questions outside this session",
                {"field": "answers", "invalid_question_ids": foreign},
            )
        if repeated:
            raise ValidationError(
                "Each question may be answered at most once",
                {"field": "answers", "repeated_question_ids": repeated},
            )

    async def _existing_result(self, session_id: str, fingerprint: str) -> ResultRecord:
        existing = await self._sessions.get_result(session_id)
        if existing is None:
            ops_logger.error(f"[INTEGRITY] Completed session {session_id} has no stored result")
            raise IntegrityError(
                "Completed session has no stored result",
                {"session_id": session_id},
            )
        if existing.answer_fingerprint != fingerprint:
            ops_logger.error(
                f"[INTEGRITY] Session {session_id} resubmitted with a different answer set"
            )
            raise SubmissionMismatchError(session_id)
        logger.info(f"Identical resubmission of session {session_id}, returning stored result")
        return existing

    async def _record_analytics(
        self,
        session: ContentSession,
        result: ResultRecord,
        completed_at: datetime,
    ) -> None:
        try:
            await self._analytics.record_session_result(session, result, completed_at)
        except Exception as e:
            logger.warning(f"Analytics update failed for session {session.id}: {e}")

    # =========================================================================
    # Abandonment / Queries
    # =========================================================================

    async def abandon(self, user_id: str, session_id: str) -> ContentSession:
        """Abandon an in-progress session; terminal sessions are returned unchanged."""
        session = await self._owned_session(user_id, session_id)
        if session.status.is_terminal:
            return session

        if await self._sessions.abandon(session_id):
            logger.info(f"Session {session_id} abandoned by user {user_id}")
        return await self._owned_session(user_id, session_id)

    async def get_session(self, user_id: str, session_id: str) -> ContentSession:
        return await self._owned_session(user_id, session_id)

    async def get_result(self, user_id: str, session_id: str) -> ResultRecord:
        await self._owned_session(user_id, session_id)
        result = await self._sessions.get_result(session_id)
        if result is None:
            raise NotFoundError("Result", session_id)
        return result

    async def list_sessions(
        self,
        user_id: str,
        kind: Optional[ContentKind] = None,
        limit: int = 20,
    ) -> List[ContentSession]:
        return await self._sessions.list_for_user(user_id, kind=kind, limit=limit)

    async def _owned_session(self, user_id: str, session_id: str) -> ContentSession:
        session = await self._sessions.get(session_id)
        if session is None or session.user_id != user_id:
            raise NotFoundError("Session", session_id)
        return session
