"""
Session API Routes

Eligibility, exam and practice generation, submission, abandonment and
results. Every session endpoint is owner-scoped: another user's session
answers as not found.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Query, status

from tafawoq.api.dependencies import CurrentUserDep, ServicesDep
from tafawoq.domain.content import (
    ContentKind,
    Eligibility,
    ExamCriteria,
    PracticeCriteria,
    ResultRecord,
    SessionResponse,
    SessionSubmission,
    build_session_response,
)


logger = logging.getLogger(__name__)

router = APIRouter()


# =============================================================================
# Eligibility
# =============================================================================

@router.get("/eligibility/{kind}", response_model=Eligibility)
async def get_eligibility(kind: ContentKind, user_id: CurrentUserDep, services: ServicesDep):
    """Whether the user may start a session of this kind now."""
    return await services.quota.check_eligibility(user_id, kind)


# =============================================================================
# Generation
# =============================================================================

@router.post("/exams", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
async def create_exam(
    user_id: CurrentUserDep,
    services: ServicesDep,
    criteria: Optional[ExamCriteria] = None,
):
    """
    Generate a full exam.

    The academic track defaults to the one on the user's profile.
    """
    session = await services.content.generate(user_id, ContentKind.EXAM, criteria)
    return build_session_response(session)


@router.post("/practice", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
async def create_practice(
    criteria: PracticeCriteria,
    user_id: CurrentUserDep,
    services: ServicesDep,
):
    """Generate a practice session for the chosen section and categories."""
    session = await services.content.generate(user_id, ContentKind.PRACTICE, criteria)
    return build_session_response(session)


# =============================================================================
# Sessions
# =============================================================================

@router.get("/sessions", response_model=List[SessionResponse])
async def list_sessions(
    user_id: CurrentUserDep,
    services: ServicesDep,
    kind: Optional[ContentKind] = None,
    limit: int = Query(default=20, ge=1, le=100),
):
    """The user's most recent sessions, newest first."""
    sessions = await services.content.list_sessions(user_id, kind=kind, limit=limit)
    return [build_session_response(s) for s in sessions]


@router.get("/sessions/{session_id}", response_model=SessionResponse)
async def get_session(session_id: str, user_id: CurrentUserDep, services: ServicesDep):
    session = await services.content.get_session(user_id, session_id)
    return build_session_response(session)


@router.post("/sessions/{session_id}/submit", response_model=ResultRecord)
async def submit_session(
    session_id: str,
    submission: SessionSubmission,
    user_id: CurrentUserDep,
    services: ServicesDep,
):
    """
    Submit answers and get the scored result.

    Resubmitting the same answers returns the stored result.
    """
    return await services.content.submit(user_id, session_id, submission)


@router.post("/sessions/{session_id}/abandon", response_model=SessionResponse)
async def abandon_session(session_id: str, user_id: CurrentUserDep, services: ServicesDep):
    session = await services.content.abandon(user_id, session_id)
    return build_session_response(session)


@router.get("/sessions/{session_id}/result", response_model=ResultRecord)
async def get_session_result(session_id: str, user_id: CurrentUserDep, services: ServicesDep):
    return await services.content.get_result(user_id, session_id)
