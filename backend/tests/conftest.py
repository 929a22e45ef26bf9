"""
Test configuration and fixtures for Tafawoq.

Provides shared fixtures for unit and integration tests: environment,
an in-memory SQLite database, in-memory stores, and the FastAPI app with
its service bundle replaced by mocks.
"""

import os

# Settings are read at import time; configure before any tafawoq import
os.environ.setdefault("SUPABASE_URL", "https://testproject.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-service-role-key")
os.environ.setdefault("SUPABASE_JWT_SECRET", "test-jwt-secret-with-enough-length-for-hs256")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_123")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_123")
os.environ.setdefault("STRIPE_PREMIUM_PRICE_ID", "price_premium_test")
os.environ.setdefault("GOOGLE_API_KEY", "test-google-key")

from datetime import datetime, timezone
from typing import Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool

from tafawoq.domain.content import (
    ContentKind,
    ContentSession,
    Difficulty,
    Question,
    QuestionCategory,
    ResultRecord,
    SessionStatus,
    get_category_info,
)
from tafawoq.domain.subscription import Subscription
from tafawoq.infrastructure.db import models  # noqa: F401  (registers tables)
from tafawoq.infrastructure.db.database import DatabaseManager


USER_ID = "00000000-0000-0000-0000-000000000001"
OTHER_USER_ID = "00000000-0000-0000-0000-000000000002"


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest_asyncio.fixture
async def database():
    """Fresh in-memory SQLite database with all tables created."""
    manager = DatabaseManager(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await manager.create_tables()
    yield manager
    await manager.drop_tables()
    await manager.close()


@pytest.fixture
def session_factory(database):
    return database.session_factory


# =============================================================================
# In-memory Stores
# =============================================================================

class InMemorySubscriptionStore:
    """Dict-backed subscription store with the same watermark rule as the repository."""

    def __init__(self):
        self.records: Dict[str, Subscription] = {}

    def put(self, subscription: Subscription) -> Subscription:
        if subscription.id is None:
            subscription = subscription.model_copy(update={"id": str(uuid4())})
        self.records[subscription.user_id] = subscription
        return subscription

    async def get_by_user_id(self, user_id: str) -> Optional[Subscription]:
        return self.records.get(user_id)

    async def get_by_stripe_customer_id(self, stripe_customer_id: str) -> Optional[Subscription]:
        for record in self.records.values():
            if record.stripe_customer_id == stripe_customer_id:
                return record
        return None

    async def get_by_stripe_subscription_id(self, stripe_subscription_id: str) -> Optional[Subscription]:
        for record in self.records.values():
            if record.stripe_subscription_id == stripe_subscription_id:
                return record
        return None

    async def get_or_create_free(self, user_id: str) -> Subscription:
        existing = self.records.get(user_id)
        if existing:
            return existing
        return self.put(Subscription(user_id=user_id))

    async def set_customer_id(self, user_id: str, stripe_customer_id: str) -> Subscription:
        record = await self.get_or_create_free(user_id)
        return self.put(record.model_copy(update={"stripe_customer_id": stripe_customer_id}))

    async def save_transition(self, subscription: Subscription, event_time: datetime) -> bool:
        current = self.records[subscription.user_id]
        if current.last_event_at is not None and current.last_event_at > event_time:
            return False
        self.put(subscription)
        return True

    async def set_cancel_at_period_end(
        self,
        user_id: str,
        cancel_at_period_end: bool,
        canceled_at: Optional[datetime] = None,
    ) -> Subscription:
        record = await self.get_or_create_free(user_id)
        return self.put(record.model_copy(update={
            "cancel_at_period_end": cancel_at_period_end,
            "canceled_at": canceled_at,
        }))


class InMemorySessionStore:
    """Dict-backed session store with compare-and-set status changes."""

    def __init__(self):
        self.sessions: Dict[str, ContentSession] = {}
        self.results: Dict[str, ResultRecord] = {}

    async def create(self, content_session: ContentSession) -> ContentSession:
        stored = content_session.model_copy(update={"id": content_session.id or str(uuid4())})
        self.sessions[stored.id] = stored
        return stored

    async def get(self, session_id: str) -> Optional[ContentSession]:
        return self.sessions.get(session_id)

    async def list_for_user(
        self, user_id: str, kind: Optional[ContentKind] = None, limit: int = 20
    ) -> List[ContentSession]:
        matching = [
            s for s in self.sessions.values()
            if s.user_id == user_id and (kind is None or s.kind == kind)
        ]
        matching.sort(key=lambda s: s.started_at, reverse=True)
        return matching[:limit]

    async def count_completed(self, user_id, kind, window_start, window_end) -> int:
        return sum(
            1 for s in self.sessions.values()
            if s.user_id == user_id
            and s.kind == kind
            and s.status == SessionStatus.COMPLETED
            and window_start <= s.started_at < window_end
        )

    async def abandon(self, session_id: str) -> bool:
        current = self.sessions[session_id]
        if current.status != SessionStatus.IN_PROGRESS:
            return False
        self.sessions[session_id] = current.model_copy(update={"status": SessionStatus.ABANDONED})
        return True

    async def complete_with_result(
        self, session_id, completed_at, questions_answered, time_spent_seconds, result
    ) -> Optional[ResultRecord]:
        current = self.sessions[session_id]
        if current.status != SessionStatus.IN_PROGRESS:
            return None
        self.sessions[session_id] = current.model_copy(update={
            "status": SessionStatus.COMPLETED,
            "completed_at": completed_at,
            "questions_answered": questions_answered,
            "time_spent_seconds": time_spent_seconds,
        })
        stored = result.model_copy(update={"id": str(uuid4())})
        self.results[session_id] = stored
        return stored

    async def get_result(self, session_id: str) -> Optional[ResultRecord]:
        return self.results.get(session_id)


class InMemoryProcessedEvents:
    def __init__(self):
        self.events: Dict[str, str] = {}

    async def is_processed(self, event_id: str) -> bool:
        return event_id in self.events

    async def mark_processed(self, event_id: str, event_type: str) -> None:
        self.events.setdefault(event_id, event_type)


@pytest.fixture
def subscription_store():
    return InMemorySubscriptionStore()


@pytest.fixture
def session_store():
    return InMemorySessionStore()


@pytest.fixture
def processed_events():
    return InMemoryProcessedEvents()


@pytest.fixture
def analytics_recorder():
    """Analytics side effects as mocks."""
    mock = MagicMock()
    mock.ensure_user_analytics = AsyncMock()
    mock.record_session_result = AsyncMock()
    return mock


# =============================================================================
# Sample Data Fixtures
# =============================================================================

def make_question(
    category: QuestionCategory,
    correct_answer: str = "a",
    explanation: Optional[str] = "شرح الحل",
    question_id: Optional[str] = None,
) -> Question:
    return Question(
        id=question_id or str(uuid4()),
        section=get_category_info(category).section,
        category=category,
        difficulty=Difficulty.MEDIUM,
        question_text=f"سؤال في {category.value}",
        options=[
            {"id": "a", "text": "أ"},
            {"id": "b", "text": "ب"},
            {"id": "c", "text": "ج"},
            {"id": "d", "text": "د"},
        ],
        correct_answer=correct_answer,
        explanation=explanation,
    )


@pytest.fixture
def question_factory():
    return make_question


@pytest.fixture
def sample_questions() -> List[Question]:
    """Two verbal and two quantitative items, answer key 'a'."""
    return [
        make_question(QuestionCategory.ANALOGIES, question_id="q1"),
        make_question(QuestionCategory.SENTENCE_COMPLETION, question_id="q2"),
        make_question(QuestionCategory.GEOMETRY, question_id="q3"),
        make_question(QuestionCategory.BASIC_OPERATIONS, question_id="q4"),
    ]


@pytest.fixture
def utc():
    def _utc(*args) -> datetime:
        return datetime(*args, tzinfo=timezone.utc)
    return _utc


# =============================================================================
# App Fixtures
# =============================================================================

@pytest.fixture
def user_id() -> str:
    return USER_ID


@pytest.fixture
def auth_headers() -> dict:
    return {"Authorization": "Bearer test-token"}


@pytest.fixture
def mock_services(user_id):
    """Service bundle with every capability mocked; auth accepts any token."""
    services = MagicMock()
    services.auth.verify_token.return_value = user_id
    for name in ("checkout", "quota", "content", "lifecycle", "analytics"):
        setattr(services, name, AsyncMock())
    services.payments = MagicMock()
    return services


@pytest.fixture
def app(mock_services):
    """FastAPI application wired to the mocked bundle (lifespan not run)."""
    from tafawoq.api.dependencies import get_services
    from tafawoq.main import app

    app.dependency_overrides[get_services] = lambda: mock_services
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    """Get synchronous test client."""
    return TestClient(app)
