"""
Integration Tests for Repositories (SQLite)

Runs the real repositories against an in-memory SQLite database to
verify the conditional writes:
- subscription freshness watermark
- session compare-and-set on in_progress
- one result per session
- idempotent processed-event inserts
"""

from datetime import datetime, timedelta, timezone

import pytest

from tafawoq.domain.content import (
    ContentKind,
    ContentSession,
    ResultRecord,
    SessionStatus,
)
from tafawoq.domain.subscription import SubscriptionStatus, SubscriptionTier
from tafawoq.infrastructure.db.repositories import (
    AnalyticsRepository,
    ContentSessionRepository,
    ProcessedEventRepository,
    SubscriptionRepository,
)


USER = "00000000-0000-0000-0000-000000000101"
T0 = datetime(2026, 3, 4, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def subscriptions(session_factory):
    return SubscriptionRepository(session_factory)


@pytest.fixture
def sessions(session_factory):
    return ContentSessionRepository(session_factory)


@pytest.fixture
def processed(session_factory):
    return ProcessedEventRepository(session_factory)


@pytest.fixture
def analytics(session_factory):
    return AnalyticsRepository(session_factory)


def _session(sample_questions, started_at=T0, status=SessionStatus.IN_PROGRESS, kind=ContentKind.EXAM):
    return ContentSession(
        user_id=USER,
        kind=kind,
        status=status,
        started_at=started_at,
        completed_at=started_at if status == SessionStatus.COMPLETED else None,
        question_count=len(sample_questions),
        questions=sample_questions,
    )


def _result(session_id: str, fingerprint: str = "f" * 64) -> ResultRecord:
    return ResultRecord(
        session_id=session_id,
        user_id=USER,
        kind=ContentKind.EXAM,
        section_scores={"verbal": 50.0, "quantitative": 100.0},
        overall_score=75.0,
        category_breakdown={"analogies": 100.0},
        answer_fingerprint=fingerprint,
        created_at=T0,
    )


# =============================================================================
# Subscriptions
# =============================================================================

class TestSubscriptionRepository:

    async def test_get_or_create_free_is_stable(self, subscriptions):
        first = await subscriptions.get_or_create_free(USER)
        second = await subscriptions.get_or_create_free(USER)

        assert first.id == second.id
        assert first.tier == SubscriptionTier.FREE
        assert first.status == SubscriptionStatus.ACTIVE

    async def test_lookup_by_processor_ids(self, subscriptions):
        await subscriptions.get_or_create_free(USER)
        await subscriptions.set_customer_id(USER, "cus_77")

        found = await subscriptions.get_by_stripe_customer_id("cus_77")
        assert found.user_id == USER
        assert await subscriptions.get_by_stripe_subscription_id("sub_missing") is None

    async def test_save_transition_respects_watermark(self, subscriptions):
        record = await subscriptions.set_customer_id(USER, "cus_1")
        newer = record.model_copy(update={
            "tier": SubscriptionTier.PREMIUM,
            "stripe_subscription_id": "sub_1",
            "last_event_at": T0,
        })
        assert await subscriptions.save_transition(newer, T0) is True

        older = record.model_copy(update={
            "status": SubscriptionStatus.CANCELED,
            "last_event_at": T0 - timedelta(minutes=5),
        })
        assert await subscriptions.save_transition(older, T0 - timedelta(minutes=5)) is False

        stored = await subscriptions.get_by_user_id(USER)
        assert stored.tier == SubscriptionTier.PREMIUM
        assert stored.status == SubscriptionStatus.ACTIVE
        assert stored.last_event_at == T0

    async def test_equal_timestamp_is_applied(self, subscriptions):
        record = await subscriptions.set_customer_id(USER, "cus_1")
        first = record.model_copy(update={"last_event_at": T0})
        assert await subscriptions.save_transition(first, T0) is True

        second = record.model_copy(update={
            "status": SubscriptionStatus.PAST_DUE,
            "last_event_at": T0,
        })
        assert await subscriptions.save_transition(second, T0) is True

    async def test_set_cancel_at_period_end(self, subscriptions):
        await subscriptions.get_or_create_free(USER)

        updated = await subscriptions.set_cancel_at_period_end(USER, True, canceled_at=T0)

        assert updated.cancel_at_period_end is True
        assert updated.canceled_at == T0


# =============================================================================
# Sessions
# =============================================================================

class TestContentSessionRepository:

    async def test_create_and_get_roundtrip(self, sessions, sample_questions):
        created = await sessions.create(_session(sample_questions))
        loaded = await sessions.get(created.id)

        assert loaded.id == created.id
        assert loaded.started_at == T0
        assert [q.id for q in loaded.questions] == ["q1", "q2", "q3", "q4"]

    async def test_malformed_id_is_none(self, sessions):
        assert await sessions.get("not-a-uuid") is None
        assert await sessions.get_result("not-a-uuid") is None

    async def test_complete_with_result_once(self, sessions, sample_questions):
        created = await sessions.create(_session(sample_questions))

        stored = await sessions.complete_with_result(
            created.id, T0 + timedelta(minutes=30), 4, 1800, _result(created.id)
        )
        again = await sessions.complete_with_result(
            created.id, T0 + timedelta(minutes=31), 4, 1860, _result(created.id)
        )

        assert stored is not None
        assert again is None
        loaded = await sessions.get(created.id)
        assert loaded.status == SessionStatus.COMPLETED
        assert loaded.time_spent_seconds == 1800
        assert (await sessions.get_result(created.id)).id == stored.id

    async def test_abandon_only_from_in_progress(self, sessions, sample_questions):
        created = await sessions.create(_session(sample_questions))

        assert await sessions.abandon(created.id) is True
        assert await sessions.abandon(created.id) is False
        assert await sessions.complete_with_result(
            created.id, T0, 0, 0, _result(created.id)
        ) is None
        assert (await sessions.get(created.id)).status == SessionStatus.ABANDONED

    async def test_count_completed_in_window(self, sessions, sample_questions):
        window_start = datetime(2026, 3, 1, tzinfo=timezone.utc)
        window_end = window_start + timedelta(days=7)
        await sessions.create(_session(sample_questions, status=SessionStatus.COMPLETED))
        await sessions.create(_session(sample_questions, status=SessionStatus.ABANDONED))
        await sessions.create(_session(
            sample_questions,
            started_at=window_start - timedelta(seconds=1),
            status=SessionStatus.COMPLETED,
        ))
        await sessions.create(_session(
            sample_questions, status=SessionStatus.COMPLETED, kind=ContentKind.PRACTICE,
        ))

        count = await sessions.count_completed(USER, ContentKind.EXAM, window_start, window_end)
        assert count == 1

    async def test_list_newest_first(self, sessions, sample_questions):
        await sessions.create(_session(sample_questions, started_at=T0))
        await sessions.create(_session(sample_questions, started_at=T0 + timedelta(hours=1)))

        listed = await sessions.list_for_user(USER, limit=1)
        assert len(listed) == 1
        assert listed[0].started_at == T0 + timedelta(hours=1)


# =============================================================================
# Processed events / Analytics
# =============================================================================

class TestProcessedEventRepository:

    async def test_mark_processed_is_idempotent(self, processed):
        assert await processed.is_processed("evt_1") is False

        await processed.mark_processed("evt_1", "customer.subscription.created")
        await processed.mark_processed("evt_1", "customer.subscription.created")

        assert await processed.is_processed("evt_1") is True


class TestAnalyticsRepository:

    async def test_counters_accumulate(self, analytics):
        await analytics.record_exam(
            user_id=USER,
            verbal_score=50.0,
            quantitative_score=100.0,
            overall_average=75.0,
            strongest_category="geometry",
            weakest_category="analogies",
            completed_at=T0,
        )
        await analytics.record_practice(
            user_id=USER,
            practice_hours=0.5,
            strongest_category=None,
            weakest_category=None,
            completed_at=T0 + timedelta(hours=1),
        )

        row = await analytics.ensure(USER)
        assert row.total_exams_completed == 1
        assert row.total_practices_completed == 1
        assert row.total_practice_hours == 0.5
        assert row.last_exam_overall_average == 75.0
        assert row.strongest_category == "geometry"
        assert row.last_activity_at == T0 + timedelta(hours=1)
