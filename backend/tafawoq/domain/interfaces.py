"""
Service Interfaces for Tafawoq

Protocols the application services depend on. Infrastructure classes
implement them; tests substitute in-memory fakes.
"""

from datetime import datetime
from typing import Any, Awaitable, Callable, List, Optional, Protocol, runtime_checkable

from tafawoq.domain.analytics import UserAnalytics
from tafawoq.domain.content import (
    AcademicTrack,
    ContentKind,
    ContentSession,
    GeneratedContent,
    GenerationRequest,
    ResultRecord,
)
from tafawoq.domain.subscription import (
    CheckoutHandle,
    PaymentSheetResult,
    Subscription,
)


class SubscriptionStore(Protocol):
    """Authoritative subscription records."""

    async def get_by_user_id(self, user_id: str) -> Optional[Subscription]: ...

    async def get_by_stripe_customer_id(self, stripe_customer_id: str) -> Optional[Subscription]: ...

    async def get_by_stripe_subscription_id(self, stripe_subscription_id: str) -> Optional[Subscription]: ...

    async def get_or_create_free(self, user_id: str) -> Subscription: ...

    async def set_customer_id(self, user_id: str, stripe_customer_id: str) -> Subscription: ...

    async def save_transition(self, subscription: Subscription, event_time: datetime) -> bool: ...

    async def set_cancel_at_period_end(
        self,
        user_id: str,
        cancel_at_period_end: bool,
        canceled_at: Optional[datetime] = None,
    ) -> Subscription: ...


class PaymentGateway(Protocol):
    """Payment processor operations used by checkout and cancellation."""

    async def create_checkout_context(
        self,
        user_id: str,
        price_id: str,
        existing_customer_id: Optional[str] = None,
        email: Optional[str] = None,
        on_customer: Optional[Callable[[str], Awaitable[None]]] = None,
    ) -> Any: ...

    async def cancel_subscription(self, subscription_id: str, cancel_at_period_end: bool = True) -> None: ...

    async def reactivate_subscription(self, subscription_id: str) -> None: ...


class ProcessedEventStore(Protocol):
    """Idempotency keys for lifecycle events."""

    async def is_processed(self, event_id: str) -> bool: ...

    async def mark_processed(self, event_id: str, event_type: str) -> None: ...


class SessionStore(Protocol):
    """Content sessions and their results."""

    async def create(self, content_session: ContentSession) -> ContentSession: ...

    async def get(self, session_id: str) -> Optional[ContentSession]: ...

    async def list_for_user(
        self, user_id: str, kind: Optional[ContentKind] = None, limit: int = 20
    ) -> List[ContentSession]: ...

    async def count_completed(
        self, user_id: str, kind: ContentKind, window_start: datetime, window_end: datetime
    ) -> int: ...

    async def abandon(self, session_id: str) -> bool: ...

    async def complete_with_result(
        self,
        session_id: str,
        completed_at: datetime,
        questions_answered: int,
        time_spent_seconds: int,
        result: ResultRecord,
    ) -> Optional[ResultRecord]: ...

    async def get_result(self, session_id: str) -> Optional[ResultRecord]: ...


class ContentGenerator(Protocol):
    """External question generator."""

    async def generate(self, request: GenerationRequest) -> GeneratedContent: ...


class ProfileReader(Protocol):
    async def get_academic_track(self, user_id: str) -> Optional[AcademicTrack]: ...


class AnalyticsRecorder(Protocol):
    """Non-critical analytics side effects."""

    async def ensure_user_analytics(self, user_id: str) -> UserAnalytics: ...

    async def record_session_result(
        self, session: ContentSession, result: ResultRecord, completed_at: datetime
    ) -> None: ...


@runtime_checkable
class PaymentPresenter(Protocol):
    """Shows the payment sheet for a checkout handle and reports the result."""

    async def present(self, handle: CheckoutHandle) -> PaymentSheetResult: ...
