"""
Service Bundle

Every capability the HTTP layer needs, constructed once in the application
lifespan from settings and a database manager. Routes receive the bundle
through a FastAPI dependency; tests build their own.
"""

from dataclasses import dataclass

from tafawoq.config.settings import Settings
from tafawoq.domain.scoring import SessionScorer
from tafawoq.infrastructure.ai.gemini_service import GeminiContentGenerator
from tafawoq.infrastructure.db.database import DatabaseManager
from tafawoq.infrastructure.db.repositories import (
    AnalyticsRepository,
    ContentSessionRepository,
    ProcessedEventRepository,
    SubscriptionRepository,
)
from tafawoq.infrastructure.payments.stripe_service import StripeService
from tafawoq.infrastructure.polling import PollSchedule
from tafawoq.infrastructure.services.analytics_service import AnalyticsService
from tafawoq.infrastructure.services.auth_service import SupabaseAuthService
from tafawoq.infrastructure.services.profile_service import SupabaseProfileService
from tafawoq.services.checkout_orchestrator import CheckoutOrchestrator
from tafawoq.services.generation_orchestrator import GenerationOrchestrator
from tafawoq.services.lifecycle_consumer import LifecycleEventConsumer
from tafawoq.services.quota_ledger import QuotaLedger


@dataclass
class ServiceBundle:
    """Capabilities handed to the routes."""
    auth: SupabaseAuthService
    payments: StripeService
    lifecycle: LifecycleEventConsumer
    checkout: CheckoutOrchestrator
    quota: QuotaLedger
    content: GenerationOrchestrator
    analytics: AnalyticsService
    profiles: SupabaseProfileService


def build_service_bundle(settings: Settings, database: DatabaseManager) -> ServiceBundle:
    """Wire repositories, external clients and orchestrators together."""
    session_factory = database.session_factory

    subscriptions = SubscriptionRepository(session_factory)
    sessions = ContentSessionRepository(session_factory)
    processed_events = ProcessedEventRepository(session_factory)
    analytics = AnalyticsService(AnalyticsRepository(session_factory))

    auth = SupabaseAuthService(settings.supabase_url, settings.supabase_jwt_secret)
    profiles = SupabaseProfileService(settings.supabase_url, settings.supabase_service_role_key)
    payments = StripeService.from_settings(settings)
    generator = GeminiContentGenerator(settings.google_api_key, settings.gemini_model)

    quota = QuotaLedger(subscriptions, sessions)

    return ServiceBundle(
        auth=auth,
        payments=payments,
        lifecycle=LifecycleEventConsumer(subscriptions, processed_events, analytics),
        checkout=CheckoutOrchestrator(
            subscriptions,
            payments,
            price_id=settings.stripe_premium_price_id,
            poll_schedule=PollSchedule(delays=settings.activation_poll_delays),
            checkout_timeout=settings.checkout_timeout_seconds,
        ),
        quota=quota,
        content=GenerationOrchestrator(
            quota=quota,
            sessions=sessions,
            generator=generator,
            scorer=SessionScorer(),
            analytics=analytics,
            profiles=profiles,
            exam_question_count=settings.exam_question_count,
            exam_timeout=settings.exam_generation_timeout_seconds,
            practice_timeout=settings.practice_generation_timeout_seconds,
        ),
        analytics=analytics,
        profiles=profiles,
    )
