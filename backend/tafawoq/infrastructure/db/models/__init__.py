"""
SQLModel ORM Models for Tafawoq

Exports all database models for Alembic autogenerate and application use.
Import models here to register them with SQLModel.metadata.
"""

from tafawoq.infrastructure.db.models.base import (
    TimestampMixin,
    UUIDMixin,
    utc_now,
)
from tafawoq.infrastructure.db.models.subscription import SubscriptionModel
from tafawoq.infrastructure.db.models.content_session import (
    ContentSessionModel,
    SessionResultModel,
)
from tafawoq.infrastructure.db.models.processed_webhook_event import (
    ProcessedWebhookEventModel,
)
from tafawoq.infrastructure.db.models.user_analytics import UserAnalyticsModel


__all__ = [
    # Base
    "TimestampMixin",
    "UUIDMixin",
    "utc_now",
    # Subscriptions
    "SubscriptionModel",
    "ProcessedWebhookEventModel",
    # Content
    "ContentSessionModel",
    "SessionResultModel",
    # Analytics
    "UserAnalyticsModel",
]
