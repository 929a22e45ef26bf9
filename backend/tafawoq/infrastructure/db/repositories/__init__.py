"""
Repository Layer for Tafawoq

Exports all repository classes for dependency injection.
"""

from tafawoq.infrastructure.db.repositories.base_repository import (
    BaseRepository,
    as_utc,
    to_uuid,
)
from tafawoq.infrastructure.db.repositories.subscription_repository import (
    SubscriptionRepository,
)
from tafawoq.infrastructure.db.repositories.content_session_repository import (
    ContentSessionRepository,
)
from tafawoq.infrastructure.db.repositories.processed_event_repository import (
    ProcessedEventRepository,
)
from tafawoq.infrastructure.db.repositories.analytics_repository import (
    AnalyticsRepository,
)


__all__ = [
    # Base
    "BaseRepository",
    "as_utc",
    "to_uuid",
    # Repositories
    "SubscriptionRepository",
    "ContentSessionRepository",
    "ProcessedEventRepository",
    "AnalyticsRepository",
]
