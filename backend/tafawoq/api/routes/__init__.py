# API Routes Module
from tafawoq.api.routes import (
    analytics,
    sessions,
    subscriptions,
    webhooks,
)

__all__ = [
    "analytics",
    "sessions",
    "subscriptions",
    "webhooks",
]
