"""
Payments Infrastructure Module

Stripe payment processing and lifecycle event parsing.
"""

from tafawoq.infrastructure.payments.events import parse_lifecycle_event
from tafawoq.infrastructure.payments.stripe_service import (
    CheckoutContext,
    StripeService,
    StripeServiceError,
)

__all__ = [
    "CheckoutContext",
    "StripeService",
    "StripeServiceError",
    "parse_lifecycle_event",
]
