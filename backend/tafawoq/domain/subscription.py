"""
Subscription Domain Models

Domain models for the subscription bounded context: tiers, statuses,
the subscription record, lifecycle events coming from the payment
processor, checkout handles and upgrade outcomes.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_validator


class SubscriptionTier(str, Enum):
    """Subscription tier levels."""
    FREE = "free"
    PREMIUM = "premium"


class SubscriptionStatus(str, Enum):
    """Subscription lifecycle status."""
    ACTIVE = "active"
    TRIALING = "trialing"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    INCOMPLETE = "incomplete"


PREMIUM_ACCESS_STATUSES = frozenset({SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING})


# =============================================================================
# Domain Entities
# =============================================================================

class Subscription(BaseModel):
    """
    Authoritative subscription record for one user.

    Invariants:
        - tier free    => no processor subscription id
        - tier premium => customer id and subscription id both present
    """
    id: Optional[str] = None
    user_id: str
    stripe_customer_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None
    tier: SubscriptionTier = SubscriptionTier.FREE
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    trial_end_at: Optional[datetime] = None
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    canceled_at: Optional[datetime] = None
    cancel_at_period_end: bool = False
    last_event_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @model_validator(mode="after")
    def check_tier_invariants(self) -> "Subscription":
        if self.tier == SubscriptionTier.FREE and self.stripe_subscription_id:
            raise ValueError("free subscriptions cannot reference a processor subscription")
        if self.tier == SubscriptionTier.PREMIUM and not (
            self.stripe_customer_id and self.stripe_subscription_id
        ):
            raise ValueError("premium subscriptions need customer and subscription ids")
        return self

    @property
    def has_premium_access(self) -> bool:
        """Premium tier with a status that grants access (active or trialing)."""
        return self.tier == SubscriptionTier.PREMIUM and self.status in PREMIUM_ACCESS_STATUSES

    @property
    def pending_downgrade(self) -> bool:
        return self.tier == SubscriptionTier.PREMIUM and self.cancel_at_period_end


class LifecycleEventKind(str, Enum):
    """Lifecycle notifications the webhook consumer understands."""
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"
    PAYMENT_FAILED = "payment_failed"


class LifecycleEvent(BaseModel):
    """A processor lifecycle notification, already verified and parsed."""
    event_id: str
    kind: LifecycleEventKind
    event_type: str = Field(description="Raw processor event type")
    occurred_at: datetime = Field(description="Processor-side event timestamp")
    customer_id: Optional[str] = None
    subscription_id: Optional[str] = None
    status: Optional[str] = Field(default=None, description="Raw processor status")
    cancel_at_period_end: bool = False
    canceled_at: Optional[datetime] = None
    trial_end_at: Optional[datetime] = None
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None


class LifecycleOutcome(str, Enum):
    """What the consumer did with an event."""
    APPLIED = "applied"
    DUPLICATE = "duplicate"
    STALE = "stale"


class LifecycleResult(BaseModel):
    """Result of applying one lifecycle event."""
    outcome: LifecycleOutcome
    event_id: str
    subscription: Optional[Subscription] = None
    activated: bool = Field(default=False, description="First transition into premium")


# =============================================================================
# Tier Configuration (Business Logic)
# =============================================================================

class TierLimits(BaseModel):
    """Feature limits of one tier. None means unlimited."""
    tier: SubscriptionTier
    exams_per_week: Optional[int]
    practice_question_limit: int
    has_solution_explanations: bool
    has_advanced_analytics: bool
    has_export_reports: bool


TIER_LIMITS = {
    SubscriptionTier.FREE: TierLimits(
        tier=SubscriptionTier.FREE,
        exams_per_week=1,
        practice_question_limit=5,
        has_solution_explanations=False,
        has_advanced_analytics=False,
        has_export_reports=False,
    ),
    SubscriptionTier.PREMIUM: TierLimits(
        tier=SubscriptionTier.PREMIUM,
        exams_per_week=None,
        practice_question_limit=100,
        has_solution_explanations=True,
        has_advanced_analytics=True,
        has_export_reports=True,
    ),
}


def get_tier_limits(tier: SubscriptionTier) -> TierLimits:
    """Get the limits for a tier."""
    return TIER_LIMITS[tier]


def effective_tier(subscription: Optional[Subscription]) -> SubscriptionTier:
    """Tier used for quota decisions: premium only with premium access."""
    if subscription is not None and subscription.has_premium_access:
        return SubscriptionTier.PREMIUM
    return SubscriptionTier.FREE


# =============================================================================
# Checkout
# =============================================================================

class PaymentFailureReason(str, Enum):
    """Fixed vocabulary for failed or abandoned payment sheets."""
    CANCELED = "canceled"
    CARD_DECLINED = "card_declined"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    EXPIRED_CARD = "expired_card"
    INVALID_CARD_DETAILS = "invalid_card_details"
    PROCESSING_ERROR = "processing_error"
    NETWORK_ERROR = "network_error"
    PAYMENT_FAILED = "payment_failed"


_PAYMENT_ERROR_REASONS = {
    "canceled": PaymentFailureReason.CANCELED,
    "cancelled": PaymentFailureReason.CANCELED,
    "card_declined": PaymentFailureReason.CARD_DECLINED,
    "generic_decline": PaymentFailureReason.CARD_DECLINED,
    "do_not_honor": PaymentFailureReason.CARD_DECLINED,
    "lost_card": PaymentFailureReason.CARD_DECLINED,
    "stolen_card": PaymentFailureReason.CARD_DECLINED,
    "insufficient_funds": PaymentFailureReason.INSUFFICIENT_FUNDS,
    "expired_card": PaymentFailureReason.EXPIRED_CARD,
    "incorrect_cvc": PaymentFailureReason.INVALID_CARD_DETAILS,
    "invalid_cvc": PaymentFailureReason.INVALID_CARD_DETAILS,
    "incorrect_number": PaymentFailureReason.INVALID_CARD_DETAILS,
    "invalid_number": PaymentFailureReason.INVALID_CARD_DETAILS,
    "invalid_expiry_month": PaymentFailureReason.INVALID_CARD_DETAILS,
    "invalid_expiry_year": PaymentFailureReason.INVALID_CARD_DETAILS,
    "processing_error": PaymentFailureReason.PROCESSING_ERROR,
    "network_error": PaymentFailureReason.NETWORK_ERROR,
    "timeout": PaymentFailureReason.NETWORK_ERROR,
}


def classify_payment_error(code: Optional[str]) -> PaymentFailureReason:
    """Map a payment-sheet or decline code onto the fixed vocabulary."""
    if not code:
        return PaymentFailureReason.PAYMENT_FAILED
    return _PAYMENT_ERROR_REASONS.get(code.strip().lower(), PaymentFailureReason.PAYMENT_FAILED)


class CheckoutHandle(BaseModel):
    """Tokens the mobile payment sheet needs to complete an upgrade."""
    user_id: str
    client_secret: str = Field(description="Payment intent client secret")
    ephemeral_key: str = Field(description="Customer ephemeral key secret")
    customer_id: str = Field(description="Processor customer id")
    subscription_id: Optional[str] = None


class PaymentSheetResult(BaseModel):
    """What the payment sheet reported. No error code means it completed."""
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def completed(self) -> bool:
        return self.error_code is None


class UpgradeOutcome(BaseModel):
    """Tagged outcome of an upgrade attempt; expected failures are not exceptions."""
    success: bool
    reason: Optional[PaymentFailureReason] = None
    activation_pending: bool = False
    subscription: Optional[Subscription] = None


# =============================================================================
# Request/Response DTOs
# =============================================================================

class CheckoutResponse(BaseModel):
    """Response DTO for checkout context creation."""
    client_secret: str
    ephemeral_key: str
    customer_id: str


class ConfirmUpgradeRequest(BaseModel):
    """Request DTO reporting the payment-sheet result back to the server."""
    client_secret: str = Field(..., description="Client secret returned by checkout")
    ephemeral_key: str = Field(..., description="Ephemeral key returned by checkout")
    customer_id: str = Field(..., description="Customer id returned by checkout")
    error_code: Optional[str] = Field(
        default=None,
        description="Payment sheet error code; omitted when the payment completed",
    )
    error_message: Optional[str] = None


class CancelSubscriptionRequest(BaseModel):
    """Request DTO for cancellation."""
    at_period_end: bool = Field(
        default=True,
        description="Keep premium until the current period ends",
    )


class TierLimitsResponse(BaseModel):
    """Response DTO for tier limits."""
    tier: SubscriptionTier
    exams_per_week: Optional[int] = Field(description="None means unlimited")
    practice_question_limit: int
    has_solution_explanations: bool
    has_advanced_analytics: bool
    has_export_reports: bool


class SubscriptionStatusResponse(BaseModel):
    """Response DTO for subscription status."""
    tier: SubscriptionTier
    status: SubscriptionStatus
    is_premium: bool = Field(description="Whether the user currently has premium access")
    cancel_at_period_end: bool = False
    current_period_end: Optional[datetime] = None
    trial_end_at: Optional[datetime] = None
    canceled_at: Optional[datetime] = None
    limits: TierLimitsResponse


def build_status_response(subscription: Subscription) -> SubscriptionStatusResponse:
    """Project a subscription record onto the status DTO."""
    limits = get_tier_limits(effective_tier(subscription))
    return SubscriptionStatusResponse(
        tier=subscription.tier,
        status=subscription.status,
        is_premium=subscription.has_premium_access,
        cancel_at_period_end=subscription.cancel_at_period_end,
        current_period_end=subscription.current_period_end,
        trial_end_at=subscription.trial_end_at,
        canceled_at=subscription.canceled_at,
        limits=TierLimitsResponse(**limits.model_dump()),
    )


class UpgradeOutcomeResponse(BaseModel):
    """Response DTO for a confirmed (or failed) upgrade."""
    success: bool
    reason: Optional[PaymentFailureReason] = None
    activation_pending: bool = False
    subscription: Optional[SubscriptionStatusResponse] = None


def build_upgrade_response(outcome: UpgradeOutcome) -> UpgradeOutcomeResponse:
    return UpgradeOutcomeResponse(
        success=outcome.success,
        reason=outcome.reason,
        activation_pending=outcome.activation_pending,
        subscription=build_status_response(outcome.subscription) if outcome.subscription else None,
    )
