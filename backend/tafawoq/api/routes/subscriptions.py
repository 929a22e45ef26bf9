"""
Subscription API Routes

REST API endpoints for premium checkout and subscription management.
Domain errors propagate to the application exception handlers.
"""

import logging
from typing import Optional

from fastapi import APIRouter

from tafawoq.api.dependencies import CurrentUserDep, ServicesDep
from tafawoq.domain.subscription import (
    CancelSubscriptionRequest,
    CheckoutHandle,
    CheckoutResponse,
    ConfirmUpgradeRequest,
    PaymentSheetResult,
    SubscriptionStatusResponse,
    TierLimitsResponse,
    UpgradeOutcomeResponse,
    build_status_response,
    build_upgrade_response,
    effective_tier,
    get_tier_limits,
)
from tafawoq.services.checkout_orchestrator import ReportedPaymentResult


logger = logging.getLogger(__name__)

router = APIRouter()


# =============================================================================
# Subscription Status Endpoints
# =============================================================================

@router.get("/subscriptions/status", response_model=SubscriptionStatusResponse)
async def get_subscription_status(user_id: CurrentUserDep, services: ServicesDep):
    """
    Get the current user's subscription status.

    Creates a free tier subscription if none exists.
    """
    subscription = await services.checkout.get_subscription(user_id)
    return build_status_response(subscription)


@router.get("/subscriptions/limits", response_model=TierLimitsResponse)
async def get_subscription_limits(user_id: CurrentUserDep, services: ServicesDep):
    """Limits that currently apply to the user (free limits without premium access)."""
    subscription = await services.checkout.get_subscription(user_id)
    limits = get_tier_limits(effective_tier(subscription))
    return TierLimitsResponse(**limits.model_dump())


# =============================================================================
# Checkout Endpoints
# =============================================================================

@router.post("/subscriptions/checkout", response_model=CheckoutResponse)
async def create_checkout(user_id: CurrentUserDep, services: ServicesDep):
    """
    Create the payment-sheet context for a premium upgrade.

    Returns:
        CheckoutResponse with client secret, ephemeral key and customer id
    """
    handle = await services.checkout.begin_upgrade(user_id)
    logger.info(f"Created checkout for user {user_id} (subscription {handle.subscription_id})")
    return CheckoutResponse(
        client_secret=handle.client_secret,
        ephemeral_key=handle.ephemeral_key,
        customer_id=handle.customer_id,
    )


@router.post("/subscriptions/confirm", response_model=UpgradeOutcomeResponse)
async def confirm_upgrade(
    request: ConfirmUpgradeRequest,
    user_id: CurrentUserDep,
    services: ServicesDep,
):
    """
    Report the payment-sheet result and wait for activation.

    Declines and cancellations come back as ``success=false`` with a reason;
    a slow webhook comes back as ``activation_pending=true``.
    """
    handle = CheckoutHandle(
        user_id=user_id,
        client_secret=request.client_secret,
        ephemeral_key=request.ephemeral_key,
        customer_id=request.customer_id,
    )
    presenter = ReportedPaymentResult(
        PaymentSheetResult(error_code=request.error_code, error_message=request.error_message)
    )
    outcome = await services.checkout.complete_upgrade(handle, presenter)
    return build_upgrade_response(outcome)


# =============================================================================
# Cancellation Endpoints
# =============================================================================

@router.post("/subscriptions/cancel", response_model=SubscriptionStatusResponse)
async def cancel_subscription(
    user_id: CurrentUserDep,
    services: ServicesDep,
    request: Optional[CancelSubscriptionRequest] = None,
):
    """Cancel premium, by default at the end of the current period."""
    request = request or CancelSubscriptionRequest()
    subscription = await services.checkout.cancel_subscription(
        user_id, at_period_end=request.at_period_end
    )
    return build_status_response(subscription)


@router.post("/subscriptions/reactivate", response_model=SubscriptionStatusResponse)
async def reactivate_subscription(user_id: CurrentUserDep, services: ServicesDep):
    """Undo a pending end-of-period cancellation."""
    subscription = await services.checkout.reactivate_subscription(user_id)
    return build_status_response(subscription)
