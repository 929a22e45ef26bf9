"""
Checkout Orchestrator

Drives a premium upgrade through the mobile payment sheet:

    begin_upgrade     -> customer + ephemeral key + incomplete subscription
    complete_upgrade  -> payment sheet result -> poll for webhook activation

The tier itself is only ever changed by the lifecycle consumer; this
service waits for that to happen and reports a tagged outcome. Expected
failures (declines, cancellation, slow webhooks) are outcomes, not
exceptions.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from tafawoq.domain.interfaces import PaymentGateway, PaymentPresenter, SubscriptionStore
from tafawoq.domain.subscription import (
    CheckoutHandle,
    PaymentSheetResult,
    Subscription,
    SubscriptionTier,
    UpgradeOutcome,
    classify_payment_error,
)
from tafawoq.infrastructure.exceptions import (
    AlreadyPremiumError,
    CheckoutInitError,
    ConfigurationError,
    NoActiveSubscriptionError,
    PaymentServiceError,
    ValidationError,
)
from tafawoq.infrastructure.payments.stripe_service import StripeServiceError
from tafawoq.infrastructure.polling import PollSchedule, poll_until


logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ReportedPaymentResult:
    """Presenter for payment sheets shown by a remote client that reports back."""
    result: PaymentSheetResult

    async def present(self, handle: CheckoutHandle) -> PaymentSheetResult:
        return self.result


class CheckoutOrchestrator:
    """Premium upgrade, cancellation and reactivation flows."""

    DEFAULT_CHECKOUT_TIMEOUT_SECONDS = 20.0

    def __init__(
        self,
        subscriptions: SubscriptionStore,
        payments: PaymentGateway,
        price_id: Optional[str],
        poll_schedule: Optional[PollSchedule] = None,
        checkout_timeout: float = DEFAULT_CHECKOUT_TIMEOUT_SECONDS,
        clock: Callable[[], datetime] = _utc_now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._subscriptions = subscriptions
        self._payments = payments
        self._price_id = price_id
        self._poll_schedule = poll_schedule or PollSchedule()
        self._checkout_timeout = checkout_timeout
        self._clock = clock
        self._sleep = sleep

    async def get_subscription(self, user_id: str) -> Subscription:
        """Current record; creates the free record on first access."""
        return await self._subscriptions.get_or_create_free(user_id)

    # =========================================================================
    # Upgrade
    # =========================================================================

    async def begin_upgrade(self, user_id: str, email: Optional[str] = None) -> CheckoutHandle:
        """
        Create the checkout context for a premium upgrade.

        Args:
            user_id: Authenticated user
            email: Optional receipt email for a new customer

        Returns:
            CheckoutHandle with all three payment-sheet tokens

        Raises:
            AlreadyPremiumError: the user already has premium access
            CheckoutInitError: processor failure, timeout or missing tokens
        """
        subscription = await self._subscriptions.get_or_create_free(user_id)
        if subscription.has_premium_access:
            raise AlreadyPremiumError("User already has an active premium subscription")

        if not self._price_id:
            raise ConfigurationError(
                "Premium price is not configured",
                missing_keys=["STRIPE_PREMIUM_PRICE_ID"],
            )

        stored_customer_id = subscription.stripe_customer_id

        async def store_customer(customer_id: str) -> None:
            # Webhooks resolve the user through the customer id, and the
            # first one can arrive before checkout creation returns
            nonlocal stored_customer_id
            if customer_id and customer_id != stored_customer_id:
                await self._subscriptions.set_customer_id(user_id, customer_id)
                stored_customer_id = customer_id

        try:
            context = await asyncio.wait_for(
                self._payments.create_checkout_context(
                    user_id=user_id,
                    price_id=self._price_id,
                    existing_customer_id=subscription.stripe_customer_id,
                    email=email,
                    on_customer=store_customer,
                ),
                timeout=self._checkout_timeout,
            )
        except asyncio.TimeoutError as e:
            logger.error(f"Checkout creation timed out for user {user_id}")
            raise CheckoutInitError(
                "Timed out creating the checkout",
                original_error=e,
                retryable=True,
            )
        except StripeServiceError as e:
            raise CheckoutInitError(str(e), original_error=e)

        if context.customer_id:
            await store_customer(context.customer_id)

        missing = [
            name
            for name in ("client_secret", "ephemeral_key", "customer_id")
            if not getattr(context, name)
        ]
        if missing:
            logger.error(f"Incomplete checkout context for user {user_id}: missing {missing}")
            raise CheckoutInitError(
                "Checkout context is incomplete",
                missing_fields=missing,
            )

        return CheckoutHandle(
            user_id=user_id,
            client_secret=context.client_secret,
            ephemeral_key=context.ephemeral_key,
            customer_id=context.customer_id,
            subscription_id=context.subscription_id,
        )

    async def complete_upgrade(
        self,
        handle: CheckoutHandle,
        presenter: PaymentPresenter,
    ) -> UpgradeOutcome:
        """
        Present the payment sheet and wait for activation.

        Returns:
            UpgradeOutcome; success with activation_pending=True when the
            webhook has not landed within the poll schedule
        """
        current = await self._subscriptions.get_or_create_free(handle.user_id)
        if current.stripe_customer_id and current.stripe_customer_id != handle.customer_id:
            raise ValidationError(
                "Checkout handle does not belong to this user",
                {"field": "customer_id"},
            )

        result = await presenter.present(handle)
        if not result.completed:
            reason = classify_payment_error(result.error_code)
            logger.info(
                f"Payment sheet for user {handle.user_id} not completed: "
                f"{result.error_code} -> {reason.value}"
            )
            return UpgradeOutcome(success=False, reason=reason, subscription=current)

        poll = await poll_until(
            lambda: self._subscriptions.get_or_create_free(handle.user_id),
            lambda subscription: subscription.has_premium_access,
            self._poll_schedule,
            sleep=self._sleep,
        )

        if not poll.satisfied:
            logger.warning(
                f"Premium activation for user {handle.user_id} still pending "
                f"after {poll.attempts} reads"
            )
        return UpgradeOutcome(
            success=True,
            activation_pending=not poll.satisfied,
            subscription=poll.value,
        )

    # =========================================================================
    # Cancellation
    # =========================================================================

    async def _require_premium(self, user_id: str) -> Subscription:
        subscription = await self._subscriptions.get_or_create_free(user_id)
        if subscription.tier != SubscriptionTier.PREMIUM or not subscription.stripe_subscription_id:
            raise NoActiveSubscriptionError("No active premium subscription")
        return subscription

    async def _remote(self, operation: str, call: Awaitable[None]) -> None:
        try:
            await asyncio.wait_for(call, timeout=self._checkout_timeout)
        except asyncio.TimeoutError as e:
            raise PaymentServiceError(f"Timed out trying to {operation}", original_error=e)
        except StripeServiceError as e:
            raise PaymentServiceError(str(e), {"code": e.code} if e.code else None, e)

    async def cancel_subscription(self, user_id: str, at_period_end: bool = True) -> Subscription:
        """
        Cancel the user's premium subscription.

        At period end the record is flagged immediately; an immediate
        cancellation is reflected once the processor's deleted event lands.
        """
        subscription = await self._require_premium(user_id)
        await self._remote(
            "cancel the subscription",
            self._payments.cancel_subscription(
                subscription.stripe_subscription_id,
                cancel_at_period_end=at_period_end,
            ),
        )

        if at_period_end:
            return await self._subscriptions.set_cancel_at_period_end(
                user_id, True, canceled_at=self._clock()
            )
        return subscription

    async def reactivate_subscription(self, user_id: str) -> Subscription:
        """Undo a pending end-of-period cancellation."""
        subscription = await self._require_premium(user_id)
        if not subscription.cancel_at_period_end:
            return subscription

        await self._remote(
            "reactivate the subscription",
            self._payments.reactivate_subscription(subscription.stripe_subscription_id),
        )
        return await self._subscriptions.set_cancel_at_period_end(user_id, False, canceled_at=None)
