"""
Stripe Payment Service

Infrastructure service for Stripe payment processing: customers, the
mobile payment-sheet checkout context, cancellation, reactivation and
webhook signature verification.

The SDK is blocking, so every call runs in a worker thread. The API key
and API version are passed per request; nothing is written to the
module-level ``stripe`` configuration.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from functools import partial
from typing import Any, Awaitable, Callable, Optional

import stripe
from stripe import StripeError

from tafawoq.config.settings import Settings
from tafawoq.infrastructure.exceptions import ConfigurationError


logger = logging.getLogger(__name__)


class StripeServiceError(Exception):
    """Base exception for Stripe service errors."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code


@dataclass
class CheckoutContext:
    """Raw tokens produced by Stripe for one checkout attempt."""
    customer_id: Optional[str] = None
    ephemeral_key: Optional[str] = None
    client_secret: Optional[str] = None
    subscription_id: Optional[str] = None


def _user_message(error: StripeError) -> str:
    return getattr(error, "user_message", None) or str(error)


class StripeService:
    """
    Stripe payment processing service.

    Constructed explicitly with its credentials; all remote methods are
    async and raise StripeServiceError on processor failures.
    """

    def __init__(
        self,
        api_key: Optional[str],
        webhook_secret: Optional[str],
        api_version: str = "2023-10-16",
        webhook_tolerance_seconds: int = 300,
    ):
        self._api_key = api_key
        self._webhook_secret = webhook_secret
        self._api_version = api_version
        self._webhook_tolerance = webhook_tolerance_seconds

    @classmethod
    def from_settings(cls, settings: Settings) -> "StripeService":
        return cls(
            api_key=settings.stripe_secret_key,
            webhook_secret=settings.stripe_webhook_secret,
            api_version=settings.stripe_api_version,
            webhook_tolerance_seconds=settings.stripe_webhook_tolerance_seconds,
        )

    async def _call(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Run a blocking SDK call in a worker thread with per-request credentials."""
        if not self._api_key:
            raise ConfigurationError("Stripe is not configured", missing_keys=["STRIPE_SECRET_KEY"])
        kwargs.setdefault("api_key", self._api_key)
        kwargs.setdefault("stripe_version", self._api_version)
        return await asyncio.to_thread(partial(fn, *args, **kwargs))

    # =========================================================================
    # Customer Management
    # =========================================================================

    async def create_customer(self, user_id: str, email: Optional[str] = None) -> str:
        """
        Create a new Stripe customer.

        Args:
            user_id: Internal user ID (stored in metadata)
            email: Optional customer email for receipts

        Returns:
            Stripe customer id
        """
        try:
            customer = await self._call(
                stripe.Customer.create,
                email=email,
                metadata={"user_id": user_id, "source": "tafawoq"},
            )
            logger.info(f"Created Stripe customer {customer.id} for user {user_id}")
            return customer.id

        except StripeError as e:
            logger.error(f"Failed to create Stripe customer: {e}")
            raise StripeServiceError(f"Failed to create customer: {_user_message(e)}", e.code)

    async def get_or_create_customer(
        self,
        user_id: str,
        existing_customer_id: Optional[str] = None,
        email: Optional[str] = None,
    ) -> str:
        """Reuse a live customer, or create a new one."""
        if existing_customer_id:
            try:
                customer = await self._call(stripe.Customer.retrieve, existing_customer_id)
                if not getattr(customer, "deleted", False):
                    return customer.id
            except StripeError:
                logger.warning(f"Customer {existing_customer_id} not found, creating new")

        return await self.create_customer(user_id, email)

    # =========================================================================
    # Payment Sheet Checkout
    # =========================================================================

    async def create_checkout_context(
        self,
        user_id: str,
        price_id: str,
        existing_customer_id: Optional[str] = None,
        email: Optional[str] = None,
        on_customer: Optional[Callable[[str], Awaitable[None]]] = None,
    ) -> CheckoutContext:
        """
        Create everything the mobile payment sheet needs.

        Creates (or reuses) the customer, an ephemeral key for it, and an
        incomplete subscription whose first invoice carries the payment
        intent client secret.

        ``on_customer`` is awaited with the customer id before the
        subscription exists, so the id can be stored before Stripe emits
        any subscription webhook for it.

        Returns:
            CheckoutContext; fields Stripe did not return are None
        """
        context = CheckoutContext()
        context.customer_id = await self.get_or_create_customer(user_id, existing_customer_id, email)
        if on_customer is not None:
            await on_customer(context.customer_id)

        try:
            ephemeral_key = await self._call(
                stripe.EphemeralKey.create,
                customer=context.customer_id,
            )
            context.ephemeral_key = getattr(ephemeral_key, "secret", None)

            subscription = await self._call(
                stripe.Subscription.create,
                customer=context.customer_id,
                items=[{"price": price_id}],
                payment_behavior="default_incomplete",
                payment_settings={"save_default_payment_method": "on_subscription"},
                expand=["latest_invoice.payment_intent"],
                metadata={"user_id": user_id},
            )
        except StripeError as e:
            logger.error(f"Failed to create checkout context for user {user_id}: {e}")
            raise StripeServiceError(f"Failed to create checkout: {_user_message(e)}", e.code)

        context.subscription_id = getattr(subscription, "id", None)
        invoice = getattr(subscription, "latest_invoice", None)
        payment_intent = getattr(invoice, "payment_intent", None) if invoice else None
        context.client_secret = getattr(payment_intent, "client_secret", None) if payment_intent else None

        logger.info(
            f"Created checkout context for user {user_id}: "
            f"customer={context.customer_id} subscription={context.subscription_id}"
        )
        return context

    # =========================================================================
    # Subscription Management
    # =========================================================================

    async def cancel_subscription(
        self,
        subscription_id: str,
        cancel_at_period_end: bool = True,
    ) -> None:
        """
        Cancel a subscription.

        Args:
            subscription_id: Stripe subscription ID
            cancel_at_period_end: If True, cancel at end of billing period
        """
        try:
            if cancel_at_period_end:
                await self._call(
                    stripe.Subscription.modify,
                    subscription_id,
                    cancel_at_period_end=True,
                )
            else:
                await self._call(stripe.Subscription.cancel, subscription_id)

            logger.info(
                f"Cancelled subscription {subscription_id}, "
                f"at_period_end={cancel_at_period_end}"
            )

        except StripeError as e:
            logger.error(f"Failed to cancel subscription: {e}")
            raise StripeServiceError(f"Failed to cancel: {_user_message(e)}", e.code)

    async def reactivate_subscription(self, subscription_id: str) -> None:
        """Undo a pending end-of-period cancellation."""
        try:
            await self._call(
                stripe.Subscription.modify,
                subscription_id,
                cancel_at_period_end=False,
            )
            logger.info(f"Reactivated subscription {subscription_id}")

        except StripeError as e:
            logger.error(f"Failed to reactivate subscription: {e}")
            raise StripeServiceError(f"Failed to reactivate: {_user_message(e)}", e.code)

    # =========================================================================
    # Webhook Verification
    # =========================================================================

    def verify_webhook_signature(
        self,
        payload: bytes,
        signature: str,
    ) -> dict:
        """
        Verify webhook signature and decode the event.

        Args:
            payload: Raw request body
            signature: Stripe-Signature header

        Returns:
            The event as a plain dict

        Raises:
            StripeServiceError if the signature or payload is invalid
        """
        if not self._webhook_secret:
            raise ConfigurationError(
                "Stripe webhook secret is not configured",
                missing_keys=["STRIPE_WEBHOOK_SECRET"],
            )

        try:
            body = payload.decode("utf-8") if isinstance(payload, bytes) else payload
            stripe.WebhookSignature.verify_header(
                body,
                signature,
                self._webhook_secret,
                self._webhook_tolerance,
            )
            return json.loads(body)

        except (ValueError, UnicodeDecodeError) as e:
            raise StripeServiceError(f"Invalid payload: {e}")
        except stripe.SignatureVerificationError as e:
            raise StripeServiceError(f"Invalid signature: {e}")
