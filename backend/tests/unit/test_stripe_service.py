"""
Unit tests for the Stripe payment service.

The SDK resources are patched; no network calls are made.
"""

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from tafawoq.infrastructure.payments.stripe_service import StripeService


@pytest.fixture
def service():
    return StripeService(api_key="sk_test_123", webhook_secret="whsec_123")


class TestCreateCheckoutContext:

    async def test_customer_reported_before_subscription_created(self, service):
        calls = []

        def create_subscription(**kwargs):
            calls.append("subscription")
            return SimpleNamespace(
                id="sub_new",
                latest_invoice=SimpleNamespace(
                    payment_intent=SimpleNamespace(client_secret="pi_secret")
                ),
            )

        async def on_customer(customer_id):
            calls.append(f"customer:{customer_id}")

        with patch("stripe.Customer.create", MagicMock(return_value=SimpleNamespace(id="cus_new"))), \
             patch("stripe.EphemeralKey.create", MagicMock(return_value=SimpleNamespace(secret="ek_secret"))), \
             patch("stripe.Subscription.create", MagicMock(side_effect=create_subscription)):
            context = await service.create_checkout_context(
                user_id="user-1",
                price_id="price_premium",
                on_customer=on_customer,
            )

        assert calls == ["customer:cus_new", "subscription"]
        assert context.customer_id == "cus_new"
        assert context.ephemeral_key == "ek_secret"
        assert context.client_secret == "pi_secret"
        assert context.subscription_id == "sub_new"

    async def test_missing_payment_intent_leaves_secret_empty(self, service):
        with patch("stripe.Customer.retrieve", MagicMock(return_value=SimpleNamespace(id="cus_1"))), \
             patch("stripe.EphemeralKey.create", MagicMock(return_value=SimpleNamespace(secret="ek_secret"))), \
             patch("stripe.Subscription.create", MagicMock(return_value=SimpleNamespace(id="sub_1", latest_invoice=None))):
            context = await service.create_checkout_context(
                user_id="user-1",
                price_id="price_premium",
                existing_customer_id="cus_1",
            )

        assert context.customer_id == "cus_1"
        assert context.client_secret is None
