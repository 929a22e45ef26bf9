"""
Subscription Repository

Data access layer for the subscription record.
Lifecycle writes are conditional on the freshness watermark so that an
older event can never overwrite a newer one, even under concurrency.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError as SQLIntegrityError
from sqlmodel import select

from tafawoq.domain.subscription import (
    Subscription,
    SubscriptionStatus,
    SubscriptionTier,
)
from tafawoq.infrastructure.db.models.base import utc_now
from tafawoq.infrastructure.db.models.subscription import SubscriptionModel
from tafawoq.infrastructure.db.repositories.base_repository import (
    BaseRepository,
    as_utc,
    to_uuid,
)


logger = logging.getLogger(__name__)


class SubscriptionRepository(BaseRepository):
    """
    Repository for subscription data access.

    Implements reads and the few permitted writes with domain model mapping.
    """

    table_name = "user_subscriptions"

    # =========================================================================
    # Query Methods
    # =========================================================================

    async def get_by_user_id(self, user_id: str) -> Optional[Subscription]:
        """
        Get subscription by user ID.

        Args:
            user_id: Supabase auth user ID

        Returns:
            Subscription domain model or None
        """
        async with self._session("get_by_user_id") as session:
            statement = select(SubscriptionModel).where(
                SubscriptionModel.user_id == to_uuid(user_id)
            )
            result = await session.execute(statement)
            model = result.scalar_one_or_none()
            return self._to_domain(model) if model else None

    async def get_by_stripe_customer_id(self, stripe_customer_id: str) -> Optional[Subscription]:
        """Get subscription by Stripe customer ID."""
        async with self._session("get_by_stripe_customer_id") as session:
            statement = select(SubscriptionModel).where(
                SubscriptionModel.stripe_customer_id == stripe_customer_id
            )
            result = await session.execute(statement)
            model = result.scalar_one_or_none()
            return self._to_domain(model) if model else None

    async def get_by_stripe_subscription_id(
        self,
        stripe_subscription_id: str,
    ) -> Optional[Subscription]:
        """Get subscription by Stripe subscription ID."""
        async with self._session("get_by_stripe_subscription_id") as session:
            statement = select(SubscriptionModel).where(
                SubscriptionModel.stripe_subscription_id == stripe_subscription_id
            )
            result = await session.execute(statement)
            model = result.scalar_one_or_none()
            return self._to_domain(model) if model else None

    # =========================================================================
    # Command Methods
    # =========================================================================

    async def get_or_create_free(self, user_id: str) -> Subscription:
        """
        Get existing subscription or create a free tier subscription.

        A concurrent creator losing the unique(user_id) race re-reads the
        winner's row.
        """
        existing = await self.get_by_user_id(user_id)
        if existing:
            return existing

        try:
            async with self._session("create_free") as session:
                model = SubscriptionModel(
                    user_id=to_uuid(user_id),
                    tier=SubscriptionTier.FREE.value,
                    status=SubscriptionStatus.ACTIVE.value,
                )
                session.add(model)
                await session.flush()
                created = self._to_domain(model)
            logger.info(f"Created free subscription for user {user_id}")
            return created
        except SQLIntegrityError:
            logger.debug(f"Concurrent free subscription creation for user {user_id}")
            existing = await self.get_by_user_id(user_id)
            if existing is None:
                raise
            return existing

    async def set_customer_id(self, user_id: str, stripe_customer_id: str) -> Subscription:
        """Persist the processor customer id so webhooks can be resolved."""
        async with self._session("set_customer_id") as session:
            await session.execute(
                update(SubscriptionModel)
                .where(SubscriptionModel.user_id == to_uuid(user_id))
                .values(stripe_customer_id=stripe_customer_id, updated_at=utc_now())
            )
        return await self.get_or_create_free(user_id)

    async def save_transition(self, subscription: Subscription, event_time: datetime) -> bool:
        """
        Write the result of a lifecycle transition.

        The update only lands if no newer event has been applied since the
        record was read (stored watermark <= event_time).

        Returns:
            True if the row was updated
        """
        async with self._session("save_transition") as session:
            result = await session.execute(
                update(SubscriptionModel)
                .where(
                    SubscriptionModel.id == to_uuid(subscription.id),
                    or_(
                        SubscriptionModel.last_event_at.is_(None),
                        SubscriptionModel.last_event_at <= event_time,
                    ),
                )
                .values(**self._lifecycle_values(subscription), updated_at=utc_now())
            )
            saved = result.rowcount > 0

        if saved:
            logger.info(
                f"Subscription {subscription.id} -> tier={subscription.tier.value} "
                f"status={subscription.status.value}"
            )
        return saved

    async def set_cancel_at_period_end(
        self,
        user_id: str,
        cancel_at_period_end: bool,
        canceled_at: Optional[datetime] = None,
    ) -> Subscription:
        """
        Record a locally initiated cancel/reactivate ahead of the webhook.

        The freshness watermark is left alone; the processor's own event
        will confirm (or override) this state.
        """
        async with self._session("set_cancel_at_period_end") as session:
            await session.execute(
                update(SubscriptionModel)
                .where(SubscriptionModel.user_id == to_uuid(user_id))
                .values(
                    cancel_at_period_end=cancel_at_period_end,
                    canceled_at=canceled_at,
                    updated_at=utc_now(),
                )
            )
        return await self.get_or_create_free(user_id)

    # =========================================================================
    # Mapping Methods
    # =========================================================================

    def _lifecycle_values(self, domain: Subscription) -> dict:
        return {
            "stripe_customer_id": domain.stripe_customer_id,
            "stripe_subscription_id": domain.stripe_subscription_id,
            "tier": domain.tier.value,
            "status": domain.status.value,
            "trial_end_at": domain.trial_end_at,
            "current_period_start": domain.current_period_start,
            "current_period_end": domain.current_period_end,
            "canceled_at": domain.canceled_at,
            "cancel_at_period_end": domain.cancel_at_period_end,
            "last_event_at": domain.last_event_at,
        }

    def _to_domain(self, model: SubscriptionModel) -> Subscription:
        """Convert database model to domain entity."""
        return Subscription(
            id=str(model.id),
            user_id=str(model.user_id),
            stripe_customer_id=model.stripe_customer_id,
            stripe_subscription_id=model.stripe_subscription_id,
            tier=SubscriptionTier(model.tier),
            status=SubscriptionStatus(model.status),
            trial_end_at=as_utc(model.trial_end_at),
            current_period_start=as_utc(model.current_period_start),
            current_period_end=as_utc(model.current_period_end),
            canceled_at=as_utc(model.canceled_at),
            cancel_at_period_end=model.cancel_at_period_end or False,
            last_event_at=as_utc(model.last_event_at),
            created_at=as_utc(model.created_at),
            updated_at=as_utc(model.updated_at),
        )
