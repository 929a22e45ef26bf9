"""
Subscription Lifecycle Consumer

Applies verified processor lifecycle events to the subscription store.

Guarantees:
- Idempotent: an event id is applied at most once (processed-events table)
- Order tolerant: events older than the record's watermark are discarded
- Loud on integrity problems: unmatched events go to the ops log and are
  left unprocessed so a redelivery can succeed after reconciliation
"""

import logging

from tafawoq.domain.interfaces import (
    AnalyticsRecorder,
    ProcessedEventStore,
    SubscriptionStore,
)
from tafawoq.domain.lifecycle import apply_transition, is_stale
from tafawoq.domain.subscription import (
    LifecycleEvent,
    LifecycleOutcome,
    LifecycleResult,
    Subscription,
)
from tafawoq.infrastructure.exceptions import UnknownSubscriptionError


logger = logging.getLogger(__name__)
ops_logger = logging.getLogger("tafawoq.ops")


class LifecycleEventConsumer:
    """Folds lifecycle events into authoritative subscription records."""

    def __init__(
        self,
        subscriptions: SubscriptionStore,
        processed_events: ProcessedEventStore,
        analytics: AnalyticsRecorder,
    ):
        self._subscriptions = subscriptions
        self._processed = processed_events
        self._analytics = analytics

    async def apply_lifecycle_event(self, event: LifecycleEvent) -> LifecycleResult:
        """
        Apply one lifecycle event.

        Args:
            event: Verified, parsed lifecycle event

        Returns:
            LifecycleResult describing what happened

        Raises:
            UnknownSubscriptionError: no local record matches the event
        """
        if await self._processed.is_processed(event.event_id):
            logger.info(f"Event {event.event_id} already processed, skipping")
            return LifecycleResult(outcome=LifecycleOutcome.DUPLICATE, event_id=event.event_id)

        record = await self._resolve(event)

        if is_stale(record, event):
            logger.info(
                f"Discarding stale event {event.event_id} ({event.event_type}) "
                f"at {event.occurred_at.isoformat()}; record watermark "
                f"{record.last_event_at.isoformat()}"
            )
            await self._processed.mark_processed(event.event_id, event.event_type)
            return LifecycleResult(
                outcome=LifecycleOutcome.STALE,
                event_id=event.event_id,
                subscription=record,
            )

        updated = apply_transition(record, event)
        saved = await self._subscriptions.save_transition(updated, event.occurred_at)

        if not saved:
            # A newer event landed between our read and our write
            logger.info(f"Event {event.event_id} lost the freshness race, discarding")
            await self._processed.mark_processed(event.event_id, event.event_type)
            return LifecycleResult(
                outcome=LifecycleOutcome.STALE,
                event_id=event.event_id,
                subscription=record,
            )

        activated = not record.has_premium_access and updated.has_premium_access
        if activated:
            await self._on_activation(updated)

        await self._processed.mark_processed(event.event_id, event.event_type)
        logger.info(
            f"Applied {event.event_type} ({event.event_id}) to user {updated.user_id}: "
            f"tier={updated.tier.value} status={updated.status.value}"
        )
        return LifecycleResult(
            outcome=LifecycleOutcome.APPLIED,
            event_id=event.event_id,
            subscription=updated,
            activated=activated,
        )

    async def _resolve(self, event: LifecycleEvent) -> Subscription:
        record = None
        if event.customer_id:
            record = await self._subscriptions.get_by_stripe_customer_id(event.customer_id)
        if record is None and event.subscription_id:
            record = await self._subscriptions.get_by_stripe_subscription_id(event.subscription_id)

        if record is None:
            error = UnknownSubscriptionError(
                customer_id=event.customer_id,
                subscription_id=event.subscription_id,
                event_id=event.event_id,
            )
            ops_logger.error(
                f"[INTEGRITY] {error.message}: event={event.event_id} type={event.event_type} "
                f"customer={event.customer_id} subscription={event.subscription_id}"
            )
            raise error

        return record

    async def _on_activation(self, subscription: Subscription) -> None:
        """First entry into premium: make sure the analytics row exists."""
        try:
            await self._analytics.ensure_user_analytics(subscription.user_id)
        except Exception as e:
            logger.warning(
                f"Could not ensure analytics for user {subscription.user_id}: {e}"
            )
