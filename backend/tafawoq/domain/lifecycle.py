"""
Subscription Lifecycle Transitions

Pure functions that fold a processor lifecycle event into a subscription
record. No I/O happens here; the webhook consumer handles idempotency,
persistence and side effects around these functions.

    free --created(active|trialing)--> premium
    premium --updated(canceled, not at period end)--> free
    premium --updated(cancel_at_period_end)--> premium (pending downgrade)
    premium --deleted--> free / canceled
    premium without access --updated(active|trialing, new subscription)--> premium on the new one
    any --payment_failed--> past_due (tier unchanged)
"""

import logging
from typing import Any, Optional

from tafawoq.domain.subscription import (
    LifecycleEvent,
    LifecycleEventKind,
    Subscription,
    SubscriptionStatus,
    SubscriptionTier,
)

logger = logging.getLogger(__name__)


# Processor statuses with no local counterpart
_STATUS_ALIASES = {
    "unpaid": SubscriptionStatus.PAST_DUE,
    "incomplete_expired": SubscriptionStatus.CANCELED,
}

# Statuses under which a processor subscription keeps the premium tier
_PREMIUM_STATUSES = frozenset({
    SubscriptionStatus.ACTIVE,
    SubscriptionStatus.TRIALING,
    SubscriptionStatus.PAST_DUE,
})

# Statuses under which a new processor subscription restores premium access
_ACCESS_STATUSES = frozenset({
    SubscriptionStatus.ACTIVE,
    SubscriptionStatus.TRIALING,
})


def map_processor_status(raw: Optional[str]) -> Optional[SubscriptionStatus]:
    """Map a raw processor status to a local status, None if unknown."""
    if not raw:
        return None
    try:
        return SubscriptionStatus(raw)
    except ValueError:
        status = _STATUS_ALIASES.get(raw)
        if status is None:
            logger.warning(f"Unmapped processor subscription status: {raw}")
        return status


def is_stale(record: Subscription, event: LifecycleEvent) -> bool:
    """An event older than the newest applied one must not be applied."""
    return record.last_event_at is not None and event.occurred_at < record.last_event_at


def targets_other_subscription(record: Subscription, event: LifecycleEvent) -> bool:
    """True when the event concerns a subscription the record no longer tracks."""
    return bool(
        record.stripe_subscription_id
        and event.subscription_id
        and event.subscription_id != record.stripe_subscription_id
    )


def replaces_lapsed_subscription(record: Subscription, event: LifecycleEvent) -> bool:
    """
    True when an update for a new subscription should take over the record.

    A user without premium access (past_due, canceled pending deletion)
    can pay for a fresh subscription; once it turns active or trialing it
    becomes the tracked one.
    """
    return (
        event.kind == LifecycleEventKind.UPDATED
        and targets_other_subscription(record, event)
        and not record.has_premium_access
        and map_processor_status(event.status) in _ACCESS_STATUSES
    )


def apply_transition(record: Subscription, event: LifecycleEvent) -> Subscription:
    """
    Compute the record that results from applying an event.

    Args:
        record: Current subscription record
        event: Verified lifecycle event (not stale)

    Returns:
        New subscription record; the input is left untouched
    """
    if event.kind == LifecycleEventKind.CREATED:
        changes = _on_created(record, event)
    elif targets_other_subscription(record, event) and not replaces_lapsed_subscription(record, event):
        logger.info(
            f"Event {event.event_id} targets subscription {event.subscription_id}, "
            f"record tracks {record.stripe_subscription_id}; leaving state unchanged"
        )
        changes = {}
    elif event.kind == LifecycleEventKind.UPDATED:
        changes = _on_updated(record, event)
    elif event.kind == LifecycleEventKind.DELETED:
        changes = _downgrade(event)
    else:
        changes = {"status": SubscriptionStatus.PAST_DUE}

    watermark = event.occurred_at
    if record.last_event_at is not None and record.last_event_at > watermark:
        watermark = record.last_event_at
    changes["last_event_at"] = watermark

    # Re-validating enforces the tier invariants on the result
    return Subscription.model_validate({**record.model_dump(), **changes})


# =============================================================================
# Per-event helpers
# =============================================================================

def _premium_fields(record: Subscription, event: LifecycleEvent, status: SubscriptionStatus) -> dict[str, Any]:
    return {
        "tier": SubscriptionTier.PREMIUM,
        "status": status,
        "stripe_customer_id": event.customer_id or record.stripe_customer_id,
        "stripe_subscription_id": event.subscription_id or record.stripe_subscription_id,
        "trial_end_at": event.trial_end_at,
        "current_period_start": event.current_period_start,
        "current_period_end": event.current_period_end,
        "cancel_at_period_end": event.cancel_at_period_end,
        "canceled_at": event.canceled_at,
    }


def _downgrade(event: LifecycleEvent) -> dict[str, Any]:
    return {
        "tier": SubscriptionTier.FREE,
        "status": SubscriptionStatus.CANCELED,
        "stripe_subscription_id": None,
        "trial_end_at": None,
        "current_period_start": None,
        "current_period_end": None,
        "cancel_at_period_end": False,
        "canceled_at": event.canceled_at or event.occurred_at,
    }


def _on_created(record: Subscription, event: LifecycleEvent) -> dict[str, Any]:
    status = map_processor_status(event.status)

    if status in _PREMIUM_STATUSES:
        return _premium_fields(record, event, status)

    if status == SubscriptionStatus.CANCELED:
        if record.tier == SubscriptionTier.PREMIUM and not targets_other_subscription(record, event):
            return _downgrade(event)
        return {"status": SubscriptionStatus.CANCELED} if record.tier == SubscriptionTier.FREE else {}

    if status == SubscriptionStatus.INCOMPLETE and record.tier == SubscriptionTier.FREE:
        # Payment not confirmed yet; a later update promotes the record
        changes: dict[str, Any] = {"status": SubscriptionStatus.INCOMPLETE}
        if event.customer_id and not record.stripe_customer_id:
            changes["stripe_customer_id"] = event.customer_id
        return changes

    return {}


def _on_updated(record: Subscription, event: LifecycleEvent) -> dict[str, Any]:
    status = map_processor_status(event.status)

    if status is None:
        return {}

    if status == SubscriptionStatus.CANCELED:
        if not event.cancel_at_period_end:
            return _downgrade(event)
        return {
            "status": SubscriptionStatus.CANCELED,
            "cancel_at_period_end": True,
            "canceled_at": event.canceled_at or record.canceled_at,
        }

    if status in _PREMIUM_STATUSES:
        return _premium_fields(record, event, status)

    # incomplete: record the status, keep the tier
    return {"status": status}
