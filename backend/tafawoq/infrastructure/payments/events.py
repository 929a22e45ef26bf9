"""
Stripe Event Parsing

Turns a verified Stripe event payload into a LifecycleEvent. Handles the
payload shapes of both older API versions (period bounds on the
subscription, ``invoice.subscription``) and newer ones (period bounds on
the subscription item, ``invoice.parent.subscription_details``).
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from tafawoq.domain.subscription import LifecycleEvent, LifecycleEventKind


logger = logging.getLogger(__name__)


STRIPE_EVENT_KINDS = {
    "customer.subscription.created": LifecycleEventKind.CREATED,
    "customer.subscription.updated": LifecycleEventKind.UPDATED,
    "customer.subscription.deleted": LifecycleEventKind.DELETED,
    "invoice.payment_failed": LifecycleEventKind.PAYMENT_FAILED,
}


def _timestamp(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


def _object_id(value: Any) -> Optional[str]:
    """Stripe references are either an id string or an expanded object."""
    if value is None:
        return None
    if isinstance(value, dict):
        return value.get("id")
    return str(value)


def _first_item(subscription: dict) -> dict:
    items = (subscription.get("items") or {}).get("data") or []
    return items[0] if items else {}


def _invoice_subscription_id(invoice: dict) -> Optional[str]:
    if invoice.get("subscription"):
        return _object_id(invoice["subscription"])
    details = ((invoice.get("parent") or {}).get("subscription_details")) or {}
    return _object_id(details.get("subscription"))


def parse_lifecycle_event(event: dict) -> Optional[LifecycleEvent]:
    """
    Parse a Stripe event into a LifecycleEvent.

    Args:
        event: Verified event payload

    Returns:
        LifecycleEvent, or None for event types the consumer ignores

    Raises:
        ValueError: malformed payload for a handled event type
    """
    event_type = event.get("type")
    kind = STRIPE_EVENT_KINDS.get(event_type)
    if kind is None:
        logger.debug(f"Unhandled event type: {event_type}")
        return None

    event_id = event.get("id")
    created = event.get("created")
    obj = (event.get("data") or {}).get("object")
    if not event_id or created is None or not isinstance(obj, dict):
        raise ValueError(f"Malformed {event_type} event payload")

    base = {
        "event_id": event_id,
        "kind": kind,
        "event_type": event_type,
        "occurred_at": _timestamp(created),
        "customer_id": _object_id(obj.get("customer")),
    }

    if kind == LifecycleEventKind.PAYMENT_FAILED:
        return LifecycleEvent(**base, subscription_id=_invoice_subscription_id(obj))

    item = _first_item(obj)
    return LifecycleEvent(
        **base,
        subscription_id=obj.get("id"),
        status=obj.get("status"),
        cancel_at_period_end=bool(obj.get("cancel_at_period_end")),
        canceled_at=_timestamp(obj.get("canceled_at")),
        trial_end_at=_timestamp(obj.get("trial_end")),
        current_period_start=_timestamp(
            obj.get("current_period_start") or item.get("current_period_start")
        ),
        current_period_end=_timestamp(
            obj.get("current_period_end") or item.get("current_period_end")
        ),
    )
