"""
Stripe Webhook Handler

Receives Stripe subscription lifecycle events and hands them to the
lifecycle consumer, which provides idempotency (processed-events table)
and ordering (freshness watermark).

Handled events:
- customer.subscription.created: activate premium (or record incomplete)
- customer.subscription.updated: sync status, period and cancellation
- customer.subscription.deleted: downgrade to free
- invoice.payment_failed: mark past_due

Once the signature verifies the endpoint always answers 200; processing
failures are logged for reconciliation instead of triggering retries.
"""

import logging

from fastapi import APIRouter, HTTPException, Request, status

from tafawoq.api.dependencies import ServicesDep
from tafawoq.infrastructure.exceptions import IntegrityError, TafawoqError
from tafawoq.infrastructure.payments.events import parse_lifecycle_event
from tafawoq.infrastructure.payments.stripe_service import StripeServiceError


logger = logging.getLogger(__name__)
ops_logger = logging.getLogger("tafawoq.ops")

router = APIRouter()


@router.post("/webhooks/stripe")
async def stripe_webhook(request: Request, services: ServicesDep):
    """
    Handle Stripe webhook events.

    Verifies the signature before anything else; an unverified request
    never reaches the store.
    """
    payload = await request.body()
    signature = request.headers.get("stripe-signature")

    if not signature:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing Stripe signature"
        )

    try:
        event = services.payments.verify_webhook_signature(payload, signature)
    except StripeServiceError as e:
        logger.error(f"Webhook signature verification failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid signature"
        )

    event_id = event.get("id")
    event_type = event.get("type")

    try:
        lifecycle_event = parse_lifecycle_event(event)
    except ValueError as e:
        ops_logger.error(f"[INTEGRITY] Malformed webhook {event_type} ({event_id}): {e}")
        return {"status": "error", "message": str(e)}

    if lifecycle_event is None:
        return {"status": "ignored"}

    logger.info(f"Processing webhook event: {event_type} ({event_id})")

    try:
        result = await services.lifecycle.apply_lifecycle_event(lifecycle_event)
        return {"status": result.outcome.value}

    except IntegrityError as e:
        # Already reported on the ops channel by the consumer
        return {"status": "error", "message": e.message}
    except TafawoqError as e:
        logger.error(f"Error processing webhook {event_type} ({event_id}): {e.message}")
        return {"status": "error", "message": e.message}
    except Exception as e:
        logger.exception(f"Unexpected error processing webhook {event_type} ({event_id}): {e}")
        return {"status": "error", "message": "Internal error"}
