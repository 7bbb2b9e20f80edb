"""Stripe webhook endpoint — receives and processes Stripe events."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import billing_http_error, get_db, get_fee_schedule
from app.billing.events import parse_event
from app.billing.exceptions import BillingError
from app.billing.fees import FeeSchedule
from app.billing.stripe_client import construct_webhook_event
from app.billing.webhooks import process_webhook_event
from app.schemas.billing import WebhookResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/webhooks", tags=["webhooks"])


@router.post("/stripe", response_model=WebhookResponse)
async def stripe_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
    schedule: FeeSchedule = Depends(get_fee_schedule),
) -> WebhookResponse:
    """Receive and process Stripe webhook events.

    400 for a missing or invalid signature or a malformed event, 200 for
    processed, duplicate and ignored events, 500 when a handler fails so
    Stripe retries the delivery.
    """
    # Raw bytes are required for signature verification
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")

    try:
        event = construct_webhook_event(payload, sig_header)
    except BillingError as e:
        logger.warning("Webhook rejected: %s", e.message)
        raise billing_http_error(e) from e

    try:
        parsed = parse_event(event)
    except ValueError as e:
        logger.warning("Malformed webhook event: %s", e)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": str(e), "code": "VALIDATION_ERROR"},
        ) from e

    logger.info("Processing webhook event: %s (id=%s)", parsed.event_type, parsed.event_id)

    try:
        outcome = await process_webhook_event(db, parsed, schedule)
    except Exception as e:
        logger.exception("Error processing webhook event %s", parsed.event_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"message": "Webhook processing failed", "code": "WEBHOOK_FAILED"},
        ) from e

    return WebhookResponse(status=outcome.value)
