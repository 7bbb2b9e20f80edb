"""Stripe webhook processing — idempotency ledger and per-event handlers."""

import enum
import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.billing.events import (
    CheckoutCompleted,
    PaymentIntentOutcome,
    SubscriptionChanged,
    SubscriptionDeleted,
    UnhandledEvent,
    WebhookEvent,
    subscription_changed_from_stripe,
    subscription_period_end,
)
from app.billing.fees import FeeSchedule
from app.billing.stripe_client import get_subscription
from app.models.stripe_event import StripeEvent
from app.services.payment_service import update_platform_payment_status
from app.services.subscription_service import (
    apply_stripe_subscription_state,
    as_uuid,
    find_admin_for_stripe_subscription,
    mark_subscription_canceled,
    update_supplier_plan,
)

logger = logging.getLogger(__name__)


class WebhookOutcome(str, enum.Enum):
    PROCESSED = "processed"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"


async def handle_subscription_changed(
    db: AsyncSession, event: SubscriptionChanged, schedule: FeeSchedule
) -> None:
    """customer.subscription.created|updated — mirror status, ids and pricing."""
    admin = await find_admin_for_stripe_subscription(db, event.subscription_id, event.admin_id)
    if admin is None:
        logger.warning(
            "No admin found for Stripe subscription %s (%s)",
            event.subscription_id,
            event.event_type,
        )
        return

    await apply_stripe_subscription_state(
        db,
        admin,
        schedule,
        stripe_subscription_id=event.subscription_id,
        stripe_customer_id=event.customer_id,
        status=event.status,
        current_period_end=event.current_period_end,
    )


async def handle_subscription_deleted(db: AsyncSession, event: SubscriptionDeleted) -> None:
    """customer.subscription.deleted — admin and subscription become canceled."""
    admin = await find_admin_for_stripe_subscription(db, event.subscription_id, event.admin_id)
    if admin is None:
        logger.warning(
            "No admin found for Stripe subscription %s (delete event)", event.subscription_id
        )
        return
    await mark_subscription_canceled(db, admin)


async def handle_payment_intent_outcome(db: AsyncSession, event: PaymentIntentOutcome) -> None:
    """payment_intent.* — overwrite the matching platform payment status."""
    await update_platform_payment_status(db, event.payment_intent_id, event.status)


async def handle_checkout_completed(
    db: AsyncSession, event: CheckoutCompleted, schedule: FeeSchedule
) -> None:
    """checkout.session.completed — dispatch on the session's metadata context."""
    if event.context == "supplier_plan":
        supplier_id = as_uuid(event.supplier_id)
        if supplier_id is None:
            logger.warning("Supplier checkout %s has no supplier_id", event.session_id)
            return
        renewal = None
        if event.subscription_id:
            renewal = subscription_period_end(await get_subscription(event.subscription_id))
        await update_supplier_plan(
            db,
            supplier_id,
            "pro",
            status="active",
            stripe_subscription_id=event.subscription_id,
            stripe_customer_id=event.customer_id,
            renewal_date=renewal,
        )
        return

    if event.mode == "subscription" or event.context == "admin_subscription":
        if not event.subscription_id:
            logger.info("Checkout session %s has no subscription, skipping", event.session_id)
            return
        stripe_sub = await get_subscription(event.subscription_id)
        changed = subscription_changed_from_stripe(stripe_sub, event.event_id, event.event_type)
        admin = await find_admin_for_stripe_subscription(
            db, changed.subscription_id, event.admin_id or changed.admin_id, adopt=True
        )
        if admin is None:
            logger.warning(
                "No admin found for checkout %s (subscription %s)",
                event.session_id,
                event.subscription_id,
            )
            return
        await apply_stripe_subscription_state(
            db,
            admin,
            schedule,
            stripe_subscription_id=changed.subscription_id,
            stripe_customer_id=changed.customer_id or event.customer_id,
            status=changed.status,
            current_period_end=changed.current_period_end,
        )
        return

    if event.mode == "payment" and event.payment_status == "paid":
        await update_platform_payment_status(db, event.session_id, "succeeded")
        return

    logger.info(
        "Checkout session %s (mode=%s, payment_status=%s) needs no update",
        event.session_id,
        event.mode,
        event.payment_status,
    )


async def dispatch_event(db: AsyncSession, event: WebhookEvent, schedule: FeeSchedule) -> bool:
    """Run the handler for ``event``; returns False for unhandled types."""
    match event:
        case SubscriptionChanged():
            await handle_subscription_changed(db, event, schedule)
        case SubscriptionDeleted():
            await handle_subscription_deleted(db, event)
        case PaymentIntentOutcome():
            await handle_payment_intent_outcome(db, event)
        case CheckoutCompleted():
            await handle_checkout_completed(db, event, schedule)
        case UnhandledEvent():
            return False
    return True


class _AlreadyRecorded(Exception):
    pass


async def is_processed(db: AsyncSession, event_id: str) -> bool:
    result = await db.execute(select(StripeEvent.id).where(StripeEvent.event_id == event_id))
    return result.first() is not None


async def _record_event(db: AsyncSession, event: WebhookEvent) -> None:
    try:
        async with db.begin_nested():
            db.add(StripeEvent(event_id=event.event_id, event_type=event.event_type))
            await db.flush()
    except IntegrityError as e:
        raise _AlreadyRecorded(event.event_id) from e


async def process_webhook_event(
    db: AsyncSession, event: WebhookEvent, schedule: FeeSchedule
) -> WebhookOutcome:
    """Apply a verified event at most once.

    The handler and the ledger insert share one SAVEPOINT: if the handler
    raises, neither its writes nor the ledger row survive and the exception
    propagates so Stripe retries. A unique violation on the ledger insert
    means a concurrent delivery already applied the event, so this
    delivery's writes are discarded.
    """
    if await is_processed(db, event.event_id):
        logger.info("Duplicate webhook event %s (%s)", event.event_id, event.event_type)
        return WebhookOutcome.DUPLICATE

    try:
        async with db.begin_nested():
            handled = await dispatch_event(db, event, schedule)
            await _record_event(db, event)
    except _AlreadyRecorded:
        logger.info("Webhook event %s recorded by a concurrent delivery", event.event_id)
        return WebhookOutcome.DUPLICATE

    if not handled:
        logger.debug("Unhandled webhook event type: %s", event.event_type)
        return WebhookOutcome.IGNORED
    logger.info("Applied webhook event %s (%s)", event.event_id, event.event_type)
    return WebhookOutcome.PROCESSED
