"""Internal webhook event variants and the Stripe → variant mapping.

Handlers never touch raw Stripe objects: ``parse_event`` validates the
loosely typed payload once and returns one of the frozen dataclasses below.
A known event type whose object lacks a required field raises ``ValueError``.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

SUBSCRIPTION_CHANGED = ("customer.subscription.created", "customer.subscription.updated")
SUBSCRIPTION_DELETED = "customer.subscription.deleted"
CHECKOUT_COMPLETED = "checkout.session.completed"
PAYMENT_INTENT_STATUSES = {
    "payment_intent.succeeded": "succeeded",
    "payment_intent.processing": "processing",
    "payment_intent.payment_failed": "failed",
}


@dataclass(frozen=True)
class SubscriptionChanged:
    event_id: str
    event_type: str
    subscription_id: str
    customer_id: str | None
    status: str
    admin_id: str | None
    current_period_end: datetime | None


@dataclass(frozen=True)
class SubscriptionDeleted:
    event_id: str
    event_type: str
    subscription_id: str
    admin_id: str | None


@dataclass(frozen=True)
class PaymentIntentOutcome:
    event_id: str
    event_type: str
    payment_intent_id: str
    status: str  # succeeded, processing, failed


@dataclass(frozen=True)
class CheckoutCompleted:
    event_id: str
    event_type: str
    session_id: str
    mode: str | None
    context: str | None
    subscription_id: str | None
    customer_id: str | None
    admin_id: str | None
    supplier_id: str | None
    payment_status: str | None


@dataclass(frozen=True)
class UnhandledEvent:
    event_id: str
    event_type: str


WebhookEvent = (
    SubscriptionChanged | SubscriptionDeleted | PaymentIntentOutcome | CheckoutCompleted | UnhandledEvent
)


def _get(obj: Any, key: str, default: Any = None) -> Any:
    """Read a field from a StripeObject (a dict) or an attribute-style object."""
    if obj is None:
        return default
    if isinstance(obj, dict):
        return obj.get(key, default)
    return getattr(obj, key, default)


def _require(obj: Any, key: str, event_type: str) -> Any:
    value = _get(obj, key)
    if value in (None, ""):
        raise ValueError(f"{event_type} payload is missing '{key}'")
    return value


def _ref_id(value: Any) -> str | None:
    """Stripe references are either an id string or an expanded object."""
    if value is None or isinstance(value, str):
        return value or None
    return _get(value, "id")


def _metadata_value(obj: Any, key: str) -> str | None:
    metadata = _get(obj, "metadata") or {}
    return _get(metadata, key) or None


def ts_to_naive(ts: int | None) -> datetime | None:
    """Convert a Stripe Unix timestamp to a naive UTC datetime."""
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).replace(tzinfo=None)


def subscription_period_end(stripe_sub: Any) -> datetime | None:
    """Period end lives on the subscription in older API versions, on items in newer ones."""
    ts = _get(stripe_sub, "current_period_end")
    if ts is None:
        items = _get(stripe_sub, "items")
        data = _get(items, "data") or []
        if data:
            ts = _get(data[0], "current_period_end")
    return ts_to_naive(ts)


def subscription_changed_from_stripe(
    stripe_sub: Any, event_id: str, event_type: str
) -> SubscriptionChanged:
    """Map a Stripe Subscription object (from an event or a retrieve call)."""
    return SubscriptionChanged(
        event_id=event_id,
        event_type=event_type,
        subscription_id=_require(stripe_sub, "id", event_type),
        customer_id=_ref_id(_get(stripe_sub, "customer")),
        status=_require(stripe_sub, "status", event_type),
        admin_id=_metadata_value(stripe_sub, "admin_id"),
        current_period_end=subscription_period_end(stripe_sub),
    )


def parse_event(event: Any) -> WebhookEvent:
    """Validate a verified Stripe event and convert it to an internal variant."""
    event_id = _require(event, "id", "event")
    event_type = _require(event, "type", "event")

    if event_type in SUBSCRIPTION_CHANGED or event_type in PAYMENT_INTENT_STATUSES or event_type in (
        SUBSCRIPTION_DELETED,
        CHECKOUT_COMPLETED,
    ):
        obj = _get(_get(event, "data"), "object")
        if obj is None:
            raise ValueError(f"{event_type} event has no data.object")
    else:
        return UnhandledEvent(event_id=event_id, event_type=event_type)

    if event_type in SUBSCRIPTION_CHANGED:
        return subscription_changed_from_stripe(obj, event_id, event_type)

    if event_type == SUBSCRIPTION_DELETED:
        return SubscriptionDeleted(
            event_id=event_id,
            event_type=event_type,
            subscription_id=_require(obj, "id", event_type),
            admin_id=_metadata_value(obj, "admin_id"),
        )

    if event_type in PAYMENT_INTENT_STATUSES:
        return PaymentIntentOutcome(
            event_id=event_id,
            event_type=event_type,
            payment_intent_id=_require(obj, "id", event_type),
            status=PAYMENT_INTENT_STATUSES[event_type],
        )

    return CheckoutCompleted(
        event_id=event_id,
        event_type=event_type,
        session_id=_require(obj, "id", event_type),
        mode=_get(obj, "mode"),
        context=_metadata_value(obj, "context"),
        subscription_id=_ref_id(_get(obj, "subscription")),
        customer_id=_ref_id(_get(obj, "customer")),
        admin_id=_metadata_value(obj, "admin_id"),
        supplier_id=_metadata_value(obj, "supplier_id"),
        payment_status=_get(obj, "payment_status"),
    )
