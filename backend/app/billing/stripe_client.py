"""Async Stripe API wrapper for CondoChiaro billing."""

import logging
from typing import Any

import stripe
from stripe import StripeClient

from app.billing.exceptions import ConfigurationError, SignatureError
from app.billing.fees import FeeSchedule, SubscriptionPricing, to_cents
from app.config import settings

logger = logging.getLogger(__name__)

SERVICE_FEE_NOTICE = "Commissione di servizio applicata alle transazioni elettroniche"


def get_stripe_client() -> StripeClient:
    """Create a StripeClient with async HTTP support and bounded timeouts."""
    if not settings.stripe_configured:
        raise ConfigurationError("Stripe is not configured", status_code=503)
    return StripeClient(
        settings.stripe_secret_key,
        http_client=stripe.HTTPXClient(timeout=settings.stripe_timeout_seconds),
        max_network_retries=settings.stripe_max_network_retries,
    )


def to_metadata(values: dict[str, Any]) -> dict[str, str]:
    """Stripe metadata values must be strings; ``None`` becomes an empty string."""
    return {key: "" if value is None else str(value) for key, value in values.items()}


def _request_options(idempotency_key: str | None) -> dict[str, str]:
    return {"idempotency_key": idempotency_key} if idempotency_key else {}


async def create_customer(email: str, name: str | None, metadata: dict[str, Any]) -> stripe.Customer:
    """Create a Stripe customer for an admin or a supplier."""
    client = get_stripe_client()
    logger.info("Creating Stripe customer for %s", email)
    customer = await client.v1.customers.create_async(
        params={
            "email": email,
            "name": name or email,
            "metadata": to_metadata(metadata),
        }
    )
    logger.info("Created Stripe customer %s for %s", customer.id, email)
    return customer


def build_subscription_line_items(pricing: SubscriptionPricing, schedule: FeeSchedule) -> list[dict]:
    """Base fee line plus one per-condominium line with quantity = condo count.

    Configured price ids are used when present, otherwise inline ``price_data``.
    """
    base_item: dict[str, Any] = {"quantity": 1}
    if settings.stripe_base_price_id:
        base_item["price"] = settings.stripe_base_price_id
    else:
        base_item["price_data"] = {
            "currency": schedule.currency,
            "product_data": {"name": "CondoChiaro Base"},
            "recurring": {"interval": "month"},
            "unit_amount": to_cents(pricing.base),
        }
    items = [base_item]

    if pricing.condo_count > 0:
        per_unit: dict[str, Any] = {"quantity": pricing.condo_count}
        if settings.stripe_condominium_price_id:
            per_unit["price"] = settings.stripe_condominium_price_id
        else:
            per_unit["price_data"] = {
                "currency": schedule.currency,
                "product_data": {"name": "Unità condominiali aggiuntive"},
                "recurring": {"interval": "month"},
                "unit_amount": to_cents(pricing.per_condo),
            }
        items.append(per_unit)
    return items


async def create_subscription_checkout_session(
    customer_id: str,
    admin_id: str,
    pricing: SubscriptionPricing,
    schedule: FeeSchedule,
    success_url: str,
    cancel_url: str,
) -> stripe.checkout.Session:
    """Create a Checkout Session for the admin's condominium-based subscription."""
    client = get_stripe_client()
    logger.info(
        "Creating subscription checkout for admin %s (customer %s, %d condominiums)",
        admin_id,
        customer_id,
        pricing.condo_count,
    )
    return await client.v1.checkout.sessions.create_async(
        params={
            "mode": "subscription",
            "customer": customer_id,
            "success_url": success_url,
            "cancel_url": cancel_url,
            "allow_promotion_codes": True,
            "line_items": build_subscription_line_items(pricing, schedule),
            "subscription_data": {
                "metadata": to_metadata(
                    {
                        "admin_id": admin_id,
                        "condo_count": pricing.condo_count,
                        "base_fee": pricing.base,
                        "per_unit_fee": pricing.per_condo,
                        "total_price": pricing.total,
                    }
                ),
            },
            "metadata": {"context": "admin_subscription", "admin_id": admin_id},
        }
    )


async def create_supplier_checkout_session(
    customer_id: str,
    supplier_id: str,
    schedule: FeeSchedule,
    success_url: str,
    cancel_url: str,
) -> stripe.checkout.Session:
    """Create a Checkout Session upgrading a supplier to the Pro plan."""
    client = get_stripe_client()
    if settings.stripe_supplier_pro_price_id:
        line_item: dict[str, Any] = {"price": settings.stripe_supplier_pro_price_id, "quantity": 1}
    else:
        line_item = {
            "quantity": 1,
            "price_data": {
                "currency": schedule.currency,
                "product_data": {"name": "CondoChiaro Supplier Pro"},
                "recurring": {"interval": "month"},
                "unit_amount": to_cents(schedule.supplier_pro_price),
            },
        }
    logger.info("Creating supplier Pro checkout for supplier %s", supplier_id)
    return await client.v1.checkout.sessions.create_async(
        params={
            "mode": "subscription",
            "customer": customer_id,
            "success_url": success_url,
            "cancel_url": cancel_url,
            "allow_promotion_codes": True,
            "line_items": [line_item],
            "subscription_data": {
                "metadata": to_metadata(
                    {"supplier_id": supplier_id, "plan": "pro", "amount": schedule.supplier_pro_price}
                ),
            },
            "metadata": {"context": "supplier_plan", "supplier_id": supplier_id},
        }
    )


async def create_payment_intent(
    *,
    amount_cents: int,
    currency: str,
    destination_account_id: str,
    application_fee_cents: int,
    metadata: dict[str, Any],
    customer_id: str | None = None,
    description: str | None = None,
    idempotency_key: str | None = None,
) -> stripe.PaymentIntent:
    """Create a destination-charge PaymentIntent declaring the platform fee."""
    client = get_stripe_client()
    params: dict[str, Any] = {
        "amount": amount_cents,
        "currency": currency,
        "description": description or SERVICE_FEE_NOTICE,
        "application_fee_amount": application_fee_cents,
        "transfer_data": {"destination": destination_account_id},
        "automatic_payment_methods": {"enabled": True},
        "metadata": to_metadata({**metadata, "service_fee_notice": SERVICE_FEE_NOTICE}),
    }
    if customer_id:
        params["customer"] = customer_id
    logger.info(
        "Creating payment intent: %d %s to %s (application fee %d)",
        amount_cents,
        currency,
        destination_account_id,
        application_fee_cents,
    )
    return await client.v1.payment_intents.create_async(
        params=params, options=_request_options(idempotency_key)
    )


async def create_payment_checkout_session(
    *,
    amount_cents: int,
    currency: str,
    destination_account_id: str,
    application_fee_cents: int,
    product_name: str,
    success_url: str,
    cancel_url: str,
    metadata: dict[str, Any],
    idempotency_key: str | None = None,
) -> stripe.checkout.Session:
    """Create a one-off payment Checkout Session with a destination charge."""
    client = get_stripe_client()
    logger.info(
        "Creating payment checkout: %d %s to %s (application fee %d)",
        amount_cents,
        currency,
        destination_account_id,
        application_fee_cents,
    )
    return await client.v1.checkout.sessions.create_async(
        params={
            "mode": "payment",
            "payment_intent_data": {
                "application_fee_amount": application_fee_cents,
                "transfer_data": {"destination": destination_account_id},
            },
            "line_items": [
                {
                    "quantity": 1,
                    "price_data": {
                        "currency": currency,
                        "product_data": {"name": product_name},
                        "unit_amount": amount_cents,
                    },
                }
            ],
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": to_metadata({**metadata, "context": "marketplace_payment"}),
        },
        options=_request_options(idempotency_key),
    )


async def get_subscription(subscription_id: str) -> stripe.Subscription:
    """Retrieve a Stripe subscription by ID."""
    client = get_stripe_client()
    return await client.v1.subscriptions.retrieve_async(subscription_id)


def _find_per_unit_item(stripe_sub: stripe.Subscription):
    """Locate the per-condominium item: tagged by metadata, else the second item."""
    sub_items = stripe_sub["items"]
    data = list(sub_items.data) if sub_items and sub_items.data else []
    for item in data:
        metadata = getattr(item, "metadata", None) or {}
        if metadata.get("tier") == "per_unit":
            return item
    if settings.stripe_condominium_price_id:
        for item in data:
            if item.price.id == settings.stripe_condominium_price_id:
                return item
    return data[1] if len(data) > 1 else None


async def update_subscription_quantity(
    subscription_id: str, pricing: SubscriptionPricing
) -> stripe.Subscription:
    """Set the per-condominium quantity to the absolute condo count."""
    client = get_stripe_client()
    stripe_sub = await client.v1.subscriptions.retrieve_async(subscription_id)
    params: dict[str, Any] = {
        "metadata": to_metadata(
            {
                **dict(stripe_sub.metadata or {}),
                "condo_count": pricing.condo_count,
                "total_price": pricing.total,
            }
        ),
    }
    per_unit = _find_per_unit_item(stripe_sub)
    if per_unit is not None:
        params["items"] = [{"id": per_unit.id, "quantity": pricing.condo_count}]
    elif pricing.condo_count > 0 and settings.stripe_condominium_price_id:
        params["items"] = [
            {
                "price": settings.stripe_condominium_price_id,
                "quantity": pricing.condo_count,
                "metadata": {"tier": "per_unit"},
            }
        ]
    else:
        logger.warning(
            "Subscription %s has no per-condominium item; only metadata updated",
            subscription_id,
        )

    logger.info(
        "Setting subscription %s condominium quantity to %d",
        subscription_id,
        pricing.condo_count,
    )
    return await client.v1.subscriptions.update_async(subscription_id, params=params)


def construct_webhook_event(payload: bytes, sig_header: str | None) -> stripe.Event:
    """Verify and construct a Stripe webhook event (synchronous).

    A missing header, a bad signature and an unparsable payload all raise
    ``SignatureError``; nothing downstream runs for such a request.
    """
    if not settings.stripe_webhook_secret:
        raise ConfigurationError("Webhook secret not configured", status_code=503)
    if not sig_header:
        raise SignatureError("Missing stripe-signature header")
    try:
        return stripe.Webhook.construct_event(payload, sig_header, settings.stripe_webhook_secret)
    except stripe.SignatureVerificationError as e:
        raise SignatureError("Invalid signature") from e
    except ValueError as e:
        raise SignatureError("Invalid payload") from e
