"""Subscription service — admin subscription pricing, Stripe state and supplier plans."""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

import stripe
from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.billing.exceptions import (
    ConfigurationError,
    DependencyError,
    NotFoundError,
    ValidationError,
)
from app.billing.fees import FeeSchedule, SubscriptionPricing, calculate_subscription_total
from app.billing.stripe_client import (
    create_customer,
    create_subscription_checkout_session,
    create_supplier_checkout_session,
    get_subscription,
    update_subscription_quantity,
)
from app.config import settings
from app.models.admin import SUBSCRIPTION_STATUSES, Admin
from app.models.condominium import Condominium
from app.models.subscription import Subscription
from app.models.supplier import Supplier

logger = logging.getLogger(__name__)

_UPSERT_INSERTS = {"postgresql": pg_insert, "sqlite": sqlite_insert}

# Stripe statuses with no local counterpart
STRIPE_STATUS_MAP = {
    "incomplete": "past_due",
    "incomplete_expired": "canceled",
    "paused": "unpaid",
}


@dataclass
class RecalculationResult:
    """Outcome of a recalculation; ``stripe_synced`` is None when no sync was attempted."""

    subscription: Subscription
    pricing: SubscriptionPricing
    stripe_synced: bool | None = None


@dataclass
class SubscriptionCheckReport:
    checked: int = 0
    updated: int = 0
    errors: int = 0


def as_uuid(value: str | uuid.UUID | None) -> uuid.UUID | None:
    if value is None or isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


def normalize_subscription_status(status: str) -> str:
    """Map a Stripe subscription status onto ``SUBSCRIPTION_STATUSES``."""
    if status in SUBSCRIPTION_STATUSES:
        return status
    mapped = STRIPE_STATUS_MAP.get(status)
    if mapped is None:
        logger.warning("Unknown Stripe subscription status %r, treating as past_due", status)
        return "past_due"
    return mapped


async def get_admin(db: AsyncSession, admin_id: uuid.UUID) -> Admin:
    """Load an admin or raise ``NotFoundError``."""
    admin = await db.get(Admin, admin_id)
    if admin is None:
        raise NotFoundError(f"Admin {admin_id} not found")
    return admin


async def get_subscription_for_admin(
    db: AsyncSession, admin_id: uuid.UUID
) -> Subscription | None:
    result = await db.execute(select(Subscription).where(Subscription.admin_id == admin_id))
    return result.scalar_one_or_none()


async def find_admin_for_stripe_subscription(
    db: AsyncSession,
    stripe_subscription_id: str,
    admin_id_hint: str | None = None,
    *,
    adopt: bool = False,
) -> Admin | None:
    """Resolve the admin behind a Stripe subscription (used by webhooks).

    Metadata ``admin_id`` wins, then the admin's stored subscription id,
    then the subscription row's stored id. A hinted admin that already holds
    a different subscription is only returned with ``adopt=True`` (a completed
    checkout); otherwise the event belongs to a replaced subscription and
    None is returned.
    """
    hinted = as_uuid(admin_id_hint)
    if hinted is not None:
        admin = await db.get(Admin, hinted)
        if admin is not None:
            if adopt or admin.stripe_subscription_id in (None, stripe_subscription_id):
                return admin
            logger.warning(
                "Ignoring stale event for subscription %s: admin %s now holds %s",
                stripe_subscription_id,
                admin.id,
                admin.stripe_subscription_id,
            )
            return None

    result = await db.execute(
        select(Admin).where(Admin.stripe_subscription_id == stripe_subscription_id)
    )
    admin = result.scalar_one_or_none()
    if admin is not None:
        return admin

    result = await db.execute(
        select(Admin)
        .join(Subscription, Subscription.admin_id == Admin.id)
        .where(Subscription.stripe_subscription_id == stripe_subscription_id)
    )
    return result.scalar_one_or_none()


async def count_condominiums(db: AsyncSession, admin_id: uuid.UUID) -> int:
    """Exact condominium count; a failing query is a ``DependencyError``, never 0."""
    try:
        result = await db.execute(
            select(func.count()).select_from(Condominium).where(Condominium.admin_id == admin_id)
        )
    except SQLAlchemyError as e:
        raise DependencyError(f"Could not count condominiums for admin {admin_id}") from e
    return result.scalar_one()


async def upsert_subscription(
    db: AsyncSession,
    admin_id: uuid.UUID,
    pricing: SubscriptionPricing,
    *,
    stripe_subscription_id: str | None = None,
    stripe_customer_id: str | None = None,
    status: str | None = None,
) -> Subscription:
    """Insert or update the admin's single subscription row.

    Uses the store's native ``ON CONFLICT (admin_id) DO UPDATE`` so concurrent
    recalculations converge on one row. Stripe ids and status are only
    written when given.
    """
    dialect = db.get_bind().dialect.name
    insert = _UPSERT_INSERTS.get(dialect)
    if insert is None:
        raise ConfigurationError(f"Subscription upsert unsupported on {dialect}", status_code=503)

    values = {
        "base_fee": pricing.base,
        "per_unit_fee": pricing.per_condo,
        "condo_count": pricing.condo_count,
        "total_price": pricing.total,
    }
    optional = {
        key: value
        for key, value in (
            ("stripe_subscription_id", stripe_subscription_id),
            ("stripe_customer_id", stripe_customer_id),
            ("status", status),
        )
        if value is not None
    }
    stmt = insert(Subscription).values(admin_id=admin_id, **values, **optional)
    stmt = stmt.on_conflict_do_update(
        index_elements=["admin_id"],
        set_={**values, **optional, "updated_at": func.now()},
    )

    try:
        await db.execute(stmt)
        result = await db.execute(
            select(Subscription)
            .where(Subscription.admin_id == admin_id)
            .execution_options(populate_existing=True)
        )
    except SQLAlchemyError as e:
        raise DependencyError(f"Could not upsert subscription for admin {admin_id}") from e
    return result.scalar_one()


async def sync_stripe_quantity(subscription_id: str, pricing: SubscriptionPricing) -> bool:
    """Push the condominium quantity to Stripe; failures are logged, not raised."""
    try:
        await update_subscription_quantity(subscription_id, pricing)
    except stripe.StripeError as e:
        logger.warning(
            "Stripe quantity sync failed for subscription %s (condo_count=%d): %s",
            subscription_id,
            pricing.condo_count,
            e,
        )
        return False
    return True


async def retry_stripe_quantity_sync(
    subscription_id: str,
    pricing: SubscriptionPricing,
    attempts: int = 3,
    base_delay: float = 2.0,
) -> bool:
    """Background retry with exponential backoff after a failed inline sync."""
    for attempt in range(1, attempts + 1):
        await asyncio.sleep(base_delay * 2 ** (attempt - 1))
        if await sync_stripe_quantity(subscription_id, pricing):
            logger.info(
                "Stripe quantity sync for %s succeeded on retry %d", subscription_id, attempt
            )
            return True
    logger.error(
        "Giving up Stripe quantity sync for subscription %s after %d retries",
        subscription_id,
        attempts,
    )
    return False


async def recalculate_admin_subscription(
    db: AsyncSession,
    admin_id: uuid.UUID,
    schedule: FeeSchedule,
    *,
    stripe_subscription_id: str | None = None,
    stripe_customer_id: str | None = None,
    status: str | None = None,
    sync_stripe: bool = False,
) -> RecalculationResult:
    """Recompute the admin's price from their condominium count and upsert it.

    With ``sync_stripe`` the Stripe per-condominium quantity is set to the new
    count. That call happens after the local upsert and its failure never
    undoes it; the result reports ``stripe_synced=False`` instead.
    """
    condo_count = await count_condominiums(db, admin_id)
    pricing = calculate_subscription_total(condo_count, schedule)
    subscription = await upsert_subscription(
        db,
        admin_id,
        pricing,
        stripe_subscription_id=stripe_subscription_id,
        stripe_customer_id=stripe_customer_id,
        status=status,
    )
    logger.info(
        "Recalculated subscription for admin %s: %d condominiums, total %s",
        admin_id,
        pricing.condo_count,
        pricing.total,
    )

    result = RecalculationResult(subscription=subscription, pricing=pricing)
    if not sync_stripe:
        return result

    external_id = stripe_subscription_id or subscription.stripe_subscription_id
    if not external_id:
        admin = await db.get(Admin, admin_id)
        external_id = admin.stripe_subscription_id if admin else None
    if external_id and settings.stripe_configured:
        result.stripe_synced = await sync_stripe_quantity(external_id, pricing)
    return result


async def ensure_stripe_customer(db: AsyncSession, admin: Admin) -> str:
    """Ensure the admin has a Stripe customer ID. Create one if missing."""
    if admin.stripe_customer_id:
        return admin.stripe_customer_id

    customer = await create_customer(
        email=admin.email,
        name=admin.full_name,
        metadata={"admin_id": str(admin.id)},
    )
    admin.stripe_customer_id = customer.id
    await db.flush()
    logger.info("Linked Stripe customer %s to admin %s", customer.id, admin.id)
    return customer.id


async def apply_stripe_subscription_state(
    db: AsyncSession,
    admin: Admin,
    schedule: FeeSchedule,
    *,
    stripe_subscription_id: str,
    stripe_customer_id: str | None,
    status: str,
    current_period_end: datetime | None = None,
) -> Subscription:
    """Overwrite the admin's mirrored Stripe state (webhooks; no quantity push back)."""
    status = normalize_subscription_status(status)
    admin.stripe_subscription_id = stripe_subscription_id
    admin.subscription_status = status
    if stripe_customer_id:
        admin.stripe_customer_id = stripe_customer_id
    await db.flush()

    result = await recalculate_admin_subscription(
        db,
        admin.id,
        schedule,
        stripe_subscription_id=stripe_subscription_id,
        stripe_customer_id=stripe_customer_id,
        status=status,
    )
    subscription = result.subscription
    if current_period_end is not None:
        subscription.current_period_end = current_period_end
        await db.flush()

    logger.info(
        "Admin %s subscription %s is now %s", admin.id, stripe_subscription_id, status
    )
    return subscription


async def mark_subscription_canceled(db: AsyncSession, admin: Admin) -> None:
    """Set both the admin's and the subscription row's status to canceled."""
    admin.subscription_status = "canceled"
    await db.execute(
        update(Subscription).where(Subscription.admin_id == admin.id).values(status="canceled")
    )
    await db.flush()
    logger.info("Admin %s subscription canceled", admin.id)


async def update_supplier_plan(
    db: AsyncSession,
    supplier_id: uuid.UUID,
    plan: str,
    *,
    status: str = "active",
    stripe_subscription_id: str | None = None,
    stripe_customer_id: str | None = None,
    renewal_date: datetime | None = None,
) -> Supplier | None:
    """Record a supplier plan change; returns None when the supplier is gone."""
    supplier = await db.get(Supplier, supplier_id)
    if supplier is None:
        logger.warning("Supplier %s not found for plan update to %s", supplier_id, plan)
        return None

    supplier.plan = plan
    supplier.plan_status = status
    if stripe_subscription_id:
        supplier.stripe_subscription_id = stripe_subscription_id
    if stripe_customer_id:
        supplier.stripe_customer_id = stripe_customer_id
    if renewal_date:
        supplier.plan_renewal_at = renewal_date
    await db.flush()
    logger.info("Supplier %s moved to plan %s (%s)", supplier_id, plan, status)
    return supplier


async def run_subscription_checks(
    db: AsyncSession, now: datetime | None = None
) -> SubscriptionCheckReport:
    """Daily reconciliation of admin subscription status.

    Trials that ended without a Stripe subscription are canceled; otherwise
    the live Stripe status overwrites a differing local one. A Stripe error
    for one admin is logged and counted without stopping the run.
    """
    now = now or datetime.now(timezone.utc).replace(tzinfo=None)
    report = SubscriptionCheckReport()
    result = await db.execute(
        select(Admin).where(Admin.subscription_status.in_(("active", "trialing")))
    )
    admins = result.scalars().all()

    for admin in admins:
        report.checked += 1

        if (
            admin.subscription_status == "trialing"
            and not admin.stripe_subscription_id
            and admin.trial_ends_at is not None
            and admin.trial_ends_at < now
        ):
            await mark_subscription_canceled(db, admin)
            report.updated += 1
            continue

        if not admin.stripe_subscription_id or not settings.stripe_configured:
            continue

        try:
            stripe_sub = await get_subscription(admin.stripe_subscription_id)
        except stripe.StripeError as e:
            logger.error("Error checking subscription for admin %s: %s", admin.id, e)
            report.errors += 1
            continue

        status = normalize_subscription_status(stripe_sub.status)
        if status != admin.subscription_status:
            logger.info(
                "Admin %s status drifted: %s -> %s",
                admin.id,
                admin.subscription_status,
                status,
            )
            admin.subscription_status = status
            await db.execute(
                update(Subscription)
                .where(Subscription.admin_id == admin.id)
                .values(status=status)
            )
            report.updated += 1

    await db.flush()
    logger.info(
        "Subscription checks: checked=%d updated=%d errors=%d",
        report.checked,
        report.updated,
        report.errors,
    )
    return report


async def start_subscription_checkout(
    db: AsyncSession,
    admin: Admin,
    schedule: FeeSchedule,
    *,
    success_url: str,
    cancel_url: str,
) -> tuple[stripe.checkout.Session, RecalculationResult]:
    """Recalculate the admin's price, then open a Stripe subscription checkout."""
    result = await recalculate_admin_subscription(db, admin.id, schedule)
    customer_id = await ensure_stripe_customer(db, admin)
    session = await create_subscription_checkout_session(
        customer_id=customer_id,
        admin_id=str(admin.id),
        pricing=result.pricing,
        schedule=schedule,
        success_url=success_url,
        cancel_url=cancel_url,
    )
    if result.subscription.stripe_customer_id != customer_id:
        result.subscription.stripe_customer_id = customer_id
        await db.flush()
    return session, result


async def start_supplier_upgrade(
    db: AsyncSession,
    supplier: Supplier,
    schedule: FeeSchedule,
    *,
    success_url: str,
    cancel_url: str,
) -> stripe.checkout.Session:
    """Open a Pro plan checkout for a supplier, creating its Stripe customer if needed."""
    if supplier.plan == "pro" and supplier.plan_status == "active":
        raise ValidationError("Supplier is already on the Pro plan")

    customer_id = supplier.stripe_customer_id
    if not customer_id:
        if not supplier.email:
            raise ConfigurationError("Supplier needs an email to create a Stripe customer")
        customer = await create_customer(
            email=supplier.email,
            name=supplier.name,
            metadata={"supplier_id": str(supplier.id)},
        )
        customer_id = customer.id
        supplier.stripe_customer_id = customer_id
        await db.flush()

    return await create_supplier_checkout_session(
        customer_id=customer_id,
        supplier_id=str(supplier.id),
        schedule=schedule,
        success_url=success_url,
        cancel_url=cancel_url,
    )
