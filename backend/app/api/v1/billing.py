"""Billing API endpoints — pricing quotes, admin subscription and Stripe Checkout."""

import logging
from decimal import Decimal

import stripe
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import (
    billing_http_error,
    get_current_admin,
    get_db,
    get_fee_schedule,
    stripe_http_error,
)
from app.billing.exceptions import BillingError
from app.billing.fees import (
    FeeSchedule,
    SubscriptionPricing,
    calculate_platform_fees,
    calculate_subscription_total,
)
from app.config import settings
from app.models.admin import Admin
from app.schemas.billing import (
    CheckoutRequest,
    CheckoutResponse,
    FeeQuoteResponse,
    RecalculateResponse,
    RevenueOverviewResponse,
    SubscriptionQuoteResponse,
    SubscriptionResponse,
)
from app.services.overview_service import get_revenue_overview
from app.services.subscription_service import (
    get_subscription_for_admin,
    recalculate_admin_subscription,
    retry_stripe_quantity_sync,
    start_subscription_checkout,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/billing", tags=["billing"])


def _quote(pricing: SubscriptionPricing, schedule: FeeSchedule) -> SubscriptionQuoteResponse:
    return SubscriptionQuoteResponse(**pricing.as_dict(), currency=schedule.currency)


@router.get("/quote", response_model=SubscriptionQuoteResponse)
async def quote_subscription(
    condo_count: int = Query(0, description="Number of managed condominiums"),
    schedule: FeeSchedule = Depends(get_fee_schedule),
) -> SubscriptionQuoteResponse:
    """Monthly subscription price for a condominium count (public)."""
    return _quote(calculate_subscription_total(condo_count, schedule), schedule)


@router.get("/fees", response_model=FeeQuoteResponse)
async def quote_fees(
    amount: Decimal = Query(..., description="Gross transaction amount"),
    schedule: FeeSchedule = Depends(get_fee_schedule),
) -> FeeQuoteResponse:
    """Platform and processor fees on a gross amount (public)."""
    try:
        fees = calculate_platform_fees(amount, schedule)
    except BillingError as e:
        raise billing_http_error(e) from e
    return FeeQuoteResponse(**fees.as_dict(), currency=schedule.currency)


@router.get("/subscription", response_model=SubscriptionResponse)
async def get_subscription(
    db: AsyncSession = Depends(get_db),
    current_admin: Admin = Depends(get_current_admin),
) -> SubscriptionResponse:
    """Get the current admin's subscription."""
    subscription = await get_subscription_for_admin(db, current_admin.id)
    if subscription is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"message": "No subscription yet", "code": "NOT_FOUND"},
        )
    return SubscriptionResponse.model_validate(subscription)


@router.post("/subscription/recalculate", response_model=RecalculateResponse)
async def recalculate_subscription(
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    current_admin: Admin = Depends(get_current_admin),
    schedule: FeeSchedule = Depends(get_fee_schedule),
) -> RecalculateResponse:
    """Recompute the subscription from the condominium count and sync Stripe.

    A failed Stripe quantity sync is reported as ``stripe_synced=false`` and
    retried in the background; the stored price stands.
    """
    try:
        result = await recalculate_admin_subscription(
            db, current_admin.id, schedule, sync_stripe=True
        )
    except BillingError as e:
        raise billing_http_error(e) from e

    if result.stripe_synced is False:
        external_id = result.subscription.stripe_subscription_id or current_admin.stripe_subscription_id
        background_tasks.add_task(retry_stripe_quantity_sync, external_id, result.pricing)

    return RecalculateResponse(
        subscription=SubscriptionResponse.model_validate(result.subscription),
        pricing=_quote(result.pricing, schedule),
        stripe_synced=result.stripe_synced,
    )


@router.post("/subscription/checkout", response_model=CheckoutResponse)
async def create_checkout(
    body: CheckoutRequest,
    db: AsyncSession = Depends(get_db),
    current_admin: Admin = Depends(get_current_admin),
    schedule: FeeSchedule = Depends(get_fee_schedule),
) -> CheckoutResponse:
    """Create a Stripe Checkout session for the condominium-based subscription."""
    success_url = (
        body.success_url
        or f"{settings.frontend_url}/admin/billing?session_id={{CHECKOUT_SESSION_ID}}"
    )
    cancel_url = body.cancel_url or f"{settings.frontend_url}/admin/billing"

    try:
        session, result = await start_subscription_checkout(
            db,
            current_admin,
            schedule,
            success_url=success_url,
            cancel_url=cancel_url,
        )
    except BillingError as e:
        raise billing_http_error(e) from e
    except stripe.StripeError as e:
        raise stripe_http_error(e) from e

    return CheckoutResponse(
        checkout_url=session.url,
        session_id=session.id,
        pricing=_quote(result.pricing, schedule),
    )


@router.get("/overview", response_model=RevenueOverviewResponse)
async def revenue_overview(
    db: AsyncSession = Depends(get_db),
    current_admin: Admin = Depends(get_current_admin),
    schedule: FeeSchedule = Depends(get_fee_schedule),
) -> RevenueOverviewResponse:
    """Monthly revenue overview; zeroed and flagged ``degraded`` if the store fails."""
    overview = await get_revenue_overview(db, current_admin.id, schedule)
    return RevenueOverviewResponse(**vars(overview))
