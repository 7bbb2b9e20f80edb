"""Pydantic v2 request/response schemas for billing endpoints."""

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

# --- Request schemas ---


class CheckoutRequest(BaseModel):
    """Request to create the admin's subscription Checkout session."""

    success_url: str | None = None
    cancel_url: str | None = None


class SupplierUpgradeRequest(BaseModel):
    """Request to upgrade a supplier to the Pro plan."""

    supplier_id: uuid.UUID
    success_url: str = Field(..., min_length=1)
    cancel_url: str = Field(..., min_length=1)


# --- Response schemas ---


class SubscriptionQuoteResponse(BaseModel):
    """Monthly subscription price for a condominium count."""

    base: Decimal
    per_condo: Decimal
    condo_count: int
    total: Decimal
    currency: str


class FeeQuoteResponse(BaseModel):
    """Platform and processor fees on a gross amount."""

    amount: Decimal
    platform_fee_percent: Decimal
    platform_fee: Decimal
    processor_fee_percent: Decimal
    processor_fee: Decimal
    net: Decimal
    currency: str


class SubscriptionResponse(BaseModel):
    """The admin's stored subscription row."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    admin_id: uuid.UUID
    base_fee: Decimal
    per_unit_fee: Decimal
    condo_count: int
    total_price: Decimal
    status: str
    stripe_subscription_id: str | None
    stripe_customer_id: str | None
    current_period_end: datetime | None
    updated_at: datetime | None = None


class RecalculateResponse(BaseModel):
    """Result of a recalculation; ``stripe_synced`` is None when no sync ran."""

    subscription: SubscriptionResponse
    pricing: SubscriptionQuoteResponse
    stripe_synced: bool | None = None


class CheckoutResponse(BaseModel):
    """Stripe Checkout session URL returned to frontend."""

    checkout_url: str
    session_id: str
    pricing: SubscriptionQuoteResponse | None = None


class RevenueOverviewResponse(BaseModel):
    """Monthly revenue figures; ``degraded`` marks zeroed fallback data."""

    total_condominiums: int
    subscription_mrr: Decimal
    payment_fee_revenue: Decimal
    supplier_revenue: Decimal
    net_monthly_profit: Decimal
    degraded: bool = False


class SubscriptionCheckResponse(BaseModel):
    """Counters from the daily subscription reconciliation."""

    checked: int
    updated: int
    errors: int


class WebhookResponse(BaseModel):
    status: str  # processed, duplicate, ignored
