"""Pydantic v2 schemas for marketplace payment endpoints."""

import uuid
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class CreatePaymentRequest(BaseModel):
    """Issue a payment to an admin or supplier through Stripe Connect."""

    payee_id: uuid.UUID
    payee_type: Literal["admin", "supplier"]
    amount: Decimal
    condo_id: uuid.UUID | None = None
    currency: str | None = Field(None, min_length=3, max_length=3)
    use_checkout: bool = False
    success_url: str | None = None
    cancel_url: str | None = None
    description: str | None = Field(None, max_length=500)
    metadata: dict[str, str] = Field(default_factory=dict)


class PayInvoiceRequest(BaseModel):
    """Pay the latest unpaid invoice of a job."""

    use_checkout: bool = False
    success_url: str | None = None
    cancel_url: str | None = None


class FeesResponse(BaseModel):
    platform_fee_percent: Decimal
    platform_fee: Decimal
    processor_fee_percent: Decimal
    processor_fee: Decimal
    net: Decimal


class PaymentResponse(BaseModel):
    """Stored platform payment."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    payer_id: uuid.UUID | None
    payee_id: uuid.UUID
    payee_type: str
    condo_id: uuid.UUID | None
    amount: Decimal
    currency: str
    platform_fee_amount: Decimal
    stripe_fee_amount: Decimal
    net_amount: Decimal
    stripe_payment_id: str | None
    status: str


class PaymentIssueResponse(BaseModel):
    """Pending payment plus the handle the client completes it with."""

    payment: PaymentResponse
    fees: FeesResponse
    client_secret: str | None = None
    checkout_url: str | None = None
    invoice_id: uuid.UUID | None = None
