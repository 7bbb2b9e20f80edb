"""Marketplace payment endpoints — PaymentIntents and one-off Checkout sessions."""

import logging
import uuid

import stripe
from fastapi import APIRouter, Depends, Header, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import (
    billing_http_error,
    get_current_admin,
    get_db,
    get_fee_schedule,
    stripe_http_error,
)
from app.billing.exceptions import BillingError
from app.billing.fees import FeeSchedule
from app.models.admin import Admin
from app.schemas.payment import (
    CreatePaymentRequest,
    FeesResponse,
    PaymentIssueResponse,
    PaymentResponse,
    PayInvoiceRequest,
)
from app.services.payment_service import PaymentIssue, PaymentRequest, create_payment, pay_job_invoice

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["payments"])


def _issue_response(issue: PaymentIssue, invoice_id: uuid.UUID | None = None) -> PaymentIssueResponse:
    fees = issue.fees
    return PaymentIssueResponse(
        payment=PaymentResponse.model_validate(issue.payment),
        fees=FeesResponse(
            platform_fee_percent=fees.platform_fee_percent,
            platform_fee=fees.platform_fee,
            processor_fee_percent=fees.processor_fee_percent,
            processor_fee=fees.processor_fee,
            net=fees.net,
        ),
        client_secret=issue.client_secret,
        checkout_url=issue.checkout_url,
        invoice_id=invoice_id,
    )


@router.post(
    "/payments/create-intent",
    response_model=PaymentIssueResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_payment_intent(
    body: CreatePaymentRequest,
    idempotency_key: str | None = Header(None, alias="Idempotency-Key"),
    db: AsyncSession = Depends(get_db),
    current_admin: Admin = Depends(get_current_admin),
    schedule: FeeSchedule = Depends(get_fee_schedule),
) -> PaymentIssueResponse:
    """Issue a payment to an admin or supplier and record it as pending."""
    request = PaymentRequest(
        payee_id=body.payee_id,
        payee_type=body.payee_type,
        amount=body.amount,
        condo_id=body.condo_id,
        payer_id=current_admin.id,
        currency=body.currency,
        use_checkout=body.use_checkout,
        success_url=body.success_url,
        cancel_url=body.cancel_url,
        description=body.description,
        payer_customer_id=current_admin.stripe_customer_id,
        idempotency_key=idempotency_key,
        metadata=body.metadata,
    )
    try:
        issue = await create_payment(db, request, schedule)
    except BillingError as e:
        raise billing_http_error(e) from e
    except stripe.StripeError as e:
        raise stripe_http_error(e) from e
    return _issue_response(issue)


@router.post(
    "/invoices/{job_id}/pay",
    response_model=PaymentIssueResponse,
    status_code=status.HTTP_201_CREATED,
)
async def pay_invoice(
    job_id: uuid.UUID,
    body: PayInvoiceRequest,
    idempotency_key: str | None = Header(None, alias="Idempotency-Key"),
    db: AsyncSession = Depends(get_db),
    current_admin: Admin = Depends(get_current_admin),
    schedule: FeeSchedule = Depends(get_fee_schedule),
) -> PaymentIssueResponse:
    """Pay the latest unpaid invoice of one of the admin's jobs to its supplier."""
    try:
        issue, invoice = await pay_job_invoice(
            db,
            job_id=job_id,
            admin_id=current_admin.id,
            schedule=schedule,
            use_checkout=body.use_checkout,
            success_url=body.success_url,
            cancel_url=body.cancel_url,
            payer_customer_id=current_admin.stripe_customer_id,
            idempotency_key=idempotency_key,
        )
    except BillingError as e:
        raise billing_http_error(e) from e
    except stripe.StripeError as e:
        raise stripe_http_error(e) from e
    return _issue_response(issue, invoice_id=invoice.id)
