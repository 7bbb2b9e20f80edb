"""Payment service — marketplace payment issuing and platform payment records."""

import logging
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.billing.exceptions import ConfigurationError, NotFoundError, ValidationError
from app.billing.fees import (
    FeeSchedule,
    Number,
    PlatformFees,
    calculate_platform_fees,
    from_cents,
    to_cents,
    to_decimal,
)
from app.billing.stripe_client import create_payment_checkout_session, create_payment_intent
from app.config import settings
from app.models.admin import Admin
from app.models.condominium import Condominium
from app.models.job import Invoice, Job
from app.models.payment import PAYEE_TYPES, Payment
from app.models.supplier import Supplier

logger = logging.getLogger(__name__)


@dataclass
class PaymentRequest:
    """A marketplace payment to issue; ``amount`` is the gross, in major units."""

    payee_id: uuid.UUID
    payee_type: str
    amount: Number
    condo_id: uuid.UUID | None = None
    payer_id: uuid.UUID | None = None
    currency: str | None = None
    use_checkout: bool = False
    success_url: str | None = None
    cancel_url: str | None = None
    description: str | None = None
    payer_customer_id: str | None = None
    idempotency_key: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class PaymentIssue:
    """Result of issuing a payment: the pending record plus the client handle."""

    payment: Payment
    fees: PlatformFees
    client_secret: str | None = None
    checkout_url: str | None = None


@dataclass(frozen=True)
class PayeeDestination:
    """Where a payment settles and which admin owns the payee relationship."""

    account_id: str | None
    admin_id: uuid.UUID
    condo_id: uuid.UUID | None


def validate_amount(amount: Number) -> Decimal:
    """Return the amount rounded to cents; reject NaN, infinities, zero and negatives."""
    try:
        value = to_decimal(amount)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Invalid amount provided: {amount!r}") from e
    if not value.is_finite():
        raise ValidationError(f"Invalid amount provided: {amount!r}")
    cents = to_cents(value)
    if cents <= 0:
        raise ValidationError("Amount must be greater than zero")
    return from_cents(cents)


def _validate_currency(currency: str | None, schedule: FeeSchedule) -> str:
    code = (currency or schedule.currency).strip().lower()
    if len(code) != 3 or not code.isalpha():
        raise ValidationError(f"Invalid currency: {currency!r}")
    return code


async def resolve_payee_destination(
    db: AsyncSession, payee_type: str, payee_id: uuid.UUID
) -> PayeeDestination:
    """Resolve the connected account a payee is paid into.

    Admins pay out to their own account. Suppliers pay out to theirs, and the
    supplier → condominium → admin chain must exist; it is fetched in a
    single joined query.
    """
    if payee_type == "admin":
        admin = await db.get(Admin, payee_id)
        if admin is None:
            raise NotFoundError("Admin payee not found")
        return PayeeDestination(
            account_id=admin.stripe_connect_account_id, admin_id=admin.id, condo_id=None
        )

    if payee_type == "supplier":
        result = await db.execute(
            select(Supplier, Condominium.admin_id)
            .outerjoin(Condominium, Condominium.id == Supplier.condominium_id)
            .where(Supplier.id == payee_id)
        )
        row = result.one_or_none()
        if row is None:
            raise NotFoundError("Supplier payee not found")
        supplier, admin_id = row
        if supplier.condominium_id is None or admin_id is None:
            raise NotFoundError("Condominium not found for supplier")
        return PayeeDestination(
            account_id=supplier.stripe_connect_account_id,
            admin_id=admin_id,
            condo_id=supplier.condominium_id,
        )

    raise ValidationError(f"Invalid payee type: {payee_type!r}")


async def record_platform_payment(
    db: AsyncSession,
    *,
    payee_id: uuid.UUID,
    payee_type: str,
    amount: Number,
    schedule: FeeSchedule,
    payer_id: uuid.UUID | None = None,
    condo_id: uuid.UUID | None = None,
    currency: str | None = None,
    stripe_payment_id: str | None = None,
    status: str = "pending",
    metadata: dict[str, Any] | None = None,
) -> tuple[Payment, PlatformFees]:
    """Insert a platform payment row with its computed fee split."""
    if payee_type not in PAYEE_TYPES:
        raise ValidationError(f"Invalid payee type: {payee_type!r}")
    gross = validate_amount(amount)
    fees = calculate_platform_fees(gross, schedule)
    if fees.net < 0:
        logger.warning(
            "Negative platform margin on %s %s payment: fee %s < processor cost %s",
            fees.amount,
            currency or schedule.currency,
            fees.platform_fee,
            fees.processor_fee,
        )

    payment = Payment(
        payer_id=payer_id,
        payee_id=payee_id,
        payee_type=payee_type,
        condo_id=condo_id,
        amount=fees.amount,
        currency=_validate_currency(currency, schedule),
        platform_fee_percent=fees.platform_fee_percent,
        platform_fee_amount=fees.platform_fee,
        stripe_fee_percent=fees.processor_fee_percent,
        stripe_fee_amount=fees.processor_fee,
        net_amount=fees.net,
        stripe_payment_id=stripe_payment_id,
        status=status,
        payment_metadata=metadata or {},
    )
    db.add(payment)
    await db.flush()
    logger.info(
        "Recorded %s payment %s: %s to %s %s (platform fee %s, net %s)",
        status,
        payment.id,
        fees.amount,
        payee_type,
        payee_id,
        fees.platform_fee,
        fees.net,
    )
    return payment, fees


async def create_payment(
    db: AsyncSession, request: PaymentRequest, schedule: FeeSchedule
) -> PaymentIssue:
    """Issue a marketplace payment through Stripe Connect and record it as pending.

    Validation and destination resolution happen before any Stripe call; the
    payment row is written only once Stripe has created the intent or
    session, so a row always corresponds to a real Stripe object.
    """
    gross = validate_amount(request.amount)
    if request.payee_type not in PAYEE_TYPES:
        raise ValidationError(f"Invalid payee type: {request.payee_type!r}")
    currency = _validate_currency(request.currency, schedule)
    if request.use_checkout and not (request.success_url and request.cancel_url):
        raise ValidationError("successUrl and cancelUrl required for checkout")

    destination = await resolve_payee_destination(db, request.payee_type, request.payee_id)
    if not destination.account_id:
        raise ConfigurationError(f"{request.payee_type.capitalize()} has not connected a Stripe account")
    if not settings.stripe_connect_enabled:
        raise ConfigurationError("Stripe Connect is disabled", status_code=503)

    fees = calculate_platform_fees(gross, schedule)
    condo_id = request.condo_id or destination.condo_id
    metadata = {
        **request.metadata,
        "payer_id": request.payer_id,
        "payee_id": request.payee_id,
        "payee_type": request.payee_type,
        "condo_id": condo_id,
        "platform_fee_percent": fees.platform_fee_percent,
    }

    client_secret = None
    checkout_url = None
    if request.use_checkout:
        session = await create_payment_checkout_session(
            amount_cents=fees.amount_cents,
            currency=currency,
            destination_account_id=destination.account_id,
            application_fee_cents=fees.platform_fee_cents,
            product_name=request.description or "Pagamento CondoChiaro",
            success_url=request.success_url,
            cancel_url=request.cancel_url,
            metadata=metadata,
            idempotency_key=request.idempotency_key,
        )
        stripe_payment_id = session.id
        checkout_url = session.url
        kind = "checkout_session"
    else:
        intent = await create_payment_intent(
            amount_cents=fees.amount_cents,
            currency=currency,
            destination_account_id=destination.account_id,
            application_fee_cents=fees.platform_fee_cents,
            metadata=metadata,
            customer_id=request.payer_customer_id,
            description=request.description,
            idempotency_key=request.idempotency_key,
        )
        stripe_payment_id = intent.id
        client_secret = intent.client_secret
        kind = "payment_intent"

    payment, fees = await record_platform_payment(
        db,
        payee_id=request.payee_id,
        payee_type=request.payee_type,
        amount=gross,
        schedule=schedule,
        payer_id=request.payer_id,
        condo_id=condo_id,
        currency=currency,
        stripe_payment_id=stripe_payment_id,
        status="pending",
        metadata={
            **{key: str(value) for key, value in request.metadata.items()},
            "stripe_object": kind,
            "destination_account": destination.account_id,
            "stripe_application_fee_percent": str(fees.platform_fee_percent),
        },
    )
    return PaymentIssue(
        payment=payment, fees=fees, client_secret=client_secret, checkout_url=checkout_url
    )


async def update_platform_payment_status(
    db: AsyncSession, stripe_payment_id: str, status: str
) -> list[Payment]:
    """Overwrite the status of payments matching a Stripe id.

    ``succeeded`` is terminal: a late ``failed`` or ``processing`` for an
    already succeeded payment is ignored, so out-of-order deliveries converge.
    A succeeded payment also marks the invoices it settles as paid.
    """
    stmt = (
        update(Payment)
        .where(Payment.stripe_payment_id == stripe_payment_id)
        .values(status=status)
        .returning(Payment.id)
        .execution_options(synchronize_session=False)
    )
    if status != "succeeded":
        stmt = stmt.where(Payment.status != "succeeded")
    result = await db.execute(stmt)
    updated_ids = list(result.scalars().all())
    if status == "succeeded":
        await mark_invoices_paid(db, stripe_payment_id)
    if not updated_ids:
        logger.info("No payment updated to %s for Stripe id %s", status, stripe_payment_id)
        return []

    rows = await db.execute(
        select(Payment)
        .where(Payment.id.in_(updated_ids))
        .execution_options(populate_existing=True)
    )
    payments = list(rows.scalars().all())
    logger.info(
        "Marked %d payment(s) %s for Stripe id %s", len(payments), status, stripe_payment_id
    )
    return payments


async def mark_invoices_paid(db: AsyncSession, stripe_payment_id: str) -> list[uuid.UUID]:
    """Flag the invoices settled by a succeeded Stripe payment as paid.

    Matches the invoice's stored Stripe id and the ``invoice_id`` carried in
    the payment metadata.
    """
    invoice_ids: set[uuid.UUID] = set()
    rows = await db.execute(
        select(Payment.payment_metadata).where(Payment.stripe_payment_id == stripe_payment_id)
    )
    for metadata in rows.scalars():
        try:
            invoice_ids.add(uuid.UUID(str((metadata or {}).get("invoice_id"))))
        except ValueError:
            continue

    condition = Invoice.stripe_payment_intent_id == stripe_payment_id
    if invoice_ids:
        condition = or_(condition, Invoice.id.in_(invoice_ids))
    result = await db.execute(
        update(Invoice)
        .where(condition, Invoice.paid.is_(False))
        .values(paid=True)
        .returning(Invoice.id)
        .execution_options(synchronize_session=False)
    )
    paid_ids = list(result.scalars().all())
    if paid_ids:
        logger.info("Marked %d invoice(s) paid for Stripe id %s", len(paid_ids), stripe_payment_id)
    return paid_ids


async def pay_job_invoice(
    db: AsyncSession,
    *,
    job_id: uuid.UUID,
    admin_id: uuid.UUID,
    schedule: FeeSchedule,
    use_checkout: bool = False,
    success_url: str | None = None,
    cancel_url: str | None = None,
    payer_customer_id: str | None = None,
    idempotency_key: str | None = None,
) -> tuple[PaymentIssue, Invoice]:
    """Pay the latest unpaid invoice of an admin's job to its supplier."""
    job = await db.scalar(select(Job).where(Job.id == job_id, Job.admin_id == admin_id))
    if job is None:
        raise NotFoundError("Job not found")

    invoice = await db.scalar(
        select(Invoice)
        .where(Invoice.job_id == job.id, Invoice.paid.is_(False))
        .order_by(Invoice.created_at.desc())
        .limit(1)
    )
    if invoice is None:
        raise NotFoundError("Invoice not found")

    if invoice.stripe_payment_intent_id:
        previous = await db.scalar(
            select(Payment).where(Payment.stripe_payment_id == invoice.stripe_payment_intent_id)
        )
        if previous is not None and previous.status == "succeeded":
            raise ValidationError("Invoice already paid")
        if previous is not None and previous.status in ("pending", "processing"):
            raise ValidationError("Invoice already has a payment in progress")

    issue = await create_payment(
        db,
        PaymentRequest(
            payee_id=job.supplier_id,
            payee_type="supplier",
            amount=invoice.total,
            condo_id=job.condominium_id,
            payer_id=admin_id,
            use_checkout=use_checkout,
            success_url=success_url,
            cancel_url=cancel_url,
            description=f"Intervento #{job.id}",
            payer_customer_id=payer_customer_id,
            idempotency_key=idempotency_key,
            metadata={"job_id": job.id, "invoice_id": invoice.id, "admin_id": admin_id},
        ),
        schedule,
    )
    invoice.stripe_payment_intent_id = issue.payment.stripe_payment_id
    await db.flush()
    return issue, invoice
