"""Supplier plan endpoints — Pro upgrade through Stripe Checkout."""

import logging
import uuid

import stripe
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import (
    billing_http_error,
    get_current_account_id,
    get_db,
    get_fee_schedule,
    stripe_http_error,
)
from app.billing.exceptions import BillingError
from app.billing.fees import FeeSchedule
from app.models.supplier import Supplier
from app.schemas.billing import CheckoutResponse, SupplierUpgradeRequest
from app.services.subscription_service import start_supplier_upgrade

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/suppliers", tags=["suppliers"])


@router.post("/upgrade", response_model=CheckoutResponse)
async def upgrade_supplier(
    body: SupplierUpgradeRequest,
    db: AsyncSession = Depends(get_db),
    account_id: uuid.UUID = Depends(get_current_account_id),
    schedule: FeeSchedule = Depends(get_fee_schedule),
) -> CheckoutResponse:
    """Create a Pro plan Checkout session; only the supplier's owner may upgrade."""
    supplier = await db.get(Supplier, body.supplier_id)
    if supplier is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"message": "Supplier not found", "code": "NOT_FOUND"},
        )
    if supplier.owner_id != account_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"message": "Access denied", "code": "AUTH_ERROR"},
        )

    try:
        session = await start_supplier_upgrade(
            db,
            supplier,
            schedule,
            success_url=body.success_url,
            cancel_url=body.cancel_url,
        )
    except BillingError as e:
        raise billing_http_error(e) from e
    except stripe.StripeError as e:
        raise stripe_http_error(e) from e

    logger.info("Supplier %s upgrade session %s created", supplier.id, session.id)
    return CheckoutResponse(checkout_url=session.url, session_id=session.id)
