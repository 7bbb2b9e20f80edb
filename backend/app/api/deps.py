"""Shared API dependencies — single import point for all routers.

Re-exports database session, authentication and billing dependencies so that
router modules can import everything they need from one place::

    from app.api.deps import get_db, get_current_admin, get_fee_schedule
"""

import logging

import stripe
from fastapi import HTTPException, status

from app.auth.dependencies import get_current_account_id, get_current_admin
from app.billing.dependencies import get_fee_schedule, require_cron_secret
from app.billing.exceptions import BillingError
from app.database import get_db

logger = logging.getLogger(__name__)

__all__ = [
    "get_db",
    "get_current_account_id",
    "get_current_admin",
    "get_fee_schedule",
    "require_cron_secret",
    "billing_http_error",
    "stripe_http_error",
]


def billing_http_error(exc: BillingError) -> HTTPException:
    """Translate a domain error into the ``{"message", "code"}`` HTTP error."""
    return HTTPException(status_code=exc.status_code, detail=exc.to_detail())


def stripe_http_error(exc: stripe.StripeError) -> HTTPException:
    """Surface a failed Stripe call as 502 with Stripe's own message."""
    logger.error("Stripe error: %s", exc)
    return HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail={"message": str(exc), "code": "STRIPE_ERROR"},
    )
