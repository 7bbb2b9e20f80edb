"""Scheduled job endpoints, called by the platform cron with a shared secret."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_db, require_cron_secret
from app.schemas.billing import SubscriptionCheckResponse
from app.services.subscription_service import run_subscription_checks

router = APIRouter(
    prefix="/api/v1/cron",
    tags=["cron"],
    dependencies=[Depends(require_cron_secret)],
)


@router.post("/subscription-checks", response_model=SubscriptionCheckResponse)
async def subscription_checks(db: AsyncSession = Depends(get_db)) -> SubscriptionCheckResponse:
    """Expire ended trials and reconcile admin status with Stripe."""
    report = await run_subscription_checks(db)
    return SubscriptionCheckResponse(
        checked=report.checked, updated=report.updated, errors=report.errors
    )
