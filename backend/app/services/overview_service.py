"""Revenue overview for an admin's dashboard (read-only, may degrade)."""

import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.billing.fees import CENT, FeeSchedule
from app.models.condominium import Condominium
from app.models.payment import Payment
from app.models.subscription import Subscription
from app.models.supplier import Supplier

logger = logging.getLogger(__name__)

_ZERO = Decimal("0.00")


@dataclass
class RevenueOverview:
    total_condominiums: int = 0
    subscription_mrr: Decimal = _ZERO
    payment_fee_revenue: Decimal = _ZERO
    supplier_revenue: Decimal = _ZERO
    net_monthly_profit: Decimal = _ZERO
    degraded: bool = False


async def _load_overview(
    db: AsyncSession, admin_id: uuid.UUID, schedule: FeeSchedule
) -> RevenueOverview:
    condo_ids = select(Condominium.id).where(Condominium.admin_id == admin_id)

    condo_count = await db.scalar(
        select(func.count()).select_from(Condominium).where(Condominium.admin_id == admin_id)
    )
    mrr = await db.scalar(select(Subscription.total_price).where(Subscription.admin_id == admin_id))
    fee_total, net_total = (
        await db.execute(
            select(
                func.coalesce(func.sum(Payment.platform_fee_amount), 0),
                func.coalesce(func.sum(Payment.net_amount), 0),
            ).where(Payment.payee_type == "admin", Payment.condo_id.in_(condo_ids))
        )
    ).one()
    pro_suppliers = await db.scalar(
        select(func.count())
        .select_from(Supplier)
        .where(Supplier.plan == "pro", Supplier.condominium_id.in_(condo_ids))
    )

    mrr = Decimal(mrr or 0).quantize(CENT)
    fee_total = Decimal(fee_total).quantize(CENT)
    net_total = Decimal(net_total).quantize(CENT)
    supplier_revenue = (schedule.supplier_pro_price * (pro_suppliers or 0)).quantize(CENT)
    return RevenueOverview(
        total_condominiums=condo_count or 0,
        subscription_mrr=mrr,
        payment_fee_revenue=fee_total,
        supplier_revenue=supplier_revenue,
        net_monthly_profit=mrr + net_total + supplier_revenue,
    )


async def get_revenue_overview(
    db: AsyncSession, admin_id: uuid.UUID, schedule: FeeSchedule
) -> RevenueOverview:
    """Monthly revenue figures for the admin's condominiums.

    Display only: if the store is unreachable a zeroed overview flagged
    ``degraded`` is returned instead of an error.
    """
    try:
        return await _load_overview(db, admin_id, schedule)
    except SQLAlchemyError:
        logger.exception("Revenue overview unavailable for admin %s; returning defaults", admin_id)
        await db.rollback()
        return RevenueOverview(degraded=True)
