"""Subscription model — computed pricing and Stripe billing state per admin."""

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base, TimestampMixin, UUIDPrimaryKeyMixin


class Subscription(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """One row per admin, upserted on every recalculation."""

    __tablename__ = "subscriptions"

    # UNIQUE is the upsert conflict target; one row per admin
    admin_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("admins.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
        index=True,
    )

    # Pricing snapshot
    base_fee: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    per_unit_fee: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    condo_count: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    total_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    # Stripe identifiers
    stripe_customer_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    stripe_subscription_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)

    status: Mapped[str] = mapped_column(String(50), nullable=False, server_default="trialing")
    current_period_end: Mapped[datetime | None] = mapped_column(nullable=True)

    # Relationships
    admin: Mapped["Admin"] = relationship(back_populates="subscription", lazy="selectin")  # type: ignore[name-defined]  # noqa: F821

    def __repr__(self) -> str:
        return (
            f"<Subscription(id={self.id}, admin_id={self.admin_id}, "
            f"condo_count={self.condo_count}, total={self.total_price}, status={self.status})>"
        )
