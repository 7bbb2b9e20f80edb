"""Supplier model — marketplace payee with its own plan subscription."""

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base, TimestampMixin, UUIDPrimaryKeyMixin

SUPPLIER_PLANS = ("free", "pro", "business")


class Supplier(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A supplier working for a condominium; paid through its connected account."""

    __tablename__ = "suppliers"

    condominium_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("condominiums.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    # Auth provider user id of the account that owns this supplier profile
    owner_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    stripe_connect_account_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    stripe_customer_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    stripe_subscription_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    plan: Mapped[str] = mapped_column(String(20), nullable=False, server_default="free")
    plan_status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    plan_renewal_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<Supplier(id={self.id}, name={self.name!r}, plan={self.plan!r})>"
