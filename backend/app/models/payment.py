"""Payment model — one platform payment record per marketplace transaction."""

import uuid
from decimal import Decimal

from sqlalchemy import JSON, CheckConstraint, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base, TimestampMixin, UUIDPrimaryKeyMixin

PAYMENT_STATUSES = ("pending", "processing", "succeeded", "failed")
PAYEE_TYPES = ("admin", "supplier")


class Payment(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A payment issued through Stripe Connect with its declared fee split."""

    __tablename__ = "payments"
    __table_args__ = (CheckConstraint("amount > 0", name="ck_payments_amount_positive"),)

    payer_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True, index=True)
    payee_id: Mapped[uuid.UUID] = mapped_column(nullable=False, index=True)
    payee_type: Mapped[str] = mapped_column(String(20), nullable=False)  # admin, supplier
    condo_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True, index=True)

    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, server_default="eur")

    platform_fee_percent: Mapped[Decimal] = mapped_column(Numeric(6, 3), nullable=False)
    platform_fee_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    stripe_fee_percent: Mapped[Decimal] = mapped_column(Numeric(6, 3), nullable=False)
    stripe_fee_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    # platform fee minus processor fee; negative when the platform absorbs the card cost
    net_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    # PaymentIntent id (pi_...) or Checkout Session id (cs_...)
    stripe_payment_id: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, server_default="pending")
    payment_metadata: Mapped[dict] = mapped_column("metadata", JSON, nullable=False, default=dict)

    def __repr__(self) -> str:
        return (
            f"<Payment(id={self.id}, payee={self.payee_type}:{self.payee_id}, "
            f"amount={self.amount} {self.currency}, status={self.status})>"
        )
