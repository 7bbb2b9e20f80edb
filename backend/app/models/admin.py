"""Admin model — condominium administrator and subscription payer."""

from datetime import datetime

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base, TimestampMixin, UUIDPrimaryKeyMixin

# Closed set; Stripe-only statuses are mapped onto it before storing
SUBSCRIPTION_STATUSES = ("trialing", "active", "past_due", "unpaid", "canceled")


class Admin(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """An administrator account; the id matches the hosted auth provider's user id."""

    __tablename__ = "admins"

    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    full_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Stripe identifiers
    stripe_customer_id: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True)
    stripe_subscription_id: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True, index=True)
    stripe_connect_account_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Subscription state mirrored from Stripe; "trialing" until Stripe says otherwise
    subscription_status: Mapped[str] = mapped_column(String(50), nullable=False, server_default="trialing")
    trial_ends_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Relationships
    subscription: Mapped["Subscription | None"] = relationship(  # type: ignore[name-defined]  # noqa: F821
        "Subscription",
        back_populates="admin",
        uselist=False,
        lazy="selectin",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Admin id={self.id} email={self.email!r} status={self.subscription_status!r}>"
