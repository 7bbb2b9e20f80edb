"""StripeEvent model — idempotency ledger of applied webhook events."""

from datetime import datetime

from sqlalchemy import String, func
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base, UUIDPrimaryKeyMixin


class StripeEvent(UUIDPrimaryKeyMixin, Base):
    """A Stripe event whose handler has completed; rows are never deleted."""

    __tablename__ = "stripe_events"

    event_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    event_type: Mapped[str] = mapped_column(String(128), nullable=False)
    processed_at: Mapped[datetime] = mapped_column(server_default=func.now())

    def __repr__(self) -> str:
        return f"<StripeEvent {self.event_id} ({self.event_type})>"
