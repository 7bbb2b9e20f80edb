"""Job and Invoice models — supplier work orders and their bills."""

import uuid
from decimal import Decimal

from sqlalchemy import Boolean, ForeignKey, Numeric, String, false
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base, TimestampMixin, UUIDPrimaryKeyMixin


class Job(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A maintenance job assigned by an admin to a supplier."""

    __tablename__ = "jobs"

    admin_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("admins.id", ondelete="CASCADE"), nullable=False, index=True
    )
    supplier_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("suppliers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    condominium_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("condominiums.id", ondelete="SET NULL"), nullable=True
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False, server_default="open")

    supplier: Mapped["Supplier"] = relationship(lazy="selectin")  # type: ignore[name-defined]  # noqa: F821
    invoices: Mapped[list["Invoice"]] = relationship(back_populates="job", lazy="selectin")

    def __repr__(self) -> str:
        return f"<Job(id={self.id}, title={self.title!r}, status={self.status!r})>"


class Invoice(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A supplier invoice for a job, paid through the marketplace."""

    __tablename__ = "invoices"

    job_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    total: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    paid: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=false())
    stripe_payment_intent_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    job: Mapped[Job] = relationship(back_populates="invoices", lazy="selectin")

    def __repr__(self) -> str:
        return f"<Invoice(id={self.id}, job_id={self.job_id}, total={self.total}, paid={self.paid})>"
