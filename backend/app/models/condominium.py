"""Condominium model — the billing unit of an admin subscription."""

import uuid

from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base, TimestampMixin, UUIDPrimaryKeyMixin


class Condominium(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A managed property owned by one admin."""

    __tablename__ = "condominiums"

    admin_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("admins.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[str | None] = mapped_column(String(512), default=None)

    def __repr__(self) -> str:
        return f"<Condominium(id={self.id}, name={self.name!r}, admin_id={self.admin_id})>"
