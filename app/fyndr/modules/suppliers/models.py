from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.fyndr.models import Base
from app.fyndr.utils import utcnow

if TYPE_CHECKING:
    from app.fyndr.models import User
    from app.fyndr.modules.portal.models import SupplierResponse
    from app.fyndr.modules.rfps.models import RFP


class SupplierContact(Base):
    """A supplier invited to one RFP. Portal access goes through `portal_user_id`."""

    __tablename__ = "supplier_contacts"
    __table_args__ = (
        UniqueConstraint("rfp_id", "email", name="uq_supplier_contacts_rfp_email"),
        Index("idx_supplier_contacts_token", "access_token"),
        Index("idx_supplier_contacts_portal_user", "portal_user_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    rfp_id: Mapped[int] = mapped_column(ForeignKey("rfps.id", ondelete="CASCADE"), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    organization: Mapped[str | None] = mapped_column(String(255), nullable=True)

    access_token: Mapped[str | None] = mapped_column(String(128), nullable=True, unique=True)
    access_token_expires: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    invitation_status: Mapped[str] = mapped_column(String(16), nullable=False, default="PENDING")  # PENDING, SENT, ACCEPTED, EXPIRED
    invited_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    portal_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    award_outcome_status: Mapped[str | None] = mapped_column(String(32), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    rfp: Mapped["RFP"] = relationship("RFP", back_populates="supplier_contacts")
    portal_user: Mapped["User | None"] = relationship("User", lazy="joined")
    response: Mapped["SupplierResponse | None"] = relationship(
        "SupplierResponse",
        back_populates="supplier_contact",
        uselist=False,
        cascade="all, delete-orphan",
    )

    @property
    def display_name(self) -> str:
        return self.organization or self.name
