from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.fyndr.models import Base, JSONType
from app.fyndr.utils import utcnow


class ActivityLog(Base):
    """
    Append-only business event trail shown on the RFP activity tab and used by analytics.
    """

    __tablename__ = "activity_logs"
    __table_args__ = (
        Index("idx_activity_rfp_created", "rfp_id", "created_at"),
        Index("idx_activity_company_event", "company_id", "event_type"),
        Index("idx_activity_contact", "supplier_contact_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    company_id: Mapped[int | None] = mapped_column(ForeignKey("companies.id", ondelete="CASCADE"), nullable=True)
    rfp_id: Mapped[int | None] = mapped_column(ForeignKey("rfps.id", ondelete="CASCADE"), nullable=True)
    supplier_response_id: Mapped[int | None] = mapped_column(
        ForeignKey("supplier_responses.id", ondelete="SET NULL"), nullable=True
    )
    supplier_contact_id: Mapped[int | None] = mapped_column(
        ForeignKey("supplier_contacts.id", ondelete="SET NULL"), nullable=True
    )
    user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    actor_role: Mapped[str] = mapped_column(String(16), nullable=False)  # BUYER, SUPPLIER, SYSTEM
    event_type: Mapped[str] = mapped_column(String(64), nullable=False)
    summary: Mapped[str] = mapped_column(Text, nullable=False)
    details: Mapped[dict | None] = mapped_column(JSONType, nullable=True)

    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(512), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
