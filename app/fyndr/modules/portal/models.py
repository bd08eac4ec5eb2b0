from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import BigInteger, DateTime, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.fyndr.models import Base, JSONType
from app.fyndr.utils import utcnow

if TYPE_CHECKING:
    from app.fyndr.modules.rfps.models import RFP
    from app.fyndr.modules.suppliers.models import SupplierContact


ATTACHMENT_TYPES = (
    "GENERAL",
    "PRICING_SHEET",
    "REQUIREMENTS_MATRIX",
    "PRESENTATION",
    "DEMO_RECORDING",
    "CONTRACT_DRAFT",
    "OTHER",
)


class SupplierResponse(Base):
    __tablename__ = "supplier_responses"
    __table_args__ = (Index("idx_supplier_responses_rfp_status", "rfp_id", "status"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    rfp_id: Mapped[int] = mapped_column(ForeignKey("rfps.id", ondelete="CASCADE"), nullable=False)
    supplier_contact_id: Mapped[int] = mapped_column(
        ForeignKey("supplier_contacts.id", ondelete="CASCADE"), nullable=False, unique=True
    )

    status: Mapped[str] = mapped_column(String(16), nullable=False, default="DRAFT")  # DRAFT, SUBMITTED
    structured_answers: Mapped[dict | None] = mapped_column(JSONType, nullable=True)  # requirement id -> text
    notes_from_supplier: Mapped[str | None] = mapped_column(Text, nullable=True)
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    # Scoring artefacts
    extracted_requirements_coverage: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    auto_score_json: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    auto_score_generated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    overrides_json: Mapped[dict | None] = mapped_column(JSONType, nullable=True)  # requirement id -> override
    comments_json: Mapped[dict | None] = mapped_column(JSONType, nullable=True)  # requirement id -> [comment]
    final_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    readiness_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    risk_flags: Mapped[list | None] = mapped_column(JSONType, nullable=True)

    award_outcome_status: Mapped[str | None] = mapped_column(String(32), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow, onupdate=utcnow)

    rfp: Mapped["RFP"] = relationship("RFP", back_populates="supplier_responses")
    supplier_contact: Mapped["SupplierContact"] = relationship("SupplierContact", back_populates="response", lazy="joined")
    attachments: Mapped[list["SupplierResponseAttachment"]] = relationship(
        back_populates="supplier_response",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="SupplierResponseAttachment.created_at",
    )


class SupplierResponseAttachment(Base):
    __tablename__ = "supplier_response_attachments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    supplier_response_id: Mapped[int] = mapped_column(
        ForeignKey("supplier_responses.id", ondelete="CASCADE"), nullable=False, index=True
    )
    file_name: Mapped[str] = mapped_column(String(512), nullable=False)
    file_type: Mapped[str | None] = mapped_column(String(128), nullable=True)
    file_size: Mapped[int] = mapped_column(BigInteger, nullable=False)
    storage_key: Mapped[str] = mapped_column(String(1024), nullable=False)
    attachment_type: Mapped[str] = mapped_column(String(32), nullable=False, default="GENERAL")
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    supplier_response: Mapped[SupplierResponse] = relationship(back_populates="attachments")


class SupplierQuestion(Base):
    __tablename__ = "supplier_questions"
    __table_args__ = (Index("idx_supplier_questions_rfp_status", "rfp_id", "status"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    rfp_id: Mapped[int] = mapped_column(ForeignKey("rfps.id", ondelete="CASCADE"), nullable=False)
    supplier_contact_id: Mapped[int] = mapped_column(ForeignKey("supplier_contacts.id", ondelete="CASCADE"), nullable=False)
    question: Mapped[str] = mapped_column(Text, nullable=False)
    answer: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="PENDING")  # PENDING, ANSWERED
    asked_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    answered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    rfp: Mapped["RFP"] = relationship("RFP", back_populates="questions")
    supplier_contact: Mapped["SupplierContact"] = relationship("SupplierContact", lazy="joined")


class SupplierBroadcastMessage(Base):
    __tablename__ = "supplier_broadcast_messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    rfp_id: Mapped[int] = mapped_column(ForeignKey("rfps.id", ondelete="CASCADE"), nullable=False, index=True)
    created_by_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    rfp: Mapped["RFP"] = relationship("RFP", back_populates="broadcasts")
