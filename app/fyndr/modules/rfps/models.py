from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.fyndr.models import Base, JSONType
from app.fyndr.utils import utcnow

if TYPE_CHECKING:
    from app.fyndr.models import Company, User
    from app.fyndr.modules.executive_summary.models import ExecutiveSummaryDocument
    from app.fyndr.modules.portal.models import SupplierBroadcastMessage, SupplierQuestion, SupplierResponse
    from app.fyndr.modules.suppliers.models import SupplierContact


class RFP(Base):
    __tablename__ = "rfps"
    __table_args__ = (
        Index("idx_rfps_company_created", "company_id", "created_at"),
        Index("idx_rfps_stage", "stage"),
        Index("idx_rfps_archived", "is_archived"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    company_id: Mapped[int] = mapped_column(ForeignKey("companies.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)  # owner

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="draft")  # draft, published, completed, cancelled
    priority: Mapped[str] = mapped_column(String(16), nullable=False, default="MEDIUM")
    budget: Mapped[float | None] = mapped_column(Float, nullable=True)
    due_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    internal_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Pipeline stage
    stage: Mapped[str] = mapped_column(String(32), nullable=False, default="INTAKE")
    stage_entered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    stage_sla_days: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Timeline windows
    ask_questions_start: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    ask_questions_end: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    submission_start: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    submission_end: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    demo_window_start: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    demo_window_end: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    award_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    # Requirements and derived snapshots
    requirements: Mapped[list | None] = mapped_column(JSONType, nullable=True)
    applied_template_snapshot: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    opportunity_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    scoring_matrix_snapshot: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    decision_brief_snapshot: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    comparison_narrative: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Award
    award_status: Mapped[str | None] = mapped_column(String(32), nullable=True)  # recommended, awarded, cancelled
    awarded_supplier_id: Mapped[int | None] = mapped_column(Integer, nullable=True)  # supplier_contacts.id
    award_decided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    award_decided_by_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    award_snapshot: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    award_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Archive
    is_archived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    archived_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    archived_by_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    compliance_pack_snapshot: Mapped[dict | None] = mapped_column(JSONType, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow, onupdate=utcnow)

    company: Mapped["Company"] = relationship("Company", lazy="joined")
    owner: Mapped["User | None"] = relationship("User", foreign_keys=[user_id], lazy="joined")

    tasks: Mapped[list["StageTask"]] = relationship(
        back_populates="rfp",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="StageTask.id",
    )
    supplier_contacts: Mapped[list["SupplierContact"]] = relationship(
        "SupplierContact",
        back_populates="rfp",
        cascade="all, delete-orphan",
        order_by="SupplierContact.id",
    )
    supplier_responses: Mapped[list["SupplierResponse"]] = relationship(
        "SupplierResponse",
        back_populates="rfp",
        cascade="all, delete-orphan",
        order_by="SupplierResponse.id",
    )
    questions: Mapped[list["SupplierQuestion"]] = relationship(
        "SupplierQuestion",
        back_populates="rfp",
        cascade="all, delete-orphan",
        order_by="SupplierQuestion.asked_at",
    )
    broadcasts: Mapped[list["SupplierBroadcastMessage"]] = relationship(
        "SupplierBroadcastMessage",
        back_populates="rfp",
        cascade="all, delete-orphan",
        order_by="SupplierBroadcastMessage.created_at",
    )
    executive_summaries: Mapped[list["ExecutiveSummaryDocument"]] = relationship(
        "ExecutiveSummaryDocument",
        back_populates="rfp",
        cascade="all, delete-orphan",
        order_by="ExecutiveSummaryDocument.version",
    )


class StageTask(Base):
    __tablename__ = "rfp_stage_tasks"
    __table_args__ = (Index("idx_stage_tasks_rfp_stage", "rfp_id", "stage"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    rfp_id: Mapped[int] = mapped_column(ForeignKey("rfps.id", ondelete="CASCADE"), nullable=False)
    stage: Mapped[str] = mapped_column(String(32), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    rfp: Mapped[RFP] = relationship(back_populates="tasks")
