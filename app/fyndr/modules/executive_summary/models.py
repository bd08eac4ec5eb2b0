from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.fyndr.models import Base
from app.fyndr.utils import utcnow

if TYPE_CHECKING:
    from app.fyndr.models import User
    from app.fyndr.modules.rfps.models import RFP


class ExecutiveSummaryDocument(Base):
    __tablename__ = "executive_summary_documents"
    __table_args__ = (Index("idx_exec_summary_rfp_version", "rfp_id", "version"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    rfp_id: Mapped[int] = mapped_column(ForeignKey("rfps.id", ondelete="CASCADE"), nullable=False)
    author_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")  # sanitized HTML
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    tone: Mapped[str] = mapped_column(String(32), nullable=False, default="professional")
    audience: Mapped[str] = mapped_column(String(32), nullable=False, default="executive")
    is_official: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow, onupdate=utcnow)

    rfp: Mapped["RFP"] = relationship("RFP", back_populates="executive_summaries")
    author: Mapped["User | None"] = relationship("User", lazy="joined")
