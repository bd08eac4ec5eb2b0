from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.fyndr.models import Base, JSONType
from app.fyndr.utils import utcnow

if TYPE_CHECKING:
    from app.fyndr.models import User


class RequirementBlock(Base):
    """A reusable requirement kept in the company library."""

    __tablename__ = "requirement_blocks"
    __table_args__ = (
        Index("idx_requirement_blocks_company", "company_id", "is_archived"),
        Index("idx_requirement_blocks_category", "category", "subcategory"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    company_id: Mapped[int] = mapped_column(ForeignKey("companies.id", ondelete="CASCADE"), nullable=False)
    created_by_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str] = mapped_column(String(128), nullable=False)
    subcategory: Mapped[str | None] = mapped_column(String(128), nullable=True)
    # {question, mustHave, scoringType, weight, notes}
    content_json: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    visibility: Mapped[str] = mapped_column(String(16), nullable=False, default="company")  # company, private
    is_archived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow, onupdate=utcnow)

    created_by: Mapped["User | None"] = relationship("User", lazy="joined")
    versions: Mapped[list["RequirementBlockVersion"]] = relationship(
        back_populates="block",
        cascade="all, delete-orphan",
        order_by="RequirementBlockVersion.version.desc()",
    )


class RequirementBlockVersion(Base):
    __tablename__ = "requirement_block_versions"
    __table_args__ = (UniqueConstraint("block_id", "version", name="uq_requirement_block_version"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    block_id: Mapped[int] = mapped_column(ForeignKey("requirement_blocks.id", ondelete="CASCADE"), nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    content_json: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    created_by_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    block: Mapped[RequirementBlock] = relationship(back_populates="versions")


class RfpTemplate(Base):
    __tablename__ = "rfp_templates"
    __table_args__ = (Index("idx_rfp_templates_company", "company_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    company_id: Mapped[int] = mapped_column(ForeignKey("companies.id", ondelete="CASCADE"), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    requirements: Mapped[list | None] = mapped_column(JSONType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
