from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.workshop.models import Base

if TYPE_CHECKING:
    from app.workshop.modules.projects.models import Project


class Part(Base):
    __tablename__ = "parts"
    __table_args__ = (
        Index("idx_parts_project_id", "project_id"),
        Index("idx_parts_parent_part_id", "parent_part_id"),
        Index("idx_parts_status", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    project_id: Mapped[int] = mapped_column(ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    parent_part_id: Mapped[int | None] = mapped_column(ForeignKey("parts.id"), nullable=True)  # always an assembly

    type: Mapped[str] = mapped_column(String(16), nullable=False, default="part")  # part, assembly
    part_number: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="designing")
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=1)  # 0 high, 1 normal, 2 low

    # Shop details
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    source_material: Mapped[str | None] = mapped_column(String(255), nullable=True)
    have_material: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    cut_length: Mapped[str | None] = mapped_column(String(64), nullable=True)
    quantity: Mapped[str | None] = mapped_column(String(64), nullable=True)
    drawing_created: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    project: Mapped["Project"] = relationship("Project", back_populates="parts")
    parent_part: Mapped[Optional["Part"]] = relationship(
        "Part",
        remote_side=[id],
        back_populates="child_parts",
    )
    child_parts: Mapped[list["Part"]] = relationship(
        "Part",
        back_populates="parent_part",
        lazy="selectin",
        order_by="Part.part_number",
    )
