from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.workshop.models import Base

if TYPE_CHECKING:
    from app.workshop.modules.parts.models import Part


class Project(Base):
    __tablename__ = "projects"
    __table_args__ = (
        Index("idx_projects_name", "name"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    part_number_prefix: Mapped[str] = mapped_column(String(32), nullable=False)  # digits only, e.g. "254"

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    parts: Mapped[list["Part"]] = relationship(
        "Part",
        back_populates="project",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="Part.part_number",
    )
