"""ORM Models for ScopeWorks — SQLAlchemy 2.0"""
import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import (
    String, Text, Boolean, Integer, Numeric, Float, DateTime,
    ForeignKey, UniqueConstraint, Index
)
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from scopeworks.db import Base


def gen_uuid():
    return str(uuid.uuid4())


# ── RATE CARD ─────────────────────────────────────────────────────────────────
class Role(Base):
    __tablename__ = "roles"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    title: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    base_cost_day: Mapped[float] = mapped_column(Numeric(10, 2), nullable=False, default=0)
    # Fraction, e.g. 0.3000 = 30 %
    markup_pct: Mapped[float] = mapped_column(Numeric(6, 4), nullable=False, default=0.3)
    sort_order: Mapped[int] = mapped_column(Integer, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


# ── OVERHEADS & SETTINGS ──────────────────────────────────────────────────────
class OverheadItem(Base):
    __tablename__ = "overhead_items"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    category: Mapped[str] = mapped_column(String(50), nullable=False, default="subscription")
    monthly_cost: Mapped[float] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    sort_order: Mapped[int] = mapped_column(Integer, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class Setting(Base):
    __tablename__ = "settings"
    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value: Mapped[Any] = mapped_column(JSONB, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


# ── SERVICE LIBRARY ───────────────────────────────────────────────────────────
class ServiceLibraryItem(Base):
    __tablename__ = "service_library"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    phase: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    typical_effort_min: Mapped[Optional[float]] = mapped_column(Numeric(6, 1))
    typical_effort_max: Mapped[Optional[float]] = mapped_column(Numeric(6, 1))
    typical_team: Mapped[Optional[list]] = mapped_column(JSONB)
    sort_order: Mapped[int] = mapped_column(Integer, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)


# ── PROJECTS & VERSIONS ───────────────────────────────────────────────────────
class Project(Base):
    __tablename__ = "projects"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    slug: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    client_name: Mapped[str] = mapped_column(String(255), nullable=False)
    project_name: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft")
    # No FK: versions reference projects, and the pointer is set after v1 exists
    current_version_id: Mapped[Optional[str]] = mapped_column(UUID(as_uuid=False))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    versions: Mapped[list["ProjectVersion"]] = relationship(
        "ProjectVersion", back_populates="project", order_by="ProjectVersion.version_number"
    )


class ProjectVersion(Base):
    __tablename__ = "project_versions"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    project_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    version_number: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[Optional[str]] = mapped_column(String(255))
    # Whole phases → deliverables tree; always read and written as one document
    snapshot: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    # Double precision: frozen totals are stored unrounded, rounding is display-only
    total_investment: Mapped[Optional[float]] = mapped_column(Float(precision=53))
    total_internal_cost: Mapped[Optional[float]] = mapped_column(Float(precision=53))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    project: Mapped["Project"] = relationship("Project", back_populates="versions")

    __table_args__ = (
        UniqueConstraint("project_id", "version_number", name="uq_project_version_number"),
        Index("idx_project_versions_project", "project_id"),
    )
