"""ORM Models for the DUPA estimator — SQLAlchemy 2.0"""
from datetime import datetime, date
from typing import Optional
from sqlalchemy import (
    String, Text, Boolean, Float, DateTime, Date,
    ForeignKey, Index
)
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func
from dupa_estimator.db import Base
from dupa_estimator.models.domain import gen_id


# ── DUPA TEMPLATES ───────────────────────────────────────────────────────────
class DupaTemplate(Base):
    __tablename__ = "dupa_templates"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_id)
    pay_item_number: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    pay_item_description: Mapped[str] = mapped_column(Text, nullable=False)
    unit_of_measurement: Mapped[str] = mapped_column(String(50), nullable=False)
    output_per_hour: Mapped[float] = mapped_column(Float, default=1.0)
    # [{designation, no_of_persons, no_of_hours}]
    labor_template: Mapped[list] = mapped_column(JSONB, default=list)
    # [{kind, equipment_id, description, no_of_units, no_of_hours}]
    equipment_template: Mapped[list] = mapped_column(JSONB, default=list)
    # [{material_code, description, unit, quantity}]
    material_template: Mapped[list] = mapped_column(JSONB, default=list)
    ocm_percentage: Mapped[float] = mapped_column(Float, default=15.0)
    cp_percentage: Mapped[float] = mapped_column(Float, default=10.0)
    vat_percentage: Mapped[float] = mapped_column(Float, default=12.0)
    evaluated: Mapped[Optional[dict]] = mapped_column(JSONB)   # {ocm, cp, vat}
    category: Mapped[str] = mapped_column(String(100), default="")
    specification: Mapped[str] = mapped_column(String(100), default="")
    notes: Mapped[str] = mapped_column(Text, default="")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


# ── MASTER RATES ─────────────────────────────────────────────────────────────
class LaborRate(Base):
    __tablename__ = "labor_rates"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_id)
    location: Mapped[str] = mapped_column(String(255), nullable=False)
    district: Mapped[str] = mapped_column(String(255), default="")
    rates: Mapped[dict] = mapped_column(JSONB, default=dict)   # designation key → PHP/hr
    effective_date: Mapped[Optional[date]] = mapped_column(Date)

    __table_args__ = (
        Index("ix_labor_rates_location_effective", "location", "effective_date"),
    )


class EquipmentRate(Base):
    __tablename__ = "equipment_rates"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_id)
    equipment_id: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="")
    category: Mapped[str] = mapped_column(String(100), default="")
    hourly_rate: Mapped[Optional[float]] = mapped_column(Float)
    rental_rate: Mapped[Optional[float]] = mapped_column(Float)   # per 8-hr day
    effective_date: Mapped[Optional[date]] = mapped_column(Date)

    __table_args__ = (
        Index("ix_equipment_rates_equipment_effective", "equipment_id", "effective_date"),
    )


class MaterialPrice(Base):
    __tablename__ = "material_prices"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_id)
    material_code: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="")
    unit: Mapped[str] = mapped_column(String(50), default="")
    base_price: Mapped[float] = mapped_column(Float, nullable=False)
    location: Mapped[Optional[str]] = mapped_column(String(255))   # NULL = catalog price
    effective_date: Mapped[Optional[date]] = mapped_column(Date)
    include_hauling: Mapped[bool] = mapped_column(Boolean, default=True)

    __table_args__ = (
        Index("ix_material_prices_code_location", "material_code", "location"),
    )


# ── PROJECTS ─────────────────────────────────────────────────────────────────
class Project(Base):
    __tablename__ = "projects"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_id)
    name: Mapped[str] = mapped_column(String(255), default="")
    location: Mapped[str] = mapped_column(String(255), nullable=False)
    district: Mapped[str] = mapped_column(String(255), default="")
    distance_from_office_km: Mapped[float] = mapped_column(Float, default=0.0)
    # {total_distance_km, free_hauling_distance_km, route_segments[], equipment_*}
    hauling: Mapped[Optional[dict]] = mapped_column(JSONB)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    boq_items: Mapped[list["ProjectBOQItem"]] = relationship(
        "ProjectBOQItem", back_populates="project", cascade="all, delete-orphan"
    )


# ── PROJECT BOQ ──────────────────────────────────────────────────────────────
class ProjectBOQItem(Base):
    """
    One instantiated DUPA. The full rate snapshot lives in ``snapshot`` so a
    save is a single row insert; ``quantity`` and ``total_amount`` are the
    only columns updated afterwards.
    """
    __tablename__ = "project_boq"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True)
    project_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    template_id: Mapped[str] = mapped_column(UUID(as_uuid=False), nullable=False)
    pay_item_number: Mapped[str] = mapped_column(String(50), nullable=False)
    location: Mapped[str] = mapped_column(String(255), nullable=False)
    direct_cost: Mapped[float] = mapped_column(Float, nullable=False)
    unit_cost: Mapped[float] = mapped_column(Float, nullable=False)
    quantity: Mapped[float] = mapped_column(Float, nullable=False)
    total_amount: Mapped[float] = mapped_column(Float, nullable=False)
    snapshot: Mapped[dict] = mapped_column(JSONB, nullable=False)
    instantiated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    project: Mapped["Project"] = relationship("Project", back_populates="boq_items")
