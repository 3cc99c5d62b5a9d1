"""Vehicle inventory models: vehicles, prep tasks and issues."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from forecourt.models.base import AuditMixin, Base, TenantScopedMixin, enum_column
from forecourt.models.enums import (
    VEHICLE_IN_STOCK,
    IssueCategory,
    IssueStatus,
    SalesStatus,
    VatScheme,
)


class Vehicle(Base, AuditMixin, TenantScopedMixin):
    __tablename__ = "vehicles"
    __table_args__ = (
        UniqueConstraint("tenant_id", "vrm", name="uq_vehicles_tenant_vrm"),
        Index("idx_vehicles_tenant_sales_status", "tenant_id", "sales_status"),
        Index("idx_vehicles_source_deal", "source_deal_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    vrm: Mapped[str] = mapped_column(String(16), nullable=False)
    vin: Mapped[str | None] = mapped_column(String(32))
    make: Mapped[str] = mapped_column(String(120), default="Unknown", nullable=False)
    model: Mapped[str] = mapped_column(String(120), default="Unknown", nullable=False)
    derivative: Mapped[str | None] = mapped_column(String(255))
    year: Mapped[int | None] = mapped_column(Integer)
    mileage: Mapped[int | None] = mapped_column(Integer)
    colour: Mapped[str | None] = mapped_column(String(64))
    fuel_type: Mapped[str | None] = mapped_column(String(32))
    vat_scheme: Mapped[VatScheme | None] = mapped_column(enum_column(VatScheme))
    notes: Mapped[str | None] = mapped_column(Text)

    sales_status: Mapped[SalesStatus] = mapped_column(
        enum_column(SalesStatus), default=SalesStatus.AVAILABLE, nullable=False
    )
    status: Mapped[str] = mapped_column(String(32), default=VEHICLE_IN_STOCK, nullable=False)
    # Soft references to deals; a vehicle outlives the deals that touch it.
    sold_deal_id: Mapped[int | None] = mapped_column(Integer)
    sold_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    source_deal_id: Mapped[int | None] = mapped_column(Integer)
    source_px_vrm: Mapped[str | None] = mapped_column(String(16))

    # Cost basis (SIV)
    purchase_price_net: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    purchase_vat_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    purchase_price_gross: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    purchased_from_contact_id: Mapped[int | None] = mapped_column(ForeignKey("contacts.id", ondelete="SET NULL"))
    purchase_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    purchase_notes: Mapped[str | None] = mapped_column(Text)

    tasks = relationship(
        "VehicleTask", back_populates="vehicle", cascade="all, delete-orphan", order_by="VehicleTask.id"
    )
    issues = relationship(
        "VehicleIssue", back_populates="vehicle", cascade="all, delete-orphan", order_by="VehicleIssue.id"
    )


class VehicleTask(Base, AuditMixin):
    __tablename__ = "vehicle_tasks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    vehicle_id: Mapped[int] = mapped_column(ForeignKey("vehicles.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    status: Mapped[str] = mapped_column(String(32), default="pending", nullable=False)
    source: Mapped[str] = mapped_column(String(32), default="manual", nullable=False)

    vehicle = relationship("Vehicle", back_populates="tasks")


class VehicleIssue(Base, AuditMixin):
    __tablename__ = "vehicle_issues"
    __table_args__ = (Index("idx_vehicle_issues_vehicle_status", "vehicle_id", "status"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    vehicle_id: Mapped[int] = mapped_column(ForeignKey("vehicles.id", ondelete="CASCADE"), nullable=False)
    category: Mapped[IssueCategory] = mapped_column(enum_column(IssueCategory), nullable=False)
    subcategory: Mapped[str] = mapped_column(String(120), default="Other", nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    action_needed: Mapped[str | None] = mapped_column(Text)
    status: Mapped[IssueStatus] = mapped_column(
        enum_column(IssueStatus), default=IssueStatus.OUTSTANDING, nullable=False
    )
    notes: Mapped[str | None] = mapped_column(Text)
    resolution: Mapped[str | None] = mapped_column(String(255))
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    deal_id: Mapped[int | None] = mapped_column(Integer)
    is_transferred: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    source_appraisal_issue_id: Mapped[int | None] = mapped_column(Integer)

    vehicle = relationship("Vehicle", back_populates="issues")


class PrepTaskTemplate(Base, AuditMixin, TenantScopedMixin):
    __tablename__ = "prep_task_templates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
