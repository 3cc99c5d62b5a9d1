"""Deal model module: the sale aggregate and the child rows it owns."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.ext.orderinglist import ordering_list
from sqlalchemy.orm import Mapped, mapped_column, relationship

from forecourt.models.base import AuditMixin, Base, TenantScopedMixin, enum_column
from forecourt.models.enums import (
    AddOnVatTreatment,
    DealStatus,
    PaymentMethod,
    PaymentType,
    PxDisposition,
    RequestStatus,
    VatScheme,
    WarrantyVatTreatment,
)


class Deal(Base, AuditMixin, TenantScopedMixin):
    __tablename__ = "deals"
    __table_args__ = (
        UniqueConstraint("tenant_id", "deal_number", name="uq_deals_tenant_number"),
        Index("idx_deals_tenant_status", "tenant_id", "status"),
        Index("idx_deals_tenant_vehicle", "tenant_id", "vehicle_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    deal_number: Mapped[str] = mapped_column(String(32), nullable=False)
    vehicle_id: Mapped[int] = mapped_column(ForeignKey("vehicles.id", ondelete="RESTRICT"), nullable=False)
    sold_to_contact_id: Mapped[int | None] = mapped_column(ForeignKey("contacts.id", ondelete="SET NULL"))
    invoice_to_contact_id: Mapped[int | None] = mapped_column(ForeignKey("contacts.id", ondelete="SET NULL"))
    status: Mapped[DealStatus] = mapped_column(enum_column(DealStatus), default=DealStatus.DRAFT, nullable=False)
    vat_scheme: Mapped[VatScheme] = mapped_column(enum_column(VatScheme), default=VatScheme.MARGIN, nullable=False)

    vehicle_price_net: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    vehicle_vat_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    vehicle_price_gross: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))

    # SIV snapshot and amendment audit
    purchase_price_net: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    siv_original_value: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    siv_amendment_reason: Mapped[str | None] = mapped_column(Text)
    siv_amended_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    siv_amended_by_user_id: Mapped[int | None] = mapped_column(Integer)

    sale_type: Mapped[str | None] = mapped_column(String(32))
    buyer_use: Mapped[str | None] = mapped_column(String(32))
    sale_channel: Mapped[str | None] = mapped_column(String(32))

    delivery_amount_gross: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    delivery_is_free: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    delivery_notes: Mapped[str | None] = mapped_column(Text)
    delivery_original_amount_on_deposit: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))

    warranty_included: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    warranty_name: Mapped[str | None] = mapped_column(String(255))
    warranty_duration_months: Mapped[int | None] = mapped_column(Integer)
    warranty_claim_limit: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    warranty_price_gross: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    warranty_vat_treatment: Mapped[WarrantyVatTreatment] = mapped_column(
        enum_column(WarrantyVatTreatment), default=WarrantyVatTreatment.NO_VAT, nullable=False
    )

    is_financed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    finance_company_contact_id: Mapped[int | None] = mapped_column(ForeignKey("contacts.id", ondelete="SET NULL"))
    finance_to_be_confirmed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    customer_signed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    customer_signed_name: Mapped[str | None] = mapped_column(String(255))
    dealer_signed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    dealer_signed_name: Mapped[str | None] = mapped_column(String(255))

    notes: Mapped[str | None] = mapped_column(Text)
    internal_notes: Mapped[str | None] = mapped_column(Text)
    terms_snapshot_text: Mapped[str | None] = mapped_column(Text)

    deposit_taken_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    invoiced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    delivery_mileage: Mapped[int | None] = mapped_column(Integer)
    delivered_notes: Mapped[str | None] = mapped_column(Text)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completion_notes: Mapped[str | None] = mapped_column(Text)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    cancel_reason: Mapped[str | None] = mapped_column(Text)

    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"))
    updated_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"))

    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    vehicle = relationship("Vehicle")
    sold_to = relationship("Contact", foreign_keys=[sold_to_contact_id])
    invoice_to = relationship("Contact", foreign_keys=[invoice_to_contact_id])
    finance_company = relationship("Contact", foreign_keys=[finance_company_contact_id])
    created_by = relationship("User", foreign_keys=[created_by_user_id])

    add_ons = relationship(
        "DealAddOn",
        back_populates="deal",
        order_by="DealAddOn.position",
        collection_class=ordering_list("position"),
        cascade="all, delete-orphan",
    )
    payments = relationship(
        "DealPayment",
        back_populates="deal",
        order_by="DealPayment.position",
        collection_class=ordering_list("position"),
        cascade="all, delete-orphan",
    )
    part_exchanges = relationship(
        "DealPartExchange",
        back_populates="deal",
        order_by="DealPartExchange.position",
        collection_class=ordering_list("position"),
        cascade="all, delete-orphan",
    )
    requests = relationship(
        "DealRequest",
        back_populates="deal",
        order_by="DealRequest.position",
        collection_class=ordering_list("position"),
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def customer_id(self) -> int | None:
        return self.sold_to_contact_id or self.invoice_to_contact_id


class DealAddOn(Base):
    __tablename__ = "deal_add_ons"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    deal_id: Mapped[int] = mapped_column(ForeignKey("deals.id", ondelete="CASCADE"), nullable=False, index=True)
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    qty: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    unit_price_net: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0.00"), nullable=False)
    vat_treatment: Mapped[AddOnVatTreatment] = mapped_column(
        enum_column(AddOnVatTreatment), default=AddOnVatTreatment.STANDARD, nullable=False
    )
    vat_rate: Mapped[Decimal] = mapped_column(Numeric(5, 4), default=Decimal("0.20"), nullable=False)

    deal = relationship("Deal", back_populates="add_ons")


class DealPayment(Base, AuditMixin):
    __tablename__ = "deal_payments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    deal_id: Mapped[int] = mapped_column(ForeignKey("deals.id", ondelete="CASCADE"), nullable=False, index=True)
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    type: Mapped[PaymentType] = mapped_column(enum_column(PaymentType), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    method: Mapped[PaymentMethod] = mapped_column(enum_column(PaymentMethod), nullable=False)
    paid_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    reference: Mapped[str | None] = mapped_column(String(120))
    notes: Mapped[str | None] = mapped_column(Text)
    is_refunded: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    refunded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    deal = relationship("Deal", back_populates="payments")


class DealPartExchange(Base, AuditMixin):
    __tablename__ = "deal_part_exchanges"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    deal_id: Mapped[int] = mapped_column(ForeignKey("deals.id", ondelete="CASCADE"), nullable=False, index=True)
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    vrm: Mapped[str] = mapped_column(String(16), nullable=False)
    vin: Mapped[str | None] = mapped_column(String(32))
    make: Mapped[str | None] = mapped_column(String(120))
    model: Mapped[str | None] = mapped_column(String(120))
    year: Mapped[int | None] = mapped_column(Integer)
    mileage: Mapped[int | None] = mapped_column(Integer)
    colour: Mapped[str | None] = mapped_column(String(64))
    fuel_type: Mapped[str | None] = mapped_column(String(32))
    allowance: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0.00"), nullable=False)
    settlement: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0.00"), nullable=False)
    vat_qualifying: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    has_finance: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    finance_company_contact_id: Mapped[int | None] = mapped_column(ForeignKey("contacts.id", ondelete="SET NULL"))
    has_settlement_in_writing: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    disposition: Mapped[PxDisposition | None] = mapped_column(enum_column(PxDisposition))
    condition_notes: Mapped[str | None] = mapped_column(Text)
    source_appraisal_id: Mapped[int | None] = mapped_column(ForeignKey("appraisals.id", ondelete="SET NULL"))
    # Soft reference; the converted vehicle may be deleted on reversal.
    converted_to_vehicle_id: Mapped[int | None] = mapped_column(Integer)

    deal = relationship("Deal", back_populates="part_exchanges")
    finance_company = relationship("Contact")


class DealRequest(Base, AuditMixin):
    __tablename__ = "deal_requests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    deal_id: Mapped[int] = mapped_column(ForeignKey("deals.id", ondelete="CASCADE"), nullable=False, index=True)
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    details: Mapped[str | None] = mapped_column(Text)
    type: Mapped[str] = mapped_column(String(32), default="OTHER", nullable=False)
    status: Mapped[RequestStatus] = mapped_column(
        enum_column(RequestStatus), default=RequestStatus.REQUESTED, nullable=False
    )
    vehicle_issue_id: Mapped[int | None] = mapped_column(ForeignKey("vehicle_issues.id", ondelete="SET NULL"))

    deal = relationship("Deal", back_populates="requests")
