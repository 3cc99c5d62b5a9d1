"""Tenant (dealer) model module."""

from __future__ import annotations

from sqlalchemy import Boolean, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from forecourt.models.base import AuditMixin, Base


class Tenant(Base, AuditMixin):
    __tablename__ = "tenants"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Branding printed on receipts and invoices
    company_name: Mapped[str | None] = mapped_column(String(255))
    address: Mapped[str | None] = mapped_column(Text)
    phone: Mapped[str | None] = mapped_column(String(64))
    email: Mapped[str | None] = mapped_column(String(320))
    vat_registered: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    vat_number: Mapped[str | None] = mapped_column(String(32))
    company_number: Mapped[str | None] = mapped_column(String(32))
    logo_key: Mapped[str | None] = mapped_column(String(512))
    logo_url: Mapped[str | None] = mapped_column(String(1024))

    # Sales settings
    deal_number_prefix: Mapped[str] = mapped_column(String(16), default="D", nullable=False)
    next_deal_number: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    deposit_receipt_prefix: Mapped[str] = mapped_column(String(16), default="DEP", nullable=False)
    invoice_prefix: Mapped[str] = mapped_column(String(16), default="INV", nullable=False)
    payment_receipt_prefix: Mapped[str] = mapped_column(String(16), default="PAY", nullable=False)
    terms_consumer_in_person: Mapped[str | None] = mapped_column(Text)
    terms_consumer_distance: Mapped[str | None] = mapped_column(Text)
    terms_business_in_person: Mapped[str | None] = mapped_column(Text)
    terms_business_distance: Mapped[str | None] = mapped_column(Text)
    no_warranty_message: Mapped[str | None] = mapped_column(Text)

    def terms_for(self, buyer_use: str | None, sale_channel: str | None) -> str:
        """Terms text for the buyer type and channel, falling back to consumer in-person."""
        business = (buyer_use or "").upper() == "BUSINESS"
        distance = (sale_channel or "").upper() == "DISTANCE"
        if business:
            text = self.terms_business_distance if distance else self.terms_business_in_person
        else:
            text = self.terms_consumer_distance if distance else self.terms_consumer_in_person
        return text or self.terms_consumer_in_person or ""
