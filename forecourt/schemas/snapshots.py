"""Frozen document snapshot structure stored on sales documents."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_NO_WARRANTY_MESSAGE = "Trade Terms - No warranty given or implied"


class SnapshotModel(BaseModel):
    model_config = ConfigDict(extra="forbid")


class Amounts(SnapshotModel):
    net: Decimal = Decimal("0.00")
    vat: Decimal = Decimal("0.00")
    gross: Decimal = Decimal("0.00")


class DealerBranding(SnapshotModel):
    name: str | None = None
    company_name: str | None = None
    address: str | None = None
    phone: str | None = None
    email: str | None = None
    vat_number: str | None = None
    company_number: str | None = None
    logo_url: str | None = None
    is_vat_registered: bool = True


class VehicleIdentity(SnapshotModel):
    vrm: str
    vin: str | None = None
    make: str | None = None
    model: str | None = None
    derivative: str | None = None
    year: int | None = None
    mileage: int | None = None
    colour: str | None = None
    fuel_type: str | None = None


class CustomerIdentity(SnapshotModel):
    name: str | None = None
    company_name: str | None = None
    email: str | None = None
    phone: str | None = None
    address: dict[str, str | None] = Field(default_factory=dict)


class WarrantySnapshot(SnapshotModel):
    included: bool
    name: str | None = None
    duration_months: int | None = None
    claim_limit: Decimal | None = None
    vat_treatment: str | None = None
    amounts: Amounts = Field(default_factory=Amounts)
    trade_terms_text: str | None = None


class AddOnSnapshot(SnapshotModel):
    name: str
    qty: int
    unit_price_net: Decimal
    vat_treatment: str
    amounts: Amounts


class DeliverySnapshot(SnapshotModel):
    is_free: bool
    notes: str | None = None
    amounts: Amounts


class FinanceSnapshot(SnapshotModel):
    is_financed: bool
    finance_company_name: str | None = None
    to_be_confirmed: bool = False


class PartExchangeSnapshot(SnapshotModel):
    vrm: str
    make: str | None = None
    model: str | None = None
    year: int | None = None
    mileage: int | None = None
    allowance: Decimal
    settlement: Decimal
    net_value: Decimal
    vat_qualifying: bool = False
    has_finance: bool = False
    finance_company_name: str | None = None


class PaymentSnapshot(SnapshotModel):
    type: str
    amount: Decimal
    method: str
    paid_at: datetime | None = None
    reference: str | None = None
    is_refunded: bool = False


class RequestSnapshot(SnapshotModel):
    title: str
    details: str | None = None
    type: str | None = None
    status: str


class StaffSnapshot(SnapshotModel):
    name: str | None = None
    email: str | None = None


class SignatureSnapshot(SnapshotModel):
    customer_signed_at: datetime | None = None
    customer_signed_name: str | None = None
    dealer_signed_at: datetime | None = None
    dealer_signed_name: str | None = None


class TotalsSnapshot(SnapshotModel):
    add_ons: Amounts
    vat_total: Decimal
    grand_total: Decimal
    total_paid: Decimal
    total_deposit_paid: Decimal
    part_exchange_net: Decimal
    balance_due: Decimal


class DocumentSnapshot(SnapshotModel):
    """Everything a receipt or invoice prints, frozen at issue time."""

    document_type: str
    document_number: str
    issued_at: datetime
    deal_number: str
    deal_status: str
    dealer: DealerBranding
    vehicle: VehicleIdentity
    customer: CustomerIdentity | None = None
    vat_scheme: str
    vehicle_price: Amounts
    warranty: WarrantySnapshot
    no_warranty_message: str = DEFAULT_NO_WARRANTY_MESSAGE
    add_ons: list[AddOnSnapshot] = Field(default_factory=list)
    delivery: DeliverySnapshot | None = None
    finance: FinanceSnapshot | None = None
    part_exchanges: list[PartExchangeSnapshot] = Field(default_factory=list)
    payments: list[PaymentSnapshot] = Field(default_factory=list)
    totals: TotalsSnapshot
    sale_type: str | None = None
    buyer_use: str | None = None
    sale_channel: str | None = None
    notes: str | None = None
    terms_text: str = ""
    requests: list[RequestSnapshot] = Field(default_factory=list)
    taken_by: StaffSnapshot = Field(default_factory=StaffSnapshot)
    signature: SignatureSnapshot | None = None
    payment: PaymentSnapshot | None = None

    def to_storage(self) -> dict[str, Any]:
        return self.model_dump(mode="json")
