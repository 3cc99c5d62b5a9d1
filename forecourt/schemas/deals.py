"""Deal request/response schemas for API contracts."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

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


class DealCreateRequest(BaseModel):
    vehicle_id: int = Field(ge=1)
    sold_to_contact_id: int | None = Field(default=None, ge=1)
    invoice_to_contact_id: int | None = Field(default=None, ge=1)
    vehicle_price_gross: Decimal | None = Field(default=None, ge=0)
    vat_scheme: VatScheme | None = None
    sale_type: str | None = Field(default=None, max_length=32)
    buyer_use: str | None = Field(default=None, max_length=32)
    sale_channel: str | None = Field(default=None, max_length=32)
    notes: str | None = Field(default=None, max_length=10000)


class AddOnInput(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    qty: int = Field(default=1, ge=1)
    unit_price_net: Decimal = Field(ge=0)
    vat_treatment: AddOnVatTreatment = AddOnVatTreatment.STANDARD
    vat_rate: Decimal | None = Field(default=None, ge=0, le=1)


class RequestInput(BaseModel):
    id: int | None = None
    title: str | None = Field(default=None, max_length=255)
    details: str | None = Field(default=None, max_length=10000)
    type: str | None = Field(default=None, max_length=32)
    status: RequestStatus | None = None
    vehicle_issue_id: int | None = None


class DeliveryInput(BaseModel):
    model_config = ConfigDict(extra="forbid")

    amount_gross: Decimal | None = Field(default=None, ge=0)
    is_free: bool | None = None
    notes: str | None = Field(default=None, max_length=10000)


class WarrantyInput(BaseModel):
    model_config = ConfigDict(extra="forbid")

    included: bool | None = None
    name: str | None = Field(default=None, max_length=255)
    duration_months: int | None = Field(default=None, ge=0)
    claim_limit: Decimal | None = Field(default=None, ge=0)
    price_gross: Decimal | None = Field(default=None, ge=0)
    vat_treatment: WarrantyVatTreatment | None = None


class FinanceSelectionInput(BaseModel):
    model_config = ConfigDict(extra="forbid")

    is_financed: bool | None = None
    finance_company_contact_id: int | None = None
    to_be_confirmed: bool | None = None


_NESTED_PREFIXES = {
    "delivery": {"amount_gross": "delivery_amount_gross", "is_free": "delivery_is_free", "notes": "delivery_notes"},
    "warranty": {
        "included": "warranty_included",
        "name": "warranty_name",
        "duration_months": "warranty_duration_months",
        "claim_limit": "warranty_claim_limit",
        "price_gross": "warranty_price_gross",
        "vat_treatment": "warranty_vat_treatment",
    },
    "finance_selection": {
        "is_financed": "is_financed",
        "finance_company_contact_id": "finance_company_contact_id",
        "to_be_confirmed": "finance_to_be_confirmed",
    },
}


class DealUpdateRequest(BaseModel):
    """Partial deal edit; only fields present in the payload are applied."""

    model_config = ConfigDict(extra="forbid")

    sold_to_contact_id: int | None = None
    invoice_to_contact_id: int | None = None
    sale_type: str | None = Field(default=None, max_length=32)
    buyer_use: str | None = Field(default=None, max_length=32)
    sale_channel: str | None = Field(default=None, max_length=32)
    vat_scheme: VatScheme | None = None
    vehicle_price_gross: Decimal | None = Field(default=None, ge=0)
    notes: str | None = Field(default=None, max_length=10000)
    internal_notes: str | None = Field(default=None, max_length=10000)
    terms_snapshot_text: str | None = None
    delivery: DeliveryInput | None = None
    warranty: WarrantyInput | None = None
    finance_selection: FinanceSelectionInput | None = None
    add_ons: list[AddOnInput] | None = None
    requests: list[RequestInput] | None = None
    purchase_price_net: Decimal | None = Field(default=None, ge=0)
    siv_amendment_reason: str | None = Field(default=None, max_length=2000)

    def to_changes(self) -> dict[str, Any]:
        """Flatten nested sub-objects into column-named changes."""
        changes: dict[str, Any] = {}
        for key in self.model_fields_set:
            value = getattr(self, key)
            if key in _NESTED_PREFIXES:
                if value is None:
                    continue
                mapping = _NESTED_PREFIXES[key]
                for sub_key in value.model_fields_set:
                    changes[mapping[sub_key]] = getattr(value, sub_key)
            elif key == "add_ons":
                changes[key] = [item.model_dump() for item in value or []]
            elif key == "requests":
                changes[key] = [item.model_dump(exclude_unset=True) for item in value or []]
            else:
                changes[key] = value
        return changes


class DepositRequest(BaseModel):
    amount: Decimal
    method: PaymentMethod | None = None
    paid_at: datetime | None = None
    reference: str | None = Field(default=None, max_length=120)
    notes: str | None = Field(default=None, max_length=2000)


class BalancePaymentRequest(DepositRequest):
    payment_type: PaymentType = PaymentType.BALANCE
    issue_receipt: bool = True


class SignRequest(BaseModel):
    party: Literal["customer", "dealer"]
    signer_name: str | None = Field(default=None, max_length=255)


class SignDepositRequest(BaseModel):
    dealer_name: str = Field(min_length=1, max_length=255)
    customer_name: str | None = Field(default=None, max_length=255)


class MarkDeliveredRequest(BaseModel):
    delivery_mileage: int | None = Field(default=None, ge=0)
    notes: str | None = Field(default=None, max_length=10000)


class MarkCompletedRequest(BaseModel):
    confirm_without_settlement: bool = False
    completion_notes: str | None = Field(default=None, max_length=10000)


class CancelRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=2000)


class PartExchangeCreateRequest(BaseModel):
    vrm: str = Field(min_length=1, max_length=16)
    vin: str | None = Field(default=None, max_length=32)
    make: str | None = Field(default=None, max_length=120)
    model: str | None = Field(default=None, max_length=120)
    year: int | None = Field(default=None, ge=1900, le=2100)
    mileage: int | None = Field(default=None, ge=0)
    colour: str | None = Field(default=None, max_length=64)
    fuel_type: str | None = Field(default=None, max_length=32)
    allowance: Decimal = Field(default=Decimal("0"), ge=0)
    settlement: Decimal = Field(default=Decimal("0"), ge=0)
    vat_qualifying: bool = False
    has_finance: bool = False
    finance_company_contact_id: int | None = None
    has_settlement_in_writing: bool = False
    disposition: PxDisposition | None = None
    condition_notes: str | None = Field(default=None, max_length=10000)
    source_appraisal_id: int | None = None


class PartExchangeUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    vrm: str | None = Field(default=None, min_length=1, max_length=16)
    vin: str | None = Field(default=None, max_length=32)
    make: str | None = Field(default=None, max_length=120)
    model: str | None = Field(default=None, max_length=120)
    year: int | None = Field(default=None, ge=1900, le=2100)
    mileage: int | None = Field(default=None, ge=0)
    colour: str | None = Field(default=None, max_length=64)
    fuel_type: str | None = Field(default=None, max_length=32)
    allowance: Decimal | None = Field(default=None, ge=0)
    settlement: Decimal | None = Field(default=None, ge=0)
    vat_qualifying: bool | None = None
    has_finance: bool | None = None
    finance_company_contact_id: int | None = None
    has_settlement_in_writing: bool | None = None
    disposition: PxDisposition | None = None
    condition_notes: str | None = Field(default=None, max_length=10000)
    source_appraisal_id: int | None = None


class AddOnResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    qty: int
    unit_price_net: Decimal
    vat_treatment: AddOnVatTreatment
    vat_rate: Decimal


class PaymentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    type: PaymentType
    amount: Decimal
    method: PaymentMethod
    paid_at: datetime
    reference: str | None = None
    notes: str | None = None
    is_refunded: bool
    refunded_at: datetime | None = None


class PartExchangeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    vrm: str
    make: str | None = None
    model: str | None = None
    year: int | None = None
    mileage: int | None = None
    allowance: Decimal
    settlement: Decimal
    vat_qualifying: bool
    has_finance: bool
    finance_company_contact_id: int | None = None
    has_settlement_in_writing: bool
    disposition: PxDisposition | None = None
    source_appraisal_id: int | None = None
    converted_to_vehicle_id: int | None = None


class RequestResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    details: str | None = None
    type: str
    status: RequestStatus
    vehicle_issue_id: int | None = None


class DealResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    deal_number: str
    vehicle_id: int
    sold_to_contact_id: int | None = None
    invoice_to_contact_id: int | None = None
    status: DealStatus
    vat_scheme: VatScheme
    vehicle_price_net: Decimal | None = None
    vehicle_vat_amount: Decimal | None = None
    vehicle_price_gross: Decimal | None = None
    purchase_price_net: Decimal | None = None
    siv_original_value: Decimal | None = None
    siv_amendment_reason: str | None = None
    sale_type: str | None = None
    buyer_use: str | None = None
    sale_channel: str | None = None
    delivery_amount_gross: Decimal | None = None
    delivery_is_free: bool
    delivery_notes: str | None = None
    warranty_included: bool
    warranty_name: str | None = None
    warranty_price_gross: Decimal | None = None
    warranty_vat_treatment: WarrantyVatTreatment
    is_financed: bool
    finance_company_contact_id: int | None = None
    finance_to_be_confirmed: bool
    customer_signed_at: datetime | None = None
    customer_signed_name: str | None = None
    dealer_signed_at: datetime | None = None
    dealer_signed_name: str | None = None
    notes: str | None = None
    deposit_taken_at: datetime | None = None
    invoiced_at: datetime | None = None
    delivered_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None
    cancel_reason: str | None = None
    add_ons: list[AddOnResponse] = Field(default_factory=list)
    payments: list[PaymentResponse] = Field(default_factory=list)
    part_exchanges: list[PartExchangeResponse] = Field(default_factory=list)
    requests: list[RequestResponse] = Field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None
