"""Canonical enum values for the tenant-aware schema."""

from __future__ import annotations

import enum


class DealStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    DEPOSIT_TAKEN = "DEPOSIT_TAKEN"
    INVOICED = "INVOICED"
    DELIVERED = "DELIVERED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class VatScheme(str, enum.Enum):
    MARGIN = "MARGIN"
    VAT_QUALIFYING = "VAT_QUALIFYING"


class AddOnVatTreatment(str, enum.Enum):
    STANDARD = "STANDARD"
    EXEMPT = "EXEMPT"


class WarrantyVatTreatment(str, enum.Enum):
    STANDARD = "STANDARD"
    EXEMPT = "EXEMPT"
    NO_VAT = "NO_VAT"


class PaymentType(str, enum.Enum):
    DEPOSIT = "DEPOSIT"
    BALANCE = "BALANCE"
    FINANCE_ADVANCE = "FINANCE_ADVANCE"
    OTHER = "OTHER"


class PaymentMethod(str, enum.Enum):
    CASH = "CASH"
    CARD = "CARD"
    BANK_TRANSFER = "BANK_TRANSFER"
    FINANCE = "FINANCE"
    OTHER = "OTHER"


class PxDisposition(str, enum.Enum):
    RETAIL_STOCK = "RETAIL_STOCK"
    TRADE_SALE = "TRADE_SALE"
    AUCTION = "AUCTION"
    UNDECIDED = "UNDECIDED"


class RequestStatus(str, enum.Enum):
    REQUESTED = "REQUESTED"
    IN_PROGRESS = "IN_PROGRESS"
    DONE = "DONE"
    CANCELLED = "CANCELLED"


class SalesStatus(str, enum.Enum):
    AVAILABLE = "AVAILABLE"
    IN_DEAL = "IN_DEAL"
    COMPLETED = "COMPLETED"


class DocumentType(str, enum.Enum):
    DEPOSIT_RECEIPT = "DEPOSIT_RECEIPT"
    INVOICE = "INVOICE"
    PAYMENT_RECEIPT = "PAYMENT_RECEIPT"


class DocumentStatus(str, enum.Enum):
    ISSUED = "ISSUED"
    VOID = "VOID"


class IssueCategory(str, enum.Enum):
    COSMETIC = "Cosmetic"
    MECHANICAL = "Mechanical"
    ELECTRICAL = "Electrical"
    OTHER = "Other"


class IssueStatus(str, enum.Enum):
    OUTSTANDING = "Outstanding"
    ORDERED = "Ordered"
    IN_PROGRESS = "In Progress"
    COMPLETE = "Complete"
    WONT_FIX = "Won't Fix"


# Free-form stock status used by the prep board; not an enum in storage.
VEHICLE_IN_STOCK = "in_stock"
VEHICLE_LIVE = "live"
VEHICLE_SOLD = "SOLD"

ACTIVE_DEAL_STATUSES = frozenset(
    {DealStatus.DRAFT, DealStatus.DEPOSIT_TAKEN, DealStatus.INVOICED, DealStatus.DELIVERED}
)
OPEN_ISSUE_STATUSES = frozenset({IssueStatus.OUTSTANDING, IssueStatus.ORDERED, IssueStatus.IN_PROGRESS})
