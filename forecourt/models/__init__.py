"""Modular SQLAlchemy model package for the tenant-aware deal schema."""

from forecourt.models.activity_log import ActivityLog
from forecourt.models.appraisal import Appraisal, AppraisalIssue
from forecourt.models.base import Base
from forecourt.models.contact import Contact
from forecourt.models.deal import Deal, DealAddOn, DealPartExchange, DealPayment, DealRequest
from forecourt.models.enums import (
    AddOnVatTreatment,
    DealStatus,
    DocumentStatus,
    DocumentType,
    IssueCategory,
    IssueStatus,
    PaymentMethod,
    PaymentType,
    PxDisposition,
    RequestStatus,
    SalesStatus,
    VatScheme,
    WarrantyVatTreatment,
)
from forecourt.models.sales_document import DocumentCounter, SalesDocument
from forecourt.models.tenant import Tenant
from forecourt.models.user import User
from forecourt.models.vehicle import PrepTaskTemplate, Vehicle, VehicleIssue, VehicleTask

__all__ = [
    "ActivityLog",
    "AddOnVatTreatment",
    "Appraisal",
    "AppraisalIssue",
    "Base",
    "Contact",
    "Deal",
    "DealAddOn",
    "DealPartExchange",
    "DealPayment",
    "DealRequest",
    "DealStatus",
    "DocumentCounter",
    "DocumentStatus",
    "DocumentType",
    "IssueCategory",
    "IssueStatus",
    "PaymentMethod",
    "PaymentType",
    "PrepTaskTemplate",
    "PxDisposition",
    "RequestStatus",
    "SalesDocument",
    "SalesStatus",
    "Tenant",
    "User",
    "VatScheme",
    "Vehicle",
    "VehicleIssue",
    "VehicleTask",
    "WarrantyVatTreatment",
]
