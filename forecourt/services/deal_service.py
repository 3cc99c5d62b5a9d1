"""Deal lifecycle service: every transition runs as one unit of work.

Each public operation re-reads the deal (locking it where the backend
supports ``SELECT ... FOR UPDATE``), validates the move against the deal
state machine, then applies all side effects on the same session: payments,
vehicle status, part-exchange stock and document snapshots. Activity events
are emitted only once the transaction has committed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from sqlalchemy import select, update

from forecourt.core.config import Config, get_config
from forecourt.core.exceptions import (
    ConfirmationRequiredError,
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from forecourt.core.logging import LogContext
from forecourt.models.base import utcnow
from forecourt.models.contact import Contact
from forecourt.models.deal import Deal, DealAddOn, DealPartExchange, DealPayment, DealRequest
from forecourt.models.enums import (
    ACTIVE_DEAL_STATUSES,
    OPEN_ISSUE_STATUSES,
    AddOnVatTreatment,
    DealStatus,
    DocumentType,
    IssueStatus,
    PaymentType,
    RequestStatus,
    SalesStatus,
    VatScheme,
    WarrantyVatTreatment,
)
from forecourt.models.sales_document import SalesDocument
from forecourt.models.tenant import Tenant
from forecourt.models.vehicle import VehicleIssue
from forecourt.orchestration.state_machine import DEAL_STATE_MACHINE, require_customer
from forecourt.services import money
from forecourt.services.activity_service import ActivityService
from forecourt.services.base_service import BaseService
from forecourt.services.document_service import DocumentService
from forecourt.services.part_exchange_service import ConversionReport, PartExchangeService, ReversalReport
from forecourt.services.payment_ledger import PaymentLedger
from forecourt.services.vehicle_service import VehicleService

logger = logging.getLogger(__name__)

DEFAULT_CANCEL_REASON = "Cancelled by user"

SIV_FIELDS = frozenset({"purchase_price_net", "siv_amendment_reason"})
DELIVERY_FIELDS = frozenset({"delivery_amount_gross", "delivery_is_free", "delivery_notes"})
FINANCE_FIELDS = frozenset({"is_financed", "finance_company_contact_id", "finance_to_be_confirmed"})
WARRANTY_FIELDS = frozenset(
    {
        "warranty_included",
        "warranty_name",
        "warranty_duration_months",
        "warranty_claim_limit",
        "warranty_price_gross",
        "warranty_vat_treatment",
    }
)
GENERAL_FIELDS = frozenset(
    {
        "sold_to_contact_id",
        "invoice_to_contact_id",
        "sale_type",
        "buyer_use",
        "sale_channel",
        "vat_scheme",
        "vehicle_price_gross",
        "notes",
        "internal_notes",
        "terms_snapshot_text",
        "add_ons",
        "requests",
    }
)
EDITABLE_FIELDS = GENERAL_FIELDS | WARRANTY_FIELDS | DELIVERY_FIELDS | FINANCE_FIELDS | SIV_FIELDS
MONEY_FIELDS = frozenset(
    {"vehicle_price_gross", "delivery_amount_gross", "warranty_price_gross", "warranty_claim_limit", "purchase_price_net"}
)
CONTACT_FIELDS = frozenset({"sold_to_contact_id", "invoice_to_contact_id", "finance_company_contact_id"})
LOCKED_AFTER_INVOICE = {"delivery": DELIVERY_FIELDS, "finance_selection": FINANCE_FIELDS}
PX_EDIT_STATUSES = frozenset({DealStatus.DRAFT, DealStatus.DEPOSIT_TAKEN})
PX_SETTLEMENT_ONLY_STATUSES = frozenset({DealStatus.INVOICED, DealStatus.DELIVERED})
SIGNING_STATUSES = frozenset({DealStatus.INVOICED, DealStatus.DELIVERED})
DEPOSIT_SIGNING_STATUSES = frozenset(
    {DealStatus.DEPOSIT_TAKEN, DealStatus.INVOICED, DealStatus.DELIVERED, DealStatus.COMPLETED}
)
DELETABLE_STATUSES = frozenset({DealStatus.DRAFT, DealStatus.CANCELLED})


@dataclass
class DepositResult:
    deal: Deal
    document: SalesDocument
    share_token: str | None
    total_deposit_paid: Decimal


@dataclass
class PaymentResult:
    deal: Deal
    payment: DealPayment
    balance_before: Decimal
    balance_after: Decimal
    is_fully_paid: bool
    document: SalesDocument | None = None
    share_token: str | None = None


@dataclass
class InvoiceResult:
    deal: Deal
    document: SalesDocument
    share_token: str | None


@dataclass
class CompletionResult:
    deal: Deal
    is_fully_paid: bool
    balance_due: Decimal
    message: str
    part_exchanges: ConversionReport = field(default_factory=ConversionReport)


@dataclass
class CancellationResult:
    deal: Deal
    was_completed: bool
    vehicle_restored: dict[str, Any] | None
    part_exchanges: ReversalReport = field(default_factory=ReversalReport)
    cancelled_requests: int = 0
    resolved_issues: int = 0


@dataclass
class DeletionResult:
    deal_id: int
    deal_number: str
    vehicle_id: int
    previous_status: DealStatus
    vehicle_released: bool

    @property
    def message(self) -> str:
        return "Draft deleted" if self.previous_status == DealStatus.DRAFT else "Cancelled deal deleted"


def _status(deal: Deal) -> DealStatus:
    return DealStatus(deal.status)


class DealService(BaseService):
    """Tenant-scoped deal lifecycle operations."""

    def __init__(self, db=None, config: Config | None = None) -> None:
        super().__init__(db)
        self.config = config or get_config()
        self.vehicles = VehicleService(self.db)
        self.part_exchanges = PartExchangeService(self.db, vehicles=self.vehicles)
        self.documents = DocumentService(self.db, config=self.config)
        self.activity = ActivityService(self.db)
        self.state_machine = DEAL_STATE_MACHINE

    # Lookups

    def get_deal(self, tenant_id: int, deal_id: int) -> Deal:
        deal = self.db.query(Deal).filter(Deal.tenant_id == tenant_id, Deal.id == deal_id).first()
        if deal is None:
            raise NotFoundError(f"Deal {deal_id} not found.")
        return deal

    def list_deals(
        self,
        tenant_id: int,
        status: DealStatus | None = None,
        vehicle_id: int | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Deal]:
        query = self.db.query(Deal).filter(Deal.tenant_id == tenant_id)
        if status is not None:
            query = query.filter(Deal.status == status)
        if vehicle_id is not None:
            query = query.filter(Deal.vehicle_id == vehicle_id)
        return query.order_by(Deal.id.desc()).offset(offset).limit(limit).all()

    def get_totals(self, tenant_id: int, deal_id: int) -> money.DealTotals:
        return money.calculate_deal_totals(self.get_deal(tenant_id, deal_id))

    def _load_for_update(self, tenant_id: int, deal_id: int) -> Deal:
        deal = (
            self.db.query(Deal)
            .filter(Deal.tenant_id == tenant_id, Deal.id == deal_id)
            .populate_existing()
            .with_for_update()
            .first()
        )
        if deal is None:
            raise NotFoundError(f"Deal {deal_id} not found.")
        return deal

    def _tenant(self, tenant_id: int) -> Tenant:
        tenant = self.db.get(Tenant, tenant_id)
        if tenant is None:
            raise NotFoundError(f"Tenant {tenant_id} not found.")
        return tenant

    def _require_contact(self, tenant_id: int, contact_id: int | None) -> None:
        if contact_id is None:
            return
        exists = (
            self.db.query(Contact.id).filter(Contact.tenant_id == tenant_id, Contact.id == contact_id).first()
        )
        if exists is None:
            raise NotFoundError(f"Contact {contact_id} not found.")

    def _allocate_deal_number(self, tenant: Tenant) -> str:
        self.db.execute(
            update(Tenant)
            .where(Tenant.id == tenant.id)
            .values(next_deal_number=Tenant.next_deal_number + 1)
            .execution_options(synchronize_session=False)
        )
        next_number = self.db.execute(select(Tenant.next_deal_number).where(Tenant.id == tenant.id)).scalar_one()
        return f"{tenant.deal_number_prefix}{next_number - 1:05d}"

    def _emit(self, event: str, deal: Deal, tenant_id: int, user_id: int | None, **fields: Any) -> None:
        context = LogContext(tenant_id=tenant_id, user_id=user_id, deal_id=deal.id, vehicle_id=deal.vehicle_id)
        self.activity.emit(event, context, **fields)

    # Creation

    def create_deal(
        self,
        tenant_id: int,
        vehicle_id: int,
        user_id: int | None = None,
        sold_to_contact_id: int | None = None,
        invoice_to_contact_id: int | None = None,
        vehicle_price_gross: Any = None,
        vat_scheme: VatScheme | str | None = None,
        sale_type: str | None = None,
        buyer_use: str | None = None,
        sale_channel: str | None = None,
        notes: str | None = None,
    ) -> Deal:
        with self.unit_of_work():
            tenant = self._tenant(tenant_id)
            vehicle = self.vehicles.get(tenant_id, vehicle_id)
            if vehicle.purchase_price_net is None:
                raise ValidationError("Vehicle needs a purchase price (SIV) before it can be sold.")
            if vehicle.sales_status == SalesStatus.COMPLETED:
                raise ConflictError(f"Vehicle {vehicle.vrm} has already been sold.")
            active = (
                self.db.query(Deal.id)
                .filter(
                    Deal.tenant_id == tenant_id,
                    Deal.vehicle_id == vehicle_id,
                    Deal.status.in_(list(ACTIVE_DEAL_STATUSES)),
                )
                .first()
            )
            if active is not None:
                raise ConflictError(f"Vehicle {vehicle.vrm} already has an active deal.")
            self._require_contact(tenant_id, sold_to_contact_id)
            self._require_contact(tenant_id, invoice_to_contact_id)

            scheme = self._coerce(VatScheme, vat_scheme, "VAT scheme") if vat_scheme else None
            scheme = scheme or vehicle.vat_scheme or VatScheme.MARGIN
            price = money.vehicle_breakdown(vehicle_price_gross, scheme) if vehicle_price_gross is not None else None

            deal = Deal(
                tenant_id=tenant_id,
                deal_number=self._allocate_deal_number(tenant),
                vehicle_id=vehicle.id,
                sold_to_contact_id=sold_to_contact_id,
                invoice_to_contact_id=invoice_to_contact_id,
                status=DealStatus.DRAFT,
                vat_scheme=scheme,
                vehicle_price_net=price.net if price else None,
                vehicle_vat_amount=price.vat if price else None,
                vehicle_price_gross=price.gross if price else None,
                purchase_price_net=vehicle.purchase_price_net,
                sale_type=sale_type,
                buyer_use=buyer_use,
                sale_channel=sale_channel,
                notes=notes,
                created_by_user_id=user_id,
                updated_by_user_id=user_id,
            )
            self.db.add(deal)
            self.vehicles.mark_in_deal(vehicle)
            self.db.flush()

        self._emit("deal.created", deal, tenant_id, user_id, deal_number=deal.deal_number)
        return deal

    # Payments

    def take_deposit(
        self,
        tenant_id: int,
        deal_id: int,
        amount: Any,
        method: Any,
        user_id: int | None = None,
        paid_at=None,
        reference: str | None = None,
        notes: str | None = None,
    ) -> DepositResult:
        with self.unit_of_work():
            deal = self._load_for_update(tenant_id, deal_id)
            status = _status(deal)
            if status in (DealStatus.CANCELLED, DealStatus.COMPLETED):
                raise ValidationError(f"Cannot take a deposit on a {status.value.lower()} deal.")
            require_customer(deal)

            ledger = PaymentLedger(deal)
            payment = ledger.record(PaymentType.DEPOSIT, amount, method, paid_at=paid_at, reference=reference, notes=notes)
            tenant = self._tenant(tenant_id)
            document_number = self.documents.allocate_number(tenant, DocumentType.DEPOSIT_RECEIPT)
            if not payment.reference:
                payment.reference = document_number

            now = utcnow()
            if deal.deposit_taken_at is None:
                deal.deposit_taken_at = now
            if status == DealStatus.DRAFT:
                self.state_machine.transition(deal, DealStatus.DEPOSIT_TAKEN)
            if deal.delivery_original_amount_on_deposit is None:
                deal.delivery_original_amount_on_deposit = money.to_money(deal.delivery_amount_gross)
            deal.updated_by_user_id = user_id
            self.vehicles.mark_deposit_taken(deal.vehicle)
            self.db.flush()

            issued = self.documents.issue(
                deal,
                tenant,
                DocumentType.DEPOSIT_RECEIPT,
                user_id=user_id,
                payment=payment,
                document_number=document_number,
            )
            total_deposit = ledger.total_deposit_paid()

        self._emit(
            "deal.deposit_taken",
            deal,
            tenant_id,
            user_id,
            amount=str(payment.amount),
            document_number=issued.document.document_number,
        )
        return DepositResult(
            deal=deal,
            document=issued.document,
            share_token=issued.share_token,
            total_deposit_paid=total_deposit,
        )

    def record_balance_payment(
        self,
        tenant_id: int,
        deal_id: int,
        amount: Any,
        method: Any,
        user_id: int | None = None,
        payment_type: PaymentType | str = PaymentType.BALANCE,
        paid_at=None,
        reference: str | None = None,
        notes: str | None = None,
        issue_receipt: bool = True,
    ) -> PaymentResult:
        with self.unit_of_work():
            deal = self._load_for_update(tenant_id, deal_id)
            if _status(deal) == DealStatus.CANCELLED:
                raise InvalidStateError("Cannot record a payment on a cancelled deal.")
            payment_type = self._coerce(PaymentType, payment_type, "payment type")
            if payment_type == PaymentType.DEPOSIT:
                raise ValidationError("Deposits are recorded with take_deposit.")

            balance_before = money.calculate_deal_totals(deal).balance_due
            payment = PaymentLedger(deal).record(
                payment_type, amount, method, paid_at=paid_at, reference=reference, notes=notes
            )
            deal.updated_by_user_id = user_id
            self.db.flush()

            document = None
            share_token = None
            if issue_receipt:
                tenant = self._tenant(tenant_id)
                number = self.documents.allocate_number(tenant, DocumentType.PAYMENT_RECEIPT)
                if not payment.reference:
                    payment.reference = number
                issued = self.documents.issue(
                    deal,
                    tenant,
                    DocumentType.PAYMENT_RECEIPT,
                    user_id=user_id,
                    payment=payment,
                    document_number=number,
                )
                document, share_token = issued.document, issued.share_token
            balance_after = money.calculate_deal_totals(deal).balance_due

        self._emit("deal.payment_recorded", deal, tenant_id, user_id, amount=str(payment.amount))
        return PaymentResult(
            deal=deal,
            payment=payment,
            balance_before=balance_before,
            balance_after=balance_after,
            is_fully_paid=money.is_fully_paid(balance_after),
            document=document,
            share_token=share_token,
        )

    def refund_payment(self, tenant_id: int, deal_id: int, payment_id: int, user_id: int | None = None) -> DealPayment:
        with self.unit_of_work():
            deal = self._load_for_update(tenant_id, deal_id)
            if _status(deal) == DealStatus.CANCELLED:
                raise InvalidStateError("Cannot refund a payment on a cancelled deal.")
            payment = PaymentLedger(deal).refund(payment_id)
            deal.updated_by_user_id = user_id

        self._emit("deal.payment_refunded", deal, tenant_id, user_id, payment_id=payment_id)
        return payment

    # Invoicing, signing and delivery

    def generate_invoice(self, tenant_id: int, deal_id: int, user_id: int | None = None) -> InvoiceResult:
        with self.unit_of_work():
            deal = self._load_for_update(tenant_id, deal_id)
            if self.documents.has_document(tenant_id, deal.id, DocumentType.INVOICE):
                raise InvalidStateError("An invoice has already been generated for this deal.")
            self.state_machine.assert_transition(deal.status, DealStatus.INVOICED)
            if deal.vehicle_price_gross is None:
                raise ValidationError("Vehicle price must be set before invoicing.")
            self.state_machine.transition(deal, DealStatus.INVOICED)
            deal.invoiced_at = utcnow()
            deal.updated_by_user_id = user_id
            self.db.flush()

            issued = self.documents.issue(deal, self._tenant(tenant_id), DocumentType.INVOICE, user_id=user_id)

        self._emit("deal.invoiced", deal, tenant_id, user_id, document_number=issued.document.document_number)
        return InvoiceResult(deal=deal, document=issued.document, share_token=issued.share_token)

    def sign(
        self,
        tenant_id: int,
        deal_id: int,
        party: str,
        signer_name: str | None = None,
        user_id: int | None = None,
    ) -> Deal:
        """Record a customer or dealer signature."""
        party = (party or "").lower()
        if party not in {"customer", "dealer"}:
            raise ValidationError("Signing party must be 'customer' or 'dealer'.")
        with self.unit_of_work():
            deal = self._load_for_update(tenant_id, deal_id)
            if _status(deal) not in SIGNING_STATUSES:
                raise InvalidStateError("Deals can only be signed once invoiced.")
            now = utcnow()
            if party == "dealer":
                if not signer_name or not signer_name.strip():
                    raise ValidationError("Dealer signer name is required.")
                deal.dealer_signed_name = signer_name.strip()
                deal.dealer_signed_at = now
            else:
                if not signer_name and deal.sold_to is not None:
                    signer_name = deal.sold_to.display_name
                deal.customer_signed_name = signer_name
                deal.customer_signed_at = now
            deal.updated_by_user_id = user_id
            self.documents.refresh_invoice_signature(deal)

        self._emit("deal.signed", deal, tenant_id, user_id, party=party)
        return deal

    def sign_deposit_receipt(
        self,
        tenant_id: int,
        deal_id: int,
        dealer_name: str | None,
        customer_name: str | None = None,
        user_id: int | None = None,
    ) -> SalesDocument:
        """Record dealer (and optionally customer) signatures on the deposit receipt."""
        dealer_name = (dealer_name or "").strip()
        if not dealer_name:
            raise ValidationError("Dealer signer name is required.")
        customer_name = (customer_name or "").strip() or None
        with self.unit_of_work():
            deal = self._load_for_update(tenant_id, deal_id)
            if _status(deal) not in DEPOSIT_SIGNING_STATUSES:
                raise InvalidStateError("Deal must have a deposit receipt before signing.")
            document = self.documents.sign_deposit_receipt(deal, dealer_name, customer_name=customer_name)
            deal.updated_by_user_id = user_id

        self._emit(
            "deal.deposit_signed",
            deal,
            tenant_id,
            user_id,
            document_id=document.id,
            customer_signed=customer_name is not None,
        )
        return document

    def mark_delivered(
        self,
        tenant_id: int,
        deal_id: int,
        user_id: int | None = None,
        delivery_mileage: int | None = None,
        notes: str | None = None,
    ) -> Deal:
        with self.unit_of_work():
            deal = self._load_for_update(tenant_id, deal_id)
            self.state_machine.transition(deal, DealStatus.DELIVERED)
            deal.delivered_at = utcnow()
            if delivery_mileage is not None:
                if delivery_mileage < 0:
                    raise ValidationError("Delivery mileage cannot be negative.")
                deal.delivery_mileage = delivery_mileage
            if notes:
                deal.delivered_notes = notes
            deal.updated_by_user_id = user_id

        self._emit("deal.delivered", deal, tenant_id, user_id)
        return deal

    # Editing

    def update_deal(self, tenant_id: int, deal_id: int, changes: dict[str, Any], user_id: int | None = None) -> Deal:
        with self.unit_of_work():
            deal = self._load_for_update(tenant_id, deal_id)
            status = _status(deal)
            fields = set(changes)

            if status == DealStatus.CANCELLED:
                raise InvalidStateError("Cannot edit a cancelled deal.")
            unknown = fields - EDITABLE_FIELDS
            if unknown:
                raise ValidationError(f"Unknown deal fields: {', '.join(sorted(unknown))}")
            if status == DealStatus.COMPLETED:
                blocked = fields - SIV_FIELDS
                if blocked:
                    raise InvalidStateError(
                        f"Completed deals only accept SIV amendments; rejected: {', '.join(sorted(blocked))}"
                    )
            if status in (DealStatus.INVOICED, DealStatus.DELIVERED):
                for group, group_fields in LOCKED_AFTER_INVOICE.items():
                    if fields & group_fields:
                        raise InvalidStateError(f"{group} cannot be changed once the deal is invoiced.")

            self._apply_changes(deal, tenant_id, changes, user_id)
            deal.updated_by_user_id = user_id

        self._emit("deal.updated", deal, tenant_id, user_id, fields=sorted(fields))
        return deal

    def _apply_changes(self, deal: Deal, tenant_id: int, changes: dict[str, Any], user_id: int | None) -> None:
        for key in CONTACT_FIELDS & set(changes):
            self._require_contact(tenant_id, changes[key])

        for key, value in changes.items():
            if key in {"add_ons", "requests", "purchase_price_net", "siv_amendment_reason"}:
                continue
            if key in MONEY_FIELDS and value is not None:
                value = money.to_money(value)
                if value < 0:
                    raise ValidationError(f"{key} cannot be negative.")
            elif key == "vat_scheme":
                value = self._coerce(VatScheme, value, "VAT scheme")
            elif key == "warranty_vat_treatment":
                value = self._coerce(WarrantyVatTreatment, value, "warranty VAT treatment")
            setattr(deal, key, value)

        if "vehicle_price_gross" in changes or "vat_scheme" in changes:
            if deal.vehicle_price_gross is None:
                deal.vehicle_price_net = deal.vehicle_vat_amount = None
            else:
                price = money.vehicle_breakdown(deal.vehicle_price_gross, deal.vat_scheme)
                deal.vehicle_price_net, deal.vehicle_vat_amount = price.net, price.vat

        if "add_ons" in changes:
            deal.add_ons = [self._build_add_on(item) for item in changes["add_ons"] or []]
        if "requests" in changes:
            self._apply_requests(deal, changes["requests"] or [])
        if SIV_FIELDS & set(changes):
            self._amend_siv(deal, changes, user_id)

    def _amend_siv(self, deal: Deal, changes: dict[str, Any], user_id: int | None) -> None:
        if "siv_amendment_reason" in changes:
            deal.siv_amendment_reason = changes["siv_amendment_reason"]
        if "purchase_price_net" not in changes:
            return
        new_value = money.to_money(changes["purchase_price_net"])
        if new_value < 0:
            raise ValidationError("purchase_price_net cannot be negative.")
        current = money.to_money(deal.purchase_price_net) if deal.purchase_price_net is not None else None
        if current == new_value:
            return
        if deal.siv_original_value is None:
            deal.siv_original_value = current
        deal.purchase_price_net = new_value
        deal.siv_amended_at = utcnow()
        deal.siv_amended_by_user_id = user_id

    def _build_add_on(self, item: dict[str, Any]) -> DealAddOn:
        name = (item.get("name") or "").strip()
        if not name:
            raise ValidationError("Add-on name is required.")
        qty = int(item.get("qty") or 1)
        if qty < 1:
            raise ValidationError("Add-on quantity must be at least 1.")
        unit_price = money.to_money(item.get("unit_price_net"))
        if unit_price < 0:
            raise ValidationError("Add-on price cannot be negative.")
        return DealAddOn(
            name=name,
            qty=qty,
            unit_price_net=unit_price,
            vat_treatment=self._coerce(
                AddOnVatTreatment, item.get("vat_treatment") or AddOnVatTreatment.STANDARD, "add-on VAT treatment"
            ),
            vat_rate=Decimal(str(item.get("vat_rate") if item.get("vat_rate") is not None else money.VAT_RATE)),
        )

    def _apply_requests(self, deal: Deal, items: list[dict[str, Any]]) -> None:
        existing = {request.id: request for request in deal.requests}
        for item in items:
            request_id = item.get("id")
            if request_id is not None:
                request = existing.get(request_id)
                if request is None:
                    raise NotFoundError(f"Request {request_id} not found on deal.")
            else:
                if not (item.get("title") or "").strip():
                    raise ValidationError("Request title is required.")
                request = DealRequest(title=item["title"].strip())
                deal.requests.append(request)
            for key in ("title", "details", "type", "vehicle_issue_id"):
                if key in item and item[key] is not None:
                    setattr(request, key, item[key])
            if item.get("status") is not None:
                request.status = self._coerce(RequestStatus, item["status"], "request status")

    @staticmethod
    def _coerce(enum_cls, value: Any, label: str):
        if isinstance(value, enum_cls):
            return value
        try:
            return enum_cls(str(value).upper())
        except ValueError as exc:
            raise ValidationError(f"Unknown {label}: {value!r}") from exc

    # Part exchanges

    def add_part_exchange(
        self, tenant_id: int, deal_id: int, data: dict[str, Any], user_id: int | None = None
    ) -> DealPartExchange:
        with self.unit_of_work():
            deal = self._load_for_update(tenant_id, deal_id)
            if self.state_machine.is_terminal(deal.status):
                raise InvalidStateError(f"Cannot add a part exchange to a {_status(deal).value.lower()} deal.")
            self._require_contact(tenant_id, data.get("finance_company_contact_id"))
            entry = self.part_exchanges.build_entry(deal, data)
            deal.updated_by_user_id = user_id
            self.db.flush()

        self._emit("deal.part_exchange_added", deal, tenant_id, user_id, vrm=entry.vrm)
        return entry

    def _part_exchange(self, deal: Deal, px_id: int) -> DealPartExchange:
        for entry in deal.part_exchanges:
            if entry.id == px_id:
                return entry
        raise NotFoundError(f"Part exchange {px_id} not found on deal.")

    def update_part_exchange(
        self, tenant_id: int, deal_id: int, px_id: int, data: dict[str, Any], user_id: int | None = None
    ) -> DealPartExchange:
        with self.unit_of_work():
            deal = self._load_for_update(tenant_id, deal_id)
            status = _status(deal)
            settlement_only = set(data) <= {"has_settlement_in_writing"}
            if status not in PX_EDIT_STATUSES and not (settlement_only and status in PX_SETTLEMENT_ONLY_STATUSES):
                raise InvalidStateError(f"Part exchanges cannot be changed on a {status.value.lower()} deal.")
            entry = self._part_exchange(deal, px_id)
            self._require_contact(tenant_id, data.get("finance_company_contact_id"))
            self.part_exchanges.apply_update(deal, entry, data)
            deal.updated_by_user_id = user_id

        self._emit("deal.part_exchange_updated", deal, tenant_id, user_id, vrm=entry.vrm)
        return entry

    def remove_part_exchange(self, tenant_id: int, deal_id: int, px_id: int, user_id: int | None = None) -> Deal:
        with self.unit_of_work():
            deal = self._load_for_update(tenant_id, deal_id)
            status = _status(deal)
            if status not in PX_EDIT_STATUSES:
                raise InvalidStateError(f"Part exchanges cannot be removed from a {status.value.lower()} deal.")
            entry = self._part_exchange(deal, px_id)
            vrm = entry.vrm
            deal.part_exchanges.remove(entry)
            deal.updated_by_user_id = user_id

        self._emit("deal.part_exchange_removed", deal, tenant_id, user_id, vrm=vrm)
        return deal

    # Completion and cancellation

    def mark_completed(
        self,
        tenant_id: int,
        deal_id: int,
        user_id: int | None = None,
        confirm_without_settlement: bool = False,
        completion_notes: str | None = None,
    ) -> CompletionResult:
        with self.unit_of_work():
            deal = self._load_for_update(tenant_id, deal_id)
            status = _status(deal)
            if status == DealStatus.CANCELLED:
                raise InvalidStateError("Cannot complete a cancelled deal.")
            if status == DealStatus.COMPLETED:
                raise InvalidStateError("Deal is already completed.")
            if status == DealStatus.DRAFT:
                raise InvalidStateError("Deal must have a deposit, invoice or delivery before completion.")
            self.state_machine.assert_transition(status, DealStatus.COMPLETED)
            self.state_machine.check_guards(DealStatus.COMPLETED, deal)

            missing_company = self.part_exchanges.missing_finance_company(deal)
            if missing_company:
                raise ValidationError(
                    f"Part exchange finance company is required for: {', '.join(missing_company)}"
                )
            unsettled = self.part_exchanges.unsettled_finance(deal)
            if unsettled and not confirm_without_settlement:
                raise ConfirmationRequiredError(
                    "Part exchange finance has no settlement in writing; confirm to complete anyway.",
                    vrms=unsettled,
                )

            self.state_machine.transition(deal, DealStatus.COMPLETED)
            deal.completed_at = utcnow()
            if completion_notes:
                deal.completion_notes = completion_notes
            deal.updated_by_user_id = user_id
            self.vehicles.mark_sold(deal.vehicle, deal.id)
            conversion = self.part_exchanges.convert_all(deal, tenant_id)

            totals = money.calculate_deal_totals(deal)

        balance = money.ZERO if totals.is_fully_paid else totals.balance_due
        message = (
            "Deal completed successfully"
            if totals.is_fully_paid
            else f"Deal completed with outstanding balance of £{balance:.2f}"
        )
        self._emit(
            "deal.completed",
            deal,
            tenant_id,
            user_id,
            balance_due=str(balance),
            part_exchange_vehicles=[item["vrm"] for item in conversion.created],
        )
        return CompletionResult(
            deal=deal,
            is_fully_paid=totals.is_fully_paid,
            balance_due=balance,
            message=message,
            part_exchanges=conversion,
        )

    def cancel(
        self,
        tenant_id: int,
        deal_id: int,
        reason: str | None = None,
        user_id: int | None = None,
    ) -> CancellationResult:
        with self.unit_of_work():
            deal = self._load_for_update(tenant_id, deal_id)
            status = _status(deal)
            if status == DealStatus.CANCELLED:
                raise InvalidStateError("Deal is already cancelled.")
            was_completed = status == DealStatus.COMPLETED
            reason = (reason or "").strip()
            if was_completed and not reason:
                raise ValidationError("A cancellation reason is required for completed deals.")

            self.state_machine.transition(deal, DealStatus.CANCELLED)
            now = utcnow()
            deal.cancelled_at = now
            deal.cancel_reason = reason or DEFAULT_CANCEL_REASON
            deal.updated_by_user_id = user_id

            cancelled_requests = 0
            linked_issue_ids = []
            for request in deal.requests:
                if request.status in (RequestStatus.REQUESTED, RequestStatus.IN_PROGRESS):
                    request.status = RequestStatus.CANCELLED
                    cancelled_requests += 1
                if request.vehicle_issue_id:
                    linked_issue_ids.append(request.vehicle_issue_id)
            resolved_issues = self._close_linked_issues(linked_issue_ids, now)

            vehicle = deal.vehicle
            reversal = ReversalReport()
            if was_completed:
                self.vehicles.restore(vehicle)
                reversal = self.part_exchanges.reverse_all(deal, tenant_id)
            else:
                self.vehicles.release(vehicle)
            vehicle_restored = {"vehicle_id": vehicle.id, "vrm": vehicle.vrm} if was_completed else None

        self._emit(
            "deal.cancelled",
            deal,
            tenant_id,
            user_id,
            was_completed=was_completed,
            deleted_vehicles=[item["vrm"] for item in reversal.deleted],
            kept_vehicles=[item["vrm"] for item in reversal.kept],
        )
        return CancellationResult(
            deal=deal,
            was_completed=was_completed,
            vehicle_restored=vehicle_restored,
            part_exchanges=reversal,
            cancelled_requests=cancelled_requests,
            resolved_issues=resolved_issues,
        )

    def _close_linked_issues(self, issue_ids: list[int], now) -> int:
        if not issue_ids:
            return 0
        issues = (
            self.db.query(VehicleIssue)
            .filter(VehicleIssue.id.in_(issue_ids), VehicleIssue.status.in_(list(OPEN_ISSUE_STATUSES)))
            .all()
        )
        for issue in issues:
            issue.status = IssueStatus.WONT_FIX
            issue.resolution = "Deal cancelled"
            issue.resolved_at = now
        return len(issues)

    # Documents

    def regenerate_receipt(self, tenant_id: int, deal_id: int, user_id: int | None = None) -> SalesDocument:
        with self.unit_of_work():
            deal = self._load_for_update(tenant_id, deal_id)
            document = self.documents.regenerate_deposit_receipt(deal, self._tenant(tenant_id), user_id=user_id)

        self._emit("deal.receipt_regenerated", deal, tenant_id, user_id, document_id=document.id)
        return document

    # Deletion

    def delete_deal(self, tenant_id: int, deal_id: int, user_id: int | None = None) -> DeletionResult:
        """Hard-delete a draft or cancelled deal along with its documents.

        A draft still holds its vehicle, so the vehicle goes back to stock;
        cancellation has already released it otherwise.
        """
        with self.unit_of_work():
            deal = self._load_for_update(tenant_id, deal_id)
            status = _status(deal)
            if status not in DELETABLE_STATUSES:
                raise InvalidStateError("Only draft or cancelled deals can be permanently deleted.")
            result = DeletionResult(
                deal_id=deal.id,
                deal_number=deal.deal_number,
                vehicle_id=deal.vehicle_id,
                previous_status=status,
                vehicle_released=status == DealStatus.DRAFT,
            )
            if result.vehicle_released:
                self.vehicles.release(deal.vehicle)
            documents = self.documents.delete_for_deal(tenant_id, deal.id)
            self.db.delete(deal)
            self.db.flush()

        context = LogContext(
            tenant_id=tenant_id, user_id=user_id, deal_id=result.deal_id, vehicle_id=result.vehicle_id
        )
        self.activity.emit(
            "deal.deleted",
            context,
            deal_number=result.deal_number,
            previous_status=result.previous_status.value,
            documents_deleted=documents,
        )
        return result
