"""Sales document snapshots: building, issuing, regenerating and sharing."""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any
from urllib.parse import quote, urlencode

from forecourt.core.config import Config, get_config
from forecourt.core.exceptions import ConfigurationError, NotFoundError
from forecourt.models.base import utcnow
from forecourt.models.deal import Deal, DealPayment
from forecourt.models.enums import DocumentStatus, DocumentType
from forecourt.models.sales_document import SalesDocument
from forecourt.models.tenant import Tenant
from forecourt.models.user import User
from forecourt.schemas.snapshots import (
    DEFAULT_NO_WARRANTY_MESSAGE,
    AddOnSnapshot,
    Amounts,
    CustomerIdentity,
    DealerBranding,
    DeliverySnapshot,
    DocumentSnapshot,
    FinanceSnapshot,
    PartExchangeSnapshot,
    PaymentSnapshot,
    RequestSnapshot,
    SignatureSnapshot,
    StaffSnapshot,
    TotalsSnapshot,
    VehicleIdentity,
    WarrantySnapshot,
)
from forecourt.services import money
from forecourt.services.base_service import BaseService
from forecourt.services.document_counter_service import DocumentCounterService
from forecourt.services.part_exchange_service import PartExchangeService

logger = logging.getLogger(__name__)

# Fields copied verbatim from the prior snapshot when a receipt is regenerated.
PRESERVED_ON_REGENERATE = ("payments", "taken_by", "signature")


def _enum_value(value: Any) -> Any:
    return value.value if hasattr(value, "value") else value


def _as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def hash_share_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def generate_share_token() -> tuple[str, str]:
    """Return ``(token, sha256_hex)``; only the hash is ever stored."""
    token = secrets.token_urlsafe(32)
    return token, hash_share_token(token)


def sign_asset_url(key: str, config: Config, now: datetime | None = None) -> str:
    """Time-limited HMAC-signed URL for a stored asset key."""
    if not key:
        raise ValueError("Asset key is empty.")
    if not config.ASSET_SIGNING_SECRET:
        raise ConfigurationError("ASSET_SIGNING_SECRET is not configured.")
    issued = now or utcnow()
    expires = int(issued.timestamp()) + config.LOGO_URL_TTL_SECONDS
    path = quote(key.lstrip("/"))
    message = f"{path}:{expires}".encode("utf-8")
    signature = hmac.new(config.ASSET_SIGNING_SECRET.encode("utf-8"), message, hashlib.sha256).hexdigest()
    return f"{config.ASSET_BASE_URL}/{path}?{urlencode({'expires': expires, 'signature': signature})}"


def build_share_url(token: str | None, config: Config) -> str | None:
    if not token:
        return None
    return f"{config.PUBLIC_BASE_URL}{config.API_PREFIX}/public/documents/{token}"


@dataclass(frozen=True)
class IssuedDocument:
    document: SalesDocument
    share_token: str | None


class DocumentService(BaseService):
    """Builds snapshots from the current deal and persists them as documents.

    Like the other collaborators of the deal service, methods only stage rows;
    the caller's unit of work commits them.
    """

    def __init__(self, db=None, config: Config | None = None) -> None:
        super().__init__(db)
        self.config = config or get_config()
        self.counters = DocumentCounterService(self.db)
        self.part_exchanges = PartExchangeService(self.db)

    # Branding

    def resolve_logo_url(self, tenant: Tenant) -> str | None:
        if not tenant.logo_key:
            return tenant.logo_url
        try:
            return sign_asset_url(tenant.logo_key, self.config)
        except (ConfigurationError, ValueError) as exc:
            logger.warning(
                "document.logo.sign_failed",
                extra={"event": "document.logo.sign_failed", "tenant_id": tenant.id, "error": str(exc)},
            )
            return tenant.logo_url

    def _dealer(self, tenant: Tenant) -> DealerBranding:
        return DealerBranding(
            name=tenant.name,
            company_name=tenant.company_name,
            address=tenant.address,
            phone=tenant.phone,
            email=tenant.email,
            vat_number=tenant.vat_number if tenant.vat_registered else None,
            company_number=tenant.company_number,
            logo_url=self.resolve_logo_url(tenant),
            is_vat_registered=bool(tenant.vat_registered),
        )

    # Snapshot assembly

    def _taken_by(self, user_id: int | None) -> StaffSnapshot:
        if user_id is None:
            return StaffSnapshot()
        user = self.db.get(User, user_id)
        if user is None:
            return StaffSnapshot()
        return StaffSnapshot(name=user.full_name, email=user.email)

    @staticmethod
    def _amounts(breakdown: money.Breakdown) -> Amounts:
        return Amounts(net=breakdown.net, vat=breakdown.vat, gross=breakdown.gross)

    @staticmethod
    def _payment(payment: DealPayment) -> PaymentSnapshot:
        return PaymentSnapshot(
            type=_enum_value(payment.type),
            amount=money.to_money(payment.amount),
            method=_enum_value(payment.method),
            paid_at=payment.paid_at,
            reference=payment.reference,
            is_refunded=bool(payment.is_refunded),
        )

    @staticmethod
    def _deal_signature(deal: Deal) -> SignatureSnapshot | None:
        if not (deal.customer_signed_at or deal.dealer_signed_at):
            return None
        return SignatureSnapshot(
            customer_signed_at=deal.customer_signed_at,
            customer_signed_name=deal.customer_signed_name,
            dealer_signed_at=deal.dealer_signed_at,
            dealer_signed_name=deal.dealer_signed_name,
        )

    def build_snapshot(
        self,
        deal: Deal,
        tenant: Tenant,
        document_type: DocumentType,
        document_number: str,
        issued_at: datetime,
        taken_by_user_id: int | None = None,
        payment: DealPayment | None = None,
    ) -> DocumentSnapshot:
        totals = money.calculate_deal_totals(deal)
        vehicle = deal.vehicle
        customer = deal.sold_to or deal.invoice_to
        no_warranty_message = tenant.no_warranty_message or DEFAULT_NO_WARRANTY_MESSAGE

        if deal.warranty_included:
            warranty = WarrantySnapshot(
                included=True,
                name=deal.warranty_name,
                duration_months=deal.warranty_duration_months,
                claim_limit=deal.warranty_claim_limit,
                vat_treatment=_enum_value(deal.warranty_vat_treatment),
                amounts=self._amounts(totals.warranty),
            )
        else:
            warranty = WarrantySnapshot(included=False, trade_terms_text=no_warranty_message)

        delivery = None
        if deal.delivery_is_free or money.to_money(deal.delivery_amount_gross) > 0:
            delivery = DeliverySnapshot(
                is_free=bool(deal.delivery_is_free),
                notes=deal.delivery_notes,
                amounts=self._amounts(totals.delivery),
            )

        finance = None
        if deal.is_financed:
            company = deal.finance_company
            finance = FinanceSnapshot(
                is_financed=True,
                finance_company_name=(company.company_name or company.display_name) if company else None,
                to_be_confirmed=bool(deal.finance_to_be_confirmed),
            )

        return DocumentSnapshot(
            document_type=document_type.value,
            document_number=document_number,
            issued_at=issued_at,
            deal_number=deal.deal_number,
            deal_status=_enum_value(deal.status),
            dealer=self._dealer(tenant),
            vehicle=VehicleIdentity(
                vrm=vehicle.vrm,
                vin=vehicle.vin,
                make=vehicle.make,
                model=vehicle.model,
                derivative=vehicle.derivative,
                year=vehicle.year,
                mileage=vehicle.mileage,
                colour=vehicle.colour,
                fuel_type=vehicle.fuel_type,
            ),
            customer=(
                CustomerIdentity(
                    name=customer.display_name,
                    company_name=customer.company_name,
                    email=customer.email,
                    phone=customer.phone,
                    address=customer.address,
                )
                if customer
                else None
            ),
            vat_scheme=_enum_value(deal.vat_scheme),
            vehicle_price=self._amounts(totals.vehicle),
            warranty=warranty,
            no_warranty_message=no_warranty_message,
            add_ons=[
                AddOnSnapshot(
                    name=line.name,
                    qty=line.qty,
                    unit_price_net=line.unit_price_net,
                    vat_treatment=line.vat_treatment,
                    amounts=self._amounts(line.amounts),
                )
                for line in totals.add_on_lines
            ],
            delivery=delivery,
            finance=finance,
            part_exchanges=[PartExchangeSnapshot(**summary) for summary in self.part_exchanges.summaries(deal)],
            payments=[self._payment(p) for p in deal.payments],
            totals=TotalsSnapshot(
                add_ons=self._amounts(totals.add_ons),
                vat_total=totals.vat_total,
                grand_total=totals.grand_total,
                total_paid=totals.total_paid,
                total_deposit_paid=totals.total_deposit_paid,
                part_exchange_net=totals.part_exchange_net,
                balance_due=totals.balance_due,
            ),
            sale_type=deal.sale_type,
            buyer_use=deal.buyer_use,
            sale_channel=deal.sale_channel,
            notes=deal.notes,
            terms_text=deal.terms_snapshot_text or tenant.terms_for(deal.buyer_use, deal.sale_channel),
            requests=[
                RequestSnapshot(
                    title=request.title,
                    details=request.details,
                    type=request.type,
                    status=_enum_value(request.status),
                )
                for request in deal.requests
            ],
            taken_by=self._taken_by(taken_by_user_id),
            signature=self._deal_signature(deal),
            payment=self._payment(payment) if payment is not None else None,
        )

    # Issuing

    def _prefix(self, tenant: Tenant, document_type: DocumentType) -> str:
        return {
            DocumentType.DEPOSIT_RECEIPT: tenant.deposit_receipt_prefix,
            DocumentType.INVOICE: tenant.invoice_prefix,
            DocumentType.PAYMENT_RECEIPT: tenant.payment_receipt_prefix,
        }[document_type]

    def allocate_number(self, tenant: Tenant, document_type: DocumentType) -> str:
        return self.counters.allocate(tenant.id, document_type, self._prefix(tenant, document_type))

    def issue(
        self,
        deal: Deal,
        tenant: Tenant,
        document_type: DocumentType,
        user_id: int | None = None,
        payment: DealPayment | None = None,
        document_number: str | None = None,
    ) -> IssuedDocument:
        """Freeze the deal into a new document with a fresh share token."""
        number = document_number or self.allocate_number(tenant, document_type)
        issued_at = utcnow()
        snapshot = self.build_snapshot(
            deal,
            tenant,
            document_type,
            number,
            issued_at,
            taken_by_user_id=user_id,
            payment=payment,
        )
        token, token_hash = generate_share_token()
        document = SalesDocument(
            tenant_id=tenant.id,
            deal_id=deal.id,
            type=document_type,
            document_number=number,
            status=DocumentStatus.ISSUED,
            issued_at=issued_at,
            snapshot_data=snapshot.to_storage(),
            share_token_hash=token_hash,
            share_expires_at=issued_at + timedelta(days=self.config.SHARE_TOKEN_TTL_DAYS),
            created_by_user_id=user_id,
        )
        self.db.add(document)
        self.db.flush()
        logger.info(
            "document.issued",
            extra={
                "event": "document.issued",
                "tenant_id": tenant.id,
                "deal_id": deal.id,
                "document_id": document.id,
                "document_type": document_type.value,
                "document_number": number,
            },
        )
        return IssuedDocument(document=document, share_token=token)

    def regenerate_deposit_receipt(self, deal: Deal, tenant: Tenant, user_id: int | None = None) -> SalesDocument:
        """Refresh the live deposit receipt from the current deal.

        Number, share token and issue time stay as they were; payment history
        and staff attribution are carried over from the previous snapshot.
        """
        document = self.find_active(tenant.id, deal.id, DocumentType.DEPOSIT_RECEIPT)
        if document is None:
            raise NotFoundError("No deposit receipt found for this deal.")

        previous = dict(document.snapshot_data or {})
        snapshot = self.build_snapshot(
            deal,
            tenant,
            DocumentType.DEPOSIT_RECEIPT,
            document.document_number,
            _as_utc(document.issued_at),
        ).to_storage()
        for key in PRESERVED_ON_REGENERATE:
            if key in previous:
                snapshot[key] = previous[key]
        if "payment" in previous:
            snapshot["payment"] = previous["payment"]

        document.snapshot_data = snapshot
        document.regenerated_at = utcnow()
        document.regenerated_by_user_id = user_id
        self.db.flush()
        logger.info(
            "document.regenerated",
            extra={
                "event": "document.regenerated",
                "tenant_id": tenant.id,
                "deal_id": deal.id,
                "document_id": document.id,
            },
        )
        return document

    # Signatures

    @staticmethod
    def _stamp_signature(document: SalesDocument, signature: SignatureSnapshot) -> None:
        data = dict(document.snapshot_data or {})
        data["signature"] = signature.model_dump(mode="json")
        document.snapshot_data = data

    def refresh_invoice_signature(self, deal: Deal) -> SalesDocument | None:
        """Copy the deal's signatures onto its live invoice, if one was issued."""
        document = self.find_active(deal.tenant_id, deal.id, DocumentType.INVOICE)
        signature = self._deal_signature(deal)
        if document is None or signature is None:
            return document
        self._stamp_signature(document, signature)
        self.db.flush()
        return document

    def sign_deposit_receipt(
        self,
        deal: Deal,
        dealer_name: str,
        customer_name: str | None = None,
        signed_at: datetime | None = None,
    ) -> SalesDocument:
        """Sign the live deposit receipt.

        Receipt signatures live on the receipt snapshot only and are kept apart
        from the invoice signatures held on the deal. A customer signature
        already on the receipt survives a dealer-only re-sign.
        """
        document = self.find_active(deal.tenant_id, deal.id, DocumentType.DEPOSIT_RECEIPT)
        if document is None:
            raise NotFoundError("Deposit receipt not found.")
        now = signed_at or utcnow()
        previous = (document.snapshot_data or {}).get("signature") or {}
        signature = SignatureSnapshot(
            customer_signed_at=now if customer_name else previous.get("customer_signed_at"),
            customer_signed_name=customer_name or previous.get("customer_signed_name"),
            dealer_signed_at=now,
            dealer_signed_name=dealer_name,
        )
        self._stamp_signature(document, signature)
        self.db.flush()
        logger.info(
            "document.signed",
            extra={
                "event": "document.signed",
                "tenant_id": deal.tenant_id,
                "deal_id": deal.id,
                "document_id": document.id,
                "customer_signed": signature.customer_signed_at is not None,
            },
        )
        return document

    # Lookups

    def find_active(self, tenant_id: int, deal_id: int, document_type: DocumentType) -> SalesDocument | None:
        return (
            self.db.query(SalesDocument)
            .filter(
                SalesDocument.tenant_id == tenant_id,
                SalesDocument.deal_id == deal_id,
                SalesDocument.type == document_type,
                SalesDocument.status != DocumentStatus.VOID,
            )
            .order_by(SalesDocument.id.desc())
            .first()
        )

    def has_document(self, tenant_id: int, deal_id: int, document_type: DocumentType) -> bool:
        return self.find_active(tenant_id, deal_id, document_type) is not None

    def list_for_deal(self, tenant_id: int, deal_id: int) -> list[SalesDocument]:
        return (
            self.db.query(SalesDocument)
            .filter(SalesDocument.tenant_id == tenant_id, SalesDocument.deal_id == deal_id)
            .order_by(SalesDocument.id)
            .all()
        )

    def delete_for_deal(self, tenant_id: int, deal_id: int) -> int:
        documents = self.list_for_deal(tenant_id, deal_id)
        for document in documents:
            self.db.delete(document)
        return len(documents)

    def get_document(self, tenant_id: int, document_id: int) -> SalesDocument:
        document = (
            self.db.query(SalesDocument)
            .filter(SalesDocument.tenant_id == tenant_id, SalesDocument.id == document_id)
            .first()
        )
        if document is None:
            raise NotFoundError(f"Document {document_id} not found.")
        return document

    def get_by_share_token(self, token: str, now: datetime | None = None) -> SalesDocument:
        """Public lookup: the token must match a stored hash and be unexpired."""
        if not token:
            raise NotFoundError("Document not found.")
        document = (
            self.db.query(SalesDocument)
            .filter(SalesDocument.share_token_hash == hash_share_token(token))
            .first()
        )
        if document is None or document.status == DocumentStatus.VOID:
            raise NotFoundError("Document not found.")
        current = now or utcnow()
        if document.share_expires_at is not None and _as_utc(document.share_expires_at) < current:
            raise NotFoundError("Share link has expired.")
        return document
