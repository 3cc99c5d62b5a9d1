"""Part-exchange entries: validation, conversion into stock and reversal."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from forecourt.core.exceptions import ConflictError, ValidationError
from forecourt.models.appraisal import AppraisalIssue
from forecourt.models.base import utcnow
from forecourt.models.contact import Contact
from forecourt.models.deal import Deal, DealPartExchange
from forecourt.models.enums import (
    VEHICLE_IN_STOCK,
    IssueCategory,
    IssueStatus,
    PxDisposition,
    SalesStatus,
    VatScheme,
)
from forecourt.models.vehicle import Vehicle, VehicleIssue
from forecourt.services import money
from forecourt.services.base_service import BaseService
from forecourt.services.vehicle_service import VehicleService
from forecourt.utils.vrm import normalize_vrm

logger = logging.getLogger(__name__)

APPRAISAL_CATEGORY_MAP = {
    "mechanical": IssueCategory.MECHANICAL,
    "electrical": IssueCategory.ELECTRICAL,
    "bodywork": IssueCategory.COSMETIC,
    "interior": IssueCategory.COSMETIC,
    "tyres": IssueCategory.MECHANICAL,
    "mot": IssueCategory.OTHER,
    "service": IssueCategory.OTHER,
    "fault_codes": IssueCategory.ELECTRICAL,
    "other": IssueCategory.OTHER,
}

APPRAISAL_STATUS_MAP = {
    "outstanding": IssueStatus.OUTSTANDING,
    "ordered": IssueStatus.ORDERED,
    "in_progress": IssueStatus.IN_PROGRESS,
    "resolved": IssueStatus.COMPLETE,
}

SKIP_DISPOSITIONS = frozenset({PxDisposition.TRADE_SALE, PxDisposition.AUCTION})
PREP_DISPOSITIONS = frozenset({PxDisposition.RETAIL_STOCK, PxDisposition.UNDECIDED, None})

REASON_ALREADY_SOLD = "Already sold"
REASON_IN_DEAL = "Already in a deal"

# Fields a caller may set on a part-exchange entry.
EDITABLE_FIELDS = (
    "vrm",
    "vin",
    "make",
    "model",
    "year",
    "mileage",
    "colour",
    "fuel_type",
    "allowance",
    "settlement",
    "vat_qualifying",
    "has_finance",
    "finance_company_contact_id",
    "has_settlement_in_writing",
    "disposition",
    "condition_notes",
    "source_appraisal_id",
)


@dataclass
class ConversionReport:
    created: list[dict[str, Any]] = field(default_factory=list)
    skipped: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class ReversalReport:
    deleted: list[dict[str, Any]] = field(default_factory=list)
    kept: list[dict[str, Any]] = field(default_factory=list)


class PartExchangeService(BaseService):
    """Manages a deal's trade-in entries and the stock vehicles made from them."""

    def __init__(self, db=None, vehicles: VehicleService | None = None) -> None:
        super().__init__(db)
        self.vehicles = vehicles or VehicleService(self.db)

    # Entry management

    def build_entry(self, deal: Deal, data: dict[str, Any]) -> DealPartExchange:
        values = {key: data[key] for key in EDITABLE_FIELDS if key in data}
        entry = DealPartExchange()
        self._assign(entry, values)
        self._validate_entry(deal, entry)
        deal.part_exchanges.append(entry)
        return entry

    def apply_update(self, deal: Deal, entry: DealPartExchange, data: dict[str, Any]) -> DealPartExchange:
        unknown = sorted(set(data) - set(EDITABLE_FIELDS))
        if unknown:
            raise ValidationError(f"Unknown part exchange fields: {', '.join(unknown)}")
        self._assign(entry, data)
        self._validate_entry(deal, entry)
        return entry

    def _assign(self, entry: DealPartExchange, values: dict[str, Any]) -> None:
        for key, value in values.items():
            if key == "vrm":
                value = normalize_vrm(value)
            elif key in {"allowance", "settlement"}:
                value = money.to_money(value)
                if value < 0:
                    raise ValidationError(f"Part exchange {key} cannot be negative.")
            elif key == "disposition" and value is not None and not isinstance(value, PxDisposition):
                try:
                    value = PxDisposition(str(value).upper())
                except ValueError as exc:
                    raise ValidationError(f"Unknown part exchange disposition: {value!r}") from exc
            setattr(entry, key, value)

    def _validate_entry(self, deal: Deal, entry: DealPartExchange) -> None:
        if not entry.vrm:
            raise ValidationError("Part exchange registration is required.")
        for other in deal.part_exchanges:
            if other is not entry and normalize_vrm(other.vrm) == entry.vrm:
                raise ValidationError(f"Part exchange {entry.vrm} is already on this deal.")
        if entry.has_finance and not entry.finance_company_contact_id:
            raise ValidationError(f"Part exchange {entry.vrm} has finance but no finance company.")
        if entry.allowance is None:
            entry.allowance = money.ZERO
        if entry.settlement is None:
            entry.settlement = money.ZERO

    # Completion checks

    def missing_finance_company(self, deal: Deal) -> list[str]:
        return [px.vrm for px in deal.part_exchanges if px.has_finance and not px.finance_company_contact_id]

    def unsettled_finance(self, deal: Deal) -> list[str]:
        return [px.vrm for px in deal.part_exchanges if px.has_finance and not px.has_settlement_in_writing]

    # Conversion

    def convert_all(self, deal: Deal, tenant_id: int) -> ConversionReport:
        report = ConversionReport()
        for entry in deal.part_exchanges:
            if entry.converted_to_vehicle_id:
                continue
            if entry.disposition in SKIP_DISPOSITIONS:
                report.skipped.append({"vrm": entry.vrm, "reason": f"Disposition {entry.disposition.value}"})
                continue
            try:
                vehicle = self.convert(deal, entry, tenant_id)
            except ConflictError:
                logger.warning(
                    "part_exchange.convert.duplicate_vrm",
                    extra={
                        "event": "part_exchange.convert.duplicate_vrm",
                        "tenant_id": tenant_id,
                        "deal_id": deal.id,
                        "vrm": entry.vrm,
                    },
                )
                report.skipped.append({"vrm": entry.vrm, "reason": "Vehicle already in stock"})
                continue
            report.created.append(
                {
                    "vehicle_id": vehicle.id,
                    "vrm": vehicle.vrm,
                    "added_to_prep": entry.disposition in PREP_DISPOSITIONS,
                    "issues_transferred": len(vehicle.issues),
                }
            )
        return report

    def convert(self, deal: Deal, entry: DealPartExchange, tenant_id: int) -> Vehicle:
        """Create a stock vehicle from one trade-in and link it back to the entry.

        Raises ConflictError when the registration is already in stock.
        """
        cost = money.split_px_cost_basis(entry.allowance, bool(entry.vat_qualifying))
        vehicle = self.vehicles.create(
            tenant_id,
            vrm=entry.vrm,
            vin=entry.vin,
            make=entry.make or "Unknown",
            model=entry.model or "Unknown",
            year=entry.year,
            mileage=entry.mileage,
            colour=entry.colour,
            fuel_type=entry.fuel_type,
            vat_scheme=VatScheme.VAT_QUALIFYING if entry.vat_qualifying else VatScheme.MARGIN,
            notes=entry.condition_notes,
            status=VEHICLE_IN_STOCK,
            sales_status=SalesStatus.AVAILABLE,
            source_deal_id=deal.id,
            source_px_vrm=entry.vrm,
            purchase_price_net=cost.net,
            purchase_vat_amount=cost.vat,
            purchase_price_gross=cost.gross,
            purchased_from_contact_id=deal.customer_id,
            purchase_date=utcnow(),
            purchase_notes=f"Part exchange from deal {deal.deal_number}",
        )

        if entry.disposition in PREP_DISPOSITIONS:
            self.vehicles.seed_prep_tasks(vehicle, tenant_id)
        if entry.source_appraisal_id:
            self._transfer_appraisal_issues(vehicle, entry.source_appraisal_id)

        entry.converted_to_vehicle_id = vehicle.id
        self.db.flush()
        logger.info(
            "part_exchange.converted",
            extra={
                "event": "part_exchange.converted",
                "tenant_id": tenant_id,
                "deal_id": deal.id,
                "vehicle_id": vehicle.id,
            },
        )
        return vehicle

    def _transfer_appraisal_issues(self, vehicle: Vehicle, appraisal_id: int) -> list[VehicleIssue]:
        issues = (
            self.db.query(AppraisalIssue)
            .filter(AppraisalIssue.appraisal_id == appraisal_id)
            .order_by(AppraisalIssue.id)
            .all()
        )
        transferred = []
        for issue in issues:
            category_key = (issue.category or "other").lower()
            description = issue.description or ""
            if category_key == "fault_codes" and issue.fault_codes:
                description = f"Fault Codes: {issue.fault_codes}" + (f" - {description}" if description else "")
            if not description:
                description = issue.action_needed or f"{category_key} issue"

            copied = VehicleIssue(
                category=APPRAISAL_CATEGORY_MAP.get(category_key, IssueCategory.OTHER),
                subcategory=issue.subcategory or "Other",
                description=description,
                action_needed=issue.action_needed,
                status=APPRAISAL_STATUS_MAP.get((issue.status or "").lower(), IssueStatus.OUTSTANDING),
                notes=issue.notes,
                is_transferred=True,
                source_appraisal_issue_id=issue.id,
            )
            vehicle.issues.append(copied)
            transferred.append(copied)
        return transferred

    # Reversal

    def reverse_all(self, deal: Deal, tenant_id: int) -> ReversalReport:
        """Undo conversions where it is safe; report vehicles that have moved on."""
        report = ReversalReport()
        for entry in deal.part_exchanges:
            if not entry.converted_to_vehicle_id:
                continue
            vehicle = self.vehicles.find_by_id(tenant_id, entry.converted_to_vehicle_id)
            if vehicle is None:
                entry.converted_to_vehicle_id = None
                continue

            if vehicle.sales_status == SalesStatus.AVAILABLE and not self._has_deal_history(vehicle):
                report.deleted.append({"vehicle_id": vehicle.id, "vrm": vehicle.vrm})
                self.vehicles.delete(vehicle)
                entry.converted_to_vehicle_id = None
                continue

            reason = REASON_ALREADY_SOLD if vehicle.sales_status == SalesStatus.COMPLETED else REASON_IN_DEAL
            report.kept.append({"vehicle_id": vehicle.id, "vrm": vehicle.vrm, "reason": reason})
            logger.warning(
                "part_exchange.reversal.kept",
                extra={
                    "event": "part_exchange.reversal.kept",
                    "tenant_id": tenant_id,
                    "deal_id": deal.id,
                    "vehicle_id": vehicle.id,
                    "reason": reason,
                },
            )
        return report

    def _has_deal_history(self, vehicle: Vehicle) -> bool:
        """Any deal on the vehicle, even a cancelled one, pins it in place."""
        return self.db.query(Deal.id).filter(Deal.vehicle_id == vehicle.id).first() is not None

    def summaries(self, deal: Deal) -> list[dict[str, Any]]:
        """Part-exchange summaries for document snapshots."""
        contact_ids = {px.finance_company_contact_id for px in deal.part_exchanges if px.finance_company_contact_id}
        names: dict[int, str] = {}
        if contact_ids:
            for contact in self.db.query(Contact).filter(Contact.id.in_(contact_ids)).all():
                names[contact.id] = contact.company_name or contact.display_name
        return [
            {
                "vrm": px.vrm,
                "make": px.make,
                "model": px.model,
                "year": px.year,
                "mileage": px.mileage,
                "allowance": str(money.to_money(px.allowance)),
                "settlement": str(money.to_money(px.settlement)),
                "net_value": str(money.to_money(px.allowance) - money.to_money(px.settlement)),
                "vat_qualifying": bool(px.vat_qualifying),
                "has_finance": bool(px.has_finance),
                "finance_company_name": names.get(px.finance_company_contact_id),
            }
            for px in deal.part_exchanges
        ]
