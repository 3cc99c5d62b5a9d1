"""Pure money arithmetic for deals: VAT splits, line breakdowns and totals.

Every value returned here is a ``Decimal`` quantized to pennies with
ROUND_HALF_UP. Nothing in this module touches the database; callers pass in
ORM rows or any object exposing the same attribute names.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from forecourt.models.enums import AddOnVatTreatment, PaymentType, VatScheme, WarrantyVatTreatment

VAT_RATE = Decimal("0.20")
CENT = Decimal("0.01")
ZERO = Decimal("0.00")
PAID_TOLERANCE = Decimal("0.01")


def to_money(value: Any) -> Decimal:
    """Coerce ints, floats, strings and Decimals to a penny-rounded Decimal."""
    if value is None or value == "":
        return ZERO
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _value(member: Any) -> Any:
    return member.value if hasattr(member, "value") else member


@dataclass(frozen=True)
class Breakdown:
    net: Decimal = ZERO
    vat: Decimal = ZERO
    gross: Decimal = ZERO

    def __add__(self, other: "Breakdown") -> "Breakdown":
        return Breakdown(net=self.net + other.net, vat=self.vat + other.vat, gross=self.gross + other.gross)

    def as_dict(self) -> dict[str, str]:
        return {"net": str(self.net), "vat": str(self.vat), "gross": str(self.gross)}


@dataclass(frozen=True)
class AddOnLine:
    name: str
    qty: int
    unit_price_net: Decimal
    vat_treatment: str
    amounts: Breakdown


def split_gross(gross: Any, vat_scheme: Any) -> Breakdown:
    """Split a VAT-inclusive amount under the deal's scheme.

    VAT qualifying: net = gross / 1.20 rounded, vat = gross - net.
    Margin: the whole amount is net and no VAT is itemised.
    """
    gross = to_money(gross)
    if _value(vat_scheme) == VatScheme.VAT_QUALIFYING.value:
        net = to_money(gross / (Decimal("1") + VAT_RATE))
        return Breakdown(net=net, vat=gross - net, gross=gross)
    return Breakdown(net=gross, vat=ZERO, gross=gross)


def vehicle_breakdown(price_gross: Any, vat_scheme: Any) -> Breakdown:
    return split_gross(price_gross, vat_scheme)


def add_on_breakdown(
    unit_price_net: Any,
    qty: int | None,
    vat_treatment: Any,
    vat_rate: Any = VAT_RATE,
) -> Breakdown:
    """Add-ons are priced net and carry their own VAT treatment, whatever the deal scheme."""
    net = to_money(to_money(unit_price_net) * int(qty or 0))
    if _value(vat_treatment) == AddOnVatTreatment.EXEMPT.value:
        return Breakdown(net=net, vat=ZERO, gross=net)
    rate = Decimal(str(vat_rate)) if vat_rate is not None else VAT_RATE
    vat = to_money(net * rate)
    return Breakdown(net=net, vat=vat, gross=net + vat)


def delivery_breakdown(amount_gross: Any, is_free: bool, vat_scheme: Any) -> Breakdown:
    if is_free:
        return Breakdown()
    return split_gross(amount_gross, vat_scheme)


def warranty_breakdown(included: bool, price_gross: Any, vat_treatment: Any) -> Breakdown:
    if not included:
        return Breakdown()
    if _value(vat_treatment) == WarrantyVatTreatment.STANDARD.value:
        return split_gross(price_gross, VatScheme.VAT_QUALIFYING)
    gross = to_money(price_gross)
    return Breakdown(net=gross, vat=ZERO, gross=gross)


def split_px_cost_basis(allowance: Any, vat_qualifying: bool) -> Breakdown:
    """Cost basis for a converted part exchange.

    A VAT-qualifying allowance is VAT-inclusive; otherwise it is already net.
    """
    if vat_qualifying:
        return split_gross(allowance, VatScheme.VAT_QUALIFYING)
    return split_gross(allowance, VatScheme.MARGIN)


def total_paid(payments: Iterable[Any]) -> Decimal:
    return sum((to_money(p.amount) for p in payments if not p.is_refunded), ZERO)


def total_deposit_paid(payments: Iterable[Any]) -> Decimal:
    return sum(
        (
            to_money(p.amount)
            for p in payments
            if not p.is_refunded and _value(p.type) == PaymentType.DEPOSIT.value
        ),
        ZERO,
    )


def part_exchange_net(part_exchanges: Iterable[Any]) -> Decimal:
    """Sum of allowances less sum of outstanding finance settlements."""
    allowance = ZERO
    settlement = ZERO
    for px in part_exchanges:
        allowance += to_money(px.allowance)
        settlement += to_money(px.settlement)
    return allowance - settlement


def balance_due(grand_total: Decimal, paid: Decimal, px_net: Decimal) -> Decimal:
    return to_money(grand_total - paid - px_net)


def is_fully_paid(balance: Decimal) -> bool:
    return balance <= PAID_TOLERANCE


@dataclass(frozen=True)
class DealTotals:
    vehicle: Breakdown
    add_on_lines: tuple[AddOnLine, ...]
    add_ons: Breakdown
    delivery: Breakdown
    warranty: Breakdown
    grand_total: Decimal
    total_paid: Decimal
    total_deposit_paid: Decimal
    part_exchange_net: Decimal
    balance_due: Decimal
    is_fully_paid: bool
    vat_total: Decimal = field(default=ZERO)

    def as_dict(self) -> dict[str, Any]:
        return {
            "vehicle": self.vehicle.as_dict(),
            "add_ons": self.add_ons.as_dict(),
            "delivery": self.delivery.as_dict(),
            "warranty": self.warranty.as_dict(),
            "vat_total": str(self.vat_total),
            "grand_total": str(self.grand_total),
            "total_paid": str(self.total_paid),
            "total_deposit_paid": str(self.total_deposit_paid),
            "part_exchange_net": str(self.part_exchange_net),
            "balance_due": str(self.balance_due),
            "is_fully_paid": self.is_fully_paid,
        }


def calculate_deal_totals(deal: Any) -> DealTotals:
    """Compute every derived money figure for a deal from its current fields."""
    scheme = deal.vat_scheme
    vehicle = vehicle_breakdown(deal.vehicle_price_gross, scheme)

    lines = tuple(
        AddOnLine(
            name=add_on.name,
            qty=int(add_on.qty or 0),
            unit_price_net=to_money(add_on.unit_price_net),
            vat_treatment=_value(add_on.vat_treatment),
            amounts=add_on_breakdown(add_on.unit_price_net, add_on.qty, add_on.vat_treatment, add_on.vat_rate),
        )
        for add_on in deal.add_ons
    )
    add_ons = sum((line.amounts for line in lines), Breakdown())

    delivery = delivery_breakdown(deal.delivery_amount_gross, bool(deal.delivery_is_free), scheme)
    warranty = warranty_breakdown(bool(deal.warranty_included), deal.warranty_price_gross, deal.warranty_vat_treatment)

    grand_total = vehicle.gross + add_ons.gross + delivery.gross + warranty.gross
    paid = total_paid(deal.payments)
    px_net = part_exchange_net(deal.part_exchanges)
    balance = balance_due(grand_total, paid, px_net)

    return DealTotals(
        vehicle=vehicle,
        add_on_lines=lines,
        add_ons=add_ons,
        delivery=delivery,
        warranty=warranty,
        grand_total=grand_total,
        total_paid=paid,
        total_deposit_paid=total_deposit_paid(deal.payments),
        part_exchange_net=px_net,
        balance_due=balance,
        is_fully_paid=is_fully_paid(balance),
        vat_total=vehicle.vat + add_ons.vat + delivery.vat + warranty.vat,
    )
