"""Append-only payment ledger over a deal's payment rows."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from forecourt.core.exceptions import NotFoundError, ValidationError
from forecourt.models.base import utcnow
from forecourt.models.deal import Deal, DealPayment
from forecourt.models.enums import PaymentMethod, PaymentType
from forecourt.services import money


def _coerce_enum(enum_cls, value: Any, label: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).upper())
    except ValueError as exc:
        raise ValidationError(f"Unknown {label}: {value!r}") from exc


class PaymentLedger:
    """Payments are only ever appended or flagged as refunded, never removed."""

    def __init__(self, deal: Deal) -> None:
        self.deal = deal

    def record(
        self,
        payment_type: PaymentType | str,
        amount: Any,
        method: PaymentMethod | str | None,
        paid_at: datetime | None = None,
        reference: str | None = None,
        notes: str | None = None,
    ) -> DealPayment:
        try:
            value = money.to_money(amount)
        except (ArithmeticError, ValueError) as exc:
            raise ValidationError("Payment amount must be a number.") from exc
        if not value.is_finite():
            raise ValidationError("Payment amount must be a number.")
        if value <= 0:
            raise ValidationError("Payment amount must be greater than zero.")
        if not method:
            raise ValidationError("Payment method is required.")

        payment = DealPayment(
            type=_coerce_enum(PaymentType, payment_type, "payment type"),
            amount=value,
            method=_coerce_enum(PaymentMethod, method, "payment method"),
            paid_at=paid_at or utcnow(),
            reference=reference,
            notes=notes,
            is_refunded=False,
        )
        self.deal.payments.append(payment)
        return payment

    def get(self, payment_id: int) -> DealPayment:
        for payment in self.deal.payments:
            if payment.id == payment_id:
                return payment
        raise NotFoundError(f"Payment {payment_id} not found on deal {self.deal.id}.")

    def refund(self, payment_id: int, refunded_at: datetime | None = None) -> DealPayment:
        payment = self.get(payment_id)
        if payment.is_refunded:
            raise ValidationError("Payment has already been refunded.")
        payment.is_refunded = True
        payment.refunded_at = refunded_at or utcnow()
        return payment

    def active(self) -> list[DealPayment]:
        return [payment for payment in self.deal.payments if not payment.is_refunded]

    def total_paid(self) -> Decimal:
        return money.total_paid(self.deal.payments)

    def total_deposit_paid(self) -> Decimal:
        return money.total_deposit_paid(self.deal.payments)
