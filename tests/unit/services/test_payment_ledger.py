from __future__ import annotations

from decimal import Decimal

import pytest

from forecourt.core.exceptions import NotFoundError, ValidationError
from forecourt.models.deal import Deal
from forecourt.models.enums import PaymentMethod, PaymentType
from forecourt.services.payment_ledger import PaymentLedger


def _ledger() -> PaymentLedger:
    return PaymentLedger(Deal(deal_number="D00001"))


def test_record_appends_rounded_payment():
    ledger = _ledger()
    payment = ledger.record(PaymentType.DEPOSIT, "500.005", "card", reference="REF-1")

    assert payment.amount == Decimal("500.01")
    assert payment.method == PaymentMethod.CARD
    assert payment.paid_at is not None
    assert ledger.deal.payments == [payment]


@pytest.mark.parametrize("amount", ["0", "-10", 0])
def test_record_rejects_non_positive_amounts(amount):
    with pytest.raises(ValidationError, match="greater than zero"):
        _ledger().record(PaymentType.DEPOSIT, amount, PaymentMethod.CASH)


@pytest.mark.parametrize("amount", ["NaN", "nan", "Infinity", "abc"])
def test_record_rejects_amounts_that_are_not_numbers(amount):
    with pytest.raises(ValidationError, match="must be a number"):
        _ledger().record(PaymentType.DEPOSIT, amount, PaymentMethod.CASH)


def test_record_requires_method():
    with pytest.raises(ValidationError, match="method"):
        _ledger().record(PaymentType.DEPOSIT, "100", None)


def test_record_rejects_unknown_method():
    with pytest.raises(ValidationError, match="payment method"):
        _ledger().record(PaymentType.DEPOSIT, "100", "cheque")


def test_refund_flags_payment_and_excludes_it_from_totals():
    ledger = _ledger()
    first = ledger.record(PaymentType.DEPOSIT, "300", PaymentMethod.CASH)
    second = ledger.record(PaymentType.BALANCE, "700", PaymentMethod.BANK_TRANSFER)
    first.id, second.id = 1, 2

    refunded = ledger.refund(1)

    assert refunded.is_refunded is True
    assert refunded.refunded_at is not None
    assert len(ledger.deal.payments) == 2
    assert ledger.active() == [second]
    assert ledger.total_paid() == Decimal("700.00")
    assert ledger.total_deposit_paid() == Decimal("0.00")


def test_refund_twice_is_rejected():
    ledger = _ledger()
    payment = ledger.record(PaymentType.DEPOSIT, "300", PaymentMethod.CASH)
    payment.id = 7
    ledger.refund(7)
    with pytest.raises(ValidationError, match="already been refunded"):
        ledger.refund(7)


def test_refund_unknown_payment_is_not_found():
    with pytest.raises(NotFoundError):
        _ledger().refund(99)
