from __future__ import annotations

from decimal import Decimal

import pytest

from forecourt.core.exceptions import (
    ConfirmationRequiredError,
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from forecourt.models import Deal, Vehicle, VehicleIssue
from forecourt.models.deal import DealPartExchange, DealPayment
from forecourt.models.enums import (
    DealStatus,
    DocumentType,
    IssueCategory,
    IssueStatus,
    PaymentType,
    RequestStatus,
    SalesStatus,
    VatScheme,
)
from forecourt.services.activity_service import ActivityService
from forecourt.services.base_service import BaseService
from forecourt.services.deal_service import DealService
from forecourt.services.document_service import DocumentService
from forecourt.services.vehicle_service import DEFAULT_PREP_TASKS


def _create(service: DealService, seeded, **overrides) -> Deal:
    values = {
        "user_id": seeded.user_id,
        "sold_to_contact_id": seeded.customer_id,
        "vehicle_price_gross": "10000",
    }
    values.update(overrides)
    return service.create_deal(seeded.tenant_id, seeded.vehicle_id, **values)


def _worked_deal(service: DealService, seeded) -> int:
    """MARGIN £10,000, £200 add-on, financed PX (2000 / 500), £1,000 deposit."""
    deal = _create(service, seeded)
    service.update_deal(
        seeded.tenant_id,
        deal.id,
        {"add_ons": [{"name": "Paint protection", "qty": 1, "unit_price_net": "200"}]},
        user_id=seeded.user_id,
    )
    service.add_part_exchange(
        seeded.tenant_id,
        deal.id,
        {
            "vrm": "px11 abc",
            "make": "Vauxhall",
            "model": "Corsa",
            "allowance": "2000",
            "settlement": "500",
            "has_finance": True,
            "finance_company_contact_id": seeded.finance_company_id,
        },
        user_id=seeded.user_id,
    )
    service.take_deposit(seeded.tenant_id, deal.id, amount="1000", method="CARD", user_id=seeded.user_id)
    return deal.id


def _invoice_and_sign(service: DealService, seeded, deal_id: int) -> None:
    service.generate_invoice(seeded.tenant_id, deal_id, user_id=seeded.user_id)
    service.sign(seeded.tenant_id, deal_id, "dealer", signer_name="Sam Seller", user_id=seeded.user_id)
    service.sign(seeded.tenant_id, deal_id, "customer", user_id=seeded.user_id)


def _complete(service: DealService, seeded, deal_id: int):
    _invoice_and_sign(service, seeded, deal_id)
    return service.mark_completed(
        seeded.tenant_id, deal_id, user_id=seeded.user_id, confirm_without_settlement=True
    )


# Creation


def test_create_deal_allocates_number_and_reserves_vehicle(session, seeded):
    service = DealService(session)
    deal = _create(service, seeded)

    assert deal.deal_number == "D00001"
    assert deal.status == DealStatus.DRAFT
    assert deal.vat_scheme == VatScheme.MARGIN
    assert deal.vehicle_price_net == Decimal("10000.00")
    assert deal.vehicle_vat_amount == Decimal("0.00")
    assert deal.purchase_price_net == Decimal("7000.00")
    assert session.get(Vehicle, seeded.vehicle_id).sales_status == SalesStatus.IN_DEAL


def test_create_deal_splits_vat_for_qualifying_scheme(session, seeded):
    deal = _create(DealService(session), seeded, vehicle_price_gross="12000", vat_scheme="vat_qualifying")

    assert deal.vat_scheme == VatScheme.VAT_QUALIFYING
    assert deal.vehicle_price_net == Decimal("10000.00")
    assert deal.vehicle_vat_amount == Decimal("2000.00")


def test_only_one_active_deal_per_vehicle(session, seeded):
    service = DealService(session)
    _create(service, seeded)

    with pytest.raises(ConflictError, match="already has an active deal"):
        _create(service, seeded)


def test_create_deal_requires_cost_basis(session, seeded):
    vehicle = Vehicle(tenant_id=seeded.tenant_id, vrm="NOSIV1", make="Kia", model="Ceed")
    session.add(vehicle)
    session.commit()

    with pytest.raises(ValidationError, match="purchase price"):
        DealService(session).create_deal(seeded.tenant_id, vehicle.id)


def test_vehicle_of_another_tenant_is_not_found(session, seeded, seed_factory):
    other = seed_factory(name="Southside Cars")

    with pytest.raises(NotFoundError):
        DealService(session).create_deal(seeded.tenant_id, other.vehicle_id)


def test_deal_numbers_are_sequential_per_tenant(session, seeded, seed_factory):
    service = DealService(session)
    other = seed_factory(name="Southside Cars")
    second_vehicle = Vehicle(
        tenant_id=seeded.tenant_id, vrm="CD34EFG", make="VW", model="Golf", purchase_price_net=Decimal("5000")
    )
    session.add(second_vehicle)
    session.commit()

    first = _create(service, seeded)
    second = service.create_deal(seeded.tenant_id, second_vehicle.id)
    elsewhere = service.create_deal(other.tenant_id, other.vehicle_id)

    assert (first.deal_number, second.deal_number) == ("D00001", "D00002")
    assert elsewhere.deal_number == "D00001"


# Payments


def test_take_deposit_moves_deal_and_vehicle_and_issues_receipt(session, seeded):
    service = DealService(session)
    deal = _create(service, seeded)

    result = service.take_deposit(seeded.tenant_id, deal.id, amount="1000", method="CARD", user_id=seeded.user_id)

    assert result.deal.status == DealStatus.DEPOSIT_TAKEN
    assert result.deal.deposit_taken_at is not None
    assert result.document.document_number == "DEP00001"
    assert result.deal.payments[0].reference == "DEP00001"
    assert result.share_token
    assert result.total_deposit_paid == Decimal("1000.00")

    vehicle = session.get(Vehicle, seeded.vehicle_id)
    assert vehicle.sales_status == SalesStatus.IN_DEAL
    assert vehicle.status == "live"
    assert vehicle.sold_at is not None


def test_second_deposit_keeps_first_deposit_time(session, seeded):
    service = DealService(session)
    deal = _create(service, seeded)
    first = service.take_deposit(seeded.tenant_id, deal.id, amount="500", method="CASH")
    taken_at = first.deal.deposit_taken_at

    second = service.take_deposit(seeded.tenant_id, deal.id, amount="250", method="CASH")

    assert second.deal.deposit_taken_at == taken_at
    assert second.deal.status == DealStatus.DEPOSIT_TAKEN
    assert second.document.document_number == "DEP00002"
    assert second.total_deposit_paid == Decimal("750.00")


def test_take_deposit_requires_customer_and_leaves_deal_untouched(session, seeded):
    service = DealService(session)
    deal = _create(service, seeded, sold_to_contact_id=None)

    with pytest.raises(ValidationError, match="customer"):
        service.take_deposit(seeded.tenant_id, deal.id, amount="1000", method="CARD")

    reloaded = service.get_deal(seeded.tenant_id, deal.id)
    assert reloaded.status == DealStatus.DRAFT
    assert reloaded.payments == []


def test_take_deposit_rejects_bad_amount(session, seeded):
    service = DealService(session)
    deal = _create(service, seeded)

    with pytest.raises(ValidationError, match="greater than zero"):
        service.take_deposit(seeded.tenant_id, deal.id, amount="0", method="CARD")


def test_take_deposit_refused_on_cancelled_deal(session, seeded):
    service = DealService(session)
    deal = _create(service, seeded)
    service.cancel(seeded.tenant_id, deal.id)

    with pytest.raises(ValidationError, match="cancelled"):
        service.take_deposit(seeded.tenant_id, deal.id, amount="100", method="CARD")


def test_balance_payment_reports_before_and_after(session, seeded):
    service = DealService(session)
    deal_id = _worked_deal(service, seeded)

    result = service.record_balance_payment(
        seeded.tenant_id, deal_id, amount="7740", method="BANK_TRANSFER", user_id=seeded.user_id
    )

    assert result.balance_before == Decimal("7740.00")
    assert result.balance_after == Decimal("0.00")
    assert result.is_fully_paid is True
    assert result.payment.type == PaymentType.BALANCE
    assert result.document.document_number == "PAY00001"


def test_balance_payment_cannot_be_a_deposit(session, seeded):
    service = DealService(session)
    deal = _create(service, seeded)

    with pytest.raises(ValidationError):
        service.record_balance_payment(seeded.tenant_id, deal.id, amount="10", method="CASH", payment_type="DEPOSIT")


def test_refund_keeps_payment_row_and_reduces_total(session, seeded):
    service = DealService(session)
    deal_id = _worked_deal(service, seeded)
    payment_id = service.get_deal(seeded.tenant_id, deal_id).payments[0].id

    refunded = service.refund_payment(seeded.tenant_id, deal_id, payment_id, user_id=seeded.user_id)

    assert refunded.is_refunded is True
    totals = service.get_totals(seeded.tenant_id, deal_id)
    assert totals.total_paid == Decimal("0.00")
    assert totals.balance_due == Decimal("8740.00")
    assert len(service.get_deal(seeded.tenant_id, deal_id).payments) == 1

    with pytest.raises(ValidationError, match="already been refunded"):
        service.refund_payment(seeded.tenant_id, deal_id, payment_id)


def test_worked_example_totals_from_persisted_deal(session, seeded):
    service = DealService(session)
    deal_id = _worked_deal(service, seeded)

    totals = service.get_totals(seeded.tenant_id, deal_id)

    assert totals.grand_total == Decimal("10240.00")
    assert totals.part_exchange_net == Decimal("1500.00")
    assert totals.balance_due == Decimal("7740.00")


# Invoice, signatures, delivery


def test_invoice_only_once(session, seeded):
    service = DealService(session)
    deal_id = _worked_deal(service, seeded)

    result = service.generate_invoice(seeded.tenant_id, deal_id)
    assert result.deal.status == DealStatus.INVOICED
    assert result.deal.invoiced_at is not None
    assert result.document.document_number == "INV00001"

    with pytest.raises(InvalidStateError):
        service.generate_invoice(seeded.tenant_id, deal_id)


def test_invoice_requires_vehicle_price(session, seeded):
    service = DealService(session)
    deal = _create(service, seeded, vehicle_price_gross=None)

    with pytest.raises(ValidationError, match="price"):
        service.generate_invoice(seeded.tenant_id, deal.id)


def test_signing_rules(session, seeded):
    service = DealService(session)
    deal_id = _worked_deal(service, seeded)

    with pytest.raises(InvalidStateError):
        service.sign(seeded.tenant_id, deal_id, "customer")

    service.generate_invoice(seeded.tenant_id, deal_id)
    with pytest.raises(ValidationError, match="Dealer signer name"):
        service.sign(seeded.tenant_id, deal_id, "dealer")
    with pytest.raises(ValidationError):
        service.sign(seeded.tenant_id, deal_id, "witness", signer_name="Pat")

    deal = service.sign(seeded.tenant_id, deal_id, "customer")
    assert deal.customer_signed_name == "Alex Buyer"
    assert deal.customer_signed_at is not None


def test_signing_stamps_the_issued_invoice(session, seeded):
    service = DealService(session)
    deal_id = _worked_deal(service, seeded)
    service.generate_invoice(seeded.tenant_id, deal_id)
    documents = DocumentService(session)
    assert documents.find_active(seeded.tenant_id, deal_id, DocumentType.INVOICE).snapshot_data["signature"] is None

    service.sign(seeded.tenant_id, deal_id, "dealer", signer_name="Sam Seller")
    signature = documents.find_active(seeded.tenant_id, deal_id, DocumentType.INVOICE).snapshot_data["signature"]
    assert signature["dealer_signed_name"] == "Sam Seller"
    assert signature["dealer_signed_at"] is not None
    assert signature["customer_signed_name"] is None

    service.sign(seeded.tenant_id, deal_id, "customer")
    signature = documents.find_active(seeded.tenant_id, deal_id, DocumentType.INVOICE).snapshot_data["signature"]
    assert signature["dealer_signed_name"] == "Sam Seller"
    assert signature["customer_signed_name"] == "Alex Buyer"

    receipt = documents.find_active(seeded.tenant_id, deal_id, DocumentType.DEPOSIT_RECEIPT)
    assert receipt.snapshot_data["signature"] is None


def test_deposit_receipt_signing(session, seeded):
    service = DealService(session)
    draft = _create(service, seeded)
    with pytest.raises(InvalidStateError, match="deposit receipt"):
        service.sign_deposit_receipt(seeded.tenant_id, draft.id, dealer_name="Sam Seller")
    service.cancel(seeded.tenant_id, draft.id)

    deal_id = _worked_deal(service, seeded)
    with pytest.raises(ValidationError, match="Dealer signer name"):
        service.sign_deposit_receipt(seeded.tenant_id, deal_id, dealer_name="  ")

    receipt = service.sign_deposit_receipt(
        seeded.tenant_id, deal_id, dealer_name="Sam Seller", customer_name="Alex Buyer", user_id=seeded.user_id
    )
    signature = receipt.snapshot_data["signature"]
    assert receipt.type == DocumentType.DEPOSIT_RECEIPT
    assert signature["dealer_signed_name"] == "Sam Seller"
    assert signature["customer_signed_name"] == "Alex Buyer"
    assert signature["customer_signed_at"] is not None

    resigned = service.sign_deposit_receipt(seeded.tenant_id, deal_id, dealer_name="Jo Manager")
    assert resigned.snapshot_data["signature"]["dealer_signed_name"] == "Jo Manager"
    assert resigned.snapshot_data["signature"]["customer_signed_name"] == "Alex Buyer"

    deal = service.get_deal(seeded.tenant_id, deal_id)
    assert deal.dealer_signed_name is None
    assert deal.customer_signed_at is None
    events = [entry.event for entry in ActivityService(session).list_for_deal(seeded.tenant_id, deal_id)]
    assert events.count("deal.deposit_signed") == 2


def test_mark_delivered_records_mileage_and_notes(session, seeded):
    service = DealService(session)
    deal_id = _worked_deal(service, seeded)
    service.generate_invoice(seeded.tenant_id, deal_id)

    deal = service.mark_delivered(seeded.tenant_id, deal_id, delivery_mileage=42100, notes="Handed over at showroom")

    assert deal.status == DealStatus.DELIVERED
    assert deal.delivery_mileage == 42100
    assert deal.delivered_notes == "Handed over at showroom"


def test_mark_delivered_requires_invoice(session, seeded):
    service = DealService(session)
    deal_id = _worked_deal(service, seeded)

    with pytest.raises(InvalidStateError):
        service.mark_delivered(seeded.tenant_id, deal_id)


# Editing


def test_price_or_scheme_change_recomputes_vat(session, seeded):
    service = DealService(session)
    deal = _create(service, seeded)

    updated = service.update_deal(
        seeded.tenant_id, deal.id, {"vehicle_price_gross": "12000", "vat_scheme": "VAT_QUALIFYING"}
    )

    assert updated.vehicle_price_net == Decimal("10000.00")
    assert updated.vehicle_vat_amount == Decimal("2000.00")


def test_unknown_fields_are_rejected(session, seeded):
    service = DealService(session)
    deal = _create(service, seeded)

    with pytest.raises(ValidationError, match="deal_number"):
        service.update_deal(seeded.tenant_id, deal.id, {"deal_number": "X1"})


def test_delivery_and_finance_locked_once_invoiced(session, seeded):
    service = DealService(session)
    deal_id = _worked_deal(service, seeded)
    service.generate_invoice(seeded.tenant_id, deal_id)

    with pytest.raises(InvalidStateError, match="delivery"):
        service.update_deal(seeded.tenant_id, deal_id, {"delivery_amount_gross": "50"})
    with pytest.raises(InvalidStateError, match="finance_selection"):
        service.update_deal(seeded.tenant_id, deal_id, {"is_financed": True})

    updated = service.update_deal(seeded.tenant_id, deal_id, {"notes": "Customer collecting Saturday"})
    assert updated.notes == "Customer collecting Saturday"


def test_completed_deal_accepts_only_siv_amendment(session, seeded):
    service = DealService(session)
    deal_id = _worked_deal(service, seeded)
    _complete(service, seeded, deal_id)

    with pytest.raises(InvalidStateError, match="notes"):
        service.update_deal(seeded.tenant_id, deal_id, {"notes": "late change", "purchase_price_net": "1"})

    deal = service.update_deal(
        seeded.tenant_id,
        deal_id,
        {"purchase_price_net": "6500", "siv_amendment_reason": "Supplier credit note"},
        user_id=seeded.user_id,
    )
    assert deal.purchase_price_net == Decimal("6500.00")
    assert deal.siv_original_value == Decimal("7000.00")
    assert deal.siv_amendment_reason == "Supplier credit note"
    assert deal.siv_amended_by_user_id == seeded.user_id

    again = service.update_deal(seeded.tenant_id, deal_id, {"purchase_price_net": "6400"})
    assert again.siv_original_value == Decimal("7000.00")


def test_cancelled_deal_cannot_be_edited(session, seeded):
    service = DealService(session)
    deal = _create(service, seeded)
    service.cancel(seeded.tenant_id, deal.id)

    with pytest.raises(InvalidStateError):
        service.update_deal(seeded.tenant_id, deal.id, {"notes": "too late"})


# Part exchanges


def test_part_exchange_validation(session, seeded):
    service = DealService(session)
    deal = _create(service, seeded)

    with pytest.raises(ValidationError, match="finance company"):
        service.add_part_exchange(seeded.tenant_id, deal.id, {"vrm": "PX1", "has_finance": True})

    service.add_part_exchange(seeded.tenant_id, deal.id, {"vrm": "ab 12 xyz", "allowance": "900"})
    with pytest.raises(ValidationError, match="already on this deal"):
        service.add_part_exchange(seeded.tenant_id, deal.id, {"vrm": "AB12XYZ"})


def test_settlement_flag_is_the_only_px_edit_after_invoice(session, seeded):
    service = DealService(session)
    deal_id = _worked_deal(service, seeded)
    service.generate_invoice(seeded.tenant_id, deal_id)
    px_id = service.get_deal(seeded.tenant_id, deal_id).part_exchanges[0].id

    entry = service.update_part_exchange(seeded.tenant_id, deal_id, px_id, {"has_settlement_in_writing": True})
    assert entry.has_settlement_in_writing is True

    with pytest.raises(InvalidStateError):
        service.update_part_exchange(seeded.tenant_id, deal_id, px_id, {"allowance": "2500"})
    with pytest.raises(InvalidStateError):
        service.remove_part_exchange(seeded.tenant_id, deal_id, px_id)


def test_remove_part_exchange_before_invoice(session, seeded):
    service = DealService(session)
    deal_id = _worked_deal(service, seeded)
    px_id = service.get_deal(seeded.tenant_id, deal_id).part_exchanges[0].id

    deal = service.remove_part_exchange(seeded.tenant_id, deal_id, px_id)

    assert deal.part_exchanges == []
    assert service.get_totals(seeded.tenant_id, deal_id).balance_due == Decimal("9240.00")


# Completion


def test_completion_requires_signatures(session, seeded):
    service = DealService(session)
    deal_id = _worked_deal(service, seeded)
    service.generate_invoice(seeded.tenant_id, deal_id)

    with pytest.raises(ValidationError, match="dealer and customer"):
        service.mark_completed(seeded.tenant_id, deal_id, confirm_without_settlement=True)


def test_completion_refused_from_draft(session, seeded):
    service = DealService(session)
    deal = _create(service, seeded)

    with pytest.raises(InvalidStateError):
        service.mark_completed(seeded.tenant_id, deal.id)


def test_unsettled_px_finance_needs_confirmation_then_completes(session, seeded):
    service = DealService(session)
    deal_id = _worked_deal(service, seeded)
    _invoice_and_sign(service, seeded, deal_id)

    with pytest.raises(ConfirmationRequiredError) as exc:
        service.mark_completed(seeded.tenant_id, deal_id)
    assert exc.value.vrms == ["PX11ABC"]
    assert service.get_deal(seeded.tenant_id, deal_id).status == DealStatus.INVOICED

    result = service.mark_completed(
        seeded.tenant_id, deal_id, user_id=seeded.user_id, confirm_without_settlement=True
    )

    assert result.deal.status == DealStatus.COMPLETED
    assert result.deal.completed_at is not None
    assert result.is_fully_paid is False
    assert result.balance_due == Decimal("7740.00")
    assert result.message == "Deal completed with outstanding balance of £7740.00"

    sold = session.get(Vehicle, seeded.vehicle_id)
    assert sold.sales_status == SalesStatus.COMPLETED
    assert sold.status == "SOLD"
    assert sold.sold_deal_id == deal_id

    assert [item["vrm"] for item in result.part_exchanges.created] == ["PX11ABC"]
    px_vehicle = session.get(Vehicle, result.part_exchanges.created[0]["vehicle_id"])
    assert px_vehicle.sales_status == SalesStatus.AVAILABLE
    assert px_vehicle.status == "in_stock"
    assert px_vehicle.purchase_price_net == Decimal("2000.00")
    assert px_vehicle.purchased_from_contact_id == seeded.customer_id
    assert px_vehicle.source_deal_id == deal_id
    assert px_vehicle.purchase_notes == "Part exchange from deal D00001"
    assert [task.name for task in px_vehicle.tasks] == list(DEFAULT_PREP_TASKS)


def test_fully_paid_completion_message(session, seeded):
    service = DealService(session)
    deal_id = _worked_deal(service, seeded)
    service.record_balance_payment(seeded.tenant_id, deal_id, amount="7740", method="CASH", issue_receipt=False)

    result = _complete(service, seeded, deal_id)

    assert result.is_fully_paid is True
    assert result.balance_due == Decimal("0.00")
    assert result.message == "Deal completed successfully"


# Cancellation


def test_cancel_open_deal_releases_vehicle_and_closes_requests(session, seeded):
    service = DealService(session)
    issue = VehicleIssue(
        vehicle_id=seeded.vehicle_id,
        category=IssueCategory.COSMETIC,
        description="Scratch on rear bumper",
        status=IssueStatus.OUTSTANDING,
    )
    session.add(issue)
    session.commit()

    deal_id = _worked_deal(service, seeded)
    service.update_deal(
        seeded.tenant_id,
        deal_id,
        {
            "requests": [
                {"title": "Repair bumper scratch", "vehicle_issue_id": issue.id},
                {"title": "Full valet", "status": "DONE"},
            ]
        },
    )

    result = service.cancel(seeded.tenant_id, deal_id)

    assert result.was_completed is False
    assert result.vehicle_restored is None
    assert result.cancelled_requests == 1
    assert result.resolved_issues == 1
    assert result.deal.status == DealStatus.CANCELLED
    assert result.deal.cancel_reason == "Cancelled by user"
    statuses = [request.status for request in result.deal.requests]
    assert statuses == [RequestStatus.CANCELLED, RequestStatus.DONE]

    session.refresh(issue)
    assert issue.status == IssueStatus.WONT_FIX
    assert issue.resolution == "Deal cancelled"

    vehicle = session.get(Vehicle, seeded.vehicle_id)
    assert vehicle.sales_status == SalesStatus.AVAILABLE
    assert vehicle.status == "in_stock"
    assert vehicle.sold_at is None


def test_cancel_twice_is_rejected(session, seeded):
    service = DealService(session)
    deal = _create(service, seeded)
    service.cancel(seeded.tenant_id, deal.id, reason="Customer changed mind")

    with pytest.raises(InvalidStateError):
        service.cancel(seeded.tenant_id, deal.id)


def test_cancel_completed_deal_requires_reason_and_reverses_stock(session, seeded):
    service = DealService(session)
    deal_id = _worked_deal(service, seeded)
    completion = _complete(service, seeded, deal_id)
    px_vehicle_id = completion.part_exchanges.created[0]["vehicle_id"]

    with pytest.raises(ValidationError, match="reason"):
        service.cancel(seeded.tenant_id, deal_id, reason="   ")

    result = service.cancel(seeded.tenant_id, deal_id, reason="Customer rejected vehicle")

    assert result.was_completed is True
    assert result.vehicle_restored == {"vehicle_id": seeded.vehicle_id, "vrm": "AB12CDE"}
    assert [item["vrm"] for item in result.part_exchanges.deleted] == ["PX11ABC"]
    assert result.part_exchanges.kept == []
    assert session.get(Vehicle, px_vehicle_id) is None

    vehicle = session.get(Vehicle, seeded.vehicle_id)
    assert vehicle.sales_status == SalesStatus.AVAILABLE
    assert vehicle.sold_deal_id is None
    assert vehicle.sold_at is None


def test_cancel_completed_deal_keeps_px_vehicle_already_in_a_new_deal(session, seeded):
    service = DealService(session)
    deal_id = _worked_deal(service, seeded)
    completion = _complete(service, seeded, deal_id)
    px_vehicle_id = completion.part_exchanges.created[0]["vehicle_id"]
    service.create_deal(seeded.tenant_id, px_vehicle_id, sold_to_contact_id=seeded.customer_id)

    result = service.cancel(seeded.tenant_id, deal_id, reason="Finance declined")

    assert result.part_exchanges.deleted == []
    assert result.part_exchanges.kept == [
        {"vehicle_id": px_vehicle_id, "vrm": "PX11ABC", "reason": "Already in a deal"}
    ]
    assert session.get(Vehicle, px_vehicle_id) is not None


def test_cancel_completed_deal_keeps_px_vehicle_with_a_cancelled_later_deal(session, seeded):
    service = DealService(session)
    deal_id = _worked_deal(service, seeded)
    completion = _complete(service, seeded, deal_id)
    px_vehicle_id = completion.part_exchanges.created[0]["vehicle_id"]
    later = service.create_deal(
        seeded.tenant_id, px_vehicle_id, sold_to_contact_id=seeded.customer_id, vehicle_price_gross="2500"
    )
    service.take_deposit(seeded.tenant_id, later.id, amount="250", method="CASH")
    service.cancel(seeded.tenant_id, later.id, reason="Customer changed mind")
    assert session.get(Vehicle, px_vehicle_id).sales_status == SalesStatus.AVAILABLE

    result = service.cancel(seeded.tenant_id, deal_id, reason="Finance declined")

    assert result.part_exchanges.deleted == []
    assert result.part_exchanges.kept == [
        {"vehicle_id": px_vehicle_id, "vrm": "PX11ABC", "reason": "Already in a deal"}
    ]
    assert session.get(Vehicle, px_vehicle_id) is not None
    assert service.get_deal(seeded.tenant_id, later.id).vehicle.vrm == "PX11ABC"
    receipt = service.regenerate_receipt(seeded.tenant_id, later.id)
    assert receipt.snapshot_data["vehicle"]["vrm"] == "PX11ABC"


# Deletion


def test_delete_draft_releases_vehicle(session, seeded):
    service = DealService(session)
    deal = _create(service, seeded)
    deal_id = deal.id

    result = service.delete_deal(seeded.tenant_id, deal_id, user_id=seeded.user_id)

    assert result.message == "Draft deleted"
    assert result.vehicle_released is True
    assert session.get(Deal, deal_id) is None
    assert session.get(Vehicle, seeded.vehicle_id).sales_status == SalesStatus.AVAILABLE
    assert _create(service, seeded).deal_number == "D00002"
    events = [entry.event for entry in ActivityService(session).list_for_deal(seeded.tenant_id, deal_id)]
    assert events[-1] == "deal.deleted"


def test_delete_cancelled_deal_removes_children_and_documents(session, seeded):
    service = DealService(session)
    deal_id = _worked_deal(service, seeded)
    service.cancel(seeded.tenant_id, deal_id, reason="Customer walked away")

    result = service.delete_deal(seeded.tenant_id, deal_id)

    assert result.message == "Cancelled deal deleted"
    assert result.vehicle_released is False
    assert session.get(Deal, deal_id) is None
    assert DocumentService(session).list_for_deal(seeded.tenant_id, deal_id) == []
    assert session.query(DealPayment).filter(DealPayment.deal_id == deal_id).count() == 0
    assert session.query(DealPartExchange).filter(DealPartExchange.deal_id == deal_id).count() == 0
    assert session.get(Vehicle, seeded.vehicle_id).sales_status == SalesStatus.AVAILABLE


@pytest.mark.parametrize("step", ["deposit", "invoice", "completed"])
def test_delete_refused_unless_draft_or_cancelled(session, seeded, step):
    service = DealService(session)
    deal_id = _worked_deal(service, seeded)
    if step == "invoice":
        service.generate_invoice(seeded.tenant_id, deal_id)
    elif step == "completed":
        _complete(service, seeded, deal_id)

    with pytest.raises(InvalidStateError, match="Only draft or cancelled"):
        service.delete_deal(seeded.tenant_id, deal_id)

    assert service.get_deal(seeded.tenant_id, deal_id) is not None


def test_delete_is_tenant_scoped(session, seeded, seed_factory):
    service = DealService(session)
    deal = _create(service, seeded)
    other = seed_factory(name="Southside Cars")

    with pytest.raises(NotFoundError):
        service.delete_deal(other.tenant_id, deal.id)


# Transactions and activity


def test_concurrent_write_surfaces_as_invalid_state(session_factory, session, seeded):
    deal = _create(DealService(session), seeded)
    first, second = session_factory(), session_factory()
    try:
        stale = second.get(Deal, deal.id)
        fresh = first.get(Deal, deal.id)
        fresh.notes = "first writer"
        first.commit()

        with pytest.raises(InvalidStateError, match="modified concurrently"):
            with BaseService(second).unit_of_work():
                stale.notes = "second writer"
    finally:
        first.close()
        second.close()


def test_lifecycle_events_are_recorded_after_commit(session, seeded):
    service = DealService(session)
    deal_id = _worked_deal(service, seeded)

    events = [entry.event for entry in ActivityService(session).list_for_deal(seeded.tenant_id, deal_id)]

    assert events == ["deal.created", "deal.updated", "deal.part_exchange_added", "deal.deposit_taken"]


def test_get_deal_is_tenant_scoped(session, seeded, seed_factory):
    service = DealService(session)
    deal = _create(service, seeded)
    other = seed_factory(name="Southside Cars")

    with pytest.raises(NotFoundError):
        service.get_deal(other.tenant_id, deal.id)
    assert [d.id for d in service.list_deals(seeded.tenant_id, status=DealStatus.DRAFT)] == [deal.id]
