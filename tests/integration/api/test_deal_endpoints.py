from __future__ import annotations

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient

from forecourt.api.v1 import deals, documents, health
from forecourt.database.db import get_db
from forecourt.main import create_app
from forecourt.schemas.deals import (
    CancelRequest,
    DealCreateRequest,
    DealUpdateRequest,
    DepositRequest,
    MarkCompletedRequest,
    PartExchangeCreateRequest,
    SignDepositRequest,
    SignRequest,
)


def _headers(seeded) -> dict:
    return {"x_tenant_id": str(seeded.tenant_id), "x_user_id": str(seeded.user_id)}


def _create(session, seeded) -> dict:
    payload = DealCreateRequest(
        vehicle_id=seeded.vehicle_id, sold_to_contact_id=seeded.customer_id, vehicle_price_gross="10000"
    )
    return deals.create_deal(payload, db=session, **_headers(seeded))


def test_create_and_fetch_deal(session, seeded):
    created = _create(session, seeded)

    fetched = deals.get_deal(created["id"], db=session, **_headers(seeded))

    assert fetched["deal_number"] == "D00001"
    assert fetched["status"] == "DRAFT"
    assert fetched["vehicle_price_gross"] == "10000.00"


def test_missing_tenant_header_is_unauthorized(session, seeded):
    with pytest.raises(HTTPException) as exc:
        deals.get_deal(1, x_tenant_id=None, x_user_id=None, db=session)
    assert exc.value.status_code == 401

    with pytest.raises(HTTPException) as exc:
        deals.get_deal(1, x_tenant_id="abc", x_user_id=None, db=session)
    assert exc.value.status_code == 401


def test_unknown_deal_is_not_found(session, seeded):
    with pytest.raises(HTTPException) as exc:
        deals.get_deal(9999, db=session, **_headers(seeded))
    assert exc.value.status_code == 404


def test_domain_errors_map_to_http_codes(session, seeded):
    created = _create(session, seeded)

    with pytest.raises(HTTPException) as exc:
        deals.create_deal(DealCreateRequest(vehicle_id=seeded.vehicle_id), db=session, **_headers(seeded))
    assert exc.value.status_code == 409

    with pytest.raises(HTTPException) as exc:
        deals.sign_deal(created["id"], SignRequest(party="customer"), db=session, **_headers(seeded))
    assert exc.value.status_code == 409

    with pytest.raises(HTTPException) as exc:
        deals.take_deposit(created["id"], DepositRequest(amount="0", method="CARD"), db=session, **_headers(seeded))
    assert exc.value.status_code == 400


def test_deposit_returns_receipt_with_share_url(session, seeded):
    created = _create(session, seeded)

    response = deals.take_deposit(
        created["id"], DepositRequest(amount="1000", method="CARD"), db=session, **_headers(seeded)
    )

    assert response["deal"]["status"] == "DEPOSIT_TAKEN"
    assert response["total_deposit_paid"] == "1000.00"
    document = response["document"]
    assert document["document_number"] == "DEP00001"
    token = document["share_url"].rsplit("/", 1)[-1]

    shared = documents.get_shared_document(token, db=session)
    assert shared["document_number"] == "DEP00001"
    assert shared["snapshot_data"]["totals"]["balance_due"] == "9000.00"

    with pytest.raises(HTTPException) as exc:
        documents.get_shared_document("bogus", db=session)
    assert exc.value.status_code == 404


def test_document_endpoint_is_tenant_scoped(session, seeded, seed_factory):
    created = _create(session, seeded)
    deposit = deals.take_deposit(
        created["id"], DepositRequest(amount="500", method="CASH"), db=session, **_headers(seeded)
    )
    other = seed_factory(name="Southside Cars")

    own = documents.get_document(deposit["document"]["id"], db=session, **_headers(seeded))
    assert own["type"] == "DEPOSIT_RECEIPT"

    with pytest.raises(HTTPException) as exc:
        documents.get_document(deposit["document"]["id"], x_tenant_id=str(other.tenant_id), x_user_id=None, db=session)
    assert exc.value.status_code == 404


def test_completion_confirmation_is_a_structured_conflict(session, seeded):
    created = _create(session, seeded)
    deal_id = created["id"]
    headers = _headers(seeded)
    deals.add_part_exchange(
        deal_id,
        PartExchangeCreateRequest(
            vrm="PX11ABC",
            allowance="2000",
            settlement="500",
            has_finance=True,
            finance_company_contact_id=seeded.finance_company_id,
        ),
        db=session,
        **headers,
    )
    deals.take_deposit(deal_id, DepositRequest(amount="1000", method="CARD"), db=session, **headers)
    deals.generate_invoice(deal_id, db=session, **headers)
    deals.sign_deal(deal_id, SignRequest(party="dealer", signer_name="Sam Seller"), db=session, **headers)
    deals.sign_deal(deal_id, SignRequest(party="customer"), db=session, **headers)

    with pytest.raises(HTTPException) as exc:
        deals.mark_completed(deal_id, MarkCompletedRequest(), db=session, **headers)
    assert exc.value.status_code == 409
    assert exc.value.detail["code"] == "CONFIRMATION_REQUIRED"
    assert exc.value.detail["vrms"] == ["PX11ABC"]

    completed = deals.mark_completed(
        deal_id, MarkCompletedRequest(confirm_without_settlement=True), db=session, **headers
    )
    assert completed["deal"]["status"] == "COMPLETED"
    assert completed["balance_due"] == "7500.00"
    assert [item["vrm"] for item in completed["part_exchange_vehicles"]["created"]] == ["PX11ABC"]

    cancelled = deals.cancel_deal(deal_id, CancelRequest(reason="Buyer returned car"), db=session, **headers)
    assert cancelled["was_completed"] is True
    assert [item["vrm"] for item in cancelled["part_exchange_vehicles"]["deleted"]] == ["PX11ABC"]


def test_update_rejected_after_invoice_returns_conflict(session, seeded):
    created = _create(session, seeded)
    headers = _headers(seeded)
    deals.take_deposit(created["id"], DepositRequest(amount="100", method="CASH"), db=session, **headers)
    deals.generate_invoice(created["id"], db=session, **headers)

    payload = DealUpdateRequest.model_validate({"delivery": {"amount_gross": "75"}})
    with pytest.raises(HTTPException) as exc:
        deals.update_deal(created["id"], payload, db=session, **headers)
    assert exc.value.status_code == 409


def test_health_reports_database_state(monkeypatch):
    monkeypatch.setattr(health, "verify_database_connection", lambda: False)

    response = health.health()

    assert response["status"] == "ok"
    assert response["database"] == "unavailable"


def test_routes_are_mounted_under_api_prefix(session_factory, seeded):
    app = create_app()

    def _override_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _override_db
    client = TestClient(app)

    response = client.post(
        "/api/v1/deals",
        json={"vehicle_id": seeded.vehicle_id, "vehicle_price_gross": "8500"},
        headers={"X-Tenant-Id": str(seeded.tenant_id)},
    )
    assert response.status_code == 201
    assert response.json()["deal_number"] == "D00001"

    listed = client.get("/api/v1/deals", params={"status": "DRAFT"}, headers={"X-Tenant-Id": str(seeded.tenant_id)})
    assert [item["deal_number"] for item in listed.json()["items"]] == ["D00001"]

    assert client.get("/api/v1/deals").status_code == 401


def test_sign_deposit_endpoint_returns_signed_receipt(session, seeded):
    created = _create(session, seeded)
    headers = _headers(seeded)

    with pytest.raises(HTTPException) as exc:
        deals.sign_deposit_receipt(
            created["id"], SignDepositRequest(dealer_name="Sam Seller"), db=session, **headers
        )
    assert exc.value.status_code == 409

    deals.take_deposit(created["id"], DepositRequest(amount="500", method="CARD"), db=session, **headers)
    document = deals.sign_deposit_receipt(
        created["id"],
        SignDepositRequest(dealer_name="Sam Seller", customer_name="Alex Buyer"),
        db=session,
        **headers,
    )

    assert document["type"] == "DEPOSIT_RECEIPT"
    assert document["snapshot_data"]["signature"]["customer_signed_name"] == "Alex Buyer"


def test_delete_endpoint_only_removes_draft_or_cancelled_deals(session, seeded):
    headers = _headers(seeded)
    created = _create(session, seeded)
    deals.take_deposit(created["id"], DepositRequest(amount="500", method="CARD"), db=session, **headers)

    with pytest.raises(HTTPException) as exc:
        deals.delete_deal(created["id"], db=session, **headers)
    assert exc.value.status_code == 409

    deals.cancel_deal(created["id"], CancelRequest(), db=session, **headers)
    response = deals.delete_deal(created["id"], db=session, **headers)
    assert response == {
        "success": True,
        "message": "Cancelled deal deleted",
        "deal_id": created["id"],
        "vehicle_released": False,
    }

    with pytest.raises(HTTPException) as exc:
        deals.get_deal(created["id"], db=session, **headers)
    assert exc.value.status_code == 404
