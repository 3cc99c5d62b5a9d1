"""Deal lifecycle endpoints for API v1."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from sqlalchemy.orm import Session

from forecourt.api.v1._context import map_domain_error, resolve_context
from forecourt.core.config import get_config
from forecourt.core.exceptions import ForecourtException
from forecourt.database.db import get_db
from forecourt.models.enums import DealStatus
from forecourt.schemas.deals import (
    BalancePaymentRequest,
    CancelRequest,
    DealCreateRequest,
    DealResponse,
    DealUpdateRequest,
    DepositRequest,
    MarkCompletedRequest,
    MarkDeliveredRequest,
    PartExchangeCreateRequest,
    PartExchangeResponse,
    PartExchangeUpdateRequest,
    PaymentResponse,
    SignDepositRequest,
    SignRequest,
)
from forecourt.schemas.documents import DocumentResponse
from forecourt.services.deal_service import DealService
from forecourt.services.document_service import build_share_url

router = APIRouter(tags=["deals"])


def _deal_payload(deal) -> dict:
    return DealResponse.model_validate(deal).model_dump(mode="json")


def _document_payload(document, share_token: str | None = None) -> dict | None:
    if document is None:
        return None
    payload = DocumentResponse.model_validate(document).model_dump(mode="json")
    payload["share_url"] = build_share_url(share_token, get_config())
    return payload


def _raise_http(exc: Exception) -> None:
    code, detail = map_domain_error(exc)
    raise HTTPException(status_code=code, detail=detail) from exc


@router.post("/deals", status_code=status.HTTP_201_CREATED)
def create_deal(
    payload: DealCreateRequest,
    x_tenant_id: str | None = Header(default=None, alias="X-Tenant-Id"),
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
    db: Session = Depends(get_db),
) -> dict:
    try:
        ctx = resolve_context(x_tenant_id, x_user_id)
        deal = DealService(db).create_deal(ctx.tenant_id, user_id=ctx.user_id, **payload.model_dump())
    except ForecourtException as exc:
        _raise_http(exc)
    return _deal_payload(deal)


@router.get("/deals")
def list_deals(
    status_filter: DealStatus | None = Query(default=None, alias="status"),
    vehicle_id: int | None = Query(default=None, ge=1),
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    x_tenant_id: str | None = Header(default=None, alias="X-Tenant-Id"),
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
    db: Session = Depends(get_db),
) -> dict:
    try:
        ctx = resolve_context(x_tenant_id, x_user_id)
        deals = DealService(db).list_deals(
            ctx.tenant_id, status=status_filter, vehicle_id=vehicle_id, limit=limit, offset=offset
        )
    except ForecourtException as exc:
        _raise_http(exc)
    return {"items": [_deal_payload(deal) for deal in deals], "limit": limit, "offset": offset}


@router.get("/deals/{deal_id}")
def get_deal(
    deal_id: int,
    x_tenant_id: str | None = Header(default=None, alias="X-Tenant-Id"),
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
    db: Session = Depends(get_db),
) -> dict:
    try:
        ctx = resolve_context(x_tenant_id, x_user_id)
        deal = DealService(db).get_deal(ctx.tenant_id, deal_id)
    except ForecourtException as exc:
        _raise_http(exc)
    return _deal_payload(deal)


@router.patch("/deals/{deal_id}")
def update_deal(
    deal_id: int,
    payload: DealUpdateRequest,
    x_tenant_id: str | None = Header(default=None, alias="X-Tenant-Id"),
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
    db: Session = Depends(get_db),
) -> dict:
    try:
        ctx = resolve_context(x_tenant_id, x_user_id)
        deal = DealService(db).update_deal(ctx.tenant_id, deal_id, payload.to_changes(), user_id=ctx.user_id)
    except ForecourtException as exc:
        _raise_http(exc)
    return _deal_payload(deal)


@router.delete("/deals/{deal_id}")
def delete_deal(
    deal_id: int,
    x_tenant_id: str | None = Header(default=None, alias="X-Tenant-Id"),
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
    db: Session = Depends(get_db),
) -> dict:
    try:
        ctx = resolve_context(x_tenant_id, x_user_id)
        result = DealService(db).delete_deal(ctx.tenant_id, deal_id, user_id=ctx.user_id)
    except ForecourtException as exc:
        _raise_http(exc)
    return {
        "success": True,
        "message": result.message,
        "deal_id": result.deal_id,
        "vehicle_released": result.vehicle_released,
    }


@router.get("/deals/{deal_id}/totals")
def get_totals(
    deal_id: int,
    x_tenant_id: str | None = Header(default=None, alias="X-Tenant-Id"),
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
    db: Session = Depends(get_db),
) -> dict:
    try:
        ctx = resolve_context(x_tenant_id, x_user_id)
        totals = DealService(db).get_totals(ctx.tenant_id, deal_id)
    except ForecourtException as exc:
        _raise_http(exc)
    return totals.as_dict()


@router.post("/deals/{deal_id}/take-deposit", status_code=status.HTTP_201_CREATED)
def take_deposit(
    deal_id: int,
    payload: DepositRequest,
    x_tenant_id: str | None = Header(default=None, alias="X-Tenant-Id"),
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
    db: Session = Depends(get_db),
) -> dict:
    try:
        ctx = resolve_context(x_tenant_id, x_user_id)
        result = DealService(db).take_deposit(
            ctx.tenant_id,
            deal_id,
            amount=payload.amount,
            method=payload.method,
            user_id=ctx.user_id,
            paid_at=payload.paid_at,
            reference=payload.reference,
            notes=payload.notes,
        )
    except ForecourtException as exc:
        _raise_http(exc)
    return {
        "deal": _deal_payload(result.deal),
        "document": _document_payload(result.document, result.share_token),
        "total_deposit_paid": str(result.total_deposit_paid),
    }


@router.post("/deals/{deal_id}/record-balance-payment", status_code=status.HTTP_201_CREATED)
def record_balance_payment(
    deal_id: int,
    payload: BalancePaymentRequest,
    x_tenant_id: str | None = Header(default=None, alias="X-Tenant-Id"),
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
    db: Session = Depends(get_db),
) -> dict:
    try:
        ctx = resolve_context(x_tenant_id, x_user_id)
        result = DealService(db).record_balance_payment(
            ctx.tenant_id,
            deal_id,
            amount=payload.amount,
            method=payload.method,
            user_id=ctx.user_id,
            payment_type=payload.payment_type,
            paid_at=payload.paid_at,
            reference=payload.reference,
            notes=payload.notes,
            issue_receipt=payload.issue_receipt,
        )
    except ForecourtException as exc:
        _raise_http(exc)
    return {
        "payment": PaymentResponse.model_validate(result.payment).model_dump(mode="json"),
        "balance_before": str(result.balance_before),
        "balance_after": str(result.balance_after),
        "is_fully_paid": result.is_fully_paid,
        "document": _document_payload(result.document, result.share_token),
    }


@router.post("/deals/{deal_id}/payments/{payment_id}/refund")
def refund_payment(
    deal_id: int,
    payment_id: int,
    x_tenant_id: str | None = Header(default=None, alias="X-Tenant-Id"),
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
    db: Session = Depends(get_db),
) -> dict:
    try:
        ctx = resolve_context(x_tenant_id, x_user_id)
        payment = DealService(db).refund_payment(ctx.tenant_id, deal_id, payment_id, user_id=ctx.user_id)
    except ForecourtException as exc:
        _raise_http(exc)
    return PaymentResponse.model_validate(payment).model_dump(mode="json")


@router.post("/deals/{deal_id}/generate-invoice", status_code=status.HTTP_201_CREATED)
def generate_invoice(
    deal_id: int,
    x_tenant_id: str | None = Header(default=None, alias="X-Tenant-Id"),
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
    db: Session = Depends(get_db),
) -> dict:
    try:
        ctx = resolve_context(x_tenant_id, x_user_id)
        result = DealService(db).generate_invoice(ctx.tenant_id, deal_id, user_id=ctx.user_id)
    except ForecourtException as exc:
        _raise_http(exc)
    return {"deal": _deal_payload(result.deal), "document": _document_payload(result.document, result.share_token)}


@router.post("/deals/{deal_id}/sign")
def sign_deal(
    deal_id: int,
    payload: SignRequest,
    x_tenant_id: str | None = Header(default=None, alias="X-Tenant-Id"),
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
    db: Session = Depends(get_db),
) -> dict:
    try:
        ctx = resolve_context(x_tenant_id, x_user_id)
        deal = DealService(db).sign(
            ctx.tenant_id, deal_id, payload.party, signer_name=payload.signer_name, user_id=ctx.user_id
        )
    except ForecourtException as exc:
        _raise_http(exc)
    return _deal_payload(deal)


@router.post("/deals/{deal_id}/sign-deposit")
def sign_deposit_receipt(
    deal_id: int,
    payload: SignDepositRequest,
    x_tenant_id: str | None = Header(default=None, alias="X-Tenant-Id"),
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
    db: Session = Depends(get_db),
) -> dict:
    try:
        ctx = resolve_context(x_tenant_id, x_user_id)
        document = DealService(db).sign_deposit_receipt(
            ctx.tenant_id,
            deal_id,
            dealer_name=payload.dealer_name,
            customer_name=payload.customer_name,
            user_id=ctx.user_id,
        )
    except ForecourtException as exc:
        _raise_http(exc)
    return _document_payload(document)


@router.post("/deals/{deal_id}/mark-delivered")
def mark_delivered(
    deal_id: int,
    payload: MarkDeliveredRequest,
    x_tenant_id: str | None = Header(default=None, alias="X-Tenant-Id"),
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
    db: Session = Depends(get_db),
) -> dict:
    try:
        ctx = resolve_context(x_tenant_id, x_user_id)
        deal = DealService(db).mark_delivered(
            ctx.tenant_id,
            deal_id,
            user_id=ctx.user_id,
            delivery_mileage=payload.delivery_mileage,
            notes=payload.notes,
        )
    except ForecourtException as exc:
        _raise_http(exc)
    return _deal_payload(deal)


@router.post("/deals/{deal_id}/mark-completed")
def mark_completed(
    deal_id: int,
    payload: MarkCompletedRequest,
    x_tenant_id: str | None = Header(default=None, alias="X-Tenant-Id"),
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
    db: Session = Depends(get_db),
) -> dict:
    try:
        ctx = resolve_context(x_tenant_id, x_user_id)
        result = DealService(db).mark_completed(
            ctx.tenant_id,
            deal_id,
            user_id=ctx.user_id,
            confirm_without_settlement=payload.confirm_without_settlement,
            completion_notes=payload.completion_notes,
        )
    except ForecourtException as exc:
        _raise_http(exc)
    return {
        "deal": _deal_payload(result.deal),
        "is_fully_paid": result.is_fully_paid,
        "balance_due": str(result.balance_due),
        "message": result.message,
        "part_exchange_vehicles": {
            "created": result.part_exchanges.created,
            "skipped": result.part_exchanges.skipped,
        },
    }


@router.post("/deals/{deal_id}/cancel")
def cancel_deal(
    deal_id: int,
    payload: CancelRequest,
    x_tenant_id: str | None = Header(default=None, alias="X-Tenant-Id"),
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
    db: Session = Depends(get_db),
) -> dict:
    try:
        ctx = resolve_context(x_tenant_id, x_user_id)
        result = DealService(db).cancel(ctx.tenant_id, deal_id, reason=payload.reason, user_id=ctx.user_id)
    except ForecourtException as exc:
        _raise_http(exc)
    return {
        "deal": _deal_payload(result.deal),
        "was_completed": result.was_completed,
        "vehicle_restored": result.vehicle_restored,
        "part_exchange_vehicles": {
            "deleted": result.part_exchanges.deleted,
            "kept": result.part_exchanges.kept,
        },
        "cancelled_requests": result.cancelled_requests,
        "resolved_issues": result.resolved_issues,
    }


@router.post("/deals/{deal_id}/part-exchanges", status_code=status.HTTP_201_CREATED)
def add_part_exchange(
    deal_id: int,
    payload: PartExchangeCreateRequest,
    x_tenant_id: str | None = Header(default=None, alias="X-Tenant-Id"),
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
    db: Session = Depends(get_db),
) -> dict:
    try:
        ctx = resolve_context(x_tenant_id, x_user_id)
        entry = DealService(db).add_part_exchange(ctx.tenant_id, deal_id, payload.model_dump(), user_id=ctx.user_id)
    except ForecourtException as exc:
        _raise_http(exc)
    return PartExchangeResponse.model_validate(entry).model_dump(mode="json")


@router.patch("/deals/{deal_id}/part-exchanges/{px_id}")
def update_part_exchange(
    deal_id: int,
    px_id: int,
    payload: PartExchangeUpdateRequest,
    x_tenant_id: str | None = Header(default=None, alias="X-Tenant-Id"),
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
    db: Session = Depends(get_db),
) -> dict:
    try:
        ctx = resolve_context(x_tenant_id, x_user_id)
        entry = DealService(db).update_part_exchange(
            ctx.tenant_id, deal_id, px_id, payload.model_dump(exclude_unset=True), user_id=ctx.user_id
        )
    except ForecourtException as exc:
        _raise_http(exc)
    return PartExchangeResponse.model_validate(entry).model_dump(mode="json")


@router.delete("/deals/{deal_id}/part-exchanges/{px_id}")
def remove_part_exchange(
    deal_id: int,
    px_id: int,
    x_tenant_id: str | None = Header(default=None, alias="X-Tenant-Id"),
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
    db: Session = Depends(get_db),
) -> dict:
    try:
        ctx = resolve_context(x_tenant_id, x_user_id)
        deal = DealService(db).remove_part_exchange(ctx.tenant_id, deal_id, px_id, user_id=ctx.user_id)
    except ForecourtException as exc:
        _raise_http(exc)
    return _deal_payload(deal)


@router.post("/deals/{deal_id}/regenerate-receipt")
def regenerate_receipt(
    deal_id: int,
    x_tenant_id: str | None = Header(default=None, alias="X-Tenant-Id"),
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
    db: Session = Depends(get_db),
) -> dict:
    try:
        ctx = resolve_context(x_tenant_id, x_user_id)
        document = DealService(db).regenerate_receipt(ctx.tenant_id, deal_id, user_id=ctx.user_id)
    except ForecourtException as exc:
        _raise_http(exc)
    return _document_payload(document)
