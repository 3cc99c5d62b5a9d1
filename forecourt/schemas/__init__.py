"""Pydantic schema package for API contracts and document snapshots."""

from forecourt.schemas.common import ErrorEnvelope, Pagination
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
    SignRequest,
)
from forecourt.schemas.documents import DocumentResponse, PublicDocumentResponse
from forecourt.schemas.snapshots import DocumentSnapshot

__all__ = [
    "BalancePaymentRequest",
    "CancelRequest",
    "DealCreateRequest",
    "DealResponse",
    "DealUpdateRequest",
    "DepositRequest",
    "DocumentResponse",
    "DocumentSnapshot",
    "ErrorEnvelope",
    "MarkCompletedRequest",
    "MarkDeliveredRequest",
    "Pagination",
    "PartExchangeCreateRequest",
    "PartExchangeResponse",
    "PartExchangeUpdateRequest",
    "PublicDocumentResponse",
    "SignRequest",
]
