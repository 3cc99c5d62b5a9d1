"""Sales document response schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict

from forecourt.models.enums import DocumentStatus, DocumentType


class DocumentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    deal_id: int
    type: DocumentType
    document_number: str
    status: DocumentStatus
    issued_at: datetime
    snapshot_data: dict[str, Any]
    regenerated_at: datetime | None = None


class PublicDocumentResponse(BaseModel):
    """What an unauthenticated share-link holder may see."""

    model_config = ConfigDict(from_attributes=True)

    type: DocumentType
    document_number: str
    issued_at: datetime
    snapshot_data: dict[str, Any]
