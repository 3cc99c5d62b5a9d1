"""Sales document endpoints for API v1."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.orm import Session

from forecourt.api.v1._context import map_domain_error, resolve_context
from forecourt.core.exceptions import ForecourtException
from forecourt.database.db import get_db
from forecourt.schemas.documents import DocumentResponse, PublicDocumentResponse
from forecourt.services.document_service import DocumentService

router = APIRouter(tags=["documents"])


@router.get("/documents/{document_id}")
def get_document(
    document_id: int,
    x_tenant_id: str | None = Header(default=None, alias="X-Tenant-Id"),
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
    db: Session = Depends(get_db),
) -> dict:
    try:
        ctx = resolve_context(x_tenant_id, x_user_id)
        document = DocumentService(db).get_document(ctx.tenant_id, document_id)
    except ForecourtException as exc:
        code, detail = map_domain_error(exc)
        raise HTTPException(status_code=code, detail=detail) from exc
    return DocumentResponse.model_validate(document).model_dump(mode="json")


@router.get("/public/documents/{token}")
def get_shared_document(token: str, db: Session = Depends(get_db)) -> dict:
    try:
        document = DocumentService(db).get_by_share_token(token)
    except ForecourtException as exc:
        code, detail = map_domain_error(exc)
        raise HTTPException(status_code=code, detail=detail) from exc
    return PublicDocumentResponse.model_validate(document).model_dump(mode="json")
