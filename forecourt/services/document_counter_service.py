"""Atomic per-tenant, per-type document number allocation."""

from __future__ import annotations

import logging

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from forecourt.core.exceptions import DatabaseError
from forecourt.models.enums import DocumentType
from forecourt.models.sales_document import DocumentCounter
from forecourt.services.base_service import BaseService

logger = logging.getLogger(__name__)

NUMBER_WIDTH = 5
MAX_CREATE_ATTEMPTS = 3


def format_document_number(prefix: str, number: int) -> str:
    return f"{prefix}{number:0{NUMBER_WIDTH}d}"


class DocumentCounterService(BaseService):
    """Hands out sequential numbers that are never reused.

    The increment is a single ``UPDATE ... SET next_number = next_number + 1``
    executed inside the caller's transaction, so the counter row stays locked
    until that transaction ends and concurrent allocations serialize on it.
    """

    def allocate(self, tenant_id: int, document_type: DocumentType, prefix: str) -> str:
        number = self.allocate_number(tenant_id, document_type, prefix)
        return format_document_number(prefix, number)

    def allocate_number(self, tenant_id: int, document_type: DocumentType, prefix: str) -> int:
        for _ in range(MAX_CREATE_ATTEMPTS):
            allocated = self._increment(tenant_id, document_type)
            if allocated is not None:
                return allocated
            self._create_counter(tenant_id, document_type, prefix)
        raise DatabaseError(f"Could not allocate a {document_type.value} number.")

    def _increment(self, tenant_id: int, document_type: DocumentType) -> int | None:
        result = self.db.execute(
            update(DocumentCounter)
            .where(DocumentCounter.tenant_id == tenant_id, DocumentCounter.type == document_type)
            .values(next_number=DocumentCounter.next_number + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            return None
        next_number = self.db.execute(
            select(DocumentCounter.next_number).where(
                DocumentCounter.tenant_id == tenant_id, DocumentCounter.type == document_type
            )
        ).scalar_one()
        return next_number - 1

    def _create_counter(self, tenant_id: int, document_type: DocumentType, prefix: str) -> None:
        """First use for this tenant and type; a concurrent creator may win the race."""
        try:
            with self.db.begin_nested():
                self.db.add(DocumentCounter(tenant_id=tenant_id, type=document_type, prefix=prefix, next_number=1))
        except IntegrityError:
            logger.info(
                "document_counter.create.raced",
                extra={"event": "document_counter.create.raced", "tenant_id": tenant_id},
            )

    def peek(self, tenant_id: int, document_type: DocumentType) -> int:
        """Next number that would be issued, without consuming it."""
        next_number = self.db.execute(
            select(DocumentCounter.next_number).where(
                DocumentCounter.tenant_id == tenant_id, DocumentCounter.type == document_type
            )
        ).scalar_one_or_none()
        return next_number if next_number is not None else 1
