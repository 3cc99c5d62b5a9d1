"""Sales document snapshots and their per-tenant numbering counters."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from forecourt.models.base import AuditMixin, Base, TenantScopedMixin, enum_column
from forecourt.models.enums import DocumentStatus, DocumentType


class SalesDocument(Base, AuditMixin, TenantScopedMixin):
    __tablename__ = "sales_documents"
    __table_args__ = (
        UniqueConstraint("tenant_id", "type", "document_number", name="uq_sales_documents_tenant_type_number"),
        Index("idx_sales_documents_deal_type", "deal_id", "type"),
        Index("idx_sales_documents_share_token", "share_token_hash"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    deal_id: Mapped[int] = mapped_column(ForeignKey("deals.id", ondelete="CASCADE"), nullable=False)
    type: Mapped[DocumentType] = mapped_column(enum_column(DocumentType), nullable=False)
    document_number: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[DocumentStatus] = mapped_column(
        enum_column(DocumentStatus), default=DocumentStatus.ISSUED, nullable=False
    )
    issued_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    snapshot_data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    share_token_hash: Mapped[str | None] = mapped_column(String(64))
    share_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"))
    regenerated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    regenerated_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"))

    deal = relationship("Deal")


class DocumentCounter(Base, TenantScopedMixin):
    __tablename__ = "document_counters"
    __table_args__ = (UniqueConstraint("tenant_id", "type", name="uq_document_counters_tenant_type"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    type: Mapped[DocumentType] = mapped_column(enum_column(DocumentType), nullable=False)
    prefix: Mapped[str] = mapped_column(String(16), nullable=False)
    next_number: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
