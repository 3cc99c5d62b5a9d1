"""Activity log model module."""

from __future__ import annotations

from typing import Any

from sqlalchemy import JSON, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from forecourt.models.base import AuditMixin, Base, TenantScopedMixin


class ActivityLog(Base, AuditMixin, TenantScopedMixin):
    __tablename__ = "activity_logs"
    __table_args__ = (Index("idx_activity_logs_tenant_deal", "tenant_id", "deal_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    deal_id: Mapped[int | None] = mapped_column(Integer)
    vehicle_id: Mapped[int | None] = mapped_column(Integer)
    user_id: Mapped[int | None] = mapped_column(Integer)
    event: Mapped[str] = mapped_column(String(120), nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
