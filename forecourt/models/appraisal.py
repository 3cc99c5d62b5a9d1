"""Trade-in appraisal models (read-only from the deal engine's perspective)."""

from __future__ import annotations

from sqlalchemy import ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from forecourt.models.base import AuditMixin, Base, TenantScopedMixin


class Appraisal(Base, AuditMixin, TenantScopedMixin):
    __tablename__ = "appraisals"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    vrm: Mapped[str] = mapped_column(String(16), nullable=False)
    make: Mapped[str | None] = mapped_column(String(120))
    model: Mapped[str | None] = mapped_column(String(120))
    condition_notes: Mapped[str | None] = mapped_column(Text)

    issues = relationship("AppraisalIssue", back_populates="appraisal", order_by="AppraisalIssue.id")


class AppraisalIssue(Base, AuditMixin):
    __tablename__ = "appraisal_issues"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    appraisal_id: Mapped[int] = mapped_column(ForeignKey("appraisals.id", ondelete="CASCADE"), nullable=False, index=True)
    # Lowercase appraisal vocabulary, e.g. "bodywork" / "outstanding"
    category: Mapped[str] = mapped_column(String(32), default="other", nullable=False)
    subcategory: Mapped[str | None] = mapped_column(String(120))
    description: Mapped[str | None] = mapped_column(Text)
    action_needed: Mapped[str | None] = mapped_column(Text)
    fault_codes: Mapped[str | None] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(32), default="outstanding", nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)

    appraisal = relationship("Appraisal", back_populates="issues")
