"""Shared request-context helpers for API v1 route modules."""

from __future__ import annotations

from dataclasses import dataclass

from forecourt.core.exceptions import (
    AuthenticationError,
    ConfirmationRequiredError,
    ConflictError,
    DatabaseError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)


@dataclass(frozen=True)
class TenantContext:
    tenant_id: int
    user_id: int | None = None


def _parse_id(raw: str | None, header: str) -> int | None:
    if raw is None or not str(raw).strip():
        return None
    try:
        value = int(str(raw).strip())
    except ValueError as exc:
        raise AuthenticationError(f"{header} header must be an integer.") from exc
    if value < 1:
        raise AuthenticationError(f"{header} header must be positive.")
    return value


def resolve_context(x_tenant_id: str | None, x_user_id: str | None) -> TenantContext:
    """Build the caller context from gateway-provided identity headers."""
    tenant_id = _parse_id(x_tenant_id, "X-Tenant-Id")
    if tenant_id is None:
        raise AuthenticationError("X-Tenant-Id header is required.")
    return TenantContext(tenant_id=tenant_id, user_id=_parse_id(x_user_id, "X-User-Id"))


def map_domain_error(exc: Exception) -> tuple[int, str | dict]:
    if isinstance(exc, AuthenticationError):
        return 401, str(exc)
    if isinstance(exc, ConfirmationRequiredError):
        return 409, {"code": "CONFIRMATION_REQUIRED", "message": str(exc), "vrms": exc.vrms}
    if isinstance(exc, ValidationError):
        return 400, str(exc)
    if isinstance(exc, NotFoundError):
        return 404, str(exc)
    if isinstance(exc, (InvalidStateError, ConflictError)):
        return 409, str(exc)
    if isinstance(exc, DatabaseError):
        return 500, "Database error."
    return 500, "Internal server error."
