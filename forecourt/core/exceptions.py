"""Custom exceptions for the Forecourt deal engine."""

from __future__ import annotations


class ForecourtException(Exception):
    """Base exception for Forecourt application."""

    pass


class ValidationError(ForecourtException):
    """Raised when required input is missing or malformed."""

    pass


class InvalidStateError(ForecourtException):
    """Raised when an action is not permitted from the deal's current status."""

    pass


class ConfirmationRequiredError(ForecourtException):
    """Raised when completion needs an explicit confirmation from the caller.

    Not a terminal failure: the caller may re-invoke the same action with the
    confirmation flag set. ``vrms`` lists the part exchanges that triggered it.
    """

    def __init__(self, message: str, vrms: list[str] | None = None) -> None:
        super().__init__(message)
        self.vrms = list(vrms or [])


class NotFoundError(ForecourtException):
    """Raised when a resource is not found within the tenant."""

    pass


class ConflictError(ForecourtException):
    """Raised when a write would collide with an existing record."""

    pass


class DatabaseError(ForecourtException):
    """Raised when a database operation fails."""

    pass


class ConfigurationError(ForecourtException):
    """Raised when configuration is invalid."""

    pass


class AuthenticationError(ForecourtException):
    """Raised when the caller's tenant or user identity is missing."""

    pass
