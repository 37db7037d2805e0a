"""
Application exception hierarchy.

Every domain error raised by the service layer derives from
BaseApplicationError so views and tasks can turn it into a consistent
JSON body ({"error", "error_code", "details"}) without knowing the
concrete type.

Hierarchy:
    BaseApplicationError
    ├── ValidationError        - bad input or a business rule rejected it
    ├── NotFoundError          - a looked-up record does not exist
    ├── PermissionDeniedError  - caller is not allowed to act on the resource
    ├── ConflictError          - the resource is not in the state required
    └── ExternalServiceError   - a third-party call failed

Usage:
    from core.exceptions import ValidationError

    if amount_cents < settings.PAYOUT_MINIMUM_CENTS:
        raise ValidationError(
            "Amount is below the payout minimum",
            error_code="BELOW_MINIMUM",
            details={"minimum_cents": settings.PAYOUT_MINIMUM_CENTS},
        )

Note:
    Expected business failures are usually returned as a
    core.services.ServiceResult instead of raised. Raise when the caller
    cannot reasonably continue.
"""

from __future__ import annotations

from typing import Any


class BaseApplicationError(Exception):
    """
    Base exception carrying a message, a machine-readable code and details.

    Attributes:
        message: Human-readable description
        error_code: Stable code clients can branch on
        details: Extra structured context (ids, amounts, states)
    """

    default_error_code: str = "APPLICATION_ERROR"

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Serialize for an API error response."""
        payload: dict[str, Any] = {
            "error": self.message,
            "error_code": self.error_code,
        }
        if self.details:
            payload["details"] = self.details
        return payload

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


class ValidationError(BaseApplicationError):
    """
    Raised when input or a business rule check fails.

    Examples: a non-positive amount, an amount under the payout minimum,
    a request larger than the available balance.
    """

    default_error_code: str = "VALIDATION_ERROR"


class NotFoundError(BaseApplicationError):
    """Raised when a single expected record does not exist."""

    default_error_code: str = "NOT_FOUND"


class PermissionDeniedError(BaseApplicationError):
    """
    Raised when the caller may not perform the operation.

    Authentication itself is handled by DRF; this covers ownership and
    role checks (e.g. a seller acting on another seller's request).
    """

    default_error_code: str = "PERMISSION_DENIED"


class ConflictError(BaseApplicationError):
    """
    Raised when an operation conflicts with the current resource state.

    Use for:
    - Invalid state transitions
    - Optimistic locking failures
    - Lock contention

    HTTP 409 Conflict is the appropriate status for these errors.
    """

    default_error_code: str = "CONFLICT"


class ExternalServiceError(BaseApplicationError):
    """
    Raised when a call to an external service fails.

    Log the original error for debugging; do not leak provider internals
    to API clients. HTTP 502 is the usual status.
    """

    default_error_code: str = "EXTERNAL_SERVICE_ERROR"
