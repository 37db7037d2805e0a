"""
Earnings-specific exceptions.

Exception Hierarchy:
    EarningsError (base for the earnings domain)
    ├── SellerAccountNotFound
    ├── EarningNotFound
    └── PayoutRequestNotFound

    AuthorizationError - caller is not the owning seller / not an operator

    ConcurrencyConflict (ConflictError)
    ├── StaleRecordError - optimistic version mismatch
    ├── LockAcquisitionError - distributed lock not acquired
    └── InvalidStateTransitionError - guarded transition refused

    GatewayError (ExternalServiceError) - PayPal call failed
    ├── GatewayAuthenticationError - bad credentials / token (definite)
    ├── GatewayConnectionError - could not reach PayPal (definite unless dropped mid-request)
    ├── GatewayRejectedError - 4xx, batch rejected (definite)
    ├── GatewayRateLimitError - 429 (definite, retryable)
    ├── GatewayTimeoutError - read timeout (outcome unknown)
    └── GatewayServerError - 5xx / unreadable reply (outcome unknown)

    SignatureVerificationError - webhook authenticity check failed

Usage:
    from earnings.exceptions import GatewayError

    try:
        adapter.create_payout_batch(params)
    except GatewayError as e:
        if e.outcome_unknown:
            # The batch may exist; leave the request in processing
            ...
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    PermissionDeniedError,
)

if TYPE_CHECKING:
    from typing import Any


# =============================================================================
# Domain Exceptions
# =============================================================================


class EarningsError(BaseApplicationError):
    """Base class for earnings domain errors."""

    default_error_code: str = "EARNINGS_ERROR"


class SellerAccountNotFound(EarningsError, NotFoundError):
    default_error_code: str = "SELLER_NOT_FOUND"


class EarningNotFound(EarningsError, NotFoundError):
    default_error_code: str = "EARNING_NOT_FOUND"


class PayoutRequestNotFound(EarningsError, NotFoundError):
    default_error_code: str = "PAYOUT_REQUEST_NOT_FOUND"


class AuthorizationError(PermissionDeniedError):
    """
    Raised when the caller does not own the resource or lacks the operator role.
    """

    default_error_code: str = "NOT_AUTHORIZED"


# =============================================================================
# Concurrency Control Exceptions
# =============================================================================


class ConcurrencyConflict(ConflictError):
    """
    A guarded operation found the entity in an unexpected state.

    Usually a race (a reversal beat a release, a duplicate webhook beat the
    first one). Services resolve it by re-checking the current state and
    treating the operation as a no-op; it is not a bug.
    """

    default_error_code: str = "CONCURRENCY_CONFLICT"


class StaleRecordError(ConcurrencyConflict):
    """
    Raised when optimistic locking detects concurrent modification.

    Attributes:
        details: pk, expected_version and current_version
    """

    default_error_code: str = "STALE_RECORD"


class LockAcquisitionError(ConcurrencyConflict):
    """
    Raised when a distributed lock cannot be acquired within its timeout.

    Attributes:
        details: key and timeout
    """

    default_error_code: str = "LOCK_ACQUISITION_FAILED"


class InvalidStateTransitionError(ConcurrencyConflict):
    """
    Raised when a state machine transition is not allowed.

    Wraps django-fsm's TransitionNotAllowed with the standard error format.

    Example:
        raise InvalidStateTransitionError(
            "Cannot complete payout request from 'failed'",
            details={"current_state": "failed", "target_state": "completed"},
        )
    """

    default_error_code: str = "INVALID_STATE_TRANSITION"


# =============================================================================
# Gateway Exceptions
# =============================================================================


class GatewayError(ExternalServiceError):
    """
    Base for PayPal failures.

    Attributes:
        outcome_unknown: The request may have reached PayPal and been
            accepted (timeouts, 5xx). Callers must not assume failure.
        is_retryable: A later attempt could succeed without operator changes.
        gateway_code: PayPal error name (e.g. "INSUFFICIENT_FUNDS")
        debug_id: PayPal debug id for support tickets
    """

    default_error_code: str = "GATEWAY_ERROR"
    outcome_unknown: bool = False
    is_retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        gateway_code: str | None = None,
        debug_id: str | None = None,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
        outcome_unknown: bool | None = None,
    ):
        details = details or {}
        if gateway_code:
            details["gateway_code"] = gateway_code
        if debug_id:
            details["debug_id"] = debug_id
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(message, error_code=error_code, details=details)
        self.gateway_code = gateway_code
        self.debug_id = debug_id
        self.status_code = status_code
        if outcome_unknown is not None:
            self.outcome_unknown = outcome_unknown


# -----------------------------------------------------------------------------
# Definite failures: PayPal did not accept the instruction
# -----------------------------------------------------------------------------


class GatewayAuthenticationError(GatewayError):
    """OAuth token could not be obtained or was refused."""

    default_error_code: str = "GATEWAY_AUTHENTICATION_FAILED"


class GatewayConnectionError(GatewayError):
    """
    Network error reaching PayPal.

    Definite when no connection was made. A connection dropped after the
    request was sent is raised with outcome_unknown=True.
    """

    default_error_code: str = "GATEWAY_UNAVAILABLE"
    is_retryable: bool = True


class GatewayRejectedError(GatewayError):
    """PayPal answered 4xx: validation error, insufficient funds, bad receiver."""

    default_error_code: str = "GATEWAY_REJECTED"


class GatewayRateLimitError(GatewayError):
    """PayPal answered 429."""

    default_error_code: str = "GATEWAY_RATE_LIMITED"
    is_retryable: bool = True


# -----------------------------------------------------------------------------
# Ambiguous failures: the batch may or may not exist
# -----------------------------------------------------------------------------


class GatewayTimeoutError(GatewayError):
    """
    The request was sent but no response arrived in time.

    The payout request stays in processing; the webhook or a status sync
    is the authority on what happened.
    """

    default_error_code: str = "GATEWAY_TIMEOUT"
    outcome_unknown: bool = True
    is_retryable: bool = True


class GatewayServerError(GatewayError):
    """PayPal answered 5xx or with a body we could not read."""

    default_error_code: str = "GATEWAY_SERVER_ERROR"
    outcome_unknown: bool = True
    is_retryable: bool = True


# =============================================================================
# Webhook Exceptions
# =============================================================================


class SignatureVerificationError(EarningsError):
    """
    Raised when a webhook fails PayPal's authenticity check.

    The event must be rejected (401) and must not mutate state.
    """

    default_error_code: str = "INVALID_SIGNATURE"


__all__ = [
    "AuthorizationError",
    "ConcurrencyConflict",
    "EarningNotFound",
    "EarningsError",
    "GatewayAuthenticationError",
    "GatewayConnectionError",
    "GatewayError",
    "GatewayRateLimitError",
    "GatewayRejectedError",
    "GatewayServerError",
    "GatewayTimeoutError",
    "InvalidStateTransitionError",
    "LockAcquisitionError",
    "PayoutRequestNotFound",
    "SellerAccountNotFound",
    "SignatureVerificationError",
    "StaleRecordError",
]
