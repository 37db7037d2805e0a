"""
Service layer primitives.

- ServiceResult: explicit success/failure value returned by services
- BaseService: shared helpers (per-class logger, transaction boundary)

Views deal with HTTP, models with persistence, services with the rules in
between. Expected failures (a rule said no) come back as a failed
ServiceResult; unexpected failures (bugs, database outages) are raised.

Usage:
    class PayoutRequestService(BaseService):
        @classmethod
        def request_payout(cls, seller, amount_cents) -> ServiceResult[PayoutRequest]:
            if amount_cents <= 0:
                return ServiceResult.failure("Amount must be positive", "INVALID_AMOUNT")
            with cls.atomic():
                ...
            return ServiceResult.success(payout_request)

    result = PayoutRequestService.request_payout(seller, 5000)
    if not result:
        return Response(result.to_response(), status=400)
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Generic, TypeVar

from django.db import transaction

if TYPE_CHECKING:
    from collections.abc import Callable, Generator
    from typing import Any

    from core.exceptions import BaseApplicationError

T = TypeVar("T")


@dataclass
class ServiceResult(Generic[T]):
    """
    Outcome of a service call.

    Attributes:
        success: Whether the operation did what was asked
        data: Payload on success (may also carry context on failure)
        error: Human-readable failure reason
        error_code: Machine-readable failure code
        errors: Field-level errors for validation failures
    """

    success: bool
    data: T | None = None
    error: str | None = None
    error_code: str | None = None
    errors: dict[str, list[str]] | None = field(default=None)

    @classmethod
    def ok(cls, data: T) -> ServiceResult[T]:
        """Alias for success()."""
        return cls(success=True, data=data)

    @classmethod
    def success(cls, data: T) -> ServiceResult[T]:
        return cls(success=True, data=data)

    @classmethod
    def failure(
        cls,
        error: str,
        error_code: str | None = None,
        errors: dict[str, list[str]] | None = None,
        data: T | None = None,
    ) -> ServiceResult[T]:
        """
        Build a failed result.

        ``data`` is optional; the payout processor uses it to hand back the
        request in its post-failure state so callers can render it.
        """
        return cls(
            success=False,
            data=data,
            error=error,
            error_code=error_code,
            errors=errors,
        )

    @classmethod
    def from_exception(
        cls, exc: Exception, error_code: str | None = None
    ) -> ServiceResult[T]:
        """Convert a caught exception, preferring its own error_code."""
        code = error_code or getattr(exc, "error_code", None)
        return cls(
            success=False,
            error=str(exc),
            error_code=code or exc.__class__.__name__.upper(),
        )

    def to_response(self) -> dict[str, Any]:
        """Body for a DRF Response."""
        if self.success:
            return {"success": True, "data": self.data}

        response: dict[str, Any] = {"success": False, "error": self.error}
        if self.error_code:
            response["error_code"] = self.error_code
        if self.errors:
            response["errors"] = self.errors
        return response

    def map(self, func: Callable[[T], Any]) -> ServiceResult:
        """Transform data when successful; failures pass through unchanged."""
        if self.success and self.data is not None:
            return ServiceResult.success(func(self.data))
        return self

    def __bool__(self) -> bool:
        return self.success


class BaseService:
    """
    Base class for stateless services.

    Services expose classmethods only. Subclasses get a logger named after
    the class and an explicit transaction boundary.
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """Logger named "<module>.<ClassName>" for easy filtering."""
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    @contextmanager
    def atomic(cls) -> Generator[None, None, None]:
        """Run the block in a database transaction (django.db.transaction)."""
        with transaction.atomic():
            yield

    @classmethod
    def handle_exception(
        cls,
        exc: BaseApplicationError | Exception,
        context: str = "",
        log_level: int = logging.ERROR,
    ) -> ServiceResult:
        """Log an exception with context and convert it to a failed result."""
        cls.get_logger().log(
            log_level,
            f"{context or 'Service error'}: {exc}",
            extra={
                "error_type": type(exc).__name__,
                "error_code": getattr(exc, "error_code", None),
            },
            exc_info=log_level >= logging.ERROR,
        )
        return ServiceResult.from_exception(exc)
