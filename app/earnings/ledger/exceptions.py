"""
Ledger exceptions.

Exception Hierarchy:
    LedgerError (base)
    ├── InvalidAmount - non-positive amounts, fee rates outside [0, 1]
    └── InsufficientBalance - a debit would drive available_balance negative

Usage:
    from earnings.ledger.exceptions import InsufficientBalance

    if rows_updated == 0:
        raise InsufficientBalance(seller.id, required=amount, available=current)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import BaseApplicationError, ValidationError

if TYPE_CHECKING:
    import uuid
    from typing import Any


class LedgerError(BaseApplicationError):
    """Base exception for ledger operations."""

    default_error_code: str = "LEDGER_ERROR"


class InvalidAmount(LedgerError, ValidationError):
    """Raised for a non-positive amount or an out-of-range fee rate."""

    default_error_code: str = "INVALID_AMOUNT"


class InsufficientBalance(LedgerError, ValidationError):
    """
    Raised when a seller's available balance cannot cover a debit.

    Attributes:
        seller_id: The seller whose balance was short
        required: Amount asked for, in cents
        available: Amount available at the time of the check, in cents
    """

    default_error_code: str = "INSUFFICIENT_BALANCE"

    def __init__(
        self,
        seller_id: uuid.UUID,
        required: int,
        available: int,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.seller_id = seller_id
        self.required = required
        self.available = available

        full_details = {
            "seller_id": str(seller_id),
            "required_cents": required,
            "available_cents": available,
        }
        if details:
            full_details.update(details)

        super().__init__(
            message=(
                f"Seller {seller_id} has insufficient available balance: "
                f"required {required} cents, available {available} cents"
            ),
            error_code=error_code,
            details=full_details,
        )
