"""
Data types for ledger operations.

Types:
    Money: An amount in cents with its currency, for display and API output
    TransitionOutcome: Result of a guarded transition (applied or conflict)
    EarningLine: One order line handed to LedgerService.record_order_earnings
    MarkPaidResult: Which earnings a completed payout marked paid

Helpers:
    cents_from_decimal: Decimal dollars from an API body -> integer cents
    calculate_fee: round_half_up(gross * fee_rate)

Usage:
    from earnings.ledger.types import Money, calculate_fee

    fee = calculate_fee(10000, Decimal("0.10"))   # 1000
    str(Money(cents=9000))                        # "$90.00 USD"
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import TYPE_CHECKING

from earnings.ledger.exceptions import InvalidAmount

if TYPE_CHECKING:
    from typing import Any


CENT = Decimal("0.01")


@dataclass(frozen=True)
class Money:
    """
    An amount of money.

    Stored in the smallest currency unit so arithmetic never goes through
    floats.

    Example:
        Money(cents=5000) + Money(cents=250)  # Money(cents=5250, currency='usd')
        Money(cents=5000).as_decimal_string()  # "50.00"
    """

    cents: int
    currency: str = "usd"

    def __str__(self) -> str:
        return f"${self.cents / 100:.2f} {self.currency.upper()}"

    def __add__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other)
        return Money(cents=self.cents + other.cents, currency=self.currency)

    def __sub__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other)
        return Money(cents=self.cents - other.cents, currency=self.currency)

    def _check_currency(self, other: Money) -> None:
        if self.currency != other.currency:
            raise ValueError(
                f"Cannot combine Money in {self.currency} and {other.currency}"
            )

    def as_decimal_string(self) -> str:
        """Two-decimal string as PayPal expects it in amount.value."""
        return str((Decimal(self.cents) / 100).quantize(CENT))


@dataclass
class TransitionOutcome:
    """
    Result of a guarded state transition.

    A transition that finds the entity in an unexpected state (a duplicate
    webhook, a reversal that beat the scheduler) is not an error: it comes
    back with ``applied=False, conflict=True`` and the state it found.

    Attributes:
        applied: The transition happened
        conflict: The entity was not in a source state
        previous_status: Status found under the row lock
        current_status: Status after the call
        details: Operation-specific extras (amounts moved, debt recorded)
    """

    applied: bool
    conflict: bool = False
    previous_status: str | None = None
    current_status: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def done(cls, previous: str, current: str, **details: Any) -> TransitionOutcome:
        return cls(
            applied=True,
            previous_status=previous,
            current_status=current,
            details=details,
        )

    @classmethod
    def conflicted(cls, current: str, **details: Any) -> TransitionOutcome:
        return cls(
            applied=False,
            conflict=True,
            previous_status=current,
            current_status=current,
            details=details,
        )

    def describe(self) -> str:
        """Short text stored as a webhook event outcome."""
        if self.applied:
            return f"{self.previous_status}->{self.current_status}"
        return f"conflict:{self.current_status}"


@dataclass(frozen=True)
class EarningLine:
    """One sold order line."""

    order_item_id: str
    seller_id: Any
    gross_amount_cents: int


def cents_from_decimal(value: Any) -> int:
    """
    Convert a dollar amount ("50.00", Decimal("50"), 50) to cents.

    Raises:
        InvalidAmount: Not a number, or more than two decimal places
    """
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise InvalidAmount(
            f"'{value}' is not a valid amount",
            details={"value": str(value)},
        )
    if not amount.is_finite():
        raise InvalidAmount(f"'{value}' is not a valid amount", details={"value": str(value)})
    if amount != amount.quantize(CENT):
        raise InvalidAmount(
            "Amounts may have at most two decimal places",
            details={"value": str(value)},
        )
    return int(amount * 100)


def calculate_fee(gross_amount_cents: int, fee_rate: Decimal) -> int:
    """Platform fee in cents, rounded half up."""
    return int(
        (Decimal(gross_amount_cents) * fee_rate).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    )


@dataclass
class MarkPaidResult:
    """Earnings moved to paid by a completed payout, and those skipped."""

    paid: list[Any] = field(default_factory=list)
    conflicts: list[Any] = field(default_factory=list)

    @property
    def paid_count(self) -> int:
        return len(self.paid)
