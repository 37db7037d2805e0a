"""
Seller balance ledger.

Exports:
    LedgerService: record, release, mark paid and reverse earnings
    Money, TransitionOutcome, EarningLine, MarkPaidResult
    LedgerError, InsufficientBalance, InvalidAmount
"""

from .exceptions import InsufficientBalance, InvalidAmount, LedgerError
from .services import LedgerService
from .types import EarningLine, MarkPaidResult, Money, TransitionOutcome

__all__ = [
    "EarningLine",
    "InsufficientBalance",
    "InvalidAmount",
    "LedgerError",
    "LedgerService",
    "MarkPaidResult",
    "Money",
    "TransitionOutcome",
]
