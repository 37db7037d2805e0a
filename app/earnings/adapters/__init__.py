"""
Gateway adapters.

Exports:
    PayPalAdapter: PayPal REST calls (payouts, batch status, webhook verification)
    IdempotencyKeyGenerator: deterministic per-attempt submission keys
    CreatePayoutBatchParams, PayoutBatchResult, PayoutBatchDetails, PayoutItemStatus
"""

from .paypal_adapter import (
    CreatePayoutBatchParams,
    IdempotencyKeyGenerator,
    PayoutBatchDetails,
    PayoutBatchResult,
    PayoutItemStatus,
    PayPalAdapter,
)

__all__ = [
    "CreatePayoutBatchParams",
    "IdempotencyKeyGenerator",
    "PayPalAdapter",
    "PayoutBatchDetails",
    "PayoutBatchResult",
    "PayoutItemStatus",
]
