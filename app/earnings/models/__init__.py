"""
Earnings models.

Models:
    SellerAccount: Per-seller balances and payout destination
    Earning: One sold order line's seller share
    PayoutRequest: A seller withdrawal
    ProcessedGatewayEvent: Webhook idempotency record
    ClawbackDebt: Amount owed back after a reversal
    BalanceDiscrepancy: Failed balance audit
    OperatorAuditLog: Operator actions with before and after values
"""

from .balance_discrepancy import BalanceDiscrepancy
from .clawback_debt import ClawbackDebt
from .earning import Earning
from .gateway_event import ProcessedGatewayEvent
from .operator_audit_log import OperatorAuditLog
from .payout_request import PayoutRequest
from .seller_account import SellerAccount

__all__ = [
    "BalanceDiscrepancy",
    "ClawbackDebt",
    "Earning",
    "OperatorAuditLog",
    "PayoutRequest",
    "ProcessedGatewayEvent",
    "SellerAccount",
]
