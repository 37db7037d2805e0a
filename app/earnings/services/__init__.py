"""
Earnings services.

This module provides:
- PayoutRequestService: Sellers reserve funds for a withdrawal
- PayoutProcessor: Submits requests to PayPal and syncs their status
- PayoutReconciler: Applies completed/failed outcomes reported by PayPal
- ReversalService: Reverses earnings after refunds and chargebacks
- LedgerAuditService: Checks the balance equation and freezes sellers
- SellerAccountService: Seller creation and operator status changes

Usage:
    from earnings.services import PayoutRequestService, PayoutProcessor

    result = PayoutRequestService.request_payout(seller, amount_cents=5000)
    result = PayoutProcessor.process_request(result.data.id, operator=staff_user)
"""

from earnings.services.audit_service import AuditResult, LedgerAuditService
from earnings.services.payout_processor import PayoutProcessor, ProcessResult
from earnings.services.payout_reconciler import PayoutReconciler
from earnings.services.payout_request_service import PayoutRequestService
from earnings.services.reversal_service import ReversalResult, ReversalService
from earnings.services.seller_service import SellerAccountService

__all__ = [
    "AuditResult",
    "LedgerAuditService",
    "PayoutProcessor",
    "PayoutReconciler",
    "PayoutRequestService",
    "ProcessResult",
    "ReversalResult",
    "ReversalService",
    "SellerAccountService",
]
