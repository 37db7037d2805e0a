"""
Ledger audit: recomputes every seller's balance equation from the records.

For each seller:

    pending + available + outstanding requests
        == net of non-reversed earnings - completed payouts + unrecovered debt

and pending must equal the net of the seller's escrowed earnings. A
mismatch is a bug or a manual database edit, never a race: it is logged
at CRITICAL, stored as a BalanceDiscrepancy and the seller is frozen
(PAYOUTS_LOCKED) until an operator reconciles the account.

Usage:
    from earnings.services import LedgerAuditService

    result = LedgerAuditService.audit_seller(seller)
    if not result.balanced:
        ...
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from django.db.models import F, Sum

from core.services import BaseService, ServiceResult

from earnings.locks import lock_seller
from earnings.models import (
    BalanceDiscrepancy,
    ClawbackDebt,
    Earning,
    PayoutRequest,
    SellerAccount,
)
from earnings.state_machines import EarningStatus, PayoutRequestStatus, SellerStatus

if TYPE_CHECKING:
    import uuid
    from typing import Any


@dataclass
class AuditResult:
    """
    Balance equation for one seller.

    Attributes:
        held_cents: pending + available + outstanding requests
        expected_cents: earnings - completed payouts + unrecovered debt
        escrow_cents: net of earnings still in escrow
        pending_cents: the seller's pending balance
    """

    seller_id: uuid.UUID
    held_cents: int
    expected_cents: int
    escrow_cents: int
    pending_cents: int
    discrepancy_id: uuid.UUID | None = None
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def balanced(self) -> bool:
        return self.held_cents == self.expected_cents and self.escrow_cents == self.pending_cents

    @property
    def difference_cents(self) -> int:
        return self.held_cents - self.expected_cents


def _total(queryset, expression) -> int:
    return queryset.aggregate(total=Sum(expression))["total"] or 0


class LedgerAuditService(BaseService):
    """Checks seller balances against the earnings, payouts and debts."""

    @classmethod
    def compute(cls, seller: SellerAccount) -> AuditResult:
        """Both sides of the balance equation, without side effects."""
        outstanding = _total(
            PayoutRequest.objects.filter(
                seller=seller,
                status__in=[PayoutRequestStatus.PENDING, PayoutRequestStatus.PROCESSING],
            ),
            "amount_cents",
        )
        completed = _total(
            PayoutRequest.objects.filter(seller=seller, status=PayoutRequestStatus.COMPLETED),
            "amount_cents",
        )
        earned = _total(
            Earning.objects.filter(seller=seller).exclude(status=EarningStatus.REVERSED),
            "net_amount_cents",
        )
        escrow = _total(
            Earning.objects.filter(seller=seller, status=EarningStatus.ESCROW),
            "net_amount_cents",
        )
        # Written-off debt is still money that left without a balance debit
        debt = _total(
            ClawbackDebt.objects.filter(seller=seller),
            F("amount_cents") - F("recovered_cents"),
        )

        held = seller.pending_balance_cents + seller.available_balance_cents + outstanding
        return AuditResult(
            seller_id=seller.pk,
            held_cents=held,
            expected_cents=earned - completed + debt,
            escrow_cents=escrow,
            pending_cents=seller.pending_balance_cents,
            details={
                "pending_cents": seller.pending_balance_cents,
                "available_cents": seller.available_balance_cents,
                "outstanding_requests_cents": outstanding,
                "earned_cents": earned,
                "completed_payouts_cents": completed,
                "unrecovered_debt_cents": debt,
                "escrow_cents": escrow,
            },
        )

    @classmethod
    def audit_seller(cls, seller: SellerAccount | uuid.UUID) -> AuditResult:
        """
        Audit one seller under its row lock; freeze it on a mismatch.
        """
        seller_id = seller.pk if isinstance(seller, SellerAccount) else seller
        with cls.atomic():
            locked = lock_seller(seller_id)
            result = cls.compute(locked)
            if result.balanced:
                return result

            cls.get_logger().critical(
                "Seller balance invariant violated",
                extra={
                    "seller_id": str(seller_id),
                    "held_cents": result.held_cents,
                    "expected_cents": result.expected_cents,
                    "difference_cents": result.difference_cents,
                    **result.details,
                },
            )
            discrepancy = BalanceDiscrepancy.objects.create(
                seller=locked,
                expected_cents=result.expected_cents,
                actual_cents=result.held_cents,
                difference_cents=result.difference_cents,
                details=result.details,
            )
            result.discrepancy_id = discrepancy.pk

            if locked.status == SellerStatus.ACTIVE:
                SellerAccount.objects.filter(pk=locked.pk).update(
                    status=SellerStatus.PAYOUTS_LOCKED,
                    status_reason=f"Balance audit found a discrepancy ({discrepancy.pk})",
                    version=F("version") + 1,
                )
        return result

    @classmethod
    def audit_all(cls) -> ServiceResult[dict[str, int]]:
        """Audit every seller; returns counts of audited and unbalanced."""
        audited = 0
        unbalanced = 0
        for seller_id in SellerAccount.objects.values_list("pk", flat=True).iterator():
            result = cls.audit_seller(seller_id)
            audited += 1
            if not result.balanced:
                unbalanced += 1

        cls.get_logger().info(
            "Seller balance audit finished",
            extra={"audited": audited, "unbalanced": unbalanced},
        )
        return ServiceResult.success({"audited": audited, "unbalanced": unbalanced})
