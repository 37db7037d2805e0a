"""
BalanceDiscrepancy model: a failed balance audit for one seller.

Created by LedgerAuditService when a seller's stored balances disagree with
the balances derived from earnings, payout requests and clawback debts.
The seller is frozen (payouts_locked) until an operator resolves it.
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel


class BalanceDiscrepancy(UUIDPrimaryKeyMixin, BaseModel):
    """
    Result of a failed balance invariant check.

    Fields:
        expected_cents: Balance derived from earnings, payouts and debts
        actual_cents: pending + available + outstanding reservations
        difference_cents: actual - expected
        details: Breakdown of every term of the check
    """

    seller = models.ForeignKey(
        "earnings.SellerAccount",
        on_delete=models.PROTECT,
        related_name="balance_discrepancies",
        help_text="Seller whose balances failed the audit",
    )

    expected_cents = models.BigIntegerField(
        help_text="Balance derived from the ledger records",
    )

    actual_cents = models.BigIntegerField(
        help_text="Balance held on the seller account",
    )

    difference_cents = models.BigIntegerField(
        help_text="actual - expected",
    )

    details = models.JSONField(
        default=dict,
        blank=True,
        help_text="Per-term breakdown of the audit",
    )

    resolved = models.BooleanField(
        default=False,
        db_index=True,
        help_text="Whether an operator has reconciled the difference",
    )

    resolved_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the discrepancy was resolved",
    )

    resolution_notes = models.TextField(
        blank=True,
        default="",
        help_text="How the discrepancy was resolved",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Balance Discrepancy"
        verbose_name_plural = "Balance Discrepancies"
        indexes = [
            models.Index(fields=["seller", "resolved"], name="discrep_seller_resolved_idx"),
        ]

    def __str__(self) -> str:
        return f"BalanceDiscrepancy({self.seller_id}, diff={self.difference_cents})"

    def resolve(self, notes: str) -> None:
        """Does not save."""
        self.resolved = True
        self.resolved_at = timezone.now()
        self.resolution_notes = notes
