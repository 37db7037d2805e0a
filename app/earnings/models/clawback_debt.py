"""
ClawbackDebt model: money a seller owes back after a reversal.

Recorded when an earning is reversed but its net amount cannot be taken
from the seller's balances: the earning was already paid out, or part of
the available balance was already reserved by a payout request.
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from earnings.state_machines import ClawbackStatus


class ClawbackDebt(UUIDPrimaryKeyMixin, BaseModel):
    """
    Outstanding liability created by reversing an earning.

    Fields:
        seller: Seller who owes the amount
        earning: Reversed earning that produced the debt
        amount_cents: Amount that could not be taken from balances
        recovered_cents: Amount recovered so far from later releases
        status: OUTSTANDING, RECOVERED or WRITTEN_OFF
    """

    seller = models.ForeignKey(
        "earnings.SellerAccount",
        on_delete=models.PROTECT,
        related_name="clawback_debts",
        help_text="Seller who owes the amount",
    )

    earning = models.OneToOneField(
        "earnings.Earning",
        on_delete=models.PROTECT,
        related_name="clawback_debt",
        help_text="Reversed earning that produced this debt",
    )

    amount_cents = models.BigIntegerField(
        help_text="Debt amount in cents",
    )

    recovered_cents = models.BigIntegerField(
        default=0,
        help_text="Amount recovered so far in cents",
    )

    currency = models.CharField(
        max_length=3,
        default="usd",
        help_text="ISO 4217 currency code",
    )

    status = models.CharField(
        max_length=20,
        choices=ClawbackStatus.choices,
        default=ClawbackStatus.OUTSTANDING,
        db_index=True,
        help_text="Settlement state",
    )

    reason = models.TextField(
        blank=True,
        default="",
        help_text="Reversal reason copied from the earning",
    )

    resolved_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the debt was fully recovered or written off",
    )

    class Meta:
        ordering = ["created_at"]
        verbose_name = "Clawback Debt"
        verbose_name_plural = "Clawback Debts"
        indexes = [
            models.Index(fields=["seller", "status"], name="clawback_seller_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount_cents__gt=0),
                name="clawback_amount_positive",
            ),
            models.CheckConstraint(
                condition=models.Q(recovered_cents__gte=0)
                & models.Q(recovered_cents__lte=models.F("amount_cents")),
                name="clawback_recovered_within_amount",
            ),
        ]

    def __str__(self) -> str:
        return (
            f"ClawbackDebt({self.id}, {self.status}, "
            f"outstanding={self.outstanding_cents / 100:.2f})"
        )

    @property
    def outstanding_cents(self) -> int:
        return self.amount_cents - self.recovered_cents

    def recover(self, cents: int) -> None:
        """Apply a recovered amount. Does not save."""
        self.recovered_cents += cents
        if self.recovered_cents >= self.amount_cents:
            self.status = ClawbackStatus.RECOVERED
            self.resolved_at = timezone.now()

    def write_off(self) -> None:
        """Does not save."""
        self.status = ClawbackStatus.WRITTEN_OFF
        self.resolved_at = timezone.now()
