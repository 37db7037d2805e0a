"""
Earning model: the seller's share of one sold order line.

Earnings are created once by LedgerService.record_earning and only ever
change through the django-fsm transitions below, each called by the
ledger with the earning and seller rows locked. They are never deleted.

Usage:
    from earnings.models import Earning
    from earnings.state_machines import EarningStatus

    earning.release()     # escrow -> available
    earning.save()

    earning.reverse(reason="buyer refund")   # any live state -> reversed
    earning.save()
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from django_fsm import FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin
from core.models import BaseModel

from earnings.state_machines import EarningStatus


class Earning(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
    """
    One order line's earning for a seller.

    State Flow:
        ESCROW -> AVAILABLE -> PAID
        ESCROW / AVAILABLE / PAID -> REVERSED

    Amounts:
        gross_amount_cents: what the buyer paid for the line
        platform_fee_cents: round_half_up(gross * fee_rate)
        net_amount_cents: gross - fee, the seller's share

    Fields:
        seller: Owning SellerAccount
        order_id / order_item_id: References into the order subsystem
        capture_id: Buyer-side PayPal capture, used to find earnings on refund
        release_date: When escrow ends
        payout_request: The completed payout this earning was paid through
    """

    seller = models.ForeignKey(
        "earnings.SellerAccount",
        on_delete=models.PROTECT,
        related_name="earnings",
        help_text="Seller who earned this amount",
    )

    order_id = models.CharField(
        max_length=100,
        db_index=True,
        help_text="Order reference in the order subsystem",
    )

    order_item_id = models.CharField(
        max_length=100,
        unique=True,
        help_text="Order line reference; one earning per sold line",
    )

    capture_id = models.CharField(
        max_length=100,
        null=True,
        blank=True,
        db_index=True,
        help_text="PayPal capture id of the buyer payment",
    )

    # ==========================================================================
    # Amounts
    # ==========================================================================

    gross_amount_cents = models.BigIntegerField(
        help_text="Sale amount in cents",
    )

    fee_rate = models.DecimalField(
        max_digits=5,
        decimal_places=4,
        help_text="Platform fee rate applied (0.1000 = 10%)",
    )

    platform_fee_cents = models.BigIntegerField(
        help_text="Platform fee in cents",
    )

    net_amount_cents = models.BigIntegerField(
        help_text="Seller share in cents (gross - fee)",
    )

    currency = models.CharField(
        max_length=3,
        default="usd",
        help_text="ISO 4217 currency code",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=EarningStatus.ESCROW,
        choices=EarningStatus.choices,
        protected=True,
        db_index=True,
        help_text="Current lifecycle state",
    )

    release_date = models.DateTimeField(
        db_index=True,
        help_text="When the escrow hold ends",
    )

    released_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the earning became available",
    )

    paid_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When a completed payout covered this earning",
    )

    reversed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the earning was reversed",
    )

    reversal_reason = models.TextField(
        null=True,
        blank=True,
        help_text="Why the earning was reversed (refund, chargeback)",
    )

    payout_request = models.ForeignKey(
        "earnings.PayoutRequest",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="paid_earnings",
        help_text="Completed payout that paid this earning",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Earning"
        verbose_name_plural = "Earnings"
        indexes = [
            models.Index(fields=["status", "release_date"], name="earning_status_release_idx"),
            models.Index(fields=["seller", "status"], name="earning_seller_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(gross_amount_cents__gt=0),
                name="earning_gross_positive",
            ),
            models.CheckConstraint(
                condition=models.Q(net_amount_cents__gte=0),
                name="earning_net_non_negative",
            ),
            models.CheckConstraint(
                condition=models.Q(
                    net_amount_cents=models.F("gross_amount_cents")
                    - models.F("platform_fee_cents")
                ),
                name="earning_net_equals_gross_minus_fee",
            ),
        ]

    def __str__(self) -> str:
        return (
            f"Earning({self.id}, {self.status}, "
            f"net={self.net_amount_cents / 100:.2f} {self.currency.upper()})"
        )

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=EarningStatus.ESCROW,
        target=EarningStatus.AVAILABLE,
    )
    def release(self):
        """ESCROW -> AVAILABLE once the hold period is over."""
        self.released_at = timezone.now()

    @transition(
        field=status,
        source=EarningStatus.AVAILABLE,
        target=EarningStatus.PAID,
    )
    def mark_paid(self, payout_request=None):
        """AVAILABLE -> PAID as part of a gateway-confirmed payout."""
        self.paid_at = timezone.now()
        self.payout_request = payout_request

    @transition(
        field=status,
        source=[EarningStatus.ESCROW, EarningStatus.AVAILABLE, EarningStatus.PAID],
        target=EarningStatus.REVERSED,
    )
    def reverse(self, reason: str | None = None):
        """
        Any live state -> REVERSED.

        Balance effects depend on the prior state and are applied by
        LedgerService.reverse, not here.
        """
        self.reversed_at = timezone.now()
        self.reversal_reason = reason

    @property
    def is_reversed(self) -> bool:
        return self.status == EarningStatus.REVERSED

    @property
    def is_release_due(self) -> bool:
        return (
            self.status == EarningStatus.ESCROW
            and self.release_date <= timezone.now()
        )
