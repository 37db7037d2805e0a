"""
SellerAccount model: a seller's balances and payout destination.

Balances are stored in cents and are only ever changed through
earnings.ledger.LedgerService and the payout services, each inside a
transaction holding the row lock, with F() expressions.

Usage:
    from earnings.models import SellerAccount

    account = SellerAccount.objects.create(
        user=user,
        payout_email="seller@example.com",
    )
    account.can_request_payouts  # True while status is ACTIVE
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin
from core.models import BaseModel

from earnings.state_machines import SellerStatus


class SellerAccount(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
    """
    Per-seller balance record.

    Balances:
        pending_balance_cents: sum of net amounts of earnings in escrow
        available_balance_cents: withdrawable funds, never negative
        total_earnings_cents: lifetime net earnings, only ever increases

    Fields:
        user: The identity this seller account belongs to
        status: ACTIVE, PAYOUTS_LOCKED (audit freeze) or SUSPENDED (operator)
        status_reason: Why the account was frozen or suspended
        payout_email: PayPal receiver for withdrawals
        currency: ISO 4217 code of all balances
        version: Optimistic locking version
    """

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="seller_account",
        help_text="User who owns this seller account",
    )

    status = models.CharField(
        max_length=20,
        choices=SellerStatus.choices,
        default=SellerStatus.ACTIVE,
        db_index=True,
        help_text="Whether the seller may request and receive payouts",
    )

    status_reason = models.TextField(
        blank=True,
        default="",
        help_text="Reason for the last suspension or payout lock",
    )

    payout_email = models.EmailField(
        null=True,
        blank=True,
        help_text="PayPal account email that receives payouts",
    )

    # ==========================================================================
    # Balances
    # ==========================================================================

    available_balance_cents = models.BigIntegerField(
        default=0,
        help_text="Withdrawable balance in cents",
    )

    pending_balance_cents = models.BigIntegerField(
        default=0,
        help_text="Balance held in escrow, in cents",
    )

    total_earnings_cents = models.BigIntegerField(
        default=0,
        help_text="Lifetime net earnings in cents",
    )

    currency = models.CharField(
        max_length=3,
        default="usd",
        help_text="ISO 4217 currency code of the balances",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Seller Account"
        verbose_name_plural = "Seller Accounts"
        constraints = [
            models.CheckConstraint(
                condition=models.Q(available_balance_cents__gte=0),
                name="seller_available_balance_non_negative",
            ),
            models.CheckConstraint(
                condition=models.Q(pending_balance_cents__gte=0),
                name="seller_pending_balance_non_negative",
            ),
            models.CheckConstraint(
                condition=models.Q(total_earnings_cents__gte=0),
                name="seller_total_earnings_non_negative",
            ),
        ]

    def __str__(self) -> str:
        available = f"{self.available_balance_cents / 100:.2f} {self.currency.upper()}"
        return f"SellerAccount({self.id}, {self.status}, available={available})"

    @property
    def can_request_payouts(self) -> bool:
        return self.status == SellerStatus.ACTIVE

    @property
    def has_payout_destination(self) -> bool:
        return bool(self.payout_email)
