"""
PayoutRequest model: a seller's withdrawal of available funds.

The amount is reserved (debited from available_balance_cents) when the
request is created. The reservation stays in place while the request is
pending or processing, becomes final when the gateway confirms the payout,
and is restored when the request fails.

Usage:
    from earnings.models import PayoutRequest

    request.submit()        # pending/failed -> processing, attempt_count += 1
    request.save()

    # After PayPal confirms (webhook or status sync)
    request.complete(transaction_id="5TY05013RG002845M")
    request.save()
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.utils import timezone

from django_fsm import FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin
from core.models import BaseModel

from earnings.state_machines import PayoutRequestStatus


class PayoutRequest(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
    """
    A withdrawal from a seller's available balance to their PayPal account.

    State Flow:
        PENDING -> PROCESSING -> COMPLETED
        PENDING -> FAILED (operator)
        PROCESSING -> FAILED (gateway rejection, webhook or sync; operator
            while no batch id is stored)
        FAILED -> PROCESSING (operator retry, re-reserves the amount)

    Fields:
        seller: Requesting SellerAccount
        amount_cents: Amount reserved for this withdrawal
        payout_email: Destination at the time of the request
        attempt_count: Number of submissions to the gateway; part of the
            idempotency key so each attempt is a distinct PayPal batch
        gateway_batch_id: PayPal payout_batch_id of the latest attempt
        gateway_item_id: PayPal payout_item_id
        gateway_transaction_id: PayPal transaction id once completed
        gateway_response: Raw response of the last gateway call
        processed_by: Operator who triggered the latest attempt
    """

    seller = models.ForeignKey(
        "earnings.SellerAccount",
        on_delete=models.PROTECT,
        related_name="payout_requests",
        help_text="Seller withdrawing funds",
    )

    amount_cents = models.BigIntegerField(
        help_text="Withdrawal amount in cents",
    )

    currency = models.CharField(
        max_length=3,
        default="usd",
        help_text="ISO 4217 currency code",
    )

    payout_email = models.EmailField(
        help_text="PayPal receiver captured when the request was made",
    )

    status = FSMField(
        default=PayoutRequestStatus.PENDING,
        choices=PayoutRequestStatus.choices,
        protected=True,
        db_index=True,
        help_text="Current lifecycle state",
    )

    attempt_count = models.PositiveIntegerField(
        default=0,
        help_text="How many times the request was submitted to PayPal",
    )

    # ==========================================================================
    # PayPal Integration
    # ==========================================================================

    gateway_batch_id = models.CharField(
        max_length=100,
        null=True,
        blank=True,
        db_index=True,
        help_text="PayPal payout_batch_id of the latest attempt",
    )

    gateway_item_id = models.CharField(
        max_length=100,
        null=True,
        blank=True,
        help_text="PayPal payout_item_id",
    )

    gateway_transaction_id = models.CharField(
        max_length=100,
        null=True,
        blank=True,
        help_text="PayPal transaction id of the completed payout",
    )

    gateway_response = models.JSONField(
        default=dict,
        blank=True,
        help_text="Raw body of the last PayPal response",
    )

    failure_reason = models.TextField(
        null=True,
        blank=True,
        help_text="Why the latest attempt failed",
    )

    processed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="processed_payout_requests",
        help_text="Operator who triggered processing or failed the request",
    )

    # ==========================================================================
    # Timestamps
    # ==========================================================================

    submitted_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the latest attempt entered processing",
    )

    completed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When PayPal confirmed the payout",
    )

    failed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the latest attempt failed",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Payout Request"
        verbose_name_plural = "Payout Requests"
        indexes = [
            models.Index(fields=["seller", "status"], name="payout_req_seller_status_idx"),
            models.Index(fields=["status", "submitted_at"], name="payout_req_status_submit_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount_cents__gt=0),
                name="payout_request_amount_positive",
            ),
        ]

    def __str__(self) -> str:
        amount_display = f"{self.amount_cents / 100:.2f} {self.currency.upper()}"
        return f"PayoutRequest({self.id}, {self.status}, {amount_display})"

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=[PayoutRequestStatus.PENDING, PayoutRequestStatus.FAILED],
        target=PayoutRequestStatus.PROCESSING,
    )
    def submit(self, operator=None):
        """
        Begin a gateway attempt.

        Transition: PENDING/FAILED -> PROCESSING

        Bumps attempt_count so the attempt gets its own idempotency key,
        and clears the previous attempt's gateway references.
        """
        self.attempt_count += 1
        self.submitted_at = timezone.now()
        self.failure_reason = None
        self.failed_at = None
        self.gateway_batch_id = None
        self.gateway_item_id = None
        if operator is not None:
            self.processed_by = operator

    @transition(
        field=status,
        source=PayoutRequestStatus.PROCESSING,
        target=PayoutRequestStatus.COMPLETED,
    )
    def complete(self, transaction_id: str | None = None, item_id: str | None = None):
        """
        Transition: PROCESSING -> COMPLETED

        Only called from gateway confirmations.
        """
        self.completed_at = timezone.now()
        if transaction_id:
            self.gateway_transaction_id = transaction_id
        if item_id:
            self.gateway_item_id = item_id

    @transition(
        field=status,
        source=[PayoutRequestStatus.PENDING, PayoutRequestStatus.PROCESSING],
        target=PayoutRequestStatus.FAILED,
    )
    def fail(self, reason: str | None = None):
        """
        Transition: PENDING/PROCESSING -> FAILED

        The caller restores the reserved amount in the same transaction.
        """
        self.failed_at = timezone.now()
        self.failure_reason = reason

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_outstanding(self) -> bool:
        """Funds are reserved and the outcome is not final."""
        return self.status in (
            PayoutRequestStatus.PENDING,
            PayoutRequestStatus.PROCESSING,
        )

    @property
    def can_process(self) -> bool:
        return self.status in (
            PayoutRequestStatus.PENDING,
            PayoutRequestStatus.FAILED,
        )

    @property
    def sender_item_id(self) -> str:
        """
        PayPal sender_item_id of the current attempt.

        Format: "{request_id}:{attempt_count}". Events carrying an older
        attempt number belong to a superseded batch.
        """
        return f"{self.id}:{self.attempt_count}"
