"""
Create the earnings ledger tables.

Changes:
    - SellerAccount, PayoutRequest, Earning with balance and amount constraints
    - ProcessedGatewayEvent for webhook idempotency
    - ClawbackDebt and BalanceDiscrepancy
"""

import uuid

from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion
import django_fsm


def _id():
    return (
        "id",
        models.UUIDField(
            default=uuid.uuid4,
            editable=False,
            primary_key=True,
            serialize=False,
            help_text="Unique identifier for this record",
        ),
    )


def _timestamps():
    return [
        (
            "created_at",
            models.DateTimeField(
                auto_now_add=True,
                db_index=True,
                help_text="Timestamp when this record was created",
            ),
        ),
        (
            "updated_at",
            models.DateTimeField(
                auto_now=True,
                help_text="Timestamp when this record was last modified",
            ),
        ),
    ]


def _version():
    return (
        "version",
        models.PositiveIntegerField(
            default=1,
            help_text="Optimistic locking version, incremented on every update",
        ),
    )


def _currency():
    return (
        "currency",
        models.CharField(
            max_length=3,
            default="usd",
            help_text="ISO 4217 currency code",
        ),
    )


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="SellerAccount",
            fields=[
                *_timestamps(),
                _id(),
                _version(),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("active", "Active"),
                            ("payouts_locked", "Payouts Locked"),
                            ("suspended", "Suspended"),
                        ],
                        db_index=True,
                        default="active",
                        max_length=20,
                        help_text="Whether the seller may request and receive payouts",
                    ),
                ),
                (
                    "status_reason",
                    models.TextField(
                        blank=True,
                        default="",
                        help_text="Reason for the last suspension or payout lock",
                    ),
                ),
                (
                    "payout_email",
                    models.EmailField(
                        blank=True,
                        max_length=254,
                        null=True,
                        help_text="PayPal account email that receives payouts",
                    ),
                ),
                (
                    "available_balance_cents",
                    models.BigIntegerField(default=0, help_text="Withdrawable balance in cents"),
                ),
                (
                    "pending_balance_cents",
                    models.BigIntegerField(
                        default=0, help_text="Balance held in escrow, in cents"
                    ),
                ),
                (
                    "total_earnings_cents",
                    models.BigIntegerField(default=0, help_text="Lifetime net earnings in cents"),
                ),
                (
                    "currency",
                    models.CharField(
                        max_length=3,
                        default="usd",
                        help_text="ISO 4217 currency code of the balances",
                    ),
                ),
                (
                    "user",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="seller_account",
                        to=settings.AUTH_USER_MODEL,
                        help_text="User who owns this seller account",
                    ),
                ),
            ],
            options={
                "verbose_name": "Seller Account",
                "verbose_name_plural": "Seller Accounts",
                "ordering": ["-created_at"],
                "constraints": [
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
                ],
            },
        ),
        migrations.CreateModel(
            name="PayoutRequest",
            fields=[
                *_timestamps(),
                _id(),
                _version(),
                ("amount_cents", models.BigIntegerField(help_text="Withdrawal amount in cents")),
                _currency(),
                (
                    "payout_email",
                    models.EmailField(
                        max_length=254,
                        help_text="PayPal receiver captured when the request was made",
                    ),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("pending", "Pending"),
                            ("processing", "Processing"),
                            ("completed", "Completed"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="pending",
                        max_length=50,
                        protected=True,
                        help_text="Current lifecycle state",
                    ),
                ),
                (
                    "attempt_count",
                    models.PositiveIntegerField(
                        default=0,
                        help_text="How many times the request was submitted to PayPal",
                    ),
                ),
                (
                    "gateway_batch_id",
                    models.CharField(
                        blank=True,
                        db_index=True,
                        max_length=100,
                        null=True,
                        help_text="PayPal payout_batch_id of the latest attempt",
                    ),
                ),
                (
                    "gateway_item_id",
                    models.CharField(
                        blank=True, max_length=100, null=True, help_text="PayPal payout_item_id"
                    ),
                ),
                (
                    "gateway_transaction_id",
                    models.CharField(
                        blank=True,
                        max_length=100,
                        null=True,
                        help_text="PayPal transaction id of the completed payout",
                    ),
                ),
                (
                    "gateway_response",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Raw body of the last PayPal response",
                    ),
                ),
                (
                    "failure_reason",
                    models.TextField(
                        blank=True, null=True, help_text="Why the latest attempt failed"
                    ),
                ),
                (
                    "submitted_at",
                    models.DateTimeField(
                        blank=True,
                        null=True,
                        help_text="When the latest attempt entered processing",
                    ),
                ),
                (
                    "completed_at",
                    models.DateTimeField(
                        blank=True, null=True, help_text="When PayPal confirmed the payout"
                    ),
                ),
                (
                    "failed_at",
                    models.DateTimeField(
                        blank=True, null=True, help_text="When the latest attempt failed"
                    ),
                ),
                (
                    "processed_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="processed_payout_requests",
                        to=settings.AUTH_USER_MODEL,
                        help_text="Operator who triggered processing or failed the request",
                    ),
                ),
                (
                    "seller",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payout_requests",
                        to="earnings.selleraccount",
                        help_text="Seller withdrawing funds",
                    ),
                ),
            ],
            options={
                "verbose_name": "Payout Request",
                "verbose_name_plural": "Payout Requests",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["seller", "status"], name="payout_req_seller_status_idx"
                    ),
                    models.Index(
                        fields=["status", "submitted_at"], name="payout_req_status_submit_idx"
                    ),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(amount_cents__gt=0),
                        name="payout_request_amount_positive",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Earning",
            fields=[
                *_timestamps(),
                _id(),
                _version(),
                (
                    "order_id",
                    models.CharField(
                        db_index=True,
                        max_length=100,
                        help_text="Order reference in the order subsystem",
                    ),
                ),
                (
                    "order_item_id",
                    models.CharField(
                        max_length=100,
                        unique=True,
                        help_text="Order line reference; one earning per sold line",
                    ),
                ),
                (
                    "capture_id",
                    models.CharField(
                        blank=True,
                        db_index=True,
                        max_length=100,
                        null=True,
                        help_text="PayPal capture id of the buyer payment",
                    ),
                ),
                ("gross_amount_cents", models.BigIntegerField(help_text="Sale amount in cents")),
                (
                    "fee_rate",
                    models.DecimalField(
                        decimal_places=4,
                        max_digits=5,
                        help_text="Platform fee rate applied (0.1000 = 10%)",
                    ),
                ),
                ("platform_fee_cents", models.BigIntegerField(help_text="Platform fee in cents")),
                (
                    "net_amount_cents",
                    models.BigIntegerField(help_text="Seller share in cents (gross - fee)"),
                ),
                _currency(),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("escrow", "Escrow"),
                            ("available", "Available"),
                            ("paid", "Paid"),
                            ("reversed", "Reversed"),
                        ],
                        db_index=True,
                        default="escrow",
                        max_length=50,
                        protected=True,
                        help_text="Current lifecycle state",
                    ),
                ),
                (
                    "release_date",
                    models.DateTimeField(db_index=True, help_text="When the escrow hold ends"),
                ),
                (
                    "released_at",
                    models.DateTimeField(
                        blank=True, null=True, help_text="When the earning became available"
                    ),
                ),
                (
                    "paid_at",
                    models.DateTimeField(
                        blank=True,
                        null=True,
                        help_text="When a completed payout covered this earning",
                    ),
                ),
                (
                    "reversed_at",
                    models.DateTimeField(
                        blank=True, null=True, help_text="When the earning was reversed"
                    ),
                ),
                (
                    "reversal_reason",
                    models.TextField(
                        blank=True,
                        null=True,
                        help_text="Why the earning was reversed (refund, chargeback)",
                    ),
                ),
                (
                    "payout_request",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="paid_earnings",
                        to="earnings.payoutrequest",
                        help_text="Completed payout that paid this earning",
                    ),
                ),
                (
                    "seller",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="earnings",
                        to="earnings.selleraccount",
                        help_text="Seller who earned this amount",
                    ),
                ),
            ],
            options={
                "verbose_name": "Earning",
                "verbose_name_plural": "Earnings",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["status", "release_date"], name="earning_status_release_idx"
                    ),
                    models.Index(fields=["seller", "status"], name="earning_seller_status_idx"),
                ],
                "constraints": [
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
                ],
            },
        ),
        migrations.CreateModel(
            name="ProcessedGatewayEvent",
            fields=[
                *_timestamps(),
                _id(),
                (
                    "gateway_event_id",
                    models.CharField(
                        max_length=255,
                        unique=True,
                        help_text="PayPal webhook event id, unique for idempotency",
                    ),
                ),
                (
                    "source",
                    models.CharField(
                        choices=[("payouts", "Payouts"), ("checkout", "Checkout")],
                        max_length=20,
                        help_text="Webhook endpoint that received the event",
                    ),
                ),
                (
                    "event_type",
                    models.CharField(
                        db_index=True,
                        max_length=100,
                        help_text="PayPal event type (e.g. 'PAYMENT.PAYOUTS-ITEM.SUCCEEDED')",
                    ),
                ),
                (
                    "event_kind",
                    models.CharField(
                        blank=True,
                        default="",
                        max_length=50,
                        help_text="Classified event kind used for dispatch",
                    ),
                ),
                (
                    "resource_id",
                    models.CharField(
                        blank=True,
                        default="",
                        max_length=255,
                        help_text="Id of the resource in the event payload",
                    ),
                ),
                ("payload", models.JSONField(help_text="Full webhook body")),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("processing", "Processing"),
                            ("processed", "Processed"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="pending",
                        max_length=20,
                        help_text="Processing status",
                    ),
                ),
                (
                    "outcome",
                    models.CharField(
                        blank=True,
                        default="",
                        max_length=255,
                        help_text="What processing did (e.g. 'completed', 'conflict:failed')",
                    ),
                ),
                (
                    "processed_at",
                    models.DateTimeField(
                        blank=True,
                        null=True,
                        help_text="When the event was successfully processed",
                    ),
                ),
                (
                    "error_message",
                    models.TextField(blank=True, null=True, help_text="Error if processing failed"),
                ),
                (
                    "retry_count",
                    models.PositiveSmallIntegerField(
                        default=0, help_text="Number of processing attempts"
                    ),
                ),
            ],
            options={
                "verbose_name": "Processed Gateway Event",
                "verbose_name_plural": "Processed Gateway Events",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["status", "retry_count"], name="gw_event_status_retry_idx"
                    ),
                    models.Index(
                        fields=["source", "created_at"], name="gw_event_source_created_idx"
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="ClawbackDebt",
            fields=[
                *_timestamps(),
                _id(),
                ("amount_cents", models.BigIntegerField(help_text="Debt amount in cents")),
                (
                    "recovered_cents",
                    models.BigIntegerField(
                        default=0, help_text="Amount recovered so far in cents"
                    ),
                ),
                _currency(),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("outstanding", "Outstanding"),
                            ("recovered", "Recovered"),
                            ("written_off", "Written Off"),
                        ],
                        db_index=True,
                        default="outstanding",
                        max_length=20,
                        help_text="Settlement state",
                    ),
                ),
                (
                    "reason",
                    models.TextField(
                        blank=True,
                        default="",
                        help_text="Reversal reason copied from the earning",
                    ),
                ),
                (
                    "resolved_at",
                    models.DateTimeField(
                        blank=True,
                        null=True,
                        help_text="When the debt was fully recovered or written off",
                    ),
                ),
                (
                    "earning",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="clawback_debt",
                        to="earnings.earning",
                        help_text="Reversed earning that produced this debt",
                    ),
                ),
                (
                    "seller",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="clawback_debts",
                        to="earnings.selleraccount",
                        help_text="Seller who owes the amount",
                    ),
                ),
            ],
            options={
                "verbose_name": "Clawback Debt",
                "verbose_name_plural": "Clawback Debts",
                "ordering": ["created_at"],
                "indexes": [
                    models.Index(fields=["seller", "status"], name="clawback_seller_status_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(amount_cents__gt=0),
                        name="clawback_amount_positive",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(recovered_cents__gte=0)
                        & models.Q(recovered_cents__lte=models.F("amount_cents")),
                        name="clawback_recovered_within_amount",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="BalanceDiscrepancy",
            fields=[
                *_timestamps(),
                _id(),
                (
                    "expected_cents",
                    models.BigIntegerField(help_text="Balance derived from the ledger records"),
                ),
                (
                    "actual_cents",
                    models.BigIntegerField(help_text="Balance held on the seller account"),
                ),
                ("difference_cents", models.BigIntegerField(help_text="actual - expected")),
                (
                    "details",
                    models.JSONField(
                        blank=True, default=dict, help_text="Per-term breakdown of the audit"
                    ),
                ),
                (
                    "resolved",
                    models.BooleanField(
                        db_index=True,
                        default=False,
                        help_text="Whether an operator has reconciled the difference",
                    ),
                ),
                (
                    "resolved_at",
                    models.DateTimeField(
                        blank=True, null=True, help_text="When the discrepancy was resolved"
                    ),
                ),
                (
                    "resolution_notes",
                    models.TextField(
                        blank=True, default="", help_text="How the discrepancy was resolved"
                    ),
                ),
                (
                    "seller",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="balance_discrepancies",
                        to="earnings.selleraccount",
                        help_text="Seller whose balances failed the audit",
                    ),
                ),
            ],
            options={
                "verbose_name": "Balance Discrepancy",
                "verbose_name_plural": "Balance Discrepancies",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["seller", "resolved"], name="discrep_seller_resolved_idx"
                    ),
                ],
            },
        ),
    ]
