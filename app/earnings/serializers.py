"""
DRF serializers for the earnings app.

This module provides serializers for:
- Seller account and balance summary display
- Earnings history
- Payout request display, creation and operator actions

Related files:
    - models/: SellerAccount, Earning, PayoutRequest
    - views.py: Earnings API views

Usage:
    serializer = PayoutRequestCreateSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    amount_cents = serializer.validated_data["amount_cents"]
"""

from __future__ import annotations

from rest_framework import serializers

from earnings.ledger.exceptions import InvalidAmount
from earnings.ledger.types import cents_from_decimal
from earnings.models import Earning, PayoutRequest, SellerAccount
from earnings.state_machines import PayoutRequestStatus, SellerStatus


def _display(cents: int) -> str:
    return f"{cents / 100:.2f}"


class MoneySerializer(serializers.Serializer):
    """A Money value: integer cents plus a decimal string."""

    cents = serializers.IntegerField(read_only=True)
    currency = serializers.CharField(read_only=True)
    amount = serializers.CharField(source="as_decimal_string", read_only=True)


class SellerAccountSerializer(serializers.ModelSerializer):
    """
    Read-only seller account serializer.

    Balances are in cents; ``version`` lets operators make conditional
    status changes.
    """

    class Meta:
        model = SellerAccount
        fields = [
            "id",
            "status",
            "status_reason",
            "payout_email",
            "available_balance_cents",
            "pending_balance_cents",
            "total_earnings_cents",
            "currency",
            "version",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class BalanceSummarySerializer(serializers.Serializer):
    """Seller account plus Money balances from LedgerService.get_balance_summary."""

    account = SellerAccountSerializer(read_only=True)
    available = MoneySerializer(read_only=True)
    pending = MoneySerializer(read_only=True)
    reserved = MoneySerializer(read_only=True)
    total_earnings = MoneySerializer(read_only=True)
    outstanding_debt = MoneySerializer(read_only=True)


class PayoutEmailUpdateSerializer(serializers.Serializer):
    payout_email = serializers.EmailField(help_text="PayPal account email for future payouts")


class EarningSerializer(serializers.ModelSerializer):
    """Read-only serializer for one sold order line's earning."""

    net_amount = serializers.SerializerMethodField()

    class Meta:
        model = Earning
        fields = [
            "id",
            "order_id",
            "order_item_id",
            "gross_amount_cents",
            "fee_rate",
            "platform_fee_cents",
            "net_amount_cents",
            "net_amount",
            "currency",
            "status",
            "release_date",
            "released_at",
            "paid_at",
            "reversed_at",
            "reversal_reason",
            "payout_request",
            "created_at",
        ]
        read_only_fields = fields

    def get_net_amount(self, obj: Earning) -> str:
        return _display(obj.net_amount_cents)


class PayoutRequestSerializer(serializers.ModelSerializer):
    """Read-only serializer for payout requests."""

    amount = serializers.SerializerMethodField()

    class Meta:
        model = PayoutRequest
        fields = [
            "id",
            "amount_cents",
            "amount",
            "currency",
            "payout_email",
            "status",
            "attempt_count",
            "gateway_batch_id",
            "gateway_transaction_id",
            "failure_reason",
            "submitted_at",
            "completed_at",
            "failed_at",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    def get_amount(self, obj: PayoutRequest) -> str:
        return _display(obj.amount_cents)


class PayoutRequestCreateSerializer(serializers.Serializer):
    """
    Body of POST payouts/.

    Fields:
        amount: Decimal dollars, e.g. "50.00"
    """

    amount = serializers.CharField(help_text="Amount to withdraw in dollars, e.g. \"50.00\"")

    def validate_amount(self, value: str) -> str:
        try:
            cents_from_decimal(value)
        except InvalidAmount as e:
            raise serializers.ValidationError(e.message)
        return value

    def validate(self, attrs: dict) -> dict:
        attrs["amount_cents"] = cents_from_decimal(attrs["amount"])
        return attrs


class ProcessPayoutSerializer(serializers.Serializer):
    requestId = serializers.UUIDField(help_text="Payout request to submit to PayPal")


class ProcessPayoutResponseSerializer(serializers.Serializer):
    success = serializers.BooleanField()
    batchId = serializers.CharField(allow_null=True)
    status = serializers.ChoiceField(choices=PayoutRequestStatus.choices)


class FailPayoutSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=500, help_text="Shown to the seller")


class SellerStatusSerializer(serializers.Serializer):
    """
    Body of POST sellers/<id>/status/.

    Fields:
        status: active, payouts_locked or suspended
        reason: Required unless reactivating
        version: Optional; the change only applies at this version
    """

    status = serializers.ChoiceField(choices=SellerStatus.choices)
    reason = serializers.CharField(max_length=1000, required=False, allow_blank=True, default="")
    version = serializers.IntegerField(required=False, min_value=1)


class ErrorSerializer(serializers.Serializer):
    error = serializers.CharField()
    error_code = serializers.CharField(required=False)
