"""
State enums for earnings models.

These are Django TextChoices used by django-fsm fields and plain status
columns.

State Machines Overview:

Earning:
    escrow → available → paid
    escrow → reversed
    available → reversed
    paid → reversed (records clawback debt instead of moving balances)

PayoutRequest:
    pending → processing → completed
    pending → failed
    processing → failed
    failed → processing (operator retry)
"""

from django.db import models


class SellerStatus(models.TextChoices):
    """
    Seller account status.

    ACTIVE: normal operation
    PAYOUTS_LOCKED: frozen by the balance audit pending manual reconciliation
    SUSPENDED: frozen by an operator
    """

    ACTIVE = "active", "Active"
    PAYOUTS_LOCKED = "payouts_locked", "Payouts Locked"
    SUSPENDED = "suspended", "Suspended"


class EarningStatus(models.TextChoices):
    """
    Lifecycle of one sold order line's earning.

    Terminal state: REVERSED. Nothing ever returns to ESCROW.
    """

    ESCROW = "escrow", "Escrow"
    AVAILABLE = "available", "Available"
    PAID = "paid", "Paid"
    REVERSED = "reversed", "Reversed"


class PayoutRequestStatus(models.TextChoices):
    """
    Lifecycle of a seller withdrawal.

    Only a gateway confirmation (webhook or status sync) moves a request
    from PROCESSING to COMPLETED.
    """

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"


class GatewayEventStatus(models.TextChoices):
    """Processing status of a received gateway webhook event."""

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    PROCESSED = "processed", "Processed"
    FAILED = "failed", "Failed"


class GatewayEventSource(models.TextChoices):
    """Which webhook endpoint delivered the event."""

    PAYOUTS = "payouts", "Payouts"
    CHECKOUT = "checkout", "Checkout"


class ClawbackStatus(models.TextChoices):
    """Settlement state of a clawback debt."""

    OUTSTANDING = "outstanding", "Outstanding"
    RECOVERED = "recovered", "Recovered"
    WRITTEN_OFF = "written_off", "Written Off"


class OperatorAction(models.TextChoices):
    """Operator actions recorded in the audit log."""

    PAYOUT_PROCESSED = "payout_processed", "Payout Processed"
    PAYOUT_FAILED = "payout_failed", "Payout Failed"
    SELLER_STATUS_CHANGED = "seller_status_changed", "Seller Status Changed"
