"""
Classification and field extraction for PayPal webhook events.

PayPal event types are mapped onto closed enums so that every event the
handlers care about has exactly one kind, and anything else is
UNRECOGNIZED rather than silently ignored.

Usage:
    kind = classify_payout_event("PAYMENT.PAYOUTS-ITEM.SUCCEEDED")
    kind is PayoutEventKind.ITEM_SUCCEEDED

    sender_item_id(event["resource"])
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING
from urllib.parse import urlparse

if TYPE_CHECKING:
    from typing import Any


ITEM_EVENT_PREFIX = "PAYMENT.PAYOUTS-ITEM."


class PayoutEventKind(str, Enum):
    """Kinds of PayPal Payouts events."""

    ITEM_SUCCEEDED = "item_succeeded"
    ITEM_FAILED = "item_failed"
    ITEM_BLOCKED = "item_blocked"
    ITEM_RETURNED = "item_returned"
    ITEM_REFUNDED = "item_refunded"
    ITEM_CANCELED = "item_canceled"
    ITEM_UNCLAIMED = "item_unclaimed"
    ITEM_DENIED = "item_denied"
    ITEM_HELD = "item_held"
    BATCH_PROCESSING = "batch_processing"
    BATCH_SUCCESS = "batch_success"
    BATCH_DENIED = "batch_denied"
    UNRECOGNIZED = "unrecognized"


class CheckoutEventKind(str, Enum):
    """Kinds of PayPal Checkout (buyer payment) events."""

    CAPTURE_COMPLETED = "capture_completed"
    CAPTURE_DENIED = "capture_denied"
    CAPTURE_REFUNDED = "capture_refunded"
    CAPTURE_REVERSED = "capture_reversed"
    UNRECOGNIZED = "unrecognized"


PAYOUT_EVENT_TYPES: dict[str, PayoutEventKind] = {
    "PAYMENT.PAYOUTS-ITEM.SUCCEEDED": PayoutEventKind.ITEM_SUCCEEDED,
    "PAYMENT.PAYOUTS-ITEM.FAILED": PayoutEventKind.ITEM_FAILED,
    "PAYMENT.PAYOUTS-ITEM.BLOCKED": PayoutEventKind.ITEM_BLOCKED,
    "PAYMENT.PAYOUTS-ITEM.RETURNED": PayoutEventKind.ITEM_RETURNED,
    "PAYMENT.PAYOUTS-ITEM.REFUNDED": PayoutEventKind.ITEM_REFUNDED,
    "PAYMENT.PAYOUTS-ITEM.CANCELED": PayoutEventKind.ITEM_CANCELED,
    "PAYMENT.PAYOUTS-ITEM.UNCLAIMED": PayoutEventKind.ITEM_UNCLAIMED,
    "PAYMENT.PAYOUTS-ITEM.DENIED": PayoutEventKind.ITEM_DENIED,
    "PAYMENT.PAYOUTS-ITEM.HELD": PayoutEventKind.ITEM_HELD,
    "PAYMENT.PAYOUTSBATCH.PROCESSING": PayoutEventKind.BATCH_PROCESSING,
    "PAYMENT.PAYOUTSBATCH.SUCCESS": PayoutEventKind.BATCH_SUCCESS,
    "PAYMENT.PAYOUTSBATCH.DENIED": PayoutEventKind.BATCH_DENIED,
}

CHECKOUT_EVENT_TYPES: dict[str, CheckoutEventKind] = {
    "PAYMENT.CAPTURE.COMPLETED": CheckoutEventKind.CAPTURE_COMPLETED,
    "PAYMENT.CAPTURE.DENIED": CheckoutEventKind.CAPTURE_DENIED,
    "PAYMENT.CAPTURE.REFUNDED": CheckoutEventKind.CAPTURE_REFUNDED,
    "PAYMENT.CAPTURE.REVERSED": CheckoutEventKind.CAPTURE_REVERSED,
}

# Item kinds that end a payout without the money arriving
ITEM_FAILURE_KINDS = frozenset(
    {
        PayoutEventKind.ITEM_FAILED,
        PayoutEventKind.ITEM_BLOCKED,
        PayoutEventKind.ITEM_RETURNED,
        PayoutEventKind.ITEM_REFUNDED,
        PayoutEventKind.ITEM_CANCELED,
        PayoutEventKind.ITEM_UNCLAIMED,
        PayoutEventKind.ITEM_DENIED,
    }
)


def classify_payout_event(event_type: str | None) -> PayoutEventKind:
    return PAYOUT_EVENT_TYPES.get((event_type or "").upper(), PayoutEventKind.UNRECOGNIZED)


def classify_checkout_event(event_type: str | None) -> CheckoutEventKind:
    return CHECKOUT_EVENT_TYPES.get((event_type or "").upper(), CheckoutEventKind.UNRECOGNIZED)


# =============================================================================
# Resource field extraction
# =============================================================================


def sender_item_id(resource: dict[str, Any]) -> str | None:
    """Our "{request_id}:{attempt}" item id, as echoed back by PayPal."""
    return (resource.get("payout_item") or {}).get("sender_item_id") or resource.get(
        "sender_item_id"
    )


def payout_batch_id(resource: dict[str, Any]) -> str | None:
    return (resource.get("batch_header") or {}).get("payout_batch_id") or resource.get(
        "payout_batch_id"
    )


def failure_reason(resource: dict[str, Any], event_type: str) -> str:
    """
    Most specific failure description available.

    Order: errors.message, errors.name, transaction_status, then the event
    type suffix (e.g. "UNCLAIMED").
    """
    errors = resource.get("errors") or {}
    return (
        errors.get("message")
        or errors.get("name")
        or resource.get("transaction_status")
        or event_type.upper().replace(ITEM_EVENT_PREFIX, "")
    )


def refunded_capture_id(resource: dict[str, Any]) -> str | None:
    """
    Capture a refund or reversal applies to.

    Refund resources link to their capture with rel "up"; reversal
    resources are the capture itself.
    """
    for link in resource.get("links") or []:
        if link.get("rel") == "up" and link.get("href"):
            path = urlparse(link["href"]).path.rstrip("/")
            if "/captures/" in path:
                return path.rsplit("/", 1)[-1]

    related = (resource.get("supplementary_data") or {}).get("related_ids") or {}
    return related.get("capture_id") or resource.get("id")


def resource_id(event: dict[str, Any]) -> str:
    """Best identifier of what the event is about, for the event record."""
    resource = event.get("resource") or {}
    return str(
        sender_item_id(resource)
        or payout_batch_id(resource)
        or resource.get("id")
        or ""
    )
