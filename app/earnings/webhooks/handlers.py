"""
Webhook event handlers for PayPal events.

Each webhook source has its own registry keyed by the classified event
kind. Every kind must have a handler; a kind added to the enums without
one fails at import time instead of being dropped at runtime.

Handlers return a ServiceResult whose data is a short outcome text stored
on the event record (e.g. "processing->completed", "conflict:failed").

Usage:
    from earnings.webhooks.handlers import process_gateway_event

    result = process_gateway_event(event_record)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable

from django.core.exceptions import ImproperlyConfigured
from django.db import transaction

from core.services import ServiceResult

from earnings.models import ProcessedGatewayEvent
from earnings.services import PayoutReconciler, ReversalService
from earnings.services.payout_reconciler import parse_sender_item_id
from earnings.state_machines import GatewayEventSource, GatewayEventStatus
from earnings.webhooks.events import (
    ITEM_FAILURE_KINDS,
    CheckoutEventKind,
    PayoutEventKind,
    classify_checkout_event,
    classify_payout_event,
    failure_reason,
    payout_batch_id,
    refunded_capture_id,
    sender_item_id,
)

if TYPE_CHECKING:
    from enum import Enum


logger = logging.getLogger(__name__)

Handler = Callable[[ProcessedGatewayEvent], ServiceResult]


# =============================================================================
# Handler Registry
# =============================================================================


PAYOUT_HANDLERS: dict[PayoutEventKind, Handler] = {}
CHECKOUT_HANDLERS: dict[CheckoutEventKind, Handler] = {}

_REGISTRIES: dict[type, dict] = {
    PayoutEventKind: PAYOUT_HANDLERS,
    CheckoutEventKind: CHECKOUT_HANDLERS,
}


def register_handler(*kinds: PayoutEventKind | CheckoutEventKind) -> Callable:
    """
    Decorator to register a handler for one or more event kinds.

    Usage:
        @register_handler(PayoutEventKind.ITEM_SUCCEEDED)
        def handle_item_succeeded(event: ProcessedGatewayEvent) -> ServiceResult:
            ...
    """

    def decorator(func: Handler) -> Handler:
        for kind in kinds:
            _REGISTRIES[type(kind)][kind] = func
            logger.debug(f"Registered webhook handler for {kind.value}")
        return func

    return decorator


def classify(event: ProcessedGatewayEvent) -> PayoutEventKind | CheckoutEventKind:
    if event.source == GatewayEventSource.CHECKOUT:
        return classify_checkout_event(event.event_type)
    return classify_payout_event(event.event_type)


def dispatch(event: ProcessedGatewayEvent) -> ServiceResult:
    """Route an event record to the handler for its kind."""
    kind = classify(event)
    handler = _REGISTRIES[type(kind)][kind]

    logger.info(
        f"Dispatching {event.event_type} to handler",
        extra={
            "gateway_event_id": event.gateway_event_id,
            "event_kind": kind.value,
            "source": event.source,
        },
    )
    return handler(event)


def process_gateway_event(event: ProcessedGatewayEvent) -> ServiceResult:
    """
    Apply one stored event and record the outcome on it.

    Errors are recorded on the event (FAILED) for the retry task instead
    of being raised to the caller.
    """
    if event.status == GatewayEventStatus.PROCESSED:
        return ServiceResult.success(event.outcome)

    event.mark_processing()
    event.save(update_fields=["status", "retry_count", "updated_at"])

    try:
        with transaction.atomic():
            result = dispatch(event)
    except Exception as e:
        error_msg = f"{type(e).__name__}: {e}"
        event.mark_failed(error_msg)
        event.save(update_fields=["status", "error_message", "updated_at"])
        logger.exception(
            "Webhook processing failed with exception",
            extra={
                "gateway_event_id": event.gateway_event_id,
                "event_type": event.event_type,
                "retry_count": event.retry_count,
            },
        )
        return ServiceResult.failure(error_msg, error_code="WEBHOOK_PROCESSING_FAILED")

    if result.success:
        event.mark_processed(result.data or "")
        event.save(
            update_fields=["status", "processed_at", "outcome", "error_message", "updated_at"]
        )
        logger.info(
            "Webhook processed",
            extra={
                "gateway_event_id": event.gateway_event_id,
                "event_type": event.event_type,
                "outcome": event.outcome,
            },
        )
    else:
        event.mark_failed(result.error or "Handler returned failure")
        event.save(update_fields=["status", "error_message", "updated_at"])
        logger.warning(
            f"Webhook handler failed: {result.error}",
            extra={
                "gateway_event_id": event.gateway_event_id,
                "event_type": event.event_type,
                "error_code": result.error_code,
            },
        )
    return result


# =============================================================================
# Payout Handlers
# =============================================================================


def _locate(event: ProcessedGatewayEvent):
    resource = event.payload.get("resource") or {}
    payout_request = PayoutReconciler.locate_request(
        sender_item_id=sender_item_id(resource),
        batch_id=payout_batch_id(resource),
    )
    if payout_request is None:
        logger.warning(
            "No payout request matches webhook",
            extra={
                "gateway_event_id": event.gateway_event_id,
                "event_type": event.event_type,
                "sender_item_id": sender_item_id(resource),
                "batch_id": payout_batch_id(resource),
            },
        )
    return resource, payout_request


def _reported_attempt(resource: dict) -> dict:
    """Attempt and batch the item event reports on, for the superseded check."""
    _, attempt = parse_sender_item_id(sender_item_id(resource))
    return {"attempt": attempt, "batch_id": payout_batch_id(resource)}


@register_handler(PayoutEventKind.ITEM_SUCCEEDED)
def handle_item_succeeded(event: ProcessedGatewayEvent) -> ServiceResult:
    """PayPal delivered the payout: complete the request."""
    resource, payout_request = _locate(event)
    if payout_request is None:
        return ServiceResult.success("unmatched")

    outcome = PayoutReconciler.apply_success(
        payout_request.id,
        transaction_id=resource.get("transaction_id"),
        item_id=resource.get("payout_item_id"),
        raw=resource,
        **_reported_attempt(resource),
    )
    return ServiceResult.success(outcome.describe())


@register_handler(*ITEM_FAILURE_KINDS)
def handle_item_failed(event: ProcessedGatewayEvent) -> ServiceResult:
    """The payout will not arrive: fail the request and restore funds."""
    resource, payout_request = _locate(event)
    if payout_request is None:
        return ServiceResult.success("unmatched")

    outcome = PayoutReconciler.apply_failure(
        payout_request.id,
        failure_reason(resource, event.event_type),
        raw=resource,
        **_reported_attempt(resource),
    )
    return ServiceResult.success(outcome.describe())


@register_handler(PayoutEventKind.BATCH_DENIED)
def handle_batch_denied(event: ProcessedGatewayEvent) -> ServiceResult:
    resource = event.payload.get("resource") or {}
    batch_id = payout_batch_id(resource)
    if not batch_id:
        return ServiceResult.failure("Batch event has no payout_batch_id", error_code="INVALID_EVENT")

    outcomes = PayoutReconciler.fail_batch(batch_id, reason="PayPal batch denied")
    applied = sum(1 for outcome in outcomes if outcome.applied)
    return ServiceResult.success(f"batch_denied:{applied}/{len(outcomes)}")


@register_handler(
    PayoutEventKind.BATCH_PROCESSING,
    PayoutEventKind.BATCH_SUCCESS,
    PayoutEventKind.ITEM_HELD,
)
def handle_payout_informational(event: ProcessedGatewayEvent) -> ServiceResult:
    # Item events carry the final outcome
    return ServiceResult.success("informational")


@register_handler(PayoutEventKind.UNRECOGNIZED, CheckoutEventKind.UNRECOGNIZED)
def handle_unrecognized(event: ProcessedGatewayEvent) -> ServiceResult:
    logger.warning(
        f"Unrecognized {event.source} webhook event type: {event.event_type}",
        extra={"gateway_event_id": event.gateway_event_id},
    )
    return ServiceResult.success("unrecognized")


# =============================================================================
# Checkout Handlers
# =============================================================================


@register_handler(CheckoutEventKind.CAPTURE_REFUNDED, CheckoutEventKind.CAPTURE_REVERSED)
def handle_capture_reversed(event: ProcessedGatewayEvent) -> ServiceResult:
    """A buyer payment was refunded or charged back: reverse its earnings."""
    resource = event.payload.get("resource") or {}
    capture_id = refunded_capture_id(resource)
    if not capture_id:
        return ServiceResult.failure(
            "Refund event has no capture reference",
            error_code="INVALID_EVENT",
        )

    kind = classify(event)
    reason = resource.get("reason_code") or resource.get("note_to_payer") or kind.value
    result = ReversalService.reverse_capture(capture_id, reason=reason)
    if not result.success:
        return result
    return ServiceResult.success(
        f"reversed:{result.data.reversed_count} debt_cents:{result.data.debt_cents}"
    )


@register_handler(CheckoutEventKind.CAPTURE_COMPLETED, CheckoutEventKind.CAPTURE_DENIED)
def handle_checkout_informational(event: ProcessedGatewayEvent) -> ServiceResult:
    # Earnings are recorded by the order subsystem when it fulfils the order
    return ServiceResult.success("informational")


# =============================================================================
# Registry check
# =============================================================================


def _check_exhaustive(kinds: type[Enum], registry: dict) -> None:
    missing = [kind.value for kind in kinds if kind not in registry]
    if missing:
        raise ImproperlyConfigured(
            f"No webhook handler registered for {kinds.__name__}: {', '.join(missing)}"
        )


for _kinds, _registry in _REGISTRIES.items():
    _check_exhaustive(_kinds, _registry)
