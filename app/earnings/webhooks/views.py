"""
Webhook endpoint views for PayPal.

Two endpoints, one per PayPal webhook subscription:
- paypal_payouts_webhook: payout item and batch outcomes
- paypal_checkout_webhook: buyer capture refunds and reversals

Each view:
1. Parses the JSON body
2. Verifies authenticity through PayPal's verify-webhook-signature API
3. Creates/retrieves the ProcessedGatewayEvent record (idempotent)
4. Applies the event inline and returns 200

PayPal retries deliveries that do not get a 2xx, so anything we cannot
or will not apply (malformed body, already processed, handler error) is
still acknowledged; failed events are retried by a Celery task instead.

Usage:
    # In urls.py
    from earnings.webhooks.views import paypal_checkout_webhook, paypal_payouts_webhook

    urlpatterns = [
        path("webhooks/paypal/payouts/", paypal_payouts_webhook),
        path("webhooks/paypal/checkout/", paypal_checkout_webhook),
    ]
"""

from __future__ import annotations

import json
import logging

from django.conf import settings
from django.http import HttpRequest, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from earnings.exceptions import GatewayError, SignatureVerificationError
from earnings.models import ProcessedGatewayEvent
from earnings.services import PayoutProcessor
from earnings.state_machines import GatewayEventSource, GatewayEventStatus
from earnings.webhooks.events import resource_id
from earnings.webhooks.handlers import classify, process_gateway_event

logger = logging.getLogger(__name__)


@csrf_exempt
@require_POST
def paypal_payouts_webhook(request: HttpRequest) -> JsonResponse:
    """Receive PayPal Payouts events."""
    return _receive(request, GatewayEventSource.PAYOUTS, settings.PAYPAL_PAYOUTS_WEBHOOK_ID)


@csrf_exempt
@require_POST
def paypal_checkout_webhook(request: HttpRequest) -> JsonResponse:
    """Receive PayPal Checkout events (refunds and reversals)."""
    return _receive(request, GatewayEventSource.CHECKOUT, settings.PAYPAL_CHECKOUT_WEBHOOK_ID)


def _receive(request: HttpRequest, source: str, webhook_id: str) -> JsonResponse:
    try:
        event_data = json.loads(request.body)
    except (ValueError, UnicodeDecodeError):
        logger.warning("Webhook body is not valid JSON", extra={"source": source})
        return JsonResponse({"received": True, "applied": False}, status=200)
    if not isinstance(event_data, dict):
        logger.warning("Webhook body is not a JSON object", extra={"source": source})
        return JsonResponse({"received": True, "applied": False}, status=200)

    # Step 1: Verify authenticity
    try:
        _verify(request, event_data, webhook_id, source)
    except SignatureVerificationError as e:
        return JsonResponse(e.to_dict(), status=401)

    gateway_event_id = event_data.get("id")
    event_type = event_data.get("event_type")
    if not gateway_event_id or not event_type:
        logger.warning(
            "Webhook missing required fields",
            extra={"source": source, "has_id": bool(gateway_event_id)},
        )
        return JsonResponse({"received": True, "applied": False}, status=200)

    logger.info(
        f"Received PayPal webhook: {event_type}",
        extra={"gateway_event_id": gateway_event_id, "event_type": event_type, "source": source},
    )

    # Step 2: Create/get the event record (idempotent)
    event, created = ProcessedGatewayEvent.objects.get_or_create(
        gateway_event_id=gateway_event_id,
        defaults={
            "source": source,
            "event_type": event_type,
            "payload": event_data,
            "resource_id": resource_id(event_data),
            "status": GatewayEventStatus.PENDING,
        },
    )
    if created:
        event.event_kind = classify(event).value
        event.save(update_fields=["event_kind", "updated_at"])
    elif event.status == GatewayEventStatus.PROCESSED:
        logger.info(
            "Webhook already processed, returning success",
            extra={"gateway_event_id": gateway_event_id},
        )
        return JsonResponse({"received": True, "duplicate": True}, status=200)

    # Step 3: Apply
    result = process_gateway_event(event)
    return JsonResponse(
        {"received": True, "applied": result.success, "outcome": event.outcome},
        status=200,
    )


def _verify(request: HttpRequest, event_data: dict, webhook_id: str, source: str) -> None:
    """Raise SignatureVerificationError unless PayPal vouches for the delivery."""
    if not webhook_id:
        if settings.DEBUG:
            logger.warning(
                "No webhook id configured; skipping signature verification (DEBUG)",
                extra={"source": source},
            )
            return
        logger.error("No webhook id configured; rejecting webhook", extra={"source": source})
        raise SignatureVerificationError("Webhook id is not configured")

    try:
        verified = PayoutProcessor.get_gateway_adapter().verify_webhook_signature(
            request.headers, event_data, webhook_id
        )
    except GatewayError as e:
        logger.error(
            "Could not verify webhook signature with PayPal",
            extra={"source": source, "error": str(e)},
        )
        raise SignatureVerificationError("Could not verify webhook signature") from e

    if not verified:
        logger.warning(
            "Webhook signature verification failed",
            extra={"source": source, "event_id": event_data.get("id")},
        )
        raise SignatureVerificationError("Invalid webhook signature")
