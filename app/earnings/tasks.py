"""
Celery tasks for earnings.

This module provides async tasks for:
- Re-applying failed gateway webhook events
- Resetting events stuck in processing
- Syncing payout requests that stayed in processing too long
- Auditing seller balances
- Sending payout notification emails

Usage:
    from earnings.tasks import send_payout_notification

    send_payout_notification.delay(str(payout_request.id), "completed")

    # Periodic tasks are scheduled with celery-beat (see migration
    # 0002_add_periodic_tasks)
"""

from __future__ import annotations

import logging
from datetime import timedelta
from uuid import UUID

from celery import shared_task
from django.conf import settings
from django.utils import timezone

from earnings.models import PayoutRequest, ProcessedGatewayEvent
from earnings.state_machines import GatewayEventStatus, PayoutRequestStatus

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

STUCK_PROCESSING_THRESHOLD_MINUTES = 30
RETRY_BATCH_SIZE = 100


# =============================================================================
# Webhook Event Tasks
# =============================================================================


@shared_task
def reprocess_gateway_event(gateway_event_pk: str) -> dict:
    """
    Apply a stored gateway event again.

    Returns:
        Dict with status "processed", "failed", "already_processed" or
        "not_found"
    """
    from earnings.webhooks.handlers import process_gateway_event

    event = ProcessedGatewayEvent.objects.filter(pk=UUID(str(gateway_event_pk))).first()
    if event is None:
        logger.error("Gateway event not found", extra={"gateway_event_pk": str(gateway_event_pk)})
        return {"status": "not_found", "gateway_event_pk": str(gateway_event_pk)}
    if event.is_processed:
        return {"status": "already_processed", "gateway_event_id": event.gateway_event_id}

    result = process_gateway_event(event)
    return {
        "status": "processed" if result.success else "failed",
        "gateway_event_id": event.gateway_event_id,
        "retry_count": event.retry_count,
    }


@shared_task
def retry_failed_gateway_events() -> dict:
    """
    Periodic task to retry failed webhook events.

    Picks failed events below MAX_WEBHOOK_RETRIES attempts, oldest first.

    Returns:
        Dict with count of events queued for retry
    """
    failed_events = ProcessedGatewayEvent.objects.filter(
        status=GatewayEventStatus.FAILED,
        retry_count__lt=settings.MAX_WEBHOOK_RETRIES,
    ).order_by("created_at")[:RETRY_BATCH_SIZE]

    queued_count = 0
    for event in failed_events:
        reprocess_gateway_event.delay(str(event.pk))
        queued_count += 1
        logger.info(
            "Queued failed gateway event for retry",
            extra={
                "gateway_event_id": event.gateway_event_id,
                "event_type": event.event_type,
                "retry_count": event.retry_count,
            },
        )

    logger.info(
        f"Queued {queued_count} failed gateway events for retry",
        extra={"queued_count": queued_count},
    )
    return {"queued_count": queued_count}


@shared_task
def cleanup_stuck_gateway_events() -> dict:
    """
    Periodic task to reset events stuck in PROCESSING.

    A worker that died mid-event leaves it in PROCESSING; marking it
    FAILED hands it to retry_failed_gateway_events.
    """
    threshold = timezone.now() - timedelta(minutes=STUCK_PROCESSING_THRESHOLD_MINUTES)
    stuck_events = ProcessedGatewayEvent.objects.filter(
        status=GatewayEventStatus.PROCESSING,
        updated_at__lt=threshold,
    )

    reset_count = 0
    for event in stuck_events:
        event.mark_failed("Processing timed out - reset for retry")
        event.save(update_fields=["status", "error_message", "updated_at"])
        reset_count += 1
        logger.warning(
            "Reset stuck gateway event",
            extra={
                "gateway_event_id": event.gateway_event_id,
                "stuck_since": event.updated_at.isoformat(),
            },
        )

    return {"reset_count": reset_count}


# =============================================================================
# Payout Tasks
# =============================================================================


@shared_task(
    bind=True,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_backoff_max=300,
    retry_kwargs={"max_retries": 3},
    acks_late=True,
)
def sync_payout_request(self, payout_request_id: str) -> dict:
    """Query PayPal for one processing request and apply its outcome."""
    from earnings.services import PayoutProcessor

    result = PayoutProcessor.sync_request_status(UUID(str(payout_request_id)))
    status = result.data.status if result.success else None
    return {
        "payout_request_id": str(payout_request_id),
        "success": result.success,
        "status": status,
        "error_code": result.error_code,
    }


@shared_task
def sync_stale_payout_requests() -> dict:
    """
    Periodic task for requests stuck in PROCESSING.

    A request whose webhook never arrived stays processing; after
    PAYOUT_STALE_AFTER_HOURS its batch status is fetched from PayPal.
    """
    threshold = timezone.now() - timedelta(hours=settings.PAYOUT_STALE_AFTER_HOURS)
    stale = PayoutRequest.objects.filter(
        status=PayoutRequestStatus.PROCESSING,
        submitted_at__lt=threshold,
    ).exclude(gateway_batch_id__isnull=True)

    queued_count = 0
    for payout_request_id in stale.values_list("pk", flat=True):
        sync_payout_request.delay(str(payout_request_id))
        queued_count += 1

    unsynced = PayoutRequest.objects.filter(
        status=PayoutRequestStatus.PROCESSING,
        submitted_at__lt=threshold,
        gateway_batch_id__isnull=True,
    ).count()
    if unsynced:
        logger.warning(
            "Stale payout requests have no batch id; an operator must resubmit or fail them",
            extra={"count": unsynced},
        )

    logger.info(
        f"Queued {queued_count} stale payout requests for sync",
        extra={"queued_count": queued_count},
    )
    return {"queued_count": queued_count, "needs_review": unsynced}


@shared_task(
    bind=True,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_backoff_max=300,
    retry_kwargs={"max_retries": 5},
    acks_late=True,
)
def send_payout_notification(self, payout_request_id: str, status: str) -> dict:
    """Email the seller about a completed or failed payout."""
    from earnings.notifications import send_payout_email

    payout_request = (
        PayoutRequest.objects.select_related("seller__user")
        .filter(pk=UUID(str(payout_request_id)))
        .first()
    )
    if payout_request is None:
        logger.warning(
            "Payout request not found for notification",
            extra={"payout_request_id": str(payout_request_id)},
        )
        return {"status": "not_found"}

    sent = send_payout_email(payout_request, status)
    return {"status": "sent" if sent else "skipped", "payout_request_id": str(payout_request_id)}


# =============================================================================
# Audit
# =============================================================================


@shared_task
def audit_seller_balances() -> dict:
    """Periodic task running the balance audit over every seller."""
    from earnings.services import LedgerAuditService

    result = LedgerAuditService.audit_all()
    return result.data


# =============================================================================
# Re-exported Worker Tasks
# =============================================================================
# Defined in earnings.workers; re-exported so Celery autodiscover finds them.

from earnings.workers import (  # noqa: E402, F401
    release_matured_earnings,
    release_single_earning,
)
