"""
ProcessedGatewayEvent model: idempotency record for PayPal webhooks.

Every webhook delivery is stored under PayPal's event id. A delivery whose
record is already PROCESSED is acknowledged without being applied again.

Usage:
    event, created = ProcessedGatewayEvent.objects.get_or_create(
        gateway_event_id="WH-58D329510W468432D-8HN650336L201105X",
        defaults={
            "source": GatewayEventSource.PAYOUTS,
            "event_type": "PAYMENT.PAYOUTS-ITEM.SUCCEEDED",
            "payload": payload,
        },
    )
    if event.is_processed:
        return HttpResponse(status=200)
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.utils import timezone

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from earnings.state_machines import GatewayEventSource, GatewayEventStatus


class ProcessedGatewayEvent(UUIDPrimaryKeyMixin, BaseModel):
    """
    One received PayPal webhook event.

    Processing Flow:
        1. Webhook arrives, signature verified
        2. get_or_create on gateway_event_id
        3. PROCESSED already -> acknowledge, do nothing
        4. mark_processing, dispatch to the handler for its kind
        5. mark_processed(outcome) or mark_failed(error)
        6. FAILED records are retried by retry_failed_gateway_events

    Fields:
        gateway_event_id: PayPal event id (WH-...)
        source: Which webhook endpoint received it
        event_type: Raw PayPal event_type
        event_kind: Classified closed kind the handler was chosen by
        resource_id: Id of the resource the event is about
        outcome: Short description of what was applied
    """

    gateway_event_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="PayPal webhook event id, unique for idempotency",
    )

    source = models.CharField(
        max_length=20,
        choices=GatewayEventSource.choices,
        help_text="Webhook endpoint that received the event",
    )

    event_type = models.CharField(
        max_length=100,
        db_index=True,
        help_text="PayPal event type (e.g. 'PAYMENT.PAYOUTS-ITEM.SUCCEEDED')",
    )

    event_kind = models.CharField(
        max_length=50,
        blank=True,
        default="",
        help_text="Classified event kind used for dispatch",
    )

    resource_id = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Id of the resource in the event payload",
    )

    payload = models.JSONField(
        help_text="Full webhook body",
    )

    status = models.CharField(
        max_length=20,
        choices=GatewayEventStatus.choices,
        default=GatewayEventStatus.PENDING,
        db_index=True,
        help_text="Processing status",
    )

    outcome = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="What processing did (e.g. 'completed', 'conflict:failed')",
    )

    processed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the event was successfully processed",
    )

    error_message = models.TextField(
        null=True,
        blank=True,
        help_text="Error if processing failed",
    )

    retry_count = models.PositiveSmallIntegerField(
        default=0,
        help_text="Number of processing attempts",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Processed Gateway Event"
        verbose_name_plural = "Processed Gateway Events"
        indexes = [
            models.Index(fields=["status", "retry_count"], name="gw_event_status_retry_idx"),
            models.Index(fields=["source", "created_at"], name="gw_event_source_created_idx"),
        ]

    def __str__(self) -> str:
        return f"ProcessedGatewayEvent({self.gateway_event_id}, {self.event_type})"

    @property
    def is_processed(self) -> bool:
        return self.status == GatewayEventStatus.PROCESSED

    @property
    def is_failed(self) -> bool:
        return self.status == GatewayEventStatus.FAILED

    @property
    def can_retry(self) -> bool:
        return self.is_failed and self.retry_count < settings.MAX_WEBHOOK_RETRIES

    # Helpers below do not save; the caller saves.

    def mark_processing(self) -> None:
        self.status = GatewayEventStatus.PROCESSING
        self.retry_count += 1

    def mark_processed(self, outcome: str = "") -> None:
        self.status = GatewayEventStatus.PROCESSED
        self.processed_at = timezone.now()
        self.outcome = outcome[:255]
        self.error_message = None

    def mark_failed(self, error_message: str) -> None:
        self.status = GatewayEventStatus.FAILED
        self.error_message = error_message
