"""
OperatorAuditLog model: one row per operator action on money or sellers.

Written in the same transaction as the change it describes, with the
relevant fields before and after, so support can answer who failed a
payout or froze a seller and why.
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from earnings.state_machines import OperatorAction


class OperatorAuditLog(UUIDPrimaryKeyMixin, BaseModel):
    """
    Immutable record of an operator action.

    Fields:
        operator: Staff user who acted
        action: What was done (OperatorAction)
        entity_type: Model name of the target ("payoutrequest", "selleraccount")
        entity_id: Primary key of the target
        before: Relevant fields before the action
        after: Relevant fields after the action
        reason: Free text given by the operator
    """

    operator = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="earnings_audit_logs",
        help_text="Operator who performed the action",
    )

    action = models.CharField(
        max_length=40,
        choices=OperatorAction.choices,
        db_index=True,
        help_text="Action performed",
    )

    entity_type = models.CharField(
        max_length=40,
        help_text="Kind of record acted on",
    )

    entity_id = models.CharField(
        max_length=64,
        help_text="Primary key of the record acted on",
    )

    before = models.JSONField(
        default=dict,
        blank=True,
        help_text="Relevant fields before the action",
    )

    after = models.JSONField(
        default=dict,
        blank=True,
        help_text="Relevant fields after the action",
    )

    reason = models.TextField(
        blank=True,
        default="",
        help_text="Reason given by the operator",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Operator Audit Log"
        verbose_name_plural = "Operator Audit Logs"
        indexes = [
            models.Index(fields=["entity_type", "entity_id"], name="oplog_entity_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.action} {self.entity_type}:{self.entity_id} by {self.operator_id}"

    @classmethod
    def record(
        cls,
        operator,
        action: str,
        entity,
        before: dict | None = None,
        after: dict | None = None,
        reason: str = "",
    ) -> OperatorAuditLog:
        """Create a row for ``entity`` (any model instance)."""
        return cls.objects.create(
            operator=operator,
            action=action,
            entity_type=entity._meta.model_name,
            entity_id=str(entity.pk),
            before=before or {},
            after=after or {},
            reason=reason or "",
        )
