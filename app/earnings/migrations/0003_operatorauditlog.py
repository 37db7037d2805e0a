"""
Add the operator action audit log.

Changes:
    - OperatorAuditLog with before and after values per action
"""

import uuid

from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):
    dependencies = [
        ("earnings", "0002_add_periodic_tasks"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="OperatorAuditLog",
            fields=[
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
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        primary_key=True,
                        serialize=False,
                        help_text="Unique identifier for this record",
                    ),
                ),
                (
                    "action",
                    models.CharField(
                        choices=[
                            ("payout_processed", "Payout Processed"),
                            ("payout_failed", "Payout Failed"),
                            ("seller_status_changed", "Seller Status Changed"),
                        ],
                        db_index=True,
                        help_text="Action performed",
                        max_length=40,
                    ),
                ),
                (
                    "entity_type",
                    models.CharField(help_text="Kind of record acted on", max_length=40),
                ),
                (
                    "entity_id",
                    models.CharField(help_text="Primary key of the record acted on", max_length=64),
                ),
                (
                    "before",
                    models.JSONField(
                        blank=True, default=dict, help_text="Relevant fields before the action"
                    ),
                ),
                (
                    "after",
                    models.JSONField(
                        blank=True, default=dict, help_text="Relevant fields after the action"
                    ),
                ),
                (
                    "reason",
                    models.TextField(
                        blank=True, default="", help_text="Reason given by the operator"
                    ),
                ),
                (
                    "operator",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="earnings_audit_logs",
                        to=settings.AUTH_USER_MODEL,
                        help_text="Operator who performed the action",
                    ),
                ),
            ],
            options={
                "verbose_name": "Operator Audit Log",
                "verbose_name_plural": "Operator Audit Logs",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["entity_type", "entity_id"], name="oplog_entity_idx"),
                ],
            },
        ),
    ]
