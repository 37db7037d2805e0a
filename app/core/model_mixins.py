"""
Abstract model mixins.

Available Mixins:
    UUIDPrimaryKeyMixin: UUID primary key instead of an auto-increment integer
    VersionedMixin: integer version bumped on every update (optimistic locking)

Usage:
    class SellerAccount(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
        ...

Note:
    Always list mixins before BaseModel in inheritance.
"""

from __future__ import annotations

import uuid

from django.db import models
from django.db.models import F


class UUIDPrimaryKeyMixin(models.Model):
    """
    Use a random UUID as the primary key.

    Ids are safe to expose in URLs and webhook references (PayPal echoes
    the payout request id back as sender_item_id).
    """

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
        help_text="Unique identifier for this record",
    )

    class Meta:
        abstract = True


class VersionedMixin(models.Model):
    """
    Optimistic locking counter.

    save() on an existing row writes ``version = version + 1`` in SQL and
    reloads the resulting value, so concurrent writers can detect that the
    row moved underneath them (see earnings.locks.check_version).
    Queryset ``update()`` calls must bump the field themselves.
    """

    version = models.PositiveIntegerField(
        default=1,
        help_text="Optimistic locking version, incremented on every update",
    )

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        is_update = bool(self.pk) and not self._state.adding
        if is_update and not kwargs.get("force_insert", False):
            update_fields = kwargs.get("update_fields")
            if update_fields is not None and "version" not in update_fields:
                kwargs["update_fields"] = [*update_fields, "version"]
            self.version = F("version") + 1
            super().save(*args, **kwargs)
            self.refresh_from_db(fields=["version"])
            return
        super().save(*args, **kwargs)
