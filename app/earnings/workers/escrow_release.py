"""
Escrow release worker.

Moves earnings whose hold period has ended from escrow to the seller's
available balance.

Tasks:
- release_matured_earnings: Periodic task (celery-beat, every 15 minutes)
- release_single_earning: Release one earning on demand

Usage:
    from earnings.workers import release_matured_earnings

    release_matured_earnings.delay()
    release_single_earning.delay(str(earning.id))
"""

from __future__ import annotations

import logging
from uuid import UUID

from celery import shared_task
from django.conf import settings
from django.utils import timezone

from earnings.exceptions import EarningNotFound
from earnings.ledger import LedgerService
from earnings.models import Earning
from earnings.state_machines import EarningStatus

logger = logging.getLogger(__name__)


# =============================================================================
# Periodic Task: Release Matured Earnings
# =============================================================================


@shared_task(bind=True)
def release_matured_earnings(self) -> dict:
    """
    Release every escrowed earning whose release date has passed.

    Earnings are taken oldest release date first, in batches of
    ESCROW_RELEASE_BATCH_SIZE, and each is released in its own
    transaction. An earning that fails is logged, counted and skipped for
    the rest of the run.

    Returns:
        Dict with released, conflicts and failed counts

    Note:
        Idempotent: an earning released by a concurrent run comes back as
        a conflict and is not credited twice.
    """
    now = timezone.now()
    batch_size = settings.ESCROW_RELEASE_BATCH_SIZE
    counts = {"released": 0, "conflicts": 0, "failed": 0}
    failed_ids: list[UUID] = []

    logger.info("Starting escrow release scan", extra={"as_of": now.isoformat()})

    while True:
        batch = list(
            Earning.objects.filter(status=EarningStatus.ESCROW, release_date__lte=now)
            .exclude(pk__in=failed_ids)
            .order_by("release_date")
            .values_list("pk", flat=True)[:batch_size]
        )
        if not batch:
            break

        for earning_id in batch:
            try:
                outcome = LedgerService.release(earning_id, now=now)
            except Exception as e:
                failed_ids.append(earning_id)
                counts["failed"] += 1
                logger.exception(
                    f"Failed to release earning: {e}",
                    extra={"earning_id": str(earning_id)},
                )
                continue

            if outcome.applied:
                counts["released"] += 1
            else:
                counts["conflicts"] += 1
                logger.info(
                    "Earning was not released",
                    extra={"earning_id": str(earning_id), "outcome": outcome.describe()},
                )

        if len(batch) < batch_size:
            break

    logger.info(
        f"Escrow release complete: released {counts['released']} earnings",
        extra=counts,
    )
    return counts


# =============================================================================
# Individual Release Task
# =============================================================================


@shared_task(
    bind=True,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_backoff_max=300,
    retry_kwargs={"max_retries": 3},
    acks_late=True,
)
def release_single_earning(self, earning_id: str) -> dict:
    """
    Release one earning if it is due.

    Returns:
        Dict with status one of "released", "conflict", "not_due",
        "not_found"
    """
    try:
        earning_uuid = UUID(str(earning_id))
    except ValueError:
        logger.error(f"Invalid earning_id format: {earning_id}")
        return {"status": "not_found", "earning_id": str(earning_id)}

    try:
        outcome = LedgerService.release(earning_uuid)
    except EarningNotFound:
        logger.warning("Earning not found", extra={"earning_id": str(earning_id)})
        return {"status": "not_found", "earning_id": str(earning_id)}

    if outcome.applied:
        status = "released"
    elif outcome.conflict:
        status = "conflict"
    else:
        status = outcome.details.get("reason", "not_due")

    logger.info(
        f"Single earning release: {status}",
        extra={"earning_id": str(earning_id), "outcome": outcome.describe()},
    )
    return {"status": status, "earning_id": str(earning_id), **outcome.details}
