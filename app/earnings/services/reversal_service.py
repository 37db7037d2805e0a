"""
Refund and chargeback handling for seller earnings.

A buyer refund or reversal invalidates the earnings recorded for the
affected order lines, whatever their status: escrowed money is removed
from pending, released money from available, and paid-out money becomes
clawback debt. After the reversal commits, order_access_revoked is sent
once per order so the order subsystem can withdraw the buyer's access.

Partial refunds reverse every earning recorded for the capture.

Usage:
    from earnings.services import ReversalService

    result = ReversalService.reverse_capture("3C679366HH908993F", reason="Refunded")
    result.data.reversed_count
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from django.db import transaction

from core.services import BaseService, ServiceResult

from earnings.ledger import LedgerService
from earnings.models import Earning
from earnings.signals import order_access_revoked

if TYPE_CHECKING:
    import uuid
    from collections.abc import Iterable

    from django.db.models import QuerySet


@dataclass
class ReversalResult:
    """
    Summary of one reversal request.

    Attributes:
        reversed: Earnings moved to REVERSED by this call
        already_reversed: Earnings that were reversed before (no-op)
        debt_cents: Clawback debt created by this call
        order_ids: Orders whose access was revoked
    """

    reversed: list[uuid.UUID] = field(default_factory=list)
    already_reversed: list[uuid.UUID] = field(default_factory=list)
    debt_cents: int = 0
    order_ids: list[str] = field(default_factory=list)

    @property
    def reversed_count(self) -> int:
        return len(self.reversed)


class ReversalService(BaseService):
    """Reverses earnings for refunded captures or order lines."""

    @classmethod
    def reverse_capture(cls, capture_id: str, reason: str) -> ServiceResult[ReversalResult]:
        """Reverse every earning recorded against a buyer capture."""
        if not capture_id:
            return ServiceResult.failure("A capture id is required", error_code="INVALID_CAPTURE")
        earnings = Earning.objects.filter(capture_id=capture_id)
        return cls._reverse(earnings, reason, context={"capture_id": capture_id})

    @classmethod
    def reverse_order_items(
        cls,
        order_item_ids: Iterable[str],
        reason: str,
    ) -> ServiceResult[ReversalResult]:
        """Reverse the earnings of specific order lines."""
        order_item_ids = list(order_item_ids)
        if not order_item_ids:
            return ServiceResult.failure(
                "At least one order item id is required",
                error_code="INVALID_ORDER_ITEMS",
            )
        earnings = Earning.objects.filter(order_item_id__in=order_item_ids)
        return cls._reverse(earnings, reason, context={"order_item_ids": order_item_ids})

    @classmethod
    def _reverse(
        cls,
        earnings: QuerySet[Earning],
        reason: str,
        context: dict,
    ) -> ServiceResult[ReversalResult]:
        logger = cls.get_logger()
        targets = list(earnings.order_by("created_at").values_list("pk", "order_id", "order_item_id"))
        if not targets:
            logger.warning("No earnings found to reverse", extra=context)
            return ServiceResult.success(ReversalResult())

        result = ReversalResult()
        revoked: dict[str, list[str]] = defaultdict(list)

        with cls.atomic():
            for earning_id, order_id, order_item_id in targets:
                outcome = LedgerService.reverse(earning_id, reason)
                if outcome.applied:
                    result.reversed.append(earning_id)
                    result.debt_cents += outcome.details.get("debt_cents", 0)
                else:
                    result.already_reversed.append(earning_id)
                revoked[order_id].append(order_item_id)

            for order_id, item_ids in revoked.items():
                transaction.on_commit(
                    lambda order_id=order_id, item_ids=item_ids: order_access_revoked.send(
                        sender=cls,
                        order_id=order_id,
                        order_item_ids=item_ids,
                        reason=reason,
                    )
                )
        result.order_ids = list(revoked)

        logger.info(
            f"Reversed {result.reversed_count} earnings",
            extra={
                **context,
                "reversed": result.reversed_count,
                "already_reversed": len(result.already_reversed),
                "debt_cents": result.debt_cents,
                "reason": reason,
            },
        )
        return ServiceResult.success(result)
