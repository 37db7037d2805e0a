"""
Applies final payout outcomes reported by PayPal.

Both the payouts webhook and the status sync end up here, so a result is
applied the same way whichever path reports it first. Every method is a
guarded transition: it locks the payout request, applies the change only
if the request is still PROCESSING, and otherwise returns a conflict
outcome without touching balances. Duplicate and out-of-order reports are
therefore harmless.

Reports name the attempt they are about through the sender_item_id
("{request_id}:{attempt}") and the PayPal batch id. A report for an
earlier attempt or another batch than the one the request is waiting on
is a conflict as well, so a late RETURNED from a superseded batch cannot
fail the current attempt.

Usage:
    outcome = PayoutReconciler.apply_success(request.id, transaction_id="5TY...", attempt=2)
    outcome = PayoutReconciler.apply_failure(request.id, reason="RECEIVER_UNREGISTERED")
    outcomes = PayoutReconciler.fail_batch("5UXD2E8A7EBQJ", reason="Batch denied")
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from django.db.models import F

from core.services import BaseService

from earnings.ledger import LedgerService, TransitionOutcome
from earnings.ledger.clawback import get_recovery_policy
from earnings.locks import lock_seller
from earnings.models import PayoutRequest, SellerAccount
from earnings.notifications import notify_payout_status
from earnings.state_machines import PayoutRequestStatus

if TYPE_CHECKING:
    from typing import Any


def parse_sender_item_id(sender_item_id: str | None) -> tuple[uuid.UUID | None, int | None]:
    """
    Split a sender_item_id into (request id, attempt).

    A bare request id has no attempt; anything unreadable gives (None, None).
    """
    if not sender_item_id:
        return None, None
    raw_id, _, raw_attempt = str(sender_item_id).partition(":")
    try:
        request_id = uuid.UUID(raw_id)
    except ValueError:
        return None, None
    if not raw_attempt:
        return request_id, None
    try:
        return request_id, int(raw_attempt)
    except ValueError:
        return None, None


class PayoutReconciler(BaseService):
    """Guarded completion and failure of payout requests."""

    @staticmethod
    def locate_request(
        sender_item_id: str | None = None,
        batch_id: str | None = None,
    ) -> PayoutRequest | None:
        """
        Find the request a gateway report is about.

        sender_item_id carries our request id; the batch id is the fallback
        for reports that only carry the batch.
        """
        request_id, _ = parse_sender_item_id(sender_item_id)
        if request_id is not None:
            found = PayoutRequest.objects.filter(pk=request_id).first()
            if found is not None:
                return found
        if batch_id:
            return PayoutRequest.objects.filter(gateway_batch_id=batch_id).first()
        return None

    @classmethod
    def apply_success(
        cls,
        request_id: uuid.UUID,
        transaction_id: str | None = None,
        item_id: str | None = None,
        raw: dict[str, Any] | None = None,
        attempt: int | None = None,
        batch_id: str | None = None,
    ) -> TransitionOutcome:
        """
        PROCESSING -> COMPLETED, then mark the oldest fitting earnings paid.

        Balances do not move: the amount left available when it was
        reserved. The seller row is locked so a concurrent audit sees the
        request either outstanding or completed, never in between.
        """
        with cls.atomic():
            payout_request = PayoutRequest.objects.select_for_update().get(pk=request_id)
            if payout_request.status != PayoutRequestStatus.PROCESSING:
                cls._log_conflict(payout_request, "completed")
                return TransitionOutcome.conflicted(payout_request.status)
            if cls._superseded(payout_request, attempt, batch_id):
                cls._log_superseded(payout_request, "completed", attempt, batch_id)
                return TransitionOutcome.conflicted(payout_request.status, superseded=True)

            lock_seller(payout_request.seller_id)
            payout_request.complete(transaction_id=transaction_id, item_id=item_id)
            if raw:
                payout_request.gateway_response = raw
            payout_request.save()

            earnings = LedgerService.select_earnings_for_payout(
                payout_request.seller, payout_request.amount_cents
            )
            marked = LedgerService.mark_paid([e.id for e in earnings], payout_request)
            notify_payout_status(payout_request)

        cls.get_logger().info(
            "Payout request completed",
            extra={
                "payout_request_id": str(request_id),
                "transaction_id": transaction_id,
                "earnings_marked_paid": marked.paid_count,
            },
        )
        return TransitionOutcome.done(
            PayoutRequestStatus.PROCESSING,
            PayoutRequestStatus.COMPLETED,
            earnings_marked_paid=marked.paid_count,
        )

    @classmethod
    def apply_failure(
        cls,
        request_id: uuid.UUID,
        reason: str,
        raw: dict[str, Any] | None = None,
        attempt: int | None = None,
        batch_id: str | None = None,
    ) -> TransitionOutcome:
        """PROCESSING -> FAILED and restore the reserved amount."""
        with cls.atomic():
            payout_request = PayoutRequest.objects.select_for_update().get(pk=request_id)
            if payout_request.status != PayoutRequestStatus.PROCESSING:
                cls._log_conflict(payout_request, "failed")
                return TransitionOutcome.conflicted(payout_request.status)
            if cls._superseded(payout_request, attempt, batch_id):
                cls._log_superseded(payout_request, "failed", attempt, batch_id)
                return TransitionOutcome.conflicted(payout_request.status, superseded=True)
            if raw:
                payout_request.gateway_response = raw
            outcome = cls.fail_locked(payout_request, reason)

        cls.get_logger().info(
            "Payout request failed",
            extra={"payout_request_id": str(request_id), "reason": reason},
        )
        return outcome

    @classmethod
    def fail_batch(cls, batch_id: str, reason: str) -> list[TransitionOutcome]:
        """Fail every request still processing under a denied batch."""
        request_ids = list(
            PayoutRequest.objects.filter(
                gateway_batch_id=batch_id,
                status=PayoutRequestStatus.PROCESSING,
            ).values_list("pk", flat=True)
        )
        return [cls.apply_failure(pk, reason, batch_id=batch_id) for pk in request_ids]

    @classmethod
    def fail_locked(
        cls,
        payout_request: PayoutRequest,
        reason: str,
        operator: Any = None,
    ) -> TransitionOutcome:
        """
        Fail a request whose row is already locked and restore its amount.

        The restored amount settles outstanding clawback debt first, the
        same way a release does. Caller holds the transaction and has
        checked the source state.
        """
        previous = payout_request.status
        payout_request.fail(reason=reason)
        if operator is not None:
            payout_request.processed_by = operator
        payout_request.save()

        amount = payout_request.amount_cents
        seller = lock_seller(payout_request.seller_id)
        recovered = get_recovery_policy().recover(seller, amount)
        SellerAccount.objects.filter(pk=seller.pk).update(
            available_balance_cents=F("available_balance_cents") + (amount - recovered),
            version=F("version") + 1,
        )
        notify_payout_status(payout_request)
        return TransitionOutcome.done(
            previous,
            PayoutRequestStatus.FAILED,
            restored_cents=amount - recovered,
            recovered_cents=recovered,
        )

    @staticmethod
    def _superseded(
        payout_request: PayoutRequest,
        attempt: int | None,
        batch_id: str | None,
    ) -> bool:
        if attempt is not None and attempt != payout_request.attempt_count:
            return True
        return bool(
            batch_id
            and payout_request.gateway_batch_id
            and batch_id != payout_request.gateway_batch_id
        )

    @classmethod
    def _log_superseded(
        cls,
        payout_request: PayoutRequest,
        target: str,
        attempt: int | None,
        batch_id: str | None,
    ) -> None:
        cls.get_logger().warning(
            f"Ignoring {target} report for a superseded payout attempt",
            extra={
                "payout_request_id": str(payout_request.id),
                "reported_attempt": attempt,
                "current_attempt": payout_request.attempt_count,
                "reported_batch_id": batch_id,
                "current_batch_id": payout_request.gateway_batch_id,
            },
        )

    @classmethod
    def _log_conflict(cls, payout_request: PayoutRequest, target: str) -> None:
        cls.get_logger().info(
            f"Ignoring {target} report for payout request in {payout_request.status}",
            extra={
                "payout_request_id": str(payout_request.id),
                "current_status": payout_request.status,
                "target_status": target,
            },
        )
