"""
Ledger service: every change to seller balances and earning states.

All writes go through LedgerService so each one runs in a transaction,
locks rows in the same order (earning, then seller) and moves balances
with F() expressions in a single UPDATE.

Usage:
    from earnings.ledger import LedgerService

    earning = LedgerService.record_earning(
        seller=seller,
        order_id="ord_1",
        order_item_id="ord_1:line_1",
        gross_amount_cents=10000,
        capture_id="3C679366HH908993F",
    )

    outcome = LedgerService.release(earning.id)
    if outcome.conflict:
        ...  # already released or reversed

Balance effects:
    record_earning   pending += net, total += net
    release          pending -= net, available += net - recovered debt
    mark_paid        none (bookkeeping)
    reverse          escrow: pending -= net
                     available: available -= min(available, net), rest is debt
                     paid: debt of net
"""

from __future__ import annotations

import logging
from datetime import timedelta
from decimal import Decimal
from typing import TYPE_CHECKING

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import F, Sum
from django.utils import timezone

from earnings.exceptions import EarningNotFound
from earnings.ledger.clawback import get_recovery_policy
from earnings.ledger.exceptions import InvalidAmount
from earnings.ledger.types import (
    MarkPaidResult,
    Money,
    TransitionOutcome,
    calculate_fee,
)
from earnings.locks import lock_seller
from earnings.models import ClawbackDebt, Earning, PayoutRequest, SellerAccount
from earnings.state_machines import (
    ClawbackStatus,
    EarningStatus,
    PayoutRequestStatus,
)

if TYPE_CHECKING:
    import uuid
    from collections.abc import Iterable
    from datetime import datetime
    from typing import Any

    from earnings.ledger.types import EarningLine

logger = logging.getLogger(__name__)


class LedgerService:
    """
    Ledger operations on earnings and seller balances.

    All methods are static; no instance state is kept.
    """

    # ==========================================================================
    # Recording
    # ==========================================================================

    @staticmethod
    def default_fee_rate() -> Decimal:
        return Decimal(settings.PLATFORM_FEE_PERCENT) / Decimal(100)

    @staticmethod
    def record_earning(
        seller: SellerAccount,
        order_id: str,
        order_item_id: str,
        gross_amount_cents: int,
        fee_rate: Decimal | None = None,
        capture_id: str | None = None,
    ) -> Earning:
        """
        Record the seller's share of a sold order line, in escrow.

        Idempotent on order_item_id: a second call for the same line returns
        the existing earning and leaves balances alone.

        Raises:
            InvalidAmount: gross <= 0 or fee_rate outside [0, 1]
        """
        if gross_amount_cents is None or gross_amount_cents <= 0:
            raise InvalidAmount(
                "Gross amount must be positive",
                details={"gross_amount_cents": gross_amount_cents},
            )

        rate = LedgerService.default_fee_rate() if fee_rate is None else Decimal(fee_rate)
        if rate < 0 or rate > 1:
            raise InvalidAmount(
                "Fee rate must be between 0 and 1",
                details={"fee_rate": str(rate)},
            )

        fee = calculate_fee(gross_amount_cents, rate)
        net = gross_amount_cents - fee

        with transaction.atomic():
            existing = Earning.objects.filter(order_item_id=order_item_id).first()
            if existing is not None:
                LedgerService._log_duplicate(existing, seller, gross_amount_cents)
                return existing

            try:
                with transaction.atomic():
                    earning = Earning.objects.create(
                        seller=seller,
                        order_id=order_id,
                        order_item_id=order_item_id,
                        capture_id=capture_id,
                        gross_amount_cents=gross_amount_cents,
                        fee_rate=rate,
                        platform_fee_cents=fee,
                        net_amount_cents=net,
                        currency=seller.currency,
                        release_date=timezone.now()
                        + timedelta(days=settings.ESCROW_HOLD_DAYS),
                    )
            except IntegrityError:
                # Lost a race with a concurrent insert of the same line
                return Earning.objects.get(order_item_id=order_item_id)

            SellerAccount.objects.filter(pk=seller.pk).update(
                pending_balance_cents=F("pending_balance_cents") + net,
                total_earnings_cents=F("total_earnings_cents") + net,
                version=F("version") + 1,
            )

        logger.info(
            f"Recorded earning {earning.id} for order item {order_item_id}",
            extra={
                "earning_id": str(earning.id),
                "seller_id": str(seller.id),
                "order_id": order_id,
                "gross_amount_cents": gross_amount_cents,
                "platform_fee_cents": fee,
                "net_amount_cents": net,
            },
        )
        return earning

    @staticmethod
    def _log_duplicate(existing: Earning, seller: SellerAccount, gross: int) -> None:
        if existing.seller_id != seller.pk or existing.gross_amount_cents != gross:
            logger.warning(
                f"Order item {existing.order_item_id} already recorded with different values",
                extra={
                    "earning_id": str(existing.id),
                    "recorded_seller_id": str(existing.seller_id),
                    "requested_seller_id": str(seller.pk),
                    "recorded_gross_cents": existing.gross_amount_cents,
                    "requested_gross_cents": gross,
                },
            )
        else:
            logger.debug(f"Earning for order item {existing.order_item_id} already recorded")

    @staticmethod
    def record_order_earnings(
        order_id: str,
        capture_id: str | None,
        lines: Iterable[EarningLine],
        fee_rate: Decimal | None = None,
    ) -> list[Earning]:
        """
        Record every line of a completed order in one transaction.

        Raises:
            SellerAccountNotFound: A line names an unknown seller
            InvalidAmount: A line has a non-positive amount
        """
        lines = list(lines)
        earnings = []
        with transaction.atomic():
            # Seller rows are locked in id order, whatever order the lines are in
            sellers = {
                seller_id: lock_seller(seller_id)
                for seller_id in sorted({line.seller_id for line in lines}, key=str)
            }
            for line in lines:
                earnings.append(
                    LedgerService.record_earning(
                        seller=sellers[line.seller_id],
                        order_id=order_id,
                        order_item_id=line.order_item_id,
                        gross_amount_cents=line.gross_amount_cents,
                        fee_rate=fee_rate,
                        capture_id=capture_id,
                    )
                )
        return earnings

    # ==========================================================================
    # Transitions
    # ==========================================================================

    @staticmethod
    def _lock_earning(earning_id: uuid.UUID) -> Earning:
        try:
            return Earning.objects.select_for_update().get(pk=earning_id)
        except Earning.DoesNotExist:
            raise EarningNotFound(
                f"Earning {earning_id} not found",
                details={"earning_id": str(earning_id)},
            )

    @staticmethod
    def release(earning_id: uuid.UUID, now: datetime | None = None) -> TransitionOutcome:
        """
        Move a matured earning from escrow to available.

        Outstanding clawback debt is settled out of the released amount
        first when the future_earnings policy is active.

        Returns:
            TransitionOutcome; conflict if the earning is not in escrow,
            not applied (without conflict) if its release date is ahead
        """
        now = now or timezone.now()

        with transaction.atomic():
            earning = LedgerService._lock_earning(earning_id)
            if earning.status != EarningStatus.ESCROW:
                return TransitionOutcome.conflicted(earning.status)
            if earning.release_date > now:
                return TransitionOutcome(
                    applied=False,
                    previous_status=earning.status,
                    current_status=earning.status,
                    details={"reason": "not_due", "release_date": earning.release_date.isoformat()},
                )

            seller = lock_seller(earning.seller_id)
            net = earning.net_amount_cents
            recovered = get_recovery_policy().recover(seller, net)

            SellerAccount.objects.filter(pk=seller.pk).update(
                pending_balance_cents=F("pending_balance_cents") - net,
                available_balance_cents=F("available_balance_cents") + (net - recovered),
                version=F("version") + 1,
            )
            earning.release()
            earning.save()

        logger.info(
            f"Released earning {earning.id}",
            extra={
                "earning_id": str(earning.id),
                "seller_id": str(earning.seller_id),
                "net_amount_cents": net,
                "recovered_cents": recovered,
            },
        )
        return TransitionOutcome.done(
            EarningStatus.ESCROW,
            EarningStatus.AVAILABLE,
            credited_cents=net - recovered,
            recovered_cents=recovered,
        )

    @staticmethod
    def select_earnings_for_payout(
        seller: SellerAccount,
        amount_cents: int,
    ) -> list[Earning]:
        """
        Oldest available earnings whose cumulative net fits in ``amount_cents``.

        Stops at the first earning that would overshoot, so selection stays
        strictly oldest-first.
        """
        selected = []
        total = 0
        available = Earning.objects.filter(
            seller=seller,
            status=EarningStatus.AVAILABLE,
        ).order_by("released_at", "created_at")
        for earning in available:
            if total + earning.net_amount_cents > amount_cents:
                break
            selected.append(earning)
            total += earning.net_amount_cents
        return selected

    @staticmethod
    def mark_paid(
        earning_ids: Iterable[uuid.UUID],
        payout_request: PayoutRequest | None = None,
    ) -> MarkPaidResult:
        """
        Mark available earnings as paid by a completed payout.

        Bookkeeping only: the payout's amount already left the available
        balance when it was reserved. Earnings no longer available (e.g.
        reversed in the meantime) are reported as conflicts and skipped.
        """
        result = MarkPaidResult()
        with transaction.atomic():
            for earning_id in sorted(earning_ids, key=str):
                earning = LedgerService._lock_earning(earning_id)
                if earning.status != EarningStatus.AVAILABLE:
                    result.conflicts.append(earning.id)
                    continue
                earning.mark_paid(payout_request=payout_request)
                earning.save()
                result.paid.append(earning.id)

        if result.conflicts:
            logger.info(
                f"Skipped {len(result.conflicts)} earnings that were no longer available",
                extra={
                    "payout_request_id": str(payout_request.id) if payout_request else None,
                    "conflicts": [str(pk) for pk in result.conflicts],
                },
            )
        return result

    @staticmethod
    def reverse(earning_id: uuid.UUID, reason: str) -> TransitionOutcome:
        """
        Reverse an earning after a refund or chargeback.

        Never drives the available balance negative: whatever cannot be
        taken from it is recorded as clawback debt.

        Returns:
            TransitionOutcome; conflict if already reversed
        """
        with transaction.atomic():
            earning = LedgerService._lock_earning(earning_id)
            previous = earning.status
            if previous == EarningStatus.REVERSED:
                return TransitionOutcome.conflicted(previous)

            seller = lock_seller(earning.seller_id)
            net = earning.net_amount_cents
            debited_pending = 0
            debited_available = 0
            debt_cents = 0

            if previous == EarningStatus.ESCROW:
                debited_pending = net
                SellerAccount.objects.filter(pk=seller.pk).update(
                    pending_balance_cents=F("pending_balance_cents") - net,
                    version=F("version") + 1,
                )
            elif previous == EarningStatus.AVAILABLE:
                debited_available = min(seller.available_balance_cents, net)
                debt_cents = net - debited_available
                if debited_available:
                    SellerAccount.objects.filter(pk=seller.pk).update(
                        available_balance_cents=F("available_balance_cents") - debited_available,
                        version=F("version") + 1,
                    )
            else:
                debt_cents = net

            earning.reverse(reason=reason)
            earning.save()

            if debt_cents:
                ClawbackDebt.objects.create(
                    seller=seller,
                    earning=earning,
                    amount_cents=debt_cents,
                    currency=earning.currency,
                    reason=reason or "",
                )

        log = logger.warning if debt_cents else logger.info
        log(
            f"Reversed earning {earning.id} from {previous}",
            extra={
                "earning_id": str(earning.id),
                "seller_id": str(earning.seller_id),
                "previous_status": previous,
                "net_amount_cents": net,
                "debited_pending_cents": debited_pending,
                "debited_available_cents": debited_available,
                "debt_cents": debt_cents,
                "reason": reason,
            },
        )
        return TransitionOutcome.done(
            previous,
            EarningStatus.REVERSED,
            debited_pending_cents=debited_pending,
            debited_available_cents=debited_available,
            debt_cents=debt_cents,
        )

    @staticmethod
    def write_off_debt(debt_id: uuid.UUID) -> TransitionOutcome:
        """Close an outstanding clawback debt without recovering it."""
        with transaction.atomic():
            debt = ClawbackDebt.objects.select_for_update().get(pk=debt_id)
            if debt.status != ClawbackStatus.OUTSTANDING:
                return TransitionOutcome.conflicted(debt.status)
            debt.write_off()
            debt.save(update_fields=["status", "resolved_at", "updated_at"])

        logger.info(
            f"Wrote off clawback debt {debt.id}",
            extra={
                "debt_id": str(debt.id),
                "seller_id": str(debt.seller_id),
                "outstanding_cents": debt.outstanding_cents,
            },
        )
        return TransitionOutcome.done(ClawbackStatus.OUTSTANDING, ClawbackStatus.WRITTEN_OFF)

    # ==========================================================================
    # Queries
    # ==========================================================================

    @staticmethod
    def get_balance_summary(seller: SellerAccount) -> dict[str, Any]:
        """Balances as Money values, plus reserved funds and outstanding debt."""
        seller.refresh_from_db(
            fields=["available_balance_cents", "pending_balance_cents", "total_earnings_cents"]
        )
        reserved = (
            PayoutRequest.objects.filter(
                seller=seller,
                status__in=[PayoutRequestStatus.PENDING, PayoutRequestStatus.PROCESSING],
            ).aggregate(total=Sum("amount_cents"))["total"]
            or 0
        )
        debt = (
            ClawbackDebt.objects.filter(
                seller=seller, status=ClawbackStatus.OUTSTANDING
            ).aggregate(total=Sum(F("amount_cents") - F("recovered_cents")))["total"]
            or 0
        )
        currency = seller.currency
        return {
            "available": Money(seller.available_balance_cents, currency),
            "pending": Money(seller.pending_balance_cents, currency),
            "reserved": Money(reserved, currency),
            "total_earnings": Money(seller.total_earnings_cents, currency),
            "outstanding_debt": Money(debt, currency),
        }
