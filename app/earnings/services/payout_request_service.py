"""
Payout request management: a seller asks to withdraw available funds.

Creating a request reserves its amount immediately with a conditional
UPDATE (available >= amount), so concurrent requests can never together
take more than the seller has. Nothing is sent to PayPal here; an operator
triggers PayoutProcessor.process_request later.

Usage:
    from earnings.services import PayoutRequestService

    result = PayoutRequestService.request_payout(seller, amount_cents=5000)
    if not result.success:
        return Response(result.to_response(), status=400)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.conf import settings
from django.db.models import F

from core.exceptions import BaseApplicationError, ValidationError
from core.services import BaseService, ServiceResult

from earnings.exceptions import AuthorizationError, LockAcquisitionError, PayoutRequestNotFound
from earnings.ledger.exceptions import InsufficientBalance, InvalidAmount
from earnings.locks import DistributedLock, lock_seller
from earnings.models import OperatorAuditLog, PayoutRequest, SellerAccount
from earnings.permissions import is_operator
from earnings.state_machines import OperatorAction, PayoutRequestStatus, SellerStatus

if TYPE_CHECKING:
    import uuid
    from typing import Any

    from django.db.models import QuerySet


class PayoutRequestService(BaseService):
    """Create, list and operator-fail payout requests."""

    @classmethod
    def request_payout(
        cls,
        seller: SellerAccount | uuid.UUID,
        amount_cents: int,
    ) -> ServiceResult[PayoutRequest]:
        """
        Reserve ``amount_cents`` and create a pending payout request.

        Failure codes:
            INVALID_AMOUNT, SELLER_SUSPENDED, PAYOUTS_LOCKED,
            NO_PAYOUT_DESTINATION, BELOW_MINIMUM, INSUFFICIENT_BALANCE,
            SELLER_NOT_FOUND
        """
        seller_id = seller.pk if isinstance(seller, SellerAccount) else seller
        logger = cls.get_logger()

        try:
            if not isinstance(amount_cents, int) or isinstance(amount_cents, bool) or amount_cents <= 0:
                raise InvalidAmount(
                    "Payout amount must be a positive number of cents",
                    details={"amount_cents": amount_cents},
                )

            with cls.atomic():
                locked = lock_seller(seller_id)
                cls.check_seller_can_withdraw(locked)
                if amount_cents < settings.PAYOUT_MINIMUM_CENTS:
                    raise ValidationError(
                        f"Minimum payout is {settings.PAYOUT_MINIMUM_CENTS / 100:.2f}",
                        error_code="BELOW_MINIMUM",
                        details={
                            "amount_cents": amount_cents,
                            "minimum_cents": settings.PAYOUT_MINIMUM_CENTS,
                        },
                    )
                cls.reserve_funds(locked, amount_cents)
                payout_request = PayoutRequest.objects.create(
                    seller=locked,
                    amount_cents=amount_cents,
                    currency=locked.currency,
                    payout_email=locked.payout_email,
                )
        except BaseApplicationError as e:
            logger.info(
                f"Payout request rejected: {e.error_code}",
                extra={
                    "seller_id": str(seller_id),
                    "amount_cents": amount_cents,
                    "error_code": e.error_code,
                },
            )
            return ServiceResult.failure(e.message, error_code=e.error_code)

        logger.info(
            "Payout request created",
            extra={
                "payout_request_id": str(payout_request.id),
                "seller_id": str(seller_id),
                "amount_cents": amount_cents,
            },
        )
        return ServiceResult.success(payout_request)

    @staticmethod
    def check_seller_can_withdraw(seller: SellerAccount) -> None:
        """
        Raises:
            ValidationError: SELLER_SUSPENDED, PAYOUTS_LOCKED or
                NO_PAYOUT_DESTINATION
        """
        if seller.status == SellerStatus.SUSPENDED:
            raise ValidationError(
                "Seller account is suspended",
                error_code="SELLER_SUSPENDED",
                details={"reason": seller.status_reason},
            )
        if seller.status == SellerStatus.PAYOUTS_LOCKED:
            raise ValidationError(
                "Payouts are locked pending balance review",
                error_code="PAYOUTS_LOCKED",
            )
        if not seller.has_payout_destination:
            raise ValidationError(
                "No payout email address is set",
                error_code="NO_PAYOUT_DESTINATION",
            )

    @staticmethod
    def reserve_funds(seller: SellerAccount, amount_cents: int) -> None:
        """
        Debit available balance by ``amount_cents`` if it covers it.

        Must run inside a transaction holding the seller row lock.

        Raises:
            InsufficientBalance: Available balance is lower than the amount
        """
        updated = SellerAccount.objects.filter(
            pk=seller.pk,
            available_balance_cents__gte=amount_cents,
        ).update(
            available_balance_cents=F("available_balance_cents") - amount_cents,
            version=F("version") + 1,
        )
        if updated == 0:
            current = (
                SellerAccount.objects.filter(pk=seller.pk)
                .values_list("available_balance_cents", flat=True)
                .first()
            )
            raise InsufficientBalance(seller.pk, required=amount_cents, available=current or 0)

    @staticmethod
    def list_requests(
        seller: SellerAccount,
        status: str | None = None,
    ) -> QuerySet[PayoutRequest]:
        queryset = PayoutRequest.objects.filter(seller=seller)
        if status:
            queryset = queryset.filter(status=status)
        return queryset.order_by("-created_at")

    @staticmethod
    def get_request(request_id: uuid.UUID) -> PayoutRequest:
        try:
            return PayoutRequest.objects.select_related("seller").get(pk=request_id)
        except PayoutRequest.DoesNotExist:
            raise PayoutRequestNotFound(
                f"Payout request {request_id} not found",
                details={"payout_request_id": str(request_id)},
            )

    @classmethod
    def fail_request(
        cls,
        request_id: uuid.UUID,
        reason: str,
        operator: Any,
    ) -> ServiceResult[PayoutRequest]:
        """
        Operator rejects a request; the reserved amount is restored.

        Pending requests can always be failed. A processing request can be
        failed only while it has no PayPal batch id (its submission never
        reached PayPal) and no submission is in flight. The action is
        written to the operator audit log.

        Failure codes:
            NOT_AUTHORIZED, REASON_REQUIRED, PAYOUT_REQUEST_NOT_FOUND,
            LOCK_ACQUISITION_FAILED, INVALID_STATE
        """
        if not is_operator(operator):
            return ServiceResult.failure(
                "Only operators can fail payout requests",
                error_code=AuthorizationError.default_error_code,
            )
        reason = (reason or "").strip()
        if not reason:
            return ServiceResult.failure(
                "A reason is required to fail a payout request",
                error_code="REASON_REQUIRED",
            )

        try:
            # Same key as PayoutProcessor.process_request
            with DistributedLock(f"payout:process:{request_id}", ttl=30, blocking=False):
                return cls._fail_with_lock(request_id, reason, operator)
        except LockAcquisitionError as e:
            return ServiceResult.failure(
                "This payout request is being submitted to PayPal",
                error_code=e.error_code,
            )

    @classmethod
    def _fail_with_lock(
        cls,
        request_id: uuid.UUID,
        reason: str,
        operator: Any,
    ) -> ServiceResult[PayoutRequest]:
        from earnings.services.payout_reconciler import PayoutReconciler

        try:
            with cls.atomic():
                payout_request = PayoutRequest.objects.select_for_update().get(pk=request_id)
                if not cls.can_operator_fail(payout_request):
                    return ServiceResult.failure(
                        "Only pending requests, or processing requests PayPal never "
                        f"received, can be failed (status is {payout_request.status})",
                        error_code="INVALID_STATE",
                        data=payout_request,
                    )
                before = {
                    "status": payout_request.status,
                    "attempt_count": payout_request.attempt_count,
                }
                outcome = PayoutReconciler.fail_locked(payout_request, reason, operator=operator)
                OperatorAuditLog.record(
                    operator,
                    OperatorAction.PAYOUT_FAILED,
                    payout_request,
                    before=before,
                    after={
                        "status": payout_request.status,
                        "restored_cents": outcome.details["restored_cents"],
                        "recovered_cents": outcome.details["recovered_cents"],
                    },
                    reason=reason,
                )
        except PayoutRequest.DoesNotExist:
            return ServiceResult.failure(
                f"Payout request {request_id} not found",
                error_code=PayoutRequestNotFound.default_error_code,
            )

        cls.get_logger().info(
            "Payout request failed by operator",
            extra={
                "payout_request_id": str(request_id),
                "operator_id": operator.pk,
                "previous_status": before["status"],
                "reason": reason,
            },
        )
        return ServiceResult.success(PayoutRequest.objects.get(pk=request_id))

    @staticmethod
    def can_operator_fail(payout_request: PayoutRequest) -> bool:
        if payout_request.status == PayoutRequestStatus.PENDING:
            return True
        return (
            payout_request.status == PayoutRequestStatus.PROCESSING
            and not payout_request.gateway_batch_id
        )
