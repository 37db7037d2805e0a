"""
Seller account administration.

Usage:
    from earnings.services import SellerAccountService

    account = SellerAccountService.get_or_create_for_user(user, payout_email="a@b.com")
    result = SellerAccountService.set_status(
        account.id, SellerStatus.SUSPENDED, "Chargeback fraud", operator=staff_user
    )
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.validators import validate_email
from django.db.models import F

from core.exceptions import BaseApplicationError
from core.services import BaseService, ServiceResult

from earnings.exceptions import AuthorizationError
from earnings.locks import check_version, lock_seller
from earnings.models import OperatorAuditLog, SellerAccount
from earnings.permissions import is_operator
from earnings.state_machines import OperatorAction, SellerStatus

if TYPE_CHECKING:
    import uuid
    from typing import Any


class SellerAccountService(BaseService):
    """Create seller accounts and change their status or destination."""

    @classmethod
    def get_or_create_for_user(
        cls,
        user: Any,
        payout_email: str | None = None,
    ) -> SellerAccount:
        account, created = SellerAccount.objects.get_or_create(
            user=user,
            defaults={
                "payout_email": payout_email or None,
                "currency": settings.PAYOUT_CURRENCY,
            },
        )
        if created:
            cls.get_logger().info(
                "Created seller account",
                extra={"seller_id": str(account.id), "user_id": user.pk},
            )
        return account

    @classmethod
    def set_status(
        cls,
        seller_id: uuid.UUID,
        status: str,
        reason: str,
        operator: Any,
        expected_version: int | None = None,
    ) -> ServiceResult[SellerAccount]:
        """
        Suspend, lock or reactivate a seller and record it in the operator
        audit log.

        ``expected_version`` makes the change conditional on the version the
        operator saw.

        Failure codes:
            NOT_AUTHORIZED, INVALID_STATUS, REASON_REQUIRED,
            SELLER_NOT_FOUND, STALE_RECORD
        """
        if not is_operator(operator):
            return ServiceResult.failure(
                "Only operators can change seller status",
                error_code=AuthorizationError.default_error_code,
            )
        if status not in SellerStatus.values:
            return ServiceResult.failure(
                f"Unknown seller status '{status}'",
                error_code="INVALID_STATUS",
            )
        reason = (reason or "").strip()
        if status != SellerStatus.ACTIVE and not reason:
            return ServiceResult.failure(
                "A reason is required to freeze a seller",
                error_code="REASON_REQUIRED",
            )

        try:
            with cls.atomic():
                if expected_version is None:
                    seller = lock_seller(seller_id)
                else:
                    seller = check_version(SellerAccount, seller_id, expected_version)
                previous = seller.status
                SellerAccount.objects.filter(pk=seller.pk).update(
                    status=status,
                    status_reason=reason,
                    version=F("version") + 1,
                )
                OperatorAuditLog.record(
                    operator,
                    OperatorAction.SELLER_STATUS_CHANGED,
                    seller,
                    before={"status": previous, "status_reason": seller.status_reason},
                    after={"status": status, "status_reason": reason},
                    reason=reason,
                )
        except BaseApplicationError as e:
            code = "SELLER_NOT_FOUND" if e.error_code == "SELLERACCOUNT_NOT_FOUND" else e.error_code
            return ServiceResult.failure(e.message, error_code=code)

        cls.get_logger().info(
            f"Seller status changed from {previous} to {status}",
            extra={
                "seller_id": str(seller_id),
                "previous_status": previous,
                "status": status,
                "operator_id": operator.pk,
                "reason": reason,
            },
        )
        return ServiceResult.success(SellerAccount.objects.get(pk=seller_id))

    @classmethod
    def update_payout_email(
        cls,
        seller: SellerAccount,
        payout_email: str,
    ) -> ServiceResult[SellerAccount]:
        """
        Change the PayPal receiver for future requests.

        Requests already created keep the address they were made with.
        """
        try:
            validate_email(payout_email)
        except DjangoValidationError:
            return ServiceResult.failure(
                "Enter a valid email address",
                error_code="INVALID_PAYOUT_EMAIL",
            )
        SellerAccount.objects.filter(pk=seller.pk).update(
            payout_email=payout_email,
            version=F("version") + 1,
        )
        cls.get_logger().info(
            "Seller payout email updated",
            extra={"seller_id": str(seller.pk)},
        )
        return ServiceResult.success(SellerAccount.objects.get(pk=seller.pk))
