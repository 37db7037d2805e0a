"""
Payout processor: submits reserved payout requests to PayPal Payouts.

The processor follows a two-phase commit so that a gateway call is never
made inside a transaction that could roll back:

1. Phase 1: Lock the request, transition it to PROCESSING, commit
2. Phase 2: Call PayPal create_payout_batch (outside any transaction)
3. Phase 3: Store the batch id; the webhook (or a status sync) decides
   whether the payout completed or failed

A definite gateway failure is compensated right away: the request is
failed and its reservation restored. An ambiguous failure (timeout, 5xx)
leaves the request in PROCESSING, because PayPal may have created the
batch.

Errors raised before the payout POST (fetching the OAuth token) are
definite. A processing request that never got a batch id can be
resubmitted under the same attempt; PayPal deduplicates it by
sender_batch_id.

Usage:
    from earnings.services import PayoutProcessor

    result = PayoutProcessor.process_request(request_id, operator=request.user)
    if result.success:
        print(result.data.batch_id)
    elif result.error_code == "GATEWAY_OUTCOME_UNKNOWN":
        ...  # wait for the webhook or run sync_request_status later
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING

from django.conf import settings

from core.exceptions import ValidationError
from core.services import BaseService, ServiceResult

from earnings.adapters import CreatePayoutBatchParams, IdempotencyKeyGenerator, PayPalAdapter
from earnings.exceptions import (
    AuthorizationError,
    GatewayError,
    LockAcquisitionError,
    PayoutRequestNotFound,
    SellerAccountNotFound,
)
from earnings.ledger.exceptions import InsufficientBalance
from earnings.locks import DistributedLock, lock_seller
from earnings.models import OperatorAuditLog, PayoutRequest
from earnings.permissions import is_operator
from earnings.services.payout_reconciler import PayoutReconciler
from earnings.services.payout_request_service import PayoutRequestService
from earnings.state_machines import OperatorAction, PayoutRequestStatus

if TYPE_CHECKING:
    from typing import Any

    from earnings.adapters import PayoutBatchResult


# Distributed lock TTL for one submission (seconds)
PROCESS_LOCK_TTL = 120

# Lock acquisition timeout (seconds)
PROCESS_LOCK_TIMEOUT = 5.0

# Item statuses PayPal reports for a payout that will not arrive
FAILED_ITEM_STATUSES = frozenset(
    {"FAILED", "RETURNED", "BLOCKED", "REFUNDED", "REVERSED", "UNCLAIMED"}
)


@dataclass
class ProcessResult:
    """
    Result of a submission.

    Attributes:
        payout_request: The request after the attempt
        batch_id: PayPal payout_batch_id
        status: Request status; always "processing" on success
    """

    payout_request: PayoutRequest
    batch_id: str | None = None
    status: str = PayoutRequestStatus.PROCESSING


class PayoutProcessor(BaseService):
    """
    Submits payout requests to PayPal and syncs their status back.

    Safety guarantees:
        - DistributedLock per request stops a double-clicked submit
        - Only PENDING or FAILED requests (or PROCESSING ones with no batch
          id, resubmitted under the same attempt) can be submitted, checked
          under the row lock
        - The idempotency key is fixed per (request, attempt), so a network
          retry of one attempt never creates a second batch
        - The processor never marks a request COMPLETED
    """

    # PayPal adapter - can be injected for testing
    _gateway_adapter: type | None = None

    @classmethod
    def get_gateway_adapter(cls) -> type:
        return cls._gateway_adapter or PayPalAdapter

    @classmethod
    def set_gateway_adapter(cls, adapter: type | None) -> None:
        """Set the gateway adapter class (for testing)."""
        cls._gateway_adapter = adapter

    # =========================================================================
    # Submission
    # =========================================================================

    @classmethod
    def process_request(
        cls,
        request_id: uuid.UUID,
        operator: Any = None,
    ) -> ServiceResult[ProcessResult]:
        """
        Submit a pending (or previously failed) request to PayPal.

        A processing request with no batch id is resubmitted under its
        current attempt, so PayPal deduplicates it if the first call got
        through. With an operator the submission is written to the
        operator audit log.

        Failure codes:
            NOT_AUTHORIZED, PAYOUT_REQUEST_NOT_FOUND, LOCK_ACQUISITION_FAILED,
            INVALID_STATE, SELLER_SUSPENDED, PAYOUTS_LOCKED,
            NO_PAYOUT_DESTINATION, INSUFFICIENT_BALANCE, GATEWAY_ERROR,
            GATEWAY_OUTCOME_UNKNOWN
        """
        if operator is not None and not is_operator(operator):
            return ServiceResult.failure(
                "Only operators can process payout requests",
                error_code=AuthorizationError.default_error_code,
            )

        cls.get_logger().info(
            "Starting payout submission",
            extra={"payout_request_id": str(request_id)},
        )

        try:
            with DistributedLock(
                f"payout:process:{request_id}",
                ttl=PROCESS_LOCK_TTL,
                timeout=PROCESS_LOCK_TIMEOUT,
            ):
                return cls._process_with_lock(request_id, operator)
        except LockAcquisitionError as e:
            cls.get_logger().warning(
                "Payout request is already being processed",
                extra={"payout_request_id": str(request_id), "error": str(e)},
            )
            return ServiceResult.failure(
                "This payout request is already being processed",
                error_code=e.error_code,
            )

    @classmethod
    def _process_with_lock(
        cls,
        request_id: uuid.UUID,
        operator: Any,
    ) -> ServiceResult[ProcessResult]:
        logger = cls.get_logger()

        # Phase 1: PENDING/FAILED -> PROCESSING, committed before the call
        try:
            with cls.atomic():
                payout_request = (
                    PayoutRequest.objects.select_for_update().filter(pk=request_id).first()
                )
                if payout_request is None:
                    return ServiceResult.failure(
                        f"Payout request {request_id} not found",
                        error_code=PayoutRequestNotFound.default_error_code,
                    )
                resuming = cls.is_unsent(payout_request)
                if not (payout_request.can_process or resuming):
                    logger.info(
                        "Payout request is not in a submittable state",
                        extra={
                            "payout_request_id": str(request_id),
                            "current_status": payout_request.status,
                        },
                    )
                    return ServiceResult.failure(
                        f"Payout request is {payout_request.status}; only pending or failed "
                        "requests, or processing ones PayPal never received, can be processed",
                        error_code="INVALID_STATE",
                        data=ProcessResult(
                            payout_request=payout_request,
                            batch_id=payout_request.gateway_batch_id,
                            status=payout_request.status,
                        ),
                    )

                seller = lock_seller(payout_request.seller_id)
                PayoutRequestService.check_seller_can_withdraw(seller)

                before = {
                    "status": payout_request.status,
                    "attempt_count": payout_request.attempt_count,
                }
                if resuming:
                    # Same attempt, same idempotency key: PayPal returns the
                    # batch if the earlier call did reach it
                    if operator is not None:
                        payout_request.processed_by = operator
                else:
                    if payout_request.status == PayoutRequestStatus.FAILED:
                        # The failure restored the reservation; take it again
                        PayoutRequestService.reserve_funds(seller, payout_request.amount_cents)
                        payout_request.payout_email = seller.payout_email
                    payout_request.submit(operator=operator)
                payout_request.save()

                if operator is not None:
                    OperatorAuditLog.record(
                        operator,
                        OperatorAction.PAYOUT_PROCESSED,
                        payout_request,
                        before=before,
                        after={
                            "status": payout_request.status,
                            "attempt_count": payout_request.attempt_count,
                        },
                    )
        except (ValidationError, InsufficientBalance, SellerAccountNotFound) as e:
            logger.info(
                f"Payout submission refused: {e.error_code}",
                extra={"payout_request_id": str(request_id), "error_code": e.error_code},
            )
            return ServiceResult.failure(e.message, error_code=e.error_code)

        # Phase 2: call PayPal outside the transaction
        params = CreatePayoutBatchParams(
            sender_batch_id=IdempotencyKeyGenerator.generate(
                "payout", payout_request.id, payout_request.attempt_count
            ),
            sender_item_id=payout_request.sender_item_id,
            receiver=payout_request.payout_email,
            amount_cents=payout_request.amount_cents,
            currency=payout_request.currency,
            note=f"Payout {payout_request.id}",
            email_subject=settings.PAYOUT_EMAIL_SUBJECT,
        )
        logger.info(
            "Submitting payout batch",
            extra={
                "payout_request_id": str(request_id),
                "sender_batch_id": params.sender_batch_id,
                "attempt": payout_request.attempt_count,
                "amount_cents": payout_request.amount_cents,
            },
        )

        try:
            batch = cls.get_gateway_adapter().create_payout_batch(
                params, trace_id=str(payout_request.id)
            )
        except GatewayError as e:
            return cls._handle_gateway_error(payout_request, e)

        # Phase 3: store the batch id unless a webhook already moved on
        return ServiceResult.success(cls._store_batch(request_id, batch))

    @classmethod
    def _handle_gateway_error(
        cls,
        payout_request: PayoutRequest,
        error: GatewayError,
    ) -> ServiceResult[ProcessResult]:
        logger = cls.get_logger()
        log_extra = {
            "payout_request_id": str(payout_request.id),
            "error_type": type(error).__name__,
            "error": str(error),
            "gateway_code": error.gateway_code,
            "outcome_unknown": error.outcome_unknown,
        }

        if error.outcome_unknown:
            logger.warning(
                "Payout batch outcome unknown; leaving request processing",
                extra=log_extra,
            )
            return ServiceResult.failure(
                "The payout may or may not have been created. It stays processing "
                "until PayPal confirms the outcome.",
                error_code="GATEWAY_OUTCOME_UNKNOWN",
                data=ProcessResult(payout_request=payout_request, status=payout_request.status),
            )

        logger.error("Payout batch rejected; restoring reservation", extra=log_extra)
        reason = f"{error.gateway_code}: {error.message}" if error.gateway_code else error.message
        PayoutReconciler.apply_failure(
            payout_request.id, reason, attempt=payout_request.attempt_count
        )
        refreshed = PayoutRequest.objects.get(pk=payout_request.id)
        return ServiceResult.failure(
            f"PayPal refused the payout: {error.message}",
            error_code="GATEWAY_ERROR",
            data=ProcessResult(payout_request=refreshed, status=refreshed.status),
        )

    @classmethod
    def _store_batch(cls, request_id: uuid.UUID, batch: PayoutBatchResult) -> ProcessResult:
        with cls.atomic():
            payout_request = PayoutRequest.objects.select_for_update().get(pk=request_id)
            if payout_request.status == PayoutRequestStatus.PROCESSING:
                payout_request.gateway_batch_id = batch.batch_id
                payout_request.gateway_response = batch.raw_response
                payout_request.save(
                    update_fields=["gateway_batch_id", "gateway_response", "updated_at"]
                )
            else:
                cls.get_logger().info(
                    "Payout request advanced before the batch id was stored",
                    extra={
                        "payout_request_id": str(request_id),
                        "current_status": payout_request.status,
                        "batch_id": batch.batch_id,
                    },
                )

        cls.get_logger().info(
            "Payout batch submitted",
            extra={
                "payout_request_id": str(request_id),
                "batch_id": batch.batch_id,
                "batch_status": batch.batch_status,
            },
        )
        return ProcessResult(
            payout_request=payout_request,
            batch_id=batch.batch_id,
            status=payout_request.status,
        )

    @staticmethod
    def is_unsent(payout_request: PayoutRequest) -> bool:
        """Processing, but no PayPal batch id was ever stored."""
        return (
            payout_request.status == PayoutRequestStatus.PROCESSING
            and not payout_request.gateway_batch_id
        )

    # =========================================================================
    # Status sync
    # =========================================================================

    @classmethod
    def sync_request_status(
        cls,
        request_id: uuid.UUID,
        operator: Any = None,
    ) -> ServiceResult[PayoutRequest]:
        """
        Ask PayPal for the batch status and apply a final item status.

        Used when a webhook never arrived. Applies results through
        PayoutReconciler, so it is safe to run alongside webhooks.

        Failure codes:
            NOT_AUTHORIZED, PAYOUT_REQUEST_NOT_FOUND, INVALID_STATE,
            NO_GATEWAY_BATCH, GATEWAY_ERROR
        """
        if operator is not None and not is_operator(operator):
            return ServiceResult.failure(
                "Only operators can sync payout requests",
                error_code=AuthorizationError.default_error_code,
            )

        payout_request = PayoutRequest.objects.filter(pk=request_id).first()
        if payout_request is None:
            return ServiceResult.failure(
                f"Payout request {request_id} not found",
                error_code=PayoutRequestNotFound.default_error_code,
            )
        if payout_request.status != PayoutRequestStatus.PROCESSING:
            return ServiceResult.failure(
                f"Payout request is {payout_request.status}; nothing to sync",
                error_code="INVALID_STATE",
                data=payout_request,
            )
        if not payout_request.gateway_batch_id:
            return ServiceResult.failure(
                "Payout request has no PayPal batch id to query",
                error_code="NO_GATEWAY_BATCH",
                data=payout_request,
            )

        try:
            details = cls.get_gateway_adapter().get_payout_batch(payout_request.gateway_batch_id)
        except GatewayError as e:
            cls.get_logger().warning(
                "Could not fetch payout batch status",
                extra={
                    "payout_request_id": str(request_id),
                    "batch_id": payout_request.gateway_batch_id,
                    "error": str(e),
                },
            )
            return ServiceResult.failure(
                f"Could not fetch payout status: {e.message}",
                error_code="GATEWAY_ERROR",
                data=payout_request,
            )

        if details.batch_status.upper() == "DENIED":
            PayoutReconciler.fail_batch(details.batch_id, reason="Payout batch denied by PayPal")
        else:
            item = details.find_item(payout_request.sender_item_id)
            status = item.transaction_status if item else ""
            if status == "SUCCESS":
                PayoutReconciler.apply_success(
                    payout_request.id,
                    transaction_id=item.transaction_id,
                    item_id=item.payout_item_id,
                    raw=item.raw,
                    attempt=payout_request.attempt_count,
                    batch_id=details.batch_id,
                )
            elif status in FAILED_ITEM_STATUSES:
                reason = (
                    item.errors.get("message")
                    or item.errors.get("name")
                    or status
                )
                PayoutReconciler.apply_failure(
                    payout_request.id,
                    reason,
                    raw=item.raw,
                    attempt=payout_request.attempt_count,
                    batch_id=details.batch_id,
                )
            else:
                cls.get_logger().info(
                    "Payout item not final yet",
                    extra={
                        "payout_request_id": str(request_id),
                        "batch_status": details.batch_status,
                        "transaction_status": status or None,
                    },
                )

        return ServiceResult.success(PayoutRequest.objects.get(pk=request_id))
