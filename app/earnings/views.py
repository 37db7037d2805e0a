"""
DRF views for the earnings app.

Endpoints (prefix /api/v1/earnings/):
    GET   account/                  - Seller balance summary
    PATCH account/                  - Change the seller's payout email
    GET   earnings/?status=         - Seller's earnings
    GET   payouts/?status=          - Seller's payout requests
    POST  payouts/                  - Request a payout
    POST  payouts/process/          - Operator: submit a request to PayPal
    POST  payouts/<id>/fail/        - Operator: fail a pending request
    POST  payouts/<id>/sync/        - Operator: fetch status from PayPal
    POST  sellers/<id>/status/      - Operator: suspend / lock / reactivate

Webhook endpoints live in earnings.webhooks.views.

Errors:
    Service failures are returned as {"error", "error_code"} with the status
    from ERROR_STATUS (400 when not listed).
"""

from __future__ import annotations

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.pagination import PageNumberPagination
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from core.services import ServiceResult

from earnings.ledger import LedgerService
from earnings.models import Earning
from earnings.permissions import IsOperator, IsSeller, get_seller_account
from earnings.serializers import (
    BalanceSummarySerializer,
    EarningSerializer,
    ErrorSerializer,
    FailPayoutSerializer,
    PayoutEmailUpdateSerializer,
    PayoutRequestCreateSerializer,
    PayoutRequestSerializer,
    ProcessPayoutResponseSerializer,
    ProcessPayoutSerializer,
    SellerAccountSerializer,
    SellerStatusSerializer,
)
from earnings.services import (
    PayoutProcessor,
    PayoutRequestService,
    SellerAccountService,
)
from earnings.state_machines import EarningStatus, PayoutRequestStatus

ERROR_STATUS = {
    "NOT_AUTHORIZED": status.HTTP_403_FORBIDDEN,
    "PAYOUT_REQUEST_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "SELLER_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "INVALID_STATE": status.HTTP_409_CONFLICT,
    "LOCK_ACQUISITION_FAILED": status.HTTP_409_CONFLICT,
    "STALE_RECORD": status.HTTP_409_CONFLICT,
    "GATEWAY_ERROR": status.HTTP_502_BAD_GATEWAY,
    "GATEWAY_OUTCOME_UNKNOWN": status.HTTP_502_BAD_GATEWAY,
}

STATUS_PARAMETER = OpenApiParameter(
    name="status",
    type=OpenApiTypes.STR,
    location=OpenApiParameter.QUERY,
    required=False,
    description="Filter by status",
)


def error_response(result: ServiceResult) -> Response:
    body = {"error": result.error}
    if result.error_code:
        body["error_code"] = result.error_code
    return Response(body, status=ERROR_STATUS.get(result.error_code, status.HTTP_400_BAD_REQUEST))


def validation_error_response(errors: dict, error_code: str = "VALIDATION_ERROR") -> Response:
    return Response(
        {"error": "Invalid request", "error_code": error_code, "errors": errors},
        status=status.HTTP_400_BAD_REQUEST,
    )


def paginated(view: APIView, request, queryset, serializer_class) -> Response:
    paginator = PageNumberPagination()
    page = paginator.paginate_queryset(queryset, request, view=view)
    return paginator.get_paginated_response(serializer_class(page, many=True).data)


# =============================================================================
# Seller endpoints
# =============================================================================


class SellerAccountView(APIView):
    """
    Seller balance summary.

    GET /api/v1/earnings/account/
    PATCH /api/v1/earnings/account/

    Response:
        200 OK: Account with available, pending, reserved, total earnings
            and outstanding clawback debt
        403 Forbidden: Caller is not a seller
    """

    permission_classes = [IsAuthenticated, IsSeller]

    @extend_schema(
        operation_id="get_seller_account",
        summary="Get balance summary",
        responses={
            200: BalanceSummarySerializer,
            403: OpenApiResponse(description="Caller is not a seller"),
        },
        tags=["Earnings - Seller"],
    )
    def get(self, request):
        seller = get_seller_account(request.user)
        summary = LedgerService.get_balance_summary(seller)
        return Response(BalanceSummarySerializer({"account": seller, **summary}).data)

    @extend_schema(
        operation_id="update_payout_email",
        summary="Change payout email",
        description="Applies to payout requests created after the change.",
        request=PayoutEmailUpdateSerializer,
        responses={200: SellerAccountSerializer, 400: ErrorSerializer},
        tags=["Earnings - Seller"],
    )
    def patch(self, request):
        serializer = PayoutEmailUpdateSerializer(data=request.data)
        if not serializer.is_valid():
            return validation_error_response(serializer.errors, "INVALID_PAYOUT_EMAIL")

        result = SellerAccountService.update_payout_email(
            get_seller_account(request.user),
            serializer.validated_data["payout_email"],
        )
        if not result.success:
            return error_response(result)
        return Response(SellerAccountSerializer(result.data).data)


class EarningListView(APIView):
    """
    Seller's earnings, newest first.

    GET /api/v1/earnings/earnings/?status=escrow
    """

    permission_classes = [IsAuthenticated, IsSeller]

    @extend_schema(
        operation_id="list_earnings",
        summary="List earnings",
        parameters=[STATUS_PARAMETER],
        responses={200: EarningSerializer(many=True)},
        tags=["Earnings - Seller"],
    )
    def get(self, request):
        seller = get_seller_account(request.user)
        queryset = Earning.objects.filter(seller=seller).order_by("-created_at")
        status_filter = request.query_params.get("status")
        if status_filter:
            if status_filter not in EarningStatus.values:
                return Response(
                    {"error": f"Unknown status '{status_filter}'", "error_code": "INVALID_STATUS"},
                    status=status.HTTP_400_BAD_REQUEST,
                )
            queryset = queryset.filter(status=status_filter)
        return paginated(self, request, queryset, EarningSerializer)


class PayoutRequestListCreateView(APIView):
    """
    List or create payout requests.

    GET /api/v1/earnings/payouts/?status=pending
    POST /api/v1/earnings/payouts/
        {"amount": "50.00"}

    Response:
        201 Created: The pending payout request; the amount is reserved
        400 Bad Request: {"error", "error_code"} (BELOW_MINIMUM,
            INSUFFICIENT_BALANCE, PAYOUTS_LOCKED, ...)
    """

    permission_classes = [IsAuthenticated, IsSeller]

    @extend_schema(
        operation_id="list_payout_requests",
        summary="List payout requests",
        parameters=[STATUS_PARAMETER],
        responses={200: PayoutRequestSerializer(many=True)},
        tags=["Earnings - Payouts"],
    )
    def get(self, request):
        status_filter = request.query_params.get("status")
        if status_filter and status_filter not in PayoutRequestStatus.values:
            return Response(
                {"error": f"Unknown status '{status_filter}'", "error_code": "INVALID_STATUS"},
                status=status.HTTP_400_BAD_REQUEST,
            )
        queryset = PayoutRequestService.list_requests(
            get_seller_account(request.user), status=status_filter
        )
        return paginated(self, request, queryset, PayoutRequestSerializer)

    @extend_schema(
        operation_id="create_payout_request",
        summary="Request a payout",
        description=(
            "Reserves the amount from the available balance. The payout is sent "
            "to PayPal when an operator processes it."
        ),
        request=PayoutRequestCreateSerializer,
        responses={
            201: PayoutRequestSerializer,
            400: ErrorSerializer,
            403: OpenApiResponse(description="Caller is not a seller"),
        },
        tags=["Earnings - Payouts"],
    )
    def post(self, request):
        serializer = PayoutRequestCreateSerializer(data=request.data)
        if not serializer.is_valid():
            return validation_error_response(serializer.errors, "INVALID_AMOUNT")

        result = PayoutRequestService.request_payout(
            get_seller_account(request.user),
            serializer.validated_data["amount_cents"],
        )
        if not result.success:
            return error_response(result)
        return Response(PayoutRequestSerializer(result.data).data, status=status.HTTP_201_CREATED)


# =============================================================================
# Operator endpoints
# =============================================================================


class ProcessPayoutView(APIView):
    """
    Submit a payout request to PayPal.

    POST /api/v1/earnings/payouts/process/
        {"requestId": "<uuid>"}

    Response:
        200 OK: {"success": true, "batchId": "...", "status": "processing"}
        409 Conflict: Request is not pending/failed, or already being processed
        502 Bad Gateway: PayPal refused the payout or its outcome is unknown
    """

    permission_classes = [IsAuthenticated, IsOperator]

    @extend_schema(
        operation_id="process_payout_request",
        summary="Process payout request",
        request=ProcessPayoutSerializer,
        responses={
            200: ProcessPayoutResponseSerializer,
            400: ErrorSerializer,
            404: ErrorSerializer,
            409: ErrorSerializer,
            502: ErrorSerializer,
        },
        tags=["Earnings - Operator"],
    )
    def post(self, request):
        serializer = ProcessPayoutSerializer(data=request.data)
        if not serializer.is_valid():
            return validation_error_response(serializer.errors)

        result = PayoutProcessor.process_request(
            serializer.validated_data["requestId"],
            operator=request.user,
        )
        if not result.success:
            return error_response(result)
        return Response(
            {
                "success": True,
                "batchId": result.data.batch_id,
                "status": result.data.status,
            }
        )


class FailPayoutView(APIView):
    """
    Fail a pending payout request, or a processing one PayPal never
    received, and restore the reserved amount.

    POST /api/v1/earnings/payouts/{request_id}/fail/
        {"reason": "Receiver account closed"}
    """

    permission_classes = [IsAuthenticated, IsOperator]

    @extend_schema(
        operation_id="fail_payout_request",
        summary="Fail payout request",
        request=FailPayoutSerializer,
        responses={
            200: PayoutRequestSerializer,
            400: ErrorSerializer,
            404: ErrorSerializer,
            409: ErrorSerializer,
        },
        tags=["Earnings - Operator"],
    )
    def post(self, request, request_id):
        serializer = FailPayoutSerializer(data=request.data)
        if not serializer.is_valid():
            return validation_error_response(serializer.errors, "REASON_REQUIRED")

        result = PayoutRequestService.fail_request(
            request_id,
            serializer.validated_data["reason"],
            operator=request.user,
        )
        if not result.success:
            return error_response(result)
        return Response(PayoutRequestSerializer(result.data).data)


class SyncPayoutView(APIView):
    """
    Fetch a processing request's status from PayPal and apply it.

    POST /api/v1/earnings/payouts/{request_id}/sync/
    """

    permission_classes = [IsAuthenticated, IsOperator]

    @extend_schema(
        operation_id="sync_payout_request",
        summary="Sync payout status",
        request=None,
        responses={200: PayoutRequestSerializer, 404: ErrorSerializer, 409: ErrorSerializer},
        tags=["Earnings - Operator"],
    )
    def post(self, request, request_id):
        result = PayoutProcessor.sync_request_status(request_id, operator=request.user)
        if not result.success:
            return error_response(result)
        return Response(PayoutRequestSerializer(result.data).data)


class SellerStatusView(APIView):
    """
    Suspend, lock or reactivate a seller.

    POST /api/v1/earnings/sellers/{seller_id}/status/
        {"status": "suspended", "reason": "Fraud review", "version": 3}
    """

    permission_classes = [IsAuthenticated, IsOperator]

    @extend_schema(
        operation_id="set_seller_status",
        summary="Change seller status",
        request=SellerStatusSerializer,
        responses={
            200: SellerAccountSerializer,
            400: ErrorSerializer,
            404: ErrorSerializer,
            409: ErrorSerializer,
        },
        tags=["Earnings - Operator"],
    )
    def post(self, request, seller_id):
        serializer = SellerStatusSerializer(data=request.data)
        if not serializer.is_valid():
            return validation_error_response(serializer.errors)

        result = SellerAccountService.set_status(
            seller_id,
            serializer.validated_data["status"],
            serializer.validated_data["reason"],
            operator=request.user,
            expected_version=serializer.validated_data.get("version"),
        )
        if not result.success:
            return error_response(result)
        return Response(SellerAccountSerializer(result.data).data)
