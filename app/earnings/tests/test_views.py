"""
Tests for the earnings REST API.

Uses APIClient with force_authenticate; PayPal is the mock_gateway fixture.
"""

import uuid

import pytest
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APIClient

from earnings.exceptions import GatewayTimeoutError
from earnings.models import PayoutRequest, SellerAccount
from earnings.services import PayoutProcessor, PayoutRequestService
from earnings.state_machines import PayoutRequestStatus, SellerStatus
from earnings.tests.factories import EarningFactory, PayoutRequestFactory

ACCOUNT_URL = reverse("earnings:account")
EARNINGS_URL = reverse("earnings:earning_list")
PAYOUTS_URL = reverse("earnings:payout_list")
PROCESS_URL = reverse("earnings:payout_process")


def fail_url(request_id):
    return reverse("earnings:payout_fail", kwargs={"request_id": request_id})


def sync_url(request_id):
    return reverse("earnings:payout_sync", kwargs={"request_id": request_id})


def status_url(seller_id):
    return reverse("earnings:seller_status", kwargs={"seller_id": seller_id})


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def seller_client(api_client, funded_seller):
    """Client authenticated as a seller with 9000 available and 1000 pending."""
    seller = funded_seller(available_cents=9000, pending_cents=1000)
    api_client.force_authenticate(user=seller.user)
    api_client.seller = seller
    return api_client


@pytest.fixture
def operator_client(operator):
    client = APIClient()
    client.force_authenticate(user=operator)
    return client


@pytest.mark.django_db
class TestSellerAccountView:
    def test_balance_summary(self, seller_client):
        PayoutRequestService.request_payout(seller_client.seller, 2000)

        response = seller_client.get(ACCOUNT_URL)

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["account"]["id"] == str(seller_client.seller.id)
        assert data["available"] == {"cents": 7000, "currency": "usd", "amount": "70.00"}
        assert data["pending"]["cents"] == 1000
        assert data["reserved"]["cents"] == 2000
        assert data["total_earnings"]["cents"] == 10000
        assert data["outstanding_debt"]["cents"] == 0

    def test_requires_seller(self, api_client, user):
        api_client.force_authenticate(user=user)

        response = api_client.get(ACCOUNT_URL)

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_requires_authentication(self, api_client, db):
        response = api_client.get(ACCOUNT_URL)

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_update_payout_email(self, seller_client):
        response = seller_client.patch(
            ACCOUNT_URL, {"payout_email": "new@paypal.example.com"}, format="json"
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["payout_email"] == "new@paypal.example.com"

    def test_update_payout_email_invalid(self, seller_client):
        response = seller_client.patch(ACCOUNT_URL, {"payout_email": "nope"}, format="json")

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error_code"] == "INVALID_PAYOUT_EMAIL"


@pytest.mark.django_db
class TestEarningListView:
    def test_lists_own_earnings(self, seller_client):
        EarningFactory()

        response = seller_client.get(EARNINGS_URL)

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["count"] == 2
        assert {e["status"] for e in data["results"]} == {"available", "escrow"}

    def test_filter_by_status(self, seller_client):
        response = seller_client.get(EARNINGS_URL, {"status": "escrow"})

        results = response.json()["results"]
        assert len(results) == 1
        assert results[0]["net_amount"] == "10.00"

    def test_unknown_status(self, seller_client):
        response = seller_client.get(EARNINGS_URL, {"status": "bogus"})

        assert response.status_code == status.HTTP_400_BAD_REQUEST


@pytest.mark.django_db
class TestPayoutRequestListCreateView:
    def test_create(self, seller_client):
        response = seller_client.post(PAYOUTS_URL, {"amount": "50.00"}, format="json")

        assert response.status_code == status.HTTP_201_CREATED
        data = response.json()
        assert data["amount_cents"] == 5000
        assert data["amount"] == "50.00"
        assert data["status"] == "pending"
        seller = SellerAccount.objects.get(pk=seller_client.seller.pk)
        assert seller.available_balance_cents == 4000

    def test_insufficient_balance(self, seller_client):
        response = seller_client.post(PAYOUTS_URL, {"amount": "95.00"}, format="json")

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error_code"] == "INSUFFICIENT_BALANCE"

    @pytest.mark.parametrize("amount", ["abc", "10.001", ""])
    def test_invalid_amount(self, seller_client, amount):
        response = seller_client.post(PAYOUTS_URL, {"amount": amount}, format="json")

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error_code"] == "INVALID_AMOUNT"

    def test_negative_amount(self, seller_client):
        response = seller_client.post(PAYOUTS_URL, {"amount": "-5.00"}, format="json")

        assert response.json()["error_code"] == "INVALID_AMOUNT"

    def test_locked_seller(self, seller_client):
        SellerAccount.objects.filter(pk=seller_client.seller.pk).update(
            status=SellerStatus.PAYOUTS_LOCKED
        )

        response = seller_client.post(PAYOUTS_URL, {"amount": "50.00"}, format="json")

        assert response.json()["error_code"] == "PAYOUTS_LOCKED"

    def test_list_own_requests(self, seller_client):
        PayoutRequestService.request_payout(seller_client.seller, 2000)
        PayoutRequestFactory()

        response = seller_client.get(PAYOUTS_URL)

        assert response.json()["count"] == 1

    def test_list_unknown_status(self, seller_client):
        response = seller_client.get(PAYOUTS_URL, {"status": "lost"})

        assert response.status_code == status.HTTP_400_BAD_REQUEST


@pytest.mark.django_db
class TestProcessPayoutView:
    @pytest.fixture
    def pending_request(self, funded_seller):
        seller = funded_seller(available_cents=9000)
        return PayoutRequestService.request_payout(seller, 5000).data

    def test_process(self, operator_client, pending_request, mock_gateway):
        response = operator_client.post(
            PROCESS_URL, {"requestId": str(pending_request.id)}, format="json"
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"success": True, "batchId": "BATCH-1", "status": "processing"}

    def test_seller_cannot_process(self, api_client, pending_request, mock_gateway):
        api_client.force_authenticate(user=pending_request.seller.user)

        response = api_client.post(
            PROCESS_URL, {"requestId": str(pending_request.id)}, format="json"
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN
        mock_gateway.create_payout_batch.assert_not_called()

    def test_already_processing(self, operator_client, pending_request, mock_gateway):
        PayoutProcessor.process_request(pending_request.id)

        response = operator_client.post(
            PROCESS_URL, {"requestId": str(pending_request.id)}, format="json"
        )

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.json()["error_code"] == "INVALID_STATE"

    def test_not_found(self, operator_client, mock_gateway):
        response = operator_client.post(PROCESS_URL, {"requestId": str(uuid.uuid4())}, format="json")

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_missing_request_id(self, operator_client, mock_gateway):
        response = operator_client.post(PROCESS_URL, {}, format="json")

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_gateway_outcome_unknown(self, operator_client, pending_request, mock_gateway):
        mock_gateway.create_payout_batch.side_effect = GatewayTimeoutError("timed out")

        response = operator_client.post(
            PROCESS_URL, {"requestId": str(pending_request.id)}, format="json"
        )

        assert response.status_code == status.HTTP_502_BAD_GATEWAY
        assert response.json()["error_code"] == "GATEWAY_OUTCOME_UNKNOWN"


@pytest.mark.django_db
class TestFailAndSyncViews:
    def test_fail(self, operator_client, funded_seller):
        seller = funded_seller(available_cents=9000)
        payout_request = PayoutRequestService.request_payout(seller, 5000).data

        response = operator_client.post(
            fail_url(payout_request.id), {"reason": "Closed account"}, format="json"
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["status"] == "failed"
        assert response.json()["failure_reason"] == "Closed account"

    def test_fail_requires_reason(self, operator_client, db):
        response = operator_client.post(fail_url(uuid.uuid4()), {}, format="json")

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error_code"] == "REASON_REQUIRED"

    def test_sync(self, operator_client, funded_seller, mock_gateway, batch_details):
        seller = funded_seller(available_cents=9000)
        payout_request = PayoutRequestService.request_payout(seller, 9000).data
        PayoutProcessor.process_request(payout_request.id)
        mock_gateway.get_payout_batch.return_value = batch_details(
            "BATCH-1", str(payout_request.id), "SUCCESS", transaction_id="TXN-1"
        )

        response = operator_client.post(sync_url(payout_request.id))

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["status"] == "completed"
        assert PayoutRequest.objects.get(pk=payout_request.id).status == (
            PayoutRequestStatus.COMPLETED
        )

    def test_sync_pending_is_conflict(self, operator_client, seller, mock_gateway):
        payout_request = PayoutRequestFactory(seller=seller)

        response = operator_client.post(sync_url(payout_request.id))

        assert response.status_code == status.HTTP_409_CONFLICT


@pytest.mark.django_db
class TestSellerStatusView:
    def test_suspend(self, operator_client, seller):
        response = operator_client.post(
            status_url(seller.id), {"status": "suspended", "reason": "Fraud"}, format="json"
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["status"] == "suspended"

    def test_stale_version(self, operator_client, seller):
        response = operator_client.post(
            status_url(seller.id),
            {"status": "suspended", "reason": "Fraud", "version": seller.version + 5},
            format="json",
        )

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.json()["error_code"] == "STALE_RECORD"

    def test_unknown_seller(self, operator_client, db):
        response = operator_client.post(
            status_url(uuid.uuid4()), {"status": "suspended", "reason": "Fraud"}, format="json"
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_invalid_status(self, operator_client, seller):
        response = operator_client.post(
            status_url(seller.id), {"status": "deleted", "reason": "x"}, format="json"
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
