"""
Tests for PayoutRequestService.

Balances are set up through the ledger (funded_seller) so reservations
are checked against real available funds.
"""

import uuid

import pytest

from earnings.exceptions import GatewayTimeoutError, PayoutRequestNotFound
from earnings.models import OperatorAuditLog, PayoutRequest, SellerAccount
from earnings.services import PayoutProcessor, PayoutRequestService
from earnings.state_machines import OperatorAction, PayoutRequestStatus, SellerStatus
from earnings.tests.factories import PayoutRequestFactory, UserFactory


def get_fresh_seller(seller_id) -> SellerAccount:
    return SellerAccount.objects.get(pk=seller_id)


@pytest.mark.django_db
class TestRequestPayout:
    def test_creates_pending_request_and_reserves(self, funded_seller):
        seller = funded_seller(available_cents=9000)

        result = PayoutRequestService.request_payout(seller, 5000)

        assert result.success is True
        payout_request = result.data
        assert payout_request.status == PayoutRequestStatus.PENDING
        assert payout_request.amount_cents == 5000
        assert payout_request.payout_email == seller.payout_email
        assert get_fresh_seller(seller.pk).available_balance_cents == 4000

    def test_accepts_seller_id(self, funded_seller):
        seller = funded_seller(available_cents=9000)

        result = PayoutRequestService.request_payout(seller.pk, 9000)

        assert result.success is True
        assert get_fresh_seller(seller.pk).available_balance_cents == 0

    def test_insufficient_balance(self, funded_seller):
        seller = funded_seller(available_cents=4000)

        result = PayoutRequestService.request_payout(seller, 5000)

        assert result.success is False
        assert result.error_code == "INSUFFICIENT_BALANCE"
        assert not PayoutRequest.objects.exists()
        assert get_fresh_seller(seller.pk).available_balance_cents == 4000

    def test_pending_funds_cannot_be_withdrawn(self, funded_seller):
        seller = funded_seller(available_cents=1000, pending_cents=50000)

        result = PayoutRequestService.request_payout(seller, 5000)

        assert result.error_code == "INSUFFICIENT_BALANCE"

    @pytest.mark.parametrize("amount", [0, -500, "5000", 50.0, True])
    def test_invalid_amount(self, funded_seller, amount):
        seller = funded_seller(available_cents=9000)

        result = PayoutRequestService.request_payout(seller, amount)

        assert result.error_code == "INVALID_AMOUNT"

    def test_below_minimum(self, funded_seller, settings):
        settings.PAYOUT_MINIMUM_CENTS = 1000
        seller = funded_seller(available_cents=9000)

        result = PayoutRequestService.request_payout(seller, 999)

        assert result.error_code == "BELOW_MINIMUM"
        assert get_fresh_seller(seller.pk).available_balance_cents == 9000

    @pytest.mark.parametrize(
        "status,error_code",
        [
            (SellerStatus.SUSPENDED, "SELLER_SUSPENDED"),
            (SellerStatus.PAYOUTS_LOCKED, "PAYOUTS_LOCKED"),
        ],
    )
    def test_seller_status_blocks_withdrawal(self, funded_seller, status, error_code):
        seller = funded_seller(available_cents=9000)
        SellerAccount.objects.filter(pk=seller.pk).update(status=status)

        result = PayoutRequestService.request_payout(seller, 5000)

        assert result.error_code == error_code
        assert get_fresh_seller(seller.pk).available_balance_cents == 9000

    def test_no_payout_email(self, funded_seller):
        seller = funded_seller(available_cents=9000)
        SellerAccount.objects.filter(pk=seller.pk).update(payout_email=None)

        result = PayoutRequestService.request_payout(seller, 5000)

        assert result.error_code == "NO_PAYOUT_DESTINATION"

    def test_unknown_seller(self, db):
        result = PayoutRequestService.request_payout(uuid.uuid4(), 5000)

        assert result.error_code == "SELLER_NOT_FOUND"

    def test_sequential_requests_never_exceed_available(self, funded_seller):
        seller = funded_seller(available_cents=9000)

        first = PayoutRequestService.request_payout(seller, 5000)
        second = PayoutRequestService.request_payout(seller, 5000)

        assert first.success is True
        assert second.error_code == "INSUFFICIENT_BALANCE"
        assert get_fresh_seller(seller.pk).available_balance_cents == 4000


@pytest.mark.django_db
class TestFailRequest:
    def test_operator_fails_pending_request(self, funded_seller, operator):
        seller = funded_seller(available_cents=9000)
        payout_request = PayoutRequestService.request_payout(seller, 5000).data

        result = PayoutRequestService.fail_request(payout_request.id, "Fraud review", operator)

        assert result.success is True
        assert result.data.status == PayoutRequestStatus.FAILED
        assert result.data.failure_reason == "Fraud review"
        assert result.data.processed_by == operator
        assert get_fresh_seller(seller.pk).available_balance_cents == 9000

    def test_requires_operator(self, funded_seller):
        seller = funded_seller(available_cents=9000)
        payout_request = PayoutRequestService.request_payout(seller, 5000).data

        result = PayoutRequestService.fail_request(
            payout_request.id, "Fraud review", UserFactory()
        )

        assert result.error_code == "NOT_AUTHORIZED"
        assert PayoutRequest.objects.get(pk=payout_request.id).status == PayoutRequestStatus.PENDING

    @pytest.mark.parametrize("reason", ["", "   ", None])
    def test_requires_reason(self, operator, reason):
        result = PayoutRequestService.fail_request(uuid.uuid4(), reason, operator)

        assert result.error_code == "REASON_REQUIRED"

    def test_unknown_request(self, operator):
        result = PayoutRequestService.fail_request(uuid.uuid4(), "Fraud review", operator)

        assert result.error_code == "PAYOUT_REQUEST_NOT_FOUND"

    def test_submitted_requests_cannot_be_failed(self, funded_seller, operator, mock_gateway):
        seller = funded_seller(available_cents=9000)
        payout_request = PayoutRequestService.request_payout(seller, 5000).data
        PayoutProcessor.process_request(payout_request.id)

        result = PayoutRequestService.fail_request(payout_request.id, "Too late", operator)

        assert result.error_code == "INVALID_STATE"
        assert get_fresh_seller(seller.pk).available_balance_cents == 4000

    def test_fails_processing_request_paypal_never_received(
        self, funded_seller, operator, mock_gateway
    ):
        seller = funded_seller(available_cents=9000)
        payout_request = PayoutRequestService.request_payout(seller, 5000).data
        mock_gateway.create_payout_batch.side_effect = GatewayTimeoutError("timed out")
        PayoutProcessor.process_request(payout_request.id)

        result = PayoutRequestService.fail_request(
            payout_request.id, "Batch never reached PayPal", operator
        )

        assert result.success is True
        assert result.data.status == PayoutRequestStatus.FAILED
        assert get_fresh_seller(seller.pk).available_balance_cents == 9000

    def test_refused_while_submission_in_flight(self, funded_seller, operator, mock_redis):
        seller = funded_seller(available_cents=9000)
        payout_request = PayoutRequestService.request_payout(seller, 5000).data
        mock_redis.set.return_value = False

        result = PayoutRequestService.fail_request(payout_request.id, "Fraud review", operator)

        assert result.error_code == "LOCK_ACQUISITION_FAILED"
        assert get_fresh_seller(seller.pk).available_balance_cents == 4000

    def test_records_operator_audit_entry(self, funded_seller, operator):
        seller = funded_seller(available_cents=9000)
        payout_request = PayoutRequestService.request_payout(seller, 5000).data

        PayoutRequestService.fail_request(payout_request.id, "Fraud review", operator)

        entry = OperatorAuditLog.objects.get()
        assert entry.operator == operator
        assert entry.action == OperatorAction.PAYOUT_FAILED
        assert entry.entity_id == str(payout_request.id)
        assert entry.reason == "Fraud review"
        assert entry.before == {"status": "pending", "attempt_count": 0}
        assert entry.after == {"status": "failed", "restored_cents": 5000, "recovered_cents": 0}

    def test_refused_action_is_not_audited(self, funded_seller):
        seller = funded_seller(available_cents=9000)
        payout_request = PayoutRequestService.request_payout(seller, 5000).data

        PayoutRequestService.fail_request(payout_request.id, "Fraud review", UserFactory())

        assert not OperatorAuditLog.objects.exists()


@pytest.mark.django_db
class TestQueries:
    def test_list_requests_newest_first(self, seller):
        older = PayoutRequestFactory(seller=seller)
        newer = PayoutRequestFactory(seller=seller)
        PayoutRequestFactory()

        requests = list(PayoutRequestService.list_requests(seller))

        assert [r.id for r in requests] == [newer.id, older.id]

    def test_list_requests_by_status(self, seller):
        PayoutRequestFactory(seller=seller)

        assert not PayoutRequestService.list_requests(seller, status="completed").exists()
        assert PayoutRequestService.list_requests(seller, status="pending").count() == 1

    def test_get_request_not_found(self, db):
        with pytest.raises(PayoutRequestNotFound):
            PayoutRequestService.get_request(uuid.uuid4())
