"""Tests for ReversalService."""

from datetime import timedelta

import pytest
from django.utils import timezone

from earnings.ledger import LedgerService
from earnings.models import ClawbackDebt, Earning, SellerAccount
from earnings.services import ReversalService
from earnings.signals import order_access_revoked
from earnings.state_machines import EarningStatus


def record(seller, order_id, item, gross, capture_id="CAP-1"):
    return LedgerService.record_earning(
        seller=seller,
        order_id=order_id,
        order_item_id=item,
        gross_amount_cents=gross,
        fee_rate=0,
        capture_id=capture_id,
    )


@pytest.fixture
def signal_receiver(mocker):
    receiver = mocker.MagicMock()
    order_access_revoked.connect(receiver, dispatch_uid="test_reversal_receiver")
    yield receiver
    order_access_revoked.disconnect(dispatch_uid="test_reversal_receiver")


@pytest.mark.django_db
class TestReverseCapture:
    def test_reverses_all_lines_of_capture(self, seller):
        a = record(seller, "ord_1", "ord_1:1", 3000)
        b = record(seller, "ord_1", "ord_1:2", 2000)
        other = record(seller, "ord_2", "ord_2:1", 1000, capture_id="CAP-2")

        result = ReversalService.reverse_capture("CAP-1", reason="refund")

        assert result.success is True
        assert set(result.data.reversed) == {a.id, b.id}
        assert result.data.reversed_count == 2
        assert result.data.debt_cents == 0
        assert result.data.order_ids == ["ord_1"]
        assert Earning.objects.get(pk=other.id).status == EarningStatus.ESCROW
        assert SellerAccount.objects.get(pk=seller.pk).pending_balance_cents == 1000

    def test_second_reversal_is_a_no_op(self, seller):
        earning = record(seller, "ord_1", "ord_1:1", 3000)
        ReversalService.reverse_capture("CAP-1", reason="refund")

        result = ReversalService.reverse_capture("CAP-1", reason="refund")

        assert result.data.reversed == []
        assert result.data.already_reversed == [earning.id]
        assert SellerAccount.objects.get(pk=seller.pk).pending_balance_cents == 0

    def test_paid_earning_creates_debt(self, seller):
        earning = record(seller, "ord_1", "ord_1:1", 3000)
        LedgerService.release(earning.id, now=timezone.now() + timedelta(days=30))
        SellerAccount.objects.filter(pk=seller.pk).update(available_balance_cents=0)
        LedgerService.mark_paid([earning.id])

        result = ReversalService.reverse_capture("CAP-1", reason="chargeback")

        assert result.data.debt_cents == 3000
        assert ClawbackDebt.objects.get(earning=earning).amount_cents == 3000

    def test_unknown_capture_is_empty_success(self, db):
        result = ReversalService.reverse_capture("CAP-UNKNOWN", reason="refund")

        assert result.success is True
        assert result.data.reversed_count == 0

    def test_requires_capture_id(self, db):
        result = ReversalService.reverse_capture("", reason="refund")

        assert result.error_code == "INVALID_CAPTURE"

    def test_revokes_access_after_commit(
        self, seller, signal_receiver, django_capture_on_commit_callbacks
    ):
        record(seller, "ord_1", "ord_1:1", 3000)
        record(seller, "ord_1", "ord_1:2", 2000)

        with django_capture_on_commit_callbacks(execute=True):
            ReversalService.reverse_capture("CAP-1", reason="refund")

        signal_receiver.assert_called_once()
        kwargs = signal_receiver.call_args.kwargs
        assert kwargs["order_id"] == "ord_1"
        assert sorted(kwargs["order_item_ids"]) == ["ord_1:1", "ord_1:2"]
        assert kwargs["reason"] == "refund"

    def test_no_signal_without_commit(self, seller, signal_receiver):
        record(seller, "ord_1", "ord_1:1", 3000)

        ReversalService.reverse_capture("CAP-1", reason="refund")

        signal_receiver.assert_not_called()


@pytest.mark.django_db
class TestReverseOrderItems:
    def test_reverses_only_named_lines(self, seller):
        a = record(seller, "ord_1", "ord_1:1", 3000)
        b = record(seller, "ord_1", "ord_1:2", 2000)

        result = ReversalService.reverse_order_items(["ord_1:2"], reason="partial refund")

        assert result.data.reversed == [b.id]
        assert Earning.objects.get(pk=a.id).status == EarningStatus.ESCROW
        assert SellerAccount.objects.get(pk=seller.pk).pending_balance_cents == 3000

    def test_requires_items(self, db):
        result = ReversalService.reverse_order_items([], reason="refund")

        assert result.error_code == "INVALID_ORDER_ITEMS"
