"""
Tests for earnings models.

Covers field defaults, database constraints, properties and the
non-saving helpers on the event, debt and discrepancy models.
"""

from datetime import timedelta

import pytest
from django.db import IntegrityError, transaction
from django.utils import timezone

from earnings.models import SellerAccount
from earnings.state_machines import (
    ClawbackStatus,
    EarningStatus,
    GatewayEventStatus,
    PayoutRequestStatus,
    SellerStatus,
)
from earnings.tests.factories import (
    BalanceDiscrepancyFactory,
    ClawbackDebtFactory,
    EarningFactory,
    PayoutRequestFactory,
    ProcessedGatewayEventFactory,
    SellerAccountFactory,
)


@pytest.mark.django_db
class TestSellerAccount:
    def test_defaults(self):
        seller = SellerAccountFactory()

        assert seller.status == SellerStatus.ACTIVE
        assert seller.available_balance_cents == 0
        assert seller.pending_balance_cents == 0
        assert seller.total_earnings_cents == 0
        assert seller.version == 1
        assert seller.can_request_payouts is True

    def test_has_payout_destination(self):
        assert SellerAccountFactory().has_payout_destination is True
        assert SellerAccountFactory(payout_email=None).has_payout_destination is False

    def test_available_balance_cannot_go_negative(self):
        seller = SellerAccountFactory()

        with pytest.raises(IntegrityError):
            with transaction.atomic():
                SellerAccount.objects.filter(pk=seller.pk).update(available_balance_cents=-1)

    def test_pending_balance_cannot_go_negative(self):
        seller = SellerAccountFactory()

        with pytest.raises(IntegrityError):
            with transaction.atomic():
                SellerAccount.objects.filter(pk=seller.pk).update(pending_balance_cents=-1)

    def test_save_bumps_version(self):
        seller = SellerAccountFactory()

        seller.payout_email = "new@example.com"
        seller.save()

        assert seller.version == 2
        assert SellerAccount.objects.get(pk=seller.pk).version == 2

    def test_frozen_seller_cannot_request_payouts(self):
        seller = SellerAccountFactory(status=SellerStatus.PAYOUTS_LOCKED)

        assert seller.can_request_payouts is False


@pytest.mark.django_db
class TestEarning:
    def test_defaults(self):
        earning = EarningFactory()

        assert earning.status == EarningStatus.ESCROW
        assert earning.platform_fee_cents == 1000
        assert earning.net_amount_cents == 9000
        assert earning.paid_at is None

    def test_order_item_is_unique(self):
        earning = EarningFactory()

        with pytest.raises(IntegrityError):
            with transaction.atomic():
                EarningFactory(order_item_id=earning.order_item_id)

    def test_net_must_equal_gross_minus_fee(self):
        with pytest.raises(IntegrityError):
            with transaction.atomic():
                EarningFactory(gross_amount_cents=10000, platform_fee_cents=1000, net_amount_cents=9500)

    def test_gross_must_be_positive(self):
        with pytest.raises(IntegrityError):
            with transaction.atomic():
                EarningFactory(gross_amount_cents=0, platform_fee_cents=0, net_amount_cents=0)

    def test_is_release_due(self):
        due = EarningFactory(release_date=timezone.now() - timedelta(minutes=1))
        not_due = EarningFactory(release_date=timezone.now() + timedelta(days=1))

        assert due.is_release_due is True
        assert not_due.is_release_due is False

    def test_is_reversed(self):
        earning = EarningFactory(status=EarningStatus.REVERSED)

        assert earning.is_reversed is True
        assert earning.is_release_due is False
        assert EarningFactory().is_reversed is False


@pytest.mark.django_db
class TestPayoutRequest:
    def test_defaults(self):
        payout_request = PayoutRequestFactory()

        assert payout_request.status == PayoutRequestStatus.PENDING
        assert payout_request.attempt_count == 0
        assert payout_request.gateway_batch_id is None
        assert payout_request.is_outstanding is True
        assert payout_request.can_process is True

    def test_amount_must_be_positive(self):
        with pytest.raises(IntegrityError):
            with transaction.atomic():
                PayoutRequestFactory(amount_cents=0)

    def test_str_shows_amount(self):
        payout_request = PayoutRequestFactory(amount_cents=2550)

        assert "25.50 USD" in str(payout_request)

    def test_sender_item_id_names_the_attempt(self):
        payout_request = PayoutRequestFactory()
        payout_request.submit()

        assert payout_request.sender_item_id == f"{payout_request.id}:1"


@pytest.mark.django_db
class TestProcessedGatewayEvent:
    def test_mark_processing_counts_attempts(self):
        event = ProcessedGatewayEventFactory()

        event.mark_processing()
        event.mark_processing()

        assert event.status == GatewayEventStatus.PROCESSING
        assert event.retry_count == 2

    def test_mark_processed_clears_error(self):
        event = ProcessedGatewayEventFactory(error_message="boom")

        event.mark_processed("processing->completed")

        assert event.is_processed is True
        assert event.outcome == "processing->completed"
        assert event.error_message is None
        assert event.processed_at is not None

    def test_outcome_is_truncated(self):
        event = ProcessedGatewayEventFactory()

        event.mark_processed("x" * 400)

        assert len(event.outcome) == 255

    def test_can_retry_respects_limit(self, settings):
        settings.MAX_WEBHOOK_RETRIES = 3
        event = ProcessedGatewayEventFactory(status=GatewayEventStatus.FAILED, retry_count=2)
        exhausted = ProcessedGatewayEventFactory(status=GatewayEventStatus.FAILED, retry_count=3)

        assert event.can_retry is True
        assert exhausted.can_retry is False

    def test_gateway_event_id_is_unique(self):
        event = ProcessedGatewayEventFactory()

        with pytest.raises(IntegrityError):
            with transaction.atomic():
                ProcessedGatewayEventFactory(gateway_event_id=event.gateway_event_id)


@pytest.mark.django_db
class TestClawbackDebt:
    def test_partial_recovery_stays_outstanding(self):
        debt = ClawbackDebtFactory(amount_cents=3000)

        debt.recover(1000)

        assert debt.recovered_cents == 1000
        assert debt.outstanding_cents == 2000
        assert debt.status == ClawbackStatus.OUTSTANDING

    def test_full_recovery_resolves(self):
        debt = ClawbackDebtFactory(amount_cents=3000)

        debt.recover(3000)

        assert debt.status == ClawbackStatus.RECOVERED
        assert debt.resolved_at is not None

    def test_write_off(self):
        debt = ClawbackDebtFactory()

        debt.write_off()

        assert debt.status == ClawbackStatus.WRITTEN_OFF
        assert debt.outstanding_cents == debt.amount_cents

    def test_recovered_cannot_exceed_amount(self):
        with pytest.raises(IntegrityError):
            with transaction.atomic():
                ClawbackDebtFactory(amount_cents=1000, recovered_cents=1500)


@pytest.mark.django_db
class TestBalanceDiscrepancy:
    def test_resolve(self):
        discrepancy = BalanceDiscrepancyFactory()

        discrepancy.resolve("Manual adjustment after support ticket")

        assert discrepancy.resolved is True
        assert discrepancy.resolved_at is not None
        assert discrepancy.resolution_notes.startswith("Manual")
