"""
Pytest fixtures shared by every earnings test package.

Redis is replaced for the whole app: DistributedLock gets a MagicMock
client that always grants the lock. Tests that exercise contention
configure ``mock_redis.set`` themselves.

Usage:
    def test_withdraw(funded_seller):
        seller = funded_seller(available_cents=9000)
        result = PayoutRequestService.request_payout(seller, 5000)
"""

import uuid
from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from django.utils import timezone

from earnings.adapters import PayoutBatchDetails, PayoutBatchResult, PayoutItemStatus
from earnings.ledger import LedgerService
from earnings.models import SellerAccount
from earnings.services import PayoutProcessor
from earnings.tests.factories import OperatorFactory, SellerAccountFactory, UserFactory


# =============================================================================
# Redis
# =============================================================================


@pytest.fixture(autouse=True)
def mock_redis(mocker):
    """MagicMock Redis client behind every DistributedLock."""
    mock_client = mocker.MagicMock()
    mock_client.set.return_value = True
    mock_client.get.return_value = None
    mock_client.eval.return_value = 1
    mocker.patch("earnings.locks.get_redis_connection", return_value=mock_client)
    return mock_client


# =============================================================================
# Users and Sellers
# =============================================================================


@pytest.fixture
def user(db):
    return UserFactory()


@pytest.fixture
def operator(db):
    """Staff user."""
    return OperatorFactory()


@pytest.fixture
def seller(db):
    """Active seller with a payout email and no balance."""
    return SellerAccountFactory()


@pytest.fixture
def funded_seller(db):
    """
    Build a seller whose balances come from real ledger operations.

    Returns a callable: funded_seller(available_cents=..., pending_cents=...)
    records and releases earnings with a 0% fee so the amounts are exact.
    """

    def _make(available_cents=0, pending_cents=0, seller=None):
        seller = seller or SellerAccountFactory()
        if available_cents:
            earning = LedgerService.record_earning(
                seller=seller,
                order_id=f"ord_{uuid.uuid4().hex[:12]}",
                order_item_id=f"item_{uuid.uuid4().hex[:12]}",
                gross_amount_cents=available_cents,
                fee_rate=0,
                capture_id=f"CAP-AVAIL-{seller.pk.hex[:8]}",
            )
            LedgerService.release(earning.id, now=timezone.now() + timedelta(days=365))
        if pending_cents:
            LedgerService.record_earning(
                seller=seller,
                order_id=f"ord_{uuid.uuid4().hex[:12]}",
                order_item_id=f"item_{uuid.uuid4().hex[:12]}",
                gross_amount_cents=pending_cents,
                fee_rate=0,
                capture_id=f"CAP-PEND-{seller.pk.hex[:8]}",
            )
        return SellerAccount.objects.get(pk=seller.pk)

    return _make


# =============================================================================
# Gateway
# =============================================================================


@pytest.fixture
def batch_details():
    """Build a one-item PayoutBatchDetails, as get_payout_batch returns it."""

    def _make(batch_id, sender_item_id, transaction_status, **item_fields):
        item = PayoutItemStatus(
            payout_item_id=item_fields.pop("payout_item_id", "ITEM-1"),
            transaction_status=transaction_status,
            sender_item_id=sender_item_id,
            transaction_id=item_fields.pop("transaction_id", None),
            errors=item_fields.pop("errors", {}),
        )
        return PayoutBatchDetails(
            batch_id=batch_id,
            batch_status=item_fields.pop("batch_status", "SUCCESS"),
            items=[item],
        )

    return _make


@pytest.fixture
def mock_gateway():
    """
    Replace the PayPal adapter used by PayoutProcessor and the webhook views.

    create_payout_batch answers with batch "BATCH-1"; webhook signatures
    verify.
    """
    adapter = MagicMock()
    adapter.create_payout_batch.side_effect = lambda params, trace_id=None: PayoutBatchResult(
        batch_id="BATCH-1",
        batch_status="PENDING",
        sender_batch_id=params.sender_batch_id,
        raw_response={"batch_header": {"payout_batch_id": "BATCH-1"}},
    )
    adapter.verify_webhook_signature.return_value = True
    PayoutProcessor.set_gateway_adapter(adapter)
    yield adapter
    PayoutProcessor.set_gateway_adapter(None)
