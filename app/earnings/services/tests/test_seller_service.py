"""Tests for SellerAccountService."""

import uuid

import pytest

from earnings.models import OperatorAuditLog, SellerAccount
from earnings.services import SellerAccountService
from earnings.state_machines import OperatorAction, SellerStatus
from earnings.tests.factories import UserFactory


@pytest.mark.django_db
class TestGetOrCreateForUser:
    def test_creates_once(self, user, settings):
        settings.PAYOUT_CURRENCY = "usd"

        first = SellerAccountService.get_or_create_for_user(user, "me@paypal.example.com")
        second = SellerAccountService.get_or_create_for_user(user, "other@paypal.example.com")

        assert first.pk == second.pk
        assert second.payout_email == "me@paypal.example.com"
        assert first.status == SellerStatus.ACTIVE
        assert first.available_balance_cents == 0

    def test_blank_email_stored_as_null(self, user):
        account = SellerAccountService.get_or_create_for_user(user, "")

        assert account.payout_email is None
        assert account.has_payout_destination is False


@pytest.mark.django_db
class TestSetStatus:
    def test_suspend(self, seller, operator):
        result = SellerAccountService.set_status(
            seller.pk, SellerStatus.SUSPENDED, "Fraud investigation", operator
        )

        assert result.success is True
        assert result.data.status == SellerStatus.SUSPENDED
        assert result.data.status_reason == "Fraud investigation"
        assert result.data.version == seller.version + 1

    def test_records_operator_audit_entry(self, seller, operator):
        SellerAccountService.set_status(
            seller.pk, SellerStatus.SUSPENDED, "Fraud investigation", operator
        )

        entry = OperatorAuditLog.objects.get()
        assert entry.operator == operator
        assert entry.action == OperatorAction.SELLER_STATUS_CHANGED
        assert entry.entity_type == "selleraccount"
        assert entry.entity_id == str(seller.pk)
        assert entry.before == {"status": "active", "status_reason": seller.status_reason}
        assert entry.after == {"status": "suspended", "status_reason": "Fraud investigation"}
        assert entry.reason == "Fraud investigation"

    def test_stale_version_is_not_audited(self, seller, operator):
        result = SellerAccountService.set_status(
            seller.pk,
            SellerStatus.SUSPENDED,
            "Fraud",
            operator,
            expected_version=seller.version + 5,
        )

        assert result.success is False
        assert not OperatorAuditLog.objects.exists()

    def test_reactivate_without_reason(self, seller, operator):
        SellerAccount.objects.filter(pk=seller.pk).update(status=SellerStatus.PAYOUTS_LOCKED)

        result = SellerAccountService.set_status(seller.pk, SellerStatus.ACTIVE, "", operator)

        assert result.success is True
        assert result.data.status == SellerStatus.ACTIVE

    def test_requires_operator(self, seller):
        result = SellerAccountService.set_status(
            seller.pk, SellerStatus.SUSPENDED, "Fraud", UserFactory()
        )

        assert result.error_code == "NOT_AUTHORIZED"

    def test_invalid_status(self, seller, operator):
        result = SellerAccountService.set_status(seller.pk, "banned", "Fraud", operator)

        assert result.error_code == "INVALID_STATUS"

    def test_freeze_requires_reason(self, seller, operator):
        result = SellerAccountService.set_status(seller.pk, SellerStatus.SUSPENDED, " ", operator)

        assert result.error_code == "REASON_REQUIRED"

    def test_unknown_seller(self, operator):
        result = SellerAccountService.set_status(
            uuid.uuid4(), SellerStatus.SUSPENDED, "Fraud", operator
        )

        assert result.error_code == "SELLER_NOT_FOUND"

    def test_unknown_seller_with_version(self, operator):
        result = SellerAccountService.set_status(
            uuid.uuid4(), SellerStatus.SUSPENDED, "Fraud", operator, expected_version=1
        )

        assert result.error_code == "SELLER_NOT_FOUND"

    def test_expected_version_matches(self, seller, operator):
        result = SellerAccountService.set_status(
            seller.pk, SellerStatus.SUSPENDED, "Fraud", operator, expected_version=seller.version
        )

        assert result.success is True

    def test_stale_version(self, seller, operator):
        SellerAccountService.update_payout_email(seller, "new@paypal.example.com")

        result = SellerAccountService.set_status(
            seller.pk, SellerStatus.SUSPENDED, "Fraud", operator, expected_version=seller.version
        )

        assert result.error_code == "STALE_RECORD"
        assert SellerAccount.objects.get(pk=seller.pk).status == SellerStatus.ACTIVE


@pytest.mark.django_db
class TestUpdatePayoutEmail:
    def test_updates(self, seller):
        result = SellerAccountService.update_payout_email(seller, "new@paypal.example.com")

        assert result.success is True
        assert result.data.payout_email == "new@paypal.example.com"

    @pytest.mark.parametrize("email", ["", "not-an-email", "a@"])
    def test_rejects_invalid(self, seller, email):
        result = SellerAccountService.update_payout_email(seller, email)

        assert result.error_code == "INVALID_PAYOUT_EMAIL"
        assert SellerAccount.objects.get(pk=seller.pk).payout_email == seller.payout_email
