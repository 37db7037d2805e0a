"""
Tests for the earnings admin actions.
"""

import pytest
from django.contrib import admin
from django.test import RequestFactory

from earnings.models import (
    BalanceDiscrepancy,
    ClawbackDebt,
    OperatorAuditLog,
    ProcessedGatewayEvent,
    SellerAccount,
)
from earnings.state_machines import ClawbackStatus, GatewayEventStatus, OperatorAction
from earnings.tests.factories import (
    BalanceDiscrepancyFactory,
    ClawbackDebtFactory,
    ProcessedGatewayEventFactory,
)


@pytest.fixture
def admin_request(operator):
    request = RequestFactory().post("/admin/")
    request.user = operator
    return request


def model_admin(model, mocker):
    instance = admin.site._registry[model]
    mocker.patch.object(instance, "message_user")
    return instance


@pytest.mark.django_db
class TestAdminActions:
    def test_write_off_only_outstanding_debts(self, admin_request, mocker):
        debt_admin = model_admin(ClawbackDebt, mocker)
        outstanding = ClawbackDebtFactory()
        ClawbackDebtFactory(status=ClawbackStatus.RECOVERED, recovered_cents=3000)

        debt_admin.write_off(admin_request, ClawbackDebt.objects.all())

        assert ClawbackDebt.objects.get(pk=outstanding.pk).status == ClawbackStatus.WRITTEN_OFF
        debt_admin.message_user.assert_called_once_with(admin_request, "Wrote off 1 debts.")

    def test_retry_queues_failed_events_only(self, admin_request, mocker):
        event_admin = model_admin(ProcessedGatewayEvent, mocker)
        delay = mocker.patch("earnings.tasks.reprocess_gateway_event.delay")
        failed = ProcessedGatewayEventFactory(status=GatewayEventStatus.FAILED)
        ProcessedGatewayEventFactory(status=GatewayEventStatus.PROCESSED)

        event_admin.retry_events(admin_request, ProcessedGatewayEvent.objects.all())

        delay.assert_called_once_with(str(failed.pk))

    def test_mark_discrepancies_resolved(self, admin_request, mocker):
        discrepancy_admin = model_admin(BalanceDiscrepancy, mocker)
        discrepancy = BalanceDiscrepancyFactory()

        discrepancy_admin.mark_resolved(admin_request, BalanceDiscrepancy.objects.all())

        discrepancy.refresh_from_db()
        assert discrepancy.resolved is True
        assert discrepancy.resolved_at is not None

    def test_seller_accounts_cannot_be_deleted(self, admin_request):
        assert admin.site._registry[SellerAccount].has_delete_permission(admin_request) is False


@pytest.mark.django_db
class TestOperatorAuditLogAdmin:
    def test_is_read_only(self, admin_request, operator, seller, mocker):
        log_admin = model_admin(OperatorAuditLog, mocker)
        entry = OperatorAuditLog.record(
            operator,
            OperatorAction.SELLER_STATUS_CHANGED,
            seller,
            before={"status": "active"},
            after={"status": "suspended"},
            reason="Fraud",
        )

        assert log_admin.has_add_permission(admin_request) is False
        assert log_admin.has_change_permission(admin_request, entry) is False
        assert log_admin.has_delete_permission(admin_request, entry) is False
        assert "before" in log_admin.get_readonly_fields(admin_request, entry)
