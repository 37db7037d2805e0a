"""
Earnings admin configuration.

Balances and states are read-only here; they change only through the
ledger and payout services. Operator actions that have a service
(writing off clawback debt, retrying a failed gateway event) are exposed
as admin actions that call it.
"""

from django.contrib import admin
from django.utils import timezone

from earnings.ledger import LedgerService
from earnings.models import (
    BalanceDiscrepancy,
    ClawbackDebt,
    Earning,
    OperatorAuditLog,
    PayoutRequest,
    ProcessedGatewayEvent,
    SellerAccount,
)
from earnings.state_machines import ClawbackStatus, GatewayEventStatus


def _money(cents: int, currency: str) -> str:
    return f"${cents / 100:.2f} {currency.upper()}"


@admin.register(SellerAccount)
class SellerAccountAdmin(admin.ModelAdmin):
    """
    Admin configuration for SellerAccount.

    Use the operator API (sellers/<id>/status/) to suspend or reactivate.
    """

    list_display = [
        "id",
        "user",
        "status",
        "available_display",
        "pending_display",
        "payout_email",
        "created_at",
    ]
    list_filter = ["status", "currency"]
    search_fields = ["id", "user__email", "payout_email"]
    readonly_fields = [
        "id",
        "user",
        "status",
        "status_reason",
        "available_balance_cents",
        "pending_balance_cents",
        "total_earnings_cents",
        "currency",
        "version",
        "created_at",
        "updated_at",
    ]
    ordering = ["-created_at"]

    fieldsets = (
        (None, {"fields": ("id", "user", "payout_email")}),
        ("Status", {"fields": ("status", "status_reason")}),
        (
            "Balances",
            {
                "fields": (
                    "available_balance_cents",
                    "pending_balance_cents",
                    "total_earnings_cents",
                    "currency",
                    "version",
                ),
            },
        ),
        ("Timestamps", {"fields": ("created_at", "updated_at")}),
    )

    @admin.display(description="Available")
    def available_display(self, obj: SellerAccount) -> str:
        return _money(obj.available_balance_cents, obj.currency)

    @admin.display(description="Pending")
    def pending_display(self, obj: SellerAccount) -> str:
        return _money(obj.pending_balance_cents, obj.currency)

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for seller accounts (audit trail)."""
        return False


@admin.register(Earning)
class EarningAdmin(admin.ModelAdmin):
    """Admin configuration for Earning (read-only)."""

    list_display = [
        "id",
        "seller",
        "order_item_id",
        "net_display",
        "status",
        "release_date",
        "created_at",
    ]
    list_filter = ["status", "currency", "release_date"]
    search_fields = ["id", "order_id", "order_item_id", "capture_id"]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    def get_readonly_fields(self, request, obj=None):
        return [field.name for field in self.model._meta.fields]

    @admin.display(description="Net")
    def net_display(self, obj: Earning) -> str:
        return _money(obj.net_amount_cents, obj.currency)

    def has_add_permission(self, request) -> bool:
        """Earnings are recorded by the order subsystem."""
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


@admin.register(PayoutRequest)
class PayoutRequestAdmin(admin.ModelAdmin):
    """
    Admin configuration for PayoutRequest.

    Processing, failing and syncing are operator API actions.
    """

    list_display = [
        "id",
        "seller",
        "amount_display",
        "status",
        "attempt_count",
        "gateway_batch_id",
        "created_at",
    ]
    list_filter = ["status", "currency", "created_at"]
    search_fields = ["id", "gateway_batch_id", "gateway_transaction_id", "payout_email"]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    fieldsets = (
        (None, {"fields": ("id", "seller", "amount_cents", "currency", "payout_email", "status")}),
        (
            "Gateway",
            {
                "fields": (
                    "attempt_count",
                    "gateway_batch_id",
                    "gateway_item_id",
                    "gateway_transaction_id",
                    "failure_reason",
                    "processed_by",
                ),
            },
        ),
        (
            "Gateway Response",
            {"fields": ("gateway_response",), "classes": ("collapse",)},
        ),
        (
            "Timestamps",
            {"fields": ("submitted_at", "completed_at", "failed_at", "created_at", "updated_at")},
        ),
    )

    def get_readonly_fields(self, request, obj=None):
        return [field.name for field in self.model._meta.fields]

    @admin.display(description="Amount")
    def amount_display(self, obj: PayoutRequest) -> str:
        return _money(obj.amount_cents, obj.currency)

    def has_add_permission(self, request) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


@admin.register(ProcessedGatewayEvent)
class ProcessedGatewayEventAdmin(admin.ModelAdmin):
    """
    Admin configuration for ProcessedGatewayEvent.

    Events are immutable once received; failed ones can be re-queued.
    """

    list_display = [
        "id",
        "gateway_event_id",
        "source",
        "event_type",
        "status",
        "outcome",
        "retry_count",
        "created_at",
    ]
    list_filter = ["source", "status", "event_kind", "created_at"]
    search_fields = ["id", "gateway_event_id", "event_type", "resource_id"]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]
    actions = ["retry_events"]

    def get_readonly_fields(self, request, obj=None):
        return [field.name for field in self.model._meta.fields]

    @admin.action(description="Retry selected failed events")
    def retry_events(self, request, queryset):
        from earnings.tasks import reprocess_gateway_event

        failed = queryset.filter(status=GatewayEventStatus.FAILED)
        count = 0
        for event in failed:
            reprocess_gateway_event.delay(str(event.pk))
            count += 1
        self.message_user(request, f"Queued {count} events for retry.")

    def has_add_permission(self, request) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for gateway events (audit trail)."""
        return False


@admin.register(ClawbackDebt)
class ClawbackDebtAdmin(admin.ModelAdmin):
    """Admin configuration for ClawbackDebt."""

    list_display = [
        "id",
        "seller",
        "earning",
        "amount_cents",
        "recovered_cents",
        "status",
        "created_at",
    ]
    list_filter = ["status", "created_at"]
    search_fields = ["id", "seller__user__email", "earning__order_item_id"]
    ordering = ["-created_at"]
    actions = ["write_off"]

    def get_readonly_fields(self, request, obj=None):
        return [field.name for field in self.model._meta.fields]

    @admin.action(description="Write off selected outstanding debts")
    def write_off(self, request, queryset):
        count = 0
        for debt_id in queryset.filter(status=ClawbackStatus.OUTSTANDING).values_list(
            "pk", flat=True
        ):
            if LedgerService.write_off_debt(debt_id).applied:
                count += 1
        self.message_user(request, f"Wrote off {count} debts.")

    def has_add_permission(self, request) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


@admin.register(BalanceDiscrepancy)
class BalanceDiscrepancyAdmin(admin.ModelAdmin):
    """Admin configuration for BalanceDiscrepancy records from the balance audit."""

    list_display = [
        "id",
        "seller",
        "expected_cents",
        "actual_cents",
        "difference_cents",
        "resolved",
        "created_at",
    ]
    list_filter = ["resolved", "created_at"]
    search_fields = ["id", "seller__user__email"]
    readonly_fields = [
        "id",
        "seller",
        "expected_cents",
        "actual_cents",
        "difference_cents",
        "details",
        "resolved",
        "resolved_at",
        "created_at",
        "updated_at",
    ]
    ordering = ["-created_at"]
    actions = ["mark_resolved"]

    @admin.action(description="Mark selected discrepancies as resolved")
    def mark_resolved(self, request, queryset):
        count = queryset.filter(resolved=False).update(
            resolved=True,
            resolved_at=timezone.now(),
        )
        self.message_user(request, f"Marked {count} discrepancies as resolved.")

    def has_add_permission(self, request) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


@admin.register(OperatorAuditLog)
class OperatorAuditLogAdmin(admin.ModelAdmin):
    """Operator actions, read-only."""

    list_display = ["created_at", "operator", "action", "entity_type", "entity_id", "reason"]
    list_filter = ["action", "entity_type", "created_at"]
    search_fields = ["entity_id", "operator__email", "reason"]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    def get_readonly_fields(self, request, obj=None):
        return [field.name for field in self.model._meta.fields]

    def has_add_permission(self, request) -> bool:
        return False

    def has_change_permission(self, request, obj=None) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False
