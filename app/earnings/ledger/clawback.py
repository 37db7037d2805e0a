"""
Clawback debt recovery policies.

A reversal that cannot take an earning's net amount from the seller's
balances records a ClawbackDebt. The active policy decides how that debt is
settled when the seller's next earnings are released.

Policies:
    future_earnings: deduct outstanding debt (oldest first) from each
        released earning before it is credited to available
    manual: leave debts alone; an operator writes them off or settles
        them outside the system

Select with the CLAWBACK_RECOVERY_POLICY setting.

Usage:
    policy = get_recovery_policy()
    recovered = policy.recover(seller, earning.net_amount_cents)
    credit = earning.net_amount_cents - recovered
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

from earnings.models import ClawbackDebt
from earnings.state_machines import ClawbackStatus

if TYPE_CHECKING:
    from earnings.models import SellerAccount

logger = logging.getLogger(__name__)


class ClawbackRecoveryPolicy:
    """Base policy. ``recover`` runs with the seller row already locked."""

    name: str = ""

    def recover(self, seller: SellerAccount, available_cents: int) -> int:
        """
        Settle debt out of ``available_cents`` that is about to be credited.

        Returns:
            Cents taken for debt recovery (0 <= result <= available_cents)
        """
        raise NotImplementedError


class FutureEarningsRecovery(ClawbackRecoveryPolicy):
    name = "future_earnings"

    def recover(self, seller: SellerAccount, available_cents: int) -> int:
        remaining = available_cents
        debts = (
            ClawbackDebt.objects.select_for_update()
            .filter(seller=seller, status=ClawbackStatus.OUTSTANDING)
            .order_by("created_at")
        )
        for debt in debts:
            if remaining <= 0:
                break
            take = min(debt.outstanding_cents, remaining)
            debt.recover(take)
            debt.save(update_fields=["recovered_cents", "status", "resolved_at", "updated_at"])
            remaining -= take
            logger.info(
                f"Recovered {take} cents of clawback debt {debt.id}",
                extra={
                    "seller_id": str(seller.id),
                    "debt_id": str(debt.id),
                    "recovered_cents": take,
                    "outstanding_cents": debt.outstanding_cents,
                },
            )
        return available_cents - remaining


class ManualRecovery(ClawbackRecoveryPolicy):
    name = "manual"

    def recover(self, seller: SellerAccount, available_cents: int) -> int:
        return 0


_POLICIES: dict[str, type[ClawbackRecoveryPolicy]] = {
    FutureEarningsRecovery.name: FutureEarningsRecovery,
    ManualRecovery.name: ManualRecovery,
}


def get_recovery_policy(name: str | None = None) -> ClawbackRecoveryPolicy:
    """
    Instantiate the configured policy.

    Raises:
        ImproperlyConfigured: Unknown policy name
    """
    name = name or settings.CLAWBACK_RECOVERY_POLICY
    try:
        return _POLICIES[name]()
    except KeyError:
        raise ImproperlyConfigured(
            f"Unknown CLAWBACK_RECOVERY_POLICY '{name}'. "
            f"Choose one of: {', '.join(sorted(_POLICIES))}"
        )
