"""
State enums for earnings models.
"""

from earnings.state_machines.states import (
    ClawbackStatus,
    EarningStatus,
    GatewayEventSource,
    GatewayEventStatus,
    OperatorAction,
    PayoutRequestStatus,
    SellerStatus,
)

__all__ = [
    "ClawbackStatus",
    "EarningStatus",
    "GatewayEventSource",
    "GatewayEventStatus",
    "OperatorAction",
    "PayoutRequestStatus",
    "SellerStatus",
]
