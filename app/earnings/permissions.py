"""
Role checks for earnings endpoints and services.

Identity comes from Django auth. A seller is a user with a SellerAccount;
an operator is a staff user.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rest_framework.permissions import BasePermission

if TYPE_CHECKING:
    from typing import Any


def is_operator(user: Any) -> bool:
    return bool(user is not None and user.is_authenticated and user.is_staff)


def get_seller_account(user: Any):
    """The user's SellerAccount, or None."""
    if user is None or not user.is_authenticated:
        return None
    from earnings.models import SellerAccount

    return SellerAccount.objects.filter(user=user).first()


class IsSeller(BasePermission):
    message = "Only sellers can access this endpoint."

    def has_permission(self, request, view) -> bool:
        return get_seller_account(request.user) is not None


class IsOperator(BasePermission):
    message = "Only operators can perform this action."

    def has_permission(self, request, view) -> bool:
        return is_operator(request.user)
