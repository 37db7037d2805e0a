"""
Signals sent by the earnings app.

order_access_revoked:
    Sent after a refund or chargeback reversed order lines. The order
    subsystem listens and removes the buyer's access to the goods.

    kwargs:
        order_id: str
        order_item_ids: list[str]
        reason: str

Usage:
    from django.dispatch import receiver
    from earnings.signals import order_access_revoked

    @receiver(order_access_revoked)
    def revoke_downloads(sender, order_id, order_item_ids, reason, **kwargs):
        ...
"""

from django.dispatch import Signal

order_access_revoked = Signal()
