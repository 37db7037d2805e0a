"""
Webhook handling for PayPal events.

Events are verified with PayPal, stored idempotently by event id and
applied through guarded transitions, so duplicated and reordered
deliveries are harmless.

Usage:
    # In urls.py
    from earnings.webhooks.views import paypal_payouts_webhook

    urlpatterns = [
        path("webhooks/paypal/payouts/", paypal_payouts_webhook),
    ]
"""

from earnings.webhooks.handlers import dispatch, process_gateway_event, register_handler
from earnings.webhooks.views import paypal_checkout_webhook, paypal_payouts_webhook

__all__ = [
    "dispatch",
    "paypal_checkout_webhook",
    "paypal_payouts_webhook",
    "process_gateway_event",
    "register_handler",
]
