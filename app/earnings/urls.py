"""
URL configuration for the earnings app.

All routes are prefixed with /api/v1/earnings/ when included in the main URLconf.

Usage:
    # In config/urls.py
    api_v1_patterns = [
        path("earnings/", include("earnings.urls")),
    ]
"""

from django.urls import path

from earnings import views
from earnings.webhooks.views import paypal_checkout_webhook, paypal_payouts_webhook

app_name = "earnings"

urlpatterns = [
    # Seller
    path("account/", views.SellerAccountView.as_view(), name="account"),
    path("earnings/", views.EarningListView.as_view(), name="earning_list"),
    path("payouts/", views.PayoutRequestListCreateView.as_view(), name="payout_list"),
    # Operator
    path("payouts/process/", views.ProcessPayoutView.as_view(), name="payout_process"),
    path("payouts/<uuid:request_id>/fail/", views.FailPayoutView.as_view(), name="payout_fail"),
    path("payouts/<uuid:request_id>/sync/", views.SyncPayoutView.as_view(), name="payout_sync"),
    path(
        "sellers/<uuid:seller_id>/status/",
        views.SellerStatusView.as_view(),
        name="seller_status",
    ),
    # Webhook endpoints
    path("webhooks/paypal/payouts/", paypal_payouts_webhook, name="paypal_payouts_webhook"),
    path("webhooks/paypal/checkout/", paypal_checkout_webhook, name="paypal_checkout_webhook"),
]
