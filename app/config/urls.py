"""
Root URL configuration.

URL Structure:
    /                              - ReDoc API documentation
    /schema/                       - OpenAPI schema
    /admin/                        - Django admin
    /health/                       - Health check
    /api/v1/earnings/              - Seller earnings and payouts
        account/                   - Seller balance summary (GET)
        earnings/                  - Seller earnings (GET)
        payouts/                   - Seller payout requests (GET, POST)
        payouts/process/           - Operator: submit a request to PayPal (POST)
        payouts/{id}/fail/         - Operator: fail a pending request (POST)
        payouts/{id}/sync/         - Operator: query PayPal for the outcome (POST)
        sellers/{id}/status/       - Operator: suspend / lock / reactivate (POST)
        webhooks/paypal/payouts/   - PayPal payouts webhook (POST)
        webhooks/paypal/checkout/  - PayPal checkout (refund) webhook (POST)
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView

from core.views import health_check

api_v1_patterns = [
    path("earnings/", include("earnings.urls")),
]

urlpatterns = [
    path("", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
    path("admin/", admin.site.urls),
    path("health/", health_check, name="health_check"),
    path("api/v1/", include(api_v1_patterns)),
]

admin.site.site_header = "Seller Earnings Admin"
admin.site.site_title = "Seller Earnings"
admin.site.index_title = "Ledger, payouts and gateway events"
