"""
Earnings app configuration.
"""

from django.apps import AppConfig


class EarningsConfig(AppConfig):
    """Configuration for the earnings application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "earnings"
    verbose_name = "Seller Earnings"

    def ready(self) -> None:
        # Importing the handler registries validates that every gateway
        # event kind has a handler.
        from earnings.webhooks import handlers  # noqa: F401
