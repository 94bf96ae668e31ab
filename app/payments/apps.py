"""
Payments app configuration.

This app provides the marketplace money movement:
- Checkout over Stripe and Toss Payments
- Idempotent provider webhook ingestion
- Refunds, monthly settlements and payouts
- Subscription plans and proration
"""

from django.apps import AppConfig


class PaymentsConfig(AppConfig):
    """Configuration for the payments application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "payments"
    verbose_name = "Payments"
