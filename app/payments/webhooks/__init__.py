"""
Webhook handling for payment events from Stripe and Toss.

Deliveries are verified and normalized by the provider adapter, stored
idempotently on (provider, event_id) and applied synchronously, so the
provider's response reflects whether the event took effect.

Usage:
    # In urls.py
    from payments.webhooks.views import stripe_webhook, toss_webhook

    urlpatterns = [
        path("webhooks/stripe/", stripe_webhook, name="stripe-webhook"),
        path("webhooks/toss/", toss_webhook, name="toss-webhook"),
    ]
"""

from payments.webhooks.handlers import dispatch_webhook, register_handler
from payments.webhooks.ingestion import IngestionResult, WebhookIngestionService

__all__ = [
    "IngestionResult",
    "WebhookIngestionService",
    "dispatch_webhook",
    "register_handler",
]
