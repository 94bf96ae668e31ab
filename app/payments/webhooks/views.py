"""
Webhook endpoints for payment providers.

Both endpoints are public (no session or token) and CSRF exempt; the
provider signature over the raw body is the only authentication. They
answer:
    200 - processed, or a duplicate delivery of a processed event
    400 - bad signature, malformed body or unsupported event type
    500 - handler failed; the provider is expected to redeliver

Usage:
    # In urls.py
    from payments.webhooks.views import stripe_webhook, toss_webhook

    urlpatterns = [
        path("webhooks/stripe/", stripe_webhook, name="stripe-webhook"),
        path("webhooks/toss/", toss_webhook, name="toss-webhook"),
    ]
"""

from __future__ import annotations

from django.http import HttpRequest, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from payments.state_machines import PaymentProvider
from payments.webhooks.ingestion import WebhookIngestionService


def _ingest(request: HttpRequest, provider: str) -> JsonResponse:
    result = WebhookIngestionService.ingest(provider, request.body, dict(request.headers))
    return JsonResponse(result.to_dict(), status=result.status_code)


@csrf_exempt
@require_POST
def stripe_webhook(request: HttpRequest) -> JsonResponse:
    """
    Handle Stripe webhook deliveries.

    Verified with the Stripe-Signature header against
    STRIPE_WEBHOOK_SECRET.
    """
    return _ingest(request, PaymentProvider.STRIPE)


@csrf_exempt
@require_POST
def toss_webhook(request: HttpRequest) -> JsonResponse:
    """
    Handle Toss Payments webhook deliveries.

    Verified with the Toss-Signature header (HMAC-SHA256 over the raw
    body with TOSS_WEBHOOK_SECRET).
    """
    return _ingest(request, PaymentProvider.TOSS)
