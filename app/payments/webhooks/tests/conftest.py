"""
Pytest fixtures for webhook tests.

Provides signed Stripe and Toss deliveries, orders waiting on those
deliveries, and a Django test client for the public endpoints.
"""

import json
from typing import Any

import pytest
from django.test import Client

from authentication.tests.factories import SellerFactory, UserFactory
from payments.adapters.tests.conftest import (
    STRIPE_WEBHOOK_SECRET,
    TOSS_WEBHOOK_SECRET,
    sign_stripe_payload,
    sign_toss_payload,
)
from payments.state_machines import PaymentProvider
from payments.tests.factories import (
    OrderFactory,
    PaidOrderFactory,
    PaymentFactory,
    ProductFactory,
)


@pytest.fixture(autouse=True)
def webhook_settings(settings):
    settings.STRIPE_SECRET_KEY = "sk_test_123"
    settings.STRIPE_WEBHOOK_SECRET = STRIPE_WEBHOOK_SECRET
    settings.TOSS_SECRET_KEY = "test_sk_toss"
    settings.TOSS_WEBHOOK_SECRET = TOSS_WEBHOOK_SECRET
    settings.PLATFORM_FEE_PERCENT = 15
    settings.MAX_WEBHOOK_RETRIES = 5
    return settings


# =============================================================================
# Order Fixtures
# =============================================================================


@pytest.fixture
def buyer(db):
    return UserFactory()


@pytest.fixture
def seller(db):
    """NEW tier seller (20% platform fee)."""
    return SellerFactory()


@pytest.fixture
def pending_order(buyer, seller):
    """10000 usd order waiting on Stripe intent pi_webhook_123."""
    order = OrderFactory(buyer=buyer, product=ProductFactory(seller=seller))
    PaymentFactory(order=order, provider_payment_id="pi_webhook_123")
    return order


@pytest.fixture
def pending_toss_order(buyer, seller):
    """15000 krw order waiting on Toss payment tgen_webhook_123."""
    order = OrderFactory(
        buyer=buyer,
        product=ProductFactory(seller=seller, price=15000, currency="krw"),
    )
    PaymentFactory(
        order=order,
        provider=PaymentProvider.TOSS,
        provider_payment_id="tgen_webhook_123",
    )
    return order


@pytest.fixture
def paid_order(buyer, seller):
    """PAID 10000 usd order (fee 2000) on Stripe intent pi_paid_webhook."""
    return PaidOrderFactory(
        buyer=buyer,
        product=ProductFactory(seller=seller),
        payment__provider_payment_id="pi_paid_webhook",
    )


# =============================================================================
# Delivery Builders
# =============================================================================


@pytest.fixture
def stripe_delivery():
    """
    Build a signed Stripe delivery.

    Usage:
        body, headers = stripe_delivery("payment_intent.succeeded", intent)
    """

    def _create(
        event_type: str,
        obj: dict[str, Any],
        event_id: str = "evt_webhook_123",
        secret: str = STRIPE_WEBHOOK_SECRET,
    ) -> tuple[bytes, dict[str, str]]:
        body = json.dumps(
            {"id": event_id, "object": "event", "type": event_type, "data": {"object": obj}}
        ).encode()
        return body, {"Stripe-Signature": sign_stripe_payload(body, secret)}

    return _create


@pytest.fixture
def toss_delivery():
    """Build a signed Toss delivery."""

    def _create(
        event_type: str,
        data: dict[str, Any],
        secret: str = TOSS_WEBHOOK_SECRET,
    ) -> tuple[bytes, dict[str, str]]:
        body = json.dumps(
            {"eventType": event_type, "createdAt": "2026-09-14T10:00:00+09:00", "data": data}
        ).encode()
        return body, {"Toss-Signature": sign_toss_payload(body, secret)}

    return _create


@pytest.fixture
def succeeded_intent():
    """payment_intent.succeeded object for pending_order."""

    def _create(amount: int = 10000, intent_id: str = "pi_webhook_123") -> dict[str, Any]:
        return {
            "id": intent_id,
            "object": "payment_intent",
            "status": "succeeded",
            "amount": amount,
            "currency": "usd",
            "payment_method": "pm_card_visa",
            "customer": "cus_test_123",
            "metadata": {},
        }

    return _create


@pytest.fixture
def webhook_client():
    """Django test client with CSRF checks on, as in production."""
    return Client(enforce_csrf_checks=True)
