"""
Pytest fixtures for payment tests.

This module provides fixtures for creating payment-related test data.
Fixtures are designed to provide objects in various states for testing
state transitions and business logic.

Usage:
    def test_refund_paid_order(paid_order, mock_stripe_refund):
        refund = RefundService.request_refund(paid_order, paid_order.buyer)
        assert refund.status == RefundStatus.PROCESSING
"""

import uuid
from unittest.mock import patch

import pytest
from rest_framework.test import APIClient

from authentication.tests.factories import (
    SellerFactory,
    StaffFactory,
    UserFactory,
    VerifierFactory,
)
from payments.adapters import NormalizedWebhookEvent, PaymentIntentResult, RefundResult
from payments.models import Plan
from payments.plans import DEFAULT_PLANS
from payments.tests.factories import (
    OrderFactory,
    PaidOrderFactory,
    PaymentFactory,
    ProductFactory,
)


@pytest.fixture(autouse=True)
def payment_settings(settings):
    """Deterministic payment configuration for every payment test."""
    settings.STRIPE_SECRET_KEY = "sk_test_123"
    settings.STRIPE_WEBHOOK_SECRET = "whsec_test_secret"
    settings.TOSS_SECRET_KEY = "test_sk_toss"
    settings.TOSS_WEBHOOK_SECRET = "toss_webhook_test_secret"
    settings.PLATFORM_FEE_PERCENT = 15
    settings.PAYMENT_REFUND_WINDOW_DAYS = 7
    settings.MAX_WEBHOOK_RETRIES = 5
    settings.SETTLEMENT_NOTIFICATIONS_ENABLED = True
    settings.EMAIL_BACKEND = "django.core.mail.backends.locmem.EmailBackend"
    return settings


# =============================================================================
# User Fixtures
# =============================================================================


@pytest.fixture
def buyer(db):
    return UserFactory()


@pytest.fixture
def seller(db):
    """Seller on the NEW tier (20% fee) with a connected Stripe account."""
    return SellerFactory()


@pytest.fixture
def verifier(db):
    return VerifierFactory()


@pytest.fixture
def staff_user(db):
    return StaffFactory()


# =============================================================================
# Catalogue & Order Fixtures
# =============================================================================


@pytest.fixture
def product(seller):
    return ProductFactory(seller=seller, price=10000, currency="usd")


@pytest.fixture
def krw_product(seller):
    return ProductFactory(seller=seller, price=15000, currency="krw")


@pytest.fixture
def pending_order(buyer, product):
    """PENDING order with a Stripe payment intent awaiting confirmation."""
    order = OrderFactory(buyer=buyer, product=product)
    PaymentFactory(order=order, provider_payment_id="pi_pending_123")
    return order


@pytest.fixture
def paid_order(buyer, product):
    """PAID order: 10000 with a 2000 fee, SUCCEEDED Stripe payment."""
    return PaidOrderFactory(
        buyer=buyer,
        product=product,
        payment__provider_payment_id="pi_paid_123",
    )


@pytest.fixture
def plans(db):
    """The default plan catalogue."""
    for data in DEFAULT_PLANS:
        fields = {key: value for key, value in data.items() if key != "tier"}
        Plan.objects.update_or_create(tier=data["tier"], defaults=fields)
    return list(Plan.objects.order_by("sort_order"))


@pytest.fixture
def make_event():
    """
    Build a NormalizedWebhookEvent for service-level tests.

    Usage:
        event = make_event(WebhookEventType.PAYMENT_SUCCEEDED, "pi_123", amount=10000)
    """

    def _make(event_type, payment_id, amount=0, provider="stripe", **kwargs):
        data = kwargs.pop("data", {})
        return NormalizedWebhookEvent(
            event_id=kwargs.pop("event_id", f"evt_{uuid.uuid4().hex[:12]}"),
            type=event_type,
            provider=provider,
            raw_type=kwargs.pop("raw_type", event_type),
            payment_id=payment_id,
            order_id=kwargs.pop("order_id", None),
            amount=amount,
            currency=kwargs.pop("currency", "usd"),
            status=kwargs.pop("status", None),
            data=data,
        )

    return _make


# =============================================================================
# Provider Mocks
# =============================================================================


@pytest.fixture
def mock_stripe_intent():
    """Patch StripeAdapter.create_payment_intent."""
    with patch("payments.adapters.StripeAdapter.create_payment_intent") as mock:
        mock.return_value = PaymentIntentResult(
            id="pi_checkout_123",
            client_secret="pi_checkout_123_secret_abc",
            status="requires_payment_method",
            amount=10000,
            currency="usd",
            customer_id="cus_test_123",
        )
        yield mock


@pytest.fixture
def mock_stripe_refund():
    """Patch StripeAdapter.refund_payment with an accepted refund."""
    with patch("payments.adapters.StripeAdapter.refund_payment") as mock:
        mock.side_effect = lambda payment_id, amount=None, **kwargs: RefundResult(
            id=f"re_test_{uuid.uuid4().hex[:12]}",
            payment_id=payment_id,
            amount=amount,
            currency="usd",
            status="pending",
        )
        yield mock


# =============================================================================
# API Clients
# =============================================================================


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def buyer_client(buyer):
    client = APIClient()
    client.force_authenticate(user=buyer)
    return client


@pytest.fixture
def seller_client(seller):
    client = APIClient()
    client.force_authenticate(user=seller)
    return client


@pytest.fixture
def staff_client(staff_user):
    client = APIClient()
    client.force_authenticate(user=staff_user)
    return client
