"""
Pytest fixtures for provider adapter tests.

Sections:
    - Mock Stripe Objects
    - Mock Stripe Error Fixtures
    - Webhook Signing Helpers
    - Mock Toss HTTP Fixtures
"""

import base64
import hashlib
import hmac
import json
import time
from dataclasses import dataclass
from typing import Any
from unittest.mock import MagicMock, patch

import pytest
import stripe


STRIPE_WEBHOOK_SECRET = "whsec_test_secret"
TOSS_WEBHOOK_SECRET = "toss_webhook_test_secret"


@pytest.fixture(autouse=True)
def provider_settings(settings):
    """Deterministic provider credentials for every adapter test."""
    settings.STRIPE_SECRET_KEY = "sk_test_123"
    settings.STRIPE_WEBHOOK_SECRET = STRIPE_WEBHOOK_SECRET
    settings.TOSS_SECRET_KEY = "test_sk_toss"
    settings.TOSS_WEBHOOK_SECRET = TOSS_WEBHOOK_SECRET
    settings.TOSS_API_BASE_URL = "https://api.tosspayments.com/v1"
    return settings


# =============================================================================
# Mock Stripe Objects
# =============================================================================


@dataclass
class MockStripeObject:
    """Mock Stripe API object with attribute access."""

    data: dict[str, Any]

    def __getattr__(self, name: str) -> Any:
        if name == "data":
            return self.__dict__["data"]
        return self.data.get(name)

    def to_dict(self) -> dict[str, Any]:
        return self.data


@dataclass
class MockStripeList:
    """Mock Stripe list response with data attribute."""

    items: list[MockStripeObject]
    has_more: bool = False

    @property
    def data(self) -> list[MockStripeObject]:
        return self.items


@pytest.fixture
def mock_payment_intent():
    """Create a mock PaymentIntent response."""

    def _create(
        id: str = "pi_test123456",
        status: str = "requires_payment_method",
        amount: int = 9900,
        currency: str = "usd",
        client_secret: str = "pi_test123456_secret_abc123",
        metadata: dict | None = None,
        payment_method: Any = None,
        last_payment_error: Any = None,
        customer: str | None = "cus_test123",
    ) -> MockStripeObject:
        return MockStripeObject(
            {
                "id": id,
                "object": "payment_intent",
                "status": status,
                "amount": amount,
                "currency": currency,
                "client_secret": client_secret,
                "metadata": metadata or {},
                "payment_method": payment_method,
                "last_payment_error": last_payment_error,
                "customer": customer,
                "created": 1760000000,
            }
        )

    return _create


@pytest.fixture
def mock_stripe_payment_intent(mock_payment_intent):
    """Mock stripe.PaymentIntent API."""
    with patch("stripe.PaymentIntent") as mock:
        mock.create.return_value = mock_payment_intent()
        mock.retrieve.return_value = mock_payment_intent()
        mock.confirm.return_value = mock_payment_intent(status="processing")
        yield mock


@pytest.fixture
def mock_stripe_customer():
    """Mock stripe.Customer API with no existing customers."""
    with patch("stripe.Customer") as mock:
        mock.list.return_value = MockStripeList(items=[])
        mock.create.return_value = MockStripeObject({"id": "cus_new123"})
        yield mock


@pytest.fixture
def mock_stripe_refund():
    """Mock stripe.Refund API."""
    with patch("stripe.Refund") as mock:
        mock.create.return_value = MockStripeObject(
            {
                "id": "re_test123456",
                "amount": 2500,
                "currency": "usd",
                "status": "succeeded",
                "payment_intent": "pi_test123456",
            }
        )
        yield mock


@pytest.fixture
def mock_stripe_transfer():
    """Mock stripe.Transfer API."""
    with patch("stripe.Transfer") as mock:
        mock.create.return_value = MockStripeObject(
            {
                "id": "tr_test123456",
                "amount": 84150,
                "currency": "usd",
                "destination": "acct_dest123",
                "metadata": {},
            }
        )
        yield mock


# =============================================================================
# Mock Stripe Error Fixtures
# =============================================================================


@pytest.fixture
def card_error():
    """Create a Stripe CardError with a decline code."""

    def _create(
        message: str = "Your card was declined.",
        code: str = "card_declined",
        decline_code: str | None = "generic_decline",
    ) -> stripe.CardError:
        error = stripe.CardError(message=message, param=None, code=code)
        error.decline_code = decline_code
        return error

    return _create


@pytest.fixture
def invalid_request_error():
    """Create a Stripe InvalidRequestError."""

    def _create(
        message: str = "No such payment_intent: 'pi_missing'",
        param: str | None = "id",
        code: str = "resource_missing",
    ) -> stripe.InvalidRequestError:
        return stripe.InvalidRequestError(message=message, param=param, code=code)

    return _create


# =============================================================================
# Webhook Signing Helpers
# =============================================================================


def sign_stripe_payload(payload: bytes, secret: str = STRIPE_WEBHOOK_SECRET) -> str:
    """Build a valid Stripe-Signature header for a payload."""
    timestamp = int(time.time())
    signed = f"{timestamp}.{payload.decode('utf-8')}".encode()
    signature = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def sign_toss_payload(payload: bytes, secret: str = TOSS_WEBHOOK_SECRET) -> str:
    """Build a valid Toss-Signature header for a payload."""
    digest = hmac.new(secret.encode(), payload, hashlib.sha256).digest()
    return base64.b64encode(digest).decode()


@pytest.fixture
def stripe_event_body():
    """Serialize a Stripe event envelope."""

    def _create(event_type: str, obj: dict[str, Any], event_id: str = "evt_test123") -> bytes:
        return json.dumps(
            {"id": event_id, "object": "event", "type": event_type, "data": {"object": obj}}
        ).encode()

    return _create


@pytest.fixture
def toss_event_body():
    """Serialize a Toss webhook body."""

    def _create(event_type: str, data: dict[str, Any]) -> bytes:
        return json.dumps(
            {"eventType": event_type, "createdAt": "2026-09-14T10:00:00+09:00", "data": data}
        ).encode()

    return _create


# =============================================================================
# Mock Toss HTTP Fixtures
# =============================================================================


def toss_response(status_code: int = 200, body: dict[str, Any] | None = None) -> MagicMock:
    """Fake requests.Response for a Toss API call."""
    response = MagicMock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 300
    response.json.return_value = body or {}
    return response


@pytest.fixture
def toss_payment_body():
    """A Toss payment object as returned by confirm and lookup."""

    def _create(status: str = "DONE", **overrides) -> dict[str, Any]:
        body = {
            "paymentKey": "tgen_20260914_abc",
            "orderId": "order-123",
            "orderName": "Preset pack",
            "status": status,
            "totalAmount": 15000,
            "currency": "KRW",
            "method": "card",
            "card": {"company": "Shinhan", "number": "4330****1234"},
            "approvedAt": "2026-09-14T10:00:00+09:00",
            "requestedAt": "2026-09-14T09:59:30+09:00",
        }
        body.update(overrides)
        return body

    return _create


@pytest.fixture
def mock_toss_request():
    """Patch the HTTP call made by the Toss adapter."""
    with patch("payments.adapters.toss_adapter.requests.request") as mock:
        yield mock


@pytest.fixture
def sign_stripe():
    return sign_stripe_payload


@pytest.fixture
def sign_toss():
    return sign_toss_payload


@pytest.fixture
def make_toss_response():
    return toss_response
