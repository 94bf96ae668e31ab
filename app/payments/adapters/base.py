"""
Provider adapter interface and the value objects adapters exchange.

Every payment rail (Stripe for cards, Toss for KRW bank transfer) is wrapped
in a PaymentProviderAdapter subclass. Adapters translate between the
provider's API and these normalized dataclasses, translate provider errors
into domain exceptions, and never touch the database.

Amounts are always integers in the smallest currency unit and currencies
are lowercase ISO 4217 codes, whatever the provider returns.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Mapping
    from datetime import datetime


# =============================================================================
# Normalized Vocabulary
# =============================================================================


class WebhookEventType:
    """Provider-independent event types produced by handle_webhook()."""

    PAYMENT_SUCCEEDED = "payment.succeeded"
    PAYMENT_FAILED = "payment.failed"
    PAYMENT_PROCESSING = "payment.processing"
    REFUND_SUCCEEDED = "refund.succeeded"


class NormalizedPaymentStatus:
    """Payment statuses reported by confirm_payment() and get_payment()."""

    SUCCEEDED = "succeeded"
    REQUIRES_PAYMENT_METHOD = "requires_payment_method"
    PROCESSING = "processing"
    FAILED = "failed"


# =============================================================================
# Data Transfer Objects
# =============================================================================


@dataclass
class CreatePaymentIntentParams:
    """
    Parameters for creating a payment intent.

    Attributes:
        amount: Amount in smallest currency unit (cents, won)
        currency: Three-letter ISO currency code, lowercased on creation
        order_id: Local Order id, echoed back by webhooks
        customer_email: Buyer email, used by Stripe to reuse a customer
        customer_name: Buyer display name
        description: Human-readable purchase description
        metadata: Extra key-value pairs stored with the provider
        idempotency_key: Key that makes a retried create safe
    """

    amount: int
    currency: str
    order_id: str
    customer_email: str | None = None
    customer_name: str | None = None
    description: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)
    idempotency_key: str | None = None

    def __post_init__(self):
        """Validate parameters after initialization."""
        if self.amount <= 0:
            raise ValueError("amount must be positive")
        if len(self.currency) != 3:
            raise ValueError("currency must be a 3-letter ISO code")
        self.currency = self.currency.lower()
        self.order_id = str(self.order_id)


@dataclass
class PaymentIntentResult:
    """Result of creating a payment intent."""

    id: str
    client_secret: str
    amount: int
    currency: str
    status: str
    customer_id: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class PaymentResult:
    """
    Result of confirming a payment.

    Declines are reported through failure_code/failure_message with a
    normalized status rather than raised.
    """

    payment_id: str
    status: str
    amount: int
    currency: str
    payment_method: dict[str, Any] = field(default_factory=dict)
    failure_code: str | None = None
    failure_message: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    raw_response: dict[str, Any] = field(default_factory=dict)

    @property
    def is_succeeded(self) -> bool:
        return self.status == NormalizedPaymentStatus.SUCCEEDED


@dataclass
class RefundResult:
    """Result of submitting a refund to the provider."""

    id: str
    payment_id: str
    amount: int
    currency: str
    status: str
    reason: str | None = None
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class PaymentDetails:
    """Provider-side view of a payment, for lookups and support tooling."""

    id: str
    status: str
    amount: int
    currency: str
    order_id: str | None = None
    customer_id: str | None = None
    payment_method: dict[str, Any] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class TransferResult:
    """Result of a Stripe Connect transfer."""

    id: str
    amount: int
    currency: str
    destination_account: str
    metadata: dict[str, str] = field(default_factory=dict)
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class WebhookRequest:
    """
    Raw webhook delivery: the exact body bytes and the request headers.

    Signatures are computed over the raw body, so it must never be
    re-serialized before verification.
    """

    body: bytes
    headers: Mapping[str, str] = field(default_factory=dict)

    def header(self, name: str) -> str | None:
        """Case-insensitive header lookup."""
        wanted = name.lower()
        for key, value in self.headers.items():
            if key.lower() == wanted:
                return value
        return None


@dataclass
class NormalizedWebhookEvent:
    """
    Provider-independent webhook event.

    Attributes:
        event_id: Idempotency key for the delivery
        type: One of WebhookEventType
        provider: stripe or toss
        raw_type: The provider's own event type
        payment_id: Provider payment id (PaymentIntent id or Toss paymentKey)
        order_id: Local order id when the provider echoes it
        amount: Event amount (refunded amount for refund events)
        currency: Lowercase currency code
        status: Provider status string at event time
        data: Type-specific extras (failure codes, refund id, ...)
    """

    event_id: str
    type: str
    provider: str
    raw_type: str
    payment_id: str | None
    order_id: str | None
    amount: int
    currency: str
    status: str | None = None
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> NormalizedWebhookEvent:
        """Rebuild an event stored on WebhookEvent.normalized."""
        return cls(**data)


# =============================================================================
# Adapter Interface
# =============================================================================


class PaymentProviderAdapter(ABC):
    """
    Interface every payment rail implements.

    Adapters are stateless: all methods are classmethods, safe to call from
    request threads and Celery workers alike.

    Error contract:
        - provider or network failure -> PaymentProcessingError subclass
        - refund submission rejected -> RefundError
        - payment lookup failed -> PaymentError (PaymentNotFoundError on 404)
        - bad signature, payload or event type -> WebhookError
    """

    provider: str = ""

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """Get logger for this adapter."""
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    @abstractmethod
    def create_payment_intent(cls, params: CreatePaymentIntentParams) -> PaymentIntentResult:
        """Create a payment intent the client can complete."""

    @classmethod
    @abstractmethod
    def confirm_payment(
        cls,
        payment_id: str,
        payment_method_id: str | None = None,
        order_id: str | None = None,
        amount: int | None = None,
    ) -> PaymentResult:
        """Confirm a payment after client-side authorization."""

    @classmethod
    @abstractmethod
    def refund_payment(
        cls,
        payment_id: str,
        amount: int | None = None,
        reason: str | None = None,
        idempotency_key: str | None = None,
    ) -> RefundResult:
        """Refund all (amount=None) or part of a payment."""

    @classmethod
    @abstractmethod
    def get_payment(cls, payment_id: str) -> PaymentDetails:
        """Look up a payment at the provider."""

    @classmethod
    @abstractmethod
    def verify_webhook_signature(cls, request: WebhookRequest) -> bool:
        """Return True when the delivery carries a valid provider signature."""

    @classmethod
    @abstractmethod
    def handle_webhook(cls, request: WebhookRequest) -> NormalizedWebhookEvent:
        """
        Verify and normalize a webhook delivery.

        Raises:
            WebhookError: Invalid signature, malformed payload or an
                event type this adapter does not handle
        """
