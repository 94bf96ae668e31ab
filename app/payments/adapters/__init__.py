"""
Payment provider adapters.

All external payment API calls go through these adapters to ensure
consistent error handling, timeouts, idempotency, and observability.

The rail is chosen once per payment from its currency and stored on
Payment.provider; later calls look the adapter up by that stored value.

Usage:
    from payments.adapters import get_adapter, select_provider

    provider = select_provider(order.currency)      # "toss" for krw
    adapter = get_adapter(provider)
    intent = adapter.create_payment_intent(params)

    # Later, for the same payment
    adapter = get_adapter(payment.provider)
    adapter.refund_payment(payment.provider_payment_id, amount=2500)
"""

from __future__ import annotations

from payments.adapters.base import (
    CreatePaymentIntentParams,
    NormalizedPaymentStatus,
    NormalizedWebhookEvent,
    PaymentDetails,
    PaymentIntentResult,
    PaymentProviderAdapter,
    PaymentResult,
    RefundResult,
    TransferResult,
    WebhookEventType,
    WebhookRequest,
)
from payments.adapters.stripe_adapter import (
    IdempotencyKeyGenerator,
    StripeAdapter,
    backoff_delay,
)
from payments.adapters.toss_adapter import TossAdapter
from payments.exceptions import PaymentValidationError
from payments.state_machines import PaymentProvider

ADAPTERS: dict[str, type[PaymentProviderAdapter]] = {
    PaymentProvider.STRIPE: StripeAdapter,
    PaymentProvider.TOSS: TossAdapter,
}

# Currencies settled over the Toss rail; everything else goes to Stripe
TOSS_CURRENCIES = frozenset({"krw"})


def select_provider(currency: str) -> str:
    """Pick the payment rail for a currency."""
    if currency.lower() in TOSS_CURRENCIES:
        return PaymentProvider.TOSS
    return PaymentProvider.STRIPE


def get_adapter(provider: str) -> type[PaymentProviderAdapter]:
    """
    Return the adapter class for a stored provider value.

    Raises:
        PaymentValidationError: Unknown provider
    """
    try:
        return ADAPTERS[provider]
    except KeyError:
        raise PaymentValidationError(
            f"Unknown payment provider: {provider}",
            error_code="UNKNOWN_PROVIDER",
            details={"provider": provider},
        ) from None


__all__ = [
    "ADAPTERS",
    "CreatePaymentIntentParams",
    "IdempotencyKeyGenerator",
    "NormalizedPaymentStatus",
    "NormalizedWebhookEvent",
    "PaymentDetails",
    "PaymentIntentResult",
    "PaymentProviderAdapter",
    "PaymentResult",
    "RefundResult",
    "StripeAdapter",
    "TossAdapter",
    "TransferResult",
    "WebhookEventType",
    "WebhookRequest",
    "backoff_delay",
    "get_adapter",
    "select_provider",
]
