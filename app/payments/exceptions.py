"""
Payment-specific exceptions for money movement.

Exception Hierarchy:
    PaymentError (base for payment domain)
    ├── PaymentNotFoundError - Order/payment/settlement lookup failures (404)
    ├── PaymentValidationError - Invalid amounts, currencies, requests
    ├── PaymentProcessingError - Provider call failures (502)
    │   ├── StripeError - Base for all Stripe errors
    │   │   ├── StripeCardDeclinedError - Card declined (permanent)
    │   │   ├── StripeInsufficientFundsError - Insufficient funds (permanent)
    │   │   ├── StripeInvalidAccountError - Invalid Connect account (permanent)
    │   │   ├── StripeInvalidRequestError - Invalid request params (permanent)
    │   │   ├── StripeRateLimitError - Rate limited (transient, retry)
    │   │   ├── StripeAPIUnavailableError - API unavailable (transient, retry)
    │   │   └── StripeTimeoutError - Request timeout (transient, retry)
    │   └── TossError - Toss Payments API failures
    ├── RefundError - Refund rejected by policy or provider (not auto-retried)
    ├── WebhookError - Bad signature, malformed payload, unsupported event
    ├── SettlementError - Settlement computation or payout failures
    │   └── SettlementAlreadyExistsError - Payee already settled for period (409)
    └── SubscriptionError - Invalid subscription operations

    InvalidStateTransitionError - FSM transition not allowed (inherits ConflictError)

Usage:
    from payments.exceptions import RefundError, WebhookError

    if order.buyer_id != user.id:
        raise RefundError(
            "Only the buyer can request a refund",
            error_code="NOT_ORDER_BUYER",
            details={"order_id": str(order.id)},
        )
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import BaseApplicationError, ConflictError

if TYPE_CHECKING:
    from typing import Any


# =============================================================================
# Payment Domain Exceptions
# =============================================================================


class PaymentError(BaseApplicationError):
    """
    Base exception for all payment operations.

    All payment-specific exceptions inherit from this class,
    which itself inherits from BaseApplicationError for
    consistent API error responses.

    Example:
        try:
            CheckoutService.create_checkout(buyer, product)
        except PaymentError as e:
            logger.error(f"Checkout failed: {e}")
            return Response(e.to_dict(), status=e.http_status)
    """

    default_error_code: str = "PAYMENT_ERROR"


class PaymentNotFoundError(PaymentError):
    """
    Raised when a payment entity cannot be found.

    Use for order, payment, settlement and plan lookups, and for a
    provider answering 404 on a payment key.
    """

    default_error_code: str = "PAYMENT_NOT_FOUND"
    http_status: int = 404


class PaymentValidationError(PaymentError):
    """
    Raised when payment validation fails.

    Example:
        if amount <= 0:
            raise PaymentValidationError(
                "Payment amount must be positive",
                details={"amount": amount},
            )
    """

    default_error_code: str = "PAYMENT_VALIDATION_ERROR"


class PaymentProcessingError(PaymentError):
    """
    Raised when a provider call fails.

    Callers may retry when ``is_retryable`` is True; the adapters send
    idempotency keys so a retry never duplicates the provider operation.
    """

    default_error_code: str = "PAYMENT_PROCESSING_ERROR"
    http_status: int = 502
    is_retryable: bool = False


# =============================================================================
# Stripe-Specific Exceptions
# =============================================================================


class StripeError(PaymentProcessingError):
    """
    Base exception for all Stripe-related errors.

    Provides common attributes for Stripe error handling:
    - stripe_code: Stripe's internal error code
    - decline_code: Card decline code (if applicable)
    - is_retryable: Whether the operation can be retried

    Example:
        try:
            StripeAdapter.create_payment_intent(...)
        except StripeError as e:
            if e.is_retryable:
                raise self.retry(exc=e, countdown=backoff_delay(attempt))
            raise
    """

    default_error_code: str = "STRIPE_ERROR"
    is_retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        stripe_code: str | None = None,
        decline_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if stripe_code:
            details["stripe_code"] = stripe_code
        if decline_code:
            details["decline_code"] = decline_code
        super().__init__(message, error_code=error_code, details=details)
        self.stripe_code = stripe_code
        self.decline_code = decline_code


# -----------------------------------------------------------------------------
# Permanent Errors (do not retry)
# -----------------------------------------------------------------------------


class StripeCardDeclinedError(StripeError):
    """
    Card was declined by the issuing bank.

    The decline_code attribute carries the reason (generic_decline,
    expired_card, incorrect_cvc, ...).
    """

    default_error_code: str = "CARD_DECLINED"
    http_status: int = 402


class StripeInsufficientFundsError(StripeError):
    """Insufficient funds on the payment method. User action required."""

    default_error_code: str = "INSUFFICIENT_FUNDS"
    http_status: int = 402


class StripeInvalidAccountError(StripeError):
    """
    Invalid Stripe Connect account.

    Raised when a settlement transfer targets an account that is missing,
    restricted or not onboarded. Needs manual intervention.
    """

    default_error_code: str = "INVALID_STRIPE_ACCOUNT"


class StripeInvalidRequestError(StripeError):
    """
    Invalid request parameters sent to Stripe.

    Usually a bug on our side (unknown intent id, refund above the captured
    amount). Logged for developer investigation.
    """

    default_error_code: str = "INVALID_STRIPE_REQUEST"


# -----------------------------------------------------------------------------
# Transient Errors (safe to retry with backoff)
# -----------------------------------------------------------------------------


class StripeRateLimitError(StripeError):
    """Rate limited by the Stripe API."""

    default_error_code: str = "STRIPE_RATE_LIMITED"
    is_retryable: bool = True


class StripeAPIUnavailableError(StripeError):
    """
    Stripe API is temporarily unavailable.

    Covers network failures and Stripe 5xx responses.
    """

    default_error_code: str = "STRIPE_UNAVAILABLE"
    is_retryable: bool = True


class StripeTimeoutError(StripeError):
    """
    Stripe API call timed out.

    IMPORTANT: The operation may have succeeded on Stripe's side.
    Retry with the same idempotency key.
    """

    default_error_code: str = "STRIPE_TIMEOUT"
    is_retryable: bool = True


# =============================================================================
# Toss Payments Exceptions
# =============================================================================


class TossError(PaymentProcessingError):
    """
    Toss Payments API failure.

    Attributes:
        toss_code: Error code from the Toss error body (e.g. REJECT_CARD_PAYMENT)
        status_code: HTTP status returned by Toss, None on network errors
    """

    default_error_code: str = "TOSS_ERROR"

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        toss_code: str | None = None,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if toss_code:
            details["toss_code"] = toss_code
        if status_code:
            details["status_code"] = status_code
        super().__init__(message, error_code=error_code, details=details)
        self.toss_code = toss_code
        self.status_code = status_code
        # 5xx and network failures are transient
        self.is_retryable = status_code is None or status_code >= 500


# =============================================================================
# Refund / Webhook / Settlement / Subscription Exceptions
# =============================================================================


class RefundError(PaymentError):
    """
    Raised when a refund is rejected.

    Covers policy violations (window expired, not the buyer, amount above
    the refundable remainder) and provider rejections. Never retried
    automatically.
    """

    default_error_code: str = "REFUND_ERROR"


class WebhookError(PaymentError):
    """
    Raised when an incoming webhook is rejected.

    The endpoint answers 400 and persists nothing: invalid or missing
    signature, unparseable body, or an event type we do not handle.
    """

    default_error_code: str = "WEBHOOK_ERROR"


class SettlementError(PaymentError):
    """Raised when a settlement cannot be computed, paid out or updated."""

    default_error_code: str = "SETTLEMENT_ERROR"


class SettlementAlreadyExistsError(SettlementError):
    """
    Raised when the payee already has a settlement for the period.

    Reported by the unique constraint on (seller, settlement_type,
    currency, period_start, period_end).
    """

    default_error_code: str = "SETTLEMENT_ALREADY_EXISTS"
    http_status: int = 409


class SubscriptionError(PaymentError):
    """
    Raised for invalid subscription operations.

    Example:
        raise SubscriptionError(
            "Cancelled subscriptions cannot be reactivated",
            error_code="SUBSCRIPTION_CANCELLED",
        )
    """

    default_error_code: str = "SUBSCRIPTION_ERROR"


# =============================================================================
# State Machine Exceptions
# =============================================================================


class InvalidStateTransitionError(ConflictError):
    """
    Raised when a state machine transition is not allowed.

    Wraps django-fsm's TransitionNotAllowed to provide our standard error
    format with additional context.

    Example:
        try:
            settlement.mark_paid(reference)
        except TransitionNotAllowed:
            raise InvalidStateTransitionError(
                f"Cannot mark settlement paid from '{settlement.status}'",
                details={"current_state": settlement.status, "transition": "mark_paid"},
            )
    """

    default_error_code: str = "INVALID_STATE_TRANSITION"


# =============================================================================
# Exports
# =============================================================================

__all__ = [
    # Payment domain
    "PaymentError",
    "PaymentNotFoundError",
    "PaymentValidationError",
    "PaymentProcessingError",
    # Stripe-specific
    "StripeError",
    "StripeCardDeclinedError",
    "StripeInsufficientFundsError",
    "StripeInvalidAccountError",
    "StripeInvalidRequestError",
    "StripeRateLimitError",
    "StripeAPIUnavailableError",
    "StripeTimeoutError",
    # Toss-specific
    "TossError",
    # Flows
    "RefundError",
    "WebhookError",
    "SettlementError",
    "SettlementAlreadyExistsError",
    "SubscriptionError",
    # State machine
    "InvalidStateTransitionError",
]
