"""
Stripe API adapter for the card rail.

This module provides the StripeAdapter class which encapsulates all
Stripe API interactions. All Stripe calls should go through this
adapter to ensure consistent error handling, timeouts, idempotency,
and observability.

Features:
- Configurable timeouts on all API calls
- Automatic error translation to domain exceptions
- Structured logging with timing metrics
- Idempotency support for safe retries
- Customer reuse by buyer email
- Stripe Connect transfers for settlement payouts

Configuration (via settings):
- STRIPE_SECRET_KEY: Stripe API secret key
- STRIPE_WEBHOOK_SECRET: Webhook signing secret
- STRIPE_API_TIMEOUT_SECONDS: API call timeout (default: 10)
- STRIPE_MAX_RETRIES: Network retries performed by the SDK (default: 3)

Usage:
    from payments.adapters import StripeAdapter, CreatePaymentIntentParams

    result = StripeAdapter.create_payment_intent(
        CreatePaymentIntentParams(
            amount=9900,
            currency="usd",
            order_id=str(order.id),
            customer_email=buyer.email,
            description="Purchase: Lightroom preset pack",
        )
    )

    # Settlement payout to a connected account
    transfer = StripeAdapter.create_transfer(
        amount=84150,
        destination_account="acct_123",
        idempotency_key=IdempotencyKeyGenerator.generate("transfer", settlement.id),
    )
"""

from __future__ import annotations

import hashlib
import json
import random
import time
import uuid
from datetime import datetime, timezone as dt_timezone
from typing import Any

import stripe
from django.conf import settings

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
from payments.exceptions import (
    PaymentNotFoundError,
    RefundError,
    StripeAPIUnavailableError,
    StripeCardDeclinedError,
    StripeError,
    StripeInsufficientFundsError,
    StripeInvalidAccountError,
    StripeInvalidRequestError,
    StripeRateLimitError,
    WebhookError,
)
from payments.state_machines import PaymentProvider


# =============================================================================
# Idempotency Key Generation
# =============================================================================


class IdempotencyKeyGenerator:
    """
    Generate idempotency keys for Stripe operations.

    Keys are deterministic for the same inputs, so a retried call with the
    same operation, entity and attempt reuses the original Stripe result.

    Format: {operation}:{entity_id}:{attempt}:{short_hash}

    Usage:
        key = IdempotencyKeyGenerator.generate(
            operation="refund",
            entity_id=refund.id,
        )
        # Result: "refund:550e8400-e29b-41d4-a716-446655440000:1:a1b2c3d4"
    """

    @staticmethod
    def generate(
        operation: str,
        entity_id: uuid.UUID | str,
        attempt: int = 1,
    ) -> str:
        """
        Generate a unique idempotency key.

        Args:
            operation: The Stripe operation (create_intent, refund, transfer)
            entity_id: The domain entity ID (order, refund, settlement)
            attempt: Attempt number for retries (default: 1)

        Returns:
            Formatted idempotency key string
        """
        entity_str = str(entity_id)
        hash_input = f"{operation}:{entity_str}:{attempt}:{settings.SECRET_KEY}"
        short_hash = hashlib.sha256(hash_input.encode()).hexdigest()[:8]

        return f"{operation}:{entity_str}:{attempt}:{short_hash}"


# =============================================================================
# Retry Logic Helpers
# =============================================================================


def backoff_delay(attempt: int, base: float = 1.0, max_delay: float = 60.0) -> float:
    """
    Calculate exponential backoff delay with jitter.

    Args:
        attempt: Current attempt number (0-indexed)
        base: Base delay in seconds (default: 1.0)
        max_delay: Maximum delay in seconds (default: 60.0)

    Returns:
        Delay in seconds with jitter (0-25% of calculated delay)

    Example:
        # Attempt 0: 1.0 - 1.25 seconds
        # Attempt 2: 4.0 - 5.0 seconds
        delay = backoff_delay(attempt=2)
    """
    delay = min(base * (2**attempt), max_delay)
    jitter = delay * random.uniform(0, 0.25)
    return delay + jitter


def _decline_code(error: Exception) -> str | None:
    """Issuer decline code of a Stripe CardError, if Stripe sent one."""
    error_object = getattr(error, "error", None)
    return getattr(error_object, "decline_code", None) or getattr(error, "decline_code", None)


# =============================================================================
# Stripe Adapter
# =============================================================================


# Stripe PaymentIntent status -> normalized status
_STATUS_MAP = {
    "succeeded": NormalizedPaymentStatus.SUCCEEDED,
    "processing": NormalizedPaymentStatus.PROCESSING,
    "requires_payment_method": NormalizedPaymentStatus.REQUIRES_PAYMENT_METHOD,
    "requires_confirmation": NormalizedPaymentStatus.REQUIRES_PAYMENT_METHOD,
    "requires_action": NormalizedPaymentStatus.REQUIRES_PAYMENT_METHOD,
}


class StripeAdapter(PaymentProviderAdapter):
    """
    Adapter for Stripe API operations.

    All methods are classmethods - no instance state is maintained.
    Thread-safe for use from Celery workers.

    Usage:
        result = StripeAdapter.create_payment_intent(params)
        result = StripeAdapter.confirm_payment("pi_123", payment_method_id="pm_123")
    """

    provider = PaymentProvider.STRIPE

    # =========================================================================
    # Configuration
    # =========================================================================

    @staticmethod
    def _configure_stripe() -> None:
        """Configure Stripe client with API key and timeout."""
        stripe.api_key = settings.STRIPE_SECRET_KEY
        stripe.max_network_retries = getattr(settings, "STRIPE_MAX_RETRIES", 3)
        timeout = getattr(settings, "STRIPE_API_TIMEOUT_SECONDS", 10)
        stripe.default_http_client = stripe.RequestsClient(timeout=timeout)

    @staticmethod
    def normalize_status(stripe_status: str | None) -> str:
        """Map a PaymentIntent status onto the normalized vocabulary."""
        return _STATUS_MAP.get(stripe_status or "", NormalizedPaymentStatus.FAILED)

    # =========================================================================
    # Payment Intents
    # =========================================================================

    @classmethod
    def create_payment_intent(cls, params: CreatePaymentIntentParams) -> PaymentIntentResult:
        """
        Create a Stripe PaymentIntent for an order.

        Reuses the Stripe customer registered for the buyer email, or
        creates one.

        Raises:
            StripeInvalidRequestError: Invalid parameters
            StripeAPIUnavailableError: Stripe service unavailable
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        idempotency_key = params.idempotency_key or IdempotencyKeyGenerator.generate(
            "create_intent", params.order_id
        )
        log_context = {
            "operation": "create_payment_intent",
            "amount": params.amount,
            "currency": params.currency,
            "order_id": params.order_id,
            "idempotency_key": idempotency_key,
        }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            customer_id = None
            if params.customer_email:
                customer_id = cls._get_or_create_customer(
                    params.customer_email, params.customer_name
                )

            intent = stripe.PaymentIntent.create(
                amount=params.amount,
                currency=params.currency,
                customer=customer_id,
                automatic_payment_methods={"enabled": True},
                metadata={**params.metadata, "order_id": params.order_id},
                description=params.description,
                idempotency_key=idempotency_key,
            )

            duration_ms = (time.time() - start_time) * 1000
            logger.info(
                "Stripe operation completed",
                extra={
                    **log_context,
                    "payment_intent_id": intent.id,
                    "status": intent.status,
                    "duration_ms": duration_ms,
                },
            )

            return PaymentIntentResult(
                id=intent.id,
                client_secret=intent.client_secret,
                amount=intent.amount,
                currency=intent.currency.lower(),
                status=intent.status,
                customer_id=customer_id,
                metadata=dict(intent.metadata or {}),
            )

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise  # Never reached, but satisfies type checker

    @classmethod
    def confirm_payment(
        cls,
        payment_id: str,
        payment_method_id: str | None = None,
        order_id: str | None = None,
        amount: int | None = None,
    ) -> PaymentResult:
        """
        Confirm a PaymentIntent.

        Only calls confirm when a payment method is supplied and the
        intent still needs one; otherwise reports the current state.
        A card decline is returned as a requires_payment_method result
        carrying the decline code.
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "confirm_payment",
            "payment_intent_id": payment_id,
            "has_payment_method": bool(payment_method_id),
        }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            intent = stripe.PaymentIntent.retrieve(payment_id)

            if payment_method_id and intent.status == "requires_payment_method":
                intent = stripe.PaymentIntent.confirm(
                    payment_id,
                    payment_method=payment_method_id,
                )

            duration_ms = (time.time() - start_time) * 1000
            logger.info(
                "Stripe operation completed",
                extra={**log_context, "status": intent.status, "duration_ms": duration_ms},
            )

            return cls._intent_to_result(intent)

        except stripe.CardError as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.warning(
                "Card declined during confirmation",
                extra={**log_context, "decline_code": _decline_code(e), "duration_ms": duration_ms},
            )
            return PaymentResult(
                payment_id=payment_id,
                status=NormalizedPaymentStatus.REQUIRES_PAYMENT_METHOD,
                amount=amount or 0,
                currency="",
                failure_code=_decline_code(e) or e.code,
                failure_message=str(e.user_message or e),
            )

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    @classmethod
    def get_payment(cls, payment_id: str) -> PaymentDetails:
        """
        Retrieve a PaymentIntent by ID.

        Raises:
            PaymentNotFoundError: No such PaymentIntent
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "get_payment",
            "payment_intent_id": payment_id,
        }

        start_time = time.time()
        logger.debug("Starting Stripe operation", extra=log_context)

        try:
            intent = stripe.PaymentIntent.retrieve(payment_id, expand=["payment_method"])

            duration_ms = (time.time() - start_time) * 1000
            logger.debug(
                "Stripe operation completed",
                extra={**log_context, "status": intent.status, "duration_ms": duration_ms},
            )

            metadata = dict(intent.metadata or {})
            customer = intent.customer
            return PaymentDetails(
                id=intent.id,
                status=cls.normalize_status(intent.status),
                amount=intent.amount,
                currency=intent.currency.lower(),
                order_id=metadata.get("order_id"),
                customer_id=customer if isinstance(customer, str) else getattr(customer, "id", None),
                payment_method=cls._payment_method_snapshot(intent.payment_method),
                metadata=metadata,
                created_at=datetime.fromtimestamp(intent.created, tz=dt_timezone.utc),
            )

        except stripe.InvalidRequestError as e:
            if e.code == "resource_missing":
                raise PaymentNotFoundError(
                    f"Stripe payment not found: {payment_id}",
                    details={"payment_id": payment_id},
                ) from e
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    # =========================================================================
    # Refunds & Transfers
    # =========================================================================

    @classmethod
    def refund_payment(
        cls,
        payment_id: str,
        amount: int | None = None,
        reason: str | None = None,
        idempotency_key: str | None = None,
    ) -> RefundResult:
        """
        Create a refund for a PaymentIntent.

        Args:
            payment_id: Stripe PaymentIntent ID (pi_xxx)
            amount: Amount to refund (None for full refund)
            reason: Free-text reason, stored in refund metadata
            idempotency_key: Unique key for idempotent refund

        Raises:
            RefundError: Stripe rejected the refund
            StripeError: Transient failure (is_retryable)
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "refund_payment",
            "payment_intent_id": payment_id,
            "amount": amount,
            "idempotency_key": idempotency_key,
        }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            refund_params: dict[str, Any] = {
                "payment_intent": payment_id,
                "reason": "requested_by_customer",
                "metadata": {"reason": reason or ""},
            }
            if amount is not None:
                refund_params["amount"] = amount
            if idempotency_key:
                refund_params["idempotency_key"] = idempotency_key

            refund = stripe.Refund.create(**refund_params)

            duration_ms = (time.time() - start_time) * 1000
            logger.info(
                "Stripe operation completed",
                extra={
                    **log_context,
                    "refund_id": refund.id,
                    "status": refund.status,
                    "duration_ms": duration_ms,
                },
            )

            return RefundResult(
                id=refund.id,
                payment_id=payment_id,
                amount=refund.amount,
                currency=refund.currency.lower(),
                status="succeeded" if refund.status == "succeeded" else "pending",
                reason=reason,
            )

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            try:
                cls._handle_stripe_error(e, log_context, duration_ms)
            except StripeError as translated:
                if translated.is_retryable:
                    raise
                raise RefundError(
                    f"Stripe rejected the refund: {translated.message}",
                    error_code="REFUND_REJECTED",
                    details=translated.details,
                ) from e
            raise

    @classmethod
    def create_transfer(
        cls,
        amount: int,
        destination_account: str,
        idempotency_key: str,
        currency: str = "usd",
        metadata: dict[str, str] | None = None,
    ) -> TransferResult:
        """
        Create a transfer to a connected Stripe account.

        Used for settlement payouts with the stripe_connect method.

        Raises:
            StripeInvalidAccountError: Invalid destination account
            StripeInsufficientFundsError: Insufficient platform balance
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "create_transfer",
            "amount": amount,
            "destination_account": destination_account,
            "idempotency_key": idempotency_key,
        }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            transfer = stripe.Transfer.create(
                amount=amount,
                currency=currency,
                destination=destination_account,
                metadata=metadata or {},
                idempotency_key=idempotency_key,
            )

            duration_ms = (time.time() - start_time) * 1000
            logger.info(
                "Stripe operation completed",
                extra={**log_context, "transfer_id": transfer.id, "duration_ms": duration_ms},
            )

            return TransferResult(
                id=transfer.id,
                amount=transfer.amount,
                currency=transfer.currency.lower(),
                destination_account=transfer.destination,
                metadata=dict(transfer.metadata or {}),
            )

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    # =========================================================================
    # Webhooks
    # =========================================================================

    @classmethod
    def verify_webhook_signature(cls, request: WebhookRequest) -> bool:
        """Check the Stripe-Signature header against STRIPE_WEBHOOK_SECRET."""
        signature = request.header("Stripe-Signature")
        if not signature or not settings.STRIPE_WEBHOOK_SECRET:
            return False

        try:
            stripe.WebhookSignature.verify_header(
                request.body.decode("utf-8"),
                signature,
                settings.STRIPE_WEBHOOK_SECRET,
                tolerance=stripe.Webhook.DEFAULT_TOLERANCE,
            )
        except (stripe.SignatureVerificationError, UnicodeDecodeError):
            return False
        return True

    @classmethod
    def handle_webhook(cls, request: WebhookRequest) -> NormalizedWebhookEvent:
        """
        Verify and normalize a Stripe webhook delivery.

        Supported events:
            payment_intent.succeeded -> payment.succeeded
            payment_intent.payment_failed -> payment.failed
            payment_intent.processing -> payment.processing
            charge.refunded -> refund.succeeded

        Raises:
            WebhookError: Invalid signature, malformed payload or unsupported type
        """
        signature = request.header("Stripe-Signature")
        if not signature:
            raise WebhookError(
                "Missing Stripe-Signature header",
                error_code="MISSING_SIGNATURE",
            )

        try:
            stripe.Webhook.construct_event(
                request.body,
                signature,
                settings.STRIPE_WEBHOOK_SECRET,
            )
        except stripe.SignatureVerificationError as e:
            raise WebhookError(
                "Invalid Stripe webhook signature",
                error_code="INVALID_SIGNATURE",
            ) from e
        except ValueError as e:
            raise WebhookError(
                "Malformed Stripe webhook payload",
                error_code="INVALID_PAYLOAD",
            ) from e

        try:
            event = json.loads(request.body)
            event_id = event["id"]
            event_type = event["type"]
            obj = event["data"]["object"]
        except (ValueError, KeyError, TypeError) as e:
            raise WebhookError(
                "Malformed Stripe webhook payload",
                error_code="INVALID_PAYLOAD",
            ) from e

        if event_type.startswith("payment_intent."):
            normalized_type = {
                "payment_intent.succeeded": WebhookEventType.PAYMENT_SUCCEEDED,
                "payment_intent.payment_failed": WebhookEventType.PAYMENT_FAILED,
                "payment_intent.processing": WebhookEventType.PAYMENT_PROCESSING,
            }.get(event_type)
            if normalized_type:
                return cls._normalize_intent_event(event_id, event_type, normalized_type, obj)

        if event_type == "charge.refunded":
            return cls._normalize_refund_event(event_id, event_type, obj)

        raise WebhookError(
            f"Unhandled Stripe event type: {event_type}",
            error_code="UNSUPPORTED_EVENT_TYPE",
            details={"event_type": event_type},
        )

    @classmethod
    def _normalize_intent_event(
        cls,
        event_id: str,
        event_type: str,
        normalized_type: str,
        intent: dict[str, Any],
    ) -> NormalizedWebhookEvent:
        last_error = intent.get("last_payment_error") or {}
        data: dict[str, Any] = {
            "payment_method": intent.get("payment_method"),
            "customer": intent.get("customer"),
        }
        if normalized_type == WebhookEventType.PAYMENT_FAILED:
            data["failure_code"] = last_error.get("decline_code") or last_error.get("code")
            data["failure_message"] = last_error.get("message")

        return NormalizedWebhookEvent(
            event_id=event_id,
            type=normalized_type,
            provider=cls.provider,
            raw_type=event_type,
            payment_id=intent.get("id"),
            order_id=(intent.get("metadata") or {}).get("order_id"),
            amount=intent.get("amount") or 0,
            currency=(intent.get("currency") or "").lower(),
            status=intent.get("status"),
            data=data,
        )

    @classmethod
    def _normalize_refund_event(
        cls,
        event_id: str,
        event_type: str,
        charge: dict[str, Any],
    ) -> NormalizedWebhookEvent:
        refunds = (charge.get("refunds") or {}).get("data") or []
        latest = refunds[0] if refunds else {}

        return NormalizedWebhookEvent(
            event_id=event_id,
            type=WebhookEventType.REFUND_SUCCEEDED,
            provider=cls.provider,
            raw_type=event_type,
            payment_id=charge.get("payment_intent"),
            order_id=(charge.get("metadata") or {}).get("order_id"),
            amount=latest.get("amount") or charge.get("amount_refunded") or 0,
            currency=(charge.get("currency") or "").lower(),
            status="refunded",
            data={
                "refund_id": latest.get("id"),
                "reason": latest.get("reason"),
                "amount_refunded": charge.get("amount_refunded"),
            },
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    @classmethod
    def _get_or_create_customer(cls, email: str, name: str | None = None) -> str:
        """Return the Stripe customer id for an email, creating one if needed."""
        existing = stripe.Customer.list(email=email, limit=1)
        if existing.data:
            return existing.data[0].id

        customer = stripe.Customer.create(email=email, name=name)
        cls.get_logger().info(
            "Created Stripe customer",
            extra={"customer_id": customer.id},
        )
        return customer.id

    @classmethod
    def _intent_to_result(cls, intent: Any) -> PaymentResult:
        last_error = intent.last_payment_error
        return PaymentResult(
            payment_id=intent.id,
            status=cls.normalize_status(intent.status),
            amount=intent.amount,
            currency=intent.currency.lower(),
            payment_method=cls._payment_method_snapshot(intent.payment_method),
            failure_code=getattr(last_error, "code", None) if last_error else None,
            failure_message=getattr(last_error, "message", None) if last_error else None,
            metadata=dict(intent.metadata or {}),
        )

    @staticmethod
    def _payment_method_snapshot(payment_method: Any) -> dict[str, Any]:
        """Reduce an expanded PaymentMethod to type, brand and last4."""
        if not payment_method:
            return {}
        if isinstance(payment_method, str):
            return {"id": payment_method}
        card = getattr(payment_method, "card", None)
        return {
            "id": payment_method.id,
            "type": payment_method.type,
            "brand": getattr(card, "brand", None),
            "last4": getattr(card, "last4", None),
        }

    # =========================================================================
    # Error Handling
    # =========================================================================

    @classmethod
    def _handle_stripe_error(
        cls,
        error: Exception,
        log_context: dict[str, Any],
        duration_ms: float,
    ) -> None:
        """
        Translate Stripe exceptions to domain exceptions.

        Raises:
            StripeCardDeclinedError: Card was declined
            StripeInsufficientFundsError: Insufficient funds
            StripeInvalidAccountError: Invalid Connect account
            StripeInvalidRequestError: Invalid request parameters
            StripeRateLimitError: Rate limited
            StripeAPIUnavailableError: API unavailable or unknown failure
        """
        logger = cls.get_logger()
        log_context = {**log_context, "duration_ms": duration_ms}

        if isinstance(error, stripe.CardError):
            decline_code = _decline_code(error)
            logger.warning(
                "Card error from Stripe",
                extra={**log_context, "decline_code": decline_code},
            )

            if decline_code == "insufficient_funds":
                raise StripeInsufficientFundsError(
                    str(error.user_message or error),
                    stripe_code=error.code,
                    decline_code=decline_code,
                ) from error

            raise StripeCardDeclinedError(
                str(error.user_message or error),
                stripe_code=error.code,
                decline_code=decline_code,
            ) from error

        elif isinstance(error, stripe.InvalidRequestError):
            logger.error(
                "Invalid request to Stripe",
                extra={**log_context, "stripe_code": error.code},
            )

            if "account" in str(error).lower():
                raise StripeInvalidAccountError(
                    str(error),
                    stripe_code=error.code,
                ) from error

            raise StripeInvalidRequestError(
                str(error),
                stripe_code=error.code,
            ) from error

        elif isinstance(error, stripe.RateLimitError):
            logger.warning("Rate limited by Stripe", extra=log_context)
            raise StripeRateLimitError(
                "Stripe rate limit exceeded. Please retry.",
                stripe_code="rate_limit",
            ) from error

        elif isinstance(error, stripe.APIConnectionError):
            logger.error("Connection error to Stripe", extra=log_context, exc_info=True)
            raise StripeAPIUnavailableError(
                "Could not connect to Stripe. Please retry.",
                stripe_code="api_connection_error",
            ) from error

        elif isinstance(error, stripe.AuthenticationError):
            logger.critical(
                "Stripe authentication failed - check API key",
                extra=log_context,
            )
            raise StripeInvalidRequestError(
                "Stripe authentication failed",
                stripe_code="authentication_error",
            ) from error

        elif isinstance(error, stripe.APIError):
            logger.error("Stripe API error", extra=log_context, exc_info=True)
            raise StripeAPIUnavailableError(
                "Stripe service error. Please retry.",
                stripe_code="api_error",
            ) from error

        else:
            logger.error(
                f"Unexpected error from Stripe: {type(error).__name__}",
                extra=log_context,
                exc_info=True,
            )
            raise StripeAPIUnavailableError(
                f"Unexpected Stripe error: {error}",
                stripe_code="unknown_error",
            ) from error
