"""
TossPayments adapter for the KRW bank-transfer rail.

Toss uses a client-side payment widget: the server only reserves an order
id, the widget authorizes the payment and hands back a paymentKey, and the
server then confirms it with POST /payments/confirm.

Configuration (via settings):
- TOSS_SECRET_KEY: Secret key, sent as HTTP Basic "secret_key:"
- TOSS_WEBHOOK_SECRET: HMAC key for the Toss-Signature header
- TOSS_API_BASE_URL: API root (default: https://api.tosspayments.com/v1)
- TOSS_API_TIMEOUT_SECONDS: Request timeout (default: 10)

Usage:
    from payments.adapters import TossAdapter

    result = TossAdapter.confirm_payment(
        payment_id=payment_key,
        order_id=str(order.id),
        amount=order.amount,
    )
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import time
from datetime import datetime
from typing import Any

import requests
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
    WebhookEventType,
    WebhookRequest,
)
from payments.exceptions import (
    PaymentError,
    PaymentNotFoundError,
    PaymentValidationError,
    RefundError,
    TossError,
    WebhookError,
)
from payments.state_machines import PaymentProvider

DEFAULT_TOSS_API_BASE_URL = "https://api.tosspayments.com/v1"

# Toss payment status -> normalized status
_STATUS_MAP = {
    "DONE": NormalizedPaymentStatus.SUCCEEDED,
    "IN_PROGRESS": NormalizedPaymentStatus.PROCESSING,
    "WAITING_FOR_DEPOSIT": NormalizedPaymentStatus.PROCESSING,
    "READY": NormalizedPaymentStatus.REQUIRES_PAYMENT_METHOD,
}

_EVENT_TYPES = {
    "PAYMENT_DONE": WebhookEventType.PAYMENT_SUCCEEDED,
    "PAYMENT_FAILED": WebhookEventType.PAYMENT_FAILED,
    "PAYMENT_CANCELED": WebhookEventType.REFUND_SUCCEEDED,
}


class TossAdapter(PaymentProviderAdapter):
    """
    Adapter for the TossPayments REST API.

    All methods are classmethods; every HTTP call goes through _request()
    for auth, timeout, timing logs and error translation.
    """

    provider = PaymentProvider.TOSS

    # =========================================================================
    # Configuration
    # =========================================================================

    @staticmethod
    def _base_url() -> str:
        return getattr(settings, "TOSS_API_BASE_URL", DEFAULT_TOSS_API_BASE_URL).rstrip("/")

    @staticmethod
    def _auth_header() -> str:
        token = base64.b64encode(f"{settings.TOSS_SECRET_KEY}:".encode()).decode()
        return f"Basic {token}"

    @staticmethod
    def normalize_status(toss_status: str | None) -> str:
        """Map a Toss payment status onto the normalized vocabulary."""
        return _STATUS_MAP.get(toss_status or "", NormalizedPaymentStatus.FAILED)

    # =========================================================================
    # HTTP
    # =========================================================================

    @classmethod
    def _request(
        cls,
        method: str,
        path: str,
        operation: str,
        payload: dict[str, Any] | None = None,
        idempotency_key: str | None = None,
    ) -> dict[str, Any]:
        """
        Call the Toss API and return the decoded JSON body.

        Raises:
            TossError: Non-2xx answer (toss_code/status_code set) or network failure
        """
        logger = cls.get_logger()
        headers = {
            "Authorization": cls._auth_header(),
            "Content-Type": "application/json",
        }
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key

        log_context = {"operation": operation, "path": path}
        start_time = time.time()
        logger.info("Starting Toss operation", extra=log_context)

        try:
            response = requests.request(
                method,
                f"{cls._base_url()}{path}",
                headers=headers,
                json=payload,
                timeout=getattr(settings, "TOSS_API_TIMEOUT_SECONDS", 10),
            )
        except requests.RequestException as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.error(
                "Connection error to Toss",
                extra={**log_context, "duration_ms": duration_ms},
                exc_info=True,
            )
            raise TossError(
                "Could not connect to Toss Payments. Please retry.",
                error_code="TOSS_UNAVAILABLE",
            ) from e

        duration_ms = (time.time() - start_time) * 1000

        if not response.ok:
            try:
                body = response.json()
            except ValueError:
                body = {}
            logger.warning(
                "Toss operation rejected",
                extra={
                    **log_context,
                    "status_code": response.status_code,
                    "toss_code": body.get("code"),
                    "duration_ms": duration_ms,
                },
            )
            raise TossError(
                body.get("message") or f"Toss request failed with HTTP {response.status_code}",
                toss_code=body.get("code"),
                status_code=response.status_code,
            )

        logger.info(
            "Toss operation completed",
            extra={**log_context, "status_code": response.status_code, "duration_ms": duration_ms},
        )
        return response.json()

    # =========================================================================
    # Payments
    # =========================================================================

    @classmethod
    def create_payment_intent(cls, params: CreatePaymentIntentParams) -> PaymentIntentResult:
        """
        Reserve a payment for the client widget.

        No API call: the intent id is the order id and the client secret is
        the order id suffixed with a millisecond timestamp. The real
        paymentKey arrives with client confirmation.
        """
        client_secret = f"{params.order_id}_{int(time.time() * 1000)}"

        cls.get_logger().info(
            "Prepared Toss payment",
            extra={"order_id": params.order_id, "amount": params.amount},
        )

        return PaymentIntentResult(
            id=params.order_id,
            client_secret=client_secret,
            amount=params.amount,
            currency=params.currency,
            status="pending",
            metadata={
                **params.metadata,
                "order_id": params.order_id,
                "customer_email": params.customer_email or "",
            },
        )

    @classmethod
    def confirm_payment(
        cls,
        payment_id: str,
        payment_method_id: str | None = None,
        order_id: str | None = None,
        amount: int | None = None,
    ) -> PaymentResult:
        """
        Confirm a widget-authorized payment.

        Args:
            payment_id: Toss paymentKey returned to the widget
            order_id: Local order id the widget was opened with
            amount: Amount the widget authorized; Toss rejects a mismatch

        A card or bank rejection (4xx) is returned as a failed result with
        the Toss code; 5xx and network errors raise TossError.
        """
        if not order_id or not amount:
            raise PaymentValidationError(
                "order_id and amount are required to confirm a Toss payment",
                error_code="TOSS_CONFIRM_PARAMS_REQUIRED",
            )

        try:
            payment = cls._request(
                "POST",
                "/payments/confirm",
                operation="confirm_payment",
                payload={"paymentKey": payment_id, "orderId": order_id, "amount": amount},
            )
        except TossError as e:
            if e.is_retryable:
                raise
            return PaymentResult(
                payment_id=payment_id,
                status=NormalizedPaymentStatus.FAILED,
                amount=amount,
                currency="krw",
                failure_code=e.toss_code,
                failure_message=e.message,
            )

        return cls._payment_to_result(payment)

    @classmethod
    def refund_payment(
        cls,
        payment_id: str,
        amount: int | None = None,
        reason: str | None = None,
        idempotency_key: str | None = None,
    ) -> RefundResult:
        """
        Cancel all (amount=None) or part of a payment.

        Raises:
            RefundError: Toss rejected the cancellation
            TossError: Transient failure (is_retryable)
        """
        payload: dict[str, Any] = {"cancelReason": reason or "Customer requested refund"}
        if amount:
            payload["cancelAmount"] = amount

        try:
            payment = cls._request(
                "POST",
                f"/payments/{payment_id}/cancel",
                operation="refund_payment",
                payload=payload,
                idempotency_key=idempotency_key,
            )
        except TossError as e:
            if e.is_retryable:
                raise
            raise RefundError(
                f"Toss rejected the refund: {e.message}",
                error_code="REFUND_REJECTED",
                details=e.details,
            ) from e

        cancels = payment.get("cancels") or []
        latest = cancels[-1] if cancels else {}
        return RefundResult(
            id=latest.get("transactionKey") or payment.get("paymentKey") or payment_id,
            payment_id=payment_id,
            amount=latest.get("cancelAmount") or amount or 0,
            currency=(payment.get("currency") or "krw").lower(),
            status="succeeded" if payment.get("status") in ("CANCELED", "PARTIAL_CANCELED") else "pending",
            reason=reason,
        )

    @classmethod
    def get_payment(cls, payment_id: str) -> PaymentDetails:
        """
        Look up a payment by paymentKey.

        Raises:
            PaymentNotFoundError: Toss answered 404
            PaymentError: Any other lookup failure
        """
        try:
            payment = cls._request("GET", f"/payments/{payment_id}", operation="get_payment")
        except TossError as e:
            if e.status_code == 404:
                raise PaymentNotFoundError(
                    f"Toss payment not found: {payment_id}",
                    details={"payment_id": payment_id, "toss_code": e.toss_code},
                ) from e
            raise PaymentError(
                f"Failed to retrieve Toss payment: {e.message}",
                error_code="PAYMENT_LOOKUP_FAILED",
                details=e.details,
            ) from e

        timestamp = payment.get("approvedAt") or payment.get("requestedAt")
        return PaymentDetails(
            id=payment.get("paymentKey", payment_id),
            status=cls.normalize_status(payment.get("status")),
            amount=payment.get("totalAmount") or 0,
            currency=(payment.get("currency") or "krw").lower(),
            order_id=payment.get("orderId"),
            payment_method=cls._payment_method_snapshot(payment),
            metadata={"order_name": payment.get("orderName")},
            created_at=datetime.fromisoformat(timestamp) if timestamp else None,
        )

    # =========================================================================
    # Webhooks
    # =========================================================================

    @classmethod
    def verify_webhook_signature(cls, request: WebhookRequest) -> bool:
        """
        Check Toss-Signature: base64 HMAC-SHA256 of the raw body.

        Uses constant-time comparison to prevent timing attacks.
        """
        signature = request.header("Toss-Signature")
        secret = getattr(settings, "TOSS_WEBHOOK_SECRET", "")
        if not signature or not secret:
            return False

        expected = base64.b64encode(
            hmac.new(secret.encode("utf-8"), request.body, hashlib.sha256).digest()
        ).decode()

        return hmac.compare_digest(expected, signature)

    @classmethod
    def handle_webhook(cls, request: WebhookRequest) -> NormalizedWebhookEvent:
        """
        Verify and normalize a Toss webhook delivery.

        Toss deliveries carry no event id; the idempotency key is
        "{eventType}:{paymentKey}:{sha256(body)[:16]}", stable across
        redeliveries of the same body.

        Raises:
            WebhookError: Invalid signature, malformed payload or unsupported type
        """
        if not cls.verify_webhook_signature(request):
            raise WebhookError(
                "Invalid Toss webhook signature",
                error_code="INVALID_SIGNATURE",
            )

        try:
            body = json.loads(request.body)
            event_type = body["eventType"]
            data = body["data"]
            payment_key = data["paymentKey"]
        except (ValueError, KeyError, TypeError) as e:
            raise WebhookError(
                "Malformed Toss webhook payload",
                error_code="INVALID_PAYLOAD",
            ) from e

        normalized_type = _EVENT_TYPES.get(event_type)
        if normalized_type is None:
            raise WebhookError(
                f"Unhandled Toss event type: {event_type}",
                error_code="UNSUPPORTED_EVENT_TYPE",
                details={"event_type": event_type},
            )

        body_hash = hashlib.sha256(request.body).hexdigest()[:16]
        event_id = f"{event_type}:{payment_key}:{body_hash}"
        currency = (data.get("currency") or "krw").lower()

        if normalized_type == WebhookEventType.REFUND_SUCCEEDED:
            cancels = data.get("cancels") or [{}]
            cancel = cancels[-1]
            amount = cancel.get("cancelAmount") or 0
            extra = {
                "refund_id": cancel.get("transactionKey"),
                "reason": cancel.get("cancelReason"),
                "canceled_at": cancel.get("canceledAt"),
            }
        elif normalized_type == WebhookEventType.PAYMENT_FAILED:
            failure = data.get("failure") or {}
            amount = data.get("totalAmount") or 0
            extra = {
                "failure_code": failure.get("code"),
                "failure_message": failure.get("message"),
            }
        else:
            amount = data.get("totalAmount") or 0
            extra = {
                "payment_method": cls._payment_method_snapshot(data),
                "approved_at": data.get("approvedAt"),
            }

        return NormalizedWebhookEvent(
            event_id=event_id,
            type=normalized_type,
            provider=cls.provider,
            raw_type=event_type,
            payment_id=payment_key,
            order_id=data.get("orderId"),
            amount=amount,
            currency=currency,
            status=data.get("status"),
            data=extra,
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    @classmethod
    def _payment_to_result(cls, payment: dict[str, Any]) -> PaymentResult:
        failure = payment.get("failure") or {}
        return PaymentResult(
            payment_id=payment.get("paymentKey", ""),
            status=cls.normalize_status(payment.get("status")),
            amount=payment.get("totalAmount") or 0,
            currency=(payment.get("currency") or "krw").lower(),
            payment_method=cls._payment_method_snapshot(payment),
            failure_code=failure.get("code"),
            failure_message=failure.get("message"),
            metadata={"order_id": payment.get("orderId"), "order_name": payment.get("orderName")},
        )

    @staticmethod
    def _payment_method_snapshot(payment: dict[str, Any]) -> dict[str, Any]:
        """Card or virtual-account details in the same shape as Stripe's."""
        card = payment.get("card")
        if card:
            return {"type": "card", "brand": card.get("company"), "last4": card.get("number")}
        account = payment.get("virtualAccount")
        if account:
            return {
                "type": "virtual_account",
                "brand": account.get("bank"),
                "last4": account.get("accountNumber"),
            }
        method = payment.get("method")
        return {"type": method} if method else {}
