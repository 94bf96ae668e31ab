"""
Payment state machine driver.

Applies verified, normalized provider events to Payment and Order. This is
the only writer of payment outcomes: client confirmation records attempts,
the webhook decides.

Event rules:
    payment.succeeded   Payment -> SUCCEEDED, Order -> PAID with the fee
                        captured from the seller's rate at this moment.
                        Honoured after a failure (provider capture wins).
    payment.failed      Payment -> FAILED, Order -> FAILED. No-op once the
                        payment has succeeded.
    payment.processing  Payment -> PROCESSING. No-op once terminal.

Usage:
    from payments.services import PaymentStateService

    result = PaymentStateService.handle_succeeded(normalized_event)
    result.data  # {"outcome": "applied", "order_status": "paid", ...}
"""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING, Any

from core.services import BaseService, ServiceResult

from payments.models import Order, Payment
from payments.services.fees import calculate_platform_fee
from payments.state_machines import OrderStatus, PaymentStatus

if TYPE_CHECKING:
    from payments.adapters import NormalizedWebhookEvent


logger = logging.getLogger(__name__)


# Outcomes recorded in WebhookEvent.result
OUTCOME_APPLIED = "applied"
OUTCOME_NOOP = "noop"
OUTCOME_IGNORED = "ignored"


class PaymentStateService(BaseService):
    """
    Drives Payment and Order transitions from provider events.

    Every handler locks the Payment and its Order with select_for_update
    and applies the change in one transaction. Expected non-events
    (unknown payment, stale event) return a successful ServiceResult
    describing why nothing changed.
    """

    # =========================================================================
    # Lookup
    # =========================================================================

    @classmethod
    def find_payment(
        cls,
        provider: str,
        payment_id: str | None,
        order_id: str | None = None,
    ) -> Payment | None:
        """
        Locate and lock the Payment an event refers to.

        Looks up (provider, provider_payment_id) first, then falls back to
        the order id echoed by the provider. The fallback covers rails whose
        final payment key is only known after the client confirmed.
        """
        payments = Payment.objects.select_for_update()

        if payment_id:
            payment = payments.filter(provider=provider, provider_payment_id=payment_id).first()
            if payment:
                return payment

        if order_id:
            try:
                order_uuid = uuid.UUID(str(order_id))
            except ValueError:
                return None
            return payments.filter(provider=provider, order_id=order_uuid).first()

        return None

    @classmethod
    def _lock_order(cls, payment: Payment) -> Order:
        return Order.objects.select_for_update().get(pk=payment.order_id)

    @classmethod
    def _outcome(cls, outcome: str, payment: Payment | None = None, **extra: Any) -> dict[str, Any]:
        result: dict[str, Any] = {"outcome": outcome}
        if payment is not None:
            result.update(
                {
                    "payment_id": str(payment.id),
                    "order_id": str(payment.order_id),
                    "payment_status": payment.status,
                }
            )
        result.update(extra)
        return result

    @classmethod
    def _not_found(cls, event: NormalizedWebhookEvent) -> ServiceResult[dict]:
        cls.get_logger().warning(
            f"No payment found for {event.type} event",
            extra={
                "provider": event.provider,
                "event_id": event.event_id,
                "provider_payment_id": event.payment_id,
                "order_id": event.order_id,
            },
        )
        return ServiceResult.success(cls._outcome(OUTCOME_IGNORED, reason="payment_not_found"))

    # =========================================================================
    # Event Handlers
    # =========================================================================

    @classmethod
    def handle_succeeded(cls, event: NormalizedWebhookEvent) -> ServiceResult[dict]:
        """
        Apply payment.succeeded.

        Order becomes PAID with access granted and the platform fee fixed
        from the seller's current tier. A payment already SUCCEEDED or
        REFUNDED is left alone.
        """
        with cls.atomic():
            payment = cls.find_payment(event.provider, event.payment_id, event.order_id)
            if payment is None:
                return cls._not_found(event)

            if payment.status in (PaymentStatus.SUCCEEDED, PaymentStatus.REFUNDED):
                return ServiceResult.success(cls._outcome(OUTCOME_NOOP, payment, reason="already_succeeded"))

            if event.amount and event.amount != payment.amount:
                cls.get_logger().error(
                    "Succeeded event amount does not match payment",
                    extra={
                        "payment_id": str(payment.id),
                        "event_amount": event.amount,
                        "payment_amount": payment.amount,
                    },
                )
                return ServiceResult.failure(
                    f"Amount mismatch: event {event.amount}, payment {payment.amount}",
                    error_code="AMOUNT_MISMATCH",
                )

            order = cls._lock_order(payment)
            was_failed = payment.status == PaymentStatus.FAILED

            payment.succeed(payment_method=_payment_method_snapshot(event.data.get("payment_method")))
            if event.payment_id and payment.provider_payment_id != event.payment_id:
                payment.provider_payment_id = event.payment_id
            if event.data.get("customer") and not payment.customer_id:
                payment.customer_id = event.data["customer"]
            payment.save()

            platform_fee = order.platform_fee
            if order.status in (OrderStatus.PENDING, OrderStatus.FAILED):
                platform_fee = calculate_platform_fee(order.amount, order.seller)
                order.mark_paid(platform_fee=platform_fee)
                order.save()

        cls.get_logger().info(
            f"Payment succeeded for order {order.id}",
            extra={
                "order_id": str(order.id),
                "provider": payment.provider,
                "amount": order.amount,
                "platform_fee": platform_fee,
                "after_failure": was_failed,
            },
        )
        return ServiceResult.success(
            cls._outcome(
                OUTCOME_APPLIED,
                payment,
                order_status=order.status,
                platform_fee=platform_fee,
                seller_amount=order.seller_amount,
            )
        )

    @classmethod
    def handle_failed(cls, event: NormalizedWebhookEvent) -> ServiceResult[dict]:
        """
        Apply payment.failed.

        No financial side effects. Stale failures for a payment that
        already succeeded are accepted as no-ops.
        """
        failure_code = event.data.get("failure_code")
        failure_message = event.data.get("failure_message")

        with cls.atomic():
            payment = cls.find_payment(event.provider, event.payment_id, event.order_id)
            if payment is None:
                return cls._not_found(event)

            if payment.status in (
                PaymentStatus.SUCCEEDED,
                PaymentStatus.REFUNDED,
                PaymentStatus.FAILED,
            ):
                return ServiceResult.success(cls._outcome(OUTCOME_NOOP, payment, reason="stale_event"))

            order = cls._lock_order(payment)

            payment.fail(failure_code, failure_message)
            payment.save()

            if order.status == OrderStatus.PENDING:
                order.mark_failed(failure_code, failure_message)
                order.save()

        cls.get_logger().info(
            f"Payment failed for order {order.id}",
            extra={
                "order_id": str(order.id),
                "provider": payment.provider,
                "failure_code": failure_code,
            },
        )
        return ServiceResult.success(
            cls._outcome(
                OUTCOME_APPLIED,
                payment,
                order_status=order.status,
                failure_code=failure_code,
            )
        )

    @classmethod
    def handle_processing(cls, event: NormalizedWebhookEvent) -> ServiceResult[dict]:
        """Apply payment.processing. Ignored unless the payment is still open."""
        with cls.atomic():
            payment = cls.find_payment(event.provider, event.payment_id, event.order_id)
            if payment is None:
                return cls._not_found(event)

            if payment.status not in (PaymentStatus.CREATED, PaymentStatus.REQUIRES_PAYMENT_METHOD):
                return ServiceResult.success(cls._outcome(OUTCOME_NOOP, payment, reason="stale_event"))

            payment.start_processing()
            payment.save()

        return ServiceResult.success(cls._outcome(OUTCOME_APPLIED, payment))


def _payment_method_snapshot(payment_method: Any) -> dict | None:
    """Normalize a provider payment method (id string or dict) to a dict."""
    if not payment_method:
        return None
    if isinstance(payment_method, dict):
        return payment_method
    return {"id": str(payment_method)}
