"""
Checkout service: order creation and client-side payment confirmation.

Checkout creates the Order and its Payment intent in one transaction,
through the adapter selected from the order currency. Confirmation only
forwards the client's attempt to the provider and records what the
provider said; the order is marked paid by the verified webhook, never
here.

Usage:
    from payments.services import CheckoutService

    checkout = CheckoutService.create_checkout(buyer, product)
    # Hand checkout.client_secret to the frontend widget

    CheckoutService.confirm_payment(
        checkout.order, buyer, payment_method_id="pm_card_visa"
    )
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from core.exceptions import PermissionDeniedError
from core.services import BaseService

from payments.adapters import (
    CreatePaymentIntentParams,
    IdempotencyKeyGenerator,
    NormalizedPaymentStatus,
    PaymentResult,
    get_adapter,
    select_provider,
)
from payments.exceptions import PaymentValidationError
from payments.models import Order, Payment
from payments.state_machines import OrderStatus, PaymentStatus

if TYPE_CHECKING:
    from authentication.models import User
    from payments.models import Product


logger = logging.getLogger(__name__)


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class CheckoutResult:
    """
    Outcome of a checkout.

    Attributes:
        order: The new PENDING order
        payment: Payment intent record with the selected provider
        client_secret: Secret the frontend uses to complete authorization
    """

    order: Order
    payment: Payment
    client_secret: str

    @property
    def provider(self) -> str:
        return self.payment.provider


# =============================================================================
# Checkout Service
# =============================================================================


class CheckoutService(BaseService):
    """
    Creates orders and records client confirmation attempts.

    The Order starts PENDING with platform_fee 0 and seller_amount equal
    to amount; the fee is fixed later, when the payment succeeds.
    """

    @classmethod
    def create_checkout(cls, buyer: User, product: Product) -> CheckoutResult:
        """
        Create an order for a product and its provider payment intent.

        The provider call runs inside the transaction: if it fails the
        order is rolled back. A stray intent left by a later database
        failure expires unused on the provider side.

        Raises:
            PaymentValidationError: Product inactive or owned by the buyer
            PaymentProcessingError: Provider call failed
        """
        if not product.is_active:
            raise PaymentValidationError(
                "Product is not available for purchase",
                error_code="PRODUCT_UNAVAILABLE",
                details={"product_id": str(product.id)},
            )
        if product.seller_id == buyer.id:
            raise PaymentValidationError(
                "Sellers cannot buy their own products",
                error_code="SELF_PURCHASE",
                details={"product_id": str(product.id)},
            )

        currency = product.currency.lower()
        provider = select_provider(currency)
        adapter = get_adapter(provider)

        with cls.atomic():
            order = Order.objects.create(
                buyer=buyer,
                product=product,
                amount=product.price,
                currency=currency,
                platform_fee=0,
                seller_amount=product.price,
            )

            intent = adapter.create_payment_intent(
                CreatePaymentIntentParams(
                    amount=order.amount,
                    currency=currency,
                    order_id=str(order.id),
                    customer_email=buyer.email,
                    customer_name=buyer.name or None,
                    description=product.title,
                    metadata={"product_id": str(product.id), "buyer_id": str(buyer.id)},
                    idempotency_key=IdempotencyKeyGenerator.generate(
                        "create_intent", order.id
                    ),
                )
            )

            payment = Payment.objects.create(
                order=order,
                provider=provider,
                provider_payment_id=intent.id,
                customer_id=intent.customer_id,
                amount=order.amount,
                currency=currency,
            )

        cls.get_logger().info(
            f"Checkout created for order {order.id}",
            extra={
                "order_id": str(order.id),
                "provider": provider,
                "provider_payment_id": intent.id,
                "amount": order.amount,
                "currency": currency,
            },
        )

        return CheckoutResult(order=order, payment=payment, client_secret=intent.client_secret)

    @classmethod
    def confirm_payment(
        cls,
        order: Order,
        user: User,
        payment_method_id: str | None = None,
        payment_key: str | None = None,
    ) -> PaymentResult:
        """
        Forward the client's confirmation to the provider.

        Records the attempt on the Payment (requires_payment_method or
        processing, plus any decline details). Success and failure are
        left for the webhook to apply.

        Args:
            order: Order being paid
            user: Must be the order's buyer
            payment_method_id: Card rail payment method (pm_xxx)
            payment_key: Key issued by a widget-based rail; replaces the
                provisional payment id stored at checkout

        Raises:
            PermissionDeniedError: user is not the buyer
            PaymentValidationError: order no longer payable
            PaymentProcessingError: Provider call failed (retryable)
        """
        if order.buyer_id != user.id:
            raise PermissionDeniedError(
                "Only the buyer can confirm this order",
                error_code="NOT_ORDER_BUYER",
                details={"order_id": str(order.id)},
            )

        with cls.atomic():
            payment = Payment.objects.select_for_update().get(order_id=order.id)

            if order.status not in (OrderStatus.PENDING, OrderStatus.FAILED) or payment.is_terminal:
                raise PaymentValidationError(
                    "Order is not awaiting payment",
                    error_code="ORDER_NOT_PAYABLE",
                    details={"order_id": str(order.id), "status": order.status},
                )

            if payment_key and payment_key != payment.provider_payment_id:
                payment.provider_payment_id = payment_key
                payment.save(update_fields=["provider_payment_id", "updated_at"])

        adapter = get_adapter(payment.provider)
        result = adapter.confirm_payment(
            payment.provider_payment_id,
            payment_method_id=payment_method_id,
            order_id=str(order.id),
            amount=order.amount,
        )

        with cls.atomic():
            payment = Payment.objects.select_for_update().get(pk=payment.pk)
            cls._record_attempt(payment, result)

        cls.get_logger().info(
            f"Payment confirmation recorded for order {order.id}",
            extra={
                "order_id": str(order.id),
                "provider": payment.provider,
                "provider_status": result.status,
                "failure_code": result.failure_code,
            },
        )
        return result

    @classmethod
    def _record_attempt(cls, payment: Payment, result: PaymentResult) -> None:
        """Apply the non-terminal part of a confirmation result."""
        if result.status == NormalizedPaymentStatus.REQUIRES_PAYMENT_METHOD:
            if payment.status in (PaymentStatus.CREATED, PaymentStatus.PROCESSING):
                payment.require_payment_method(result.failure_code, result.failure_message)
            elif result.failure_code:
                payment.failure_code = result.failure_code
                payment.failure_message = result.failure_message
        elif result.status == NormalizedPaymentStatus.PROCESSING:
            if payment.status in (PaymentStatus.CREATED, PaymentStatus.REQUIRES_PAYMENT_METHOD):
                payment.start_processing()
        elif result.status == NormalizedPaymentStatus.FAILED and result.failure_code:
            payment.failure_code = result.failure_code
            payment.failure_message = result.failure_message

        payment.metadata = {**payment.metadata, "last_confirm_status": result.status}
        payment.save()
