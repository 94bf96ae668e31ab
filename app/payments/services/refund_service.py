"""
Refund service for returning money to buyers.

Two entry points:
1. request_refund: the buyer asks for (part of) their money back. Policy is
   checked, a Refund row is created and the provider refund is submitted
   with an idempotency key derived from the refund id.
2. apply_refund_succeeded: the provider confirms a refund by webhook. The
   refund is applied to the order totals; a full refund revokes access,
   and a refund on an already settled order becomes a negative adjustment
   for the seller's next settlement.

Each refund reverses its proportional share of the platform fee, so the
seller is only charged back their own portion.

Usage:
    from payments.services import RefundService

    refund = RefundService.request_refund(order, buyer, amount=2500, reason="Damaged")
    refund.status  # "processing" until the provider webhook arrives
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import TYPE_CHECKING

from django.conf import settings
from django.db.models import Sum
from django.utils import timezone

from core.services import BaseService, ServiceResult

from payments.adapters import IdempotencyKeyGenerator, NormalizedPaymentStatus, get_adapter
from payments.exceptions import RefundError
from payments.models import Order, Payment, Refund, SettlementItem
from payments.services.fees import split_refund_fee
from payments.services.payment_service import (
    OUTCOME_APPLIED,
    OUTCOME_IGNORED,
    OUTCOME_NOOP,
    PaymentStateService,
)
from payments.state_machines import (
    OrderStatus,
    PaymentStatus,
    RefundStatus,
    SettlementItemType,
)

if TYPE_CHECKING:
    from authentication.models import User
    from payments.adapters import NormalizedWebhookEvent


logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

REFUNDABLE_ORDER_STATES = frozenset([OrderStatus.PAID, OrderStatus.COMPLETED])

IN_FLIGHT_REFUND_STATES = frozenset([RefundStatus.PENDING, RefundStatus.PROCESSING])


# =============================================================================
# Refund Service
# =============================================================================


class RefundService(BaseService):
    """
    Service for refund requests and provider refund confirmations.

    Refund policy:
        - only the order's buyer may ask
        - only PAID or COMPLETED orders
        - within PAYMENT_REFUND_WINDOW_DAYS of paid_at
        - never beyond what is still refundable, counting refunds in flight

    Error semantics:
        - RefundError (policy or provider rejection): the Refund, if one
          was created, is stored FAILED and the error re-raised
        - retryable PaymentProcessingError: the transaction rolls back, no
          Refund row survives, the caller may try again
    """

    # =========================================================================
    # Eligibility
    # =========================================================================

    @classmethod
    def refund_deadline(cls, order: Order):
        """Last moment a refund may be requested, None if never paid."""
        if order.paid_at is None:
            return None
        return order.paid_at + timedelta(days=settings.PAYMENT_REFUND_WINDOW_DAYS)

    @classmethod
    def _in_flight(cls, order: Order) -> tuple[int, int]:
        """Amount and fee share of refunds submitted but not yet confirmed."""
        totals = order.refunds.filter(status__in=IN_FLIGHT_REFUND_STATES).aggregate(
            amount=Sum("amount"),
            fee=Sum("platform_fee_reversed"),
        )
        return totals["amount"] or 0, totals["fee"] or 0

    @classmethod
    def _check_eligibility(cls, order: Order, user: User) -> None:
        if order.buyer_id != user.id:
            raise RefundError(
                "Only the buyer can request a refund",
                error_code="NOT_ORDER_BUYER",
                details={"order_id": str(order.id)},
            )

        if order.status not in REFUNDABLE_ORDER_STATES:
            raise RefundError(
                f"Order in status '{order.status}' cannot be refunded",
                error_code="ORDER_NOT_REFUNDABLE",
                details={"order_id": str(order.id), "status": order.status},
            )

        deadline = cls.refund_deadline(order)
        if deadline is None or timezone.now() > deadline:
            raise RefundError(
                "Refund window has expired",
                error_code="REFUND_WINDOW_EXPIRED",
                details={
                    "order_id": str(order.id),
                    "refund_window_days": settings.PAYMENT_REFUND_WINDOW_DAYS,
                },
            )

    # =========================================================================
    # Refund Request
    # =========================================================================

    @classmethod
    def request_refund(
        cls,
        order: Order,
        user: User,
        amount: int | None = None,
        reason: str | None = None,
    ) -> Refund:
        """
        Validate and submit a refund for an order.

        Args:
            order: Order to refund
            user: Requesting user, must be the buyer
            amount: Amount to refund; None refunds everything still refundable
            reason: Buyer-facing reason, forwarded to the provider

        Returns:
            The Refund, PROCESSING until the provider confirms by webhook

        Raises:
            RefundError: Policy violation or provider rejection
            PaymentProcessingError: Transient provider failure
        """
        rejection: RefundError | None = None

        with cls.atomic():
            order = Order.objects.select_for_update().get(pk=order.pk)
            cls._check_eligibility(order, user)

            in_flight_amount, in_flight_fee = cls._in_flight(order)
            available = order.refundable_amount - in_flight_amount
            if amount is None:
                amount = available

            if amount <= 0 or amount > available:
                raise RefundError(
                    f"Refund amount must be between 1 and {available}",
                    error_code="INVALID_REFUND_AMOUNT",
                    details={
                        "order_id": str(order.id),
                        "requested": amount,
                        "refundable": available,
                    },
                )

            payment = Payment.objects.select_for_update().get(order_id=order.id)
            fee_reversed = split_refund_fee(
                order.net_platform_fee - in_flight_fee, available, amount
            )

            refund = Refund.objects.create(
                order=order,
                payment=payment,
                requested_by=user,
                amount=amount,
                platform_fee_reversed=fee_reversed,
                currency=order.currency,
                reason=reason,
            )

            adapter = get_adapter(payment.provider)
            try:
                result = adapter.refund_payment(
                    payment.provider_payment_id,
                    amount=amount,
                    reason=reason,
                    idempotency_key=IdempotencyKeyGenerator.generate("refund", refund.id),
                )
            except RefundError as e:
                rejection = e
            else:
                if result.status == NormalizedPaymentStatus.FAILED:
                    refund.fail(f"Provider reported refund status '{result.status}'")
                else:
                    refund.start_processing(provider_refund_id=result.id)
                refund.save()

        if rejection is not None:
            with cls.atomic():
                refund.fail(rejection.message)
                refund.save()
            cls.get_logger().warning(
                f"Refund {refund.id} rejected by provider",
                extra={
                    "refund_id": str(refund.id),
                    "order_id": str(order.id),
                    "error_code": rejection.error_code,
                },
            )
            raise rejection

        cls.get_logger().info(
            f"Refund {refund.id} submitted for order {order.id}",
            extra={
                "refund_id": str(refund.id),
                "order_id": str(order.id),
                "amount": amount,
                "platform_fee_reversed": fee_reversed,
                "provider_refund_id": refund.provider_refund_id,
                "status": refund.status,
            },
        )
        return refund

    # =========================================================================
    # Provider Confirmation
    # =========================================================================

    @classmethod
    def apply_refund_succeeded(cls, event: NormalizedWebhookEvent) -> ServiceResult[dict]:
        """
        Apply a provider-confirmed refund.

        Matches the Refund by provider refund id, or creates one for refunds
        issued outside the platform (provider dashboard). Re-delivered
        confirmations are no-ops.
        """
        provider_refund_id = event.data.get("refund_id")

        with cls.atomic():
            payment = PaymentStateService.find_payment(
                event.provider, event.payment_id, event.order_id
            )
            if payment is None:
                cls.get_logger().warning(
                    "No payment found for refund event",
                    extra={"event_id": event.event_id, "provider_payment_id": event.payment_id},
                )
                return ServiceResult.success({"outcome": OUTCOME_IGNORED, "reason": "payment_not_found"})

            order = Order.objects.select_for_update().get(pk=payment.order_id)

            refund = None
            if provider_refund_id:
                refund = (
                    Refund.objects.select_for_update()
                    .filter(provider_refund_id=provider_refund_id)
                    .first()
                )

            if refund is not None and refund.status == RefundStatus.SUCCEEDED:
                return ServiceResult.success(
                    {"outcome": OUTCOME_NOOP, "reason": "already_applied", "refund_id": str(refund.id)}
                )

            if refund is None:
                amount = min(event.amount, order.refundable_amount)
                if amount <= 0:
                    return ServiceResult.success(
                        {"outcome": OUTCOME_NOOP, "reason": "nothing_refundable", "order_id": str(order.id)}
                    )
                refund = Refund.objects.create(
                    order=order,
                    payment=payment,
                    amount=amount,
                    platform_fee_reversed=split_refund_fee(
                        order.net_platform_fee, order.refundable_amount, amount
                    ),
                    currency=order.currency,
                    reason=event.data.get("reason"),
                    provider_refund_id=provider_refund_id,
                )

            if refund.amount > order.refundable_amount:
                return ServiceResult.failure(
                    f"Refund {refund.id} exceeds the refundable amount of order {order.id}",
                    error_code="REFUND_EXCEEDS_ORDER",
                )

            refund.succeed(provider_refund_id=provider_refund_id)
            refund.save()

            order.apply_refund(refund.amount, refund.platform_fee_reversed)
            fully_refunded = order.refundable_amount == 0
            if fully_refunded and order.status in REFUNDABLE_ORDER_STATES:
                order.mark_refunded()
            order.save()

            if fully_refunded and payment.status == PaymentStatus.SUCCEEDED:
                payment.mark_refunded()
                payment.save()

            adjustment = None
            if order.is_settled:
                adjustment = cls._create_adjustment(order, refund)

        cls.get_logger().info(
            f"Refund {refund.id} applied to order {order.id}",
            extra={
                "refund_id": str(refund.id),
                "order_id": str(order.id),
                "amount": refund.amount,
                "fully_refunded": fully_refunded,
                "settlement_adjustment": adjustment is not None,
            },
        )
        return ServiceResult.success(
            {
                "outcome": OUTCOME_APPLIED,
                "refund_id": str(refund.id),
                "order_id": str(order.id),
                "order_status": order.status,
                "refunded_amount": order.refunded_amount,
                "adjustment_id": str(adjustment.id) if adjustment else None,
            }
        )

    @classmethod
    def _create_adjustment(cls, order: Order, refund: Refund) -> SettlementItem:
        """
        Negative settlement line for a refund on a settled order.

        Left unattached; the seller's next settlement picks it up.
        """
        seller_share = refund.amount - refund.platform_fee_reversed
        return SettlementItem.objects.create(
            settlement=None,
            seller_id=order.product.seller_id,
            item_type=SettlementItemType.REFUND_ADJUSTMENT,
            order=order,
            refund=refund,
            currency=order.currency,
            amount=-refund.amount,
            platform_fee=-refund.platform_fee_reversed,
            payout_amount=-seller_share,
            description=f"Refund after settlement for order {order.id}",
        )
