"""
Tests for PaymentStateService, the webhook-driven payment state machine.
"""

from authentication.models import SellerTier
from payments.adapters import WebhookEventType
from payments.models import Order, Payment
from payments.services import PaymentStateService
from payments.state_machines import OrderStatus, PaymentStatus


# =============================================================================
# payment.succeeded
# =============================================================================


class TestHandleSucceeded:
    def test_marks_order_paid_with_tier_fee(self, pending_order, make_event):
        event = make_event(WebhookEventType.PAYMENT_SUCCEEDED, "pi_pending_123", amount=10000)

        result = PaymentStateService.handle_succeeded(event)

        assert result.success
        assert result.data["outcome"] == "applied"
        order = Order.objects.get(pk=pending_order.pk)
        assert order.status == OrderStatus.PAID
        assert order.platform_fee == 2000
        assert order.seller_amount == 8000
        assert order.access_granted is True
        assert Payment.objects.get(order=order).status == PaymentStatus.SUCCEEDED

    def test_fee_uses_tier_at_payment_time(self, pending_order, make_event):
        seller = pending_order.product.seller
        seller.seller_tier = SellerTier.MASTER
        seller.save()
        event = make_event(WebhookEventType.PAYMENT_SUCCEEDED, "pi_pending_123", amount=10000)

        PaymentStateService.handle_succeeded(event)

        assert Order.objects.get(pk=pending_order.pk).platform_fee == 1000

    def test_redelivery_is_noop(self, pending_order, make_event):
        event = make_event(WebhookEventType.PAYMENT_SUCCEEDED, "pi_pending_123", amount=10000)
        PaymentStateService.handle_succeeded(event)

        result = PaymentStateService.handle_succeeded(event)

        assert result.success
        assert result.data["outcome"] == "noop"

    def test_success_after_failure_is_honoured(self, pending_order, make_event):
        PaymentStateService.handle_failed(
            make_event(
                WebhookEventType.PAYMENT_FAILED,
                "pi_pending_123",
                data={"failure_code": "card_declined"},
            )
        )

        result = PaymentStateService.handle_succeeded(
            make_event(WebhookEventType.PAYMENT_SUCCEEDED, "pi_pending_123", amount=10000)
        )

        assert result.data["outcome"] == "applied"
        order = Order.objects.get(pk=pending_order.pk)
        assert order.status == OrderStatus.PAID
        assert order.failure_code is None

    def test_amount_mismatch_fails(self, pending_order, make_event):
        event = make_event(WebhookEventType.PAYMENT_SUCCEEDED, "pi_pending_123", amount=1)

        result = PaymentStateService.handle_succeeded(event)

        assert not result.success
        assert result.error_code == "AMOUNT_MISMATCH"
        assert Order.objects.get(pk=pending_order.pk).status == OrderStatus.PENDING

    def test_unknown_payment_is_ignored(self, db, make_event):
        event = make_event(WebhookEventType.PAYMENT_SUCCEEDED, "pi_unknown", amount=100)

        result = PaymentStateService.handle_succeeded(event)

        assert result.success
        assert result.data == {"outcome": "ignored", "reason": "payment_not_found"}

    def test_falls_back_to_order_id(self, pending_order, make_event):
        event = make_event(
            WebhookEventType.PAYMENT_SUCCEEDED,
            "pi_replaced_key",
            amount=10000,
            order_id=str(pending_order.id),
        )

        PaymentStateService.handle_succeeded(event)

        payment = Payment.objects.get(order=pending_order)
        assert payment.status == PaymentStatus.SUCCEEDED
        assert payment.provider_payment_id == "pi_replaced_key"


# =============================================================================
# payment.failed / payment.processing
# =============================================================================


class TestHandleFailed:
    def test_marks_order_failed(self, pending_order, make_event):
        event = make_event(
            WebhookEventType.PAYMENT_FAILED,
            "pi_pending_123",
            data={"failure_code": "card_declined", "failure_message": "Declined"},
        )

        result = PaymentStateService.handle_failed(event)

        assert result.data["outcome"] == "applied"
        order = Order.objects.get(pk=pending_order.pk)
        assert order.status == OrderStatus.FAILED
        assert order.failure_code == "card_declined"
        assert order.platform_fee == 0

    def test_stale_failure_after_success_is_noop(self, paid_order, make_event):
        event = make_event(WebhookEventType.PAYMENT_FAILED, "pi_paid_123")

        result = PaymentStateService.handle_failed(event)

        assert result.data["outcome"] == "noop"
        assert Order.objects.get(pk=paid_order.pk).status == OrderStatus.PAID


class TestHandleProcessing:
    def test_moves_open_payment_to_processing(self, pending_order, make_event):
        result = PaymentStateService.handle_processing(
            make_event(WebhookEventType.PAYMENT_PROCESSING, "pi_pending_123")
        )

        assert result.data["outcome"] == "applied"
        assert Payment.objects.get(order=pending_order).status == PaymentStatus.PROCESSING

    def test_ignored_once_succeeded(self, paid_order, make_event):
        result = PaymentStateService.handle_processing(
            make_event(WebhookEventType.PAYMENT_PROCESSING, "pi_paid_123")
        )

        assert result.data["outcome"] == "noop"
        assert Payment.objects.get(order=paid_order).status == PaymentStatus.SUCCEEDED
