"""
Tests for the webhook handler registry and dispatch.
"""

from unittest.mock import patch

from core.services import ServiceResult
from payments.adapters import NormalizedWebhookEvent, WebhookEventType
from payments.webhooks.handlers import (
    WEBHOOK_HANDLERS,
    dispatch_webhook,
    handle_payment_failed,
    handle_payment_processing,
    handle_payment_succeeded,
    handle_refund_succeeded,
    register_handler,
)


def make_event(event_type: str, payment_id: str = "pi_handler_123") -> NormalizedWebhookEvent:
    return NormalizedWebhookEvent(
        event_id="evt_handler_123",
        type=event_type,
        provider="stripe",
        raw_type=event_type,
        payment_id=payment_id,
        order_id=None,
        amount=10000,
        currency="usd",
        status=None,
        data={},
    )


class TestRegisterHandler:
    def test_normalized_types_are_registered(self):
        assert WEBHOOK_HANDLERS[WebhookEventType.PAYMENT_SUCCEEDED] == handle_payment_succeeded
        assert WEBHOOK_HANDLERS[WebhookEventType.PAYMENT_FAILED] == handle_payment_failed
        assert WEBHOOK_HANDLERS[WebhookEventType.PAYMENT_PROCESSING] == handle_payment_processing
        assert WEBHOOK_HANDLERS[WebhookEventType.REFUND_SUCCEEDED] == handle_refund_succeeded

    def test_register_new_handler(self):
        @register_handler("payment.disputed")
        def handle_disputed(event):
            return ServiceResult.success({"outcome": "applied"})

        try:
            assert WEBHOOK_HANDLERS["payment.disputed"] == handle_disputed
            assert dispatch_webhook(make_event("payment.disputed")).data == {"outcome": "applied"}
        finally:
            del WEBHOOK_HANDLERS["payment.disputed"]


class TestDispatchWebhook:
    def test_routes_to_payment_service(self):
        event = make_event(WebhookEventType.PAYMENT_SUCCEEDED)

        with patch(
            "payments.webhooks.handlers.PaymentStateService.handle_succeeded",
            return_value=ServiceResult.success({"outcome": "applied"}),
        ) as mock_handle:
            result = dispatch_webhook(event)

        mock_handle.assert_called_once_with(event)
        assert result.success

    def test_routes_refunds_to_refund_service(self):
        event = make_event(WebhookEventType.REFUND_SUCCEEDED)

        with patch(
            "payments.webhooks.handlers.RefundService.apply_refund_succeeded",
            return_value=ServiceResult.success({"outcome": "applied"}),
        ) as mock_apply:
            dispatch_webhook(event)

        mock_apply.assert_called_once_with(event)

    def test_unhandled_type_is_ignored(self):
        result = dispatch_webhook(make_event("payment.unknown"))

        assert result.success
        assert result.data == {"outcome": "ignored", "reason": "no_handler"}

    def test_failed_payment_for_unknown_intent(self, db):
        result = dispatch_webhook(make_event(WebhookEventType.PAYMENT_FAILED, "pi_missing"))

        assert result.success
        assert result.data["outcome"] == "ignored"
