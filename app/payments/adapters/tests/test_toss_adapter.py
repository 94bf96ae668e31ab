"""
Tests for the TossPayments adapter.

HTTP is mocked at requests.request; webhook tests sign real bodies with
the test secret so verification runs for real.
"""

import base64
import hashlib

import pytest
import requests

from payments.adapters import (
    CreatePaymentIntentParams,
    TossAdapter,
    WebhookRequest,
    get_adapter,
    select_provider,
)
from payments.adapters.stripe_adapter import StripeAdapter
from payments.exceptions import (
    PaymentError,
    PaymentNotFoundError,
    PaymentValidationError,
    RefundError,
    TossError,
    WebhookError,
)


class TestProviderSelection:
    def test_krw_goes_to_toss(self):
        assert select_provider("krw") == "toss"
        assert select_provider("KRW") == "toss"

    def test_other_currencies_go_to_stripe(self):
        assert select_provider("usd") == "stripe"
        assert select_provider("eur") == "stripe"

    def test_get_adapter(self):
        assert get_adapter("toss") is TossAdapter
        assert get_adapter("stripe") is StripeAdapter

    def test_unknown_provider(self):
        with pytest.raises(PaymentValidationError):
            get_adapter("paypal")


class TestCreatePaymentIntent:
    def test_local_intent_uses_order_id(self, mock_toss_request):
        result = TossAdapter.create_payment_intent(
            CreatePaymentIntentParams(
                amount=15000,
                currency="krw",
                order_id="order-123",
                customer_email="buyer@example.com",
            )
        )

        assert result.id == "order-123"
        assert result.client_secret.startswith("order-123_")
        assert result.amount == 15000
        assert result.metadata["order_id"] == "order-123"
        mock_toss_request.assert_not_called()


class TestConfirmPayment:
    def test_confirm_posts_payment_key_order_and_amount(
        self, mock_toss_request, make_toss_response, toss_payment_body
    ):
        mock_toss_request.return_value = make_toss_response(200, toss_payment_body())

        result = TossAdapter.confirm_payment(
            "tgen_20260914_abc", order_id="order-123", amount=15000
        )

        args, kwargs = mock_toss_request.call_args
        assert args == ("POST", "https://api.tosspayments.com/v1/payments/confirm")
        assert kwargs["json"] == {
            "paymentKey": "tgen_20260914_abc",
            "orderId": "order-123",
            "amount": 15000,
        }
        expected_auth = base64.b64encode(b"test_sk_toss:").decode()
        assert kwargs["headers"]["Authorization"] == f"Basic {expected_auth}"
        assert result.status == "succeeded"
        assert result.currency == "krw"
        assert result.payment_method == {
            "type": "card",
            "brand": "Shinhan",
            "last4": "4330****1234",
        }

    @pytest.mark.parametrize(
        "toss_status,expected",
        [
            ("DONE", "succeeded"),
            ("IN_PROGRESS", "processing"),
            ("WAITING_FOR_DEPOSIT", "processing"),
            ("READY", "requires_payment_method"),
            ("ABORTED", "failed"),
            ("EXPIRED", "failed"),
        ],
    )
    def test_status_mapping(
        self, mock_toss_request, make_toss_response, toss_payment_body, toss_status, expected
    ):
        mock_toss_request.return_value = make_toss_response(200, toss_payment_body(toss_status))

        result = TossAdapter.confirm_payment("key", order_id="order-123", amount=15000)

        assert result.status == expected

    def test_requires_order_and_amount(self, mock_toss_request):
        with pytest.raises(PaymentValidationError):
            TossAdapter.confirm_payment("key")

    def test_rejection_is_reported_not_raised(self, mock_toss_request, make_toss_response):
        mock_toss_request.return_value = make_toss_response(
            400, {"code": "REJECT_CARD_PAYMENT", "message": "Limit exceeded"}
        )

        result = TossAdapter.confirm_payment("key", order_id="order-123", amount=15000)

        assert result.status == "failed"
        assert result.failure_code == "REJECT_CARD_PAYMENT"
        assert result.failure_message == "Limit exceeded"

    def test_server_error_raises_retryable(self, mock_toss_request, make_toss_response):
        mock_toss_request.return_value = make_toss_response(
            500, {"code": "FAILED_INTERNAL_SYSTEM_PROCESSING", "message": "Oops"}
        )

        with pytest.raises(TossError) as exc_info:
            TossAdapter.confirm_payment("key", order_id="order-123", amount=15000)

        assert exc_info.value.is_retryable
        assert exc_info.value.status_code == 500

    def test_network_error_raises_retryable(self, mock_toss_request):
        mock_toss_request.side_effect = requests.ConnectionError("reset")

        with pytest.raises(TossError) as exc_info:
            TossAdapter.confirm_payment("key", order_id="order-123", amount=15000)

        assert exc_info.value.is_retryable


class TestRefundPayment:
    def test_partial_cancel(self, mock_toss_request, make_toss_response, toss_payment_body):
        mock_toss_request.return_value = make_toss_response(
            200,
            toss_payment_body(
                "PARTIAL_CANCELED",
                cancels=[{"transactionKey": "txn_1", "cancelAmount": 5000}],
            ),
        )

        result = TossAdapter.refund_payment(
            "tgen_20260914_abc", amount=5000, reason="Wrong size", idempotency_key="refund-1"
        )

        args, kwargs = mock_toss_request.call_args
        assert args[1].endswith("/payments/tgen_20260914_abc/cancel")
        assert kwargs["json"] == {"cancelReason": "Wrong size", "cancelAmount": 5000}
        assert kwargs["headers"]["Idempotency-Key"] == "refund-1"
        assert result.id == "txn_1"
        assert result.amount == 5000
        assert result.status == "succeeded"

    def test_full_cancel_omits_amount(self, mock_toss_request, make_toss_response, toss_payment_body):
        mock_toss_request.return_value = make_toss_response(200, toss_payment_body("CANCELED"))

        TossAdapter.refund_payment("key")

        assert "cancelAmount" not in mock_toss_request.call_args.kwargs["json"]

    def test_rejection_raises_refund_error(self, mock_toss_request, make_toss_response):
        mock_toss_request.return_value = make_toss_response(
            403, {"code": "NOT_CANCELABLE_PAYMENT", "message": "Not cancelable"}
        )

        with pytest.raises(RefundError):
            TossAdapter.refund_payment("key", amount=100)


class TestGetPayment:
    def test_lookup(self, mock_toss_request, make_toss_response, toss_payment_body):
        mock_toss_request.return_value = make_toss_response(200, toss_payment_body())

        details = TossAdapter.get_payment("tgen_20260914_abc")

        assert mock_toss_request.call_args.args[0] == "GET"
        assert details.id == "tgen_20260914_abc"
        assert details.order_id == "order-123"
        assert details.amount == 15000
        assert details.created_at is not None

    def test_not_found(self, mock_toss_request, make_toss_response):
        mock_toss_request.return_value = make_toss_response(
            404, {"code": "NOT_FOUND_PAYMENT", "message": "No payment"}
        )

        with pytest.raises(PaymentNotFoundError):
            TossAdapter.get_payment("missing")

    def test_other_failure(self, mock_toss_request, make_toss_response):
        mock_toss_request.return_value = make_toss_response(401, {"code": "UNAUTHORIZED_KEY"})

        with pytest.raises(PaymentError) as exc_info:
            TossAdapter.get_payment("key")

        assert not isinstance(exc_info.value, PaymentNotFoundError)


class TestTossWebhooks:
    def _request(self, body, signature):
        return WebhookRequest(body=body, headers={"toss-signature": signature})

    def test_signature_verification(self, toss_event_body, sign_toss):
        body = toss_event_body("PAYMENT_DONE", {"paymentKey": "key"})

        assert TossAdapter.verify_webhook_signature(self._request(body, sign_toss(body)))
        assert not TossAdapter.verify_webhook_signature(self._request(body, "bm90LXZhbGlk"))

    def test_missing_secret_fails_closed(self, settings, toss_event_body, sign_toss):
        settings.TOSS_WEBHOOK_SECRET = ""
        body = toss_event_body("PAYMENT_DONE", {"paymentKey": "key"})

        assert not TossAdapter.verify_webhook_signature(self._request(body, sign_toss(body)))

    def test_invalid_signature_rejected(self, toss_event_body):
        body = toss_event_body("PAYMENT_DONE", {"paymentKey": "key"})

        with pytest.raises(WebhookError) as exc_info:
            TossAdapter.handle_webhook(self._request(body, "forged"))
        assert exc_info.value.error_code == "INVALID_SIGNATURE"

    def test_payment_done_normalized(self, toss_event_body, sign_toss):
        body = toss_event_body(
            "PAYMENT_DONE",
            {
                "paymentKey": "tgen_1",
                "orderId": "order-1",
                "status": "DONE",
                "totalAmount": 15000,
                "currency": "KRW",
                "method": "card",
            },
        )

        event = TossAdapter.handle_webhook(self._request(body, sign_toss(body)))

        assert event.type == "payment.succeeded"
        assert event.payment_id == "tgen_1"
        assert event.order_id == "order-1"
        assert event.amount == 15000
        assert event.currency == "krw"
        assert event.provider == "toss"

    def test_event_id_is_stable_for_same_body(self, toss_event_body, sign_toss):
        body = toss_event_body("PAYMENT_DONE", {"paymentKey": "tgen_1", "totalAmount": 1})

        first = TossAdapter.handle_webhook(self._request(body, sign_toss(body)))
        second = TossAdapter.handle_webhook(self._request(body, sign_toss(body)))

        expected_hash = hashlib.sha256(body).hexdigest()[:16]
        assert first.event_id == second.event_id == f"PAYMENT_DONE:tgen_1:{expected_hash}"

    def test_payment_failed_carries_failure(self, toss_event_body, sign_toss):
        body = toss_event_body(
            "PAYMENT_FAILED",
            {
                "paymentKey": "tgen_1",
                "orderId": "order-1",
                "totalAmount": 15000,
                "failure": {"code": "PAY_PROCESS_ABORTED", "message": "Aborted"},
            },
        )

        event = TossAdapter.handle_webhook(self._request(body, sign_toss(body)))

        assert event.type == "payment.failed"
        assert event.data["failure_code"] == "PAY_PROCESS_ABORTED"

    def test_payment_canceled_is_refund(self, toss_event_body, sign_toss):
        body = toss_event_body(
            "PAYMENT_CANCELED",
            {
                "paymentKey": "tgen_1",
                "orderId": "order-1",
                "totalAmount": 15000,
                "cancels": [
                    {"transactionKey": "txn_9", "cancelAmount": 5000, "cancelReason": "Changed mind"}
                ],
            },
        )

        event = TossAdapter.handle_webhook(self._request(body, sign_toss(body)))

        assert event.type == "refund.succeeded"
        assert event.amount == 5000
        assert event.data["refund_id"] == "txn_9"

    def test_unsupported_event(self, toss_event_body, sign_toss):
        body = toss_event_body("DEPOSIT_CALLBACK", {"paymentKey": "tgen_1"})

        with pytest.raises(WebhookError) as exc_info:
            TossAdapter.handle_webhook(self._request(body, sign_toss(body)))
        assert exc_info.value.error_code == "UNSUPPORTED_EVENT_TYPE"

    def test_malformed_payload(self, sign_toss):
        body = b'{"eventType": "PAYMENT_DONE"}'

        with pytest.raises(WebhookError) as exc_info:
            TossAdapter.handle_webhook(self._request(body, sign_toss(body)))
        assert exc_info.value.error_code == "INVALID_PAYLOAD"
