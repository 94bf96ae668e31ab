"""
Tests for payment Celery tasks.

Tests cover:
- run_monthly_settlement task
- process_settlement_payout task, including retries of transient errors
- retry_failed_webhooks task
- expire_cancelled_subscriptions task
"""

from datetime import datetime, timedelta, timezone as dt_timezone
from unittest.mock import patch
from uuid import uuid4

import pytest
from celery.exceptions import Retry

from payments.adapters import TransferResult, WebhookEventType
from payments.exceptions import StripeAPIUnavailableError, StripeInvalidAccountError
from payments.models import Order, Settlement, Subscription, WebhookEvent
from payments.state_machines import (
    OrderStatus,
    PayoutMethod,
    SettlementStatus,
    SubscriptionStatus,
    WebhookEventStatus,
)
from payments.tasks import (
    expire_cancelled_subscriptions,
    process_settlement_payout,
    retry_failed_webhooks,
    run_monthly_settlement,
)
from payments.tests.factories import (
    PaidOrderFactory,
    ProductFactory,
    SettlementFactory,
    SubscriptionFactory,
    WebhookEventFactory,
)


# =============================================================================
# run_monthly_settlement Tests
# =============================================================================


class TestRunMonthlySettlement:
    def test_settles_previous_month(self, seller):
        product = ProductFactory(seller=seller)
        PaidOrderFactory(
            product=product,
            paid_at=datetime(2026, 9, 14, 12, tzinfo=dt_timezone.utc),
        )

        result = run_monthly_settlement("2026-10-01T02:00:00+00:00")

        assert result["period_start"] == "2026-09-01T00:00:00+00:00"
        assert result["period_end"] == "2026-10-01T00:00:00+00:00"
        assert len(result["created"]) == 1
        assert result["errors"] == []
        settlement = Settlement.objects.get(pk=result["created"][0])
        assert settlement.seller == seller
        assert settlement.payout_amount == 8000

    def test_rerun_creates_nothing(self, seller):
        product = ProductFactory(seller=seller)
        PaidOrderFactory(
            product=product,
            paid_at=datetime(2026, 9, 14, 12, tzinfo=dt_timezone.utc),
        )
        run_monthly_settlement("2026-10-01T02:00:00+00:00")

        result = run_monthly_settlement("2026-10-01T02:00:00+00:00")

        assert result["created"] == []
        assert result["skipped"] == []
        assert Settlement.objects.count() == 1

    def test_late_order_rolls_into_next_period(self, seller):
        product = ProductFactory(seller=seller)
        PaidOrderFactory(
            product=product,
            paid_at=datetime(2026, 9, 14, 12, tzinfo=dt_timezone.utc),
        )
        run_monthly_settlement("2026-10-01T02:00:00+00:00")
        late = PaidOrderFactory(
            product=product,
            paid_at=datetime(2026, 9, 30, 23, tzinfo=dt_timezone.utc),
        )

        result = run_monthly_settlement("2026-10-01T02:00:00+00:00")

        assert result["skipped"] == [
            {"payee_id": str(seller.id), "type": "seller", "reason": "SETTLEMENT_ALREADY_EXISTS"}
        ]
        assert Order.objects.get(pk=late.pk).settlement_id is None

        next_month = run_monthly_settlement("2026-11-01T02:00:00+00:00")

        [settlement_id] = next_month["created"]
        settlement = Settlement.objects.get(pk=settlement_id)
        assert settlement.period_start == datetime(2026, 10, 1, tzinfo=dt_timezone.utc)
        assert str(Order.objects.get(pk=late.pk).settlement_id) == settlement_id


# =============================================================================
# process_settlement_payout Tests
# =============================================================================


class TestProcessSettlementPayout:
    def test_settlement_not_found(self, db):
        missing = uuid4()

        result = process_settlement_payout.run(str(missing))

        assert result == {"status": "not_found", "settlement_id": str(missing)}

    def test_bank_transfer_waits_for_operator(self, seller):
        settlement = SettlementFactory(seller=seller)

        result = process_settlement_payout.run(str(settlement.id), method=PayoutMethod.BANK_TRANSFER)

        assert result["status"] == SettlementStatus.PROCESSING
        assert result["payout_reference"] is None

    def test_stripe_transfer_pays_settlement(self, seller):
        settlement = SettlementFactory(seller=seller)

        with patch(
            "payments.adapters.StripeAdapter.create_transfer",
            return_value=TransferResult(
                id="tr_task_123",
                amount=8000,
                currency="usd",
                destination_account=seller.stripe_account_id,
            ),
        ):
            result = process_settlement_payout.run(
                str(settlement.id), method=PayoutMethod.STRIPE_CONNECT
            )

        assert result["status"] == SettlementStatus.PAID
        assert result["payout_reference"] == "tr_task_123"

    def test_transient_error_is_retried(self, seller):
        settlement = SettlementFactory(seller=seller)

        with (
            patch(
                "payments.adapters.StripeAdapter.create_transfer",
                side_effect=StripeAPIUnavailableError("Stripe is down"),
            ),
            patch.object(process_settlement_payout, "retry", side_effect=Retry()) as mock_retry,
        ):
            with pytest.raises(Retry):
                process_settlement_payout.run(str(settlement.id), method=PayoutMethod.STRIPE_CONNECT)

        assert isinstance(mock_retry.call_args.kwargs["exc"], StripeAPIUnavailableError)
        assert Settlement.objects.get(pk=settlement.pk).status == SettlementStatus.PROCESSING

    def test_interrupted_submission_is_resubmitted(self, seller):
        settlement = SettlementFactory(
            seller=seller,
            status=SettlementStatus.PROCESSING,
            payout_method=PayoutMethod.STRIPE_CONNECT,
        )

        with patch(
            "payments.adapters.StripeAdapter.create_transfer",
            return_value=TransferResult(
                id="tr_resubmitted",
                amount=8000,
                currency="usd",
                destination_account=seller.stripe_account_id,
            ),
        ) as mock_transfer:
            result = process_settlement_payout.run(str(settlement.id))

        mock_transfer.assert_called_once()
        assert result["status"] == SettlementStatus.PAID
        assert result["payout_reference"] == "tr_resubmitted"

    def test_permanent_error_fails_without_retry(self, seller):
        settlement = SettlementFactory(seller=seller)

        with (
            patch(
                "payments.adapters.StripeAdapter.create_transfer",
                side_effect=StripeInvalidAccountError("Account closed"),
            ),
            patch.object(process_settlement_payout, "retry") as mock_retry,
        ):
            result = process_settlement_payout.run(
                str(settlement.id), method=PayoutMethod.STRIPE_CONNECT
            )

        mock_retry.assert_not_called()
        assert result["status"] == SettlementStatus.FAILED


# =============================================================================
# retry_failed_webhooks Tests
# =============================================================================


class TestRetryFailedWebhooks:
    def _failed_event(self, make_event, payment_id, amount, retry_count=1):
        event = make_event(WebhookEventType.PAYMENT_SUCCEEDED, payment_id, amount=amount)
        return WebhookEventFactory(
            event_id=event.event_id,
            normalized=event.to_dict(),
            status=WebhookEventStatus.FAILED,
            retry_count=retry_count,
            error_message="Database unavailable",
        )

    def test_replays_failed_events(self, pending_order, make_event):
        webhook = self._failed_event(make_event, "pi_pending_123", 10000)

        result = retry_failed_webhooks()

        assert result == {"replayed": 1, "recovered": 1, "failed": 0}
        webhook = WebhookEvent.objects.get(pk=webhook.pk)
        assert webhook.status == WebhookEventStatus.PROCESSED
        assert webhook.retry_count == 2
        assert Order.objects.get(pk=pending_order.pk).status == OrderStatus.PAID

    def test_still_failing_event_is_counted(self, pending_order, make_event):
        webhook = self._failed_event(make_event, "pi_pending_123", 999)

        result = retry_failed_webhooks()

        assert result == {"replayed": 1, "recovered": 0, "failed": 1}
        assert WebhookEvent.objects.get(pk=webhook.pk).status == WebhookEventStatus.FAILED

    def test_skips_events_out_of_retries(self, pending_order, make_event):
        self._failed_event(make_event, "pi_pending_123", 10000, retry_count=5)

        result = retry_failed_webhooks()

        assert result["replayed"] == 0
        assert Order.objects.get(pk=pending_order.pk).status == OrderStatus.PENDING


# =============================================================================
# expire_cancelled_subscriptions Tests
# =============================================================================


class TestExpireCancelledSubscriptions:
    def test_expires_due_subscriptions(self, db):
        start = datetime(2026, 8, 1, tzinfo=dt_timezone.utc)
        due = SubscriptionFactory(
            cancel_at_period_end=True,
            current_period_start=start,
            current_period_end=start + timedelta(days=30),
        )
        SubscriptionFactory(cancel_at_period_end=True)

        result = expire_cancelled_subscriptions()

        assert result == {"expired_count": 1}
        assert Subscription.objects.get(pk=due.pk).status == SubscriptionStatus.CANCELLED
