"""
Tests for payment model properties and database constraints.
"""

import pytest
from django.db import IntegrityError, transaction

from payments.models import SettlementItem, WebhookEvent
from payments.state_machines import (
    SettlementItemType,
    SubscriptionStatus,
    WebhookEventStatus,
)
from payments.tests.factories import (
    OrderFactory,
    PaidOrderFactory,
    PaymentFactory,
    RefundFactory,
    SettlementFactory,
    SubscriptionFactory,
    VerifierPayoutFactory,
    WebhookEventFactory,
)


# =============================================================================
# Order
# =============================================================================


class TestOrderProperties:
    def test_refund_totals_reduce_net_amounts(self, db):
        order = PaidOrderFactory(amount=10000)

        order.apply_refund(2500, 500)

        assert order.refundable_amount == 7500
        assert order.net_platform_fee == 1500
        assert order.net_seller_amount == 6000
        assert order.refunded_at is not None

    def test_seller_is_product_owner(self, db):
        order = OrderFactory()

        assert order.seller == order.product.seller

    def test_is_settled(self, db):
        order = PaidOrderFactory()
        assert order.is_settled is False

        order.settlement = SettlementFactory(seller=order.product.seller)

        assert order.is_settled is True


class TestOrderConstraints:
    def test_revenue_split_must_balance(self, db):
        with pytest.raises(IntegrityError), transaction.atomic():
            OrderFactory(amount=10000, platform_fee=2000, seller_amount=9000)

    def test_refunds_cannot_exceed_amount(self, db):
        with pytest.raises(IntegrityError), transaction.atomic():
            PaidOrderFactory(amount=1000, refunded_amount=1001)


# =============================================================================
# Payment & Settlement
# =============================================================================


class TestPaymentConstraints:
    def test_provider_payment_id_is_unique_per_provider(self, db):
        PaymentFactory(provider_payment_id="pi_dup")

        with pytest.raises(IntegrityError), transaction.atomic():
            PaymentFactory(provider_payment_id="pi_dup")


class TestSettlementConstraints:
    def test_one_settlement_per_payee_and_period(self, db):
        settlement = SettlementFactory()

        with pytest.raises(IntegrityError), transaction.atomic():
            SettlementFactory(seller=settlement.seller)

    def test_other_currency_is_a_separate_settlement(self, db):
        settlement = SettlementFactory()

        other = SettlementFactory(seller=settlement.seller, currency="krw")

        assert other.pk != settlement.pk

    def test_order_item_needs_an_order(self, db):
        settlement = SettlementFactory()

        with pytest.raises(IntegrityError), transaction.atomic():
            SettlementItem.objects.create(
                settlement=settlement,
                seller=settlement.seller,
                item_type=SettlementItemType.ORDER,
                verifier_payout=VerifierPayoutFactory(),
                amount=100,
                payout_amount=100,
            )

    def test_only_refund_adjustments_may_be_unattached(self, db):
        order = PaidOrderFactory()

        with pytest.raises(IntegrityError), transaction.atomic():
            SettlementItem.objects.create(
                settlement=None,
                seller=order.product.seller,
                item_type=SettlementItemType.ORDER,
                order=order,
                amount=order.amount,
                payout_amount=order.seller_amount,
            )

    def test_unattached_refund_adjustment_is_allowed(self, db):
        refund = RefundFactory()

        item = SettlementItem.objects.create(
            settlement=None,
            seller=refund.order.product.seller,
            item_type=SettlementItemType.REFUND_ADJUSTMENT,
            order=refund.order,
            refund=refund,
            amount=-refund.amount,
            platform_fee=-refund.platform_fee_reversed,
            payout_amount=-(refund.amount - refund.platform_fee_reversed),
        )

        assert item.settlement is None

    def test_order_can_only_be_itemised_once(self, db):
        order = PaidOrderFactory()
        settlement = SettlementFactory(seller=order.product.seller)
        fields = {
            "settlement": settlement,
            "seller": settlement.seller,
            "item_type": SettlementItemType.ORDER,
            "order": order,
            "amount": order.amount,
            "payout_amount": order.seller_amount,
        }
        SettlementItem.objects.create(**fields)

        with pytest.raises(IntegrityError), transaction.atomic():
            SettlementItem.objects.create(**fields)

    def test_balance_line_needs_a_source_settlement(self, db):
        settlement = SettlementFactory()

        with pytest.raises(IntegrityError), transaction.atomic():
            SettlementItem.objects.create(
                settlement=settlement,
                seller=settlement.seller,
                item_type=SettlementItemType.CARRIED_FORWARD,
                amount=500,
                payout_amount=500,
            )

    def test_brought_forward_balance_may_be_unattached_once(self, db):
        source = SettlementFactory()
        fields = {
            "settlement": None,
            "seller": source.seller,
            "item_type": SettlementItemType.BROUGHT_FORWARD,
            "balance_source": source,
            "amount": -500,
            "payout_amount": -500,
        }
        SettlementItem.objects.create(**fields)

        with pytest.raises(IntegrityError), transaction.atomic():
            SettlementItem.objects.create(**fields)

    def test_carried_forward_balance_must_be_attached(self, db):
        source = SettlementFactory()

        with pytest.raises(IntegrityError), transaction.atomic():
            SettlementItem.objects.create(
                settlement=None,
                seller=source.seller,
                item_type=SettlementItemType.CARRIED_FORWARD,
                balance_source=source,
                amount=500,
                payout_amount=500,
            )


# =============================================================================
# Subscription
# =============================================================================


class TestSubscriptionConstraints:
    def test_one_open_subscription_per_user(self, db):
        subscription = SubscriptionFactory()

        with pytest.raises(IntegrityError), transaction.atomic():
            SubscriptionFactory(user=subscription.user)

    def test_cancelled_subscription_does_not_block_a_new_one(self, db):
        subscription = SubscriptionFactory(status=SubscriptionStatus.CANCELLED)

        replacement = SubscriptionFactory(user=subscription.user)

        assert replacement.is_active


# =============================================================================
# WebhookEvent
# =============================================================================


class TestWebhookEvent:
    def test_unique_per_provider(self, db):
        event = WebhookEventFactory(event_id="evt_1")

        with pytest.raises(IntegrityError), transaction.atomic():
            WebhookEventFactory(event_id="evt_1", provider=event.provider)

    def test_processing_counts_attempts(self, db):
        event = WebhookEventFactory()

        event.mark_processing()
        event.mark_processed({"outcome": "applied"})
        event.save()

        event = WebhookEvent.objects.get(pk=event.pk)
        assert event.is_processed
        assert event.retry_count == 1
        assert event.result == {"outcome": "applied"}
        assert event.processed_at is not None

    def test_can_retry_until_limit(self, db, settings):
        settings.MAX_WEBHOOK_RETRIES = 2
        event = WebhookEventFactory(status=WebhookEventStatus.FAILED, retry_count=1)

        assert event.can_retry

        event.retry_count = 2
        assert not event.can_retry

    def test_processed_event_cannot_retry(self, db):
        event = WebhookEventFactory(status=WebhookEventStatus.PROCESSED)

        assert not event.can_retry
