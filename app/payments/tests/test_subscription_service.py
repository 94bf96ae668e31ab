"""
Tests for subscription plan changes, proration and cancellation.
"""

from datetime import datetime, timedelta, timezone as dt_timezone

import pytest
from freezegun import freeze_time

from authentication.models import User
from payments.exceptions import PaymentNotFoundError, SubscriptionError
from payments.models import Subscription
from payments.services import PlanService, SubscriptionService, calculate_proration
from payments.state_machines import BillingInterval, SubscriptionStatus, SubscriptionTier
from payments.tests.factories import PlanFactory, SubscriptionFactory

PERIOD_START = datetime(2026, 10, 1, tzinfo=dt_timezone.utc)
PERIOD_END = PERIOD_START + timedelta(days=30)


@pytest.fixture
def priced_plans(db):
    """BASIC at 19900 and PRO at 29900 a month."""
    return [
        PlanFactory(tier=SubscriptionTier.BASIC, monthly_price=19900, yearly_price=199000),
        PlanFactory(tier=SubscriptionTier.PRO, monthly_price=29900, yearly_price=299000),
    ]


# =============================================================================
# Proration
# =============================================================================


class TestCalculateProration:
    def test_upgrade_mid_period(self, priced_plans):
        result = calculate_proration(
            SubscriptionTier.BASIC,
            SubscriptionTier.PRO,
            PERIOD_START + timedelta(days=15),
            BillingInterval.MONTHLY,
            PERIOD_START,
            PERIOD_END,
        )

        assert result.is_upgrade
        assert result.remaining_days == 15
        assert result.total_days == 30
        assert result.credits_applied == 9950
        assert result.immediate_charge == 5000
        assert result.next_billing_amount == 29900
        assert result.next_billing_date == PERIOD_END

    def test_downgrade_is_never_refunded(self, priced_plans):
        result = calculate_proration(
            SubscriptionTier.PRO,
            SubscriptionTier.BASIC,
            PERIOD_START + timedelta(days=15),
            BillingInterval.MONTHLY,
            PERIOD_START,
            PERIOD_END,
        )

        assert not result.is_upgrade
        assert result.credits_applied == 14950
        assert result.immediate_charge == 0
        assert result.next_billing_amount == 19900

    def test_partial_day_counts_as_whole(self, priced_plans):
        result = calculate_proration(
            SubscriptionTier.BASIC,
            SubscriptionTier.PRO,
            PERIOD_START + timedelta(days=14, hours=12),
            BillingInterval.MONTHLY,
            PERIOD_START,
            PERIOD_END,
        )

        assert result.remaining_days == 16

    def test_change_after_period_end_charges_nothing(self, priced_plans):
        result = calculate_proration(
            SubscriptionTier.BASIC,
            SubscriptionTier.PRO,
            PERIOD_END + timedelta(days=1),
            BillingInterval.MONTHLY,
            PERIOD_START,
            PERIOD_END,
        )

        assert result.remaining_days == 0
        assert result.immediate_charge == 0

    def test_from_free_charges_prorated_price(self, priced_plans):
        result = calculate_proration(
            SubscriptionTier.FREE,
            SubscriptionTier.BASIC,
            PERIOD_START + timedelta(days=15),
            BillingInterval.MONTHLY,
            PERIOD_START,
            PERIOD_END,
        )

        assert result.credits_applied == 0
        assert result.immediate_charge == 9950

    def test_yearly_prices(self, priced_plans):
        result = calculate_proration(
            SubscriptionTier.BASIC,
            SubscriptionTier.PRO,
            PERIOD_START,
            BillingInterval.YEARLY,
            PERIOD_START,
            PERIOD_START + timedelta(days=365),
        )

        assert result.immediate_charge == 100000
        assert result.next_billing_amount == 299000


class TestPlanService:
    def test_lists_active_plans_in_order(self, plans):
        tiers = [p.tier for p in PlanService.list_plans()]

        assert tiers == ["FREE", "BASIC", "PRO", "ENTERPRISE"]

    def test_free_costs_nothing_without_catalogue(self, db):
        assert PlanService.price_for(SubscriptionTier.FREE, BillingInterval.MONTHLY) == 0

    def test_missing_plan(self, db):
        with pytest.raises(PaymentNotFoundError) as exc_info:
            PlanService.get_plan(SubscriptionTier.PRO)

        assert exc_info.value.error_code == "PLAN_NOT_FOUND"


# =============================================================================
# Plan Changes
# =============================================================================


class TestChangePlan:
    def test_upgrade_records_change_and_syncs_user(self, priced_plans):
        subscription = SubscriptionFactory(
            current_period_start=PERIOD_START,
            current_period_end=PERIOD_END,
        )

        with freeze_time(PERIOD_START + timedelta(days=15)):
            change = SubscriptionService.change_plan(subscription.user, SubscriptionTier.PRO)

        assert change.from_tier == SubscriptionTier.BASIC
        assert change.to_tier == SubscriptionTier.PRO
        assert change.credits_applied == 9950
        assert change.immediate_charge == 5000
        assert change.next_billing_date == PERIOD_END
        assert Subscription.objects.get(pk=subscription.pk).tier == SubscriptionTier.PRO
        assert User.objects.get(pk=subscription.user.pk).subscription_tier == SubscriptionTier.PRO

    def test_preview_does_not_change_anything(self, priced_plans):
        subscription = SubscriptionFactory(
            current_period_start=PERIOD_START,
            current_period_end=PERIOD_END,
        )

        preview = SubscriptionService.preview_change(
            subscription.user,
            SubscriptionTier.PRO,
            now=PERIOD_START + timedelta(days=15),
        )

        assert preview.immediate_charge == 5000
        assert Subscription.objects.get(pk=subscription.pk).tier == SubscriptionTier.BASIC
        assert not subscription.changes.exists()

    def test_first_subscription_starts_from_free(self, buyer, plans):
        change = SubscriptionService.change_plan(buyer, SubscriptionTier.BASIC)

        subscription = SubscriptionService.get_subscription(buyer)
        assert subscription.tier == SubscriptionTier.BASIC
        assert subscription.interval == BillingInterval.MONTHLY
        assert change.from_tier == SubscriptionTier.FREE
        assert change.immediate_charge == 9900

    def test_same_plan_rejected(self, priced_plans):
        subscription = SubscriptionFactory()

        with pytest.raises(SubscriptionError) as exc_info:
            SubscriptionService.change_plan(subscription.user, SubscriptionTier.BASIC)

        assert exc_info.value.error_code == "SAME_PLAN"

    def test_past_due_subscription_cannot_change(self, priced_plans):
        subscription = SubscriptionFactory(status=SubscriptionStatus.PAST_DUE)

        with pytest.raises(SubscriptionError) as exc_info:
            SubscriptionService.change_plan(subscription.user, SubscriptionTier.PRO)

        assert exc_info.value.error_code == "SUBSCRIPTION_NOT_ACTIVE"

    def test_interval_change_mid_period_rejected(self, priced_plans):
        subscription = SubscriptionFactory()

        with pytest.raises(SubscriptionError) as exc_info:
            SubscriptionService.change_plan(
                subscription.user, SubscriptionTier.PRO, interval=BillingInterval.YEARLY
            )

        assert exc_info.value.error_code == "INTERVAL_CHANGE_NOT_SUPPORTED"

    def test_unknown_tier_rejected(self, buyer):
        with pytest.raises(SubscriptionError) as exc_info:
            SubscriptionService.change_plan(buyer, "PLATINUM")

        assert exc_info.value.error_code == "INVALID_TIER"


# =============================================================================
# Cancellation
# =============================================================================


class TestCancellation:
    def test_cancel_at_period_end_keeps_tier(self, db):
        subscription = SubscriptionFactory()

        subscription = SubscriptionService.cancel_subscription(subscription)

        assert subscription.status == SubscriptionStatus.ACTIVE
        assert subscription.cancel_at_period_end is True

    def test_immediate_cancel_drops_to_free(self, db):
        subscription = SubscriptionFactory()
        User.objects.filter(pk=subscription.user_id).update(subscription_tier=SubscriptionTier.BASIC)

        subscription = SubscriptionService.cancel_subscription(subscription, immediate=True)

        assert subscription.status == SubscriptionStatus.CANCELLED
        assert User.objects.get(pk=subscription.user_id).subscription_tier == SubscriptionTier.FREE

    def test_cancelled_subscription_cannot_be_cancelled_again(self, db):
        subscription = SubscriptionFactory(status=SubscriptionStatus.CANCELLED)

        with pytest.raises(SubscriptionError) as exc_info:
            SubscriptionService.cancel_subscription(subscription)

        assert exc_info.value.error_code == "SUBSCRIPTION_CANCELLED"

    def test_reactivate_clears_scheduled_cancellation(self, db):
        subscription = SubscriptionFactory(cancel_at_period_end=True)

        subscription = SubscriptionService.reactivate_subscription(subscription)

        assert subscription.cancel_at_period_end is False

    def test_cancelled_subscription_cannot_be_reactivated(self, db):
        subscription = SubscriptionFactory(status=SubscriptionStatus.CANCELLED)

        with pytest.raises(SubscriptionError) as exc_info:
            SubscriptionService.reactivate_subscription(subscription)

        assert exc_info.value.error_code == "SUBSCRIPTION_CANCELLED"

    def test_past_due_subscription_cannot_be_reactivated(self, db):
        subscription = SubscriptionFactory(
            status=SubscriptionStatus.PAST_DUE, cancel_at_period_end=True
        )

        with pytest.raises(SubscriptionError) as exc_info:
            SubscriptionService.reactivate_subscription(subscription)

        assert exc_info.value.error_code == "SUBSCRIPTION_NOT_ACTIVE"
        assert exc_info.value.details == {"status": SubscriptionStatus.PAST_DUE}
        assert Subscription.objects.get(pk=subscription.pk).cancel_at_period_end is True

    def test_expire_cancels_due_subscriptions(self, db):
        due = SubscriptionFactory(
            cancel_at_period_end=True,
            current_period_start=PERIOD_START,
            current_period_end=PERIOD_END,
        )
        not_due = SubscriptionFactory(cancel_at_period_end=True)
        renewing = SubscriptionFactory(
            current_period_start=PERIOD_START,
            current_period_end=PERIOD_END,
        )

        expired = SubscriptionService.expire_cancelled(now=PERIOD_END + timedelta(hours=1))

        assert expired == 1
        assert Subscription.objects.get(pk=due.pk).status == SubscriptionStatus.CANCELLED
        assert Subscription.objects.get(pk=not_due.pk).status == SubscriptionStatus.ACTIVE
        assert Subscription.objects.get(pk=renewing.pk).status == SubscriptionStatus.ACTIVE
