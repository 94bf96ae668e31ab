"""
Subscription billing: plan catalogue, plan changes and proration.

Tier order is FREE < BASIC < PRO < ENTERPRISE. A mid-period change is
prorated over whole days left in the current period:

    credits_applied   = floor(old_price * remaining / total)
    immediate_charge  = max(0, floor(new_price * remaining / total) - credits_applied)
    next_billing      = new_price on the current period end

Downgrades are never refunded: the immediate charge is 0 and the credits
figure is reported for information.

Usage:
    from payments.services import SubscriptionService, calculate_proration

    preview = SubscriptionService.preview_change(user, "PRO")
    preview.immediate_charge

    change = SubscriptionService.change_plan(user, "PRO")
    SubscriptionService.cancel_subscription(subscription, immediate=False)
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from django.db.models import Q
from django.utils import timezone

from core.services import BaseService

from payments.exceptions import PaymentNotFoundError, SubscriptionError
from payments.models import Plan, Subscription, SubscriptionChange
from payments.state_machines import (
    BillingInterval,
    SubscriptionStatus,
    SubscriptionTier,
    tier_rank,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from authentication.models import User


logger = logging.getLogger(__name__)


SECONDS_PER_DAY = 24 * 60 * 60

# Length of a new billing period
PERIOD_LENGTH_DAYS = {
    BillingInterval.MONTHLY: 30,
    BillingInterval.YEARLY: 365,
}


# =============================================================================
# Proration
# =============================================================================


@dataclass
class ProrationResult:
    """
    Numbers shown to the user before a plan change and charged after it.

    All amounts in smallest currency unit.
    """

    from_tier: str
    to_tier: str
    interval: str
    remaining_days: int
    total_days: int
    credits_applied: int
    immediate_charge: int
    next_billing_amount: int
    next_billing_date: datetime

    @property
    def is_upgrade(self) -> bool:
        return tier_rank(self.to_tier) > tier_rank(self.from_tier)

    def to_dict(self) -> dict[str, Any]:
        return {
            "from_tier": self.from_tier,
            "to_tier": self.to_tier,
            "interval": self.interval,
            "credits_applied": self.credits_applied,
            "immediate_charge": self.immediate_charge,
            "next_billing_amount": self.next_billing_amount,
            "next_billing_date": self.next_billing_date,
        }


def _whole_days(start: datetime, end: datetime) -> int:
    """Days from start to end, partial days counted as whole, never negative."""
    seconds = (end - start).total_seconds()
    if seconds <= 0:
        return 0
    return math.ceil(seconds / SECONDS_PER_DAY)


def calculate_proration(
    from_tier: str,
    to_tier: str,
    change_date: datetime,
    interval: str,
    period_start: datetime,
    period_end: datetime,
) -> ProrationResult:
    """
    Prorate a tier change within the current billing period.

    Example:
        19900 -> 29900 monthly, 30-day period, 15 days left:
        credits 9950, immediate charge 5000, next billing 29900.
    """
    old_price = PlanService.price_for(from_tier, interval)
    new_price = PlanService.price_for(to_tier, interval)

    total_days = _whole_days(period_start, period_end)
    remaining_days = min(_whole_days(change_date, period_end), total_days)

    if total_days == 0:
        credits_applied = 0
        prorated_new_price = 0
    else:
        credits_applied = old_price * remaining_days // total_days
        prorated_new_price = new_price * remaining_days // total_days

    return ProrationResult(
        from_tier=from_tier,
        to_tier=to_tier,
        interval=interval,
        remaining_days=remaining_days,
        total_days=total_days,
        credits_applied=credits_applied,
        immediate_charge=max(0, prorated_new_price - credits_applied),
        next_billing_amount=new_price,
        next_billing_date=period_end,
    )


# =============================================================================
# Plan Service
# =============================================================================


class PlanService(BaseService):
    """Read access to the plan catalogue."""

    @classmethod
    def list_plans(cls) -> Sequence[Plan]:
        return Plan.objects.filter(is_active=True).order_by("sort_order")

    @classmethod
    def get_plan(cls, tier: str) -> Plan:
        """
        Raises:
            PaymentNotFoundError: No active plan for the tier
        """
        try:
            return Plan.objects.get(tier=tier, is_active=True)
        except Plan.DoesNotExist:
            raise PaymentNotFoundError(
                f"No active plan for tier {tier}",
                error_code="PLAN_NOT_FOUND",
                details={"tier": tier},
            ) from None

    @classmethod
    def price_for(cls, tier: str, interval: str) -> int:
        """Price of one period; FREE costs nothing even without a catalogue row."""
        if tier == SubscriptionTier.FREE:
            return 0
        return cls.get_plan(tier).price_for(interval)


# =============================================================================
# Subscription Service
# =============================================================================


class SubscriptionService(BaseService):
    """
    Plan changes, cancellation and period rollover.

    User.subscription_tier mirrors the tier of the user's open
    subscription and is updated in the same transaction as the change.
    """

    # =========================================================================
    # Lookup
    # =========================================================================

    @classmethod
    def get_subscription(cls, user: User, lock: bool = False) -> Subscription | None:
        """The user's open (not cancelled) subscription, if any."""
        queryset = Subscription.objects.filter(user=user).exclude(
            status=SubscriptionStatus.CANCELLED
        )
        if lock:
            queryset = queryset.select_for_update()
        return queryset.first()

    @classmethod
    def _validate_tier(cls, tier: str) -> None:
        if tier not in SubscriptionTier.values:
            raise SubscriptionError(
                f"Unknown subscription tier: {tier}",
                error_code="INVALID_TIER",
                details={"tier": tier, "allowed": list(SubscriptionTier.values)},
            )

    @classmethod
    def _validate_interval(cls, interval: str) -> None:
        if interval not in BillingInterval.values:
            raise SubscriptionError(
                f"Unknown billing interval: {interval}",
                error_code="INVALID_INTERVAL",
                details={"interval": interval},
            )

    @classmethod
    def _sync_user_tier(cls, user: User, tier: str) -> None:
        user.subscription_tier = tier
        user.save(update_fields=["subscription_tier", "updated_at"])

    # =========================================================================
    # Plan Changes
    # =========================================================================

    @classmethod
    def preview_change(
        cls,
        user: User,
        to_tier: str,
        interval: str | None = None,
        now: datetime | None = None,
    ) -> ProrationResult:
        """
        Proration for changing the user's plan now, without changing it.

        A user with no open subscription is quoted a fresh period from FREE.
        """
        cls._validate_tier(to_tier)
        now = now or timezone.now()
        subscription = cls.get_subscription(user)

        if subscription is None:
            interval = interval or BillingInterval.MONTHLY
            cls._validate_interval(interval)
            period_end = now + timedelta(days=PERIOD_LENGTH_DAYS[interval])
            return calculate_proration(
                SubscriptionTier.FREE, to_tier, now, interval, now, period_end
            )

        return calculate_proration(
            subscription.tier,
            to_tier,
            now,
            subscription.interval,
            subscription.current_period_start,
            subscription.current_period_end,
        )

    @classmethod
    def change_plan(
        cls,
        user: User,
        to_tier: str,
        interval: str | None = None,
        now: datetime | None = None,
    ) -> SubscriptionChange:
        """
        Move the user to another tier, effective immediately.

        Starts a new subscription when the user has none. The billing
        interval of an existing subscription is kept; interval changes take
        effect by cancelling and subscribing again.

        Raises:
            SubscriptionError: Unknown tier, same plan, subscription past
                due, or interval change requested
            PaymentNotFoundError: Target tier has no active plan
        """
        cls._validate_tier(to_tier)
        now = now or timezone.now()

        with cls.atomic():
            subscription = cls.get_subscription(user, lock=True)

            if subscription is None:
                interval = interval or BillingInterval.MONTHLY
                cls._validate_interval(interval)
                subscription = Subscription.objects.create(
                    user=user,
                    tier=SubscriptionTier.FREE,
                    interval=interval,
                    current_period_start=now,
                    current_period_end=now + timedelta(days=PERIOD_LENGTH_DAYS[interval]),
                )
            else:
                if not subscription.is_active:
                    raise SubscriptionError(
                        "Subscription must be active to change plans",
                        error_code="SUBSCRIPTION_NOT_ACTIVE",
                        details={"status": subscription.status},
                    )
                if interval and interval != subscription.interval:
                    raise SubscriptionError(
                        "Billing interval can only change at renewal",
                        error_code="INTERVAL_CHANGE_NOT_SUPPORTED",
                        details={"current": subscription.interval, "requested": interval},
                    )

            if subscription.tier == to_tier:
                raise SubscriptionError(
                    f"Already subscribed to {to_tier}",
                    error_code="SAME_PLAN",
                )

            proration = calculate_proration(
                subscription.tier,
                to_tier,
                now,
                subscription.interval,
                subscription.current_period_start,
                subscription.current_period_end,
            )

            change = SubscriptionChange.objects.create(
                subscription=subscription,
                from_tier=subscription.tier,
                to_tier=to_tier,
                interval=subscription.interval,
                credits_applied=proration.credits_applied,
                immediate_charge=proration.immediate_charge,
                next_billing_amount=proration.next_billing_amount,
                next_billing_date=proration.next_billing_date,
                effective_at=now,
            )

            subscription.tier = to_tier
            subscription.save()
            cls._sync_user_tier(user, to_tier)

        cls.get_logger().info(
            f"Subscription {subscription.id} changed {change.from_tier} -> {to_tier}",
            extra={
                "user_id": str(user.id),
                "subscription_id": str(subscription.id),
                "immediate_charge": change.immediate_charge,
                "credits_applied": change.credits_applied,
            },
        )
        return change

    # =========================================================================
    # Cancellation
    # =========================================================================

    @classmethod
    def cancel_subscription(cls, subscription: Subscription, immediate: bool = False) -> Subscription:
        """
        Cancel now or at the end of the current period.

        immediate=False keeps the subscription ACTIVE with its tier until
        the period ends; immediate=True cancels and drops the user to FREE.
        """
        with cls.atomic():
            subscription = Subscription.objects.select_for_update().get(pk=subscription.pk)

            if subscription.status == SubscriptionStatus.CANCELLED:
                raise SubscriptionError(
                    "Subscription is already cancelled",
                    error_code="SUBSCRIPTION_CANCELLED",
                )

            if immediate:
                subscription.cancel()
                subscription.save()
                cls._sync_user_tier(subscription.user, SubscriptionTier.FREE)
            else:
                if not subscription.is_active:
                    raise SubscriptionError(
                        "Only active subscriptions can be cancelled at period end",
                        error_code="SUBSCRIPTION_NOT_ACTIVE",
                        details={"status": subscription.status},
                    )
                subscription.cancel_at_period_end = True
                subscription.save()

        cls.get_logger().info(
            f"Subscription {subscription.id} cancelled",
            extra={"subscription_id": str(subscription.id), "immediate": immediate},
        )
        return subscription

    @classmethod
    def reactivate_subscription(cls, subscription: Subscription) -> Subscription:
        """
        Undo a scheduled cancellation.

        Raises:
            SubscriptionError: Subscription already cancelled or not active
        """
        with cls.atomic():
            subscription = Subscription.objects.select_for_update().get(pk=subscription.pk)

            if subscription.status == SubscriptionStatus.CANCELLED:
                raise SubscriptionError(
                    "Cancelled subscriptions cannot be reactivated",
                    error_code="SUBSCRIPTION_CANCELLED",
                )
            if not subscription.is_active:
                raise SubscriptionError(
                    "Only active subscriptions can be reactivated",
                    error_code="SUBSCRIPTION_NOT_ACTIVE",
                    details={"status": subscription.status},
                )

            subscription.cancel_at_period_end = False
            subscription.save()

        return subscription

    @classmethod
    def expire_cancelled(cls, now: datetime | None = None) -> int:
        """
        Cancel subscriptions whose scheduled cancellation date has passed.

        Returns:
            Number of subscriptions cancelled
        """
        now = now or timezone.now()
        expired = 0

        due = Subscription.objects.filter(
            Q(status=SubscriptionStatus.ACTIVE) | Q(status=SubscriptionStatus.PAST_DUE),
            cancel_at_period_end=True,
            current_period_end__lte=now,
        ).values_list("pk", flat=True)

        for pk in list(due):
            with cls.atomic():
                subscription = (
                    Subscription.objects.select_for_update()
                    .select_related("user")
                    .get(pk=pk)
                )
                if subscription.status == SubscriptionStatus.CANCELLED:
                    continue
                subscription.cancel()
                subscription.save()
                cls._sync_user_tier(subscription.user, SubscriptionTier.FREE)
                expired += 1

        if expired:
            cls.get_logger().info(f"Expired {expired} cancelled subscriptions")
        return expired
