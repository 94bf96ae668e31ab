"""
Plan, Subscription and SubscriptionChange models.

Plans form a fixed ladder FREE < BASIC < PRO < ENTERPRISE. A user has at
most one open (non-cancelled) subscription; its tier is mirrored onto
User.subscription_tier for fast feature checks.

Usage:
    from payments.models import Plan, Subscription
    from payments.state_machines import BillingInterval, SubscriptionTier

    plan = Plan.objects.get(tier=SubscriptionTier.PRO)
    price = plan.price_for(BillingInterval.MONTHLY)  # 29900
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils import timezone

from django_fsm import FSMField, transition

from core.models import BaseModel
from core.model_mixins import OptimisticLockMixin, UUIDPrimaryKeyMixin

from payments.state_machines import (
    BillingInterval,
    SubscriptionStatus,
    SubscriptionTier,
)


class Plan(UUIDPrimaryKeyMixin, BaseModel):
    """
    Subscription plan catalogue entry, one per tier.

    Seeded by migration and the seed_plans management command.
    """

    tier = models.CharField(
        max_length=20,
        choices=SubscriptionTier.choices,
        unique=True,
    )

    name = models.CharField(max_length=100)
    description = models.TextField(blank=True, default="")

    monthly_price = models.PositiveBigIntegerField(
        default=0,
        help_text="Monthly price in smallest currency unit",
    )
    yearly_price = models.PositiveBigIntegerField(
        default=0,
        help_text="Yearly price in smallest currency unit",
    )
    currency = models.CharField(max_length=3, default="usd")

    features = models.JSONField(
        default=dict,
        blank=True,
        help_text="Feature set: max_products, analytics, support_level, ...",
    )

    sort_order = models.PositiveSmallIntegerField(default=0)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["sort_order"]
        verbose_name = "Plan"
        verbose_name_plural = "Plans"

    def __str__(self) -> str:
        return f"{self.name} ({self.tier})"

    def price_for(self, interval: str) -> int:
        """Price of one billing period for the given interval."""
        if interval == BillingInterval.YEARLY:
            return self.yearly_price
        return self.monthly_price


class Subscription(UUIDPrimaryKeyMixin, OptimisticLockMixin, BaseModel):
    """
    A user's subscription to a plan tier.

    State Flow:
        ACTIVE -> PAST_DUE -> ACTIVE
        ACTIVE/PAST_DUE -> CANCELLED (terminal)

    Cancellation at period end keeps the subscription ACTIVE with
    cancel_at_period_end set; the period-rollover sweep cancels it once
    current_period_end has passed.
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="subscriptions",
    )

    # ==========================================================================
    # Plan & Period
    # ==========================================================================

    tier = models.CharField(
        max_length=20,
        choices=SubscriptionTier.choices,
        default=SubscriptionTier.FREE,
        db_index=True,
    )

    interval = models.CharField(
        max_length=10,
        choices=BillingInterval.choices,
        default=BillingInterval.MONTHLY,
    )

    current_period_start = models.DateTimeField()
    current_period_end = models.DateTimeField(db_index=True)

    cancel_at_period_end = models.BooleanField(
        default=False,
        help_text="Cancellation scheduled for the end of the current period",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=SubscriptionStatus.ACTIVE,
        choices=SubscriptionStatus.choices,
        db_index=True,
        protected=True,
    )

    cancelled_at = models.DateTimeField(null=True, blank=True)

    # ==========================================================================
    # Provider Integration
    # ==========================================================================

    stripe_subscription_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        unique=True,
        help_text="Stripe Subscription ID (sub_xxx)",
    )
    stripe_customer_id = models.CharField(max_length=255, null=True, blank=True)

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Subscription"
        verbose_name_plural = "Subscriptions"
        indexes = [
            models.Index(
                fields=["status", "cancel_at_period_end", "current_period_end"],
                name="subscription_rollover_idx",
            ),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["user"],
                condition=~Q(status=SubscriptionStatus.CANCELLED),
                name="subscription_one_open_per_user",
            ),
            models.CheckConstraint(
                condition=Q(current_period_end__gt=models.F("current_period_start")),
                name="subscription_period_ordered",
            ),
        ]

    def __str__(self) -> str:
        return f"Subscription({self.user_id}, {self.tier}, {self.status})"

    @property
    def is_active(self) -> bool:
        return self.status == SubscriptionStatus.ACTIVE

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=[SubscriptionStatus.ACTIVE, SubscriptionStatus.PAST_DUE],
        target=SubscriptionStatus.CANCELLED,
    )
    def cancel(self):
        """
        End the subscription now.

        Transition: ACTIVE/PAST_DUE -> CANCELLED
        """
        self.cancelled_at = timezone.now()
        self.cancel_at_period_end = False

    @transition(
        field=status,
        source=SubscriptionStatus.ACTIVE,
        target=SubscriptionStatus.PAST_DUE,
    )
    def mark_past_due(self):
        """
        Renewal payment failed.

        Transition: ACTIVE -> PAST_DUE
        """
        pass

    @transition(
        field=status,
        source=SubscriptionStatus.PAST_DUE,
        target=SubscriptionStatus.ACTIVE,
    )
    def recover(self):
        """
        Renewal payment succeeded after a failure.

        Transition: PAST_DUE -> ACTIVE
        """
        pass


class SubscriptionChange(UUIDPrimaryKeyMixin, BaseModel):
    """
    Audit row for a plan change with the proration that was applied.
    """

    subscription = models.ForeignKey(
        Subscription,
        on_delete=models.CASCADE,
        related_name="changes",
    )

    from_tier = models.CharField(max_length=20, choices=SubscriptionTier.choices)
    to_tier = models.CharField(max_length=20, choices=SubscriptionTier.choices)
    interval = models.CharField(max_length=10, choices=BillingInterval.choices)

    credits_applied = models.PositiveBigIntegerField(default=0)
    immediate_charge = models.PositiveBigIntegerField(default=0)
    next_billing_amount = models.PositiveBigIntegerField(default=0)
    next_billing_date = models.DateTimeField()

    effective_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["-effective_at"]
        verbose_name = "Subscription Change"
        verbose_name_plural = "Subscription Changes"

    def __str__(self) -> str:
        return f"SubscriptionChange({self.from_tier} -> {self.to_tier})"
