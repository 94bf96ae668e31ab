"""
Payment admin configuration.

Registers the payment domain models with the Django admin. Money-moving
state (order, payment, refund and settlement status, amounts) is read-only
here; changes go through the service layer.
"""

from django.contrib import admin

from payments.models import (
    Order,
    Payment,
    Plan,
    Product,
    Refund,
    Settlement,
    SettlementItem,
    Subscription,
    SubscriptionChange,
    VerifierPayout,
    WebhookEvent,
)


def format_amount(amount: int, currency: str) -> str:
    """Render a smallest-unit amount; zero-decimal currencies are shown as is."""
    if currency.lower() in ("krw", "jpy"):
        return f"{amount:,} {currency.upper()}"
    return f"{amount / 100:,.2f} {currency.upper()}"


# =============================================================================
# Catalogue
# =============================================================================


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ["id", "title", "seller", "price", "currency", "is_active", "created_at"]
    list_filter = ["is_active", "currency"]
    search_fields = ["id", "title", "seller__email"]
    readonly_fields = ["id", "created_at", "updated_at"]
    ordering = ["-created_at"]


# =============================================================================
# Orders & Payments
# =============================================================================


class PaymentInline(admin.StackedInline):
    model = Payment
    extra = 0
    can_delete = False
    fields = [
        "provider",
        "provider_payment_id",
        "status",
        "amount",
        "failure_code",
        "succeeded_at",
    ]
    readonly_fields = fields


class RefundInline(admin.TabularInline):
    model = Refund
    extra = 0
    can_delete = False
    fields = ["id", "amount", "platform_fee_reversed", "status", "provider_refund_id", "created_at"]
    readonly_fields = fields


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    """
    Admin configuration for Order.

    State changes should be made through the service layer, not admin.
    """

    list_display = [
        "id",
        "buyer",
        "product",
        "amount_display",
        "status",
        "access_granted",
        "settlement",
        "created_at",
    ]
    list_filter = ["status", "currency", "access_granted", "created_at"]
    search_fields = ["id", "buyer__email", "product__title", "payment__provider_payment_id"]
    readonly_fields = [
        "id",
        "buyer",
        "product",
        "amount",
        "currency",
        "platform_fee",
        "seller_amount",
        "refunded_amount",
        "refunded_platform_fee",
        "status",
        "access_granted",
        "failure_code",
        "failure_message",
        "settlement",
        "paid_at",
        "completed_at",
        "refunded_at",
        "settled_at",
        "version",
        "created_at",
        "updated_at",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]
    inlines = [PaymentInline, RefundInline]

    fieldsets = (
        (None, {"fields": ("id", "buyer", "product", "status", "access_granted")}),
        (
            "Amounts",
            {
                "fields": (
                    "amount",
                    "currency",
                    "platform_fee",
                    "seller_amount",
                    "refunded_amount",
                    "refunded_platform_fee",
                ),
            },
        ),
        (
            "Settlement",
            {"fields": ("settlement", "settled_at")},
        ),
        (
            "Failure Info",
            {"fields": ("failure_code", "failure_message"), "classes": ("collapse",)},
        ),
        (
            "Timestamps",
            {
                "fields": (
                    "paid_at",
                    "completed_at",
                    "refunded_at",
                    "created_at",
                    "updated_at",
                    "version",
                ),
            },
        ),
    )

    @admin.display(description="Amount")
    def amount_display(self, obj: Order) -> str:
        return format_amount(obj.amount, obj.currency)

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for orders (audit trail)."""
        return False


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ["id", "order", "provider", "provider_payment_id", "status", "amount", "created_at"]
    list_filter = ["provider", "status", "currency"]
    search_fields = ["id", "provider_payment_id", "order__id", "customer_id"]
    readonly_fields = [f.name for f in Payment._meta.fields]
    ordering = ["-created_at"]

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


@admin.register(Refund)
class RefundAdmin(admin.ModelAdmin):
    list_display = [
        "id",
        "order",
        "amount",
        "platform_fee_reversed",
        "status",
        "provider_refund_id",
        "created_at",
    ]
    list_filter = ["status", "currency", "created_at"]
    search_fields = ["id", "provider_refund_id", "order__id"]
    readonly_fields = [f.name for f in Refund._meta.fields]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


# =============================================================================
# Settlements
# =============================================================================


class SettlementItemInline(admin.TabularInline):
    model = SettlementItem
    fk_name = "settlement"
    extra = 0
    can_delete = False
    fields = [
        "item_type",
        "order",
        "verifier_payout",
        "refund",
        "balance_source",
        "amount",
        "platform_fee",
        "payout_amount",
    ]
    readonly_fields = fields

    def has_add_permission(self, request, obj=None) -> bool:
        return False


@admin.register(Settlement)
class SettlementAdmin(admin.ModelAdmin):
    """
    Admin configuration for Settlement.

    Payout actions are exposed through the staff API so that every
    transition runs through SettlementService.
    """

    list_display = [
        "id",
        "seller",
        "settlement_type",
        "period_start",
        "payout_display",
        "status",
        "payout_method",
        "paid_at",
    ]
    list_filter = ["status", "settlement_type", "payout_method", "currency"]
    search_fields = ["id", "seller__email", "payout_reference"]
    readonly_fields = [f.name for f in Settlement._meta.fields]
    date_hierarchy = "period_start"
    ordering = ["-period_start"]
    inlines = [SettlementItemInline]

    @admin.display(description="Payout")
    def payout_display(self, obj: Settlement) -> str:
        return format_amount(obj.payout_amount, obj.currency)

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


@admin.register(SettlementItem)
class SettlementItemAdmin(admin.ModelAdmin):
    list_display = ["id", "seller", "item_type", "settlement", "amount", "payout_amount", "created_at"]
    list_filter = ["item_type", "currency"]
    search_fields = ["id", "seller__email", "order__id"]
    readonly_fields = [f.name for f in SettlementItem._meta.fields]
    ordering = ["-created_at"]


@admin.register(VerifierPayout)
class VerifierPayoutAdmin(admin.ModelAdmin):
    list_display = ["id", "verifier", "verification_reference", "amount", "status", "settlement", "created_at"]
    list_filter = ["status", "currency"]
    search_fields = ["id", "verifier__email", "verification_reference"]
    readonly_fields = ["id", "status", "settlement", "paid_at", "created_at", "updated_at"]
    ordering = ["-created_at"]


# =============================================================================
# Subscriptions
# =============================================================================


@admin.register(Plan)
class PlanAdmin(admin.ModelAdmin):
    list_display = ["tier", "name", "monthly_price", "yearly_price", "currency", "is_active", "sort_order"]
    list_filter = ["is_active"]
    ordering = ["sort_order"]


class SubscriptionChangeInline(admin.TabularInline):
    model = SubscriptionChange
    extra = 0
    can_delete = False
    fields = ["from_tier", "to_tier", "credits_applied", "immediate_charge", "effective_at"]
    readonly_fields = fields


@admin.register(Subscription)
class SubscriptionAdmin(admin.ModelAdmin):
    list_display = [
        "id",
        "user",
        "tier",
        "interval",
        "status",
        "current_period_end",
        "cancel_at_period_end",
    ]
    list_filter = ["status", "tier", "interval", "cancel_at_period_end"]
    search_fields = ["id", "user__email", "stripe_subscription_id"]
    readonly_fields = ["id", "status", "cancelled_at", "version", "created_at", "updated_at"]
    ordering = ["-created_at"]
    inlines = [SubscriptionChangeInline]


# =============================================================================
# Webhooks
# =============================================================================


@admin.register(WebhookEvent)
class WebhookEventAdmin(admin.ModelAdmin):
    """
    Admin configuration for WebhookEvent.

    Provides visibility into webhook processing status.
    Webhook events are immutable once received.
    """

    list_display = [
        "id",
        "provider",
        "event_id",
        "event_type",
        "normalized_type",
        "status",
        "retry_count",
        "processed_at",
        "created_at",
    ]
    list_filter = ["provider", "status", "normalized_type", "created_at"]
    search_fields = ["id", "event_id", "event_type"]
    readonly_fields = [f.name for f in WebhookEvent._meta.fields]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    fieldsets = (
        (None, {"fields": ("id", "provider", "event_id", "event_type", "normalized_type", "status")}),
        ("Processing", {"fields": ("processed_at", "retry_count", "result")}),
        ("Error Info", {"fields": ("error_message",), "classes": ("collapse",)}),
        ("Payload", {"fields": ("payload", "normalized"), "classes": ("collapse",)}),
        ("Timestamps", {"fields": ("created_at", "updated_at")}),
    )

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for webhook events (audit trail)."""
        return False

    def has_add_permission(self, request) -> bool:
        """Disable adding webhook events through admin."""
        return False
