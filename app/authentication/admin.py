"""
Django admin configuration for the marketplace User.
"""

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin

from authentication.models import User


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """Email-keyed user admin exposing marketplace and payout fields."""

    list_display = (
        "email",
        "role",
        "seller_tier",
        "subscription_tier",
        "is_active",
        "date_joined",
    )
    list_filter = ("role", "seller_tier", "subscription_tier", "is_active", "is_staff")
    search_fields = ("email", "name")
    ordering = ("-date_joined",)

    fieldsets = (
        (None, {"fields": ("email", "password", "name")}),
        ("Marketplace", {"fields": ("role", "seller_tier", "subscription_tier")}),
        ("Payments", {"fields": ("stripe_customer_id", "stripe_account_id")}),
        ("Bank account", {"fields": ("bank_name", "bank_account_number", "bank_account_holder")}),
        ("Status", {"fields": ("is_active", "is_staff", "is_superuser")}),
        ("Permissions", {"fields": ("groups", "user_permissions")}),
        ("Important dates", {"fields": ("date_joined", "last_login")}),
    )
    readonly_fields = ("date_joined", "last_login")

    add_fieldsets = (
        (
            None,
            {
                "classes": ("wide",),
                "fields": ("email", "role", "password1", "password2"),
            },
        ),
    )
