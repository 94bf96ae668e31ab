"""
Authentication models.

This module defines the marketplace User:
- email-based login (no username)
- marketplace role (buyer, seller, verifier, ...)
- seller fee tier used to price the platform commission
- denormalized subscription tier for fast feature checks
- Stripe identifiers (customer for charges, Connect account for payouts)

Related files:
    - managers.py: Custom user manager for email-based creation
    - payments.services.fees: Reads seller_tier when an order is paid
    - payments.services.subscription_service: Keeps subscription_tier in sync
"""

from django.contrib.auth.models import AbstractBaseUser, PermissionsMixin
from django.db import models

from authentication.managers import UserManager


class UserRole(models.TextChoices):
    """Marketplace roles. Sellers and service providers own products."""

    BUYER = "buyer", "Buyer"
    SELLER = "seller", "Seller"
    SERVICE_PROVIDER = "service_provider", "Service Provider"
    VERIFIER = "verifier", "Verifier"
    ADMIN = "admin", "Admin"


class SellerTier(models.TextChoices):
    """
    Seller reputation tier.

    Each tier maps to a platform fee rate (see payments.services.fees).
    """

    NEW = "new", "New"
    VERIFIED = "verified", "Verified"
    PRO = "pro", "Pro"
    MASTER = "master", "Master"


class User(AbstractBaseUser, PermissionsMixin):
    """
    Custom User model using email as the primary identifier.

    Fields:
        email: Primary identifier, unique, used for login
        name: Display name used in notifications
        role: Marketplace role
        seller_tier: Fee tier applied when this user's products sell
        subscription_tier: Copy of the active subscription tier (FREE if none)
        stripe_customer_id: Reused Stripe customer for card payments
        stripe_account_id: Stripe Connect account receiving payouts
        bank_name / bank_account_number / bank_account_holder: Destination
            for bank transfer settlement payouts
        is_active / is_staff: Standard Django flags
        date_joined / updated_at: Timestamps

    Usage:
        seller = User.objects.create_user(
            email="seller@example.com",
            password="securepassword",
            role=UserRole.SELLER,
            seller_tier=SellerTier.PRO,
        )
    """

    email = models.EmailField(
        unique=True,
        db_index=True,
        max_length=254,
        help_text="User's email address (primary identifier)",
    )

    name = models.CharField(
        max_length=150,
        blank=True,
        default="",
        help_text="Display name",
    )

    # Marketplace attributes
    role = models.CharField(
        max_length=20,
        choices=UserRole.choices,
        default=UserRole.BUYER,
        db_index=True,
        help_text="Marketplace role",
    )
    seller_tier = models.CharField(
        max_length=20,
        choices=SellerTier.choices,
        default=SellerTier.NEW,
        help_text="Seller tier used to pick the platform fee rate",
    )

    # Eventually consistent copy of Subscription.tier
    subscription_tier = models.CharField(
        max_length=20,
        default="FREE",
        db_index=True,
        help_text="Current subscription tier (denormalized)",
    )

    # Payment provider identifiers
    stripe_customer_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Stripe Customer ID (cus_xxx)",
    )
    stripe_account_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Stripe Connect account ID (acct_xxx) for payouts",
    )

    # Bank transfer payout destination
    bank_name = models.CharField(max_length=100, blank=True, default="")
    bank_account_number = models.CharField(max_length=50, blank=True, default="")
    bank_account_holder = models.CharField(max_length=150, blank=True, default="")

    # Account status flags
    is_active = models.BooleanField(
        default=True,
        help_text="Whether this user account is active. Deselect instead of deleting.",
    )
    is_staff = models.BooleanField(
        default=False,
        help_text="Whether the user can access the admin site.",
    )

    # Timestamps
    date_joined = models.DateTimeField(
        auto_now_add=True,
        help_text="When the user account was created",
    )
    updated_at = models.DateTimeField(
        auto_now=True,
        help_text="When the user record was last modified",
    )

    USERNAME_FIELD = "email"
    REQUIRED_FIELDS = []

    objects = UserManager()

    class Meta:
        verbose_name = "user"
        verbose_name_plural = "users"
        ordering = ["-date_joined"]

    def __str__(self):
        """Return the user's email as string representation."""
        return self.email

    def get_full_name(self):
        return self.name or self.email

    def get_short_name(self):
        return self.name or self.email.split("@")[0]

    @property
    def is_seller(self) -> bool:
        """Whether the user can own products and receive seller settlements."""
        return self.role in (UserRole.SELLER, UserRole.SERVICE_PROVIDER)

    @property
    def is_verifier(self) -> bool:
        return self.role == UserRole.VERIFIER

    @property
    def has_bank_account(self) -> bool:
        """Whether bank, account number and holder are all on file."""
        return bool(self.bank_name and self.bank_account_number and self.bank_account_holder)
