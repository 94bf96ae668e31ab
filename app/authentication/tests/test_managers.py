"""
Tests for UserManager.

Related files:
    - managers.py: Implementation under test
"""

import pytest

from authentication.models import SellerTier, User, UserRole


class TestUserManagerCreateUser:
    """Tests for UserManager.create_user() method."""

    def test_creates_user_with_email_and_password(self, db):
        """
        Given valid email and password
        When create_user is called
        Then a buyer is created with those credentials
        """
        user = User.objects.create_user(
            email="mgr_create_user@example.com", password="SecurePass123!"
        )

        assert user.pk is not None
        assert user.check_password("SecurePass123!") is True
        assert user.role == UserRole.BUYER
        assert user.seller_tier == SellerTier.NEW
        assert user.subscription_tier == "FREE"

    def test_normalizes_email_domain_to_lowercase(self, db):
        """The domain part is lowercased; the local part keeps its case."""
        user = User.objects.create_user(
            email="Test.User@EXAMPLE.COM", password="TestPass123!"
        )

        assert user.email == "Test.User@example.com"

    def test_raises_valueerror_when_email_is_empty(self, db):
        with pytest.raises(ValueError) as exc_info:
            User.objects.create_user(email="", password="TestPass123!")

        assert "Email field must be set" in str(exc_info.value)

    def test_user_without_password_has_unusable_password(self, db):
        """
        Given no password
        When create_user is called
        Then the password is unusable
        """
        user = User.objects.create_user(email="nopass@example.com")

        assert user.has_usable_password() is False

    def test_accepts_marketplace_fields(self, db):
        user = User.objects.create_user(
            email="seller_fields@example.com",
            role=UserRole.SELLER,
            seller_tier=SellerTier.MASTER,
        )

        assert user.role == UserRole.SELLER
        assert user.seller_tier == SellerTier.MASTER


class TestUserManagerCreateSuperuser:
    """Tests for UserManager.create_superuser() method."""

    def test_creates_staff_superuser_with_admin_role(self, db):
        user = User.objects.create_superuser(
            email="ops@example.com", password="AdminPass123!"
        )

        assert user.is_staff is True
        assert user.is_superuser is True
        assert user.role == UserRole.ADMIN

    def test_rejects_superuser_without_staff_flag(self, db):
        with pytest.raises(ValueError, match="is_staff=True"):
            User.objects.create_superuser(
                email="bad@example.com", password="x", is_staff=False
            )
