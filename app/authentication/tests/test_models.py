"""
Tests for the User model.
"""

from authentication.models import UserRole
from authentication.tests.factories import SellerFactory, UserFactory, VerifierFactory


class TestUserModel:
    """Tests for marketplace helpers on User."""

    def test_str_returns_email(self, db):
        user = UserFactory(email="str@example.com")

        assert str(user) == "str@example.com"

    def test_seller_roles_are_sellers(self, db):
        """Sellers and service providers both own products."""
        assert SellerFactory().is_seller is True
        assert UserFactory(role=UserRole.SERVICE_PROVIDER).is_seller is True
        assert UserFactory().is_seller is False

    def test_verifier_flag(self, db):
        assert VerifierFactory().is_verifier is True
        assert SellerFactory().is_verifier is False

    def test_short_name_falls_back_to_email_local_part(self, db):
        user = UserFactory(email="jamie@example.com", name="")

        assert user.get_short_name() == "jamie"

    def test_bank_account_needs_every_detail(self, db):
        assert SellerFactory().has_bank_account is True
        assert UserFactory().has_bank_account is False
        assert SellerFactory(bank_account_holder="").has_bank_account is False
