"""
Factory Boy factories for authentication models.

Usage:
    from authentication.tests.factories import UserFactory, SellerFactory

    buyer = UserFactory()
    seller = SellerFactory(seller_tier=SellerTier.PRO)
    verifier = VerifierFactory()
"""

import factory

from authentication.models import SellerTier, User, UserRole


class UserFactory(factory.django.DjangoModelFactory):
    """
    Factory for User model.

    Creates active buyers by default.

    Examples:
        user = UserFactory()
        staff = UserFactory(is_staff=True)
    """

    class Meta:
        model = User
        skip_postgeneration_save = True

    email = factory.Sequence(lambda n: f"user{n}@example.com")
    name = factory.Faker("name")
    role = UserRole.BUYER
    is_active = True
    is_staff = False

    @classmethod
    def _create(cls, model_class, *args, **kwargs):
        """Override create to use UserManager.create_user()."""
        password = kwargs.pop("password", "TestPass123!")
        return model_class.objects.create_user(
            email=kwargs.pop("email"), password=password, **kwargs
        )


class SellerFactory(UserFactory):
    """Seller on the NEW fee tier with a connected Stripe account and bank details."""

    email = factory.Sequence(lambda n: f"seller{n}@example.com")
    role = UserRole.SELLER
    seller_tier = SellerTier.NEW
    stripe_account_id = factory.Sequence(lambda n: f"acct_test_{n:06d}")
    bank_name = "Test Bank"
    bank_account_number = factory.Sequence(lambda n: f"{n:010d}")
    bank_account_holder = factory.SelfAttribute("name")


class VerifierFactory(UserFactory):
    """Verifier who receives pass-through verification payouts."""

    email = factory.Sequence(lambda n: f"verifier{n}@example.com")
    role = UserRole.VERIFIER
    bank_name = "Test Bank"
    bank_account_number = factory.Sequence(lambda n: f"9{n:09d}")
    bank_account_holder = factory.SelfAttribute("name")


class StaffFactory(UserFactory):
    """Operations staff allowed to run and pay out settlements."""

    email = factory.Sequence(lambda n: f"staff{n}@example.com")
    role = UserRole.ADMIN
    is_staff = True
