"""
Authentication application.

Owns the email-keyed User model and the marketplace attributes the payment
subsystem reads: role, seller fee tier, subscription tier and Stripe ids.

Usage:
    from authentication.models import User, UserRole, SellerTier
"""
