"""
Payments app for marketplace money movement.

This app handles:
- Checkout: order + provider payment intent (Stripe, or Toss for KRW)
- Webhook ingestion: verified, deduplicated, applied exactly once
- Payment state: orders paid, failed or refunded from provider events
- Refunds: buyer requests and dashboard refunds, fee reversal
- Settlements: monthly seller and verifier payouts
- Subscriptions: plan catalogue, upgrades/downgrades with proration

Related apps:
    - authentication: User model (buyers, sellers, verifiers)

Usage:
    from payments.services import CheckoutService, SettlementService

    result = CheckoutService.create_checkout(buyer, product)

    start, end = SettlementService.previous_month_period()
    SettlementService.run_settlements(start, end)
"""
