"""
Celery tasks for payment processing.

This module provides async tasks for:
- Running the monthly settlement batch
- Submitting settlement payouts
- Retrying failed webhook events
- Ending subscriptions that were cancelled at period end

Schedules live in django-celery-beat (see migration 0003).

Usage:
    from payments.tasks import run_monthly_settlement

    # Settle the previous calendar month now
    run_monthly_settlement.delay()

    # Queue a payout for execution
    from payments.tasks import process_settlement_payout
    process_settlement_payout.delay(str(settlement_id), method="stripe_connect")
"""

from __future__ import annotations

import logging
from datetime import datetime
from uuid import UUID

from celery import shared_task
from django.conf import settings
from django.utils.dateparse import parse_datetime

from payments.adapters import backoff_delay
from payments.exceptions import PaymentProcessingError
from payments.models import Settlement, WebhookEvent
from payments.state_machines import SettlementStatus, WebhookEventStatus

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

MAX_PAYOUT_RETRIES = 5
WEBHOOK_RETRY_BATCH_SIZE = 100


# =============================================================================
# Settlement Tasks
# =============================================================================


@shared_task
def run_monthly_settlement(reference: str | None = None) -> dict:
    """
    Settle the calendar month before `reference` (default: now).

    Scheduled for 02:00 UTC on the 1st. Re-running for the same month is
    safe: payees already settled are reported as skipped, and rows they
    gained since roll into the next month.

    Args:
        reference: ISO timestamp inside the month after the one to settle

    Returns:
        Dict with the period and the created/skipped/failed payees
    """
    from payments.services import SettlementService, previous_month_period

    moment: datetime | None = parse_datetime(reference) if reference else None
    period_start, period_end = previous_month_period(moment)

    logger.info(
        "Starting monthly settlement",
        extra={
            "period_start": period_start.isoformat(),
            "period_end": period_end.isoformat(),
        },
    )

    summary = SettlementService.run_settlements(period_start, period_end)

    if summary.errors:
        logger.error(
            f"Monthly settlement finished with {len(summary.errors)} errors",
            extra={"errors": summary.errors},
        )

    return summary.to_dict()


@shared_task(
    bind=True,
    max_retries=MAX_PAYOUT_RETRIES,
    acks_late=True,
)
def process_settlement_payout(self, settlement_id: str, method: str | None = None) -> dict:
    """
    Pay out a settlement.

    A settlement already PROCESSING without a reference is a transfer whose
    submission was interrupted; it is resubmitted with the same idempotency
    key. Transient provider errors are retried with exponential backoff.

    Args:
        settlement_id: UUID of the Settlement
        method: Payout method override (bank_transfer or stripe_connect)

    Returns:
        Dict with the settlement status after the attempt
    """
    from payments.services import SettlementService

    if isinstance(settlement_id, str):
        settlement_id = UUID(settlement_id)

    try:
        settlement = Settlement.objects.select_related("seller").get(id=settlement_id)
    except Settlement.DoesNotExist:
        logger.error(
            "Settlement not found",
            extra={"settlement_id": str(settlement_id)},
        )
        return {"status": "not_found", "settlement_id": str(settlement_id)}

    try:
        if settlement.status == SettlementStatus.PROCESSING and not settlement.payout_reference:
            settlement = SettlementService.submit_transfer(settlement)
        else:
            settlement = SettlementService.process_payout(settlement, method=method)
    except PaymentProcessingError as e:
        if not e.is_retryable:
            raise
        logger.warning(
            f"Payout submission failed, retrying: {e.error_code}",
            extra={
                "settlement_id": str(settlement_id),
                "attempt": self.request.retries + 1,
            },
        )
        raise self.retry(exc=e, countdown=backoff_delay(self.request.retries))

    return {
        "status": settlement.status,
        "settlement_id": str(settlement.id),
        "payout_reference": settlement.payout_reference,
    }


# =============================================================================
# Webhook Tasks
# =============================================================================


@shared_task
def retry_failed_webhooks() -> dict:
    """
    Periodic task to replay failed webhook events.

    Picks FAILED events with attempts left (MAX_WEBHOOK_RETRIES) and
    processes them again from their stored normalized payload.

    Returns:
        Dict with counts of replayed, recovered and still failing events
    """
    from payments.webhooks.ingestion import WebhookIngestionService

    failed_webhooks = WebhookEvent.objects.filter(
        status=WebhookEventStatus.FAILED,
        retry_count__lt=settings.MAX_WEBHOOK_RETRIES,
    ).order_by("created_at")[:WEBHOOK_RETRY_BATCH_SIZE]

    replayed = recovered = 0
    for webhook in failed_webhooks:
        replayed += 1
        result = WebhookIngestionService.replay(webhook)
        if result.status_code < 400:
            recovered += 1
        logger.info(
            "Replayed failed webhook",
            extra={
                "webhook_event_id": str(webhook.id),
                "event_id": webhook.event_id,
                "provider": webhook.provider,
                "result_status": result.status,
            },
        )

    if replayed:
        logger.info(
            f"Replayed {replayed} failed webhooks, {recovered} recovered",
            extra={"replayed": replayed, "recovered": recovered},
        )

    return {"replayed": replayed, "recovered": recovered, "failed": replayed - recovered}


# =============================================================================
# Subscription Tasks
# =============================================================================


@shared_task
def expire_cancelled_subscriptions() -> dict:
    """End subscriptions marked cancel_at_period_end whose period is over."""
    from payments.services import SubscriptionService

    expired = SubscriptionService.expire_cancelled()
    return {"expired_count": expired}
