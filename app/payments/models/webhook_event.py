"""
WebhookEvent model for provider webhook tracking.

Stores every verified webhook event from Stripe and Toss for idempotent
processing and audit trails. The unique (provider, event_id) constraint
is the idempotency key: a redelivered event finds its row and replays the
recorded result instead of mutating anything.

Usage:
    from payments.models import WebhookEvent
    from payments.state_machines import WebhookEventStatus

    event, created = (
        WebhookEvent.objects.select_for_update()
        .get_or_create(
            provider="stripe",
            event_id="evt_1234567890",
            defaults={"event_type": "payment_intent.succeeded", "payload": payload},
        )
    )

    if not created and event.is_processed:
        return event.result  # duplicate delivery
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.utils import timezone

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from payments.state_machines import PaymentProvider, WebhookEventStatus


class WebhookEvent(UUIDPrimaryKeyMixin, BaseModel):
    """
    Tracks provider webhook events for idempotent processing.

    Processing Flow:
        1. Webhook arrives, verify provider signature
        2. Normalize the payload (reject unsupported event types)
        3. Lock-or-create the WebhookEvent on (provider, event_id)
        4. If PROCESSED -> return recorded result (duplicate)
        5. Dispatch to the handler for the normalized type
        6. Set status to PROCESSED with the result, same transaction
        7. On handler error the transaction rolls back and the event is
           stored as FAILED for the retry task

    Fields:
        provider: stripe or toss
        event_id: Provider event id (Stripe evt_xxx, derived key for Toss)
        event_type: Provider's raw event type
        normalized_type: payment.succeeded, payment.failed, ...
        payload: Raw JSON payload
        normalized: Normalized event used for replay
        result: Outcome recorded on success, returned for duplicates
        retry_count: Number of processing attempts
    """

    # ==========================================================================
    # Event Identification
    # ==========================================================================

    provider = models.CharField(
        max_length=20,
        choices=PaymentProvider.choices,
        db_index=True,
    )

    event_id = models.CharField(
        max_length=255,
        help_text="Provider event id - unique per provider for idempotency",
    )

    event_type = models.CharField(
        max_length=100,
        db_index=True,
        help_text="Provider event type (e.g., 'payment_intent.succeeded')",
    )

    normalized_type = models.CharField(max_length=50, blank=True, default="")

    # ==========================================================================
    # Payload
    # ==========================================================================

    payload = models.JSONField(
        default=dict,
        help_text="Raw webhook payload from the provider (JSON)",
    )

    normalized = models.JSONField(
        default=dict,
        blank=True,
        help_text="Normalized event, replayed by the retry task",
    )

    # ==========================================================================
    # Processing Status
    # ==========================================================================

    status = models.CharField(
        max_length=20,
        choices=WebhookEventStatus.choices,
        default=WebhookEventStatus.PENDING,
        db_index=True,
    )

    result = models.JSONField(default=dict, blank=True)

    processed_at = models.DateTimeField(null=True, blank=True)

    # ==========================================================================
    # Error Handling
    # ==========================================================================

    error_message = models.TextField(null=True, blank=True)

    retry_count = models.PositiveSmallIntegerField(
        default=0,
        help_text="Number of processing attempts",
    )

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Webhook Event"
        verbose_name_plural = "Webhook Events"
        indexes = [
            models.Index(fields=["status", "created_at"], name="webhook_status_created_idx"),
            models.Index(fields=["status", "retry_count"], name="webhook_status_retry_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["provider", "event_id"],
                name="webhook_event_unique_provider_event",
            ),
        ]

    def __str__(self) -> str:
        return f"WebhookEvent({self.provider}:{self.event_id}, {self.event_type})"

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_processed(self) -> bool:
        return self.status == WebhookEventStatus.PROCESSED

    @property
    def is_failed(self) -> bool:
        return self.status == WebhookEventStatus.FAILED

    @property
    def can_retry(self) -> bool:
        """Failed with attempts left (MAX_WEBHOOK_RETRIES)."""
        return self.is_failed and self.retry_count < settings.MAX_WEBHOOK_RETRIES

    # ==========================================================================
    # Helper Methods
    # ==========================================================================

    def mark_processing(self) -> None:
        """
        Mark event as being processed.

        Note: Does not save - caller must save after calling.
        """
        self.status = WebhookEventStatus.PROCESSING
        self.retry_count += 1

    def mark_processed(self, result: dict | None = None) -> None:
        """
        Mark event as successfully processed and record its outcome.

        Note: Does not save - caller must save after calling.
        """
        self.status = WebhookEventStatus.PROCESSED
        self.processed_at = timezone.now()
        self.error_message = None
        self.result = result or {}

    def mark_failed(self, error_message: str) -> None:
        """
        Mark event as failed with error message.

        Note: Does not save - caller must save after calling.
        """
        self.status = WebhookEventStatus.FAILED
        self.error_message = error_message
