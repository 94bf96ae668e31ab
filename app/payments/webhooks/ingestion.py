"""
Idempotent webhook ingestion.

Every delivery goes through the same steps:
1. The provider adapter verifies the signature over the raw body and
   normalizes the event. Bad signature, unparseable body or unsupported
   type: rejected with 400, nothing persisted.
2. In one transaction the WebhookEvent row for (provider, event_id) is
   fetched or created under a row lock. An event already PROCESSED replays
   its recorded result (200, duplicate) without touching anything else.
3. The event is dispatched to its handler and marked PROCESSED with the
   handler's result in the same transaction.
4. If the handler fails, the transaction rolls back, the event is stored
   FAILED in a separate write and the endpoint answers 500 so the provider
   redelivers. retry_failed_webhooks also replays FAILED events.

Usage:
    from payments.webhooks.ingestion import WebhookIngestionService

    result = WebhookIngestionService.ingest("stripe", request.body, request.headers)
    return JsonResponse(result.to_dict(), status=result.status_code)
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from django.db import transaction

from core.services import BaseService

from payments.adapters import NormalizedWebhookEvent, WebhookRequest, get_adapter
from payments.exceptions import PaymentValidationError, WebhookError
from payments.models import WebhookEvent
from payments.webhooks.handlers import dispatch_webhook


logger = logging.getLogger(__name__)


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class IngestionResult:
    """
    Outcome of one webhook delivery, mapped onto the HTTP response.

    Attributes:
        status_code: 200 processed or duplicate, 400 rejected, 500 failed
        status: processed, duplicate, rejected or failed
        event_id: Provider event id, when the event could be parsed
        duplicate: True when a processed event was delivered again
        result: Recorded handler outcome
        error / error_code: Why the delivery was rejected or failed
    """

    status_code: int
    status: str
    event_id: str | None = None
    duplicate: bool = False
    result: dict[str, Any] = field(default_factory=dict)
    error: str | None = None
    error_code: str | None = None

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"status": self.status}
        if self.event_id:
            body["event_id"] = self.event_id
        if self.status_code < 400:
            body["duplicate"] = self.duplicate
            body["result"] = self.result
        else:
            body["error"] = self.error
            if self.error_code:
                body["error_code"] = self.error_code
        return body


# =============================================================================
# Ingestion Service
# =============================================================================


class WebhookIngestionService(BaseService):
    """Verifies, dedupes and applies provider webhooks."""

    @classmethod
    def ingest(cls, provider: str, body: bytes, headers: Mapping[str, str]) -> IngestionResult:
        """
        Handle one raw webhook delivery.

        Args:
            provider: Rail the endpoint belongs to (stripe or toss)
            body: Raw request body, exactly as received
            headers: Request headers (signature lookup is case-insensitive)
        """
        logger_ = cls.get_logger()

        try:
            adapter = get_adapter(provider)
            request = WebhookRequest(body=body, headers=dict(headers))
            if not adapter.verify_webhook_signature(request):
                raise WebhookError(
                    "Missing or invalid webhook signature",
                    error_code="INVALID_SIGNATURE",
                )
            event = adapter.handle_webhook(request)
        except (WebhookError, PaymentValidationError) as e:
            logger_.warning(
                f"Webhook rejected: {e.error_code}",
                extra={"provider": provider, "error_code": e.error_code},
            )
            return IngestionResult(
                status_code=400,
                status="rejected",
                error=e.message,
                error_code=e.error_code,
            )

        logger_.info(
            f"Received {provider} webhook: {event.raw_type}",
            extra={
                "provider": provider,
                "event_id": event.event_id,
                "event_type": event.raw_type,
                "normalized_type": event.type,
            },
        )

        return cls.process(event, payload=json.loads(body))

    @classmethod
    def replay(cls, webhook_event: WebhookEvent) -> IngestionResult:
        """Process a stored event again from its normalized payload."""
        event = NormalizedWebhookEvent.from_dict(webhook_event.normalized)
        return cls.process(event, payload=webhook_event.payload)

    @classmethod
    def process(cls, event: NormalizedWebhookEvent, payload: dict[str, Any]) -> IngestionResult:
        """
        Apply a verified event exactly once.

        Returns:
            IngestionResult: processed, duplicate or failed
        """
        logger_ = cls.get_logger()
        log_extra = {"provider": event.provider, "event_id": event.event_id}

        try:
            with transaction.atomic():
                webhook_event, _ = cls._get_or_create_locked(event, payload)

                if webhook_event.is_processed:
                    logger_.info("Webhook already processed, replaying result", extra=log_extra)
                    return IngestionResult(
                        status_code=200,
                        status="duplicate",
                        event_id=event.event_id,
                        duplicate=True,
                        result=webhook_event.result,
                    )

                webhook_event.mark_processing()
                outcome = dispatch_webhook(event)

                if outcome.success:
                    webhook_event.mark_processed(outcome.data or {})
                    webhook_event.save()
                else:
                    transaction.set_rollback(True)
        except Exception as e:
            logger_.error(
                f"Webhook processing failed: {type(e).__name__}",
                extra=log_extra,
                exc_info=True,
            )
            cls._record_failure(event, payload, str(e))
            return IngestionResult(
                status_code=500,
                status="failed",
                event_id=event.event_id,
                error="Webhook processing failed",
                error_code="WEBHOOK_PROCESSING_FAILED",
            )

        if not outcome.success:
            logger_.warning(
                f"Webhook handler reported failure: {outcome.error_code}",
                extra={**log_extra, "error_code": outcome.error_code},
            )
            cls._record_failure(event, payload, outcome.error or "Handler failed")
            return IngestionResult(
                status_code=500,
                status="failed",
                event_id=event.event_id,
                error=outcome.error,
                error_code=outcome.error_code,
            )

        logger_.info(
            f"Webhook processed: {event.type}",
            extra={**log_extra, "outcome": (outcome.data or {}).get("outcome")},
        )
        return IngestionResult(
            status_code=200,
            status="processed",
            event_id=event.event_id,
            result=webhook_event.result,
        )

    @classmethod
    def _get_or_create_locked(
        cls, event: NormalizedWebhookEvent, payload: dict[str, Any]
    ) -> tuple[WebhookEvent, bool]:
        return WebhookEvent.objects.select_for_update().get_or_create(
            provider=event.provider,
            event_id=event.event_id,
            defaults={
                "event_type": event.raw_type,
                "normalized_type": event.type,
                "payload": payload,
                "normalized": event.to_dict(),
            },
        )

    @classmethod
    def _record_failure(
        cls, event: NormalizedWebhookEvent, payload: dict[str, Any], message: str
    ) -> None:
        """Persist the failed attempt after the processing transaction rolled back."""
        with transaction.atomic():
            webhook_event, _ = cls._get_or_create_locked(event, payload)
            if webhook_event.is_processed:
                return
            webhook_event.mark_processing()
            webhook_event.mark_failed(message)
            webhook_event.save()
