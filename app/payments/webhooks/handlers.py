"""
Webhook event handlers for normalized provider events.

This module provides a handler registry keyed by normalized event type
(payment.succeeded, payment.failed, ...). Provider differences are resolved
by the adapters before an event reaches this module, so one handler serves
every rail.

The handler registry allows:
- Clean separation between event routing and handling
- Easy extension for new event types
- A single place that maps events onto services

Usage:
    from payments.webhooks.handlers import dispatch_webhook, register_handler

    @register_handler("payment.disputed")
    def handle_payment_disputed(event: NormalizedWebhookEvent) -> ServiceResult:
        ...

    result = dispatch_webhook(normalized_event)
"""

from __future__ import annotations

import logging
from typing import Callable

from core.services import ServiceResult

from payments.adapters import NormalizedWebhookEvent, WebhookEventType
from payments.services import PaymentStateService, RefundService


logger = logging.getLogger(__name__)


# =============================================================================
# Handler Registry
# =============================================================================


# Maps normalized event types to handler functions
WEBHOOK_HANDLERS: dict[str, Callable[[NormalizedWebhookEvent], ServiceResult]] = {}


def register_handler(event_type: str) -> Callable:
    """
    Decorator to register a webhook event handler.

    Args:
        event_type: Normalized event type (see WebhookEventType)

    Returns:
        Decorator function that registers the handler
    """

    def decorator(func: Callable[[NormalizedWebhookEvent], ServiceResult]) -> Callable:
        WEBHOOK_HANDLERS[event_type] = func
        logger.debug(f"Registered webhook handler for {event_type}")
        return func

    return decorator


def dispatch_webhook(event: NormalizedWebhookEvent) -> ServiceResult:
    """
    Dispatch a normalized event to its handler.

    An event type without a handler is reported as a successful no-op.

    Returns:
        ServiceResult from the handler; its data becomes the recorded
        result of the WebhookEvent
    """
    handler = WEBHOOK_HANDLERS.get(event.type)

    if not handler:
        logger.info(
            f"No handler registered for event type: {event.type}",
            extra={"provider": event.provider, "event_id": event.event_id},
        )
        return ServiceResult.success({"outcome": "ignored", "reason": "no_handler"})

    logger.info(
        f"Dispatching {event.type} to handler",
        extra={"provider": event.provider, "event_id": event.event_id},
    )

    return handler(event)


# =============================================================================
# Payment Handlers
# =============================================================================


@register_handler(WebhookEventType.PAYMENT_SUCCEEDED)
def handle_payment_succeeded(event: NormalizedWebhookEvent) -> ServiceResult:
    """Order PAID, access granted, platform fee captured."""
    return PaymentStateService.handle_succeeded(event)


@register_handler(WebhookEventType.PAYMENT_FAILED)
def handle_payment_failed(event: NormalizedWebhookEvent) -> ServiceResult:
    """Order FAILED with the provider's failure code."""
    return PaymentStateService.handle_failed(event)


@register_handler(WebhookEventType.PAYMENT_PROCESSING)
def handle_payment_processing(event: NormalizedWebhookEvent) -> ServiceResult:
    return PaymentStateService.handle_processing(event)


# =============================================================================
# Refund Handlers
# =============================================================================


@register_handler(WebhookEventType.REFUND_SUCCEEDED)
def handle_refund_succeeded(event: NormalizedWebhookEvent) -> ServiceResult:
    """
    Refund SUCCEEDED and applied to the order.

    Covers refunds requested through the platform and refunds issued from
    the provider dashboard.
    """
    return RefundService.apply_refund_succeeded(event)
