"""
Base service layer patterns for business logic encapsulation.

This module provides the two building blocks every service in the project
uses:
- ServiceResult: Result wrapper for expected failures (business rules)
- BaseService: Base class with logging and transaction helpers

Service Layer Philosophy:
    Views handle HTTP, models hold data and state transitions, services
    orchestrate. Money-moving services raise domain exceptions for anything
    the caller must branch on and return ServiceResult where a failure is a
    normal outcome (for example a webhook handler that found nothing to do).

Usage:
    from core.services import BaseService, ServiceResult

    class PaymentStateService(BaseService):
        @classmethod
        def handle_succeeded(cls, event) -> ServiceResult[dict]:
            payment = cls._find_payment(event)
            if payment is None:
                return ServiceResult.success({"outcome": "ignored"})
            if event.amount != payment.amount:
                return ServiceResult.failure(
                    "Event amount does not match the payment",
                    error_code="AMOUNT_MISMATCH",
                )

            with cls.atomic():
                payment.succeed()
                payment.save()

            cls.get_logger().info(f"Payment {payment.id} succeeded")
            return ServiceResult.success({"outcome": "applied"})

    result = PaymentStateService.handle_succeeded(event)
    if not result:
        logger.warning(f"{result.error} ({result.error_code})")
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Generic, TypeVar

from django.db import transaction

if TYPE_CHECKING:
    from collections.abc import Generator

# Generic type for ServiceResult data
T = TypeVar("T")


@dataclass
class ServiceResult(Generic[T]):
    """
    Standard result wrapper for service operations.

    Use this for expected failures: a webhook whose order does not exist,
    a refund request outside the refund window reported to a task, and so on.

    Attributes:
        success: Whether the operation succeeded
        data: Result data if successful (None if failed)
        error: Error message if failed (None if successful)
        error_code: Machine-readable error code for client handling
        errors: Field-level errors for validation failures

    Usage:
        result = dispatch_webhook(event)
        if not result:
            logger.warning(f"{result.error} ({result.error_code})")
    """

    success: bool
    data: T | None = None
    error: str | None = None
    error_code: str | None = None
    errors: dict[str, list[str]] | None = field(default=None)

    @classmethod
    def success(cls, data: T) -> ServiceResult[T]:
        """
        Create a successful result.

        Args:
            data: The result data

        Returns:
            ServiceResult with success=True and data set
        """
        return cls(success=True, data=data)

    @classmethod
    def failure(
        cls,
        error: str,
        error_code: str | None = None,
        errors: dict[str, list[str]] | None = None,
    ) -> ServiceResult[T]:
        """
        Create a failed result.

        Args:
            error: Human-readable error message
            error_code: Machine-readable error code for client handling
            errors: Field-level errors (for validation failures)

        Returns:
            ServiceResult with success=False and error details
        """
        return cls(
            success=False,
            error=error,
            error_code=error_code,
            errors=errors,
        )

    def __bool__(self) -> bool:
        """Allow using result in boolean context."""
        return self.success


class BaseService:
    """
    Base class for service layer classes.

    Services are stateless: every public method is a classmethod or
    staticmethod.

    Usage:
        class RefundService(BaseService):
            @classmethod
            def request_refund(cls, order, user):
                with cls.atomic():
                    ...
                cls.get_logger().info("Refund requested")
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """
        Get logger for this service.

        Returns a logger named after the service class for easy filtering.
        """
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    @contextmanager
    def atomic(cls) -> Generator[None, None, None]:
        """
        Execute operations in a database transaction.

        Thin wrapper around transaction.atomic() so that transaction
        boundaries read explicitly in service code. Nested use creates
        savepoints.

        Example:
            with cls.atomic():
                order.mark_paid(platform_fee=fee)
                order.save()
                payment.save()
                # Both rows commit together or not at all
        """
        with transaction.atomic():
            yield
