"""
Base exception classes for application-wide error handling.

Every domain error in the project derives from BaseApplicationError so that
views can render a consistent body and pick an HTTP status from the class.

Exception Hierarchy:
    BaseApplicationError (base)
    ├── PermissionDeniedError - Authorization failures (403)
    └── ConflictError - State conflicts and duplicates (409)

Usage:
    from core.exceptions import ConflictError

    raise ConflictError(
        "Settlement already exists for this period",
        error_code="SETTLEMENT_EXISTS",
        details={"seller_id": seller.id, "period_start": "2026-09-01"},
    )

    try:
        ...
    except BaseApplicationError as e:
        return Response(e.to_dict(), status=e.http_status)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class BaseApplicationError(Exception):
    """
    Base exception for all application-specific errors.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable code for client-side handling
        details: Additional error context (field errors, ids, provider codes)
        http_status: Status code views use when rendering this error
    """

    default_error_code: str = "APPLICATION_ERROR"
    http_status: int = 400

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        """
        Initialize the exception.

        Args:
            message: Human-readable error description
            error_code: Machine-readable error code (defaults to class default)
            details: Additional error context
        """
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to dictionary for API response.

        Example:
            {
                "error": "Order not found",
                "error_code": "PAYMENT_NOT_FOUND",
                "details": {"order_id": "..."}
            }
        """
        result: dict[str, Any] = {
            "error": self.message,
            "error_code": self.error_code,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        """Return string representation with error code."""
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        """Return detailed representation for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


class PermissionDeniedError(BaseApplicationError):
    """
    Raised when user lacks permission for an operation.

    Example:
        if order.buyer_id != user.id:
            raise PermissionDeniedError(
                "Only the buyer can request a refund",
                error_code="NOT_ORDER_BUYER",
            )
    """

    default_error_code: str = "PERMISSION_DENIED"
    http_status: int = 403


class ConflictError(BaseApplicationError):
    """
    Raised when operation conflicts with current resource state.

    Use for duplicate records and invalid state transitions.
    """

    default_error_code: str = "CONFLICT"
    http_status: int = 409

