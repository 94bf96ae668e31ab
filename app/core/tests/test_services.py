"""
Tests for ServiceResult and BaseService in core/services.py.
"""

import logging

import pytest

from core.exceptions import ConflictError, PermissionDeniedError
from core.services import BaseService, ServiceResult


class TestServiceResult:
    def test_success(self):
        result = ServiceResult.success({"outcome": "applied"})

        assert result.success is True
        assert result.data == {"outcome": "applied"}
        assert result.error is None
        assert bool(result) is True

    def test_failure(self):
        result = ServiceResult.failure("Order not found", error_code="PAYMENT_NOT_FOUND")

        assert result.success is False
        assert result.data is None
        assert result.error_code == "PAYMENT_NOT_FOUND"
        assert not result

    def test_failure_with_field_errors(self):
        result = ServiceResult.failure(
            "Invalid refund", errors={"amount": ["Must be positive"]}
        )

        assert result.errors == {"amount": ["Must be positive"]}


class RecordingService(BaseService):
    pass


class TestBaseService:
    def test_logger_named_after_service(self):
        logger = RecordingService.get_logger()

        assert isinstance(logger, logging.Logger)
        assert logger.name == "core.tests.test_services.RecordingService"

    @pytest.mark.django_db
    def test_atomic_rolls_back_on_error(self):
        from authentication.models import User

        with pytest.raises(RuntimeError):
            with RecordingService.atomic():
                User.objects.create_user(email="rollback@example.com", password="x")
                raise RuntimeError("abort")

        assert not User.objects.filter(email="rollback@example.com").exists()


class TestApplicationErrors:
    def test_to_dict_omits_empty_details(self):
        error = ConflictError("Already settled")

        assert error.to_dict() == {"error": "Already settled", "error_code": "CONFLICT"}
        assert error.http_status == 409

    def test_custom_code_and_details(self):
        error = PermissionDeniedError(
            "Only the buyer can request a refund",
            error_code="NOT_ORDER_BUYER",
            details={"order_id": "abc"},
        )

        assert error.http_status == 403
        assert str(error) == "[NOT_ORDER_BUYER] Only the buyer can request a refund"
        assert error.to_dict()["details"] == {"order_id": "abc"}
