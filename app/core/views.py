"""
Core views providing infrastructure endpoints and DRF helpers.

- health_check: liveness/readiness check for containers and load balancers
- ApplicationErrorMixin: turns BaseApplicationError into a JSON response
"""

from __future__ import annotations

import logging

from django.db import connection
from django.http import JsonResponse
from rest_framework.response import Response

from core.exceptions import BaseApplicationError

logger = logging.getLogger(__name__)


def health_check(request):
    """
    Health check endpoint for monitoring and orchestration.

    Returns:
        JsonResponse with "status" and "database" keys.
        200 when the database answers, 503 otherwise.
    """
    health_status = {"status": "healthy", "database": "connected"}

    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
    except Exception:
        logger.exception("Health check database query failed")
        health_status = {"status": "unhealthy", "database": "disconnected"}
        return JsonResponse(health_status, status=503)

    return JsonResponse(health_status, status=200)


class ApplicationErrorMixin:
    """
    Render domain errors raised inside DRF views.

    Any BaseApplicationError escaping a handler becomes
    ``Response(exc.to_dict(), status=exc.http_status)``; everything else
    falls through to DRF's default handling.
    """

    def handle_exception(self, exc):
        if isinstance(exc, BaseApplicationError):
            logger.info(
                f"Request rejected: {exc.error_code}",
                extra={"error_code": exc.error_code, "view": type(self).__name__},
            )
            return Response(exc.to_dict(), status=exc.http_status)
        return super().handle_exception(exc)
