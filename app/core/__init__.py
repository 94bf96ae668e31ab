"""
Core Application - Infrastructure & Base Classes

Generic building blocks shared by the domain apps. No money-movement logic
lives here.

Models (import from core.models):
    - BaseModel: Abstract model with timestamps (created_at, updated_at)

Model Mixins (import from core.model_mixins):
    - UUIDPrimaryKeyMixin: UUID as primary key
    - OptimisticLockMixin: version column bumped on every update

Services (import from core.services):
    - BaseService: Base class for service layer
    - ServiceResult: Standard result wrapper for success/failure handling

Exceptions (import from core.exceptions):
    - BaseApplicationError: Base exception with error codes and HTTP status
    - PermissionDeniedError, ConflictError

Views (import from core.views):
    - health_check: Liveness endpoint
    - ApplicationErrorMixin: Renders BaseApplicationError in DRF views

Note:
    Models and model mixins are NOT imported here to avoid AppRegistryNotReady
    errors. Import them directly from their modules.
"""

# Services (no Django model dependencies)
from .services import BaseService, ServiceResult

# Exceptions (no Django dependencies)
from .exceptions import BaseApplicationError, ConflictError, PermissionDeniedError

__all__ = [
    # Services
    "BaseService",
    "ServiceResult",
    # Exceptions
    "BaseApplicationError",
    "PermissionDeniedError",
    "ConflictError",
]
