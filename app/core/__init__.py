"""
Core Application - Infrastructure & Base Classes

Generic, reusable base classes used by the tenants and billing apps. No
billing logic lives here.

Models (import from core.models):
    - BaseModel: Abstract model with timestamps (created_at, updated_at)

Model Mixins (import from core.model_mixins):
    - UUIDPrimaryKeyMixin: UUID as primary key
    - MetadataMixin: Flexible JSON metadata storage

Services (import from core.services):
    - BaseService: Base class for service layer
    - ServiceResult: Standard result wrapper for success/failure handling

Exceptions (import from core.exceptions):
    - BaseApplicationError: Base exception with error codes
    - ValidationError: Input and business rule failures
    - NotFoundError: Resource not found
    - ExternalServiceError: Third-party service failures

Helpers (import from core.helpers):
    - hash_bytes: Hex digest of raw bytes
    - get_client_ip: Client IP extraction from request

Views (import from core.views):
    - health_check: Liveness endpoint for load balancers

Note:
    Models and model mixins are NOT imported here because they depend on
    Django's app registry being ready. Import them from their modules.
"""

from .services import BaseService, ServiceResult

from .exceptions import (
    BaseApplicationError,
    ExternalServiceError,
    NotFoundError,
    ValidationError,
)

from .helpers import get_client_ip, hash_bytes

__all__ = [
    # Services
    "BaseService",
    "ServiceResult",
    # Exceptions
    "BaseApplicationError",
    "ValidationError",
    "NotFoundError",
    "ExternalServiceError",
    # Helpers
    "hash_bytes",
    "get_client_ip",
]
