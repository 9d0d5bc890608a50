"""
Base exception classes for application-wide error handling.

Exception Hierarchy:
    BaseApplicationError (base)
    ├── ValidationError - Input or business rule violations (HTTP 422)
    ├── NotFoundError - Resource not found (HTTP 404)
    └── ExternalServiceError - Third-party service failures (HTTP 502)

Usage:
    from core.exceptions import ValidationError, NotFoundError

    raise ValidationError("Invoice is already paid.", error_code="INVOICE_ALREADY_PAID")

    try:
        ...
    except BaseApplicationError as e:
        return Response(e.to_dict(), status=e.http_status)

Note:
    These exceptions carry domain errors. DRF still handles API-layer
    exceptions (serializer validation, authentication).
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
        details: Additional error context (field errors, ids, states)
        http_status: Status code views use when surfacing the error
    """

    default_error_code: str = "APPLICATION_ERROR"
    http_status: int = 400

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to dictionary for API response.

        Example:
            {
                "error": "Subscription is already cancelled.",
                "error_code": "ALREADY_CANCELLED",
                "details": {"subscription_id": "..."}
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
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


class ValidationError(BaseApplicationError):
    """
    Raised when input validation or a business rule fails.

    Example:
        raise ValidationError(
            "Already subscribed to this plan.",
            error_code="SAME_PLAN",
            details={"plan_id": str(plan.id)},
        )
    """

    default_error_code: str = "VALIDATION_ERROR"
    http_status: int = 422


class NotFoundError(BaseApplicationError):
    """
    Raised when a requested resource is not found.

    Use for single-resource lookups where existence is expected. Webhook
    lookups never raise this: a missing local record is acknowledged.
    """

    default_error_code: str = "NOT_FOUND"
    http_status: int = 404


class ExternalServiceError(BaseApplicationError):
    """
    Raised when an external service call fails.

    Log the original error for debugging but don't expose gateway internals
    to clients.
    """

    default_error_code: str = "EXTERNAL_SERVICE_ERROR"
    http_status: int = 502
