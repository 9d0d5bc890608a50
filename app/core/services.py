"""
Base service layer patterns for business logic encapsulation.

This module provides:
- ServiceResult: Standard result wrapper for consistent success/failure handling
- BaseService: Base class with logging and transaction helpers

Pattern Comparison:
    - ServiceResult: expected failures (business rules a user can trip over)
    - Exceptions: unexpected failures (database errors, gateway outages, bugs)

Usage:
    from core.services import BaseService, ServiceResult

    class InvoiceService(BaseService):
        @classmethod
        def mark_as_paid(cls, invoice) -> ServiceResult[Invoice]:
            if invoice.is_paid:
                return ServiceResult.failure(
                    "Invoice is already paid.",
                    error_code="INVOICE_ALREADY_PAID",
                )
            with cls.atomic():
                invoice.mark_as_paid()
            return ServiceResult.success(invoice)

    # In a view
    result = InvoiceService.mark_as_paid(invoice)
    if not result:
        return Response(result.to_response(), status=result.http_status)
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Generic, TypeVar

from django.db import transaction

if TYPE_CHECKING:
    from collections.abc import Generator
    from typing import Any

    from core.exceptions import BaseApplicationError

T = TypeVar("T")


@dataclass
class ServiceResult(Generic[T]):
    """
    Standard result wrapper for service operations.

    Attributes:
        success: Whether the operation succeeded
        data: Result data if successful (None if failed)
        error: Error message if failed (None if successful)
        error_code: Machine-readable error code for client handling
        errors: Field-level errors for validation failures
        http_status: Status a view should answer with on failure
    """

    success: bool
    data: T | None = None
    error: str | None = None
    error_code: str | None = None
    errors: dict[str, list[str]] | None = field(default=None)
    http_status: int = 400

    @classmethod
    def success(cls, data: T) -> ServiceResult[T]:
        """
        Create a successful result.

        Example:
            return ServiceResult.success(subscription)
        """
        return cls(success=True, data=data)

    @classmethod
    def failure(
        cls,
        error: str,
        error_code: str | None = None,
        errors: dict[str, list[str]] | None = None,
        http_status: int = 422,
    ) -> ServiceResult[T]:
        """
        Create a failed result.

        Args:
            error: Human-readable error message
            error_code: Machine-readable error code for client handling
            errors: Field-level errors (for validation failures)
            http_status: Status code to surface (422 for business rules)

        Example:
            return ServiceResult.failure(
                "Subscription is already cancelled.",
                error_code="ALREADY_CANCELLED",
            )
        """
        return cls(
            success=False,
            error=error,
            error_code=error_code,
            errors=errors,
            http_status=http_status,
        )

    @classmethod
    def from_exception(cls, exc: BaseApplicationError) -> ServiceResult[T]:
        """
        Create a failed result from a domain exception.

        Keeps the exception's error code, details and HTTP status so views
        can answer the same way whether a rule was checked in the service
        or enforced by the model.

        Example:
            try:
                subscription.reactivate()
            except InvalidStateTransitionError as e:
                return ServiceResult.from_exception(e)
        """
        errors = None
        if exc.details:
            errors = {key: [str(value)] for key, value in exc.details.items()}
        return cls(
            success=False,
            error=exc.message,
            error_code=exc.error_code,
            errors=errors,
            http_status=exc.http_status,
        )

    def to_response(self) -> dict[str, Any]:
        """
        Convert a failed result to the API error body.

        Returns:
            Dict with error, error_code and (optional) errors keys
        """
        if self.success:
            return {"success": True, "data": self.data}

        response: dict[str, Any] = {
            "success": False,
            "error": self.error,
        }
        if self.error_code:
            response["error_code"] = self.error_code
        if self.errors:
            response["errors"] = self.errors
        return response

    def __bool__(self) -> bool:
        return self.success


class BaseService:
    """
    Base class for service layer classes.

    Services are stateless: use @classmethod and keep no instance state.
    Use ServiceResult for expected failures and raise for unexpected ones.
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """
        Get logger for this service.

        Named after the service class for easy filtering, e.g.
        "billing.services.invoice_service.InvoiceService".
        """
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    @contextmanager
    def atomic(cls) -> Generator[None, None, None]:
        """
        Execute operations in a database transaction.

        Thin wrapper around django.db.transaction.atomic() that makes
        transaction boundaries explicit in service code. Nested use creates
        a savepoint.

        Example:
            with cls.atomic():
                subscription = Subscription.objects.select_for_update().get(pk=pk)
                subscription.activate()
        """
        with transaction.atomic():
            yield

    @classmethod
    def handle_exception(
        cls,
        exc: BaseApplicationError,
        context: str = "",
        log_level: int = logging.WARNING,
    ) -> ServiceResult:
        """
        Log a domain exception and convert it to a ServiceResult.

        Args:
            exc: The caught exception
            context: Short description of the operation for the log line
            log_level: Logging level (default WARNING)
        """
        message = f"{context}: {exc}" if context else str(exc)
        cls.get_logger().log(
            log_level,
            message,
            extra={"error_code": exc.error_code, "details": exc.details},
        )
        return ServiceResult.from_exception(exc)
