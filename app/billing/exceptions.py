"""
Billing-specific exceptions.

Exception Hierarchy:
    BillingError (base for billing domain)
    └── InvoiceNumberingError - Invoice number could not be allocated

    SubscriptionNotFoundError - No subscription to act on (NotFoundError)

    GatewayError - Base for all payment gateway errors (ExternalServiceError, 502)
        ├── GatewayBadRequestError - Rejected request (permanent)
        ├── GatewayUnavailableError - Gateway or network down (transient)
        └── GatewayTimeoutError - No answer in time (transient, unknown outcome)

    InvalidStateTransitionError - Lifecycle transition not allowed (ValidationError)
    InvalidSignatureError - Webhook or checkout signature mismatch (ValidationError)

Usage:
    from billing.exceptions import InvalidStateTransitionError

    raise InvalidStateTransitionError(
        "Cannot reactivate an ended subscription.",
        details={"current_state": "cancelled", "transition": "reactivate"},
    )
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import BaseApplicationError, ExternalServiceError, NotFoundError, ValidationError

if TYPE_CHECKING:
    from typing import Any


# =============================================================================
# Billing Domain Exceptions
# =============================================================================


class BillingError(BaseApplicationError):
    """
    Base exception for billing operations.
    """

    default_error_code: str = "BILLING_ERROR"


class SubscriptionNotFoundError(NotFoundError):
    """
    Raised when a tenant has no subscription the operation can act on.

    Only raised for synchronous API calls. Webhook lookups that miss are
    logged and acknowledged instead.
    """

    default_error_code: str = "NO_ACTIVE_SUBSCRIPTION"


class InvoiceNumberingError(BillingError):
    """
    Raised when an invoice number cannot be allocated after retrying.

    A duplicate invoice number is never written; the invoice is not created
    and the caller's transaction rolls back.
    """

    default_error_code: str = "INVOICE_NUMBERING_FAILED"


class InvalidStateTransitionError(ValidationError):
    """
    Raised when a lifecycle transition is not allowed.

    Wraps django-fsm's TransitionNotAllowed and the extra guards on
    subscriptions (terminal rows, reactivation rules) in our standard error
    format. Synchronous callers surface it as a 4xx; webhook handlers log it
    and acknowledge the delivery.

    Attributes:
        details: current_state, transition and the object id
    """

    default_error_code: str = "INVALID_STATE_TRANSITION"


class InvalidSignatureError(ValidationError):
    """
    Raised when a gateway signature does not verify.

    Webhook deliveries answer 400 and are neither processed nor marked.
    """

    default_error_code: str = "INVALID_SIGNATURE"
    http_status: int = 400


# =============================================================================
# Gateway Exceptions
# =============================================================================


class GatewayError(ExternalServiceError):
    """
    Base exception for payment gateway errors.

    Use is_retryable to decide retry behaviour:
    - True: transient, safe to retry with backoff
    - False: permanent, retrying the same request fails the same way
    """

    default_error_code: str = "GATEWAY_ERROR"
    is_retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        gateway_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if gateway_code:
            details["gateway_code"] = gateway_code
        super().__init__(message, error_code=error_code, details=details)
        self.gateway_code = gateway_code


class GatewayBadRequestError(GatewayError):
    """
    The gateway rejected the request (bad plan id, bad customer data).

    Usually a configuration problem on our side; not retried.
    """

    default_error_code: str = "GATEWAY_BAD_REQUEST"
    is_retryable: bool = False


class GatewayUnavailableError(GatewayError):
    """
    The gateway answered 5xx or could not be reached.
    """

    default_error_code: str = "GATEWAY_UNAVAILABLE"
    http_status: int = 503
    is_retryable: bool = True


class GatewayTimeoutError(GatewayError):
    """
    The gateway did not answer within RAZORPAY_API_TIMEOUT_SECONDS.

    IMPORTANT: the operation may have succeeded on the gateway side. Treat
    the outcome as unknown, never as success.
    """

    default_error_code: str = "GATEWAY_TIMEOUT"
    http_status: int = 504
    is_retryable: bool = True


__all__ = [
    "BillingError",
    "SubscriptionNotFoundError",
    "InvoiceNumberingError",
    "InvalidStateTransitionError",
    "InvalidSignatureError",
    "GatewayError",
    "GatewayBadRequestError",
    "GatewayUnavailableError",
    "GatewayTimeoutError",
]
