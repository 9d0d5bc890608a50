"""
Razorpay API adapter for subscription billing.

This module provides the RazorpayAdapter class which encapsulates all
Razorpay API interactions. Checkout, cancellation and webhook verification
go through this adapter so that timeouts, error translation and logging
are consistent.

Features:
- Client-side timeout on every API call (a timeout is an unknown outcome)
- Translation of razorpay/requests errors to billing.exceptions.GatewayError
- Structured logging with timing metrics
- Minor-unit conversion for amounts crossing the gateway boundary

Configuration (via settings):
- RAZORPAY_KEY_ID: API key id
- RAZORPAY_KEY_SECRET: API key secret (also signs checkout payments)
- RAZORPAY_WEBHOOK_SECRET: Webhook signing secret
- RAZORPAY_API_TIMEOUT_SECONDS: API call timeout (default: 10)
- RAZORPAY_SUBSCRIPTION_TOTAL_COUNT: Billing cycles per subscription (default: 120)

Usage:
    from billing.adapters import RazorpayAdapter

    customer = RazorpayAdapter.create_customer(tenant)
    subscription = RazorpayAdapter.create_subscription(
        customer_id=customer.id,
        plan_id="plan_xxx",
        trial_days=14,
    )
    RazorpayAdapter.cancel_subscription(subscription.id, at_period_end=True)
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import time
from dataclasses import dataclass, field
from datetime import timedelta
from typing import TYPE_CHECKING, Any

import razorpay
import requests
from django.conf import settings
from django.utils import timezone
from razorpay import errors as razorpay_errors

from billing.exceptions import (
    GatewayBadRequestError,
    GatewayError,
    GatewayTimeoutError,
    GatewayUnavailableError,
)

if TYPE_CHECKING:
    from tenants.models import Tenant


# =============================================================================
# Data Types
# =============================================================================


@dataclass
class CustomerResult:
    """
    Result from Razorpay customer creation.

    Attributes:
        id: Customer id (cust_xxx)
        email: Email the customer was created with
        raw_response: Full Razorpay response dict (for debugging)
    """

    id: str
    email: str = ""
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class SubscriptionResult:
    """
    Result from Razorpay subscription operations.

    Attributes:
        id: Subscription id (sub_xxx)
        status: Gateway status (created, authenticated, active, cancelled...)
        plan_id: Razorpay plan id
        short_url: Hosted authorisation link, when the gateway returns one
        raw_response: Full Razorpay response dict
    """

    id: str
    status: str
    plan_id: str = ""
    short_url: str = ""
    raw_response: dict[str, Any] = field(default_factory=dict)


# =============================================================================
# Razorpay Adapter
# =============================================================================


class RazorpayAdapter:
    """
    Adapter for Razorpay API operations.

    All methods are classmethods - no instance state is maintained. A fresh
    SDK client is built per call, so the adapter is safe to use from
    request threads and Celery workers alike.

    Satisfies billing.adapters.protocols.PaymentGateway.
    """

    # =========================================================================
    # Configuration
    # =========================================================================

    @staticmethod
    def _get_client() -> razorpay.Client:
        """Build a Razorpay client from settings."""
        return razorpay.Client(auth=(settings.RAZORPAY_KEY_ID, settings.RAZORPAY_KEY_SECRET))

    @staticmethod
    def _timeout() -> float:
        return getattr(settings, "RAZORPAY_API_TIMEOUT_SECONDS", 10)

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """Get logger for this adapter."""
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    # =========================================================================
    # Core Operations
    # =========================================================================

    @classmethod
    def create_customer(cls, tenant: Tenant) -> CustomerResult:
        """
        Create (or fetch) the Razorpay customer for a tenant.

        fail_existing=0 makes Razorpay return the existing customer for the
        same email/contact instead of failing.

        Raises:
            GatewayBadRequestError: Rejected customer data
            GatewayUnavailableError: Razorpay unreachable or 5xx
            GatewayTimeoutError: No answer in time (outcome unknown)
        """
        logger = cls.get_logger()
        email = tenant.billing_email or getattr(tenant.owner, "email", "")
        log_context = {
            "operation": "create_customer",
            "tenant_id": str(tenant.id),
        }

        start_time = time.time()
        logger.info("Starting Razorpay operation", extra=log_context)

        try:
            customer = cls._get_client().customer.create(
                data={
                    "name": tenant.name,
                    "email": email,
                    "contact": tenant.billing_phone or "",
                    "fail_existing": "0",
                    "notes": {"tenant_id": str(tenant.id)},
                },
                timeout=cls._timeout(),
            )

            duration_ms = (time.time() - start_time) * 1000
            logger.info(
                "Razorpay operation completed",
                extra={**log_context, "customer_id": customer["id"], "duration_ms": duration_ms},
            )
            return CustomerResult(
                id=customer["id"],
                email=customer.get("email", email),
                raw_response=customer,
            )

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_gateway_error(e, log_context, duration_ms)
            raise

    @classmethod
    def create_subscription(
        cls,
        customer_id: str,
        plan_id: str,
        trial_days: int | None = None,
        notes: dict[str, str] | None = None,
    ) -> SubscriptionResult:
        """
        Create a Razorpay subscription for a customer.

        A trial is expressed by deferring start_at by trial_days; the first
        charge happens when the trial ends.

        Raises:
            GatewayBadRequestError: Unknown plan or customer
            GatewayUnavailableError: Razorpay unreachable or 5xx
            GatewayTimeoutError: No answer in time (outcome unknown)
        """
        logger = cls.get_logger()
        log_context = {
            "operation": "create_subscription",
            "customer_id": customer_id,
            "plan_id": plan_id,
            "trial_days": trial_days,
        }

        data: dict[str, Any] = {
            "plan_id": plan_id,
            "customer_id": customer_id,
            "total_count": getattr(settings, "RAZORPAY_SUBSCRIPTION_TOTAL_COUNT", 120),
            "customer_notify": 1,
            "notes": notes or {},
        }
        if trial_days:
            data["start_at"] = int((timezone.now() + timedelta(days=trial_days)).timestamp())

        start_time = time.time()
        logger.info("Starting Razorpay operation", extra=log_context)

        try:
            subscription = cls._get_client().subscription.create(data=data, timeout=cls._timeout())

            duration_ms = (time.time() - start_time) * 1000
            logger.info(
                "Razorpay operation completed",
                extra={
                    **log_context,
                    "gateway_subscription_id": subscription["id"],
                    "status": subscription.get("status"),
                    "duration_ms": duration_ms,
                },
            )
            return SubscriptionResult(
                id=subscription["id"],
                status=subscription.get("status", ""),
                plan_id=subscription.get("plan_id", plan_id),
                short_url=subscription.get("short_url", ""),
                raw_response=subscription,
            )

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_gateway_error(e, log_context, duration_ms)
            raise

    @classmethod
    def cancel_subscription(cls, subscription_id: str, at_period_end: bool = True) -> SubscriptionResult:
        """
        Cancel a Razorpay subscription now or at the end of the cycle.

        Raises:
            GatewayBadRequestError: Unknown or already cancelled subscription
            GatewayUnavailableError: Razorpay unreachable or 5xx
            GatewayTimeoutError: No answer in time (outcome unknown)
        """
        logger = cls.get_logger()
        log_context = {
            "operation": "cancel_subscription",
            "gateway_subscription_id": subscription_id,
            "at_period_end": at_period_end,
        }

        start_time = time.time()
        logger.info("Starting Razorpay operation", extra=log_context)

        try:
            subscription = cls._get_client().subscription.cancel(
                subscription_id,
                {"cancel_at_cycle_end": 1 if at_period_end else 0},
                timeout=cls._timeout(),
            )

            duration_ms = (time.time() - start_time) * 1000
            logger.info(
                "Razorpay operation completed",
                extra={**log_context, "status": subscription.get("status"), "duration_ms": duration_ms},
            )
            return SubscriptionResult(
                id=subscription.get("id", subscription_id),
                status=subscription.get("status", ""),
                plan_id=subscription.get("plan_id", ""),
                raw_response=subscription,
            )

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_gateway_error(e, log_context, duration_ms)
            raise

    # =========================================================================
    # Signature Verification
    # =========================================================================

    @classmethod
    def verify_payment_signature(cls, subscription_id: str, payment_id: str, signature: str) -> bool:
        """
        Verify the checkout signature returned to the frontend.

        The signature is HMAC-SHA256 over "payment_id|subscription_id" keyed
        with RAZORPAY_KEY_SECRET.
        """
        try:
            cls._get_client().utility.verify_subscription_payment_signature(
                {
                    "razorpay_subscription_id": subscription_id,
                    "razorpay_payment_id": payment_id,
                    "razorpay_signature": signature,
                }
            )
            return True
        except razorpay_errors.SignatureVerificationError:
            cls.get_logger().warning(
                "Checkout payment signature mismatch",
                extra={"gateway_subscription_id": subscription_id, "gateway_payment_id": payment_id},
            )
            return False

    @classmethod
    def verify_webhook_signature(cls, raw_body: bytes, signature: str) -> bool:
        """
        Verify a webhook body against the X-Razorpay-Signature header.

        The HMAC-SHA256 is computed over the raw bytes exactly as received.
        The body is never decoded or re-serialised first, so any byte
        sequence gets a True/False answer.
        """
        secret = getattr(settings, "RAZORPAY_WEBHOOK_SECRET", "")
        if not secret:
            cls.get_logger().error("RAZORPAY_WEBHOOK_SECRET is not configured")
            return False
        if not signature:
            return False

        if isinstance(raw_body, str):
            raw_body = raw_body.encode("utf-8")
        expected = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()
        return hmac.compare_digest(expected.encode("ascii"), signature.encode("utf-8", "replace"))

    # =========================================================================
    # Error Handling
    # =========================================================================

    @classmethod
    def _handle_gateway_error(
        cls,
        error: Exception,
        log_context: dict[str, Any],
        duration_ms: float,
    ) -> None:
        """
        Translate Razorpay SDK and transport exceptions to domain exceptions.

        Raises:
            GatewayBadRequestError: 4xx from Razorpay
            GatewayUnavailableError: 5xx or connection failure
            GatewayTimeoutError: Request timed out
        """
        logger = cls.get_logger()
        log_context = {**log_context, "duration_ms": duration_ms}

        if isinstance(error, razorpay_errors.BadRequestError):
            logger.error("Invalid request to Razorpay", extra={**log_context, "error": str(error)})
            raise GatewayBadRequestError(str(error), gateway_code="BAD_REQUEST_ERROR") from error

        elif isinstance(error, requests.exceptions.Timeout):
            logger.error(
                "Razorpay request timed out - outcome unknown",
                extra=log_context,
            )
            raise GatewayTimeoutError(
                "Razorpay did not respond in time. The operation may have succeeded.",
                gateway_code="timeout",
            ) from error

        elif isinstance(error, requests.exceptions.ConnectionError):
            logger.error("Connection error to Razorpay", extra=log_context, exc_info=True)
            raise GatewayUnavailableError(
                "Could not connect to Razorpay. Please retry.",
                gateway_code="connection_error",
            ) from error

        elif isinstance(error, (razorpay_errors.ServerError, razorpay_errors.GatewayError)):
            logger.error("Razorpay API error", extra=log_context, exc_info=True)
            raise GatewayUnavailableError(
                "Razorpay service error. Please retry.",
                gateway_code="SERVER_ERROR",
            ) from error

        else:
            logger.error(
                f"Unexpected error from Razorpay: {type(error).__name__}",
                extra=log_context,
                exc_info=True,
            )
            raise GatewayUnavailableError(
                f"Unexpected Razorpay error: {error}",
                gateway_code="unknown_error",
            ) from error


__all__ = [
    "CustomerResult",
    "RazorpayAdapter",
    "SubscriptionResult",
]
