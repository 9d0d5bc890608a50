"""
Protocol for the payment gateway collaborator.

CheckoutService, SubscriptionService and the webhook reconciler depend on
this interface rather than on RazorpayAdapter directly, so tests can pass a
fake or a Mock(spec=PaymentGateway).

Usage:
    from billing.adapters.protocols import PaymentGateway

    def initiate(gateway: PaymentGateway, tenant):
        customer = gateway.create_customer(tenant)
        ...
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from billing.adapters.razorpay_adapter import CustomerResult, SubscriptionResult
    from tenants.models import Tenant


@runtime_checkable
class PaymentGateway(Protocol):
    """
    Minimal gateway contract used by billing.

    Methods that call the gateway raise billing.exceptions.GatewayError
    subclasses; the verify_* methods return False instead of raising.
    """

    def create_customer(self, tenant: Tenant) -> CustomerResult: ...

    def create_subscription(
        self,
        customer_id: str,
        plan_id: str,
        trial_days: int | None = None,
        notes: dict[str, str] | None = None,
    ) -> SubscriptionResult: ...

    def cancel_subscription(self, subscription_id: str, at_period_end: bool = True) -> SubscriptionResult: ...

    def verify_payment_signature(self, subscription_id: str, payment_id: str, signature: str) -> bool: ...

    def verify_webhook_signature(self, raw_body: bytes, signature: str) -> bool: ...
