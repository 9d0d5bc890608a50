"""
Checkout orchestration: start a Razorpay subscription and confirm it.

Checkout is two calls from the frontend:

1. initiate(): creates the Razorpay customer and subscription, then the
   local Subscription in CREATED. The frontend opens Razorpay Checkout
   with the returned ids.
2. verify(): called with the ids and signature Razorpay Checkout hands
   back. Verifies the signature, then activates the subscription, moves
   the tenant onto the plan and records the payment in one transaction.

Gateway calls happen before any local write and are never rolled back
automatically. If the local write fails after the gateway subscription
exists, the orphan is logged at ERROR with its ids for manual cleanup.

Usage:
    from billing.services import CheckoutService

    result = CheckoutService.initiate(tenant, plan, BillingCycle.MONTHLY)
    session = result.data  # CheckoutSession

    result = CheckoutService.verify(
        tenant,
        gateway_subscription_id="sub_xxx",
        gateway_payment_id="pay_xxx",
        signature="...",
    )
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from django.conf import settings
from django.db import DatabaseError
from django.utils import timezone

from core.services import BaseService, ServiceResult

from billing.adapters import RazorpayAdapter
from billing.constants import GATEWAY_DEFAULTS
from billing.exceptions import GatewayError, InvalidSignatureError, InvalidStateTransitionError
from billing.models import Subscription
from billing.money import to_minor_units
from billing.services.payment_service import PaymentService
from billing.services.subscription_service import SubscriptionService
from billing.state_machines import Currency, PaymentStatus, SubscriptionStatus

if TYPE_CHECKING:
    from billing.adapters import PaymentGateway
    from billing.models import PlanDefinition
    from tenants.models import Tenant


@dataclass
class CheckoutSession:
    """
    What the frontend needs to open Razorpay Checkout.

    Attributes:
        subscription: Local subscription in CREATED
        gateway_subscription_id: Razorpay subscription id (sub_xxx)
        gateway_key_id: Public Razorpay key id
        plan_name: Plan display name
        amount: Cycle price snapshot
        currency: ISO 4217 code
    """

    subscription: Subscription
    gateway_subscription_id: str
    gateway_key_id: str
    plan_name: str
    amount: Decimal
    currency: str

    @property
    def amount_in_minor_units(self) -> int:
        return to_minor_units(self.amount)

    def to_dict(self) -> dict[str, Any]:
        return {
            "subscription_id": str(self.subscription.id),
            "gateway_subscription_id": self.gateway_subscription_id,
            "gateway_key_id": self.gateway_key_id,
            "plan_name": self.plan_name,
            "amount_in_minor_units": self.amount_in_minor_units,
            "currency": self.currency,
        }


class CheckoutService(BaseService):
    """
    Service for starting and confirming subscription checkout.
    """

    # Gateway - can be injected for testing
    _gateway: PaymentGateway | None = None

    @classmethod
    def get_gateway(cls) -> PaymentGateway:
        """Get the payment gateway adapter."""
        return cls._gateway or RazorpayAdapter

    @classmethod
    def set_gateway(cls, gateway: PaymentGateway | None) -> None:
        """Set the payment gateway adapter (for testing)."""
        cls._gateway = gateway

    @classmethod
    def initiate(
        cls,
        tenant: Tenant,
        plan: PlanDefinition,
        billing_cycle: str,
        currency: str = Currency.INR,
    ) -> ServiceResult[CheckoutSession]:
        """
        Create the gateway customer and subscription, then the local row.

        Args:
            tenant: Tenant subscribing
            plan: Plan from the catalog
            billing_cycle: monthly or yearly
            currency: Price column to snapshot (default INR)

        Returns:
            ServiceResult with a CheckoutSession
        """
        logger = cls.get_logger()

        if SubscriptionService.get_current_for_tenant(tenant) is not None:
            return ServiceResult.failure(
                "Tenant already has an active subscription.",
                error_code="SUBSCRIPTION_EXISTS",
                http_status=409,
            )
        if not plan.is_active:
            return ServiceResult.failure(
                "This plan is not available.",
                error_code="PLAN_NOT_AVAILABLE",
            )
        gateway_plan_id = plan.gateway_plan_id_for(billing_cycle)
        if not gateway_plan_id:
            return ServiceResult.failure(
                f"Plan is not configured for {billing_cycle} billing.",
                error_code="PLAN_NOT_CONFIGURED",
            )

        amount = plan.price_for(currency, billing_cycle)
        gateway = cls.get_gateway()

        try:
            customer = gateway.create_customer(tenant)
            gateway_subscription = gateway.create_subscription(
                customer_id=customer.id,
                plan_id=gateway_plan_id,
                trial_days=plan.trial_days if plan.has_trial else None,
                notes={"tenant_id": str(tenant.id), "plan_code": plan.code},
            )
        except GatewayError as e:
            return cls.handle_exception(e, "Checkout gateway call failed", log_level=logging.ERROR)

        now = timezone.now()
        try:
            with cls.atomic():
                subscription = Subscription.objects.create(
                    tenant=tenant,
                    plan=plan,
                    status=SubscriptionStatus.CREATED,
                    billing_cycle=billing_cycle,
                    currency=currency,
                    amount=amount,
                    gateway_subscription_id=gateway_subscription.id,
                    gateway_customer_id=customer.id,
                    trial_start=now if plan.has_trial else None,
                    trial_end=now + timedelta(days=plan.trial_days) if plan.has_trial else None,
                    metadata={
                        "gateway_plan_id": gateway_plan_id,
                        "short_url": gateway_subscription.short_url,
                    },
                )
        except DatabaseError:
            logger.error(
                "Local subscription write failed; gateway subscription is orphaned",
                extra={
                    "tenant_id": str(tenant.id),
                    "gateway_subscription_id": gateway_subscription.id,
                    "gateway_customer_id": customer.id,
                    "plan_code": plan.code,
                },
                exc_info=True,
            )
            raise

        logger.info(
            "Checkout initiated",
            extra={
                "tenant_id": str(tenant.id),
                "subscription_id": str(subscription.id),
                "gateway_subscription_id": gateway_subscription.id,
                "plan_code": plan.code,
                "billing_cycle": billing_cycle,
            },
        )
        return ServiceResult.success(
            CheckoutSession(
                subscription=subscription,
                gateway_subscription_id=gateway_subscription.id,
                gateway_key_id=settings.RAZORPAY_KEY_ID,
                plan_name=plan.name,
                amount=amount,
                currency=currency,
            )
        )

    @classmethod
    def verify(
        cls,
        tenant: Tenant,
        gateway_subscription_id: str,
        gateway_payment_id: str,
        signature: str,
    ) -> ServiceResult[Subscription]:
        """
        Confirm a checkout and activate the subscription.

        Activation, the tenant plan update and the payment record commit
        together or not at all. The payment is created-if-absent, so a
        charge webhook that got there first is kept as is.
        """
        if not cls.get_gateway().verify_payment_signature(gateway_subscription_id, gateway_payment_id, signature):
            return cls.handle_exception(
                InvalidSignatureError(
                    "Payment signature verification failed.",
                    details={"gateway_subscription_id": gateway_subscription_id},
                ),
                "Checkout verification rejected",
            )

        try:
            with cls.atomic():
                subscription = (
                    Subscription.objects.select_for_update()
                    .filter(gateway_subscription_id=gateway_subscription_id, tenant=tenant)
                    .first()
                )
                if subscription is None:
                    return ServiceResult.failure(
                        "Subscription not found.",
                        error_code="SUBSCRIPTION_NOT_FOUND",
                        http_status=404,
                    )

                if subscription.status != SubscriptionStatus.ACTIVE:
                    subscription.activate(save=False)
                if subscription.current_period_start is None:
                    subscription.current_period_start = timezone.now()
                subscription.save()

                tenant.plan = subscription.plan
                tenant.save(update_fields=["plan", "updated_at"])

                PaymentService.create_if_absent(
                    gateway_payment_id,
                    tenant=tenant,
                    subscription=subscription,
                    amount=subscription.amount,
                    currency=subscription.currency,
                    method=GATEWAY_DEFAULTS.PAYMENT_METHOD,
                    status=PaymentStatus.CAPTURED,
                )
        except InvalidStateTransitionError as e:
            return cls.handle_exception(e, "Checkout activation rejected")

        cls.get_logger().info(
            "Checkout verified",
            extra={
                "subscription_id": str(subscription.id),
                "gateway_subscription_id": gateway_subscription_id,
                "gateway_payment_id": gateway_payment_id,
            },
        )
        return ServiceResult.success(subscription)
