"""
Subscription service for user-driven lifecycle actions.

Plan changes, cancellation and reactivation requested through the API go
through here. Each action locks the subscription row, applies the model's
lifecycle method and returns a ServiceResult. Gateway-driven transitions
are applied by the webhook reconciler instead (billing.webhooks).

Usage:
    from billing.services import SubscriptionService

    subscription = SubscriptionService.get_current_for_tenant(tenant)
    result = SubscriptionService.cancel(subscription, at_period_end=True)
    if not result.success:
        return Response(result.to_response(), status=result.http_status)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.utils import timezone

from core.services import BaseService, ServiceResult

from billing.adapters import RazorpayAdapter
from billing.exceptions import (
    GatewayError,
    InvalidStateTransitionError,
    SubscriptionNotFoundError,
)
from billing.models import Subscription
from billing.state_machines import SubscriptionStatus

if TYPE_CHECKING:
    from datetime import datetime

    from django.db.models import QuerySet

    from billing.adapters import PaymentGateway
    from billing.models import PlanDefinition
    from tenants.models import Tenant


class SubscriptionService(BaseService):
    """
    Service for reading and changing a tenant's subscription.

    Methods:
        get_current_for_tenant: created/authenticated/active/pending subscription
        get_active_for_tenant: active subscription only
        require_current_for_tenant: current subscription or SubscriptionNotFoundError
        get_history: every subscription of the tenant, newest first
        change_plan: Repoint plan (amount follows on the next charge)
        cancel: Cancel on the gateway, then locally
        reactivate: Undo a deferred cancellation
        finalize_deferred_cancellations: End deferred cancellations whose period is over
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

    # =========================================================================
    # Queries
    # =========================================================================

    @classmethod
    def get_current_for_tenant(cls, tenant: Tenant) -> Subscription | None:
        return (
            Subscription.objects.select_related("plan")
            .filter(tenant=tenant, status__in=SubscriptionStatus.current_statuses())
            .order_by("-created_at")
            .first()
        )

    @classmethod
    def get_active_for_tenant(cls, tenant: Tenant) -> Subscription | None:
        return (
            Subscription.objects.select_related("plan")
            .filter(tenant=tenant, status=SubscriptionStatus.ACTIVE)
            .order_by("-created_at")
            .first()
        )

    @classmethod
    def require_current_for_tenant(cls, tenant: Tenant) -> Subscription:
        """
        Raises:
            SubscriptionNotFoundError: Tenant has no current subscription
        """
        subscription = cls.get_current_for_tenant(tenant)
        if subscription is None:
            raise SubscriptionNotFoundError(
                "No active subscription.",
                details={"tenant_id": str(tenant.id)},
            )
        return subscription

    @classmethod
    def get_history(cls, tenant: Tenant) -> QuerySet[Subscription]:
        return Subscription.objects.select_related("plan").filter(tenant=tenant).order_by("-created_at")

    # =========================================================================
    # Lifecycle Actions
    # =========================================================================

    @classmethod
    def change_plan(cls, subscription: Subscription, new_plan: PlanDefinition) -> ServiceResult[Subscription]:
        """
        Move the subscription and the tenant to another plan.

        The amount snapshot and the current period are not touched; the next
        subscription.charged webhook brings them in line.
        """
        if subscription.plan_id == new_plan.id:
            return ServiceResult.failure(
                "Already subscribed to this plan.",
                error_code="ALREADY_ON_PLAN",
            )
        if not new_plan.is_active:
            return ServiceResult.failure(
                "This plan is not available.",
                error_code="PLAN_NOT_AVAILABLE",
            )

        try:
            with cls.atomic():
                locked = cls._lock(subscription)
                previous_plan_id = locked.plan_id
                locked.change_plan(new_plan)
                tenant = locked.tenant
                tenant.plan = new_plan
                tenant.save(update_fields=["plan", "updated_at"])
        except InvalidStateTransitionError as e:
            return cls.handle_exception(e, "Plan change rejected")

        cls.get_logger().info(
            "Subscription plan changed",
            extra={
                "subscription_id": str(locked.id),
                "previous_plan_id": str(previous_plan_id),
                "new_plan_id": str(new_plan.id),
            },
        )
        return ServiceResult.success(locked)

    @classmethod
    def cancel(cls, subscription: Subscription, at_period_end: bool = True) -> ServiceResult[Subscription]:
        """
        Cancel now or at the end of the current period.

        The gateway is told first; if that call fails nothing changes
        locally, so the two sides cannot disagree about a cancellation we
        recorded but the gateway never saw.
        """
        if subscription.status == SubscriptionStatus.CANCELLED:
            return ServiceResult.failure(
                "Subscription is already cancelled.",
                error_code="ALREADY_CANCELLED",
            )
        if subscription.status == SubscriptionStatus.COMPLETED:
            return ServiceResult.failure(
                "Cannot cancel a completed subscription.",
                error_code="SUBSCRIPTION_COMPLETED",
            )
        if at_period_end and subscription.will_cancel_at_period_end:
            return ServiceResult.failure(
                "Subscription is already set to cancel at the end of the period.",
                error_code="ALREADY_CANCELLED",
            )

        if subscription.gateway_subscription_id:
            try:
                cls.get_gateway().cancel_subscription(
                    subscription.gateway_subscription_id,
                    at_period_end=at_period_end,
                )
            except GatewayError as e:
                return cls.handle_exception(e, "Gateway cancellation failed", log_level=logging.ERROR)

        try:
            with cls.atomic():
                locked = cls._lock(subscription)
                locked.cancel(at_period_end=at_period_end)
        except InvalidStateTransitionError as e:
            return cls.handle_exception(e, "Cancellation rejected")

        cls.get_logger().info(
            "Subscription cancelled",
            extra={
                "subscription_id": str(locked.id),
                "at_period_end": at_period_end,
                "status": locked.status,
            },
        )
        return ServiceResult.success(locked)

    @classmethod
    def reactivate(cls, subscription: Subscription) -> ServiceResult[Subscription]:
        """
        Undo a deferred cancellation that has not ended yet.

        Failures carry the model's message: not cancelled, already ended,
        or cancelled immediately.
        """
        try:
            with cls.atomic():
                locked = cls._lock(subscription)
                locked.reactivate()
        except InvalidStateTransitionError as e:
            return cls.handle_exception(e, "Reactivation rejected")

        cls.get_logger().info(
            "Subscription reactivated",
            extra={"subscription_id": str(locked.id)},
        )
        return ServiceResult.success(locked)

    @classmethod
    def finalize_deferred_cancellations(cls, now: datetime | None = None) -> int:
        """
        End deferred cancellations whose current period is over.

        Each row is locked and re-checked on its own, so a reactivation or a
        webhook that got there first wins.

        Returns:
            Number of subscriptions moved to CANCELLED
        """
        now = now or timezone.now()
        candidate_ids = list(
            Subscription.objects.filter(
                cancel_at_period_end=True,
                cancelled_at__isnull=False,
                ended_at__isnull=True,
                current_period_end__lte=now,
                status__in=[
                    SubscriptionStatus.ACTIVE,
                    SubscriptionStatus.PENDING,
                    SubscriptionStatus.HALTED,
                    SubscriptionStatus.AUTHENTICATED,
                    SubscriptionStatus.CREATED,
                ],
            ).values_list("id", flat=True)
        )

        finalized = 0
        for subscription_id in candidate_ids:
            with cls.atomic():
                locked = Subscription.objects.select_for_update().filter(pk=subscription_id).first()
                if locked is not None and locked.finalize_deferred_cancellation(now=now):
                    finalized += 1
                    cls.get_logger().info(
                        "Deferred cancellation finalized",
                        extra={"subscription_id": str(subscription_id)},
                    )
        return finalized

    @staticmethod
    def _lock(subscription: Subscription) -> Subscription:
        return Subscription.objects.select_for_update().get(pk=subscription.pk)
