"""
Subscription model: one tenant-plan commitment mirrored from the gateway.

A Subscription is created by checkout in CREATED, then driven by gateway
webhooks and by direct user actions (cancel, reactivate, change plan).
Rows are never deleted; they are the billing history.

Usage:
    from billing.models import Subscription

    subscription.activate(period_start=start, period_end=end)
    subscription.cancel(at_period_end=True)
    subscription.reactivate()

State Flow:
    CREATED -> AUTHENTICATED -> ACTIVE
    ACTIVE <-> PENDING, ACTIVE <-> HALTED
    non-terminal -> CANCELLED (ended_at set) | COMPLETED
    deferred cancellation keeps ACTIVE until the period ends

Every lifecycle method validates, applies the django-fsm transition and
saves. Illegal transitions raise InvalidStateTransitionError and leave the
row untouched.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING

from django.db import models
from django.db.models import F, Q
from django.utils import timezone
from django_fsm import FSMField, TransitionNotAllowed, transition

from core.exceptions import ValidationError
from core.model_mixins import MetadataMixin, UUIDPrimaryKeyMixin
from core.models import BaseModel

from billing.exceptions import InvalidStateTransitionError
from billing.state_machines import BillingCycle, Currency, SubscriptionStatus

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from billing.models.plan import PlanDefinition


NON_TERMINAL_STATUSES = [
    SubscriptionStatus.CREATED,
    SubscriptionStatus.AUTHENTICATED,
    SubscriptionStatus.ACTIVE,
    SubscriptionStatus.PENDING,
    SubscriptionStatus.HALTED,
]


def _not_ended(instance: Subscription) -> bool:
    return not instance.is_terminal


def _deferred_cancellation_pending(instance: Subscription) -> bool:
    return (
        instance.cancelled_at is not None
        and instance.cancel_at_period_end
        and instance.ended_at is None
    )


class Subscription(UUIDPrimaryKeyMixin, MetadataMixin, BaseModel):
    """
    Tracks a tenant's subscription to a plan.

    Uses django-fsm for the status machine and a version counter for
    optimistic locking. Writers that read-modify-write (webhooks, checkout
    verification) lock the row with select_for_update() first.

    Fields:
        tenant: Owning tenant (one current subscription expected, checked at
            checkout, not enforced by a constraint)
        plan: Plan the tenant is on; repointed by change_plan()
        status: Current FSM state
        billing_cycle: monthly or yearly
        currency: ISO 4217 code of amount
        amount: Cycle price snapshot taken at creation
        gateway_subscription_id / gateway_customer_id: Razorpay ids
        current_period_start/end: Billing period from the gateway
        trial_start/end: Trial window, if the plan has one
        cancel_at_period_end: Flag recorded at cancellation time
        cancelled_at: When cancellation was requested
        ended_at: When the subscription stopped; set means terminal
        version: Optimistic locking version
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    tenant = models.ForeignKey(
        "tenants.Tenant",
        on_delete=models.PROTECT,
        related_name="subscriptions",
    )

    plan = models.ForeignKey(
        "billing.PlanDefinition",
        on_delete=models.PROTECT,
        related_name="subscriptions",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=SubscriptionStatus.CREATED,
        choices=SubscriptionStatus.choices,
        db_index=True,
        help_text="Current state of the subscription (managed by FSM)",
    )

    # ==========================================================================
    # Amount & Cycle
    # ==========================================================================

    billing_cycle = models.CharField(
        max_length=10,
        choices=BillingCycle.choices,
        default=BillingCycle.MONTHLY,
    )

    currency = models.CharField(
        max_length=3,
        choices=Currency.choices,
        default=Currency.INR,
    )

    amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="Cycle price snapshot, not re-derived from the plan",
    )

    # ==========================================================================
    # Gateway Integration
    # ==========================================================================

    gateway_subscription_id = models.CharField(
        max_length=255,
        unique=True,
        null=True,
        blank=True,
        help_text="Razorpay subscription id (sub_xxx)",
    )

    gateway_customer_id = models.CharField(
        max_length=255,
        blank=True,
        default="",
        db_index=True,
        help_text="Razorpay customer id (cust_xxx)",
    )

    # ==========================================================================
    # Periods
    # ==========================================================================

    current_period_start = models.DateTimeField(null=True, blank=True)
    current_period_end = models.DateTimeField(null=True, blank=True)
    trial_start = models.DateTimeField(null=True, blank=True)
    trial_end = models.DateTimeField(null=True, blank=True)

    # ==========================================================================
    # Cancellation
    # ==========================================================================

    cancel_at_period_end = models.BooleanField(default=False)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    ended_at = models.DateTimeField(null=True, blank=True)

    # ==========================================================================
    # Concurrency Control
    # ==========================================================================

    version = models.PositiveIntegerField(
        default=1,
        help_text="Version for optimistic locking - incremented on each save",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Subscription"
        verbose_name_plural = "Subscriptions"
        indexes = [
            models.Index(fields=["tenant", "status"], name="subscription_tenant_status_idx"),
            models.Index(fields=["status", "current_period_end"], name="subscription_status_period_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(amount__gte=0),
                name="subscription_amount_non_negative",
            ),
            models.CheckConstraint(
                condition=(
                    Q(current_period_start__isnull=True)
                    | Q(current_period_end__isnull=True)
                    | Q(current_period_end__gte=F("current_period_start"))
                ),
                name="subscription_period_ordered",
            ),
        ]

    def __str__(self) -> str:
        return (
            f"Subscription({self.id}, {self.status}, "
            f"{self.amount} {self.currency}/{self.billing_cycle})"
        )

    def save(self, *args, **kwargs):
        """
        Save with version auto-increment for optimistic locking.
        """
        is_update = not self._state.adding and not kwargs.get("force_insert", False)
        if is_update:
            self.version = F("version") + 1
            update_fields = kwargs.get("update_fields")
            if update_fields is not None and "version" not in update_fields:
                kwargs["update_fields"] = [*update_fields, "version"]
        super().save(*args, **kwargs)
        if is_update:
            self.refresh_from_db(fields=["version"])

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=[SubscriptionStatus.CREATED, SubscriptionStatus.AUTHENTICATED],
        target=SubscriptionStatus.AUTHENTICATED,
        conditions=[_not_ended],
    )
    def _authenticate(self):
        pass

    @transition(
        field=status,
        source=NON_TERMINAL_STATUSES,
        target=SubscriptionStatus.ACTIVE,
        conditions=[_not_ended],
    )
    def _activate(self):
        pass

    @transition(
        field=status,
        source=[SubscriptionStatus.ACTIVE, SubscriptionStatus.PENDING],
        target=SubscriptionStatus.PENDING,
        conditions=[_not_ended],
    )
    def _mark_pending(self):
        pass

    @transition(
        field=status,
        source=[
            SubscriptionStatus.ACTIVE,
            SubscriptionStatus.PENDING,
            SubscriptionStatus.HALTED,
        ],
        target=SubscriptionStatus.HALTED,
        conditions=[_not_ended],
    )
    def _mark_halted(self):
        pass

    @transition(
        field=status,
        source=NON_TERMINAL_STATUSES,
        target=SubscriptionStatus.CANCELLED,
        conditions=[_not_ended],
    )
    def _end_cancelled(self):
        now = timezone.now()
        if self.cancelled_at is None:
            self.cancelled_at = now
        self.ended_at = now

    @transition(
        field=status,
        source=NON_TERMINAL_STATUSES,
        target=SubscriptionStatus.COMPLETED,
        conditions=[_not_ended],
    )
    def _complete(self):
        self.ended_at = timezone.now()

    @transition(
        field=status,
        source=[
            SubscriptionStatus.ACTIVE,
            SubscriptionStatus.PENDING,
            SubscriptionStatus.HALTED,
            SubscriptionStatus.CANCELLED,
        ],
        target=SubscriptionStatus.ACTIVE,
        conditions=[_deferred_cancellation_pending],
    )
    def _reactivate(self):
        self.cancelled_at = None
        self.cancel_at_period_end = False

    def _run_transition(self, method: Callable[[], None], name: str) -> None:
        """Apply a transition, translating django-fsm errors."""
        try:
            method()
        except TransitionNotAllowed as exc:
            if self.is_terminal:
                message = f"Cannot {name} a subscription that has ended."
            else:
                message = f"Cannot {name} a subscription in '{self.status}' state."
            raise InvalidStateTransitionError(
                message,
                details={
                    "subscription_id": str(self.id),
                    "current_state": self.status,
                    "transition": name,
                },
            ) from exc

    # ==========================================================================
    # Lifecycle Operations
    # ==========================================================================

    def activate(
        self,
        period_start: datetime | None = None,
        period_end: datetime | None = None,
        save: bool = True,
    ) -> None:
        """
        Move to ACTIVE, optionally refreshing the billing period.

        Idempotent: activating an ACTIVE subscription only applies the new
        period bounds (if any).
        """
        if self.status != SubscriptionStatus.ACTIVE or self.is_terminal:
            self._run_transition(self._activate, "activate")
        if period_start is not None or period_end is not None:
            self.set_period(period_start, period_end)
        if save:
            self.save()

    def authenticate(self, save: bool = True) -> None:
        """Record that the customer authorised the mandate (CREATED -> AUTHENTICATED)."""
        self._run_transition(self._authenticate, "authenticate")
        if save:
            self.save()

    def mark_pending(self, save: bool = True) -> None:
        """Payment is due and being retried by the gateway (grace period)."""
        self._run_transition(self._mark_pending, "mark pending")
        if save:
            self.save()

    def mark_halted(self, save: bool = True) -> None:
        """Payment retries are exhausted; access is gated on status."""
        self._run_transition(self._mark_halted, "halt")
        if save:
            self.save()

    def mark_completed(self, save: bool = True) -> None:
        """The plan term is fully consumed. Terminal."""
        self._run_transition(self._complete, "complete")
        if save:
            self.save()

    def mark_cancelled(self, save: bool = True) -> None:
        """The gateway ended the subscription. Terminal."""
        self._run_transition(self._end_cancelled, "cancel")
        if save:
            self.save()

    def cancel(self, at_period_end: bool = True, save: bool = True) -> None:
        """
        Cancel now or at the end of the current period.

        Deferred cancellation only records cancelled_at and the flag; the
        subscription stays usable until finalize_deferred_cancellation().
        Immediate cancellation moves to CANCELLED with ended_at set.
        """
        if self.is_terminal:
            raise InvalidStateTransitionError(
                "Cannot cancel a subscription that has ended.",
                details={
                    "subscription_id": str(self.id),
                    "current_state": self.status,
                    "transition": "cancel",
                },
            )
        if at_period_end:
            self.cancelled_at = timezone.now()
            self.cancel_at_period_end = True
        else:
            self.cancel_at_period_end = False
            self.cancelled_at = None
            self._run_transition(self._end_cancelled, "cancel")
        if save:
            self.save()

    def reactivate(self, save: bool = True) -> None:
        """
        Undo a deferred cancellation that has not ended yet.

        Raises:
            InvalidStateTransitionError: not cancelled, already ended, or
                cancelled immediately
        """
        details = {
            "subscription_id": str(self.id),
            "current_state": self.status,
            "transition": "reactivate",
        }
        if self.ended_at is not None or self.status == SubscriptionStatus.COMPLETED:
            raise InvalidStateTransitionError(
                "Cannot reactivate an ended subscription.", details=details
            )
        if self.cancelled_at is None and self.status != SubscriptionStatus.CANCELLED:
            raise InvalidStateTransitionError(
                "Subscription is not cancelled.", details=details
            )
        if not self.cancel_at_period_end:
            raise InvalidStateTransitionError(
                "Cannot reactivate an immediately cancelled subscription.",
                details=details,
            )
        self._run_transition(self._reactivate, "reactivate")
        if save:
            self.save()

    def finalize_deferred_cancellation(self, now: datetime | None = None, save: bool = True) -> bool:
        """
        End a deferred cancellation whose period is over.

        Returns:
            True if the subscription moved to CANCELLED
        """
        now = now or timezone.now()
        if not _deferred_cancellation_pending(self) or self.is_terminal:
            return False
        if self.current_period_end is not None and self.current_period_end > now:
            return False
        self._run_transition(self._end_cancelled, "cancel")
        if save:
            self.save()
        return True

    def change_plan(self, new_plan: PlanDefinition, save: bool = True) -> None:
        """
        Repoint the plan.

        amount and current_period_end are left alone; they follow on the
        next charge from the gateway.
        """
        if self.is_terminal:
            raise InvalidStateTransitionError(
                "Cannot change the plan of a subscription that has ended.",
                details={
                    "subscription_id": str(self.id),
                    "current_state": self.status,
                    "transition": "change_plan",
                },
            )
        self.plan = new_plan
        if save:
            self.save()

    def set_period(self, start: datetime | None, end: datetime | None) -> None:
        """
        Set the billing period bounds (not saved).

        A missing start falls back to now; a missing end leaves it empty.
        """
        start = start or timezone.now()
        if end is not None and end < start:
            raise ValidationError(
                "Billing period ends before it starts.",
                error_code="INVALID_PERIOD",
                details={"start": start.isoformat(), "end": end.isoformat()},
            )
        self.current_period_start = start
        self.current_period_end = end

    # ==========================================================================
    # Helper Properties
    # ==========================================================================

    @property
    def is_terminal(self) -> bool:
        """COMPLETED, or CANCELLED with ended_at set. No transition leaves it."""
        if self.status == SubscriptionStatus.COMPLETED:
            return True
        return self.status == SubscriptionStatus.CANCELLED and self.ended_at is not None

    @property
    def is_active(self) -> bool:
        return self.status == SubscriptionStatus.ACTIVE

    @property
    def is_cancelled(self) -> bool:
        return self.status == SubscriptionStatus.CANCELLED

    @property
    def will_cancel_at_period_end(self) -> bool:
        """Deferred cancellation recorded but not yet effective."""
        return _deferred_cancellation_pending(self) and not self.is_terminal

    @property
    def has_access(self) -> bool:
        if self.is_terminal:
            return False
        return self.status in SubscriptionStatus.access_statuses() or self.is_on_trial

    @property
    def is_on_trial(self) -> bool:
        return self.trial_end is not None and self.trial_end > timezone.now()

    @property
    def trial_days_remaining(self) -> int:
        if not self.is_on_trial:
            return 0
        seconds = (self.trial_end - timezone.now()).total_seconds()
        return max(0, math.ceil(seconds / 86400))

    @property
    def days_until_renewal(self) -> int | None:
        """Whole days until current_period_end; None when no renewal is due."""
        if self.current_period_end is None or self.will_cancel_at_period_end or self.is_terminal:
            return None
        seconds = (self.current_period_end - timezone.now()).total_seconds()
        return max(0, math.ceil(seconds / 86400))
