"""
Plan catalog model.

The catalog is read-only to billing: prices and trial length are copied
onto a subscription when it is created and never re-derived afterwards.
Catalog rows are maintained through the admin or data migrations.

Usage:
    from billing.models import PlanDefinition
    from billing.state_machines import BillingCycle, Currency

    plan = PlanDefinition.objects.get(code="pro")
    plan.price_for(Currency.INR, BillingCycle.YEARLY)  # Decimal("4990.00")
"""

from __future__ import annotations

from decimal import Decimal

from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from billing.state_machines import BillingCycle, Currency


class PlanDefinition(UUIDPrimaryKeyMixin, BaseModel):
    """
    A purchasable plan with per-currency, per-cycle prices.

    Prices are in major units (rupees, dollars). The gateway plan ids point
    at plans configured on Razorpay for each billing cycle.
    """

    code = models.SlugField(max_length=50, unique=True)
    name = models.CharField(max_length=100)
    description = models.TextField(blank=True, default="")

    price_inr_monthly = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    price_inr_yearly = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    price_usd_monthly = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    price_usd_yearly = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))

    trial_days = models.PositiveIntegerField(default=0)

    gateway_plan_id_monthly = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Razorpay plan id (plan_xxx) for monthly billing",
    )
    gateway_plan_id_yearly = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Razorpay plan id (plan_xxx) for yearly billing",
    )

    is_active = models.BooleanField(default=True)
    is_public = models.BooleanField(default=True)
    sort_order = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ["sort_order", "name"]
        verbose_name = "Plan"
        verbose_name_plural = "Plans"

    def __str__(self) -> str:
        return f"{self.name} ({self.code})"

    def price_for(self, currency: str, billing_cycle: str) -> Decimal:
        """Return price_<currency>_<cycle> for the given pair."""
        field_name = f"price_{Currency(currency).value.lower()}_{BillingCycle(billing_cycle).value}"
        return getattr(self, field_name)

    def gateway_plan_id_for(self, billing_cycle: str) -> str:
        if billing_cycle == BillingCycle.YEARLY:
            return self.gateway_plan_id_yearly
        return self.gateway_plan_id_monthly

    @property
    def has_trial(self) -> bool:
        return self.trial_days > 0
