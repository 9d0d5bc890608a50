"""
Tenant and membership models.

Usage:
    from tenants.models import Tenant, TenantMembership, TenantRole

    tenant = Tenant.objects.create(name="Acme", owner=user)
    TenantMembership.objects.create(tenant=tenant, user=user, role=TenantRole.OWNER)
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel


class TenantRole(models.TextChoices):
    """
    Role of a user inside a tenant.

    OWNER manages billing. ADMIN and MEMBER can only read billing data.
    """

    OWNER = "owner", "Owner"
    ADMIN = "admin", "Admin"
    MEMBER = "member", "Member"


class Tenant(UUIDPrimaryKeyMixin, BaseModel):
    """
    Account that owns subscriptions, payments, invoices and payment methods.

    Fields:
        name: Display name, also used as gateway customer name
        owner: User who is billed and may change billing
        plan: Plan currently granted to the tenant (propagated by checkout
            verification and plan changes)
        billing_email: Address sent to the gateway customer record
        billing_address: Address snapshot source for invoices; "state" drives
            the GST split and "gstin" is printed when present
    """

    name = models.CharField(max_length=255)

    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="owned_tenants",
        help_text="User who owns this tenant and its billing",
    )

    plan = models.ForeignKey(
        "billing.PlanDefinition",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="tenants",
        help_text="Plan currently granted to this tenant",
    )

    billing_email = models.EmailField(blank=True, default="")

    billing_phone = models.CharField(max_length=20, blank=True, default="")

    billing_address = models.JSONField(
        default=dict,
        blank=True,
        help_text="Billing address (line1, city, state, postal_code, gstin)",
    )

    class Meta:
        ordering = ["name"]
        verbose_name = "Tenant"
        verbose_name_plural = "Tenants"

    def __str__(self) -> str:
        return self.name

    @property
    def billing_state(self) -> str | None:
        """Indian state used as GST place of supply."""
        return (self.billing_address or {}).get("state") or None

    def role_of(self, user) -> str | None:
        """Return the user's role in this tenant, or None for outsiders."""
        if user is None or not user.is_authenticated:
            return None
        if self.owner_id == user.pk:
            return TenantRole.OWNER
        membership = self.memberships.filter(user=user).only("role").first()
        return membership.role if membership else None

    def is_owner(self, user) -> bool:
        return self.role_of(user) == TenantRole.OWNER


class TenantMembership(BaseModel):
    """
    Links a user to a tenant with a role.
    """

    tenant = models.ForeignKey(
        Tenant,
        on_delete=models.CASCADE,
        related_name="memberships",
    )

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="tenant_memberships",
    )

    role = models.CharField(
        max_length=20,
        choices=TenantRole.choices,
        default=TenantRole.MEMBER,
    )

    class Meta:
        ordering = ["created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["tenant", "user"],
                name="tenant_membership_unique_user",
            ),
        ]

    def __str__(self) -> str:
        return f"TenantMembership({self.user_id} in {self.tenant_id}, {self.role})"
