"""
Tenant resolution and permission classes for billing endpoints.

Permission Hierarchy:
    OWNER > ADMIN > MEMBER

    OWNER can manage billing (checkout, plan change, cancel, reactivate,
    payment methods). Every role can read billing data.

Tenant resolution:
    The X-Tenant-ID header selects the tenant. Without it, the user's first
    tenant (owned tenants first) is used. The resolved tenant is cached on
    the request as request.tenant.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db.models import Q
from rest_framework import permissions

from tenants.models import Tenant, TenantRole

if TYPE_CHECKING:
    from rest_framework.request import Request
    from rest_framework.views import APIView


TENANT_HEADER = "X-Tenant-ID"


def get_current_tenant(request: Request) -> Tenant | None:
    """
    Resolve the tenant the request acts on.

    Returns None when the user belongs to no tenant or the header names a
    tenant the user is not part of.
    """
    if hasattr(request, "tenant"):
        return request.tenant

    user = request.user
    tenant = None
    if user is not None and user.is_authenticated:
        visible = Tenant.objects.filter(
            Q(owner=user) | Q(memberships__user=user)
        ).distinct()
        tenant_id = request.headers.get(TENANT_HEADER)
        if tenant_id:
            try:
                tenant = visible.filter(pk=tenant_id).first()
            except DjangoValidationError:
                tenant = None
        else:
            tenant = (
                visible.filter(owner=user).order_by("created_at").first()
                or visible.order_by("created_at").first()
            )

    request.tenant = tenant
    return tenant


class IsTenantMember(permissions.BasePermission):
    """
    Allows access to any user who belongs to the resolved tenant.
    """

    message = "You do not belong to a tenant."

    def has_permission(self, request: Request, view: APIView) -> bool:
        if not request.user or not request.user.is_authenticated:
            return False
        return get_current_tenant(request) is not None


class IsTenantOwner(permissions.BasePermission):
    """
    Allows access only to the owner of the resolved tenant.

    Admins and members get 403 with the "not the account owner" message.
    """

    message = "Only the account owner can manage billing."

    def has_permission(self, request: Request, view: APIView) -> bool:
        if not request.user or not request.user.is_authenticated:
            return False
        tenant = get_current_tenant(request)
        if tenant is None:
            self.message = IsTenantMember.message
            return False
        return tenant.role_of(request.user) == TenantRole.OWNER
