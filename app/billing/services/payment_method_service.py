"""
Payment method store.

Keeps at most one default method per tenant. Every default change runs in
one transaction that first locks the tenant row, clears the old default
and then sets the new one, so there is never a committed state with two
defaults. The partial unique constraint on PaymentMethod enforces the
same rule in the database.

Removing the default method does not promote another one; the tenant is
left without a default until they pick one.

Usage:
    from billing.services import PaymentMethodParams, PaymentMethodService

    method = PaymentMethodService.add(
        tenant,
        PaymentMethodParams(type="upi", upi_id="shop@okhdfc"),
    )
    PaymentMethodService.set_default(method)
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any

from django.utils import timezone

from core.exceptions import NotFoundError
from core.services import BaseService

from billing.models import PaymentMethod
from billing.state_machines import PaymentMethodType
from tenants.models import Tenant

if TYPE_CHECKING:
    from django.db.models import QuerySet


@dataclass
class PaymentMethodParams:
    """
    Input for adding a payment method.

    Only display fields are accepted; card and account numbers never reach
    us, only their last four digits.
    """

    type: str
    gateway_token_id: str = ""
    is_default: bool = False
    card_last4: str | None = None
    card_brand: str | None = None
    card_exp_month: int | None = None
    card_exp_year: int | None = None
    upi_id: str | None = None
    bank_name: str | None = None
    wallet_provider: str | None = None
    account_last4: str | None = None

    def __post_init__(self) -> None:
        if self.type not in PaymentMethodType.values:
            raise ValueError(f"Unknown payment method type: {self.type}")


def _last4(value: str | None) -> str:
    return (value or "")[-4:]


def mask_details(params: PaymentMethodParams) -> dict[str, Any]:
    """Build the masked display fields stored for a method type."""
    if params.type == PaymentMethodType.CARD:
        return {
            "last4": _last4(params.card_last4),
            "brand": params.card_brand or "",
            "exp_month": params.card_exp_month,
            "exp_year": params.card_exp_year,
        }
    if params.type == PaymentMethodType.UPI:
        return {"vpa": params.upi_id or ""}
    if params.type == PaymentMethodType.NETBANKING:
        return {"bank": params.bank_name or ""}
    if params.type == PaymentMethodType.WALLET:
        return {"provider": params.wallet_provider or ""}
    return {"bank": params.bank_name or "", "account_last4": _last4(params.account_last4)}


def card_expiry(exp_month: int | None, exp_year: int | None) -> datetime | None:
    """Last instant of the expiry month, or None if either part is missing."""
    if not exp_month or not exp_year:
        return None
    last_day = calendar.monthrange(exp_year, exp_month)[1]
    return timezone.make_aware(datetime(exp_year, exp_month, last_day, 23, 59, 59, 999999))


class PaymentMethodService(BaseService):
    """
    Service for stored payment instruments.

    Methods:
        add: Store a method; the first one becomes default
        set_default: Atomically move the default flag
        remove: Hard delete, no default promotion
        list_for_tenant / get_for_tenant / get_default_for_tenant
    """

    @classmethod
    def add(cls, tenant: Tenant, params: PaymentMethodParams) -> PaymentMethod:
        expires_at = None
        if params.type == PaymentMethodType.CARD:
            expires_at = card_expiry(params.card_exp_month, params.card_exp_year)

        with cls.atomic():
            cls._lock_tenant(tenant)
            is_default = params.is_default or not PaymentMethod.objects.filter(tenant=tenant).exists()
            if is_default:
                PaymentMethod.objects.filter(tenant=tenant, is_default=True).update(is_default=False)

            method = PaymentMethod.objects.create(
                tenant=tenant,
                gateway_token_id=params.gateway_token_id,
                type=params.type,
                is_default=is_default,
                details=mask_details(params),
                expires_at=expires_at,
            )

        cls.get_logger().info(
            "Payment method added",
            extra={
                "tenant_id": str(tenant.id),
                "payment_method_id": str(method.id),
                "type": params.type,
                "is_default": is_default,
            },
        )
        return method

    @classmethod
    def set_default(cls, method: PaymentMethod) -> PaymentMethod:
        """
        Make method the tenant's only default.
        """
        with cls.atomic():
            cls._lock_tenant(method.tenant)
            PaymentMethod.objects.filter(tenant_id=method.tenant_id, is_default=True).exclude(
                pk=method.pk
            ).update(is_default=False)
            method.is_default = True
            method.save(update_fields=["is_default", "updated_at"])

        cls.get_logger().info(
            "Payment method set as default",
            extra={"payment_method_id": str(method.id), "tenant_id": str(method.tenant_id)},
        )
        return method

    @classmethod
    def remove(cls, method: PaymentMethod) -> None:
        method_id = str(method.id)
        was_default = method.is_default
        method.delete()
        cls.get_logger().info(
            "Payment method removed",
            extra={
                "payment_method_id": method_id,
                "tenant_id": str(method.tenant_id),
                "was_default": was_default,
            },
        )

    @classmethod
    def list_for_tenant(cls, tenant: Tenant) -> QuerySet[PaymentMethod]:
        return PaymentMethod.objects.filter(tenant=tenant).order_by("-is_default", "-created_at")

    @classmethod
    def get_for_tenant(cls, tenant: Tenant, method_id: Any) -> PaymentMethod:
        """
        Raises:
            NotFoundError: No such method for this tenant
        """
        method = PaymentMethod.objects.filter(tenant=tenant, pk=method_id).first()
        if method is None:
            raise NotFoundError("Payment method not found.", error_code="PAYMENT_METHOD_NOT_FOUND")
        return method

    @classmethod
    def get_default_for_tenant(cls, tenant: Tenant) -> PaymentMethod | None:
        return PaymentMethod.objects.filter(tenant=tenant, is_default=True).first()

    @staticmethod
    def _lock_tenant(tenant: Tenant) -> None:
        Tenant.objects.select_for_update().filter(pk=tenant.pk).first()
