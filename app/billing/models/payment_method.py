"""
Stored payment instruments.

Only gateway tokens and masked display fields are kept, never raw card or
bank numbers. A tenant has at most one default method; the partial unique
constraint below backs up PaymentMethodService's clear-then-set.
"""

from __future__ import annotations

from django.db import models
from django.db.models import Q
from django.utils import timezone

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from billing.state_machines import PaymentMethodType


class PaymentMethod(UUIDPrimaryKeyMixin, BaseModel):
    """
    A tokenised card, UPI handle, bank mandate or wallet.

    Fields:
        tenant: Owning tenant
        gateway_token_id: Razorpay token id (token_xxx), opaque
        type: Instrument kind
        is_default: Used for renewals when set
        details: Masked fields for display (last4, brand, vpa, bank...)
        expires_at: End of validity for cards, None otherwise
    """

    tenant = models.ForeignKey(
        "tenants.Tenant",
        on_delete=models.CASCADE,
        related_name="payment_methods",
    )
    gateway_token_id = models.CharField(max_length=255, blank=True, default="")
    type = models.CharField(max_length=20, choices=PaymentMethodType.choices)
    is_default = models.BooleanField(default=False)
    details = models.JSONField(default=dict, blank=True)
    expires_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-is_default", "-created_at"]
        verbose_name = "Payment method"
        verbose_name_plural = "Payment methods"
        constraints = [
            models.UniqueConstraint(
                fields=["tenant"],
                condition=Q(is_default=True),
                name="payment_method_single_default",
            ),
        ]

    def __str__(self) -> str:
        return f"PaymentMethod({self.type}, {self.display_name})"

    @property
    def display_name(self) -> str:
        details = self.details or {}
        if self.type == PaymentMethodType.CARD:
            return f"{details.get('brand', 'Card')} •••• {details.get('last4', '????')}"
        if self.type == PaymentMethodType.UPI:
            return details.get("vpa", "UPI")
        if self.type == PaymentMethodType.WALLET:
            return details.get("provider", "Wallet")
        if self.type == PaymentMethodType.EMANDATE:
            return f"{details.get('bank', 'Bank')} •••• {details.get('account_last4', '????')}"
        return details.get("bank", self.get_type_display())

    @property
    def is_expired(self) -> bool:
        return self.expires_at is not None and self.expires_at < timezone.now()
