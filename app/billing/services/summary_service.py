"""
Billing summary for the account settings page.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from core.services import BaseService

from billing.services.invoice_service import InvoiceService
from billing.services.payment_method_service import PaymentMethodService
from billing.services.subscription_service import SubscriptionService

if TYPE_CHECKING:
    from billing.models import PaymentMethod, Subscription
    from tenants.models import Tenant


@dataclass
class BillingSummary:
    """
    Attributes:
        subscription: Current subscription, if any
        next_billing_date: current_period_end, None when cancelling at period end
        default_payment_method: Method used for renewals, if any
        invoice_count: All invoices of the tenant
        total_paid: Sum of amount_paid over paid invoices
    """

    subscription: Subscription | None
    next_billing_date: datetime | None
    default_payment_method: PaymentMethod | None
    invoice_count: int
    total_paid: Decimal


class BillingSummaryService(BaseService):
    @classmethod
    def for_tenant(cls, tenant: Tenant) -> BillingSummary:
        subscription = SubscriptionService.get_current_for_tenant(tenant)
        next_billing_date = None
        if subscription is not None and not subscription.will_cancel_at_period_end:
            next_billing_date = subscription.current_period_end

        return BillingSummary(
            subscription=subscription,
            next_billing_date=next_billing_date,
            default_payment_method=PaymentMethodService.get_default_for_tenant(tenant),
            invoice_count=InvoiceService.count_for_tenant(tenant),
            total_paid=InvoiceService.total_paid_for_tenant(tenant),
        )
