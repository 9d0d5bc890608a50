"""
Billing services.

This module contains the service classes for billing:
- SubscriptionService: Plan change, cancel, reactivate, deferred cancellation sweep
- PaymentService: Create-if-absent payments and status transitions
- InvoiceService: Fiscal-year numbering, GST invoices, settlement
- PaymentMethodService: Stored instruments with a single default
- CheckoutService: Gateway subscription creation and verification
- BillingSummaryService: Account billing overview
"""

from billing.services.checkout_service import CheckoutService, CheckoutSession
from billing.services.invoice_service import InvoiceService
from billing.services.payment_method_service import (
    PaymentMethodParams,
    PaymentMethodService,
)
from billing.services.payment_service import PaymentService
from billing.services.subscription_service import SubscriptionService
from billing.services.summary_service import BillingSummary, BillingSummaryService

__all__ = [
    "BillingSummary",
    "BillingSummaryService",
    "CheckoutService",
    "CheckoutSession",
    "InvoiceService",
    "PaymentMethodParams",
    "PaymentMethodService",
    "PaymentService",
    "SubscriptionService",
]
