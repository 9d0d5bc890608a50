"""
Billing domain models.

This module contains all billing models:
- PlanDefinition: Read-only plan catalog (prices, trial length, gateway plan ids)
- Subscription: Tenant-plan commitment mirrored from Razorpay
- Payment: One settlement attempt, keyed by gateway payment id
- Invoice: GST invoice with fiscal-year numbering
- InvoiceSequence: Per fiscal-year invoice number counter
- PaymentMethod: Tokenised payment instruments
"""

from billing.models.invoice import Invoice, InvoiceSequence
from billing.models.payment import Payment
from billing.models.payment_method import PaymentMethod
from billing.models.plan import PlanDefinition
from billing.models.subscription import Subscription

__all__ = [
    "Invoice",
    "InvoiceSequence",
    "Payment",
    "PaymentMethod",
    "PlanDefinition",
    "Subscription",
]
