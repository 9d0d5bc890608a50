"""
State machine enums for billing models.
"""

from billing.state_machines.states import (
    BillingCycle,
    Currency,
    InvoiceStatus,
    PaymentMethodType,
    PaymentStatus,
    SubscriptionStatus,
)

__all__ = [
    "BillingCycle",
    "Currency",
    "InvoiceStatus",
    "PaymentMethodType",
    "PaymentStatus",
    "SubscriptionStatus",
]
