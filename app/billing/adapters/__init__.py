"""
Payment gateway adapters.

All Razorpay API calls go through RazorpayAdapter so that timeouts, error
translation and logging are consistent.

Usage:
    from billing.adapters import RazorpayAdapter

    customer = RazorpayAdapter.create_customer(tenant)
"""

from billing.adapters.protocols import PaymentGateway
from billing.adapters.razorpay_adapter import (
    CustomerResult,
    RazorpayAdapter,
    SubscriptionResult,
)

__all__ = [
    "CustomerResult",
    "PaymentGateway",
    "RazorpayAdapter",
    "SubscriptionResult",
]
