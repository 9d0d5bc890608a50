"""
State and choice enums for billing models.

These are Django TextChoices for database storage and admin integration.
Subscription status is driven by django-fsm transitions on the model.

State Machines Overview:

Subscription Status:
    created → authenticated → active
    created/authenticated → active
    active ⇄ pending, active ⇄ halted
    any non-terminal → cancelled (immediate) | completed
    active + cancel_at_period_end → cancelled once the period ends
    deferred-cancelled (ended_at still null) → active (reactivation)

Payment Status:
    created → captured → refunded
    created → failed
    failed → captured (gateway retry succeeded)

Invoice Status:
    issued → paid
    issued → cancelled
"""

from django.db import models


class SubscriptionStatus(models.TextChoices):
    """
    States for the Subscription lifecycle.

    Terminal: COMPLETED, and CANCELLED once ended_at is set.

    Access is granted while ACTIVE, AUTHENTICATED or PENDING (grace period
    while the gateway retries a due payment).
    """

    CREATED = "created", "Created"
    AUTHENTICATED = "authenticated", "Authenticated"
    ACTIVE = "active", "Active"
    PENDING = "pending", "Pending"
    HALTED = "halted", "Halted"
    CANCELLED = "cancelled", "Cancelled"
    COMPLETED = "completed", "Completed"

    @classmethod
    def current_statuses(cls) -> list[str]:
        """Statuses counted as a tenant's current subscription."""
        return [cls.ACTIVE, cls.PENDING, cls.AUTHENTICATED, cls.CREATED]

    @classmethod
    def access_statuses(cls) -> list[str]:
        return [cls.ACTIVE, cls.AUTHENTICATED, cls.PENDING]


class BillingCycle(models.TextChoices):
    """Billing frequency of a subscription."""

    MONTHLY = "monthly", "Monthly"
    YEARLY = "yearly", "Yearly"


class Currency(models.TextChoices):
    """Currencies a plan can be priced in. No FX conversion happens."""

    INR = "INR", "Indian Rupee"
    USD = "USD", "US Dollar"


class PaymentStatus(models.TextChoices):
    """
    States for a Payment (one settlement attempt).

    Only status fields move; amount and currency are fixed by the first
    writer.
    """

    CREATED = "created", "Created"
    AUTHORIZED = "authorized", "Authorized"
    CAPTURED = "captured", "Captured"
    FAILED = "failed", "Failed"
    REFUNDED = "refunded", "Refunded"


class InvoiceStatus(models.TextChoices):
    """
    States for an Invoice.

    ISSUED → PAID on settlement; ISSUED → CANCELLED is administrative.
    """

    ISSUED = "issued", "Issued"
    PAID = "paid", "Paid"
    CANCELLED = "cancelled", "Cancelled"


class PaymentMethodType(models.TextChoices):
    """Kinds of stored payment instruments."""

    CARD = "card", "Card"
    UPI = "upi", "UPI"
    NETBANKING = "netbanking", "Net Banking"
    WALLET = "wallet", "Wallet"
    EMANDATE = "emandate", "E-Mandate"


__all__ = [
    "SubscriptionStatus",
    "BillingCycle",
    "Currency",
    "PaymentStatus",
    "InvoiceStatus",
    "PaymentMethodType",
]
