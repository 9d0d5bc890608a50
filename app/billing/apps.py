"""
Billing app configuration.

This app provides subscription billing on Razorpay:
- Subscription lifecycle and checkout
- Webhook reconciliation
- GST invoices with fiscal-year numbering
- Payments and stored payment methods
"""

from django.apps import AppConfig


class BillingConfig(AppConfig):
    """Configuration for the billing application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "billing"
    verbose_name = "Billing"
