"""
URL configuration for the billing app.

All routes are prefixed with /api/v1/billing/ when included in the main URLconf.

Billing - Subscription:
    GET  subscription/                    - Current subscription
    GET  subscription/history/            - Subscription history
    POST subscription/plan/               - Change plan
    POST subscription/cancel/             - Cancel
    POST subscription/reactivate/         - Reactivate

Billing - Checkout:
    POST checkout/                        - Start checkout
    POST checkout/verify/                 - Verify checkout payment

Billing - Invoices:
    GET  invoices/                        - List invoices
    GET  invoices/{id}/                   - Invoice detail

Billing - Payment Methods:
    GET|POST payment-methods/             - List / add
    POST     payment-methods/{id}/default/ - Make default
    DELETE   payment-methods/{id}/        - Remove

Billing - Summary:
    GET  summary/                         - Billing summary

Webhooks:
    POST webhooks/razorpay/               - Razorpay webhook endpoint
"""

from django.urls import path

from billing.views import (
    BillingSummaryView,
    CancelSubscriptionView,
    ChangePlanView,
    CheckoutVerifyView,
    CheckoutView,
    InvoiceDetailView,
    InvoiceListView,
    PaymentMethodDefaultView,
    PaymentMethodDetailView,
    PaymentMethodListView,
    ReactivateSubscriptionView,
    SubscriptionHistoryView,
    SubscriptionView,
)
from billing.webhooks.views import razorpay_webhook

app_name = "billing"

urlpatterns = [
    # Subscription
    path("subscription/", SubscriptionView.as_view(), name="subscription"),
    path(
        "subscription/history/",
        SubscriptionHistoryView.as_view(),
        name="subscription-history",
    ),
    path("subscription/plan/", ChangePlanView.as_view(), name="subscription-plan"),
    path(
        "subscription/cancel/",
        CancelSubscriptionView.as_view(),
        name="subscription-cancel",
    ),
    path(
        "subscription/reactivate/",
        ReactivateSubscriptionView.as_view(),
        name="subscription-reactivate",
    ),
    # Checkout
    path("checkout/", CheckoutView.as_view(), name="checkout"),
    path("checkout/verify/", CheckoutVerifyView.as_view(), name="checkout-verify"),
    # Invoices
    path("invoices/", InvoiceListView.as_view(), name="invoice-list"),
    path(
        "invoices/<uuid:invoice_id>/",
        InvoiceDetailView.as_view(),
        name="invoice-detail",
    ),
    # Payment methods
    path(
        "payment-methods/",
        PaymentMethodListView.as_view(),
        name="payment-method-list",
    ),
    path(
        "payment-methods/<uuid:method_id>/",
        PaymentMethodDetailView.as_view(),
        name="payment-method-detail",
    ),
    path(
        "payment-methods/<uuid:method_id>/default/",
        PaymentMethodDefaultView.as_view(),
        name="payment-method-default",
    ),
    # Summary
    path("summary/", BillingSummaryView.as_view(), name="summary"),
    # Webhook endpoints
    path("webhooks/razorpay/", razorpay_webhook, name="razorpay-webhook"),
]
