"""
Billing admin configuration.

Subscriptions, payments and invoices are read-mostly here: lifecycle
changes go through the billing services and the webhook reconciler, not
through admin edits.
"""

from django.contrib import admin

from billing.models import (
    Invoice,
    InvoiceSequence,
    Payment,
    PaymentMethod,
    PlanDefinition,
    Subscription,
)


@admin.register(PlanDefinition)
class PlanDefinitionAdmin(admin.ModelAdmin):
    """
    Admin configuration for the plan catalog.
    """

    list_display = [
        "code",
        "name",
        "price_inr_monthly",
        "price_inr_yearly",
        "trial_days",
        "is_active",
        "is_public",
        "sort_order",
    ]
    list_filter = ["is_active", "is_public"]
    search_fields = ["code", "name", "gateway_plan_id_monthly", "gateway_plan_id_yearly"]
    readonly_fields = ["id", "created_at", "updated_at"]
    ordering = ["sort_order", "name"]


@admin.register(Subscription)
class SubscriptionAdmin(admin.ModelAdmin):
    """
    Admin configuration for Subscription.

    Status and period fields are read-only; state changes should be made
    through the service layer, not admin.
    """

    list_display = [
        "id",
        "tenant",
        "plan",
        "status",
        "amount_display",
        "billing_cycle",
        "current_period_end",
        "cancel_at_period_end",
        "created_at",
    ]
    list_filter = ["status", "billing_cycle", "currency", "cancel_at_period_end"]
    search_fields = ["id", "gateway_subscription_id", "gateway_customer_id", "tenant__name"]
    readonly_fields = [
        "id",
        "status",
        "gateway_subscription_id",
        "gateway_customer_id",
        "current_period_start",
        "current_period_end",
        "trial_start",
        "trial_end",
        "cancelled_at",
        "ended_at",
        "version",
        "created_at",
        "updated_at",
    ]
    raw_id_fields = ["tenant", "plan"]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "tenant", "plan", "status"),
            },
        ),
        (
            "Pricing",
            {
                "fields": ("amount", "currency", "billing_cycle"),
            },
        ),
        (
            "Gateway",
            {
                "fields": ("gateway_subscription_id", "gateway_customer_id"),
            },
        ),
        (
            "Period",
            {
                "fields": (
                    "current_period_start",
                    "current_period_end",
                    "trial_start",
                    "trial_end",
                ),
            },
        ),
        (
            "Cancellation",
            {
                "fields": ("cancel_at_period_end", "cancelled_at", "ended_at"),
            },
        ),
        (
            "Metadata",
            {
                "fields": ("metadata", "version"),
                "classes": ("collapse",),
            },
        ),
        (
            "Timestamps",
            {
                "fields": ("created_at", "updated_at"),
            },
        ),
    )

    def amount_display(self, obj: Subscription) -> str:
        """Display the amount with its currency."""
        return f"{obj.amount} {obj.currency}"

    amount_display.short_description = "Amount"

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for subscriptions (billing history)."""
        return False


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = [
        "id",
        "tenant",
        "gateway_payment_id",
        "status",
        "amount",
        "currency",
        "method",
        "captured_at",
    ]
    list_filter = ["status", "currency", "method"]
    search_fields = ["id", "gateway_payment_id", "gateway_order_id", "tenant__name"]
    readonly_fields = [
        "id",
        "status",
        "gateway_payment_id",
        "captured_at",
        "refunded_at",
        "created_at",
        "updated_at",
    ]
    raw_id_fields = ["tenant", "subscription", "invoice"]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for payments (audit trail)."""
        return False


@admin.register(Invoice)
class InvoiceAdmin(admin.ModelAdmin):
    list_display = [
        "invoice_number",
        "tenant",
        "status",
        "formatted_total",
        "issued_at",
        "due_at",
        "paid_at",
    ]
    list_filter = ["status", "currency"]
    search_fields = ["invoice_number", "tenant__name"]
    readonly_fields = [
        "id",
        "invoice_number",
        "status",
        "subtotal",
        "tax_amount",
        "total",
        "amount_paid",
        "amount_due",
        "gst_details",
        "line_items",
        "issued_at",
        "paid_at",
        "created_at",
        "updated_at",
    ]
    raw_id_fields = ["tenant", "subscription"]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]


@admin.register(InvoiceSequence)
class InvoiceSequenceAdmin(admin.ModelAdmin):
    list_display = ["prefix", "fiscal_year", "last_number", "updated_at"]
    readonly_fields = ["prefix", "fiscal_year", "last_number", "created_at", "updated_at"]


@admin.register(PaymentMethod)
class PaymentMethodAdmin(admin.ModelAdmin):
    list_display = ["id", "tenant", "type", "display_name", "is_default", "expires_at"]
    list_filter = ["type", "is_default"]
    search_fields = ["id", "tenant__name", "gateway_token_id"]
    readonly_fields = ["id", "details", "created_at", "updated_at"]
    raw_id_fields = ["tenant"]
