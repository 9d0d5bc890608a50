"""
DRF serializers for billing.

This module provides serializers for:
- Plan, subscription, invoice and payment method display
- Checkout, cancellation, plan change and payment method requests
- The billing summary

Related files:
    - models/: Subscription, Invoice, PaymentMethod, PlanDefinition
    - views.py: Billing API views

Usage:
    serializer = SubscriptionSerializer(subscription)
    data = serializer.data
"""

from __future__ import annotations

from rest_framework import serializers

from billing.models import Invoice, PaymentMethod, PlanDefinition, Subscription
from billing.services import PaymentMethodParams
from billing.state_machines import BillingCycle, Currency, PaymentMethodType


# =============================================================================
# Read Serializers
# =============================================================================


class PlanSerializer(serializers.ModelSerializer):
    class Meta:
        model = PlanDefinition
        fields = [
            "id",
            "code",
            "name",
            "description",
            "price_inr_monthly",
            "price_inr_yearly",
            "price_usd_monthly",
            "price_usd_yearly",
            "trial_days",
        ]
        read_only_fields = fields


class SubscriptionSerializer(serializers.ModelSerializer):
    """
    Subscription serializer for API responses.

    Fields:
        plan: Nested plan details
        will_cancel_at_period_end: Deferred cancellation pending
        has_access: Status grants product access
        is_on_trial / trial_days_remaining / days_until_renewal: Computed
    """

    plan = PlanSerializer(read_only=True)
    will_cancel_at_period_end = serializers.BooleanField(read_only=True)
    has_access = serializers.BooleanField(read_only=True)
    is_on_trial = serializers.BooleanField(read_only=True)
    trial_days_remaining = serializers.IntegerField(read_only=True)
    days_until_renewal = serializers.IntegerField(read_only=True, allow_null=True)

    class Meta:
        model = Subscription
        fields = [
            "id",
            "plan",
            "status",
            "billing_cycle",
            "currency",
            "amount",
            "current_period_start",
            "current_period_end",
            "trial_start",
            "trial_end",
            "cancel_at_period_end",
            "cancelled_at",
            "ended_at",
            "will_cancel_at_period_end",
            "has_access",
            "is_on_trial",
            "trial_days_remaining",
            "days_until_renewal",
            "created_at",
        ]
        read_only_fields = fields


class InvoiceSerializer(serializers.ModelSerializer):
    is_paid = serializers.BooleanField(read_only=True)
    is_overdue = serializers.BooleanField(read_only=True)
    formatted_total = serializers.CharField(read_only=True)

    class Meta:
        model = Invoice
        fields = [
            "id",
            "invoice_number",
            "status",
            "currency",
            "subtotal",
            "tax_amount",
            "total",
            "amount_paid",
            "amount_due",
            "formatted_total",
            "gst_details",
            "billing_address",
            "line_items",
            "issued_at",
            "due_at",
            "paid_at",
            "is_paid",
            "is_overdue",
            "created_at",
        ]
        read_only_fields = fields


class PaymentMethodSerializer(serializers.ModelSerializer):
    display_name = serializers.CharField(read_only=True)
    is_expired = serializers.BooleanField(read_only=True)

    class Meta:
        model = PaymentMethod
        fields = [
            "id",
            "type",
            "is_default",
            "details",
            "display_name",
            "expires_at",
            "is_expired",
            "created_at",
        ]
        read_only_fields = fields


class BillingSummarySerializer(serializers.Serializer):
    subscription = SubscriptionSerializer(read_only=True, allow_null=True)
    next_billing_date = serializers.DateTimeField(read_only=True, allow_null=True)
    default_payment_method = PaymentMethodSerializer(read_only=True, allow_null=True)
    invoice_count = serializers.IntegerField(read_only=True)
    total_paid = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)


class CheckoutSessionSerializer(serializers.Serializer):
    """Data the frontend needs to open Razorpay Checkout."""

    subscription_id = serializers.UUIDField(read_only=True)
    gateway_subscription_id = serializers.CharField(read_only=True)
    gateway_key_id = serializers.CharField(read_only=True)
    plan_name = serializers.CharField(read_only=True)
    amount_in_minor_units = serializers.IntegerField(read_only=True)
    currency = serializers.CharField(read_only=True)


class ErrorResponseSerializer(serializers.Serializer):
    error = serializers.CharField()
    error_code = serializers.CharField(required=False)
    details = serializers.DictField(required=False)


# =============================================================================
# Request Serializers
# =============================================================================


class CheckoutRequestSerializer(serializers.Serializer):
    """
    Serializer for checkout initiation.

    Fields:
        plan_id: Plan from the catalog (active plans only)
        billing_cycle: monthly or yearly
        currency: Price column to charge (default INR)
    """

    plan_id = serializers.PrimaryKeyRelatedField(
        queryset=PlanDefinition.objects.filter(is_active=True),
        source="plan",
    )
    billing_cycle = serializers.ChoiceField(choices=BillingCycle.choices, default=BillingCycle.MONTHLY)
    currency = serializers.ChoiceField(choices=Currency.choices, default=Currency.INR)


class CheckoutVerifySerializer(serializers.Serializer):
    """
    Values Razorpay Checkout hands back to the frontend after payment.
    """

    razorpay_subscription_id = serializers.CharField(max_length=255)
    razorpay_payment_id = serializers.CharField(max_length=255)
    razorpay_signature = serializers.CharField(max_length=255)


class ChangePlanSerializer(serializers.Serializer):
    plan_id = serializers.PrimaryKeyRelatedField(
        queryset=PlanDefinition.objects.all(),
        source="plan",
    )


class CancelSubscriptionSerializer(serializers.Serializer):
    """
    Serializer for subscription cancellation.

    Fields:
        at_period_end: If True, cancel at end of period; if False, immediately
    """

    at_period_end = serializers.BooleanField(
        default=True,
        help_text="Cancel at period end (True) or immediately (False)",
    )


class AddPaymentMethodSerializer(serializers.Serializer):
    """
    Serializer for storing a tokenized payment instrument.

    Only masked details are accepted. Card numbers never reach this API;
    gateway_token_id references the token Razorpay holds.
    """

    type = serializers.ChoiceField(choices=PaymentMethodType.choices)
    gateway_token_id = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
    is_default = serializers.BooleanField(default=False)

    card_last4 = serializers.RegexField(r"^\d{4}$", required=False)
    card_brand = serializers.CharField(max_length=50, required=False)
    card_exp_month = serializers.IntegerField(min_value=1, max_value=12, required=False)
    card_exp_year = serializers.IntegerField(min_value=2000, max_value=2100, required=False)
    upi_id = serializers.CharField(max_length=255, required=False)
    bank_name = serializers.CharField(max_length=100, required=False)
    wallet_provider = serializers.CharField(max_length=50, required=False)
    account_last4 = serializers.RegexField(r"^\d{4}$", required=False)

    def validate(self, attrs):
        method_type = attrs["type"]
        if method_type == PaymentMethodType.CARD and not attrs.get("card_last4"):
            raise serializers.ValidationError({"card_last4": "Required for card payment methods."})
        if method_type == PaymentMethodType.UPI and not attrs.get("upi_id"):
            raise serializers.ValidationError({"upi_id": "Required for UPI payment methods."})
        return attrs

    def to_params(self) -> PaymentMethodParams:
        return PaymentMethodParams(**self.validated_data)
