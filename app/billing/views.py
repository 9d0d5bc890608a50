"""
DRF views for billing.

This module provides API views for:
- Subscription read, history, plan change, cancel and reactivate
- Checkout initiation and verification
- Invoice listing and detail
- Payment methods
- Billing summary

Related files:
    - services/: SubscriptionService, CheckoutService, InvoiceService, ...
    - serializers.py: Request/response serializers
    - urls.py: URL routing
    - webhooks/views.py: Razorpay webhook endpoint (plain Django view)

Endpoints (prefixed with /api/v1/billing/):
    GET    subscription/                 - Current subscription
    GET    subscription/history/         - Every subscription, newest first
    POST   subscription/plan/            - Change plan
    POST   subscription/cancel/          - Cancel (deferred or immediate)
    POST   subscription/reactivate/      - Undo a deferred cancellation
    POST   checkout/                     - Start checkout
    POST   checkout/verify/              - Confirm checkout payment
    GET    invoices/                     - List invoices (paginated, filterable)
    GET    invoices/{id}/                - Invoice detail
    GET    payment-methods/              - List payment methods
    POST   payment-methods/              - Add payment method
    POST   payment-methods/{id}/default/ - Make default
    DELETE payment-methods/{id}/         - Remove
    GET    summary/                      - Billing summary

Security:
    - Reads require tenant membership (IsTenantMember)
    - Mutations require the tenant owner (IsTenantOwner)
"""

from __future__ import annotations

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from core.exceptions import BaseApplicationError
from tenants.permissions import IsTenantMember, IsTenantOwner, get_current_tenant

from billing.pagination import InvoicePagination
from billing.serializers import (
    AddPaymentMethodSerializer,
    BillingSummarySerializer,
    CancelSubscriptionSerializer,
    ChangePlanSerializer,
    CheckoutRequestSerializer,
    CheckoutSessionSerializer,
    CheckoutVerifySerializer,
    ErrorResponseSerializer,
    InvoiceSerializer,
    PaymentMethodSerializer,
    SubscriptionSerializer,
)
from billing.services import (
    BillingSummaryService,
    CheckoutService,
    InvoiceService,
    PaymentMethodService,
    SubscriptionService,
)


def error_response(error: BaseApplicationError) -> Response:
    """Answer with the exception's {"error", "error_code", "details"?} body."""
    return Response(error.to_dict(), status=error.http_status)


def result_error_response(result) -> Response:
    """Answer a failed ServiceResult with the standard error body."""
    body = {"error": result.error, "error_code": result.error_code}
    if result.errors:
        body["details"] = result.errors
    return Response(body, status=result.http_status)


ERROR_RESPONSES = {
    403: OpenApiResponse(response=ErrorResponseSerializer, description="Not a member, or not the account owner"),
    404: OpenApiResponse(response=ErrorResponseSerializer, description="No active subscription"),
    422: OpenApiResponse(response=ErrorResponseSerializer, description="Transition not allowed"),
}


class BillingAPIView(APIView):
    """
    Base view resolving the tenant. Safe methods need membership, the rest
    need the tenant owner.
    """

    def get_permissions(self):
        if self.request.method in ("GET", "HEAD", "OPTIONS"):
            return [IsAuthenticated(), IsTenantMember()]
        return [IsAuthenticated(), IsTenantOwner()]

    @property
    def tenant(self):
        return get_current_tenant(self.request)


# =============================================================================
# Subscription
# =============================================================================


class SubscriptionView(BillingAPIView):
    """
    GET /api/v1/billing/subscription/

    Returns the current subscription or 404 if there is none.
    """

    @extend_schema(
        operation_id="billing_subscription_retrieve",
        summary="Get current subscription",
        responses={200: SubscriptionSerializer, 404: ERROR_RESPONSES[404]},
        tags=["Billing - Subscription"],
    )
    def get(self, request):
        try:
            subscription = SubscriptionService.require_current_for_tenant(self.tenant)
        except BaseApplicationError as e:
            return error_response(e)
        return Response(SubscriptionSerializer(subscription).data)


class SubscriptionHistoryView(BillingAPIView):
    @extend_schema(
        operation_id="billing_subscription_history",
        summary="List subscription history",
        responses={200: SubscriptionSerializer(many=True)},
        tags=["Billing - Subscription"],
    )
    def get(self, request):
        subscriptions = SubscriptionService.get_history(self.tenant)
        return Response(SubscriptionSerializer(subscriptions, many=True).data)


class ChangePlanView(BillingAPIView):
    """
    POST /api/v1/billing/subscription/plan/

    Request body:
        {"plan_id": "<uuid>"}

    The new plan's price applies from the next charge.
    """

    @extend_schema(
        operation_id="billing_subscription_change_plan",
        summary="Change subscription plan",
        request=ChangePlanSerializer,
        responses={200: SubscriptionSerializer, **ERROR_RESPONSES},
        tags=["Billing - Subscription"],
    )
    def post(self, request):
        serializer = ChangePlanSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            subscription = SubscriptionService.require_current_for_tenant(self.tenant)
        except BaseApplicationError as e:
            return error_response(e)

        result = SubscriptionService.change_plan(subscription, serializer.validated_data["plan"])
        if not result:
            return result_error_response(result)
        return Response(SubscriptionSerializer(result.data).data)


class CancelSubscriptionView(BillingAPIView):
    """
    POST /api/v1/billing/subscription/cancel/

    Request body:
        {"at_period_end": true}   # Cancel at period end (default)
        {"at_period_end": false}  # Cancel immediately
    """

    @extend_schema(
        operation_id="billing_subscription_cancel",
        summary="Cancel subscription",
        request=CancelSubscriptionSerializer,
        responses={200: SubscriptionSerializer, **ERROR_RESPONSES},
        tags=["Billing - Subscription"],
    )
    def post(self, request):
        serializer = CancelSubscriptionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            subscription = SubscriptionService.require_current_for_tenant(self.tenant)
        except BaseApplicationError as e:
            return error_response(e)

        result = SubscriptionService.cancel(
            subscription,
            at_period_end=serializer.validated_data["at_period_end"],
        )
        if not result:
            return result_error_response(result)
        return Response(SubscriptionSerializer(result.data).data)


class ReactivateSubscriptionView(BillingAPIView):
    """
    POST /api/v1/billing/subscription/reactivate/

    Reactivates the tenant's latest subscription if its cancellation was
    deferred and the period has not ended.
    """

    @extend_schema(
        operation_id="billing_subscription_reactivate",
        summary="Reactivate subscription",
        request=None,
        responses={200: SubscriptionSerializer, **ERROR_RESPONSES},
        tags=["Billing - Subscription"],
    )
    def post(self, request):
        subscription = SubscriptionService.get_history(self.tenant).first()
        if subscription is None:
            return Response(
                {"error": "No subscription found.", "error_code": "NO_ACTIVE_SUBSCRIPTION"},
                status=status.HTTP_404_NOT_FOUND,
            )

        result = SubscriptionService.reactivate(subscription)
        if not result:
            return result_error_response(result)
        return Response(SubscriptionSerializer(result.data).data)


# =============================================================================
# Checkout
# =============================================================================


class CheckoutView(BillingAPIView):
    """
    POST /api/v1/billing/checkout/

    Request body:
        {"plan_id": "<uuid>", "billing_cycle": "monthly", "currency": "INR"}

    Returns the values Razorpay Checkout needs (key id, subscription id,
    amount in paise/cents).
    """

    @extend_schema(
        operation_id="billing_checkout_create",
        summary="Start checkout",
        request=CheckoutRequestSerializer,
        responses={
            201: CheckoutSessionSerializer,
            409: OpenApiResponse(response=ErrorResponseSerializer, description="Subscription exists"),
            502: OpenApiResponse(response=ErrorResponseSerializer, description="Gateway error"),
        },
        tags=["Billing - Checkout"],
    )
    def post(self, request):
        serializer = CheckoutRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = CheckoutService.initiate(
            self.tenant,
            data["plan"],
            billing_cycle=data["billing_cycle"],
            currency=data["currency"],
        )
        if not result:
            return result_error_response(result)
        return Response(result.data.to_dict(), status=status.HTTP_201_CREATED)


class CheckoutVerifyView(BillingAPIView):
    """
    POST /api/v1/billing/checkout/verify/

    Request body:
        {
            "razorpay_subscription_id": "sub_xxx",
            "razorpay_payment_id": "pay_xxx",
            "razorpay_signature": "..."
        }
    """

    @extend_schema(
        operation_id="billing_checkout_verify",
        summary="Verify checkout payment",
        request=CheckoutVerifySerializer,
        responses={
            200: SubscriptionSerializer,
            400: OpenApiResponse(response=ErrorResponseSerializer, description="Invalid signature"),
            404: OpenApiResponse(response=ErrorResponseSerializer, description="Subscription not found"),
        },
        tags=["Billing - Checkout"],
    )
    def post(self, request):
        serializer = CheckoutVerifySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = CheckoutService.verify(
            self.tenant,
            gateway_subscription_id=data["razorpay_subscription_id"],
            gateway_payment_id=data["razorpay_payment_id"],
            signature=data["razorpay_signature"],
        )
        if not result:
            return result_error_response(result)
        return Response(SubscriptionSerializer(result.data).data)


# =============================================================================
# Invoices
# =============================================================================


class InvoiceListView(BillingAPIView):
    @extend_schema(
        operation_id="billing_invoice_list",
        summary="List invoices",
        parameters=[
            OpenApiParameter("status", OpenApiTypes.STR, description="issued, paid or cancelled"),
            OpenApiParameter("from_date", OpenApiTypes.DATETIME, description="Created at or after"),
            OpenApiParameter("to_date", OpenApiTypes.DATETIME, description="Created at or before"),
            OpenApiParameter("page", OpenApiTypes.INT),
            OpenApiParameter("per_page", OpenApiTypes.INT, description="Page size, max 100"),
        ],
        responses={200: InvoiceSerializer(many=True)},
        tags=["Billing - Invoices"],
    )
    def get(self, request):
        invoices = InvoiceService.list_for_tenant(self.tenant, request.query_params)
        paginator = InvoicePagination()
        page = paginator.paginate_queryset(invoices, request, view=self)
        return paginator.get_paginated_response(InvoiceSerializer(page, many=True).data)


class InvoiceDetailView(BillingAPIView):
    @extend_schema(
        operation_id="billing_invoice_retrieve",
        summary="Get invoice",
        responses={200: InvoiceSerializer, 404: OpenApiResponse(response=ErrorResponseSerializer)},
        tags=["Billing - Invoices"],
    )
    def get(self, request, invoice_id):
        try:
            invoice = InvoiceService.get_for_tenant(self.tenant, invoice_id)
        except BaseApplicationError as e:
            return error_response(e)
        return Response(InvoiceSerializer(invoice).data)


# =============================================================================
# Payment Methods
# =============================================================================


class PaymentMethodListView(BillingAPIView):
    """
    GET  /api/v1/billing/payment-methods/ - Default first
    POST /api/v1/billing/payment-methods/ - Store a tokenized method
    """

    @extend_schema(
        operation_id="billing_payment_method_list",
        summary="List payment methods",
        responses={200: PaymentMethodSerializer(many=True)},
        tags=["Billing - Payment Methods"],
    )
    def get(self, request):
        methods = PaymentMethodService.list_for_tenant(self.tenant)
        return Response(PaymentMethodSerializer(methods, many=True).data)

    @extend_schema(
        operation_id="billing_payment_method_create",
        summary="Add payment method",
        request=AddPaymentMethodSerializer,
        responses={201: PaymentMethodSerializer, 403: ERROR_RESPONSES[403]},
        tags=["Billing - Payment Methods"],
    )
    def post(self, request):
        serializer = AddPaymentMethodSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        method = PaymentMethodService.add(self.tenant, serializer.to_params())
        return Response(PaymentMethodSerializer(method).data, status=status.HTTP_201_CREATED)


class PaymentMethodDetailView(BillingAPIView):
    @extend_schema(
        operation_id="billing_payment_method_delete",
        summary="Remove payment method",
        responses={204: None, 404: OpenApiResponse(response=ErrorResponseSerializer)},
        tags=["Billing - Payment Methods"],
    )
    def delete(self, request, method_id):
        try:
            method = PaymentMethodService.get_for_tenant(self.tenant, method_id)
        except BaseApplicationError as e:
            return error_response(e)
        PaymentMethodService.remove(method)
        return Response(status=status.HTTP_204_NO_CONTENT)


class PaymentMethodDefaultView(BillingAPIView):
    @extend_schema(
        operation_id="billing_payment_method_set_default",
        summary="Set default payment method",
        request=None,
        responses={200: PaymentMethodSerializer, 404: OpenApiResponse(response=ErrorResponseSerializer)},
        tags=["Billing - Payment Methods"],
    )
    def post(self, request, method_id):
        try:
            method = PaymentMethodService.get_for_tenant(self.tenant, method_id)
        except BaseApplicationError as e:
            return error_response(e)
        method = PaymentMethodService.set_default(method)
        return Response(PaymentMethodSerializer(method).data)


# =============================================================================
# Summary
# =============================================================================


class BillingSummaryView(BillingAPIView):
    @extend_schema(
        operation_id="billing_summary",
        summary="Get billing summary",
        responses={200: BillingSummarySerializer},
        tags=["Billing - Summary"],
    )
    def get(self, request):
        summary = BillingSummaryService.for_tenant(self.tenant)
        return Response(BillingSummarySerializer(summary).data)
