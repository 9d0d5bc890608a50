"""
Webhook event handlers for Razorpay events.

This module provides a handler registry keyed by WebhookEventType and one
handler per event. Handlers run inside the transaction opened by
WebhookReconciler, lock the rows they touch with select_for_update() and
return a ServiceResult.

A local record that cannot be found is not an error: the handler logs a
warning and returns success. Illegal transitions raise
InvalidStateTransitionError, which the reconciler logs and acknowledges
after rolling back the event.

Usage:
    from billing.webhooks.handlers import dispatch_webhook, register_handler

    @register_handler(WebhookEventType.SUBSCRIPTION_HALTED)
    def handle_subscription_halted(event: WebhookEvent) -> ServiceResult:
        ...

    result = dispatch_webhook(event)
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

from django.utils import timezone

from core.services import ServiceResult

from billing.constants import GATEWAY_DEFAULTS
from billing.models import Subscription
from billing.money import from_minor_units
from billing.services import InvoiceService, PaymentService
from billing.state_machines import PaymentStatus
from billing.webhooks.events import WebhookEvent, WebhookEventType, timestamp_to_datetime

if TYPE_CHECKING:
    from datetime import datetime
    from typing import Any

    from billing.models import Payment


logger = logging.getLogger(__name__)

# A charge never pulls a refunded payment back to captured
_CAPTURABLE_STATUSES = (PaymentStatus.CREATED, PaymentStatus.AUTHORIZED, PaymentStatus.FAILED)


# =============================================================================
# Handler Registry
# =============================================================================


# Maps event types to handler functions
WEBHOOK_HANDLERS: dict[WebhookEventType, Callable[[WebhookEvent], ServiceResult]] = {}


def register_handler(event_type: WebhookEventType) -> Callable:
    """
    Decorator to register a webhook event handler.

    Args:
        event_type: The event kind the handler applies

    Returns:
        Decorator function that registers the handler
    """

    def decorator(func: Callable[[WebhookEvent], ServiceResult]) -> Callable:
        WEBHOOK_HANDLERS[event_type] = func
        logger.debug(f"Registered webhook handler for {event_type.value}")
        return func

    return decorator


def dispatch_webhook(event: WebhookEvent) -> ServiceResult:
    """
    Dispatch a parsed event to its handler.

    Every WebhookEventType has a handler, UNKNOWN included.
    """
    handler = WEBHOOK_HANDLERS[event.event_type]
    logger.info(f"Dispatching {event.raw_type or 'event'} to handler", extra=event.log_context)
    return handler(event)


# =============================================================================
# Lookups & Payload Helpers
# =============================================================================


def _locate_subscription(event: WebhookEvent) -> Subscription | None:
    gateway_subscription_id = event.subscription_entity.get("id")
    if not gateway_subscription_id:
        logger.warning("Webhook payload has no subscription id", extra=event.log_context)
        return None

    subscription = (
        Subscription.objects.select_for_update()
        .filter(gateway_subscription_id=gateway_subscription_id)
        .first()
    )
    if subscription is None:
        logger.warning("Subscription not found for webhook", extra=event.log_context)
    return subscription


def _period_bounds(entity: dict[str, Any]) -> tuple[datetime, datetime | None]:
    """current_start / current_end from the payload; start falls back to now."""
    start = timestamp_to_datetime(entity.get("current_start")) or timezone.now()
    end = timestamp_to_datetime(entity.get("current_end"))
    return start, end


def _payment_attributes(entity: dict[str, Any]) -> dict[str, Any]:
    return {
        "amount": from_minor_units(entity.get("amount")),
        "currency": (entity.get("currency") or GATEWAY_DEFAULTS.CURRENCY).upper(),
        "method": entity.get("method") or GATEWAY_DEFAULTS.PAYMENT_METHOD,
        "fee": from_minor_units(entity.get("fee")),
        "tax_on_fee": from_minor_units(entity.get("tax")),
        "gateway_order_id": entity.get("order_id") or "",
    }


def _acknowledge(subscription: Subscription, event: WebhookEvent) -> ServiceResult:
    logger.info(
        f"Applied {event.raw_type}",
        extra={**event.log_context, "subscription_id": str(subscription.id), "status": subscription.status},
    )
    return ServiceResult.success(subscription)


# =============================================================================
# Subscription Handlers
# =============================================================================


@register_handler(WebhookEventType.SUBSCRIPTION_AUTHENTICATED)
def handle_subscription_authenticated(event: WebhookEvent) -> ServiceResult:
    """Mandate authorised by the customer: CREATED -> AUTHENTICATED."""
    subscription = _locate_subscription(event)
    if subscription is None:
        return ServiceResult.success(None)
    subscription.authenticate()
    return _acknowledge(subscription, event)


@register_handler(WebhookEventType.SUBSCRIPTION_ACTIVATED)
def handle_subscription_activated(event: WebhookEvent) -> ServiceResult:
    """Subscription -> ACTIVE with period bounds from the payload."""
    subscription = _locate_subscription(event)
    if subscription is None:
        return ServiceResult.success(None)
    start, end = _period_bounds(event.subscription_entity)
    subscription.activate(period_start=start, period_end=end)
    return _acknowledge(subscription, event)


@register_handler(WebhookEventType.SUBSCRIPTION_CHARGED)
def handle_subscription_charged(event: WebhookEvent) -> ServiceResult:
    """
    A billing cycle was charged.

    - Subscription -> ACTIVE with the new period bounds, unless it is
      terminal: the status stays and only the payment side is recorded
    - Payment created if its gateway id is new (first writer wins)
    - The payment settles exactly one invoice: the latest ISSUED invoice of
      the subscription, or a new one issued for this charge
    """
    subscription = _locate_subscription(event)
    if subscription is None:
        return ServiceResult.success(None)

    if subscription.is_terminal:
        logger.warning(
            "Charge received for an ended subscription; recording payment only",
            extra={**event.log_context, "subscription_id": str(subscription.id), "status": subscription.status},
        )
    else:
        start, end = _period_bounds(event.subscription_entity)
        subscription.activate(period_start=start, period_end=end)

    payment_entity = event.payment_entity
    gateway_payment_id = payment_entity.get("id")
    if not gateway_payment_id:
        logger.warning("subscription.charged without a payment entity", extra=event.log_context)
        return _acknowledge(subscription, event)

    payment, created = PaymentService.create_if_absent(
        gateway_payment_id,
        tenant_id=subscription.tenant_id,
        subscription=subscription,
        status=PaymentStatus.CAPTURED,
        **_payment_attributes(payment_entity),
    )
    if not created:
        payment = PaymentService.find_by_gateway_id(gateway_payment_id, for_update=True)
        if payment.status in _CAPTURABLE_STATUSES:
            attributes = _payment_attributes(payment_entity)
            PaymentService.mark_captured(payment, fee=attributes["fee"], tax_on_fee=attributes["tax_on_fee"])

    _settle_invoice(subscription, payment, event)
    return _acknowledge(subscription, event)


def _settle_invoice(subscription: Subscription, payment: Payment, event: WebhookEvent) -> None:
    if payment.invoice_id is not None:
        logger.debug(
            "Payment already settled an invoice",
            extra={**event.log_context, "invoice_id": str(payment.invoice_id)},
        )
        return

    invoice = InvoiceService.latest_issued_for_subscription(subscription, for_update=True)
    if invoice is None:
        invoice = InvoiceService.create(subscription)

    result = InvoiceService.mark_as_paid(invoice)
    if not result.success:
        logger.warning(
            f"Invoice not settled: {result.error}",
            extra={**event.log_context, "invoice_id": str(invoice.id)},
        )
        return

    payment.invoice = invoice
    payment.save(update_fields=["invoice", "updated_at"])


@register_handler(WebhookEventType.SUBSCRIPTION_CANCELLED)
def handle_subscription_cancelled(event: WebhookEvent) -> ServiceResult:
    """Subscription -> CANCELLED with ended_at = now. Terminal."""
    subscription = _locate_subscription(event)
    if subscription is None:
        return ServiceResult.success(None)
    subscription.mark_cancelled()
    return _acknowledge(subscription, event)


@register_handler(WebhookEventType.SUBSCRIPTION_HALTED)
def handle_subscription_halted(event: WebhookEvent) -> ServiceResult:
    subscription = _locate_subscription(event)
    if subscription is None:
        return ServiceResult.success(None)
    subscription.mark_halted()
    return _acknowledge(subscription, event)


@register_handler(WebhookEventType.SUBSCRIPTION_COMPLETED)
def handle_subscription_completed(event: WebhookEvent) -> ServiceResult:
    subscription = _locate_subscription(event)
    if subscription is None:
        return ServiceResult.success(None)
    subscription.mark_completed()
    return _acknowledge(subscription, event)


@register_handler(WebhookEventType.SUBSCRIPTION_RESUMED)
def handle_subscription_resumed(event: WebhookEvent) -> ServiceResult:
    subscription = _locate_subscription(event)
    if subscription is None:
        return ServiceResult.success(None)
    subscription.activate()
    return _acknowledge(subscription, event)


@register_handler(WebhookEventType.SUBSCRIPTION_PENDING)
def handle_subscription_pending(event: WebhookEvent) -> ServiceResult:
    subscription = _locate_subscription(event)
    if subscription is None:
        return ServiceResult.success(None)
    subscription.mark_pending()
    return _acknowledge(subscription, event)


# =============================================================================
# Payment Handlers
# =============================================================================


@register_handler(WebhookEventType.PAYMENT_CAPTURED)
def handle_payment_captured(event: WebhookEvent) -> ServiceResult:
    """Mark a known payment captured with its fee; unknown payments are ignored."""
    entity = event.payment_entity
    payment = PaymentService.find_by_gateway_id(entity.get("id") or "", for_update=True)
    if payment is None:
        logger.warning("Payment not found for webhook", extra=event.log_context)
        return ServiceResult.success(None)

    PaymentService.mark_captured(
        payment,
        fee=from_minor_units(entity.get("fee")),
        tax_on_fee=from_minor_units(entity.get("tax")),
    )
    return ServiceResult.success(payment)


@register_handler(WebhookEventType.PAYMENT_FAILED)
def handle_payment_failed(event: WebhookEvent) -> ServiceResult:
    """Mark a known payment failed with the gateway's error details."""
    entity = event.payment_entity
    payment = PaymentService.find_by_gateway_id(entity.get("id") or "", for_update=True)
    if payment is None:
        logger.warning("Payment not found for webhook", extra=event.log_context)
        return ServiceResult.success(None)

    if entity.get("error_reason"):
        payment.set_meta("error_reason", entity["error_reason"], save=False)
    PaymentService.mark_failed(
        payment,
        error_code=entity.get("error_code") or GATEWAY_DEFAULTS.FAILURE_CODE,
        error_description=entity.get("error_description") or GATEWAY_DEFAULTS.FAILURE_DESCRIPTION,
    )
    return ServiceResult.success(payment)


# =============================================================================
# Unknown Events
# =============================================================================


@register_handler(WebhookEventType.UNKNOWN)
def handle_unknown_event(event: WebhookEvent) -> ServiceResult:
    logger.info(f"Ignoring unhandled webhook event: {event.raw_type or '<missing>'}", extra=event.log_context)
    return ServiceResult.success(None)
