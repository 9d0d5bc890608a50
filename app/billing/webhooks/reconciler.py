"""
Webhook reconciler: applies Razorpay deliveries to local billing state.

Processing order for one delivery:
1. Verify the HMAC signature of the raw body (InvalidSignatureError on failure)
2. Claim the idempotency key for hash(raw body) atomically; a delivery
   whose key is already claimed (applied, or in flight in a parallel
   request) short-circuits as a duplicate
3. Parse the body into a WebhookEvent
4. Dispatch to the event's handler inside one transaction
5. Refresh the marker TTL and acknowledge

Failure policy:
- DatabaseError: the transaction rolls back, the claim is released and the
  exception propagates so the endpoint answers 503 and the gateway
  redelivers.
- Any other handler exception: logged with event context, the transaction
  rolls back, the delivery is marked and acknowledged. Redelivering a
  permanently broken event would fail the same way, so these surface
  through error logs and alerts instead of gateway retries.

Usage:
    from billing.webhooks.reconciler import WebhookReconciler

    result = WebhookReconciler().process(request.body, signature)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from django.db import DatabaseError, transaction

from billing.adapters import RazorpayAdapter
from billing.constants import GATEWAY_DEFAULTS, billing_setting
from billing.exceptions import InvalidSignatureError, InvalidStateTransitionError
from billing.webhooks.events import WebhookEvent
from billing.webhooks.handlers import dispatch_webhook
from billing.webhooks.idempotency import CacheIdempotencyStore, webhook_idempotency_key

if TYPE_CHECKING:
    from billing.adapters import PaymentGateway
    from billing.webhooks.idempotency import IdempotencyStore


logger = logging.getLogger(__name__)


class WebhookOutcome:
    """How a delivery was disposed of."""

    APPLIED = "applied"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"
    FAILED = "failed"


@dataclass
class ReconcileResult:
    """
    Attributes:
        outcome: One of WebhookOutcome
        event_type: Event name as sent, empty if the body did not parse
        idempotency_key: Marker key for the delivery
    """

    outcome: str
    event_type: str = ""
    idempotency_key: str = ""


class WebhookReconciler:
    """
    Verify, de-duplicate and apply webhook deliveries.

    Args:
        gateway: Signature verifier (default RazorpayAdapter)
        store: Idempotency marker store (default CacheIdempotencyStore)
        ttl: Marker lifetime in seconds (default BILLING_WEBHOOK_IDEMPOTENCY_TTL)
    """

    def __init__(
        self,
        gateway: PaymentGateway | None = None,
        store: IdempotencyStore | None = None,
        ttl: int | None = None,
    ):
        self.gateway = gateway or RazorpayAdapter
        self.store = store if store is not None else CacheIdempotencyStore()
        self.ttl = ttl or billing_setting(
            "BILLING_WEBHOOK_IDEMPOTENCY_TTL",
            GATEWAY_DEFAULTS.WEBHOOK_IDEMPOTENCY_TTL_SECONDS,
        )

    def process(self, raw_body: bytes, signature: str) -> ReconcileResult:
        """
        Process one delivery.

        Raises:
            InvalidSignatureError: Signature missing or wrong; nothing is marked
            DatabaseError: Persistence failed; the claim is released
        """
        if not self.gateway.verify_webhook_signature(raw_body, signature):
            logger.warning("Webhook signature verification failed")
            raise InvalidSignatureError("Invalid webhook signature.")

        key = webhook_idempotency_key(raw_body)
        if not self.store.claim(key, ttl=self.ttl):
            logger.debug("Duplicate webhook delivery ignored", extra={"idempotency_key": key})
            return ReconcileResult(outcome=WebhookOutcome.DUPLICATE, idempotency_key=key)

        try:
            event = WebhookEvent.from_body(raw_body)
        except ValueError:
            logger.error("Webhook body could not be parsed", exc_info=True, extra={"idempotency_key": key})
            self.store.mark_processed(key, ttl=self.ttl)
            return ReconcileResult(outcome=WebhookOutcome.FAILED, idempotency_key=key)

        try:
            outcome = self._apply(event)
        except DatabaseError:
            self.store.release(key)
            raise
        self.store.mark_processed(key, ttl=self.ttl)
        return ReconcileResult(outcome=outcome, event_type=event.raw_type, idempotency_key=key)

    def _apply(self, event: WebhookEvent) -> str:
        try:
            with transaction.atomic():
                dispatch_webhook(event)
        except DatabaseError:
            logger.exception("Database error while applying webhook", extra=event.log_context)
            raise
        except InvalidStateTransitionError as exc:
            logger.warning(
                f"Ignored illegal transition from webhook: {exc.message}",
                extra={**event.log_context, "details": exc.details},
            )
            return WebhookOutcome.IGNORED
        except Exception:
            logger.exception("Webhook handler failed; acknowledging", extra=event.log_context)
            return WebhookOutcome.FAILED
        return WebhookOutcome.APPLIED
