"""
Razorpay webhook event types and payload access.

Event names are parsed into the closed WebhookEventType enum. Names we do
not handle map to WebhookEventType.UNKNOWN instead of raising, so new
gateway event types are acknowledged without code changes.

Usage:
    from billing.webhooks.events import WebhookEvent, WebhookEventType

    event = WebhookEvent.from_body(raw_body)
    if event.event_type is WebhookEventType.SUBSCRIPTION_CHARGED:
        entity = event.subscription_entity
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone as dt_timezone
from typing import Any

from django.db import models


class WebhookEventType(models.TextChoices):
    """Razorpay events billing reacts to, plus UNKNOWN for everything else."""

    SUBSCRIPTION_AUTHENTICATED = "subscription.authenticated", "Subscription authenticated"
    SUBSCRIPTION_ACTIVATED = "subscription.activated", "Subscription activated"
    SUBSCRIPTION_CHARGED = "subscription.charged", "Subscription charged"
    SUBSCRIPTION_CANCELLED = "subscription.cancelled", "Subscription cancelled"
    SUBSCRIPTION_HALTED = "subscription.halted", "Subscription halted"
    SUBSCRIPTION_COMPLETED = "subscription.completed", "Subscription completed"
    SUBSCRIPTION_RESUMED = "subscription.resumed", "Subscription resumed"
    SUBSCRIPTION_PENDING = "subscription.pending", "Subscription pending"
    PAYMENT_CAPTURED = "payment.captured", "Payment captured"
    PAYMENT_FAILED = "payment.failed", "Payment failed"
    UNKNOWN = "unknown", "Unknown"

    @classmethod
    def parse(cls, value: str | None) -> WebhookEventType:
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


def timestamp_to_datetime(value: Any) -> datetime | None:
    """Unix seconds from a gateway payload to an aware UTC datetime."""
    if value in (None, "", 0):
        return None
    return datetime.fromtimestamp(int(value), tz=dt_timezone.utc)


@dataclass(frozen=True)
class WebhookEvent:
    """
    A parsed webhook delivery.

    Attributes:
        event_type: Parsed event kind (UNKNOWN for unhandled names)
        raw_type: Event name exactly as sent
        payload: The "payload" object of the body
        account_id: Razorpay account the event belongs to
        created_at: Event creation time, if sent
    """

    event_type: WebhookEventType
    raw_type: str
    payload: dict[str, Any] = field(default_factory=dict)
    account_id: str = ""
    created_at: datetime | None = None

    @classmethod
    def from_body(cls, raw_body: bytes | str) -> WebhookEvent:
        """
        Parse a raw webhook body.

        Raises:
            ValueError: Body is not a JSON object, or its payload or
                created_at has the wrong shape
        """
        body = json.loads(raw_body)
        if not isinstance(body, dict):
            raise ValueError("Webhook body is not a JSON object")
        payload = body.get("payload") or {}
        if not isinstance(payload, dict):
            raise ValueError("Webhook payload is not a JSON object")
        try:
            created_at = timestamp_to_datetime(body.get("created_at"))
        except (TypeError, OverflowError, OSError) as e:
            raise ValueError(f"Invalid created_at: {body.get('created_at')!r}") from e
        raw_type = str(body.get("event") or "")
        return cls(
            event_type=WebhookEventType.parse(raw_type),
            raw_type=raw_type,
            payload=payload,
            account_id=str(body.get("account_id") or ""),
            created_at=created_at,
        )

    def entity(self, name: str) -> dict[str, Any]:
        """payload.<name>.entity, or {} when absent or not an object."""
        wrapper = self.payload.get(name)
        if not isinstance(wrapper, dict):
            return {}
        entity = wrapper.get("entity")
        return entity if isinstance(entity, dict) else {}

    @property
    def subscription_entity(self) -> dict[str, Any]:
        return self.entity("subscription")

    @property
    def payment_entity(self) -> dict[str, Any]:
        return self.entity("payment")

    @property
    def log_context(self) -> dict[str, Any]:
        return {
            "event_type": self.raw_type,
            "gateway_subscription_id": str(self.subscription_entity.get("id") or ""),
            "gateway_payment_id": str(self.payment_entity.get("id") or ""),
        }
