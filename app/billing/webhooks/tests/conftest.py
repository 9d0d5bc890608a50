"""
Pytest fixtures for webhook tests.

Provides Razorpay-shaped webhook bodies, subscriptions in the states the
handlers react to, and a reconciler wired to an in-memory idempotency
store and a mock signature verifier.
"""

import json
from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from django.utils import timezone

from billing.adapters import PaymentGateway
from billing.state_machines import SubscriptionStatus
from billing.tests.factories import PlanDefinitionFactory, SubscriptionFactory, TenantFactory
from billing.webhooks.events import WebhookEvent
from billing.webhooks.idempotency import InMemoryIdempotencyStore
from billing.webhooks.reconciler import WebhookReconciler


# =============================================================================
# Payload Builders
# =============================================================================


def build_body(
    event_type: str,
    subscription_id: str | None = None,
    payment: dict | None = None,
    current_start: int | None = None,
    current_end: int | None = None,
    created_at: int = 1718000000,
) -> dict:
    """Build a webhook body the way Razorpay nests entities under payload."""
    payload = {}
    if subscription_id is not None:
        subscription = {"id": subscription_id, "entity": "subscription"}
        if current_start is not None:
            subscription["current_start"] = current_start
        if current_end is not None:
            subscription["current_end"] = current_end
        payload["subscription"] = {"entity": subscription}
    if payment is not None:
        payload["payment"] = {"entity": {"entity": "payment", **payment}}
    return {
        "entity": "event",
        "account_id": "acc_test_001",
        "event": event_type,
        "contains": list(payload),
        "payload": payload,
        "created_at": created_at,
    }


def encode(body: dict) -> bytes:
    return json.dumps(body, separators=(",", ":")).encode()


def make_event(body: dict) -> WebhookEvent:
    return WebhookEvent.from_body(encode(body))


def charge_payment(payment_id: str = "pay_charge_001", amount: int = 49900, **extra) -> dict:
    """Payment entity of a successful subscription charge (amounts in paise)."""
    return {
        "id": payment_id,
        "amount": amount,
        "currency": "INR",
        "status": "captured",
        "method": "upi",
        "fee": 1178,
        "tax": 212,
        **extra,
    }


def period_timestamps(days: int = 30) -> tuple[int, int]:
    start = timezone.now().replace(microsecond=0)
    return int(start.timestamp()), int((start + timedelta(days=days)).timestamp())


# =============================================================================
# Model Fixtures
# =============================================================================


@pytest.fixture
def tenant(db):
    return TenantFactory()


@pytest.fixture
def plan(db):
    return PlanDefinitionFactory(code="pro", name="Pro")


@pytest.fixture
def created_subscription(db, tenant, plan):
    return SubscriptionFactory(
        tenant=tenant,
        plan=plan,
        status=SubscriptionStatus.CREATED,
        current_period_start=None,
        current_period_end=None,
    )


@pytest.fixture
def active_subscription(db, tenant, plan):
    return SubscriptionFactory(tenant=tenant, plan=plan)


@pytest.fixture
def halted_subscription(db, tenant, plan):
    return SubscriptionFactory(tenant=tenant, plan=plan, status=SubscriptionStatus.HALTED)


@pytest.fixture
def ended_subscription(db, tenant, plan):
    now = timezone.now()
    return SubscriptionFactory(
        tenant=tenant,
        plan=plan,
        status=SubscriptionStatus.CANCELLED,
        cancelled_at=now,
        ended_at=now,
    )


# =============================================================================
# Reconciler Fixtures
# =============================================================================


@pytest.fixture
def idempotency_store():
    return InMemoryIdempotencyStore()


@pytest.fixture
def verifier():
    """Signature verifier that accepts every delivery."""
    gateway = MagicMock(spec=PaymentGateway)
    gateway.verify_webhook_signature.return_value = True
    return gateway


@pytest.fixture
def reconciler(verifier, idempotency_store):
    return WebhookReconciler(gateway=verifier, store=idempotency_store, ttl=3600)
