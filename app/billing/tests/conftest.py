"""
Pytest fixtures for billing tests.

Fixtures provide a tenant with its owner, catalog plans, subscriptions in
various states and a fake payment gateway injected into the services.

Usage:
    def test_cancel(active_subscription, fake_gateway):
        result = SubscriptionService.cancel(active_subscription)
        assert result.success
        fake_gateway.cancel_subscription.assert_called_once()
"""

from datetime import timedelta
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from django.utils import timezone
from rest_framework.test import APIClient

from billing.adapters import CustomerResult, PaymentGateway, SubscriptionResult
from billing.services import CheckoutService, SubscriptionService
from billing.state_machines import SubscriptionStatus
from billing.tests.factories import (
    PlanDefinitionFactory,
    SubscriptionFactory,
    TenantFactory,
    TenantMembershipFactory,
    UserFactory,
)
from tenants.models import TenantRole


# =============================================================================
# Tenant and User Fixtures
# =============================================================================


@pytest.fixture
def owner(db):
    """User who owns the tenant."""
    return UserFactory()


@pytest.fixture
def tenant(db, owner):
    """Tenant in Maharashtra (same state as the seller)."""
    return TenantFactory(owner=owner)


@pytest.fixture
def member(db, tenant):
    """Plain member of the tenant (read-only billing access)."""
    membership = TenantMembershipFactory(tenant=tenant, role=TenantRole.MEMBER)
    return membership.user


# =============================================================================
# Plan Fixtures
# =============================================================================


@pytest.fixture
def plan(db):
    """Pro plan, 499 INR monthly / 4990 INR yearly, no trial."""
    return PlanDefinitionFactory(code="pro", name="Pro")


@pytest.fixture
def other_plan(db):
    """Business plan to switch to."""
    return PlanDefinitionFactory(
        code="business",
        name="Business",
        price_inr_monthly=Decimal("999.00"),
        price_inr_yearly=Decimal("9990.00"),
    )


@pytest.fixture
def trial_plan(db):
    return PlanDefinitionFactory(code="starter", name="Starter", trial_days=14)


# =============================================================================
# Subscription State Fixtures
# =============================================================================


@pytest.fixture
def created_subscription(db, tenant, plan):
    """Subscription just created by checkout."""
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
def deferred_cancelled_subscription(db, tenant, plan):
    """ACTIVE subscription cancelled at period end, period not over yet."""
    return SubscriptionFactory(
        tenant=tenant,
        plan=plan,
        cancel_at_period_end=True,
        cancelled_at=timezone.now(),
    )


@pytest.fixture
def expired_deferred_subscription(db, tenant, plan):
    """Deferred cancellation whose period ended yesterday."""
    now = timezone.now()
    return SubscriptionFactory(
        tenant=tenant,
        plan=plan,
        cancel_at_period_end=True,
        cancelled_at=now - timedelta(days=20),
        current_period_start=now - timedelta(days=31),
        current_period_end=now - timedelta(days=1),
    )


@pytest.fixture
def ended_subscription(db, tenant, plan):
    """Immediately cancelled subscription (terminal)."""
    now = timezone.now()
    return SubscriptionFactory(
        tenant=tenant,
        plan=plan,
        status=SubscriptionStatus.CANCELLED,
        cancelled_at=now,
        ended_at=now,
    )


# =============================================================================
# Gateway Fixtures
# =============================================================================


@pytest.fixture
def fake_gateway():
    """
    Mock gateway injected into CheckoutService and SubscriptionService.

    Signatures verify by default; flip the return values to test failures.
    """
    gateway = MagicMock(spec=PaymentGateway)
    gateway.create_customer.return_value = CustomerResult(id="cust_fake_001", email="owner@example.com")
    gateway.create_subscription.return_value = SubscriptionResult(
        id="sub_fake_001",
        status="created",
        plan_id="plan_monthly_fake",
    )
    gateway.cancel_subscription.return_value = SubscriptionResult(id="sub_fake_001", status="cancelled")
    gateway.verify_payment_signature.return_value = True
    gateway.verify_webhook_signature.return_value = True

    CheckoutService.set_gateway(gateway)
    SubscriptionService.set_gateway(gateway)
    yield gateway
    CheckoutService.set_gateway(None)
    SubscriptionService.set_gateway(None)


# =============================================================================
# API Client Fixtures
# =============================================================================


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def owner_client(owner, tenant):
    """API client authenticated as the tenant owner, scoped to the tenant."""
    client = APIClient()
    client.force_authenticate(user=owner)
    client.credentials(HTTP_X_TENANT_ID=str(tenant.id))
    return client


@pytest.fixture
def member_client(member, tenant):
    """API client authenticated as a plain member of the tenant."""
    client = APIClient()
    client.force_authenticate(user=member)
    client.credentials(HTTP_X_TENANT_ID=str(tenant.id))
    return client
