"""
Tests for CheckoutService initiation and verification.
"""

from decimal import Decimal

from django.db import DatabaseError

import pytest

from billing.exceptions import GatewayTimeoutError
from billing.models import Payment, Subscription
from billing.services import CheckoutService
from billing.state_machines import BillingCycle, Currency, PaymentStatus, SubscriptionStatus
from billing.tests.factories import PaymentFactory, PlanDefinitionFactory, SubscriptionFactory


# =============================================================================
# Initiate
# =============================================================================


class TestCheckoutInitiate:
    def test_creates_gateway_and_local_subscription(self, db, tenant, plan, fake_gateway, settings):
        settings.RAZORPAY_KEY_ID = "rzp_test_public"

        result = CheckoutService.initiate(tenant, plan, BillingCycle.MONTHLY)

        assert result.success is True
        session = result.data
        assert session.gateway_subscription_id == "sub_fake_001"
        assert session.gateway_key_id == "rzp_test_public"
        assert session.amount == Decimal("499.00")
        assert session.amount_in_minor_units == 49900

        subscription = session.subscription
        assert subscription.status == SubscriptionStatus.CREATED
        assert subscription.gateway_customer_id == "cust_fake_001"
        assert subscription.amount == Decimal("499.00")
        assert subscription.trial_end is None

        fake_gateway.create_customer.assert_called_once_with(tenant)
        kwargs = fake_gateway.create_subscription.call_args.kwargs
        assert kwargs["customer_id"] == "cust_fake_001"
        assert kwargs["plan_id"] == plan.gateway_plan_id_monthly
        assert kwargs["trial_days"] is None
        assert subscription.get_meta("gateway_plan_id") == plan.gateway_plan_id_monthly

    def test_yearly_usd_snapshot(self, db, tenant, plan, fake_gateway):
        result = CheckoutService.initiate(tenant, plan, BillingCycle.YEARLY, currency=Currency.USD)

        assert result.data.amount == Decimal("90.00")
        assert result.data.subscription.currency == Currency.USD
        assert fake_gateway.create_subscription.call_args.kwargs["plan_id"] == plan.gateway_plan_id_yearly

    def test_trial_plan_sets_trial_window(self, db, tenant, trial_plan, fake_gateway):
        result = CheckoutService.initiate(tenant, trial_plan, BillingCycle.MONTHLY)

        subscription = result.data.subscription
        assert subscription.trial_start is not None
        assert (subscription.trial_end - subscription.trial_start).days == 14
        assert fake_gateway.create_subscription.call_args.kwargs["trial_days"] == 14

    def test_to_dict(self, db, tenant, plan, fake_gateway):
        data = CheckoutService.initiate(tenant, plan, BillingCycle.MONTHLY).data.to_dict()

        assert data["gateway_subscription_id"] == "sub_fake_001"
        assert data["amount_in_minor_units"] == 49900
        assert data["currency"] == "INR"
        assert data["plan_name"] == "Pro"

    def test_existing_subscription_conflicts(self, db, active_subscription, plan, fake_gateway):
        result = CheckoutService.initiate(active_subscription.tenant, plan, BillingCycle.MONTHLY)

        assert result.success is False
        assert result.error_code == "SUBSCRIPTION_EXISTS"
        assert result.http_status == 409
        fake_gateway.create_customer.assert_not_called()

    def test_halted_subscription_does_not_block(self, db, tenant, plan, fake_gateway):
        SubscriptionFactory(tenant=tenant, plan=plan, status=SubscriptionStatus.HALTED)

        assert CheckoutService.initiate(tenant, plan, BillingCycle.MONTHLY).success is True

    def test_inactive_plan(self, db, tenant, fake_gateway):
        result = CheckoutService.initiate(tenant, PlanDefinitionFactory(is_active=False), BillingCycle.MONTHLY)

        assert result.error_code == "PLAN_NOT_AVAILABLE"

    def test_plan_without_gateway_id(self, db, tenant, fake_gateway):
        plan = PlanDefinitionFactory(gateway_plan_id_yearly="")

        result = CheckoutService.initiate(tenant, plan, BillingCycle.YEARLY)

        assert result.error_code == "PLAN_NOT_CONFIGURED"
        fake_gateway.create_customer.assert_not_called()

    def test_gateway_failure_writes_nothing(self, db, tenant, plan, fake_gateway):
        fake_gateway.create_subscription.side_effect = GatewayTimeoutError("Razorpay did not respond in time.")

        result = CheckoutService.initiate(tenant, plan, BillingCycle.MONTHLY)

        assert result.success is False
        assert result.error_code == "GATEWAY_TIMEOUT"
        assert result.http_status == 504
        assert not Subscription.objects.filter(tenant=tenant).exists()

    def test_local_write_failure_logs_orphan(self, db, tenant, plan, fake_gateway, mocker, caplog):
        mocker.patch.object(Subscription.objects, "create", side_effect=DatabaseError("disk full"))

        with pytest.raises(DatabaseError):
            CheckoutService.initiate(tenant, plan, BillingCycle.MONTHLY)

        orphan_logs = [r for r in caplog.records if "orphaned" in r.getMessage()]
        assert len(orphan_logs) == 1
        assert orphan_logs[0].gateway_subscription_id == "sub_fake_001"


# =============================================================================
# Verify
# =============================================================================


class TestCheckoutVerify:
    def test_activates_subscription_and_records_payment(self, db, tenant, created_subscription, fake_gateway):
        result = CheckoutService.verify(
            tenant,
            gateway_subscription_id=created_subscription.gateway_subscription_id,
            gateway_payment_id="pay_checkout_001",
            signature="sig",
        )

        assert result.success is True
        created_subscription.refresh_from_db()
        tenant.refresh_from_db()
        assert created_subscription.status == SubscriptionStatus.ACTIVE
        assert created_subscription.current_period_start is not None
        assert tenant.plan_id == created_subscription.plan_id

        payment = Payment.objects.get(gateway_payment_id="pay_checkout_001")
        assert payment.status == PaymentStatus.CAPTURED
        assert payment.amount == created_subscription.amount
        assert payment.subscription_id == created_subscription.id
        assert payment.method == "unknown"

    def test_bad_signature_changes_nothing(self, db, tenant, created_subscription, fake_gateway):
        fake_gateway.verify_payment_signature.return_value = False

        result = CheckoutService.verify(
            tenant,
            gateway_subscription_id=created_subscription.gateway_subscription_id,
            gateway_payment_id="pay_checkout_002",
            signature="forged",
        )

        assert result.success is False
        assert result.error_code == "INVALID_SIGNATURE"
        assert result.http_status == 400
        created_subscription.refresh_from_db()
        assert created_subscription.status == SubscriptionStatus.CREATED
        assert not Payment.objects.exists()

    def test_unknown_subscription(self, db, tenant, fake_gateway):
        result = CheckoutService.verify(tenant, "sub_unknown", "pay_x", "sig")

        assert result.error_code == "SUBSCRIPTION_NOT_FOUND"
        assert result.http_status == 404

    def test_other_tenants_subscription_not_found(self, db, tenant, fake_gateway):
        foreign = SubscriptionFactory(status=SubscriptionStatus.CREATED)

        result = CheckoutService.verify(tenant, foreign.gateway_subscription_id, "pay_x", "sig")

        assert result.error_code == "SUBSCRIPTION_NOT_FOUND"

    def test_webhook_payment_is_kept(self, db, tenant, created_subscription, fake_gateway):
        """A charge webhook that arrived first keeps its payment attributes."""
        PaymentFactory(
            subscription=created_subscription,
            tenant=tenant,
            gateway_payment_id="pay_race_001",
            status=PaymentStatus.CAPTURED,
            method="upi",
            amount=Decimal("499.00"),
        )

        result = CheckoutService.verify(tenant, created_subscription.gateway_subscription_id, "pay_race_001", "sig")

        assert result.success is True
        payment = Payment.objects.get(gateway_payment_id="pay_race_001")
        assert payment.method == "upi"

    def test_already_active_keeps_period(self, db, tenant, active_subscription, fake_gateway):
        period_start = active_subscription.current_period_start

        result = CheckoutService.verify(tenant, active_subscription.gateway_subscription_id, "pay_again", "sig")

        assert result.success is True
        active_subscription.refresh_from_db()
        assert active_subscription.current_period_start == period_start

    def test_ended_subscription_rejected(self, db, tenant, ended_subscription, fake_gateway):
        result = CheckoutService.verify(tenant, ended_subscription.gateway_subscription_id, "pay_late", "sig")

        assert result.success is False
        assert result.error_code == "INVALID_STATE_TRANSITION"
        assert not Payment.objects.filter(gateway_payment_id="pay_late").exists()
