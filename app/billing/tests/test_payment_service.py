"""
Tests for PaymentService create-if-absent and status transitions.
"""

from decimal import Decimal

import pytest

from billing.exceptions import InvalidStateTransitionError
from billing.models import Payment
from billing.services import PaymentService
from billing.state_machines import PaymentStatus
from billing.tests.factories import PaymentFactory


class TestCreateIfAbsent:
    def test_creates_new_payment(self, db, active_subscription):
        payment, created = PaymentService.create_if_absent(
            "pay_new_001",
            tenant=active_subscription.tenant,
            subscription=active_subscription,
            amount=Decimal("499.00"),
            status=PaymentStatus.CAPTURED,
        )

        assert created is True
        assert payment.gateway_payment_id == "pay_new_001"
        assert payment.status == PaymentStatus.CAPTURED
        assert payment.captured_at is not None

    def test_first_writer_wins(self, db, active_subscription):
        """A second writer gets the existing row back untouched."""
        first, _ = PaymentService.create_if_absent(
            "pay_dup_001",
            tenant=active_subscription.tenant,
            subscription=active_subscription,
            amount=Decimal("499.00"),
            method="upi",
            status=PaymentStatus.CAPTURED,
        )

        second, created = PaymentService.create_if_absent(
            "pay_dup_001",
            tenant=active_subscription.tenant,
            subscription=active_subscription,
            amount=Decimal("999.00"),
            method="card",
            status=PaymentStatus.CREATED,
        )

        assert created is False
        assert second.pk == first.pk
        assert second.amount == Decimal("499.00")
        assert second.method == "upi"
        assert Payment.objects.filter(gateway_payment_id="pay_dup_001").count() == 1

    def test_non_captured_payment_has_no_captured_at(self, db, active_subscription):
        payment, _ = PaymentService.create_if_absent(
            "pay_created_001",
            tenant=active_subscription.tenant,
            amount=Decimal("499.00"),
            status=PaymentStatus.CREATED,
        )

        assert payment.captured_at is None


class TestFindByGatewayId:
    def test_found(self, db):
        payment = PaymentFactory(gateway_payment_id="pay_lookup_001")

        assert PaymentService.find_by_gateway_id("pay_lookup_001") == payment

    def test_missing(self, db):
        assert PaymentService.find_by_gateway_id("pay_missing") is None


class TestPaymentServiceTransitions:
    def test_mark_captured_persists_fee(self, db):
        payment = PaymentFactory(status=PaymentStatus.CREATED)

        PaymentService.mark_captured(payment, fee=Decimal("11.78"), tax_on_fee=Decimal("2.12"))
        payment.refresh_from_db()

        assert payment.status == PaymentStatus.CAPTURED
        assert payment.fee == Decimal("11.78")
        assert payment.tax_on_fee == Decimal("2.12")

    def test_mark_failed_persists_error(self, db):
        payment = PaymentFactory(status=PaymentStatus.CREATED)

        PaymentService.mark_failed(payment, "BAD_REQUEST_ERROR", "Card declined")
        payment.refresh_from_db()

        assert payment.status == PaymentStatus.FAILED
        assert payment.error_description == "Card declined"

    def test_mark_refunded_partial(self, db):
        payment = PaymentFactory(status=PaymentStatus.CAPTURED)

        PaymentService.mark_refunded(payment, amount=Decimal("100.00"))
        payment.refresh_from_db()

        assert payment.status == PaymentStatus.REFUNDED
        assert payment.refund_amount == Decimal("100.00")

    def test_illegal_transition_raises_domain_error(self, db):
        payment = PaymentFactory(status=PaymentStatus.REFUNDED)

        with pytest.raises(InvalidStateTransitionError) as exc_info:
            PaymentService.mark_failed(payment, "X", "Y")

        assert exc_info.value.details["current_state"] == PaymentStatus.REFUNDED
        assert exc_info.value.details["transition"] == "fail"
        payment.refresh_from_db()
        assert payment.status == PaymentStatus.REFUNDED
