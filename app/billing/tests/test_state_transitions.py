"""
Tests for state machine transitions using django-fsm.

Covers the Subscription lifecycle methods (which translate django-fsm
errors into InvalidStateTransitionError), Payment and Invoice transitions.
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone
from django_fsm import TransitionNotAllowed

from core.exceptions import ValidationError

from billing.exceptions import InvalidStateTransitionError
from billing.state_machines import InvoiceStatus, PaymentStatus, SubscriptionStatus
from billing.tests.factories import InvoiceFactory, PaymentFactory, SubscriptionFactory


# =============================================================================
# Subscription Transitions
# =============================================================================


class TestSubscriptionTransitions:
    """Tests for Subscription lifecycle methods."""

    # -------------------------------------------------------------------------
    # Valid Transitions
    # -------------------------------------------------------------------------

    def test_created_to_authenticated(self, db):
        subscription = SubscriptionFactory(status=SubscriptionStatus.CREATED)

        subscription.authenticate()
        subscription.refresh_from_db()

        assert subscription.status == SubscriptionStatus.AUTHENTICATED

    def test_authenticated_to_active_with_period(self, db):
        subscription = SubscriptionFactory(
            status=SubscriptionStatus.AUTHENTICATED,
            current_period_start=None,
            current_period_end=None,
        )
        start = timezone.now()
        end = start + timedelta(days=30)

        subscription.activate(period_start=start, period_end=end)
        subscription.refresh_from_db()

        assert subscription.status == SubscriptionStatus.ACTIVE
        assert subscription.current_period_start == start
        assert subscription.current_period_end == end

    def test_activate_is_idempotent_and_refreshes_period(self, db):
        subscription = SubscriptionFactory(status=SubscriptionStatus.ACTIVE)
        new_end = timezone.now() + timedelta(days=60)

        subscription.activate(period_start=timezone.now(), period_end=new_end)

        assert subscription.status == SubscriptionStatus.ACTIVE
        assert subscription.current_period_end == new_end

    def test_activate_without_start_uses_now(self, db):
        subscription = SubscriptionFactory(status=SubscriptionStatus.CREATED, current_period_start=None)
        before = timezone.now()

        subscription.activate(period_end=timezone.now() + timedelta(days=30))

        assert subscription.current_period_start >= before

    def test_active_pending_active(self, db):
        subscription = SubscriptionFactory(status=SubscriptionStatus.ACTIVE)

        subscription.mark_pending()
        assert subscription.status == SubscriptionStatus.PENDING

        subscription.activate()
        assert subscription.status == SubscriptionStatus.ACTIVE

    def test_active_halted_active(self, db):
        subscription = SubscriptionFactory(status=SubscriptionStatus.ACTIVE)

        subscription.mark_halted()
        assert subscription.status == SubscriptionStatus.HALTED

        subscription.activate()
        assert subscription.status == SubscriptionStatus.ACTIVE

    def test_pending_to_halted(self, db):
        subscription = SubscriptionFactory(status=SubscriptionStatus.PENDING)

        subscription.mark_halted()

        assert subscription.status == SubscriptionStatus.HALTED

    def test_mark_cancelled_sets_ended_at(self, db):
        subscription = SubscriptionFactory(status=SubscriptionStatus.HALTED)

        subscription.mark_cancelled()
        subscription.refresh_from_db()

        assert subscription.status == SubscriptionStatus.CANCELLED
        assert subscription.ended_at is not None
        assert subscription.cancelled_at is not None
        assert subscription.is_terminal is True

    def test_mark_completed(self, db):
        subscription = SubscriptionFactory(status=SubscriptionStatus.ACTIVE)

        subscription.mark_completed()

        assert subscription.status == SubscriptionStatus.COMPLETED
        assert subscription.ended_at is not None

    def test_deferred_cancel_keeps_active(self, db):
        subscription = SubscriptionFactory(status=SubscriptionStatus.ACTIVE)

        subscription.cancel(at_period_end=True)
        subscription.refresh_from_db()

        assert subscription.status == SubscriptionStatus.ACTIVE
        assert subscription.cancel_at_period_end is True
        assert subscription.cancelled_at is not None
        assert subscription.ended_at is None
        assert subscription.will_cancel_at_period_end is True

    def test_immediate_cancel_ends(self, db):
        subscription = SubscriptionFactory(status=SubscriptionStatus.ACTIVE)

        subscription.cancel(at_period_end=False)
        subscription.refresh_from_db()

        assert subscription.status == SubscriptionStatus.CANCELLED
        assert subscription.cancel_at_period_end is False
        assert subscription.ended_at is not None

    def test_reactivate_deferred_cancellation(self, db):
        subscription = SubscriptionFactory(status=SubscriptionStatus.ACTIVE)
        subscription.cancel(at_period_end=True)

        subscription.reactivate()
        subscription.refresh_from_db()

        assert subscription.status == SubscriptionStatus.ACTIVE
        assert subscription.cancelled_at is None
        assert subscription.cancel_at_period_end is False

    def test_finalize_deferred_cancellation_after_period(self, db):
        now = timezone.now()
        subscription = SubscriptionFactory(
            cancel_at_period_end=True,
            cancelled_at=now - timedelta(days=10),
            current_period_start=now - timedelta(days=30),
            current_period_end=now - timedelta(minutes=1),
        )

        assert subscription.finalize_deferred_cancellation(now=now) is True
        assert subscription.status == SubscriptionStatus.CANCELLED
        assert subscription.ended_at is not None

    def test_finalize_before_period_end_is_noop(self, db):
        subscription = SubscriptionFactory(cancel_at_period_end=True, cancelled_at=timezone.now())

        assert subscription.finalize_deferred_cancellation() is False
        assert subscription.status == SubscriptionStatus.ACTIVE

    def test_change_plan_keeps_amount(self, db):
        subscription = SubscriptionFactory()
        new_plan = SubscriptionFactory().plan
        amount = subscription.amount

        subscription.change_plan(new_plan)
        subscription.refresh_from_db()

        assert subscription.plan_id == new_plan.id
        assert subscription.amount == amount

    # -------------------------------------------------------------------------
    # Invalid Transitions
    # -------------------------------------------------------------------------

    def test_cannot_authenticate_active(self, db):
        subscription = SubscriptionFactory(status=SubscriptionStatus.ACTIVE)

        with pytest.raises(InvalidStateTransitionError) as exc_info:
            subscription.authenticate()

        assert exc_info.value.details["current_state"] == SubscriptionStatus.ACTIVE
        assert exc_info.value.details["transition"] == "authenticate"

    def test_cannot_mark_created_pending(self, db):
        subscription = SubscriptionFactory(status=SubscriptionStatus.CREATED)

        with pytest.raises(InvalidStateTransitionError):
            subscription.mark_pending()

    def test_cannot_halt_created(self, db):
        subscription = SubscriptionFactory(status=SubscriptionStatus.CREATED)

        with pytest.raises(InvalidStateTransitionError):
            subscription.mark_halted()

    @pytest.mark.parametrize(
        "method",
        ["activate", "authenticate", "mark_pending", "mark_halted", "mark_cancelled", "mark_completed"],
    )
    def test_terminal_subscription_rejects_every_transition(self, db, method):
        subscription = SubscriptionFactory(
            status=SubscriptionStatus.CANCELLED,
            cancelled_at=timezone.now(),
            ended_at=timezone.now(),
        )

        with pytest.raises(InvalidStateTransitionError) as exc_info:
            getattr(subscription, method)()

        assert "ended" in exc_info.value.message
        subscription.refresh_from_db()
        assert subscription.status == SubscriptionStatus.CANCELLED

    def test_completed_rejects_activation(self, db):
        subscription = SubscriptionFactory(status=SubscriptionStatus.COMPLETED, ended_at=timezone.now())

        with pytest.raises(InvalidStateTransitionError):
            subscription.activate()

    def test_cannot_cancel_ended(self, db):
        subscription = SubscriptionFactory(status=SubscriptionStatus.COMPLETED, ended_at=timezone.now())

        with pytest.raises(InvalidStateTransitionError):
            subscription.cancel(at_period_end=True)

    def test_cannot_reactivate_not_cancelled(self, db):
        subscription = SubscriptionFactory(status=SubscriptionStatus.ACTIVE)

        with pytest.raises(InvalidStateTransitionError, match="not cancelled"):
            subscription.reactivate()

    def test_cannot_reactivate_immediately_cancelled(self, db):
        subscription = SubscriptionFactory(status=SubscriptionStatus.ACTIVE)
        subscription.cancel(at_period_end=False)

        with pytest.raises(InvalidStateTransitionError, match="ended"):
            subscription.reactivate()

    def test_cannot_reactivate_finalized_deferred_cancellation(self, db):
        now = timezone.now()
        subscription = SubscriptionFactory(
            cancel_at_period_end=True,
            cancelled_at=now - timedelta(days=5),
            current_period_start=now - timedelta(days=30),
            current_period_end=now - timedelta(days=1),
        )
        subscription.finalize_deferred_cancellation(now=now)

        with pytest.raises(InvalidStateTransitionError, match="ended"):
            subscription.reactivate()

    def test_cannot_change_plan_of_ended(self, db):
        subscription = SubscriptionFactory(status=SubscriptionStatus.COMPLETED, ended_at=timezone.now())
        new_plan = SubscriptionFactory().plan

        with pytest.raises(InvalidStateTransitionError):
            subscription.change_plan(new_plan)

    def test_period_end_before_start_rejected(self, db):
        subscription = SubscriptionFactory(status=SubscriptionStatus.AUTHENTICATED)
        start = timezone.now()

        with pytest.raises(ValidationError) as exc_info:
            subscription.activate(period_start=start, period_end=start - timedelta(days=1))

        assert exc_info.value.error_code == "INVALID_PERIOD"

    def test_invalid_state_transition_is_422(self):
        assert InvalidStateTransitionError("x").http_status == 422


# =============================================================================
# Payment Transitions
# =============================================================================


class TestPaymentTransitions:
    def test_created_to_captured(self, db):
        payment = PaymentFactory(status=PaymentStatus.CREATED)

        payment.mark_captured(fee=Decimal("11.78"), tax_on_fee=Decimal("2.12"))
        payment.save()

        assert payment.status == PaymentStatus.CAPTURED
        assert payment.captured_at is not None
        assert payment.fee == Decimal("11.78")

    def test_failed_to_captured_clears_error(self, db):
        payment = PaymentFactory(status=PaymentStatus.FAILED, error_code="BAD_CARD", error_description="Declined")

        payment.mark_captured()
        payment.save()

        assert payment.status == PaymentStatus.CAPTURED
        assert payment.error_code == ""
        assert payment.error_description == ""

    def test_repeated_capture_keeps_first_captured_at(self, db):
        payment = PaymentFactory(status=PaymentStatus.CREATED)
        payment.mark_captured()
        first = payment.captured_at

        payment.mark_captured(fee=Decimal("5.00"))

        assert payment.captured_at == first
        assert payment.fee == Decimal("5.00")

    def test_created_to_failed(self, db):
        payment = PaymentFactory(status=PaymentStatus.CREATED)

        payment.mark_failed(error_code="BAD_REQUEST_ERROR", error_description="Card declined")

        assert payment.status == PaymentStatus.FAILED
        assert payment.error_code == "BAD_REQUEST_ERROR"

    def test_captured_to_refunded(self, db):
        payment = PaymentFactory(status=PaymentStatus.CAPTURED)

        payment.mark_refunded()

        assert payment.status == PaymentStatus.REFUNDED
        assert payment.refund_amount == Decimal("499.00")
        assert payment.refunded_at is not None

    def test_cannot_fail_captured(self, db):
        payment = PaymentFactory(status=PaymentStatus.CAPTURED)

        with pytest.raises(TransitionNotAllowed):
            payment.mark_failed(error_code="X", error_description="Y")

    def test_cannot_capture_refunded(self, db):
        payment = PaymentFactory(status=PaymentStatus.REFUNDED)

        with pytest.raises(TransitionNotAllowed):
            payment.mark_captured()

    def test_cannot_refund_created(self, db):
        payment = PaymentFactory(status=PaymentStatus.CREATED)

        with pytest.raises(TransitionNotAllowed):
            payment.mark_refunded()


# =============================================================================
# Invoice Transitions
# =============================================================================


class TestInvoiceTransitions:
    def test_issued_to_paid(self, db):
        invoice = InvoiceFactory()

        invoice.mark_as_paid()
        invoice.save()

        assert invoice.status == InvoiceStatus.PAID
        assert invoice.paid_at is not None
        assert invoice.amount_paid == invoice.total
        assert invoice.amount_due == Decimal("0.00")

    def test_issued_to_cancelled(self, db):
        invoice = InvoiceFactory()

        invoice.mark_as_cancelled()

        assert invoice.status == InvoiceStatus.CANCELLED

    def test_cannot_pay_twice(self, db):
        invoice = InvoiceFactory(status=InvoiceStatus.PAID)

        with pytest.raises(TransitionNotAllowed):
            invoice.mark_as_paid()

    def test_cannot_pay_cancelled(self, db):
        invoice = InvoiceFactory(status=InvoiceStatus.CANCELLED)

        with pytest.raises(TransitionNotAllowed):
            invoice.mark_as_paid()
