"""
Payment ledger operations.

Payments are written by two independent paths (checkout verification and
charge webhooks) that can observe the same gateway payment. Creation is
therefore create-if-absent keyed on gateway_payment_id: the first writer
decides the attributes, later writers only move the status.

Usage:
    from billing.services import PaymentService

    payment, created = PaymentService.create_if_absent(
        "pay_xxx",
        tenant=tenant,
        subscription=subscription,
        amount=Decimal("499.00"),
        status=PaymentStatus.CAPTURED,
    )
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Any

from django.utils import timezone
from django_fsm import TransitionNotAllowed

from core.services import BaseService

from billing.exceptions import InvalidStateTransitionError
from billing.models import Payment
from billing.state_machines import PaymentStatus

if TYPE_CHECKING:
    from collections.abc import Callable


class PaymentService(BaseService):
    """
    Create-if-absent and status transitions for Payment rows.

    Transition helpers save the row and raise InvalidStateTransitionError
    for moves django-fsm rejects (e.g. failing a refunded payment).
    """

    @classmethod
    def create_if_absent(cls, gateway_payment_id: str, **attrs: Any) -> tuple[Payment, bool]:
        """
        Return the payment for gateway_payment_id, creating it if needed.

        An existing row is returned unchanged. get_or_create() retries the
        lookup after an IntegrityError, so two concurrent writers end up
        with the same row.

        Returns:
            (payment, created)
        """
        if attrs.get("status") == PaymentStatus.CAPTURED and not attrs.get("captured_at"):
            attrs["captured_at"] = timezone.now()

        with cls.atomic():
            payment, created = Payment.objects.get_or_create(
                gateway_payment_id=gateway_payment_id,
                defaults=attrs,
            )

        logger = cls.get_logger()
        if created:
            logger.info(
                "Payment recorded",
                extra={
                    "payment_id": str(payment.id),
                    "gateway_payment_id": gateway_payment_id,
                    "status": payment.status,
                },
            )
        else:
            logger.debug(
                "Payment already recorded, keeping first write",
                extra={"payment_id": str(payment.id), "gateway_payment_id": gateway_payment_id},
            )
        return payment, created

    @classmethod
    def find_by_gateway_id(cls, gateway_payment_id: str, for_update: bool = False) -> Payment | None:
        queryset = Payment.objects.all()
        if for_update:
            queryset = queryset.select_for_update()
        return queryset.filter(gateway_payment_id=gateway_payment_id).first()

    @classmethod
    def mark_captured(
        cls,
        payment: Payment,
        fee: Decimal | None = None,
        tax_on_fee: Decimal | None = None,
    ) -> Payment:
        cls._transition(payment, lambda: payment.mark_captured(fee=fee, tax_on_fee=tax_on_fee), "capture")
        return payment

    @classmethod
    def mark_failed(cls, payment: Payment, error_code: str, error_description: str) -> Payment:
        cls._transition(
            payment,
            lambda: payment.mark_failed(error_code=error_code, error_description=error_description),
            "fail",
        )
        return payment

    @classmethod
    def mark_refunded(cls, payment: Payment, amount: Decimal | None = None) -> Payment:
        cls._transition(payment, lambda: payment.mark_refunded(amount=amount), "refund")
        return payment

    @classmethod
    def _transition(cls, payment: Payment, apply: Callable[[], None], name: str) -> None:
        previous = payment.status
        try:
            apply()
        except TransitionNotAllowed as exc:
            raise InvalidStateTransitionError(
                f"Cannot {name} a payment in '{previous}' state.",
                details={
                    "payment_id": str(payment.id),
                    "current_state": previous,
                    "transition": name,
                },
            ) from exc
        payment.save()
        cls.get_logger().info(
            f"Payment transition applied: {name}",
            extra={
                "payment_id": str(payment.id),
                "gateway_payment_id": payment.gateway_payment_id,
                "from_state": previous,
                "to_state": payment.status,
            },
        )
