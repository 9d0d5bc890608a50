"""
Payment model: one row per settlement attempt reported by the gateway.

Payments are keyed by gateway_payment_id. Checkout verification and the
charge webhooks can both observe the same payment, so rows are only ever
created through PaymentService.create_if_absent() (first writer wins).
Later events move the status; they never rewrite amount or currency.

Usage:
    from billing.models import Payment

    payment.mark_captured(fee=Decimal("11.78"), tax_on_fee=Decimal("2.12"))
    payment.save()

State Flow:
    CREATED / AUTHORIZED -> CAPTURED -> REFUNDED
    CREATED / AUTHORIZED -> FAILED -> CAPTURED (gateway retry succeeded)
"""

from __future__ import annotations

from decimal import Decimal

from django.db import models
from django.utils import timezone
from django_fsm import FSMField, transition

from core.model_mixins import MetadataMixin, UUIDPrimaryKeyMixin
from core.models import BaseModel

from billing.money import ZERO, to_money
from billing.state_machines import Currency, PaymentStatus


class Payment(UUIDPrimaryKeyMixin, MetadataMixin, BaseModel):
    """
    A charge attempt (successful or not) mirrored from Razorpay.

    Fields:
        tenant: Tenant that was charged
        subscription: Subscription the charge belongs to, if any
        invoice: Invoice this payment settled, if any
        gateway_payment_id: Razorpay payment id (pay_xxx), unique
        gateway_order_id: Razorpay order id (order_xxx), if any
        status: Current FSM state
        amount / currency: What was charged, never recomputed
        method: card, upi, netbanking, ... as reported by the gateway
        fee / tax_on_fee: Gateway fee and GST on it
        error_code / error_description: Failure details
        captured_at / refunded_at / refund_amount: Settlement timestamps
    """

    tenant = models.ForeignKey(
        "tenants.Tenant",
        on_delete=models.PROTECT,
        related_name="payments",
    )
    subscription = models.ForeignKey(
        "billing.Subscription",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="payments",
    )
    invoice = models.ForeignKey(
        "billing.Invoice",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="payments",
    )

    gateway_payment_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Razorpay payment id (pay_xxx)",
    )
    gateway_order_id = models.CharField(max_length=255, blank=True, default="")

    status = FSMField(
        default=PaymentStatus.CREATED,
        choices=PaymentStatus.choices,
        db_index=True,
    )

    amount = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=3, choices=Currency.choices, default=Currency.INR)
    method = models.CharField(max_length=32, blank=True, default="")
    fee = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    tax_on_fee = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)

    error_code = models.CharField(max_length=100, blank=True, default="")
    error_description = models.TextField(blank=True, default="")

    captured_at = models.DateTimeField(null=True, blank=True)
    refunded_at = models.DateTimeField(null=True, blank=True)
    refund_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Payment"
        verbose_name_plural = "Payments"
        indexes = [
            models.Index(fields=["tenant", "status"], name="payment_tenant_status_idx"),
            models.Index(fields=["subscription", "created_at"], name="payment_sub_created_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount__gte=0),
                name="payment_amount_non_negative",
            ),
        ]

    def __str__(self) -> str:
        return f"Payment({self.gateway_payment_id}, {self.status}, {self.amount} {self.currency})"

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=[
            PaymentStatus.CREATED,
            PaymentStatus.AUTHORIZED,
            PaymentStatus.FAILED,
            PaymentStatus.CAPTURED,
        ],
        target=PaymentStatus.CAPTURED,
    )
    def mark_captured(self, fee: Decimal | None = None, tax_on_fee: Decimal | None = None):
        """
        Record a successful capture.

        A repeated capture only refreshes fee figures; captured_at keeps the
        first capture time.
        """
        if fee is not None:
            self.fee = to_money(fee)
        if tax_on_fee is not None:
            self.tax_on_fee = to_money(tax_on_fee)
        if self.captured_at is None:
            self.captured_at = timezone.now()
        self.error_code = ""
        self.error_description = ""

    @transition(
        field=status,
        source=[PaymentStatus.CREATED, PaymentStatus.AUTHORIZED, PaymentStatus.FAILED],
        target=PaymentStatus.FAILED,
    )
    def mark_failed(self, error_code: str = "", error_description: str = ""):
        self.error_code = error_code
        self.error_description = error_description

    @transition(
        field=status,
        source=[PaymentStatus.CAPTURED, PaymentStatus.REFUNDED],
        target=PaymentStatus.REFUNDED,
    )
    def mark_refunded(self, amount: Decimal | None = None):
        """Record a refund. Without an amount the full payment is refunded."""
        self.refund_amount = to_money(amount) if amount is not None else self.amount
        self.refunded_at = timezone.now()

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def net_amount(self) -> Decimal:
        """Amount settled to us after the gateway fee and its tax."""
        return to_money(self.amount - self.fee - self.tax_on_fee)

    @property
    def is_captured(self) -> bool:
        return self.status == PaymentStatus.CAPTURED
