"""
Invoice models and Indian fiscal-year numbering helpers.

Invoice numbers look like BIZ/2024-25/00042: prefix, fiscal year (April to
March) and a five digit sequence that restarts every fiscal year. Numbers
are allocated by InvoiceService.generate_invoice_number(), which locks the
InvoiceSequence row for the fiscal year; the unique constraint on
invoice_number backs it up.

Usage:
    from billing.models import Invoice
    from billing.models.invoice import fiscal_year_for, invoice_number_prefix

    fiscal_year_for(datetime(2025, 2, 10))   # 2024
    invoice_number_prefix("BIZ", 2024)       # "BIZ/2024-25/"

    gst = invoice.calculate_gst("Karnataka", "Maharashtra")
    gst["igst"]  # Decimal("180.00") on a subtotal of 1000
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from django.db import models
from django.utils import timezone
from django_fsm import FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from billing.constants import GST_CONFIG, INVOICE_CONFIG
from billing.money import ZERO, percentage_of, to_money
from billing.state_machines import Currency, InvoiceStatus

CURRENCY_SYMBOLS = {
    Currency.INR: "₹",
    Currency.USD: "$",
}


# =============================================================================
# Fiscal Year Helpers
# =============================================================================


def fiscal_year_for(moment: datetime) -> int:
    """Return the starting calendar year of the Indian fiscal year containing moment."""
    if moment.month < INVOICE_CONFIG.FISCAL_YEAR_START_MONTH:
        return moment.year - 1
    return moment.year


def fiscal_year_label(fiscal_year: int) -> str:
    """2024 -> "2024-25"."""
    return f"{fiscal_year}-{(fiscal_year + 1) % 100:02d}"


def invoice_number_prefix(prefix: str, fiscal_year: int) -> str:
    return f"{prefix}/{fiscal_year_label(fiscal_year)}/"


def format_invoice_number(prefix: str, fiscal_year: int, sequence: int) -> str:
    return f"{invoice_number_prefix(prefix, fiscal_year)}{sequence:0{INVOICE_CONFIG.SEQUENCE_DIGITS}d}"


def parse_invoice_sequence(invoice_number: str) -> int:
    """Return the trailing sequence of an invoice number, 0 if it has none."""
    tail = invoice_number.rsplit("/", 1)[-1]
    return int(tail) if tail.isdigit() else 0


# =============================================================================
# Models
# =============================================================================


class InvoiceSequence(BaseModel):
    """
    Last allocated invoice sequence per (prefix, fiscal year).

    Locked with select_for_update() while a number is being allocated, so
    concurrent invoice creation in the same fiscal year serialises here.
    """

    prefix = models.CharField(max_length=20)
    fiscal_year = models.PositiveIntegerField()
    last_number = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ["-fiscal_year"]
        verbose_name = "Invoice sequence"
        verbose_name_plural = "Invoice sequences"
        constraints = [
            models.UniqueConstraint(
                fields=["prefix", "fiscal_year"],
                name="invoice_sequence_unique_fiscal_year",
            ),
        ]

    def __str__(self) -> str:
        return f"{invoice_number_prefix(self.prefix, self.fiscal_year)}{self.last_number}"


class Invoice(UUIDPrimaryKeyMixin, BaseModel):
    """
    A GST invoice for one charged billing period.

    Monetary fields are set explicitly by whoever assembles the invoice
    (InvoiceService.create); nothing here recomputes subtotal or total from
    line items.

    State Flow:
        ISSUED -> PAID
        ISSUED -> CANCELLED (administrative)
    """

    tenant = models.ForeignKey(
        "tenants.Tenant",
        on_delete=models.PROTECT,
        related_name="invoices",
    )
    subscription = models.ForeignKey(
        "billing.Subscription",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="invoices",
    )

    invoice_number = models.CharField(
        max_length=50,
        unique=True,
        editable=False,
        help_text="PREFIX/FY-FY/NNNNN, immutable once assigned",
    )

    status = FSMField(
        default=InvoiceStatus.ISSUED,
        choices=InvoiceStatus.choices,
        db_index=True,
    )
    currency = models.CharField(max_length=3, choices=Currency.choices, default=Currency.INR)

    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    tax_amount = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    total = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    amount_paid = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    amount_due = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)

    gst_details = models.JSONField(null=True, blank=True)
    billing_address = models.JSONField(default=dict, blank=True)
    line_items = models.JSONField(default=list, blank=True)

    issued_at = models.DateTimeField(null=True, blank=True)
    due_at = models.DateTimeField(null=True, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Invoice"
        verbose_name_plural = "Invoices"
        indexes = [
            models.Index(fields=["tenant", "status"], name="invoice_tenant_status_idx"),
            models.Index(fields=["subscription", "status", "created_at"], name="invoice_sub_status_created_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(total__gte=0),
                name="invoice_total_non_negative",
            ),
        ]

    def __str__(self) -> str:
        return f"Invoice({self.invoice_number}, {self.status}, {self.total} {self.currency})"

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(field=status, source=InvoiceStatus.ISSUED, target=InvoiceStatus.PAID)
    def mark_as_paid(self):
        """
        Settle the invoice in full.

        Transition: ISSUED -> PAID. Sets paid_at and forces
        amount_paid = total, amount_due = 0.
        """
        self.paid_at = timezone.now()
        self.amount_paid = self.total
        self.amount_due = ZERO

    @transition(field=status, source=InvoiceStatus.ISSUED, target=InvoiceStatus.CANCELLED)
    def mark_as_cancelled(self):
        pass

    # ==========================================================================
    # GST & Line Items
    # ==========================================================================

    def calculate_gst(
        self,
        customer_state: str,
        business_state: str = GST_CONFIG.DEFAULT_BUSINESS_STATE,
    ) -> dict[str, Any]:
        """
        Split GST on the subtotal.

        Same state (case-insensitive): CGST 9% + SGST 9%.
        Different state: IGST 18%.

        Returns:
            gstin (from the billing address snapshot, or None),
            place_of_supply, cgst, sgst, igst, total_gst
        """
        subtotal = to_money(self.subtotal)
        same_state = (customer_state or "").strip().lower() == (business_state or "").strip().lower()

        if same_state:
            cgst = percentage_of(subtotal, GST_CONFIG.CGST_RATE)
            sgst = percentage_of(subtotal, GST_CONFIG.SGST_RATE)
            igst = ZERO
        else:
            cgst = ZERO
            sgst = ZERO
            igst = percentage_of(subtotal, GST_CONFIG.GST_RATE)

        return {
            "gstin": (self.billing_address or {}).get("gstin"),
            "place_of_supply": customer_state,
            "cgst": cgst,
            "sgst": sgst,
            "igst": igst,
            "total_gst": cgst + sgst + igst,
        }

    def add_line_item(self, item: dict[str, Any]) -> None:
        """
        Append a line item and persist. Totals are left as they are.
        """
        self.line_items = [*(self.line_items or []), item]
        self.save(update_fields=["line_items", "updated_at"])

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_paid(self) -> bool:
        return self.status == InvoiceStatus.PAID

    @property
    def is_overdue(self) -> bool:
        return (
            self.status == InvoiceStatus.ISSUED
            and self.due_at is not None
            and self.due_at < timezone.now()
        )

    @property
    def formatted_total(self) -> str:
        symbol = CURRENCY_SYMBOLS.get(self.currency, "")
        return f"{symbol}{Decimal(self.total):,.2f}"
