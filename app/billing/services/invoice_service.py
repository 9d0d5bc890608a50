"""
Invoice ledger service: numbering, issuing and settling invoices.

Invoice numbers must never repeat. generate_invoice_number() locks the
InvoiceSequence row of the current fiscal year with select_for_update(),
so concurrent creators queue on that row. The unique constraint on
Invoice.invoice_number is the backstop: a collision (a number written
outside the sequence) is retried once with a fresh number inside a
savepoint, and InvoiceNumberingError is raised if it collides again.

Usage:
    from billing.services import InvoiceService

    invoice = InvoiceService.create(subscription)
    result = InvoiceService.mark_as_paid(invoice)
"""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from django.db import IntegrityError, transaction
from django.db.models import Sum
from django.utils import timezone

from core.exceptions import NotFoundError
from core.services import BaseService, ServiceResult

from billing.constants import GST_CONFIG, INVOICE_CONFIG, billing_setting
from billing.exceptions import InvoiceNumberingError
from billing.filters import InvoiceFilter
from billing.models import Invoice, InvoiceSequence
from billing.models.invoice import (
    fiscal_year_for,
    format_invoice_number,
    invoice_number_prefix,
    parse_invoice_sequence,
)
from billing.money import ZERO, to_money
from billing.state_machines import InvoiceStatus

if TYPE_CHECKING:
    from datetime import datetime

    from django.db.models import QuerySet

    from billing.models import Subscription
    from tenants.models import Tenant


class InvoiceService(BaseService):
    """
    Service for the invoice ledger.

    Methods:
        generate_invoice_number: Next number for the current fiscal year
        create: Issue a GST invoice for a subscription charge
        mark_as_paid: Settle an issued invoice
        mark_as_cancelled: Administrative cancellation
        latest_issued_for_subscription: Invoice a charge should settle
        list_for_tenant / get_for_tenant: Tenant-scoped reads
        total_paid_for_tenant / count_for_tenant: Summary figures
    """

    # =========================================================================
    # Numbering
    # =========================================================================

    @classmethod
    def generate_invoice_number(cls, now: datetime | None = None) -> str:
        """
        Allocate the next invoice number for the fiscal year containing now.

        Must run inside the transaction that writes the invoice so the
        sequence lock is held until the invoice row is committed.

        Returns:
            e.g. "BIZ/2024-25/00001"
        """
        now = timezone.localtime(now or timezone.now())
        prefix = billing_setting("BILLING_INVOICE_PREFIX", INVOICE_CONFIG.DEFAULT_PREFIX)
        fiscal_year = fiscal_year_for(now)

        with cls.atomic():
            sequence = cls._lock_sequence(prefix, fiscal_year)
            highest = cls._highest_existing_number(prefix, fiscal_year)
            sequence.last_number = max(sequence.last_number, highest) + 1
            sequence.save(update_fields=["last_number", "updated_at"])

        return format_invoice_number(prefix, fiscal_year, sequence.last_number)

    @classmethod
    def _lock_sequence(cls, prefix: str, fiscal_year: int) -> InvoiceSequence:
        sequence = (
            InvoiceSequence.objects.select_for_update()
            .filter(prefix=prefix, fiscal_year=fiscal_year)
            .first()
        )
        if sequence is not None:
            return sequence

        try:
            with transaction.atomic():
                return InvoiceSequence.objects.create(
                    prefix=prefix,
                    fiscal_year=fiscal_year,
                    last_number=cls._highest_existing_number(prefix, fiscal_year),
                )
        except IntegrityError:
            # Another creator inserted the row first
            return InvoiceSequence.objects.select_for_update().get(prefix=prefix, fiscal_year=fiscal_year)

    @staticmethod
    def _highest_existing_number(prefix: str, fiscal_year: int) -> int:
        last = (
            Invoice.objects.filter(invoice_number__startswith=invoice_number_prefix(prefix, fiscal_year))
            .order_by("-invoice_number")
            .values_list("invoice_number", flat=True)
            .first()
        )
        return parse_invoice_sequence(last) if last else 0

    # =========================================================================
    # Issuing
    # =========================================================================

    @classmethod
    def create(
        cls,
        subscription: Subscription,
        subtotal: Decimal | None = None,
        description: str | None = None,
        billing_address: dict[str, Any] | None = None,
    ) -> Invoice:
        """
        Issue an invoice for one billing period of a subscription.

        GST is computed from the billing address state against
        BILLING_BUSINESS_STATE. The invoice starts ISSUED with
        amount_due = total.

        Args:
            subscription: Subscription being billed
            subtotal: Pre-tax amount (default: the subscription amount)
            description: Line item description (default: plan name and cycle)
            billing_address: Address snapshot (default: the tenant's)

        Raises:
            InvoiceNumberingError: Number collided again after retrying
        """
        tenant = subscription.tenant
        subtotal = to_money(subscription.amount if subtotal is None else subtotal)
        address = dict(tenant.billing_address or {}) if billing_address is None else dict(billing_address)
        business_state = billing_setting("BILLING_BUSINESS_STATE", GST_CONFIG.DEFAULT_BUSINESS_STATE)
        due_days = billing_setting("BILLING_INVOICE_DUE_DAYS", INVOICE_CONFIG.DEFAULT_DUE_DAYS)
        description = description or (
            f"{subscription.plan.name} plan ({subscription.get_billing_cycle_display()})"
        )

        attempts = INVOICE_CONFIG.NUMBERING_RETRIES + 1
        for attempt in range(1, attempts + 1):
            now = timezone.now()
            try:
                with cls.atomic():
                    invoice = Invoice(
                        tenant=tenant,
                        subscription=subscription,
                        invoice_number=cls.generate_invoice_number(now),
                        currency=subscription.currency,
                        subtotal=subtotal,
                        billing_address=address,
                        issued_at=now,
                        due_at=now + timedelta(days=due_days),
                    )
                    gst = invoice.calculate_gst(address.get("state", ""), business_state)
                    invoice.tax_amount = gst["total_gst"]
                    invoice.total = subtotal + gst["total_gst"]
                    invoice.amount_paid = ZERO
                    invoice.amount_due = invoice.total
                    invoice.gst_details = _json_safe(gst)
                    invoice.line_items = [
                        {
                            "description": description,
                            "quantity": 1,
                            "unit_price": str(subtotal),
                            "amount": str(subtotal),
                            "tax_code": GST_CONFIG.HSN_CODE,
                        }
                    ]
                    invoice.save(force_insert=True)
            except IntegrityError as exc:
                if attempt >= attempts:
                    cls.get_logger().error(
                        "Invoice number collision persisted after retry",
                        extra={"subscription_id": str(subscription.id), "attempts": attempt},
                    )
                    raise InvoiceNumberingError(
                        "Could not allocate a unique invoice number.",
                        details={"subscription_id": str(subscription.id)},
                    ) from exc
                cls.get_logger().warning(
                    "Invoice number collision, retrying",
                    extra={"subscription_id": str(subscription.id), "attempt": attempt},
                )
                continue

            cls.get_logger().info(
                "Invoice issued",
                extra={
                    "invoice_id": str(invoice.id),
                    "invoice_number": invoice.invoice_number,
                    "subscription_id": str(subscription.id),
                    "total": str(invoice.total),
                },
            )
            return invoice

        # Loop always returns or raises
        raise InvoiceNumberingError("Could not allocate a unique invoice number.")

    # =========================================================================
    # Status Changes
    # =========================================================================

    @classmethod
    def mark_as_paid(cls, invoice: Invoice) -> ServiceResult[Invoice]:
        """
        Settle an issued invoice in full.

        Returns:
            ServiceResult with the invoice, or a failure when it is already
            paid or cancelled
        """
        if invoice.status == InvoiceStatus.PAID:
            return ServiceResult.failure(
                "Invoice is already paid.",
                error_code="INVOICE_ALREADY_PAID",
            )
        if invoice.status == InvoiceStatus.CANCELLED:
            return ServiceResult.failure(
                "Cannot pay a cancelled invoice.",
                error_code="INVOICE_CANCELLED",
            )

        invoice.mark_as_paid()
        invoice.save()
        cls.get_logger().info(
            "Invoice paid",
            extra={"invoice_id": str(invoice.id), "invoice_number": invoice.invoice_number},
        )
        return ServiceResult.success(invoice)

    @classmethod
    def mark_as_cancelled(cls, invoice: Invoice) -> ServiceResult[Invoice]:
        if invoice.status != InvoiceStatus.ISSUED:
            return ServiceResult.failure(
                f"Cannot cancel an invoice in '{invoice.status}' state.",
                error_code="INVALID_STATE_TRANSITION",
            )
        invoice.mark_as_cancelled()
        invoice.save()
        cls.get_logger().info(
            "Invoice cancelled",
            extra={"invoice_id": str(invoice.id), "invoice_number": invoice.invoice_number},
        )
        return ServiceResult.success(invoice)

    # =========================================================================
    # Queries
    # =========================================================================

    @classmethod
    def latest_issued_for_subscription(cls, subscription: Subscription, for_update: bool = False) -> Invoice | None:
        queryset = Invoice.objects.filter(subscription=subscription, status=InvoiceStatus.ISSUED)
        if for_update:
            queryset = queryset.select_for_update()
        return queryset.order_by("-created_at").first()

    @classmethod
    def list_for_tenant(cls, tenant: Tenant, params: dict[str, Any] | None = None) -> QuerySet[Invoice]:
        """
        Tenant invoices, newest first, filtered by status and created date.

        Args:
            params: Query parameters for InvoiceFilter (status, from_date, to_date)
        """
        queryset = Invoice.objects.filter(tenant=tenant).order_by("-created_at")
        return InvoiceFilter(data=params or {}, queryset=queryset).qs

    @classmethod
    def get_for_tenant(cls, tenant: Tenant, invoice_id: Any) -> Invoice:
        """
        Raises:
            NotFoundError: No such invoice for this tenant
        """
        invoice = Invoice.objects.filter(tenant=tenant, pk=invoice_id).first()
        if invoice is None:
            raise NotFoundError("Invoice not found.", error_code="INVOICE_NOT_FOUND")
        return invoice

    @classmethod
    def total_paid_for_tenant(cls, tenant: Tenant) -> Decimal:
        total = Invoice.objects.filter(tenant=tenant, status=InvoiceStatus.PAID).aggregate(
            total=Sum("amount_paid")
        )["total"]
        return to_money(total)

    @classmethod
    def count_for_tenant(cls, tenant: Tenant) -> int:
        return Invoice.objects.filter(tenant=tenant).count()


def _json_safe(values: dict[str, Any]) -> dict[str, Any]:
    return {key: str(value) if isinstance(value, Decimal) else value for key, value in values.items()}
