"""
Tests for InvoiceService: fiscal-year numbering, GST invoices, settlement
and tenant-scoped queries.
"""

import threading
from datetime import datetime, timedelta, timezone as dt_timezone
from decimal import Decimal

import pytest
from django.db import connection, connections
from django.utils import timezone
from freezegun import freeze_time

from core.exceptions import NotFoundError

from billing.exceptions import InvoiceNumberingError
from billing.models import Invoice, InvoiceSequence, Subscription
from billing.models.invoice import parse_invoice_sequence
from billing.services import InvoiceService
from billing.state_machines import InvoiceStatus
from billing.tests.factories import InvoiceFactory, SubscriptionFactory, TenantFactory


@pytest.fixture(autouse=True)
def invoice_settings(settings):
    settings.BILLING_INVOICE_PREFIX = "BIZ"
    settings.BILLING_BUSINESS_STATE = "Maharashtra"
    settings.BILLING_INVOICE_DUE_DAYS = 15


def _at(year, month, day):
    return datetime(year, month, day, 12, 0, tzinfo=dt_timezone.utc)


# =============================================================================
# Numbering
# =============================================================================


class TestGenerateInvoiceNumber:
    def test_first_number_of_fiscal_year(self, db):
        assert InvoiceService.generate_invoice_number(_at(2024, 6, 1)) == "BIZ/2024-25/00001"

    def test_numbers_are_sequential(self, db):
        numbers = [InvoiceService.generate_invoice_number(_at(2024, 6, 1)) for _ in range(3)]

        assert numbers == ["BIZ/2024-25/00001", "BIZ/2024-25/00002", "BIZ/2024-25/00003"]

    def test_january_to_march_belong_to_previous_fiscal_year(self, db):
        assert InvoiceService.generate_invoice_number(_at(2025, 2, 10)) == "BIZ/2024-25/00001"

    def test_sequence_restarts_each_fiscal_year(self, db):
        InvoiceService.generate_invoice_number(_at(2025, 3, 30))
        InvoiceService.generate_invoice_number(_at(2025, 3, 31))

        assert InvoiceService.generate_invoice_number(_at(2025, 4, 1)) == "BIZ/2025-26/00001"
        assert InvoiceSequence.objects.get(prefix="BIZ", fiscal_year=2024).last_number == 2

    def test_continues_after_highest_existing_number(self, db):
        """Numbers written outside the sequence are never reused."""
        InvoiceFactory(invoice_number="BIZ/2024-25/00041")

        assert InvoiceService.generate_invoice_number(_at(2024, 9, 1)) == "BIZ/2024-25/00042"

    def test_prefix_from_settings(self, db, settings):
        settings.BILLING_INVOICE_PREFIX = "ACME"

        assert InvoiceService.generate_invoice_number(_at(2024, 6, 1)) == "ACME/2024-25/00001"


# =============================================================================
# Issuing
# =============================================================================


class TestCreateInvoice:
    def test_intrastate_invoice(self, db, active_subscription):
        invoice = InvoiceService.create(active_subscription)

        assert invoice.status == InvoiceStatus.ISSUED
        assert invoice.tenant_id == active_subscription.tenant_id
        assert invoice.subscription_id == active_subscription.id
        assert invoice.subtotal == Decimal("499.00")
        assert invoice.tax_amount == Decimal("89.82")
        assert invoice.total == Decimal("588.82")
        assert invoice.amount_paid == Decimal("0.00")
        assert invoice.amount_due == Decimal("588.82")
        assert invoice.gst_details["cgst"] == "44.91"
        assert invoice.gst_details["sgst"] == "44.91"
        assert invoice.gst_details["igst"] == "0.00"

    def test_interstate_invoice(self, db, plan):
        tenant = TenantFactory(billing_address={"state": "Karnataka", "gstin": "29ABCDE1234F1Z5"})
        subscription = SubscriptionFactory(tenant=tenant, plan=plan)

        invoice = InvoiceService.create(subscription)

        assert invoice.gst_details["igst"] == "89.82"
        assert invoice.gst_details["cgst"] == "0.00"
        assert invoice.gst_details["gstin"] == "29ABCDE1234F1Z5"
        assert invoice.billing_address["state"] == "Karnataka"

    def test_line_item_and_due_date(self, db, active_subscription):
        invoice = InvoiceService.create(active_subscription)

        assert invoice.line_items == [
            {
                "description": "Pro plan (Monthly)",
                "quantity": 1,
                "unit_price": "499.00",
                "amount": "499.00",
                "tax_code": "998314",
            }
        ]
        assert invoice.due_at - invoice.issued_at == timedelta(days=15)

    def test_custom_subtotal_and_description(self, db, active_subscription):
        invoice = InvoiceService.create(active_subscription, subtotal=Decimal("1000"), description="Proration")

        assert invoice.total == Decimal("1180.00")
        assert invoice.line_items[0]["description"] == "Proration"

    def test_billing_address_is_a_snapshot(self, db, active_subscription):
        invoice = InvoiceService.create(active_subscription)
        tenant = active_subscription.tenant
        tenant.billing_address = {"state": "Goa"}
        tenant.save()

        invoice.refresh_from_db()

        assert invoice.billing_address["state"] == "Maharashtra"

    @freeze_time("2024-11-05 10:00:00")
    def test_numbers_follow_fiscal_year(self, db, active_subscription):
        first = InvoiceService.create(active_subscription)
        second = InvoiceService.create(active_subscription)

        assert first.invoice_number == "BIZ/2024-25/00001"
        assert second.invoice_number == "BIZ/2024-25/00002"

    def test_collision_is_retried_once(self, db, active_subscription, mocker):
        InvoiceFactory(invoice_number="BIZ/2024-25/00001")
        mocker.patch.object(
            InvoiceService,
            "generate_invoice_number",
            side_effect=["BIZ/2024-25/00001", "BIZ/2024-25/00002"],
        )

        invoice = InvoiceService.create(active_subscription)

        assert invoice.invoice_number == "BIZ/2024-25/00002"

    def test_persistent_collision_raises(self, db, active_subscription, mocker):
        InvoiceFactory(invoice_number="BIZ/2024-25/00001")
        mocker.patch.object(
            InvoiceService,
            "generate_invoice_number",
            return_value="BIZ/2024-25/00001",
        )

        with pytest.raises(InvoiceNumberingError):
            InvoiceService.create(active_subscription)

        assert active_subscription.invoices.count() == 0


@pytest.mark.django_db(transaction=True)
class TestConcurrentNumbering:
    def test_parallel_creates_get_distinct_contiguous_numbers(self):
        if connection.vendor == "sqlite":
            pytest.skip("SQLite ignores select_for_update and serializes writers with lock errors")

        subscription = SubscriptionFactory()
        subscription = Subscription.objects.select_related("tenant", "plan").get(pk=subscription.pk)
        workers = 6
        barrier = threading.Barrier(workers)
        numbers = []
        errors = []

        def issue():
            try:
                barrier.wait()
                numbers.append(InvoiceService.create(subscription).invoice_number)
            except Exception as exc:
                errors.append(exc)
            finally:
                connections.close_all()

        threads = [threading.Thread(target=issue) for _ in range(workers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert len(set(numbers)) == workers
        assert sorted(parse_invoice_sequence(number) for number in numbers) == list(range(1, workers + 1))
        assert Invoice.objects.filter(subscription=subscription).count() == workers


# =============================================================================
# Status Changes
# =============================================================================


class TestInvoiceSettlement:
    def test_mark_as_paid(self, db):
        invoice = InvoiceFactory()

        result = InvoiceService.mark_as_paid(invoice)

        assert result.success is True
        invoice.refresh_from_db()
        assert invoice.status == InvoiceStatus.PAID
        assert invoice.amount_paid == Decimal("588.82")
        assert invoice.amount_due == Decimal("0.00")
        assert invoice.paid_at is not None

    def test_mark_as_paid_twice_fails(self, db):
        invoice = InvoiceFactory(status=InvoiceStatus.PAID)

        result = InvoiceService.mark_as_paid(invoice)

        assert result.success is False
        assert result.error_code == "INVOICE_ALREADY_PAID"

    def test_cancelled_invoice_cannot_be_paid(self, db):
        invoice = InvoiceFactory(status=InvoiceStatus.CANCELLED)

        result = InvoiceService.mark_as_paid(invoice)

        assert result.success is False
        assert result.error_code == "INVOICE_CANCELLED"

    def test_mark_as_cancelled(self, db):
        invoice = InvoiceFactory()

        result = InvoiceService.mark_as_cancelled(invoice)

        assert result.success is True
        assert invoice.status == InvoiceStatus.CANCELLED

    def test_paid_invoice_cannot_be_cancelled(self, db):
        result = InvoiceService.mark_as_cancelled(InvoiceFactory(status=InvoiceStatus.PAID))

        assert result.success is False
        assert result.error_code == "INVALID_STATE_TRANSITION"


# =============================================================================
# Queries
# =============================================================================


class TestInvoiceQueries:
    def test_latest_issued_for_subscription(self, db, active_subscription):
        InvoiceFactory(subscription=active_subscription, status=InvoiceStatus.PAID)
        older = InvoiceFactory(subscription=active_subscription)
        newer = InvoiceFactory(subscription=active_subscription)
        older.created_at = timezone.now() - timedelta(days=30)
        older.save(update_fields=["created_at"])

        assert InvoiceService.latest_issued_for_subscription(active_subscription) == newer

    def test_list_for_tenant_is_scoped_and_filtered(self, db, active_subscription):
        paid = InvoiceFactory(subscription=active_subscription, status=InvoiceStatus.PAID)
        issued = InvoiceFactory(subscription=active_subscription)
        InvoiceFactory()  # another tenant

        all_invoices = list(InvoiceService.list_for_tenant(active_subscription.tenant))
        paid_only = list(InvoiceService.list_for_tenant(active_subscription.tenant, {"status": "paid"}))

        assert set(all_invoices) == {paid, issued}
        assert paid_only == [paid]

    def test_list_for_tenant_date_range(self, db, active_subscription):
        old = InvoiceFactory(subscription=active_subscription)
        old.created_at = timezone.now() - timedelta(days=90)
        old.save(update_fields=["created_at"])
        recent = InvoiceFactory(subscription=active_subscription)
        since = (timezone.now() - timedelta(days=30)).isoformat()

        result = list(InvoiceService.list_for_tenant(active_subscription.tenant, {"from_date": since}))

        assert result == [recent]

    def test_get_for_other_tenant_raises(self, db, tenant):
        invoice = InvoiceFactory()

        with pytest.raises(NotFoundError):
            InvoiceService.get_for_tenant(tenant, invoice.id)

    def test_totals(self, db, active_subscription):
        InvoiceFactory(subscription=active_subscription, status=InvoiceStatus.PAID, amount_paid=Decimal("588.82"))
        InvoiceFactory(subscription=active_subscription, status=InvoiceStatus.PAID, amount_paid=Decimal("100.00"))
        InvoiceFactory(subscription=active_subscription)

        tenant = active_subscription.tenant
        assert InvoiceService.total_paid_for_tenant(tenant) == Decimal("688.82")
        assert InvoiceService.count_for_tenant(tenant) == 3

    def test_total_paid_without_invoices(self, db, tenant):
        assert InvoiceService.total_paid_for_tenant(tenant) == Decimal("0.00")
