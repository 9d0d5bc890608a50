import uuid
from decimal import Decimal

import django.db.models.deletion
import django_fsm
from django.db import migrations, models


def timestamp_fields():
    return [
        (
            "created_at",
            models.DateTimeField(
                auto_now_add=True,
                db_index=True,
                help_text="Timestamp when this record was created",
            ),
        ),
        (
            "updated_at",
            models.DateTimeField(
                auto_now=True,
                help_text="Timestamp when this record was last modified",
            ),
        ),
    ]


CURRENCY_CHOICES = [("INR", "Indian Rupee"), ("USD", "US Dollar")]


def uuid_pk():
    return models.UUIDField(
        default=uuid.uuid4,
        editable=False,
        help_text="Unique identifier for this record",
        primary_key=True,
        serialize=False,
    )


def metadata_field():
    return models.JSONField(
        blank=True,
        default=dict,
        help_text="Flexible key-value metadata storage",
    )


def money(**kwargs):
    return models.DecimalField(decimal_places=2, max_digits=12, **kwargs)


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("tenants", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="PlanDefinition",
            fields=[
                *timestamp_fields(),
                ("id", uuid_pk()),
                ("code", models.SlugField(unique=True)),
                ("name", models.CharField(max_length=100)),
                ("description", models.TextField(blank=True, default="")),
                ("price_inr_monthly", money(default=Decimal("0.00"))),
                ("price_inr_yearly", money(default=Decimal("0.00"))),
                ("price_usd_monthly", money(default=Decimal("0.00"))),
                ("price_usd_yearly", money(default=Decimal("0.00"))),
                ("trial_days", models.PositiveIntegerField(default=0)),
                (
                    "gateway_plan_id_monthly",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Razorpay plan id (plan_xxx) for monthly billing",
                        max_length=255,
                    ),
                ),
                (
                    "gateway_plan_id_yearly",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Razorpay plan id (plan_xxx) for yearly billing",
                        max_length=255,
                    ),
                ),
                ("is_active", models.BooleanField(default=True)),
                ("is_public", models.BooleanField(default=True)),
                ("sort_order", models.PositiveIntegerField(default=0)),
            ],
            options={
                "verbose_name": "Plan",
                "verbose_name_plural": "Plans",
                "ordering": ["sort_order", "name"],
            },
        ),
        migrations.CreateModel(
            name="Subscription",
            fields=[
                *timestamp_fields(),
                ("id", uuid_pk()),
                ("metadata", metadata_field()),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("created", "Created"),
                            ("authenticated", "Authenticated"),
                            ("active", "Active"),
                            ("pending", "Pending"),
                            ("halted", "Halted"),
                            ("cancelled", "Cancelled"),
                            ("completed", "Completed"),
                        ],
                        db_index=True,
                        default="created",
                        help_text="Current state of the subscription (managed by FSM)",
                        max_length=50,
                    ),
                ),
                (
                    "billing_cycle",
                    models.CharField(
                        choices=[("monthly", "Monthly"), ("yearly", "Yearly")],
                        default="monthly",
                        max_length=10,
                    ),
                ),
                ("currency", models.CharField(choices=CURRENCY_CHOICES, default="INR", max_length=3)),
                ("amount", money(help_text="Cycle price snapshot, not re-derived from the plan")),
                (
                    "gateway_subscription_id",
                    models.CharField(
                        blank=True,
                        help_text="Razorpay subscription id (sub_xxx)",
                        max_length=255,
                        null=True,
                        unique=True,
                    ),
                ),
                (
                    "gateway_customer_id",
                    models.CharField(
                        blank=True,
                        db_index=True,
                        default="",
                        help_text="Razorpay customer id (cust_xxx)",
                        max_length=255,
                    ),
                ),
                ("current_period_start", models.DateTimeField(blank=True, null=True)),
                ("current_period_end", models.DateTimeField(blank=True, null=True)),
                ("trial_start", models.DateTimeField(blank=True, null=True)),
                ("trial_end", models.DateTimeField(blank=True, null=True)),
                ("cancel_at_period_end", models.BooleanField(default=False)),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                ("ended_at", models.DateTimeField(blank=True, null=True)),
                (
                    "version",
                    models.PositiveIntegerField(
                        default=1,
                        help_text="Version for optimistic locking - incremented on each save",
                    ),
                ),
                (
                    "plan",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="subscriptions",
                        to="billing.plandefinition",
                    ),
                ),
                (
                    "tenant",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="subscriptions",
                        to="tenants.tenant",
                    ),
                ),
            ],
            options={
                "verbose_name": "Subscription",
                "verbose_name_plural": "Subscriptions",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["tenant", "status"], name="subscription_tenant_status_idx"),
                    models.Index(fields=["status", "current_period_end"], name="subscription_status_period_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(amount__gte=0),
                        name="subscription_amount_non_negative",
                    ),
                    models.CheckConstraint(
                        condition=(
                            models.Q(current_period_start__isnull=True)
                            | models.Q(current_period_end__isnull=True)
                            | models.Q(current_period_end__gte=models.F("current_period_start"))
                        ),
                        name="subscription_period_ordered",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="InvoiceSequence",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                *timestamp_fields(),
                ("prefix", models.CharField(max_length=20)),
                ("fiscal_year", models.PositiveIntegerField()),
                ("last_number", models.PositiveIntegerField(default=0)),
            ],
            options={
                "verbose_name": "Invoice sequence",
                "verbose_name_plural": "Invoice sequences",
                "ordering": ["-fiscal_year"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("prefix", "fiscal_year"),
                        name="invoice_sequence_unique_fiscal_year",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="Invoice",
            fields=[
                *timestamp_fields(),
                ("id", uuid_pk()),
                (
                    "invoice_number",
                    models.CharField(
                        editable=False,
                        help_text="PREFIX/FY-FY/NNNNN, immutable once assigned",
                        max_length=50,
                        unique=True,
                    ),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[("issued", "Issued"), ("paid", "Paid"), ("cancelled", "Cancelled")],
                        db_index=True,
                        default="issued",
                        max_length=50,
                    ),
                ),
                ("currency", models.CharField(choices=CURRENCY_CHOICES, default="INR", max_length=3)),
                ("subtotal", money(default=Decimal("0.00"))),
                ("tax_amount", money(default=Decimal("0.00"))),
                ("total", money(default=Decimal("0.00"))),
                ("amount_paid", money(default=Decimal("0.00"))),
                ("amount_due", money(default=Decimal("0.00"))),
                ("gst_details", models.JSONField(blank=True, null=True)),
                ("billing_address", models.JSONField(blank=True, default=dict)),
                ("line_items", models.JSONField(blank=True, default=list)),
                ("issued_at", models.DateTimeField(blank=True, null=True)),
                ("due_at", models.DateTimeField(blank=True, null=True)),
                ("paid_at", models.DateTimeField(blank=True, null=True)),
                (
                    "subscription",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="invoices",
                        to="billing.subscription",
                    ),
                ),
                (
                    "tenant",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="invoices",
                        to="tenants.tenant",
                    ),
                ),
            ],
            options={
                "verbose_name": "Invoice",
                "verbose_name_plural": "Invoices",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["tenant", "status"], name="invoice_tenant_status_idx"),
                    models.Index(
                        fields=["subscription", "status", "created_at"],
                        name="invoice_sub_status_created_idx",
                    ),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(total__gte=0),
                        name="invoice_total_non_negative",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="Payment",
            fields=[
                *timestamp_fields(),
                ("id", uuid_pk()),
                ("metadata", metadata_field()),
                (
                    "gateway_payment_id",
                    models.CharField(
                        help_text="Razorpay payment id (pay_xxx)",
                        max_length=255,
                        unique=True,
                    ),
                ),
                ("gateway_order_id", models.CharField(blank=True, default="", max_length=255)),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("created", "Created"),
                            ("authorized", "Authorized"),
                            ("captured", "Captured"),
                            ("failed", "Failed"),
                            ("refunded", "Refunded"),
                        ],
                        db_index=True,
                        default="created",
                        max_length=50,
                    ),
                ),
                ("amount", money()),
                ("currency", models.CharField(choices=CURRENCY_CHOICES, default="INR", max_length=3)),
                ("method", models.CharField(blank=True, default="", max_length=32)),
                ("fee", money(default=Decimal("0.00"))),
                ("tax_on_fee", money(default=Decimal("0.00"))),
                ("error_code", models.CharField(blank=True, default="", max_length=100)),
                ("error_description", models.TextField(blank=True, default="")),
                ("captured_at", models.DateTimeField(blank=True, null=True)),
                ("refunded_at", models.DateTimeField(blank=True, null=True)),
                ("refund_amount", money(blank=True, null=True)),
                (
                    "invoice",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="payments",
                        to="billing.invoice",
                    ),
                ),
                (
                    "subscription",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payments",
                        to="billing.subscription",
                    ),
                ),
                (
                    "tenant",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payments",
                        to="tenants.tenant",
                    ),
                ),
            ],
            options={
                "verbose_name": "Payment",
                "verbose_name_plural": "Payments",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["tenant", "status"], name="payment_tenant_status_idx"),
                    models.Index(fields=["subscription", "created_at"], name="payment_sub_created_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(amount__gte=0),
                        name="payment_amount_non_negative",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="PaymentMethod",
            fields=[
                *timestamp_fields(),
                ("id", uuid_pk()),
                ("gateway_token_id", models.CharField(blank=True, default="", max_length=255)),
                (
                    "type",
                    models.CharField(
                        choices=[
                            ("card", "Card"),
                            ("upi", "UPI"),
                            ("netbanking", "Net Banking"),
                            ("wallet", "Wallet"),
                            ("emandate", "E-Mandate"),
                        ],
                        max_length=20,
                    ),
                ),
                ("is_default", models.BooleanField(default=False)),
                ("details", models.JSONField(blank=True, default=dict)),
                ("expires_at", models.DateTimeField(blank=True, null=True)),
                (
                    "tenant",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="payment_methods",
                        to="tenants.tenant",
                    ),
                ),
            ],
            options={
                "verbose_name": "Payment method",
                "verbose_name_plural": "Payment methods",
                "ordering": ["-is_default", "-created_at"],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(is_default=True),
                        fields=("tenant",),
                        name="payment_method_single_default",
                    )
                ],
            },
        ),
    ]
