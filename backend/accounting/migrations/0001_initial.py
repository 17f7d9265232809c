import uuid
from decimal import Decimal

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models

TYPE_CHOICES = [
    ("cash_in", "Cash in"),
    ("cash_out", "Cash out"),
    ("sale", "Sale"),
    ("sale_payment", "Sale payment"),
    ("purchase", "Purchase"),
    ("purchase_payment", "Purchase payment"),
    ("transfer", "Transfer"),
    ("dividend_accrual", "Dividend accrual"),
    ("dividend_payment", "Dividend payment"),
    ("salary_accrual", "Salary accrual"),
    ("salary_payment", "Salary payment"),
]
STATUS_CHOICES = [("draft", "Draft"), ("confirmed", "Confirmed"), ("cancelled", "Cancelled")]
KIND_CHOICES = [("accrual", "Accrual"), ("payment", "Payment")]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("references", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="DocumentSequence",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("transaction_type", models.CharField(choices=TYPE_CHOICES, max_length=30)),
                ("year", models.PositiveSmallIntegerField()),
                ("next_value", models.BigIntegerField(default=1)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "constraints": [
                    models.UniqueConstraint(fields=("transaction_type", "year"), name="uniq_document_sequence_type_year"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Transaction",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("public_id", models.UUIDField(default=uuid.uuid4, editable=False, unique=True)),
                ("type", models.CharField(choices=TYPE_CHOICES, db_index=True, max_length=30)),
                ("number", models.CharField(max_length=32, unique=True)),
                ("date", models.DateField(db_index=True)),
                ("status", models.CharField(choices=STATUS_CHOICES, db_index=True, default="draft", max_length=20)),
                ("total_amount", models.DecimalField(decimal_places=6, default=Decimal("0"), max_digits=20)),
                ("paid_amount", models.DecimalField(decimal_places=6, default=Decimal("0"), max_digits=20)),
                ("description", models.TextField(blank=True, default="")),
                ("confirmed_at", models.DateTimeField(blank=True, null=True)),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("currency", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="transactions", to="references.currency")),
                ("counterparty", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="transactions", to="references.counterparty")),
                ("partner", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="transactions", to="references.partner")),
                ("created_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="created_transactions", to=settings.AUTH_USER_MODEL)),
                ("confirmed_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="+", to=settings.AUTH_USER_MODEL)),
                ("cancelled_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="+", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "ordering": ["-date", "-id"],
                "indexes": [
                    models.Index(fields=["type", "status", "date"], name="txn_type_status_date_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(total_amount__gte=0), name="txn_total_non_negative"),
                    models.CheckConstraint(condition=models.Q(paid_amount__gte=0), name="txn_paid_non_negative"),
                    models.CheckConstraint(condition=models.Q(paid_amount__lte=models.F("total_amount")), name="txn_paid_lte_total"),
                ],
            },
        ),
        migrations.CreateModel(
            name="StockItem",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("line_no", models.PositiveIntegerField()),
                ("quantity", models.DecimalField(decimal_places=4, max_digits=18)),
                ("price", models.DecimalField(decimal_places=6, default=Decimal("0"), max_digits=20)),
                ("transaction", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="items", to="accounting.transaction")),
                ("product", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="+", to="references.product")),
                ("warehouse", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="+", to="references.warehouse")),
                ("warehouse_to", models.ForeignKey(blank=True, help_text="Destination warehouse (transfers only)", null=True, on_delete=django.db.models.deletion.PROTECT, related_name="+", to="references.warehouse")),
            ],
            options={
                "ordering": ["line_no"],
                "abstract": False,
            },
        ),
        migrations.CreateModel(
            name="CashEntry",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("line_no", models.PositiveIntegerField()),
                ("amount", models.DecimalField(decimal_places=6, max_digits=20)),
                ("transaction", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="cash_entries", to="accounting.transaction")),
                ("cash_register", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="+", to="references.cashregister")),
                ("currency", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="+", to="references.currency")),
            ],
            options={
                "ordering": ["line_no"],
                "abstract": False,
                "verbose_name_plural": "Cash entries",
            },
        ),
        migrations.CreateModel(
            name="DividendEntry",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("line_no", models.PositiveIntegerField()),
                ("kind", models.CharField(choices=KIND_CHOICES, max_length=10)),
                ("amount", models.DecimalField(decimal_places=6, max_digits=20)),
                ("transaction", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="dividend_entries", to="accounting.transaction")),
                ("partner", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="+", to="references.partner")),
                ("currency", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="+", to="references.currency")),
            ],
            options={
                "ordering": ["line_no"],
                "abstract": False,
                "verbose_name_plural": "Dividend entries",
            },
        ),
        migrations.CreateModel(
            name="SalaryEntry",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("line_no", models.PositiveIntegerField()),
                ("kind", models.CharField(choices=KIND_CHOICES, max_length=10)),
                ("amount", models.DecimalField(decimal_places=6, max_digits=20)),
                ("transaction", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="salary_entries", to="accounting.transaction")),
                ("user", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="+", to=settings.AUTH_USER_MODEL)),
                ("currency", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="+", to="references.currency")),
            ],
            options={
                "ordering": ["line_no"],
                "abstract": False,
                "verbose_name_plural": "Salary entries",
            },
        ),
        migrations.CreateModel(
            name="ServiceEntry",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("line_no", models.PositiveIntegerField()),
                ("quantity", models.DecimalField(decimal_places=4, max_digits=18)),
                ("price", models.DecimalField(decimal_places=6, default=Decimal("0"), max_digits=20)),
                ("note", models.CharField(blank=True, default="", max_length=255)),
                ("transaction", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="service_entries", to="accounting.transaction")),
                ("service", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="+", to="references.service")),
            ],
            options={
                "ordering": ["line_no"],
                "abstract": False,
                "verbose_name_plural": "Service entries",
            },
        ),
    ]
