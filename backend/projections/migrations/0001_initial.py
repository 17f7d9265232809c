from decimal import Decimal

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


def money():
    return models.DecimalField(decimal_places=6, default=Decimal("0"), max_digits=20)


def qty():
    return models.DecimalField(decimal_places=4, default=Decimal("0"), max_digits=18)


def balance_fields():
    return [
        ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
        ("movement_count", models.PositiveIntegerField(default=0)),
        ("updated_at", models.DateTimeField(auto_now=True)),
        ("last_event", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="+", to="events.businessevent")),
    ]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("events", "0001_initial"),
        ("references", "0001_initial"),
        ("accounting", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="CashBalance",
            fields=balance_fields() + [
                ("balance", money()),
                ("cash_register", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="balances", to="references.cashregister")),
                ("currency", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="+", to="references.currency")),
            ],
            options={
                "constraints": [
                    models.UniqueConstraint(fields=("cash_register", "currency"), name="uniq_cash_balance_register_currency"),
                ],
            },
        ),
        migrations.CreateModel(
            name="StockBalance",
            fields=balance_fields() + [
                ("quantity", qty()),
                ("value", money()),
                ("warehouse", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="stock_balances", to="references.warehouse")),
                ("product", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="stock_balances", to="references.product")),
            ],
            options={
                "constraints": [
                    models.UniqueConstraint(fields=("warehouse", "product"), name="uniq_stock_balance_warehouse_product"),
                ],
            },
        ),
        migrations.CreateModel(
            name="CounterpartyBalance",
            fields=balance_fields() + [
                ("balance", money()),
                ("counterparty", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="balances", to="references.counterparty")),
                ("currency", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="+", to="references.currency")),
            ],
            options={
                "constraints": [
                    models.UniqueConstraint(fields=("counterparty", "currency"), name="uniq_counterparty_balance_currency"),
                ],
            },
        ),
        migrations.CreateModel(
            name="PartnerDividendBalance",
            fields=balance_fields() + [
                ("accrued", money()),
                ("paid", money()),
                ("balance", money()),
                ("partner", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="dividend_balances", to="references.partner")),
                ("currency", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="+", to="references.currency")),
            ],
            options={
                "constraints": [
                    models.UniqueConstraint(fields=("partner", "currency"), name="uniq_dividend_balance_partner_currency"),
                ],
            },
        ),
        migrations.CreateModel(
            name="SalaryBalance",
            fields=balance_fields() + [
                ("accrued", money()),
                ("paid", money()),
                ("balance", money()),
                ("user", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="salary_balances", to=settings.AUTH_USER_MODEL)),
                ("currency", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="+", to="references.currency")),
            ],
            options={
                "constraints": [
                    models.UniqueConstraint(fields=("user", "currency"), name="uniq_salary_balance_user_currency"),
                ],
            },
        ),
        migrations.CreateModel(
            name="PostingLine",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("line_no", models.PositiveIntegerField()),
                ("stream_sequence", models.BigIntegerField(db_index=True)),
                ("transaction_number", models.CharField(max_length=32)),
                ("transaction_type", models.CharField(max_length=30)),
                ("date", models.DateField(db_index=True)),
                ("is_reversal", models.BooleanField(default=False)),
                ("ledger", models.CharField(db_index=True, max_length=20)),
                ("amount", money()),
                ("quantity", qty()),
                ("value", money()),
                ("accrued", money()),
                ("paid", money()),
                ("event", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="posting_lines", to="events.businessevent")),
                ("transaction", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="posting_lines", to="accounting.transaction")),
                ("cash_register", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="+", to="references.cashregister")),
                ("warehouse", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="+", to="references.warehouse")),
                ("product", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="+", to="references.product")),
                ("counterparty", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="+", to="references.counterparty")),
                ("partner", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="+", to="references.partner")),
                ("user", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="+", to=settings.AUTH_USER_MODEL)),
                ("currency", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="+", to="references.currency")),
            ],
            options={
                "ordering": ["stream_sequence", "line_no"],
                "indexes": [
                    models.Index(fields=["ledger", "date"], name="posting_ledger_date_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(fields=("event", "line_no"), name="uniq_posting_line_event_line"),
                ],
            },
        ),
        migrations.CreateModel(
            name="ProjectionAppliedEvent",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("projection_name", models.CharField(max_length=100)),
                ("applied_at", models.DateTimeField(auto_now_add=True)),
                ("event", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="+", to="events.businessevent")),
            ],
            options={
                "indexes": [
                    models.Index(fields=["projection_name"], name="projection_applied_name_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(fields=("projection_name", "event"), name="uniq_projection_event"),
                ],
            },
        ),
    ]
