# projections/models.py
"""
Projection models (materialized views).

These tables are DERIVED from the postings carried by
transaction.confirmed / transaction.cancelled events. They can be:
- Rebuilt from scratch by replaying events
- Updated incrementally as new events arrive

NEVER modify these tables directly. They are owned by their projections.
"""

from decimal import Decimal
from django.db import models
from django.conf import settings

from events.models import BusinessEvent
from projections.write_barrier import write_context_allowed

MONEY = {"max_digits": 20, "decimal_places": 6, "default": Decimal("0")}
QTY = {"max_digits": 18, "decimal_places": 4, "default": Decimal("0")}


class ProjectionOwnedModel(models.Model):
    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        if not write_context_allowed({"projection"}) and not getattr(settings, "TESTING", False):
            raise RuntimeError(
                f"{self.__class__.__name__} is a projection-owned read model. "
                "Direct saves are only allowed from projections within projection_writes_allowed()."
            )
        super().save(*args, **kwargs)


class BalanceModel(ProjectionOwnedModel):
    movement_count = models.PositiveIntegerField(default=0)
    last_event = models.ForeignKey(
        BusinessEvent,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="+",
    )
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class CashBalance(BalanceModel):
    """Running balance of one cash register in one currency."""

    cash_register = models.ForeignKey(
        "references.CashRegister",
        on_delete=models.CASCADE,
        related_name="balances",
    )
    currency = models.ForeignKey("references.Currency", on_delete=models.PROTECT, related_name="+")
    balance = models.DecimalField(**MONEY)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["cash_register", "currency"],
                name="uniq_cash_balance_register_currency",
            ),
        ]

    def __str__(self):
        return f"{self.cash_register_id}/{self.currency_id}: {self.balance}"


class StockBalance(BalanceModel):
    """
    Stock position of one product in one warehouse.

    value is the inventory value at moving average cost;
    avg_cost = value / quantity.
    """

    warehouse = models.ForeignKey(
        "references.Warehouse",
        on_delete=models.CASCADE,
        related_name="stock_balances",
    )
    product = models.ForeignKey(
        "references.Product",
        on_delete=models.CASCADE,
        related_name="stock_balances",
    )
    quantity = models.DecimalField(**QTY)
    value = models.DecimalField(**MONEY)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["warehouse", "product"],
                name="uniq_stock_balance_warehouse_product",
            ),
        ]

    def __str__(self):
        return f"{self.warehouse_id}/{self.product_id}: {self.quantity}"

    @property
    def avg_cost(self) -> Decimal:
        from accounting.posting import StockPosition
        return StockPosition(self.quantity, self.value).avg_cost


class CounterpartyBalance(BalanceModel):
    """
    Signed balance with one counterparty in one currency.

    Positive: the counterparty owes the business (receivable).
    Negative: the business owes the counterparty (payable).
    """

    counterparty = models.ForeignKey(
        "references.Counterparty",
        on_delete=models.CASCADE,
        related_name="balances",
    )
    currency = models.ForeignKey("references.Currency", on_delete=models.PROTECT, related_name="+")
    balance = models.DecimalField(**MONEY)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["counterparty", "currency"],
                name="uniq_counterparty_balance_currency",
            ),
        ]

    def __str__(self):
        return f"{self.counterparty_id}/{self.currency_id}: {self.balance}"


class AccrualBalanceModel(BalanceModel):
    accrued = models.DecimalField(**MONEY)
    paid = models.DecimalField(**MONEY)
    # accrued - paid: amount still to pay
    balance = models.DecimalField(**MONEY)

    class Meta:
        abstract = True


class PartnerDividendBalance(AccrualBalanceModel):
    partner = models.ForeignKey(
        "references.Partner",
        on_delete=models.CASCADE,
        related_name="dividend_balances",
    )
    currency = models.ForeignKey("references.Currency", on_delete=models.PROTECT, related_name="+")

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["partner", "currency"],
                name="uniq_dividend_balance_partner_currency",
            ),
        ]

    def __str__(self):
        return f"{self.partner_id}/{self.currency_id}: {self.balance}"


class SalaryBalance(AccrualBalanceModel):
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="salary_balances",
    )
    currency = models.ForeignKey("references.Currency", on_delete=models.PROTECT, related_name="+")

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["user", "currency"],
                name="uniq_salary_balance_user_currency",
            ),
        ]

    def __str__(self):
        return f"{self.user_id}/{self.currency_id}: {self.balance}"


class PostingLine(ProjectionOwnedModel):
    """
    One applied posting, in stream order.

    This is the posting history: movements endpoints read it and every
    balance projection can be recomputed by folding it.
    """

    event = models.ForeignKey(
        BusinessEvent,
        on_delete=models.PROTECT,
        related_name="posting_lines",
    )
    line_no = models.PositiveIntegerField()
    stream_sequence = models.BigIntegerField(db_index=True)

    transaction = models.ForeignKey(
        "accounting.Transaction",
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="posting_lines",
    )
    transaction_number = models.CharField(max_length=32)
    transaction_type = models.CharField(max_length=30)
    date = models.DateField(db_index=True)
    is_reversal = models.BooleanField(default=False)

    ledger = models.CharField(max_length=20, db_index=True)
    cash_register = models.ForeignKey("references.CashRegister", null=True, blank=True, on_delete=models.PROTECT, related_name="+")
    warehouse = models.ForeignKey("references.Warehouse", null=True, blank=True, on_delete=models.PROTECT, related_name="+")
    product = models.ForeignKey("references.Product", null=True, blank=True, on_delete=models.PROTECT, related_name="+")
    counterparty = models.ForeignKey("references.Counterparty", null=True, blank=True, on_delete=models.PROTECT, related_name="+")
    partner = models.ForeignKey("references.Partner", null=True, blank=True, on_delete=models.PROTECT, related_name="+")
    user = models.ForeignKey(settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.PROTECT, related_name="+")
    currency = models.ForeignKey("references.Currency", null=True, blank=True, on_delete=models.PROTECT, related_name="+")

    amount = models.DecimalField(**MONEY)
    quantity = models.DecimalField(**QTY)
    value = models.DecimalField(**MONEY)
    accrued = models.DecimalField(**MONEY)
    paid = models.DecimalField(**MONEY)

    class Meta:
        ordering = ["stream_sequence", "line_no"]
        constraints = [
            models.UniqueConstraint(
                fields=["event", "line_no"],
                name="uniq_posting_line_event_line",
            ),
        ]
        indexes = [
            models.Index(fields=["ledger", "date"], name="posting_ledger_date_idx"),
        ]

    def __str__(self):
        return f"{self.transaction_number} #{self.line_no} {self.ledger}"


class ProjectionAppliedEvent(ProjectionOwnedModel):
    """
    Tracks which events were applied by each projection to ensure idempotency.
    """

    projection_name = models.CharField(max_length=100)

    event = models.ForeignKey(
        BusinessEvent,
        on_delete=models.CASCADE,
        related_name="+",
    )

    applied_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["projection_name", "event"],
                name="uniq_projection_event",
            ),
        ]
        indexes = [
            models.Index(fields=["projection_name"], name="projection_applied_name_idx"),
        ]

    def __str__(self):
        return f"{self.projection_name} applied {self.event_id}"


# ledger -> (balance model, subject field)
BALANCE_MODELS = {
    "cash": (CashBalance, "cash_register"),
    "stock": (StockBalance, "warehouse"),
    "counterparty": (CounterpartyBalance, "counterparty"),
    "dividend": (PartnerDividendBalance, "partner"),
    "salary": (SalaryBalance, "user"),
}
