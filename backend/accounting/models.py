# accounting/models.py
"""
Ledger document WRITE MODELS.

A Transaction and its line-item groups are owned by the command layer
(accounting/commands.py). Only commands running inside
command_writes_allowed() may save or delete them; every change they
make is recorded as a BusinessEvent.

Balances are NOT stored here. They are projections of the
transaction.confirmed / transaction.cancelled events (projections app).

Models:
- Transaction: document header
- StockItem, CashEntry, DividendEntry, SalaryEntry, ServiceEntry: line groups
- DocumentSequence: per (type, year) counter for document numbers
"""

import uuid
from decimal import Decimal

from django.conf import settings
from django.db import models

from accounting.types import EntryKind, TransactionStatus, TransactionType
from projections.write_barrier import write_context_allowed

MONEY_DIGITS = 20
MONEY_PLACES = 6
QTY_DIGITS = 18
QTY_PLACES = 4

COMMAND_CONTEXTS = {"command"}


def _assert_command_write(model_name: str, action: str) -> None:
    if not write_context_allowed(COMMAND_CONTEXTS) and not getattr(settings, "TESTING", False):
        raise RuntimeError(
            f"{model_name} is a command-owned write model. "
            f"Direct {action} is only allowed within command_writes_allowed()."
        )


class CommandOwnedModel(models.Model):
    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        _assert_command_write(self.__class__.__name__, "save")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        _assert_command_write(self.__class__.__name__, "delete")
        return super().delete(*args, **kwargs)


class DocumentSequence(CommandOwnedModel):
    """
    Counters for document numbers, one per (type, year).

    Allocated by commands under select_for_update.
    """

    transaction_type = models.CharField(max_length=30, choices=TransactionType.choices)
    year = models.PositiveSmallIntegerField()
    next_value = models.BigIntegerField(default=1)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["transaction_type", "year"],
                name="uniq_document_sequence_type_year",
            ),
        ]

    def __str__(self):
        return f"{self.transaction_type}/{self.year}={self.next_value}"


class Transaction(CommandOwnedModel):
    """
    Ledger document header.

    Workflow: draft -> confirmed -> cancelled, or draft -> cancelled.
    type never changes after creation; currency never changes after
    confirmation (only drafts can be edited).
    """

    Type = TransactionType
    Status = TransactionStatus

    public_id = models.UUIDField(
        default=uuid.uuid4,
        editable=False,
        unique=True,
    )
    type = models.CharField(max_length=30, choices=TransactionType.choices, db_index=True)
    number = models.CharField(max_length=32, unique=True)
    date = models.DateField(db_index=True)
    currency = models.ForeignKey(
        "references.Currency",
        on_delete=models.PROTECT,
        related_name="transactions",
    )
    status = models.CharField(
        max_length=20,
        choices=TransactionStatus.choices,
        default=TransactionStatus.DRAFT,
        db_index=True,
    )
    total_amount = models.DecimalField(
        max_digits=MONEY_DIGITS,
        decimal_places=MONEY_PLACES,
        default=Decimal("0"),
    )
    paid_amount = models.DecimalField(
        max_digits=MONEY_DIGITS,
        decimal_places=MONEY_PLACES,
        default=Decimal("0"),
    )
    description = models.TextField(blank=True, default="")

    counterparty = models.ForeignKey(
        "references.Counterparty",
        null=True,
        blank=True,
        on_delete=models.PROTECT,
        related_name="transactions",
    )
    partner = models.ForeignKey(
        "references.Partner",
        null=True,
        blank=True,
        on_delete=models.PROTECT,
        related_name="transactions",
    )

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="created_transactions",
    )
    confirmed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="+",
    )
    cancelled_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="+",
    )
    confirmed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-date", "-id"]
        indexes = [
            models.Index(fields=["type", "status", "date"], name="txn_type_status_date_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(total_amount__gte=0),
                name="txn_total_non_negative",
            ),
            models.CheckConstraint(
                condition=models.Q(paid_amount__gte=0),
                name="txn_paid_non_negative",
            ),
            models.CheckConstraint(
                condition=models.Q(paid_amount__lte=models.F("total_amount")),
                name="txn_paid_lte_total",
            ),
        ]

    def __str__(self):
        return f"{self.number} ({self.type}, {self.status})"

    @property
    def is_draft(self) -> bool:
        return self.status == TransactionStatus.DRAFT

    @property
    def remaining_amount(self) -> Decimal:
        return self.total_amount - self.paid_amount


class LineModel(CommandOwnedModel):
    line_no = models.PositiveIntegerField()

    class Meta:
        abstract = True
        ordering = ["line_no"]


class StockItem(LineModel):
    transaction = models.ForeignKey(Transaction, on_delete=models.CASCADE, related_name="items")
    product = models.ForeignKey("references.Product", on_delete=models.PROTECT, related_name="+")
    warehouse = models.ForeignKey("references.Warehouse", on_delete=models.PROTECT, related_name="+")
    warehouse_to = models.ForeignKey(
        "references.Warehouse",
        null=True,
        blank=True,
        on_delete=models.PROTECT,
        related_name="+",
        help_text="Destination warehouse (transfers only)",
    )
    quantity = models.DecimalField(max_digits=QTY_DIGITS, decimal_places=QTY_PLACES)
    price = models.DecimalField(max_digits=MONEY_DIGITS, decimal_places=MONEY_PLACES, default=Decimal("0"))

    class Meta(LineModel.Meta):
        pass

    @property
    def amount(self) -> Decimal:
        return self.quantity * self.price


class CashEntry(LineModel):
    """Money moved through one register. amount is a magnitude; the type decides its sign."""

    transaction = models.ForeignKey(Transaction, on_delete=models.CASCADE, related_name="cash_entries")
    cash_register = models.ForeignKey("references.CashRegister", on_delete=models.PROTECT, related_name="+")
    currency = models.ForeignKey("references.Currency", on_delete=models.PROTECT, related_name="+")
    amount = models.DecimalField(max_digits=MONEY_DIGITS, decimal_places=MONEY_PLACES)

    class Meta(LineModel.Meta):
        verbose_name_plural = "Cash entries"


class DividendEntry(LineModel):
    transaction = models.ForeignKey(Transaction, on_delete=models.CASCADE, related_name="dividend_entries")
    partner = models.ForeignKey("references.Partner", on_delete=models.PROTECT, related_name="+")
    currency = models.ForeignKey("references.Currency", on_delete=models.PROTECT, related_name="+")
    kind = models.CharField(max_length=10, choices=EntryKind.choices)
    amount = models.DecimalField(max_digits=MONEY_DIGITS, decimal_places=MONEY_PLACES)

    class Meta(LineModel.Meta):
        verbose_name_plural = "Dividend entries"


class SalaryEntry(LineModel):
    transaction = models.ForeignKey(Transaction, on_delete=models.CASCADE, related_name="salary_entries")
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="+")
    currency = models.ForeignKey("references.Currency", on_delete=models.PROTECT, related_name="+")
    kind = models.CharField(max_length=10, choices=EntryKind.choices)
    amount = models.DecimalField(max_digits=MONEY_DIGITS, decimal_places=MONEY_PLACES)

    class Meta(LineModel.Meta):
        verbose_name_plural = "Salary entries"


class ServiceEntry(LineModel):
    transaction = models.ForeignKey(Transaction, on_delete=models.CASCADE, related_name="service_entries")
    service = models.ForeignKey("references.Service", on_delete=models.PROTECT, related_name="+")
    quantity = models.DecimalField(max_digits=QTY_DIGITS, decimal_places=QTY_PLACES)
    price = models.DecimalField(max_digits=MONEY_DIGITS, decimal_places=MONEY_PLACES, default=Decimal("0"))
    note = models.CharField(max_length=255, blank=True, default="")

    class Meta(LineModel.Meta):
        verbose_name_plural = "Service entries"

    @property
    def amount(self) -> Decimal:
        return self.quantity * self.price
