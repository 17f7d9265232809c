# accounting/types.py
"""
Transaction types and the per-type rule table.

Every behavioural difference between document types is read from
TYPE_RULES: which parties and line groups a document may or must carry,
how cash entries are signed, how the total is computed, and the number
prefix. Validator and posting engine never branch on anything else.
"""

from dataclasses import dataclass
from typing import Dict, Optional

from django.db import models


class TransactionType(models.TextChoices):
    CASH_IN = "cash_in", "Cash in"
    CASH_OUT = "cash_out", "Cash out"
    SALE = "sale", "Sale"
    SALE_PAYMENT = "sale_payment", "Sale payment"
    PURCHASE = "purchase", "Purchase"
    PURCHASE_PAYMENT = "purchase_payment", "Purchase payment"
    TRANSFER = "transfer", "Transfer"
    DIVIDEND_ACCRUAL = "dividend_accrual", "Dividend accrual"
    DIVIDEND_PAYMENT = "dividend_payment", "Dividend payment"
    SALARY_ACCRUAL = "salary_accrual", "Salary accrual"
    SALARY_PAYMENT = "salary_payment", "Salary payment"


class TransactionStatus(models.TextChoices):
    DRAFT = "draft", "Draft"
    CONFIRMED = "confirmed", "Confirmed"
    CANCELLED = "cancelled", "Cancelled"


class EntryKind(models.TextChoices):
    ACCRUAL = "accrual", "Accrual"
    PAYMENT = "payment", "Payment"


class Requirement(models.TextChoices):
    REQUIRED = "required", "Required"
    OPTIONAL = "optional", "Optional"
    FORBIDDEN = "forbidden", "Forbidden"


class TotalRule(models.TextChoices):
    # qty * price over stock items and service entries
    LINES = "lines", "Stock and service lines"
    # sum of |amount| over cash entries
    CASH = "cash", "Cash entries"
    # sum of dividend / salary entry amounts
    ENTRIES = "entries", "Dividend or salary entries"


R = Requirement.REQUIRED
O = Requirement.OPTIONAL
F = Requirement.FORBIDDEN


@dataclass(frozen=True)
class TypeRule:
    counterparty: str
    partner: str
    items: str
    cash_entries: str
    dividend_entries: str
    salary_entries: str
    service_entries: str
    total_rule: str
    prefix: str
    # +1 money enters the register, -1 money leaves it, 0 no cash allowed
    cash_direction: int = 0
    entry_kind: Optional[str] = None
    needs_destination: bool = False
    # +1 receivable grows, -1 payable grows
    counterparty_direction: int = 0
    # cash must settle part of the document total (sale/purchase)
    partial_payment: bool = False

    @property
    def is_payment(self) -> bool:
        return self.entry_kind == EntryKind.PAYMENT or self.total_rule == TotalRule.CASH

    def requirement(self, group: str) -> str:
        return getattr(self, group)


TYPE_RULES: Dict[str, TypeRule] = {
    TransactionType.SALE: TypeRule(
        counterparty=R, partner=F, items=R, cash_entries=O,
        dividend_entries=F, salary_entries=F, service_entries=O,
        total_rule=TotalRule.LINES, prefix="SAL",
        cash_direction=1, counterparty_direction=1, partial_payment=True,
    ),
    TransactionType.PURCHASE: TypeRule(
        counterparty=R, partner=F, items=R, cash_entries=O,
        dividend_entries=F, salary_entries=F, service_entries=O,
        total_rule=TotalRule.LINES, prefix="PUR",
        cash_direction=-1, counterparty_direction=-1, partial_payment=True,
    ),
    TransactionType.SALE_PAYMENT: TypeRule(
        counterparty=R, partner=F, items=F, cash_entries=R,
        dividend_entries=F, salary_entries=F, service_entries=F,
        total_rule=TotalRule.CASH, prefix="SAP",
        cash_direction=1, counterparty_direction=-1,
    ),
    TransactionType.PURCHASE_PAYMENT: TypeRule(
        counterparty=R, partner=F, items=F, cash_entries=R,
        dividend_entries=F, salary_entries=F, service_entries=F,
        total_rule=TotalRule.CASH, prefix="PUP",
        cash_direction=-1, counterparty_direction=1,
    ),
    TransactionType.TRANSFER: TypeRule(
        counterparty=F, partner=F, items=R, cash_entries=F,
        dividend_entries=F, salary_entries=F, service_entries=F,
        total_rule=TotalRule.LINES, prefix="TRF",
        needs_destination=True,
    ),
    TransactionType.CASH_IN: TypeRule(
        counterparty=F, partner=F, items=F, cash_entries=R,
        dividend_entries=F, salary_entries=F, service_entries=F,
        total_rule=TotalRule.CASH, prefix="CIN",
        cash_direction=1,
    ),
    TransactionType.CASH_OUT: TypeRule(
        counterparty=F, partner=F, items=F, cash_entries=R,
        dividend_entries=F, salary_entries=F, service_entries=F,
        total_rule=TotalRule.CASH, prefix="COU",
        cash_direction=-1,
    ),
    TransactionType.DIVIDEND_ACCRUAL: TypeRule(
        counterparty=F, partner=O, items=F, cash_entries=F,
        dividend_entries=R, salary_entries=F, service_entries=F,
        total_rule=TotalRule.ENTRIES, prefix="DVA",
        entry_kind=EntryKind.ACCRUAL,
    ),
    TransactionType.DIVIDEND_PAYMENT: TypeRule(
        counterparty=F, partner=O, items=F, cash_entries=O,
        dividend_entries=R, salary_entries=F, service_entries=F,
        total_rule=TotalRule.ENTRIES, prefix="DVP",
        cash_direction=-1, entry_kind=EntryKind.PAYMENT,
    ),
    TransactionType.SALARY_ACCRUAL: TypeRule(
        counterparty=F, partner=F, items=F, cash_entries=F,
        dividend_entries=F, salary_entries=R, service_entries=F,
        total_rule=TotalRule.ENTRIES, prefix="SLA",
        entry_kind=EntryKind.ACCRUAL,
    ),
    TransactionType.SALARY_PAYMENT: TypeRule(
        counterparty=F, partner=F, items=F, cash_entries=O,
        dividend_entries=F, salary_entries=R, service_entries=F,
        total_rule=TotalRule.ENTRIES, prefix="SLP",
        cash_direction=-1, entry_kind=EntryKind.PAYMENT,
    ),
}

LINE_GROUPS = (
    "items",
    "cash_entries",
    "dividend_entries",
    "salary_entries",
    "service_entries",
)


def get_rule(transaction_type: str) -> TypeRule:
    try:
        return TYPE_RULES[transaction_type]
    except KeyError:
        raise ValueError(f"Unknown transaction type: {transaction_type!r}")


def type_choices() -> list:
    """[{value, label}] for every transaction type, in declaration order."""
    return [{"value": value, "label": label} for value, label in TransactionType.choices]
