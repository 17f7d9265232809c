# projections/queries.py
"""
Read-side queries over the balance projections.

Everything here reads materialized rows (or the posting history for
movements); nothing recomputes balances from documents. Amounts are
returned as strings so the API never loses precision.
"""

from collections import defaultdict
from decimal import Decimal
from typing import Any, Dict, List, Optional

from django.contrib.auth import get_user_model

from accounting.posting import Ledger, StockPosition
from projections.models import (
    CashBalance,
    CounterpartyBalance,
    PartnerDividendBalance,
    PostingLine,
    SalaryBalance,
    StockBalance,
)
from references.models import CashRegister, Currency, Partner, Warehouse

ZERO = Decimal("0")
TOP_N = 5


def _s(value: Decimal) -> str:
    return str(value)


# =============================================================================
# Cash
# =============================================================================

def cash_balances(cash_register_id=None, currency_id=None) -> List[Dict[str, Any]]:
    qs = CashBalance.objects.select_related("cash_register", "currency").order_by(
        "cash_register__name", "currency__code",
    )
    if cash_register_id:
        qs = qs.filter(cash_register_id=cash_register_id)
    if currency_id:
        qs = qs.filter(currency_id=currency_id)
    return [
        {
            "cash_register_id": row.cash_register_id,
            "cash_register_name": row.cash_register.name,
            "kind": row.cash_register.kind,
            "currency_id": row.currency_id,
            "currency_code": row.currency.code,
            "balance": _s(row.balance),
            "movement_count": row.movement_count,
        }
        for row in qs
    ]


def cash_summary() -> Dict[str, Any]:
    """
    Balance per active register, plus an informational total converted
    into the default currency with each currency's exchange_rate.
    """
    default = Currency.get_default()
    balances = defaultdict(list)
    for row in CashBalance.objects.select_related("currency"):
        balances[row.cash_register_id].append(row)

    registers = []
    total_in_default = ZERO
    for register in CashRegister.objects.active().select_related("currency").order_by("name"):
        rows = balances.get(register.pk, [])
        in_default = sum((row.currency.to_default(row.balance) for row in rows), ZERO)
        total_in_default += in_default
        registers.append({
            "cash_register_id": register.pk,
            "name": register.name,
            "kind": register.kind,
            "currency_code": register.currency.code,
            "balance": _s(sum((row.balance for row in rows if row.currency_id == register.currency_id), ZERO)),
            "balance_in_default": _s(default.quantize(in_default) if default else in_default),
        })

    return {
        "registers": registers,
        "default_currency": default.code if default else None,
        "total_in_default": _s(default.quantize(total_in_default) if default else total_in_default),
    }


# =============================================================================
# Stock
# =============================================================================

def _stock_row(row: StockBalance) -> Dict[str, Any]:
    return {
        "warehouse_id": row.warehouse_id,
        "warehouse_name": row.warehouse.name,
        "product_id": row.product_id,
        "product_name": row.product.name,
        "unit": row.product.unit,
        "quantity": _s(row.quantity),
        "avg_cost": _s(row.avg_cost),
        "total_value": _s(row.value),
    }


def stock_balances(group_by: str = "warehouse", warehouse_id=None, product_id=None,
                   include_empty: bool = False) -> List[Dict[str, Any]]:
    """
    Stock positions grouped by warehouse (default) or by product.

    A product group carries the total quantity and value across
    warehouses, and the resulting average cost.
    """
    qs = StockBalance.objects.select_related("warehouse", "product").order_by(
        "warehouse__name", "product__name",
    )
    if warehouse_id:
        qs = qs.filter(warehouse_id=warehouse_id)
    if product_id:
        qs = qs.filter(product_id=product_id)
    if not include_empty:
        qs = qs.exclude(quantity=0)

    groups: Dict[int, Dict[str, Any]] = {}
    for row in qs:
        if group_by == "product":
            group = groups.setdefault(row.product_id, {
                "product_id": row.product_id,
                "product_name": row.product.name,
                "unit": row.product.unit,
                "position": StockPosition(),
                "warehouses": [],
            })
            group["warehouses"].append(_stock_row(row))
        else:
            group = groups.setdefault(row.warehouse_id, {
                "warehouse_id": row.warehouse_id,
                "warehouse_name": row.warehouse.name,
                "position": StockPosition(),
                "items": [],
            })
            group["items"].append(_stock_row(row))
        group["position"] = group["position"].add(row.quantity, row.value)

    result = []
    for group in groups.values():
        position = group.pop("position")
        group["quantity"] = _s(position.quantity)
        group["total_value"] = _s(position.value)
        if group_by == "product":
            group["avg_cost"] = _s(position.avg_cost)
        result.append(group)
    return result


def stock_summary() -> Dict[str, Any]:
    positions = defaultdict(list)
    for row in StockBalance.objects.exclude(quantity=0):
        positions[row.warehouse_id].append(row)

    warehouses = []
    grand_total = ZERO
    for warehouse in Warehouse.objects.active().order_by("name"):
        rows = positions.get(warehouse.pk, [])
        value = sum((row.value for row in rows), ZERO)
        grand_total += value
        warehouses.append({
            "warehouse_id": warehouse.pk,
            "name": warehouse.name,
            "products": len(rows),
            "total_quantity": _s(sum((row.quantity for row in rows), ZERO)),
            "total_value": _s(value),
        })
    return {"warehouses": warehouses, "total_value": _s(grand_total)}


# =============================================================================
# Counterparties
# =============================================================================

def _balance_type(balance: Decimal) -> str:
    if balance > ZERO:
        return "receivable"
    if balance < ZERO:
        return "payable"
    return "settled"


def _counterparty_row(row: CounterpartyBalance) -> Dict[str, Any]:
    return {
        "counterparty_id": row.counterparty_id,
        "counterparty_name": row.counterparty.name,
        "currency_id": row.currency_id,
        "currency_code": row.currency.code,
        "balance": _s(row.balance),
        "type": _balance_type(row.balance),
    }


def counterparty_balances(debtors_only: bool = False, creditors_only: bool = False,
                          currency_id=None, counterparty_id=None) -> List[Dict[str, Any]]:
    """
    Signed balances per counterparty and currency.

    debtors_only keeps receivables (balance > 0), creditors_only keeps
    payables (balance < 0).
    """
    qs = CounterpartyBalance.objects.select_related("counterparty", "currency").order_by(
        "counterparty__name", "currency__code",
    )
    if debtors_only:
        qs = qs.filter(balance__gt=0)
    if creditors_only:
        qs = qs.filter(balance__lt=0)
    if currency_id:
        qs = qs.filter(currency_id=currency_id)
    if counterparty_id:
        qs = qs.filter(counterparty_id=counterparty_id)
    return [_counterparty_row(row) for row in qs]


def counterparty_summary() -> Dict[str, Any]:
    rows = list(CounterpartyBalance.objects.select_related("counterparty", "currency").exclude(balance=0))

    by_currency: Dict[str, Dict[str, Decimal]] = defaultdict(lambda: {"receivable": ZERO, "payable": ZERO})
    for row in rows:
        bucket = by_currency[row.currency.code]
        if row.balance > ZERO:
            bucket["receivable"] += row.balance
        else:
            bucket["payable"] += -row.balance

    debtors = sorted((r for r in rows if r.balance > ZERO), key=lambda r: r.balance, reverse=True)
    creditors = sorted((r for r in rows if r.balance < ZERO), key=lambda r: r.balance)

    return {
        "by_currency": [
            {
                "currency_code": code,
                "receivable": _s(sums["receivable"]),
                "payable": _s(sums["payable"]),
                "net": _s(sums["receivable"] - sums["payable"]),
            }
            for code, sums in sorted(by_currency.items())
        ],
        "debtors_count": len({r.counterparty_id for r in debtors}),
        "creditors_count": len({r.counterparty_id for r in creditors}),
        "top_debtors": [_counterparty_row(r) for r in debtors[:TOP_N]],
        "top_creditors": [_counterparty_row(r) for r in creditors[:TOP_N]],
    }


# =============================================================================
# Dividends / salary
# =============================================================================

def _accrual_row(row, subject: str, name: str) -> Dict[str, Any]:
    return {
        f"{subject}_id": getattr(row, f"{subject}_id"),
        f"{subject}_name": name,
        "currency_id": row.currency_id,
        "currency_code": row.currency.code,
        "accrued": _s(row.accrued),
        "paid": _s(row.paid),
        "outstanding": _s(row.balance),
    }


def _by_currency(rows) -> List[Dict[str, Any]]:
    sums: Dict[str, Dict[str, Decimal]] = defaultdict(lambda: {"accrued": ZERO, "paid": ZERO, "outstanding": ZERO})
    for row in rows:
        bucket = sums[row.currency.code]
        bucket["accrued"] += row.accrued
        bucket["paid"] += row.paid
        bucket["outstanding"] += row.balance
    return [
        {"currency_code": code, **{k: _s(v) for k, v in values.items()}}
        for code, values in sorted(sums.items())
    ]


def dividend_balances(partner_id=None, currency_id=None) -> List[Dict[str, Any]]:
    qs = PartnerDividendBalance.objects.select_related("partner", "currency").order_by(
        "partner__name", "currency__code",
    )
    if partner_id:
        qs = qs.filter(partner_id=partner_id)
    if currency_id:
        qs = qs.filter(currency_id=currency_id)
    return [_accrual_row(row, "partner", row.partner.name) for row in qs]


def dividend_summary() -> Dict[str, Any]:
    rows = list(PartnerDividendBalance.objects.select_related("partner", "currency"))
    per_partner = defaultdict(list)
    for row in rows:
        per_partner[row.partner_id].append(row)

    partners = []
    for partner in Partner.objects.active().order_by("name"):
        partners.append({
            "partner_id": partner.pk,
            "name": partner.name,
            "share_percentage": _s(partner.share_percentage),
            "balances": [_accrual_row(row, "partner", partner.name) for row in per_partner.get(partner.pk, [])],
        })
    return {"by_currency": _by_currency(rows), "partners": partners}


def _user_name(user) -> str:
    return getattr(user, "name", "") or user.get_username()


def salary_balances(user_id=None, currency_id=None) -> List[Dict[str, Any]]:
    qs = SalaryBalance.objects.select_related("user", "currency").order_by("user_id", "currency__code")
    if user_id:
        qs = qs.filter(user_id=user_id)
    if currency_id:
        qs = qs.filter(currency_id=currency_id)
    return [_accrual_row(row, "user", _user_name(row.user)) for row in qs]


def salary_summary() -> Dict[str, Any]:
    rows = list(SalaryBalance.objects.select_related("user", "currency"))
    per_user = defaultdict(list)
    for row in rows:
        per_user[row.user_id].append(row)

    users = []
    for user in get_user_model().objects.filter(pk__in=per_user).order_by("pk"):
        users.append({
            "user_id": user.pk,
            "name": _user_name(user),
            "balances": [_accrual_row(row, "user", _user_name(user)) for row in per_user[user.pk]],
        })
    return {"by_currency": _by_currency(rows), "users": users}


# =============================================================================
# Movements
# =============================================================================

SUBJECT_FILTERS = {
    Ledger.CASH: "cash_register_id",
    Ledger.STOCK: "warehouse_id",
    Ledger.COUNTERPARTY: "counterparty_id",
    Ledger.DIVIDEND: "partner_id",
    Ledger.SALARY: "user_id",
}

MOVEMENT_FIELDS = {
    Ledger.CASH: ("amount",),
    Ledger.STOCK: ("quantity", "value"),
    Ledger.COUNTERPARTY: ("amount",),
    Ledger.DIVIDEND: ("accrued", "paid"),
    Ledger.SALARY: ("accrued", "paid"),
}


def movements(ledger: str, filters: Optional[Dict[str, Any]] = None, limit: int = 200) -> List[Dict[str, Any]]:
    """
    Posting history for one ledger, newest first.

    filters may hold the ledger's subject id field (cash_register_id,
    warehouse_id, ...), product_id, currency_id, date_from, date_to.
    """
    filters = filters or {}
    subject = SUBJECT_FILTERS[ledger]
    qs = PostingLine.objects.filter(ledger=ledger)
    for name in (subject, "product_id", "currency_id"):
        if filters.get(name):
            qs = qs.filter(**{name: filters[name]})
    if filters.get("date_from"):
        qs = qs.filter(date__gte=filters["date_from"])
    if filters.get("date_to"):
        qs = qs.filter(date__lte=filters["date_to"])

    qs = qs.select_related("currency").order_by("-stream_sequence", "-line_no")[:limit]
    return [
        {
            "transaction_id": line.transaction_id,
            "transaction_number": line.transaction_number,
            "transaction_type": line.transaction_type,
            "date": line.date.isoformat(),
            "is_reversal": line.is_reversal,
            subject: getattr(line, subject),
            "product_id": line.product_id,
            "currency_code": line.currency.code if line.currency_id else None,
            **{name: _s(getattr(line, name)) for name in MOVEMENT_FIELDS[ledger]},
        }
        for line in qs
    ]
