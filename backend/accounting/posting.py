# accounting/posting.py
"""
Posting engine.

Turns a validated TransactionDocument into the list of postings that a
confirmation applies to the balance projections. A posting is a signed
delta against one keyed balance:

    ledger        key                              deltas
    ------------  -------------------------------  -----------------
    cash          (cash_register_id, currency_id)  amount
    stock         (warehouse_id, product_id)       quantity, value
    counterparty  (counterparty_id, currency_id)   amount
    dividend      (partner_id, currency_id)        accrued, paid
    salary        (user_id, currency_id)           accrued, paid

Stock is valued at moving average cost. A position stores its quantity
and total value; outgoing stock takes value at the current average
(or the whole remaining value when the position is emptied), incoming
purchase stock adds qty * price. Because the value delta itself is
recorded, negating a posting list restores every balance exactly.

Nothing here touches the database: current stock positions are passed
in by the caller (see accounting.locking).
"""

from dataclasses import dataclass, replace
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from accounting.aggregates import TransactionDocument
from accounting.exceptions import FieldError, InsufficientStock
from accounting.types import EntryKind, TYPE_RULES, TransactionType
from accounting.validators import DocumentTotals

ZERO = Decimal("0")
VALUE_Q = Decimal("0.000001")

StockKey = Tuple[int, int]  # (warehouse_id, product_id)


class Ledger:
    CASH = "cash"
    STOCK = "stock"
    COUNTERPARTY = "counterparty"
    DIVIDEND = "dividend"
    SALARY = "salary"

    # Lock order across ledgers
    ALL = (STOCK, CASH, COUNTERPARTY, DIVIDEND, SALARY)


@dataclass(frozen=True)
class Posting:
    ledger: str
    subject_id: int
    currency_id: Optional[int] = None
    product_id: Optional[int] = None
    amount: Decimal = ZERO
    quantity: Decimal = ZERO
    value: Decimal = ZERO
    accrued: Decimal = ZERO
    paid: Decimal = ZERO

    @property
    def key(self) -> tuple:
        return (
            Ledger.ALL.index(self.ledger),
            self.subject_id,
            self.product_id or 0,
            self.currency_id or 0,
        )

    def negated(self) -> "Posting":
        return replace(
            self,
            amount=-self.amount,
            quantity=-self.quantity,
            value=-self.value,
            accrued=-self.accrued,
            paid=-self.paid,
        )

    def to_dict(self) -> dict:
        result = {"ledger": self.ledger, "subject_id": self.subject_id}
        if self.currency_id is not None:
            result["currency_id"] = self.currency_id
        if self.product_id is not None:
            result["product_id"] = self.product_id
        if self.ledger == Ledger.STOCK:
            result["quantity"] = str(self.quantity)
            result["value"] = str(self.value)
        elif self.ledger in (Ledger.DIVIDEND, Ledger.SALARY):
            result["accrued"] = str(self.accrued)
            result["paid"] = str(self.paid)
        else:
            result["amount"] = str(self.amount)
        return result

    @classmethod
    def from_dict(cls, data: Mapping) -> "Posting":
        return cls(
            ledger=data["ledger"],
            subject_id=int(data["subject_id"]),
            currency_id=data.get("currency_id"),
            product_id=data.get("product_id"),
            amount=Decimal(data.get("amount", "0")),
            quantity=Decimal(data.get("quantity", "0")),
            value=Decimal(data.get("value", "0")),
            accrued=Decimal(data.get("accrued", "0")),
            paid=Decimal(data.get("paid", "0")),
        )


@dataclass(frozen=True)
class StockPosition:
    quantity: Decimal = ZERO
    value: Decimal = ZERO

    @property
    def avg_cost(self) -> Decimal:
        if self.quantity <= ZERO:
            return ZERO
        return (self.value / self.quantity).quantize(VALUE_Q, rounding=ROUND_HALF_UP)

    def add(self, quantity: Decimal, value: Decimal) -> "StockPosition":
        return StockPosition(self.quantity + quantity, self.value + value)


def _value_out(position: StockPosition, quantity: Decimal) -> Decimal:
    if quantity == position.quantity:
        return position.value
    return (position.value * quantity / position.quantity).quantize(VALUE_Q, rounding=ROUND_HALF_UP)


def _take(positions: Dict[StockKey, StockPosition], key: StockKey, quantity: Decimal, path: str) -> Decimal:
    position = positions.get(key, StockPosition())
    if quantity > position.quantity:
        raise InsufficientStock(
            f"Not enough stock: {position.quantity} available, {quantity} requested.",
            errors=[FieldError(path, f"Only {position.quantity} in stock.")],
        )
    value = _value_out(position, quantity)
    positions[key] = position.add(-quantity, -value)
    return value


def _put(positions: Dict[StockKey, StockPosition], key: StockKey, quantity: Decimal, value: Decimal) -> None:
    positions[key] = positions.get(key, StockPosition()).add(quantity, value)


def compute_postings(
    doc: TransactionDocument,
    totals: DocumentTotals,
    positions: Mapping[StockKey, StockPosition],
) -> List[Posting]:
    """
    Build the postings for confirming doc.

    positions holds the current (locked) stock positions for every key in
    doc.stock_keys(); missing keys count as empty.

    Raises:
        InsufficientStock: a sale or transfer line takes more than is on hand
    """
    rule = TYPE_RULES[doc.type]
    working: Dict[StockKey, StockPosition] = dict(positions)
    postings: List[Posting] = []

    for idx, item in enumerate(doc.items):
        source = (item.warehouse_id, item.product_id)
        path = f"items[{idx}].quantity"
        if doc.type == TransactionType.PURCHASE:
            value = (item.quantity * item.price).quantize(VALUE_Q, rounding=ROUND_HALF_UP)
            _put(working, source, item.quantity, value)
            postings.append(Posting(
                Ledger.STOCK, item.warehouse_id, product_id=item.product_id,
                quantity=item.quantity, value=value,
            ))
            continue

        value = _take(working, source, item.quantity, path)
        postings.append(Posting(
            Ledger.STOCK, item.warehouse_id, product_id=item.product_id,
            quantity=-item.quantity, value=-value,
        ))
        if doc.type == TransactionType.TRANSFER:
            destination = (item.warehouse_to_id, item.product_id)
            _put(working, destination, item.quantity, value)
            postings.append(Posting(
                Ledger.STOCK, item.warehouse_to_id, product_id=item.product_id,
                quantity=item.quantity, value=value,
            ))

    for entry in doc.cash_entries:
        postings.append(Posting(
            Ledger.CASH, entry.cash_register_id, currency_id=entry.currency_id,
            amount=rule.cash_direction * abs(entry.amount),
        ))

    if rule.counterparty_direction:
        if rule.partial_payment:
            delta = rule.counterparty_direction * (totals.total - totals.paid)
        else:
            delta = rule.counterparty_direction * totals.cash
        if delta != ZERO:
            postings.append(Posting(
                Ledger.COUNTERPARTY, doc.counterparty_id, currency_id=doc.currency_id,
                amount=delta,
            ))

    for entry in doc.dividend_entries:
        postings.append(_entry_posting(Ledger.DIVIDEND, entry.partner_id, entry))
    for entry in doc.salary_entries:
        postings.append(_entry_posting(Ledger.SALARY, entry.user_id, entry))

    return postings


def _entry_posting(ledger: str, subject_id: int, entry) -> Posting:
    if entry.kind == EntryKind.ACCRUAL:
        return Posting(ledger, subject_id, currency_id=entry.currency_id, accrued=entry.amount)
    return Posting(ledger, subject_id, currency_id=entry.currency_id, paid=entry.amount)


def negate_postings(postings: Iterable[Posting]) -> List[Posting]:
    return [p.negated() for p in postings]


def stock_keys(postings: Iterable[Posting]) -> List[StockKey]:
    return sorted({(p.subject_id, p.product_id) for p in postings if p.ledger == Ledger.STOCK})


def check_stock_effects(
    postings: Iterable[Posting],
    positions: Mapping[StockKey, StockPosition],
) -> Dict[StockKey, StockPosition]:
    """
    Apply the stock postings to positions and return the result.

    Raises:
        InsufficientStock: any position would end up with negative quantity
    """
    result: Dict[StockKey, StockPosition] = dict(positions)
    for posting in postings:
        if posting.ledger != Ledger.STOCK:
            continue
        key = (posting.subject_id, posting.product_id)
        result[key] = result.get(key, StockPosition()).add(posting.quantity, posting.value)

    short = [key for key, pos in result.items() if pos.quantity < ZERO]
    if short:
        errors = [
            FieldError(
                "items",
                f"Warehouse {warehouse_id}, product {product_id}: "
                f"{result[(warehouse_id, product_id)].quantity} after reversal.",
            )
            for warehouse_id, product_id in sorted(short)
        ]
        raise InsufficientStock(
            "Reversing this transaction would leave negative stock.",
            errors=errors,
        )
    return result
