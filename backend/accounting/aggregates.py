"""
Aggregate definitions for ledger documents.

Two views of a Transaction live here:

- TransactionDocument: the in-memory document (header + line groups)
  that the validator checks and the posting engine turns into postings.
  Built from command input or from the stored write model.
- TransactionAggregate: the lifecycle state reconstituted by replaying
  the document's own event stream (aggregate_type="Transaction",
  aggregate_id=public_id). Cancellation reads the confirmed postings
  from here, so a reversal always negates exactly what was applied.
"""
from dataclasses import dataclass, field
from datetime import date as date_type
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Set

from accounting.exceptions import FieldError
from events.emitter import get_aggregate_events
from events.types import EventTypes

AGGREGATE_TYPE = "Transaction"


INVALID_NUMBER = "A valid number is required."
INVALID_ID = "A valid id is required."
INVALID_DATE = "A valid date (YYYY-MM-DD) is required."


class InputReader:
    """
    Coerces raw command input, recording a FieldError for every value
    that cannot be parsed instead of raising on the first one.
    """

    def __init__(self):
        self.errors: List[FieldError] = []

    def dec(self, path: str, value, default: Optional[Decimal] = None) -> Optional[Decimal]:
        if value is None or value == "":
            return default
        if isinstance(value, Decimal):
            return value
        try:
            return Decimal(str(value))
        except (InvalidOperation, ValueError):
            self.errors.append(FieldError(path, INVALID_NUMBER))
            return default

    def id(self, path: str, value) -> Optional[int]:
        if value in (None, ""):
            return None
        if hasattr(value, "pk"):
            return value.pk
        try:
            return int(value)
        except (TypeError, ValueError):
            self.errors.append(FieldError(path, INVALID_ID))
            return None

    def date(self, path: str, value) -> Optional[date_type]:
        if value in (None, ""):
            return None
        if isinstance(value, str):
            try:
                return date_type.fromisoformat(value)
            except ValueError:
                self.errors.append(FieldError(path, INVALID_DATE))
                return None
        return value


@dataclass
class StockLine:
    product_id: Optional[int]
    warehouse_id: Optional[int]
    quantity: Decimal
    price: Decimal = Decimal("0")
    warehouse_to_id: Optional[int] = None


@dataclass
class CashLine:
    cash_register_id: Optional[int]
    currency_id: Optional[int]
    amount: Decimal


@dataclass
class DividendLine:
    partner_id: Optional[int]
    currency_id: Optional[int]
    kind: str
    amount: Decimal


@dataclass
class SalaryLine:
    user_id: Optional[int]
    currency_id: Optional[int]
    kind: str
    amount: Decimal


@dataclass
class ServiceLine:
    service_id: Optional[int]
    quantity: Decimal
    price: Decimal = Decimal("0")
    note: str = ""


@dataclass
class TransactionDocument:
    type: str
    date: Optional[date_type]
    currency_id: Optional[int]
    total_amount: Optional[Decimal] = None
    paid_amount: Optional[Decimal] = None
    description: str = ""
    counterparty_id: Optional[int] = None
    partner_id: Optional[int] = None
    items: List[StockLine] = field(default_factory=list)
    cash_entries: List[CashLine] = field(default_factory=list)
    dividend_entries: List[DividendLine] = field(default_factory=list)
    salary_entries: List[SalaryLine] = field(default_factory=list)
    service_entries: List[ServiceLine] = field(default_factory=list)
    public_id: Optional[str] = None
    number: str = ""
    status: str = "draft"
    input_errors: List[FieldError] = field(default_factory=list, compare=False, repr=False)

    def stock_keys(self) -> Set[tuple]:
        """(warehouse_id, product_id) pairs touched by the stock items."""
        keys = set()
        for item in self.items:
            keys.add((item.warehouse_id, item.product_id))
            if item.warehouse_to_id:
                keys.add((item.warehouse_to_id, item.product_id))
        return keys


HEADER_FIELDS = (
    "date",
    "currency_id",
    "total_amount",
    "paid_amount",
    "description",
    "counterparty_id",
    "partner_id",
)


def _stock_lines(read: InputReader, rows) -> List[StockLine]:
    zero = Decimal("0")
    return [
        StockLine(
            product_id=read.id(f"items[{i}].product_id", r.get("product_id")),
            warehouse_id=read.id(f"items[{i}].warehouse_id", r.get("warehouse_id")),
            warehouse_to_id=read.id(f"items[{i}].warehouse_to_id", r.get("warehouse_to_id")),
            quantity=read.dec(f"items[{i}].quantity", r.get("quantity"), zero),
            price=read.dec(f"items[{i}].price", r.get("price"), zero),
        )
        for i, r in enumerate(rows)
    ]


def _cash_lines(read: InputReader, rows, default_currency_id) -> List[CashLine]:
    return [
        CashLine(
            cash_register_id=read.id(f"cash_entries[{i}].cash_register_id", r.get("cash_register_id")),
            currency_id=read.id(f"cash_entries[{i}].currency_id", r.get("currency_id")) or default_currency_id,
            amount=read.dec(f"cash_entries[{i}].amount", r.get("amount"), Decimal("0")),
        )
        for i, r in enumerate(rows)
    ]


def _dividend_lines(read: InputReader, rows, default_currency_id, default_kind) -> List[DividendLine]:
    return [
        DividendLine(
            partner_id=read.id(f"dividend_entries[{i}].partner_id", r.get("partner_id")),
            currency_id=read.id(f"dividend_entries[{i}].currency_id", r.get("currency_id")) or default_currency_id,
            kind=r.get("kind") or default_kind or "",
            amount=read.dec(f"dividend_entries[{i}].amount", r.get("amount"), Decimal("0")),
        )
        for i, r in enumerate(rows)
    ]


def _salary_lines(read: InputReader, rows, default_currency_id, default_kind) -> List[SalaryLine]:
    return [
        SalaryLine(
            user_id=read.id(f"salary_entries[{i}].user_id", r.get("user_id")),
            currency_id=read.id(f"salary_entries[{i}].currency_id", r.get("currency_id")) or default_currency_id,
            kind=r.get("kind") or default_kind or "",
            amount=read.dec(f"salary_entries[{i}].amount", r.get("amount"), Decimal("0")),
        )
        for i, r in enumerate(rows)
    ]


def _service_lines(read: InputReader, rows) -> List[ServiceLine]:
    zero = Decimal("0")
    return [
        ServiceLine(
            service_id=read.id(f"service_entries[{i}].service_id", r.get("service_id")),
            quantity=read.dec(f"service_entries[{i}].quantity", r.get("quantity"), zero),
            price=read.dec(f"service_entries[{i}].price", r.get("price"), zero),
            note=r.get("note") or "",
        )
        for i, r in enumerate(rows)
    ]


def document_from_input(data: Dict[str, Any], base: Optional[TransactionDocument] = None) -> TransactionDocument:
    """
    Build a document from command input.

    With base, only the keys present in data replace the base document's
    values; a line group that is present replaces the whole group.
    Values that cannot be parsed end up in doc.input_errors, which the
    validator reports with every other violation.
    """
    from accounting.types import TYPE_RULES

    read = InputReader()
    if base is None:
        doc = TransactionDocument(
            type=data.get("type") or "",
            date=read.date("date", data.get("date")),
            currency_id=read.id("currency_id", data.get("currency_id")),
        )
    else:
        doc = TransactionDocument(**{k: getattr(base, k) for k in base.__dataclass_fields__})

    for name in HEADER_FIELDS:
        if name not in data:
            continue
        value = data[name]
        if name in ("total_amount", "paid_amount"):
            value = read.dec(name, value)
        elif name.endswith("_id"):
            value = read.id(name, value)
        elif name == "date":
            value = read.date(name, value)
        elif name == "description":
            value = value or ""
        setattr(doc, name, value)

    rule = TYPE_RULES.get(doc.type)
    kind = rule.entry_kind if rule else None

    if "items" in data:
        doc.items = _stock_lines(read, data["items"] or [])
    if "cash_entries" in data:
        doc.cash_entries = _cash_lines(read, data["cash_entries"] or [], doc.currency_id)
    if "dividend_entries" in data:
        doc.dividend_entries = _dividend_lines(read, data["dividend_entries"] or [], doc.currency_id, kind)
    if "salary_entries" in data:
        doc.salary_entries = _salary_lines(read, data["salary_entries"] or [], doc.currency_id, kind)
    if "service_entries" in data:
        doc.service_entries = _service_lines(read, data["service_entries"] or [])
    doc.input_errors = read.errors
    return doc


def document_from_model(txn) -> TransactionDocument:
    """Load the stored write model (header + lines) as a document."""
    return TransactionDocument(
        type=txn.type,
        date=txn.date,
        currency_id=txn.currency_id,
        total_amount=txn.total_amount,
        paid_amount=txn.paid_amount,
        description=txn.description,
        counterparty_id=txn.counterparty_id,
        partner_id=txn.partner_id,
        items=[
            StockLine(
                product_id=i.product_id,
                warehouse_id=i.warehouse_id,
                warehouse_to_id=i.warehouse_to_id,
                quantity=i.quantity,
                price=i.price,
            )
            for i in txn.items.all().order_by("line_no")
        ],
        cash_entries=[
            CashLine(cash_register_id=c.cash_register_id, currency_id=c.currency_id, amount=c.amount)
            for c in txn.cash_entries.all().order_by("line_no")
        ],
        dividend_entries=[
            DividendLine(partner_id=d.partner_id, currency_id=d.currency_id, kind=d.kind, amount=d.amount)
            for d in txn.dividend_entries.all().order_by("line_no")
        ],
        salary_entries=[
            SalaryLine(user_id=s.user_id, currency_id=s.currency_id, kind=s.kind, amount=s.amount)
            for s in txn.salary_entries.all().order_by("line_no")
        ],
        service_entries=[
            ServiceLine(service_id=s.service_id, quantity=s.quantity, price=s.price, note=s.note)
            for s in txn.service_entries.all().order_by("line_no")
        ],
        public_id=str(txn.public_id),
        number=txn.number,
        status=txn.status,
    )


@dataclass
class ReferenceIndex:
    """
    The reference data a document points at, loaded once per command.

    currencies maps currency id -> decimal places; registers maps
    register id -> currency id; the remaining sets hold the ids that exist.
    """
    currencies: Dict[int, int] = field(default_factory=dict)
    registers: Dict[int, int] = field(default_factory=dict)
    products: Set[int] = field(default_factory=set)
    warehouses: Set[int] = field(default_factory=set)
    counterparties: Set[int] = field(default_factory=set)
    partners: Set[int] = field(default_factory=set)
    users: Set[int] = field(default_factory=set)
    services: Set[int] = field(default_factory=set)

    @classmethod
    def for_document(cls, doc: TransactionDocument) -> "ReferenceIndex":
        from django.contrib.auth import get_user_model
        from references.models import (
            CashRegister, Counterparty, Currency, Partner, Product, Service, Warehouse,
        )

        currency_ids = {doc.currency_id}
        currency_ids.update(c.currency_id for c in doc.cash_entries)
        currency_ids.update(d.currency_id for d in doc.dividend_entries)
        currency_ids.update(s.currency_id for s in doc.salary_entries)
        currency_ids.discard(None)

        def existing(model, ids):
            ids = {i for i in ids if i is not None}
            if not ids:
                return set()
            return set(model.objects.filter(pk__in=ids).values_list("pk", flat=True))

        warehouse_ids = {i.warehouse_id for i in doc.items} | {i.warehouse_to_id for i in doc.items}
        register_ids = {c.cash_register_id for c in doc.cash_entries if c.cash_register_id}
        partner_ids = {d.partner_id for d in doc.dividend_entries} | {doc.partner_id}

        return cls(
            currencies=dict(
                Currency.objects.filter(pk__in=currency_ids).values_list("pk", "decimal_places")
            ),
            registers=dict(
                CashRegister.objects.filter(pk__in=register_ids).values_list("pk", "currency_id")
            ),
            products=existing(Product, {i.product_id for i in doc.items}),
            warehouses=existing(Warehouse, warehouse_ids),
            counterparties=existing(Counterparty, {doc.counterparty_id}),
            partners=existing(Partner, partner_ids),
            users=existing(get_user_model(), {s.user_id for s in doc.salary_entries}),
            services=existing(Service, {s.service_id for s in doc.service_entries}),
        )


@dataclass
class TransactionAggregate:
    public_id: str
    type: Optional[str] = None
    number: str = ""
    status: str = "draft"
    created: bool = False
    deleted: bool = False
    confirmed_postings: List[dict] = field(default_factory=list)
    confirmed_event_id: Optional[str] = None
    cancelled_event_id: Optional[str] = None

    def apply(self, event) -> None:
        data = event.get_data()

        if event.event_type == EventTypes.TRANSACTION_CREATED:
            self.created = True
            self.type = data.get("type")
            self.number = data.get("number", "")
            self.status = "draft"
            return

        if event.event_type == EventTypes.TRANSACTION_DELETED:
            self.deleted = True
            return

        if event.event_type == EventTypes.TRANSACTION_CONFIRMED:
            self.status = "confirmed"
            self.confirmed_postings = list(data.get("postings", []))
            self.confirmed_event_id = str(event.id)
            return

        if event.event_type == EventTypes.TRANSACTION_CANCELLED:
            self.status = "cancelled"
            self.cancelled_event_id = str(event.id)
            return


def load_transaction_aggregate(public_id: str) -> Optional[TransactionAggregate]:
    events = get_aggregate_events(AGGREGATE_TYPE, public_id)
    if not events:
        return None
    aggregate = TransactionAggregate(public_id=str(public_id))
    for event in events:
        aggregate.apply(event)
    return aggregate
