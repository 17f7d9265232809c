# projections/balances.py
"""
Ledger balance projections.

Each projection consumes transaction.confirmed and transaction.cancelled
and applies the postings for its ledger to one keyed balance table:

- cash_balance:          CashBalance          (register, currency)
- stock_balance:         StockBalance         (warehouse, product)
- counterparty_balance:  CounterpartyBalance  (counterparty, currency)
- dividend_balance:      PartnerDividendBalance (partner, currency)
- salary_balance:        SalaryBalance        (user, currency)

posting_history writes every posting as a PostingLine; verify() on the
balance projections folds those lines and compares with the table.
"""

from decimal import Decimal
from typing import Any, Dict, List, Tuple
import logging

from django.db.models import Count, Sum

from accounting.posting import Ledger, Posting
from events.models import BusinessEvent
from events.types import EventTypes
from projections.base import BaseProjection, projection_registry
from projections.models import (
    BALANCE_MODELS,
    CashBalance,
    CounterpartyBalance,
    PartnerDividendBalance,
    PostingLine,
    SalaryBalance,
    StockBalance,
)


logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def event_postings(event: BusinessEvent) -> List[Posting]:
    return [Posting.from_dict(p) for p in event.get_data().get("postings", [])]


class PostingHistoryProjection(BaseProjection):
    """Writes one PostingLine per posting, in stream order."""

    @property
    def name(self) -> str:
        return "posting_history"

    @property
    def consumes(self) -> List[str]:
        return list(EventTypes.POSTING_EVENTS)

    def handle(self, event: BusinessEvent) -> None:
        from accounting.models import Transaction

        data = event.get_data()
        postings = event_postings(event)
        if not postings:
            return

        txn = Transaction.objects.filter(public_id=data["transaction_public_id"]).first()
        lines = []
        for line_no, posting in enumerate(postings, start=1):
            _, subject = BALANCE_MODELS[posting.ledger]
            lines.append(PostingLine(
                event=event,
                line_no=line_no,
                stream_sequence=event.stream_sequence,
                transaction=txn,
                transaction_number=data["number"],
                transaction_type=data["type"],
                date=data["date"],
                is_reversal=event.event_type == EventTypes.TRANSACTION_CANCELLED,
                ledger=posting.ledger,
                currency_id=posting.currency_id,
                product_id=posting.product_id,
                amount=posting.amount,
                quantity=posting.quantity,
                value=posting.value,
                accrued=posting.accrued,
                paid=posting.paid,
                **{f"{subject}_id": posting.subject_id},
            ))
        PostingLine.objects.bulk_create(lines)

    def _clear_projected_data(self) -> None:
        deleted, _ = PostingLine.objects.all().delete()
        logger.info("Cleared %s posting lines", deleted)

    def snapshot(self) -> Dict[Any, Dict[str, Decimal]]:
        rows = PostingLine.objects.values("event_id").annotate(lines=Count("id"))
        return {str(r["event_id"]): {"lines": Decimal(r["lines"])} for r in rows}

    def fold(self) -> Dict[Any, Dict[str, Decimal]]:
        result = {}
        events = BusinessEvent.objects.filter(event_type__in=self.consumes).order_by("stream_sequence")
        for event in events:
            count = len(event.get_data().get("postings", []))
            if count:
                result[str(event.id)] = {"lines": Decimal(count)}
        return result


class LedgerBalanceProjection(BaseProjection):
    """
    Applies the postings of one ledger to its balance table.

    Subclasses set ledger, model, key_fields (model field names of the
    key, subject first) and sums (model field -> PostingLine field), and
    may override add() for derived fields.
    """

    ledger: str = ""
    model = None
    key_fields: Tuple[str, ...] = ()
    sums: Dict[str, str] = {}

    @property
    def consumes(self) -> List[str]:
        return list(EventTypes.POSTING_EVENTS)

    def key_for(self, posting: Posting) -> Dict[str, int]:
        values = (posting.subject_id, posting.product_id if "product_id" in self.key_fields else posting.currency_id)
        return dict(zip(self.key_fields, values))

    def handle(self, event: BusinessEvent) -> None:
        for posting in event_postings(event):
            if posting.ledger != self.ledger:
                continue
            row, _ = self.model.objects.select_for_update().get_or_create(**self.key_for(posting))
            self.add(row, posting)
            row.movement_count += 1
            row.last_event = event
            row.save()

    def add(self, row, posting: Posting) -> None:
        for model_field, posting_field in self.sums.items():
            setattr(row, model_field, getattr(row, model_field) + getattr(posting, posting_field))

    def _clear_projected_data(self) -> None:
        deleted, _ = self.model.objects.all().delete()
        logger.info("Cleared %s %s rows", deleted, self.model.__name__)

    def _quantize(self, field_name: str, value: Decimal) -> Decimal:
        places = self.model._meta.get_field(field_name).decimal_places
        return Decimal(value).quantize(Decimal(1).scaleb(-places))

    def snapshot(self) -> Dict[Any, Dict[str, Decimal]]:
        fields = list(self.key_fields) + list(self.sums)
        return {
            tuple(row[k] for k in self.key_fields): {f: self._quantize(f, row[f]) for f in self.sums}
            for row in self.model.objects.values(*fields)
        }

    def fold(self) -> Dict[Any, Dict[str, Decimal]]:
        line_keys = list(self.key_fields)
        posting_fields = sorted(set(self.sums.values()))
        rows = (
            PostingLine.objects.filter(ledger=self.ledger)
            .values(*line_keys)
            .annotate(**{f"sum_{f}": Sum(f) for f in posting_fields})
            .order_by()
        )
        result = {}
        for row in rows:
            sums = {f: row[f"sum_{f}"] or ZERO for f in posting_fields}
            derived = self.derive(sums)
            result[tuple(row[k] for k in line_keys)] = {
                name: self._quantize(name, value) for name, value in derived.items()
            }
        return result

    def derive(self, sums: Dict[str, Decimal]) -> Dict[str, Decimal]:
        return {model_field: sums[posting_field] for model_field, posting_field in self.sums.items()}


class CashBalanceProjection(LedgerBalanceProjection):
    ledger = Ledger.CASH
    model = CashBalance
    key_fields = ("cash_register_id", "currency_id")
    sums = {"balance": "amount"}

    @property
    def name(self) -> str:
        return "cash_balance"


class StockBalanceProjection(LedgerBalanceProjection):
    ledger = Ledger.STOCK
    model = StockBalance
    key_fields = ("warehouse_id", "product_id")
    sums = {"quantity": "quantity", "value": "value"}

    @property
    def name(self) -> str:
        return "stock_balance"


class CounterpartyBalanceProjection(LedgerBalanceProjection):
    ledger = Ledger.COUNTERPARTY
    model = CounterpartyBalance
    key_fields = ("counterparty_id", "currency_id")
    sums = {"balance": "amount"}

    @property
    def name(self) -> str:
        return "counterparty_balance"


class AccrualBalanceProjection(LedgerBalanceProjection):
    sums = {"accrued": "accrued", "paid": "paid"}

    def add(self, row, posting: Posting) -> None:
        super().add(row, posting)
        row.balance = row.accrued - row.paid

    def snapshot(self) -> Dict[Any, Dict[str, Decimal]]:
        fields = list(self.key_fields) + ["accrued", "paid", "balance"]
        return {
            tuple(row[k] for k in self.key_fields): {
                name: self._quantize(name, row[name]) for name in ("accrued", "paid", "balance")
            }
            for row in self.model.objects.values(*fields)
        }

    def derive(self, sums: Dict[str, Decimal]) -> Dict[str, Decimal]:
        return {
            "accrued": sums["accrued"],
            "paid": sums["paid"],
            "balance": sums["accrued"] - sums["paid"],
        }


class DividendBalanceProjection(AccrualBalanceProjection):
    ledger = Ledger.DIVIDEND
    model = PartnerDividendBalance
    key_fields = ("partner_id", "currency_id")

    @property
    def name(self) -> str:
        return "dividend_balance"


class SalaryBalanceProjection(AccrualBalanceProjection):
    ledger = Ledger.SALARY
    model = SalaryBalance
    key_fields = ("user_id", "currency_id")

    @property
    def name(self) -> str:
        return "salary_balance"


projection_registry.register(PostingHistoryProjection())
projection_registry.register(CashBalanceProjection())
projection_registry.register(StockBalanceProjection())
projection_registry.register(CounterpartyBalanceProjection())
projection_registry.register(DividendBalanceProjection())
projection_registry.register(SalaryBalanceProjection())
