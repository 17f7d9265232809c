# accounting/locking.py
"""
Row locking for confirm and cancel.

Lock order is fixed for every command: the document row first, then
StockBalance rows, then cash, counterparty, dividend and salary balance
rows, each group sorted by key. Two commands touching the same rows
therefore always queue instead of deadlocking, and a sale sees the
quantity left by the sale that committed before it.
"""

import logging
from typing import Dict, Iterable

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import connection
from django.db.models import Q

from accounting.exceptions import NotFound
from accounting.models import Transaction
from accounting.posting import Ledger, Posting, StockKey, StockPosition
from projections.models import BALANCE_MODELS, StockBalance

logger = logging.getLogger(__name__)


def set_lock_timeout() -> None:
    """Bound lock waits for the current database transaction (PostgreSQL only)."""
    timeout_ms = int(getattr(settings, "LEDGER_LOCK_TIMEOUT_MS", 0) or 0)
    if timeout_ms > 0 and connection.vendor == "postgresql":
        with connection.cursor() as cursor:
            cursor.execute(f"SET LOCAL lock_timeout = {timeout_ms}")


def lock_transaction(transaction_id) -> Transaction:
    """
    Lock a document row by primary key or public_id.

    Raises:
        NotFound
    """
    qs = Transaction.objects.select_for_update()
    try:
        if isinstance(transaction_id, int) or str(transaction_id).isdigit():
            return qs.get(pk=int(transaction_id))
        return qs.get(public_id=transaction_id)
    except (Transaction.DoesNotExist, ValueError, DjangoValidationError):
        raise NotFound()


def lock_stock_positions(keys: Iterable[StockKey]) -> Dict[StockKey, StockPosition]:
    """Lock the StockBalance rows for keys and return their positions."""
    keys = sorted(set(keys))
    if not keys:
        return {}
    condition = Q()
    for warehouse_id, product_id in keys:
        condition |= Q(warehouse_id=warehouse_id, product_id=product_id)
    rows = (
        StockBalance.objects.select_for_update()
        .filter(condition)
        .order_by("warehouse_id", "product_id")
    )
    return {
        (row.warehouse_id, row.product_id): StockPosition(row.quantity, row.value)
        for row in rows
    }


def lock_balance_rows(postings: Iterable[Posting]) -> int:
    """
    Lock the existing non-stock balance rows the postings will touch.

    Rows that do not exist yet are created by the projection inside the
    same transaction. Returns the number of rows locked.
    """
    postings = list(postings)
    locked = 0
    for ledger in Ledger.ALL:
        if ledger == Ledger.STOCK:
            continue
        keys = sorted({(p.subject_id, p.currency_id) for p in postings if p.ledger == ledger})
        if not keys:
            continue
        model, subject = BALANCE_MODELS[ledger]
        condition = Q()
        for subject_id, currency_id in keys:
            condition |= Q(**{f"{subject}_id": subject_id, "currency_id": currency_id})
        rows = list(
            model.objects.select_for_update()
            .filter(condition)
            .order_by(f"{subject}_id", "currency_id")
        )
        locked += len(rows)
    return locked
