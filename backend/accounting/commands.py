# accounting/commands.py
"""
Command layer for ledger documents.

Commands are the single point where business operations happen.
Views call commands; commands enforce rules and emit events.

Pattern:
1. Validate permissions (require)
2. Apply business policies (can_*)
3. Validate the document and lock the rows it touches
4. Perform the operation (model changes)
5. Emit event (emit_event) and apply it to the balance projections
6. Return CommandResult

Each command runs in one database transaction. Any LedgerError raised
inside it rolls back every write (document row, event, balances) and is
returned to the caller through CommandResult.fail(). Lock timeouts and
deadlocks surface as a retryable Conflict.

ALL state changes MUST go through commands to ensure events are emitted.
"""

import hashlib
import json
import logging
from datetime import date as date_type, datetime
from decimal import Decimal
from typing import Optional

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError, OperationalError, transaction
from django.utils import timezone

from accounts.authz import ActorContext, require
from accounting.aggregates import (
    AGGREGATE_TYPE,
    ReferenceIndex,
    TransactionDocument,
    document_from_input,
    document_from_model,
    load_transaction_aggregate,
)
from accounting.exceptions import (
    AlreadyFinalized,
    Conflict,
    FieldError,
    InvalidState,
    LedgerError,
    NotFound,
    ValidationError,
)
from accounting.locking import (
    lock_balance_rows,
    lock_stock_positions,
    lock_transaction,
    set_lock_timeout,
)
from accounting.models import (
    CashEntry,
    DividendEntry,
    DocumentSequence,
    SalaryEntry,
    ServiceEntry,
    StockItem,
    Transaction,
)
from accounting.policies import (
    can_cancel_transaction,
    can_change_type,
    can_confirm_transaction,
    can_delete_transaction,
    can_edit_transaction,
)
from accounting.posting import (
    Posting,
    check_stock_effects,
    compute_postings,
    negate_postings,
    stock_keys,
)
from accounting.types import LINE_GROUPS, TransactionStatus, get_rule
from accounting.validators import validate_document
from events.emitter import emit_event, get_aggregate_events
from events.models import BusinessEvent
from events.types import (
    EventTypes,
    TransactionCancelledData,
    TransactionConfirmedData,
    TransactionCreatedData,
    TransactionDeletedData,
    TransactionUpdatedData,
)
from projections.base import apply_projections
from projections.write_barrier import command_writes_allowed

logger = logging.getLogger(__name__)


class CommandResult:
    """
    Wrapper for command results with success/failure info.

    Usage:
        result = confirm_transaction(actor, txn.public_id)
        if result.success:
            txn = result.data
            event = result.event
        else:
            error_message = result.error
            status = result.exception.status_code
    """

    def __init__(self, success: bool, data=None, error: str = None, event=None, exception=None):
        self.success = success
        self.data = data
        self.error = error
        self.event = event  # The emitted event, if any
        self.exception = exception  # The LedgerError behind a failure

    @classmethod
    def ok(cls, data=None, event=None):
        return cls(success=True, data=data, event=event)

    @classmethod
    def fail(cls, error):
        if isinstance(error, LedgerError):
            return cls(success=False, error=error.detail, exception=error)
        return cls(success=False, error=str(error))


def _jsonable(value):
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (date_type, datetime)):
        return value.isoformat()
    return value


def _changes_hash(changes: dict) -> str:
    payload = json.dumps(changes, sort_keys=True, separators=(",", ":"), default=str).encode()
    return hashlib.sha256(payload).hexdigest()[:12]


def _idempotency_hash(prefix: str, payload: dict) -> str:
    normalized = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str).encode()
    digest = hashlib.sha256(normalized).hexdigest()[:16]
    return f"{prefix}:{digest}"


def _next_document_number(transaction_type: str, doc_date: date_type) -> str:
    """
    Allocate the next document number for a (type, year) pair.

    Format: PREFIX-YY-NNNN, e.g. SAL-26-0001. Uses select_for_update to
    avoid concurrent duplicates; numbers are never reused, even when the
    draft that took one is deleted.
    """
    rule = get_rule(transaction_type)
    year = doc_date.year
    with command_writes_allowed():
        try:
            seq = DocumentSequence.objects.select_for_update().get(
                transaction_type=transaction_type,
                year=year,
            )
        except DocumentSequence.DoesNotExist:
            try:
                with transaction.atomic():
                    seq = DocumentSequence.objects.create(
                        transaction_type=transaction_type,
                        year=year,
                        next_value=1,
                    )
            except IntegrityError:
                seq = DocumentSequence.objects.select_for_update().get(
                    transaction_type=transaction_type,
                    year=year,
                )

        value = seq.next_value
        seq.next_value = value + 1
        seq.save(update_fields=["next_value", "updated_at"])

    return f"{rule.prefix}-{year % 100:02d}-{value:04d}"


def _write_lines(txn: Transaction, doc: TransactionDocument, groups=LINE_GROUPS) -> None:
    """Persist the given line groups of doc. Caller holds command_writes_allowed()."""
    if "items" in groups:
        StockItem.objects.bulk_create([
            StockItem(
                transaction=txn,
                line_no=no,
                product_id=line.product_id,
                warehouse_id=line.warehouse_id,
                warehouse_to_id=line.warehouse_to_id,
                quantity=line.quantity,
                price=line.price,
            )
            for no, line in enumerate(doc.items, start=1)
        ])
    if "cash_entries" in groups:
        CashEntry.objects.bulk_create([
            CashEntry(
                transaction=txn,
                line_no=no,
                cash_register_id=line.cash_register_id,
                currency_id=line.currency_id,
                amount=abs(line.amount),
            )
            for no, line in enumerate(doc.cash_entries, start=1)
        ])
    if "dividend_entries" in groups:
        DividendEntry.objects.bulk_create([
            DividendEntry(
                transaction=txn,
                line_no=no,
                partner_id=line.partner_id,
                currency_id=line.currency_id,
                kind=line.kind,
                amount=line.amount,
            )
            for no, line in enumerate(doc.dividend_entries, start=1)
        ])
    if "salary_entries" in groups:
        SalaryEntry.objects.bulk_create([
            SalaryEntry(
                transaction=txn,
                line_no=no,
                user_id=line.user_id,
                currency_id=line.currency_id,
                kind=line.kind,
                amount=line.amount,
            )
            for no, line in enumerate(doc.salary_entries, start=1)
        ])
    if "service_entries" in groups:
        ServiceEntry.objects.bulk_create([
            ServiceEntry(
                transaction=txn,
                line_no=no,
                service_id=line.service_id,
                quantity=line.quantity,
                price=line.price,
                note=line.note,
            )
            for no, line in enumerate(doc.service_entries, start=1)
        ])


def _run(command, *args, **kwargs) -> CommandResult:
    """
    Run an atomic command body and turn ledger errors into a failed result.

    The atomic block has already rolled back when the exception reaches
    this point.
    """
    try:
        return command(*args, **kwargs)
    except LedgerError as exc:
        logger.info(
            "Ledger command rejected",
            extra={"command": command.__name__.lstrip("_"), "code": exc.code, "detail": exc.detail},
        )
        return CommandResult.fail(exc)
    except OperationalError as exc:
        logger.warning(
            "Ledger command hit a lock conflict",
            extra={"command": command.__name__.lstrip("_"), "error": str(exc)},
        )
        return CommandResult.fail(Conflict())


# =============================================================================
# Draft commands
# =============================================================================

def create_draft(actor: ActorContext, **data) -> CommandResult:
    """
    Create a draft document.

    data carries the header fields (type, date, currency_id, counterparty_id,
    partner_id, description, total_amount, paid_amount) and any line groups
    (items, cash_entries, dividend_entries, salary_entries, service_entries).
    The document is validated in full; totals are recomputed and a number
    is allocated.
    """
    require(actor, "accounting.transactions.create")
    return _run(_create_draft, actor, data)


@transaction.atomic
def _create_draft(actor: ActorContext, data: dict) -> CommandResult:
    doc = document_from_input(data)
    totals = validate_document(doc, ReferenceIndex.for_document(doc))
    number = _next_document_number(doc.type, doc.date)

    with command_writes_allowed():
        txn = Transaction.objects.create(
            type=doc.type,
            number=number,
            date=doc.date,
            currency_id=doc.currency_id,
            status=TransactionStatus.DRAFT,
            total_amount=totals.total,
            paid_amount=totals.paid,
            description=doc.description,
            counterparty_id=doc.counterparty_id,
            partner_id=doc.partner_id,
            created_by=actor.user,
        )
        _write_lines(txn, doc)

    event = emit_event(
        actor=actor,
        event_type=EventTypes.TRANSACTION_CREATED,
        aggregate_type=AGGREGATE_TYPE,
        aggregate_id=txn.public_id,
        data=TransactionCreatedData(
            transaction_public_id=str(txn.public_id),
            number=txn.number,
            type=txn.type,
            date=txn.date.isoformat(),
            currency=txn.currency.code,
            total_amount=str(totals.total),
            paid_amount=str(totals.paid),
            description=txn.description,
            counterparty_id=txn.counterparty_id,
            partner_id=txn.partner_id,
            created_by_id=actor.user.pk,
            line_counts={group: len(getattr(doc, group)) for group in LINE_GROUPS if getattr(doc, group)},
        ),
        idempotency_key=f"transaction.created:{txn.public_id}",
    )

    logger.info(
        "Transaction draft created",
        extra={"transaction": txn.number, "type": txn.type, "total": str(totals.total)},
    )
    return CommandResult.ok(txn, event=event)


def update_draft(actor: ActorContext, transaction_id, **data) -> CommandResult:
    """
    Edit a draft document.

    Only the fields present in data change; a line group that is present
    replaces the whole group. The type cannot change. The edited document
    is validated in full.
    """
    require(actor, "accounting.transactions.edit")
    return _run(_update_draft, actor, transaction_id, data)


@transaction.atomic
def _update_draft(actor: ActorContext, transaction_id, data: dict) -> CommandResult:
    txn = lock_transaction(transaction_id)

    allowed, reason = can_edit_transaction(txn)
    if not allowed:
        raise InvalidState(reason)

    allowed, reason = can_change_type(txn, data.get("type"))
    if not allowed:
        raise ValidationError(reason, [FieldError("type", reason)])
    data = {k: v for k, v in data.items() if k != "type"}

    doc = document_from_input(data, base=document_from_model(txn))
    # Stored totals are derived; only compare the ones sent with this edit.
    for derived in ("total_amount", "paid_amount"):
        if derived not in data:
            setattr(doc, derived, None)
    totals = validate_document(doc, ReferenceIndex.for_document(doc))

    new_values = {
        "date": doc.date,
        "currency_id": doc.currency_id,
        "total_amount": totals.total,
        "paid_amount": totals.paid,
        "description": doc.description,
        "counterparty_id": doc.counterparty_id,
        "partner_id": doc.partner_id,
    }
    changes = {}
    for field_name, new in new_values.items():
        old = getattr(txn, field_name)
        if old != new:
            changes[field_name] = {"old": _jsonable(old), "new": _jsonable(new)}
            setattr(txn, field_name, new)

    replaced = [group for group in LINE_GROUPS if group in data]
    if not changes and not replaced:
        return CommandResult.ok(txn)

    with command_writes_allowed():
        txn.save()
        for group in replaced:
            getattr(txn, group).all().delete()
        _write_lines(txn, doc, groups=replaced)

    revision = len(get_aggregate_events(AGGREGATE_TYPE, txn.public_id))
    event = emit_event(
        actor=actor,
        event_type=EventTypes.TRANSACTION_UPDATED,
        aggregate_type=AGGREGATE_TYPE,
        aggregate_id=txn.public_id,
        data=TransactionUpdatedData(
            transaction_public_id=str(txn.public_id),
            number=txn.number,
            changes=changes,
            replaced_lines=replaced,
        ),
        idempotency_key=_idempotency_hash(
            f"transaction.updated:{txn.public_id}",
            {"changes": _changes_hash(changes), "lines": replaced, "revision": revision},
        ),
    )

    logger.info(
        "Transaction draft updated",
        extra={"transaction": txn.number, "fields": sorted(changes), "lines": replaced},
    )
    return CommandResult.ok(txn, event=event)


def get_transaction(actor: ActorContext, transaction_id) -> CommandResult:
    """Fetch one document by primary key or public_id."""
    require(actor, "accounting.transactions.view")
    qs = Transaction.objects.select_related("currency", "counterparty", "partner")
    try:
        if isinstance(transaction_id, int) or str(transaction_id).isdigit():
            txn = qs.get(pk=int(transaction_id))
        else:
            txn = qs.get(public_id=transaction_id)
    except (Transaction.DoesNotExist, ValueError, DjangoValidationError):
        return CommandResult.fail(NotFound())
    return CommandResult.ok(txn)


def delete_draft(actor: ActorContext, transaction_id) -> CommandResult:
    """Remove a draft. Confirmed and cancelled documents are kept forever."""
    require(actor, "accounting.transactions.delete")
    return _run(_delete_draft, actor, transaction_id)


@transaction.atomic
def _delete_draft(actor: ActorContext, transaction_id) -> CommandResult:
    txn = lock_transaction(transaction_id)

    allowed, reason = can_delete_transaction(txn)
    if not allowed:
        raise InvalidState(reason)

    event = emit_event(
        actor=actor,
        event_type=EventTypes.TRANSACTION_DELETED,
        aggregate_type=AGGREGATE_TYPE,
        aggregate_id=txn.public_id,
        data=TransactionDeletedData(
            transaction_public_id=str(txn.public_id),
            number=txn.number,
            type=txn.type,
        ),
        idempotency_key=f"transaction.deleted:{txn.public_id}",
    )

    number = txn.number
    with command_writes_allowed():
        txn.delete()

    logger.info("Transaction draft deleted", extra={"transaction": number})
    return CommandResult.ok(None, event=event)


# =============================================================================
# Confirm / cancel
# =============================================================================

def confirm_transaction(actor: ActorContext, transaction_id) -> CommandResult:
    """
    Confirm a draft: validate it again, compute its postings and apply them.

    Either every balance moves and the document becomes confirmed, or
    nothing changes at all.
    """
    require(actor, "accounting.transactions.confirm")
    return _run(_confirm_transaction, actor, transaction_id)


@transaction.atomic
def _confirm_transaction(actor: ActorContext, transaction_id) -> CommandResult:
    set_lock_timeout()
    txn = lock_transaction(transaction_id)

    allowed, reason = can_confirm_transaction(txn)
    if not allowed:
        raise AlreadyFinalized(reason)

    doc = document_from_model(txn)
    totals = validate_document(doc, ReferenceIndex.for_document(doc))

    positions = lock_stock_positions(doc.stock_keys())
    postings = compute_postings(doc, totals, positions)
    check_stock_effects(postings, positions)
    lock_balance_rows(postings)

    confirmed_at = timezone.now()
    event = emit_event(
        actor=actor,
        event_type=EventTypes.TRANSACTION_CONFIRMED,
        aggregate_type=AGGREGATE_TYPE,
        aggregate_id=txn.public_id,
        data=TransactionConfirmedData(
            transaction_public_id=str(txn.public_id),
            number=txn.number,
            type=txn.type,
            date=txn.date.isoformat(),
            currency=txn.currency.code,
            total_amount=str(totals.total),
            paid_amount=str(totals.paid),
            confirmed_at=confirmed_at.isoformat(),
            postings=[p.to_dict() for p in postings],
            confirmed_by_id=actor.user.pk,
        ),
        idempotency_key=f"transaction.confirmed:{txn.public_id}",
    )
    apply_projections(event)

    with command_writes_allowed():
        txn.status = TransactionStatus.CONFIRMED
        txn.total_amount = totals.total
        txn.paid_amount = totals.paid
        txn.confirmed_at = confirmed_at
        txn.confirmed_by = actor.user
        txn.save(update_fields=[
            "status", "total_amount", "paid_amount",
            "confirmed_at", "confirmed_by", "updated_at",
        ])

    logger.info(
        "Transaction confirmed",
        extra={"transaction": txn.number, "type": txn.type, "postings": len(postings)},
    )
    return CommandResult.ok(txn, event=event)


def cancel_transaction(actor: ActorContext, transaction_id) -> CommandResult:
    """
    Cancel a draft or a confirmed document.

    A confirmed document is reversed by applying the exact negation of the
    postings its confirmation applied. The reversal is refused if it would
    leave any stock position negative.
    """
    require(actor, "accounting.transactions.cancel")
    return _run(_cancel_transaction, actor, transaction_id)


@transaction.atomic
def _cancel_transaction(actor: ActorContext, transaction_id) -> CommandResult:
    set_lock_timeout()
    txn = lock_transaction(transaction_id)

    allowed, reason = can_cancel_transaction(txn)
    if not allowed:
        raise AlreadyFinalized(reason)

    previous_status = txn.status
    postings = []
    confirmed_event: Optional[BusinessEvent] = None

    if previous_status == TransactionStatus.CONFIRMED:
        aggregate = load_transaction_aggregate(txn.public_id)
        if aggregate is None or aggregate.confirmed_event_id is None:
            raise InvalidState("No confirmation event recorded for this transaction.")
        confirmed_event = BusinessEvent.objects.get(pk=aggregate.confirmed_event_id)
        postings = negate_postings(Posting.from_dict(p) for p in aggregate.confirmed_postings)

        positions = lock_stock_positions(stock_keys(postings))
        check_stock_effects(postings, positions)
        lock_balance_rows(postings)

    cancelled_at = timezone.now()
    event = emit_event(
        actor=actor,
        event_type=EventTypes.TRANSACTION_CANCELLED,
        aggregate_type=AGGREGATE_TYPE,
        aggregate_id=txn.public_id,
        data=TransactionCancelledData(
            transaction_public_id=str(txn.public_id),
            number=txn.number,
            type=txn.type,
            date=txn.date.isoformat(),
            currency=txn.currency.code,
            previous_status=previous_status,
            cancelled_at=cancelled_at.isoformat(),
            postings=[p.to_dict() for p in postings],
            cancelled_by_id=actor.user.pk,
            reverses_event_id=str(confirmed_event.id) if confirmed_event else None,
        ),
        idempotency_key=f"transaction.cancelled:{txn.public_id}",
        caused_by_event=confirmed_event,
    )
    apply_projections(event)

    with command_writes_allowed():
        txn.status = TransactionStatus.CANCELLED
        txn.cancelled_at = cancelled_at
        txn.cancelled_by = actor.user
        txn.save(update_fields=["status", "cancelled_at", "cancelled_by", "updated_at"])

    logger.info(
        "Transaction cancelled",
        extra={"transaction": txn.number, "previous_status": previous_status, "postings": len(postings)},
    )
    return CommandResult.ok(txn, event=event)
