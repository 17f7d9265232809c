"""
Events app - event sourcing infrastructure for the ledger.

This app provides:
- BusinessEvent: Immutable event records
- EventBookmark: Consumer progress tracking
- emit_event: the only way events are written
- Event type definitions with CANONICAL SCHEMAS (events/types.py)

Usage:
    from events.emitter import emit_event
    from events.types import EventTypes, TransactionDeletedData

    emit_event(
        actor=actor,
        event_type=EventTypes.TRANSACTION_DELETED,
        aggregate_type="Transaction",
        aggregate_id=public_id,
        data=TransactionDeletedData(
            transaction_public_id=str(public_id),
            number="SAL-26-0001",
            type="sale",
        ),
        idempotency_key=f"transaction.deleted:{public_id}",
    )

Invalid payloads raise InvalidEventPayload at emission time.
"""
