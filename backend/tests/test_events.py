# tests/test_events.py
"""
Tests for the event store.

Tests cover:
- Immutability
- Idempotency keys
- Per-aggregate and global sequences
- Payload validation at emission time
- Aggregate replay
"""

from datetime import date
from uuid import uuid4

import pytest

from accounting.aggregates import AGGREGATE_TYPE, load_transaction_aggregate
from accounting.commands import cancel_transaction, create_draft, update_draft
from events.emitter import emit_event, get_aggregate_events, get_events_by_type
from events.models import BusinessEvent
from events.serialization import compute_payload_hash
from events.types import (
    EventTypes,
    InvalidEventPayload,
    TransactionDeletedData,
    validate_event_payload,
)

DOC_DATE = date(2026, 3, 1)


def deleted_event(owner, public_id=None, key=None):
    public_id = public_id or str(uuid4())
    return emit_event(
        event_type=EventTypes.TRANSACTION_DELETED,
        aggregate_type=AGGREGATE_TYPE,
        aggregate_id=public_id,
        data=TransactionDeletedData(transaction_public_id=public_id, number="CIN-26-0001", type="cash_in"),
        idempotency_key=key or f"test.deleted:{public_id}",
        user=owner,
    )


@pytest.mark.django_db
class TestImmutability:

    def test_cannot_modify_existing_event(self, owner):
        event = deleted_event(owner)
        event.data = {"tampered": True}

        with pytest.raises(ValueError, match="immutable"):
            event.save()

    def test_cannot_delete_event(self, owner):
        event = deleted_event(owner)

        with pytest.raises(ValueError, match="immutable"):
            event.delete()

    def test_payload_hash_is_recorded(self, owner):
        event = deleted_event(owner)

        assert event.payload_hash == compute_payload_hash(event.data)
        assert event.verify_payload_integrity()
        assert event.caused_by_user == owner


@pytest.mark.django_db
class TestIdempotency:

    def test_duplicate_key_returns_existing_event(self, owner):
        public_id = str(uuid4())

        first = deleted_event(owner, public_id, key="same-key")
        second = deleted_event(owner, public_id, key="same-key")

        assert first.id == second.id
        assert BusinessEvent.objects.count() == 1

    def test_different_keys_create_different_events(self, owner):
        public_id = str(uuid4())

        deleted_event(owner, public_id, key="key-1")
        deleted_event(owner, public_id, key="key-2")

        assert BusinessEvent.objects.count() == 2

    def test_idempotency_key_required(self, owner):
        with pytest.raises(ValueError, match="idempotency_key"):
            emit_event(
                event_type=EventTypes.TRANSACTION_DELETED,
                aggregate_type=AGGREGATE_TYPE,
                aggregate_id="x",
                data={},
                idempotency_key="  ",
                user=owner,
            )


@pytest.mark.django_db
class TestSequences:

    def test_aggregate_sequence_increments_per_aggregate(self, owner):
        a, b = str(uuid4()), str(uuid4())

        a1 = deleted_event(owner, a, key="a1")
        b1 = deleted_event(owner, b, key="b1")
        a2 = deleted_event(owner, a, key="a2")

        assert (a1.sequence, a2.sequence, b1.sequence) == (1, 2, 1)
        assert [e.id for e in get_aggregate_events(AGGREGATE_TYPE, a)] == [a1.id, a2.id]

    def test_stream_sequence_is_global_and_monotonic(self, owner):
        events = [deleted_event(owner) for _ in range(3)]

        sequences = [e.stream_sequence for e in events]
        assert sequences == sorted(sequences)
        assert len(set(sequences)) == 3

    def test_events_by_type_since_an_event(self, owner):
        first, second, third = [deleted_event(owner) for _ in range(3)]

        since = get_events_by_type([EventTypes.TRANSACTION_DELETED], since_event=first)

        assert [e.id for e in since] == [second.id, third.id]


class TestPayloadValidation:

    def test_unknown_field_rejected(self):
        with pytest.raises(InvalidEventPayload, match="Unexpected fields"):
            validate_event_payload(EventTypes.TRANSACTION_DELETED, {
                "transaction_public_id": "x", "number": "N", "type": "sale", "extra": 1,
            })

    def test_missing_field_rejected(self):
        with pytest.raises(InvalidEventPayload, match="Missing required field: 'number'"):
            validate_event_payload(EventTypes.TRANSACTION_DELETED, {"transaction_public_id": "x", "type": "sale"})

    def test_unknown_transaction_type_rejected(self):
        with pytest.raises(InvalidEventPayload, match="'type' must be one of"):
            validate_event_payload(EventTypes.TRANSACTION_DELETED, {
                "transaction_public_id": "x", "number": "N", "type": "barter",
            })

    def test_posting_shape_and_decimals_checked(self):
        data = {
            "transaction_public_id": "x",
            "number": "N",
            "type": "cash_in",
            "date": "2026-03-01",
            "currency": "usd",
            "total_amount": "10",
            "paid_amount": "10",
            "confirmed_at": "2026-03-01T10:00:00+00:00",
            "postings": [{"ledger": "cash", "amount": "ten"}],
        }

        with pytest.raises(InvalidEventPayload) as exc_info:
            validate_event_payload(EventTypes.TRANSACTION_CONFIRMED, data)

        message = str(exc_info.value)
        assert "3-letter uppercase currency code" in message
        assert "must carry 'ledger' and 'subject_id'" in message
        assert "'amount' must be a decimal string" in message

    def test_list_items_checked_against_declared_type(self):
        data = {"transaction_public_id": "x", "number": "N", "changes": {}}

        validate_event_payload(EventTypes.TRANSACTION_UPDATED, {**data, "replaced_lines": ["items", "cash_entries"]})

        with pytest.raises(InvalidEventPayload, match=r"'replaced_lines\[0\]' must be a str, got dict"):
            validate_event_payload(EventTypes.TRANSACTION_UPDATED, {**data, "replaced_lines": [{"group": "items"}]})

    def test_unregistered_event_type(self):
        with pytest.raises(ValueError, match="No schema registered"):
            validate_event_payload("transaction.archived", {})


@pytest.mark.django_db
class TestAggregateReplay:

    def test_replay_follows_the_lifecycle(self, post, owner_actor, usd, till):
        txn = post(type="cash_in", currency_id=usd.pk, cash_entries=[{"cash_register_id": till.pk, "amount": "20"}])

        aggregate = load_transaction_aggregate(txn.public_id)
        assert aggregate.status == "confirmed"
        assert aggregate.number == txn.number
        assert aggregate.confirmed_postings == [{
            "ledger": "cash",
            "subject_id": till.pk,
            "currency_id": usd.pk,
            "amount": "20.000000",
        }]

        cancel_transaction(owner_actor, txn.pk)

        aggregate = load_transaction_aggregate(txn.public_id)
        assert aggregate.status == "cancelled"
        assert aggregate.cancelled_event_id is not None

    def test_unknown_aggregate(self):
        assert load_transaction_aggregate(str(uuid4())) is None

    def test_created_event_carries_the_document_header(self, owner_actor, usd, till):
        txn = create_draft(
            owner_actor,
            type="cash_in",
            date=DOC_DATE,
            currency_id=usd.pk,
            cash_entries=[{"cash_register_id": till.pk, "amount": "20"}],
        ).data
        update_draft(owner_actor, txn.pk, description="Till float")

        created, updated = get_aggregate_events(AGGREGATE_TYPE, txn.public_id)

        assert created.data["number"] == "CIN-26-0001"
        assert created.data["currency"] == "USD"
        assert created.data["line_counts"] == {"cash_entries": 1}
        assert created.idempotency_key == f"transaction.created:{txn.public_id}"
        assert updated.data["changes"] == {"description": {"old": "", "new": "Till float"}}
        assert updated.sequence == 2
