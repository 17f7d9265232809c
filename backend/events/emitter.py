# events/emitter.py
"""
Event emission functions.

All events MUST be emitted through emit_event() to ensure:
1. Payload validation against canonical schemas (events/types.py)
2. Idempotency handling
3. Proper sequencing
4. Audit trail (caused_by_user, metadata)

IMPORTANT: Events are validated at emission time.
==============================================
If you get an InvalidEventPayload error, the data dict does not match
the schema defined in events/types.py. Fix the data being passed,
don't disable validation.
"""

from __future__ import annotations

import logging
from typing import Optional, Any, Dict, Union
from datetime import datetime

from django.db import IntegrityError, transaction
from django.utils import timezone
from django.conf import settings

from events.models import BusinessEvent
from events.serialization import compute_payload_hash
from events.types import validate_event_payload, BaseEventData

logger = logging.getLogger(__name__)


def emit_event(
    actor=None,
    event_type: str = "",
    aggregate_type: str = "",
    aggregate_id: Any = None,
    data: Union[Dict[str, Any], BaseEventData, None] = None,
    *,
    idempotency_key: str,
    user=None,
    occurred_at: Optional[datetime] = None,
    metadata: Optional[Dict[str, Any]] = None,
    caused_by_event: Optional[BusinessEvent] = None,
) -> BusinessEvent:
    """
    Emit a business event with payload validation.

    The data parameter can be:
    - A dict matching the schema for the event type
    - A BaseEventData subclass instance (will be converted via .to_dict())

    The causing user is taken from actor.user, or from user when emitting
    without an actor (system processes).

    Example:
        emit_event(
            actor=actor,
            event_type=EventTypes.TRANSACTION_DELETED,
            aggregate_type="Transaction",
            aggregate_id=txn.public_id,
            data=TransactionDeletedData(
                transaction_public_id=str(txn.public_id),
                number=txn.number,
                type=txn.type,
            ),
            idempotency_key=f"transaction.deleted:{txn.public_id}",
        )

    Returns:
        The created (or existing, if idempotent) BusinessEvent

    Raises:
        InvalidEventPayload: If data doesn't match the event type schema
        ValueError: If idempotency_key is missing
    """
    if not idempotency_key or not str(idempotency_key).strip():
        raise ValueError("idempotency_key is required")

    if isinstance(data, BaseEventData):
        data = data.to_dict()
    data = data or {}

    if not getattr(settings, "DISABLE_EVENT_VALIDATION", False):
        validate_event_payload(event_type, data)

    if actor is not None:
        user = actor.user

    if occurred_at is None:
        occurred_at = timezone.now()

    # Quick idempotency check (common case)
    existing = BusinessEvent.objects.filter(idempotency_key=idempotency_key).first()
    if existing:
        logger.info(
            "Idempotent event replay",
            extra={"event_type": event_type, "idempotency_key": idempotency_key},
        )
        return existing

    # Retry on aggregate sequence collision; an idempotency collision returns the existing row
    for attempt in range(3):
        try:
            with transaction.atomic():
                return BusinessEvent.objects.create(
                    event_type=event_type,
                    aggregate_type=aggregate_type,
                    aggregate_id=str(aggregate_id),
                    data=data,
                    metadata=metadata or {},
                    payload_hash=compute_payload_hash(data),
                    caused_by_user=user,
                    caused_by_event=caused_by_event,
                    occurred_at=occurred_at,
                    idempotency_key=idempotency_key,
                )
        except IntegrityError:
            existing = BusinessEvent.objects.filter(idempotency_key=idempotency_key).first()
            if existing:
                return existing

            if attempt == 2:
                raise

    # Unreachable, but keeps type-checkers happy
    raise RuntimeError("Failed to emit event after retries")


def get_aggregate_events(aggregate_type: str, aggregate_id: Any) -> list[BusinessEvent]:
    """
    Aggregate stream ordering.

    Use per-aggregate sequence so replays are deterministic within the
    aggregate, independent of other aggregates' interleaving.
    """
    return list(
        BusinessEvent.objects.filter(
            aggregate_type=aggregate_type,
            aggregate_id=str(aggregate_id),
        ).order_by("sequence")
    )


def get_events_by_type(
    event_types: list[str],
    since_event: Optional[BusinessEvent] = None,
    limit: int = 1000,
) -> list[BusinessEvent]:
    """Global stream ordering (stream_sequence), shared with projection bookmarks."""
    qs = BusinessEvent.objects.filter(event_type__in=event_types)
    if since_event:
        qs = qs.filter(stream_sequence__gt=since_event.stream_sequence)
    return list(qs.order_by("stream_sequence")[:limit])
