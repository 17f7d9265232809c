# events/types.py
"""
Event type definitions for the ledger.

This module defines THE CANONICAL SCHEMA for all event payloads.
These dataclasses are the CONTRACT, not a "helper". All event emission
MUST use these types, and validation is enforced at emission time.

Naming Convention: {aggregate}.{action}
Examples:
- transaction.created
- transaction.confirmed

IMPORTANT: Events are a STABLE API
============================================
- Adding optional fields with defaults is safe
- Removing, renaming or retyping fields breaks projection rebuilds

transaction.confirmed and transaction.cancelled carry the complete
posting list (see PostingData); projections are rebuilt from them alone.
"""

from dataclasses import dataclass, asdict, field, fields as dataclass_fields, MISSING
from typing import Optional, List, Dict, Any, get_type_hints, get_origin, get_args, Union
from decimal import Decimal, InvalidOperation
from datetime import date, datetime


# =============================================================================
# Event Validation
# =============================================================================

class InvalidEventPayload(Exception):
    """
    Raised when an event payload fails validation.
    """
    def __init__(self, event_type: str, errors: List[str]):
        self.event_type = event_type
        self.errors = errors
        error_list = "\n  - ".join(errors)
        super().__init__(
            f"Invalid payload for event '{event_type}':\n  - {error_list}"
        )


def _is_optional_type(type_hint) -> bool:
    """Check if a type hint is Optional[X] (i.e., Union[X, None])."""
    origin = get_origin(type_hint)
    if origin is Union:
        return type(None) in get_args(type_hint)
    return False


def _get_inner_type(type_hint):
    """Get the inner type from Optional[X]."""
    origin = get_origin(type_hint)
    if origin is Union:
        non_none_args = [a for a in get_args(type_hint) if a is not type(None)]
        if len(non_none_args) == 1:
            return non_none_args[0]
    return type_hint


DECIMAL_FIELDS = {
    "total_amount",
    "paid_amount",
    "amount",
    "quantity",
    "value",
    "accrued",
    "paid",
}

DATE_FIELDS = {"date"}
DATETIME_FIELDS = {"confirmed_at", "cancelled_at"}


def validate_event_payload(event_type: str, data: Dict[str, Any]) -> None:
    """
    Validate that a data dict matches the expected schema for an event type.

    Checks:
    1. Required fields are present (fields without defaults)
    2. No unexpected fields are provided (strict schema)
    3. Field types are correct (basic type checking)
    4. Domain values: enums, decimal strings, ISO dates, posting shape

    Raises:
        InvalidEventPayload: If validation fails
        ValueError: If event_type has no registered schema
    """
    data_class = EVENT_DATA_CLASSES.get(event_type)
    if data_class is None:
        raise ValueError(
            f"No schema registered for event type '{event_type}'. "
            f"Add a dataclass to EVENT_DATA_CLASSES."
        )

    errors = []
    dc_fields = {f.name: f for f in dataclass_fields(data_class)}
    type_hints = get_type_hints(data_class)

    for field_name, field_info in dc_fields.items():
        required = (
            field_info.default is MISSING and
            field_info.default_factory is MISSING
        )
        if required and field_name not in data:
            errors.append(f"Missing required field: '{field_name}'")

    unexpected = set(data.keys()) - set(dc_fields.keys())
    if unexpected:
        errors.append(
            f"Unexpected fields: {sorted(unexpected)}. "
            f"Expected: {sorted(dc_fields.keys())}"
        )

    for field_name, value in data.items():
        if field_name not in dc_fields:
            continue

        type_hint = type_hints.get(field_name)
        if type_hint is None:
            continue

        if value is None:
            if not _is_optional_type(type_hint):
                errors.append(f"Field '{field_name}' cannot be None (type: {type_hint})")
            continue

        check_type = _get_inner_type(type_hint) if _is_optional_type(type_hint) else type_hint
        origin = get_origin(check_type)

        if origin is list or check_type is list:
            if not isinstance(value, list):
                errors.append(f"Field '{field_name}' must be a list, got {type(value).__name__}")
            else:
                item_args = get_args(check_type)
                item_type = item_args[0] if item_args else dict
                if get_origin(item_type) is dict:
                    item_type = dict
                if item_type in (dict, str, int):
                    for idx, item in enumerate(value):
                        if not isinstance(item, item_type) or isinstance(item, bool):
                            errors.append(
                                f"Field '{field_name}[{idx}]' must be a {item_type.__name__}, "
                                f"got {type(item).__name__}"
                            )
        elif origin is dict or check_type is dict:
            if not isinstance(value, dict):
                errors.append(f"Field '{field_name}' must be a dict, got {type(value).__name__}")
        elif check_type is str:
            if not isinstance(value, str):
                errors.append(f"Field '{field_name}' must be a string, got {type(value).__name__}")
        elif check_type is int:
            if not isinstance(value, int) or isinstance(value, bool):
                errors.append(f"Field '{field_name}' must be an int, got {type(value).__name__}")
        elif check_type is bool:
            if not isinstance(value, bool):
                errors.append(f"Field '{field_name}' must be a bool, got {type(value).__name__}")

    # Domain-specific validation
    from accounting.types import TransactionStatus, TransactionType
    from accounting.posting import Ledger

    enum_fields = {
        "type": set(TransactionType.values),
        "status": set(TransactionStatus.values),
        "previous_status": set(TransactionStatus.values),
        "ledger": set(Ledger.ALL),
    }

    def _validate_scalar(name: str, value: Any) -> None:
        if value is None or isinstance(value, (dict, list)):
            return
        if name in enum_fields and value not in enum_fields[name]:
            errors.append(f"Field '{name}' must be one of {sorted(enum_fields[name])}, got {value!r}")
        if name in DECIMAL_FIELDS:
            if isinstance(value, bool) or not isinstance(value, (int, str, Decimal)):
                errors.append(f"Field '{name}' must be a decimal string, got {type(value).__name__}")
            else:
                try:
                    Decimal(str(value))
                except (InvalidOperation, ValueError):
                    errors.append(f"Field '{name}' must be a decimal string, got {value!r}")
        if name == "currency" and (
            not isinstance(value, str) or len(value) != 3 or value != value.upper()
        ):
            errors.append(f"Field '{name}' must be a 3-letter uppercase currency code, got {value!r}")
        if name in DATE_FIELDS:
            try:
                date.fromisoformat(value)
            except (TypeError, ValueError):
                errors.append(f"Field '{name}' must be an ISO date string, got {value!r}")
        if name in DATETIME_FIELDS:
            try:
                datetime.fromisoformat(value)
            except (TypeError, ValueError):
                errors.append(f"Field '{name}' must be an ISO datetime string, got {value!r}")

    for field_name, value in data.items():
        if field_name == "changes":
            continue
        _validate_scalar(field_name, value)

    for idx, posting in enumerate(data.get("postings") or []):
        if not isinstance(posting, dict):
            continue
        if "ledger" not in posting or "subject_id" not in posting:
            errors.append(f"Posting {idx} must carry 'ledger' and 'subject_id'.")
        for key, value in posting.items():
            _validate_scalar(key, value)

    if errors:
        raise InvalidEventPayload(event_type, errors)


# =============================================================================
# Base Event Classes
# =============================================================================

@dataclass
class BaseEventData:
    """Base class for all event data."""

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON storage."""
        result = {}
        for key, value in asdict(self).items():
            if isinstance(value, Decimal):
                result[key] = str(value)
            elif isinstance(value, (date, datetime)):
                result[key] = value.isoformat()
            elif isinstance(value, list):
                result[key] = [
                    item.to_dict() if hasattr(item, 'to_dict') else
                    (dict(item) if isinstance(item, dict) else item)
                    for item in value
                ]
            else:
                result[key] = value
        return result


# =============================================================================
# Transaction Events
# =============================================================================

@dataclass
class TransactionCreatedData(BaseEventData):
    """Data for transaction.created event."""
    transaction_public_id: str
    number: str
    type: str
    date: str
    currency: str
    total_amount: str
    paid_amount: str
    description: str = ""
    counterparty_id: Optional[int] = None
    partner_id: Optional[int] = None
    created_by_id: Optional[int] = None
    line_counts: Dict[str, int] = field(default_factory=dict)


@dataclass
class TransactionUpdatedData(BaseEventData):
    """Data for transaction.updated event."""
    transaction_public_id: str
    number: str
    changes: Dict[str, Dict[str, Any]]  # {"field": {"old": x, "new": y}}
    replaced_lines: List[str] = field(default_factory=list)


@dataclass
class TransactionDeletedData(BaseEventData):
    """Data for transaction.deleted event."""
    transaction_public_id: str
    number: str
    type: str


@dataclass
class TransactionConfirmedData(BaseEventData):
    """
    Data for transaction.confirmed event.

    postings is the complete list of PostingData dicts applied to the
    balance projections.
    """
    transaction_public_id: str
    number: str
    type: str
    date: str
    currency: str
    total_amount: str
    paid_amount: str
    confirmed_at: str
    postings: List[dict]
    confirmed_by_id: Optional[int] = None


@dataclass
class TransactionCancelledData(BaseEventData):
    """
    Data for transaction.cancelled event.

    postings is the exact negation of the confirmed postings, or empty
    when a draft is cancelled.
    """
    transaction_public_id: str
    number: str
    type: str
    date: str
    currency: str
    previous_status: str
    cancelled_at: str
    postings: List[dict]
    cancelled_by_id: Optional[int] = None
    reverses_event_id: Optional[str] = None


# =============================================================================
# Event Type Registry
# =============================================================================

class EventTypes:
    """
    Registry of all event types.

    Naming convention: {aggregate}.{past_tense_verb}
    """

    TRANSACTION_CREATED = "transaction.created"
    TRANSACTION_UPDATED = "transaction.updated"
    TRANSACTION_DELETED = "transaction.deleted"
    TRANSACTION_CONFIRMED = "transaction.confirmed"
    TRANSACTION_CANCELLED = "transaction.cancelled"

    # Events that carry postings
    POSTING_EVENTS = (TRANSACTION_CONFIRMED, TRANSACTION_CANCELLED)


EVENT_DATA_CLASSES = {
    EventTypes.TRANSACTION_CREATED: TransactionCreatedData,
    EventTypes.TRANSACTION_UPDATED: TransactionUpdatedData,
    EventTypes.TRANSACTION_DELETED: TransactionDeletedData,
    EventTypes.TRANSACTION_CONFIRMED: TransactionConfirmedData,
    EventTypes.TRANSACTION_CANCELLED: TransactionCancelledData,
}
