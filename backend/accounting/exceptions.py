# accounting/exceptions.py
"""
Ledger error hierarchy.

Commands raise these inside their atomic block (so every write is rolled
back) and hand them to the caller through CommandResult.fail(). Views
render them with as_dict().
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional


@dataclass(frozen=True)
class FieldError:
    field: str
    reason: str
    currency: bool = False

    def to_dict(self) -> dict:
        return {"field": self.field, "reason": self.reason}


class LedgerError(Exception):
    code = "ledger_error"
    status_code = 400
    default_detail = "The ledger rejected the operation."
    retryable = False

    def __init__(self, detail: Optional[str] = None, errors: Optional[Iterable[FieldError]] = None):
        self.detail = detail or self.default_detail
        self.errors: List[FieldError] = list(errors or [])
        super().__init__(self.detail)

    def error_map(self) -> Dict[str, List[str]]:
        result: Dict[str, List[str]] = {}
        for err in self.errors:
            result.setdefault(err.field, []).append(err.reason)
        return result

    def as_dict(self) -> dict:
        body = {"detail": self.detail, "code": self.code}
        if self.errors:
            body["errors"] = self.error_map()
            body["field_errors"] = [err.to_dict() for err in self.errors]
        if self.retryable:
            body["retryable"] = True
        return body


class ValidationError(LedgerError):
    code = "validation_error"
    status_code = 400
    default_detail = "The transaction is invalid."


class CurrencyMismatch(LedgerError):
    code = "currency_mismatch"
    status_code = 400
    default_detail = "Currency mismatch."


class InsufficientStock(LedgerError):
    code = "insufficient_stock"
    status_code = 409
    default_detail = "Not enough stock."


class AlreadyFinalized(LedgerError):
    code = "already_finalized"
    status_code = 409
    default_detail = "The transaction is already finalized."


class InvalidState(LedgerError):
    code = "invalid_state"
    status_code = 409
    default_detail = "The transaction is not in a state that allows this operation."


class Conflict(LedgerError):
    code = "conflict"
    status_code = 409
    default_detail = "The ledger is busy, please retry."
    retryable = True


class NotFound(LedgerError):
    code = "not_found"
    status_code = 404
    default_detail = "Transaction not found."


def raise_for_errors(errors: List[FieldError], detail: Optional[str] = None) -> None:
    """Raise CurrencyMismatch if any error is a currency error, else ValidationError."""
    if not errors:
        return
    if any(err.currency for err in errors):
        raise CurrencyMismatch(detail, errors)
    raise ValidationError(detail, errors)
