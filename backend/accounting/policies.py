# accounting/policies.py
"""
Business policy functions for ledger documents.

Policies answer: "Is this action allowed given the current state?"
They do NOT perform the action; that's the command's job.

Workflow rules (which status allows which transition) live HERE, not in
model.save(). Commands turn a refusal into the matching LedgerError.

Usage:
    allowed, reason = can_confirm_transaction(txn)
    if not allowed:
        raise AlreadyFinalized(reason)

Design Principles:
1. Policies are pure functions (no side effects)
2. Policies return (bool, str) tuples for clear error messages
3. Commands compose policies as needed
"""

from accounting.types import TransactionStatus


def can_edit_transaction(txn) -> tuple[bool, str]:
    if txn.status != TransactionStatus.DRAFT:
        return False, f"Only draft transactions can be edited (status: {txn.status})."
    return True, ""


def can_delete_transaction(txn) -> tuple[bool, str]:
    if txn.status != TransactionStatus.DRAFT:
        return False, f"Only draft transactions can be deleted (status: {txn.status})."
    return True, ""


def can_confirm_transaction(txn) -> tuple[bool, str]:
    if txn.status == TransactionStatus.CONFIRMED:
        return False, "The transaction is already confirmed."
    if txn.status == TransactionStatus.CANCELLED:
        return False, "A cancelled transaction cannot be confirmed."
    return True, ""


def can_cancel_transaction(txn) -> tuple[bool, str]:
    if txn.status == TransactionStatus.CANCELLED:
        return False, "The transaction is already cancelled."
    return True, ""


def can_change_type(txn, new_type) -> tuple[bool, str]:
    if new_type is not None and new_type != txn.type:
        return False, "The transaction type cannot be changed after creation."
    return True, ""
