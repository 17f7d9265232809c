# accounting/validators.py
"""
Document validation.

validate_document() checks a TransactionDocument against the rule for
its type (accounting.types.TYPE_RULES) and the reference data it points
at. Every violation is collected before anything is raised, so a form
gets all of its field errors at once. If any violation concerns
currencies the whole list is raised as CurrencyMismatch, otherwise as
ValidationError.

Totals are always recomputed here; submitted totals are only compared
against the computed value (tolerance: one minor unit of the document
currency).
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import List

from accounting.aggregates import ReferenceIndex, TransactionDocument
from accounting.exceptions import FieldError, ValidationError, raise_for_errors
from accounting.types import (
    LINE_GROUPS,
    Requirement,
    TotalRule,
    TransactionType,
    TypeRule,
    TYPE_RULES,
)

ZERO = Decimal("0")
DEFAULT_DECIMAL_PLACES = 2

REQUIRED = "This field is required."
NOT_FOUND = "Does not exist."


@dataclass(frozen=True)
class DocumentTotals:
    total: Decimal
    paid: Decimal
    cash: Decimal


def minor_unit(decimal_places: int) -> Decimal:
    return Decimal(1).scaleb(-decimal_places)


def compute_total(doc: TransactionDocument, rule: TypeRule) -> Decimal:
    """Authoritative (unrounded) document total."""
    if rule.total_rule == TotalRule.LINES:
        stock = sum((i.quantity * i.price for i in doc.items), ZERO)
        services = sum((s.quantity * s.price for s in doc.service_entries), ZERO)
        return stock + services
    if rule.total_rule == TotalRule.CASH:
        return cash_total(doc)
    return (
        sum((d.amount for d in doc.dividend_entries), ZERO)
        + sum((s.amount for s in doc.salary_entries), ZERO)
    )


def cash_total(doc: TransactionDocument) -> Decimal:
    return sum((abs(c.amount) for c in doc.cash_entries), ZERO)


def _label(transaction_type: str) -> str:
    return TransactionType(transaction_type).label.lower()


def _check_party(errors, name, value, requirement, known, label) -> None:
    if requirement == Requirement.REQUIRED and value is None:
        errors.append(FieldError(name, f"Required for {label}."))
    elif requirement == Requirement.FORBIDDEN and value is not None:
        errors.append(FieldError(name, f"Not allowed for {label}."))
    elif value is not None and value not in known:
        errors.append(FieldError(name, NOT_FOUND))


def _check_reference(errors, path, value, known) -> None:
    if value is None:
        errors.append(FieldError(path, REQUIRED))
    elif value not in known:
        errors.append(FieldError(path, NOT_FOUND))


def _check_quantity_price(errors, path, quantity, price) -> None:
    if quantity is None or quantity <= ZERO:
        errors.append(FieldError(f"{path}.quantity", "Must be greater than zero."))
    if price is None or price < ZERO:
        errors.append(FieldError(f"{path}.price", "Must not be negative."))


def _check_entry_currency(errors, path, currency_id, doc, refs) -> None:
    if currency_id not in refs.currencies:
        errors.append(FieldError(f"{path}.currency_id", NOT_FOUND))
    elif currency_id != doc.currency_id:
        errors.append(FieldError(
            f"{path}.currency_id",
            "Does not match the transaction currency.",
            currency=True,
        ))


def _validate_items(errors, doc, refs, rule, label) -> None:
    for idx, item in enumerate(doc.items):
        path = f"items[{idx}]"
        _check_reference(errors, f"{path}.product_id", item.product_id, refs.products)
        _check_reference(errors, f"{path}.warehouse_id", item.warehouse_id, refs.warehouses)
        _check_quantity_price(errors, path, item.quantity, item.price)
        if rule.needs_destination:
            if item.warehouse_to_id is None:
                errors.append(FieldError(f"{path}.warehouse_to_id", REQUIRED))
            elif item.warehouse_to_id not in refs.warehouses:
                errors.append(FieldError(f"{path}.warehouse_to_id", NOT_FOUND))
            elif item.warehouse_to_id == item.warehouse_id:
                errors.append(FieldError(
                    f"{path}.warehouse_to_id",
                    "Destination must differ from the source warehouse.",
                ))
        elif item.warehouse_to_id is not None:
            errors.append(FieldError(f"{path}.warehouse_to_id", f"Not allowed for {label}."))


def _validate_services(errors, doc, refs) -> None:
    for idx, entry in enumerate(doc.service_entries):
        path = f"service_entries[{idx}]"
        _check_reference(errors, f"{path}.service_id", entry.service_id, refs.services)
        _check_quantity_price(errors, path, entry.quantity, entry.price)


def _validate_cash(errors, doc, refs) -> None:
    for idx, entry in enumerate(doc.cash_entries):
        path = f"cash_entries[{idx}]"
        _check_reference(errors, f"{path}.cash_register_id", entry.cash_register_id, refs.registers)
        if entry.amount is None or entry.amount == ZERO:
            errors.append(FieldError(f"{path}.amount", "Must not be zero."))

        register_currency = refs.registers.get(entry.cash_register_id)
        if entry.currency_id not in refs.currencies:
            errors.append(FieldError(f"{path}.currency_id", NOT_FOUND))
            continue
        if register_currency is not None and entry.currency_id != register_currency:
            errors.append(FieldError(
                f"{path}.currency_id",
                "Does not match the cash register currency.",
                currency=True,
            ))
        if entry.currency_id != doc.currency_id:
            errors.append(FieldError(
                f"{path}.currency_id",
                "Does not match the transaction currency.",
                currency=True,
            ))


def _validate_entries(errors, doc, refs, rule, label, group, subject, known) -> None:
    for idx, entry in enumerate(getattr(doc, group)):
        path = f"{group}[{idx}]"
        subject_id = getattr(entry, subject)
        _check_reference(errors, f"{path}.{subject}", subject_id, known)
        if entry.amount is None or entry.amount <= ZERO:
            errors.append(FieldError(f"{path}.amount", "Must be greater than zero."))
        if entry.kind != rule.entry_kind:
            errors.append(FieldError(f"{path}.kind", f"Must be '{rule.entry_kind}' for {label}."))
        _check_entry_currency(errors, path, entry.currency_id, doc, refs)
        if group == "dividend_entries" and doc.partner_id is not None and subject_id != doc.partner_id:
            errors.append(FieldError(f"{path}.partner_id", "Must match the document partner."))


def validate_document(doc: TransactionDocument, refs: ReferenceIndex) -> DocumentTotals:
    """
    Validate a document and return its authoritative totals.

    Raises:
        ValidationError: field violations (type, references, amounts, totals)
        CurrencyMismatch: at least one violation concerns currencies
    """
    rule = TYPE_RULES.get(doc.type)
    if rule is None:
        raise ValidationError(errors=[FieldError("type", "Unknown transaction type.")])

    errors: List[FieldError] = list(doc.input_errors)
    label = _label(doc.type)

    if doc.date is None:
        errors.append(FieldError("date", REQUIRED))
    if doc.currency_id is None:
        errors.append(FieldError("currency_id", REQUIRED))
    elif doc.currency_id not in refs.currencies:
        errors.append(FieldError("currency_id", NOT_FOUND))

    _check_party(errors, "counterparty_id", doc.counterparty_id, rule.counterparty, refs.counterparties, label)
    _check_party(errors, "partner_id", doc.partner_id, rule.partner, refs.partners, label)

    allowed_groups = set()
    for group in LINE_GROUPS:
        requirement = rule.requirement(group)
        lines = getattr(doc, group)
        if requirement == Requirement.REQUIRED and not lines:
            errors.append(FieldError(group, f"At least one line is required for {label}."))
        if requirement == Requirement.FORBIDDEN:
            if lines:
                errors.append(FieldError(group, f"Not allowed for {label}."))
        else:
            allowed_groups.add(group)

    if "items" in allowed_groups:
        _validate_items(errors, doc, refs, rule, label)
    if "service_entries" in allowed_groups:
        _validate_services(errors, doc, refs)
    if "cash_entries" in allowed_groups:
        _validate_cash(errors, doc, refs)
    if "dividend_entries" in allowed_groups:
        _validate_entries(errors, doc, refs, rule, label, "dividend_entries", "partner_id", refs.partners)
    if "salary_entries" in allowed_groups:
        _validate_entries(errors, doc, refs, rule, label, "salary_entries", "user_id", refs.users)

    places = refs.currencies.get(doc.currency_id, DEFAULT_DECIMAL_PLACES)
    minor = minor_unit(places)
    total = compute_total(doc, rule).quantize(minor, rounding=ROUND_HALF_UP)
    cash = cash_total(doc).quantize(minor, rounding=ROUND_HALF_UP)

    if doc.total_amount is not None and abs(doc.total_amount - total) > minor:
        errors.append(FieldError("total_amount", f"Does not match the computed total {total}."))

    if rule.is_payment and total <= ZERO:
        errors.append(FieldError("total_amount", "A payment must carry a positive amount."))

    if rule.partial_payment:
        paid = doc.paid_amount if doc.paid_amount is not None else cash
        if paid < ZERO:
            errors.append(FieldError("paid_amount", "Must not be negative."))
        elif abs(paid - cash) > minor:
            errors.append(FieldError("paid_amount", f"Must equal the sum of cash entries ({cash})."))
        paid = paid.quantize(minor, rounding=ROUND_HALF_UP)
        if paid > total:
            errors.append(FieldError("paid_amount", "Cannot exceed the total amount."))
    else:
        paid = cash

    if rule.entry_kind is not None and doc.cash_entries and cash != total:
        errors.append(FieldError(
            "cash_entries",
            f"Cash total {cash} must equal the entries total {total}.",
        ))

    raise_for_errors(errors)
    return DocumentTotals(total=total, paid=paid, cash=cash)
