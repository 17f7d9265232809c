# tests/test_validators.py
"""
Tests for document validation (no database).

The reference index is built by hand, so only the rule table and the
validator are exercised here.
"""

from decimal import Decimal

import pytest

from accounting.aggregates import ReferenceIndex, document_from_input
from accounting.exceptions import CurrencyMismatch, ValidationError
from accounting.validators import validate_document

USD, EUR = 1, 2
TILL, EURO_SAFE = 10, 11
MAIN, BRANCH = 20, 21
WIDGET = 30
CUSTOMER = 40
ALICE, BOB = 50, 51
STAFF = 60
DELIVERY = 70


@pytest.fixture
def refs():
    return ReferenceIndex(
        currencies={USD: 2, EUR: 2},
        registers={TILL: USD, EURO_SAFE: EUR},
        products={WIDGET},
        warehouses={MAIN, BRANCH},
        counterparties={CUSTOMER},
        partners={ALICE, BOB},
        users={STAFF},
        services={DELIVERY},
    )


def build(**data):
    data.setdefault("date", "2026-03-01")
    data.setdefault("currency_id", USD)
    return document_from_input(data)


def errors_of(exc_info):
    return exc_info.value.error_map()


def item(quantity="10", price="100", **extra):
    return {"product_id": WIDGET, "warehouse_id": MAIN, "quantity": quantity, "price": price, **extra}


class TestTotals:

    def test_sale_totals_include_services(self, refs):
        doc = build(
            type="sale",
            counterparty_id=CUSTOMER,
            items=[item()],
            service_entries=[{"service_id": DELIVERY, "quantity": "2", "price": "25"}],
            cash_entries=[{"cash_register_id": TILL, "amount": "400"}],
        )

        totals = validate_document(doc, refs)

        assert totals.total == Decimal("1050.00")
        assert totals.paid == Decimal("400.00")
        assert totals.cash == Decimal("400.00")

    def test_submitted_total_within_one_minor_unit_is_accepted(self, refs):
        doc = build(type="sale", counterparty_id=CUSTOMER, items=[item()], total_amount="1000.01")

        assert validate_document(doc, refs).total == Decimal("1000.00")

    def test_submitted_total_mismatch_is_rejected(self, refs):
        doc = build(type="sale", counterparty_id=CUSTOMER, items=[item()], total_amount="999")

        with pytest.raises(ValidationError) as exc_info:
            validate_document(doc, refs)

        assert "total_amount" in errors_of(exc_info)

    def test_paid_cannot_exceed_total(self, refs):
        doc = build(
            type="sale",
            counterparty_id=CUSTOMER,
            items=[item(quantity="1", price="10")],
            cash_entries=[{"cash_register_id": TILL, "amount": "15"}],
        )

        with pytest.raises(ValidationError) as exc_info:
            validate_document(doc, refs)

        assert errors_of(exc_info) == {"paid_amount": ["Cannot exceed the total amount."]}

    def test_paid_must_match_cash_entries(self, refs):
        doc = build(
            type="sale",
            counterparty_id=CUSTOMER,
            items=[item()],
            paid_amount="500",
            cash_entries=[{"cash_register_id": TILL, "amount": "400"}],
        )

        with pytest.raises(ValidationError) as exc_info:
            validate_document(doc, refs)

        assert errors_of(exc_info) == {"paid_amount": ["Must equal the sum of cash entries (400.00)."]}

    def test_payment_needs_a_positive_amount(self, refs):
        doc = build(
            type="sale_payment",
            counterparty_id=CUSTOMER,
            cash_entries=[{"cash_register_id": TILL, "amount": "0"}],
        )

        with pytest.raises(ValidationError) as exc_info:
            validate_document(doc, refs)

        errors = errors_of(exc_info)
        assert errors["cash_entries[0].amount"] == ["Must not be zero."]
        assert errors["total_amount"] == ["A payment must carry a positive amount."]

    def test_dividend_payment_cash_must_equal_entries(self, refs):
        doc = build(
            type="dividend_payment",
            dividend_entries=[{"partner_id": ALICE, "amount": "300"}],
            cash_entries=[{"cash_register_id": TILL, "amount": "250"}],
        )

        with pytest.raises(ValidationError) as exc_info:
            validate_document(doc, refs)

        assert "cash_entries" in errors_of(exc_info)


class TestUnparseableInput:

    def test_garbage_total_is_reported_not_ignored(self, refs):
        doc = build(type="sale", counterparty_id=CUSTOMER, items=[item()], total_amount="lots")

        with pytest.raises(ValidationError) as exc_info:
            validate_document(doc, refs)

        assert errors_of(exc_info) == {"total_amount": ["A valid number is required."]}

    def test_bad_values_are_reported_per_field(self, refs):
        doc = build(
            type="sale",
            date="01/03/2026",
            counterparty_id="acme",
            items=[item(quantity="ten")],
        )

        with pytest.raises(ValidationError) as exc_info:
            validate_document(doc, refs)

        errors = errors_of(exc_info)
        assert "A valid date (YYYY-MM-DD) is required." in errors["date"]
        assert "A valid id is required." in errors["counterparty_id"]
        assert "A valid number is required." in errors["items[0].quantity"]


class TestTypeRules:

    def test_unknown_type(self, refs):
        with pytest.raises(ValidationError) as exc_info:
            validate_document(build(type="barter"), refs)

        assert errors_of(exc_info) == {"type": ["Unknown transaction type."]}

    def test_all_errors_are_collected(self, refs):
        doc = build(type="sale", date=None, currency_id=None)

        with pytest.raises(ValidationError) as exc_info:
            validate_document(doc, refs)

        assert set(errors_of(exc_info)) == {"date", "currency_id", "counterparty_id", "items"}

    def test_forbidden_group_and_party(self, refs):
        doc = build(
            type="cash_in",
            counterparty_id=CUSTOMER,
            items=[item()],
            cash_entries=[{"cash_register_id": TILL, "amount": "50"}],
        )

        with pytest.raises(ValidationError) as exc_info:
            validate_document(doc, refs)

        errors = errors_of(exc_info)
        assert errors["counterparty_id"] == ["Not allowed for cash in."]
        assert errors["items"] == ["Not allowed for cash in."]

    def test_missing_references(self, refs):
        doc = build(
            type="sale",
            counterparty_id=999,
            items=[{"product_id": 999, "warehouse_id": MAIN, "quantity": "1", "price": "1"}],
        )

        with pytest.raises(ValidationError) as exc_info:
            validate_document(doc, refs)

        errors = errors_of(exc_info)
        assert errors["counterparty_id"] == ["Does not exist."]
        assert errors["items[0].product_id"] == ["Does not exist."]

    def test_quantity_and_price_bounds(self, refs):
        doc = build(type="sale", counterparty_id=CUSTOMER, items=[item(quantity="0", price="-1")])

        with pytest.raises(ValidationError) as exc_info:
            validate_document(doc, refs)

        errors = errors_of(exc_info)
        assert errors["items[0].quantity"] == ["Must be greater than zero."]
        assert errors["items[0].price"] == ["Must not be negative."]

    def test_transfer_needs_a_different_destination(self, refs):
        missing = build(type="transfer", items=[item(price="0")])
        same = build(type="transfer", items=[item(price="0", warehouse_to_id=MAIN)])

        with pytest.raises(ValidationError) as missing_info:
            validate_document(missing, refs)
        with pytest.raises(ValidationError) as same_info:
            validate_document(same, refs)

        assert errors_of(missing_info) == {"items[0].warehouse_to_id": ["This field is required."]}
        assert errors_of(same_info) == {
            "items[0].warehouse_to_id": ["Destination must differ from the source warehouse."],
        }

    def test_destination_only_allowed_on_transfer(self, refs):
        doc = build(type="sale", counterparty_id=CUSTOMER, items=[item(warehouse_to_id=BRANCH)])

        with pytest.raises(ValidationError) as exc_info:
            validate_document(doc, refs)

        assert errors_of(exc_info) == {"items[0].warehouse_to_id": ["Not allowed for sale."]}

    def test_entry_kind_must_match_the_type(self, refs):
        doc = build(
            type="dividend_accrual",
            dividend_entries=[{"partner_id": ALICE, "kind": "payment", "amount": "100"}],
        )

        with pytest.raises(ValidationError) as exc_info:
            validate_document(doc, refs)

        assert errors_of(exc_info) == {"dividend_entries[0].kind": ["Must be 'accrual' for dividend accrual."]}

    def test_dividend_entries_follow_the_document_partner(self, refs):
        doc = build(
            type="dividend_accrual",
            partner_id=ALICE,
            dividend_entries=[{"partner_id": BOB, "amount": "100"}],
        )

        with pytest.raises(ValidationError) as exc_info:
            validate_document(doc, refs)

        assert errors_of(exc_info) == {"dividend_entries[0].partner_id": ["Must match the document partner."]}

    def test_salary_accrual_is_valid(self, refs):
        doc = build(type="salary_accrual", salary_entries=[{"user_id": STAFF, "amount": "1200"}])

        totals = validate_document(doc, refs)

        assert doc.salary_entries[0].kind == "accrual"
        assert totals.total == Decimal("1200.00")
        assert totals.paid == Decimal("0")


class TestCurrencies:

    def test_register_currency_mismatch(self, refs):
        doc = build(type="cash_in", cash_entries=[{"cash_register_id": EURO_SAFE, "amount": "10"}])

        with pytest.raises(CurrencyMismatch) as exc_info:
            validate_document(doc, refs)

        assert errors_of(exc_info) == {
            "cash_entries[0].currency_id": ["Does not match the cash register currency."],
        }

    def test_entry_currency_must_match_document(self, refs):
        doc = build(
            type="cash_in",
            cash_entries=[{"cash_register_id": EURO_SAFE, "currency_id": EUR, "amount": "10"}],
        )

        with pytest.raises(CurrencyMismatch) as exc_info:
            validate_document(doc, refs)

        assert errors_of(exc_info) == {
            "cash_entries[0].currency_id": ["Does not match the transaction currency."],
        }

    def test_currency_errors_win_over_field_errors(self, refs):
        doc = build(
            type="salary_payment",
            salary_entries=[{"user_id": 999, "currency_id": EUR, "amount": "10"}],
        )

        with pytest.raises(CurrencyMismatch) as exc_info:
            validate_document(doc, refs)

        errors = errors_of(exc_info)
        assert errors["salary_entries[0].user_id"] == ["Does not exist."]
        assert errors["salary_entries[0].currency_id"] == ["Does not match the transaction currency."]
        assert exc_info.value.as_dict()["code"] == "currency_mismatch"
