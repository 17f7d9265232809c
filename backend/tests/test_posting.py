# tests/test_posting.py
"""
Tests for the posting engine (no database).

Covers:
- Moving average cost on purchase, sale and transfer
- Insufficient stock detection
- Signs of cash, counterparty, dividend and salary postings
- Exact restoration by negated postings
"""

from datetime import date
from decimal import Decimal

import pytest

from accounting.aggregates import (
    CashLine,
    DividendLine,
    SalaryLine,
    StockLine,
    TransactionDocument,
)
from accounting.exceptions import InsufficientStock
from accounting.posting import (
    Ledger,
    Posting,
    StockPosition,
    check_stock_effects,
    compute_postings,
    negate_postings,
    stock_keys,
)
from accounting.validators import DocumentTotals

USD = 1
MAIN, BRANCH = 1, 2
WIDGET = 7
TILL = 3
CUSTOMER = 5


def doc(type_, **kwargs):
    return TransactionDocument(type=type_, date=date(2026, 3, 1), currency_id=USD, **kwargs)


def totals(total="0", paid="0", cash="0"):
    return DocumentTotals(total=Decimal(total), paid=Decimal(paid), cash=Decimal(cash))


def by_ledger(postings, ledger):
    return [p for p in postings if p.ledger == ledger]


class TestMovingAverageCost:

    def test_purchase_averages_with_existing_position(self):
        positions = {(MAIN, WIDGET): StockPosition(Decimal("10"), Decimal("50"))}
        purchase = doc(
            "purchase",
            counterparty_id=CUSTOMER,
            items=[StockLine(WIDGET, MAIN, Decimal("10"), Decimal("7"))],
        )

        postings = compute_postings(purchase, totals("70", "0", "0"), positions)
        result = check_stock_effects(postings, positions)

        position = result[(MAIN, WIDGET)]
        assert position.quantity == Decimal("20")
        assert position.value == Decimal("120")
        assert position.avg_cost == Decimal("6.000000")

    def test_sale_takes_value_at_average_cost(self):
        positions = {(MAIN, WIDGET): StockPosition(Decimal("20"), Decimal("120"))}
        sale = doc(
            "sale",
            counterparty_id=CUSTOMER,
            items=[StockLine(WIDGET, MAIN, Decimal("5"), Decimal("10"))],
        )

        postings = compute_postings(sale, totals("50"), positions)

        [stock] = by_ledger(postings, Ledger.STOCK)
        assert stock.quantity == Decimal("-5")
        assert stock.value == Decimal("-30.000000")

    def test_emptying_a_position_takes_all_remaining_value(self):
        positions = {(MAIN, WIDGET): StockPosition(Decimal("3"), Decimal("10"))}
        sale = doc(
            "sale",
            counterparty_id=CUSTOMER,
            items=[StockLine(WIDGET, MAIN, Decimal("3"), Decimal("5"))],
        )

        postings = compute_postings(sale, totals("15"), positions)
        result = check_stock_effects(postings, positions)

        assert result[(MAIN, WIDGET)] == StockPosition(Decimal("0"), Decimal("0"))

    def test_transfer_carries_value_to_destination(self):
        positions = {(MAIN, WIDGET): StockPosition(Decimal("10"), Decimal("60"))}
        transfer = doc(
            "transfer",
            items=[StockLine(WIDGET, MAIN, Decimal("4"), warehouse_to_id=BRANCH)],
        )

        postings = compute_postings(transfer, totals("0"), positions)

        assert [(p.subject_id, p.quantity, p.value) for p in postings] == [
            (MAIN, Decimal("-4"), Decimal("-24.000000")),
            (BRANCH, Decimal("4"), Decimal("24.000000")),
        ]

    def test_two_lines_on_one_position_see_each_other(self):
        positions = {(MAIN, WIDGET): StockPosition(Decimal("5"), Decimal("25"))}
        sale = doc(
            "sale",
            counterparty_id=CUSTOMER,
            items=[
                StockLine(WIDGET, MAIN, Decimal("3"), Decimal("9")),
                StockLine(WIDGET, MAIN, Decimal("3"), Decimal("9")),
            ],
        )

        with pytest.raises(InsufficientStock) as exc_info:
            compute_postings(sale, totals("54"), positions)

        assert exc_info.value.error_map() == {"items[1].quantity": ["Only 2 in stock."]}


class TestInsufficientStock:

    def test_sale_beyond_stock_is_rejected(self):
        sale = doc(
            "sale",
            counterparty_id=CUSTOMER,
            items=[StockLine(WIDGET, MAIN, Decimal("1"), Decimal("10"))],
        )

        with pytest.raises(InsufficientStock):
            compute_postings(sale, totals("10"), {})

    def test_reversal_leaving_negative_stock_is_rejected(self):
        purchase = [Posting(Ledger.STOCK, MAIN, product_id=WIDGET, quantity=Decimal("10"), value=Decimal("50"))]
        positions = {(MAIN, WIDGET): StockPosition(Decimal("4"), Decimal("20"))}

        with pytest.raises(InsufficientStock):
            check_stock_effects(negate_postings(purchase), positions)


class TestPostingSigns:

    def test_sale_with_partial_payment(self):
        positions = {(MAIN, WIDGET): StockPosition(Decimal("20"), Decimal("1000"))}
        sale = doc(
            "sale",
            counterparty_id=CUSTOMER,
            items=[StockLine(WIDGET, MAIN, Decimal("10"), Decimal("100"))],
            cash_entries=[CashLine(TILL, USD, Decimal("400"))],
        )

        postings = compute_postings(sale, totals("1000", "400", "400"), positions)

        [cash] = by_ledger(postings, Ledger.CASH)
        [party] = by_ledger(postings, Ledger.COUNTERPARTY)
        assert cash.amount == Decimal("400")
        assert party.amount == Decimal("600")

    def test_fully_paid_sale_has_no_counterparty_posting(self):
        positions = {(MAIN, WIDGET): StockPosition(Decimal("1"), Decimal("5"))}
        sale = doc(
            "sale",
            counterparty_id=CUSTOMER,
            items=[StockLine(WIDGET, MAIN, Decimal("1"), Decimal("9"))],
            cash_entries=[CashLine(TILL, USD, Decimal("9"))],
        )

        postings = compute_postings(sale, totals("9", "9", "9"), positions)

        assert by_ledger(postings, Ledger.COUNTERPARTY) == []

    def test_purchase_on_credit_grows_payable(self):
        purchase = doc(
            "purchase",
            counterparty_id=CUSTOMER,
            items=[StockLine(WIDGET, MAIN, Decimal("2"), Decimal("30"))],
        )

        postings = compute_postings(purchase, totals("60"), {})

        [party] = by_ledger(postings, Ledger.COUNTERPARTY)
        assert party.amount == Decimal("-60")

    @pytest.mark.parametrize(
        "type_,cash_sign,party_sign",
        [
            ("sale_payment", 1, -1),
            ("purchase_payment", -1, 1),
        ],
    )
    def test_payments_settle_the_counterparty(self, type_, cash_sign, party_sign):
        payment = doc(type_, counterparty_id=CUSTOMER, cash_entries=[CashLine(TILL, USD, Decimal("300"))])

        postings = compute_postings(payment, totals("300", "300", "300"), {})

        [cash] = by_ledger(postings, Ledger.CASH)
        [party] = by_ledger(postings, Ledger.COUNTERPARTY)
        assert cash.amount == cash_sign * Decimal("300")
        assert party.amount == party_sign * Decimal("300")

    def test_cash_out_uses_absolute_amount(self):
        cash_out = doc("cash_out", cash_entries=[CashLine(TILL, USD, Decimal("-80"))])

        [cash] = compute_postings(cash_out, totals("80", "80", "80"), {})

        assert cash.amount == Decimal("-80")

    def test_dividend_accrual_and_payment(self):
        accrual = doc("dividend_accrual", dividend_entries=[DividendLine(1, USD, "accrual", Decimal("600"))])
        payment = doc(
            "dividend_payment",
            dividend_entries=[DividendLine(1, USD, "payment", Decimal("250"))],
            cash_entries=[CashLine(TILL, USD, Decimal("250"))],
        )

        [accrued] = compute_postings(accrual, totals("600"), {})
        paid = compute_postings(payment, totals("250", "250", "250"), {})

        assert (accrued.ledger, accrued.accrued, accrued.paid) == (Ledger.DIVIDEND, Decimal("600"), Decimal("0"))
        assert [(p.ledger, p.amount, p.paid) for p in paid] == [
            (Ledger.CASH, Decimal("-250"), Decimal("0")),
            (Ledger.DIVIDEND, Decimal("0"), Decimal("250")),
        ]

    def test_salary_accrual(self):
        accrual = doc("salary_accrual", salary_entries=[SalaryLine(9, USD, "accrual", Decimal("1200"))])

        [posting] = compute_postings(accrual, totals("1200"), {})

        assert posting == Posting(Ledger.SALARY, 9, currency_id=USD, accrued=Decimal("1200"))


class TestNegation:

    def test_negated_postings_restore_positions(self):
        positions = {(MAIN, WIDGET): StockPosition(Decimal("7"), Decimal("31.5"))}
        transfer = doc(
            "transfer",
            items=[StockLine(WIDGET, MAIN, Decimal("3"), warehouse_to_id=BRANCH)],
        )

        postings = compute_postings(transfer, totals("0"), positions)
        after = check_stock_effects(postings, positions)
        restored = check_stock_effects(negate_postings(postings), after)

        assert restored[(MAIN, WIDGET)] == positions[(MAIN, WIDGET)]
        assert restored[(BRANCH, WIDGET)] == StockPosition(Decimal("0"), Decimal("0"))

    def test_posting_dict_round_trip_keeps_the_ledger_fields(self):
        posting = Posting(Ledger.STOCK, MAIN, product_id=WIDGET, quantity=Decimal("2"), value=Decimal("12.5"))

        data = posting.to_dict()

        assert data == {
            "ledger": "stock",
            "subject_id": MAIN,
            "product_id": WIDGET,
            "quantity": "2",
            "value": "12.5",
        }
        assert Posting.from_dict(data) == posting

    def test_stock_keys_are_sorted_and_unique(self):
        postings = [
            Posting(Ledger.STOCK, BRANCH, product_id=WIDGET, quantity=Decimal("1")),
            Posting(Ledger.STOCK, MAIN, product_id=WIDGET, quantity=Decimal("-1")),
            Posting(Ledger.STOCK, MAIN, product_id=WIDGET, quantity=Decimal("-1")),
            Posting(Ledger.CASH, TILL, currency_id=USD, amount=Decimal("5")),
        ]

        assert stock_keys(postings) == [(MAIN, WIDGET), (BRANCH, WIDGET)]
