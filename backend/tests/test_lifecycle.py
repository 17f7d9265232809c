# tests/test_lifecycle.py
"""
Document lifecycle through the command layer.

Covers:
- Draft create / update / delete rules and numbering
- Confirm applies every balance atomically
- Cancel reverses exactly what the confirmation applied
- Rejections leave nothing behind
"""

from datetime import date
from decimal import Decimal

import pytest
from django.core.exceptions import PermissionDenied
from django.db import OperationalError

from accounting.commands import (
    cancel_transaction,
    confirm_transaction,
    create_draft,
    delete_draft,
    get_transaction,
    update_draft,
)
from accounting.exceptions import (
    AlreadyFinalized,
    Conflict,
    CurrencyMismatch,
    InsufficientStock,
    InvalidState,
    NotFound,
    ValidationError,
)
from accounting.models import DocumentSequence, Transaction
from events.models import BusinessEvent
from events.types import EventTypes
from projections.models import (
    CashBalance,
    CounterpartyBalance,
    PartnerDividendBalance,
    SalaryBalance,
    StockBalance,
)

DOC_DATE = date(2026, 3, 1)


def stock(warehouse, product):
    row = StockBalance.objects.filter(warehouse=warehouse, product=product).first()
    return (row.quantity, row.value) if row else (Decimal("0"), Decimal("0"))


def cash(register):
    row = CashBalance.objects.filter(cash_register=register).first()
    return row.balance if row else Decimal("0")


def owed(counterparty):
    row = CounterpartyBalance.objects.filter(counterparty=counterparty).first()
    return row.balance if row else Decimal("0")


def sale_data(usd, customer, warehouse, widget, till, quantity="10", price="100", paid="400"):
    data = {
        "type": "sale",
        "date": DOC_DATE,
        "currency_id": usd.pk,
        "counterparty_id": customer.pk,
        "items": [{"product_id": widget.pk, "warehouse_id": warehouse.pk, "quantity": quantity, "price": price}],
    }
    if paid:
        data["cash_entries"] = [{"cash_register_id": till.pk, "amount": paid}]
    return data


@pytest.mark.django_db
class TestDrafts:

    def test_create_allocates_number_and_totals(self, owner_actor, usd, customer, warehouse, widget, till):
        result = create_draft(owner_actor, **sale_data(usd, customer, warehouse, widget, till))

        assert result.success
        txn = result.data
        assert txn.number == "SAL-26-0001"
        assert txn.status == "draft"
        assert txn.total_amount == Decimal("1000")
        assert txn.paid_amount == Decimal("400")
        assert txn.items.count() == 1
        assert txn.cash_entries.get().line_no == 1
        assert result.event.event_type == EventTypes.TRANSACTION_CREATED

    def test_numbers_run_per_type_and_year(self, owner_actor, usd, till):
        def cash_in(day):
            return create_draft(
                owner_actor,
                type="cash_in",
                date=day,
                currency_id=usd.pk,
                cash_entries=[{"cash_register_id": till.pk, "amount": "10"}],
            ).data.number

        assert cash_in(DOC_DATE) == "CIN-26-0001"
        assert cash_in(DOC_DATE) == "CIN-26-0002"
        assert cash_in(date(2027, 1, 2)) == "CIN-27-0001"

    def test_deleted_numbers_are_not_reused(self, owner_actor, usd, till):
        data = {
            "type": "cash_out",
            "date": DOC_DATE,
            "currency_id": usd.pk,
            "cash_entries": [{"cash_register_id": till.pk, "amount": "10"}],
        }
        first = create_draft(owner_actor, **data).data

        assert delete_draft(owner_actor, first.pk).success
        assert create_draft(owner_actor, **data).data.number == "COU-26-0002"
        assert DocumentSequence.objects.get(transaction_type="cash_out", year=2026).next_value == 3

    def test_invalid_draft_writes_nothing(self, owner_actor, usd, customer):
        result = create_draft(owner_actor, type="sale", date=DOC_DATE, currency_id=usd.pk, counterparty_id=customer.pk)

        assert not result.success
        assert isinstance(result.exception, ValidationError)
        assert result.exception.error_map() == {"items": ["At least one line is required for sale."]}
        assert Transaction.objects.count() == 0
        assert BusinessEvent.objects.count() == 0
        assert DocumentSequence.objects.count() == 0

    def test_currency_mismatch_writes_nothing(self, owner_actor, usd, euro_safe):
        result = create_draft(
            owner_actor,
            type="cash_in",
            date=DOC_DATE,
            currency_id=usd.pk,
            cash_entries=[{"cash_register_id": euro_safe.pk, "amount": "10"}],
        )

        assert not result.success
        assert isinstance(result.exception, CurrencyMismatch)
        assert result.exception.status_code == 400
        assert Transaction.objects.count() == 0
        assert BusinessEvent.objects.count() == 0

    def test_update_replaces_sent_groups_only(self, owner_actor, usd, customer, warehouse, widget, till):
        txn = create_draft(owner_actor, **sale_data(usd, customer, warehouse, widget, till)).data

        result = update_draft(
            owner_actor,
            txn.pk,
            description="Counter sale",
            items=[{"product_id": widget.pk, "warehouse_id": warehouse.pk, "quantity": "5", "price": "100"}],
        )

        assert result.success
        txn.refresh_from_db()
        assert txn.description == "Counter sale"
        assert txn.total_amount == Decimal("500")
        assert txn.items.get().quantity == Decimal("5")
        assert txn.cash_entries.get().amount == Decimal("400")

        event = result.event
        assert event.event_type == EventTypes.TRANSACTION_UPDATED
        assert event.data["replaced_lines"] == ["items"]
        assert event.data["changes"]["total_amount"]["new"].startswith("500")

    def test_update_without_changes_emits_nothing(self, owner_actor, usd, till):
        txn = create_draft(
            owner_actor,
            type="cash_in",
            date=DOC_DATE,
            currency_id=usd.pk,
            description="Float",
            cash_entries=[{"cash_register_id": till.pk, "amount": "10"}],
        ).data

        result = update_draft(owner_actor, txn.pk, description="Float")

        assert result.success
        assert result.event is None

    def test_two_identical_edits_are_both_recorded(self, owner_actor, usd, till):
        txn = create_draft(
            owner_actor,
            type="cash_in",
            date=DOC_DATE,
            currency_id=usd.pk,
            cash_entries=[{"cash_register_id": till.pk, "amount": "10"}],
        ).data

        update_draft(owner_actor, txn.pk, description="A")
        update_draft(owner_actor, txn.pk, description="B")
        update_draft(owner_actor, txn.pk, description="A")

        assert BusinessEvent.objects.filter(event_type=EventTypes.TRANSACTION_UPDATED).count() == 3

    def test_type_cannot_change(self, owner_actor, usd, till):
        txn = create_draft(
            owner_actor,
            type="cash_in",
            date=DOC_DATE,
            currency_id=usd.pk,
            cash_entries=[{"cash_register_id": till.pk, "amount": "10"}],
        ).data

        result = update_draft(owner_actor, txn.pk, type="cash_out")

        assert not result.success
        assert "type" in result.exception.error_map()

    def test_confirmed_document_cannot_be_edited_or_deleted(self, post, owner_actor, usd, till):
        txn = post(type="cash_in", currency_id=usd.pk, cash_entries=[{"cash_register_id": till.pk, "amount": "10"}])

        edit = update_draft(owner_actor, txn.pk, description="late edit")
        delete = delete_draft(owner_actor, txn.pk)

        assert isinstance(edit.exception, InvalidState)
        assert isinstance(delete.exception, InvalidState)
        assert Transaction.objects.filter(pk=txn.pk).exists()

    def test_delete_draft_records_the_event(self, owner_actor, usd, till):
        txn = create_draft(
            owner_actor,
            type="cash_in",
            date=DOC_DATE,
            currency_id=usd.pk,
            cash_entries=[{"cash_register_id": till.pk, "amount": "10"}],
        ).data

        result = delete_draft(owner_actor, str(txn.public_id))

        assert result.success
        assert not Transaction.objects.filter(pk=txn.pk).exists()
        assert result.event.aggregate_id == str(txn.public_id)

    def test_get_by_pk_or_public_id(self, owner_actor, usd, till):
        txn = create_draft(
            owner_actor,
            type="cash_in",
            date=DOC_DATE,
            currency_id=usd.pk,
            cash_entries=[{"cash_register_id": till.pk, "amount": "10"}],
        ).data

        assert get_transaction(owner_actor, txn.pk).data == txn
        assert get_transaction(owner_actor, str(txn.public_id)).data == txn
        assert isinstance(get_transaction(owner_actor, "no-such-id").exception, NotFound)

    def test_viewer_cannot_create(self, viewer_actor, usd, till):
        with pytest.raises(PermissionDenied):
            create_draft(
                viewer_actor,
                type="cash_in",
                date=DOC_DATE,
                currency_id=usd.pk,
                cash_entries=[{"cash_register_id": till.pk, "amount": "10"}],
            )


@pytest.mark.django_db
class TestConfirm:

    def test_sale_moves_every_balance(self, stocked, post, usd, customer, warehouse, widget, till):
        txn = post(**sale_data(usd, customer, warehouse, widget, till))

        assert txn.status == "confirmed"
        assert txn.confirmed_at is not None
        assert stock(warehouse, widget) == (Decimal("10"), Decimal("500"))
        assert cash(till) == Decimal("400")
        assert owed(customer) == Decimal("600")

    def test_purchase_records_payable(self, stocked, supplier, warehouse, widget):
        assert owed(supplier) == Decimal("-1000")
        assert stock(warehouse, widget) == (Decimal("20"), Decimal("1000"))

    def test_confirm_twice_is_rejected(self, stocked, owner_actor):
        result = confirm_transaction(owner_actor, stocked.pk)

        assert isinstance(result.exception, AlreadyFinalized)
        assert result.exception.status_code == 409
        assert BusinessEvent.objects.filter(event_type=EventTypes.TRANSACTION_CONFIRMED).count() == 1

    def test_insufficient_stock_changes_nothing(self, stocked, owner_actor, usd, customer, warehouse, widget, till):
        txn = create_draft(owner_actor, **sale_data(usd, customer, warehouse, widget, till, quantity="30")).data

        result = confirm_transaction(owner_actor, txn.pk)

        assert isinstance(result.exception, InsufficientStock)
        txn.refresh_from_db()
        assert txn.status == "draft"
        assert stock(warehouse, widget) == (Decimal("20"), Decimal("1000"))
        assert cash(till) == Decimal("0")
        assert owed(customer) == Decimal("0")
        assert not BusinessEvent.objects.filter(
            event_type=EventTypes.TRANSACTION_CONFIRMED,
            aggregate_id=str(txn.public_id),
        ).exists()

    def test_transfer_keeps_total_value(self, stocked, post, warehouse, branch, widget, usd):
        post(
            type="transfer",
            currency_id=usd.pk,
            items=[{
                "product_id": widget.pk,
                "warehouse_id": warehouse.pk,
                "warehouse_to_id": branch.pk,
                "quantity": "5",
            }],
        )

        assert stock(warehouse, widget) == (Decimal("15"), Decimal("750"))
        assert stock(branch, widget) == (Decimal("5"), Decimal("250"))

    def test_payments_settle_counterparties(self, stocked, post, usd, supplier, till):
        post(type="cash_in", currency_id=usd.pk, cash_entries=[{"cash_register_id": till.pk, "amount": "1500"}])
        post(
            type="purchase_payment",
            currency_id=usd.pk,
            counterparty_id=supplier.pk,
            cash_entries=[{"cash_register_id": till.pk, "amount": "1000"}],
        )

        assert owed(supplier) == Decimal("0")
        assert cash(till) == Decimal("500")

    def test_dividends_accrue_and_pay(self, post, usd, till, partners):
        alice, bob = partners
        post(
            type="dividend_accrual",
            currency_id=usd.pk,
            dividend_entries=[
                {"partner_id": alice.pk, "amount": "600"},
                {"partner_id": bob.pk, "amount": "400"},
            ],
        )
        post(type="cash_in", currency_id=usd.pk, cash_entries=[{"cash_register_id": till.pk, "amount": "1000"}])
        post(
            type="dividend_payment",
            currency_id=usd.pk,
            partner_id=alice.pk,
            dividend_entries=[{"partner_id": alice.pk, "amount": "250"}],
            cash_entries=[{"cash_register_id": till.pk, "amount": "250"}],
        )

        row = PartnerDividendBalance.objects.get(partner=alice)
        assert (row.accrued, row.paid, row.balance) == (Decimal("600"), Decimal("250"), Decimal("350"))
        assert PartnerDividendBalance.objects.get(partner=bob).balance == Decimal("400")
        assert cash(till) == Decimal("750")

    def test_salary_accrues_and_pays(self, post, usd, till, employee):
        post(type="salary_accrual", currency_id=usd.pk, salary_entries=[{"user_id": employee.pk, "amount": "1200"}])
        post(type="salary_payment", currency_id=usd.pk, salary_entries=[{"user_id": employee.pk, "amount": "1200"}])

        row = SalaryBalance.objects.get(user=employee)
        assert (row.accrued, row.paid, row.balance) == (Decimal("1200"), Decimal("1200"), Decimal("0"))
        assert cash(till) == Decimal("0")

    def test_balances_are_per_currency(self, post, usd, eur, till, euro_safe):
        post(type="cash_in", currency_id=usd.pk, cash_entries=[{"cash_register_id": till.pk, "amount": "100"}])
        post(type="cash_in", currency_id=eur.pk, cash_entries=[{"cash_register_id": euro_safe.pk, "amount": "70"}])

        assert CashBalance.objects.get(cash_register=till, currency=usd).balance == Decimal("100")
        assert CashBalance.objects.get(cash_register=euro_safe, currency=eur).balance == Decimal("70")


@pytest.mark.django_db
class TestCancel:

    def test_cancel_restores_every_balance(self, stocked, post, owner_actor, usd, customer, warehouse, widget, till):
        txn = post(**sale_data(usd, customer, warehouse, widget, till))

        result = cancel_transaction(owner_actor, txn.pk)

        assert result.success
        assert result.data.status == "cancelled"
        assert stock(warehouse, widget) == (Decimal("20"), Decimal("1000"))
        assert cash(till) == Decimal("0")
        assert owed(customer) == Decimal("0")

        confirmed = BusinessEvent.objects.get(
            event_type=EventTypes.TRANSACTION_CONFIRMED,
            aggregate_id=str(txn.public_id),
        )
        assert result.event.caused_by_event_id == confirmed.id
        assert result.event.data["reverses_event_id"] == str(confirmed.id)
        assert len(result.event.data["postings"]) == len(confirmed.data["postings"])

    def test_double_cancel_is_rejected(self, stocked, owner_actor, supplier):
        assert cancel_transaction(owner_actor, stocked.pk).success

        result = cancel_transaction(owner_actor, stocked.pk)

        assert isinstance(result.exception, AlreadyFinalized)
        assert owed(supplier) == Decimal("0")
        assert BusinessEvent.objects.filter(event_type=EventTypes.TRANSACTION_CANCELLED).count() == 1

    def test_cancelled_document_cannot_be_confirmed(self, owner_actor, usd, till):
        txn = create_draft(
            owner_actor,
            type="cash_in",
            date=DOC_DATE,
            currency_id=usd.pk,
            cash_entries=[{"cash_register_id": till.pk, "amount": "10"}],
        ).data
        cancelled = cancel_transaction(owner_actor, txn.pk)

        result = confirm_transaction(owner_actor, txn.pk)

        assert cancelled.event.data["postings"] == []
        assert isinstance(result.exception, AlreadyFinalized)
        assert cash(till) == Decimal("0")

    def test_reversal_that_would_go_negative_is_rejected(
        self, stocked, post, owner_actor, usd, customer, warehouse, widget, till, supplier,
    ):
        post(**sale_data(usd, customer, warehouse, widget, till, quantity="15", paid=None))

        result = cancel_transaction(owner_actor, stocked.pk)

        assert isinstance(result.exception, InsufficientStock)
        stocked.refresh_from_db()
        assert stocked.status == "confirmed"
        assert stock(warehouse, widget) == (Decimal("5"), Decimal("250"))
        assert owed(supplier) == Decimal("-1000")

    def test_cancel_unknown_document(self, owner_actor):
        result = cancel_transaction(owner_actor, 424242)

        assert isinstance(result.exception, NotFound)
        assert result.exception.status_code == 404


def lock_timeout(*args, **kwargs):
    raise OperationalError("canceling statement due to lock timeout")


@pytest.mark.django_db
class TestLockConflicts:

    def test_confirm_lock_timeout_is_a_retryable_conflict(
        self, monkeypatch, stocked, owner_actor, usd, customer, warehouse, widget, till,
    ):
        txn = create_draft(owner_actor, **sale_data(usd, customer, warehouse, widget, till)).data
        monkeypatch.setattr("accounting.commands.lock_stock_positions", lock_timeout)

        result = confirm_transaction(owner_actor, txn.pk)

        assert not result.success
        assert isinstance(result.exception, Conflict)
        assert result.exception.retryable
        assert result.exception.as_dict()["retryable"] is True
        txn.refresh_from_db()
        assert txn.status == "draft"
        assert stock(warehouse, widget) == (Decimal("20"), Decimal("1000"))
        assert cash(till) == Decimal("0")
        assert owed(customer) == Decimal("0")
        assert not BusinessEvent.objects.filter(
            event_type=EventTypes.TRANSACTION_CONFIRMED,
            aggregate_id=str(txn.public_id),
        ).exists()

    def test_cancel_lock_timeout_keeps_the_confirmation(self, monkeypatch, stocked, owner_actor, warehouse, widget, supplier):
        monkeypatch.setattr("accounting.commands.lock_transaction", lock_timeout)

        result = cancel_transaction(owner_actor, stocked.pk)

        assert isinstance(result.exception, Conflict)
        stocked.refresh_from_db()
        assert stocked.status == "confirmed"
        assert stock(warehouse, widget) == (Decimal("20"), Decimal("1000"))
        assert owed(supplier) == Decimal("-1000")
