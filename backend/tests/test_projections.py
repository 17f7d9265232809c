# tests/test_projections.py
"""
Tests for the projections module.

Tests cover:
- Idempotent event application
- Verification against the posting history
- Rebuild from the event store
- Maintenance tasks and management commands
"""

from decimal import Decimal
from io import StringIO

import pytest
from django.core.management import call_command
from django.core.management.base import CommandError

from accounting.commands import cancel_transaction
from events.models import BusinessEvent, EventBookmark
from events.types import EventTypes
from projections.base import apply_projections, projection_registry
from projections.models import (
    CashBalance,
    CounterpartyBalance,
    PostingLine,
    ProjectionAppliedEvent,
    StockBalance,
)
from projections.tasks import rebuild_all_projections_task, verify_projections_task
from projections.write_barrier import projection_writes_allowed


@pytest.fixture
def history(stocked, post, owner_actor, usd, customer, warehouse, branch, widget, till):
    """A purchase, a part-paid sale, a transfer and a cancelled cash-in."""
    post(
        type="sale",
        currency_id=usd.pk,
        counterparty_id=customer.pk,
        items=[{"product_id": widget.pk, "warehouse_id": warehouse.pk, "quantity": "3", "price": "80"}],
        cash_entries=[{"cash_register_id": till.pk, "amount": "100"}],
    )
    post(
        type="transfer",
        currency_id=usd.pk,
        items=[{
            "product_id": widget.pk,
            "warehouse_id": warehouse.pk,
            "warehouse_to_id": branch.pk,
            "quantity": "7",
        }],
    )
    cash_in = post(type="cash_in", currency_id=usd.pk, cash_entries=[{"cash_register_id": till.pk, "amount": "55"}])
    assert cancel_transaction(owner_actor, cash_in.pk).success


def balances():
    return {
        "cash": sorted(CashBalance.objects.values_list("cash_register_id", "balance")),
        "stock": sorted(StockBalance.objects.values_list("warehouse_id", "product_id", "quantity", "value")),
        "counterparty": sorted(CounterpartyBalance.objects.values_list("counterparty_id", "balance")),
    }


@pytest.mark.django_db
class TestApplication:

    def test_registry_lists_all_projections(self):
        assert set(projection_registry.names()) == {
            "posting_history",
            "cash_balance",
            "stock_balance",
            "counterparty_balance",
            "dividend_balance",
            "salary_balance",
        }

    def test_applying_an_event_twice_counts_once(self, history, till):
        event = BusinessEvent.objects.filter(event_type=EventTypes.TRANSACTION_CONFIRMED).last()
        before = balances()

        apply_projections(event)

        assert balances() == before
        assert CashBalance.objects.get(cash_register=till).balance == Decimal("100")

    def test_no_lag_after_commands(self, history):
        for projection in projection_registry.all():
            assert projection.get_lag() == 0
            assert projection.get_bookmark().last_event is not None

    def test_posting_history_mirrors_events(self, history):
        reversal = PostingLine.objects.filter(is_reversal=True).get()

        assert reversal.ledger == "cash"
        assert reversal.amount == Decimal("-55")
        assert PostingLine.objects.filter(ledger="stock").count() == 4

    def test_paused_projection_skips_pending(self, history):
        projection = projection_registry.get("cash_balance")
        bookmark = projection.get_bookmark()
        bookmark.is_paused = True
        bookmark.save()

        assert projection.process_pending() == 0


@pytest.mark.django_db
class TestVerification:

    def test_every_projection_verifies(self, history):
        for projection in projection_registry.all():
            result = projection.verify()
            assert result["ok"], result["mismatches"]
            assert result["checked"] > 0 or projection.name in ("dividend_balance", "salary_balance")

    def test_fold_equals_materialized_state(self, history):
        projection = projection_registry.get("stock_balance")

        assert projection.fold() == projection.snapshot()

    def test_fold_uses_the_stored_precision(self, history, till, widget, warehouse):
        cash = projection_registry.get("cash_balance").fold()
        stock = projection_registry.get("stock_balance").fold()

        assert str(cash[(till.pk, till.currency_id)]["balance"]) == "100.000000"
        assert str(stock[(warehouse.pk, widget.pk)]["quantity"]) == "10.0000"

    def test_tampered_balance_is_reported(self, history, till):
        with projection_writes_allowed():
            row = CashBalance.objects.get(cash_register=till)
            row.balance = Decimal("1")
            row.save()

        result = projection_registry.get("cash_balance").verify()

        assert not result["ok"]
        assert result["mismatches"] == [{
            "key": [str(till.pk), str(till.currency_id)],
            "field": "balance",
            "projected": "1.000000",
            "expected": "100.000000",
        }]

    def test_verify_task_reports_all(self, history):
        report = verify_projections_task()

        assert report["ok"]
        assert len(report["projections"]) == len(projection_registry.all())


@pytest.mark.django_db
class TestRebuild:

    def test_rebuild_restores_balances(self, history, till):
        before = balances()
        with projection_writes_allowed():
            CashBalance.objects.all().delete()
            StockBalance.objects.update(quantity=0, value=0)

        for projection in projection_registry.all():
            projection.rebuild()

        assert balances() == before
        assert all(p.verify()["ok"] for p in projection_registry.all())

    def test_rebuild_counts_posting_events(self, history):
        posting_events = BusinessEvent.objects.filter(event_type__in=EventTypes.POSTING_EVENTS).count()

        assert projection_registry.get("stock_balance").rebuild() == posting_events
        assert ProjectionAppliedEvent.objects.filter(projection_name="stock_balance").count() == posting_events

    def test_rebuild_all_task(self, history):
        before = balances()

        result = rebuild_all_projections_task()

        assert balances() == before
        assert set(result["projections"]) == set(projection_registry.names())
        assert all(r["status"] == "success" for r in result["projections"].values())

    def test_rebuild_resets_the_bookmark(self, history):
        projection = projection_registry.get("cash_balance")
        bookmark = projection.get_bookmark()
        bookmark.mark_error("boom")

        projection.rebuild()

        bookmark = EventBookmark.objects.get(consumer_name="cash_balance")
        assert bookmark.error_count == 0
        assert bookmark.last_error == ""


@pytest.mark.django_db
class TestManagementCommands:

    def test_verify_projections_ok(self, history):
        out = StringIO()

        call_command("verify_projections", stdout=out)

        assert "cash_balance: OK" in out.getvalue()

    def test_verify_projections_fails_on_mismatch(self, history, till):
        with projection_writes_allowed():
            CashBalance.objects.filter(cash_register=till).update(balance=Decimal("9"))

        with pytest.raises(CommandError, match="cash_balance"):
            call_command("verify_projections", "--projection", "cash_balance", stdout=StringIO())

    def test_rebuild_projection_command(self, history):
        out = StringIO()

        call_command("rebuild_projection", "--all", "--verify", stdout=out)

        assert "REBUILD COMPLETE" in out.getvalue()
        assert "mismatches" not in out.getvalue()

    def test_rebuild_projection_dry_run_changes_nothing(self, history):
        before = balances()
        out = StringIO()

        call_command("rebuild_projection", "--projection", "stock_balance", "--dry-run", stdout=out)

        assert "DRY RUN" in out.getvalue()
        assert balances() == before

    def test_rebuild_projection_unknown_name(self):
        with pytest.raises(CommandError, match="Unknown projection"):
            call_command("rebuild_projection", "--projection", "nope", stdout=StringIO())
