# projections/views.py
"""
API views for projected data.

These views read from projections (materialized balances),
NOT from computing balances on-the-fly from documents.

The projection has already done the computation. Views just read.
"""

from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from accounting.posting import Ledger
from accounts.authz import require, resolve_actor
from projections import queries
from projections.base import projection_registry
from projections.serializers import BalanceQuerySerializer


def _lag_warning(names):
    lag = sum(projection_registry.get(name).get_lag() for name in names)
    return {"lag": lag, "lag_warning": lag > 0}


def invalid_query(serializer) -> Response:
    return Response(
        {"detail": "Invalid query parameters.", "code": "validation_error", "errors": serializer.errors},
        status=status.HTTP_400_BAD_REQUEST,
    )


class BalanceView(APIView):
    """Base for read views: checks the permission and parses the query string."""
    permission_classes = [IsAuthenticated]
    permission = None

    def get(self, request):
        actor = resolve_actor(request)
        require(actor, self.get_permission())

        query = BalanceQuerySerializer(data=request.query_params)
        if not query.is_valid():
            return invalid_query(query)
        return Response(self.read(query.validated_data))

    def get_permission(self) -> str:
        return self.permission

    def read(self, params) -> dict:
        raise NotImplementedError


# =============================================================================
# Cash
# =============================================================================

class CashBalancesView(BalanceView):
    """
    GET /api/accounting/cash/balances/

    Query params: cash_register_id, currency_id
    """
    permission = "accounting.cash.view"

    def read(self, params):
        return {
            "balances": queries.cash_balances(
                cash_register_id=params.get("cash_register_id"),
                currency_id=params.get("currency_id"),
            ),
            **_lag_warning(["cash_balance"]),
        }


class CashSummaryView(BalanceView):
    """
    GET /api/accounting/cash/summary/

    Balance per active register with an informational total in the
    default currency.
    """
    permission = "accounting.cash.view"

    def read(self, params):
        return queries.cash_summary()


# =============================================================================
# Stock
# =============================================================================

class StockBalancesView(BalanceView):
    """
    GET /api/accounting/stock/balances/

    Query params:
    - group_by: "warehouse" (default) or "product"
    - warehouse_id, product_id
    - include_empty: also list positions with zero quantity
    """
    permission = "accounting.stock.view"

    def read(self, params):
        return {
            "group_by": params["group_by"],
            "groups": queries.stock_balances(
                group_by=params["group_by"],
                warehouse_id=params.get("warehouse_id"),
                product_id=params.get("product_id"),
                include_empty=params["include_empty"],
            ),
            **_lag_warning(["stock_balance"]),
        }


class StockSummaryView(BalanceView):
    """GET /api/accounting/stock/summary/"""
    permission = "accounting.stock.view"

    def read(self, params):
        return queries.stock_summary()


# =============================================================================
# Counterparties
# =============================================================================

class CounterpartyBalancesView(BalanceView):
    """
    GET /api/accounting/counterparties/balances/

    Query params: debtors_only, creditors_only, currency_id, counterparty_id
    """
    permission = "accounting.counterparties.view"

    def read(self, params):
        return {
            "balances": queries.counterparty_balances(
                debtors_only=params["debtors_only"],
                creditors_only=params["creditors_only"],
                currency_id=params.get("currency_id"),
                counterparty_id=params.get("counterparty_id"),
            ),
            **_lag_warning(["counterparty_balance"]),
        }


class CounterpartySummaryView(BalanceView):
    """GET /api/accounting/counterparties/summary/"""
    permission = "accounting.counterparties.view"

    def read(self, params):
        return queries.counterparty_summary()


# =============================================================================
# Dividends / salary
# =============================================================================

class DividendBalancesView(BalanceView):
    """
    GET /api/accounting/dividends/balances/

    Query params: partner_id, currency_id
    """
    permission = "accounting.dividends.view"

    def read(self, params):
        return {
            "balances": queries.dividend_balances(
                partner_id=params.get("partner_id"),
                currency_id=params.get("currency_id"),
            ),
            **_lag_warning(["dividend_balance"]),
        }


class DividendSummaryView(BalanceView):
    """GET /api/accounting/dividends/summary/"""
    permission = "accounting.dividends.view"

    def read(self, params):
        return queries.dividend_summary()


class SalaryBalancesView(BalanceView):
    """
    GET /api/accounting/salary/balances/

    Query params: user_id, currency_id
    """
    permission = "accounting.salary.view"

    def read(self, params):
        return {
            "balances": queries.salary_balances(
                user_id=params.get("user_id"),
                currency_id=params.get("currency_id"),
            ),
            **_lag_warning(["salary_balance"]),
        }


class SalarySummaryView(BalanceView):
    """GET /api/accounting/salary/summary/"""
    permission = "accounting.salary.view"

    def read(self, params):
        return queries.salary_summary()


# =============================================================================
# Movements
# =============================================================================

MOVEMENT_PERMISSIONS = {
    Ledger.CASH: "accounting.cash.view",
    Ledger.STOCK: "accounting.stock.view",
    Ledger.COUNTERPARTY: "accounting.counterparties.view",
    Ledger.DIVIDEND: "accounting.dividends.view",
    Ledger.SALARY: "accounting.salary.view",
}


class MovementsView(BalanceView):
    """
    GET /api/accounting/{cash,stock,counterparties,dividends,salary}/movements/

    The posting history of one ledger, newest first.

    Query params: the ledger's subject id (cash_register_id, warehouse_id,
    counterparty_id, partner_id, user_id), product_id, currency_id,
    date_from, date_to, limit (max 1000).
    """
    ledger = None

    def get_permission(self):
        return MOVEMENT_PERMISSIONS[self.ledger]

    def read(self, params):
        return {
            "ledger": self.ledger,
            "movements": queries.movements(self.ledger, params, limit=params["limit"]),
        }


# =============================================================================
# Projection maintenance
# =============================================================================

class ProjectionStatusView(APIView):
    """
    GET /api/accounting/projections/

    Returns status and verification of all projections for monitoring.
    Pass verify=false to skip the (slower) verification.
    """
    permission_classes = [IsAuthenticated]

    def get(self, request):
        actor = resolve_actor(request)
        require(actor, "accounting.projections.manage")

        verify = request.query_params.get("verify", "true").lower() != "false"

        projections = []
        for projection in projection_registry.all():
            bookmark = projection.get_bookmark()
            lag = projection.get_lag()
            entry = {
                "name": projection.name,
                "consumes": projection.consumes,
                "lag": lag,
                "is_healthy": lag == 0,
                "is_paused": bookmark.is_paused if bookmark else False,
                "error_count": bookmark.error_count if bookmark else 0,
                "last_error": bookmark.last_error if bookmark else "",
                "last_processed_at": (
                    bookmark.last_processed_at.isoformat()
                    if bookmark and bookmark.last_processed_at
                    else None
                ),
            }
            if verify:
                entry["verification"] = projection.verify()
                entry["is_healthy"] = entry["is_healthy"] and entry["verification"]["ok"]
            projections.append(entry)

        return Response({
            "projections": projections,
            "total_lag": sum(p["lag"] for p in projections),
            "all_healthy": all(p["is_healthy"] for p in projections),
        })


class ProjectionRebuildView(APIView):
    """
    POST /api/accounting/projections/<name>/rebuild/

    Queues a rebuild of one projection from the event store.
    """
    permission_classes = [IsAuthenticated]

    def post(self, request, name):
        actor = resolve_actor(request)
        require(actor, "accounting.projections.manage")

        if projection_registry.get(name) is None:
            return Response(
                {"detail": f"Unknown projection: {name}"},
                status=status.HTTP_404_NOT_FOUND,
            )

        from projections.tasks import rebuild_projection_task

        result = rebuild_projection_task.delay(projection_name=name)
        body = {"projection": name, "task_id": result.id}
        if result.ready():
            body["result"] = result.get()
        return Response(body, status=status.HTTP_202_ACCEPTED)
