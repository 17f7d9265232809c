# projections/urls.py
"""
URL configuration for balance read API.

All these endpoints read from projected data (materialized balances),
not from computing on-the-fly.

Endpoints:
- /cash/{balances,summary,movements}/
- /stock/{balances,summary,movements}/
- /counterparties/{balances,summary,movements}/
- /dividends/{balances,summary,movements}/
- /salary/{balances,summary,movements}/

Projection Management:
- /projections/ - Status and verification of all projections
- /projections/<name>/rebuild/ - Trigger rebuild
"""

from django.urls import path

from accounting.posting import Ledger
from .views import (
    CashBalancesView,
    CashSummaryView,
    CounterpartyBalancesView,
    CounterpartySummaryView,
    DividendBalancesView,
    DividendSummaryView,
    MovementsView,
    ProjectionRebuildView,
    ProjectionStatusView,
    SalaryBalancesView,
    SalarySummaryView,
    StockBalancesView,
    StockSummaryView,
)

app_name = "projections"

urlpatterns = [
    # Cash
    path("cash/balances/", CashBalancesView.as_view(), name="cash-balances"),
    path("cash/summary/", CashSummaryView.as_view(), name="cash-summary"),
    path("cash/movements/", MovementsView.as_view(ledger=Ledger.CASH), name="cash-movements"),

    # Stock
    path("stock/balances/", StockBalancesView.as_view(), name="stock-balances"),
    path("stock/summary/", StockSummaryView.as_view(), name="stock-summary"),
    path("stock/movements/", MovementsView.as_view(ledger=Ledger.STOCK), name="stock-movements"),

    # Counterparties
    path("counterparties/balances/", CounterpartyBalancesView.as_view(), name="counterparty-balances"),
    path("counterparties/summary/", CounterpartySummaryView.as_view(), name="counterparty-summary"),
    path(
        "counterparties/movements/",
        MovementsView.as_view(ledger=Ledger.COUNTERPARTY),
        name="counterparty-movements",
    ),

    # Dividends
    path("dividends/balances/", DividendBalancesView.as_view(), name="dividend-balances"),
    path("dividends/summary/", DividendSummaryView.as_view(), name="dividend-summary"),
    path("dividends/movements/", MovementsView.as_view(ledger=Ledger.DIVIDEND), name="dividend-movements"),

    # Salary
    path("salary/balances/", SalaryBalancesView.as_view(), name="salary-balances"),
    path("salary/summary/", SalarySummaryView.as_view(), name="salary-summary"),
    path("salary/movements/", MovementsView.as_view(ledger=Ledger.SALARY), name="salary-movements"),

    # ==========================================================================
    # Projection Management
    # ==========================================================================
    path("projections/", ProjectionStatusView.as_view(), name="projection-status"),
    path(
        "projections/<str:name>/rebuild/",
        ProjectionRebuildView.as_view(),
        name="projection-rebuild",
    ),
]
