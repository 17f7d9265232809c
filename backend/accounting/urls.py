# accounting/urls.py
"""
URL configuration for accounting API.

Endpoints:
- /transactions/types/ - Transaction type choices
- /transactions/ - Ledger document list and create
- /transactions/<id>/ - Retrieve, edit and delete drafts
- /transactions/<id>/confirm/ - Confirm (apply postings)
- /transactions/<id>/cancel/ - Cancel (reverse postings)
- /dividends/calculate/ - Dividend distribution preview
"""

from django.urls import path

from .views import (
    DividendCalculateView,
    TransactionCancelView,
    TransactionConfirmView,
    TransactionDetailView,
    TransactionListCreateView,
    TransactionTypesView,
)

app_name = "accounting"

urlpatterns = [
    # ==========================================================================
    # Transactions
    # ==========================================================================
    path(
        "transactions/types/",
        TransactionTypesView.as_view(),
        name="transaction-types",
    ),
    path(
        "transactions/",
        TransactionListCreateView.as_view(),
        name="transaction-list-create",
    ),
    path(
        "transactions/<str:transaction_id>/",
        TransactionDetailView.as_view(),
        name="transaction-detail",
    ),
    path(
        "transactions/<str:transaction_id>/confirm/",
        TransactionConfirmView.as_view(),
        name="transaction-confirm",
    ),
    path(
        "transactions/<str:transaction_id>/cancel/",
        TransactionCancelView.as_view(),
        name="transaction-cancel",
    ),

    # ==========================================================================
    # Dividends
    # ==========================================================================
    path(
        "dividends/calculate/",
        DividendCalculateView.as_view(),
        name="dividend-calculate",
    ),
]
