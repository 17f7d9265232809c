# accounting/views.py
"""
Thin views that delegate to the commands layer.

Views handle: HTTP parsing, authentication, response formatting.
Commands handle: business logic, validation, events, balances.

CRITICAL: All mutations (create, update, delete, confirm, cancel) MUST go
through commands to ensure events are emitted. Views should never
directly call .save() on models.
"""

from django.db.models import Q
from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.pagination import PageNumberPagination
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from accounts.authz import require, resolve_actor
from references.models import Currency
from .commands import (
    cancel_transaction,
    confirm_transaction,
    create_draft,
    delete_draft,
    get_transaction,
    update_draft,
)
from .dividends import calculate_distribution
from .models import Transaction
from .serializers import (
    DividendCalculateSerializer,
    TransactionFilterSerializer,
    TransactionInputSerializer,
    TransactionListSerializer,
    TransactionSerializer,
)
from .types import type_choices


def error_response(result) -> Response:
    """Render a failed CommandResult."""
    exc = result.exception
    if exc is None:
        return Response({"detail": result.error}, status=status.HTTP_400_BAD_REQUEST)
    return Response(exc.as_dict(), status=exc.status_code)


def invalid_input(serializer) -> Response:
    return Response(
        {"detail": "Invalid input.", "code": "validation_error", "errors": serializer.errors},
        status=status.HTTP_400_BAD_REQUEST,
    )


def filter_transactions(qs, params):
    """
    Apply list filters from validated query params.

    Supported: type, types, status, counterparty_id, partner_id,
    date_from, date_to, search (number, description or counterparty name).
    """
    if params.get("type"):
        qs = qs.filter(type=params["type"])
    if params.get("types"):
        qs = qs.filter(type__in=params["types"])
    if params.get("status"):
        qs = qs.filter(status=params["status"])
    if params.get("counterparty_id"):
        qs = qs.filter(counterparty_id=params["counterparty_id"])
    if params.get("partner_id"):
        qs = qs.filter(partner_id=params["partner_id"])
    if params.get("date_from"):
        qs = qs.filter(date__gte=params["date_from"])
    if params.get("date_to"):
        qs = qs.filter(date__lte=params["date_to"])
    search = (params.get("search") or "").strip()
    if search:
        qs = qs.filter(
            Q(number__icontains=search)
            | Q(description__icontains=search)
            | Q(counterparty__name__icontains=search)
        )
    return qs


DETAIL_PREFETCH = (
    "items__product",
    "items__warehouse",
    "items__warehouse_to",
    "cash_entries__cash_register",
    "cash_entries__currency",
    "dividend_entries__partner",
    "dividend_entries__currency",
    "salary_entries__user",
    "salary_entries__currency",
    "service_entries__service",
)


def _detail(txn) -> dict:
    txn = Transaction.objects.select_related(
        "currency", "counterparty", "partner",
    ).prefetch_related(*DETAIL_PREFETCH).get(pk=txn.pk)
    return TransactionSerializer(txn).data


# =============================================================================
# Transaction Views
# =============================================================================

class TransactionTypesView(APIView):
    """
    GET /api/accounting/transactions/types/ -> [{value, label}]
    """
    permission_classes = [IsAuthenticated]

    def get(self, request):
        actor = resolve_actor(request)
        require(actor, "accounting.transactions.view")
        return Response(type_choices())


class TransactionListCreateView(APIView):
    """
    GET /api/accounting/transactions/ -> filtered, paginated list
    POST /api/accounting/transactions/ -> create a draft

    POST goes through the command layer to emit events.
    """
    permission_classes = [IsAuthenticated]

    def get(self, request):
        actor = resolve_actor(request)
        require(actor, "accounting.transactions.view")

        filters = TransactionFilterSerializer(data=request.query_params)
        if not filters.is_valid():
            return invalid_input(filters)

        qs = Transaction.objects.select_related("currency", "counterparty", "partner")
        qs = filter_transactions(qs, filters.validated_data).order_by("-date", "-id")

        paginator = PageNumberPagination()
        page = paginator.paginate_queryset(qs, request, view=self)
        serializer = TransactionListSerializer(page, many=True)
        return paginator.get_paginated_response(serializer.data)

    def post(self, request):
        actor = resolve_actor(request)
        # Permission check happens in command

        input_serializer = TransactionInputSerializer(data=request.data)
        if not input_serializer.is_valid():
            return invalid_input(input_serializer)

        result = create_draft(actor, **input_serializer.validated_data)
        if not result.success:
            return error_response(result)

        return Response(_detail(result.data), status=status.HTTP_201_CREATED)


class TransactionDetailView(APIView):
    """
    GET /api/accounting/transactions/<id>/ -> retrieve
    PUT /api/accounting/transactions/<id>/ -> edit a draft
    DELETE /api/accounting/transactions/<id>/ -> delete a draft

    <id> is the numeric id or the public_id.
    """
    permission_classes = [IsAuthenticated]

    def get(self, request, transaction_id):
        actor = resolve_actor(request)

        result = get_transaction(actor, transaction_id)
        if not result.success:
            return error_response(result)
        return Response(_detail(result.data))

    def put(self, request, transaction_id):
        actor = resolve_actor(request)

        input_serializer = TransactionInputSerializer(data=request.data, partial=True)
        if not input_serializer.is_valid():
            return invalid_input(input_serializer)

        result = update_draft(actor, transaction_id, **input_serializer.validated_data)
        if not result.success:
            return error_response(result)
        return Response(_detail(result.data))

    def delete(self, request, transaction_id):
        actor = resolve_actor(request)

        result = delete_draft(actor, transaction_id)
        if not result.success:
            return error_response(result)
        return Response(status=status.HTTP_204_NO_CONTENT)


class TransactionConfirmView(APIView):
    """
    POST /api/accounting/transactions/<id>/confirm/

    Applies the document's postings to every balance, atomically.
    """
    permission_classes = [IsAuthenticated]

    def post(self, request, transaction_id):
        actor = resolve_actor(request)

        result = confirm_transaction(actor, transaction_id)
        if not result.success:
            return error_response(result)
        return Response(_detail(result.data))


class TransactionCancelView(APIView):
    """
    POST /api/accounting/transactions/<id>/cancel/

    Cancels a draft, or reverses a confirmed document.
    """
    permission_classes = [IsAuthenticated]

    def post(self, request, transaction_id):
        actor = resolve_actor(request)

        result = cancel_transaction(actor, transaction_id)
        if not result.success:
            return error_response(result)
        return Response(_detail(result.data))


# =============================================================================
# Dividend helper
# =============================================================================

class DividendCalculateView(APIView):
    """
    POST /api/accounting/dividends/calculate/

    Splits an amount among active partners by share percentage.
    Read-only: nothing is recorded.
    """
    permission_classes = [IsAuthenticated]

    def post(self, request):
        actor = resolve_actor(request)
        require(actor, "accounting.dividends.view")

        serializer = DividendCalculateSerializer(data=request.data)
        if not serializer.is_valid():
            return invalid_input(serializer)

        currency = get_object_or_404(Currency, pk=serializer.validated_data["currency_id"])
        shares = calculate_distribution(serializer.validated_data["amount"], currency)
        return Response({
            "total_amount": str(currency.quantize(serializer.validated_data["amount"])),
            "currency": currency.code,
            "distribution": [share.to_dict() for share in shares],
        })
