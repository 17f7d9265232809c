# projections/admin.py
"""Django admin for projection models."""

from django.contrib import admin

from .models import (
    CashBalance,
    CounterpartyBalance,
    PartnerDividendBalance,
    PostingLine,
    ProjectionAppliedEvent,
    SalaryBalance,
    StockBalance,
)


class ProjectionAdmin(admin.ModelAdmin):
    """Balances are managed by their projection; the admin only shows them."""

    def has_add_permission(self, request):
        return False  # Managed by projection

    def has_change_permission(self, request, obj=None):
        return False  # Managed by projection

    def has_delete_permission(self, request, obj=None):
        return False  # Managed by projection


@admin.register(CashBalance)
class CashBalanceAdmin(ProjectionAdmin):
    list_display = ["cash_register", "currency", "balance", "movement_count", "updated_at"]
    list_filter = ["currency"]
    list_select_related = ["cash_register", "currency"]
    ordering = ["cash_register__name", "currency__code"]


@admin.register(StockBalance)
class StockBalanceAdmin(ProjectionAdmin):
    list_display = ["warehouse", "product", "quantity", "avg_cost", "value", "movement_count"]
    list_filter = ["warehouse"]
    search_fields = ["product__name", "product__sku"]
    list_select_related = ["warehouse", "product"]
    ordering = ["warehouse__name", "product__name"]


@admin.register(CounterpartyBalance)
class CounterpartyBalanceAdmin(ProjectionAdmin):
    list_display = ["counterparty", "currency", "balance", "movement_count"]
    list_filter = ["currency"]
    search_fields = ["counterparty__name"]
    list_select_related = ["counterparty", "currency"]


@admin.register(PartnerDividendBalance)
class PartnerDividendBalanceAdmin(ProjectionAdmin):
    list_display = ["partner", "currency", "accrued", "paid", "balance"]
    list_select_related = ["partner", "currency"]


@admin.register(SalaryBalance)
class SalaryBalanceAdmin(ProjectionAdmin):
    list_display = ["user", "currency", "accrued", "paid", "balance"]
    list_select_related = ["user", "currency"]


@admin.register(PostingLine)
class PostingLineAdmin(ProjectionAdmin):
    list_display = [
        "transaction_number", "line_no", "ledger", "date",
        "amount", "quantity", "value", "accrued", "paid", "is_reversal",
    ]
    list_filter = ["ledger", "is_reversal", "transaction_type"]
    search_fields = ["transaction_number"]
    date_hierarchy = "date"
    ordering = ["-stream_sequence", "line_no"]


@admin.register(ProjectionAppliedEvent)
class ProjectionAppliedEventAdmin(ProjectionAdmin):
    list_display = ["projection_name", "event_id_short", "applied_at"]
    list_filter = ["projection_name"]
    list_select_related = ["event"]
    ordering = ["-applied_at"]
    readonly_fields = ["projection_name", "event", "applied_at"]

    def event_id_short(self, obj):
        return str(obj.event_id)[:8] + "..."
    event_id_short.short_description = "Event"
