# accounting/admin.py
"""
Django admin configuration for ledger documents.

IMPORTANT: These are COMMAND-OWNED MODELS.
==========================================
Every change to a Transaction is recorded as an event and moves
balances. The admin interface is for viewing only. All mutations MUST
go through the command layer (accounting/commands.py).
"""

from django.contrib import admin
from django.utils.html import format_html

from .models import (
    CashEntry,
    DividendEntry,
    DocumentSequence,
    SalaryEntry,
    ServiceEntry,
    StockItem,
    Transaction,
)


class ReadOnlyModelAdmin(admin.ModelAdmin):
    """
    Base admin class for read-only models.

    Direct admin edits would bypass the event log and leave balances out
    of step with documents.
    """

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


class ReadOnlyInline(admin.TabularInline):
    """Base inline class for read-only models."""
    extra = 0

    def has_add_permission(self, request, obj=None):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


# =============================================================================
# Inline Admin Classes
# =============================================================================

class StockItemInline(ReadOnlyInline):
    model = StockItem
    fields = readonly_fields = ["line_no", "product", "warehouse", "warehouse_to", "quantity", "price"]


class CashEntryInline(ReadOnlyInline):
    model = CashEntry
    fields = readonly_fields = ["line_no", "cash_register", "currency", "amount"]


class DividendEntryInline(ReadOnlyInline):
    model = DividendEntry
    fields = readonly_fields = ["line_no", "partner", "currency", "kind", "amount"]


class SalaryEntryInline(ReadOnlyInline):
    model = SalaryEntry
    fields = readonly_fields = ["line_no", "user", "currency", "kind", "amount"]


class ServiceEntryInline(ReadOnlyInline):
    model = ServiceEntry
    fields = readonly_fields = ["line_no", "service", "quantity", "price", "note"]


# =============================================================================
# Transaction Admin
# =============================================================================

@admin.register(Transaction)
class TransactionAdmin(ReadOnlyModelAdmin):
    """Admin interface for ledger documents (read-only)."""

    list_display = [
        "number", "date", "type", "status_colored",
        "total_amount", "paid_amount", "currency", "counterparty",
    ]
    list_filter = ["type", "status", "currency", "date"]
    search_fields = ["number", "description", "counterparty__name"]
    date_hierarchy = "date"
    list_select_related = ["currency", "counterparty"]
    ordering = ["-date", "-id"]

    fieldsets = (
        (None, {
            "fields": ("public_id", "number", "type", "date", "currency"),
        }),
        ("Parties", {
            "fields": ("counterparty", "partner", "description"),
        }),
        ("Amounts", {
            "fields": ("total_amount", "paid_amount"),
        }),
        ("Status & Workflow", {
            "fields": ("status", "confirmed_at", "confirmed_by", "cancelled_at", "cancelled_by"),
        }),
        ("Audit", {
            "fields": ("created_at", "created_by", "updated_at"),
            "classes": ("collapse",),
        }),
    )

    readonly_fields = [
        "public_id", "number", "type", "date", "currency",
        "counterparty", "partner", "description", "total_amount", "paid_amount",
        "status", "confirmed_at", "confirmed_by", "cancelled_at", "cancelled_by",
        "created_at", "created_by", "updated_at",
    ]
    inlines = [
        StockItemInline,
        CashEntryInline,
        DividendEntryInline,
        SalaryEntryInline,
        ServiceEntryInline,
    ]

    def status_colored(self, obj):
        """Show status with color coding."""
        colors = {
            Transaction.Status.DRAFT: "#007bff",
            Transaction.Status.CONFIRMED: "#28a745",
            Transaction.Status.CANCELLED: "#dc3545",
        }
        color = colors.get(obj.status, "#000")
        return format_html(
            '<span style="color: {}; font-weight: bold;">{}</span>',
            color,
            obj.get_status_display(),
        )
    status_colored.short_description = "Status"
    status_colored.admin_order_field = "status"


@admin.register(DocumentSequence)
class DocumentSequenceAdmin(ReadOnlyModelAdmin):
    list_display = ["transaction_type", "year", "next_value", "updated_at"]
    list_filter = ["transaction_type", "year"]
    ordering = ["transaction_type", "-year"]
