# events/admin.py
"""
Django admin configuration for event store models.

Events are read-only in admin (they're immutable).
Bookmarks can be paused or reset for debugging projections.
"""

import json

from django.contrib import admin
from django.utils.html import format_html

from .models import BusinessEvent, EventBookmark


@admin.register(BusinessEvent)
class BusinessEventAdmin(admin.ModelAdmin):
    """
    Admin interface for BusinessEvents.
    Read-only since events are immutable.
    """

    list_display = [
        "stream_sequence", "event_type", "aggregate_display",
        "caused_by_user", "occurred_at",
    ]
    list_filter = ["event_type", "aggregate_type", "occurred_at"]
    search_fields = ["event_type", "aggregate_id", "idempotency_key", "caused_by_user__email"]
    date_hierarchy = "occurred_at"
    list_select_related = ["caused_by_user"]
    ordering = ["-stream_sequence"]

    readonly_fields = [
        "id", "event_type", "aggregate_type", "aggregate_id",
        "sequence", "stream_sequence", "idempotency_key",
        "data_formatted", "metadata_formatted", "schema_version", "payload_hash",
        "caused_by_user", "caused_by_event", "occurred_at", "recorded_at",
    ]

    fieldsets = (
        ("Event Identity", {
            "fields": ("id", "event_type", "schema_version", "idempotency_key"),
        }),
        ("Aggregate", {
            "fields": ("aggregate_type", "aggregate_id", "sequence", "stream_sequence"),
        }),
        ("Payload", {
            "fields": ("data_formatted", "payload_hash"),
        }),
        ("Context", {
            "fields": ("caused_by_user", "caused_by_event"),
        }),
        ("Metadata", {
            "fields": ("metadata_formatted",),
            "classes": ("collapse",),
        }),
        ("Timestamp", {
            "fields": ("occurred_at", "recorded_at"),
        }),
    )

    def aggregate_display(self, obj):
        """Display aggregate type and ID together."""
        return f"{obj.aggregate_type}#{obj.aggregate_id}"
    aggregate_display.short_description = "Aggregate"

    def data_formatted(self, obj):
        """Format JSON data for display."""
        return format_html(
            "<pre style='white-space: pre-wrap; max-width: 600px;'>{}</pre>",
            json.dumps(obj.data, indent=2, default=str),
        )
    data_formatted.short_description = "Data"

    def metadata_formatted(self, obj):
        return format_html(
            "<pre style='white-space: pre-wrap; max-width: 600px;'>{}</pre>",
            json.dumps(obj.metadata, indent=2, default=str),
        )
    metadata_formatted.short_description = "Metadata"

    def has_add_permission(self, request):
        return False  # Events created through commands only

    def has_change_permission(self, request, obj=None):
        return False  # Events are immutable

    def has_delete_permission(self, request, obj=None):
        return False  # Events are immutable


@admin.register(EventBookmark)
class EventBookmarkAdmin(admin.ModelAdmin):
    """
    Admin interface for EventBookmarks.
    Used for managing projection progress.
    """

    list_display = [
        "consumer_name", "last_event_short",
        "last_processed_at", "is_paused", "error_count",
    ]
    list_filter = ["is_paused"]
    search_fields = ["consumer_name"]
    list_select_related = ["last_event"]
    ordering = ["consumer_name"]

    readonly_fields = ["last_event", "last_processed_at", "error_count", "last_error", "created_at", "updated_at"]

    actions = ["pause_consumers", "resume_consumers", "reset_errors"]

    def last_event_short(self, obj):
        if obj.last_event:
            return f"#{obj.last_event.stream_sequence}"
        return "-"
    last_event_short.short_description = "Last Event"

    @admin.action(description="Pause selected consumers")
    def pause_consumers(self, request, queryset):
        updated = queryset.update(is_paused=True)
        self.message_user(request, f"Paused {updated} consumer(s).")

    @admin.action(description="Resume selected consumers")
    def resume_consumers(self, request, queryset):
        updated = queryset.update(is_paused=False)
        self.message_user(request, f"Resumed {updated} consumer(s).")

    @admin.action(description="Reset error counts")
    def reset_errors(self, request, queryset):
        updated = queryset.update(error_count=0, last_error="")
        self.message_user(request, f"Reset errors for {updated} consumer(s).")
