# events/models.py
"""
Event Store models for the ledger.

The BusinessEvent table is the canonical source of truth for every
state change of a ledger document. Events are immutable once created.

EventCounter hands out the global stream sequence; EventBookmark tracks
consumer progress for projection catch-up and rebuilds.
"""

import uuid
from django.db import models, transaction, IntegrityError
from django.conf import settings
from django.db.models import F
from django.utils import timezone


class EventCounter(models.Model):
    """Monotonic counter for the global event stream (one row per stream)."""

    name = models.CharField(max_length=50, unique=True)
    last_sequence = models.BigIntegerField(default=0)

    class Meta:
        verbose_name = "Event Counter"

    def __str__(self):
        return f"{self.name}: {self.last_sequence}"


class BusinessEvent(models.Model):
    """
    Immutable event record.
    """

    STREAM = "ledger"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    event_type = models.CharField(
        max_length=100,
        db_index=True,
        help_text="Event type name (e.g., 'transaction.confirmed')",
    )

    aggregate_type = models.CharField(
        max_length=50,
        db_index=True,
        help_text="Entity type (e.g., 'Transaction')",
    )

    aggregate_id = models.CharField(
        max_length=64,
        db_index=True,
    )

    # Idempotency (deduplication across retries)
    idempotency_key = models.CharField(
        max_length=255,
        unique=True,
        editable=False,
    )

    # Sequence number for ordering events within an aggregate
    sequence = models.PositiveIntegerField(
        default=0,
        editable=False,
        help_text="Auto-incremented per aggregate",
    )

    # Global monotonic sequence (event stream cursor)
    stream_sequence = models.BigIntegerField(
        unique=True,
        editable=False,
        help_text="Monotonic event sequence across all aggregates",
    )

    data = models.JSONField(
        default=dict,
        help_text="Event data payload",
    )

    metadata = models.JSONField(
        default=dict,
        blank=True,
    )

    schema_version = models.PositiveSmallIntegerField(default=1)

    payload_hash = models.CharField(
        max_length=64,
        blank=True,
        default="",
        help_text="SHA-256 hash of canonical JSON payload",
    )

    caused_by_user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="caused_events",
    )

    caused_by_event = models.ForeignKey(
        "self",
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="child_events",
        help_text="Parent event in causation chain (e.g. the confirm a cancel reverses)",
    )

    recorded_at = models.DateTimeField(
        auto_now_add=True,
        db_index=True,
    )

    occurred_at = models.DateTimeField(
        db_index=True,
        default=timezone.now,
    )

    class Meta:
        ordering = ["stream_sequence"]
        indexes = [
            models.Index(fields=["aggregate_type", "aggregate_id", "sequence"], name="event_aggregate_seq_idx"),
            models.Index(fields=["event_type", "occurred_at"], name="event_type_occurred_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["aggregate_type", "aggregate_id", "sequence"],
                name="uniq_event_aggregate_sequence",
            ),
        ]

    def __str__(self):
        return f"{self.event_type} [{self.aggregate_type}#{self.aggregate_id}] @{self.occurred_at}"

    def save(self, *args, **kwargs):
        # Prevent updates (immutability)
        if not self._state.adding:
            raise ValueError("Events are immutable and cannot be modified.")

        if not self.idempotency_key or not self.idempotency_key.strip():
            raise ValueError("idempotency_key is required")

        with transaction.atomic():
            try:
                counter, _ = EventCounter.objects.select_for_update().get_or_create(name=self.STREAM)
            except IntegrityError:
                counter = EventCounter.objects.select_for_update().get(name=self.STREAM)

            counter.last_sequence = F("last_sequence") + 1
            counter.save(update_fields=["last_sequence"])
            counter.refresh_from_db(fields=["last_sequence"])
            self.stream_sequence = counter.last_sequence

            if self.sequence == 0:
                last_event = BusinessEvent.objects.filter(
                    aggregate_type=self.aggregate_type,
                    aggregate_id=self.aggregate_id,
                ).order_by("-sequence").first()
                self.sequence = (last_event.sequence + 1) if last_event else 1

            super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError("Events are immutable and cannot be deleted.")

    def get_data(self) -> dict:
        return self.data

    def verify_payload_integrity(self) -> bool:
        if not self.payload_hash:
            return True
        from events.serialization import compute_payload_hash
        return compute_payload_hash(self.data) == self.payload_hash


class EventBookmark(models.Model):
    consumer_name = models.CharField(
        max_length=100,
        unique=True,
        help_text="Unique consumer identifier (e.g., 'cash_balance')",
    )

    last_event = models.ForeignKey(
        BusinessEvent,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="+",
        help_text="Last successfully processed event",
    )

    last_processed_at = models.DateTimeField(
        null=True,
        blank=True,
    )

    is_paused = models.BooleanField(default=False)

    error_count = models.PositiveIntegerField(default=0)

    last_error = models.TextField(
        blank=True,
        default="",
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.consumer_name

    def mark_processed(self, event: BusinessEvent):
        # Synchronous application can run ahead of an older bookmark; never move it backwards.
        if self.last_event_id and self.last_event.stream_sequence >= event.stream_sequence:
            return
        self.last_event = event
        self.last_processed_at = timezone.now()
        self.error_count = 0
        self.last_error = ""
        self.save(update_fields=[
            "last_event", "last_processed_at", "error_count", "last_error", "updated_at"
        ])

    def mark_error(self, error_message: str):
        self.error_count += 1
        self.last_error = error_message[:1000]
        self.save(update_fields=["error_count", "last_error", "updated_at"])

    def get_unprocessed_events(self, event_types: list = None, limit: int = 100):
        qs = BusinessEvent.objects.all()

        if event_types:
            qs = qs.filter(event_type__in=event_types)

        if self.last_event:
            qs = qs.filter(stream_sequence__gt=self.last_event.stream_sequence)

        return qs.order_by("stream_sequence")[:limit]
