# projections/base.py
"""
Base classes for projections.

A projection is an event consumer that builds materialized views.
Projections:
- Declare which event types they consume
- Process events idempotently (same event twice = same result)
- Track their progress via EventBookmark
- Can be rebuilt from scratch by replaying all events
- Can be verified against a fold of the posting history

The ledger applies projections synchronously: the confirm/cancel
command calls apply_projections(event) inside its own database
transaction, so balances and the document status commit together.
process_pending() catches up anything not yet applied (e.g. after a
rebuild was interrupted).
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Dict, List, Optional
import logging

from django.db import transaction

from events.models import BusinessEvent, EventBookmark
from projections.models import ProjectionAppliedEvent
from projections.write_barrier import projection_writes_allowed


logger = logging.getLogger(__name__)


class BaseProjection(ABC):
    """
    Base class for all projections.

    Subclasses must implement:
    - name: Unique identifier for this projection
    - consumes: List of event types this projection handles
    - handle(event): Process a single event

    Optional overrides:
    - _clear_projected_data(): wipe the read model before a rebuild
    - snapshot() / fold(): materialized state vs. state recomputed from
      the posting history, compared by verify()
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique name for this projection (used in bookmarks)."""
        pass

    @property
    @abstractmethod
    def consumes(self) -> List[str]:
        """List of event types this projection consumes."""
        pass

    @abstractmethod
    def handle(self, event: BusinessEvent) -> None:
        """
        Process a single event.

        MUST be idempotent: processing the same event twice
        should produce the same result.
        """
        pass

    def apply(self, event: BusinessEvent) -> bool:
        """
        Apply one event unless it was already applied.

        Returns True when the event was handled now.
        """
        with transaction.atomic():
            with projection_writes_allowed():
                _, created = ProjectionAppliedEvent.objects.get_or_create(
                    projection_name=self.name,
                    event=event,
                )
                if created:
                    self.handle(event)
                bookmark, _ = EventBookmark.objects.get_or_create(consumer_name=self.name)
                bookmark.mark_processed(event)
        return created

    def rebuild(self) -> int:
        """
        Rebuild this projection from scratch.

        1. Reset bookmark to beginning
        2. Clear existing projected data
        3. Process all relevant events

        Returns:
            Number of events processed
        """
        with transaction.atomic():
            bookmark, _ = EventBookmark.objects.get_or_create(consumer_name=self.name)
            bookmark.last_event = None
            bookmark.last_processed_at = None
            bookmark.error_count = 0
            bookmark.last_error = ""
            bookmark.save()

            with projection_writes_allowed():
                self._clear_projected_data()
                ProjectionAppliedEvent.objects.filter(projection_name=self.name).delete()

            total = 0
            while True:
                processed = self.process_pending(limit=1000)
                total += processed
                if processed == 0:
                    break

        logger.info(
            "Projection rebuilt",
            extra={"projection": self.name, "events": total},
        )
        return total

    def _clear_projected_data(self) -> None:
        """
        Clear all projected data for rebuild.
        Subclasses should override this.
        """
        pass

    def process_pending(self, limit: int = 1000, stop_on_error: bool = True) -> int:
        """
        Process pending events for this projection.

        Returns:
            Number of events successfully processed
        """
        bookmark, _ = EventBookmark.objects.get_or_create(consumer_name=self.name)

        if bookmark.is_paused:
            logger.info("Projection %s is paused", self.name)
            return 0

        events = list(bookmark.get_unprocessed_events(
            event_types=self.consumes,
            limit=limit,
        ))

        processed = 0
        for event in events:
            try:
                self.apply(event)
                processed += 1
            except Exception as e:
                logger.exception("Error processing event %s in %s", event.id, self.name)
                bookmark.refresh_from_db()
                bookmark.mark_error(str(e))
                if stop_on_error:
                    raise

        if processed > 0:
            logger.info("Projection %s processed %s events", self.name, processed)

        return processed

    def get_bookmark(self) -> Optional[EventBookmark]:
        return EventBookmark.objects.filter(consumer_name=self.name).first()

    def get_lag(self) -> int:
        """Number of consumed events not yet applied by this projection."""
        applied = ProjectionAppliedEvent.objects.filter(projection_name=self.name).values("event_id")
        return BusinessEvent.objects.filter(
            event_type__in=self.consumes,
        ).exclude(id__in=applied).count()

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def snapshot(self) -> Dict[Any, Dict[str, Decimal]]:
        """Materialized state, keyed like fold()."""
        return {}

    def fold(self) -> Dict[Any, Dict[str, Decimal]]:
        """State recomputed from the posting history."""
        return {}

    def verify(self) -> Dict[str, Any]:
        """
        Compare the materialized read model with the fold of the history.

        Keys present on one side only are equal when all their values are zero.
        """
        actual = self.snapshot()
        expected = self.fold()
        mismatches = []
        for key in sorted(set(actual) | set(expected), key=str):
            have = actual.get(key, {})
            want = expected.get(key, {})
            for field_name in sorted(set(have) | set(want)):
                a = have.get(field_name, Decimal("0"))
                b = want.get(field_name, Decimal("0"))
                if a != b:
                    mismatches.append({
                        "key": [str(part) for part in key] if isinstance(key, tuple) else str(key),
                        "field": field_name,
                        "projected": str(a),
                        "expected": str(b),
                    })
        if mismatches:
            logger.warning(
                "Projection verification failed",
                extra={"projection": self.name, "mismatches": len(mismatches)},
            )
        return {
            "projection": self.name,
            "checked": len(set(actual) | set(expected)),
            "mismatches": mismatches,
            "ok": not mismatches,
        }


class ProjectionRegistry:
    """
    Registry of all projections.

    Usage:
        projection_registry.register(CashBalanceProjection())

        for projection in projection_registry.all():
            projection.process_pending()
    """

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._projections = {}
        return cls._instance

    def register(self, projection: BaseProjection) -> None:
        """Register a projection."""
        self._projections[projection.name] = projection

    def get(self, name: str) -> Optional[BaseProjection]:
        """Get a projection by name."""
        return self._projections.get(name)

    def all(self) -> List[BaseProjection]:
        """Get all registered projections."""
        return list(self._projections.values())

    def names(self) -> List[str]:
        """Get all projection names."""
        return list(self._projections.keys())


# Global registry instance
projection_registry = ProjectionRegistry()


def apply_projections(event: BusinessEvent) -> None:
    """Apply event to every registered projection that consumes it."""
    for projection in projection_registry.all():
        if event.event_type in projection.consumes:
            projection.apply(event)
