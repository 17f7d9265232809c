# projections/management/commands/rebuild_projection.py
"""
Management command to rebuild projections from events.

This is the core disaster recovery / maintenance tool for the ledger.
Events are the source of truth; balances can always be rebuilt.

Usage:
    # Rebuild a specific projection
    python manage.py rebuild_projection --projection stock_balance

    # Rebuild ALL projections
    python manage.py rebuild_projection --all

    # Dry run - show what would happen without writing
    python manage.py rebuild_projection --projection stock_balance --dry-run

    # Verify against the posting history after rebuilding
    python manage.py rebuild_projection --all --verify

    # List all available projections
    python manage.py rebuild_projection --list
"""

import logging
import time

from django.core.management.base import BaseCommand, CommandError

from events.models import BusinessEvent
from projections.base import projection_registry

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    """Rebuild projections from events."""

    help = "Rebuild projections from the event store"

    def add_arguments(self, parser):
        parser.add_argument(
            "--projection",
            type=str,
            help="Name of the projection to rebuild",
        )
        parser.add_argument(
            "--all",
            action="store_true",
            dest="all_projections",
            help="Rebuild ALL projections",
        )
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Show what would happen without making changes",
        )
        parser.add_argument(
            "--verify",
            action="store_true",
            help="Verify each projection against the posting history after rebuilding",
        )
        parser.add_argument(
            "--list",
            action="store_true",
            help="List all available projections",
        )

    def handle(self, *args, **options):
        if options["list"]:
            return self._list_projections()

        projections = self._get_projections(options)

        self.stdout.write("\nProjections to rebuild:")
        for projection in projections:
            count = BusinessEvent.objects.filter(event_type__in=projection.consumes).count()
            self.stdout.write(f"  - {projection.name} ({count:,} events)")

        if options["dry_run"]:
            self.stdout.write(self.style.WARNING("\n[DRY RUN] No changes made."))
            return

        start_time = time.time()
        total_events = 0
        for projection in projections:
            try:
                processed = projection.rebuild()
            except Exception as e:
                logger.exception("Projection rebuild failed: %s", projection.name)
                raise CommandError(f"{projection.name}: {e}")
            total_events += processed
            self.stdout.write(self.style.SUCCESS(f"  {projection.name}: {processed:,} events"))

            if options["verify"]:
                result = projection.verify()
                if result["ok"]:
                    self.stdout.write(f"    verified {result['checked']} keys")
                else:
                    self.stdout.write(self.style.ERROR(
                        f"    {len(result['mismatches'])} mismatches after rebuild"
                    ))

        elapsed = time.time() - start_time
        self.stdout.write(self.style.SUCCESS(
            f"\nREBUILD COMPLETE: {total_events:,} events in {elapsed:.2f}s"
        ))

    def _list_projections(self):
        self.stdout.write("\nAvailable projections:\n")

        for projection in projection_registry.all():
            consumes = ", ".join(projection.consumes) if projection.consumes else "none"
            self.stdout.write(f"  {projection.name}")
            self.stdout.write(f"    Events: {consumes}\n")

        self.stdout.write(f"\nTotal: {len(projection_registry.names())} projections")

    def _get_projections(self, options):
        if options["projection"] and options["all_projections"]:
            raise CommandError("Cannot use --projection and --all together")

        if options["all_projections"]:
            return projection_registry.all()

        name = options["projection"]
        if not name:
            raise CommandError("Must specify --projection <name> or --all")

        projection = projection_registry.get(name)
        if not projection:
            available = ", ".join(projection_registry.names())
            raise CommandError(f"Unknown projection: {name}\nAvailable: {available}")
        return [projection]
