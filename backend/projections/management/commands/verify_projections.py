# projections/management/commands/verify_projections.py
"""
Compare every materialized balance with a fold of the posting history.

Usage:
    python manage.py verify_projections
    python manage.py verify_projections --projection cash_balance --verbose

Exits with an error if any projection has mismatches.
"""

from django.core.management.base import BaseCommand, CommandError

from projections.base import projection_registry


class Command(BaseCommand):
    help = "Verify projections against the posting history"

    def add_arguments(self, parser):
        parser.add_argument(
            "--projection",
            type=str,
            help="Only verify this projection",
        )
        parser.add_argument(
            "--verbose",
            action="store_true",
            help="Print every mismatch",
        )

    def handle(self, *args, **options):
        if options["projection"]:
            projection = projection_registry.get(options["projection"])
            if not projection:
                raise CommandError(f"Unknown projection: {options['projection']}")
            projections = [projection]
        else:
            projections = projection_registry.all()

        failed = []
        for projection in projections:
            result = projection.verify()
            if result["ok"]:
                self.stdout.write(self.style.SUCCESS(
                    f"  {result['projection']}: OK ({result['checked']} keys)"
                ))
                continue

            failed.append(result["projection"])
            self.stdout.write(self.style.ERROR(
                f"  {result['projection']}: {len(result['mismatches'])} mismatches"
            ))
            if options["verbose"]:
                for mismatch in result["mismatches"]:
                    self.stdout.write(
                        f"    {mismatch['key']} {mismatch['field']}: "
                        f"projected {mismatch['projected']}, expected {mismatch['expected']}"
                    )

        if failed:
            raise CommandError(f"Verification failed for: {', '.join(failed)}")
