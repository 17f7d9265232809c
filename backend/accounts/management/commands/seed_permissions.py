# accounts/management/commands/seed_permissions.py

from django.core.management.base import BaseCommand

from accounts.permissions import seed_all_permissions


class Command(BaseCommand):
    help = "Seed default permissions to the database"

    def handle(self, *args, **options):
        count = seed_all_permissions()
        self.stdout.write(self.style.SUCCESS(f"Done! {count} permission codes present."))
