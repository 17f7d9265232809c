"""
Celery application configuration.

Handles projection maintenance (rebuild, verification) outside the
request cycle. Confirm/cancel never depend on Celery: projections are
applied synchronously inside the command's database transaction.

Usage:
    # Start worker
    celery -A ledger_backend worker -l INFO
"""
import os

from celery import Celery

# Set default Django settings
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "ledger_backend.settings")

# Create Celery app
app = Celery("ledger_backend")

# Load config from Django settings
app.config_from_object("django.conf:settings", namespace="CELERY")

# Auto-discover tasks from all installed apps
app.autodiscover_tasks()
