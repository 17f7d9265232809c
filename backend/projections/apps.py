from django.apps import AppConfig


class ProjectionsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "projections"
    verbose_name = "Balances"

    def ready(self):
        from projections import balances  # noqa: F401
