from django.apps import AppConfig


class LedgerConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "ledger"

    def ready(self):
        """Import signals so they are connected when the app is ready."""
        import ledger.signals  # noqa: F401
