from django.apps import AppConfig


class InventoryConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'backoffice.inventory'

    def ready(self):
        """Import signals when app is ready"""
        import backoffice.inventory.signals  # noqa: F401  # Cache invalidation signals
