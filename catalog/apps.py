# catalog/apps.py - Catalog App Configuration

from django.apps import AppConfig


class CatalogConfig(AppConfig):
    """
    Product catalog lookups used by the enquiry and quotation workflow.
    """

    default_auto_field = 'django.db.models.BigAutoField'
    name = 'catalog'
    verbose_name = 'Product Catalog'

    def ready(self):
        # Import signals to ensure they're registered
        import catalog.signals
