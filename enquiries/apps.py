# enquiries/apps.py - Enquiries App Configuration

from django.apps import AppConfig


class EnquiriesConfig(AppConfig):
    """
    Customer enquiries, their staff follow-up and activity trail.
    """

    default_auto_field = 'django.db.models.BigAutoField'
    name = 'enquiries'
    verbose_name = 'Enquiries'

    def ready(self):
        # Subscribe to quotation events
        import enquiries.signals
