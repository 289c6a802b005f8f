# catalog/signals.py

"""
Keep cached product lookups in step with the catalog table.
"""

from django.db.models.signals import post_save, post_delete
from django.dispatch import receiver
import logging

from .gateway import ProductCache
from .models import Product

logger = logging.getLogger(__name__)


@receiver(post_save, sender=Product)
@receiver(post_delete, sender=Product)
def invalidate_product_cache(sender, instance, **kwargs):
    ProductCache().invalidate(instance.pk)
    logger.debug(f"Invalidated cached lookup for product {instance.pk}")
