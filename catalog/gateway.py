"""
Read-only product lookups for the enquiry and quotation workflow.

Lookups go through a small cache (Django's cache framework) because the same
products are resolved repeatedly while a quotation is built and edited. The
cache only saves queries; Product saves and deletes invalidate it.
"""
import logging
from dataclasses import dataclass, asdict

from django.conf import settings
from django.core.cache import cache

from core.exceptions import NotFoundError
from .models import Product

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProductSnapshot:
    id: int
    name: str
    category: str
    sku: str
    status: str

    @property
    def is_active(self):
        return self.status == 'active'


class ProductCache:
    key_prefix = 'catalog:product:'

    def __init__(self, backend=None, timeout=None):
        self.backend = backend or cache
        self.timeout = timeout if timeout is not None else getattr(settings, 'CATALOG_CACHE_TIMEOUT', 300)

    def key(self, product_id):
        return f"{self.key_prefix}{product_id}"

    def get(self, product_id):
        data = self.backend.get(self.key(product_id))
        return ProductSnapshot(**data) if data else None

    def set(self, snapshot):
        self.backend.set(self.key(snapshot.id), asdict(snapshot), self.timeout)

    def invalidate(self, product_id):
        self.backend.delete(self.key(product_id))


class CatalogGateway:
    """Resolves product references to name/category/sku snapshots."""

    def __init__(self, product_cache=None):
        self.cache = product_cache or ProductCache()

    def find_by_id(self, product_id, require_active=False):
        snapshot = self.cache.get(product_id) if product_id is not None else None
        if snapshot is None:
            snapshot = self._load(product_id)
            self.cache.set(snapshot)

        if require_active and not snapshot.is_active:
            raise NotFoundError(
                f"Product with ID {product_id} not found or not available.",
                code='product_not_found',
            )
        return snapshot

    def _load(self, product_id):
        try:
            product = Product.objects.only('id', 'name', 'category', 'sku', 'status').get(pk=product_id)
        except (Product.DoesNotExist, ValueError, TypeError):
            raise NotFoundError(f"Product with ID {product_id} not found.", code='product_not_found')
        return ProductSnapshot(
            id=product.pk,
            name=product.name,
            category=product.category,
            sku=product.sku,
            status=product.status,
        )
