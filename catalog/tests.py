from django.core.cache import cache
from django.test import TestCase, override_settings

from core.exceptions import NotFoundError, ValidationError
from .gateway import CatalogGateway, ProductCache
from .models import Product
from .units import allowed_units, is_unit_allowed, validate_unit


class CategoryUnitTest(TestCase):

    def test_allowed_units_come_from_settings(self):
        self.assertEqual(allowed_units('Yarn'), ['kg', 'cones'])
        self.assertTrue(is_unit_allowed('Denim', 'yards'))
        self.assertFalse(is_unit_allowed('Denim', 'kg'))

    def test_validate_unit_lists_allowed_set(self):
        with self.assertRaises(ValidationError) as ctx:
            validate_unit('Yarn', 'm')
        self.assertIn('kg, cones', ctx.exception.message)
        self.assertEqual(ctx.exception.details['allowed_units'], ['kg', 'cones'])
        self.assertEqual(validate_unit('Yarn', ' kg '), 'kg')

    def test_unknown_category_allows_nothing(self):
        with self.assertRaises(ValidationError):
            validate_unit('Leather', 'pcs')

    @override_settings(CATEGORY_UNITS={'Silk': ['m']})
    def test_table_can_be_replaced(self):
        self.assertEqual(allowed_units('Silk'), ['m'])
        self.assertEqual(allowed_units('Yarn'), [])
        self.assertEqual(allowed_units('Yarn', table={'Yarn': ['hanks']}), ['hanks'])


class CatalogGatewayTest(TestCase):

    def setUp(self):
        cache.clear()
        self.gateway = CatalogGateway()
        self.yarn = Product.objects.create(sku='YRN-30S', name='30s Combed Cotton Yarn', category='Yarn', status='active')
        self.draft = Product.objects.create(sku='DNM-10', name='10oz Denim', category='Denim', status='draft')

    def test_find_by_id_returns_snapshot(self):
        snapshot = self.gateway.find_by_id(self.yarn.pk)
        self.assertEqual(snapshot.name, '30s Combed Cotton Yarn')
        self.assertEqual(snapshot.category, 'Yarn')
        self.assertTrue(snapshot.is_active)

    def test_missing_product_not_found(self):
        with self.assertRaises(NotFoundError):
            self.gateway.find_by_id(999999)

    def test_inactive_product_hidden_when_active_required(self):
        self.assertEqual(self.gateway.find_by_id(self.draft.pk).status, 'draft')
        with self.assertRaises(NotFoundError):
            self.gateway.find_by_id(self.draft.pk, require_active=True)

    def test_lookup_is_cached_and_invalidated_on_save(self):
        self.gateway.find_by_id(self.yarn.pk)
        self.assertIsNotNone(ProductCache().get(self.yarn.pk))

        with self.assertNumQueries(0):
            self.gateway.find_by_id(self.yarn.pk)

        self.yarn.name = '40s Combed Cotton Yarn'
        self.yarn.save()
        self.assertIsNone(ProductCache().get(self.yarn.pk))
        self.assertEqual(self.gateway.find_by_id(self.yarn.pk).name, '40s Combed Cotton Yarn')
