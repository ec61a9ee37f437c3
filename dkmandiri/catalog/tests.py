"""
Test suite for the catalog module
Tests: categories, products, filtering, stock updates, trending, images and audit logging
"""
import io
import shutil
import tempfile
from decimal import Decimal

from django.core.cache import cache
from django.core.files.uploadedfile import SimpleUploadedFile
from django.test import TestCase, override_settings
from PIL import Image
from rest_framework import status

from dkmandiri.catalog.models import Category, Product, ProductImage
from dkmandiri.catalog.utils import generate_unique_slug
from dkmandiri.core.models import AuditLog
from dkmandiri.core.test_utils import TestDataFactory, AuthenticatedAPIClient

MEDIA_ROOT = tempfile.mkdtemp()


def make_image(name='ikan.png'):
    buffer = io.BytesIO()
    Image.new('RGB', (10, 10), color=(200, 180, 120)).save(buffer, format='PNG')
    return SimpleUploadedFile(name, buffer.getvalue(), content_type='image/png')


class ProductModelTests(TestCase):
    """Test Product model helpers"""

    def test_generate_unique_slug(self):
        TestDataFactory.create_product(name='Ikan Asin', slug='ikan-asin')
        self.assertEqual(generate_unique_slug(Product, 'Ikan Asin'), 'ikan-asin-2')
        self.assertEqual(generate_unique_slug(Product, 'Ikan Tongkol'), 'ikan-tongkol')

    def test_generate_unique_slug_keeps_own_slug(self):
        product = TestDataFactory.create_product(name='Ketan', slug='ketan')
        self.assertEqual(generate_unique_slug(Product, 'Ketan', product), 'ketan')

    def test_primary_image_none(self):
        product = TestDataFactory.create_product()
        self.assertIsNone(product.primary_image)


class CategoryAPITests(TestCase):
    """Test category endpoints"""

    def setUp(self):
        cache.clear()
        self.client = AuthenticatedAPIClient()
        self.admin = TestDataFactory.create_admin()

    def test_list_categories_public(self):
        category = TestDataFactory.create_category(name='Ikan')
        TestDataFactory.create_product(category=category)
        response = self.client.get('/api/v1/categories/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data[0]['name'], 'Ikan')
        self.assertEqual(response.data[0]['product_count'], 1)

    def test_create_category_generates_slug(self):
        self.client.authenticate_user(self.admin)
        response = self.client.post('/api/v1/categories/', {'name': 'Ikan Segar'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['slug'], 'ikan-segar')

    def test_customer_cannot_create_category(self):
        self.client.authenticate_user(TestDataFactory.create_user())
        response = self.client.post('/api/v1/categories/', {'name': 'Udang'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_delete_category_with_products(self):
        category = TestDataFactory.create_category()
        TestDataFactory.create_product(category=category)
        self.client.authenticate_user(self.admin)
        response = self.client.delete(f'/api/v1/categories/{category.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertTrue(Category.objects.filter(pk=category.id).exists())

    def test_delete_empty_category(self):
        category = TestDataFactory.create_category()
        self.client.authenticate_user(self.admin)
        response = self.client.delete(f'/api/v1/categories/{category.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)


class ProductAPITests(TestCase):
    """Test product CRUD and validation"""

    def setUp(self):
        cache.clear()
        self.client = AuthenticatedAPIClient()
        self.admin = TestDataFactory.create_admin()
        self.category = TestDataFactory.create_category(name='Ikan', slug='ikan')

    def product_payload(self, **overrides):
        data = {
            'name': 'Ikan Bandeng Presto',
            'description': 'Bandeng presto tulang lunak',
            'category_id': self.category.id,
            'price': '15000',
            'cost_price': '12000',
            'weight_in_stock': '50000',
            'min_order_weight': '1000',
            'is_available': True,
        }
        data.update(overrides)
        return data

    def test_create_product(self):
        self.client.authenticate_user(self.admin)
        response = self.client.post('/api/v1/products/', self.product_payload(), format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['slug'], 'ikan-bandeng-presto')
        self.assertEqual(response.data['category']['id'], self.category.id)
        self.assertEqual(response.data['profit_margin'], 20.0)
        self.assertTrue(AuditLog.objects.filter(model_name='Product', action='create').exists())

    def test_create_product_cost_above_price(self):
        self.client.authenticate_user(self.admin)
        response = self.client.post('/api/v1/products/', self.product_payload(cost_price='16000'), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('cost_price', response.data)

    def test_create_product_invalid_values(self):
        self.client.authenticate_user(self.admin)
        for field, value in (('price', '0'), ('cost_price', '-1'), ('weight_in_stock', '-5'), ('min_order_weight', '0')):
            response = self.client.post('/api/v1/products/', self.product_payload(**{field: value}), format='json')
            self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST, field)
            self.assertIn(field, response.data)

    def test_create_product_duplicate_slug(self):
        TestDataFactory.create_product(slug='ikan-a')
        self.client.authenticate_user(self.admin)
        response = self.client.post('/api/v1/products/', self.product_payload(slug='ikan-a'), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('slug', response.data)

    def test_anonymous_cannot_create_product(self):
        response = self.client.post('/api/v1/products/', self.product_payload(), format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_price_change_is_audited(self):
        product = TestDataFactory.create_product(price=Decimal('15000'), cost_price=Decimal('12000'))
        self.client.authenticate_user(self.admin)
        response = self.client.patch(f'/api/v1/products/{product.id}/', {'price': '16000'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        log = AuditLog.objects.get(model_name='Product', action='price_change')
        self.assertEqual(log.changes['price']['new'], '16000.00')

    def test_plain_update_is_audited_as_update(self):
        product = TestDataFactory.create_product()
        self.client.authenticate_user(self.admin)
        self.client.patch(f'/api/v1/products/{product.id}/', {'name': 'Ikan Baru'}, format='json')
        self.assertTrue(AuditLog.objects.filter(model_name='Product', action='update').exists())

    def test_get_product_by_slug(self):
        product = TestDataFactory.create_product(slug='ketan-hitam')
        response = self.client.get('/api/v1/products/slug/ketan-hitam/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['id'], product.id)

    def test_delete_product(self):
        product = TestDataFactory.create_product()
        self.client.authenticate_user(self.admin)
        response = self.client.delete(f'/api/v1/products/{product.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertTrue(AuditLog.objects.filter(model_name='Product', action='delete').exists())

    def test_sales_stats_exclude_cancelled_orders(self):
        product = TestDataFactory.create_product()
        TestDataFactory.create_order(items=[(product, Decimal('1500'))], status='PROCESSING')
        TestDataFactory.create_order(items=[(product, Decimal('2000'))], status='CANCELLED')
        response = self.client.get(f'/api/v1/products/{product.id}/')
        self.assertEqual(response.data['total_sold'], 1500.0)
        self.assertEqual(response.data['total_orders'], 1)
        self.assertEqual(response.data['sold_this_month'], 1500.0)


class ProductFilterTests(TestCase):
    """Test product listing filters"""

    def setUp(self):
        cache.clear()
        self.client = AuthenticatedAPIClient()
        self.ikan = TestDataFactory.create_category(name='Ikan', slug='ikan')
        self.udang = TestDataFactory.create_category(name='Udang', slug='udang')
        self.bandeng = TestDataFactory.create_product(
            name='Ikan Bandeng Presto', category=self.ikan, price=Decimal('15000'), cost_price=Decimal('12000')
        )
        self.asin = TestDataFactory.create_product(
            name='Ikan Asin', category=self.ikan, price=Decimal('20000'), cost_price=Decimal('15000'),
            weight_in_stock=Decimal('200')
        )
        self.vaname = TestDataFactory.create_product(
            name='Udang Vaname', category=self.udang, price=Decimal('17000'), cost_price=Decimal('14000'),
            is_available=False
        )

    def names(self, params):
        response = self.client.get('/api/v1/products/', params)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        return sorted(p['name'] for p in response.data)

    def test_search_matches_every_word(self):
        self.assertEqual(self.names({'search': 'ikan presto'}), ['Ikan Bandeng Presto'])
        self.assertEqual(self.names({'search': 'udang'}), ['Udang Vaname'])

    def test_category_by_slug_or_id(self):
        self.assertEqual(self.names({'category': 'udang'}), ['Udang Vaname'])
        self.assertEqual(self.names({'category': str(self.ikan.id)}), ['Ikan Asin', 'Ikan Bandeng Presto'])

    def test_availability_and_stock(self):
        self.assertEqual(self.names({'is_available': 'true'}), ['Ikan Asin', 'Ikan Bandeng Presto'])
        self.assertEqual(self.names({'in_stock': 'false'}), ['Ikan Asin'])

    def test_price_range(self):
        self.assertEqual(self.names({'min_price': '16000', 'max_price': '18000'}), ['Udang Vaname'])

    def test_listing_is_cached_until_invalidated(self):
        self.assertEqual(len(self.names({})), 3)
        with self.captureOnCommitCallbacks(execute=True):
            TestDataFactory.create_product(name='Kacang Hijau')
        self.assertEqual(len(self.names({})), 4)


class StockAndTrendingTests(TestCase):
    """Test stock updates and trending products"""

    def setUp(self):
        cache.clear()
        self.client = AuthenticatedAPIClient()
        self.admin = TestDataFactory.create_admin()

    def test_update_stock(self):
        product = TestDataFactory.create_product(weight_in_stock=Decimal('1000'))
        self.client.authenticate_user(self.admin)
        response = self.client.patch(f'/api/v1/products/{product.id}/stock/', {'weight_in_stock': '25000'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        product.refresh_from_db()
        self.assertEqual(product.weight_in_stock, Decimal('25000'))
        log = AuditLog.objects.get(action='stock_adjust')
        self.assertEqual(log.changes['weight_in_stock']['old'], '1000.00')

    def test_update_stock_rejects_negative(self):
        product = TestDataFactory.create_product()
        self.client.authenticate_user(self.admin)
        response = self.client.patch(f'/api/v1/products/{product.id}/stock/', {'weight_in_stock': '-1'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_update_stock_requires_admin(self):
        product = TestDataFactory.create_product()
        self.client.authenticate_user(TestDataFactory.create_user())
        response = self.client.patch(f'/api/v1/products/{product.id}/stock/', {'weight_in_stock': '5'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_trending_orders_by_recent_sales(self):
        slow = TestDataFactory.create_product(name='Slow')
        fast = TestDataFactory.create_product(name='Fast')
        TestDataFactory.create_product(name='Unsold')
        TestDataFactory.create_order(items=[(slow, Decimal('500'))], status='DELIVERED')
        TestDataFactory.create_order(items=[(fast, Decimal('5000'))], status='DELIVERED')

        response = self.client.get('/api/v1/products/trending/', {'limit': 3})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([p['name'] for p in response.data], ['Fast', 'Slow', 'Unsold'])

    def test_trending_falls_back_to_newest(self):
        TestDataFactory.create_product(name='Old')
        TestDataFactory.create_product(name='Hidden', is_available=False)
        response = self.client.get('/api/v1/products/trending/')
        self.assertEqual([p['name'] for p in response.data], ['Old'])


@override_settings(MEDIA_ROOT=MEDIA_ROOT)
class ProductImageAPITests(TestCase):
    """Test product image upload, primary selection and deletion"""

    @classmethod
    def tearDownClass(cls):
        shutil.rmtree(MEDIA_ROOT, ignore_errors=True)
        super().tearDownClass()

    def setUp(self):
        cache.clear()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(TestDataFactory.create_admin())
        self.product = TestDataFactory.create_product()

    def upload(self, count=2, **extra):
        data = {'product_id': self.product.id, 'images': [make_image(f'img{i}.png') for i in range(count)]}
        data.update(extra)
        return self.client.post('/api/v1/product-images/upload/', data, format='multipart')

    def test_first_image_becomes_primary(self):
        response = self.upload()
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual([img['is_primary'] for img in response.data], [True, False])

    def test_primary_index_out_of_range(self):
        response = self.upload(count=1, primary_index=3)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_set_primary(self):
        self.upload()
        second = ProductImage.objects.get(is_primary=False)
        response = self.client.patch(f'/api/v1/product-images/{second.id}/primary/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(self.product.images.filter(is_primary=True).get().id, second.id)

    def test_delete_primary_promotes_next(self):
        self.upload()
        primary = ProductImage.objects.get(is_primary=True)
        response = self.client.delete(f'/api/v1/product-images/{primary.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertEqual(self.product.images.count(), 1)
        self.assertTrue(self.product.images.get().is_primary)
