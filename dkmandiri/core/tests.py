"""
Test suite for the core module
Tests: registration, login, profile, user management, audit logs, formatting and cache helpers
"""
from decimal import Decimal
from django.core.cache import cache
from django.test import TestCase
from rest_framework import status

from dkmandiri.core.cache_utils import (
    make_cache_key, get_cached_products_list, cache_products_list, invalidate_products_cache,
    get_cached_dashboard, cache_dashboard, invalidate_dashboard_cache,
)
from dkmandiri.core.formatting import (
    format_idr, unformat_idr, format_weight, unformat_weight, line_total, to_decimal,
)
from dkmandiri.core.models import User, AuditLog
from dkmandiri.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from dkmandiri.core.utils import create_audit_log, generate_reference_number
from dkmandiri.orders.models import Order


class FormattingTests(TestCase):
    """Test rupiah and weight helpers"""

    def test_format_idr(self):
        self.assertEqual(format_idr(1250000), '1.250.000')
        self.assertEqual(format_idr(Decimal('999.50')), '1.000')
        self.assertEqual(format_idr(0), '0')
        self.assertEqual(format_idr(None), '0')
        self.assertEqual(format_idr(-15000), '-15.000')

    def test_unformat_idr(self):
        self.assertEqual(unformat_idr('1.250.000'), '1250000')
        self.assertEqual(unformat_idr(''), '')

    def test_format_weight_units(self):
        self.assertEqual(format_weight(500), '500 g')
        self.assertEqual(format_weight(1500), '1.5 kg')
        self.assertEqual(format_weight(1000), '1 kg')
        self.assertEqual(format_weight(200000), '2 kwintal')
        self.assertEqual(format_weight(1250000), '1.25 ton')
        self.assertEqual(format_weight(None), '0 g')

    def test_unformat_weight(self):
        self.assertEqual(unformat_weight('1.5 kg'), Decimal('1500'))
        self.assertEqual(unformat_weight('2 kwintal'), Decimal('200000'))
        self.assertEqual(unformat_weight('750 g'), Decimal('750'))
        self.assertEqual(unformat_weight('1,5 ton'), Decimal('1500000'))
        self.assertEqual(unformat_weight('abc'), Decimal('0'))
        self.assertEqual(unformat_weight(''), Decimal('0'))

    def test_line_total_rounds_half_up(self):
        self.assertEqual(line_total(Decimal('1500'), Decimal('12000')), Decimal('18000.00'))
        self.assertEqual(line_total(Decimal('333'), Decimal('10001')), Decimal('3330.33'))
        self.assertEqual(line_total(Decimal('5'), Decimal('1')), Decimal('0.01'))

    def test_to_decimal(self):
        self.assertEqual(to_decimal('12.5'), Decimal('12.5'))
        self.assertIsNone(to_decimal('abc'))
        self.assertIsNone(to_decimal(True))
        self.assertEqual(to_decimal(None, Decimal('0')), Decimal('0'))


class UtilsTests(TestCase):
    """Test audit log and reference number helpers"""

    def test_reference_number_format(self):
        number = generate_reference_number('ORD', Order, 'order_number')
        prefix, date_part, suffix = number.split('-')
        self.assertEqual(prefix, 'ORD')
        self.assertEqual(len(date_part), 8)
        self.assertEqual(len(suffix), 8)

    def test_create_audit_log_with_user(self):
        user = TestDataFactory.create_admin()
        log = create_audit_log(action='update', model_name='Product', object_id=5, user=user,
                               changes={'price': {'old': '1', 'new': '2'}})
        self.assertIsNotNone(log)
        self.assertEqual(log.user, user)
        self.assertEqual(log.object_id, '5')

    def test_create_audit_log_skips_missing_fields(self):
        self.assertIsNone(create_audit_log(action='update', model_name=None, object_id=1))
        self.assertEqual(AuditLog.objects.count(), 0)


class AuthAPITests(TestCase):
    """Test registration, login and token refresh"""

    def setUp(self):
        self.client = AuthenticatedAPIClient()

    def test_register_creates_customer(self):
        response = self.client.post('/api/v1/auth/register/', {
            'username': 'budi',
            'email': 'Budi@Example.com',
            'password': 'Ikan!Bandeng2025',
            'phone': '081234567890',
            'name': 'Budi Santoso',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertIn('access', response.data)
        self.assertIn('refresh', response.data)
        user = User.objects.get(username='budi')
        self.assertEqual(user.role, User.ROLE_USER)
        self.assertEqual(user.email, 'budi@example.com')

    def test_register_ignores_role(self):
        response = self.client.post('/api/v1/auth/register/', {
            'username': 'sneaky',
            'email': 'sneaky@example.com',
            'password': 'Ikan!Bandeng2025',
            'role': 'ADMIN',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(User.objects.get(username='sneaky').role, User.ROLE_USER)

    def test_register_duplicate_email(self):
        TestDataFactory.create_user(username='first', email='dup@example.com')
        response = self.client.post('/api/v1/auth/register/', {
            'username': 'second',
            'email': 'DUP@example.com',
            'password': 'Ikan!Bandeng2025',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('email', response.data)

    def test_login_with_username_or_email(self):
        TestDataFactory.create_user(username='siti', email='siti@example.com')
        for identifier in ('siti', 'SITI@example.com'):
            response = self.client.post('/api/v1/auth/login/', {
                'login': identifier, 'password': 'testpass123'
            }, format='json')
            self.assertEqual(response.status_code, status.HTTP_200_OK)
            self.assertEqual(response.data['user']['username'], 'siti')

    def test_login_wrong_password(self):
        TestDataFactory.create_user(username='siti')
        response = self.client.post('/api/v1/auth/login/', {
            'login': 'siti', 'password': 'wrong'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_login_inactive_user(self):
        user = TestDataFactory.create_user(username='nonaktif')
        user.is_active = False
        user.save()
        response = self.client.post('/api/v1/auth/login/', {
            'login': 'nonaktif', 'password': 'testpass123'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_refresh_token(self):
        TestDataFactory.create_user(username='siti')
        login = self.client.post('/api/v1/auth/login/', {
            'login': 'siti', 'password': 'testpass123'
        }, format='json')
        response = self.client.post('/api/v1/auth/refresh/', {'refresh': login.data['refresh']}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('access', response.data)

    def test_refresh_invalid_token(self):
        response = self.client.post('/api/v1/auth/refresh/', {'refresh': 'garbage'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)


class ProfileAPITests(TestCase):
    """Test the current user's profile endpoints"""

    def setUp(self):
        self.client = AuthenticatedAPIClient()
        self.user = TestDataFactory.create_user(username='customer')
        self.client.authenticate_user(self.user)

    def test_get_profile(self):
        response = self.client.get('/api/v1/profile/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['username'], 'customer')

    def test_profile_requires_auth(self):
        self.client.logout()
        response = self.client.get('/api/v1/profile/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_update_profile_cannot_change_role(self):
        response = self.client.patch('/api/v1/profile/', {'name': 'Pak Customer', 'role': 'ADMIN'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.user.refresh_from_db()
        self.assertEqual(self.user.name, 'Pak Customer')
        self.assertEqual(self.user.role, User.ROLE_USER)

    def test_change_password(self):
        response = self.client.post('/api/v1/profile/change-password/', {
            'current_password': 'testpass123', 'new_password': 'Gabah!Kering2025'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.user.refresh_from_db()
        self.assertTrue(self.user.check_password('Gabah!Kering2025'))

    def test_change_password_wrong_current(self):
        response = self.client.post('/api/v1/profile/change-password/', {
            'current_password': 'nope', 'new_password': 'Gabah!Kering2025'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class UserManagementAPITests(TestCase):
    """Test admin user management"""

    def setUp(self):
        self.client = AuthenticatedAPIClient()
        self.admin = TestDataFactory.create_admin()
        self.customer = TestDataFactory.create_user(username='pelanggan')
        self.client.authenticate_user(self.admin)

    def test_list_users_filtered_by_role(self):
        response = self.client.get('/api/v1/users/', {'role': 'user'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([u['username'] for u in response.data], ['pelanggan'])

    def test_customer_cannot_list_users(self):
        self.client.authenticate_user(self.customer)
        response = self.client.get('/api/v1/users/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_create_admin_user(self):
        response = self.client.post('/api/v1/users/', {
            'username': 'kasir', 'email': 'kasir@example.com',
            'password': 'Kasir!Toko2025', 'role': 'ADMIN'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(User.objects.get(username='kasir').role, User.ROLE_ADMIN)
        self.assertTrue(AuditLog.objects.filter(model_name='User', action='create').exists())

    def test_change_role_is_audited(self):
        response = self.client.patch(f'/api/v1/users/{self.customer.id}/', {'role': 'ADMIN'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        log = AuditLog.objects.get(model_name='User', action='update')
        self.assertEqual(log.changes['role'], {'old': 'USER', 'new': 'ADMIN'})

    def test_cannot_delete_self(self):
        response = self.client.delete(f'/api/v1/users/{self.admin.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_delete_user(self):
        response = self.client.delete(f'/api/v1/users/{self.customer.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(User.objects.filter(pk=self.customer.id).exists())

    def test_reset_password(self):
        response = self.client.post(f'/api/v1/users/{self.customer.id}/reset-password/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.customer.refresh_from_db()
        self.assertTrue(self.customer.check_password(response.data['new_password']))

    def test_audit_log_list_filters(self):
        create_audit_log(action='stock_adjust', model_name='Product', object_id=1, user=self.admin)
        create_audit_log(action='delete', model_name='Category', object_id=2, user=self.admin)
        response = self.client.get('/api/v1/audit-logs/', {'action': 'stock_adjust'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]['model_name'], 'Product')

    def test_audit_log_list_limit(self):
        for object_id in range(3):
            create_audit_log(action='update', model_name='Product', object_id=object_id, user=self.admin)

        response = self.client.get('/api/v1/audit-logs/', {'limit': 'abc'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.get('/api/v1/audit-logs/', {'limit': '-5'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)

        response = self.client.get('/api/v1/audit-logs/', {'limit': '2'})
        self.assertEqual(len(response.data), 2)

    def test_staff_user_counts_as_admin(self):
        staff = TestDataFactory.create_user(username='staff')
        staff.is_staff = True
        staff.save()
        self.client.authenticate_user(staff)
        response = self.client.get('/api/v1/users/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)


class CacheUtilsTests(TestCase):
    """Test cache key building and invalidation on the local memory cache"""

    def setUp(self):
        cache.clear()

    def test_cache_key_is_order_independent(self):
        self.assertEqual(
            make_cache_key('products_list', a='1', b='2'),
            make_cache_key('products_list', b='2', a='1'),
        )

    def test_products_list_roundtrip_and_invalidation(self):
        data, key = get_cached_products_list({'search': 'ikan'})
        self.assertIsNone(data)
        cache_products_list(key, [{'id': 1}])
        data, _ = get_cached_products_list({'search': 'ikan'})
        self.assertEqual(data, [{'id': 1}])

        invalidate_products_cache()
        data, _ = get_cached_products_list({'search': 'ikan'})
        self.assertIsNone(data)

    def test_dashboard_invalidation(self):
        _, key = get_cached_dashboard()
        cache_dashboard(key, {'stats': {}})
        self.assertEqual(get_cached_dashboard()[0], {'stats': {}})
        invalidate_dashboard_cache()
        self.assertIsNone(get_cached_dashboard()[0])

    def test_product_save_invalidates_listing(self):
        _, key = get_cached_products_list({})
        cache_products_list(key, [{'id': 1}])
        with self.captureOnCommitCallbacks(execute=True):
            TestDataFactory.create_product()
        self.assertIsNone(get_cached_products_list({})[0])
