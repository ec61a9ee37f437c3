"""
Test suite for dashboard and analytics reports
"""
from datetime import timedelta
from decimal import Decimal

from django.core.cache import cache
from django.test import TestCase
from django.utils import timezone
from rest_framework import status

from dkmandiri.catalog.models import Product
from dkmandiri.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from dkmandiri.reports.services import percent_trend, month_bounds, analytics_data


class TrendTests(TestCase):

    def test_percent_trend(self):
        self.assertEqual(percent_trend(150, 100), {'value': 50.0, 'is_positive': True})
        self.assertEqual(percent_trend(50, 100), {'value': 50.0, 'is_positive': False})
        self.assertEqual(percent_trend(3, 0), {'value': 100.0, 'is_positive': True})
        self.assertEqual(percent_trend(0, 0), {'value': 0.0, 'is_positive': True})
        self.assertEqual(percent_trend(1, 3), {'value': 66.7, 'is_positive': False})


class ReportsTestBase(TestCase):

    def setUp(self):
        cache.clear()
        self.client = AuthenticatedAPIClient()
        self.admin = TestDataFactory.create_admin()
        self.customer = TestDataFactory.create_user(username='pelanggan')
        self.client.authenticate_user(self.admin)

        self.ikan = TestDataFactory.create_product(
            name='Ikan', price=Decimal('50000'), cost_price=Decimal('30000')
        )
        self.udang = TestDataFactory.create_product(
            name='Udang', price=Decimal('20000'), cost_price=Decimal('15000')
        )
        self.paid = TestDataFactory.create_order(
            user=self.customer, items=[(self.ikan, Decimal('1000'))],
            status='PROCESSING', payment_status='SUCCESS'
        )
        self.pending = TestDataFactory.create_order(
            user=self.customer, items=[(self.udang, Decimal('2000'))]
        )
        self.cancelled = TestDataFactory.create_order(
            user=self.customer, items=[(self.udang, Decimal('1000'))],
            status='CANCELLED', payment_status='FAILED'
        )


class DashboardAPITests(ReportsTestBase):
    """Test the dashboard endpoint"""

    def test_dashboard_stats(self):
        response = self.client.get('/api/v1/dashboard/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        stats = response.data['stats']
        self.assertEqual(stats['products']['value'], 2)
        self.assertEqual(stats['orders']['value'], 2)
        self.assertEqual(stats['sales']['value'], 50000.0)
        self.assertEqual(stats['users']['value'], 1)
        self.assertEqual(stats['products']['trend'], {'value': 100.0, 'is_positive': True})

    def test_recent_transactions(self):
        response = self.client.get('/api/v1/dashboard/')
        recent = response.data['recent_transactions']
        self.assertEqual(len(recent), 3)
        self.assertEqual(
            sorted(t['status'] for t in recent), ['failed', 'pending', 'success']
        )

    def test_trend_against_last_month(self):
        _, last_month = month_bounds()
        Product.objects.filter(pk=self.udang.pk).update(created_at=last_month + timedelta(days=1))
        response = self.client.get('/api/v1/dashboard/')
        self.assertEqual(response.data['stats']['products']['trend'], {'value': 0.0, 'is_positive': True})

    def test_dashboard_is_cached(self):
        self.client.get('/api/v1/dashboard/')
        TestDataFactory.create_product()
        response = self.client.get('/api/v1/dashboard/')
        self.assertEqual(response.data['stats']['products']['value'], 2)

    def test_requires_admin(self):
        self.client.authenticate_user(self.customer)
        response = self.client.get('/api/v1/dashboard/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class AnalyticsAPITests(ReportsTestBase):
    """Test the analytics endpoint"""

    def test_summary(self):
        response = self.client.get('/api/v1/analytics/', {'timeframe': 'week'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        summary = response.data['summary']
        self.assertEqual(summary['total_sales'], 50000.0)
        self.assertEqual(summary['total_orders'], 3)
        self.assertEqual(summary['total_profit'], 20000.0)
        self.assertEqual(summary['average_order_value'], 50000.0)
        self.assertEqual(summary['cancellation_rate'], 33.33)

    def test_top_products_only_count_paid_orders(self):
        data = analytics_data('month')
        self.assertEqual([p['name'] for p in data['top_products']], ['Ikan'])
        self.assertEqual(data['top_products'][0]['total_sold'], 1000.0)

    def test_buckets_are_filled(self):
        data = analytics_data('week')
        self.assertEqual(data['period']['bucket'], 'day')
        self.assertGreaterEqual(len(data['transactions_by_timeframe']), 7)
        self.assertEqual(sum(b['orders'] for b in data['transactions_by_timeframe']), 1)
        periods = [b['period'] for b in data['transactions_by_timeframe']]
        self.assertEqual(periods, sorted(periods))

    def test_timeframe_window(self):
        old = TestDataFactory.create_order(
            items=[(self.ikan, Decimal('500'))], status='DELIVERED', payment_status='SUCCESS',
            created_at=timezone.now() - timedelta(days=60)
        )
        month = analytics_data('month')
        quarter = analytics_data('3months')
        self.assertNotIn(old.id, [d['id'] for d in month['transaction_details']])
        self.assertIn(old.id, [d['id'] for d in quarter['transaction_details']])
        self.assertEqual(quarter['period']['bucket'], 'week')
        self.assertEqual(quarter['summary']['total_sales'], 75000.0)

    def test_orders_by_status_and_details(self):
        data = analytics_data('month')
        by_status = {row['status']: row['count'] for row in data['orders_by_status']}
        self.assertEqual(by_status, {'CANCELLED': 1, 'PENDING': 1, 'PROCESSING': 1})
        detail = next(d for d in data['transaction_details'] if d['id'] == self.cancelled.id)
        self.assertEqual(detail['payment_status'], 'FAILED')

    def test_unknown_timeframe(self):
        response = self.client.get('/api/v1/analytics/', {'timeframe': 'decade'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
