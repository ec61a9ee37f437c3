"""
Test suite for the POS module
Tests: cart rules, sale recording, stock updates, receipts and WhatsApp sending
"""
from decimal import Decimal
from unittest.mock import patch

from django.core.cache import cache
from django.test import TestCase, override_settings
from rest_framework import status

from dkmandiri.core.models import AuditLog
from dkmandiri.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from dkmandiri.orders.models import Order, Transaction, OrderStatusLog
from dkmandiri.pos.cart import POSCart, CartError
from dkmandiri.pos.receipt import render_receipt


class POSCartTests(TestCase):
    """Test the in-memory cashier cart"""

    def setUp(self):
        self.product = TestDataFactory.create_product(
            price=Decimal('12000'), cost_price=Decimal('10000'),
            weight_in_stock=Decimal('2000'), min_order_weight=Decimal('500')
        )
        self.cart = POSCart()

    def test_add_defaults_to_minimum_weight(self):
        line = self.cart.add(self.product)
        self.assertEqual(line.weight, Decimal('500'))
        self.assertIn(self.product.pk, self.cart)

    def test_add_again_grows_by_step(self):
        self.cart.add(self.product)
        line = self.cart.add(self.product)
        self.assertEqual(line.weight, Decimal('1000'))
        self.assertEqual(len(self.cart), 1)

    def test_add_beyond_stock(self):
        self.cart.add(self.product, Decimal('1800'))
        with self.assertRaises(CartError):
            self.cart.add(self.product)

    def test_add_below_minimum(self):
        with self.assertRaises(CartError):
            self.cart.add(self.product, Decimal('200'))

    def test_out_of_stock_product(self):
        empty = TestDataFactory.create_product(weight_in_stock=Decimal('0'))
        with self.assertRaises(CartError):
            self.cart.add(empty)

    def test_update_weight_limits(self):
        self.cart.add(self.product)
        self.assertEqual(self.cart.update_weight(self.product.pk, '1500').weight, Decimal('1500'))
        with self.assertRaises(CartError):
            self.cart.update_weight(self.product.pk, '100')
        with self.assertRaises(CartError):
            self.cart.update_weight(self.product.pk, '2500')

    def test_totals_and_profit(self):
        self.cart.add(self.product, Decimal('1500'))
        self.assertEqual(self.cart.total(), Decimal('18000.00'))
        self.assertEqual(self.cart.total_cost(), Decimal('15000.00'))
        self.assertEqual(self.cart.profit(), Decimal('3000.00'))

    def test_remove_and_clear(self):
        other = TestDataFactory.create_product()
        self.cart.add(self.product)
        self.cart.add(other)
        self.cart.remove(self.product.pk)
        self.assertNotIn(self.product.pk, self.cart)
        with self.assertRaises(CartError):
            self.cart.remove(self.product.pk)
        self.cart.clear()
        self.assertEqual(len(self.cart), 0)


class POSTransactionAPITests(TestCase):
    """Test recording in-store sales"""

    def setUp(self):
        cache.clear()
        self.client = AuthenticatedAPIClient()
        self.cashier = TestDataFactory.create_admin(username='kasir')
        self.client.authenticate_user(self.cashier)
        self.ikan = TestDataFactory.create_product(
            name='Ikan Bandeng Presto', price=Decimal('15000'), cost_price=Decimal('12000'),
            weight_in_stock=Decimal('10000')
        )
        self.udang = TestDataFactory.create_product(
            name='Udang Vaname', price=Decimal('17000'), cost_price=Decimal('14000'),
            weight_in_stock=Decimal('5000')
        )

    def payload(self, **overrides):
        data = {
            'payment_method': 'cash',
            'order_items': [
                {'product_id': self.ikan.id, 'weight': '2000'},
                {'product_id': self.udang.id, 'weight': '500'},
            ],
        }
        data.update(overrides)
        return data

    def test_pickup_sale_is_completed(self):
        response = self.client.post('/api/v1/pos/transactions/', self.payload(), format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

        order = Order.objects.get()
        self.assertTrue(order.order_number.startswith('POS-'))
        self.assertEqual(order.order_type, Order.TYPE_OFFLINE)
        self.assertEqual(order.status, Order.STATUS_DELIVERED)
        self.assertEqual(order.customer_name, 'Walk-in Customer')
        self.assertEqual(order.shipping_address, 'In-store purchase')
        self.assertEqual(order.total_amount, Decimal('38500.00'))

        payment = order.transaction
        self.assertEqual(payment.status, Transaction.STATUS_SUCCESS)
        self.assertEqual(payment.payment_method, 'CASH')
        self.assertEqual(payment.verified_by, self.cashier)

        self.ikan.refresh_from_db()
        self.udang.refresh_from_db()
        self.assertEqual(self.ikan.weight_in_stock, Decimal('8000.00'))
        self.assertEqual(self.udang.weight_in_stock, Decimal('4500.00'))

        self.assertEqual(response.data['receipt']['total'], 38500.0)
        self.assertIn('Kasir: kasir', response.data['receipt']['text'])
        log = AuditLog.objects.get(action='pos_transaction')
        self.assertEqual(log.changes['profit'], '7500.00')

    def test_delivery_sale_starts_processing(self):
        response = self.client.post('/api/v1/pos/transactions/', self.payload(
            shipping_method='kroya_delivery', customer_name='Bu Tini', delivery_address='Jl. Kroya 3'
        ), format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        order = Order.objects.get()
        self.assertEqual(order.status, Order.STATUS_PROCESSING)
        self.assertEqual(order.total_amount, Decimal('58500.00'))
        self.assertEqual(OrderStatusLog.objects.get(order=order).status, Order.STATUS_PROCESSING)

    def test_insufficient_stock(self):
        response = self.client.post('/api/v1/pos/transactions/', self.payload(
            order_items=[{'product_id': self.udang.id, 'weight': '6000'}]
        ), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(Order.objects.count(), 0)

    def test_unknown_product(self):
        response = self.client.post('/api/v1/pos/transactions/', self.payload(
            order_items=[{'product_id': 999999, 'weight': '1000'}]
        ), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_empty_items_and_bad_payment_method(self):
        response = self.client.post('/api/v1/pos/transactions/', self.payload(order_items=[]), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('order_items', response.data)
        response = self.client.post('/api/v1/pos/transactions/', self.payload(payment_method='midtrans'), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_requires_admin(self):
        self.client.authenticate_user(TestDataFactory.create_user())
        response = self.client.post('/api/v1/pos/transactions/', self.payload(), format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_receipt_endpoint(self):
        created = self.client.post('/api/v1/pos/transactions/', self.payload(staff_name='Rina'), format='json')
        payment_id = created.data['transaction']['id']
        response = self.client.get(f'/api/v1/pos/transactions/{payment_id}/receipt/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('Kasir: Rina', response.data['text'])
        self.assertEqual(len(response.data['lines']), 2)

    @override_settings(WHATSAPP_API_TOKEN='wa-token')
    @patch('dkmandiri.notifications.whatsapp.requests.post')
    def test_send_receipt(self, mock_post):
        mock_post.return_value.json.return_value = {'status': True}
        created = self.client.post('/api/v1/pos/transactions/', self.payload(customer_phone='0812 9999 8888'), format='json')
        payment_id = created.data['transaction']['id']
        response = self.client.post(f'/api/v1/pos/transactions/{payment_id}/send-receipt/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(mock_post.call_args.kwargs['data']['target'], '6281299998888')

    def test_send_receipt_without_phone(self):
        created = self.client.post('/api/v1/pos/transactions/', self.payload(), format='json')
        payment_id = created.data['transaction']['id']
        response = self.client.post(f'/api/v1/pos/transactions/{payment_id}/send-receipt/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class ReceiptTests(TestCase):

    @override_settings(STORE_NAME='DK Mandiri', STORE_PHONE='0282-123456')
    def test_render_receipt(self):
        product = TestDataFactory.create_product(name='Ikan Asin', price=Decimal('20000'))
        order = TestDataFactory.create_order(
            items=[(product, Decimal('1500'))], payment_method='CASH', order_type='OFFLINE',
            shipping_method='local_delivery', shipping_cost=Decimal('10000')
        )
        receipt = render_receipt(order, cashier='Rina')
        self.assertEqual(receipt['total'], 40000.0)
        self.assertEqual(receipt['total_display'], 'Rp 40.000')
        self.assertEqual(receipt['lines'][0]['weight_display'], '1.5 kg')
        self.assertIn('Telp: 0282-123456', receipt['text'])
        self.assertIn('Ongkir', receipt['text'])
        self.assertIn('Pembayaran: Tunai', receipt['text'])
