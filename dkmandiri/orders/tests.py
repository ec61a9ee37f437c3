"""
Test suite for the orders module
Tests: cart, checkout, stock reservation, order status flow, payments,
Midtrans notifications and WhatsApp receipts
"""
import io
import shutil
import tempfile
from decimal import Decimal
from unittest.mock import patch

import requests
from django.core.cache import cache
from django.core.files.uploadedfile import SimpleUploadedFile
from django.test import TestCase, override_settings
from PIL import Image
from rest_framework import status

from dkmandiri.core.models import AuditLog
from dkmandiri.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from dkmandiri.orders.midtrans import MidtransClient, map_transaction_status, to_rupiah
from dkmandiri.orders.models import CartItem, Order, Transaction, OrderStatusLog
from dkmandiri.orders.services import (
    CheckoutError, OrderStatusError, add_to_cart, apply_payment_status, cancel_order, decrement_stock
)
from dkmandiri.orders.shipping import shipping_cost, is_valid_shipping_method, list_shipping_methods

MEDIA_ROOT = tempfile.mkdtemp()
SERVER_KEY = 'SB-Mid-server-test'


class ShippingTests(TestCase):

    def test_costs(self):
        self.assertEqual(shipping_cost('pickup'), Decimal('0'))
        self.assertEqual(shipping_cost('local_delivery'), Decimal('10000'))
        self.assertEqual(shipping_cost('shipping'), Decimal('50000'))

    def test_unknown_method(self):
        self.assertFalse(is_valid_shipping_method('teleport'))
        self.assertEqual(len(list_shipping_methods()), 6)


class MidtransClientTests(TestCase):
    """Test payload building, status mapping and signatures"""

    def test_status_mapping(self):
        self.assertEqual(map_transaction_status('capture', 'accept'), 'SUCCESS')
        self.assertEqual(map_transaction_status('capture'), 'SUCCESS')
        self.assertEqual(map_transaction_status('capture', 'challenge'), 'PENDING')
        self.assertEqual(map_transaction_status('capture', 'deny'), 'FAILED')
        self.assertEqual(map_transaction_status('settlement'), 'SUCCESS')
        self.assertEqual(map_transaction_status('pending'), 'PENDING')
        for gateway_status in ('deny', 'expire', 'failure'):
            self.assertEqual(map_transaction_status(gateway_status), 'FAILED')
        self.assertEqual(map_transaction_status('cancel'), 'CANCELLED')
        self.assertIsNone(map_transaction_status('refund'))

    def test_to_rupiah_rounds_half_up(self):
        self.assertEqual(to_rupiah(Decimal('3330.50')), 3331)
        self.assertEqual(to_rupiah(Decimal('3330.49')), 3330)

    def test_build_payload_gross_amount_matches_items(self):
        product = TestDataFactory.create_product(price=Decimal('10001'))
        order = TestDataFactory.create_order(
            items=[(product, Decimal('333'))], shipping_method='local_delivery', shipping_cost=Decimal('10000')
        )
        payload = MidtransClient(server_key=SERVER_KEY).build_payload(order)
        prices = [item['price'] for item in payload['item_details']]
        self.assertEqual(prices, [3330, 10000])
        self.assertEqual(payload['transaction_details']['gross_amount'], 13330)
        self.assertEqual(payload['transaction_details']['order_id'], order.order_number)

    def test_signature_verification(self):
        client = MidtransClient(server_key=SERVER_KEY)
        payload = {'order_id': 'ORD-1', 'status_code': '200', 'gross_amount': '15000.00'}
        payload['signature_key'] = client.signature_for('ORD-1', '200', '15000.00')
        self.assertTrue(client.verify_signature(payload))
        payload['gross_amount'] = '1.00'
        self.assertFalse(client.verify_signature(payload))
        self.assertFalse(MidtransClient(server_key='').verify_signature(payload))


class CartServiceTests(TestCase):
    """Test cart rules in the service layer"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.product = TestDataFactory.create_product(
            weight_in_stock=Decimal('3000'), min_order_weight=Decimal('500')
        )

    def test_add_merges_lines(self):
        add_to_cart(self.user, self.product, Decimal('1000'))
        item = add_to_cart(self.user, self.product, Decimal('1500'))
        self.assertEqual(item.weight, Decimal('2500'))
        self.assertEqual(CartItem.objects.count(), 1)

    def test_add_below_minimum(self):
        with self.assertRaises(CheckoutError):
            add_to_cart(self.user, self.product, Decimal('100'))

    def test_merged_weight_over_stock(self):
        add_to_cart(self.user, self.product, Decimal('2000'))
        with self.assertRaises(CheckoutError):
            add_to_cart(self.user, self.product, Decimal('1500'))

    def test_unavailable_product(self):
        self.product.is_available = False
        self.product.save()
        with self.assertRaises(CheckoutError):
            add_to_cart(self.user, self.product, Decimal('1000'))

    def test_decrement_stock_never_goes_negative(self):
        decrement_stock(self.product.id, Decimal('3000'))
        with self.assertRaises(CheckoutError):
            decrement_stock(self.product.id, Decimal('1'))
        self.product.refresh_from_db()
        self.assertEqual(self.product.weight_in_stock, Decimal('0'))


class CartAPITests(TestCase):
    """Test cart endpoints"""

    def setUp(self):
        cache.clear()
        self.client = AuthenticatedAPIClient()
        self.user = TestDataFactory.create_user()
        self.client.authenticate_user(self.user)
        self.product = TestDataFactory.create_product(price=Decimal('15000'))

    def test_add_and_get_cart(self):
        response = self.client.post('/api/v1/cart/add/', {'product_id': self.product.id, 'weight': '1500'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['total_items'], 1)
        self.assertEqual(response.data['subtotal'], 22500.0)

        response = self.client.get('/api/v1/cart/')
        self.assertEqual(response.data['items'][0]['product']['id'], self.product.id)

    def test_add_below_minimum_returns_400(self):
        response = self.client.post('/api/v1/cart/add/', {'product_id': self.product.id, 'weight': '100'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('error', response.data)

    def test_update_and_remove_item(self):
        item = TestDataFactory.create_cart_item(self.user, self.product, Decimal('1000'))
        response = self.client.patch(f'/api/v1/cart/items/{item.id}/', {'weight': '2000'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['subtotal'], 30000.0)

        response = self.client.delete(f'/api/v1/cart/items/{item.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total_items'], 0)

    def test_cannot_touch_other_users_item(self):
        other = TestDataFactory.create_cart_item(TestDataFactory.create_user(), self.product)
        response = self.client.delete(f'/api/v1/cart/items/{other.id}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_clear_cart(self):
        TestDataFactory.create_cart_item(self.user, self.product)
        response = self.client.delete('/api/v1/cart/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(CartItem.objects.count(), 0)


@override_settings(MIDTRANS_SERVER_KEY=SERVER_KEY, BANK_ACCOUNT_NUMBER='0123456789')
class CheckoutAPITests(TestCase):
    """Test checkout for manual and Midtrans payments"""

    def setUp(self):
        cache.clear()
        self.client = AuthenticatedAPIClient()
        self.user = TestDataFactory.create_user(phone='081234567890')
        self.client.authenticate_user(self.user)
        self.product = TestDataFactory.create_product(price=Decimal('15000'), weight_in_stock=Decimal('10000'))
        TestDataFactory.create_cart_item(self.user, self.product, Decimal('1500'))

    def test_manual_pickup_checkout(self):
        response = self.client.post('/api/v1/orders/checkout/', {
            'shipping_method': 'pickup', 'payment_method': 'manual'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['payment_details']['account_number'], '0123456789')

        order = Order.objects.get()
        self.assertTrue(order.order_number.startswith('ORD-'))
        self.assertEqual(order.status, Order.STATUS_PENDING)
        self.assertEqual(order.total_amount, Decimal('22500.00'))
        self.assertEqual(order.transaction.status, Transaction.STATUS_PENDING)
        self.assertEqual(order.items.get().price, Decimal('15000.00'))

        self.product.refresh_from_db()
        self.assertEqual(self.product.weight_in_stock, Decimal('8500.00'))
        self.assertEqual(CartItem.objects.count(), 0)
        self.assertTrue(AuditLog.objects.filter(action='order_create').exists())

    @patch('dkmandiri.orders.midtrans.requests.post')
    def test_midtrans_delivery_checkout(self, mock_post):
        mock_post.return_value.json.return_value = {
            'token': 'snap-token-123',
            'redirect_url': 'https://app.sandbox.midtrans.com/snap/v2/vtweb/snap-token-123',
        }
        address = TestDataFactory.create_address(self.user)

        response = self.client.post('/api/v1/orders/checkout/', {
            'shipping_method': 'local_delivery',
            'payment_method': 'midtrans',
            'delivery_address_id': address.id,
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['snap_token'], 'snap-token-123')
        order = Order.objects.get()
        self.assertEqual(order.total_amount, Decimal('32500.00'))
        self.assertEqual(order.shipping_address, address.as_text())
        self.assertEqual(order.transaction.snap_token, 'snap-token-123')

        payload = mock_post.call_args.kwargs['json']
        self.assertEqual(payload['transaction_details']['gross_amount'], 32500)
        self.assertEqual(mock_post.call_args.kwargs['auth'], (SERVER_KEY, ''))

    @patch('dkmandiri.orders.midtrans.requests.post')
    def test_gateway_failure_rolls_back(self, mock_post):
        mock_post.side_effect = requests.ConnectionError('down')
        response = self.client.post('/api/v1/orders/checkout/', {
            'shipping_method': 'pickup', 'payment_method': 'midtrans'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_502_BAD_GATEWAY)
        self.assertEqual(Order.objects.count(), 0)
        self.product.refresh_from_db()
        self.assertEqual(self.product.weight_in_stock, Decimal('10000.00'))
        self.assertEqual(CartItem.objects.count(), 1)

    def test_delivery_requires_address(self):
        response = self.client.post('/api/v1/orders/checkout/', {
            'shipping_method': 'kroya_delivery', 'payment_method': 'manual'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_unknown_methods(self):
        for payload in ({'shipping_method': 'teleport', 'payment_method': 'manual'},
                        {'shipping_method': 'pickup', 'payment_method': 'bitcoin'}):
            response = self.client.post('/api/v1/orders/checkout/', payload, format='json')
            self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_empty_cart(self):
        CartItem.objects.all().delete()
        response = self.client.post('/api/v1/orders/checkout/', {
            'shipping_method': 'pickup', 'payment_method': 'manual'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'Cart is empty')

    def test_stock_sold_out_after_adding_to_cart(self):
        self.product.weight_in_stock = Decimal('1000')
        self.product.save()
        response = self.client.post('/api/v1/orders/checkout/', {
            'shipping_method': 'pickup', 'payment_method': 'manual'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(Order.objects.count(), 0)


class OrderAPITests(TestCase):
    """Test order listing and status changes"""

    def setUp(self):
        cache.clear()
        self.client = AuthenticatedAPIClient()
        self.user = TestDataFactory.create_user()
        self.admin = TestDataFactory.create_admin()
        self.product = TestDataFactory.create_product(weight_in_stock=Decimal('10000'))
        self.order = TestDataFactory.create_order(user=self.user, items=[(self.product, Decimal('2000'))])

    def test_list_own_orders(self):
        TestDataFactory.create_order(user=TestDataFactory.create_user(), items=[(self.product, Decimal('1000'))])
        self.client.authenticate_user(self.user)
        response = self.client.get('/api/v1/orders/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([o['id'] for o in response.data], [self.order.id])

    def test_other_user_gets_404(self):
        self.client.authenticate_user(TestDataFactory.create_user())
        response = self.client.get(f'/api/v1/orders/{self.order.id}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_customer_cancels_pending_order(self):
        self.client.authenticate_user(self.user)
        response = self.client.patch(f'/api/v1/orders/{self.order.id}/status/', {'status': 'CANCELLED'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.order.refresh_from_db()
        self.product.refresh_from_db()
        self.assertEqual(self.order.status, Order.STATUS_CANCELLED)
        self.assertEqual(self.order.transaction.status, Transaction.STATUS_CANCELLED)
        self.assertEqual(self.product.weight_in_stock, Decimal('12000.00'))

    def test_customer_cannot_advance_order(self):
        self.client.authenticate_user(self.user)
        response = self.client.patch(f'/api/v1/orders/{self.order.id}/status/', {'status': 'PROCESSING'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_admin_status_flow(self):
        self.client.authenticate_user(self.admin)
        for new_status in ('PROCESSING', 'SHIPPED', 'DELIVERED'):
            response = self.client.patch(f'/api/v1/orders/{self.order.id}/status/', {'status': new_status}, format='json')
            self.assertEqual(response.status_code, status.HTTP_200_OK, new_status)
        self.assertEqual(OrderStatusLog.objects.filter(order=self.order).count(), 3)

    def test_invalid_transition(self):
        self.client.authenticate_user(self.admin)
        response = self.client.patch(f'/api/v1/orders/{self.order.id}/status/', {'status': 'DELIVERED'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_profile_orders_pagination(self):
        for _ in range(2):
            TestDataFactory.create_order(user=self.user, items=[(self.product, Decimal('500'))])
        self.client.authenticate_user(self.user)
        response = self.client.get('/api/v1/profile/orders/', {'limit': 2})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 3)
        self.assertEqual(response.data['total_pages'], 2)
        self.assertEqual(response.data['next'], 2)
        self.assertIsNone(response.data['previous'])
        self.assertEqual(len(response.data['results']), 2)


class StaleReconciliationTests(TestCase):
    """Cancelling and failing a payment from separately loaded instances"""

    def setUp(self):
        cache.clear()
        self.product = TestDataFactory.create_product(weight_in_stock=Decimal('10000'))
        self.order = TestDataFactory.create_order(
            user=TestDataFactory.create_user(), items=[(self.product, Decimal('1000'))],
            payment_method='midtrans'
        )
        self.stale_order = Order.objects.get(pk=self.order.pk)
        self.stale_payment = Transaction.objects.select_related('order').get(order=self.order)

    def assert_restored_once(self):
        self.product.refresh_from_db()
        self.assertEqual(self.product.weight_in_stock, Decimal('11000.00'))
        self.assertEqual(
            OrderStatusLog.objects.filter(order=self.order, status=Order.STATUS_CANCELLED).count(), 1
        )

    def test_cancel_then_payment_failure(self):
        cancel_order(self.stale_order)
        self.assertFalse(apply_payment_status(self.stale_payment, Transaction.STATUS_FAILED))
        self.assert_restored_once()
        self.assertEqual(Transaction.objects.get(pk=self.stale_payment.pk).status, Transaction.STATUS_CANCELLED)

    def test_payment_failure_then_cancel(self):
        self.assertTrue(apply_payment_status(self.stale_payment, Transaction.STATUS_FAILED))
        with self.assertRaises(OrderStatusError):
            cancel_order(self.stale_order)
        self.assert_restored_once()


@override_settings(MEDIA_ROOT=MEDIA_ROOT, WHATSAPP_API_TOKEN='wa-token')
class TransactionAPITests(TestCase):
    """Test payment verification, fulfilment and receipts"""

    @classmethod
    def tearDownClass(cls):
        shutil.rmtree(MEDIA_ROOT, ignore_errors=True)
        super().tearDownClass()

    def setUp(self):
        cache.clear()
        self.client = AuthenticatedAPIClient()
        self.user = TestDataFactory.create_user()
        self.admin = TestDataFactory.create_admin()
        self.product = TestDataFactory.create_product(weight_in_stock=Decimal('10000'))
        self.order = TestDataFactory.create_order(user=self.user, items=[(self.product, Decimal('2000'))])
        self.payment = self.order.transaction
        self.client.authenticate_user(self.admin)

    @patch('dkmandiri.notifications.whatsapp.requests.post')
    def test_verify_success_moves_order_to_processing(self, mock_post):
        mock_post.return_value.json.return_value = {'status': True}
        response = self.client.patch(f'/api/v1/transactions/{self.payment.id}/verify/', {'status': 'SUCCESS'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['verified_by'], self.admin.username)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.STATUS_PROCESSING)
        self.assertTrue(mock_post.called)
        self.assertEqual(mock_post.call_args.kwargs['data']['target'], '6281234567890')

    @patch('dkmandiri.notifications.whatsapp.requests.post')
    def test_verify_failed_cancels_and_restores_stock(self, mock_post):
        response = self.client.patch(f'/api/v1/transactions/{self.payment.id}/verify/', {'status': 'FAILED'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.order.refresh_from_db()
        self.product.refresh_from_db()
        self.assertEqual(self.order.status, Order.STATUS_CANCELLED)
        self.assertEqual(self.product.weight_in_stock, Decimal('12000.00'))
        mock_post.assert_not_called()

    def test_verify_requires_pending(self):
        self.payment.status = Transaction.STATUS_SUCCESS
        self.payment.save()
        response = self.client.patch(f'/api/v1/transactions/{self.payment.id}/verify/', {'status': 'FAILED'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_update_status_rejects_final(self):
        self.payment.status = Transaction.STATUS_FAILED
        self.payment.save()
        response = self.client.patch(f'/api/v1/transactions/{self.payment.id}/status/', {'status': 'SUCCESS'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_ship_requires_paid_transaction(self):
        response = self.client.patch(f'/api/v1/transactions/{self.payment.id}/update-order/', {
            'order_status': 'SHIPPED', 'staff_name': 'Andi'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    @patch('dkmandiri.notifications.whatsapp.requests.post')
    def test_ship_and_deliver(self, mock_post):
        mock_post.return_value.json.return_value = {'status': True}
        self.payment.status = Transaction.STATUS_SUCCESS
        self.payment.save()
        self.order.status = Order.STATUS_PROCESSING
        self.order.save()

        response = self.client.patch(f'/api/v1/transactions/{self.payment.id}/update-order/', {
            'order_status': 'SHIPPED', 'staff_name': 'Andi', 'notes': 'Dikirim pagi'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['notification_sent'])
        self.assertEqual(response.data['shipping_details']['staff_name'], 'Andi')

        response = self.client.patch(f'/api/v1/transactions/{self.payment.id}/update-order/', {
            'order_status': 'DELIVERED', 'staff_name': 'Andi', 'recipient_name': 'Pak Budi'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['completion_details']['recipient_name'], 'Pak Budi')
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.STATUS_DELIVERED)

    @patch('dkmandiri.notifications.whatsapp.requests.post')
    def test_notification_failure_does_not_fail_request(self, mock_post):
        mock_post.side_effect = requests.ConnectionError('offline')
        self.payment.status = Transaction.STATUS_SUCCESS
        self.payment.save()
        response = self.client.patch(f'/api/v1/transactions/{self.payment.id}/update-order/', {
            'order_status': 'SHIPPED'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data['notification_sent'])

    @patch('dkmandiri.notifications.whatsapp.requests.post')
    def test_send_receipt(self, mock_post):
        mock_post.return_value.json.return_value = {'status': True}
        response = self.client.post(f'/api/v1/transactions/{self.payment.id}/send-receipt/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn(self.order.order_number, mock_post.call_args.kwargs['data']['message'])
        self.assertTrue(AuditLog.objects.filter(action='receipt_send').exists())

    @patch('dkmandiri.notifications.whatsapp.requests.post')
    def test_send_receipt_gateway_rejects(self, mock_post):
        mock_post.return_value.json.return_value = {'status': False, 'reason': 'invalid token'}
        response = self.client.post(f'/api/v1/transactions/{self.payment.id}/send-receipt/')
        self.assertEqual(response.status_code, status.HTTP_502_BAD_GATEWAY)

    def test_upload_proof(self):
        buffer = io.BytesIO()
        Image.new('RGB', (10, 10)).save(buffer, format='PNG')
        proof = SimpleUploadedFile('bukti.png', buffer.getvalue(), content_type='image/png')

        self.client.authenticate_user(self.user)
        response = self.client.post(f'/api/v1/transactions/{self.payment.id}/proof/', {'proof': proof}, format='multipart')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.payment.refresh_from_db()
        self.assertTrue(self.payment.payment_proof.name.startswith('payment_proofs/'))

    def test_owner_can_view_transaction(self):
        self.client.authenticate_user(self.user)
        response = self.client.get(f'/api/v1/transactions/{self.payment.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.client.authenticate_user(TestDataFactory.create_user())
        response = self.client.get(f'/api/v1/transactions/{self.payment.id}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_list_filters(self):
        TestDataFactory.create_order(items=[(self.product, Decimal('500'))], payment_status='SUCCESS',
                                     payment_method='CASH', order_type='OFFLINE', status='DELIVERED')
        response = self.client.get('/api/v1/transactions/', {'status': 'pending'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([t['id'] for t in response.data], [self.payment.id])
        response = self.client.get('/api/v1/transactions/', {'order_type': 'offline'})
        self.assertEqual(len(response.data), 1)

    def test_list_requires_admin(self):
        self.client.authenticate_user(self.user)
        response = self.client.get('/api/v1/transactions/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


@override_settings(MIDTRANS_SERVER_KEY=SERVER_KEY)
class MidtransNotificationTests(TestCase):
    """Test the Midtrans webhook"""

    def setUp(self):
        cache.clear()
        self.client = AuthenticatedAPIClient()
        self.product = TestDataFactory.create_product(weight_in_stock=Decimal('10000'))
        self.order = TestDataFactory.create_order(
            user=TestDataFactory.create_user(), items=[(self.product, Decimal('1000'))],
            payment_method='midtrans'
        )

    def notify(self, transaction_status, fraud_status=None, signature=None, order_id=None):
        order_id = order_id or self.order.order_number
        gross_amount = str(self.order.total_amount)
        payload = {
            'order_id': order_id,
            'status_code': '200',
            'gross_amount': gross_amount,
            'transaction_status': transaction_status,
            'transaction_id': 'mid-trx-1',
            'signature_key': signature or MidtransClient(server_key=SERVER_KEY).signature_for(order_id, '200', gross_amount),
        }
        if fraud_status:
            payload['fraud_status'] = fraud_status
        return self.client.post('/api/v1/payments/midtrans/notification/', payload, format='json')

    def test_settlement_marks_success(self):
        response = self.notify('settlement')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'SUCCESS')
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.STATUS_PROCESSING)
        self.assertEqual(self.order.transaction.gateway_reference, 'mid-trx-1')

    def test_expire_cancels_and_restores_stock(self):
        self.notify('expire')
        self.order.refresh_from_db()
        self.product.refresh_from_db()
        self.assertEqual(self.order.transaction.status, Transaction.STATUS_FAILED)
        self.assertEqual(self.order.status, Order.STATUS_CANCELLED)
        self.assertEqual(self.product.weight_in_stock, Decimal('11000.00'))

    def test_challenge_stays_pending(self):
        response = self.notify('capture', fraud_status='challenge')
        self.assertEqual(response.data['status'], 'PENDING')
        self.order.refresh_from_db()
        self.assertEqual(self.order.transaction.gateway_status, 'capture')

    def test_late_expire_after_success_is_ignored(self):
        self.notify('settlement')
        response = self.notify('expire')
        self.assertEqual(response.data['status'], 'SUCCESS')
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.STATUS_PROCESSING)

    def test_invalid_signature(self):
        response = self.notify('settlement', signature='forged')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_unknown_order(self):
        response = self.notify('settlement', order_id='ORD-00000000-UNKNOWN')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_repeated_expire_restores_stock_once(self):
        self.notify('expire')
        response = self.notify('expire')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'FAILED')
        self.product.refresh_from_db()
        self.assertEqual(self.product.weight_in_stock, Decimal('11000.00'))
        self.assertEqual(
            OrderStatusLog.objects.filter(order=self.order, status=Order.STATUS_CANCELLED).count(), 1
        )

    def test_repeated_settlement_is_recorded_once(self):
        self.notify('settlement')
        response = self.notify('settlement')
        self.assertEqual(response.data['status'], 'SUCCESS')
        self.assertEqual(
            OrderStatusLog.objects.filter(order=self.order, status=Order.STATUS_PROCESSING).count(), 1
        )
