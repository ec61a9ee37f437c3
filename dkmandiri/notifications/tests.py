"""
Test suite for WhatsApp notifications
"""
from decimal import Decimal
from unittest.mock import patch

import requests
from django.test import TestCase, override_settings

from dkmandiri.core.test_utils import TestDataFactory
from dkmandiri.notifications.messages import (
    build_receipt_message, build_payment_verified_message,
    build_order_shipped_message, build_order_delivered_message,
)
from dkmandiri.notifications.whatsapp import (
    WhatsAppClient, WhatsAppError, normalize_phone, notify_quietly,
)
from dkmandiri.orders.models import OrderStatusLog


class NormalizePhoneTests(TestCase):

    def test_normalize_phone(self):
        self.assertEqual(normalize_phone('0812-3456-7890'), '6281234567890')
        self.assertEqual(normalize_phone('+62 812 3456 7890'), '6281234567890')
        self.assertEqual(normalize_phone('81234567890'), '6281234567890')
        self.assertEqual(normalize_phone(''), '')
        self.assertEqual(normalize_phone(None), '')


class WhatsAppClientTests(TestCase):
    """Test the gateway client with requests mocked out"""

    def setUp(self):
        self.client = WhatsAppClient(api_url='https://wa.example.com/send', token='secret')

    @patch('dkmandiri.notifications.whatsapp.requests.post')
    def test_send_message(self, mock_post):
        mock_post.return_value.json.return_value = {'status': True, 'id': ['1']}
        result = self.client.send_message('0812 3456 7890', 'Halo')
        self.assertEqual(result['status'], True)
        args, kwargs = mock_post.call_args
        self.assertEqual(args[0], 'https://wa.example.com/send')
        self.assertEqual(kwargs['headers'], {'Authorization': 'secret'})
        self.assertEqual(kwargs['data']['target'], '6281234567890')
        self.assertEqual(kwargs['data']['message'], 'Halo')

    @patch('dkmandiri.notifications.whatsapp.requests.post')
    def test_gateway_rejection(self, mock_post):
        mock_post.return_value.json.return_value = {'status': False, 'reason': 'token invalid'}
        with self.assertRaises(WhatsAppError):
            self.client.send_message('081234567890', 'Halo')

    @patch('dkmandiri.notifications.whatsapp.requests.post')
    def test_network_error(self, mock_post):
        mock_post.side_effect = requests.Timeout('slow')
        with self.assertRaises(WhatsAppError):
            self.client.send_message('081234567890', 'Halo')

    @patch('dkmandiri.notifications.whatsapp.requests.post')
    def test_invalid_number_is_not_sent(self, mock_post):
        with self.assertRaises(WhatsAppError):
            self.client.send_message('0812', 'Halo')
        mock_post.assert_not_called()

    @override_settings(WHATSAPP_API_TOKEN='')
    def test_not_configured(self):
        with self.assertRaises(WhatsAppError):
            WhatsAppClient().send_message('081234567890', 'Halo')

    @override_settings(WHATSAPP_API_TOKEN='')
    def test_notify_quietly_swallows_errors(self):
        self.assertFalse(notify_quietly('081234567890', 'Halo'))
        self.assertFalse(notify_quietly('', 'Halo'))


@override_settings(STORE_NAME='DK Mandiri')
class MessageTests(TestCase):
    """Test message texts"""

    def setUp(self):
        self.product = TestDataFactory.create_product(name='Ikan Bandeng', price=Decimal('15000'))
        self.order = TestDataFactory.create_order(
            items=[(self.product, Decimal('1500'))], shipping_method='local_delivery',
            shipping_cost=Decimal('10000')
        )

    def test_receipt_message(self):
        message = build_receipt_message(self.order)
        self.assertIn('*DK Mandiri*', message)
        self.assertIn(self.order.order_number, message)
        self.assertIn('- Ikan Bandeng 1.5 kg x Rp 15.000/kg = Rp 22.500', message)
        self.assertIn('Ongkir: Rp 10.000', message)
        self.assertIn('*Total: Rp 32.500*', message)
        self.assertIn('Pembayaran: Transfer Manual', message)

    def test_payment_verified_message(self):
        message = build_payment_verified_message(self.order)
        self.assertIn('Rp 32.500', message)

    def test_shipped_and_delivered_messages(self):
        shipped = OrderStatusLog(order=self.order, status='SHIPPED', staff_name='Andi', notes='Pagi')
        self.assertIn('Kurir/Petugas: Andi', build_order_shipped_message(self.order, shipped))
        self.assertIn('Catatan: Pagi', build_order_shipped_message(self.order, shipped))

        delivered = OrderStatusLog(order=self.order, status='DELIVERED', recipient_name='Pak Budi')
        self.assertIn('Diterima oleh: Pak Budi', build_order_delivered_message(self.order, delivered))
        self.assertNotIn('Diterima oleh', build_order_delivered_message(self.order))
