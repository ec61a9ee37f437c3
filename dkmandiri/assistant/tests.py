"""
Test suite for the chat assistants
Tests: storefront chat, personalised context, admin tool loop, smart modes
and error translation. The Anthropic client is mocked throughout.
"""
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import patch

import anthropic
import httpx
from django.test import TestCase, override_settings
from rest_framework import status

from dkmandiri.assistant.services import limit_history, reset_assistant_service
from dkmandiri.assistant.tools import execute_tool, tools_for_mode
from dkmandiri.catalog.models import Product
from dkmandiri.core.models import AuditLog
from dkmandiri.core.test_utils import TestDataFactory, AuthenticatedAPIClient


def usage():
    return SimpleNamespace(input_tokens=10, output_tokens=5)


def text_response(text):
    return SimpleNamespace(
        stop_reason='end_turn',
        content=[SimpleNamespace(type='text', text=text)],
        usage=usage(),
    )


def tool_response(name, tool_input, tool_id='toolu_1'):
    return SimpleNamespace(
        stop_reason='tool_use',
        content=[SimpleNamespace(type='tool_use', id=tool_id, name=name, input=tool_input)],
        usage=usage(),
    )


class HistoryTests(TestCase):

    def test_limit_history_keeps_last_messages_starting_with_user(self):
        history = [
            {'role': 'user', 'content': 'a'},
            {'role': 'assistant', 'content': 'b'},
            {'role': 'user', 'content': 'c'},
            {'role': 'assistant', 'content': 'd'},
            {'role': 'system', 'content': 'ignored'},
        ]
        self.assertEqual(
            limit_history(history, max_messages=3),
            [{'role': 'user', 'content': 'c'}, {'role': 'assistant', 'content': 'd'}],
        )
        self.assertEqual(limit_history(None), [])


class ToolTests(TestCase):
    """Test catalog tools without the model"""

    def setUp(self):
        self.category = TestDataFactory.create_category(name='Ikan', slug='ikan')

    def test_tools_for_mode(self):
        names = lambda mode: [t['name'] for t in tools_for_mode(mode)]
        self.assertEqual(names('create'), ['list_categories', 'find_products', 'create_product'])
        self.assertEqual(names('edit'), ['list_categories', 'find_products', 'update_product'])
        self.assertEqual(names(None), ['list_categories', 'find_products'])

    def test_find_products(self):
        TestDataFactory.create_product(name='Ikan Bandeng', category=self.category)
        TestDataFactory.create_product(name='Udang Vaname')
        result = execute_tool('find_products', {'query': 'bandeng'})
        self.assertEqual([p['name'] for p in result['products']], ['Ikan Bandeng'])

    def test_create_product_resolves_category_name(self):
        result = execute_tool('create_product', {
            'name': 'Ikan Asin', 'category': 'ikan', 'price': 20000, 'cost_price': 16000
        })
        self.assertTrue(result['success'])
        self.assertEqual(Product.objects.get().category, self.category)

    def test_create_product_unknown_category(self):
        result = execute_tool('create_product', {
            'name': 'Kopi', 'category': 'Minuman', 'price': 20000, 'cost_price': 16000
        })
        self.assertFalse(result['success'])
        self.assertIn('category', result['errors'])

    def test_create_product_uses_serializer_validation(self):
        result = execute_tool('create_product', {'name': 'Rugi', 'price': 10000, 'cost_price': 12000})
        self.assertFalse(result['success'])
        self.assertIn('cost_price', result['errors'])
        self.assertEqual(Product.objects.count(), 0)

    def test_disallowed_tool(self):
        result = execute_tool('update_product', {'product_id': 1}, allowed=['find_products'])
        self.assertIn('error', result)

    def test_bad_parameters(self):
        result = execute_tool('find_products', {'unknown': True})
        self.assertIn('error', result)


@override_settings(ANTHROPIC_API_KEY='test-key', ASSISTANT_MAX_HISTORY_MESSAGES=2)
@patch('dkmandiri.assistant.services.anthropic.Anthropic')
class StorefrontChatAPITests(TestCase):
    """Test public and personalised chat"""

    def setUp(self):
        reset_assistant_service()
        self.addCleanup(reset_assistant_service)
        self.client = AuthenticatedAPIClient()
        TestDataFactory.create_product(name='Ikan Bandeng Presto', price=Decimal('15000'))

    def test_public_chat(self, mock_anthropic):
        mock_create = mock_anthropic.return_value.messages.create
        mock_create.return_value = text_response('Ikan Bandeng Presto Rp 15.000/kg.')

        response = self.client.post('/api/v1/assistant/chat/', {'message': 'Berapa harga ikan?'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data, {'success': True, 'response': 'Ikan Bandeng Presto Rp 15.000/kg.'})
        kwargs = mock_create.call_args.kwargs
        self.assertIn('Ikan Bandeng Presto', kwargs['system'])
        self.assertIn('Rp 15.000/kg', kwargs['system'])
        self.assertNotIn('tools', kwargs)
        mock_anthropic.assert_called_once_with(api_key='test-key')

    def test_history_is_trimmed(self, mock_anthropic):
        mock_create = mock_anthropic.return_value.messages.create
        mock_create.return_value = text_response('ok')
        history = [
            {'role': 'user', 'content': 'satu'},
            {'role': 'assistant', 'content': 'dua'},
            {'role': 'user', 'content': 'tiga'},
            {'role': 'assistant', 'content': 'empat'},
        ]
        self.client.post('/api/v1/assistant/chat/', {'message': 'lima', 'history': history}, format='json')
        messages = mock_create.call_args.kwargs['messages']
        self.assertEqual([m['content'] for m in messages], ['tiga', 'empat', 'lima'])

    def test_message_required(self, mock_anthropic):
        response = self.client.post('/api/v1/assistant/chat/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_api_error_returns_502(self, mock_anthropic):
        mock_anthropic.return_value.messages.create.side_effect = anthropic.APIConnectionError(
            request=httpx.Request('POST', 'https://api.anthropic.com/v1/messages')
        )
        response = self.client.post('/api/v1/assistant/chat/', {'message': 'halo'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_502_BAD_GATEWAY)
        self.assertFalse(response.data['success'])

    @override_settings(ANTHROPIC_API_KEY='')
    def test_missing_key_returns_503(self, mock_anthropic):
        response = self.client.post('/api/v1/assistant/chat/', {'message': 'halo'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_503_SERVICE_UNAVAILABLE)
        mock_anthropic.assert_not_called()

    def test_personalized_requires_auth(self, mock_anthropic):
        response = self.client.post('/api/v1/assistant/chat/personalized/', {'message': 'halo'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_personalized_includes_recent_orders(self, mock_anthropic):
        mock_create = mock_anthropic.return_value.messages.create
        mock_create.return_value = text_response('Pesanan Anda sedang diproses.')
        user = TestDataFactory.create_user(name='Bu Tini')
        product = Product.objects.get()
        order = TestDataFactory.create_order(user=user, items=[(product, Decimal('2000'))], status='PROCESSING')
        self.client.authenticate_user(user)

        response = self.client.post('/api/v1/assistant/chat/personalized/', {'message': 'Pesanan saya?'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        system = mock_create.call_args.kwargs['system']
        self.assertIn('Bu Tini', system)
        self.assertIn(order.order_number, system)
        self.assertIn('Ikan Bandeng Presto 2 kg', system)


@override_settings(ANTHROPIC_API_KEY='test-key')
@patch('dkmandiri.assistant.services.anthropic.Anthropic')
class AdminChatAPITests(TestCase):
    """Test the dashboard assistant and its tool loop"""

    def setUp(self):
        reset_assistant_service()
        self.addCleanup(reset_assistant_service)
        self.client = AuthenticatedAPIClient()
        self.admin = TestDataFactory.create_admin()
        self.client.authenticate_user(self.admin)
        self.category = TestDataFactory.create_category(name='Ikan', slug='ikan')

    def test_requires_admin(self, mock_anthropic):
        self.client.authenticate_user(TestDataFactory.create_user())
        response = self.client.post('/api/v1/aiservice/chat/', {'message': 'halo'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_create_mode_creates_product(self, mock_anthropic):
        mock_create = mock_anthropic.return_value.messages.create
        mock_create.side_effect = [
            tool_response('create_product', {
                'name': 'Ikan Kembung', 'category': 'Ikan', 'price': 14000,
                'cost_price': 11000, 'weight_in_stock': 100000,
            }),
            text_response('Produk Ikan Kembung sudah dibuat.'),
        ]

        response = self.client.post('/api/v1/aiservice/chat/', {
            'message': 'Tambah ikan kembung 14rb/kg, modal 11rb, stok 1 kwintal',
            'options': {'smart_mode': 'create'},
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['response'], 'Produk Ikan Kembung sudah dibuat.')
        action = response.data['action_data']
        self.assertEqual(action['action'], 'CREATE_PRODUCT')
        self.assertTrue(action['success'])
        self.assertEqual(action['product']['slug'], 'ikan-kembung')

        product = Product.objects.get()
        self.assertEqual(product.weight_in_stock, Decimal('100000'))
        self.assertEqual(product.category, self.category)
        self.assertEqual(AuditLog.objects.get(action='create').user, self.admin)

        first_call_tools = [t['name'] for t in mock_create.call_args_list[0].kwargs['tools']]
        self.assertEqual(first_call_tools, ['list_categories', 'find_products', 'create_product'])

    def test_edit_mode_updates_product(self, mock_anthropic):
        product = TestDataFactory.create_product(name='Ikan Asin', price=Decimal('20000'), cost_price=Decimal('15000'))
        mock_anthropic.return_value.messages.create.side_effect = [
            tool_response('update_product', {'product_id': product.id, 'price': 21000}),
            text_response('Harga diperbarui.'),
        ]

        response = self.client.post('/api/v1/aiservice/chat/', {
            'message': 'Naikkan harga ikan asin jadi 21rb',
            'options': {'smart_mode': 'edit'},
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['action_data']['action'], 'UPDATE_PRODUCT')
        product.refresh_from_db()
        self.assertEqual(product.price, Decimal('21000.00'))
        self.assertTrue(AuditLog.objects.filter(action='price_change').exists())

    def test_create_mode_blocks_updates(self, mock_anthropic):
        product = TestDataFactory.create_product(price=Decimal('20000'), cost_price=Decimal('15000'))
        mock_create = mock_anthropic.return_value.messages.create
        mock_create.side_effect = [
            tool_response('update_product', {'product_id': product.id, 'price': 1}),
            text_response('Maaf, saya tidak bisa mengubah produk di mode ini.'),
        ]

        response = self.client.post('/api/v1/aiservice/chat/', {
            'message': 'ubah harga', 'options': {'smart_mode': 'create'},
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertNotIn('action_data', response.data)
        product.refresh_from_db()
        self.assertEqual(product.price, Decimal('20000.00'))

    def test_failed_product_action_is_reported(self, mock_anthropic):
        mock_anthropic.return_value.messages.create.side_effect = [
            tool_response('create_product', {'name': 'Rugi', 'price': 10000, 'cost_price': 12000}),
            text_response('Harga modal lebih tinggi dari harga jual.'),
        ]
        response = self.client.post('/api/v1/aiservice/chat/', {
            'message': 'tambah produk rugi', 'options': {'smart_mode': 'create'},
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        action = response.data['action_data']
        self.assertFalse(action['success'])
        self.assertIsNone(action['product'])
        self.assertIn('cost_price', action['error'])

    def test_plain_chat_cannot_write(self, mock_anthropic):
        mock_create = mock_anthropic.return_value.messages.create
        mock_create.side_effect = [
            tool_response('create_product', {'name': 'Ikan Tuna', 'price': 40000, 'cost_price': 30000}),
            text_response('Aktifkan mode create untuk menambah produk.'),
        ]
        response = self.client.post('/api/v1/aiservice/chat/', {'message': 'tambah ikan tuna'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertNotIn('action_data', response.data)
        self.assertFalse(Product.objects.exists())
        tools = [t['name'] for t in mock_create.call_args_list[0].kwargs['tools']]
        self.assertEqual(tools, ['list_categories', 'find_products'])

    def test_invalid_smart_mode(self, mock_anthropic):
        response = self.client.post('/api/v1/aiservice/chat/', {
            'message': 'halo', 'options': {'smart_mode': 'delete'},
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
