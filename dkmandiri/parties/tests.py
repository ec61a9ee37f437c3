"""
Test suite for customer addresses
Tests: listing, first-address primary rule, updates, default switching and deletion
"""
from django.test import TestCase
from rest_framework import status

from dkmandiri.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from dkmandiri.parties.models import Address


class AddressModelTests(TestCase):

    def test_as_text_skips_blank_parts(self):
        user = TestDataFactory.create_user()
        address = TestDataFactory.create_address(user, district='', province='', postal_code='')
        self.assertEqual(address.as_text(), 'Jl. Raya Nusawungu No. 1, Cilacap')


class AddressAPITests(TestCase):
    """Test address endpoints"""

    def setUp(self):
        self.client = AuthenticatedAPIClient()
        self.user = TestDataFactory.create_user()
        self.client.authenticate_user(self.user)

    def payload(self, **overrides):
        data = {
            'recipient_name': 'Ibu Sari',
            'phone': '0812-3456-7890',
            'full_address': 'Jl. Melati No. 5',
            'district': 'Kroya',
            'city': 'Cilacap',
            'province': 'Jawa Tengah',
            'postal_code': '53282',
        }
        data.update(overrides)
        return data

    def test_first_address_becomes_primary(self):
        response = self.client.post('/api/v1/addresses/', self.payload(), format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['is_primary'])
        self.assertEqual(response.data['formatted_address'], 'Jl. Melati No. 5, Kroya, Cilacap, Jawa Tengah, 53282')

    def test_second_address_is_not_primary_by_default(self):
        self.client.post('/api/v1/addresses/', self.payload(), format='json')
        response = self.client.post('/api/v1/addresses/', self.payload(city='Purwokerto'), format='json')
        self.assertFalse(response.data['is_primary'])

    def test_new_primary_address_replaces_old(self):
        first = self.client.post('/api/v1/addresses/', self.payload(), format='json').data
        second = self.client.post('/api/v1/addresses/', self.payload(is_primary=True), format='json').data
        self.assertTrue(second['is_primary'])
        self.assertFalse(Address.objects.get(pk=first['id']).is_primary)

    def test_invalid_phone(self):
        response = self.client.post('/api/v1/addresses/', self.payload(phone='12-34'), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('phone', response.data)

    def test_list_only_own_addresses(self):
        TestDataFactory.create_address(TestDataFactory.create_user())
        TestDataFactory.create_address(self.user)
        response = self.client.get('/api/v1/addresses/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)

    def test_cannot_access_other_users_address(self):
        other = TestDataFactory.create_address(TestDataFactory.create_user())
        response = self.client.get(f'/api/v1/addresses/{other.id}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_update_address(self):
        address = TestDataFactory.create_address(self.user)
        response = self.client.patch(f'/api/v1/addresses/{address.id}/', {'city': 'Banyumas'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        address.refresh_from_db()
        self.assertEqual(address.city, 'Banyumas')

    def test_set_default(self):
        first = TestDataFactory.create_address(self.user, is_primary=True)
        second = TestDataFactory.create_address(self.user, is_primary=False)
        response = self.client.put(f'/api/v1/addresses/{second.id}/default/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        first.refresh_from_db()
        second.refresh_from_db()
        self.assertFalse(first.is_primary)
        self.assertTrue(second.is_primary)

    def test_delete_primary_promotes_remaining(self):
        primary = TestDataFactory.create_address(self.user, is_primary=True)
        other = TestDataFactory.create_address(self.user, is_primary=False)
        response = self.client.delete(f'/api/v1/addresses/{primary.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        other.refresh_from_db()
        self.assertTrue(other.is_primary)

    def test_requires_authentication(self):
        self.client.logout()
        response = self.client.get('/api/v1/addresses/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
