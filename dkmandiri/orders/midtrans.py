"""
Midtrans Snap payment gateway client.

Creates Snap transactions for online checkout and validates the HTTP
notifications Midtrans posts back when a payment changes state.
"""
import hashlib
import hmac
import logging
from decimal import Decimal, ROUND_HALF_UP

import requests
from django.conf import settings

logger = logging.getLogger(__name__)

SANDBOX_SNAP_URL = 'https://app.sandbox.midtrans.com/snap/v1/transactions'
PRODUCTION_SNAP_URL = 'https://app.midtrans.com/snap/v1/transactions'

# Midtrans caps item names at 50 characters
ITEM_NAME_LIMIT = 50


class MidtransError(Exception):
    """Exception raised when Midtrans API calls fail."""

    pass


def to_rupiah(amount):
    """Midtrans only accepts whole rupiah amounts"""
    return int(Decimal(amount).quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def map_transaction_status(transaction_status, fraud_status=None):
    """
    Map a Midtrans transaction_status to a local Transaction status.

    Returns None for statuses that do not change the local record
    (refunds, authorize and the like).
    """
    if transaction_status == 'capture':
        if fraud_status in (None, '', 'accept'):
            return 'SUCCESS'
        if fraud_status == 'challenge':
            return 'PENDING'
        return 'FAILED'
    if transaction_status == 'settlement':
        return 'SUCCESS'
    if transaction_status == 'pending':
        return 'PENDING'
    if transaction_status in ('deny', 'expire', 'failure'):
        return 'FAILED'
    if transaction_status == 'cancel':
        return 'CANCELLED'
    return None


class MidtransClient:
    """Thin wrapper over the Snap API using the configured server key."""

    def __init__(self, server_key=None, is_production=None, timeout=None):
        self.server_key = server_key if server_key is not None else getattr(settings, 'MIDTRANS_SERVER_KEY', '')
        if is_production is None:
            is_production = getattr(settings, 'MIDTRANS_IS_PRODUCTION', False)
        self.is_production = is_production
        self.timeout = timeout or getattr(settings, 'MIDTRANS_TIMEOUT', 15)

    @property
    def snap_url(self):
        return PRODUCTION_SNAP_URL if self.is_production else SANDBOX_SNAP_URL

    def build_payload(self, order, customer=None):
        """Snap request body for an order, item prices in whole rupiah"""
        item_details = []
        for item in order.items.all():
            item_details.append({
                'id': str(item.product_id or item.id),
                'price': to_rupiah(item.total_price),
                'quantity': 1,
                'name': f"{item.product_name} ({item.weight:.0f} g)"[:ITEM_NAME_LIMIT],
            })
        if order.shipping_cost:
            item_details.append({
                'id': 'SHIPPING',
                'price': to_rupiah(order.shipping_cost),
                'quantity': 1,
                'name': f"Ongkir {order.get_shipping_method_display()}"[:ITEM_NAME_LIMIT],
            })

        customer_details = {
            'first_name': order.customer_name or (customer.username if customer else ''),
            'phone': order.customer_phone or '',
        }
        if customer is not None and customer.email:
            customer_details['email'] = customer.email

        return {
            'transaction_details': {
                'order_id': order.order_number,
                'gross_amount': sum(detail['price'] * detail['quantity'] for detail in item_details),
            },
            'item_details': item_details,
            'customer_details': customer_details,
        }

    def create_snap_transaction(self, order, customer=None):
        """
        Request a Snap token for the order.

        Returns:
            Dict with token and redirect_url

        Raises:
            MidtransError: If the key is missing or the API call fails
        """
        if not self.server_key:
            raise MidtransError('MIDTRANS_SERVER_KEY not configured in settings')

        payload = self.build_payload(order, customer)
        try:
            response = requests.post(
                self.snap_url,
                json=payload,
                auth=(self.server_key, ''),
                headers={'Accept': 'application/json'},
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except requests.RequestException as e:
            logger.error(f"Midtrans Snap request failed for {order.order_number}: {e}")
            raise MidtransError(f'Failed to create Midtrans transaction: {e}')
        except ValueError as e:
            logger.error(f"Midtrans response parsing failed: {e}")
            raise MidtransError('Invalid response from Midtrans')

        token = data.get('token')
        if not token:
            raise MidtransError(f"Midtrans did not return a token: {data.get('error_messages') or data}")

        logger.info(f"Midtrans Snap token created for {order.order_number}")
        return {'token': token, 'redirect_url': data.get('redirect_url', '')}

    def signature_for(self, order_id, status_code, gross_amount):
        raw = f"{order_id}{status_code}{gross_amount}{self.server_key}"
        return hashlib.sha512(raw.encode('utf-8')).hexdigest()

    def verify_signature(self, payload):
        """Check signature_key = sha512(order_id + status_code + gross_amount + server_key)"""
        if not self.server_key:
            return False
        signature = payload.get('signature_key') or ''
        expected = self.signature_for(
            payload.get('order_id', ''),
            payload.get('status_code', ''),
            payload.get('gross_amount', ''),
        )
        return hmac.compare_digest(signature, expected)
