"""Shipping methods offered at checkout. Costs are flat rates in IDR."""
from decimal import Decimal

PICKUP = 'pickup'

SHIPPING_METHODS = {
    'pickup': {'name': 'Ambil di Toko', 'cost': Decimal('0'), 'description': 'Ambil sendiri di toko'},
    'short_delivery': {'name': 'Antar Jarak Dekat', 'cost': Decimal('0'), 'description': 'Gratis ongkir area sekitar toko'},
    'local_delivery': {'name': 'Antar Lokal', 'cost': Decimal('10000'), 'description': 'Pengiriman dalam kecamatan'},
    'sumpiuh_delivery': {'name': 'Antar ke Sumpiuh', 'cost': Decimal('15000'), 'description': 'Pengiriman ke area Sumpiuh'},
    'kroya_delivery': {'name': 'Antar ke Kroya', 'cost': Decimal('20000'), 'description': 'Pengiriman ke area Kroya'},
    'shipping': {'name': 'Ekspedisi', 'cost': Decimal('50000'), 'description': 'Pengiriman via ekspedisi'},
}

SHIPPING_METHOD_CHOICES = [(key, value['name']) for key, value in SHIPPING_METHODS.items()]


def is_valid_shipping_method(method):
    return method in SHIPPING_METHODS


def shipping_cost(method):
    """Flat cost for the method, raises KeyError for unknown methods"""
    return SHIPPING_METHODS[method]['cost']


def shipping_method_name(method):
    info = SHIPPING_METHODS.get(method)
    return info['name'] if info else method


def list_shipping_methods():
    return [
        {'id': key, 'name': value['name'], 'cost': float(value['cost']), 'description': value['description']}
        for key, value in SHIPPING_METHODS.items()
    ]
