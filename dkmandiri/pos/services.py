"""Builds and records point-of-sale transactions"""
import logging

from django.db import transaction
from django.utils import timezone

from dkmandiri.catalog.models import Product
from dkmandiri.core.utils import create_audit_log, generate_reference_number
from dkmandiri.orders.models import Order, OrderItem, Transaction, OrderStatusLog
from dkmandiri.orders.services import decrement_stock
from dkmandiri.orders.shipping import PICKUP, shipping_cost
from .cart import POSCart, CartError

logger = logging.getLogger(__name__)


def build_cart(order_items):
    """Build a POSCart from [{product_id, weight}], prices come from the catalog"""
    product_ids = [item['product_id'] for item in order_items]
    products = Product.objects.in_bulk(product_ids)

    cart = POSCart()
    for item in order_items:
        product = products.get(item['product_id'])
        if product is None:
            raise CartError(f"Product {item['product_id']} not found.")
        cart.add(product, item['weight'])
    return cart


def create_pos_transaction(data, cashier, request=None):
    """
    Record an in-store sale: an OFFLINE order with a SUCCESS payment.

    Pickup sales are complete immediately (DELIVERED); sales that still need
    delivery start as PROCESSING.

    Raises:
        CartError: For unknown products or weights outside stock/minimum rules
        CheckoutError: If stock ran out while the sale was being recorded
    """
    cart = build_cart(data['order_items'])
    shipping_method = data.get('shipping_method') or PICKUP
    staff_name = data.get('staff_name') or cashier.username
    cost = shipping_cost(shipping_method)
    order_status = Order.STATUS_DELIVERED if shipping_method == PICKUP else Order.STATUS_PROCESSING

    with transaction.atomic():
        order = Order.objects.create(
            order_number=generate_reference_number('POS', Order, 'order_number'),
            order_type=Order.TYPE_OFFLINE,
            status=order_status,
            shipping_method=shipping_method,
            shipping_cost=cost,
            shipping_address=data.get('delivery_address') or 'In-store purchase',
            customer_name=data.get('customer_name') or 'Walk-in Customer',
            customer_phone=data.get('customer_phone') or '',
            total_amount=cart.total() + cost,
            notes=data.get('notes') or '',
            created_by=cashier,
        )
        for line in cart.lines():
            OrderItem.objects.create(
                order=order,
                product_id=line.product_id,
                product_name=line.name,
                weight=line.weight,
                price=line.price,
                cost_price=line.cost_price,
                total_price=line.total,
            )
            decrement_stock(line.product_id, line.weight)

        Transaction.objects.create(
            order=order,
            amount=order.total_amount,
            payment_method=data['payment_method'],
            status=Transaction.STATUS_SUCCESS,
            verified_by=cashier,
            verified_at=timezone.now(),
        )
        OrderStatusLog.objects.create(
            order=order,
            status=order_status,
            staff_name=staff_name,
            recipient_name=order.customer_name if order_status == Order.STATUS_DELIVERED else '',
            created_by=cashier,
        )

    create_audit_log(
        request=request,
        user=cashier,
        action='pos_transaction',
        model_name='Order',
        object_id=order.id,
        object_name=order.order_number,
        object_reference=order.order_number,
        changes={
            'total_amount': str(order.total_amount),
            'profit': str(cart.profit()),
            'payment_method': data['payment_method'],
            'items': len(cart),
        },
    )
    logger.info(f"POS sale {order.order_number} recorded by {cashier.username}: {order.total_amount}")
    return order
