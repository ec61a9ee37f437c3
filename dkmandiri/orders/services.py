"""
Order business rules: storefront cart, checkout, status transitions and
payment reconciliation. Views translate the exceptions raised here into
HTTP responses.
"""
import logging
from decimal import Decimal

from django.conf import settings
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from dkmandiri.catalog.models import Product
from dkmandiri.core.formatting import format_weight, line_total
from dkmandiri.core.utils import create_audit_log, generate_reference_number
from dkmandiri.parties.models import Address
from .midtrans import MidtransClient
from .models import Cart, CartItem, Order, OrderItem, Transaction, OrderStatusLog
from .shipping import PICKUP, is_valid_shipping_method, shipping_cost

logger = logging.getLogger(__name__)

PAYMENT_METHODS = (Transaction.METHOD_MIDTRANS, Transaction.METHOD_MANUAL)

ALLOWED_TRANSITIONS = {
    Order.STATUS_PENDING: (Order.STATUS_PROCESSING, Order.STATUS_CANCELLED),
    Order.STATUS_PROCESSING: (Order.STATUS_SHIPPED, Order.STATUS_CANCELLED),
    Order.STATUS_SHIPPED: (Order.STATUS_DELIVERED,),
    Order.STATUS_DELIVERED: (),
    Order.STATUS_CANCELLED: (),
}

CANCELLABLE_STATUSES = (Order.STATUS_PENDING, Order.STATUS_PROCESSING)


class CheckoutError(Exception):
    """Raised when a cart line or checkout request breaks a stock or ordering rule"""

    pass


class OrderStatusError(Exception):
    """Raised for order or payment status changes that are not allowed"""

    pass


# Stock helpers

def validate_weight(product, weight):
    """Check availability, minimum order weight and stock for a line of the given grams"""
    if not product.is_available:
        raise CheckoutError(f'{product.name} is not available.')
    if weight < product.min_order_weight:
        raise CheckoutError(
            f'Minimum order for {product.name} is {format_weight(product.min_order_weight)}.'
        )
    if weight > product.weight_in_stock:
        raise CheckoutError(
            f'Insufficient stock for {product.name}. Available: {format_weight(product.weight_in_stock)}.'
        )


def decrement_stock(product_id, grams):
    """Atomically take grams out of stock, failing if that would go below zero"""
    # Use F() to ensure atomic decrement - prevents race conditions
    updated = Product.objects.filter(pk=product_id, weight_in_stock__gte=grams).update(
        weight_in_stock=F('weight_in_stock') - grams
    )
    if not updated:
        product = Product.objects.filter(pk=product_id).first()
        name = product.name if product else f'product {product_id}'
        raise CheckoutError(f'Insufficient stock for {name}.')


def restore_stock(order):
    """Put the order's grams back into stock"""
    for item in order.items.all():
        if item.product_id:
            Product.objects.filter(pk=item.product_id).update(
                weight_in_stock=F('weight_in_stock') + item.weight
            )
    logger.info(f"Stock restored for order {order.order_number}")


# Storefront cart

def get_cart(user):
    cart, _ = Cart.objects.get_or_create(user=user)
    return cart


def cart_summary(cart):
    items = list(cart.items.select_related('product').prefetch_related('product__images'))
    return {
        'items': items,
        'total_items': len(items),
        'subtotal': sum((item.total_price for item in items), Decimal('0.00')),
    }


def add_to_cart(user, product, weight):
    """Add grams of a product to the user's cart, merging with an existing line"""
    validate_weight(product, weight)
    cart = get_cart(user)
    item = CartItem.objects.filter(cart=cart, product=product).first()
    new_weight = weight + (item.weight if item else Decimal('0'))
    if new_weight > product.weight_in_stock:
        raise CheckoutError(
            f'Insufficient stock for {product.name}. Available: {format_weight(product.weight_in_stock)}.'
        )

    if item:
        item.weight = new_weight
        item.save(update_fields=['weight', 'updated_at'])
    else:
        item = CartItem.objects.create(cart=cart, product=product, weight=new_weight)
    cart.save(update_fields=['updated_at'])
    return item


def update_cart_item(item, weight):
    validate_weight(item.product, weight)
    item.weight = weight
    item.save(update_fields=['weight', 'updated_at'])
    return item


# Checkout

def checkout(user, shipping_method, payment_method, delivery_address_id=None, notes='', request=None):
    """
    Turn the user's cart into a PENDING order with a PENDING transaction.

    Stock is taken at checkout and given back if the order is cancelled or
    the payment fails. For midtrans payments the Snap token is requested
    inside the same database transaction so a gateway failure rolls the
    whole checkout back.

    Returns:
        Dict with order plus snap_token/redirect_url or payment_details

    Raises:
        CheckoutError: For invalid input, empty cart or insufficient stock
        MidtransError: If the Snap token cannot be created
    """
    if not is_valid_shipping_method(shipping_method):
        raise CheckoutError(f'Unknown shipping method: {shipping_method}')
    if payment_method not in PAYMENT_METHODS:
        raise CheckoutError(f'Unknown payment method: {payment_method}')

    address = None
    if shipping_method != PICKUP:
        if not delivery_address_id:
            raise CheckoutError('A delivery address is required for this shipping method.')
        address = Address.objects.filter(pk=delivery_address_id, user=user).first()
        if address is None:
            raise CheckoutError('Delivery address not found.')
    elif delivery_address_id:
        address = Address.objects.filter(pk=delivery_address_id, user=user).first()

    cart = get_cart(user)
    cart_items = list(cart.items.select_related('product'))
    if not cart_items:
        raise CheckoutError('Cart is empty')

    cost = shipping_cost(shipping_method)

    with transaction.atomic():
        order = Order.objects.create(
            order_number=generate_reference_number('ORD', Order, 'order_number'),
            user=user,
            order_type=Order.TYPE_ONLINE,
            status=Order.STATUS_PENDING,
            shipping_method=shipping_method,
            shipping_cost=cost,
            shipping_address=address.as_text() if address else '',
            customer_name=(address.recipient_name if address else '') or user.display_name,
            customer_phone=(address.phone if address else '') or (user.phone or ''),
            notes=notes or '',
            created_by=user,
        )

        subtotal = Decimal('0.00')
        for cart_item in cart_items:
            product = Product.objects.select_for_update().get(pk=cart_item.product_id)
            validate_weight(product, cart_item.weight)
            total = line_total(cart_item.weight, product.price)
            OrderItem.objects.create(
                order=order,
                product=product,
                product_name=product.name,
                weight=cart_item.weight,
                price=product.price,
                cost_price=product.cost_price,
                total_price=total,
            )
            decrement_stock(product.pk, cart_item.weight)
            subtotal += total

        order.total_amount = subtotal + cost
        order.save(update_fields=['total_amount', 'updated_at'])

        payment = Transaction.objects.create(
            order=order,
            amount=order.total_amount,
            payment_method=payment_method,
            status=Transaction.STATUS_PENDING,
        )

        result = {'order': order, 'transaction': payment}
        if payment_method == Transaction.METHOD_MIDTRANS:
            snap = MidtransClient().create_snap_transaction(order, user)
            payment.snap_token = snap['token']
            payment.snap_redirect_url = snap['redirect_url']
            payment.save(update_fields=['snap_token', 'snap_redirect_url', 'updated_at'])
            result['snap_token'] = snap['token']
            result['redirect_url'] = snap['redirect_url']
        else:
            result['payment_details'] = manual_payment_details()

        cart.items.all().delete()

    create_audit_log(
        request=request,
        user=user,
        action='order_create',
        model_name='Order',
        object_id=order.id,
        object_name=order.order_number,
        object_reference=order.order_number,
        changes={'total_amount': str(order.total_amount), 'payment_method': payment_method},
    )
    logger.info(f"Order {order.order_number} created for {user.username} ({payment_method})")
    return result


def manual_payment_details():
    return {
        'bank': settings.BANK_NAME,
        'account_number': settings.BANK_ACCOUNT_NUMBER,
        'account_name': settings.BANK_ACCOUNT_NAME,
    }


# Status transitions

def record_status(order, status, user=None, staff_name='', recipient_name='', notes=''):
    return OrderStatusLog.objects.create(
        order=order,
        status=status,
        staff_name=staff_name or '',
        recipient_name=recipient_name or '',
        notes=notes or '',
        created_by=user if user is not None and user.is_authenticated else None,
    )


def cancel_order(order, user=None, notes='', request=None):
    """
    Cancel the order, give the stock back and cancel a still-pending payment.

    Raises:
        OrderStatusError: If the order was already moved past PENDING/PROCESSING
    """
    with transaction.atomic():
        # Re-read under lock, the caller's instance may be stale
        locked = Order.objects.select_for_update().get(pk=order.pk)
        if locked.status not in CANCELLABLE_STATUSES:
            raise OrderStatusError(f'Cannot cancel an order that is {locked.status}.')

        restore_stock(locked)
        locked.status = Order.STATUS_CANCELLED
        locked.save(update_fields=['status', 'updated_at'])
        payment = Transaction.objects.select_for_update().filter(
            order=locked, status=Transaction.STATUS_PENDING
        ).first()
        if payment:
            payment.status = Transaction.STATUS_CANCELLED
            payment.save(update_fields=['status', 'updated_at'])
        record_status(locked, Order.STATUS_CANCELLED, user=user, notes=notes)

    order.status = locked.status
    create_audit_log(
        request=request, user=user, action='order_cancel', model_name='Order',
        object_id=order.id, object_name=order.order_number, object_reference=order.order_number,
    )
    return order


def change_order_status(order, new_status, user=None, staff_name='', recipient_name='', notes='', request=None):
    """
    Move an order along PENDING -> PROCESSING -> SHIPPED -> DELIVERED,
    or cancel it from PENDING/PROCESSING.

    Raises:
        OrderStatusError: If the transition is not allowed
    """
    old_status = order.status
    if new_status not in dict(Order.STATUS_CHOICES):
        raise OrderStatusError(f'Unknown order status: {new_status}')
    if new_status not in ALLOWED_TRANSITIONS.get(old_status, ()):
        raise OrderStatusError(f'Cannot change order status from {old_status} to {new_status}')

    if new_status == Order.STATUS_CANCELLED:
        return cancel_order(order, user=user, notes=notes, request=request)

    with transaction.atomic():
        order.status = new_status
        order.save(update_fields=['status', 'updated_at'])
        record_status(order, new_status, user=user, staff_name=staff_name,
                      recipient_name=recipient_name, notes=notes)

    create_audit_log(
        request=request, user=user, action='order_status', model_name='Order',
        object_id=order.id, object_name=order.order_number, object_reference=order.order_number,
        changes={'status': {'old': old_status, 'new': new_status}},
    )
    return order


# Payment reconciliation

def apply_payment_status(payment, new_status, user=None, staff_name='', notes='', request=None,
                         action='payment_verify'):
    """
    Set a payment status and reconcile its order.

    SUCCESS moves a PENDING order to PROCESSING. FAILED or CANCELLED cancels
    the order and restores its stock. Applying the current status again, or
    changing a payment that is already final, is a no-op and returns False.
    """
    with transaction.atomic():
        locked = Transaction.objects.select_for_update().get(pk=payment.pk)
        if locked.status == new_status or locked.status in Transaction.FINAL_STATUSES:
            payment.status = locked.status
            return False

        order = Order.objects.select_for_update().get(pk=locked.order_id)
        old_status = locked.status
        locked.status = new_status
        update_fields = ['status', 'updated_at']
        if new_status == Transaction.STATUS_SUCCESS:
            locked.verified_at = timezone.now()
            update_fields.append('verified_at')
            if user is not None and user.is_authenticated:
                locked.verified_by = user
                update_fields.append('verified_by')
        locked.save(update_fields=update_fields)

        if new_status == Transaction.STATUS_SUCCESS and order.status == Order.STATUS_PENDING:
            order.status = Order.STATUS_PROCESSING
            order.save(update_fields=['status', 'updated_at'])
            record_status(order, Order.STATUS_PROCESSING, user=user, staff_name=staff_name, notes=notes)
        elif new_status in (Transaction.STATUS_FAILED, Transaction.STATUS_CANCELLED) \
                and order.status in CANCELLABLE_STATUSES:
            restore_stock(order)
            order.status = Order.STATUS_CANCELLED
            order.save(update_fields=['status', 'updated_at'])
            record_status(order, Order.STATUS_CANCELLED, user=user, staff_name=staff_name, notes=notes)

    payment.status = locked.status
    payment.order.status = order.status
    create_audit_log(
        request=request, user=user, action=action, model_name='Transaction',
        object_id=payment.id, object_name=order.order_number, object_reference=order.order_number,
        changes={'status': {'old': old_status, 'new': new_status}},
    )
    logger.info(f"Payment for {order.order_number} changed {old_status} -> {new_status}")
    return True


def advance_fulfilment(payment, order_status, user=None, staff_name='', notes='', recipient_name='', request=None):
    """
    Mark a paid order as SHIPPED or DELIVERED and record who handled it.

    Returns:
        The OrderStatusLog entry

    Raises:
        OrderStatusError: If the payment or current order status does not allow it
    """
    order = payment.order
    if payment.status != Transaction.STATUS_SUCCESS:
        raise OrderStatusError('Payment has not been completed for this order.')

    if order_status == Order.STATUS_SHIPPED:
        if order.status not in (Order.STATUS_PENDING, Order.STATUS_PROCESSING):
            raise OrderStatusError(f'Cannot ship an order that is {order.status}.')
    elif order_status == Order.STATUS_DELIVERED:
        if order.status != Order.STATUS_SHIPPED:
            raise OrderStatusError('Only shipped orders can be marked as delivered.')
    else:
        raise OrderStatusError(f'Unsupported order status: {order_status}')

    old_status = order.status
    with transaction.atomic():
        order.status = order_status
        order.save(update_fields=['status', 'updated_at'])
        log = record_status(order, order_status, user=user, staff_name=staff_name,
                            recipient_name=recipient_name, notes=notes)

    create_audit_log(
        request=request, user=user, action='order_status', model_name='Order',
        object_id=order.id, object_name=order.order_number, object_reference=order.order_number,
        changes={'status': {'old': old_status, 'new': order_status}, 'staff_name': staff_name},
    )
    return log
