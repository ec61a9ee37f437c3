import logging

from django.core.paginator import Paginator
from django.db.models import Q
from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes, parser_classes, authentication_classes
from rest_framework.parsers import MultiPartParser, FormParser
from rest_framework.permissions import IsAuthenticated, AllowAny
from rest_framework.response import Response

from dkmandiri.core.permissions import IsAdminRole
from dkmandiri.core.utils import create_audit_log
from dkmandiri.notifications.messages import (
    build_receipt_message, build_payment_verified_message,
    build_order_shipped_message, build_order_delivered_message,
)
from dkmandiri.notifications.whatsapp import WhatsAppError, send_whatsapp_message, notify_quietly
from .midtrans import MidtransClient, MidtransError, map_transaction_status
from .models import CartItem, Order, Transaction
from .serializers import (
    CartItemSerializer, CartAddSerializer, CartItemUpdateSerializer, CheckoutSerializer,
    OrderSerializer, TransactionSerializer, TransactionListSerializer, OrderStatusUpdateSerializer,
    TransactionVerifySerializer, TransactionStatusSerializer, UpdateOrderSerializer, PaymentProofSerializer,
)
from .services import (
    CheckoutError, OrderStatusError, get_cart, cart_summary, add_to_cart, update_cart_item,
    checkout as run_checkout, change_order_status, apply_payment_status, advance_fulfilment,
)
from .shipping import list_shipping_methods

logger = logging.getLogger(__name__)


def order_queryset():
    return Order.objects.select_related('user', 'transaction').prefetch_related('items', 'status_logs')


def transaction_queryset():
    return Transaction.objects.select_related('order', 'order__user', 'verified_by').prefetch_related(
        'order__items', 'order__status_logs'
    )


def cart_response(request, cart):
    summary = cart_summary(cart)
    return {
        'items': CartItemSerializer(summary['items'], many=True, context={'request': request}).data,
        'total_items': summary['total_items'],
        'subtotal': float(summary['subtotal']),
    }


def can_view_order(user, order):
    return user.is_admin or (order.user_id is not None and order.user_id == user.id)


def send_receipt(request, order):
    """Send the WhatsApp receipt for an order and return an HTTP response"""
    if not order.customer_phone:
        return Response({'error': 'Customer has no phone number'}, status=status.HTTP_400_BAD_REQUEST)
    try:
        send_whatsapp_message(order.customer_phone, build_receipt_message(order))
    except WhatsAppError as e:
        return Response({'error': str(e)}, status=status.HTTP_502_BAD_GATEWAY)

    create_audit_log(
        request=request, action='receipt_send', model_name='Order',
        object_id=order.id, object_name=order.order_number, object_reference=order.order_number,
        changes={'phone': order.customer_phone}
    )
    return Response({'message': f'Receipt sent to {order.customer_phone}'})


# Cart views
@api_view(['GET', 'DELETE'])
@permission_classes([IsAuthenticated])
def cart_detail(request):
    """Get the current user's cart or clear it"""
    cart = get_cart(request.user)
    if request.method == 'DELETE':
        cart.items.all().delete()
        return Response({'message': 'Cart cleared'})
    return Response(cart_response(request, cart))


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def cart_add(request):
    """Add a product to the cart by weight in grams"""
    serializer = CartAddSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    try:
        add_to_cart(request.user, serializer.validated_data['product'], serializer.validated_data['weight'])
    except CheckoutError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
    return Response(cart_response(request, get_cart(request.user)), status=status.HTTP_201_CREATED)


@api_view(['PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def cart_item_detail(request, pk):
    """Change the weight of a cart line or remove it"""
    item = get_object_or_404(CartItem.objects.select_related('product'), pk=pk, cart__user=request.user)

    if request.method == 'DELETE':
        item.delete()
        return Response(cart_response(request, get_cart(request.user)))

    serializer = CartItemUpdateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    try:
        update_cart_item(item, serializer.validated_data['weight'])
    except CheckoutError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
    return Response(cart_response(request, get_cart(request.user)))


# Checkout and order views
@api_view(['GET'])
@permission_classes([AllowAny])
def shipping_methods(request):
    """List shipping methods and their flat costs"""
    return Response(list_shipping_methods())


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def checkout(request):
    """Create an order from the cart and start payment"""
    serializer = CheckoutSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = serializer.validated_data
    try:
        result = run_checkout(
            request.user,
            shipping_method=data['shipping_method'],
            payment_method=data['payment_method'],
            delivery_address_id=data.get('delivery_address_id'),
            notes=data.get('notes', ''),
            request=request,
        )
    except CheckoutError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
    except MidtransError as e:
        return Response({'error': f'Payment gateway error: {e}'}, status=status.HTTP_502_BAD_GATEWAY)

    order = order_queryset().get(pk=result['order'].pk)
    response = {'order': OrderSerializer(order, context={'request': request}).data}
    if 'snap_token' in result:
        response['snap_token'] = result['snap_token']
        response['redirect_url'] = result['redirect_url']
    else:
        response['payment_details'] = result['payment_details']
    return Response(response, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def order_list(request):
    """List the current user's orders"""
    orders = order_queryset().filter(user=request.user)
    status_filter = request.query_params.get('status')
    if status_filter:
        orders = orders.filter(status=status_filter.upper())
    serializer = OrderSerializer(orders, many=True, context={'request': request})
    return Response(serializer.data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def order_detail(request, pk):
    """Retrieve an order owned by the user (admins see every order)"""
    order = get_object_or_404(order_queryset(), pk=pk)
    if not can_view_order(request.user, order):
        return Response({'error': 'Order not found'}, status=status.HTTP_404_NOT_FOUND)
    return Response(OrderSerializer(order, context={'request': request}).data)


@api_view(['PUT', 'PATCH'])
@permission_classes([IsAuthenticated])
def order_update_status(request, pk):
    """Change an order's status (admin), or let a customer cancel their own pending order"""
    order = get_object_or_404(order_queryset(), pk=pk)
    serializer = OrderStatusUpdateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data

    if not request.user.is_admin:
        is_owner = order.user_id == request.user.id
        if not is_owner:
            return Response({'error': 'Order not found'}, status=status.HTTP_404_NOT_FOUND)
        if data['status'] != Order.STATUS_CANCELLED or order.status != Order.STATUS_PENDING:
            return Response({'error': 'You can only cancel your own pending orders.'},
                            status=status.HTTP_403_FORBIDDEN)

    try:
        change_order_status(
            order, data['status'], user=request.user, staff_name=data['staff_name'],
            recipient_name=data['recipient_name'], notes=data['notes'], request=request,
        )
    except OrderStatusError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

    order = order_queryset().get(pk=order.pk)
    return Response(OrderSerializer(order, context={'request': request}).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def profile_orders(request):
    """Paginated order history for the profile page"""
    orders = order_queryset().filter(user=request.user)
    status_filter = request.query_params.get('status')
    if status_filter and status_filter.lower() != 'all':
        orders = orders.filter(status=status_filter.upper())

    try:
        page = max(int(request.query_params.get('page', 1)), 1)
        limit = min(max(int(request.query_params.get('limit', 10)), 1), 100)
    except (TypeError, ValueError):
        return Response({'error': 'page and limit must be integers'}, status=status.HTTP_400_BAD_REQUEST)

    paginator = Paginator(orders, limit)
    page_obj = paginator.get_page(page)
    serializer = OrderSerializer(page_obj, many=True, context={'request': request})
    return Response({
        'results': serializer.data,
        'count': paginator.count,
        'page': page_obj.number,
        'page_size': limit,
        'total_pages': paginator.num_pages,
        'next': page_obj.next_page_number() if page_obj.has_next() else None,
        'previous': page_obj.previous_page_number() if page_obj.has_previous() else None,
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def profile_order_detail(request, pk):
    order = get_object_or_404(order_queryset(), pk=pk, user=request.user)
    return Response(OrderSerializer(order, context={'request': request}).data)


# Transaction views
@api_view(['GET'])
@permission_classes([IsAdminRole])
def transaction_list(request):
    """List transactions with filtering"""
    queryset = Transaction.objects.select_related('order')

    status_filter = request.query_params.get('status')
    if status_filter:
        queryset = queryset.filter(status=status_filter.upper())
    order_status = request.query_params.get('order_status')
    if order_status:
        queryset = queryset.filter(order__status=order_status.upper())
    payment_method = request.query_params.get('payment_method')
    if payment_method:
        queryset = queryset.filter(payment_method__iexact=payment_method)
    order_type = request.query_params.get('order_type')
    if order_type:
        queryset = queryset.filter(order__order_type=order_type.upper())
    search = request.query_params.get('search')
    if search:
        queryset = queryset.filter(
            Q(order__order_number__icontains=search) |
            Q(order__customer_name__icontains=search) |
            Q(order__customer_phone__icontains=search)
        )
    date_from = request.query_params.get('date_from')
    if date_from:
        queryset = queryset.filter(transaction_date__date__gte=date_from)
    date_to = request.query_params.get('date_to')
    if date_to:
        queryset = queryset.filter(transaction_date__date__lte=date_to)

    serializer = TransactionListSerializer(queryset, many=True, context={'request': request})
    return Response(serializer.data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def transaction_detail(request, pk):
    """Transaction with its order, items, customer and fulfilment details"""
    payment = get_object_or_404(transaction_queryset(), pk=pk)
    if not can_view_order(request.user, payment.order):
        return Response({'error': 'Transaction not found'}, status=status.HTTP_404_NOT_FOUND)
    return Response(TransactionSerializer(payment, context={'request': request}).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
@parser_classes([MultiPartParser, FormParser])
def transaction_upload_proof(request, pk):
    """Upload a transfer receipt for a manual payment"""
    payment = get_object_or_404(transaction_queryset(), pk=pk, order__user=request.user)
    if payment.payment_method != Transaction.METHOD_MANUAL:
        return Response({'error': 'Payment proof is only accepted for manual transfers'},
                        status=status.HTTP_400_BAD_REQUEST)
    if payment.status != Transaction.STATUS_PENDING:
        return Response({'error': 'This transaction is no longer pending'}, status=status.HTTP_400_BAD_REQUEST)

    serializer = PaymentProofSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    payment.payment_proof = serializer.validated_data['proof']
    payment.save(update_fields=['payment_proof', 'updated_at'])
    create_audit_log(
        request=request, action='payment_proof', model_name='Transaction',
        object_id=payment.id, object_name=payment.order.order_number,
        object_reference=payment.order.order_number
    )
    return Response(TransactionSerializer(payment, context={'request': request}).data)


@api_view(['PUT', 'PATCH'])
@permission_classes([IsAdminRole])
def transaction_verify(request, pk):
    """Approve or reject a pending payment"""
    payment = get_object_or_404(transaction_queryset(), pk=pk)
    serializer = TransactionVerifySerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    if payment.status != Transaction.STATUS_PENDING:
        return Response({'error': f'Transaction is already {payment.status}'}, status=status.HTTP_400_BAD_REQUEST)

    new_status = serializer.validated_data['status']
    apply_payment_status(payment, new_status, user=request.user,
                         notes=serializer.validated_data['notes'], request=request)
    if new_status == Transaction.STATUS_SUCCESS:
        notify_quietly(payment.order.customer_phone, build_payment_verified_message(payment.order))

    payment = transaction_queryset().get(pk=payment.pk)
    return Response(TransactionSerializer(payment, context={'request': request}).data)


@api_view(['PUT', 'PATCH'])
@permission_classes([IsAdminRole])
def transaction_update_status(request, pk):
    """Set a payment status from the dashboard and reconcile the order"""
    payment = get_object_or_404(transaction_queryset(), pk=pk)
    serializer = TransactionStatusSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    if payment.status in Transaction.FINAL_STATUSES:
        return Response({'error': f'Transaction is already {payment.status}'}, status=status.HTTP_400_BAD_REQUEST)

    data = serializer.validated_data
    apply_payment_status(payment, data['status'], user=request.user, staff_name=data['staff_name'],
                         notes=data['notes'], request=request)
    payment = transaction_queryset().get(pk=payment.pk)
    return Response(TransactionSerializer(payment, context={'request': request}).data)


@api_view(['PUT', 'PATCH'])
@permission_classes([IsAdminRole])
def transaction_update_order(request, pk):
    """Mark the order of a paid transaction as shipped or delivered"""
    payment = get_object_or_404(transaction_queryset(), pk=pk)
    serializer = UpdateOrderSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = serializer.validated_data
    try:
        log = advance_fulfilment(
            payment, data['order_status'], user=request.user, staff_name=data['staff_name'],
            notes=data['notes'], recipient_name=data['recipient_name'], request=request,
        )
    except OrderStatusError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

    order = payment.order
    if data['order_status'] == Order.STATUS_SHIPPED:
        message = build_order_shipped_message(order, log)
    else:
        message = build_order_delivered_message(order, log)
    notified = notify_quietly(order.customer_phone, message)

    payment = transaction_queryset().get(pk=payment.pk)
    response = TransactionSerializer(payment, context={'request': request}).data
    response['notification_sent'] = notified
    return Response(response)


@api_view(['POST'])
@permission_classes([IsAdminRole])
def transaction_send_receipt(request, pk):
    """Send the order receipt to the customer over WhatsApp"""
    payment = get_object_or_404(transaction_queryset(), pk=pk)
    return send_receipt(request, payment.order)


@api_view(['POST'])
@authentication_classes([])
@permission_classes([AllowAny])
def midtrans_notification(request):
    """Payment notification webhook called by Midtrans"""
    payload = request.data
    client = MidtransClient()
    if not client.verify_signature(payload):
        logger.warning(f"Rejected Midtrans notification with invalid signature for {payload.get('order_id')}")
        return Response({'error': 'Invalid signature'}, status=status.HTTP_403_FORBIDDEN)

    order_id = payload.get('order_id')
    payment = Transaction.objects.select_related('order').filter(order__order_number=order_id).first()
    if payment is None:
        return Response({'error': 'Order not found'}, status=status.HTTP_404_NOT_FOUND)

    gateway_status = payload.get('transaction_status', '')
    new_status = map_transaction_status(gateway_status, payload.get('fraud_status'))

    payment.gateway_status = gateway_status
    payment.gateway_reference = payload.get('transaction_id') or payment.gateway_reference
    payment.save(update_fields=['gateway_status', 'gateway_reference', 'updated_at'])

    changed = False
    if new_status and payment.status == Transaction.STATUS_PENDING and new_status != Transaction.STATUS_PENDING:
        changed = apply_payment_status(payment, new_status, request=request, action='payment_notification')
    elif new_status and new_status != payment.status:
        logger.info(f"Ignoring Midtrans {gateway_status} for {order_id}: transaction already {payment.status}")

    logger.info(f"Midtrans notification for {order_id}: {gateway_status} (changed={changed})")
    return Response({'message': 'Notification processed', 'status': payment.status})
