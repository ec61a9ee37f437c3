import logging

from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response

from dkmandiri.core.permissions import IsAdminRole
from dkmandiri.orders.models import Transaction
from dkmandiri.orders.serializers import TransactionSerializer
from dkmandiri.orders.services import CheckoutError
from dkmandiri.orders.views import send_receipt, transaction_queryset
from .cart import CartError
from .receipt import render_receipt
from .serializers import POSTransactionSerializer
from .services import create_pos_transaction

logger = logging.getLogger(__name__)


@api_view(['POST'])
@permission_classes([IsAdminRole])
def pos_transaction_create(request):
    """Record an in-store sale and return the transaction with its receipt"""
    serializer = POSTransactionSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    try:
        order = create_pos_transaction(serializer.validated_data, request.user, request=request)
    except (CartError, CheckoutError) as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

    payment = transaction_queryset().get(order=order)
    staff_name = serializer.validated_data.get('staff_name') or request.user.username
    return Response({
        'transaction': TransactionSerializer(payment, context={'request': request}).data,
        'receipt': render_receipt(payment.order, cashier=staff_name),
    }, status=status.HTTP_201_CREATED)


def _staff_name(payment):
    logs = list(payment.order.status_logs.all())
    return logs[0].staff_name if logs and logs[0].staff_name else None


@api_view(['GET'])
@permission_classes([IsAdminRole])
def pos_transaction_receipt(request, pk):
    """Rendered receipt for a transaction"""
    payment = get_object_or_404(transaction_queryset(), pk=pk)
    return Response(render_receipt(payment.order, cashier=_staff_name(payment)))


@api_view(['POST'])
@permission_classes([IsAdminRole])
def pos_transaction_send_receipt(request, pk):
    """Send a POS receipt over WhatsApp"""
    payment = get_object_or_404(
        transaction_queryset(), pk=pk, payment_method__in=[
            Transaction.METHOD_CASH, Transaction.METHOD_CARD, Transaction.METHOD_TRANSFER
        ]
    )
    return send_receipt(request, payment.order)
