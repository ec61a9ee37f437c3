from decimal import Decimal

from rest_framework import serializers

from dkmandiri.orders.models import Transaction
from dkmandiri.orders.shipping import PICKUP, is_valid_shipping_method

POS_PAYMENT_METHODS = [Transaction.METHOD_CASH, Transaction.METHOD_CARD, Transaction.METHOD_TRANSFER]


class POSItemSerializer(serializers.Serializer):
    product_id = serializers.IntegerField()
    weight = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0.01'))


class POSTransactionSerializer(serializers.Serializer):
    customer_name = serializers.CharField(max_length=200, required=False, allow_blank=True, default='')
    customer_phone = serializers.CharField(max_length=20, required=False, allow_blank=True, default='')
    delivery_address = serializers.CharField(required=False, allow_blank=True, default='In-store purchase')
    payment_method = serializers.ChoiceField(choices=POS_PAYMENT_METHODS)
    shipping_method = serializers.CharField(required=False, default=PICKUP)
    staff_name = serializers.CharField(max_length=200, required=False, allow_blank=True, default='')
    notes = serializers.CharField(required=False, allow_blank=True, default='')
    order_items = POSItemSerializer(many=True, allow_empty=False)

    def to_internal_value(self, data):
        # Accept lowercase payment methods from older clients
        if hasattr(data, 'copy') and isinstance(data.get('payment_method'), str):
            data = data.copy()
            data['payment_method'] = data['payment_method'].upper()
        return super().to_internal_value(data)

    def validate_shipping_method(self, value):
        if not is_valid_shipping_method(value):
            raise serializers.ValidationError(f'Unknown shipping method: {value}')
        return value

    def validate(self, attrs):
        if not attrs.get('delivery_address'):
            attrs['delivery_address'] = 'In-store purchase'
        return attrs
