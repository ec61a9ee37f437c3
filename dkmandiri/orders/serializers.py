from decimal import Decimal

from rest_framework import serializers

from dkmandiri.catalog.serializers import ProductImageSerializer
from dkmandiri.catalog.models import Product
from dkmandiri.core.serializers import UserSerializer
from .models import CartItem, Order, OrderItem, Transaction, OrderStatusLog
from .shipping import shipping_method_name


class CartProductSerializer(serializers.ModelSerializer):
    primary_image = serializers.SerializerMethodField()

    class Meta:
        model = Product
        fields = ['id', 'name', 'slug', 'price', 'min_order_weight', 'weight_in_stock', 'is_available', 'primary_image']

    def get_primary_image(self, obj):
        image = obj.primary_image
        if image is None:
            return None
        return ProductImageSerializer(image, context=self.context).data['image_url']


class CartItemSerializer(serializers.ModelSerializer):
    product = CartProductSerializer(read_only=True)
    total_price = serializers.DecimalField(max_digits=14, decimal_places=2, read_only=True)

    class Meta:
        model = CartItem
        fields = ['id', 'product', 'weight', 'quantity', 'total_price', 'created_at', 'updated_at']


class CartAddSerializer(serializers.Serializer):
    product_id = serializers.PrimaryKeyRelatedField(queryset=Product.objects.all(), source='product')
    weight = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0.01'))


class CartItemUpdateSerializer(serializers.Serializer):
    weight = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0.01'))


class CheckoutSerializer(serializers.Serializer):
    shipping_method = serializers.CharField()
    payment_method = serializers.CharField()
    delivery_address_id = serializers.IntegerField(required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class OrderItemSerializer(serializers.ModelSerializer):
    profit = serializers.DecimalField(max_digits=14, decimal_places=2, read_only=True)

    class Meta:
        model = OrderItem
        fields = ['id', 'product', 'product_name', 'weight', 'price', 'cost_price', 'total_price', 'profit']


class OrderStatusLogSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderStatusLog
        fields = ['id', 'status', 'staff_name', 'recipient_name', 'notes', 'created_at']


class TransactionSummarySerializer(serializers.ModelSerializer):
    payment_method_display = serializers.CharField(source='get_payment_method_display', read_only=True)

    class Meta:
        model = Transaction
        fields = ['id', 'amount', 'payment_method', 'payment_method_display', 'status', 'payment_proof',
                  'snap_token', 'snap_redirect_url', 'transaction_date']


class OrderSerializer(serializers.ModelSerializer):
    items = OrderItemSerializer(many=True, read_only=True)
    transaction = serializers.SerializerMethodField()
    status_logs = OrderStatusLogSerializer(many=True, read_only=True)
    shipping_method_name = serializers.SerializerMethodField()
    subtotal = serializers.DecimalField(max_digits=14, decimal_places=2, read_only=True)

    class Meta:
        model = Order
        fields = ['id', 'order_number', 'order_type', 'status', 'shipping_method', 'shipping_method_name',
                  'shipping_cost', 'shipping_address', 'customer_name', 'customer_phone', 'subtotal',
                  'total_amount', 'notes', 'items', 'transaction', 'status_logs', 'created_at', 'updated_at']

    def get_shipping_method_name(self, obj):
        return shipping_method_name(obj.shipping_method)

    def get_transaction(self, obj):
        try:
            payment = obj.transaction
        except Transaction.DoesNotExist:
            return None
        return TransactionSummarySerializer(payment, context=self.context).data


class OrderWithUserSerializer(OrderSerializer):
    user = UserSerializer(read_only=True)

    class Meta(OrderSerializer.Meta):
        fields = OrderSerializer.Meta.fields + ['user']


def latest_log(order, status):
    logs = [log for log in order.status_logs.all() if log.status == status]
    return logs[-1] if logs else None


class TransactionSerializer(serializers.ModelSerializer):
    order = OrderWithUserSerializer(read_only=True)
    payment_method_display = serializers.CharField(source='get_payment_method_display', read_only=True)
    verified_by = serializers.CharField(source='verified_by.username', read_only=True, default=None)
    shipping_details = serializers.SerializerMethodField()
    completion_details = serializers.SerializerMethodField()

    class Meta:
        model = Transaction
        fields = ['id', 'order', 'amount', 'payment_method', 'payment_method_display', 'status',
                  'payment_proof', 'snap_token', 'snap_redirect_url', 'gateway_reference', 'gateway_status',
                  'verified_by', 'verified_at', 'shipping_details', 'completion_details',
                  'transaction_date', 'created_at', 'updated_at']

    def get_shipping_details(self, obj):
        log = latest_log(obj.order, Order.STATUS_SHIPPED)
        if log is None:
            return None
        return {'staff_name': log.staff_name, 'notes': log.notes, 'shipped_at': log.created_at}

    def get_completion_details(self, obj):
        log = latest_log(obj.order, Order.STATUS_DELIVERED)
        if log is None:
            return None
        return {
            'staff_name': log.staff_name,
            'recipient_name': log.recipient_name,
            'notes': log.notes,
            'delivered_at': log.created_at,
        }


class TransactionListSerializer(serializers.ModelSerializer):
    order_number = serializers.CharField(source='order.order_number', read_only=True)
    order_status = serializers.CharField(source='order.status', read_only=True)
    order_type = serializers.CharField(source='order.order_type', read_only=True)
    customer_name = serializers.CharField(source='order.customer_name', read_only=True)
    customer_phone = serializers.CharField(source='order.customer_phone', read_only=True)
    shipping_method = serializers.CharField(source='order.shipping_method', read_only=True)

    class Meta:
        model = Transaction
        fields = ['id', 'order', 'order_number', 'order_status', 'order_type', 'customer_name',
                  'customer_phone', 'shipping_method', 'amount', 'payment_method', 'status',
                  'payment_proof', 'transaction_date']


class OrderStatusUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Order.STATUS_CHOICES)
    staff_name = serializers.CharField(required=False, allow_blank=True, default='')
    recipient_name = serializers.CharField(required=False, allow_blank=True, default='')
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class TransactionVerifySerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[Transaction.STATUS_SUCCESS, Transaction.STATUS_FAILED])
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class TransactionStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[
        Transaction.STATUS_SUCCESS, Transaction.STATUS_FAILED, Transaction.STATUS_CANCELLED
    ])
    staff_name = serializers.CharField(required=False, allow_blank=True, default='')
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class UpdateOrderSerializer(serializers.Serializer):
    order_status = serializers.ChoiceField(choices=[Order.STATUS_SHIPPED, Order.STATUS_DELIVERED])
    staff_name = serializers.CharField(required=False, allow_blank=True, default='')
    recipient_name = serializers.CharField(required=False, allow_blank=True, default='')
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class PaymentProofSerializer(serializers.Serializer):
    proof = serializers.ImageField()
