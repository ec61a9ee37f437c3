from django.db import models
from django.utils import timezone
from decimal import Decimal
from dkmandiri.catalog.models import Product
from dkmandiri.core.formatting import line_total
from dkmandiri.core.models import User
from .shipping import SHIPPING_METHOD_CHOICES, PICKUP


class Cart(models.Model):
    """Storefront cart, one per customer"""
    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name='cart')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"Cart of {self.user.username}"

    @property
    def subtotal(self):
        return sum((item.total_price for item in self.items.all()), Decimal('0.00'))

    class Meta:
        db_table = 'carts'


class CartItem(models.Model):
    """Cart line, weight in grams"""
    cart = models.ForeignKey(Cart, on_delete=models.CASCADE, related_name='items')
    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name='cart_items')
    weight = models.DecimalField(max_digits=12, decimal_places=2)
    quantity = models.PositiveIntegerField(default=1)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.product.name} {self.weight} g"

    @property
    def total_price(self):
        return line_total(self.weight, self.product.price)

    class Meta:
        db_table = 'cart_items'
        unique_together = [['cart', 'product']]
        ordering = ['created_at']


class Order(models.Model):
    """Customer orders from the storefront (ONLINE) or the POS (OFFLINE)"""
    TYPE_ONLINE = 'ONLINE'
    TYPE_OFFLINE = 'OFFLINE'
    ORDER_TYPE_CHOICES = [
        (TYPE_ONLINE, 'Online'),
        (TYPE_OFFLINE, 'Offline'),
    ]

    STATUS_PENDING = 'PENDING'
    STATUS_PROCESSING = 'PROCESSING'
    STATUS_SHIPPED = 'SHIPPED'
    STATUS_DELIVERED = 'DELIVERED'
    STATUS_CANCELLED = 'CANCELLED'
    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_PROCESSING, 'Processing'),
        (STATUS_SHIPPED, 'Shipped'),
        (STATUS_DELIVERED, 'Delivered'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]

    order_number = models.CharField(max_length=100, unique=True)
    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='orders')
    order_type = models.CharField(max_length=10, choices=ORDER_TYPE_CHOICES, default=TYPE_ONLINE)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING, db_index=True)
    shipping_method = models.CharField(max_length=30, choices=SHIPPING_METHOD_CHOICES, default=PICKUP)
    shipping_cost = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    shipping_address = models.TextField(blank=True)
    customer_name = models.CharField(max_length=200, blank=True)
    customer_phone = models.CharField(max_length=20, blank=True)
    total_amount = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    notes = models.TextField(blank=True)
    created_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='created_orders')
    created_at = models.DateTimeField(default=timezone.now, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.order_number

    @property
    def subtotal(self):
        return self.total_amount - self.shipping_cost

    class Meta:
        db_table = 'orders'
        ordering = ['-created_at']


class OrderItem(models.Model):
    """Order line with price and cost snapshots per kg"""
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='items')
    product = models.ForeignKey(Product, on_delete=models.SET_NULL, null=True, blank=True, related_name='order_items')
    product_name = models.CharField(max_length=200)
    weight = models.DecimalField(max_digits=12, decimal_places=2)
    price = models.DecimalField(max_digits=12, decimal_places=2)
    cost_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    total_price = models.DecimalField(max_digits=14, decimal_places=2)

    def __str__(self):
        return f"{self.order.order_number} - {self.product_name}"

    @property
    def total_cost(self):
        return line_total(self.weight, self.cost_price)

    @property
    def profit(self):
        return self.total_price - self.total_cost

    class Meta:
        db_table = 'order_items'


class Transaction(models.Model):
    """Payment for an order"""
    METHOD_MIDTRANS = 'midtrans'
    METHOD_MANUAL = 'manual'
    METHOD_CASH = 'CASH'
    METHOD_CARD = 'CARD'
    METHOD_TRANSFER = 'TRANSFER'
    PAYMENT_METHOD_CHOICES = [
        (METHOD_MIDTRANS, 'Midtrans'),
        (METHOD_MANUAL, 'Transfer Manual'),
        (METHOD_CASH, 'Tunai'),
        (METHOD_CARD, 'Kartu'),
        (METHOD_TRANSFER, 'Transfer'),
    ]

    STATUS_PENDING = 'PENDING'
    STATUS_SUCCESS = 'SUCCESS'
    STATUS_FAILED = 'FAILED'
    STATUS_CANCELLED = 'CANCELLED'
    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_SUCCESS, 'Success'),
        (STATUS_FAILED, 'Failed'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]
    FINAL_STATUSES = (STATUS_SUCCESS, STATUS_FAILED, STATUS_CANCELLED)

    order = models.OneToOneField(Order, on_delete=models.CASCADE, related_name='transaction')
    amount = models.DecimalField(max_digits=14, decimal_places=2)
    payment_method = models.CharField(max_length=20, choices=PAYMENT_METHOD_CHOICES)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING, db_index=True)
    payment_proof = models.ImageField(upload_to='payment_proofs/%Y/%m/', null=True, blank=True)
    snap_token = models.CharField(max_length=255, blank=True)
    snap_redirect_url = models.URLField(max_length=500, blank=True)
    gateway_reference = models.CharField(max_length=100, blank=True)
    gateway_status = models.CharField(max_length=50, blank=True)
    verified_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='verified_transactions')
    verified_at = models.DateTimeField(null=True, blank=True)
    transaction_date = models.DateTimeField(default=timezone.now, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.order.order_number} - {self.status}"

    class Meta:
        db_table = 'transactions'
        ordering = ['-transaction_date']


class OrderStatusLog(models.Model):
    """Shipping and completion details recorded when an order moves forward"""
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='status_logs')
    status = models.CharField(max_length=20, choices=Order.STATUS_CHOICES)
    staff_name = models.CharField(max_length=200, blank=True)
    recipient_name = models.CharField(max_length=200, blank=True)
    notes = models.TextField(blank=True)
    created_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='order_status_logs')
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.order.order_number} -> {self.status}"

    class Meta:
        db_table = 'order_status_logs'
        ordering = ['created_at']
