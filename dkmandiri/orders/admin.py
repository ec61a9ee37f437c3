from django.contrib import admin
from .models import Cart, CartItem, Order, OrderItem, Transaction, OrderStatusLog


class CartItemInline(admin.TabularInline):
    model = CartItem
    extra = 0


@admin.register(Cart)
class CartAdmin(admin.ModelAdmin):
    list_display = ['user', 'created_at', 'updated_at']
    search_fields = ['user__username']
    inlines = [CartItemInline]


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    readonly_fields = ['product_name', 'weight', 'price', 'cost_price', 'total_price']


class OrderStatusLogInline(admin.TabularInline):
    model = OrderStatusLog
    extra = 0
    readonly_fields = ['status', 'staff_name', 'recipient_name', 'notes', 'created_at']


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ['order_number', 'order_type', 'status', 'customer_name', 'shipping_method', 'total_amount', 'created_at']
    list_filter = ['status', 'order_type', 'shipping_method', 'created_at']
    search_fields = ['order_number', 'customer_name', 'customer_phone']
    ordering = ['-created_at']
    inlines = [OrderItemInline, OrderStatusLogInline]


@admin.register(Transaction)
class TransactionAdmin(admin.ModelAdmin):
    list_display = ['order', 'amount', 'payment_method', 'status', 'transaction_date']
    list_filter = ['status', 'payment_method', 'transaction_date']
    search_fields = ['order__order_number', 'gateway_reference']
    ordering = ['-transaction_date']
