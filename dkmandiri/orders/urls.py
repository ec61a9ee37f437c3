from django.urls import path
from .views import (
    cart_detail, cart_add, cart_item_detail,
    shipping_methods, checkout, order_list, order_detail, order_update_status,
    profile_orders, profile_order_detail,
    transaction_list, transaction_detail, transaction_upload_proof, transaction_verify,
    transaction_update_status, transaction_update_order, transaction_send_receipt,
    midtrans_notification,
)

urlpatterns = [
    # Cart endpoints
    path('cart/', cart_detail, name='cart-detail'),
    path('cart/add/', cart_add, name='cart-add'),
    path('cart/items/<int:pk>/', cart_item_detail, name='cart-item-detail'),

    # Order endpoints
    path('orders/shipping-methods/', shipping_methods, name='shipping-methods'),
    path('orders/checkout/', checkout, name='checkout'),
    path('orders/', order_list, name='order-list'),
    path('orders/<int:pk>/', order_detail, name='order-detail'),
    path('orders/<int:pk>/status/', order_update_status, name='order-update-status'),
    path('profile/orders/', profile_orders, name='profile-orders'),
    path('profile/orders/<int:pk>/', profile_order_detail, name='profile-order-detail'),

    # Transaction endpoints
    path('transactions/', transaction_list, name='transaction-list'),
    path('transactions/<int:pk>/', transaction_detail, name='transaction-detail'),
    path('transactions/<int:pk>/proof/', transaction_upload_proof, name='transaction-upload-proof'),
    path('transactions/<int:pk>/verify/', transaction_verify, name='transaction-verify'),
    path('transactions/<int:pk>/status/', transaction_update_status, name='transaction-update-status'),
    path('transactions/<int:pk>/update-order/', transaction_update_order, name='transaction-update-order'),
    path('transactions/<int:pk>/send-receipt/', transaction_send_receipt, name='transaction-send-receipt'),

    # Payment gateway webhook
    path('payments/midtrans/notification/', midtrans_notification, name='midtrans-notification'),
]
