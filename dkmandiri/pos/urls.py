from django.urls import path
from .views import pos_transaction_create, pos_transaction_receipt, pos_transaction_send_receipt

urlpatterns = [
    # POS endpoints
    path('pos/transactions/', pos_transaction_create, name='pos-transaction-create'),
    path('pos/transactions/<int:pk>/receipt/', pos_transaction_receipt, name='pos-transaction-receipt'),
    path('pos/transactions/<int:pk>/send-receipt/', pos_transaction_send_receipt, name='pos-transaction-send-receipt'),
]
