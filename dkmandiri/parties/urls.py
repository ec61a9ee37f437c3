from django.urls import path
from .views import address_list_create, address_detail, address_set_default

urlpatterns = [
    # Address endpoints
    path('addresses/', address_list_create, name='address-list-create'),
    path('addresses/<int:pk>/', address_detail, name='address-detail'),
    path('addresses/<int:pk>/default/', address_set_default, name='address-set-default'),
]
