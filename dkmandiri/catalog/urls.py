from django.urls import path
from .views import (
    category_list_create, category_detail,
    product_list_create, product_detail, product_by_slug,
    product_update_stock, product_trending,
    product_image_upload, product_image_set_primary, product_image_delete,
)

urlpatterns = [
    # Category endpoints
    path('categories/', category_list_create, name='category-list-create'),
    path('categories/<int:pk>/', category_detail, name='category-detail'),

    # Product endpoints
    path('products/', product_list_create, name='product-list-create'),
    path('products/trending/', product_trending, name='product-trending'),
    path('products/slug/<slug:slug>/', product_by_slug, name='product-by-slug'),
    path('products/<int:pk>/', product_detail, name='product-detail'),
    path('products/<int:pk>/stock/', product_update_stock, name='product-update-stock'),

    # Product image endpoints
    path('product-images/upload/', product_image_upload, name='product-image-upload'),
    path('product-images/<int:pk>/primary/', product_image_set_primary, name='product-image-set-primary'),
    path('product-images/<int:pk>/', product_image_delete, name='product-image-delete'),
]
