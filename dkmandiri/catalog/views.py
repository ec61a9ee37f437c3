import logging
from datetime import timedelta

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes, parser_classes
from rest_framework.parsers import MultiPartParser, FormParser
from rest_framework.response import Response
from django.db import transaction
from django.db.models import Count, Sum, Q
from django.shortcuts import get_object_or_404
from django.utils import timezone

from dkmandiri.core.cache_utils import get_cached_products_list, cache_products_list
from dkmandiri.core.permissions import IsAdminRole, IsAdminRoleOrReadOnly
from dkmandiri.core.utils import create_audit_log
from .filters import ProductFilter
from .models import Category, Product, ProductImage
from .serializers import (
    CategorySerializer, ProductSerializer, ProductListSerializer, ProductImageSerializer,
    StockUpdateSerializer, ProductImageUploadSerializer, with_sales_stats
)

logger = logging.getLogger(__name__)

TRACKED_PRODUCT_FIELDS = ('name', 'price', 'cost_price', 'weight_in_stock', 'min_order_weight', 'is_available')


def product_queryset():
    return with_sales_stats(
        Product.objects.select_related('category').prefetch_related('images')
    )


def product_snapshot(product):
    return {field: str(getattr(product, field)) for field in TRACKED_PRODUCT_FIELDS}


def log_product_changes(request, product, old_data):
    """Write an audit entry for changed product fields, price changes get their own action"""
    new_data = product_snapshot(product)
    changes = {k: {'old': old_data[k], 'new': new_data[k]} for k in old_data if old_data[k] != new_data[k]}
    if not changes:
        return
    action = 'price_change' if ('price' in changes or 'cost_price' in changes) else 'update'
    create_audit_log(
        request=request,
        action=action,
        model_name='Product',
        object_id=product.id,
        object_name=product.name,
        object_reference=product.slug,
        changes=changes
    )


# Category views
@api_view(['GET', 'POST'])
@permission_classes([IsAdminRoleOrReadOnly])
def category_list_create(request):
    """List all categories or create a new category"""
    if request.method == 'GET':
        categories = Category.objects.annotate(annotated_product_count=Count('products'))
        serializer = CategorySerializer(categories, many=True)
        return Response(serializer.data)
    else:
        serializer = CategorySerializer(data=request.data)
        if serializer.is_valid():
            category = serializer.save()
            create_audit_log(
                request=request, action='create', model_name='Category',
                object_id=category.id, object_name=category.name
            )
            return Response(serializer.data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAdminRoleOrReadOnly])
def category_detail(request, pk):
    """Retrieve, update or delete a category"""
    category = get_object_or_404(Category, pk=pk)

    if request.method == 'GET':
        serializer = CategorySerializer(category)
        return Response(serializer.data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = CategorySerializer(category, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        if category.products.exists():
            return Response(
                {'error': 'Cannot delete a category that still has products. Move or delete the products first.'},
                status=status.HTTP_400_BAD_REQUEST
            )
        create_audit_log(
            request=request, action='delete', model_name='Category',
            object_id=category.id, object_name=category.name
        )
        category.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


# Product views
@api_view(['GET', 'POST'])
@permission_classes([IsAdminRoleOrReadOnly])
def product_list_create(request):
    """List products (public, cached) or create a new product"""
    if request.method == 'GET':
        filters_dict = {key: request.query_params.get(key) for key in sorted(request.query_params.keys())}
        cached_data, cache_key = get_cached_products_list(filters_dict)
        if cached_data is not None:
            return Response(cached_data)

        # Use django-filter for filtering
        filterset = ProductFilter(request.query_params, queryset=product_queryset())
        if not filterset.is_valid():
            return Response(filterset.errors, status=status.HTTP_400_BAD_REQUEST)

        serializer = ProductListSerializer(filterset.qs, many=True, context={'request': request})
        data = serializer.data
        cache_products_list(cache_key, data)
        return Response(data)
    else:  # POST
        serializer = ProductSerializer(data=request.data, context={'request': request})
        if serializer.is_valid():
            product = serializer.save()
            create_audit_log(
                request=request,
                action='create',
                model_name='Product',
                object_id=product.id,
                object_name=product.name,
                object_reference=product.slug,
                changes=product_snapshot(product)
            )
            logger.info(f"Product created: {product.name} (id={product.id})")
            return Response(serializer.data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAdminRoleOrReadOnly])
def product_detail(request, pk):
    """Retrieve, update or delete a product"""
    product = get_object_or_404(product_queryset(), pk=pk)

    if request.method == 'GET':
        serializer = ProductSerializer(product, context={'request': request})
        return Response(serializer.data)
    elif request.method in ('PUT', 'PATCH'):
        old_data = product_snapshot(product)
        serializer = ProductSerializer(
            product, data=request.data, partial=request.method == 'PATCH', context={'request': request}
        )
        if serializer.is_valid():
            serializer.save()
            log_product_changes(request, product, old_data)
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        product_name = product.name
        product_slug = product.slug
        product_id = product.id
        product.delete()
        create_audit_log(
            request=request,
            action='delete',
            model_name='Product',
            object_id=product_id,
            object_name=product_name,
            object_reference=product_slug,
            changes={'name': product_name}
        )
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['GET'])
@permission_classes([IsAdminRoleOrReadOnly])
def product_by_slug(request, slug):
    """Retrieve a product by its slug"""
    product = get_object_or_404(product_queryset(), slug=slug)
    serializer = ProductSerializer(product, context={'request': request})
    return Response(serializer.data)


@api_view(['PATCH', 'PUT'])
@permission_classes([IsAdminRole])
def product_update_stock(request, pk):
    """Set the grams in stock for a product"""
    product = get_object_or_404(Product, pk=pk)
    serializer = StockUpdateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    old_stock = product.weight_in_stock
    product.weight_in_stock = serializer.validated_data['weight_in_stock']
    update_fields = ['weight_in_stock', 'updated_at']
    if 'is_available' in serializer.validated_data:
        product.is_available = serializer.validated_data['is_available']
        update_fields.append('is_available')
    product.save(update_fields=update_fields)

    create_audit_log(
        request=request,
        action='stock_adjust',
        model_name='Product',
        object_id=product.id,
        object_name=product.name,
        object_reference=product.slug,
        changes={'weight_in_stock': {'old': str(old_stock), 'new': str(product.weight_in_stock)}}
    )
    product = get_object_or_404(product_queryset(), pk=pk)
    return Response(ProductSerializer(product, context={'request': request}).data)


@api_view(['GET'])
@permission_classes([IsAdminRoleOrReadOnly])
def product_trending(request):
    """Best sellers by grams sold over the last 30 days, topped up with the newest products"""
    try:
        limit = max(1, min(int(request.query_params.get('limit', 4)), 50))
    except (TypeError, ValueError):
        limit = 4

    since = timezone.now() - timedelta(days=30)
    sold_filter = Q(order_items__order__created_at__gte=since) & ~Q(order_items__order__status='CANCELLED')
    trending = list(
        product_queryset().filter(is_available=True)
        .annotate(recent_sold=Sum('order_items__weight', filter=sold_filter))
        .filter(recent_sold__gt=0)
        .order_by('-recent_sold')[:limit]
    )

    if len(trending) < limit:
        seen = [p.id for p in trending]
        trending += list(
            product_queryset().filter(is_available=True).exclude(id__in=seen)
            .order_by('-created_at')[:limit - len(trending)]
        )

    serializer = ProductListSerializer(trending, many=True, context={'request': request})
    return Response(serializer.data)


# Product image views
@api_view(['POST'])
@permission_classes([IsAdminRole])
@parser_classes([MultiPartParser, FormParser])
def product_image_upload(request):
    """Upload one or more images for a product"""
    serializer = ProductImageUploadSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    product = serializer.validated_data['product']
    files = serializer.validated_data['images']
    primary_index = serializer.validated_data.get('primary_index')

    with transaction.atomic():
        has_primary = product.images.filter(is_primary=True).exists()
        if primary_index is None and not has_primary:
            primary_index = 0
        if primary_index is not None:
            product.images.filter(is_primary=True).update(is_primary=False)

        created = [
            ProductImage.objects.create(product=product, image=upload, is_primary=(index == primary_index))
            for index, upload in enumerate(files)
        ]

    logger.info(f"Uploaded {len(created)} images for product {product.id}")
    data = ProductImageSerializer(created, many=True, context={'request': request}).data
    return Response(data, status=status.HTTP_201_CREATED)


@api_view(['PUT', 'PATCH'])
@permission_classes([IsAdminRole])
def product_image_set_primary(request, pk):
    """Mark an image as the primary image of its product"""
    image = get_object_or_404(ProductImage, pk=pk)
    with transaction.atomic():
        ProductImage.objects.filter(product_id=image.product_id, is_primary=True).exclude(pk=image.pk).update(is_primary=False)
        image.is_primary = True
        image.save(update_fields=['is_primary'])
    return Response(ProductImageSerializer(image, context={'request': request}).data)


@api_view(['DELETE'])
@permission_classes([IsAdminRole])
def product_image_delete(request, pk):
    """Delete an image, promoting the next one when the primary is removed"""
    image = get_object_or_404(ProductImage, pk=pk)
    product_id = image.product_id
    was_primary = image.is_primary

    with transaction.atomic():
        image.image.delete(save=False)
        image.delete()
        if was_primary:
            next_image = ProductImage.objects.filter(product_id=product_id).order_by('created_at').first()
            if next_image:
                next_image.is_primary = True
                next_image.save(update_fields=['is_primary'])

    return Response(status=status.HTTP_204_NO_CONTENT)
