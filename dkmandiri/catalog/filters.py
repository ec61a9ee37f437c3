import django_filters
from django.db.models import Q, F
from .models import Product


class ProductFilter(django_filters.FilterSet):
    """Storefront and dashboard filter for Product model using django-filter"""

    # Basic search - searches across name, description and category
    search = django_filters.CharFilter(method='filter_search', label='Search')

    # Category by id or slug
    category = django_filters.CharFilter(method='filter_category', label='Category')
    is_available = django_filters.BooleanFilter(field_name='is_available')

    # Stock status filters
    in_stock = django_filters.CharFilter(method='filter_in_stock', label='In Stock')

    min_price = django_filters.NumberFilter(field_name='price', lookup_expr='gte')
    max_price = django_filters.NumberFilter(field_name='price', lookup_expr='lte')

    class Meta:
        model = Product
        fields = ['search', 'category', 'is_available', 'in_stock', 'min_price', 'max_price']

    def filter_search(self, queryset, name, value):
        """Match products where every word appears in the name, description or category"""
        if not value or not value.strip():
            return queryset

        for word in value.split():
            queryset = queryset.filter(
                Q(name__icontains=word) |
                Q(description__icontains=word) |
                Q(category__name__icontains=word)
            )
        return queryset

    def filter_category(self, queryset, name, value):
        if not value:
            return queryset
        value = value.strip()
        if value.isdigit():
            return queryset.filter(category_id=int(value))
        return queryset.filter(category__slug=value)

    def filter_in_stock(self, queryset, name, value):
        """Products with at least their minimum order weight in stock"""
        if value is None or value == '':
            return queryset
        if str(value).lower() in ('true', '1', 'yes'):
            return queryset.filter(weight_in_stock__gte=F('min_order_weight'), weight_in_stock__gt=0)
        if str(value).lower() in ('false', '0', 'no'):
            return queryset.filter(Q(weight_in_stock__lt=F('min_order_weight')) | Q(weight_in_stock__lte=0))
        return queryset
