from decimal import Decimal, ROUND_HALF_UP

from django.db.models import Sum, Count, Q
from django.utils import timezone
from rest_framework import serializers

from .models import Category, Product, ProductImage
from .utils import generate_unique_slug


def month_start():
    now = timezone.localtime()
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def with_sales_stats(queryset):
    """Annotate products with sold grams and order counts from non-cancelled orders"""
    not_cancelled = ~Q(order_items__order__status='CANCELLED')
    return queryset.annotate(
        annotated_total_sold=Sum('order_items__weight', filter=not_cancelled),
        annotated_total_orders=Count('order_items__order', filter=not_cancelled, distinct=True),
        annotated_sold_this_month=Sum(
            'order_items__weight',
            filter=not_cancelled & Q(order_items__order__created_at__gte=month_start())
        ),
    )


class CategorySerializer(serializers.ModelSerializer):
    slug = serializers.SlugField(required=False, allow_blank=True, max_length=220)
    product_count = serializers.SerializerMethodField()

    class Meta:
        model = Category
        fields = ['id', 'name', 'slug', 'description', 'product_count', 'created_at', 'updated_at']
        read_only_fields = ['created_at', 'updated_at']

    def get_product_count(self, obj):
        if hasattr(obj, 'annotated_product_count'):
            return obj.annotated_product_count
        return obj.products.count()

    def validate(self, attrs):
        slug = attrs.get('slug')
        name = attrs.get('name') or (self.instance.name if self.instance else '')
        if slug:
            clash = Category.objects.filter(slug=slug)
            if self.instance:
                clash = clash.exclude(pk=self.instance.pk)
            if clash.exists():
                raise serializers.ValidationError({'slug': 'A category with this slug already exists.'})
        elif self.instance is None or 'name' in attrs:
            attrs['slug'] = generate_unique_slug(Category, name, self.instance)
        return attrs


class ProductImageSerializer(serializers.ModelSerializer):
    image_url = serializers.SerializerMethodField()

    class Meta:
        model = ProductImage
        fields = ['id', 'product', 'image', 'image_url', 'is_primary', 'created_at']
        read_only_fields = ['created_at']

    def get_image_url(self, obj):
        if not obj.image:
            return None
        request = self.context.get('request')
        if request is not None:
            return request.build_absolute_uri(obj.image.url)
        return obj.image.url


class ProductSerializer(serializers.ModelSerializer):
    # For reading: return full nested objects
    category = CategorySerializer(read_only=True)
    # For writing: accept integer IDs
    category_id = serializers.PrimaryKeyRelatedField(
        queryset=Category.objects.all(),
        source='category',
        write_only=True,
        required=False,
        allow_null=True
    )
    slug = serializers.SlugField(required=False, allow_blank=True, max_length=220)
    category_name = serializers.CharField(source='category.name', read_only=True)
    images = ProductImageSerializer(many=True, read_only=True)
    primary_image = serializers.SerializerMethodField()
    profit_margin = serializers.SerializerMethodField()
    total_sold = serializers.SerializerMethodField()
    total_orders = serializers.SerializerMethodField()
    sold_this_month = serializers.SerializerMethodField()

    class Meta:
        model = Product
        fields = [
            'id', 'name', 'slug', 'description', 'category', 'category_id', 'category_name',
            'price', 'cost_price', 'weight_in_stock', 'min_order_weight', 'is_available',
            'images', 'primary_image', 'profit_margin', 'total_sold', 'total_orders',
            'sold_this_month', 'created_at', 'updated_at'
        ]
        read_only_fields = ['created_at', 'updated_at']

    def get_primary_image(self, obj):
        image = obj.primary_image
        if image is None:
            return None
        return ProductImageSerializer(image, context=self.context).data['image_url']

    def get_profit_margin(self, obj):
        """Margin percentage over selling price, None when either price is zero"""
        if not obj.price or not obj.cost_price:
            return None
        margin = (obj.price - obj.cost_price) / obj.price * 100
        return float(margin.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP))

    def _sales_stats(self, obj):
        if hasattr(obj, 'annotated_total_sold'):
            return {
                'total_sold': obj.annotated_total_sold,
                'total_orders': obj.annotated_total_orders,
                'sold_this_month': obj.annotated_sold_this_month,
            }
        if not hasattr(obj, '_sales_stats_cache'):
            not_cancelled = ~Q(order__status='CANCELLED')
            items = obj.order_items.all()
            obj._sales_stats_cache = items.aggregate(
                total_sold=Sum('weight', filter=not_cancelled),
                total_orders=Count('order', filter=not_cancelled, distinct=True),
                sold_this_month=Sum('weight', filter=not_cancelled & Q(order__created_at__gte=month_start())),
            )
        return obj._sales_stats_cache

    def get_total_sold(self, obj):
        return float(self._sales_stats(obj)['total_sold'] or 0)

    def get_total_orders(self, obj):
        return self._sales_stats(obj)['total_orders'] or 0

    def get_sold_this_month(self, obj):
        return float(self._sales_stats(obj)['sold_this_month'] or 0)

    def validate_price(self, value):
        if value <= 0:
            raise serializers.ValidationError('Price must be greater than 0.')
        return value

    def validate_cost_price(self, value):
        if value <= 0:
            raise serializers.ValidationError('Cost price must be greater than 0.')
        return value

    def validate_weight_in_stock(self, value):
        if value < 0:
            raise serializers.ValidationError('Stock cannot be negative.')
        return value

    def validate_min_order_weight(self, value):
        if value <= 0:
            raise serializers.ValidationError('Minimum order weight must be greater than 0.')
        return value

    def validate(self, attrs):
        price = attrs.get('price', self.instance.price if self.instance else None)
        cost_price = attrs.get('cost_price', self.instance.cost_price if self.instance else None)
        if price is not None and cost_price is not None and cost_price > price:
            raise serializers.ValidationError({'cost_price': 'Cost price cannot be greater than the selling price.'})

        slug = attrs.get('slug')
        name = attrs.get('name') or (self.instance.name if self.instance else '')
        if slug:
            clash = Product.objects.filter(slug=slug)
            if self.instance:
                clash = clash.exclude(pk=self.instance.pk)
            if clash.exists():
                raise serializers.ValidationError({'slug': 'A product with this slug already exists.'})
        elif self.instance is None or 'name' in attrs:
            attrs['slug'] = generate_unique_slug(Product, name, self.instance)
        return attrs


class ProductListSerializer(ProductSerializer):
    """Lighter product representation for listings"""

    class Meta(ProductSerializer.Meta):
        fields = [
            'id', 'name', 'slug', 'category', 'category_name', 'price', 'cost_price',
            'weight_in_stock', 'min_order_weight', 'is_available', 'primary_image',
            'profit_margin', 'total_sold', 'total_orders', 'sold_this_month', 'created_at'
        ]


class StockUpdateSerializer(serializers.Serializer):
    weight_in_stock = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0'))
    is_available = serializers.BooleanField(required=False)


class ProductImageUploadSerializer(serializers.Serializer):
    product_id = serializers.PrimaryKeyRelatedField(queryset=Product.objects.all(), source='product')
    images = serializers.ListField(child=serializers.ImageField(), allow_empty=False)
    primary_index = serializers.IntegerField(required=False, min_value=0)

    def validate(self, attrs):
        index = attrs.get('primary_index')
        if index is not None and index >= len(attrs['images']):
            raise serializers.ValidationError({'primary_index': 'Index is out of range for the uploaded images.'})
        return attrs
