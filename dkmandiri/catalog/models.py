from django.db import models
from decimal import Decimal


class Category(models.Model):
    """Product categories (fresh fish, frozen, dried, ...)"""
    name = models.CharField(max_length=200, db_index=True)
    slug = models.SlugField(max_length=220, unique=True)
    description = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    class Meta:
        db_table = 'categories'
        verbose_name_plural = 'categories'
        ordering = ['name']


class Product(models.Model):
    """Product sold by weight. Prices are per kg, weights are in grams."""
    name = models.CharField(max_length=200, db_index=True)
    slug = models.SlugField(max_length=220, unique=True)
    description = models.TextField(blank=True)
    category = models.ForeignKey(Category, on_delete=models.PROTECT, null=True, blank=True, related_name='products')
    price = models.DecimalField(max_digits=12, decimal_places=2, help_text='Selling price per kg')
    cost_price = models.DecimalField(max_digits=12, decimal_places=2, help_text='Cost price per kg')
    weight_in_stock = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'), help_text='Grams in stock')
    min_order_weight = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('1000'), help_text='Minimum grams per order line')
    is_available = models.BooleanField(default=True, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    @property
    def primary_image(self):
        images = list(self.images.all())
        for image in images:
            if image.is_primary:
                return image
        return images[0] if images else None

    class Meta:
        db_table = 'products'
        ordering = ['-created_at']


class ProductImage(models.Model):
    """Product photos, at most one primary per product"""
    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name='images')
    image = models.ImageField(upload_to='products/%Y/%m/')
    is_primary = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.product.name} image {self.pk}"

    class Meta:
        db_table = 'product_images'
        ordering = ['-is_primary', 'created_at']
