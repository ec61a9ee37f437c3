"""
Cache invalidation signals
Automatically invalidate cache when data changes
"""
from django.db import transaction
from django.db.models.signals import post_save, post_delete
from django.dispatch import receiver
import logging

from .cache_utils import invalidate_products_cache, invalidate_dashboard_cache

logger = logging.getLogger(__name__)

PRODUCT_MODELS = ('Product', 'Category', 'ProductImage')
ORDER_MODELS = ('Order', 'OrderItem', 'Transaction')


# Product cache invalidation
@receiver([post_save, post_delete])
def invalidate_catalog_cache(sender, instance, **kwargs):
    """Invalidate products and dashboard cache when catalog records change"""
    if sender._meta.app_label != 'catalog' or sender.__name__ not in PRODUCT_MODELS:
        return

    # Invalidate after commit so the cache is not repopulated with stale rows
    def invalidate_after_commit():
        invalidate_products_cache()
        invalidate_dashboard_cache()

    transaction.on_commit(invalidate_after_commit)


# Order cache invalidation
@receiver([post_save, post_delete])
def invalidate_order_cache(sender, instance, **kwargs):
    """Invalidate dashboard and product (sold counts) cache when orders change"""
    if sender._meta.app_label != 'orders' or sender.__name__ not in ORDER_MODELS:
        return

    def invalidate_after_commit():
        invalidate_dashboard_cache()
        invalidate_products_cache()

    transaction.on_commit(invalidate_after_commit)
