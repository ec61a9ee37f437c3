"""
Utility functions for catalog operations
"""
from django.utils.text import slugify
import uuid


def generate_unique_slug(model, name, instance=None):
    """Generate a slug from the name that is unique for the given model"""
    base = slugify(name or '')[:200] or 'item'
    slug = base
    queryset = model.objects.all()
    if instance is not None and instance.pk:
        queryset = queryset.exclude(pk=instance.pk)

    counter = 1
    while queryset.filter(slug=slug).exists():
        counter += 1
        if counter > 1000:
            slug = f"{base}-{str(uuid.uuid4())[:8]}"
            break
        slug = f"{base}-{counter}"
    return slug
