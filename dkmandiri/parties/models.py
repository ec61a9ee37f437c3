from django.db import models
from dkmandiri.core.models import User


class Address(models.Model):
    """Customer delivery addresses"""
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='addresses')
    recipient_name = models.CharField(max_length=200)
    phone = models.CharField(max_length=20)
    full_address = models.TextField()
    district = models.CharField(max_length=100, blank=True)
    city = models.CharField(max_length=100)
    province = models.CharField(max_length=100, blank=True)
    postal_code = models.CharField(max_length=10, blank=True)
    is_primary = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.recipient_name} - {self.city}"

    def as_text(self):
        """Single-line address used as the order's shipping address snapshot"""
        parts = [self.full_address, self.district, self.city, self.province, self.postal_code]
        return ', '.join(part for part in parts if part)

    class Meta:
        db_table = 'addresses'
        verbose_name_plural = 'addresses'
        ordering = ['-is_primary', '-created_at']
