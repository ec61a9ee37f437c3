from django.core.validators import MinValueValidator, MaxValueValidator
from django.db import models
from dkmandiri.core.models import User


class Review(models.Model):
    """Customer reviews shown on the community page"""
    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='reviews')
    name = models.CharField(max_length=200)
    email = models.EmailField()
    message = models.TextField()
    rating = models.PositiveSmallIntegerField(validators=[MinValueValidator(1), MaxValueValidator(5)])
    image = models.ImageField(upload_to='reviews/%Y/%m/', null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.name} ({self.rating})"

    class Meta:
        db_table = 'reviews'
        ordering = ['-created_at']


class ContactMessage(models.Model):
    """Messages sent from the contact form"""
    name = models.CharField(max_length=200)
    email = models.EmailField()
    message = models.TextField()
    is_read = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.name} <{self.email}>"

    class Meta:
        db_table = 'contact_messages'
        ordering = ['-created_at']
