from django.contrib import admin
from .models import Address


@admin.register(Address)
class AddressAdmin(admin.ModelAdmin):
    list_display = ['recipient_name', 'user', 'phone', 'city', 'is_primary', 'created_at']
    list_filter = ['is_primary', 'city']
    search_fields = ['recipient_name', 'phone', 'full_address', 'user__username']
    ordering = ['-created_at']
