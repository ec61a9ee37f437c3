from rest_framework import serializers
from .models import Address


class AddressSerializer(serializers.ModelSerializer):
    formatted_address = serializers.CharField(source='as_text', read_only=True)

    class Meta:
        model = Address
        fields = ['id', 'recipient_name', 'phone', 'full_address', 'district', 'city', 'province',
                  'postal_code', 'is_primary', 'formatted_address', 'created_at', 'updated_at']
        read_only_fields = ['created_at', 'updated_at']

    def validate_phone(self, value):
        digits = ''.join(ch for ch in value if ch.isdigit())
        if len(digits) < 8:
            raise serializers.ValidationError('Enter a valid phone number.')
        return value.strip()
