from rest_framework import serializers
from .models import Review, ContactMessage


class ReviewSerializer(serializers.ModelSerializer):
    class Meta:
        model = Review
        fields = ['id', 'name', 'email', 'message', 'rating', 'image', 'created_at']
        read_only_fields = ['created_at']
        extra_kwargs = {'email': {'write_only': True}}


class ContactMessageSerializer(serializers.ModelSerializer):
    class Meta:
        model = ContactMessage
        fields = ['id', 'name', 'email', 'message', 'created_at']
        read_only_fields = ['created_at']

    def validate_message(self, value):
        if len(value.strip()) < 5:
            raise serializers.ValidationError('Message is too short.')
        return value.strip()
