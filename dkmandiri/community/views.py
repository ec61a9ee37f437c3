import logging

from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes, parser_classes
from rest_framework.parsers import MultiPartParser, FormParser, JSONParser
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from dkmandiri.core.permissions import IsAdminRoleOrReadOnly
from dkmandiri.core.utils import create_audit_log
from .models import Review
from .serializers import ReviewSerializer, ContactMessageSerializer

logger = logging.getLogger(__name__)


@api_view(['GET', 'POST'])
@permission_classes([AllowAny])
@parser_classes([MultiPartParser, FormParser, JSONParser])
def review_list_create(request):
    """List reviews (newest first) or post a new one"""
    if request.method == 'GET':
        reviews = Review.objects.all()
        serializer = ReviewSerializer(reviews, many=True, context={'request': request})
        return Response(serializer.data)
    else:
        serializer = ReviewSerializer(data=request.data, context={'request': request})
        if serializer.is_valid():
            user = request.user if request.user.is_authenticated else None
            serializer.save(user=user)
            return Response(serializer.data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'DELETE'])
@permission_classes([IsAdminRoleOrReadOnly])
def review_detail(request, pk):
    """Retrieve a review, admins may delete it"""
    review = get_object_or_404(Review, pk=pk)
    if request.method == 'GET':
        return Response(ReviewSerializer(review, context={'request': request}).data)

    create_audit_log(
        request=request, action='delete', model_name='Review',
        object_id=review.id, object_name=review.name
    )
    if review.image:
        review.image.delete(save=False)
    review.delete()
    return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST'])
@permission_classes([AllowAny])
def contact_submit(request):
    """Contact form submission"""
    serializer = ContactMessageSerializer(data=request.data)
    if serializer.is_valid():
        contact = serializer.save()
        logger.info(f"Contact message received from {contact.email}")
        return Response({'success': True, 'message': 'Thank you, your message has been sent.'},
                        status=status.HTTP_201_CREATED)
    return Response({'success': False, 'errors': serializer.errors}, status=status.HTTP_400_BAD_REQUEST)
