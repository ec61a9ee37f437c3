import logging

import anthropic
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response

from dkmandiri.core.permissions import IsAdminRole
from .serializers import ChatRequestSerializer, AdminChatRequestSerializer
from .services import get_assistant_service, AssistantError, AssistantNotConfigured

logger = logging.getLogger(__name__)


def run_chat(call):
    """Execute a chat call and translate assistant failures into responses"""
    try:
        result = call(get_assistant_service())
    except AssistantNotConfigured:
        logger.warning("Assistant requested but ANTHROPIC_API_KEY is not configured")
        return Response({'success': False, 'error': 'Assistant is not configured'},
                        status=status.HTTP_503_SERVICE_UNAVAILABLE)
    except anthropic.APIError as e:
        logger.error(f"Anthropic API error: {e}")
        return Response({'success': False, 'error': 'Assistant is temporarily unavailable'},
                        status=status.HTTP_502_BAD_GATEWAY)
    except AssistantError as e:
        logger.error(f"Assistant error: {e}")
        return Response({'success': False, 'error': str(e)}, status=status.HTTP_502_BAD_GATEWAY)

    data = {'success': True, 'response': result.response}
    if result.action_data is not None:
        data['action_data'] = result.action_data
    return Response(data)


@api_view(['POST'])
@permission_classes([AllowAny])
def assistant_chat(request):
    """Storefront assistant"""
    serializer = ChatRequestSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data
    return run_chat(lambda service: service.chat(data['message'], data.get('history')))


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def assistant_chat_personalized(request):
    """Storefront assistant with the customer's recent orders in context"""
    serializer = ChatRequestSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data
    return run_chat(lambda service: service.chat(data['message'], data.get('history'), user=request.user))


@api_view(['POST'])
@permission_classes([IsAdminRole])
def aiservice_chat(request):
    """Dashboard catalog assistant"""
    serializer = AdminChatRequestSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data
    smart_mode = (data.get('options') or {}).get('smart_mode')
    return run_chat(lambda service: service.admin_chat(
        data['message'], data.get('history'), smart_mode=smart_mode, request=request
    ))
