import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response

from dkmandiri.core.cache_utils import get_cached_dashboard, cache_dashboard
from dkmandiri.core.permissions import IsAdminRole
from .services import dashboard_data, analytics_data

logger = logging.getLogger(__name__)


@api_view(['GET'])
@permission_classes([IsAdminRole])
def dashboard(request):
    """Dashboard stats with month-over-month trends and the latest transactions"""
    cached_data, cache_key = get_cached_dashboard()
    if cached_data is not None:
        return Response(cached_data)

    data = dashboard_data()
    cache_dashboard(cache_key, data)
    return Response(data)


@api_view(['GET'])
@permission_classes([IsAdminRole])
def analytics(request):
    """Sales analytics for week, month, 3months, 6months, year or 2years"""
    timeframe = request.query_params.get('timeframe', 'month')
    try:
        data = analytics_data(timeframe)
    except ValueError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
    return Response(data)
