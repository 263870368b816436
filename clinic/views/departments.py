from django.conf import settings
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..models import Department


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def list_departments(request):
    """Active departments with their effective per-patient wait estimate."""
    data = [{
        'id': d.id,
        'name': d.name,
        'description': d.description,
        'location': d.location,
        'avgServiceMinutes': d.avg_service_minutes or settings.QUEUE_AVG_SERVICE_MINUTES,
    } for d in Department.objects.filter(is_active=True).order_by('name')]
    return Response({'ok': True, 'data': data})
