"""
Weekly schedule and time off endpoints.

Anyone signed in may read a doctor's active weekly rules; only the
doctor may change them.  Each weekday holds at most one rule, so a PUT
replaces the rule for that day, and removing a day clears its active
flag rather than deleting the row.
"""
from django.contrib.auth import get_user_model
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..models import DoctorSchedule
from ..permissions import IsDoctorRole
from ..scheduling import DAYS_OF_WEEK
from ..serializers.booking import ScheduleDeactivateSerializer, ScheduleUpsertSerializer, TimeOffSerializer
from ..services.appointments import add_time_off, deactivate_schedule, upsert_schedule

User = get_user_model()


def _format_schedule(s: DoctorSchedule) -> dict:
    return {
        'id': s.id,
        'doctorId': s.doctor_id,
        'dayOfWeek': s.day_of_week,
        'dayName': DAYS_OF_WEEK[s.day_of_week],
        'startTime': s.start_time.strftime('%H:%M:%S'),
        'endTime': s.end_time.strftime('%H:%M:%S'),
        'slotDurationMinutes': s.slot_duration_minutes,
        'isActive': s.is_active,
    }


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def doctor_schedule(request, doctor_id: int):
    doctor = User.objects.filter(id=doctor_id, role='doctor').first()
    if not doctor:
        return Response({'detail': 'doctor not found'}, status=status.HTTP_404_NOT_FOUND)
    schedules = DoctorSchedule.objects.filter(doctor=doctor, is_active=True).order_by('day_of_week')
    return Response({'ok': True, 'data': [_format_schedule(s) for s in schedules]})


@api_view(['PUT'])
@permission_classes([IsAuthenticated, IsDoctorRole])
def upsert_my_schedule(request):
    s = ScheduleUpsertSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    v = s.validated_data
    schedule = upsert_schedule(
        request.user,
        v['dayOfWeek'],
        v['startTime'],
        v['endTime'],
        slot_duration_minutes=v.get('slotDurationMinutes'),
        is_active=v['isActive'],
    )
    return Response({'ok': True, 'data': _format_schedule(schedule)})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsDoctorRole])
def deactivate_my_schedule(request):
    s = ScheduleDeactivateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    updated = deactivate_schedule(request.user, s.validated_data['dayOfWeek'])
    return Response({'ok': True, 'deactivated': updated})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsDoctorRole])
def add_my_time_off(request):
    s = TimeOffSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    v = s.validated_data
    off = add_time_off(request.user, v['start'], v['end'], v.get('reason', ''))
    return Response({
        'ok': True,
        'data': {
            'id': off.id,
            'start': off.start_datetime.isoformat(),
            'end': off.end_datetime.isoformat(),
            'reason': off.reason,
        },
    }, status=status.HTTP_201_CREATED)
