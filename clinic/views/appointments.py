"""
Slot lookup and appointment endpoints.

Patients list a doctor's open slots for a date and book one of them.
Doctors see their own appointments; other staff may filter across
doctors.  Appointments are never deleted: cancelling is a status change,
and a patient may only cancel their own.
"""
from django.conf import settings
from django.contrib.auth import get_user_model
from django.utils import timezone
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes, throttle_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..models import Appointment
from ..permissions import STAFF_ROLES, IsPatientRole
from ..scheduling import bookable_dates, day_of_week, parse_date
from ..serializers.booking import (
    AppointmentListQuerySerializer,
    AppointmentUpdateSerializer,
    BookAppointmentSerializer,
    SlotQuerySerializer,
)
from ..services.appointments import available_slots, book_appointment, format_appointment, update_appointment
from ..throttling import BookingThrottle

User = get_user_model()


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def doctor_slots(request, doctor_id: int):
    """Open slots for a doctor on ``?date=YYYY-MM-DD``.

    An empty list means no availability, whether the doctor does not work
    that day, every slot is taken, or the date is outside the booking
    window.
    """
    q = SlotQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    doctor = User.objects.filter(id=doctor_id, role='doctor').first()
    if not doctor:
        return Response({'detail': 'doctor not found'}, status=status.HTTP_404_NOT_FOUND)
    date = parse_date(q.validated_data['date'])
    if date in bookable_dates(timezone.localdate(), settings.BOOKING_WINDOW_DAYS):
        slots, rule = available_slots(doctor, date)
    else:
        slots, rule = [], None
    return Response({
        'ok': True,
        'doctorId': doctor.id,
        'date': date.isoformat(),
        'dayOfWeek': day_of_week(date),
        'slotDurationMinutes': rule.slot_duration_minutes if rule else None,
        'slots': slots,
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsPatientRole])
@throttle_classes([BookingThrottle])
def book(request):
    s = BookAppointmentSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    v = s.validated_data
    doctor = User.objects.filter(id=v['doctorId'], role='doctor').first()
    if not doctor:
        return Response({'detail': 'doctor not found'}, status=status.HTTP_404_NOT_FOUND)
    appointment = book_appointment(request.user, doctor, v['date'], v['startTime'], v.get('reason', ''))
    return Response({'ok': True, 'data': format_appointment(appointment)}, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def list_appointments(request):
    q = AppointmentListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    v = q.validated_data
    user = request.user
    qs = Appointment.objects.all()
    if user.role == 'patient':
        qs = qs.filter(patient=user)
    elif user.role == 'doctor':
        qs = qs.filter(doctor=user)
    elif user.role in STAFF_ROLES:
        if 'doctorId' in v:
            qs = qs.filter(doctor_id=v['doctorId'])
        if 'patientId' in v:
            qs = qs.filter(patient_id=v['patientId'])
    else:
        qs = qs.none()
    if 'date' in v:
        qs = qs.filter(appointment_date=v['date'])
    if 'status' in v:
        qs = qs.filter(status=v['status'])
    data = [format_appointment(a) for a in qs.order_by('appointment_date', 'start_time')[:200]]
    return Response({'ok': True, 'data': data})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def update(request):
    """Change an appointment's status and/or notes."""
    s = AppointmentUpdateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    v = s.validated_data
    appointment = Appointment.objects.filter(id=v['id']).first()
    if not appointment:
        return Response({'detail': 'not found'}, status=status.HTTP_404_NOT_FOUND)
    user = request.user
    if user.role == 'patient':
        if appointment.patient_id != user.id:
            return Response({'detail': 'forbidden'}, status=status.HTTP_403_FORBIDDEN)
        if v.get('status') != Appointment.STATUS_CANCELLED or 'notes' in v:
            return Response({'detail': 'patients may only cancel an appointment'}, status=status.HTTP_403_FORBIDDEN)
        if appointment.status != Appointment.STATUS_SCHEDULED:
            return Response({'detail': 'only scheduled appointments can be cancelled'}, status=status.HTTP_400_BAD_REQUEST)
    elif user.role == 'doctor':
        if appointment.doctor_id != user.id:
            return Response({'detail': 'forbidden'}, status=status.HTTP_403_FORBIDDEN)
    elif user.role not in STAFF_ROLES:
        return Response({'detail': 'forbidden'}, status=status.HTTP_403_FORBIDDEN)
    appointment = update_appointment(appointment, status=v.get('status'), notes=v.get('notes'), operator=user)
    return Response({'ok': True, 'data': format_appointment(appointment)})
