"""
Walk-in queue endpoints.

Patients join a department's queue for today, follow their own entry
and may withdraw while still waiting.  Staff drive entries through the
lifecycle (call, serve, complete, no-show) from the live board.  Every
status change passes through the queue state machine; illegal moves come
back as ``409 invalid_transition``.

The board is meant to be polled; the response carries the interval
clients should use.
"""
from __future__ import annotations

from django.conf import settings
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes, throttle_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..models import Department, QueueEntry, User
from ..permissions import IsPatientRole, IsStaffRole
from ..serializers.queue import (
    BoardQuerySerializer,
    JoinQueueSerializer,
    QueueEntryRefSerializer,
    QueueStatusUpdateSerializer,
)
from ..services.walkin import format_entry, join_queue, live_board, perform_action, transition_entry
from ..throttling import QueueJoinThrottle


def _can_manage(user: User, department_id: str) -> bool:
    """Staff manage their own department; admins manage all."""
    if user.role == 'admin':
        return True
    return bool(user.department_id) and user.department_id == department_id


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsPatientRole])
@throttle_classes([QueueJoinThrottle])
def join(request):
    s = JoinQueueSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    v = s.validated_data
    department = Department.objects.filter(id=v['departmentId'], is_active=True).first()
    if not department:
        return Response({'detail': 'department not found'}, status=status.HTTP_404_NOT_FOUND)
    entry = join_queue(department, request.user, v.get('reason', ''))
    return Response({'ok': True, 'data': format_entry(entry)}, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def board(request):
    """Today's live board for a department, lanes sorted by queue number."""
    q = BoardQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    department_id = q.validated_data['departmentId']
    if not Department.objects.filter(id=department_id).exists():
        return Response({'detail': 'department not found'}, status=status.HTTP_404_NOT_FOUND)
    lanes = live_board(department_id)
    return Response({
        'ok': True,
        'departmentId': department_id,
        'pollIntervalSeconds': settings.QUEUE_POLL_INTERVAL_SECONDS,
        'counts': {lane: len(items) for lane, items in lanes.items()},
        'waiting': [format_entry(e) for e in lanes['waiting']],
        'called': [format_entry(e) for e in lanes['called']],
        'serving': [format_entry(e) for e in lanes['serving']],
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def entry_detail(request):
    """A single entry with its transition history (owner or department staff)."""
    q = QueueEntryRefSerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    entry = (
        QueueEntry.objects.select_related('patient')
        .prefetch_related('transitions__operator')
        .filter(id=q.validated_data['id'])
        .first()
    )
    if not entry:
        return Response({'detail': 'not found'}, status=status.HTTP_404_NOT_FOUND)
    user: User = request.user  # type: ignore[assignment]
    if user.role == 'patient':
        if entry.patient_id != user.id:
            return Response({'detail': 'forbidden'}, status=status.HTTP_403_FORBIDDEN)
    elif not _can_manage(user, entry.department_id):
        return Response({'detail': 'forbidden'}, status=status.HTTP_403_FORBIDDEN)
    data = format_entry(entry)
    data['transitionHistory'] = [
        {
            'from': t.from_status,
            'to': t.to_status,
            'operator': t.operator.username if t.operator else '',
            'timestamp': t.timestamp.isoformat(),
            'reason': t.reason,
        }
        for t in sorted(entry.transitions.all(), key=lambda t: (t.timestamp, t.id))
    ]
    return Response({'ok': True, 'data': data})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsPatientRole])
def withdraw(request):
    """Patients leave the queue while they are still waiting."""
    s = QueueEntryRefSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    entry = QueueEntry.objects.filter(id=s.validated_data['id']).first()
    if not entry:
        return Response({'detail': 'not found'}, status=status.HTTP_404_NOT_FOUND)
    if entry.patient_id != request.user.id:
        return Response({'detail': 'forbidden'}, status=status.HTTP_403_FORBIDDEN)
    entry = perform_action(entry, 'withdraw', operator=request.user, reason='patient withdrew')
    return Response({'ok': True, 'data': format_entry(entry)})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsStaffRole])
def staff_update_status(request):
    """Staff move an entry by ``action`` (call/serve/complete/no_show) or target ``status``."""
    s = QueueStatusUpdateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    v = s.validated_data
    entry = QueueEntry.objects.select_related('patient').filter(id=v['id']).first()
    if not entry:
        return Response({'detail': 'not found'}, status=status.HTTP_404_NOT_FOUND)
    user: User = request.user  # type: ignore[assignment]
    if not _can_manage(user, entry.department_id):
        return Response({'detail': 'forbidden'}, status=status.HTTP_403_FORBIDDEN)
    reason = v.get('reason', '')
    if v.get('action'):
        entry = perform_action(entry, v['action'], operator=user, reason=reason)
    else:
        entry = transition_entry(entry, v['status'], operator=user, reason=reason)
    return Response({'ok': True, 'newStatus': entry.status, 'data': format_entry(entry)})
