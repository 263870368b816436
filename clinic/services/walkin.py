from typing import Callable, Optional

import bleach
import structlog
from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import transaction
from django.utils import timezone

from clinic import queueing
from clinic.errors import CounterFailure
from clinic.models import Department, QueueEntry, QueueEntryTransition
from clinic.queueing import FixedRateEstimator, QueueNumberSource
from clinic.services.audit import log_action
from clinic.services.counters import DatabaseQueueCounter

User = get_user_model()
logger = structlog.get_logger(__name__)


def estimator_for(department: Department) -> FixedRateEstimator:
    """Department override if set, otherwise the configured default."""
    return FixedRateEstimator(department.avg_service_minutes or settings.QUEUE_AVG_SERVICE_MINUTES)


def join_queue(department: Department, patient: User, reason: str = '', *,
               doctor: Optional[User] = None,
               counter: Optional[QueueNumberSource] = None,
               estimator: Optional[Callable[[int], int]] = None,
               now=None) -> QueueEntry:
    """Put a walk-in patient at the back of the department's queue for today.

    The queue number comes from ``counter`` (the database counter by
    default).  If it cannot deliver a number the whole join fails with
    :class:`CounterFailure` and nothing is stored.
    """
    now = now or timezone.now()
    day = timezone.localdate(now)
    counter = counter or DatabaseQueueCounter()
    estimator = estimator or estimator_for(department)
    reason = bleach.clean((reason or '').strip(), strip=True)

    with transaction.atomic():
        number = counter.next_number(department.id, day)
        if isinstance(number, bool) or not isinstance(number, int) or number < 1:
            raise CounterFailure(f'queue counter returned an invalid number: {number!r}')
        entry = QueueEntry.objects.create(
            patient=patient,
            department=department,
            doctor=doctor,
            queue_date=day,
            queue_number=number,
            status=queueing.WAITING,
            check_in_time=now,
            reason=reason,
            estimated_wait_minutes=estimator(number),
        )
        QueueEntryTransition.objects.create(
            entry=entry, from_status=None, to_status=queueing.WAITING, operator=patient, reason='joined',
        )
    log_action(user=patient, action='queue_join', object_type='queue_entry', object_id=entry.id,
               detail={'departmentId': department.id, 'queueNumber': number})
    logger.info("queue_joined", department_id=department.id, queue_number=number, entry_id=entry.id,
                estimated_wait_minutes=entry.estimated_wait_minutes)
    return entry


def _apply(entry: QueueEntry, resolve: Callable[[str], str], *,
           operator: Optional[User], reason: str, now) -> QueueEntry:
    now = now or timezone.now()
    with transaction.atomic():
        locked = QueueEntry.objects.select_for_update().get(pk=entry.pk)
        old_status = locked.status
        target = resolve(old_status)
        fields = queueing.transition_fields(old_status, target, now)
        if target == queueing.SERVING and operator is not None and getattr(operator, 'role', '') == 'doctor':
            fields['doctor'] = operator
        for name, value in fields.items():
            setattr(locked, name, value)
        locked.save(update_fields=list(fields))
        QueueEntryTransition.objects.create(
            entry=locked,
            from_status=old_status,
            to_status=target,
            operator=operator if getattr(operator, 'pk', None) else None,
            reason=reason,
        )
    log_action(user=operator, action='queue_transition', object_type='queue_entry', object_id=locked.id,
               detail={'from': old_status, 'to': target})
    logger.info("queue_transition", entry_id=locked.id, department_id=locked.department_id,
                queue_number=locked.queue_number, from_status=old_status, to_status=target)
    return locked


def transition_entry(entry: QueueEntry, target: str, *, operator: Optional[User] = None,
                     reason: str = '', now=None) -> QueueEntry:
    """Move an entry to ``target`` if the state machine allows it.

    The row is locked for the duration of the change; an illegal move
    raises :class:`clinic.errors.InvalidTransition` and leaves it untouched.
    """
    return _apply(entry, lambda current: target, operator=operator, reason=reason, now=now)


def perform_action(entry: QueueEntry, action: str, *, operator: Optional[User] = None,
                   reason: str = '', now=None) -> QueueEntry:
    """Apply a named action (call, serve, complete, no_show, withdraw)."""
    return _apply(entry, lambda current: queueing.resolve_action(action, current),
                  operator=operator, reason=reason or action, now=now)


def live_board(department_id: str, *, day=None) -> dict[str, list[QueueEntry]]:
    """Today's live entries for a department split into display lanes."""
    day = day or timezone.localdate()
    entries = (
        QueueEntry.objects.select_related('patient')
        .filter(department_id=department_id, queue_date=day, status__in=queueing.LIVE_STATUSES)
    )
    return queueing.partition_by_status(entries)


def format_entry(entry: QueueEntry) -> dict:
    return {
        'id': entry.id,
        'patientId': entry.patient_id,
        'patientName': entry.patient.get_full_name() or entry.patient.username,
        'departmentId': entry.department_id,
        'doctorId': entry.doctor_id,
        'queueNumber': entry.queue_number,
        'status': entry.status,
        'checkInTime': entry.check_in_time.isoformat(),
        'calledTime': entry.called_time.isoformat() if entry.called_time else None,
        'completedTime': entry.completed_time.isoformat() if entry.completed_time else None,
        'reason': entry.reason or None,
        'estimatedWaitMinutes': entry.estimated_wait_minutes,
    }
