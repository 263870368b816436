"""
Doctor schedules, open slots and appointment booking.

The slot grid itself comes from :mod:`clinic.scheduling`; this module
feeds it the doctor's stored rules and removes slots already taken by
live appointments or covered by time off.  Booking re-checks the same
conditions under a lock on the doctor's schedule row, and the partial
unique constraint on ``Appointment`` backs that up at insert time.
"""
import datetime as dt
from typing import Optional

import bleach
import structlog
from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction
from django.utils import timezone

from clinic.errors import MalformedTimeInput, SlotUnavailable
from clinic.models import Appointment, DoctorSchedule, DoctorTimeOff
from clinic.scheduling import (
    WeeklyRule,
    bookable_dates,
    compute_end_time,
    find_rule,
    format_minutes,
    is_slot_boundary,
    open_slots,
    parse_date,
    parse_time,
    slots_for_rule,
)
from clinic.services.audit import log_action

User = get_user_model()
logger = structlog.get_logger(__name__)


def _to_time(minutes: int) -> dt.time:
    return dt.time(minutes // 60, minutes % 60)


def rules_for_doctor(doctor: User) -> list[WeeklyRule]:
    return [s.as_rule() for s in DoctorSchedule.objects.filter(doctor=doctor, is_active=True)]


def upsert_schedule(doctor: User, day_of_week: int, start_time: str, end_time: str, *,
                    slot_duration_minutes: Optional[int] = None, is_active: bool = True) -> DoctorSchedule:
    """Create or replace the doctor's rule for one weekday."""
    start, end = parse_time(start_time), parse_time(end_time)
    if end <= start:
        raise MalformedTimeInput('end_time must be after start_time')
    if end >= 24 * 60:
        raise MalformedTimeInput('end_time must be before midnight')
    schedule, created = DoctorSchedule.objects.update_or_create(
        doctor=doctor,
        day_of_week=day_of_week,
        defaults={
            'start_time': _to_time(start),
            'end_time': _to_time(end),
            'slot_duration_minutes': slot_duration_minutes or settings.DEFAULT_SLOT_DURATION_MINUTES,
            'is_active': is_active,
        },
    )
    log_action(user=doctor, action='schedule_upsert', object_type='doctor_schedule', object_id=schedule.id,
               detail={'dayOfWeek': day_of_week, 'created': created})
    logger.info("schedule_upserted", doctor_id=doctor.id, day_of_week=day_of_week, created=created)
    return schedule


def deactivate_schedule(doctor: User, day_of_week: int) -> int:
    """Clear the active flag; the rule row is kept for history."""
    updated = DoctorSchedule.objects.filter(doctor=doctor, day_of_week=day_of_week, is_active=True).update(is_active=False)
    if updated:
        log_action(user=doctor, action='schedule_deactivate', object_type='doctor_schedule',
                   detail={'dayOfWeek': day_of_week})
    return updated


def add_time_off(doctor: User, start: dt.datetime, end: dt.datetime, reason: str = '') -> DoctorTimeOff:
    if end <= start:
        raise MalformedTimeInput('time off must end after it starts')
    off = DoctorTimeOff.objects.create(
        doctor=doctor, start_datetime=start, end_datetime=end, reason=bleach.clean(reason or '', strip=True),
    )
    log_action(user=doctor, action='time_off_add', object_type='doctor_time_off', object_id=off.id)
    return off


def _blocked_windows(doctor: User, date: dt.date) -> list[tuple[int, int]]:
    """Time off overlapping ``date``, clipped to minutes within that day."""
    day_start = timezone.make_aware(dt.datetime.combine(date, dt.time.min))
    day_end = day_start + dt.timedelta(days=1)
    windows = []
    qs = DoctorTimeOff.objects.filter(doctor=doctor, start_datetime__lt=day_end, end_datetime__gt=day_start)
    for off in qs:
        start = max(off.start_datetime, day_start) - day_start
        end = min(off.end_datetime, day_end) - day_start
        windows.append((int(start.total_seconds() // 60), -int(-end.total_seconds() // 60)))
    return windows


def _booked_windows(doctor: User, date: dt.date) -> list[tuple[dt.time, dt.time]]:
    qs = (
        Appointment.objects.filter(doctor=doctor, appointment_date=date)
        .exclude(status__in=Appointment.RELEASED_STATUSES)
        .only('start_time', 'end_time')
    )
    return [(a.start_time, a.end_time) for a in qs]


def available_slots(doctor: User, date) -> tuple[list[str], Optional[WeeklyRule]]:
    """Open start times for ``doctor`` on ``date`` and the rule they came from.

    No active rule gives ``([], None)``.
    """
    date = parse_date(date)
    rule = find_rule(rules_for_doctor(doctor), date)
    if rule is None:
        return [], None
    slots = open_slots(
        slots_for_rule(rule),
        rule.slot_duration_minutes,
        booked=_booked_windows(doctor, date),
        blocked=_blocked_windows(doctor, date),
    )
    return slots, rule


def book_appointment(patient: User, doctor: User, date, start_time: str, reason: str = '', *,
                     today: Optional[dt.date] = None) -> Appointment:
    """Book ``start_time`` on ``date`` with ``doctor``.

    The start must be a slot boundary of the doctor's active rule for that
    weekday and the slot must still be open.  The end time is derived
    from the rule's slot duration.
    """
    date = parse_date(date)
    today = today or timezone.localdate()
    if date not in bookable_dates(today, settings.BOOKING_WINDOW_DAYS):
        raise SlotUnavailable(f'{date.isoformat()} is outside the booking window')
    start = format_minutes(parse_time(start_time))

    with transaction.atomic():
        schedule = (
            DoctorSchedule.objects.select_for_update()
            .filter(doctor=doctor, day_of_week=date.isoweekday() % 7, is_active=True)
            .first()
        )
        if schedule is None:
            raise SlotUnavailable(f'doctor has no availability on {date.isoformat()}')
        rule = schedule.as_rule()
        if not is_slot_boundary(rule, start):
            raise SlotUnavailable(f'{start} is not a slot start for this doctor')
        duration = rule.slot_duration_minutes
        if not open_slots([start], duration, booked=_booked_windows(doctor, date),
                          blocked=_blocked_windows(doctor, date)):
            raise SlotUnavailable(f'{start} on {date.isoformat()} is already taken')
        end = compute_end_time(start, duration)
        try:
            with transaction.atomic():
                appointment = Appointment.objects.create(
                    patient=patient,
                    doctor=doctor,
                    department_id=doctor.department_id,
                    appointment_date=date,
                    start_time=_to_time(parse_time(start)),
                    end_time=_to_time(parse_time(end)),
                    reason=bleach.clean((reason or '').strip(), strip=True),
                )
        except IntegrityError:
            raise SlotUnavailable(f'{start} on {date.isoformat()} is already taken') from None

    log_action(user=patient, action='appointment_book', object_type='appointment', object_id=appointment.id,
               detail={'doctorId': doctor.id, 'date': date.isoformat(), 'start': start})
    logger.info("appointment_booked", appointment_id=appointment.id, doctor_id=doctor.id,
                date=date.isoformat(), start=start, end=end)
    return appointment


def update_appointment(appointment: Appointment, *, status: Optional[str] = None, notes: Optional[str] = None,
                       operator: Optional[User] = None) -> Appointment:
    update_fields = []
    if status is not None and status != appointment.status:
        appointment.status = status
        update_fields.append('status')
    if notes is not None:
        appointment.notes = bleach.clean(notes.strip(), strip=True)
        update_fields.append('notes')
    if not update_fields:
        return appointment
    update_fields.append('updated_at')
    try:
        with transaction.atomic():
            appointment.save(update_fields=update_fields)
    except IntegrityError:
        raise SlotUnavailable('slot has been booked by another appointment') from None
    log_action(user=operator, action='appointment_update', object_type='appointment', object_id=appointment.id,
               detail={'fields': update_fields[:-1], 'status': appointment.status})
    return appointment


def format_appointment(a: Appointment) -> dict:
    return {
        'id': a.id,
        'patientId': a.patient_id,
        'doctorId': a.doctor_id,
        'departmentId': a.department_id,
        'appointmentDate': a.appointment_date.isoformat(),
        'startTime': a.start_time.strftime('%H:%M'),
        'endTime': a.end_time.strftime('%H:%M'),
        'status': a.status,
        'reason': a.reason or None,
        'notes': a.notes or None,
    }
