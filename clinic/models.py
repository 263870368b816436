"""
Database models for the clinic backend.

These models are the store behind the slot and queue engines:
departments, users with a clinic role, doctors' weekly schedules and
time off, appointments, walk-in queue entries with their transition
history, and the per-department daily counter that hands out queue
numbers.
"""
from __future__ import annotations

from django.contrib.auth.models import AbstractUser
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.db.models import Q

from . import queueing
from .scheduling import DEFAULT_SLOT_DURATION_MINUTES, WeeklyRule


class Department(models.Model):
    """A hospital department; walk-in queues are kept per department."""
    id = models.CharField(
        max_length=50,
        primary_key=True,
        help_text="Unique identifier for the department (e.g. 'cardio')",
    )
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    location = models.CharField(max_length=255, blank=True)
    is_active = models.BooleanField(default=True, db_index=True)
    avg_service_minutes = models.PositiveIntegerField(
        null=True, blank=True, help_text="Overrides the default per-patient wait estimate (minutes)"
    )
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return f"{self.name} ({self.id})"


class User(AbstractUser):
    """Custom user model with a clinic role and optional department."""
    ROLE_CHOICES = [
        ('patient', 'Patient'),
        ('doctor', 'Doctor'),
        ('nurse', 'Nurse'),
        ('receptionist', 'Receptionist'),
        ('admin', 'Administrator'),
    ]
    role = models.CharField(max_length=16, choices=ROLE_CHOICES, default='patient')
    department = models.ForeignKey(
        Department, null=True, blank=True, on_delete=models.SET_NULL, related_name='staff'
    )

    def __str__(self) -> str:
        return f"{self.username} ({self.role})"


class DoctorSchedule(models.Model):
    """A doctor's recurring availability for one day of the week (0 = Sunday)."""
    doctor = models.ForeignKey(User, on_delete=models.CASCADE, related_name='schedules')
    day_of_week = models.PositiveSmallIntegerField(validators=[MaxValueValidator(6)])
    start_time = models.TimeField()
    end_time = models.TimeField()
    slot_duration_minutes = models.PositiveIntegerField(
        default=DEFAULT_SLOT_DURATION_MINUTES, validators=[MinValueValidator(1)]
    )
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['doctor', 'day_of_week'], name='uniq_schedule_doctor_day'),
        ]
        ordering = ['day_of_week']

    def as_rule(self) -> WeeklyRule:
        return WeeklyRule.from_record(self)

    def __str__(self) -> str:
        return f"Schedule(d={self.doctor_id}, dow={self.day_of_week}, {self.start_time:%H:%M}-{self.end_time:%H:%M})"


class DoctorTimeOff(models.Model):
    """A window in which a doctor takes no appointments."""
    doctor = models.ForeignKey(User, on_delete=models.CASCADE, related_name='time_off')
    start_datetime = models.DateTimeField()
    end_datetime = models.DateTimeField()
    reason = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [models.Index(fields=['doctor', 'start_datetime', 'end_datetime'], name='clinic_doct_doctor__7b1f2c_idx')]

    def __str__(self):
        return f"TimeOff(d={self.doctor_id}, {self.start_datetime:%F %T}~{self.end_datetime:%F %T})"


class Appointment(models.Model):
    STATUS_SCHEDULED = 'scheduled'
    STATUS_CHECKED_IN = 'checked_in'
    STATUS_IN_PROGRESS = 'in_progress'
    STATUS_COMPLETED = 'completed'
    STATUS_CANCELLED = 'cancelled'
    STATUS_NO_SHOW = 'no_show'
    STATUS_CHOICES = [
        (STATUS_SCHEDULED, 'Scheduled'),
        (STATUS_CHECKED_IN, 'Checked in'),
        (STATUS_IN_PROGRESS, 'In progress'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_CANCELLED, 'Cancelled'),
        (STATUS_NO_SHOW, 'No show'),
    ]
    # statuses that no longer occupy their slot
    RELEASED_STATUSES = (STATUS_CANCELLED, STATUS_NO_SHOW)

    patient = models.ForeignKey(User, on_delete=models.CASCADE, related_name='patient_appointments')
    doctor = models.ForeignKey(User, on_delete=models.CASCADE, related_name='doctor_appointments')
    department = models.ForeignKey(
        Department, null=True, blank=True, on_delete=models.SET_NULL, related_name='appointments'
    )
    appointment_date = models.DateField()
    start_time = models.TimeField()
    end_time = models.TimeField()
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_SCHEDULED, db_index=True)
    reason = models.TextField(blank=True)
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=['doctor', 'appointment_date', 'start_time'],
                condition=~Q(status__in=['cancelled', 'no_show']),
                name='uniq_booked_slot',
            ),
        ]
        indexes = [
            models.Index(fields=['doctor', 'appointment_date'], name='clinic_appo_doctor__3c9e1a_idx'),
            models.Index(fields=['patient', 'appointment_date'], name='clinic_appo_patient_8d2f4b_idx'),
        ]
        ordering = ['appointment_date', 'start_time']

    def __str__(self):
        return f"Appt(d={self.doctor_id}, p={self.patient_id}, {self.appointment_date} {self.start_time:%H:%M})"


class QueueCounter(models.Model):
    """Last queue number handed out for a department on a day."""
    department = models.ForeignKey(Department, on_delete=models.CASCADE, related_name='queue_counters')
    day = models.DateField()
    last_number = models.PositiveIntegerField(default=0)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['department', 'day'], name='uniq_counter_department_day'),
        ]

    def __str__(self):
        return f"Counter({self.department_id}, {self.day}) = {self.last_number}"


class QueueEntry(models.Model):
    STATUS_CHOICES = [(s, s.capitalize()) for s in queueing.STATUSES]

    patient = models.ForeignKey(User, on_delete=models.CASCADE, related_name='queue_entries')
    department = models.ForeignKey(Department, on_delete=models.CASCADE, related_name='queue_entries')
    doctor = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='served_queue_entries'
    )
    queue_date = models.DateField(db_index=True)
    queue_number = models.PositiveIntegerField()
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=queueing.WAITING, db_index=True)
    check_in_time = models.DateTimeField()
    called_time = models.DateTimeField(null=True, blank=True)
    completed_time = models.DateTimeField(null=True, blank=True)
    reason = models.TextField(blank=True)
    estimated_wait_minutes = models.PositiveIntegerField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=['department', 'queue_date', 'queue_number'], name='uniq_queue_number_per_day'
            ),
        ]
        ordering = ['queue_number']

    def __str__(self) -> str:
        return f"#{self.queue_number} in {self.department_id} ({self.status})"


class QueueEntryTransition(models.Model):
    """Records an accepted status change of a queue entry."""
    entry = models.ForeignKey(QueueEntry, related_name='transitions', on_delete=models.CASCADE)
    from_status = models.CharField(max_length=16, null=True, blank=True)
    to_status = models.CharField(max_length=16)
    operator = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='queue_transitions'
    )
    timestamp = models.DateTimeField(auto_now_add=True)
    reason = models.CharField(max_length=255, blank=True)

    def __str__(self) -> str:
        return f"{self.entry_id}: {self.from_status} → {self.to_status}"


class AuditEvent(models.Model):
    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True)
    action = models.CharField(max_length=64)
    object_type = models.CharField(max_length=64, blank=True, null=True)
    object_id = models.BigIntegerField(blank=True, null=True)
    detail = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=['action', 'created_at'], name='clinic_audi_action_5e0a9d_idx'),
            models.Index(fields=['object_type', 'object_id', 'created_at'], name='clinic_audi_object__1f6c3e_idx'),
        ]
