"""
Django admin registrations for the clinic models.

Gives superusers a quick way to inspect departments, schedules,
appointments and queue entries under ``/admin/``.
"""

from django.contrib import admin

from .models import (
    Appointment,
    AuditEvent,
    Department,
    DoctorSchedule,
    DoctorTimeOff,
    QueueCounter,
    QueueEntry,
    QueueEntryTransition,
    User,
)


@admin.register(Department)
class DepartmentAdmin(admin.ModelAdmin):
    list_display = ('id', 'name', 'location', 'is_active', 'avg_service_minutes')
    search_fields = ('id', 'name')


@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    list_display = ('username', 'role', 'department', 'is_staff', 'is_superuser')
    list_filter = ('role', 'department')
    search_fields = ('username', 'first_name', 'last_name')


@admin.register(DoctorSchedule)
class DoctorScheduleAdmin(admin.ModelAdmin):
    list_display = ('doctor', 'day_of_week', 'start_time', 'end_time', 'slot_duration_minutes', 'is_active')
    list_filter = ('day_of_week', 'is_active')


@admin.register(DoctorTimeOff)
class DoctorTimeOffAdmin(admin.ModelAdmin):
    list_display = ('doctor', 'start_datetime', 'end_datetime', 'reason')


@admin.register(Appointment)
class AppointmentAdmin(admin.ModelAdmin):
    list_display = ('id', 'appointment_date', 'start_time', 'end_time', 'doctor', 'patient', 'status')
    list_filter = ('status', 'department', 'appointment_date')
    search_fields = ('patient__username', 'doctor__username')


class QueueEntryTransitionInline(admin.TabularInline):
    model = QueueEntryTransition
    extra = 0
    readonly_fields = ('from_status', 'to_status', 'operator', 'timestamp', 'reason')


@admin.register(QueueEntry)
class QueueEntryAdmin(admin.ModelAdmin):
    list_display = ('queue_number', 'department', 'queue_date', 'patient', 'status', 'check_in_time')
    list_filter = ('status', 'department', 'queue_date')
    inlines = [QueueEntryTransitionInline]


@admin.register(QueueCounter)
class QueueCounterAdmin(admin.ModelAdmin):
    list_display = ('department', 'day', 'last_number')
    readonly_fields = ('last_number',)


@admin.register(AuditEvent)
class AuditEventAdmin(admin.ModelAdmin):
    list_display = ('action', 'user', 'object_type', 'object_id', 'created_at')
    list_filter = ('action',)
