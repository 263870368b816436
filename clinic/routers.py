"""
URL mappings for the clinic API.

Paths are kept without trailing slashes to match what the front-end
calls.
"""
from django.urls import path

from .views import appointments, departments, queues, schedules
from .views.health import healthz

urlpatterns = [
    path('healthz', healthz, name='healthz'),
    # Departments
    path('api/departments', departments.list_departments, name='list_departments'),
    # Doctor schedules & slots
    path('api/doctors/<int:doctor_id>/schedule', schedules.doctor_schedule, name='doctor_schedule'),
    path('api/doctors/<int:doctor_id>/slots', appointments.doctor_slots, name='doctor_slots'),
    path('api/doctor/schedule', schedules.upsert_my_schedule, name='upsert_my_schedule'),
    path('api/doctor/schedule/deactivate', schedules.deactivate_my_schedule, name='deactivate_my_schedule'),
    path('api/doctor/time-off', schedules.add_my_time_off, name='add_my_time_off'),
    # Appointments
    path('api/appointments', appointments.list_appointments, name='list_appointments'),
    path('api/appointments/book', appointments.book, name='book_appointment'),
    path('api/appointments/update', appointments.update, name='update_appointment'),
    # Walk-in queue
    path('api/queue/join', queues.join, name='queue_join'),
    path('api/queue/board', queues.board, name='queue_board'),
    path('api/queue/entry', queues.entry_detail, name='queue_entry_detail'),
    path('api/queue/entry/withdraw', queues.withdraw, name='queue_entry_withdraw'),
    path('api/admin/queue/entry/update-status', queues.staff_update_status, name='queue_entry_update_status'),
]
