"""
Management command to populate the database with demo clinic data.

Idempotent: departments and users are matched on their keys, so running
it twice leaves a single copy of everything.
"""
import datetime as dt

from django.contrib.auth.hashers import make_password
from django.core.management.base import BaseCommand
from django.utils import timezone

from clinic.models import Department, User
from clinic.services.appointments import upsert_schedule
from clinic.services.walkin import join_queue

DEPARTMENTS = [
    {'id': 'gen', 'name': 'General Medicine', 'location': 'Building A, 1F', 'avg_service_minutes': 15},
    {'id': 'ped', 'name': 'Pediatrics', 'location': 'Building A, 2F', 'avg_service_minutes': 20},
    {'id': 'ent', 'name': 'ENT', 'location': 'Building B, 1F', 'avg_service_minutes': 10},
]

STAFF = [
    ('dr_gen', 'doctor', 'gen'),
    ('dr_ped', 'doctor', 'ped'),
    ('nurse_gen', 'nurse', 'gen'),
    ('reception', 'receptionist', None),
    ('clinic_admin', 'admin', None),
]

PATIENTS = ['patient1', 'patient2', 'patient3', 'patient4']

# Monday to Friday, morning block
WEEKDAY_HOURS = ('09:00', '12:00')


class Command(BaseCommand):
    help = 'Populate database with demo departments, staff, schedules and a walk-in queue'

    def add_arguments(self, parser):
        parser.add_argument('--password', default='123456', help='password for every seeded user')
        parser.add_argument('--no-queue', action='store_true', help='skip seeding today\'s walk-in queue')

    def handle(self, *args, **options):
        password = make_password(options['password'])
        departments = self.create_departments()
        staff = self.create_staff(departments, password)
        patients = self.create_patients(password)
        self.create_schedules([u for u in staff if u.role == 'doctor'])
        if not options['no_queue']:
            self.create_queue(departments['gen'], patients)
        self.stdout.write(self.style.SUCCESS('Demo data ready.'))

    def create_departments(self):
        departments = {}
        for data in DEPARTMENTS:
            dept, created = Department.objects.get_or_create(id=data['id'], defaults=data)
            departments[dept.id] = dept
            self.stdout.write(f'department: {dept.name}{"" if created else " (exists)"}')
        return departments

    def create_staff(self, departments, password):
        users = []
        for username, role, dept_id in STAFF:
            user, _ = User.objects.get_or_create(
                username=username,
                defaults={
                    'password': password,
                    'role': role,
                    'department': departments.get(dept_id),
                    'first_name': username.split('_')[-1].capitalize(),
                    'is_staff': role == 'admin',
                },
            )
            users.append(user)
            self.stdout.write(f'staff: {user.username} ({user.role})')
        return users

    def create_patients(self, password):
        patients = []
        for username in PATIENTS:
            user, _ = User.objects.get_or_create(
                username=username,
                defaults={'password': password, 'role': 'patient', 'first_name': username.capitalize()},
            )
            patients.append(user)
        self.stdout.write(f'patients: {len(patients)}')
        return patients

    def create_schedules(self, doctors):
        start, end = WEEKDAY_HOURS
        for doctor in doctors:
            for day in range(1, 6):
                upsert_schedule(doctor, day, start, end)
            self.stdout.write(f'schedule: {doctor.username} Mon-Fri {start}-{end}')

    def create_queue(self, department, patients):
        today = timezone.localdate()
        if department.queue_entries.filter(queue_date=today).exists():
            self.stdout.write(f'queue: {department.name} already has entries for {today}')
            return
        now = timezone.now()
        for i, patient in enumerate(patients):
            join_queue(department, patient, 'walk-in', now=now + dt.timedelta(minutes=i))
        self.stdout.write(f'queue: {len(patients)} walk-ins for {department.name}')
