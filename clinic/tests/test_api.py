"""
Integration tests for the clinic HTTP API.

These exercise booking against a doctor's weekly schedule, the walk-in
queue lifecycle as driven from the staff board, role based access and
the unified error envelope.  The tests use Django REST Framework's
APIClient within the APITestCase base class.

To run the tests:

```
pytest -q clinic/tests
```
"""
import datetime as dt

from django.conf import settings
from django.core.cache import cache
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.authtoken.models import Token
from rest_framework.test import APIClient, APITestCase

from ..models import Appointment, Department, QueueEntry, User
from ..scheduling import day_of_week


class ClinicAPITests(APITestCase):
    def setUp(self) -> None:
        """Two departments, a doctor and a nurse in the first, two patients."""
        cache.clear()
        self.gen = Department.objects.create(id="gen", name="General Medicine")
        self.ped = Department.objects.create(id="ped", name="Pediatrics", avg_service_minutes=20)
        self.doctor = User.objects.create_user(
            username="dr_gen", password="P@ssw0rd1", role="doctor", department=self.gen,
        )
        self.nurse = User.objects.create_user(
            username="nurse_gen", password="P@ssw0rd1", role="nurse", department=self.gen,
        )
        self.ped_nurse = User.objects.create_user(
            username="nurse_ped", password="P@ssw0rd1", role="nurse", department=self.ped,
        )
        self.patient1 = User.objects.create_user(username="patient1", password="P@ssw0rd1", role="patient")
        self.patient2 = User.objects.create_user(username="patient2", password="P@ssw0rd1", role="patient")
        self.tomorrow = timezone.localdate() + dt.timedelta(days=1)

    def authenticate(self, user: User) -> APIClient:
        """Return an authenticated APIClient for the given user."""
        client = APIClient()
        client.force_authenticate(user=user)
        return client

    def publish_schedule(self):
        client = self.authenticate(self.doctor)
        return client.put(
            reverse("upsert_my_schedule"),
            {"dayOfWeek": day_of_week(self.tomorrow), "startTime": "09:00", "endTime": "10:10"},
            format="json",
        )

    def join(self, user, department_id="gen"):
        return self.authenticate(user).post(reverse("queue_join"), {"departmentId": department_id}, format="json")

    # -------------------------------------------------------------- basics

    def test_healthz(self):
        response = self.client.get(reverse("healthz"))
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()["ok"])

    def test_anonymous_requests_are_rejected(self):
        response = APIClient().get(reverse("list_departments"))
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertFalse(response.data["ok"])

    def test_token_header_authenticates(self):
        token = Token.objects.create(user=self.patient1)
        client = APIClient()
        client.credentials(HTTP_AUTHORIZATION=f"Token {token.key}")
        response = client.get(reverse("list_departments"))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        by_id = {d["id"]: d for d in response.data["data"]}
        self.assertEqual(by_id["gen"]["avgServiceMinutes"], 15)
        self.assertEqual(by_id["ped"]["avgServiceMinutes"], 20)

    def test_request_id_header_is_set(self):
        response = self.authenticate(self.patient1).get(reverse("list_departments"))
        self.assertTrue(response["X-Request-ID"])

    # -------------------------------------------------------------- schedules & slots

    def test_doctor_publishes_schedule_and_patient_sees_slots(self):
        response = self.publish_schedule()
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["data"]["slotDurationMinutes"], 30)

        client = self.authenticate(self.patient1)
        schedule = client.get(reverse("doctor_schedule", args=[self.doctor.id]))
        self.assertEqual(len(schedule.data["data"]), 1)
        self.assertEqual(schedule.data["data"][0]["startTime"], "09:00:00")

        slots = client.get(reverse("doctor_slots", args=[self.doctor.id]), {"date": self.tomorrow.isoformat()})
        self.assertEqual(slots.status_code, status.HTTP_200_OK)
        self.assertEqual(slots.data["slots"], ["09:00", "09:30"])
        self.assertEqual(slots.data["dayOfWeek"], day_of_week(self.tomorrow))

    def test_patient_cannot_edit_schedule(self):
        client = self.authenticate(self.patient1)
        response = client.put(
            reverse("upsert_my_schedule"),
            {"dayOfWeek": 1, "startTime": "09:00", "endTime": "12:00"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_malformed_schedule_time_is_rejected(self):
        client = self.authenticate(self.doctor)
        response = client.put(
            reverse("upsert_my_schedule"),
            {"dayOfWeek": 1, "startTime": "9am", "endTime": "12:00"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["error"]["code"], "malformed_time")

    def test_slots_empty_without_rule(self):
        client = self.authenticate(self.patient1)
        response = client.get(reverse("doctor_slots", args=[self.doctor.id]), {"date": self.tomorrow.isoformat()})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["slots"], [])
        self.assertIsNone(response.data["slotDurationMinutes"])

    def test_slots_malformed_date(self):
        client = self.authenticate(self.patient1)
        response = client.get(reverse("doctor_slots", args=[self.doctor.id]), {"date": "2024-02-30"})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["error"]["code"], "malformed_time")

    def test_slots_only_within_booking_window(self):
        for day in range(7):
            self.authenticate(self.doctor).put(
                reverse("upsert_my_schedule"),
                {"dayOfWeek": day, "startTime": "09:00", "endTime": "10:00"},
                format="json",
            )
        client = self.authenticate(self.patient1)
        url = reverse("doctor_slots", args=[self.doctor.id])
        today = timezone.localdate()
        last = today + dt.timedelta(days=settings.BOOKING_WINDOW_DAYS)
        self.assertEqual(client.get(url, {"date": self.tomorrow.isoformat()}).data["slots"], ["09:00", "09:30"])
        self.assertEqual(client.get(url, {"date": last.isoformat()}).data["slots"], ["09:00", "09:30"])
        for date in (today - dt.timedelta(days=1), today, last + dt.timedelta(days=1)):
            response = client.get(url, {"date": date.isoformat()})
            self.assertEqual(response.status_code, status.HTTP_200_OK)
            self.assertEqual(response.data["slots"], [])
            self.assertIsNone(response.data["slotDurationMinutes"])

    def test_deactivated_day_offers_no_slots(self):
        self.publish_schedule()
        client = self.authenticate(self.doctor)
        response = client.post(
            reverse("deactivate_my_schedule"), {"dayOfWeek": day_of_week(self.tomorrow)}, format="json",
        )
        self.assertEqual(response.data["deactivated"], 1)
        slots = client.get(reverse("doctor_slots", args=[self.doctor.id]), {"date": self.tomorrow.isoformat()})
        self.assertEqual(slots.data["slots"], [])

    def test_time_off_removes_slots(self):
        self.publish_schedule()
        start = timezone.make_aware(dt.datetime.combine(self.tomorrow, dt.time(9, 0)))
        response = self.authenticate(self.doctor).post(
            reverse("add_my_time_off"),
            {"start": start.isoformat(), "end": (start + dt.timedelta(minutes=30)).isoformat(), "reason": "ward round"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        slots = self.authenticate(self.patient1).get(
            reverse("doctor_slots", args=[self.doctor.id]), {"date": self.tomorrow.isoformat()},
        )
        self.assertEqual(slots.data["slots"], ["09:30"])

    # -------------------------------------------------------------- appointments

    def test_booking_takes_the_slot(self):
        self.publish_schedule()
        client = self.authenticate(self.patient1)
        payload = {"doctorId": self.doctor.id, "date": self.tomorrow.isoformat(), "startTime": "09:30"}
        response = client.post(reverse("book_appointment"), payload, format="json")
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data["data"]["endTime"], "10:00")
        self.assertEqual(response.data["data"]["departmentId"], "gen")

        slots = client.get(reverse("doctor_slots", args=[self.doctor.id]), {"date": self.tomorrow.isoformat()})
        self.assertEqual(slots.data["slots"], ["09:00"])

        clash = self.authenticate(self.patient2).post(reverse("book_appointment"), payload, format="json")
        self.assertEqual(clash.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(clash.data["error"]["code"], "slot_unavailable")

    def test_booking_off_grid_is_rejected(self):
        self.publish_schedule()
        response = self.authenticate(self.patient1).post(
            reverse("book_appointment"),
            {"doctorId": self.doctor.id, "date": self.tomorrow.isoformat(), "startTime": "09:10"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_staff_cannot_book_as_patient(self):
        self.publish_schedule()
        response = self.authenticate(self.nurse).post(
            reverse("book_appointment"),
            {"doctorId": self.doctor.id, "date": self.tomorrow.isoformat(), "startTime": "09:00"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_appointment_visibility_and_cancellation(self):
        self.publish_schedule()
        booked = self.authenticate(self.patient1).post(
            reverse("book_appointment"),
            {"doctorId": self.doctor.id, "date": self.tomorrow.isoformat(), "startTime": "09:00"},
            format="json",
        )
        appt_id = booked.data["data"]["id"]

        mine = self.authenticate(self.patient1).get(reverse("list_appointments"))
        self.assertEqual([a["id"] for a in mine.data["data"]], [appt_id])
        theirs = self.authenticate(self.patient2).get(reverse("list_appointments"))
        self.assertEqual(theirs.data["data"], [])
        doctors = self.authenticate(self.doctor).get(reverse("list_appointments"), {"status": "scheduled"})
        self.assertEqual(len(doctors.data["data"]), 1)

        other = self.authenticate(self.patient2).post(
            reverse("update_appointment"), {"id": appt_id, "status": "cancelled"}, format="json",
        )
        self.assertEqual(other.status_code, status.HTTP_403_FORBIDDEN)
        upgrade = self.authenticate(self.patient1).post(
            reverse("update_appointment"), {"id": appt_id, "status": "completed"}, format="json",
        )
        self.assertEqual(upgrade.status_code, status.HTTP_403_FORBIDDEN)

        cancel = self.authenticate(self.patient1).post(
            reverse("update_appointment"), {"id": appt_id, "status": "cancelled"}, format="json",
        )
        self.assertEqual(cancel.status_code, status.HTTP_200_OK)
        self.assertEqual(Appointment.objects.get(pk=appt_id).status, "cancelled")

    def test_doctor_adds_notes(self):
        self.publish_schedule()
        booked = self.authenticate(self.patient1).post(
            reverse("book_appointment"),
            {"doctorId": self.doctor.id, "date": self.tomorrow.isoformat(), "startTime": "09:00"},
            format="json",
        )
        response = self.authenticate(self.doctor).post(
            reverse("update_appointment"),
            {"id": booked.data["data"]["id"], "status": "checked_in", "notes": "<script>x</script>BP normal"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["data"]["status"], "checked_in")
        self.assertNotIn("<script>", response.data["data"]["notes"])

    # -------------------------------------------------------------- walk-in queue

    def test_patients_join_in_order(self):
        first = self.join(self.patient1)
        second = self.join(self.patient2)
        self.assertEqual(first.status_code, status.HTTP_201_CREATED)
        self.assertEqual(first.data["data"]["queueNumber"], 1)
        self.assertEqual(second.data["data"]["queueNumber"], 2)
        self.assertEqual(second.data["data"]["estimatedWaitMinutes"], 30)
        self.assertEqual(second.data["data"]["status"], "waiting")

    def test_join_uses_department_service_time(self):
        response = self.join(self.patient1, "ped")
        self.assertEqual(response.data["data"]["estimatedWaitMinutes"], 20)

    def test_join_unknown_department(self):
        response = self.join(self.patient1, "nope")
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_staff_cannot_join(self):
        response = self.join(self.nurse)
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_board_lanes_follow_staff_actions(self):
        ids = [self.join(p).data["data"]["id"] for p in (self.patient1, self.patient2)]
        client = self.authenticate(self.nurse)
        called = client.post(
            reverse("queue_entry_update_status"), {"id": ids[1], "action": "call"}, format="json",
        )
        self.assertEqual(called.status_code, status.HTTP_200_OK)
        self.assertEqual(called.data["newStatus"], "called")
        self.assertIsNotNone(called.data["data"]["calledTime"])

        board = self.authenticate(self.patient1).get(reverse("queue_board"), {"departmentId": "gen"})
        self.assertEqual(board.status_code, status.HTTP_200_OK)
        self.assertEqual(board.data["pollIntervalSeconds"], 30)
        self.assertEqual([e["queueNumber"] for e in board.data["waiting"]], [1])
        self.assertEqual([e["queueNumber"] for e in board.data["called"]], [2])
        self.assertEqual(board.data["counts"], {"waiting": 1, "called": 1, "serving": 0})

    def test_illegal_status_change_is_conflict(self):
        entry_id = self.join(self.patient1).data["data"]["id"]
        response = self.authenticate(self.nurse).post(
            reverse("queue_entry_update_status"), {"id": entry_id, "status": "serving"}, format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data["error"]["code"], "invalid_transition")
        self.assertEqual(QueueEntry.objects.get(pk=entry_id).status, "waiting")

    def test_doctor_serves_and_completes(self):
        entry_id = self.join(self.patient1).data["data"]["id"]
        client = self.authenticate(self.doctor)
        for action, expected in (("call", "called"), ("serve", "serving"), ("complete", "completed")):
            response = client.post(
                reverse("queue_entry_update_status"), {"id": entry_id, "action": action}, format="json",
            )
            self.assertEqual(response.data["newStatus"], expected)
        entry = QueueEntry.objects.get(pk=entry_id)
        self.assertEqual(entry.doctor_id, self.doctor.id)
        self.assertIsNotNone(entry.completed_time)

        board = client.get(reverse("queue_board"), {"departmentId": "gen"})
        self.assertEqual(board.data["counts"], {"waiting": 0, "called": 0, "serving": 0})

    def test_no_show_path(self):
        entry_id = self.join(self.patient1).data["data"]["id"]
        client = self.authenticate(self.nurse)
        client.post(reverse("queue_entry_update_status"), {"id": entry_id, "action": "call"}, format="json")
        response = client.post(
            reverse("queue_entry_update_status"), {"id": entry_id, "action": "no_show"}, format="json",
        )
        self.assertEqual(response.data["newStatus"], "cancelled")

    def test_staff_of_other_department_cannot_update(self):
        entry_id = self.join(self.patient1).data["data"]["id"]
        response = self.authenticate(self.ped_nurse).post(
            reverse("queue_entry_update_status"), {"id": entry_id, "action": "call"}, format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_update_requires_exactly_one_of_action_or_status(self):
        entry_id = self.join(self.patient1).data["data"]["id"]
        response = self.authenticate(self.nurse).post(
            reverse("queue_entry_update_status"),
            {"id": entry_id, "action": "call", "status": "called"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_patient_withdraws_only_own_waiting_entry(self):
        mine = self.join(self.patient1).data["data"]["id"]
        theirs = self.join(self.patient2).data["data"]["id"]
        client = self.authenticate(self.patient1)

        forbidden = client.post(reverse("queue_entry_withdraw"), {"id": theirs}, format="json")
        self.assertEqual(forbidden.status_code, status.HTTP_403_FORBIDDEN)

        ok = client.post(reverse("queue_entry_withdraw"), {"id": mine}, format="json")
        self.assertEqual(ok.status_code, status.HTTP_200_OK)
        self.assertEqual(ok.data["data"]["status"], "cancelled")

        again = client.post(reverse("queue_entry_withdraw"), {"id": mine}, format="json")
        self.assertEqual(again.status_code, status.HTTP_409_CONFLICT)

    def test_entry_detail_shows_history(self):
        entry_id = self.join(self.patient1).data["data"]["id"]
        self.authenticate(self.nurse).post(
            reverse("queue_entry_update_status"), {"id": entry_id, "action": "call"}, format="json",
        )
        response = self.authenticate(self.patient1).get(reverse("queue_entry_detail"), {"id": entry_id})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        history = response.data["data"]["transitionHistory"]
        self.assertEqual([(h["from"], h["to"]) for h in history], [(None, "waiting"), ("waiting", "called")])
        self.assertEqual(history[1]["operator"], "nurse_gen")

        stranger = self.authenticate(self.patient2).get(reverse("queue_entry_detail"), {"id": entry_id})
        self.assertEqual(stranger.status_code, status.HTTP_403_FORBIDDEN)
