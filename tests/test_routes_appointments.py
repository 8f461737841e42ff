"""Tests for patient booking, the clinic dashboard and notification routes."""

from datetime import datetime, time, timedelta

import pytest

from dentcare.models.appointment import Appointment, AppointmentStatus

from conftest import auth_headers


def at(day, hour, minute=0):
    return datetime.combine(day, time(hour, minute)).isoformat()


@pytest.fixture
def booked(client, clinic, service, patient, monday):
    """A 09:00 Monday booking made through the API."""
    response = client.post("/api/appointments/book", headers=auth_headers(patient), json={
        "clinic_id": clinic.id,
        "service_id": service.id,
        "start_time": at(monday, 9),
        "patient_description": "Bleeding gums",
    })
    assert response.status_code == 200
    return response.json()["appointment"]


class TestBookingRoutes:
    """Tests for /api/appointments endpoints."""

    def test_book_appointment(self, booked, clinic):
        """POST /api/appointments/book should create a BOOKED appointment."""
        assert booked["status"] == "BOOKED"
        assert booked["clinic"]["id"] == clinic.id
        assert booked["service"]["duration_minutes"] == 30
        assert booked["end_time"].endswith("09:30:00")

    def test_taken_slot_conflicts(self, client, booked, clinic, service, other_patient, monday):
        """A second booking for the same time should 409 with the error envelope."""
        response = client.post("/api/appointments/book", headers=auth_headers(other_patient), json={
            "clinic_id": clinic.id, "service_id": service.id, "start_time": at(monday, 9),
        })
        assert response.status_code == 409
        assert response.json() == {"error": "This time slot is no longer available"}

    def test_before_opening_is_rejected(self, client, clinic, service, patient, monday):
        response = client.post("/api/appointments/book", headers=auth_headers(patient), json={
            "clinic_id": clinic.id, "service_id": service.id, "start_time": at(monday, 8),
        })
        assert response.status_code == 400
        assert response.json() == {"error": "Requested time is outside working hours (09:00-17:00)"}

    def test_missing_field_is_reported(self, client, clinic, patient):
        response = client.post("/api/appointments/book", headers=auth_headers(patient), json={
            "clinic_id": clinic.id,
        })
        assert response.status_code == 400
        assert "service_id" in response.json()["error"]

    def test_clinic_owner_cannot_book(self, client, clinic, service, owner, monday):
        response = client.post("/api/appointments/book", headers=auth_headers(owner), json={
            "clinic_id": clinic.id, "service_id": service.id, "start_time": at(monday, 10),
        })
        assert response.status_code == 403

    def test_booked_slot_leaves_the_slot_list(self, client, booked, clinic, service, monday):
        data = client.get(f"/api/clinics/{clinic.id}/slots", params={
            "date": monday.isoformat(), "serviceId": service.id,
        }).json()
        assert len(data["slots"]) == 15
        assert [s["start_time"] for s in data["booked_slots"]] == [at(monday, 9)]

    def test_my_appointments(self, client, booked, patient, other_patient):
        mine = client.get("/api/appointments/user", headers=auth_headers(patient)).json()
        assert [a["id"] for a in mine] == [booked["id"]]
        assert client.get("/api/appointments/user", headers=auth_headers(other_patient)).json() == []

    def test_view_single_appointment(self, client, booked, patient, owner, other_patient):
        url = f"/api/appointments/{booked['id']}"
        assert client.get(url, headers=auth_headers(patient)).status_code == 200
        assert client.get(url, headers=auth_headers(owner)).status_code == 200
        assert client.get(url, headers=auth_headers(other_patient)).status_code == 403

    def test_patient_cancels(self, client, booked, patient):
        response = client.patch(f"/api/appointments/{booked['id']}/cancel", headers=auth_headers(patient))
        assert response.status_code == 200
        assert response.json()["status"] == "CANCELLED"

        again = client.patch(f"/api/appointments/{booked['id']}/cancel", headers=auth_headers(patient))
        assert again.status_code == 400
        assert again.json() == {"error": "Cannot change appointment status from CANCELLED to CANCELLED as patient"}


class TestClinicDashboardRoutes:
    """Tests for /api/clinic endpoints."""

    def test_list_appointments_with_filters(self, client, booked, owner, monday):
        headers = auth_headers(owner)
        data = client.get("/api/clinic/appointments", headers=headers, params={"date": monday.isoformat()}).json()
        assert [a["id"] for a in data] == [booked["id"]]
        assert data[0]["patient"]["full_name"] == "Alice Tan"
        assert set(data[0]["allowed_transitions"]) == {"CONFIRMED", "IN_PROGRESS", "CANCELLED"}

        confirmed = client.get("/api/clinic/appointments", headers=headers, params={"status": "CONFIRMED"}).json()
        assert confirmed == []

    def test_status_walk(self, client, booked, owner):
        headers = auth_headers(owner)
        url = f"/api/clinic/appointments/{booked['id']}/status"
        for status in ("CONFIRMED", "IN_PROGRESS", "COMPLETED"):
            response = client.patch(url, headers=headers, json={"status": status})
            assert response.status_code == 200
            assert response.json()["status"] == status
        assert response.json()["allowed_transitions"] == []

    def test_invalid_transition(self, client, booked, owner):
        response = client.patch(
            f"/api/clinic/appointments/{booked['id']}/status",
            headers=auth_headers(owner),
            json={"status": "COMPLETED"},
        )
        assert response.status_code == 400
        assert response.json() == {"error": "Cannot change appointment status from BOOKED to COMPLETED as clinic staff"}

    def test_patient_cannot_use_dashboard(self, client, booked, patient):
        response = client.patch(
            f"/api/clinic/appointments/{booked['id']}/status",
            headers=auth_headers(patient),
            json={"status": "CONFIRMED"},
        )
        assert response.status_code == 403

    def test_notes(self, client, booked, owner):
        response = client.patch(
            f"/api/clinic/appointments/{booked['id']}/notes",
            headers=auth_headers(owner),
            json={"clinic_notes": "Deep scaling next visit"},
        )
        assert response.status_code == 200
        assert response.json()["clinic_notes"] == "Deep scaling next visit"

    def test_patient_detail(self, client, booked, owner, patient, other_patient):
        headers = auth_headers(owner)
        client.patch(f"/api/clinic/appointments/{booked['id']}/status", headers=headers, json={"status": "IN_PROGRESS"})
        client.patch(f"/api/clinic/appointments/{booked['id']}/status", headers=headers, json={"status": "COMPLETED"})

        response = client.get(f"/api/clinic/patients/{patient.id}", headers=headers)
        assert response.status_code == 200
        detail = response.json()
        assert detail["patient"]["full_name"] == "Alice Tan"
        assert detail["completed_appointments"] == 1
        assert detail["total_spent"] == 150.0
        assert [a["id"] for a in detail["appointments"]] == [booked["id"]]
        assert detail["treatment_plans"] == []

        stranger = client.get(f"/api/clinic/patients/{other_patient.id}", headers=headers)
        assert stranger.status_code == 403
        assert stranger.json() == {"error": "Patient not associated with this clinic"}
        assert client.get("/api/clinic/patients/999", headers=headers).status_code == 404

    def test_patients_and_analytics(self, client, db, booked, clinic, service, owner, patient):
        """Analytics covers the last N days up to now; upcoming and older visits are left out."""
        headers = auth_headers(owner)
        now = datetime.now().replace(second=0, microsecond=0)
        for days_ago in (3, 60):
            start = now - timedelta(days=days_ago)
            db.add(Appointment(
                clinic_id=clinic.id, patient_id=patient.id, service_id=service.id,
                start_time=start, end_time=start + timedelta(minutes=30),
                status=AppointmentStatus.COMPLETED, total_amount=service.price,
            ))
        db.commit()

        patients = client.get("/api/clinic/patients", headers=headers).json()
        assert patients[0]["id"] == patient.id
        assert patients[0]["total_appointments"] == 3

        analytics = client.get("/api/clinic/analytics", headers=headers, params={"days": 30}).json()
        assert analytics["total_appointments"] == 1
        assert analytics["by_status"]["COMPLETED"] == 1
        assert analytics["by_status"]["BOOKED"] == 0
        assert analytics["completed_revenue"] == 150.0
        assert analytics["popular_services"][0]["name"] == "Scaling & Polishing"


class TestNotificationRoutes:
    """Tests for /api/notifications endpoints."""

    def test_booking_notification_lifecycle(self, client, booked, patient, other_patient):
        headers = auth_headers(patient)
        notes = client.get("/api/notifications", headers=headers).json()
        assert len(notes) == 1
        assert notes[0]["type"] == "APPOINTMENT_CONFIRMED"
        assert notes[0]["is_read"] is False

        note_id = notes[0]["id"]
        assert client.put(f"/api/notifications/{note_id}/read", headers=auth_headers(other_patient)).status_code == 404
        assert client.put(f"/api/notifications/{note_id}/read", headers=headers).status_code == 200
        assert client.get("/api/notifications", headers=headers, params={"unread_only": True}).json() == []

        assert client.delete(f"/api/notifications/{note_id}", headers=headers).status_code == 200
        assert client.get("/api/notifications", headers=headers).json() == []

    def test_read_all(self, client, booked, patient):
        headers = auth_headers(patient)
        client.patch(f"/api/appointments/{booked['id']}/cancel", headers=headers)

        response = client.put("/api/notifications/read-all", headers=headers)
        assert response.status_code == 200
        assert response.json()["updated"] == 2
        assert all(n["is_read"] for n in client.get("/api/notifications", headers=headers).json())
