"""Tests for booking and the appointment status lifecycle."""

import threading
from datetime import datetime, time, timedelta, timezone

import pytest
from sqlalchemy.exc import IntegrityError

from dentcare.core import appointments as lifecycle
from dentcare.core.exceptions import (
    BusinessRuleError,
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
    SlotUnavailableError,
)
from dentcare.core.security import Actor, ActorRole
from dentcare.models.appointment import Appointment, AppointmentStatus, PaymentStatus
from dentcare.models.clinic import Clinic, ClinicStatus
from dentcare.models.notification import Notification, NotificationType
from dentcare.models.service import Service
from dentcare.models.working_hours import DayOfWeek, WorkingHours

from conftest import make_user

S = AppointmentStatus


def at(day, hour, minute=0):
    return datetime.combine(day, time(hour, minute))


class TestCreateAppointment:
    """Booking validation."""

    def test_books_inside_working_hours(self, db, clinic, service, patient, monday):
        appointment = lifecycle.create_appointment(db, clinic.id, service.id, patient.id, at(monday, 9))

        assert appointment.status == S.BOOKED
        assert appointment.end_time == at(monday, 9, 30)
        assert appointment.total_amount == 150.0
        assert appointment.payment_status == PaymentStatus.PENDING

    def test_booking_notifies_patient(self, db, clinic, service, patient, monday):
        appointment = lifecycle.create_appointment(db, clinic.id, service.id, patient.id, at(monday, 9))

        notes = db.query(Notification).filter(Notification.user_id == patient.id).all()
        assert len(notes) == 1
        assert notes[0].appointment_id == appointment.id
        assert notes[0].type == NotificationType.APPOINTMENT_CONFIRMED

    def test_before_opening_is_rejected(self, db, clinic, service, patient, monday):
        """08:00 on a 09:00-17:00 Monday is a business-rule error and creates nothing."""
        with pytest.raises(BusinessRuleError, match="outside working hours"):
            lifecycle.create_appointment(db, clinic.id, service.id, patient.id, at(monday, 8))

        assert db.query(Appointment).count() == 0

    def test_closed_day_is_rejected(self, db, clinic, service, patient, monday):
        with pytest.raises(BusinessRuleError, match="closed on Tuesdays"):
            lifecycle.create_appointment(db, clinic.id, service.id, patient.id, at(monday + timedelta(days=1), 10))

    def test_past_time_is_rejected(self, db, clinic, service, patient, monday):
        with pytest.raises(BusinessRuleError, match="in the past"):
            lifecycle.create_appointment(
                db, clinic.id, service.id, patient.id, at(monday, 10), now=at(monday, 11)
            )

    def test_overlapping_booking_is_rejected(self, db, clinic, service, long_service, patient, other_patient, monday):
        lifecycle.create_appointment(db, clinic.id, long_service.id, patient.id, at(monday, 10))

        with pytest.raises(SlotUnavailableError):
            lifecycle.create_appointment(db, clinic.id, service.id, other_patient.id, at(monday, 10, 30))
        assert db.query(Appointment).count() == 1

    def test_adjacent_booking_is_allowed(self, db, clinic, service, patient, other_patient, monday):
        lifecycle.create_appointment(db, clinic.id, service.id, patient.id, at(monday, 10))
        second = lifecycle.create_appointment(db, clinic.id, service.id, other_patient.id, at(monday, 10, 30))
        assert second.start_time == at(monday, 10, 30)

    def test_cancelled_slot_can_be_rebooked(self, db, clinic, service, patient, other_patient, patient_actor, monday):
        first = lifecycle.create_appointment(db, clinic.id, service.id, patient.id, at(monday, 11))
        lifecycle.cancel_appointment(db, first.id, patient_actor)

        second = lifecycle.create_appointment(db, clinic.id, service.id, other_patient.id, at(monday, 11))
        assert second.status == S.BOOKED

    def test_patient_cannot_double_book_themselves(self, db, clinic, service, patient, monday):
        other_owner = make_user(db, "owner@another.example.com")
        other = Clinic(owner_id=other_owner.id, name="Other", address="Elsewhere", status=ClinicStatus.APPROVED)
        db.add(other)
        db.commit()
        db.add(WorkingHours(clinic_id=other.id, day=DayOfWeek.MONDAY, open_time=time(9, 0), close_time=time(17, 0)))
        other_service = Service(clinic_id=other.id, name="Checkup", duration_minutes=30, category="General", price=0)
        db.add(other_service)
        db.commit()

        lifecycle.create_appointment(db, clinic.id, service.id, patient.id, at(monday, 9))
        with pytest.raises(SlotUnavailableError, match="already have an appointment"):
            lifecycle.create_appointment(db, other.id, other_service.id, patient.id, at(monday, 9))

    def test_unknown_service_is_not_found(self, db, clinic, patient, monday):
        with pytest.raises(NotFoundError):
            lifecycle.create_appointment(db, clinic.id, 4242, patient.id, at(monday, 9))

    def test_seconds_are_dropped(self, db, clinic, service, patient, monday):
        appointment = lifecycle.create_appointment(
            db, clinic.id, service.id, patient.id, at(monday, 9).replace(second=42)
        )
        assert appointment.start_time == at(monday, 9)

    def test_aware_time_is_converted_to_local(self, db, clinic, service, patient, monday):
        local = at(monday, 10).astimezone()
        utc = local.astimezone(timezone.utc)

        appointment = lifecycle.create_appointment(db, clinic.id, service.id, patient.id, utc)
        assert appointment.start_time == at(monday, 10)

    def test_offsets_hours_apart_do_not_collide(self, db, clinic, service, patient, other_patient, monday):
        """The same wall-clock hour in two different zones is two different instants."""
        offset = at(monday, 10).astimezone().utcoffset()
        here = at(monday, 10).replace(tzinfo=timezone(offset))
        west = at(monday, 10).replace(tzinfo=timezone(offset - timedelta(hours=4)))

        first = lifecycle.create_appointment(db, clinic.id, service.id, patient.id, here)
        second = lifecycle.create_appointment(db, clinic.id, service.id, other_patient.id, west)

        assert first.start_time == at(monday, 10)
        assert second.start_time == at(monday, 14)


class TestConcurrentBooking:
    """Two patients racing for the same slot."""

    def test_only_one_of_two_simultaneous_bookings_wins(
        self, session_factory, clinic, service, patient, other_patient, monday
    ):
        clinic_id, service_id = clinic.id, service.id
        barrier = threading.Barrier(2)
        outcomes = []

        def attempt(patient_id):
            session = session_factory()
            try:
                barrier.wait()
                lifecycle.create_appointment(session, clinic_id, service_id, patient_id, at(monday, 9))
                outcomes.append("booked")
            except SlotUnavailableError:
                outcomes.append("conflict")
            finally:
                session.close()

        threads = [threading.Thread(target=attempt, args=(pid,)) for pid in (patient.id, other_patient.id)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(outcomes) == ["booked", "conflict"]
        check = session_factory()
        try:
            assert check.query(Appointment).filter(Appointment.start_time == at(monday, 9)).count() == 1
        finally:
            check.close()

    def test_unique_index_rejects_duplicate_start(self, db, clinic, service, patient, other_patient, monday):
        """The database refuses a second live row at the same clinic start time."""
        for pid in (patient.id, other_patient.id):
            db.add(Appointment(
                clinic_id=clinic.id, patient_id=pid, service_id=service.id,
                start_time=at(monday, 9), end_time=at(monday, 9, 30), status=S.BOOKED,
            ))
        with pytest.raises(IntegrityError):
            db.commit()
        db.rollback()


class TestTransitions:
    """Role-checked status changes."""

    @pytest.fixture
    def appointment(self, db, clinic, service, patient, monday):
        return lifecycle.create_appointment(db, clinic.id, service.id, patient.id, at(monday, 9))

    def test_staff_walks_the_happy_path(self, db, appointment, staff):
        for status in (S.CONFIRMED, S.IN_PROGRESS, S.COMPLETED):
            appointment = lifecycle.set_status(db, appointment.id, status, staff)
        assert appointment.status == S.COMPLETED

    def test_staff_can_start_without_confirming(self, db, appointment, staff):
        assert lifecycle.set_status(db, appointment.id, S.IN_PROGRESS, staff).status == S.IN_PROGRESS

    def test_cannot_skip_to_completed(self, db, appointment, staff):
        with pytest.raises(InvalidTransitionError):
            lifecycle.set_status(db, appointment.id, S.COMPLETED, staff)

    @pytest.mark.parametrize("terminal", [S.COMPLETED, S.CANCELLED])
    @pytest.mark.parametrize("role", list(ActorRole))
    def test_terminal_statuses_are_final_for_every_role(self, db, appointment, clinic, patient, terminal, role):
        appointment.status = terminal
        db.commit()
        actor = Actor(
            user_id=patient.id if role == ActorRole.PATIENT else clinic.owner_id,
            role=role,
            clinic_id=clinic.id if role == ActorRole.CLINIC_STAFF else None,
        )

        for target in AppointmentStatus:
            with pytest.raises(InvalidTransitionError):
                lifecycle.set_status(db, appointment.id, target, actor)

    def test_no_transition_enters_no_show(self, db, appointment, staff):
        with pytest.raises(InvalidTransitionError):
            lifecycle.set_status(db, appointment.id, S.NO_SHOW, staff)

    def test_patient_can_cancel(self, db, appointment, patient_actor):
        cancelled = lifecycle.cancel_appointment(db, appointment.id, patient_actor)
        assert cancelled.status == S.CANCELLED

        note = db.query(Notification).filter(Notification.type == NotificationType.APPOINTMENT_CANCELLED).one()
        assert note.user_id == appointment.patient_id

    def test_patient_cannot_confirm(self, db, appointment, patient_actor):
        with pytest.raises(InvalidTransitionError, match="as patient"):
            lifecycle.set_status(db, appointment.id, S.CONFIRMED, patient_actor)

    def test_patient_cannot_cancel_once_in_progress(self, db, appointment, staff, patient_actor):
        lifecycle.set_status(db, appointment.id, S.IN_PROGRESS, staff)
        with pytest.raises(InvalidTransitionError):
            lifecycle.cancel_appointment(db, appointment.id, patient_actor)

    def test_other_patient_is_denied(self, db, appointment, other_patient):
        intruder = Actor(user_id=other_patient.id, role=ActorRole.PATIENT)
        with pytest.raises(PermissionDeniedError):
            lifecycle.cancel_appointment(db, appointment.id, intruder)

    def test_staff_of_another_clinic_is_denied(self, db, appointment, owner):
        outsider = Actor(user_id=owner.id, role=ActorRole.CLINIC_STAFF, clinic_id=appointment.clinic_id + 1)
        with pytest.raises(PermissionDeniedError):
            lifecycle.set_status(db, appointment.id, S.CONFIRMED, outsider)

    def test_admin_has_no_transitions(self, db, appointment, admin):
        with pytest.raises(InvalidTransitionError):
            lifecycle.set_status(db, appointment.id, S.CANCELLED, Actor(user_id=admin.id, role=ActorRole.ADMIN))

    def test_notes_are_staff_only(self, db, appointment, staff, patient_actor):
        assert lifecycle.update_notes(db, appointment.id, "Sensitive upper left", staff).clinic_notes == (
            "Sensitive upper left"
        )
        with pytest.raises(PermissionDeniedError):
            lifecycle.update_notes(db, appointment.id, "hi", patient_actor)

    def test_allowed_next_statuses(self):
        assert lifecycle.allowed_next_statuses(S.BOOKED, ActorRole.PATIENT) == frozenset({S.CANCELLED})
        assert lifecycle.allowed_next_statuses(S.IN_PROGRESS, ActorRole.CLINIC_STAFF) == frozenset({S.COMPLETED})
        assert lifecycle.allowed_next_statuses(S.NO_SHOW, ActorRole.CLINIC_STAFF) == frozenset()
