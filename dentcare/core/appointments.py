"""Appointment booking and lifecycle.

Every status change goes through :func:`set_status`, which consults
``ROLE_TRANSITIONS`` for the calling actor. COMPLETED and CANCELLED are
terminal; NO_SHOW is never entered nor left.
"""
import logging
import threading
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Dict, FrozenSet, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from dentcare.core import notifications
from dentcare.core import working_hours as hours_store
from dentcare.core.availability import working_hours_violation
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
from dentcare.models.service import Service
from dentcare.models.working_hours import DayOfWeek

logger = logging.getLogger(__name__)

S = AppointmentStatus

ALLOWED_TRANSITIONS: Dict[AppointmentStatus, FrozenSet[AppointmentStatus]] = {
    S.BOOKED: frozenset({S.CONFIRMED, S.IN_PROGRESS, S.CANCELLED}),
    S.CONFIRMED: frozenset({S.IN_PROGRESS, S.CANCELLED}),
    S.IN_PROGRESS: frozenset({S.COMPLETED}),
    S.COMPLETED: frozenset(),
    S.CANCELLED: frozenset(),
    S.NO_SHOW: frozenset(),
}

ROLE_TRANSITIONS: Dict[ActorRole, Dict[AppointmentStatus, FrozenSet[AppointmentStatus]]] = {
    ActorRole.CLINIC_STAFF: ALLOWED_TRANSITIONS,
    ActorRole.PATIENT: {
        S.BOOKED: frozenset({S.CANCELLED}),
        S.CONFIRMED: frozenset({S.CANCELLED}),
    },
    ActorRole.ADMIN: {},
}

# Statuses that still occupy the chair
BLOCKING_STATUSES = [status for status in AppointmentStatus if status != S.CANCELLED]

_booking_locks: Dict[int, threading.Lock] = defaultdict(threading.Lock)
_booking_locks_guard = threading.Lock()


def _clinic_lock(clinic_id: int) -> threading.Lock:
    with _booking_locks_guard:
        return _booking_locks[clinic_id]


def allowed_next_statuses(current: AppointmentStatus, role: ActorRole) -> FrozenSet[AppointmentStatus]:
    return ROLE_TRANSITIONS.get(role, {}).get(current, frozenset())


def check_transition(current: AppointmentStatus, new: AppointmentStatus, role: ActorRole) -> None:
    if new not in allowed_next_statuses(current, role):
        raise InvalidTransitionError(current, new, role)


def _find_overlap(db: Session, start: datetime, end: datetime, **filters) -> Optional[Appointment]:
    query = db.query(Appointment).filter(
        Appointment.status.in_(BLOCKING_STATUSES),
        Appointment.start_time < end,
        Appointment.end_time > start
    )
    for column, value in filters.items():
        query = query.filter(getattr(Appointment, column) == value)
    return query.first()


def create_appointment(
    db: Session,
    clinic_id: int,
    service_id: int,
    patient_id: int,
    start_time: datetime,
    patient_description: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Appointment:
    clinic = db.query(Clinic).filter(
        Clinic.id == clinic_id,
        Clinic.status == ClinicStatus.APPROVED
    ).first()
    if not clinic:
        raise NotFoundError("Clinic not found or not available")

    service = db.query(Service).filter(
        Service.id == service_id,
        Service.clinic_id == clinic_id,
        Service.is_active == True
    ).first()
    if not service:
        raise NotFoundError("Service not found or not available")

    # Stored times are naive server-local wall clock
    if start_time.tzinfo is not None:
        start_time = start_time.astimezone().replace(tzinfo=None)
    start_time = start_time.replace(second=0, microsecond=0)
    if start_time <= (now or datetime.now()):
        raise BusinessRuleError("Cannot book appointments in the past")

    end_time = start_time + timedelta(minutes=service.duration_minutes)
    hours = hours_store.get_day(db, clinic_id, DayOfWeek.from_date(start_time))
    violation = working_hours_violation(hours, start_time, end_time)
    if violation:
        logger.info(f"Rejected booking at clinic {clinic_id} for {start_time}: {violation}")
        raise BusinessRuleError(violation)

    with _clinic_lock(clinic_id):
        if _find_overlap(db, start_time, end_time, clinic_id=clinic_id):
            logger.info(f"Rejected booking at clinic {clinic_id} for {start_time}: slot taken")
            raise SlotUnavailableError("This time slot is no longer available")
        if _find_overlap(db, start_time, end_time, patient_id=patient_id):
            raise SlotUnavailableError("You already have an appointment scheduled during this time")

        appointment = Appointment(
            clinic_id=clinic_id,
            patient_id=patient_id,
            service_id=service_id,
            start_time=start_time,
            end_time=end_time,
            status=S.BOOKED,
            patient_description=patient_description,
            total_amount=service.price,
            payment_status=PaymentStatus.PENDING,
        )
        db.add(appointment)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            logger.warning(f"Concurrent booking detected at clinic {clinic_id} for {start_time}")
            raise SlotUnavailableError(
                "This time slot has just been booked by another patient. Please select a different time."
            )

    db.refresh(appointment)
    logger.info(f"Appointment {appointment.id} booked at clinic {clinic_id} for {start_time}")
    notifications.notify_status_change(db, appointment)
    return appointment


def get_appointment_for(db: Session, appointment_id: int, actor: Actor) -> Appointment:
    """Load an appointment the actor is entitled to see."""
    appointment = db.query(Appointment).filter(Appointment.id == appointment_id).first()
    if not appointment:
        raise NotFoundError("Appointment not found")

    if actor.role == ActorRole.CLINIC_STAFF:
        if appointment.clinic_id != actor.clinic_id:
            raise PermissionDeniedError("This appointment does not belong to your clinic")
    elif actor.role == ActorRole.PATIENT:
        if appointment.patient_id != actor.user_id:
            raise PermissionDeniedError("Not authorized to access this appointment")
    return appointment


def set_status(db: Session, appointment_id: int, new_status: AppointmentStatus, actor: Actor) -> Appointment:
    appointment = get_appointment_for(db, appointment_id, actor)
    current = appointment.status
    check_transition(current, new_status, actor.role)

    appointment.status = new_status
    notifications.notify_status_change(db, appointment, commit=False)
    db.commit()
    db.refresh(appointment)

    logger.info(
        f"Appointment {appointment.id}: {current.value} -> {new_status.value} by {actor.role.value} {actor.user_id}"
    )
    return appointment


def cancel_appointment(db: Session, appointment_id: int, actor: Actor) -> Appointment:
    return set_status(db, appointment_id, S.CANCELLED, actor)


def update_notes(db: Session, appointment_id: int, notes: str, actor: Actor) -> Appointment:
    if actor.role != ActorRole.CLINIC_STAFF:
        raise PermissionDeniedError("Only clinic staff can edit appointment notes")
    appointment = get_appointment_for(db, appointment_id, actor)
    appointment.clinic_notes = notes
    db.commit()
    db.refresh(appointment)
    return appointment
