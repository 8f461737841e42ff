"""Clinic dashboard: appointments, patients and analytics of the owner's clinic."""
from fastapi import APIRouter, Depends, Query
from sqlalchemy import func
from sqlalchemy.orm import Session
from typing import Dict, List, Optional
from datetime import datetime, timedelta, time
from dentcare.database import get_db
from dentcare.models.user import User, UserRole
from dentcare.models.clinic import Clinic
from dentcare.models.service import Service
from dentcare.models.appointment import Appointment, AppointmentStatus
from dentcare.models.treatment_plan import TreatmentPlan, TreatmentPlanStatus
from dentcare.core import appointments as lifecycle
from dentcare.core.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from dentcare.core.security import Actor, ActorRole, get_current_clinic
from dentcare.routers.appointments import AppointmentResponse
from pydantic import BaseModel, ConfigDict

router = APIRouter(prefix="/api/clinic", tags=["clinic-dashboard"])

class PatientSummary(BaseModel):
    id: int
    full_name: str
    email: str
    phone_number: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

class ClinicAppointmentResponse(AppointmentResponse):
    patient: PatientSummary
    allowed_transitions: List[AppointmentStatus] = []

class StatusUpdate(BaseModel):
    status: AppointmentStatus

class NotesUpdate(BaseModel):
    clinic_notes: str

class ClinicPatientResponse(PatientSummary):
    total_appointments: int
    last_visit: Optional[datetime] = None

class PlanSummary(BaseModel):
    id: int
    diagnosis: str
    status: TreatmentPlanStatus
    shared_with_patient: bool
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

class ClinicPatientDetail(BaseModel):
    patient: PatientSummary
    total_appointments: int
    completed_appointments: int
    total_spent: float
    appointments: List[AppointmentResponse]
    treatment_plans: List[PlanSummary]

class ServicePopularity(BaseModel):
    service_id: int
    name: str
    bookings: int

class ClinicAnalyticsResponse(BaseModel):
    period_days: int
    total_appointments: int
    by_status: Dict[AppointmentStatus, int]
    completed_revenue: float
    popular_services: List[ServicePopularity]

def staff_actor(clinic: Clinic) -> Actor:
    return Actor(user_id=clinic.owner_id, role=ActorRole.CLINIC_STAFF, clinic_id=clinic.id)

def with_transitions(appointment: Appointment) -> dict:
    data = ClinicAppointmentResponse.model_validate(appointment).model_dump()
    data["allowed_transitions"] = sorted(
        lifecycle.allowed_next_statuses(appointment.status, ActorRole.CLINIC_STAFF),
        key=lambda s: list(AppointmentStatus).index(s)
    )
    return data

@router.get("/appointments", response_model=List[ClinicAppointmentResponse])
async def list_clinic_appointments(
    status: Optional[AppointmentStatus] = None,
    date_str: Optional[str] = Query(None, alias="date"),
    clinic: Clinic = Depends(get_current_clinic),
    db: Session = Depends(get_db)
):
    query = db.query(Appointment).filter(Appointment.clinic_id == clinic.id)

    if status:
        query = query.filter(Appointment.status == status)

    if date_str:
        try:
            day = datetime.strptime(date_str, "%Y-%m-%d").date()
        except ValueError:
            raise ValidationError("Invalid date format. Use YYYY-MM-DD.")
        start_of_day = datetime.combine(day, time.min)
        query = query.filter(
            Appointment.start_time >= start_of_day,
            Appointment.start_time < start_of_day + timedelta(days=1)
        )

    return [with_transitions(a) for a in query.order_by(Appointment.start_time).all()]

@router.patch("/appointments/{appointment_id}/status", response_model=ClinicAppointmentResponse)
async def update_appointment_status(
    appointment_id: int,
    update: StatusUpdate,
    clinic: Clinic = Depends(get_current_clinic),
    db: Session = Depends(get_db)
):
    appointment = lifecycle.set_status(db, appointment_id, update.status, staff_actor(clinic))
    return with_transitions(appointment)

@router.patch("/appointments/{appointment_id}/notes", response_model=ClinicAppointmentResponse)
async def update_appointment_notes(
    appointment_id: int,
    update: NotesUpdate,
    clinic: Clinic = Depends(get_current_clinic),
    db: Session = Depends(get_db)
):
    appointment = lifecycle.update_notes(db, appointment_id, update.clinic_notes, staff_actor(clinic))
    return with_transitions(appointment)

@router.get("/patients", response_model=List[ClinicPatientResponse])
async def list_clinic_patients(
    clinic: Clinic = Depends(get_current_clinic),
    db: Session = Depends(get_db)
):
    rows = db.query(
        User,
        func.count(Appointment.id),
        func.max(Appointment.start_time)
    ).join(Appointment, Appointment.patient_id == User.id).filter(
        Appointment.clinic_id == clinic.id
    ).group_by(User.id).order_by(User.full_name).all()

    return [
        {
            **PatientSummary.model_validate(user).model_dump(),
            "total_appointments": total,
            "last_visit": last_visit,
        }
        for user, total, last_visit in rows
    ]

def visit_totals(appointments: List[Appointment]) -> dict:
    completed = [a for a in appointments if a.status == AppointmentStatus.COMPLETED]
    return {
        "total_appointments": len(appointments),
        "completed_appointments": len(completed),
        "total_spent": float(sum(a.total_amount or 0 for a in completed)),
    }

@router.get("/patients/{patient_id}", response_model=ClinicPatientDetail)
async def get_clinic_patient(
    patient_id: int,
    clinic: Clinic = Depends(get_current_clinic),
    db: Session = Depends(get_db)
):
    patient = db.query(User).filter(User.id == patient_id, User.role == UserRole.PATIENT).first()
    if not patient:
        raise NotFoundError("Patient not found")

    appointments = db.query(Appointment).filter(
        Appointment.clinic_id == clinic.id,
        Appointment.patient_id == patient_id
    ).order_by(Appointment.start_time.desc()).all()
    if not appointments:
        raise PermissionDeniedError("Patient not associated with this clinic")

    plans = db.query(TreatmentPlan).filter(
        TreatmentPlan.clinic_id == clinic.id,
        TreatmentPlan.patient_id == patient_id
    ).order_by(TreatmentPlan.id.desc()).all()

    return {
        "patient": patient,
        **visit_totals(appointments),
        "appointments": appointments,
        "treatment_plans": plans,
    }

@router.get("/analytics", response_model=ClinicAnalyticsResponse)
async def clinic_analytics(
    days: int = Query(30, ge=1, le=365),
    clinic: Clinic = Depends(get_current_clinic),
    db: Session = Depends(get_db)
):
    now = datetime.now()
    base = db.query(Appointment).filter(
        Appointment.clinic_id == clinic.id,
        Appointment.start_time >= now - timedelta(days=days),
        Appointment.start_time <= now
    )

    by_status = {s: 0 for s in AppointmentStatus}
    for appt_status, count in base.with_entities(Appointment.status, func.count(Appointment.id)).group_by(Appointment.status):
        by_status[appt_status] = count

    revenue = base.filter(Appointment.status == AppointmentStatus.COMPLETED).with_entities(
        func.coalesce(func.sum(Appointment.total_amount), 0)
    ).scalar()

    popular = base.join(Service).with_entities(
        Service.id, Service.name, func.count(Appointment.id).label("bookings")
    ).group_by(Service.id, Service.name).order_by(func.count(Appointment.id).desc()).limit(5).all()

    return {
        "period_days": days,
        "total_appointments": sum(by_status.values()),
        "by_status": by_status,
        "completed_revenue": float(revenue or 0),
        "popular_services": [
            {"service_id": service_id, "name": name, "bookings": bookings}
            for service_id, name, bookings in popular
        ],
    }
