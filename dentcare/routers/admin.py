from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import func
from sqlalchemy.orm import Session
from typing import Dict, List, Optional
from datetime import datetime
import logging
from dentcare.database import get_db
from dentcare.models.user import User, UserRole
from dentcare.models.clinic import Clinic, ClinicStatus
from dentcare.models.appointment import Appointment, AppointmentStatus
from dentcare.models.notification import NotificationType
from dentcare.core.notifications import notify
from dentcare.core.exceptions import NotFoundError
from dentcare.core.security import require_role
from dentcare.routers.appointments import AppointmentResponse
from dentcare.routers.clinic import visit_totals
from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"])

require_admin = require_role(UserRole.ADMIN)

class ClinicOwner(BaseModel):
    id: int
    full_name: str
    email: str

    model_config = ConfigDict(from_attributes=True)

class AdminClinicResponse(BaseModel):
    id: int
    name: str
    address: str
    phone: Optional[str] = None
    email: Optional[str] = None
    status: ClinicStatus
    rejection_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    owner: ClinicOwner

    model_config = ConfigDict(from_attributes=True)

class ClinicStatusUpdate(BaseModel):
    status: ClinicStatus
    reason: Optional[str] = None

class AdminPatientResponse(BaseModel):
    id: int
    full_name: str
    email: str
    phone_number: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None
    total_appointments: int

class AdminPatientDetail(BaseModel):
    patient: AdminPatientResponse
    completed_appointments: int
    total_spent: float
    appointments: List[AppointmentResponse]

class PlatformAnalyticsResponse(BaseModel):
    users_by_role: Dict[UserRole, int]
    clinics_by_status: Dict[ClinicStatus, int]
    appointments_by_status: Dict[AppointmentStatus, int]
    completed_revenue: float

CLINIC_STATUS_MESSAGES = {
    ClinicStatus.APPROVED: "Your clinic {name} has been approved and is now visible to patients.",
    ClinicStatus.REJECTED: "Your clinic application for {name} has been rejected.",
    ClinicStatus.SUSPENDED: "Your clinic {name} has been suspended.",
    ClinicStatus.PENDING: "Your clinic {name} has been moved back to review.",
}

def count_by(db: Session, column, enum_cls) -> dict:
    counts = {member: 0 for member in enum_cls}
    for value, count in db.query(column, func.count()).group_by(column).all():
        counts[value] = count
    return counts

@router.get("/clinics", response_model=List[AdminClinicResponse])
async def list_clinics(
    status: Optional[ClinicStatus] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    query = db.query(Clinic)
    if status:
        query = query.filter(Clinic.status == status)
    return query.order_by(Clinic.created_at.desc(), Clinic.id.desc()).all()

@router.patch("/clinics/{clinic_id}/status", response_model=AdminClinicResponse)
async def update_clinic_status(
    clinic_id: int,
    update: ClinicStatusUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    clinic = db.query(Clinic).filter(Clinic.id == clinic_id).first()
    if not clinic:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Clinic not found"
        )

    clinic.status = update.status
    clinic.rejection_reason = update.reason if update.status in (ClinicStatus.REJECTED, ClinicStatus.SUSPENDED) else None

    message = CLINIC_STATUS_MESSAGES[update.status].format(name=clinic.name)
    if clinic.rejection_reason:
        message += f" Reason: {clinic.rejection_reason}"
    notify(
        db,
        user_id=clinic.owner_id,
        title="Clinic Status Updated",
        message=message,
        notification_type=NotificationType.CLINIC_UPDATE,
        commit=False,
    )
    db.commit()
    db.refresh(clinic)
    logger.info(f"Admin {current_user.id} set clinic {clinic.id} to {clinic.status.value}")
    return clinic

@router.get("/patients", response_model=List[AdminPatientResponse])
async def list_patients(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    rows = db.query(User, func.count(Appointment.id)).outerjoin(
        Appointment, Appointment.patient_id == User.id
    ).filter(User.role == UserRole.PATIENT).group_by(User.id).order_by(User.full_name).all()

    return [
        {
            "id": user.id,
            "full_name": user.full_name,
            "email": user.email,
            "phone_number": user.phone_number,
            "is_active": user.is_active,
            "created_at": user.created_at,
            "total_appointments": total,
        }
        for user, total in rows
    ]

@router.get("/analytics", response_model=PlatformAnalyticsResponse)
async def platform_analytics(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    revenue = db.query(func.coalesce(func.sum(Appointment.total_amount), 0)).filter(
        Appointment.status == AppointmentStatus.COMPLETED
    ).scalar()

    return {
        "users_by_role": count_by(db, User.role, UserRole),
        "clinics_by_status": count_by(db, Clinic.status, ClinicStatus),
        "appointments_by_status": count_by(db, Appointment.status, AppointmentStatus),
        "completed_revenue": float(revenue or 0),
    }

@router.get("/patients/{patient_id}", response_model=AdminPatientDetail)
async def get_patient(
    patient_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    patient = db.query(User).filter(User.id == patient_id, User.role == UserRole.PATIENT).first()
    if not patient:
        raise NotFoundError("Patient not found")

    appointments = db.query(Appointment).filter(
        Appointment.patient_id == patient_id
    ).order_by(Appointment.start_time.desc()).all()
    totals = visit_totals(appointments)

    return {
        "patient": {
            "id": patient.id,
            "full_name": patient.full_name,
            "email": patient.email,
            "phone_number": patient.phone_number,
            "is_active": patient.is_active,
            "created_at": patient.created_at,
            "total_appointments": totals["total_appointments"],
        },
        "completed_appointments": totals["completed_appointments"],
        "total_spent": totals["total_spent"],
        "appointments": appointments,
    }
