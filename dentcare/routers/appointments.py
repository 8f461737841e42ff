from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import datetime
from dentcare.database import get_db
from dentcare.models.user import User, UserRole
from dentcare.models.appointment import Appointment, AppointmentStatus, PaymentStatus
from dentcare.core import appointments as lifecycle
from dentcare.core.security import Actor, get_current_actor, require_role, actor_for
from pydantic import BaseModel, ConfigDict, Field

router = APIRouter(prefix="/api/appointments", tags=["appointments"])

class BookingRequest(BaseModel):
    clinic_id: int
    service_id: int
    start_time: datetime
    patient_description: Optional[str] = Field(default=None, max_length=2000)

class ServiceSummary(BaseModel):
    id: int
    name: str
    price: Optional[float] = None
    category: str
    duration_minutes: int

    model_config = ConfigDict(from_attributes=True)

class ClinicSummary(BaseModel):
    id: int
    name: str
    address: str
    phone: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

class AppointmentResponse(BaseModel):
    id: int
    clinic_id: int
    patient_id: int
    service_id: int
    start_time: datetime
    end_time: datetime
    status: AppointmentStatus
    patient_description: Optional[str] = None
    clinic_notes: Optional[str] = None
    total_amount: Optional[float] = None
    payment_status: PaymentStatus
    service: ServiceSummary
    clinic: ClinicSummary

    model_config = ConfigDict(from_attributes=True)

class BookingResponse(BaseModel):
    message: str
    appointment: AppointmentResponse

@router.post("/book", response_model=BookingResponse)
async def book_appointment(
    booking: BookingRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.PATIENT))
):
    appointment = lifecycle.create_appointment(
        db,
        clinic_id=booking.clinic_id,
        service_id=booking.service_id,
        patient_id=current_user.id,
        start_time=booking.start_time,
        patient_description=booking.patient_description,
    )
    return {"message": "Appointment booked successfully", "appointment": appointment}

@router.get("/user", response_model=List[AppointmentResponse])
async def get_my_appointments(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.PATIENT))
):
    return db.query(Appointment).filter(
        Appointment.patient_id == current_user.id
    ).order_by(Appointment.start_time.desc()).all()

@router.get("/{appointment_id}", response_model=AppointmentResponse)
async def get_appointment(
    appointment_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    return lifecycle.get_appointment_for(db, appointment_id, actor)

@router.patch("/{appointment_id}/cancel", response_model=AppointmentResponse)
async def cancel_appointment(
    appointment_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.PATIENT))
):
    return lifecycle.cancel_appointment(db, appointment_id, actor_for(current_user, db))
