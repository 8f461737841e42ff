from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import or_
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import datetime
from dentcare.database import contains, get_db
from dentcare.models.user import User, UserRole
from dentcare.models.clinic import Clinic, ClinicStatus
from dentcare.models.service import Service
from dentcare.core.security import get_current_clinic, require_role
from pydantic import BaseModel, ConfigDict, Field
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/clinics", tags=["clinics"])

class ClinicCreate(BaseModel):
    name: str = Field(min_length=1)
    address: str = Field(min_length=1)
    phone: Optional[str] = None
    email: Optional[str] = None
    description: Optional[str] = None

class ClinicResponse(BaseModel):
    id: int
    name: str
    address: str
    phone: Optional[str] = None
    email: Optional[str] = None
    description: Optional[str] = None
    status: ClinicStatus
    rejection_reason: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

class ServiceCreate(BaseModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None
    price: Optional[float] = Field(default=None, ge=0)
    duration_minutes: int = Field(default=30, gt=0, le=480)
    category: str = Field(min_length=1)
    is_active: bool = True

class ServiceResponse(BaseModel):
    id: int
    clinic_id: int
    name: str
    description: Optional[str] = None
    price: Optional[float] = None
    duration_minutes: int
    category: str
    is_active: bool

    model_config = ConfigDict(from_attributes=True)

class PublicClinicResponse(ClinicResponse):
    services: List[ServiceResponse] = []

@router.post("", response_model=ClinicResponse, status_code=status.HTTP_201_CREATED)
async def apply_clinic(
    clinic_data: ClinicCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.CLINIC_OWNER))
):
    if db.query(Clinic).filter(Clinic.owner_id == current_user.id).first():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="User already has a clinic"
        )

    clinic = Clinic(owner_id=current_user.id, status=ClinicStatus.PENDING, **clinic_data.model_dump())
    db.add(clinic)
    db.commit()
    db.refresh(clinic)
    logger.info(f"Clinic {clinic.id} submitted for review by user {current_user.id}")
    return clinic

@router.get("/public", response_model=List[PublicClinicResponse])
async def list_public_clinics(
    q: Optional[str] = None,
    db: Session = Depends(get_db)
):
    query = db.query(Clinic).filter(Clinic.status == ClinicStatus.APPROVED)

    if q:
        query = query.filter(or_(contains(Clinic.name, q), contains(Clinic.address, q)))

    clinics = query.order_by(Clinic.name).all()
    return [
        {**ClinicResponse.model_validate(clinic).model_dump(), "services": [s for s in clinic.services if s.is_active]}
        for clinic in clinics
    ]

@router.get("/mine", response_model=ClinicResponse)
async def get_my_clinic(clinic: Clinic = Depends(get_current_clinic)):
    return clinic

@router.put("/mine", response_model=ClinicResponse)
async def update_my_clinic(
    clinic_data: ClinicCreate,
    clinic: Clinic = Depends(get_current_clinic),
    db: Session = Depends(get_db)
):
    for key, value in clinic_data.model_dump().items():
        setattr(clinic, key, value)

    db.commit()
    db.refresh(clinic)
    return clinic

@router.get("/services", response_model=List[ServiceResponse])
async def list_my_services(
    clinic: Clinic = Depends(get_current_clinic),
    db: Session = Depends(get_db)
):
    return db.query(Service).filter(Service.clinic_id == clinic.id).order_by(Service.name).all()

@router.post("/services", response_model=ServiceResponse, status_code=status.HTTP_201_CREATED)
async def create_service(
    service_data: ServiceCreate,
    clinic: Clinic = Depends(get_current_clinic),
    db: Session = Depends(get_db)
):
    service = Service(clinic_id=clinic.id, **service_data.model_dump())
    db.add(service)
    db.commit()
    db.refresh(service)
    return service

@router.put("/services/{service_id}", response_model=ServiceResponse)
async def update_service(
    service_id: int,
    service_data: ServiceCreate,
    clinic: Clinic = Depends(get_current_clinic),
    db: Session = Depends(get_db)
):
    service = db.query(Service).filter(
        Service.id == service_id,
        Service.clinic_id == clinic.id
    ).first()

    if not service:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Service not found"
        )

    for key, value in service_data.model_dump().items():
        setattr(service, key, value)

    db.commit()
    db.refresh(service)
    return service

@router.delete("/services/{service_id}")
async def deactivate_service(
    service_id: int,
    clinic: Clinic = Depends(get_current_clinic),
    db: Session = Depends(get_db)
):
    # Appointments keep referencing the service, so it is only switched off
    service = db.query(Service).filter(
        Service.id == service_id,
        Service.clinic_id == clinic.id
    ).first()

    if not service:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Service not found"
        )

    service.is_active = False
    db.commit()
    return {"message": "Service deactivated successfully"}

@router.get("/{clinic_id}", response_model=PublicClinicResponse)
async def get_clinic(
    clinic_id: int,
    db: Session = Depends(get_db)
):
    clinic = db.query(Clinic).filter(
        Clinic.id == clinic_id,
        Clinic.status == ClinicStatus.APPROVED
    ).first()

    if not clinic:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Clinic not found or not available"
        )

    return {**ClinicResponse.model_validate(clinic).model_dump(), "services": [s for s in clinic.services if s.is_active]}

@router.get("/{clinic_id}/services", response_model=List[ServiceResponse])
async def list_clinic_services(
    clinic_id: int,
    db: Session = Depends(get_db)
):
    return db.query(Service).join(Clinic).filter(
        Service.clinic_id == clinic_id,
        Service.is_active == True,
        Clinic.status == ClinicStatus.APPROVED
    ).order_by(Service.name).all()
