from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.orm import Session
from typing import Any, Dict, List, Literal, Optional
from datetime import datetime
import json
import logging
from dentcare.config import DEFAULT_CURRENCY
from dentcare.database import get_db
from dentcare.models.user import User, UserRole
from dentcare.models.clinic import Clinic
from dentcare.models.service import Service
from dentcare.models.appointment import Appointment, AppointmentStatus
from dentcare.models.notification import NotificationType
from dentcare.models.treatment_plan import TreatmentPlan, TreatmentPlanStatus, UrgencyLevel
from dentcare.core import ai
from dentcare.core.exceptions import BusinessRuleError, NotFoundError
from dentcare.core.notifications import notify
from dentcare.core.pdf import render_treatment_plan
from dentcare.core.security import get_current_active_user, get_current_clinic, require_role
from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)

router = APIRouter(tags=["treatment-plans"])

DISCLAIMER = (
    "This analysis is for educational purposes only and does not replace professional medical advice. "
    "Please consult with a qualified dentist for proper diagnosis and treatment."
)

class TreatmentPlanRequest(BaseModel):
    patient_id: int
    diagnosis: str = Field(min_length=1)
    symptoms: List[str] = Field(min_length=1)
    medical_history: Optional[str] = None
    urgency: UrgencyLevel = UrgencyLevel.MEDIUM

    @field_validator("urgency", mode="before")
    @classmethod
    def upper_urgency(cls, value):
        return value.upper() if isinstance(value, str) else value

class SymptomCheckRequest(BaseModel):
    symptoms: List[str] = Field(min_length=1)
    duration: Optional[str] = None
    severity: Literal["MILD", "MODERATE", "SEVERE"] = "MODERATE"
    additional_info: Optional[str] = None

class SymptomCheckResponse(BaseModel):
    analysis: ai.SymptomAnalysis
    disclaimer: str

class PlanPatient(BaseModel):
    id: int
    full_name: str
    email: str

    model_config = ConfigDict(from_attributes=True)

class TreatmentPlanResponse(BaseModel):
    id: int
    clinic_id: int
    patient_id: int
    diagnosis: str
    symptoms: List[str]
    urgency: UrgencyLevel
    plan: Dict[str, Any]
    status: TreatmentPlanStatus
    approved_at: Optional[datetime] = None
    shared_with_patient: bool
    shared_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    patient: PlanPatient

def plan_to_dict(plan: TreatmentPlan) -> dict:
    return {
        "id": plan.id,
        "clinic_id": plan.clinic_id,
        "patient_id": plan.patient_id,
        "diagnosis": plan.diagnosis,
        "symptoms": json.loads(plan.symptoms),
        "urgency": plan.urgency,
        "plan": json.loads(plan.ai_generated_plan),
        "status": plan.status,
        "approved_at": plan.approved_at,
        "shared_with_patient": bool(plan.shared_with_patient),
        "shared_at": plan.shared_at,
        "created_at": plan.created_at,
        "patient": plan.patient,
    }

def get_clinic_plan(db: Session, plan_id: int, clinic: Clinic) -> TreatmentPlan:
    plan = db.query(TreatmentPlan).filter(TreatmentPlan.id == plan_id).first()
    if not plan:
        raise NotFoundError("Treatment plan not found")
    if plan.clinic_id != clinic.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied"
        )
    return plan

@router.post("/api/ai/treatment-plan", response_model=TreatmentPlanResponse, status_code=status.HTTP_201_CREATED)
def create_treatment_plan(
    request: TreatmentPlanRequest,
    clinic: Clinic = Depends(get_current_clinic),
    db: Session = Depends(get_db)
):
    history = db.query(Appointment).filter(
        Appointment.clinic_id == clinic.id,
        Appointment.patient_id == request.patient_id
    ).order_by(Appointment.start_time.desc()).all()

    # Plans are only drafted for people who have been seen or booked here
    if not history:
        raise NotFoundError("Patient not found")

    patient = history[0].patient
    services = db.query(Service).filter(
        Service.clinic_id == clinic.id,
        Service.is_active == True
    ).all()

    context = ai.PatientContext(
        name=patient.full_name,
        diagnosis=request.diagnosis,
        symptoms=request.symptoms,
        urgency=request.urgency.value.lower(),
        medical_history=request.medical_history,
        recent_treatments=[
            f"{a.service.name} - {a.start_time.strftime('%Y-%m-%d')}"
            for a in history if a.status == AppointmentStatus.COMPLETED
        ][:5],
        available_services=[
            f"{s.name}: {s.description or s.category}" + (f" ({DEFAULT_CURRENCY} {s.price:.2f})" if s.price is not None else "")
            for s in services
        ],
    )

    generated = ai.generate_plan(context)

    plan = TreatmentPlan(
        clinic_id=clinic.id,
        patient_id=patient.id,
        created_by=clinic.owner_id,
        diagnosis=request.diagnosis,
        symptoms=json.dumps(request.symptoms),
        urgency=request.urgency,
        ai_generated_plan=json.dumps(generated.model_dump()),
        status=TreatmentPlanStatus.DRAFT,
    )
    db.add(plan)
    db.commit()
    db.refresh(plan)
    logger.info(f"Drafted treatment plan {plan.id} for patient {patient.id} at clinic {clinic.id}")
    return plan_to_dict(plan)

@router.post("/api/ai/symptom-checker", response_model=SymptomCheckResponse)
def symptom_checker(
    request: SymptomCheckRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.PATIENT))
):
    analysis = ai.check_symptoms(
        request.symptoms,
        request.severity,
        duration=request.duration,
        additional_info=request.additional_info,
    )

    if analysis.urgencyLevel in ("HIGH", "EMERGENCY"):
        notify(
            db,
            user_id=current_user.id,
            title="Urgent Dental Symptoms Detected",
            message=(
                f"Your symptom check indicates {analysis.urgencyLevel} urgency. "
                "Please seek professional dental care promptly."
            ),
        )

    return {"analysis": analysis, "disclaimer": DISCLAIMER}

@router.get("/api/clinic/treatment-plans", response_model=List[TreatmentPlanResponse])
async def list_clinic_treatment_plans(
    patient_id: Optional[int] = None,
    clinic: Clinic = Depends(get_current_clinic),
    db: Session = Depends(get_db)
):
    query = db.query(TreatmentPlan).filter(TreatmentPlan.clinic_id == clinic.id)
    if patient_id is not None:
        query = query.filter(TreatmentPlan.patient_id == patient_id)
    return [plan_to_dict(p) for p in query.order_by(TreatmentPlan.id.desc()).all()]

@router.post("/api/clinic/treatment-plans/{plan_id}/approve", response_model=TreatmentPlanResponse)
async def approve_treatment_plan(
    plan_id: int,
    clinic: Clinic = Depends(get_current_clinic),
    db: Session = Depends(get_db)
):
    plan = get_clinic_plan(db, plan_id, clinic)
    if plan.status == TreatmentPlanStatus.APPROVED:
        raise BusinessRuleError("Treatment plan is already approved")

    plan.status = TreatmentPlanStatus.APPROVED
    plan.approved_by = clinic.owner_id
    plan.approved_at = datetime.now()
    db.commit()
    db.refresh(plan)
    logger.info(f"Treatment plan {plan.id} approved")
    return plan_to_dict(plan)

@router.post("/api/clinic/treatment-plans/{plan_id}/share", response_model=TreatmentPlanResponse)
async def share_treatment_plan(
    plan_id: int,
    clinic: Clinic = Depends(get_current_clinic),
    db: Session = Depends(get_db)
):
    plan = get_clinic_plan(db, plan_id, clinic)
    if plan.status != TreatmentPlanStatus.APPROVED:
        raise BusinessRuleError("Treatment plan must be approved before it is shared")

    plan.shared_with_patient = True
    plan.shared_at = datetime.now()
    notify(
        db,
        user_id=plan.patient_id,
        title="New Treatment Plan Available",
        message=f"Your dentist has shared a new treatment plan for {plan.diagnosis}. View it in your dashboard.",
        notification_type=NotificationType.TREATMENT_PLAN,
        commit=False,
    )
    db.commit()
    db.refresh(plan)
    return plan_to_dict(plan)

@router.get("/api/patient/treatment-plans", response_model=List[TreatmentPlanResponse])
async def list_my_treatment_plans(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.PATIENT))
):
    plans = db.query(TreatmentPlan).filter(
        TreatmentPlan.patient_id == current_user.id,
        TreatmentPlan.shared_with_patient == True
    ).order_by(TreatmentPlan.shared_at.desc()).all()
    return [plan_to_dict(p) for p in plans]

@router.get("/api/treatment-plans/{plan_id}/pdf")
async def get_treatment_plan_pdf(
    plan_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    plan = db.query(TreatmentPlan).filter(TreatmentPlan.id == plan_id).first()
    if not plan:
        raise NotFoundError("Treatment plan not found")

    is_clinic = current_user.role == UserRole.CLINIC_OWNER and plan.clinic.owner_id == current_user.id
    is_patient = plan.patient_id == current_user.id and plan.shared_with_patient
    if not (is_clinic or is_patient):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not authorized to view this treatment plan"
        )

    return Response(
        content=render_treatment_plan(plan),
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="treatment_plan_{plan.id}.pdf"'}
    )
