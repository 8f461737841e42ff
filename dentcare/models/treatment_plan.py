from sqlalchemy import Boolean, Column, Integer, ForeignKey, DateTime, Enum, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import enum
from dentcare.database import Base

class UrgencyLevel(str, enum.Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    EMERGENCY = "EMERGENCY"

class TreatmentPlanStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    APPROVED = "APPROVED"

class TreatmentPlan(Base):
    __tablename__ = "treatment_plans"

    id = Column(Integer, primary_key=True, index=True)
    clinic_id = Column(Integer, ForeignKey("clinics.id"), nullable=False, index=True)
    patient_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    diagnosis = Column(Text, nullable=False)
    symptoms = Column(Text, nullable=False)  # JSON list of strings
    urgency = Column(Enum(UrgencyLevel), default=UrgencyLevel.MEDIUM, nullable=False)
    ai_generated_plan = Column(Text, nullable=False)  # JSON string of the generated plan
    status = Column(Enum(TreatmentPlanStatus), default=TreatmentPlanStatus.DRAFT, nullable=False)
    approved_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    approved_at = Column(DateTime, nullable=True)
    shared_with_patient = Column(Boolean, default=False)
    shared_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    clinic = relationship("Clinic")
    patient = relationship("User", foreign_keys=[patient_id])
    author = relationship("User", foreign_keys=[created_by])
