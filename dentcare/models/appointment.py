from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Enum, Float, Text, Index, text
from sqlalchemy.orm import relationship
import enum
from dentcare.database import Base
from sqlalchemy.sql import func

class AppointmentStatus(str, enum.Enum):
    BOOKED = "BOOKED"
    CONFIRMED = "CONFIRMED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"  # rendered by clients, never set by a transition

class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    PAID = "PAID"

class Appointment(Base):
    __tablename__ = "appointments"
    __table_args__ = (
        # One live booking per clinic start time; cancelled rows free the slot
        Index(
            "uq_appointments_clinic_start_active",
            "clinic_id",
            "start_time",
            unique=True,
            sqlite_where=text("status != 'CANCELLED'"),
            postgresql_where=text("status != 'CANCELLED'"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    clinic_id = Column(Integer, ForeignKey("clinics.id"), nullable=False, index=True)
    patient_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=False)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    status = Column(Enum(AppointmentStatus), default=AppointmentStatus.BOOKED, nullable=False)
    patient_description = Column(Text, nullable=True)
    clinic_notes = Column(Text, nullable=True)
    total_amount = Column(Float, nullable=True)
    payment_status = Column(Enum(PaymentStatus), default=PaymentStatus.PENDING, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    clinic = relationship("Clinic", back_populates="appointments")
    patient = relationship("User", foreign_keys=[patient_id], back_populates="appointments")
    service = relationship("Service", back_populates="appointments")
    notifications = relationship("Notification", back_populates="appointment")
