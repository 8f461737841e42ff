from sqlalchemy import Column, Integer, ForeignKey, Time, Enum, UniqueConstraint
from sqlalchemy.orm import relationship
import enum
from dentcare.database import Base

class DayOfWeek(str, enum.Enum):
    MONDAY = "MONDAY"
    TUESDAY = "TUESDAY"
    WEDNESDAY = "WEDNESDAY"
    THURSDAY = "THURSDAY"
    FRIDAY = "FRIDAY"
    SATURDAY = "SATURDAY"
    SUNDAY = "SUNDAY"

    @classmethod
    def from_date(cls, value):
        return list(cls)[value.weekday()]

class WorkingHours(Base):
    __tablename__ = "working_hours"
    __table_args__ = (UniqueConstraint("clinic_id", "day", name="uq_working_hours_clinic_day"),)

    id = Column(Integer, primary_key=True, index=True)
    clinic_id = Column(Integer, ForeignKey("clinics.id"), nullable=False, index=True)
    day = Column(Enum(DayOfWeek), nullable=False)
    open_time = Column(Time, nullable=False)
    close_time = Column(Time, nullable=False)
    slot_duration = Column(Integer, nullable=False, default=30)  # minutes between slot starts
    break_start = Column(Time, nullable=True)
    break_end = Column(Time, nullable=True)

    # Relationships
    clinic = relationship("Clinic", back_populates="working_hours")

    @property
    def has_break(self) -> bool:
        return self.break_start is not None and self.break_end is not None
