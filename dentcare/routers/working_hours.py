from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import time, datetime, date
from dentcare.database import get_db
from dentcare.models.clinic import Clinic
from dentcare.models.working_hours import DayOfWeek
from dentcare.core import working_hours as hours_store
from dentcare.core.availability import search_slots
from dentcare.core.exceptions import ValidationError
from dentcare.core.working_hours import WorkingHourEntry
from dentcare.core.security import get_current_clinic
from pydantic import BaseModel, ConfigDict, Field, field_serializer

router = APIRouter(prefix="/api/clinics", tags=["working-hours"])

class WorkingHoursResponse(BaseModel):
    day: DayOfWeek
    open_time: time
    close_time: time
    slot_duration: int
    break_start: Optional[time] = None
    break_end: Optional[time] = None

    model_config = ConfigDict(from_attributes=True)

    @field_serializer("open_time", "close_time", "break_start", "break_end")
    def serialize_time(self, value: Optional[time]):
        return value.strftime("%H:%M") if value else None

class WorkingWeekRequest(BaseModel):
    working_hours: List[WorkingHourEntry]

class WorkingWeekResponse(BaseModel):
    working_hours: List[WorkingHoursResponse]
    is_default: bool = False

class SlotResponse(BaseModel):
    start_time: datetime
    end_time: datetime
    available: bool

    model_config = ConfigDict(from_attributes=True)

class SlotsResponse(BaseModel):
    date: date
    slots: List[SlotResponse] = Field(default_factory=list)
    booked_slots: List[SlotResponse] = Field(default_factory=list)
    working_hours: Optional[WorkingHoursResponse] = None
    service_duration: Optional[int] = None
    message: Optional[str] = None

@router.get("/working-hours", response_model=WorkingWeekResponse)
async def get_working_hours(
    clinic: Clinic = Depends(get_current_clinic),
    db: Session = Depends(get_db)
):
    week = hours_store.get_week(db, clinic.id)
    if not week:
        # Unsaved template for the configuration form
        return {"working_hours": [entry.model_dump() for entry in hours_store.default_week()], "is_default": True}
    return {"working_hours": week, "is_default": False}

@router.post("/working-hours", response_model=WorkingWeekResponse)
async def save_working_hours(
    payload: WorkingWeekRequest,
    clinic: Clinic = Depends(get_current_clinic),
    db: Session = Depends(get_db)
):
    week = hours_store.upsert_week(db, clinic.id, payload.working_hours)
    return {"working_hours": week, "is_default": False}

@router.get("/{clinic_id}/slots", response_model=SlotsResponse)
async def get_available_slots(
    clinic_id: int,
    date_str: str = Query(..., alias="date"),
    service_id: Optional[int] = Query(None, alias="serviceId"),
    db: Session = Depends(get_db)
):
    """
    Returns bookable slots for a clinic on a date (YYYY-MM-DD).
    """
    try:
        target_date = datetime.strptime(date_str, "%Y-%m-%d").date()
    except ValueError:
        raise ValidationError("Invalid date format. Use YYYY-MM-DD.")

    search = search_slots(db, clinic_id, service_id, target_date)
    if search is None:
        return {
            "date": target_date,
            "message": f"No availability on {target_date.strftime('%A, %d %B %Y')}"
        }

    return {
        "date": target_date,
        "slots": search.slots,
        "booked_slots": search.booked_slots,
        "working_hours": search.working_hours,
        "service_duration": search.duration_minutes
    }
