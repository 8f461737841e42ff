"""Weekly opening hours of a clinic.

A clinic has at most one row per weekday; a missing weekday means the clinic
is closed that day. Saving a week replaces whatever was configured before.
"""
import logging
from datetime import time
from typing import List, Optional, Sequence

from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from dentcare.core.exceptions import ValidationError
from dentcare.models.working_hours import DayOfWeek, WorkingHours

logger = logging.getLogger(__name__)

DAY_ORDER = list(DayOfWeek)


class WorkingHourEntry(BaseModel):
    day: DayOfWeek
    open_time: time
    close_time: time
    slot_duration: int = Field(default=30, description="Minutes between consecutive slot starts")
    break_start: Optional[time] = None
    break_end: Optional[time] = None


def default_week() -> List[WorkingHourEntry]:
    """Mon-Fri 09:00-17:00 in 30 minute steps, offered when nothing is saved."""
    return [
        WorkingHourEntry(day=day, open_time=time(9, 0), close_time=time(17, 0), slot_duration=30)
        for day in DAY_ORDER[:5]
    ]


def validate_entry(entry: WorkingHourEntry) -> None:
    day = entry.day.value.title()
    if entry.close_time <= entry.open_time:
        raise ValidationError(f"{day}: closing time must be after opening time")
    if entry.slot_duration <= 0:
        raise ValidationError(f"{day}: slot duration must be a positive number of minutes")

    if (entry.break_start is None) != (entry.break_end is None):
        raise ValidationError(f"{day}: break start and end times are both required")
    if entry.break_start is not None:
        if entry.break_start >= entry.break_end:
            raise ValidationError(f"{day}: break start time must be before break end time")
        if entry.break_start < entry.open_time or entry.break_end > entry.close_time:
            raise ValidationError(f"{day}: break must fall within opening hours")


def validate_week(entries: Sequence[WorkingHourEntry]) -> None:
    if not entries:
        raise ValidationError("At least one working day is required")
    seen = set()
    for entry in entries:
        if entry.day in seen:
            raise ValidationError(f"{entry.day.value.title()} is configured more than once")
        seen.add(entry.day)
        validate_entry(entry)


def upsert_week(db: Session, clinic_id: int, entries: Sequence[WorkingHourEntry]) -> List[WorkingHours]:
    """Replace the clinic's whole week with ``entries`` in one transaction."""
    validate_week(entries)

    try:
        db.query(WorkingHours).filter(WorkingHours.clinic_id == clinic_id).delete(synchronize_session=False)
        rows = [WorkingHours(clinic_id=clinic_id, **entry.model_dump()) for entry in entries]
        db.add_all(rows)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(f"Saved {len(rows)} working days for clinic {clinic_id}")
    return get_week(db, clinic_id)


def get_week(db: Session, clinic_id: int) -> List[WorkingHours]:
    rows = db.query(WorkingHours).filter(WorkingHours.clinic_id == clinic_id).all()
    return sorted(rows, key=lambda row: DAY_ORDER.index(row.day))


def get_day(db: Session, clinic_id: int, day: DayOfWeek) -> Optional[WorkingHours]:
    return db.query(WorkingHours).filter(
        WorkingHours.clinic_id == clinic_id,
        WorkingHours.day == day
    ).first()
