"""Bookable slot generation.

Slots start at the clinic's opening time and advance by the working-hours
``slot_duration``. Each slot lasts as long as the requested service, so a
60 minute service on a 30 minute grid yields overlapping candidates
09:00-10:00, 09:30-10:30, ... A candidate is offered only if it ends by
closing time, stays clear of the break and of every non-cancelled
appointment, and has not already started.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from dentcare.core import working_hours as hours_store
from dentcare.models.appointment import Appointment, AppointmentStatus
from dentcare.models.clinic import Clinic, ClinicStatus
from dentcare.models.service import Service
from dentcare.models.working_hours import DayOfWeek, WorkingHours

logger = logging.getLogger(__name__)

Interval = Tuple[datetime, datetime]


@dataclass(frozen=True)
class TimeSlot:
    start_time: datetime
    end_time: datetime
    available: bool = True


@dataclass
class SlotSearch:
    working_hours: WorkingHours
    duration_minutes: int
    slots: List[TimeSlot] = field(default_factory=list)
    booked_slots: List[TimeSlot] = field(default_factory=list)


def overlaps(start: datetime, end: datetime, other_start: datetime, other_end: datetime) -> bool:
    # Half-open intervals: touching at a boundary is not a conflict
    return start < other_end and end > other_start


def break_interval(hours: WorkingHours, day: date) -> Optional[Interval]:
    if not hours.has_break:
        return None
    return datetime.combine(day, hours.break_start), datetime.combine(day, hours.break_end)


def working_hours_violation(hours: Optional[WorkingHours], start: datetime, end: datetime) -> Optional[str]:
    """Return why ``[start, end)`` cannot be booked under ``hours``, or None."""
    if hours is None:
        return f"Clinic is closed on {start.strftime('%A')}s"
    if end.date() != start.date() or start.time() < hours.open_time or end.time() > hours.close_time:
        return (
            f"Requested time is outside working hours "
            f"({hours.open_time.strftime('%H:%M')}-{hours.close_time.strftime('%H:%M')})"
        )
    pause = break_interval(hours, start.date())
    if pause and overlaps(start, end, *pause):
        return "Requested time overlaps the clinic break"
    return None


def fits_working_hours(hours: Optional[WorkingHours], start: datetime, end: datetime) -> bool:
    return working_hours_violation(hours, start, end) is None


def build_slots(
    hours: WorkingHours,
    day: date,
    duration_minutes: int,
    busy: Sequence[Interval] = (),
    now: Optional[datetime] = None,
) -> Tuple[List[TimeSlot], List[TimeSlot]]:
    """Walk the day's grid and split it into free and booked slots."""
    available: List[TimeSlot] = []
    booked: List[TimeSlot] = []

    step = timedelta(minutes=hours.slot_duration)
    length = timedelta(minutes=duration_minutes)
    if step <= timedelta(0) or length <= timedelta(0):
        return available, booked

    current = datetime.combine(day, hours.open_time)
    closing = datetime.combine(day, hours.close_time)
    pause = break_interval(hours, day)

    while current + length <= closing:
        slot_end = current + length
        if pause and overlaps(current, slot_end, *pause):
            current += step
            continue
        if now is None or current > now:
            taken = any(overlaps(current, slot_end, b_start, b_end) for b_start, b_end in busy)
            if taken:
                booked.append(TimeSlot(current, slot_end, available=False))
            else:
                available.append(TimeSlot(current, slot_end))
        current += step

    return available, booked


def busy_intervals(db: Session, clinic_id: int, day: date) -> List[Interval]:
    day_start = datetime.combine(day, time.min)
    day_end = day_start + timedelta(days=1)
    appointments = db.query(Appointment).filter(
        Appointment.clinic_id == clinic_id,
        Appointment.status != AppointmentStatus.CANCELLED,
        Appointment.start_time < day_end,
        Appointment.end_time > day_start
    ).all()
    return [(appt.start_time, appt.end_time) for appt in appointments]


def search_slots(
    db: Session,
    clinic_id: int,
    service_id: Optional[int],
    day: date,
    now: Optional[datetime] = None,
) -> Optional[SlotSearch]:
    """Free and booked slots for ``day``, or None when nothing can be offered.

    None covers an unknown or unapproved clinic, an unknown or inactive
    service and a weekday without working hours.
    """
    clinic = db.query(Clinic).filter(
        Clinic.id == clinic_id,
        Clinic.status == ClinicStatus.APPROVED
    ).first()
    if not clinic:
        return None

    hours = hours_store.get_day(db, clinic_id, DayOfWeek.from_date(day))
    if not hours:
        return None

    duration = hours.slot_duration
    if service_id is not None:
        service = db.query(Service).filter(
            Service.id == service_id,
            Service.clinic_id == clinic_id,
            Service.is_active == True
        ).first()
        if not service:
            return None
        duration = service.duration_minutes

    available, booked = build_slots(
        hours,
        day,
        duration,
        busy=busy_intervals(db, clinic_id, day),
        now=now or datetime.now(),
    )
    return SlotSearch(working_hours=hours, duration_minutes=duration, slots=available, booked_slots=booked)


def generate_slots(
    db: Session,
    clinic_id: int,
    service_id: Optional[int],
    day: date,
    now: Optional[datetime] = None,
) -> List[TimeSlot]:
    """Bookable slots for ``day``; an empty list means no availability."""
    search = search_slots(db, clinic_id, service_id, day, now=now)
    if search is None:
        return []
    return search.slots
