import logging
from datetime import datetime, timedelta
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.orm import Session

from dentcare.config import REMINDER_INTERVAL_MINUTES, REMINDER_WINDOW_HOURS
from dentcare.core.notifications import create_appointment_reminder
from dentcare.database import SessionLocal
from dentcare.models.appointment import Appointment, AppointmentStatus
from dentcare.models.notification import Notification, NotificationType

logger = logging.getLogger(__name__)

scheduler = BackgroundScheduler()


def send_upcoming_reminders(db: Session, now: Optional[datetime] = None) -> int:
    """Remind patients of appointments starting within the reminder window.

    Each appointment is reminded at most once. Statuses are left untouched.
    """
    now = now or datetime.now()
    horizon = now + timedelta(hours=REMINDER_WINDOW_HOURS)

    already_reminded = db.query(Notification.appointment_id).filter(
        Notification.type == NotificationType.APPOINTMENT_REMINDER,
        Notification.appointment_id.isnot(None)
    )
    appointments = db.query(Appointment).filter(
        Appointment.start_time <= horizon,
        Appointment.start_time > now,
        Appointment.status.in_([AppointmentStatus.BOOKED, AppointmentStatus.CONFIRMED]),
        Appointment.id.notin_(already_reminded)
    ).all()

    for appointment in appointments:
        create_appointment_reminder(db, appointment)
    return len(appointments)


def check_upcoming_appointments():
    db = SessionLocal()
    try:
        sent = send_upcoming_reminders(db)
        if sent:
            logger.info(f"Sent {sent} appointment reminders")
    except Exception:
        logger.exception("Appointment reminder job failed")
    finally:
        db.close()


def start_scheduler():
    # Check for appointments needing a reminder on a fixed interval
    scheduler.add_job(
        check_upcoming_appointments,
        trigger=IntervalTrigger(minutes=REMINDER_INTERVAL_MINUTES),
        id='check_appointments',
        replace_existing=True
    )
    scheduler.start()
    logger.info(f"Reminder scheduler started (every {REMINDER_INTERVAL_MINUTES} min)")


def shutdown_scheduler():
    if scheduler.running:
        scheduler.shutdown(wait=False)
