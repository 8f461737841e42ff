import logging
from typing import Optional

from sqlalchemy.orm import Session

from dentcare.models.appointment import Appointment, AppointmentStatus
from dentcare.models.notification import Notification, NotificationType

logger = logging.getLogger(__name__)

# Status the appointment moved into -> (type, title, message template)
STATUS_MESSAGES = {
    AppointmentStatus.BOOKED: (
        NotificationType.APPOINTMENT_CONFIRMED,
        "Appointment Booked Successfully",
        "Your appointment with {clinic} for {service} has been booked for {when}.",
    ),
    AppointmentStatus.CONFIRMED: (
        NotificationType.APPOINTMENT_CONFIRMED,
        "Appointment Confirmed",
        "Your appointment with {clinic} for {service} has been confirmed for {when}.",
    ),
    AppointmentStatus.CANCELLED: (
        NotificationType.APPOINTMENT_CANCELLED,
        "Appointment Cancelled",
        "Your appointment with {clinic} for {service} on {when} has been cancelled.",
    ),
    AppointmentStatus.IN_PROGRESS: (
        NotificationType.SYSTEM_NOTIFICATION,
        "Appointment Started",
        "Your appointment with {clinic} for {service} is now in progress.",
    ),
    AppointmentStatus.COMPLETED: (
        NotificationType.SYSTEM_NOTIFICATION,
        "Appointment Completed",
        "Your appointment with {clinic} for {service} has been marked as completed.",
    ),
}


def notify(
    db: Session,
    user_id: int,
    title: str,
    message: str,
    notification_type: NotificationType = NotificationType.SYSTEM_NOTIFICATION,
    appointment_id: Optional[int] = None,
    commit: bool = True,
) -> Notification:
    notification = Notification(
        user_id=user_id,
        title=title,
        message=message,
        type=notification_type,
        appointment_id=appointment_id,
    )
    db.add(notification)
    if commit:
        db.commit()
    return notification


def notify_status_change(db: Session, appointment: Appointment, commit: bool = True) -> Optional[Notification]:
    """Tell the patient their appointment moved into its current status."""
    template = STATUS_MESSAGES.get(appointment.status)
    if template is None:
        return None
    notification_type, title, message = template
    return notify(
        db,
        user_id=appointment.patient_id,
        title=title,
        message=message.format(
            clinic=appointment.clinic.name,
            service=appointment.service.name,
            when=appointment.start_time.strftime("%Y-%m-%d %H:%M"),
        ),
        notification_type=notification_type,
        appointment_id=appointment.id,
        commit=commit,
    )


def create_appointment_reminder(db: Session, appointment: Appointment) -> Notification:
    return notify(
        db,
        user_id=appointment.patient_id,
        title="Appointment Reminder",
        message=(
            f"Your appointment with {appointment.clinic.name} for {appointment.service.name} "
            f"is scheduled for {appointment.start_time.strftime('%Y-%m-%d %H:%M')}"
        ),
        notification_type=NotificationType.APPOINTMENT_REMINDER,
        appointment_id=appointment.id,
    )
