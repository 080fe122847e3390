"""Appointment reminders - emails the client and adviser a day before a meeting."""
from database import database
from models import AppointmentStatus, AuditAction
from services.email_service import email_service
from utils.audit import create_audit_log
from datetime import datetime, timedelta, timezone
from typing import Dict, Any, List, Optional
import logging

logger = logging.getLogger(__name__)

REMINDER_WINDOW = timedelta(hours=24)


def parse_stored_datetime(value: Any) -> Optional[datetime]:
    """Stored ISO string (or datetime) as an aware UTC datetime."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


async def _recipients_for(db, appointment: Dict[str, Any]) -> tuple[List[str], Optional[Dict[str, Any]]]:
    recipients: List[str] = []
    client = None

    if appointment.get("clientId"):
        client = await db.clients.find_one(
            {"id": appointment["clientId"]},
            {"_id": 0, "id": 1, "firstName": 1, "lastName": 1, "email": 1}
        )
        if client and client.get("email"):
            recipients.append(client["email"])

    user = await db.users.find_one({"id": appointment.get("userId")}, {"_id": 0, "email": 1})
    if user and user.get("email"):
        recipients.append(user["email"])

    return recipients, client


async def send_appointment_reminders(now: Optional[datetime] = None) -> Dict[str, int]:
    """Send reminders for SCHEDULED appointments starting in the next 24 hours.

    Each appointment is reminded once (reminderSent). A failure on one
    appointment is logged and the rest still go out. Returns {"sent": n}
    where n is the number of eligible appointments.
    """
    db = database.get_db()
    now = now or datetime.now(timezone.utc)
    window_end = now + REMINDER_WINDOW

    candidates = await db.appointments.find(
        {
            "status": AppointmentStatus.SCHEDULED.value,
            "reminderSent": {"$ne": True},
        },
        {"_id": 0}
    ).to_list(1000)

    due = []
    for appointment in candidates:
        start = parse_stored_datetime(appointment.get("startDateTime"))
        if start and now <= start <= window_end:
            due.append((appointment, start))

    logger.info(f"Appointment reminders: {len(due)} due in the next 24 hours")

    for appointment, start in due:
        try:
            recipients, client = await _recipients_for(db, appointment)
            if not recipients:
                logger.warning(f"No email recipients for appointment {appointment.get('id')}")
                continue

            await email_service.send_appointment_reminder(appointment, client, recipients, start)

            sent_at = datetime.now(timezone.utc).isoformat()
            await db.appointments.update_one(
                {"id": appointment["id"]},
                {"$set": {"reminderSent": True, "reminderSentAt": sent_at}}
            )

            await create_audit_log(
                action=AuditAction.REMINDER_SENT,
                actor_id=appointment.get("userId"),
                client_id=appointment.get("clientId"),
                resource_type="appointment",
                resource_id=appointment["id"],
                metadata={"recipients": recipients}
            )
            logger.info(f"Reminder sent for appointment {appointment['id']}")
        except Exception as e:
            logger.error(f"Error sending reminder for appointment {appointment.get('id')}: {e}")

    return {"sent": len(due)}
