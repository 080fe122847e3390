"""
Shared job runner for scheduled background jobs.
Used by server (scheduler) and the cron endpoint (external trigger).
Each run_* returns a dict with "message" and "count".
"""
import logging

logger = logging.getLogger(__name__)


async def run_appointment_reminders():
    try:
        from services.appointment_reminders import send_appointment_reminders
        result = await send_appointment_reminders()
        count = result["sent"]
        logger.info(f"Appointment reminders job completed: {count} reminders due")
        return {"message": f"Appointment reminders sent: {count}", "count": count}
    except Exception as e:
        logger.error(f"Appointment reminders job failed: {e}")
        raise
