"""External cron trigger for scheduled jobs (GET or POST)."""
from fastapi import APIRouter, HTTPException, Request, status
from job_runner import run_appointment_reminders
from datetime import datetime, timezone
import logging
import os

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/cron", tags=["cron"])

def _verify_cron_secret(request: Request):
    """When CRON_SECRET is set, require it as a bearer token."""
    cron_secret = os.getenv("CRON_SECRET")
    if cron_secret and request.headers.get("Authorization") != f"Bearer {cron_secret}":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized"
        )

@router.api_route("/appointment-reminders", methods=["GET", "POST"])
async def appointment_reminders(request: Request):
    _verify_cron_secret(request)

    try:
        result = await run_appointment_reminders()
        return {
            "success": True,
            "remindersSent": result["count"],
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
    except Exception as e:
        logger.error(f"Error processing appointment reminders: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error"
        )
