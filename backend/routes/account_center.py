"""Account Center - one payload with everything the adviser's home page shows."""
from fastapi import APIRouter, HTTPException, Request, status
from database import database
from models import AppointmentStatus
from middleware import require_auth
from routes.email import safe_integration
from services.pdf_export_service import attach_client
from datetime import datetime, timezone
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/account-center", tags=["account-center"])

@router.get("")
async def get_account_center(request: Request):
    """Profile, clients, recent clients, upcoming appointments, exports and counts."""
    user = await require_auth(request)
    db = database.get_db()
    user_id = user["user_id"]

    try:
        profile = await db.users.find_one(
            {"id": user_id},
            {"_id": 0, "id": 1, "email": 1, "name": 1, "role": 1}
        ) or {"id": user_id, "email": user.get("email"), "name": user.get("name"), "role": user.get("role")}

        clients = await db.clients.find({"userId": user_id}, {"_id": 0}) \
            .sort("updatedAt", -1).limit(50).to_list(50)

        accesses = await db.recent_client_access.find({"userId": user_id}, {"_id": 0}) \
            .sort("accessedAt", -1).limit(10).to_list(10)
        recent_ids = [a["clientId"] for a in accesses if a.get("clientId")]
        recent_found = await db.clients.find(
            {"id": {"$in": recent_ids}, "userId": user_id},
            {"_id": 0, "id": 1, "firstName": 1, "lastName": 1, "email": 1, "updatedAt": 1}
        ).to_list(len(recent_ids) or 1)
        by_id = {c["id"]: c for c in recent_found}
        recent_clients = [by_id[cid] for cid in recent_ids if cid in by_id]

        now = datetime.now(timezone.utc).isoformat()
        upcoming = await db.appointments.find(
            {
                "userId": user_id,
                "status": AppointmentStatus.SCHEDULED.value,
                "startDateTime": {"$gte": now},
            },
            {"_id": 0}
        ).sort("startDateTime", 1).limit(20).to_list(20)

        exports = await db.pdf_exports.find({"userId": user_id}, {"_id": 0}) \
            .sort("createdAt", -1).limit(20).to_list(20)
        exports = [await attach_client(db, e) for e in exports]

        integration = await db.email_integrations.find_one({"userId": user_id}, {"_id": 0})

        return {
            "user": profile,
            "clients": clients,
            "recentClients": recent_clients,
            "upcomingAppointments": upcoming,
            "recentExports": exports,
            "counts": {
                "clients": await db.clients.count_documents({"userId": user_id}),
                "appointments": await db.appointments.count_documents({"userId": user_id}),
                "exports": await db.pdf_exports.count_documents({"userId": user_id}),
            },
            "emailIntegration": safe_integration(integration),
        }

    except Exception as e:
        logger.error(f"Account center error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to load account center"
        )
