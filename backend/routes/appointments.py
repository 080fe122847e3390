from fastapi import APIRouter, HTTPException, Query, Request, status
from database import database
from models import (
    Appointment, AppointmentCreateRequest, AppointmentUpdateRequest,
    AppointmentStatus, AuditAction
)
from middleware import require_auth, get_client_ip
from services.appointment_reminders import parse_stored_datetime
from utils.audit import create_audit_log
from utils.formatting import to_utc_iso
from typing import Optional, Dict, Any
from datetime import datetime
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/appointments", tags=["appointments"])

CLIENT_SUMMARY_PROJECTION = {"_id": 0, "id": 1, "firstName": 1, "lastName": 1, "email": 1}

def _query_datetime(value: Optional[str], name: str) -> Optional[str]:
    if not value:
        return None
    parsed = parse_stored_datetime(value)
    if parsed is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {name}"
        )
    return parsed.isoformat()

async def find_conflict(db, user_id: str, start: datetime, end: datetime, exclude_id: Optional[str] = None):
    """First non-cancelled appointment of the adviser overlapping [start, end)."""
    existing = await db.appointments.find(
        {"userId": user_id, "status": {"$ne": AppointmentStatus.CANCELLED.value}},
        {"_id": 0}
    ).to_list(1000)

    for appointment in existing:
        if exclude_id and appointment.get("id") == exclude_id:
            continue
        s = parse_stored_datetime(appointment.get("startDateTime"))
        e = parse_stored_datetime(appointment.get("endDateTime"))
        if s and e and s < end and e > start:
            return appointment
    return None

async def _with_client(db, appointment: Dict[str, Any]) -> Dict[str, Any]:
    appointment["client"] = await db.clients.find_one(
        {"id": appointment.get("clientId")},
        CLIENT_SUMMARY_PROJECTION
    )
    return appointment

@router.get("")
async def list_appointments(
    request: Request,
    clientId: Optional[str] = None,
    startDate: Optional[str] = None,
    endDate: Optional[str] = None,
    status_filter: Optional[str] = Query(None, alias="status"),
    limit: int = 50
):
    """List the adviser's appointments in start order."""
    user = await require_auth(request)
    db = database.get_db()

    query: Dict[str, Any] = {"userId": user["user_id"]}
    if clientId:
        query["clientId"] = clientId
    if status_filter:
        query["status"] = status_filter

    start_bound = _query_datetime(startDate, "startDate")
    end_bound = _query_datetime(endDate, "endDate")
    if start_bound or end_bound:
        query["startDateTime"] = {}
        if start_bound:
            query["startDateTime"]["$gte"] = start_bound
        if end_bound:
            query["startDateTime"]["$lte"] = end_bound

    try:
        return await db.appointments.find(query, {"_id": 0}).sort("startDateTime", 1).limit(limit).to_list(limit)
    except Exception as e:
        logger.error(f"List appointments error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to load appointments"
        )

@router.post("")
async def create_appointment(request: Request, data: AppointmentCreateRequest):
    """Book an appointment with one of the adviser's clients."""
    user = await require_auth(request)

    if not data.clientId or not data.title or not data.startDateTime or not data.endDateTime:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Client ID, title, start date, and end date are required"
        )

    start = parse_stored_datetime(data.startDateTime)
    end = parse_stored_datetime(data.endDateTime)
    if end <= start:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="End time must be after start time"
        )

    db = database.get_db()

    try:
        client = await db.clients.find_one(
            {"id": data.clientId, "userId": user["user_id"]},
            CLIENT_SUMMARY_PROJECTION
        )
        if not client:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Client not found"
            )

        if await find_conflict(db, user["user_id"], start, end):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Appointment conflicts with existing appointment"
            )

        appointment = Appointment(
            userId=user["user_id"],
            clientId=data.clientId,
            title=data.title,
            description=data.description,
            startDateTime=start,
            endDateTime=end,
            status=data.status or AppointmentStatus.SCHEDULED,
            notes=data.notes
        )

        doc = appointment.model_dump(mode="json")
        doc["startDateTime"] = to_utc_iso(start)
        doc["endDateTime"] = to_utc_iso(end)
        doc["createdAt"] = to_utc_iso(appointment.createdAt)

        await db.appointments.insert_one(doc)
        doc.pop("_id", None)

        await create_audit_log(
            action=AuditAction.APPOINTMENT_CREATED,
            actor_id=user["user_id"],
            client_id=data.clientId,
            resource_type="appointment",
            resource_id=appointment.id,
            metadata={"title": data.title, "startDateTime": doc["startDateTime"]},
            ip_address=get_client_ip(request)
        )

        doc["client"] = client
        return doc

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Create appointment error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create appointment"
        )

@router.get("/{appointment_id}")
async def get_appointment(request: Request, appointment_id: str):
    user = await require_auth(request)
    db = database.get_db()

    try:
        appointment = await db.appointments.find_one(
            {"id": appointment_id, "userId": user["user_id"]},
            {"_id": 0}
        )
        if not appointment:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Appointment not found"
            )
        return await _with_client(db, appointment)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Get appointment error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to load appointment"
        )

@router.patch("/{appointment_id}")
async def update_appointment(request: Request, appointment_id: str, data: AppointmentUpdateRequest):
    """Update an appointment; changed times are re-checked for conflicts."""
    user = await require_auth(request)
    db = database.get_db()

    try:
        existing = await db.appointments.find_one(
            {"id": appointment_id, "userId": user["user_id"]},
            {"_id": 0}
        )
        if not existing:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Appointment not found"
            )

        updates = data.model_dump(exclude_unset=True, mode="json")

        if data.startDateTime or data.endDateTime:
            start = parse_stored_datetime(data.startDateTime or existing.get("startDateTime"))
            end = parse_stored_datetime(data.endDateTime or existing.get("endDateTime"))
            if not start or not end or end <= start:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="End time must be after start time"
                )
            if await find_conflict(db, user["user_id"], start, end, exclude_id=appointment_id):
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail="Appointment conflicts with existing appointment"
                )
            updates["startDateTime"] = to_utc_iso(start)
            updates["endDateTime"] = to_utc_iso(end)
            # A moved appointment gets a fresh reminder
            updates["reminderSent"] = False
            updates["reminderSentAt"] = None

        if updates:
            await db.appointments.update_one({"id": appointment_id}, {"$set": updates})

        updated = await db.appointments.find_one({"id": appointment_id}, {"_id": 0})

        await create_audit_log(
            action=AuditAction.APPOINTMENT_UPDATED,
            actor_id=user["user_id"],
            client_id=existing.get("clientId"),
            resource_type="appointment",
            resource_id=appointment_id,
            before_state=existing,
            after_state=updated,
            ip_address=get_client_ip(request)
        )

        return await _with_client(db, updated)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Update appointment error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update appointment"
        )

@router.delete("/{appointment_id}")
async def delete_appointment(request: Request, appointment_id: str):
    user = await require_auth(request)
    db = database.get_db()

    try:
        existing = await db.appointments.find_one(
            {"id": appointment_id, "userId": user["user_id"]},
            {"_id": 0}
        )
        if not existing:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Appointment not found"
            )

        await db.appointments.delete_one({"id": appointment_id})

        await create_audit_log(
            action=AuditAction.APPOINTMENT_DELETED,
            actor_id=user["user_id"],
            client_id=existing.get("clientId"),
            resource_type="appointment",
            resource_id=appointment_id,
            before_state=existing,
            ip_address=get_client_ip(request)
        )

        return {"success": True}

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Delete appointment error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete appointment"
        )
