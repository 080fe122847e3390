"""Client records for the signed-in adviser.

Payloads go through the field-mapping layer first, so legacy and
snake_case keys are stored under their canonical names.
"""
from fastapi import APIRouter, HTTPException, Request, status
from database import database
from models import AuditAction, MaritalStatus
from middleware import require_auth, get_client_ip
from services.field_mapping import normalize_fields
from services.client_validation import validate_client, parse_date
from utils.audit import create_audit_log
from utils.formatting import to_utc_iso
from typing import Dict, Any, Optional
from datetime import datetime, timezone
import logging
import re
import uuid

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/clients", tags=["clients"])

PROTECTED_FIELDS = {"id", "userId", "createdAt", "updatedAt", "_id"}

async def touch_recent_access(db, user_id: str, client_id: str):
    """Mark a client as just opened by this adviser."""
    await db.recent_client_access.update_one(
        {"userId": user_id, "clientId": client_id},
        {"$set": {"accessedAt": datetime.now(timezone.utc).isoformat()}},
        upsert=True
    )

def _dob_to_iso(value: Any) -> str:
    parsed = parse_date(value)
    if parsed is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid date of birth"
        )
    return to_utc_iso(parsed)

def _raise_validation_errors(errors):
    if errors:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": "Invalid client data", "errors": errors}
        )

@router.get("")
async def list_clients(request: Request, search: Optional[str] = None, limit: int = 50, recent: bool = False):
    """List the adviser's clients, newest updated first.

    With recent=true, the clients the adviser opened most recently.
    """
    user = await require_auth(request)
    db = database.get_db()

    try:
        if recent:
            accesses = await db.recent_client_access.find(
                {"userId": user["user_id"]},
                {"_id": 0}
            ).sort("accessedAt", -1).limit(limit).to_list(limit)

            client_ids = [a["clientId"] for a in accesses if a.get("clientId")]
            if not client_ids:
                return []

            found = await db.clients.find(
                {"id": {"$in": client_ids}, "userId": user["user_id"]},
                {"_id": 0}
            ).to_list(len(client_ids))
            by_id = {c["id"]: c for c in found}
            return [by_id[cid] for cid in client_ids if cid in by_id]

        query: Dict[str, Any] = {"userId": user["user_id"]}
        if search:
            pattern = {"$regex": re.escape(search), "$options": "i"}
            query["$or"] = [
                {"firstName": pattern},
                {"lastName": pattern},
                {"email": pattern},
            ]

        return await db.clients.find(query, {"_id": 0}).sort("updatedAt", -1).limit(limit).to_list(limit)

    except Exception as e:
        logger.error(f"List clients error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to load clients"
        )

@router.post("")
async def create_client(request: Request, data: Dict[str, Any]):
    """Create a client. firstName, lastName and dob are required."""
    user = await require_auth(request)
    normalized = normalize_fields(data)

    if not normalized.get("firstName") or not normalized.get("lastName") or not normalized.get("dob"):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="First name, last name, and date of birth are required"
        )

    if not normalized.get("maritalStatus"):
        normalized["maritalStatus"] = MaritalStatus.SINGLE.value
    if normalized.get("numberOfDependants") is None:
        normalized["numberOfDependants"] = 0

    _raise_validation_errors(validate_client(normalized))

    db = database.get_db()

    try:
        now = datetime.now(timezone.utc).isoformat()
        client_doc = {k: v for k, v in normalized.items() if k not in PROTECTED_FIELDS}
        client_doc.update({
            "id": str(uuid.uuid4()),
            "userId": user["user_id"],
            "dob": _dob_to_iso(normalized["dob"]),
            "createdAt": now,
            "updatedAt": now,
        })

        await db.clients.insert_one(client_doc)
        client_doc.pop("_id", None)

        await touch_recent_access(db, user["user_id"], client_doc["id"])

        await create_audit_log(
            action=AuditAction.CLIENT_CREATED,
            actor_id=user["user_id"],
            client_id=client_doc["id"],
            resource_type="client",
            resource_id=client_doc["id"],
            metadata={"name": f"{client_doc['firstName']} {client_doc['lastName']}"},
            ip_address=get_client_ip(request)
        )

        logger.info(f"Client created: {client_doc['id']}")
        return client_doc

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Create client error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create client"
        )

@router.get("/{client_id}")
async def get_client(request: Request, client_id: str):
    user = await require_auth(request)
    db = database.get_db()

    try:
        client = await db.clients.find_one(
            {"id": client_id, "userId": user["user_id"]},
            {"_id": 0}
        )
        if not client:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Client not found"
            )

        await touch_recent_access(db, user["user_id"], client_id)
        return client

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Get client error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to load client"
        )

@router.patch("/{client_id}")
async def update_client(request: Request, client_id: str, data: Dict[str, Any]):
    """Partial update; only the fields sent are changed."""
    user = await require_auth(request)
    db = database.get_db()

    try:
        existing = await db.clients.find_one(
            {"id": client_id, "userId": user["user_id"]},
            {"_id": 0}
        )
        if not existing:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Client not found"
            )

        normalized = {k: v for k, v in normalize_fields(data).items() if k not in PROTECTED_FIELDS}
        _raise_validation_errors(validate_client(normalized, partial=True))

        if normalized.get("dob"):
            normalized["dob"] = _dob_to_iso(normalized["dob"])
        normalized["updatedAt"] = datetime.now(timezone.utc).isoformat()

        await db.clients.update_one({"id": client_id}, {"$set": normalized})
        await touch_recent_access(db, user["user_id"], client_id)

        updated = await db.clients.find_one({"id": client_id}, {"_id": 0})

        await create_audit_log(
            action=AuditAction.CLIENT_UPDATED,
            actor_id=user["user_id"],
            client_id=client_id,
            resource_type="client",
            resource_id=client_id,
            before_state=existing,
            after_state=updated,
            ip_address=get_client_ip(request)
        )

        return updated

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Update client error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update client"
        )

@router.delete("/{client_id}")
async def delete_client(request: Request, client_id: str):
    user = await require_auth(request)
    db = database.get_db()

    try:
        client = await db.clients.find_one({"id": client_id}, {"_id": 0})
        if not client:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Client not found"
            )
        if client.get("userId") != user["user_id"]:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Client not found or access denied"
            )

        await db.clients.delete_one({"id": client_id})
        await db.recent_client_access.delete_many({"clientId": client_id})

        await create_audit_log(
            action=AuditAction.CLIENT_DELETED,
            actor_id=user["user_id"],
            client_id=client_id,
            resource_type="client",
            resource_id=client_id,
            before_state=client,
            ip_address=get_client_ip(request)
        )

        return {"success": True, "message": "Client deleted successfully", "deletedId": client_id}

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Delete client error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete client"
        )
