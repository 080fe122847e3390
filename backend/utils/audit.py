from database import database
from models import AuditLog, AuditAction, UserRole
from datetime import datetime
from typing import Optional, Dict, Any
import logging

logger = logging.getLogger(__name__)

# Timestamps and bookkeeping fields change on every write; they are not edits.
_DIFF_IGNORED_KEYS = {"updatedAt", "accessedAt", "lastSyncAt"}

# Credentials never reach the audit trail.
_REDACTED_KEYS = {"password", "password_hash", "encryptedPassword", "encryptedAccessToken", "encryptedRefreshToken"}

def redact(state: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Copy of a record state with credential fields masked and Mongo's _id dropped."""
    if not state:
        return state
    return {
        k: ("***" if k in _REDACTED_KEYS and v else v)
        for k, v in state.items() if k != "_id"
    }

def calculate_diff(before: Dict[str, Any], after: Dict[str, Any]) -> Dict[str, Any]:
    """Calculate the differences between before and after record states.

    Returns a dict with:
    - added: fields that exist in after but not in before
    - removed: fields that exist in before but not in after
    - changed: fields that exist in both but have different values
    """
    if not before and not after:
        return {}

    if not before:
        return {"added": after, "removed": {}, "changed": {}}

    if not after:
        return {"added": {}, "removed": before, "changed": {}}

    diff = {"added": {}, "removed": {}, "changed": {}}

    for key in (set(before.keys()) | set(after.keys())) - _DIFF_IGNORED_KEYS:
        before_val = before.get(key)
        after_val = after.get(key)

        if key not in before:
            diff["added"][key] = after_val
        elif key not in after:
            diff["removed"][key] = before_val
        elif before_val != after_val:
            diff["changed"][key] = {"from": before_val, "to": after_val}

    return {k: v for k, v in diff.items() if v}

async def create_audit_log(
    action: AuditAction,
    actor_id: Optional[str] = None,
    actor_role: Optional[UserRole] = None,
    client_id: Optional[str] = None,
    resource_type: Optional[str] = None,
    resource_id: Optional[str] = None,
    before_state: Optional[Dict[str, Any]] = None,
    after_state: Optional[Dict[str, Any]] = None,
    metadata: Optional[Dict[str, Any]] = None,
    ip_address: Optional[str] = None,
    auto_diff: bool = True
) -> str:
    """Record an audit entry for an adviser action.

    Args:
        action: The audit action type
        actor_id: ID of the adviser performing the action
        actor_role: Role of the adviser
        client_id: ID of the affected client record
        resource_type: Type of resource ('client', 'appointment', 'pdf_export', ...)
        resource_id: ID of the specific resource
        before_state: State before the change
        after_state: State after the change
        metadata: Additional metadata
        ip_address: IP address of the request
        auto_diff: If True, store the before/after diff in metadata

    Returns the audit_id, or "" when the entry could not be written.
    """
    try:
        db = database.get_db()
        before_state = redact(before_state)
        after_state = redact(after_state)

        diff = None
        if auto_diff and before_state and after_state:
            diff = calculate_diff(before_state, after_state)

        enriched_metadata = metadata.copy() if metadata else {}
        if diff:
            enriched_metadata["diff"] = diff
            enriched_metadata["changes_count"] = sum(len(v) for v in diff.values())

        audit_log = AuditLog(
            action=action,
            actor_role=actor_role,
            actor_id=actor_id,
            client_id=client_id,
            resource_type=resource_type,
            resource_id=resource_id,
            before_state=before_state,
            after_state=after_state,
            metadata=enriched_metadata or None,
            ip_address=ip_address
        )

        doc = audit_log.model_dump()
        if isinstance(doc["timestamp"], datetime):
            doc["timestamp"] = doc["timestamp"].isoformat()

        await db.audit_logs.insert_one(doc)
        logger.info(f"Audit log created: {action.value}" + (f" with {enriched_metadata.get('changes_count', 0)} changes" if diff else ""))
        return audit_log.audit_id
    except Exception as e:
        logger.error(f"Failed to create audit log: {e}")
        # Never fail the main operation due to audit log failure
        return ""
