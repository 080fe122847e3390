"""Dual-client intake workspace and named client saves."""
from fastapi import APIRouter, HTTPException, Request, status
from models import WorkspaceClientUpdate, SaveWorkspaceRequest, ClientSlot, AuditAction
from middleware import require_auth
from services import workspace_store
from utils.audit import create_audit_log
from typing import Dict, Any
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/workspace", tags=["workspace"])

def _server_error(action: str, e: Exception) -> HTTPException:
    logger.error(f"Workspace {action} error: {e}")
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed to {action}"
    )

@router.get("")
async def get_workspace(request: Request):
    user = await require_auth(request)
    try:
        return await workspace_store.get_workspace(user["user_id"])
    except Exception as e:
        raise _server_error("load workspace", e)

@router.put("/client/{slot}")
async def update_client_slot(request: Request, slot: ClientSlot, data: WorkspaceClientUpdate):
    """Merge client data into a slot, or set one financial field (field/value)."""
    user = await require_auth(request)
    try:
        if data.field:
            return await workspace_store.update_field(user["user_id"], data.field, data.value)
        return await workspace_store.set_client_data(user["user_id"], slot, data.data)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    except Exception as e:
        raise _server_error("update client", e)

@router.delete("/client/{slot}")
async def reset_client_slot(request: Request, slot: ClientSlot):
    user = await require_auth(request)
    try:
        return await workspace_store.reset_client(user["user_id"], slot)
    except Exception as e:
        raise _server_error("reset client", e)

@router.put("/active/{slot}")
async def set_active(request: Request, slot: ClientSlot):
    user = await require_auth(request)
    try:
        return await workspace_store.set_active_client(user["user_id"], slot)
    except Exception as e:
        raise _server_error("set active client", e)

@router.put("/assumptions")
async def update_assumptions(request: Request, assumptions: Dict[str, Any]):
    user = await require_auth(request)
    try:
        return await workspace_store.update_shared_assumptions(user["user_id"], assumptions)
    except Exception as e:
        raise _server_error("update assumptions", e)

@router.get("/saved")
async def list_saved(request: Request):
    user = await require_auth(request)
    try:
        return {"names": await workspace_store.get_all_saved_client_names(user["user_id"])}
    except Exception as e:
        raise _server_error("list saved clients", e)

@router.post("/saved")
async def save_client(request: Request, data: SaveWorkspaceRequest):
    """Save the client in a slot by name. Needs at least a first name."""
    user = await require_auth(request)
    try:
        saved = await workspace_store.save_client_by_name(user["user_id"], data.name, data.slot)
    except Exception as e:
        raise _server_error("save client", e)

    if saved is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot save client: no client data available"
        )

    await create_audit_log(
        action=AuditAction.WORKSPACE_SAVED,
        actor_id=user["user_id"],
        resource_type="saved_workspace",
        resource_id=saved["id"],
        metadata={"name": saved["name"], "slot": data.slot.value}
    )
    return {"success": True, "saved": saved}

@router.post("/saved/{name}/load")
async def load_saved(request: Request, name: str, slot: ClientSlot = ClientSlot.A):
    user = await require_auth(request)
    try:
        workspace = await workspace_store.load_client_by_name(user["user_id"], name, slot)
    except Exception as e:
        raise _server_error("load saved client", e)

    if workspace is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f'Client "{name}" not found'
        )
    return workspace

@router.delete("/saved/{name}")
async def delete_saved(request: Request, name: str):
    user = await require_auth(request)
    try:
        deleted = await workspace_store.delete_client_by_name(user["user_id"], name)
    except Exception as e:
        raise _server_error("delete saved client", e)

    if deleted:
        await create_audit_log(
            action=AuditAction.WORKSPACE_DELETED,
            actor_id=user["user_id"],
            resource_type="saved_workspace",
            metadata={"name": name}
        )
    return {"success": True, "deleted": deleted}
