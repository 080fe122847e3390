from fastapi import APIRouter, HTTPException, Request, UploadFile, File, Form, status
from fastapi.responses import StreamingResponse
from database import database
from middleware import require_auth
from services.pdf_export_service import (
    create_pdf_export, attach_client, get_owned_export,
    read_export_content, delete_pdf_export, content_disposition
)
from services.storage_adapter import FileNotFoundError as StoredFileNotFound
from typing import Optional, Dict, Any
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/pdf-exports", tags=["pdf-exports"])

async def _require_export(user: dict, export_id: str) -> Dict[str, Any]:
    pdf_export = await get_owned_export(user["user_id"], export_id)
    if not pdf_export:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="PDF export not found"
        )
    return pdf_export

async def _stream_export(user: dict, export_id: str, disposition: str) -> StreamingResponse:
    pdf_export = await _require_export(user, export_id)
    try:
        content = await read_export_content(pdf_export)
    except StoredFileNotFound:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="PDF file not found in storage"
        )

    return StreamingResponse(
        iter([content.getvalue()]),
        media_type=pdf_export.get("mimeType") or "application/pdf",
        headers={"Content-Disposition": content_disposition(disposition, pdf_export["fileName"])}
    )

@router.get("")
async def list_exports(request: Request, clientId: Optional[str] = None, limit: int = 50):
    """The adviser's PDF exports, newest first."""
    user = await require_auth(request)
    db = database.get_db()

    try:
        query = {"userId": user["user_id"]}
        if clientId:
            query["clientId"] = clientId

        exports = await db.pdf_exports.find(query, {"_id": 0}).sort("createdAt", -1).limit(limit).to_list(limit)
        return {"exports": [await attach_client(db, e) for e in exports]}

    except Exception as e:
        logger.error(f"List PDF exports error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to load PDF exports"
        )

@router.post("")
async def upload_export(
    request: Request,
    clientId: Optional[str] = Form(None),
    fileName: Optional[str] = Form(None),
    file: Optional[UploadFile] = File(None)
):
    """Store an uploaded PDF against one of the adviser's clients."""
    user = await require_auth(request)

    if not clientId or not fileName or file is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Client ID, file name, and file are required"
        )

    db = database.get_db()

    try:
        client = await db.clients.find_one({"id": clientId, "userId": user["user_id"]}, {"_id": 0, "id": 1})
        if not client:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Client not found"
            )

        content = await file.read()
        pdf_export = await create_pdf_export(
            user_id=user["user_id"],
            file_name=fileName,
            content=content,
            client_id=clientId,
            mime_type=file.content_type or "application/pdf",
        )
        return await attach_client(db, pdf_export)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Upload PDF export error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to store PDF export"
        )

@router.get("/{export_id}")
async def get_export(request: Request, export_id: str):
    user = await require_auth(request)
    db = database.get_db()
    pdf_export = await _require_export(user, export_id)
    return await attach_client(db, pdf_export)

@router.delete("/{export_id}")
async def delete_export(request: Request, export_id: str):
    user = await require_auth(request)
    pdf_export = await _require_export(user, export_id)

    try:
        await delete_pdf_export(user["user_id"], pdf_export)
        return {"success": True}
    except Exception as e:
        logger.error(f"Delete PDF export error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete PDF export"
        )

@router.get("/{export_id}/download")
async def download_export(request: Request, export_id: str):
    user = await require_auth(request)
    return await _stream_export(user, export_id, "attachment")

@router.get("/{export_id}/view")
async def view_export(request: Request, export_id: str):
    user = await require_auth(request)
    return await _stream_export(user, export_id, "inline")
