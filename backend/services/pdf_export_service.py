"""PDF exports - stored PDF bytes plus their per-adviser records."""
from database import database
from models import PdfExport, AuditAction
from services.storage_adapter import upload_pdf_export, get_file_content, storage_adapter
from utils.audit import create_audit_log
from datetime import datetime, timezone
from typing import Dict, Any, Optional
import io
import logging
import re
from urllib.parse import quote

logger = logging.getLogger(__name__)

CLIENT_SUMMARY_PROJECTION = {"_id": 0, "id": 1, "firstName": 1, "lastName": 1, "email": 1}

UPLOAD_NAME_PATTERN = re.compile(r"[^a-zA-Z0-9.-]")
GENERATED_NAME_PATTERN = re.compile(r"[^a-zA-Z0-9._-]")
HEADER_UNSAFE_PATTERN = re.compile(r'[^\x20-\x7e]|["\\]')


def timestamped_file_name(file_name: str, pattern: re.Pattern = UPLOAD_NAME_PATTERN,
                          now: Optional[datetime] = None) -> str:
    """'{epoch_ms}_{name}' with unsafe characters replaced by '_'."""
    now = now or datetime.now(timezone.utc)
    return f"{int(now.timestamp() * 1000)}_{pattern.sub('_', file_name)}"


def content_disposition(disposition: str, file_name: str) -> str:
    """
    Content-Disposition value for a stored file name. Headers go out as
    latin-1, so filename carries an ASCII copy and filename* the UTF-8 name.
    """
    fallback = HEADER_UNSAFE_PATTERN.sub("_", file_name)
    return f"{disposition}; filename=\"{fallback}\"; filename*=UTF-8''{quote(file_name, safe='')}"


async def create_pdf_export(
    user_id: str,
    file_name: str,
    content: bytes,
    client_id: Optional[str] = None,
    mime_type: str = "application/pdf",
    stored_name: Optional[str] = None,
    action: AuditAction = AuditAction.PDF_EXPORT_CREATED,
) -> Dict[str, Any]:
    """Store the bytes and record the export. Returns the record as stored."""
    db = database.get_db()
    stored_name = stored_name or timestamped_file_name(file_name)

    stored = await upload_pdf_export(
        user_id=user_id,
        file_data=content,
        filename=stored_name,
        content_type=mime_type,
        client_id=client_id,
    )

    pdf_export = PdfExport(
        userId=user_id,
        clientId=client_id,
        fileName=file_name,
        storageKey=stored.key,
        fileSize=len(content),
        mimeType=mime_type,
    )
    doc = pdf_export.model_dump(mode="json")
    doc["createdAt"] = pdf_export.createdAt.isoformat()

    await db.pdf_exports.insert_one(doc)
    doc.pop("_id", None)

    await create_audit_log(
        action=action,
        actor_id=user_id,
        client_id=client_id,
        resource_type="pdf_export",
        resource_id=pdf_export.id,
        metadata={"fileName": file_name, "fileSize": len(content)}
    )

    logger.info(f"PDF export stored: {pdf_export.id} ({len(content)} bytes)")
    return doc


async def attach_client(db, pdf_export: Dict[str, Any]) -> Dict[str, Any]:
    client = None
    if pdf_export.get("clientId"):
        client = await db.clients.find_one({"id": pdf_export["clientId"]}, CLIENT_SUMMARY_PROJECTION)
    pdf_export["client"] = client
    return pdf_export


async def get_owned_export(user_id: str, export_id: str) -> Optional[Dict[str, Any]]:
    db = database.get_db()
    return await db.pdf_exports.find_one({"id": export_id, "userId": user_id}, {"_id": 0})


async def read_export_content(pdf_export: Dict[str, Any]) -> io.BytesIO:
    """Stored bytes for an export. Raises storage FileNotFoundError when missing."""
    return await get_file_content(pdf_export["storageKey"])


async def delete_pdf_export(user_id: str, pdf_export: Dict[str, Any]):
    """Remove the stored object (failure is logged) and the record."""
    db = database.get_db()
    try:
        await storage_adapter.delete_file(pdf_export["storageKey"])
    except Exception as e:
        logger.error(f"Failed to delete stored PDF {pdf_export.get('storageKey')}: {e}")

    await db.pdf_exports.delete_one({"id": pdf_export["id"]})

    await create_audit_log(
        action=AuditAction.PDF_EXPORT_DELETED,
        actor_id=user_id,
        client_id=pdf_export.get("clientId"),
        resource_type="pdf_export",
        resource_id=pdf_export["id"],
        metadata={"fileName": pdf_export.get("fileName")}
    )
