"""Render the financial summary report to PDF and store it as an export."""
from fastapi import APIRouter, HTTPException, Request, status
from fastapi.responses import StreamingResponse
from models import PdfGenerateRequest, AuditAction
from middleware import require_auth
from services.report_generator import report_generator, ReportDataError
from services.pdf_export_service import (
    create_pdf_export, timestamped_file_name, content_disposition, GENERATED_NAME_PATTERN
)
from datetime import datetime, timezone
import asyncio
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/pdf-generate", tags=["pdf-generate"])

def default_report_name(client_id, now: datetime) -> str:
    return f"Financial_Summary_{client_id or 'Client'}_{now.strftime('%Y-%m-%d')}.pdf"

async def _render(data: PdfGenerateRequest) -> bytes:
    loop = asyncio.get_running_loop()
    try:
        buffer = await loop.run_in_executor(None, report_generator.generate, data.summary, data.charts)
    except ReportDataError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    return buffer.getvalue()

@router.post("")
async def generate_pdf(request: Request, data: PdfGenerateRequest):
    """Render the report, store it, and record it as a PDF export."""
    user = await require_auth(request)

    try:
        content = await _render(data)

        now = datetime.now(timezone.utc)
        file_name = GENERATED_NAME_PATTERN.sub("_", data.fileName or default_report_name(data.clientId, now))

        pdf_export = await create_pdf_export(
            user_id=user["user_id"],
            file_name=file_name,
            content=content,
            client_id=data.clientId,
            stored_name=timestamped_file_name(file_name, GENERATED_NAME_PATTERN, now),
            action=AuditAction.PDF_GENERATED,
        )

        return {"success": True, "pdfExport": pdf_export}

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"PDF generation error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to generate PDF"
        )

@router.post("/preview")
async def preview_pdf(request: Request, data: PdfGenerateRequest):
    """Render the report and return it inline without storing it."""
    await require_auth(request)

    try:
        content = await _render(data)
        file_name = GENERATED_NAME_PATTERN.sub(
            "_", data.fileName or default_report_name(data.clientId, datetime.now(timezone.utc))
        )
        return StreamingResponse(
            iter([content]),
            media_type="application/pdf",
            headers={"Content-Disposition": content_disposition("inline", file_name)}
        )

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"PDF preview error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to generate PDF"
        )
