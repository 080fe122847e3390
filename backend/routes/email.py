"""Email integration settings and report/summary emails to clients."""
from fastapi import APIRouter, HTTPException, Request, status
from database import database
from models import EmailIntegration, EmailIntegrationRequest, SendReportRequest, AuditAction
from middleware import require_auth
from services.email_service import email_service, build_attachment
from services.client_validation import validate_email
from services.pdf_export_service import get_owned_export, read_export_content
from utils.audit import create_audit_log
from utils.encryption import encrypt_field
from utils.formatting import format_au_long_date
from utils.rate_limiter import rate_limiter
from typing import Optional, Dict, Any, List
from datetime import datetime, timezone
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/email", tags=["email"])

EMAIL_MAX_SENDS = 20
EMAIL_WINDOW_MINUTES = 60

SECRET_FIELDS = ("encryptedPassword", "encryptedAccessToken", "encryptedRefreshToken")

def safe_integration(integration: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Integration record without any stored credentials."""
    if not integration:
        return None
    return {k: v for k, v in integration.items() if k not in SECRET_FIELDS and k != "_id"}

def _parse_port(value: Any) -> Optional[int]:
    if value in (None, ""):
        return None
    try:
        return int(str(value).strip())
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Ports must be numbers"
        )

async def get_user_integration(user_id: str) -> Optional[Dict[str, Any]]:
    db = database.get_db()
    return await db.email_integrations.find_one({"userId": user_id}, {"_id": 0})

async def _check_send_allowed(user: dict):
    allowed, error = await rate_limiter.check_rate_limit(
        f"email:{user['user_id']}", EMAIL_MAX_SENDS, EMAIL_WINDOW_MINUTES
    )
    if not allowed:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=error or "Too many emails sent. Please try again later."
        )

def _recipients(user: dict, client_email: Optional[str], check_format: bool) -> List[str]:
    if not client_email or not client_email.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Client email is required"
        )
    client_email = client_email.strip()
    if check_format and not validate_email(client_email):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid email address format"
        )
    if not user.get("email"):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Account email not found. Please ensure you are logged in with a valid email."
        )
    return [client_email, user["email"]]

async def _pdf_attachment(user: dict, pdf_id: Optional[str]) -> Optional[Dict[str, str]]:
    """Attachment for an export the caller owns; None if missing or unreadable."""
    if not pdf_id:
        return None
    pdf_export = await get_owned_export(user["user_id"], pdf_id)
    if not pdf_export:
        logger.warning(f"PDF export {pdf_id} not found for user {user['user_id']}; sending without attachment")
        return None
    try:
        content = await read_export_content(pdf_export)
    except Exception as e:
        logger.error(f"Error loading PDF {pdf_id} for email: {e}")
        return None
    return build_attachment(pdf_export["fileName"], content.getvalue(), pdf_export.get("mimeType") or "application/pdf")

async def _reply_to(user: dict) -> Optional[str]:
    integration = await get_user_integration(user["user_id"])
    if integration and integration.get("isActive", True):
        return integration.get("email")
    return None

@router.get("/integration")
async def get_integration(request: Request):
    user = await require_auth(request)

    try:
        return {"integration": safe_integration(await get_user_integration(user["user_id"]))}
    except Exception as e:
        logger.warning(f"Email integration lookup failed: {e}")
        return {"integration": None}

@router.post("/integration")
async def save_integration(request: Request, data: EmailIntegrationRequest):
    """Create or replace the adviser's email integration."""
    user = await require_auth(request)

    if not data.provider or not data.email:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Provider and email are required"
        )
    if not validate_email(data.email):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid email address format"
        )

    db = database.get_db()

    try:
        existing = await get_user_integration(user["user_id"])

        integration = EmailIntegration(
            userId=user["user_id"],
            provider=data.provider,
            email=data.email,
            encryptedPassword=encrypt_field(data.password) if data.password else None,
            smtpHost=data.smtpHost,
            smtpPort=_parse_port(data.smtpPort),
            smtpUser=data.smtpUser,
            imapHost=data.imapHost,
            imapPort=_parse_port(data.imapPort),
            imapUser=data.imapUser,
            isActive=True,
            lastSyncAt=datetime.now(timezone.utc)
        )
        if existing:
            integration.id = existing["id"]

        doc = integration.model_dump(mode="json")
        doc["lastSyncAt"] = integration.lastSyncAt.isoformat()

        await db.email_integrations.replace_one({"userId": user["user_id"]}, doc, upsert=True)

        await create_audit_log(
            action=AuditAction.EMAIL_INTEGRATION_UPDATED,
            actor_id=user["user_id"],
            resource_type="email_integration",
            resource_id=integration.id,
            metadata={"provider": data.provider, "email": data.email}
        )

        return {"integration": safe_integration(doc)}

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Save email integration error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to save email integration"
        )

@router.delete("/integration")
async def delete_integration(request: Request):
    user = await require_auth(request)
    db = database.get_db()

    try:
        result = await db.email_integrations.delete_many({"userId": user["user_id"]})
        if result.deleted_count:
            await create_audit_log(
                action=AuditAction.EMAIL_INTEGRATION_REMOVED,
                actor_id=user["user_id"],
                resource_type="email_integration"
            )
        return {"success": True}

    except Exception as e:
        logger.error(f"Delete email integration error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete email integration"
        )

@router.post("/send-report")
async def send_report(request: Request, data: SendReportRequest):
    """Email the financial report to the client, copied to the adviser."""
    user = await require_auth(request)
    recipients = _recipients(user, data.clientEmail, check_format=True)
    await _check_send_allowed(user)

    try:
        attachment = await _pdf_attachment(user, data.pdfId)
        report_date = data.reportDate or format_au_long_date(datetime.now(timezone.utc))
        subject = data.subject or f"Your Financial Planning Report - {report_date}"

        message_log = await email_service.send_report_email(
            user=user,
            recipients=recipients,
            subject=subject,
            client_name=data.clientName,
            comments=data.message,
            report_date=report_date,
            summary_data=data.summaryData,
            client_id=data.clientId,
            attachment=attachment,
            reply_to=await _reply_to(user),
        )

        if message_log.status == "failed":
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to send email"
            )

        return {
            "success": True,
            "message": f"Email sent successfully to {recipients[0]}{' with PDF attachment' if attachment else ''}",
        }

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Send report email error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to send email"
        )

@router.post("/send-summary")
async def send_summary(request: Request, data: SendReportRequest):
    """Email the summary to the client and the adviser."""
    user = await require_auth(request)
    recipients = _recipients(user, data.clientEmail, check_format=False)
    await _check_send_allowed(user)

    try:
        attachment = await _pdf_attachment(user, data.pdfId)

        message_log = await email_service.send_summary_email(
            user=user,
            recipients=recipients,
            subject=data.subject or "Your Financial Planning Report - Perpetual Wealth Partners",
            client_name=data.clientName,
            message=data.message,
            summary_data=data.summaryData,
            client_id=data.clientId,
            attachment=attachment,
            reply_to=await _reply_to(user),
        )

        if message_log.status == "failed":
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to send email"
            )

        return {
            "success": True,
            "message": "Email sent successfully to both client and account email"
                       f"{' with PDF attachment' if attachment else ''}",
        }

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Send summary email error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to send email"
        )
