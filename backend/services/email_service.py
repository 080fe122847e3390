from postmarker.core import PostmarkClient
from database import database
from models import MessageLog, EmailTemplateAlias, AuditAction
from utils.audit import create_audit_log
from utils.formatting import format_locale_number, format_weekday_date, format_time_12h, to_number
from datetime import datetime, timezone
from html import escape
import base64
import os
import re
import logging
from typing import Optional, Dict, Any, List

logger = logging.getLogger(__name__)

# Verified sender in Postmark
DEFAULT_SENDER = os.getenv("EMAIL_SENDER", "admin@pwp2026.com.au")
DEFAULT_SENDER_NAME = os.getenv("EMAIL_SENDER_NAME", "Perpetual Wealth Partners")

COMPANY_NAME = "Perpetual Wealth Partners"

REPORT_INCLUDES = [
    "Executive Summary of your financial position",
    "Detailed cash flow analysis",
    "Investment property potential assessment",
    "Retirement projection with growth scenarios",
    "Tax optimization strategies",
    "Personalized recommendations and action items",
]

DISCLAIMER = (
    "This report is confidential and intended solely for the use of the individual to whom it is addressed. "
    "If you have received this email in error, please notify us immediately. The information provided "
    "is general in nature and does not constitute financial advice. Please consult with a qualified "
    "financial advisor before making any financial decisions."
)


def _amount(summary: Dict[str, Any], key: str) -> str:
    return format_locale_number(to_number(summary.get(key)))


def html_to_text(html_body: str) -> str:
    """Plain-text fallback: tags stripped, whitespace collapsed per line."""
    text = re.sub(r"<(br|/p|/div|/li|/h[1-6]|/tr)\s*/?>", "\n", html_body, flags=re.IGNORECASE)
    text = re.sub(r"<[^>]*>", "", text)
    lines = [re.sub(r"\s+", " ", line).strip() for line in text.splitlines()]
    return "\n".join(line for line in lines if line)


def build_attachment(file_name: str, content: bytes, content_type: str = "application/pdf") -> Dict[str, str]:
    """Postmark attachment payload."""
    return {
        "Name": file_name,
        "Content": base64.b64encode(content).decode("ascii"),
        "ContentType": content_type,
    }


class EmailService:
    def __init__(self):
        postmark_token = os.getenv("POSTMARK_SERVER_TOKEN")
        if not postmark_token:
            logger.warning("POSTMARK_SERVER_TOKEN not set - emails will be logged but not sent")
            self.client = None
        else:
            self.client = PostmarkClient(server_token=postmark_token)
            logger.info("Postmark email client initialized")

    async def send_email(
        self,
        recipients: List[str],
        subject: str,
        html_body: str,
        template_alias: EmailTemplateAlias,
        user_id: Optional[str] = None,
        client_id: Optional[str] = None,
        sender_name: Optional[str] = None,
        reply_to: Optional[str] = None,
        attachments: Optional[List[Dict[str, str]]] = None,
    ) -> MessageLog:
        """Send one email to all recipients, then record a message log and audit entry.

        Delivery failures are recorded on the returned log (status "failed")
        rather than raised.
        """
        db = database.get_db()

        message_log = MessageLog(
            user_id=user_id,
            client_id=client_id,
            recipients=recipients,
            template_alias=template_alias,
            subject=subject,
            has_attachment=bool(attachments),
            status="queued"
        )

        try:
            if self.client:
                send_kw = dict(
                    From=f'"{sender_name or DEFAULT_SENDER_NAME}" <{DEFAULT_SENDER}>',
                    To=", ".join(recipients),
                    Subject=subject,
                    HtmlBody=html_body,
                    TextBody=html_to_text(html_body),
                    TrackOpens=True,
                    TrackLinks="HtmlOnly",
                    Tag=template_alias.value,
                )
                if reply_to:
                    send_kw["ReplyTo"] = reply_to
                if attachments:
                    send_kw["Attachments"] = attachments

                response = self.client.emails.send(**send_kw)

                message_log.postmark_message_id = response["MessageID"]
                message_log.status = "sent"
                message_log.sent_at = datetime.now(timezone.utc)
                logger.info(f"Email sent to {', '.join(recipients)}: {response['MessageID']}")
            else:
                # Dev mode - just log
                message_log.status = "sent"
                message_log.sent_at = datetime.now(timezone.utc)
                logger.info(f"[DEV MODE] Email logged (not sent) to {', '.join(recipients)}: {subject}")

        except Exception as e:
            message_log.status = "failed"
            message_log.error_message = str(e)
            logger.error(f"Failed to send email to {', '.join(recipients)}: {e}")

        doc = message_log.model_dump(mode="json")
        await db.message_logs.insert_one(doc)

        await create_audit_log(
            action=AuditAction.EMAIL_SENT if message_log.status == "sent" else AuditAction.EMAIL_FAILED,
            actor_id=user_id,
            client_id=client_id,
            resource_type="email",
            resource_id=message_log.message_id,
            metadata={
                "template": template_alias.value,
                "recipients": recipients,
                "status": message_log.status,
                "postmark_id": message_log.postmark_message_id,
                "has_attachment": message_log.has_attachment,
                "error": message_log.error_message,
            }
        )

        return message_log

    # ------------------------------------------------------------------
    # Templates
    # ------------------------------------------------------------------

    def build_report_html(
        self,
        client_name: Optional[str],
        comments: Optional[str],
        report_date: str,
        summary_data: Optional[Dict[str, Any]],
        has_pdf_attachment: bool
    ) -> str:
        """Financial planning report email."""
        comments_block = ""
        if comments:
            comments_block = f"""
                <div style="background: #fefce8; padding: 15px 20px; border-radius: 8px; margin: 20px 0; border-left: 4px solid #eab308;">
                    <strong style="color: #854d0e; display: block; margin-bottom: 8px;">Additional Comments:</strong>
                    <p style="margin: 0; color: #713f12;">{escape(comments)}</p>
                </div>
            """

        summary_block = ""
        if summary_data:
            cash_flow = to_number(summary_data.get("monthlyCashFlow"))
            cash_flow_color = "#16a34a" if cash_flow >= 0 else "#dc2626"
            is_deficit = bool(summary_data.get("isRetirementDeficit"))
            status_text = "Action Required" if is_deficit else "On Track"
            status_color = "#dc2626" if is_deficit else "#16a34a"
            cell = "background: #f8fafc; padding: 15px; border-radius: 6px; text-align: center;"
            label = "display: block; font-size: 12px; color: #64748b; text-transform: uppercase; letter-spacing: 0.5px; margin-bottom: 5px;"
            value = "font-size: 18px; font-weight: 600;"
            summary_block = f"""
                <table width="100%" cellpadding="0" cellspacing="8" style="margin: 20px 0;">
                    <tr>
                        <td style="{cell}"><span style="{label}">Current Net Worth</span>
                            <span style="{value} color: #3b82f6;">${_amount(summary_data, 'netWorth')}</span></td>
                        <td style="{cell}"><span style="{label}">Monthly Surplus</span>
                            <span style="{value} color: {cash_flow_color};">${_amount(summary_data, 'monthlyCashFlow')}</span></td>
                    </tr>
                    <tr>
                        <td style="{cell}"><span style="{label}">Projected Retirement</span>
                            <span style="{value} color: #3b82f6;">${_amount(summary_data, 'projectedRetirementLumpSum')}</span></td>
                        <td style="{cell}"><span style="{label}">Tax Savings Potential</span>
                            <span style="{value} color: #16a34a;">${_amount(summary_data, 'taxSavings')}</span></td>
                    </tr>
                    <tr>
                        <td colspan="2" style="{cell}"><span style="{label}">Retirement Status</span>
                            <span style="{value} color: {status_color};">{status_text}</span></td>
                    </tr>
                </table>
            """

        includes = "".join(
            f'<li style="padding: 8px 0; color: #475569; border-bottom: 1px solid #f1f5f9;">&#10003; {item}</li>'
            for item in REPORT_INCLUDES
        )

        attachment_block = ""
        if has_pdf_attachment:
            attachment_block = """
                <div style="background: #eff6ff; padding: 15px; border-radius: 6px; margin: 20px 0;">
                    <p style="margin: 0; color: #1e40af; font-size: 14px;"><strong>Note:</strong> A detailed PDF report is attached to this email.</p>
                </div>
            """

        return f"""
        <html>
        <body style="font-family: 'Helvetica Neue', Helvetica, Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px; background-color: #f5f5f5;">
            <div style="background: #ffffff; border-radius: 8px; overflow: hidden;">
                <div style="background: #1e3a5f; color: white; padding: 30px; text-align: center;">
                    <h1 style="margin: 0; font-size: 24px; font-weight: 600;">Financial Planning Report</h1>
                    <p style="margin: 8px 0 0; font-size: 14px;">{COMPANY_NAME}</p>
                </div>
                <div style="padding: 30px;">
                    <p style="font-size: 16px; margin-bottom: 20px; color: #1a1a1a;">Dear {escape(client_name or 'Valued Client')},</p>

                    <div style="background: #f8fafc; padding: 20px; border-radius: 8px; margin: 20px 0; border-left: 4px solid #3b82f6;">
                        <p style="margin: 0 0 10px;">Please find attached your comprehensive Financial Planning Report dated <strong>{escape(report_date)}</strong>.</p>
                        <p style="margin: 0;">This report contains a detailed analysis of your current financial position and projections for your retirement planning goals.</p>
                    </div>
                    {comments_block}
                    {summary_block}
                    <div style="margin: 25px 0;">
                        <h3 style="color: #1e293b; font-size: 16px; margin-bottom: 12px;">The report includes:</h3>
                        <ul style="list-style: none; padding: 0; margin: 0;">{includes}</ul>
                    </div>
                    {attachment_block}
                    <p style="color: #64748b; text-align: center; padding: 25px 0;">
                        If you have any questions about the report or would like to discuss any of the
                        recommendations in detail, please don't hesitate to contact us.
                    </p>

                    <div style="margin-top: 30px; padding-top: 20px; border-top: 1px solid #e2e8f0;">
                        <p style="margin: 0 0 5px;">Best regards,</p>
                        <p style="margin: 0; font-weight: 600; color: #1e293b;">{COMPANY_NAME}</p>
                        <p style="margin: 0; color: #64748b; font-size: 14px;">Financial Planning Team</p>
                        <a href="mailto:{DEFAULT_SENDER}" style="color: #3b82f6; font-size: 14px; text-decoration: none;">{DEFAULT_SENDER}</a>
                        <p style="font-size: 11px; color: #94a3b8; margin-top: 25px; padding-top: 15px; border-top: 1px solid #f1f5f9; font-style: italic; line-height: 1.5;">
                            {DISCLAIMER}
                        </p>
                    </div>
                </div>
            </div>
        </body>
        </html>
        """

    def build_summary_html(
        self,
        client_name: Optional[str],
        message: Optional[str],
        summary_data: Optional[Dict[str, Any]],
        has_pdf_attachment: bool
    ) -> str:
        """Short summary email."""
        summary_block = ""
        if summary_data:
            name = summary_data.get("clientName") or client_name or "N/A"
            status = "Deficit" if summary_data.get("isRetirementDeficit") else "Surplus"
            summary_block = f"""
                <h3>Summary</h3>
                <p><strong>Client:</strong> {escape(str(name))}</p>
                <p><strong>Net Worth:</strong> ${_amount(summary_data, 'netWorth')}</p>
                <p><strong>Monthly Cash Flow:</strong> ${_amount(summary_data, 'monthlyCashFlow')}</p>
                <p><strong>Tax Savings:</strong> ${_amount(summary_data, 'taxSavings')}</p>
                <p><strong>Retirement Status:</strong> {status}</p>
            """

        message_block = f"<p>{escape(message)}</p>" if message else ""
        attachment_block = (
            "<p><strong>Note:</strong> A detailed PDF report is attached to this email.</p>"
            if has_pdf_attachment else ""
        )

        return f"""
        <html>
        <body style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
            <h2>Financial Planning Summary Report</h2>
            {message_block}
            <div style="background-color: #f5f5f5; padding: 15px; border-radius: 5px; margin: 20px 0;">
                {summary_block}
            </div>
            {attachment_block}
            <p>This is an automated email from {COMPANY_NAME} Financial Planning System.</p>
        </body>
        </html>
        """

    def build_reminder_html(
        self,
        appointment: Dict[str, Any],
        client: Optional[Dict[str, Any]],
        start: datetime
    ) -> str:
        """Appointment reminder sent a day ahead."""
        client_name = ""
        if client:
            client_name = f"{client.get('firstName', '')} {client.get('lastName', '')}".strip()

        details = [
            ("Date", format_weekday_date(start)),
            ("Time", format_time_12h(start)),
        ]
        if client_name:
            details.append(("Client", client_name))
        if appointment.get("description"):
            details.append(("Details", appointment["description"]))

        rows = "".join(
            f'<tr><td style="padding: 6px 12px 6px 0; color: #64748b;">{label}</td>'
            f'<td style="padding: 6px 0; font-weight: 600;">{escape(str(value))}</td></tr>'
            for label, value in details
        )

        return f"""
        <html>
        <body style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
            <h2 style="color: #1e3a5f;">Appointment Reminder</h2>
            <p>This is a reminder of your upcoming appointment:</p>
            <div style="background-color: #f8fafc; padding: 20px; border-radius: 8px; border-left: 4px solid #3b82f6;">
                <h3 style="margin-top: 0;">{escape(appointment.get('title') or 'Appointment')}</h3>
                <table cellpadding="0" cellspacing="0">{rows}</table>
            </div>
            <p>If you need to reschedule, please contact us as soon as possible.</p>
            <p style="color: #64748b; font-size: 13px;">{COMPANY_NAME}</p>
        </body>
        </html>
        """

    # ------------------------------------------------------------------
    # Convenience senders
    # ------------------------------------------------------------------

    async def send_report_email(
        self,
        user: Dict[str, Any],
        recipients: List[str],
        subject: str,
        client_name: Optional[str],
        comments: Optional[str],
        report_date: str,
        summary_data: Optional[Dict[str, Any]],
        client_id: Optional[str] = None,
        attachment: Optional[Dict[str, str]] = None,
        reply_to: Optional[str] = None,
    ) -> MessageLog:
        html_body = self.build_report_html(client_name, comments, report_date, summary_data, attachment is not None)
        return await self.send_email(
            recipients=recipients,
            subject=subject,
            html_body=html_body,
            template_alias=EmailTemplateAlias.FINANCIAL_REPORT,
            user_id=user.get("user_id"),
            client_id=client_id,
            sender_name=user.get("name"),
            reply_to=reply_to,
            attachments=[attachment] if attachment else None,
        )

    async def send_summary_email(
        self,
        user: Dict[str, Any],
        recipients: List[str],
        subject: str,
        client_name: Optional[str],
        message: Optional[str],
        summary_data: Optional[Dict[str, Any]],
        client_id: Optional[str] = None,
        attachment: Optional[Dict[str, str]] = None,
        reply_to: Optional[str] = None,
    ) -> MessageLog:
        html_body = self.build_summary_html(client_name, message, summary_data, attachment is not None)
        return await self.send_email(
            recipients=recipients,
            subject=subject,
            html_body=html_body,
            template_alias=EmailTemplateAlias.FINANCIAL_SUMMARY,
            user_id=user.get("user_id"),
            client_id=client_id,
            sender_name=user.get("name"),
            reply_to=reply_to,
            attachments=[attachment] if attachment else None,
        )

    async def send_appointment_reminder(
        self,
        appointment: Dict[str, Any],
        client: Optional[Dict[str, Any]],
        recipients: List[str],
        start: datetime,
    ) -> MessageLog:
        return await self.send_email(
            recipients=recipients,
            subject=f"Appointment Reminder: {appointment.get('title', '')}",
            html_body=self.build_reminder_html(appointment, client, start),
            template_alias=EmailTemplateAlias.APPOINTMENT_REMINDER,
            user_id=appointment.get("userId"),
            client_id=appointment.get("clientId"),
        )


email_service = EmailService()
