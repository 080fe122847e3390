"""
PDF export storage, report generation and the email routes.
"""
import io
import pytest
from datetime import datetime, timezone
from fastapi import HTTPException
from unittest.mock import AsyncMock, MagicMock, patch

from models import AuditAction, EmailIntegrationRequest, PdfGenerateRequest, SendReportRequest
from routes import email as email_routes
from routes import pdf_exports as pdf_export_routes
from routes import pdf_generate as pdf_generate_routes
from services import pdf_export_service
from services.pdf_export_service import timestamped_file_name, content_disposition, GENERATED_NAME_PATTERN
from services.storage_adapter import FileNotFoundError as StoredFileNotFound, pdf_storage_key
from utils.encryption import generate_encryption_key, decrypt_field
from conftest import ADVISER


class TestPdfExportService:
    def test_timestamped_file_name(self):
        now = datetime(2026, 10, 19, tzinfo=timezone.utc)
        assert timestamped_file_name("My Report (final).pdf", now=now) == "1792368000000_My_Report__final_.pdf"
        assert timestamped_file_name("a_b.pdf", GENERATED_NAME_PATTERN, now).endswith("_a_b.pdf")

    def test_storage_key(self):
        assert pdf_storage_key("user-1", "123_report.pdf") == "pdfs/user-1/123_report.pdf"

    @pytest.mark.asyncio
    async def test_create_pdf_export_records_and_audits(self):
        db = MagicMock()
        db.pdf_exports.insert_one = AsyncMock()
        stored = MagicMock(key="pdfs/user-1/1_report.pdf")
        with patch("services.pdf_export_service.database.get_db", return_value=db), \
             patch("services.pdf_export_service.upload_pdf_export", new_callable=AsyncMock, return_value=stored) as upload, \
             patch("services.pdf_export_service.create_audit_log", new_callable=AsyncMock) as audit:
            doc = await pdf_export_service.create_pdf_export("user-1", "report.pdf", b"%PDF-1.4", client_id="c1")

        assert doc["storageKey"] == "pdfs/user-1/1_report.pdf"
        assert doc["fileSize"] == 8
        assert doc["clientId"] == "c1"
        assert upload.call_args.kwargs["filename"].endswith("_report.pdf")
        assert audit.call_args.kwargs["action"] == AuditAction.PDF_EXPORT_CREATED

    @pytest.mark.asyncio
    async def test_delete_survives_storage_failure(self):
        db = MagicMock()
        db.pdf_exports.delete_one = AsyncMock()
        with patch("services.pdf_export_service.database.get_db", return_value=db), \
             patch("services.pdf_export_service.storage_adapter") as storage, \
             patch("services.pdf_export_service.create_audit_log", new_callable=AsyncMock):
            storage.delete_file = AsyncMock(side_effect=RuntimeError("gridfs down"))
            await pdf_export_service.delete_pdf_export("user-1", {"id": "p1", "storageKey": "pdfs/user-1/x.pdf"})
        db.pdf_exports.delete_one.assert_awaited_once_with({"id": "p1"})


class TestPdfExportRoutes:
    @pytest.mark.asyncio
    async def test_download_missing_record(self, request_mock):
        with patch("routes.pdf_exports.require_auth", new_callable=AsyncMock, return_value=ADVISER), \
             patch("routes.pdf_exports.get_owned_export", new_callable=AsyncMock, return_value=None):
            with pytest.raises(HTTPException) as exc:
                await pdf_export_routes.download_export(request_mock, "p1")
        assert exc.value.detail == "PDF export not found"

    @pytest.mark.asyncio
    async def test_download_missing_bytes(self, request_mock):
        record = {"id": "p1", "fileName": "report.pdf", "storageKey": "pdfs/user-1/x.pdf"}
        with patch("routes.pdf_exports.require_auth", new_callable=AsyncMock, return_value=ADVISER), \
             patch("routes.pdf_exports.get_owned_export", new_callable=AsyncMock, return_value=record), \
             patch("routes.pdf_exports.read_export_content", new_callable=AsyncMock, side_effect=StoredFileNotFound("gone")):
            with pytest.raises(HTTPException) as exc:
                await pdf_export_routes.download_export(request_mock, "p1")
        assert exc.value.status_code == 404
        assert exc.value.detail == "PDF file not found in storage"

    @pytest.mark.asyncio
    async def test_view_is_inline(self, request_mock):
        record = {"id": "p1", "fileName": "report.pdf", "storageKey": "k", "mimeType": "application/pdf"}
        with patch("routes.pdf_exports.require_auth", new_callable=AsyncMock, return_value=ADVISER), \
             patch("routes.pdf_exports.get_owned_export", new_callable=AsyncMock, return_value=record), \
             patch("routes.pdf_exports.read_export_content", new_callable=AsyncMock, return_value=io.BytesIO(b"%PDF")):
            response = await pdf_export_routes.view_export(request_mock, "p1")
        assert response.headers["content-disposition"] == "inline; filename=\"report.pdf\"; filename*=UTF-8''report.pdf"
        assert response.media_type == "application/pdf"

    @pytest.mark.asyncio
    async def test_download_non_ascii_name(self, request_mock):
        record = {"id": "p1", "fileName": "Résumé \u2013 plan.pdf", "storageKey": "k"}
        with patch("routes.pdf_exports.require_auth", new_callable=AsyncMock, return_value=ADVISER), \
             patch("routes.pdf_exports.get_owned_export", new_callable=AsyncMock, return_value=record), \
             patch("routes.pdf_exports.read_export_content", new_callable=AsyncMock, return_value=io.BytesIO(b"%PDF")):
            response = await pdf_export_routes.download_export(request_mock, "p1")
        assert response.headers["content-disposition"] == (
            "attachment; filename=\"R_sum_ _ plan.pdf\"; "
            "filename*=UTF-8''R%C3%A9sum%C3%A9%20%E2%80%93%20plan.pdf"
        )

    def test_content_disposition_escapes_quotes(self):
        assert content_disposition("inline", 'a"b\\c.pdf').startswith('inline; filename="a_b_c.pdf"; ')

    @pytest.mark.asyncio
    async def test_upload_requires_fields(self, request_mock):
        with patch("routes.pdf_exports.require_auth", new_callable=AsyncMock, return_value=ADVISER):
            with pytest.raises(HTTPException) as exc:
                await pdf_export_routes.upload_export(request_mock, clientId="c1", fileName=None, file=None)
        assert exc.value.status_code == 400


class TestPdfGenerate:
    def test_default_report_name(self):
        assert pdf_generate_routes.default_report_name(None, datetime(2026, 10, 19)) == "Financial_Summary_Client_2026-10-19.pdf"

    @pytest.mark.asyncio
    async def test_missing_summary_is_bad_request(self, request_mock):
        with patch("routes.pdf_generate.require_auth", new_callable=AsyncMock, return_value=ADVISER):
            with pytest.raises(HTTPException) as exc:
                await pdf_generate_routes.generate_pdf(request_mock, PdfGenerateRequest(summary=None))
        assert exc.value.status_code == 400

    @pytest.mark.asyncio
    async def test_generate_stores_export(self, request_mock):
        data = PdfGenerateRequest(summary={"clientName": "Sam Lee", "netWorth": 250000}, clientId="c1", fileName="Sam Lee.pdf")
        with patch("routes.pdf_generate.require_auth", new_callable=AsyncMock, return_value=ADVISER), \
             patch("routes.pdf_generate.create_pdf_export", new_callable=AsyncMock, return_value={"id": "p1"}) as create:
            result = await pdf_generate_routes.generate_pdf(request_mock, data)

        assert result == {"success": True, "pdfExport": {"id": "p1"}}
        kwargs = create.call_args.kwargs
        assert kwargs["file_name"] == "Sam_Lee.pdf"
        assert kwargs["content"].startswith(b"%PDF")
        assert kwargs["action"] == AuditAction.PDF_GENERATED


@pytest.fixture
def allow_sends():
    with patch("routes.email.rate_limiter") as limiter:
        limiter.check_rate_limit = AsyncMock(return_value=(True, None))
        yield limiter


class TestEmailRoutes:
    def test_safe_integration_strips_secrets(self):
        record = {"id": "i1", "email": "a@b.co", "encryptedPassword": "x", "_id": "oid"}
        assert email_routes.safe_integration(record) == {"id": "i1", "email": "a@b.co"}
        assert email_routes.safe_integration(None) is None

    @pytest.mark.parametrize("client_email,detail", [
        (None, "Client email is required"),
        ("  ", "Client email is required"),
        ("nope", "Invalid email address format"),
    ])
    def test_recipient_checks(self, client_email, detail):
        with pytest.raises(HTTPException) as exc:
            email_routes._recipients(ADVISER, client_email, check_format=True)
        assert exc.value.detail == detail

    def test_adviser_email_required(self):
        with pytest.raises(HTTPException) as exc:
            email_routes._recipients({"user_id": "user-1"}, "client@example.com", check_format=False)
        assert exc.value.detail.startswith("Account email not found")

    def test_recipients_are_client_then_adviser(self):
        assert email_routes._recipients(ADVISER, " client@example.com ", check_format=True) == [
            "client@example.com", "adviser@example.com",
        ]

    @pytest.mark.asyncio
    async def test_rate_limited(self, request_mock):
        with patch("routes.email.require_auth", new_callable=AsyncMock, return_value=ADVISER), \
             patch("routes.email.rate_limiter") as limiter:
            limiter.check_rate_limit = AsyncMock(return_value=(False, "Rate limit exceeded. Try again in 60 seconds"))
            with pytest.raises(HTTPException) as exc:
                await email_routes.send_report(request_mock, SendReportRequest(clientEmail="client@example.com"))
        assert exc.value.status_code == 429
        assert exc.value.detail == "Rate limit exceeded. Try again in 60 seconds"

    @pytest.mark.asyncio
    async def test_send_report_with_attachment(self, request_mock, allow_sends):
        record = {"id": "p1", "fileName": "report.pdf", "storageKey": "k"}
        with patch("routes.email.require_auth", new_callable=AsyncMock, return_value=ADVISER), \
             patch("routes.email.get_owned_export", new_callable=AsyncMock, return_value=record), \
             patch("routes.email.read_export_content", new_callable=AsyncMock, return_value=io.BytesIO(b"%PDF")), \
             patch("routes.email.get_user_integration", new_callable=AsyncMock,
                   return_value={"email": "alex@adviser.com.au", "isActive": True}), \
             patch("routes.email.email_service") as service:
            service.send_report_email = AsyncMock(return_value=MagicMock(status="sent"))
            result = await email_routes.send_report(
                request_mock, SendReportRequest(clientEmail="client@example.com", pdfId="p1", reportDate="19 October 2026")
            )

        assert result["message"] == "Email sent successfully to client@example.com with PDF attachment"
        kwargs = service.send_report_email.call_args.kwargs
        assert kwargs["subject"] == "Your Financial Planning Report - 19 October 2026"
        assert kwargs["reply_to"] == "alex@adviser.com.au"
        assert kwargs["attachment"]["Name"] == "report.pdf"

    @pytest.mark.asyncio
    async def test_missing_pdf_sends_without_attachment(self, request_mock, allow_sends):
        with patch("routes.email.require_auth", new_callable=AsyncMock, return_value=ADVISER), \
             patch("routes.email.get_owned_export", new_callable=AsyncMock, return_value=None), \
             patch("routes.email.get_user_integration", new_callable=AsyncMock, return_value=None), \
             patch("routes.email.email_service") as service:
            service.send_summary_email = AsyncMock(return_value=MagicMock(status="sent"))
            result = await email_routes.send_summary(
                request_mock, SendReportRequest(clientEmail="client@example.com", pdfId="gone")
            )
        assert result["message"] == "Email sent successfully to both client and account email"
        assert service.send_summary_email.call_args.kwargs["attachment"] is None
        assert service.send_summary_email.call_args.kwargs["reply_to"] is None

    @pytest.mark.asyncio
    async def test_failed_delivery_is_server_error(self, request_mock, allow_sends):
        with patch("routes.email.require_auth", new_callable=AsyncMock, return_value=ADVISER), \
             patch("routes.email.get_user_integration", new_callable=AsyncMock, return_value=None), \
             patch("routes.email.email_service") as service:
            service.send_report_email = AsyncMock(return_value=MagicMock(status="failed"))
            with pytest.raises(HTTPException) as exc:
                await email_routes.send_report(request_mock, SendReportRequest(clientEmail="client@example.com"))
        assert exc.value.status_code == 500
        assert exc.value.detail == "Failed to send email"


class TestEmailIntegration:
    @pytest.mark.asyncio
    async def test_requires_provider_and_email(self, request_mock):
        with patch("routes.email.require_auth", new_callable=AsyncMock, return_value=ADVISER):
            with pytest.raises(HTTPException) as exc:
                await email_routes.save_integration(request_mock, EmailIntegrationRequest(provider="gmail"))
        assert exc.value.detail == "Provider and email are required"

    @pytest.mark.asyncio
    async def test_bad_port(self, request_mock):
        with patch("routes.email.require_auth", new_callable=AsyncMock, return_value=ADVISER), \
             patch("routes.email.database.get_db", return_value=MagicMock()), \
             patch("routes.email.get_user_integration", new_callable=AsyncMock, return_value=None):
            with pytest.raises(HTTPException) as exc:
                await email_routes.save_integration(
                    request_mock, EmailIntegrationRequest(provider="smtp", email="a@b.co", smtpPort="abc")
                )
        assert exc.value.detail == "Ports must be numbers"

    @pytest.mark.asyncio
    async def test_password_is_encrypted_and_never_returned(self, request_mock, monkeypatch):
        monkeypatch.setenv("ENCRYPTION_MASTER_KEY", generate_encryption_key())
        db = MagicMock()
        db.email_integrations.replace_one = AsyncMock()
        with patch("routes.email.require_auth", new_callable=AsyncMock, return_value=ADVISER), \
             patch("routes.email.database.get_db", return_value=db), \
             patch("routes.email.get_user_integration", new_callable=AsyncMock, return_value={"id": "existing-id"}), \
             patch("routes.email.create_audit_log", new_callable=AsyncMock):
            result = await email_routes.save_integration(
                request_mock,
                EmailIntegrationRequest(provider="smtp", email="alex@adviser.com.au", password="hunter2", smtpPort="587"),
            )

        integration = result["integration"]
        assert "encryptedPassword" not in integration
        assert integration["id"] == "existing-id"
        assert integration["smtpPort"] == 587
        stored = db.email_integrations.replace_one.call_args.args[1]
        assert stored["encryptedPassword"] != "hunter2"
        assert decrypt_field(stored["encryptedPassword"]) == "hunter2"
