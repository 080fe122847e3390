"""
Planning calculators, workspace, account center and cron endpoints over HTTP.
"""
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from auth import create_access_token, build_token_payload
from models import AuditAction, DrawdownRequest, LoanRequest
from conftest import make_cursor

HEADERS = {
    "Authorization": "Bearer " + create_access_token(build_token_payload({
        "id": "user-1", "email": "adviser@example.com", "name": "Alex Adviser", "role": "ADVISER",
    }))
}


class TestPlanning:
    def test_requires_auth(self, client):
        assert client.post("/api/planning/tax", json={"grossIncome": 100000}).status_code == 401

    def test_tax(self, client):
        response = client.post("/api/planning/tax", json={"grossIncome": 100000}, headers=HEADERS)
        assert response.status_code == 200
        result = response.json()
        assert result["incomeTax"] == pytest.approx(20788)
        assert result["medicareLevy"] == pytest.approx(2000)
        assert result["totalTax"] == pytest.approx(22788)
        assert result["marginalTaxRate"] == pytest.approx(0.30)

    def test_tax_breakdown(self, client):
        response = client.post("/api/planning/tax/breakdown", json={"taxableIncome": 100000}, headers=HEADERS)
        assert response.status_code == 200
        result = response.json()
        assert result["totalTax"] == pytest.approx(22788)
        assert result["marginalRate"] == pytest.approx(0.30)
        assert result["bracket"]["rate"] == pytest.approx(0.30)

    def test_tax_breakdown_negative_income(self, client):
        response = client.post("/api/planning/tax/breakdown", json={"taxableIncome": -5}, headers=HEADERS)
        assert response.status_code == 400
        assert response.json()["detail"] == "Taxable income cannot be negative"

    def test_tax_optimization_shape(self, client):
        response = client.post("/api/planning/tax/optimization", json={
            "base": {"grossIncome": 150000},
            "superContributions": 10000,
            "strategyData": {"currentSuperContributions": 5000},
        }, headers=HEADERS)
        assert response.status_code == 200
        result = response.json()
        assert result["comparison"]["savings"] > 0
        assert result["comparison"]["strategies"] == ["Salary sacrifice to super: $10,000"]
        assert isinstance(result["strategies"], list)
        assert "totalSavings" in result

    def test_loan(self, client):
        response = client.post("/api/planning/loan", json={
            "principal": 300000, "annualRate": 0.06, "years": 30, "includeSchedule": True,
        }, headers=HEADERS)
        assert response.status_code == 200
        result = response.json()
        assert result["monthlyPayment"] == pytest.approx(1798.65, abs=0.01)
        assert result["schedule"][0]["interest"] == pytest.approx(1500)
        assert len(result["schedule"]) <= 360

    def test_calculation_error_is_bad_request(self, client):
        response = client.post("/api/planning/loan", json={"principal": -1, "annualRate": 0.06, "years": 30}, headers=HEADERS)
        assert response.status_code == 400
        assert response.json()["detail"] == "Principal cannot be negative"

    def test_retirement_projection_age_order(self, client):
        response = client.post("/api/planning/retirement-projection", json={
            "currentAge": 67, "retirementAge": 60,
        }, headers=HEADERS)
        assert response.status_code == 400

    def test_unknown_chart_type(self, client):
        response = client.post("/api/planning/charts", json={"type": "radar"}, headers=HEADERS)
        assert response.status_code == 400

    def test_chart_svg(self, client):
        response = client.post("/api/planning/charts", json={"type": "cashflow", "income": 9000, "expenses": 6000}, headers=HEADERS)
        assert response.status_code == 200
        result = response.json()
        assert "<svg" in result["svg"]
        assert result["dataUrl"].startswith("data:image/svg+xml;utf8,")

    def test_projections_without_client(self, client):
        response = client.post("/api/planning/projections", json={}, headers=HEADERS)
        assert response.json() == {"results": None}

    def test_request_model_defaults(self):
        drawdown = DrawdownRequest(retirementSavings=500000)
        assert (drawdown.annualWithdrawal, drawdown.withdrawalRate, drawdown.years) == (None, 0.04, 30)
        assert LoanRequest(principal=1, annualRate=0.05, years=1).includeSchedule is False

    def test_drawdown_defaults_to_safe_withdrawal(self, client):
        response = client.post("/api/planning/drawdown", json={"retirementSavings": 1000000, "years": 5}, headers=HEADERS)
        assert response.status_code == 200
        assert response.json()["annualWithdrawal"] == pytest.approx(40000)


class TestWorkspaceRoutes:
    def test_update_unknown_field(self, client):
        with patch("routes.workspace.workspace_store.update_field", new_callable=AsyncMock,
                   side_effect=ValueError("Unknown workspace field: favouriteColour")):
            response = client.put("/api/workspace/client/A", json={"field": "favouriteColour", "value": 1}, headers=HEADERS)
        assert response.status_code == 400

    def test_invalid_slot(self, client):
        assert client.put("/api/workspace/active/C", headers=HEADERS).status_code == 422

    def test_save_without_client_data(self, client):
        with patch("routes.workspace.workspace_store.save_client_by_name", new_callable=AsyncMock, return_value=None):
            response = client.post("/api/workspace/saved", json={"slot": "B"}, headers=HEADERS)
        assert response.status_code == 400
        assert response.json()["detail"] == "Cannot save client: no client data available"

    def test_save_audits(self, client):
        saved = {"id": "client-1", "name": "Sarah Mitchell", "data": {"firstName": "Sarah"}}
        with patch("routes.workspace.workspace_store.save_client_by_name", new_callable=AsyncMock, return_value=saved), \
             patch("routes.workspace.create_audit_log", new_callable=AsyncMock) as audit:
            response = client.post("/api/workspace/saved", json={"name": "Sarah Mitchell"}, headers=HEADERS)
        assert response.json() == {"success": True, "saved": saved}
        assert audit.call_args.kwargs["action"] == AuditAction.WORKSPACE_SAVED

    def test_load_unknown_name(self, client):
        with patch("routes.workspace.workspace_store.load_client_by_name", new_callable=AsyncMock, return_value=None):
            response = client.post("/api/workspace/saved/Nobody/load?slot=B", headers=HEADERS)
        assert response.status_code == 404
        assert response.json()["detail"] == 'Client "Nobody" not found'


class TestAccountCenter:
    def test_payload(self, client):
        db = MagicMock()
        db.users.find_one = AsyncMock(return_value={"id": "user-1", "email": "adviser@example.com", "name": "Alex", "role": "ADVISER"})
        db.clients.find = MagicMock(side_effect=[
            make_cursor([{"id": "c1", "firstName": "Sam"}, {"id": "c2", "firstName": "Jo"}]),
            make_cursor([{"id": "c1", "firstName": "Sam"}]),
        ])
        db.clients.find_one = AsyncMock(return_value={"id": "c1", "firstName": "Sam"})
        db.recent_client_access.find = MagicMock(return_value=make_cursor([{"clientId": "c1"}]))
        db.appointments.find = MagicMock(return_value=make_cursor([{"id": "a1"}]))
        db.pdf_exports.find = MagicMock(return_value=make_cursor([{"id": "p1", "clientId": "c1"}]))
        db.email_integrations.find_one = AsyncMock(return_value={"email": "a@b.co", "encryptedPassword": "secret"})
        db.clients.count_documents = AsyncMock(return_value=2)
        db.appointments.count_documents = AsyncMock(return_value=1)
        db.pdf_exports.count_documents = AsyncMock(return_value=1)

        with patch("routes.account_center.database.get_db", return_value=db):
            response = client.get("/api/account-center", headers=HEADERS)

        assert response.status_code == 200
        data = response.json()
        assert data["user"]["email"] == "adviser@example.com"
        assert len(data["clients"]) == 2
        assert data["recentClients"] == [{"id": "c1", "firstName": "Sam"}]
        assert data["recentExports"][0]["client"]["firstName"] == "Sam"
        assert data["counts"] == {"clients": 2, "appointments": 1, "exports": 1}
        assert data["emailIntegration"] == {"email": "a@b.co"}


class TestCron:
    def test_secret_required_when_configured(self, client, monkeypatch):
        monkeypatch.setenv("CRON_SECRET", "s3cret")
        assert client.get("/api/cron/appointment-reminders").status_code == 401
        assert client.post("/api/cron/appointment-reminders", headers={"Authorization": "Bearer wrong"}).status_code == 401

    def test_runs_reminders(self, client, monkeypatch):
        monkeypatch.setenv("CRON_SECRET", "s3cret")
        with patch("routes.cron.run_appointment_reminders", new_callable=AsyncMock,
                   return_value={"message": "Sent 3 reminders", "count": 3}):
            response = client.post("/api/cron/appointment-reminders", headers={"Authorization": "Bearer s3cret"})
        assert response.status_code == 200
        assert response.json()["remindersSent"] == 3

    def test_failure_is_server_error(self, client, monkeypatch):
        monkeypatch.delenv("CRON_SECRET", raising=False)
        with patch("routes.cron.run_appointment_reminders", new_callable=AsyncMock, side_effect=RuntimeError("db down")):
            response = client.get("/api/cron/appointment-reminders")
        assert response.status_code == 500
        assert response.json()["detail"] == "Internal server error"
