"""
Client CRUD and appointment booking routes, called directly with mocked storage.
"""
import pytest
from datetime import datetime, timezone
from fastapi import HTTPException
from unittest.mock import AsyncMock, MagicMock, patch

from models import AppointmentCreateRequest, AppointmentUpdateRequest, AuditAction
from routes import clients as clients_routes
from routes import appointments as appointment_routes
from conftest import ADVISER, make_cursor


def _clients_db(existing=None):
    db = MagicMock()
    db.clients.insert_one = AsyncMock()
    db.clients.find_one = AsyncMock(return_value=existing)
    db.clients.update_one = AsyncMock()
    db.clients.delete_one = AsyncMock()
    db.recent_client_access.update_one = AsyncMock()
    db.recent_client_access.delete_many = AsyncMock()
    return db


class TestCreateClient:
    @pytest.mark.asyncio
    async def test_required_fields(self, request_mock):
        with patch("routes.clients.require_auth", new_callable=AsyncMock, return_value=ADVISER):
            with pytest.raises(HTTPException) as exc:
                await clients_routes.create_client(request_mock, {"firstName": "Sam"})
        assert exc.value.status_code == 400
        assert exc.value.detail == "First name, last name, and date of birth are required"

    @pytest.mark.asyncio
    async def test_invalid_fields_are_listed(self, request_mock):
        payload = {"firstName": "Sam", "lastName": "Lee", "dob": "1980-05-01", "email": "not-an-email"}
        with patch("routes.clients.require_auth", new_callable=AsyncMock, return_value=ADVISER):
            with pytest.raises(HTTPException) as exc:
                await clients_routes.create_client(request_mock, payload)
        assert exc.value.status_code == 400
        assert exc.value.detail["message"] == "Invalid client data"
        assert {"field": "email", "message": "Invalid email address"} in exc.value.detail["errors"]

    @pytest.mark.asyncio
    async def test_snake_case_payload_is_normalized_and_defaulted(self, request_mock):
        db = _clients_db()
        payload = {"first_name": "Sam", "last_name": "Lee", "date_of_birth": "1980-05-01", "id": "forged"}
        with patch("routes.clients.require_auth", new_callable=AsyncMock, return_value=ADVISER), \
             patch("routes.clients.database.get_db", return_value=db), \
             patch("routes.clients.create_audit_log", new_callable=AsyncMock) as audit:
            client = await clients_routes.create_client(request_mock, payload)

        assert client["firstName"] == "Sam"
        assert client["lastName"] == "Lee"
        assert client["id"] != "forged"
        assert client["userId"] == "user-1"
        assert client["maritalStatus"] == "SINGLE"
        assert client["numberOfDependants"] == 0
        assert client["dob"] == "1980-05-01T00:00:00+00:00"
        db.clients.insert_one.assert_awaited_once()
        db.recent_client_access.update_one.assert_awaited_once()
        assert audit.call_args.kwargs["action"] == AuditAction.CLIENT_CREATED


class TestClientAccess:
    @pytest.mark.asyncio
    async def test_get_missing_client(self, request_mock):
        db = _clients_db(existing=None)
        with patch("routes.clients.require_auth", new_callable=AsyncMock, return_value=ADVISER), \
             patch("routes.clients.database.get_db", return_value=db):
            with pytest.raises(HTTPException) as exc:
                await clients_routes.get_client(request_mock, "c-404")
        assert exc.value.status_code == 404

    @pytest.mark.asyncio
    async def test_update_protects_identity_fields(self, request_mock):
        existing = {"id": "c1", "userId": "user-1", "firstName": "Sam"}
        db = _clients_db(existing=existing)
        db.clients.find_one = AsyncMock(side_effect=[existing, {**existing, "firstName": "Samuel"}])
        with patch("routes.clients.require_auth", new_callable=AsyncMock, return_value=ADVISER), \
             patch("routes.clients.database.get_db", return_value=db), \
             patch("routes.clients.create_audit_log", new_callable=AsyncMock):
            updated = await clients_routes.update_client(request_mock, "c1", {"firstName": "Samuel", "userId": "someone-else"})

        assert updated["firstName"] == "Samuel"
        changes = db.clients.update_one.call_args.args[1]["$set"]
        assert "userId" not in changes
        assert changes["firstName"] == "Samuel"

    @pytest.mark.asyncio
    async def test_delete_other_advisers_client(self, request_mock):
        db = _clients_db(existing={"id": "c1", "userId": "user-2"})
        with patch("routes.clients.require_auth", new_callable=AsyncMock, return_value=ADVISER), \
             patch("routes.clients.database.get_db", return_value=db):
            with pytest.raises(HTTPException) as exc:
                await clients_routes.delete_client(request_mock, "c1")
        assert exc.value.status_code == 404
        assert exc.value.detail == "Client not found or access denied"
        db.clients.delete_one.assert_not_called()

    @pytest.mark.asyncio
    async def test_recent_clients_keep_access_order(self, request_mock):
        db = _clients_db()
        db.recent_client_access.find = MagicMock(return_value=make_cursor([{"clientId": "c2"}, {"clientId": "c1"}]))
        db.clients.find = MagicMock(return_value=make_cursor([{"id": "c1"}, {"id": "c2"}]))
        with patch("routes.clients.require_auth", new_callable=AsyncMock, return_value=ADVISER), \
             patch("routes.clients.database.get_db", return_value=db):
            result = await clients_routes.list_clients(request_mock, recent=True)
        assert [c["id"] for c in result] == ["c2", "c1"]


def _appointments_db(existing_appointments=()):
    db = MagicMock()
    db.clients.find_one = AsyncMock(return_value={"id": "c1", "firstName": "Sam", "lastName": "Lee"})
    db.appointments.find = MagicMock(return_value=make_cursor(list(existing_appointments)))
    db.appointments.insert_one = AsyncMock()
    db.appointments.update_one = AsyncMock()
    return db


def _at(hour):
    return datetime(2026, 10, 20, hour, tzinfo=timezone.utc)


class TestAppointments:
    @pytest.mark.asyncio
    async def test_required_fields(self, request_mock):
        with patch("routes.appointments.require_auth", new_callable=AsyncMock, return_value=ADVISER):
            with pytest.raises(HTTPException) as exc:
                await appointment_routes.create_appointment(request_mock, AppointmentCreateRequest(clientId="c1"))
        assert exc.value.status_code == 400

    @pytest.mark.asyncio
    async def test_end_must_follow_start(self, request_mock):
        data = AppointmentCreateRequest(clientId="c1", title="Review", startDateTime=_at(10), endDateTime=_at(10))
        with patch("routes.appointments.require_auth", new_callable=AsyncMock, return_value=ADVISER):
            with pytest.raises(HTTPException) as exc:
                await appointment_routes.create_appointment(request_mock, data)
        assert exc.value.detail == "End time must be after start time"

    @pytest.mark.asyncio
    async def test_overlap_is_a_conflict(self, request_mock):
        booked = {"id": "a1", "startDateTime": _at(9).isoformat(), "endDateTime": _at(11).isoformat()}
        db = _appointments_db([booked])
        data = AppointmentCreateRequest(clientId="c1", title="Review", startDateTime=_at(10), endDateTime=_at(12))
        with patch("routes.appointments.require_auth", new_callable=AsyncMock, return_value=ADVISER), \
             patch("routes.appointments.database.get_db", return_value=db):
            with pytest.raises(HTTPException) as exc:
                await appointment_routes.create_appointment(request_mock, data)
        assert exc.value.status_code == 409
        db.appointments.insert_one.assert_not_called()

    @pytest.mark.asyncio
    async def test_back_to_back_is_allowed(self, request_mock):
        booked = {"id": "a1", "startDateTime": _at(9).isoformat(), "endDateTime": _at(10).isoformat()}
        db = _appointments_db([booked])
        data = AppointmentCreateRequest(clientId="c1", title="Review", startDateTime=_at(10), endDateTime=_at(11))
        with patch("routes.appointments.require_auth", new_callable=AsyncMock, return_value=ADVISER), \
             patch("routes.appointments.database.get_db", return_value=db), \
             patch("routes.appointments.create_audit_log", new_callable=AsyncMock) as audit:
            created = await appointment_routes.create_appointment(request_mock, data)

        assert created["startDateTime"] == "2026-10-20T10:00:00+00:00"
        assert created["status"] == "SCHEDULED"
        assert created["reminderSent"] is False
        assert created["client"]["firstName"] == "Sam"
        assert audit.call_args.kwargs["action"] == AuditAction.APPOINTMENT_CREATED

    @pytest.mark.asyncio
    async def test_moving_an_appointment_resets_reminder(self, request_mock):
        existing = {
            "id": "a1", "userId": "user-1", "clientId": "c1", "reminderSent": True,
            "startDateTime": _at(9).isoformat(), "endDateTime": _at(10).isoformat(),
        }
        db = _appointments_db([existing])
        db.appointments.find_one = AsyncMock(side_effect=[existing, {**existing, "reminderSent": False}])
        with patch("routes.appointments.require_auth", new_callable=AsyncMock, return_value=ADVISER), \
             patch("routes.appointments.database.get_db", return_value=db), \
             patch("routes.appointments.create_audit_log", new_callable=AsyncMock):
            await appointment_routes.update_appointment(
                request_mock, "a1", AppointmentUpdateRequest(startDateTime=_at(8))
            )

        changes = db.appointments.update_one.call_args.args[1]["$set"]
        assert changes["startDateTime"] == "2026-10-20T08:00:00+00:00"
        assert changes["endDateTime"] == "2026-10-20T10:00:00+00:00"
        assert changes["reminderSent"] is False

    @pytest.mark.asyncio
    async def test_cancelled_appointments_are_not_checked(self, request_mock):
        db = _appointments_db()
        data = AppointmentCreateRequest(clientId="c1", title="Review", startDateTime=_at(9), endDateTime=_at(10))
        with patch("routes.appointments.require_auth", new_callable=AsyncMock, return_value=ADVISER), \
             patch("routes.appointments.database.get_db", return_value=db), \
             patch("routes.appointments.create_audit_log", new_callable=AsyncMock):
            await appointment_routes.create_appointment(request_mock, data)

        assert db.appointments.find.call_args.args[0] == {"userId": "user-1", "status": {"$ne": "CANCELLED"}}
        db.appointments.insert_one.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_find_conflict_skips_excluded_appointment(self):
        own = {"id": "a1", "startDateTime": _at(9).isoformat(), "endDateTime": _at(10).isoformat()}
        other = {"id": "a2", "startDateTime": _at(11).isoformat(), "endDateTime": _at(12).isoformat()}
        db = _appointments_db([own, other])

        assert await appointment_routes.find_conflict(db, "user-1", _at(9), _at(10), exclude_id="a1") is None
        assert await appointment_routes.find_conflict(db, "user-1", _at(9), _at(10)) == own
        assert await appointment_routes.find_conflict(db, "user-1", _at(9), _at(12), exclude_id="a1") == other

    @pytest.mark.asyncio
    async def test_moving_onto_another_appointment_conflicts(self, request_mock):
        existing = {
            "id": "a1", "userId": "user-1", "clientId": "c1",
            "startDateTime": _at(9).isoformat(), "endDateTime": _at(10).isoformat(),
        }
        other = {"id": "a2", "startDateTime": _at(11).isoformat(), "endDateTime": _at(12).isoformat()}
        db = _appointments_db([existing, other])
        db.appointments.find_one = AsyncMock(return_value=existing)
        with patch("routes.appointments.require_auth", new_callable=AsyncMock, return_value=ADVISER), \
             patch("routes.appointments.database.get_db", return_value=db):
            with pytest.raises(HTTPException) as exc:
                await appointment_routes.update_appointment(
                    request_mock, "a1", AppointmentUpdateRequest(endDateTime=_at(12))
                )
        assert exc.value.status_code == 409
        db.appointments.update_one.assert_not_called()

    @pytest.mark.asyncio
    async def test_bad_date_filter(self, request_mock):
        with patch("routes.appointments.require_auth", new_callable=AsyncMock, return_value=ADVISER), \
             patch("routes.appointments.database.get_db", return_value=_appointments_db()):
            with pytest.raises(HTTPException) as exc:
                await appointment_routes.list_appointments(
                    request_mock, clientId=None, startDate="next tuesday", endDate=None, status_filter=None
                )
        assert exc.value.detail == "Invalid startDate"
