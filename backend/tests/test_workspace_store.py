"""
Dual-client workspace: field sync rules and named saves.
"""
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from models import ClientSlot
from services import workspace_store
from services.workspace_store import (
    default_workspace, apply_client_data, apply_field, apply_loaded_client, recalculate_totals,
)
from conftest import make_cursor


class TestSyncRules:
    def test_default_workspace(self):
        workspace = default_workspace("user-1")
        assert workspace["activeClient"] == "A"
        assert workspace["clientA"] is None
        assert workspace["grossIncome"] == 0
        assert workspace["sharedAssumptions"]["superReturn"] == 6.2

    def test_income_aliases_sync_to_gross_and_employment(self):
        workspace = apply_client_data(default_workspace(), "A", {"firstName": "Sam", "annualIncome": 90000})
        assert workspace["grossIncome"] == 90000
        assert workspace["employmentIncome"] == 90000
        assert workspace["totalIncome"] == 90000
        assert workspace["clientA"]["firstName"] == "Sam"

    def test_input_is_not_modified(self):
        original = default_workspace()
        apply_client_data(original, "A", {"annualIncome": 90000})
        assert original["grossIncome"] == 0
        assert original["clientA"] is None

    def test_phone_and_mobile_mirror_each_other(self):
        workspace = apply_client_data(default_workspace(), "B", {"phoneNumber": "0412 345 678"})
        assert workspace["clientB"]["mobile"] == "0412 345 678"
        workspace = apply_client_data(default_workspace(), "B", {"mobile": "0400 000 000"})
        assert workspace["clientB"]["phoneNumber"] == "0400 000 000"

    def test_monthly_rent_is_annualized(self):
        workspace = apply_client_data(default_workspace(), "A", {"monthlyRentalIncome": 2000})
        assert workspace["rentalIncome"] == 24000

    def test_dividends_fall_back_to_current_client(self):
        workspace = apply_client_data(default_workspace(), "A", {"dividends": 1000, "frankedDividends": 500})
        workspace = apply_client_data(workspace, "A", {"dividends": 3000})
        assert workspace["investmentIncome"] == 3500
        assert workspace["frankedDividends"] == 500

    def test_explicit_investment_income_wins(self):
        workspace = apply_client_data(default_workspace(), "A", {"dividends": 1000, "investmentIncome": 800})
        assert workspace["investmentIncome"] == 800

    def test_liabilities_total_debt(self):
        workspace = apply_client_data(default_workspace(), "A", {
            "liabilities": [{"balance": 400000}, {"balance": 15000}, "junk"],
        })
        assert workspace["totalDebt"] == 415000

    def test_net_income(self):
        workspace = recalculate_totals({"grossIncome": 100000, "rentalIncome": 20000, "rentalExpenses": 5000})
        assert workspace["totalIncome"] == 120000
        assert workspace["netIncome"] == 115000

    def test_apply_field(self):
        workspace = apply_field(default_workspace(), "grossIncome", 50000)
        assert workspace["totalIncome"] == 50000
        with pytest.raises(ValueError, match="Unknown workspace field"):
            apply_field(default_workspace(), "favouriteColour", "blue")

    def test_invalid_slot(self):
        with pytest.raises(ValueError, match="Invalid client slot"):
            apply_client_data(default_workspace(), "C", {})

    def test_loaded_client_replaces_slot_and_becomes_active(self):
        workspace = apply_client_data(default_workspace(), "B", {"firstName": "Old", "lastName": "Client"})
        workspace = apply_loaded_client(workspace, ClientSlot.B, {"firstName": "New", "annualIncome": 70000})
        assert workspace["clientB"] == {"firstName": "New", "annualIncome": 70000}
        assert workspace["activeClient"] == "B"
        assert workspace["grossIncome"] == 70000


def _db(workspace_doc=None):
    db = MagicMock()
    db.workspaces.find_one = AsyncMock(return_value=workspace_doc)
    db.workspaces.replace_one = AsyncMock()
    db.saved_workspaces.find_one = AsyncMock(return_value=None)
    db.saved_workspaces.replace_one = AsyncMock()
    db.saved_workspaces.delete_one = AsyncMock(return_value=MagicMock(deleted_count=1))
    return db


class TestPersistence:
    @pytest.mark.asyncio
    async def test_missing_workspace_gives_default(self):
        db = _db()
        with patch("services.workspace_store.database.get_db", return_value=db):
            workspace = await workspace_store.get_workspace("user-1")
        assert workspace["userId"] == "user-1"
        assert workspace["activeClient"] == "A"

    @pytest.mark.asyncio
    async def test_set_client_data_persists(self):
        db = _db()
        with patch("services.workspace_store.database.get_db", return_value=db):
            workspace = await workspace_store.set_client_data("user-1", ClientSlot.A, {"annualIncome": 80000})
        assert workspace["grossIncome"] == 80000
        assert "updatedAt" in workspace
        filter_doc, stored = db.workspaces.replace_one.call_args[0]
        assert filter_doc == {"userId": "user-1"}
        assert stored["grossIncome"] == 80000
        assert db.workspaces.replace_one.call_args[1] == {"upsert": True}

    @pytest.mark.asyncio
    async def test_shared_assumptions_merge(self):
        db = _db()
        with patch("services.workspace_store.database.get_db", return_value=db):
            workspace = await workspace_store.update_shared_assumptions("user-1", {"inflationRate": 3.0, "superReturn": None})
        assert workspace["sharedAssumptions"]["inflationRate"] == 3.0
        assert workspace["sharedAssumptions"]["superReturn"] == 6.2

    @pytest.mark.asyncio
    async def test_save_requires_first_name(self):
        db = _db({"userId": "user-1", "clientA": {"lastName": "Only"}})
        with patch("services.workspace_store.database.get_db", return_value=db):
            assert await workspace_store.save_client_by_name("user-1", None, "A") is None
        db.saved_workspaces.replace_one.assert_not_called()

    @pytest.mark.asyncio
    async def test_save_defaults_name_to_full_name(self):
        db = _db({"userId": "user-1", "clientA": {"firstName": "Sarah", "lastName": "Mitchell"}})
        with patch("services.workspace_store.database.get_db", return_value=db):
            saved = await workspace_store.save_client_by_name("user-1", None, "A")
        assert saved["name"] == "Sarah Mitchell"
        assert saved["id"].startswith("client-")
        assert saved["data"] == {"firstName": "Sarah", "lastName": "Mitchell"}

    @pytest.mark.asyncio
    async def test_load_unknown_name(self):
        db = _db()
        with patch("services.workspace_store.database.get_db", return_value=db):
            assert await workspace_store.load_client_by_name("user-1", "Nobody", "A") is None

    @pytest.mark.asyncio
    async def test_load_puts_client_in_slot(self):
        db = _db()
        db.saved_workspaces.find_one = AsyncMock(return_value={
            "name": "Sarah Mitchell", "data": {"firstName": "Sarah", "currentSuper": 150000},
        })
        with patch("services.workspace_store.database.get_db", return_value=db):
            workspace = await workspace_store.load_client_by_name("user-1", "Sarah Mitchell", "B")
        assert workspace["clientB"]["firstName"] == "Sarah"
        assert workspace["superBalance"] == 150000
        assert workspace["activeClient"] == "B"

    @pytest.mark.asyncio
    async def test_saved_names_sorted(self):
        db = _db()
        db.saved_workspaces.find = MagicMock(return_value=make_cursor([{"name": "Zed"}, {"name": "Amy"}]))
        with patch("services.workspace_store.database.get_db", return_value=db):
            assert await workspace_store.get_all_saved_client_names("user-1") == ["Amy", "Zed"]
            assert await workspace_store.delete_client_by_name("user-1", "Amy") is True
