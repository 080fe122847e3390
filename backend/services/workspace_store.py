"""Workspace store - the dual-client intake state, kept per adviser.

A workspace holds Client A and Client B, which of them is active, the
shared assumptions, and a flat set of financial fields derived from the
client data (grossIncome, cashSavings, totalDebt, ...) that the dashboard
calculators read. Named saves live in `saved_workspaces`.

The merge/sync rules are plain functions over dicts; the async functions
load, apply and persist.
"""
from database import database
from models import DEFAULT_SHARED_ASSUMPTIONS, ClientSlot
from datetime import datetime, timezone
from typing import Dict, Any, List, Optional
import copy
import logging

logger = logging.getLogger(__name__)

FINANCIAL_FIELDS = (
    "grossIncome",
    "employmentIncome",
    "investmentIncome",
    "rentalIncome",
    "frankedDividends",
    "capitalGains",
    "otherIncome",
    "workRelatedExpenses",
    "investmentExpenses",
    "rentalExpenses",
    "taxableIncome",
    "propertyValue",
    "mortgageAmount",
    "interestRate",
    "cashSavings",
    "investments",
    "superBalance",
    "totalDebt",
    "totalIncome",
    "netIncome",
)

# Client field -> workspace field, applied in order so later aliases win
CLIENT_FIELD_SYNC = (
    ("annualIncome", ("grossIncome", "employmentIncome")),
    ("grossSalary", ("grossIncome", "employmentIncome")),
    ("employmentIncome", ("grossIncome", "employmentIncome")),
    ("rentalIncome", ("rentalIncome",)),
    ("capitalGains", ("capitalGains",)),
    ("otherIncome", ("otherIncome",)),
    ("workRelatedExpenses", ("workRelatedExpenses",)),
    ("investmentExpenses", ("investmentExpenses",)),
    ("rentalExpenses", ("rentalExpenses",)),
    ("savingsValue", ("cashSavings",)),
    ("currentSavings", ("cashSavings",)),
    ("sharesTotalValue", ("investments",)),
    ("currentShares", ("investments",)),
    ("superFundValue", ("superBalance",)),
    ("currentSuper", ("superBalance",)),
)


def _slot_key(slot) -> str:
    value = slot.value if isinstance(slot, ClientSlot) else str(slot).upper()
    if value not in ("A", "B"):
        raise ValueError(f"Invalid client slot: {slot}")
    return "clientA" if value == "A" else "clientB"


def _number(value: Any) -> float:
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return value
    return 0


def default_workspace(user_id: Optional[str] = None) -> Dict[str, Any]:
    workspace = {
        "userId": user_id,
        "clientA": None,
        "clientB": None,
        "activeClient": "A",
        "sharedAssumptions": dict(DEFAULT_SHARED_ASSUMPTIONS),
    }
    for field in FINANCIAL_FIELDS:
        workspace[field] = 0
    return workspace


def recalculate_totals(workspace: Dict[str, Any]) -> Dict[str, Any]:
    """totalIncome and netIncome from the income and expense fields."""
    total_income = (
        _number(workspace.get("grossIncome"))
        + _number(workspace.get("rentalIncome"))
        + _number(workspace.get("investmentIncome"))
        + _number(workspace.get("otherIncome"))
    )
    workspace["totalIncome"] = total_income
    workspace["netIncome"] = (
        total_income
        - _number(workspace.get("workRelatedExpenses"))
        - _number(workspace.get("investmentExpenses"))
        - _number(workspace.get("rentalExpenses"))
    )
    return workspace


def apply_client_data(workspace: Dict[str, Any], slot, data: Dict[str, Any]) -> Dict[str, Any]:
    """Merge data into a client slot and sync the derived financial fields.

    Returns a new workspace dict; the input is not modified.
    """
    workspace = copy.deepcopy(workspace)
    key = _slot_key(slot)
    current = workspace.get(key) or {}
    updated = {**current, **data}

    if data.get("phoneNumber") is not None:
        updated["mobile"] = data["phoneNumber"]
    elif data.get("mobile") is not None:
        updated["phoneNumber"] = data["mobile"]

    updates: Dict[str, Any] = {}
    for source, targets in CLIENT_FIELD_SYNC:
        if data.get(source) is not None:
            for target in targets:
                updates[target] = data[source]

    if data.get("monthlyRentalIncome") is not None:
        updates["rentalIncome"] = _number(data["monthlyRentalIncome"]) * 12

    if data.get("dividends") is not None or data.get("frankedDividends") is not None:
        dividends = data["dividends"] if data.get("dividends") is not None else current.get("dividends") or 0
        franked = (
            data["frankedDividends"] if data.get("frankedDividends") is not None
            else current.get("frankedDividends") or 0
        )
        updates["investmentIncome"] = _number(dividends) + _number(franked)
        updates["frankedDividends"] = _number(franked)

    # An explicit investmentIncome overrides the dividend sum
    if data.get("investmentIncome") is not None:
        updates["investmentIncome"] = data["investmentIncome"]

    if isinstance(data.get("liabilities"), list):
        updates["totalDebt"] = sum(
            _number(liability.get("balance"))
            for liability in data["liabilities"]
            if isinstance(liability, dict)
        )

    workspace[key] = updated
    workspace.update(updates)
    return recalculate_totals(workspace)


def apply_field(workspace: Dict[str, Any], field: str, value: Any) -> Dict[str, Any]:
    """Set one financial field directly and recalculate the totals."""
    if field not in FINANCIAL_FIELDS:
        raise ValueError(f"Unknown workspace field: {field}")
    workspace = copy.deepcopy(workspace)
    workspace[field] = value
    return recalculate_totals(workspace)


def apply_loaded_client(workspace: Dict[str, Any], slot, client_data: Dict[str, Any]) -> Dict[str, Any]:
    """Put a saved client into a slot, make it active, and resync fields."""
    workspace = copy.deepcopy(workspace)
    key = _slot_key(slot)
    workspace[key] = None
    workspace = apply_client_data(workspace, slot, client_data)
    workspace[key] = copy.deepcopy(client_data)
    workspace["activeClient"] = key[-1]
    return workspace


# ============================================================================
# PERSISTENCE
# ============================================================================

async def get_workspace(user_id: str) -> Dict[str, Any]:
    db = database.get_db()
    doc = await db.workspaces.find_one({"userId": user_id}, {"_id": 0})
    if not doc:
        return default_workspace(user_id)
    workspace = default_workspace(user_id)
    workspace.update(doc)
    return workspace


async def _store_workspace(user_id: str, workspace: Dict[str, Any]) -> Dict[str, Any]:
    db = database.get_db()
    workspace["userId"] = user_id
    workspace["updatedAt"] = datetime.now(timezone.utc).isoformat()
    await db.workspaces.replace_one({"userId": user_id}, workspace, upsert=True)
    workspace.pop("_id", None)
    return workspace


async def set_client_data(user_id: str, slot, data: Dict[str, Any]) -> Dict[str, Any]:
    workspace = await get_workspace(user_id)
    return await _store_workspace(user_id, apply_client_data(workspace, slot, data))


async def update_field(user_id: str, field: str, value: Any) -> Dict[str, Any]:
    workspace = await get_workspace(user_id)
    return await _store_workspace(user_id, apply_field(workspace, field, value))


async def set_active_client(user_id: str, slot) -> Dict[str, Any]:
    workspace = await get_workspace(user_id)
    workspace["activeClient"] = _slot_key(slot)[-1]
    return await _store_workspace(user_id, workspace)


async def update_shared_assumptions(user_id: str, assumptions: Dict[str, Any]) -> Dict[str, Any]:
    workspace = await get_workspace(user_id)
    shared = dict(workspace.get("sharedAssumptions") or DEFAULT_SHARED_ASSUMPTIONS)
    shared.update({k: v for k, v in assumptions.items() if v is not None})
    workspace["sharedAssumptions"] = shared
    return await _store_workspace(user_id, workspace)


async def reset_client(user_id: str, slot) -> Dict[str, Any]:
    """Clear one slot. Derived fields are left as they are."""
    workspace = await get_workspace(user_id)
    workspace[_slot_key(slot)] = None
    return await _store_workspace(user_id, workspace)


async def save_client_by_name(user_id: str, name: Optional[str], slot) -> Optional[Dict[str, Any]]:
    """Save the client in a slot under a name.

    Returns the saved record, or None when the slot has no client with a
    first name (nothing is written).
    """
    workspace = await get_workspace(user_id)
    client = workspace.get(_slot_key(slot))
    if not client or not client.get("firstName"):
        logger.warning("Cannot save client: no client data available")
        return None

    now = datetime.now(timezone.utc)
    saved = {
        "id": f"client-{int(now.timestamp() * 1000)}",
        "userId": user_id,
        "name": name or f"{client.get('firstName')} {client.get('lastName') or ''}".strip(),
        "data": client,
        "savedAt": now.isoformat(),
    }

    db = database.get_db()
    await db.saved_workspaces.replace_one(
        {"userId": user_id, "name": saved["name"]},
        saved,
        upsert=True
    )
    saved.pop("_id", None)
    return saved


async def load_client_by_name(user_id: str, name: str, slot) -> Optional[Dict[str, Any]]:
    """Load a named save into a slot. Returns None when the name is unknown."""
    db = database.get_db()
    saved = await db.saved_workspaces.find_one({"userId": user_id, "name": name}, {"_id": 0})
    if not saved:
        logger.warning(f'Client "{name}" not found')
        return None

    workspace = await get_workspace(user_id)
    return await _store_workspace(user_id, apply_loaded_client(workspace, slot, saved.get("data") or {}))


async def delete_client_by_name(user_id: str, name: str) -> bool:
    db = database.get_db()
    result = await db.saved_workspaces.delete_one({"userId": user_id, "name": name})
    return result.deleted_count > 0


async def get_all_saved_client_names(user_id: str) -> List[str]:
    db = database.get_db()
    docs = await db.saved_workspaces.find(
        {"userId": user_id},
        {"_id": 0, "name": 1}
    ).to_list(1000)
    return sorted(doc["name"] for doc in docs)
