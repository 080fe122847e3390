"""Client Validation - field-level checks for client intake records.

Returns a list of {field, message} errors rather than raising, so the
clients route can report every problem in one 400 response.
"""
from datetime import datetime, date
from typing import Dict, Any, List, Optional
import re

from models import MaritalStatus, AustralianState, OwnOrRent, AssetType, LiabilityType, PaymentFrequency

EMAIL_REGEX = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_REGEX = re.compile(r"^(\+?61|0)[2-478](?:[ -]?[0-9]){8}$")
POSTCODE_REGEX = re.compile(r"^\d{4}$")

MAX_NAME_LENGTH = 100
MAX_DEPENDANTS = 20
MAX_ASSUMPTION_PERCENT = 50

REQUIRED_FIELDS = {
    "firstName": "First name is required",
    "lastName": "Last name is required",
    "dob": "Date of birth is required",
}

NAME_FIELDS = ["firstName", "lastName", "middleName", "partnerFirstName", "partnerLastName"]
EMAIL_FIELDS = ["email", "partnerEmail"]
PHONE_FIELDS = ["mobile", "partnerPhoneNumber"]

ASSUMPTION_FIELDS = [
    "inflationRate", "salaryGrowthRate", "superReturn", "shareReturn",
    "propertyGrowthRate", "withdrawalRate", "rentGrowthRate", "savingsRate",
]

_ENUM_FIELDS = {
    "maritalStatus": MaritalStatus,
    "state": AustralianState,
    "ownOrRent": OwnOrRent,
}


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def validate_email(email: Optional[str]) -> bool:
    if _blank(email):
        return True
    return bool(EMAIL_REGEX.match(str(email).strip()))


def validate_phone(phone: Optional[str]) -> bool:
    """Australian landline or mobile, with or without +61."""
    if _blank(phone):
        return True
    cleaned = re.sub(r"[\s\-()]", "", str(phone))
    return bool(PHONE_REGEX.match(cleaned))


def validate_postcode(postcode: Optional[str]) -> bool:
    if _blank(postcode):
        return True
    return bool(POSTCODE_REGEX.match(str(postcode).strip()))


def format_phone_number(phone: Optional[str]) -> str:
    """Display format: mobiles as 0412 345 678, landlines as (02) 9876 5432."""
    if not phone:
        return ""
    digits = re.sub(r"\D", "", phone)
    if digits.startswith("61") and len(digits) == 11:
        digits = "0" + digits[2:]
    if len(digits) == 10 and digits.startswith("04"):
        return f"{digits[:4]} {digits[4:7]} {digits[7:]}"
    if len(digits) == 10 and digits.startswith("0"):
        return f"({digits[:2]}) {digits[2:6]} {digits[6:]}"
    return phone


def parse_date(value: Any) -> Optional[datetime]:
    """Accept datetimes, dates and ISO strings; anything else is None."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str) and value.strip():
        try:
            return datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    return None


def _number_in_range(value: Any, low: float, high: float) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return low <= value <= high


def validate_client(data: Dict[str, Any], partial: bool = False) -> List[Dict[str, str]]:
    """Validate a normalized client payload.

    With partial=True (PATCH), required fields are only checked when present.
    """
    errors: List[Dict[str, str]] = []

    def add(field: str, message: str):
        errors.append({"field": field, "message": message})

    for field, message in REQUIRED_FIELDS.items():
        if partial and field not in data:
            continue
        if _blank(data.get(field)):
            add(field, message)

    for field in NAME_FIELDS:
        value = data.get(field)
        if isinstance(value, str) and len(value) > MAX_NAME_LENGTH:
            add(field, "Name is too long")

    if not _blank(data.get("dob")):
        dob = parse_date(data["dob"])
        if dob is None:
            add("dob", "Invalid date of birth")
        elif dob.year < 1900:
            add("dob", "Date of birth must be after 1900")
        elif dob.replace(tzinfo=None) > datetime.now():
            add("dob", "Date of birth cannot be in the future")

    for field in EMAIL_FIELDS:
        if not validate_email(data.get(field)):
            add(field, "Invalid email address")

    for field in PHONE_FIELDS:
        if not validate_phone(data.get(field)):
            add(field, "Invalid Australian phone number")

    if not validate_postcode(data.get("postcode")):
        add("postcode", "Postcode must be 4 digits")

    for field, enum_cls in _ENUM_FIELDS.items():
        value = data.get(field)
        if not _blank(value) and value not in [member.value for member in enum_cls]:
            add(field, f"Invalid {field}")

    if data.get("numberOfDependants") is not None:
        value = data["numberOfDependants"]
        if not _number_in_range(value, 0, MAX_DEPENDANTS) or int(value) != value:
            add("numberOfDependants", f"Number of dependants must be between 0 and {MAX_DEPENDANTS}")

    for field in ASSUMPTION_FIELDS:
        if data.get(field) is not None and not _number_in_range(data[field], 0, MAX_ASSUMPTION_PERCENT):
            add(field, f"{field} must be between 0 and {MAX_ASSUMPTION_PERCENT}")

    errors.extend(_validate_assets(data.get("assets")))
    errors.extend(_validate_liabilities(data.get("liabilities")))

    return errors


def _validate_assets(assets: Any) -> List[Dict[str, str]]:
    if assets is None:
        return []
    if not isinstance(assets, list):
        return [{"field": "assets", "message": "Assets must be a list"}]

    errors = []
    allowed = [member.value for member in AssetType]
    for index, asset in enumerate(assets):
        if not isinstance(asset, dict):
            errors.append({"field": f"assets[{index}]", "message": "Invalid asset"})
            continue
        if asset.get("type") not in allowed:
            errors.append({"field": f"assets[{index}].type", "message": "Invalid asset type"})
        value = asset.get("currentValue", 0)
        if not _number_in_range(value, 0, 100_000_000):
            errors.append({"field": f"assets[{index}].currentValue", "message": "Asset value must be between 0 and 100,000,000"})
    return errors


def _validate_liabilities(liabilities: Any) -> List[Dict[str, str]]:
    if liabilities is None:
        return []
    if not isinstance(liabilities, list):
        return [{"field": "liabilities", "message": "Liabilities must be a list"}]

    errors = []
    allowed_types = [member.value for member in LiabilityType]
    allowed_frequencies = [member.value for member in PaymentFrequency]
    for index, liability in enumerate(liabilities):
        prefix = f"liabilities[{index}]"
        if not isinstance(liability, dict):
            errors.append({"field": prefix, "message": "Invalid liability"})
            continue
        if liability.get("type") not in allowed_types:
            errors.append({"field": f"{prefix}.type", "message": "Invalid liability type"})
        frequency = liability.get("frequency")
        if frequency is not None and frequency not in allowed_frequencies:
            errors.append({"field": f"{prefix}.frequency", "message": "Payment frequency must be W, F or M"})
        if not _number_in_range(liability.get("balance", 0), 0, 100_000_000):
            errors.append({"field": f"{prefix}.balance", "message": "Balance must be between 0 and 100,000,000"})
        if not _number_in_range(liability.get("interestRate", 0), 0, 100):
            errors.append({"field": f"{prefix}.interestRate", "message": "Interest rate must be between 0 and 100"})
    return errors
