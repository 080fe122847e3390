"""Field Mapping - canonical field names for client intake data.

Intake payloads arrive from several form generations and imports, so the
same value can turn up under different keys (grossSalary, gross_income,
employmentIncome ...). Everything is normalized to one canonical camelCase
key before validation and storage.
"""
from typing import Dict, Any, List


# ============================================================================
# CANONICAL MAPPINGS
# ============================================================================
FIELD_MAPPINGS: Dict[str, str] = {
    # Personal details
    "first_name": "firstName",
    "firstname": "firstName",
    "last_name": "lastName",
    "lastname": "lastName",
    "middle_name": "middleName",
    "dateOfBirth": "dob",
    "date_of_birth": "dob",
    "phone": "mobile",
    "phoneNumber": "mobile",
    "phone_number": "mobile",
    "address": "addressLine1",
    "address_line_1": "addressLine1",
    "city": "suburb",
    "zip": "postcode",
    "postCode": "postcode",
    "marital_status": "maritalStatus",
    "number_of_dependants": "numberOfDependants",

    # Income -> annualIncome
    "grossSalary": "annualIncome",
    "grossIncome": "annualIncome",
    "employmentIncome": "annualIncome",
    "income": "annualIncome",
    "gross_income": "annualIncome",
    "gross_salary": "annualIncome",
    "employment_income": "annualIncome",

    # Rental income -> rentalIncome
    "rental_income": "rentalIncome",
    "monthlyRentalIncome": "rentalIncome",
    "monthly_rental_income": "rentalIncome",

    # Investment income -> investmentIncome
    "investment_income": "investmentIncome",

    # Other income -> otherIncome
    "other_income": "otherIncome",
}

# Monthly figures stored under an annual canonical key
MONTHLY_ALIASES = {"monthlyRentalIncome", "monthly_rental_income"}


def normalize_field_name(field_name: str) -> str:
    """Canonical key for a field name; unknown names pass through."""
    normalized = field_name.strip()
    return FIELD_MAPPINGS.get(normalized, normalized)


def normalize_fields(data: Dict[str, Any]) -> Dict[str, Any]:
    """Return a copy of data keyed by canonical field names.

    Canonical keys win over aliases. When two aliases of a numeric field
    collide, the larger value is kept (the most complete figure).
    """
    if not data:
        return {}

    normalized: Dict[str, Any] = {}

    # Canonical keys first so they are never overwritten by an alias
    ordered = sorted(data.items(), key=lambda item: normalize_field_name(item[0]) != item[0])

    for key, value in ordered:
        canonical = normalize_field_name(key)
        if key in MONTHLY_ALIASES and _is_number(value):
            value = value * 12

        if canonical not in normalized:
            normalized[canonical] = value
        elif key != canonical and _is_number(value) and _is_number(normalized[canonical]):
            if canonical not in data:
                normalized[canonical] = max(normalized[canonical], value)

    return normalized


def get_field_synonyms(canonical_field: str) -> List[str]:
    """All alias names that map onto a canonical field."""
    return [alias for alias, canonical in FIELD_MAPPINGS.items() if canonical == canonical_field]


def is_field_synonym(field_name: str) -> bool:
    return field_name in FIELD_MAPPINGS and FIELD_MAPPINGS[field_name] != field_name


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)
