"""
Field-name normalization and client record validation.
"""
from datetime import datetime, timedelta

from services.field_mapping import normalize_fields, get_field_synonyms, is_field_synonym, normalize_field_name
from services.client_validation import (
    validate_client, validate_email, validate_phone, validate_postcode, format_phone_number, parse_date,
)

VALID_CLIENT = {"firstName": "Sarah", "lastName": "Mitchell", "dob": "1980-03-14"}


class TestFieldMapping:
    def test_aliases_map_to_canonical_names(self):
        assert normalize_fields({"grossSalary": 80000, "first_name": "Sam"}) == {
            "annualIncome": 80000,
            "firstName": "Sam",
        }
        assert normalize_field_name(" phoneNumber ") == "mobile"

    def test_canonical_key_wins_over_alias(self):
        assert normalize_fields({"grossSalary": 80000, "annualIncome": 90000}) == {"annualIncome": 90000}

    def test_colliding_aliases_keep_larger_value(self):
        assert normalize_fields({"grossSalary": 80000, "employmentIncome": 85000}) == {"annualIncome": 85000}

    def test_monthly_rent_is_annualized(self):
        assert normalize_fields({"monthlyRentalIncome": 2000}) == {"rentalIncome": 24000}
        assert normalize_fields({"rentalIncome": 10000, "monthlyRentalIncome": 2000}) == {"rentalIncome": 10000}

    def test_empty_payload(self):
        assert normalize_fields({}) == {}

    def test_synonym_lookup(self):
        assert get_field_synonyms("dob") == ["dateOfBirth", "date_of_birth"]
        assert is_field_synonym("phone") is True
        assert is_field_synonym("firstName") is False


class TestClientValidation:
    def test_valid_client(self):
        assert validate_client(VALID_CLIENT) == []

    def test_required_fields(self):
        fields = [e["field"] for e in validate_client({})]
        assert fields == ["firstName", "lastName", "dob"]

    def test_partial_update_skips_missing_required_fields(self):
        assert validate_client({"email": "sam@example.com"}, partial=True) == []
        assert validate_client({"firstName": ""}, partial=True)[0]["field"] == "firstName"

    def test_dob_rules(self):
        future = (datetime.now() + timedelta(days=30)).date().isoformat()
        messages = [e["message"] for e in validate_client({**VALID_CLIENT, "dob": future})]
        assert "Date of birth cannot be in the future" in messages
        messages = [e["message"] for e in validate_client({**VALID_CLIENT, "dob": "1850-01-01"})]
        assert "Date of birth must be after 1900" in messages
        messages = [e["message"] for e in validate_client({**VALID_CLIENT, "dob": "not a date"})]
        assert "Invalid date of birth" in messages

    def test_contact_and_enum_fields(self):
        errors = validate_client({
            **VALID_CLIENT,
            "email": "nope",
            "mobile": "12345",
            "postcode": "200",
            "state": "XX",
            "numberOfDependants": 2.5,
        })
        fields = {e["field"] for e in errors}
        assert fields == {"email", "mobile", "postcode", "state", "numberOfDependants"}

    def test_assets_and_liabilities(self):
        errors = validate_client({
            **VALID_CLIENT,
            "assets": [{"type": "boat", "currentValue": 1000}, "junk"],
            "liabilities": [{"type": "mortgage", "balance": -1, "frequency": "Y"}],
        })
        fields = [e["field"] for e in errors]
        assert "assets[0].type" in fields
        assert "assets[1]" in fields
        assert "liabilities[0].balance" in fields
        assert "liabilities[0].frequency" in fields

    def test_assumption_range(self):
        errors = validate_client({**VALID_CLIENT, "inflationRate": 75})
        assert errors == [{"field": "inflationRate", "message": "inflationRate must be between 0 and 50"}]


class TestFieldHelpers:
    def test_email_phone_postcode(self):
        assert validate_email("") is True
        assert validate_email("a@b.co") is True
        assert validate_email("a@b") is False
        assert validate_phone("0412 345 678") is True
        assert validate_phone("+61 2 9876 5432") is True
        assert validate_phone("5551234") is False
        assert validate_postcode("2000") is True
        assert validate_postcode("20000") is False

    def test_format_phone_number(self):
        assert format_phone_number("+61412345678") == "0412 345 678"
        assert format_phone_number("0298765432") == "(02) 9876 5432"
        assert format_phone_number("123") == "123"
        assert format_phone_number(None) == ""

    def test_parse_date(self):
        parsed = parse_date("2026-01-01T00:00:00Z")
        assert parsed.tzinfo is not None
        assert parse_date("") is None
        assert parse_date(12) is None
