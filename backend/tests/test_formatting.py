"""
Formatting helpers: browser-style rounding, currency and date strings.
"""
from datetime import datetime, timezone, timedelta

from utils.formatting import (
    round_half_up, to_number, format_locale_number, format_currency, format_percentage,
    format_currency_short, format_long_date, format_au_long_date, format_weekday_date,
    format_time_12h, json_safe, to_utc_iso,
)


def test_round_half_up_rounds_halves_up():
    assert round_half_up(2.5, 0) == 3
    assert round_half_up(0.125, 2) == 0.13
    assert round_half_up(-2.5, 0) == -2


def test_to_number_coerces_form_values():
    assert to_number("1,250") == 1250.0
    assert to_number("$99.5") == 99.5
    assert to_number("") == 0.0
    assert to_number(None, 7) == 7
    assert to_number("abc") == 0.0
    assert to_number(float("nan")) == 0.0
    assert to_number(12) == 12.0


def test_format_locale_number():
    assert format_locale_number(1234567.5) == "1,234,567.5"
    assert format_locale_number(1000) == "1,000"
    assert format_locale_number(-2500.25) == "-2,500.25"


def test_format_currency_whole_dollars():
    assert format_currency(1234.5) == "$1,235"
    assert format_currency(-50) == "-$50"
    assert format_currency(0) == "$0"


def test_format_percentage_and_short_currency():
    assert format_percentage(0.05) == "5.0%"
    assert format_currency_short(1_260_000) == "$1.3M"
    assert format_currency_short(45_000) == "$45k"
    assert format_currency_short(950) == "$950"


def test_date_formats():
    value = datetime(2026, 10, 19, 14, 5)
    assert format_long_date(value) == "October 19, 2026"
    assert format_au_long_date(value) == "19 October 2026"
    assert format_weekday_date(value) == "Monday, October 19, 2026"
    assert format_time_12h(value) == "2:05 PM"
    assert format_time_12h(datetime(2026, 1, 1, 0, 30)) == "12:30 AM"


def test_json_safe_replaces_non_finite_floats():
    data = {"a": float("inf"), "b": [1.0, float("nan")], "c": {"d": 2}}
    assert json_safe(data) == {"a": None, "b": [1.0, None], "c": {"d": 2}}


def test_to_utc_iso_normalizes_offsets():
    naive = datetime(2026, 1, 1, 9, 0)
    assert to_utc_iso(naive) == "2026-01-01T09:00:00+00:00"
    sydney = datetime(2026, 1, 1, 10, 0, tzinfo=timezone(timedelta(hours=11)))
    assert to_utc_iso(sydney) == "2025-12-31T23:00:00+00:00"
