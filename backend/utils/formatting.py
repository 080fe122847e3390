"""Number, currency and date formatting shared by reports, charts and emails."""
from datetime import datetime, timezone
from typing import Any, Optional
import math

def round_half_up(value: float, digits: int = 2) -> float:
    """Round the way browsers do (half towards +infinity), not banker's rounding."""
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor

def to_number(value: Any, default: float = 0.0) -> float:
    """Coerce form input to a float; blanks, None and junk become the default."""
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        if isinstance(value, float) and (math.isnan(value) or math.isinf(value)):
            return default
        return float(value)
    if isinstance(value, str):
        cleaned = value.replace(",", "").replace("$", "").strip()
        if not cleaned:
            return default
        try:
            return float(cleaned)
        except ValueError:
            return default
    return default

def format_locale_number(value: float, max_fraction_digits: int = 3) -> str:
    """Grouped number with up to three decimals, e.g. 1234567.5 -> '1,234,567.5'."""
    sign = "-" if value < 0 else ""
    rounded = round_half_up(abs(value), max_fraction_digits)
    text = f"{rounded:,.{max_fraction_digits}f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    if text == "0":
        sign = ""
    return f"{sign}{text}"

def format_currency(amount: float) -> str:
    """Whole-dollar AUD amount: 1234.5 -> '$1,235', -50 -> '-$50'."""
    rounded = round_half_up(abs(amount), 0)
    sign = "-" if amount < 0 and rounded != 0 else ""
    return f"{sign}${rounded:,.0f}"

def format_percentage(value: float) -> str:
    """Fraction as a one-decimal percentage: 0.05 -> '5.0%'."""
    return f"{round_half_up(value * 100, 1):.1f}%"

def format_currency_short(value: float) -> str:
    """Compact currency for chart labels: $1.2M, $45k, $950."""
    magnitude = abs(value)
    sign = "-" if value < 0 else ""
    if magnitude >= 1_000_000:
        return f"{sign}${magnitude / 1_000_000:.1f}M"
    if magnitude >= 1_000:
        return f"{sign}${round_half_up(magnitude / 1_000, 0):.0f}k"
    return f"{sign}${round_half_up(magnitude, 0):.0f}"

def format_long_date(value: Optional[datetime] = None) -> str:
    """'October 19, 2026'."""
    value = value or datetime.now()
    return f"{value.strftime('%B')} {value.day}, {value.year}"

def format_au_long_date(value: Optional[datetime] = None) -> str:
    """'19 October 2026'."""
    value = value or datetime.now()
    return f"{value.day} {value.strftime('%B')} {value.year}"

def format_weekday_date(value: datetime) -> str:
    """'Monday, October 19, 2026'."""
    return f"{value.strftime('%A')}, {format_long_date(value)}"

def format_time_12h(value: datetime) -> str:
    """'9:30 AM'."""
    hour = value.hour % 12 or 12
    return f"{hour}:{value.minute:02d} {'AM' if value.hour < 12 else 'PM'}"

def json_safe(value: Any) -> Any:
    """Replace non-finite floats (inf, nan) with None so the value is valid JSON."""
    if isinstance(value, float) and (math.isnan(value) or math.isinf(value)):
        return None
    if isinstance(value, dict):
        return {k: json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [json_safe(v) for v in value]
    return value

def to_utc_iso(value: datetime) -> str:
    """ISO string in UTC; naive datetimes are taken to be UTC already."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()
