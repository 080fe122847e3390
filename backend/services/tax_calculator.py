"""Australian resident income tax calculator (ATO rates for 2024-25).

Stage 3 tax cut rates, effective 1 July 2024. Amounts are rounded to cents
the way the ATO simple tax calculator does.
"""
from typing import Dict, Any, Optional, List

from utils.formatting import round_half_up


ATO_TAX_BRACKETS_2024_25: List[Dict[str, Any]] = [
    {"min": 0, "max": 18200, "rate": 0.0, "baseTax": 0, "description": "Tax-free threshold"},
    {"min": 18201, "max": 45000, "rate": 0.16, "baseTax": 0, "description": "16% rate"},
    {"min": 45001, "max": 135000, "rate": 0.30, "baseTax": 4288, "description": "30% rate"},
    {"min": 135001, "max": 190000, "rate": 0.37, "baseTax": 31288, "description": "37% rate"},
    {"min": 190001, "max": None, "rate": 0.45, "baseTax": 51638, "description": "45% rate"},
]

MEDICARE_LEVY_RATE = 0.02

# (upper bound, threshold the rate applies above, base tax, rate)
_TAX_STEPS = [
    (18200, 0, 0, 0.0),
    (45000, 18200, 0, 0.16),
    (135000, 45000, 4288, 0.30),
    (190000, 135000, 31288, 0.37),
    (None, 190000, 51638, 0.45),
]


def calculate_income_tax(taxable_income: float) -> float:
    """Income tax payable before offsets and Medicare levy."""
    if taxable_income < 0:
        raise ValueError("Taxable income cannot be negative")

    taxable_income = round_half_up(taxable_income)

    for upper, threshold, base_tax, rate in _TAX_STEPS:
        if upper is None or taxable_income <= upper:
            return round_half_up(base_tax + (taxable_income - threshold) * rate)

    return 0.0


def calculate_medicare_levy(taxable_income: float) -> float:
    if taxable_income <= 0:
        return 0.0
    return round_half_up(taxable_income * MEDICARE_LEVY_RATE)


def get_marginal_tax_rate(taxable_income: float) -> float:
    if taxable_income <= 18200:
        return 0.0
    if taxable_income <= 45000:
        return 0.16
    if taxable_income <= 135000:
        return 0.30
    if taxable_income <= 190000:
        return 0.37
    return 0.45


def get_effective_tax_rate(taxable_income: float) -> float:
    """Income tax as a fraction of taxable income (Medicare excluded)."""
    if taxable_income <= 0:
        return 0.0
    return calculate_income_tax(taxable_income) / taxable_income


def calculate_total_tax(taxable_income: float) -> Dict[str, float]:
    """Full breakdown: income tax, Medicare levy, net income and rates."""
    income_tax = calculate_income_tax(taxable_income)
    medicare_levy = calculate_medicare_levy(taxable_income)
    total_tax = income_tax + medicare_levy
    net_income = taxable_income - total_tax
    effective_rate = total_tax / taxable_income if taxable_income > 0 else 0.0

    return {
        "taxableIncome": round_half_up(taxable_income),
        "incomeTax": round_half_up(income_tax),
        "medicareLevy": round_half_up(medicare_levy),
        "totalTax": round_half_up(total_tax),
        "netIncome": round_half_up(net_income),
        "marginalRate": round_half_up(get_marginal_tax_rate(taxable_income), 4),
        "effectiveRate": round_half_up(effective_rate, 4),
    }


def get_tax_bracket(taxable_income: float) -> Optional[Dict[str, Any]]:
    for bracket in ATO_TAX_BRACKETS_2024_25:
        if taxable_income >= bracket["min"] and (bracket["max"] is None or taxable_income <= bracket["max"]):
            return bracket
    return None


def calculate_tax_on_additional_income(current_income: float, additional_income: float) -> float:
    """Extra income tax triggered by earning additional_income on top of current_income."""
    return calculate_income_tax(current_income + additional_income) - calculate_income_tax(current_income)
