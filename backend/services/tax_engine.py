"""Tax Engine - versioned Australian tax rules and the full tax calculation.

Rules are data (DEFAULT_TAX_RULES) so a new financial year is a new rules
dict rather than a code change. calculate_tax() applies deductions,
negative gearing and dividend franking before working out income tax,
Medicare levy and HECS/HELP repayments.
"""
from typing import Dict, Any, List
import logging

from utils.formatting import format_locale_number

logger = logging.getLogger(__name__)


FRANKING_CREDIT_RATE = 0.3

DEFAULT_TAX_RULES: Dict[str, Any] = {
    "version": "2024-25",
    "effectiveDate": "2024-07-01",
    "taxYear": "2024-25",
    "incomeTaxBrackets": [
        {"min": 0, "max": 18200, "rate": 0.0, "baseAmount": 0},
        {"min": 18200, "max": 45000, "rate": 0.16, "baseAmount": 0},
        {"min": 45000, "max": 135000, "rate": 0.30, "baseAmount": 4288},
        {"min": 135000, "max": 190000, "rate": 0.37, "baseAmount": 31288},
        {"min": 190000, "max": None, "rate": 0.45, "baseAmount": 51638},
    ],
    "medicareLevy": {
        "rate": 0.02,
        "threshold": 24276,
        "singleThreshold": 24276,
        "familyThreshold": 40939,
    },
    # Repayment income bands; rate applies to the whole income
    "hecsThresholds": [
        {"min": 51550, "max": 59518, "rate": 0.01},
        {"min": 59519, "max": 65000, "rate": 0.02},
        {"min": 65001, "max": 71999, "rate": 0.025},
        {"min": 72000, "max": 79999, "rate": 0.03},
        {"min": 80000, "max": 89999, "rate": 0.035},
        {"min": 90000, "max": 100000, "rate": 0.04},
        {"min": 100001, "max": 109999, "rate": 0.045},
        {"min": 110000, "max": 124999, "rate": 0.05},
        {"min": 125000, "max": 139999, "rate": 0.055},
        {"min": 140000, "max": None, "rate": 0.10},
    ],
    "negativeGearing": {
        "allowed": True,
        "depreciationRate": 0.025,
        "capitalWorksDeduction": 0.025,
    },
    "capitalGainsTax": {
        "discountRate": 0.5,
        "indexationAllowed": False,
    },
    "deductionCategories": {
        "work-related": {"description": "Work-related expenses", "requiresReceipts": True},
        "investment": {"description": "Investment property expenses", "requiresReceipts": True},
        "professional": {"description": "Professional development and memberships", "requiresReceipts": True},
        "charitable": {"description": "Charitable donations", "requiresReceipts": True},
    },
}


def _in_band(amount: float, band: Dict[str, Any]) -> bool:
    return amount >= band["min"] and (band["max"] is None or amount <= band["max"])


def calculate_income_tax(taxable_income: float, tax_rules: Dict[str, Any] = DEFAULT_TAX_RULES) -> float:
    if taxable_income <= 0:
        return 0.0

    for bracket in tax_rules["incomeTaxBrackets"]:
        if _in_band(taxable_income, bracket):
            return bracket["baseAmount"] + (taxable_income - bracket["min"]) * bracket["rate"]

    logger.warning(f"No tax bracket matched taxable income {taxable_income} in rules {tax_rules.get('version')}")
    return 0.0


def calculate_medicare_levy(
    taxable_income: float,
    tax_rules: Dict[str, Any] = DEFAULT_TAX_RULES,
    is_exempt: bool = False
) -> float:
    levy = tax_rules["medicareLevy"]
    if is_exempt or taxable_income <= levy["threshold"]:
        return 0.0
    return taxable_income * levy["rate"]


def calculate_hecs_repayment(
    gross_income: float,
    tax_rules: Dict[str, Any] = DEFAULT_TAX_RULES,
    hecs_balance: float = 0
) -> float:
    """Compulsory HELP repayment, never more than the outstanding balance."""
    if not hecs_balance or hecs_balance <= 0:
        return 0.0

    for band in tax_rules["hecsThresholds"]:
        if _in_band(gross_income, band):
            return min(gross_income * band["rate"], hecs_balance)

    return 0.0


def calculate_marginal_tax_rate(taxable_income: float, tax_rules: Dict[str, Any] = DEFAULT_TAX_RULES) -> float:
    """Bracket rate plus Medicare and HECS where they apply."""
    for bracket in tax_rules["incomeTaxBrackets"]:
        if not _in_band(taxable_income, bracket):
            continue

        marginal_rate = bracket["rate"]
        if taxable_income > tax_rules["medicareLevy"]["threshold"]:
            marginal_rate += tax_rules["medicareLevy"]["rate"]

        for band in tax_rules["hecsThresholds"]:
            if _in_band(taxable_income, band):
                marginal_rate += band["rate"]
                break

        return marginal_rate

    return 0.0


def calculate_tax(tax_input: Dict[str, Any], tax_rules: Dict[str, Any] = DEFAULT_TAX_RULES) -> Dict[str, Any]:
    """Work out a full tax position.

    tax_input keys: grossIncome, deductions [{category, amount, description}],
    negativeGearingLoss, frankedDividends, hecsBalance, medicareExemption.
    """
    gross_income = tax_input.get("grossIncome") or 0
    total_deductions = sum((d.get("amount") or 0) for d in tax_input.get("deductions") or [])
    negative_gearing_loss = tax_input.get("negativeGearingLoss") or 0
    franked_dividends = tax_input.get("frankedDividends") or 0
    franked_credits = franked_dividends * FRANKING_CREDIT_RATE

    taxable_income = gross_income - total_deductions

    if tax_rules["negativeGearing"]["allowed"] and negative_gearing_loss > 0:
        taxable_income -= negative_gearing_loss

    # Franked dividends are grossed up by the attached credit
    if franked_dividends:
        taxable_income += franked_dividends + franked_credits

    taxable_income = max(0, taxable_income)

    income_tax = calculate_income_tax(taxable_income, tax_rules)
    medicare_levy = calculate_medicare_levy(taxable_income, tax_rules, bool(tax_input.get("medicareExemption")))
    hecs_repayment = calculate_hecs_repayment(gross_income, tax_rules, tax_input.get("hecsBalance") or 0)

    adjusted_income_tax = max(0, income_tax - franked_credits)
    total_tax = adjusted_income_tax + medicare_levy + hecs_repayment

    return {
        "grossIncome": gross_income,
        "taxableIncome": taxable_income,
        "incomeTax": adjusted_income_tax,
        "medicareLevy": medicare_levy,
        "hecsRepayment": hecs_repayment,
        "totalTax": total_tax,
        "afterTaxIncome": gross_income - total_tax,
        "marginalTaxRate": calculate_marginal_tax_rate(taxable_income, tax_rules),
        "averageTaxRate": total_tax / gross_income if gross_income > 0 else 0,
        "breakdown": {
            "deductions": total_deductions,
            "negativeGearing": negative_gearing_loss,
            "frankedCredits": franked_credits,
        },
    }


def calculate_tax_optimization(
    base_input: Dict[str, Any],
    optimization_strategies: Dict[str, Any],
    tax_rules: Dict[str, Any] = DEFAULT_TAX_RULES
) -> Dict[str, Any]:
    """Compare the current position against one with extra deductions,
    additional negative gearing and salary-sacrificed super.
    """
    additional_deductions = optimization_strategies.get("additionalDeductions") or 0
    negative_gearing_opportunity = optimization_strategies.get("negativeGearingOpportunity") or 0
    super_contributions = optimization_strategies.get("superContributions") or 0

    current_tax = calculate_tax(base_input, tax_rules)

    deductions: List[Dict[str, Any]] = list(base_input.get("deductions") or [])
    if additional_deductions:
        deductions.append({
            "category": "optimization",
            "amount": additional_deductions,
            "description": "Additional tax deductions",
        })

    optimized_input = {
        **base_input,
        "deductions": deductions,
        "negativeGearingLoss": (base_input.get("negativeGearingLoss") or 0) + negative_gearing_opportunity,
    }

    # Salary sacrifice comes out of gross income
    if super_contributions:
        optimized_input["grossIncome"] = (base_input.get("grossIncome") or 0) - super_contributions

    optimized_tax = calculate_tax(optimized_input, tax_rules)

    strategies: List[str] = []
    if additional_deductions:
        strategies.append(f"Claim additional deductions: ${format_locale_number(additional_deductions)}")
    if negative_gearing_opportunity:
        strategies.append(f"Negative gearing opportunity: ${format_locale_number(negative_gearing_opportunity)}")
    if super_contributions:
        strategies.append(f"Salary sacrifice to super: ${format_locale_number(super_contributions)}")

    return {
        "currentTax": current_tax,
        "optimizedTax": optimized_tax,
        "savings": current_tax["totalTax"] - optimized_tax["totalTax"],
        "strategies": strategies,
    }
