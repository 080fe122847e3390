"""Tax optimization strategy generator.

Produces adviser-facing suggestions (donations, concessional super, negative
gearing, private health cover ...) with an estimated annual saving each,
ordered from the largest saving down. Marginal rates here are percentages
(32.0 means 32%).
"""
from typing import Dict, Any, List

from utils.formatting import format_locale_number

CHARITY_TARGET = 2000
CONCESSIONAL_SUPER_CAP = 27500
SUPER_CONTRIBUTIONS_TAX = 15
WORK_EXPENSE_TARGET = 3000

# Illustrative investment property used for the "new property" suggestion
EXAMPLE_PROPERTY_VALUE = 750000
EXAMPLE_RENTAL_YIELD = 0.04
EXAMPLE_INTEREST_RATE = 0.065
EXAMPLE_LVR = 0.8
EXAMPLE_EXPENSE_RATE = 0.02

EXAMPLE_HEALTH_PREMIUM = 2000
EXAMPLE_HEALTH_REBATE = 0.25


def _strategy(name: str, description: str, saving: float, difficulty: str, category: str) -> Dict[str, Any]:
    return {
        "strategy": name,
        "description": description,
        "potentialSaving": saving,
        "difficulty": difficulty,
        "category": category,
    }


def generate_optimization_strategies(data: Dict[str, Any], current_result: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Build the strategy list for one client.

    data: annualIncome/employmentIncome/grossIncome, rentalIncome,
    rentalExpenses, charityDonations, workRelatedExpenses, capitalGains,
    healthInsurance, superContributions.
    current_result: needs marginalTaxRate as a percentage.
    """
    strategies: List[Dict[str, Any]] = []
    marginal = current_result.get("marginalTaxRate") or 0
    income = next(
        (data[key] for key in ("annualIncome", "employmentIncome", "grossIncome") if data.get(key) is not None),
        0
    )

    charity = data.get("charityDonations") or 0
    if charity < CHARITY_TARGET:
        suggested = CHARITY_TARGET - charity
        strategies.append(_strategy(
            "Charitable Donations",
            f"Increase charitable donations by ${format_locale_number(suggested)} to maximize tax deductions. "
            f"This is fully tax deductible at your marginal rate of {marginal:.1f}%.",
            suggested * (marginal / 100),
            "Easy",
            "Deductions",
        ))

    current_super = data.get("superContributions") or 0
    if current_super < CONCESSIONAL_SUPER_CAP and income > 50000:
        contribution = min(CONCESSIONAL_SUPER_CAP - current_super, income * 0.15)
        strategies.append(_strategy(
            "Superannuation Contribution",
            f"Make additional pre-tax super contributions of ${format_locale_number(contribution)} to save on tax. "
            f"This will be taxed at 15% instead of your marginal rate of {marginal:.1f}%.",
            contribution * ((marginal - SUPER_CONTRIBUTIONS_TAX) / 100),
            "Medium",
            "Super",
        ))

    rental_income = data.get("rentalIncome") or 0
    rental_expenses = data.get("rentalExpenses") or 0
    negative_gearing = max(0, rental_expenses - rental_income)
    if negative_gearing > 0:
        strategies.append(_strategy(
            "Rental Property Tax Optimization",
            f"Your rental property is currently negatively geared with a loss of ${format_locale_number(negative_gearing)}. "
            f"This reduces your taxable income through negative gearing, resulting in tax savings at your marginal rate of {marginal:.1f}%.",
            negative_gearing * (marginal / 100),
            "Medium",
            "Investments",
        ))

    if rental_income == 0 and income > 80000:
        potential_rent = EXAMPLE_PROPERTY_VALUE * EXAMPLE_RENTAL_YIELD
        interest_cost = EXAMPLE_PROPERTY_VALUE * EXAMPLE_LVR * EXAMPLE_INTEREST_RATE
        property_expenses = EXAMPLE_PROPERTY_VALUE * EXAMPLE_EXPENSE_RATE
        potential_loss = max(0, interest_cost + property_expenses - potential_rent)
        strategies.append(_strategy(
            "New Property Investment",
            f"Consider an investment property worth ${format_locale_number(EXAMPLE_PROPERTY_VALUE)}. "
            f"With rental income of ${format_locale_number(potential_rent)}/year and deductible expenses of "
            f"${format_locale_number(interest_cost + property_expenses)}/year, you could reduce your taxable income through negative gearing.",
            potential_loss * (marginal / 100),
            "Hard",
            "Investments",
        ))

    if not data.get("healthInsurance") and income > 90000:
        mls_saving = min(income * 0.015, 1500)
        rebate = EXAMPLE_HEALTH_PREMIUM * EXAMPLE_HEALTH_REBATE
        net_cost = EXAMPLE_HEALTH_PREMIUM - rebate - mls_saving
        strategies.append(_strategy(
            "Private Health Insurance",
            f"Take out private health insurance to avoid the Medicare Levy Surcharge of ${format_locale_number(mls_saving)}. "
            f"With a typical premium of ${format_locale_number(EXAMPLE_HEALTH_PREMIUM)} and rebate of ${format_locale_number(rebate)}, "
            f"your net cost after tax savings would be ${format_locale_number(net_cost)}.",
            mls_saving,
            "Easy",
            "Deductions",
        ))

    potential_deductions = max(0, WORK_EXPENSE_TARGET - (data.get("workRelatedExpenses") or 0))
    if potential_deductions > 0:
        strategies.append(_strategy(
            "Work-Related Expenses",
            f"Claim additional work-related expenses of ${format_locale_number(potential_deductions)} including home office, "
            f"professional development, and tools. This could save you {marginal:.1f}% in tax on these expenses.",
            potential_deductions * (marginal / 100),
            "Easy",
            "Deductions",
        ))

    capital_gains = data.get("capitalGains") or 0
    if capital_gains > 0:
        strategies.append(_strategy(
            "Capital Gains Tax Planning",
            "Time asset sales to minimize tax impact and utilize CGT discount",
            capital_gains * 0.25 * (marginal / 100),
            "Medium",
            "Timing",
        ))

    return sorted(strategies, key=lambda s: s["potentialSaving"], reverse=True)


def calculate_total_tax_savings(strategies: List[Dict[str, Any]]) -> float:
    return sum(s["potentialSaving"] for s in strategies)
