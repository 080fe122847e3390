"""Retirement projections for a single client.

convert_client_to_inputs() turns a stored client record plus the Shared
Assumptions into projection inputs; calculate_financial_projections() runs
the model (super, shares, property, savings, retirement income against a
70% of final salary target); compute_summary_from_client() produces the
handful of figures the dashboard and PDF summary show.

Assumption rates are percentages here (6.2 means 6.2%), matching the
Shared Assumptions form.
"""
from typing import Dict, Any, List, Optional

from models import DEFAULT_SHARED_ASSUMPTIONS
from utils.formatting import to_number

SUPER_GUARANTEE_RATE = 0.12
MAX_ANNUAL_SUPER = 30600
SUPER_ADMIN_FEE = 0.08
OTHER_ASSETS_GROWTH = 0.03
RETIREMENT_INCOME_THRESHOLD = 0.70

_ASSET_TYPE_MAP = {
    "property": "Property",
    "super": "Super",
    "shares": "Shares",
    "cash": "Cash",
    "savings": "Cash",
}

_PAYMENTS_PER_YEAR = {"W": 52, "F": 26, "M": 12}


# ============================================================================
# INPUT CONVERSION
# ============================================================================

def convert_client_to_inputs(client: Optional[Dict[str, Any]], shared_assumptions: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Projection inputs from a client record, or None when there is no client."""
    if not client:
        return None

    assets: List[Dict[str, Any]] = []
    if isinstance(client.get("assets"), list):
        for asset in client["assets"]:
            if not isinstance(asset, dict):
                continue
            asset_type = str(asset.get("type") or "").lower()
            assets.append({
                "name": asset.get("name") or "",
                "value": to_number(asset.get("currentValue") or asset.get("value")),
                "type": _ASSET_TYPE_MAP.get(asset_type, "Other"),
            })
    else:
        # Older records carry balances as flat fields
        for name, asset_type, keys in (
            ("Super", "Super", ("currentSuper", "superFundValue")),
            ("Shares", "Shares", ("currentShares", "sharesTotalValue")),
            ("Cash", "Cash", ("savingsValue", "currentSavings")),
            ("Home", "Property", ("homeValue",)),
        ):
            value = next((to_number(client.get(k)) for k in keys if to_number(client.get(k))), 0)
            if value:
                assets.append({"name": name, "value": value, "type": asset_type})

    liabilities = []
    for liability in client.get("liabilities") or []:
        if not isinstance(liability, dict):
            continue
        repayment = liability.get("repaymentAmount")
        frequency = liability.get("frequency") or "M"
        if not repayment and liability.get("monthlyPayment"):
            repayment, frequency = liability["monthlyPayment"], "M"
        liabilities.append({
            "lender": liability.get("lender") or "",
            "loanType": liability.get("loanType") or "",
            "liabilityType": liability.get("liabilityType") or liability.get("type") or "",
            "balanceOwing": to_number(liability.get("balance") or liability.get("balanceOwing")),
            "repaymentAmount": to_number(repayment),
            "frequency": frequency,
            "interestRate": to_number(liability.get("interestRate")),
            "loanTerm": to_number(liability.get("loanTerm")),
            "termRemaining": to_number(liability.get("termRemaining") or liability.get("term_remaining")),
        })

    investment_properties = []
    for prop in client.get("investmentProperties") or []:
        if not isinstance(prop, dict):
            continue
        investment_properties.append({
            "address": prop.get("address") or "",
            "purchasePrice": to_number(prop.get("purchasePrice") or prop.get("purchase_price")),
            "currentValue": to_number(prop.get("currentValue") or prop.get("current_value")),
            "loanAmount": to_number(prop.get("loanAmount") or prop.get("loan_amount")),
            "interestRate": to_number(prop.get("interestRate") or prop.get("interest_rate")),
            "loanTerm": to_number(prop.get("loanTerm") or prop.get("loan_term")),
            "weeklyRent": to_number(prop.get("weeklyRent") or prop.get("weekly_rent")),
            "annualExpenses": to_number(prop.get("annualExpenses") or prop.get("annual_expenses")),
        })

    shared = shared_assumptions or {}
    assumptions = {
        key: to_number(shared.get(key), default) if shared.get(key) is not None else default
        for key, default in DEFAULT_SHARED_ASSUMPTIONS.items()
    }

    annual_income = client.get("annualIncome")
    if annual_income is None:
        annual_income = client.get("grossSalary")

    current_age = client.get("currentAge")
    retirement_age = client.get("retirementAge")

    return {
        "annualIncome": to_number(annual_income),
        "rentalIncome": to_number(client.get("rentalIncome")),
        "dividends": to_number(client.get("dividends")),
        "frankedDividends": to_number(client.get("frankedDividends")),
        "capitalGains": to_number(client.get("capitalGains")),
        "otherIncome": to_number(client.get("otherIncome")),
        "monthlyExpenses": to_number(client.get("monthlyExpenses")),
        "assets": assets,
        "liabilities": liabilities,
        "investmentProperties": investment_properties,
        "currentAge": to_number(current_age, 30) if current_age is not None else 30,
        "retirementAge": to_number(retirement_age, 65) if retirement_age is not None else 65,
        "assumptions": assumptions,
    }


# ============================================================================
# HELPERS
# ============================================================================

def _remaining_loan_balance(initial_loan: float, annual_rate_percent: float, term_years: float, years_passed: float) -> float:
    """Amortized balance left on a property loan after years_passed."""
    total_months = term_years * 12
    remaining_months = total_months - years_passed * 12
    if remaining_months <= 0 or initial_loan <= 0:
        return 0.0

    monthly_rate = annual_rate_percent / 100 / 12
    if monthly_rate == 0:
        return initial_loan * remaining_months / total_months

    growth = (1 + monthly_rate) ** total_months
    monthly_payment = initial_loan * monthly_rate * growth / (growth - 1)
    return monthly_payment * (1 - (1 + monthly_rate) ** -remaining_months) / monthly_rate


def _future_value(principal: float, rate: float, years: float) -> float:
    return principal * (1 + rate) ** years


def _future_value_of_annuity(payment: float, rate: float, years: float, growth_rate: float = 0) -> float:
    """Growing annuity: payments rise by growth_rate each year."""
    if abs(rate - growth_rate) < 0.0001:
        return payment * years * (1 + rate) ** (years - 1)
    return payment * ((1 + rate) ** years - (1 + growth_rate) ** years) / (rate - growth_rate)


def _monthly_repayment(liability: Dict[str, Any]) -> float:
    per_year = _PAYMENTS_PER_YEAR.get(liability.get("frequency"), 0)
    return liability["repaymentAmount"] * per_year / 12


def _sum_assets(assets: List[Dict[str, Any]], asset_type: str) -> float:
    return sum(a["value"] for a in assets if a["type"] == asset_type)


# ============================================================================
# PROJECTION MODEL
# ============================================================================

def calculate_financial_projections(inputs: Dict[str, Any]) -> Dict[str, Any]:
    """Project a client's position forward to retirement."""
    assumptions = inputs["assumptions"]
    years = inputs["retirementAge"] - inputs["currentAge"]

    r_super = (assumptions["superReturn"] - SUPER_ADMIN_FEE) / 100
    r_shares = assumptions["shareReturn"] / 100
    r_property = assumptions["propertyGrowthRate"] / 100
    g_salary = assumptions["salaryGrowthRate"] / 100
    g_rent = assumptions["rentGrowthRate"] / 100
    inflation = assumptions["inflationRate"] / 100
    withdrawal_rate = assumptions["withdrawalRate"] / 100
    savings_rate = assumptions["savingsRate"] / 100

    assets = inputs["assets"]
    liabilities = inputs["liabilities"]
    properties = inputs["investmentProperties"]

    # Current position
    current_super = _sum_assets(assets, "Super")
    current_savings = _sum_assets(assets, "Cash")
    current_shares = _sum_assets(assets, "Shares")
    current_property_assets = _sum_assets(assets, "Property")
    current_other_assets = _sum_assets(assets, "Other")

    property_equity = sum(p["currentValue"] - p["loanAmount"] for p in properties)
    total_assets = sum(a["value"] for a in assets)
    total_liabilities = sum(l["balanceOwing"] for l in liabilities)
    monthly_debt_payments = sum(_monthly_repayment(l) for l in liabilities)
    monthly_rental_income = sum(p["weeklyRent"] * 52 / 12 for p in properties)

    total_annual_income = (
        inputs["annualIncome"] + inputs["rentalIncome"] + inputs["dividends"]
        + inputs["frankedDividends"] + inputs["capitalGains"] + inputs["otherIncome"]
    )
    current_monthly_cashflow = total_annual_income / 12 - inputs["monthlyExpenses"] - monthly_debt_payments

    # Superannuation: current balance plus employer contributions growing with salary
    annual_super_contribution = min(inputs["annualIncome"] * SUPER_GUARANTEE_RATE, MAX_ANNUAL_SUPER)
    future_super = (
        _future_value(current_super, r_super, years)
        + _future_value_of_annuity(annual_super_contribution, r_super, years, g_salary)
    )

    future_shares = _future_value(current_shares, r_shares, years)
    future_property_assets = _future_value(current_property_assets, r_property, years)
    future_other_assets = _future_value(current_other_assets, OTHER_ASSETS_GROWTH, years)

    future_property_value = 0.0
    remaining_property_loans = 0.0
    for prop in properties:
        value = _future_value(prop["currentValue"], r_property, years)
        balance = _remaining_loan_balance(prop["loanAmount"], prop["interestRate"], prop["loanTerm"], years)
        future_property_value += value
        remaining_property_loans += balance
    future_property_equity = future_property_value - remaining_property_loans

    # Savings: growth, the savings rate on salary, and any positive cash flow
    future_savings_from_growth = _future_value(current_savings, r_super, years)
    future_savings_from_contributions = _future_value_of_annuity(
        inputs["annualIncome"] * savings_rate, r_super, years, g_salary
    )
    future_savings_from_cashflow = 0.0
    initial_annual_cashflow = current_monthly_cashflow * 12
    if initial_annual_cashflow > 0:
        future_savings_from_cashflow = _future_value_of_annuity(
            initial_annual_cashflow, r_super, years, g_rent - inflation
        )
    future_savings = max(0, future_savings_from_growth + future_savings_from_contributions + future_savings_from_cashflow)

    combined_networth_at_retirement = (
        future_super + future_shares + future_property_equity
        + future_property_assets + future_other_assets + future_savings
    )

    # Retirement income
    future_monthly_rental_income = monthly_rental_income * (1 + g_rent) ** years
    future_annual_rental_income = future_monthly_rental_income * 12
    annual_super_withdrawal = future_super * withdrawal_rate
    projected_annual_passive_income = future_annual_rental_income + annual_super_withdrawal

    future_monthly_expenses = inputs["monthlyExpenses"] * (1 + inflation) ** years
    future_monthly_loan_payments = sum(
        _monthly_repayment(l) for l in liabilities if years < l["termRemaining"]
    )
    combined_monthly_cashflow_retirement = (
        projected_annual_passive_income / 12 - future_monthly_expenses - future_monthly_loan_payments
    )

    # Target: 70% of final salary
    final_annual_income = inputs["annualIncome"] * (1 + g_salary) ** years
    required_annual_income = final_annual_income * RETIREMENT_INCOME_THRESHOLD
    annual_surplus_deficit = projected_annual_passive_income - required_annual_income
    percentage_of_target = (
        projected_annual_passive_income / required_annual_income * 100 if required_annual_income > 0 else 0
    )

    return {
        "currentAge": inputs["currentAge"],
        "retirementAge": inputs["retirementAge"],
        "currentSuper": current_super,
        "currentSavings": current_savings,
        "currentShares": current_shares,
        "propertyEquity": property_equity,
        "currentNetWorth": total_assets - total_liabilities,
        "totalAssets": total_assets,
        "totalLiabilities": total_liabilities,
        "monthlyDebtPayments": monthly_debt_payments,
        "monthlyRentalIncome": monthly_rental_income,
        "currentMonthlyCashflow": current_monthly_cashflow,
        "totalAnnualIncome": total_annual_income,

        "yearsToRetirement": years,
        "futureSuper": future_super,
        "futureShares": future_shares,
        "futurePropertyValue": future_property_value,
        "futurePropertyEquity": future_property_equity,
        "remainingPropertyLoans": remaining_property_loans,
        "futurePropertyAssets": future_property_assets,
        "futureOtherAssets": future_other_assets,
        "futureSavings": future_savings,
        "combinedNetworthAtRetirement": combined_networth_at_retirement,

        "futureMonthlyRentalIncome": future_monthly_rental_income,
        "futureAnnualRentalIncome": future_annual_rental_income,
        "annualSuperWithdrawal": annual_super_withdrawal,
        "monthlySuperWithdrawal": annual_super_withdrawal / 12,
        "projectedAnnualPassiveIncome": projected_annual_passive_income,
        "combinedMonthlyCashflowRetirement": combined_monthly_cashflow_retirement,

        "finalAnnualIncome": final_annual_income,
        "requiredAnnualIncome": required_annual_income,
        "requiredMonthlyIncome": required_annual_income / 12,
        "annualSurplusDeficit": annual_surplus_deficit,
        "monthlySurplusDeficit": annual_surplus_deficit / 12,
        "status": "surplus" if annual_surplus_deficit >= 0 else "deficit",
        "percentageOfTarget": percentage_of_target,
    }


def compute_summary_from_client(
    client: Optional[Dict[str, Any]],
    shared_assumptions: Optional[Dict[str, Any]],
    stored_projection: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    """Dashboard summary; a previously stored projection takes precedence."""
    client_name = "Client"
    if client:
        client_name = f"{client.get('firstName') or ''} {client.get('lastName') or ''}".strip() or "Client"

    if stored_projection:
        return {
            "clientName": client_name,
            "projectedRetirementLumpSum": stored_projection.get("projectedLumpSum") or 0,
            "projectedRetirementMonthlyCashFlow": stored_projection.get("monthlyPassiveIncome") or 0,
            "retirementDeficitSurplus": stored_projection.get("monthlyDeficitSurplus") or 0,
            "isRetirementDeficit": bool(stored_projection.get("isDeficit")),
            "yearsToRetirement": stored_projection.get("yearsToRetirement") or 0,
        }

    inputs = convert_client_to_inputs(client, shared_assumptions)
    if inputs is None:
        return {
            "clientName": client_name,
            "projectedRetirementLumpSum": 0,
            "projectedRetirementMonthlyCashFlow": 0,
            "retirementDeficitSurplus": 0,
            "isRetirementDeficit": False,
            "yearsToRetirement": 65 - 35,
        }

    results = calculate_financial_projections(inputs)
    return {
        "clientName": client_name,
        "projectedRetirementLumpSum": results["combinedNetworthAtRetirement"] or 0,
        "projectedRetirementMonthlyCashFlow": results["projectedAnnualPassiveIncome"] / 12,
        "retirementDeficitSurplus": results["monthlySurplusDeficit"] or 0,
        "isRetirementDeficit": results["status"] == "deficit",
        "yearsToRetirement": results["yearsToRetirement"] or 0,
    }
