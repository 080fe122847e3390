"""Cash flow and retirement building blocks.

Loan maths, real-terms asset projection, negative gearing and the monthly
surplus a client has after living costs, tax, property costs and debt.
Rates are decimals. Functions here never raise on odd input; missing or
non-numeric figures count as zero.
"""
from typing import Dict, Any, List, Optional

from services.tax_engine import calculate_tax, DEFAULT_TAX_RULES
from utils.formatting import to_number


DEFAULT_ASSUMPTIONS: Dict[str, float] = {
    "inflationRate": 0.025,
    "propertyGrowthRate": 0.065,
    "shareMarketReturn": 0.095,
    "superReturn": 0.075,
    "withdrawalRate": 0.04,
    "salaryGrowthRate": 0.035,
    "expectedRentGrowthRate": 0.04,
}

RETIREMENT_INCOME_RATIO = 0.7
CONSERVATIVE_SAVINGS_RETURN = 0.02


# ============================================================================
# LOANS
# ============================================================================

def loan_payment(principal: float, annual_interest_rate: float, term_years: float) -> float:
    """Monthly repayment; zero for an empty or zero-term loan."""
    if principal <= 0 or term_years <= 0:
        return 0.0
    if annual_interest_rate == 0:
        return principal / (term_years * 12)

    monthly_rate = annual_interest_rate / 12
    growth = (1 + monthly_rate) ** (term_years * 12)
    return principal * (monthly_rate * growth) / (growth - 1)


def max_borrowing_capacity(monthly_payment_capacity: float, annual_interest_rate: float, term_years: float) -> float:
    """Largest loan a monthly repayment can service (inverse of loan_payment)."""
    if monthly_payment_capacity <= 0 or term_years <= 0:
        return 0.0
    if annual_interest_rate == 0:
        return monthly_payment_capacity * term_years * 12

    monthly_rate = annual_interest_rate / 12
    growth = (1 + monthly_rate) ** (term_years * 12)
    return monthly_payment_capacity * (growth - 1) / (monthly_rate * growth)


# ============================================================================
# ASSETS AND RETIREMENT
# ============================================================================

def project_asset_value(current_value: float, nominal_growth_rate: float, inflation_rate: float, years: float) -> float:
    """Value in today's dollars, using the exact Fisher real rate."""
    real_growth_rate = (1 + nominal_growth_rate) / (1 + inflation_rate) - 1
    return current_value * (1 + real_growth_rate) ** years


def calculate_negative_gearing(
    annual_rental_income: float,
    expenses: Dict[str, float],
    marginal_tax_rate: float
) -> Dict[str, float]:
    """Net rental loss and the tax it saves at the given marginal rate."""
    total_expenses = sum(
        to_number(expenses.get(key))
        for key in ("mortgageInterest", "repairs", "managementFees", "insurance",
                    "councilRates", "otherExpenses", "depreciation")
    )
    net_loss = max(0, total_expenses - annual_rental_income)

    return {
        "totalRentalIncome": annual_rental_income,
        "totalExpenses": total_expenses,
        "netLoss": net_loss,
        "taxBenefit": net_loss * marginal_tax_rate,
    }


def calculate_retirement_lump_sum(
    current_assets: Dict[str, float],
    assumptions: Dict[str, float],
    years_to_retirement: float
) -> float:
    """Super, shares, property equity and savings projected to retirement in real terms."""
    inflation = assumptions["inflationRate"]
    return (
        project_asset_value(current_assets.get("super", 0), assumptions["superReturn"], inflation, years_to_retirement)
        + project_asset_value(current_assets.get("shares", 0), assumptions["shareMarketReturn"], inflation, years_to_retirement)
        + project_asset_value(current_assets.get("properties", 0), assumptions["propertyGrowthRate"], inflation, years_to_retirement)
        + project_asset_value(current_assets.get("savings", 0), CONSERVATIVE_SAVINGS_RETURN, inflation, years_to_retirement)
    )


def calculate_passive_income(retirement_lump_sum: float, rental_income_annual: float, assumptions: Dict[str, float]) -> float:
    """Safe withdrawal from the lump sum plus rent, at retirement."""
    return retirement_lump_sum * assumptions["withdrawalRate"] + rental_income_annual


def calculate_retirement_deficit_surplus(
    projected_passive_income: float,
    annual_debt_payments: float,
    current_gross_income: float
) -> Dict[str, Any]:
    """Compare retirement income against 70% of today's gross income."""
    required_income = current_gross_income * RETIREMENT_INCOME_RATIO
    available_income = projected_passive_income - annual_debt_payments
    is_deficit = available_income < required_income

    return {
        "monthlyAmount": abs(required_income - available_income) / 12,
        "isDeficit": is_deficit,
        "requiredIncome": required_income,
        "availableIncome": available_income,
    }


def calculate_savings_depletion(savings_balances: List[float], monthly_deficit: float) -> Dict[str, float]:
    """How long savings last when covering a monthly shortfall (inf if never)."""
    total_savings = sum(savings_balances)
    if monthly_deficit <= 0 or total_savings <= 0:
        return {"yearsToDepletion": float("inf"), "monthlyDraw": 0, "totalAvailable": total_savings}

    return {
        "yearsToDepletion": total_savings / (monthly_deficit * 12),
        "monthlyDraw": monthly_deficit,
        "totalAvailable": total_savings,
    }


# ============================================================================
# PROPERTY
# ============================================================================

def calculate_rental_yield(annual_rent: float, property_value: float) -> float:
    """Gross yield as a percentage."""
    if property_value <= 0:
        return 0.0
    return annual_rent / property_value * 100


def calculate_property_cashflow(
    monthly_rent: float,
    monthly_loan_payment: float,
    monthly_expenses: float = 0,
    maintenance_reserve: float = 0.01,
    management_fee: float = 0.07,
    property_value: float = 0
) -> float:
    """Monthly net cash from a rental after loan, costs, maintenance reserve and management."""
    monthly_maintenance = property_value * maintenance_reserve / 12
    return monthly_rent - monthly_loan_payment - monthly_expenses - monthly_maintenance - monthly_rent * management_fee


def calculate_future_value_with_contributions(
    present_value: float,
    monthly_contribution: float,
    annual_growth_rate: float,
    years: float
) -> float:
    total_months = years * 12
    if annual_growth_rate == 0:
        return present_value + monthly_contribution * total_months

    monthly_rate = annual_growth_rate / 12
    growth = (1 + monthly_rate) ** total_months
    return present_value * growth + monthly_contribution * (growth - 1) / monthly_rate


# ============================================================================
# MONTHLY SURPLUS
# ============================================================================

def _first_number(*values: Any) -> float:
    """First non-zero numeric value, else 0."""
    for value in values:
        number = to_number(value)
        if number:
            return number
    return 0.0


def _nested(data: Any, *keys: str) -> Any:
    for key in keys:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


def _hecs_balance(client_data: Dict[str, Any]) -> float:
    liabilities = client_data.get("liabilities")
    balance = to_number(_nested(liabilities, "hecsDebt", "currentBalance"))
    if not balance and isinstance(liabilities, list):
        hecs = next((l for l in liabilities if isinstance(l, dict) and l.get("type") == "hecs"), None)
        balance = to_number(hecs.get("balance")) if hecs else 0.0
    if not balance:
        balance = _first_number(client_data.get("hecsBalance"), client_data.get("helpDebt"))
    return balance


def _monthly_property_expenses(client_data: Dict[str, Any]) -> float:
    total = 0.0
    linked_asset_ids = set()

    investment_properties = client_data.get("properties") or []
    if isinstance(investment_properties, list):
        for prop in investment_properties:
            if not isinstance(prop, dict):
                continue
            total += to_number(prop.get("annualExpenses")) / 12
            if prop.get("linkedAssetId"):
                linked_asset_ids.add(prop["linkedAssetId"])

    assets = client_data.get("assets")
    if isinstance(assets, list):
        property_assets = [a for a in assets if isinstance(a, dict) and a.get("type") == "property"]
    else:
        property_assets = _nested(assets, "properties") or []

    # Assets already linked to an investment property were counted above
    for prop in property_assets:
        if not isinstance(prop, dict):
            continue
        if prop.get("id") and prop["id"] in linked_asset_ids:
            continue
        if str(prop.get("type") or "").lower() in ("investment", "property"):
            total += _first_number(prop.get("annualExpenses"), prop.get("annualExpense")) / 12

    return total


def _monthly_loan_repayments(client_data: Dict[str, Any]) -> float:
    liabilities = client_data.get("liabilities")
    if isinstance(liabilities, list):
        return sum(to_number(l.get("monthlyPayment")) for l in liabilities if isinstance(l, dict))

    if not isinstance(liabilities, dict):
        return 0.0

    total = to_number(_nested(liabilities, "homeLoan", "monthlyRepayment"))
    for key in ("investmentLoans", "personalLoans"):
        total += sum(to_number(l.get("monthlyRepayment")) for l in liabilities.get(key) or [] if isinstance(l, dict))
    total += sum(to_number(c.get("minimumPayment")) for c in liabilities.get("creditCards") or [] if isinstance(c, dict))
    return total


def calculate_monthly_surplus(client_data: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Monthly income, outgoings and surplus for a client record.

    Accepts both the nested shape (income.employment, liabilities.homeLoan)
    and the flat intake shape (annualIncome, liabilities list).
    """
    client_data = client_data or {}

    employment_annual = _first_number(
        _nested(client_data, "income", "employment"), client_data.get("employmentIncome"),
        client_data.get("annualIncome"), client_data.get("grossSalary"), client_data.get("grossIncome"),
    )
    rental_annual = _first_number(_nested(client_data, "income", "rental"), client_data.get("rentalIncome"))
    investment_annual = _first_number(
        _nested(client_data, "income", "investment"), client_data.get("investmentIncome"), client_data.get("dividends"),
    )
    other_annual = _first_number(_nested(client_data, "income", "other"), client_data.get("otherIncome"))

    income = {
        "employment": employment_annual / 12,
        "rental": rental_annual / 12,
        "investment": investment_annual / 12,
        "other": other_annual / 12,
    }
    income["total"] = sum(income.values())

    living = _first_number(_nested(client_data, "financials", "monthlyExpenses"), client_data.get("monthlyExpenses"))

    tax_result = calculate_tax({
        "grossIncome": employment_annual + rental_annual + investment_annual + other_annual,
        "deductions": [],
        "hecsBalance": _hecs_balance(client_data),
    }, DEFAULT_TAX_RULES)

    # totalTax includes HECS; report it separately
    hecs_annual = tax_result["hecsRepayment"]
    monthly_tax = max(0, tax_result["totalTax"] - hecs_annual) / 12

    expenses = {
        "living": living,
        "tax": monthly_tax,
        "hecs": hecs_annual / 12,
        "propertyExpenses": _monthly_property_expenses(client_data),
        "loanRepayments": _monthly_loan_repayments(client_data),
    }
    expenses["total"] = sum(expenses.values())

    surplus = income["total"] - expenses["total"]

    return {
        "income": income,
        "expenses": expenses,
        "surplus": surplus,
        "savingsRate": surplus / income["total"] * 100 if income["total"] > 0 else 0,
    }


def calculate_debt_payments_at_retirement(liabilities: Any, years_to_retirement: float) -> float:
    """Monthly repayments on loans that will still be running at retirement."""
    if not isinstance(liabilities, list) or years_to_retirement <= 0:
        return 0.0

    total = 0.0
    for liability in liabilities:
        if not isinstance(liability, dict):
            continue
        balance = to_number(liability.get("balance"))
        monthly_payment = to_number(liability.get("monthlyPayment"))
        loan_term = to_number(liability.get("loanTerm")) or 30
        if balance <= 0 or monthly_payment <= 0:
            continue
        if loan_term - years_to_retirement > 0:
            total += monthly_payment

    return total
