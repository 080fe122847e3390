"""Financial Calculations - validated time-value-of-money helpers.

Every public function validates its inputs (raising ValueError with a
message suitable for a 400 response) and rounds money to cents.
Rates are decimals (0.07 means 7%).
"""
from datetime import datetime
from typing import Dict, Any, List
import math

from utils.formatting import round_half_up


def _check_rate(annual_rate: float):
    if annual_rate < -1 or annual_rate > 1:
        raise ValueError("Annual rate must be between -100% and 100%")


def _check_years(years: float):
    if years < 0 or years > 100:
        raise ValueError("Years must be between 0 and 100")


# ============================================================================
# GROWTH
# ============================================================================

def calculate_future_value(present_value: float, annual_rate: float, years: float) -> float:
    """Compound a lump sum: FV = PV * (1 + r)^n."""
    if present_value < 0:
        raise ValueError("Present value cannot be negative")
    _check_rate(annual_rate)
    _check_years(years)

    return round_half_up(present_value * (1 + annual_rate) ** years)


def calculate_future_value_of_annuity(
    payment: float,
    annual_rate: float,
    years: float,
    payments_per_year: int = 12
) -> float:
    """Future value of a stream of equal end-of-period payments."""
    if payment < 0:
        raise ValueError("Payment cannot be negative")
    _check_rate(annual_rate)
    _check_years(years)
    if payments_per_year < 1 or payments_per_year > 365:
        raise ValueError("Payments per year must be between 1 and 365")

    rate_per_period = annual_rate / payments_per_year
    total_periods = years * payments_per_year

    if rate_per_period == 0:
        return round_half_up(payment * total_periods)

    return round_half_up(payment * (((1 + rate_per_period) ** total_periods - 1) / rate_per_period))


def calculate_total_growth(
    initial_investment: float,
    monthly_contribution: float,
    annual_rate: float,
    years: float
) -> float:
    """Lump sum growth plus monthly contributions."""
    fv_initial = calculate_future_value(initial_investment, annual_rate, years)
    fv_contributions = calculate_future_value_of_annuity(monthly_contribution, annual_rate, years, 12)
    return round_half_up(fv_initial + fv_contributions)


# ============================================================================
# LOANS
# ============================================================================

def calculate_loan_payment(principal: float, annual_rate: float, years: float) -> float:
    """Monthly principal-and-interest repayment."""
    if principal < 0:
        raise ValueError("Principal cannot be negative")
    if annual_rate < 0 or annual_rate > 1:
        raise ValueError("Annual rate must be between 0% and 100%")
    if years < 1 or years > 50:
        raise ValueError("Years must be between 1 and 50")

    monthly_rate = annual_rate / 12
    num_payments = years * 12

    if monthly_rate == 0:
        return round_half_up(principal / num_payments)

    growth = (1 + monthly_rate) ** num_payments
    return round_half_up(principal * (monthly_rate * growth) / (growth - 1))


def calculate_amortization_schedule(loan_amount: float, annual_rate: float, years: int) -> List[Dict[str, Any]]:
    """Month-by-month split of each repayment into principal and interest."""
    monthly_payment = calculate_loan_payment(loan_amount, annual_rate, years)
    monthly_rate = annual_rate / 12
    schedule: List[Dict[str, Any]] = []
    remaining_balance = loan_amount

    for payment_number in range(1, int(years * 12) + 1):
        interest_payment = round_half_up(remaining_balance * monthly_rate)
        principal_payment = round_half_up(monthly_payment - interest_payment)
        remaining_balance = round_half_up(remaining_balance - principal_payment)

        schedule.append({
            "paymentNumber": payment_number,
            "payment": monthly_payment,
            "principal": principal_payment,
            "interest": interest_payment,
            "remainingBalance": max(0, remaining_balance),
        })

        if remaining_balance <= 0:
            break

    return schedule


def calculate_remaining_loan_balance(
    initial_loan: float,
    annual_interest_rate: float,
    loan_term_years: float,
    years_passed: float
) -> float:
    """Balance left after years_passed of scheduled repayments."""
    if years_passed >= loan_term_years:
        return 0
    if years_passed <= 0:
        return initial_loan

    monthly_payment = calculate_loan_payment(initial_loan, annual_interest_rate, loan_term_years)
    monthly_rate = annual_interest_rate / 12
    remaining_balance = initial_loan

    for _ in range(math.ceil(years_passed * 12)):
        remaining_balance -= monthly_payment - remaining_balance * monthly_rate
        if remaining_balance <= 0:
            return 0

    return round_half_up(remaining_balance)


# ============================================================================
# PROJECTIONS
# ============================================================================

def calculate_net_worth_projection(
    current_age: int,
    projection_years: int,
    current_assets: float,
    current_liabilities: float,
    annual_savings: float,
    asset_growth_rate: float,
    liability_reduction_rate: float,
    inflation_rate: float
) -> List[Dict[str, Any]]:
    """Year-by-year assets, liabilities and net worth (nominal and real)."""
    if current_age < 0 or current_age > 120:
        raise ValueError("Current age must be between 0 and 120")
    if projection_years < 0 or projection_years > 100:
        raise ValueError("Projection years must be between 0 and 100")

    this_year = datetime.now().year
    projections: List[Dict[str, Any]] = []
    assets = current_assets
    liabilities = current_liabilities

    for i in range(int(projection_years) + 1):
        if i > 0:
            assets = round_half_up(assets * (1 + asset_growth_rate) + annual_savings)
            liabilities = max(0, round_half_up(liabilities * (1 - liability_reduction_rate)))

        net_worth = round_half_up(assets - liabilities)

        projections.append({
            "year": this_year + i,
            "age": current_age + i,
            "assets": round_half_up(assets),
            "liabilities": round_half_up(liabilities),
            "netWorth": net_worth,
            "realNetWorth": round_half_up(net_worth / (1 + inflation_rate) ** i),
        })

    return projections


def calculate_safe_withdrawal(portfolio_value: float, withdrawal_rate: float = 0.04) -> float:
    if portfolio_value < 0:
        raise ValueError("Portfolio value cannot be negative")
    if withdrawal_rate < 0 or withdrawal_rate > 1:
        raise ValueError("Withdrawal rate must be between 0% and 100%")

    return round_half_up(portfolio_value * withdrawal_rate)


def calculate_retirement_income(
    retirement_savings: float,
    annual_withdrawal: float,
    annual_return: float,
    inflation_rate: float,
    years: int
) -> List[Dict[str, Any]]:
    """Draw down a retirement balance, indexing withdrawals to inflation.

    Withdrawals come out at the start of each year; the schedule stops early
    once the balance is exhausted.
    """
    if retirement_savings < 0:
        raise ValueError("Retirement savings cannot be negative")
    if annual_withdrawal < 0:
        raise ValueError("Annual withdrawal cannot be negative")
    _check_years(years)

    this_year = datetime.now().year
    projections: List[Dict[str, Any]] = []
    balance = retirement_savings
    withdrawal = annual_withdrawal

    for i in range(int(years)):
        if i > 0:
            withdrawal = round_half_up(withdrawal * (1 + inflation_rate))

        balance = round_half_up(balance - withdrawal)
        if balance > 0:
            balance = round_half_up(balance * (1 + annual_return))

        projections.append({
            "year": this_year + i,
            "withdrawal": round_half_up(withdrawal),
            "balance": max(0, round_half_up(balance)),
        })

        if balance <= 0:
            break

    return projections


def calculate_retirement_projection(projection_input: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Accumulation schedule from current age to retirement age (inclusive).

    projection_input: currentAge, retirementAge, currentSavings,
    monthlyContribution, annualReturn, inflationRate.
    """
    current_age = projection_input["currentAge"]
    retirement_age = projection_input["retirementAge"]
    current_savings = projection_input["currentSavings"]
    monthly_contribution = projection_input["monthlyContribution"]
    annual_return = projection_input["annualReturn"]
    inflation_rate = projection_input["inflationRate"]

    if current_age >= retirement_age:
        raise ValueError("Current age must be less than retirement age")
    if current_savings < 0:
        raise ValueError("Current savings cannot be negative")
    if monthly_contribution < 0:
        raise ValueError("Monthly contribution cannot be negative")

    this_year = datetime.now().year
    projections: List[Dict[str, Any]] = []
    balance = current_savings
    total_contributions = 0.0
    total_returns = 0.0

    for i in range(int(retirement_age - current_age) + 1):
        beginning_balance = balance
        # First row is today's position; contributions start the year after
        contributions = 0 if i == 0 else monthly_contribution * 12

        balance += contributions
        total_contributions += contributions

        investment_return = round_half_up(balance * annual_return)
        balance += investment_return
        total_returns += investment_return

        projections.append({
            "age": current_age + i,
            "year": this_year + i,
            "contributions": round_half_up(contributions),
            "beginningBalance": round_half_up(beginning_balance),
            "investmentReturn": investment_return,
            "endingBalance": round_half_up(balance),
            "totalContributions": round_half_up(total_contributions),
            "totalReturns": round_half_up(total_returns),
            "realValue": round_half_up(balance / (1 + inflation_rate) ** i),
        })

    return projections


def validate_financial_inputs(inputs: Dict[str, Any]):
    """Raise ValueError for the first out-of-range value in inputs."""
    if inputs.get("annualReturn") is not None and not -1 <= inputs["annualReturn"] <= 1:
        raise ValueError("Annual return must be between -100% and 100%")
    if inputs.get("years") is not None and not 0 <= inputs["years"] <= 100:
        raise ValueError("Years must be between 0 and 100")
    if inputs.get("amount") is not None and inputs["amount"] < 0:
        raise ValueError("Amount cannot be negative")
    if inputs.get("principal") is not None and inputs["principal"] < 0:
        raise ValueError("Principal cannot be negative")
    if inputs.get("payment") is not None and inputs["payment"] < 0:
        raise ValueError("Payment cannot be negative")
    if inputs.get("currentAge") is not None and not 0 <= inputs["currentAge"] <= 120:
        raise ValueError("Current age must be between 0 and 120")
    if (inputs.get("retirementAge") is not None and inputs.get("currentAge") is not None
            and inputs["retirementAge"] <= inputs["currentAge"]):
        raise ValueError("Retirement age must be greater than current age")
