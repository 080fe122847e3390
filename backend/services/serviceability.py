"""Loan serviceability and investment property capacity.

calculate_serviceability() follows lender practice: net income after tax,
existing commitments plus the new repayment, a 35% commitment ratio cap,
a 10% income buffer and a +3% interest rate stress test.
"""
from typing import Dict, Any, Optional
import math

from services.cashflow import loan_payment, max_borrowing_capacity, calculate_monthly_surplus

MAX_SERVICEABILITY_RATIO = 35
BUFFER_RATIO = 0.10
STRESS_TEST_MARGIN = 0.03
DEFAULT_INTEREST_RATE = 0.06
DEFAULT_TERM_YEARS = 30

RETIREMENT_RETENTION_RATIO = 0.7
RENTAL_INCOME_MULTIPLIER = 0.75


def calculate_serviceability(serviceability_input: Dict[str, Any]) -> Dict[str, Any]:
    """Assess whether a client can carry a proposed loan.

    serviceability_input: {clientData, proposedLoan: {amount, interestRate, termYears}}.
    serviceabilityRatio is math.inf when there is no net income.
    """
    client_data = serviceability_input.get("clientData") or {}
    proposed_loan = serviceability_input.get("proposedLoan") or {
        "amount": 0, "interestRate": DEFAULT_INTEREST_RATE, "termYears": DEFAULT_TERM_YEARS,
    }
    amount = proposed_loan.get("amount") or 0
    interest_rate = proposed_loan.get("interestRate") or DEFAULT_INTEREST_RATE
    term_years = proposed_loan.get("termYears") or DEFAULT_TERM_YEARS

    surplus = calculate_monthly_surplus(client_data)
    monthly_net_income = surplus["income"]["total"] - surplus["expenses"]["tax"]
    existing_repayments = surplus["expenses"]["loanRepayments"]

    monthly_repayment = loan_payment(amount, interest_rate, term_years)
    total_commitments = existing_repayments + monthly_repayment
    net_surplus_after_loan = surplus["surplus"] - monthly_repayment

    if monthly_net_income > 0:
        ratio = total_commitments / monthly_net_income * 100
    else:
        ratio = math.inf

    required_buffer = monthly_net_income * BUFFER_RATIO
    actual_buffer = monthly_net_income - total_commitments
    has_buffer = actual_buffer >= required_buffer

    stress_repayment = loan_payment(amount, interest_rate + STRESS_TEST_MARGIN, term_years)
    passes_stress_test = (monthly_net_income - existing_repayments - stress_repayment) > required_buffer

    can_afford = (
        math.isfinite(ratio)
        and ratio <= MAX_SERVICEABILITY_RATIO
        and has_buffer
        and passes_stress_test
        and net_surplus_after_loan >= 0
    )

    reasons = []
    if not math.isfinite(ratio):
        reasons.append("Insufficient net income to calculate serviceability")
    if ratio > MAX_SERVICEABILITY_RATIO:
        reasons.append("Serviceability ratio too high (>35%)")
    if not has_buffer:
        reasons.append("Insufficient buffer remaining")
    if not passes_stress_test:
        reasons.append("Failed stress test at higher interest rate")
    if net_surplus_after_loan < 0:
        reasons.append("Negative cash flow after loan")

    return {
        "loanAmount": amount,
        "monthlyRepayment": monthly_repayment,
        "totalMonthlyCommitments": total_commitments,
        "monthlyNetIncome": monthly_net_income,
        "netSurplusAfterLoan": net_surplus_after_loan,
        "serviceabilityRatio": ratio,
        "requiredBuffer": required_buffer,
        "actualBuffer": actual_buffer,
        "hasBuffer": has_buffer,
        "stressTestRepayment": stress_repayment,
        "passesStressTest": passes_stress_test,
        "canAfford": can_afford,
        "assessment": "APPROVED" if can_afford else "DECLINED",
        "reasons": reasons,
    }


def _valid(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or math.isnan(value):
        return None
    return float(value)


def calculate_investment_surplus(monthly_income: float, monthly_expenses: float) -> Dict[str, Any]:
    """Retirement metrics from monthly income and expenses (bad input counts as 0)."""
    income = _valid(monthly_income)
    expenses = _valid(monthly_expenses)
    income = income if income is not None and income >= 0 else 0.0
    expenses = expenses if expenses is not None and expenses >= 0 else 0.0
    difference = income - expenses

    return {
        "projectedPassiveIncomeMonthly": difference,
        "currentMonthlyIncome": income,
        "monthlyDeficitOrSurplus": difference,
        "isDeficit": difference < 0,
    }


def _not_viable(reason: str, lvr: float, surplus_income: float = 0) -> Dict[str, Any]:
    return {
        "maxPropertyValue": 0,
        "maxMonthlyPayment": 0,
        "surplusIncome": surplus_income,
        "loanToValueRatio": lvr,
        "monthlyRentalIncome": 0,
        "totalMonthlyExpenses": 0,
        "isViable": False,
        "reason": reason,
    }


def calculate_property_serviceability(
    retirement_metrics: Dict[str, Any],
    interest_rate: float = DEFAULT_INTEREST_RATE,
    loan_term_years: float = DEFAULT_TERM_YEARS,
    loan_to_value_ratio: float = 0.8,
    expected_rental_yield: float = 0.04,
    property_expenses: float = 0.02
) -> Dict[str, Any]:
    """Largest investment property the retirement surplus could support.

    Only income above 70% of current income is available, and 75% of the
    expected rent is counted towards repayments.
    """
    rate = _valid(interest_rate)
    rate = rate if rate and rate > 0 else DEFAULT_INTEREST_RATE
    term = _valid(loan_term_years)
    term = term if term and term > 0 else DEFAULT_TERM_YEARS
    lvr = _valid(loan_to_value_ratio)
    lvr = lvr if lvr and lvr > 0 else 0.8

    current_income = retirement_metrics.get("currentMonthlyIncome") or 0
    if current_income <= 0:
        return _not_viable("Please enter your income and expenses to calculate investment property potential.", lvr)

    if retirement_metrics.get("isDeficit"):
        return _not_viable("Retirement deficit must be addressed before considering investment properties", lvr)

    available_surplus = calculate_retirement_investment_surplus(
        retirement_metrics.get("projectedPassiveIncomeMonthly") or 0, current_income
    )
    if available_surplus <= 0:
        return _not_viable("No surplus available after ensuring 70% of current income in retirement", lvr)

    max_borrowing = max_borrowing_capacity(available_surplus, rate, term)
    if max_borrowing <= 0:
        return _not_viable("Unable to calculate borrowing capacity. Please check your financial inputs.", lvr, available_surplus)

    max_property_value = max_borrowing / lvr
    if max_property_value <= 0:
        return _not_viable("Unable to calculate property value. Please check your financial inputs.", lvr, available_surplus)

    monthly_rental_income = max_property_value * expected_rental_yield / 12
    monthly_expenses = max_property_value * property_expenses / 12

    # Second pass: a conservative share of the rent also services the loan
    total_serviceability = available_surplus + monthly_rental_income * RENTAL_INCOME_MULTIPLIER
    max_borrowing_with_rental = max_borrowing_capacity(total_serviceability, rate, term)

    result = {
        "maxPropertyValue": max_property_value,
        "maxMonthlyPayment": available_surplus,
        "surplusIncome": available_surplus,
        "loanToValueRatio": lvr,
        "monthlyRentalIncome": monthly_rental_income,
        "totalMonthlyExpenses": monthly_expenses,
        "isViable": True,
    }
    if max_borrowing_with_rental > 0:
        result["maxPropertyValue"] = max_borrowing_with_rental / lvr
        result["maxMonthlyPayment"] = total_serviceability

    return result


def calculate_retirement_investment_surplus(
    projected_passive_income: float,
    current_monthly_income: float,
    required_retention_ratio: float = RETIREMENT_RETENTION_RATIO
) -> float:
    return max(0, projected_passive_income - current_monthly_income * required_retention_ratio)
