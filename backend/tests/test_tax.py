"""
Tax calculator, tax engine and optimization strategies.
"""
import pytest

from services import tax_calculator
from services.tax_engine import (
    calculate_tax, calculate_tax_optimization, calculate_hecs_repayment,
    calculate_medicare_levy, calculate_marginal_tax_rate,
)
from services.tax_strategies import generate_optimization_strategies, calculate_total_tax_savings


class TestTaxCalculator:
    def test_income_tax_by_bracket(self):
        assert tax_calculator.calculate_income_tax(18200) == 0
        assert tax_calculator.calculate_income_tax(45000) == 4288
        assert tax_calculator.calculate_income_tax(100000) == 20788
        assert tax_calculator.calculate_income_tax(200000) == 56138

    def test_negative_income_rejected(self):
        with pytest.raises(ValueError):
            tax_calculator.calculate_income_tax(-1)

    def test_total_tax_breakdown(self):
        result = tax_calculator.calculate_total_tax(100000)
        assert result["incomeTax"] == 20788
        assert result["medicareLevy"] == 2000
        assert result["totalTax"] == 22788
        assert result["netIncome"] == 77212
        assert result["marginalRate"] == 0.30

    def test_bracket_lookup_and_additional_income(self):
        assert tax_calculator.get_tax_bracket(50000)["rate"] == 0.30
        assert tax_calculator.calculate_tax_on_additional_income(100000, 10000) == 3000


class TestTaxEngine:
    def test_deductions_reduce_taxable_income(self):
        result = calculate_tax({
            "grossIncome": 100000,
            "deductions": [{"category": "work-related", "amount": 5000, "description": "Tools"}],
        })
        assert result["taxableIncome"] == 95000
        assert result["breakdown"]["deductions"] == 5000
        assert result["incomeTax"] == pytest.approx(4288 + 50000 * 0.30)

    def test_franked_dividends_are_grossed_up_and_credited(self):
        result = calculate_tax({"grossIncome": 100000, "frankedDividends": 7000})
        assert result["taxableIncome"] == pytest.approx(109100)
        assert result["breakdown"]["frankedCredits"] == pytest.approx(2100)
        gross_tax = 4288 + (109100 - 45000) * 0.30
        assert result["incomeTax"] == pytest.approx(gross_tax - 2100)

    def test_medicare_threshold_and_exemption(self):
        assert calculate_medicare_levy(24000) == 0
        assert calculate_medicare_levy(50000) == pytest.approx(1000)
        assert calculate_medicare_levy(50000, is_exempt=True) == 0

    def test_hecs_repayment_capped_at_balance(self):
        assert calculate_hecs_repayment(95000, hecs_balance=0) == 0
        assert calculate_hecs_repayment(95000, hecs_balance=20000) == pytest.approx(3800)
        assert calculate_hecs_repayment(95000, hecs_balance=1000) == 1000

    def test_marginal_rate_includes_medicare(self):
        assert calculate_marginal_tax_rate(30000) == pytest.approx(0.18)

    def test_optimization_compares_positions(self):
        result = calculate_tax_optimization(
            {"grossIncome": 120000, "deductions": []},
            {"additionalDeductions": 2000, "superContributions": 10000},
        )
        assert result["savings"] > 0
        assert result["optimizedTax"]["grossIncome"] == 110000
        assert result["strategies"] == [
            "Claim additional deductions: $2,000",
            "Salary sacrifice to super: $10,000",
        ]


class TestTaxStrategies:
    def test_strategies_sorted_by_saving(self):
        strategies = generate_optimization_strategies(
            {"annualIncome": 120000, "rentalIncome": 20000, "rentalExpenses": 30000},
            {"marginalTaxRate": 32.0},
        )
        savings = [s["potentialSaving"] for s in strategies]
        assert savings == sorted(savings, reverse=True)
        names = {s["strategy"] for s in strategies}
        assert "Rental Property Tax Optimization" in names
        assert "New Property Investment" not in names
        assert "Private Health Insurance" in names

    def test_low_income_gets_only_basic_strategies(self):
        strategies = generate_optimization_strategies(
            {"grossIncome": 40000, "charityDonations": 2000, "workRelatedExpenses": 3000},
            {"marginalTaxRate": 18.0},
        )
        assert strategies == []
        assert calculate_total_tax_savings(strategies) == 0

    def test_charity_suggestion_wording(self):
        strategies = generate_optimization_strategies({"grossIncome": 40000}, {"marginalTaxRate": 18.0})
        charity = next(s for s in strategies if s["strategy"] == "Charitable Donations")
        assert "$2,000" in charity["description"]
        assert "18.0%" in charity["description"]
        assert charity["potentialSaving"] == pytest.approx(360)
