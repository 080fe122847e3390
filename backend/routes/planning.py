"""Planning calculators for the dashboard.

Stateless: each endpoint runs one calculation module over the posted
figures. Calculation errors (ValueError) come back as 400.
"""
from fastapi import APIRouter, HTTPException, Request, status
from models import (
    ProjectionRequest, TaxRequest, TaxOptimizationRequest, ClientDataRequest,
    ServiceabilityRequest, ChartRequest, TaxBreakdownRequest, LoanRequest,
    RetirementProjectionRequest, NetWorthProjectionRequest, DrawdownRequest,
    RetirementGapRequest, PropertyPotentialRequest
)
from middleware import require_auth
from services.projections import convert_client_to_inputs, calculate_financial_projections, compute_summary_from_client
from services.tax_engine import calculate_tax, calculate_tax_optimization
from services.tax_calculator import calculate_total_tax, get_tax_bracket
from services.tax_strategies import generate_optimization_strategies, calculate_total_tax_savings
from services.cashflow import calculate_monthly_surplus, calculate_retirement_deficit_surplus
from services.serviceability import calculate_serviceability, calculate_property_serviceability
from services import financial_calculations as fc
from services.svg_charts import build_chart, svg_to_data_url
from utils.formatting import json_safe
from typing import Callable, Any, Dict
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/planning", tags=["planning"])

async def _calculate(request: Request, label: str, fn: Callable[[], Any]):
    """Authenticate, run a calculation, and map its errors to HTTP errors."""
    await require_auth(request)
    try:
        return json_safe(fn())
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    except Exception as e:
        logger.error(f"{label} calculation error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to calculate {label}"
        )

@router.post("/projections")
async def projections(request: Request, data: ProjectionRequest):
    """Retirement projection for one client; {results: null} without a client."""
    def run():
        inputs = convert_client_to_inputs(data.client, data.sharedAssumptions)
        if inputs is None:
            return {"results": None}
        return calculate_financial_projections(inputs)
    return await _calculate(request, "projections", run)

@router.post("/summary")
async def summary(request: Request, data: ProjectionRequest):
    return await _calculate(
        request, "summary",
        lambda: compute_summary_from_client(data.client, data.sharedAssumptions, data.storedProjection)
    )

@router.post("/tax")
async def tax(request: Request, data: TaxRequest):
    return await _calculate(request, "tax", lambda: calculate_tax(data.model_dump()))

@router.post("/tax/breakdown")
async def tax_breakdown(request: Request, data: TaxBreakdownRequest):
    """Resident rates only: income tax, Medicare levy and the bracket the income falls in."""
    return await _calculate(request, "tax breakdown", lambda: {
        **calculate_total_tax(data.taxableIncome),
        "bracket": get_tax_bracket(data.taxableIncome),
    })

@router.post("/tax/optimization")
async def tax_optimization(request: Request, data: TaxOptimizationRequest):
    """Strategy suggestions plus a current-vs-optimized comparison."""
    def run():
        base = data.base.model_dump()
        comparison = calculate_tax_optimization(base, {
            "additionalDeductions": data.additionalDeductions,
            "negativeGearingOpportunity": data.negativeGearingOpportunity,
            "superContributions": data.superContributions,
        })
        current = comparison["currentTax"]
        strategy_data = {"grossIncome": data.base.grossIncome, **data.strategyData}
        strategies = generate_optimization_strategies(
            strategy_data, {"marginalTaxRate": current["marginalTaxRate"] * 100}
        )
        return {
            "comparison": comparison,
            "strategies": strategies,
            "totalSavings": calculate_total_tax_savings(strategies),
        }
    return await _calculate(request, "tax optimization", run)

@router.post("/cashflow")
async def cashflow(request: Request, data: ClientDataRequest):
    return await _calculate(request, "cash flow", lambda: calculate_monthly_surplus(data.clientData))

@router.post("/serviceability")
async def serviceability(request: Request, data: ServiceabilityRequest):
    def run():
        payload: Dict[str, Any] = {"clientData": data.clientData}
        if data.proposedLoan:
            payload["proposedLoan"] = data.proposedLoan.model_dump()
        return calculate_serviceability(payload)
    return await _calculate(request, "serviceability", run)

@router.post("/charts")
async def charts(request: Request, data: ChartRequest):
    """Render a chart to SVG and a data URL."""
    def run():
        svg = build_chart(data.type, data.model_dump())
        return {"svg": svg, "dataUrl": svg_to_data_url(svg)}
    return await _calculate(request, "chart", run)

@router.post("/loan")
async def loan(request: Request, data: LoanRequest):
    def run():
        result = {"monthlyPayment": fc.calculate_loan_payment(data.principal, data.annualRate, data.years)}
        if data.includeSchedule:
            result["schedule"] = fc.calculate_amortization_schedule(data.principal, data.annualRate, data.years)
        return result
    return await _calculate(request, "loan", run)

@router.post("/retirement-projection")
async def retirement_projection(request: Request, data: RetirementProjectionRequest):
    def run():
        fc.validate_financial_inputs(data.model_dump())
        return {"projection": fc.calculate_retirement_projection(data.model_dump())}
    return await _calculate(request, "retirement projection", run)

@router.post("/net-worth-projection")
async def net_worth_projection(request: Request, data: NetWorthProjectionRequest):
    return await _calculate(request, "net worth projection", lambda: {
        "projection": fc.calculate_net_worth_projection(
            data.currentAge,
            data.projectionYears,
            data.currentAssets,
            data.currentLiabilities,
            data.annualSavings,
            data.assetGrowthRate,
            data.liabilityReductionRate,
            data.inflationRate,
        )
    })

@router.post("/drawdown")
async def drawdown(request: Request, data: DrawdownRequest):
    """Retirement drawdown; the first withdrawal defaults to the safe withdrawal amount."""
    def run():
        withdrawal = data.annualWithdrawal
        if withdrawal is None:
            withdrawal = fc.calculate_safe_withdrawal(data.retirementSavings, data.withdrawalRate)
        return {
            "annualWithdrawal": withdrawal,
            "schedule": fc.calculate_retirement_income(
                data.retirementSavings, withdrawal, data.annualReturn, data.inflationRate, data.years
            ),
        }
    return await _calculate(request, "drawdown", run)

@router.post("/retirement")
async def retirement_gap(request: Request, data: RetirementGapRequest):
    return await _calculate(request, "retirement", lambda: calculate_retirement_deficit_surplus(
        data.projectedPassiveIncome, data.annualDebtPayments, data.currentGrossIncome
    ))

@router.post("/property")
async def property_potential(request: Request, data: PropertyPotentialRequest):
    def run():
        kwargs = {
            k: v for k, v in {
                "interest_rate": data.interestRate,
                "loan_term_years": data.loanTermYears,
                "loan_to_value_ratio": data.loanToValueRatio,
            }.items() if v is not None
        }
        return calculate_property_serviceability(data.retirementMetrics, **kwargs)
    return await _calculate(request, "property", run)
