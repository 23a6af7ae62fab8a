"""
Cash flow calculation for buy & hold and commercial buy boxes.

Uses conservative assumptions: reserves for vacancy, maintenance and
management, plus a buffer on the interest rate.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

DEFAULT_VACANCY_RATE = 0.065
DEFAULT_MAINTENANCE_RATE = 0.065
DEFAULT_MANAGEMENT_RATE = 0.09
DEFAULT_INTEREST_BUFFER = 0.0075
DEFAULT_BASE_RATE = 0.07


@dataclass
class CashFlowInputs:
    purchase_price: float
    rehab_cost: float = 0.0
    estimated_rent: Optional[float] = None
    noi: Optional[float] = None  # annual
    taxes: float = 0.0  # annual
    insurance: float = 0.0  # annual
    maintenance_reserve: Optional[float] = None
    vacancy_reserve: Optional[float] = None
    property_management: Optional[float] = None
    interest_rate: Optional[float] = None
    loan_type: str = "DSCR"
    ltv: float = 0.75
    amortization_years: int = 30
    required_dscr: float = 1.25


@dataclass
class CashFlowResult:
    monthly_cash_flow: Optional[float] = None
    annual_cash_flow: Optional[float] = None
    dscr: Optional[float] = None
    cash_flow_pass: bool = False
    dscr_pass: bool = False
    required_dscr: float = 1.25
    breakdown: Dict[str, float] = field(default_factory=dict)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "monthly_cash_flow": self.monthly_cash_flow,
            "annual_cash_flow": self.annual_cash_flow,
            "dscr": self.dscr,
            "cash_flow_pass": self.cash_flow_pass,
            "dscr_pass": self.dscr_pass,
            "required_dscr": self.required_dscr,
            "breakdown": self.breakdown,
            "error": self.error,
        }


def monthly_payment(principal: float, annual_rate: float, years: int) -> float:
    """Standard amortized payment."""
    if principal <= 0:
        return 0.0
    n = years * 12
    r = annual_rate / 12
    if r == 0:
        return principal / n
    growth = (1 + r) ** n
    return principal * (r * growth) / (growth - 1)


def calculate_cash_flow(inputs: CashFlowInputs) -> CashFlowResult:
    """Compute monthly cash flow and DSCR for a property."""
    total_cost = inputs.purchase_price + (inputs.rehab_cost or 0)
    loan_amount = total_cost * inputs.ltv

    base_rate = inputs.interest_rate if inputs.interest_rate is not None else DEFAULT_BASE_RATE
    rate = base_rate + DEFAULT_INTEREST_BUFFER
    payment = monthly_payment(loan_amount, rate, inputs.amortization_years)

    if inputs.noi is not None:
        expense_ratio = DEFAULT_VACANCY_RATE + DEFAULT_MANAGEMENT_RATE + DEFAULT_MAINTENANCE_RATE
        gross = (inputs.noi / 12) / (1 - expense_ratio)
    elif inputs.estimated_rent:
        gross = inputs.estimated_rent
    else:
        return CashFlowResult(
            required_dscr=inputs.required_dscr,
            error="Missing required input: estimated_rent or noi",
        )

    vacancy = inputs.vacancy_reserve if inputs.vacancy_reserve is not None else gross * DEFAULT_VACANCY_RATE
    maintenance = (
        inputs.maintenance_reserve if inputs.maintenance_reserve is not None
        else gross * DEFAULT_MAINTENANCE_RATE
    )
    management = (
        inputs.property_management if inputs.property_management is not None
        else gross * DEFAULT_MANAGEMENT_RATE
    )

    monthly_noi = (gross - vacancy) - (
        maintenance + management + inputs.taxes / 12 + inputs.insurance / 12
    )
    monthly_cf = monthly_noi - payment
    annual_debt_service = payment * 12
    dscr = (monthly_noi * 12) / annual_debt_service if annual_debt_service > 0 else None

    return CashFlowResult(
        monthly_cash_flow=round(monthly_cf, 2),
        annual_cash_flow=round(monthly_cf * 12, 2),
        dscr=round(dscr, 2) if dscr is not None else None,
        cash_flow_pass=monthly_cf > 0,
        dscr_pass=dscr is not None and dscr >= inputs.required_dscr,
        required_dscr=inputs.required_dscr,
        breakdown={
            "total_acquisition_cost": round(total_cost, 2),
            "loan_amount": round(loan_amount, 2),
            "interest_rate": rate,
            "monthly_payment": round(payment, 2),
            "gross_monthly_income": round(gross, 2),
            "monthly_noi": round(monthly_noi, 2),
        },
    )


def inputs_from_lead(lead, buy_box) -> CashFlowInputs:
    """Pull cash flow inputs off a lead's intake and the buy box config."""
    intake = lead.dialer_intake or {}
    config = buy_box.cash_flow_config or {}
    return CashFlowInputs(
        purchase_price=intake.get("asking_price") or lead.asking_price or 0,
        rehab_cost=intake.get("estimated_rehab_cost") or 0,
        estimated_rent=intake.get("estimated_rent"),
        noi=intake.get("noi"),
        taxes=intake.get("annual_taxes") or 0,
        insurance=intake.get("annual_insurance") or 0,
        maintenance_reserve=config.get("maintenance_reserve"),
        vacancy_reserve=config.get("vacancy_reserve"),
        property_management=config.get("property_management"),
        interest_rate=config.get("interest_rate"),
        loan_type=config.get("loan_type", "DSCR"),
        ltv=config.get("ltv", 0.75),
        amortization_years=config.get("amortization", 30),
        required_dscr=config.get("required_dscr", 1.25),
    )
