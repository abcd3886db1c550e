"""FastAPI router for payout calculations."""
from datetime import date
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field

from backend.models.payout_schemas import (
    ClawbackLedgerEntry,
    ClosingArrPayoutDetail,
    ClosingArrRecord,
    DealAttributionResult,
    DealCollection,
    DealForAttribution,
    DealVariablePayAttribution,
    EmployeePayoutInput,
    FnFSettlement,
    FnFSettlementLine,
    HeldPayout,
    PlanMetric,
    RenewalMultiplierTier,
    Tranche1Result,
    Tranche2Result,
    TrancheStatus,
    VariablePaySummary,
)
from backend.payout_engine.config.config_manager import ConfigManager
from backend.payout_engine.core import attribution, clawbacks, payout_run, renewal, settlement
from backend.payout_engine.core.exceptions import InvalidTransitionError, TrancheNotEligibleError
from backend.payout_engine.core.variable_pay import calculate_aggregate_variable_pay
from backend.payout_engine.utils.money import round_currency
from backend.payout_engine.utils.validation import validate_plan_configuration

router = APIRouter(prefix="/v1/payouts", tags=["payouts"])


def get_config(request: Request) -> ConfigManager:
    return request.app.state.config


def _bad_request(exc: Exception) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


# ---------- Variable pay ----------

class AttributionRequest(BaseModel):
    employee_id: str = Field(..., examples=["emp-001"])
    metric: PlanMetric
    target_usd: float = Field(..., examples=[100000])
    bonus_allocation_usd: float = Field(..., examples=[20000])
    fiscal_year: int = Field(..., examples=[2025])
    calculation_month: str = Field(..., examples=["2025-06"])
    deals: List[DealForAttribution] = []


class AttributionResponse(DealAttributionResult):
    summary: VariablePaySummary


@router.post(
    "/attribution",
    response_model=AttributionResponse,
    responses={400: {"description": "Invalid input"}},
)
async def attribute_variable_pay(payload: AttributionRequest) -> AttributionResponse:
    """Attribute aggregate variable pay back to individual deals."""
    try:
        result = attribution.calculate_deal_variable_pay_attributions(
            payload.deals,
            payload.employee_id,
            payload.metric,
            payload.target_usd,
            payload.bonus_allocation_usd,
            payload.fiscal_year,
            payload.calculation_month,
        )
    except ValueError as exc:
        raise _bad_request(exc)
    summary = attribution.calculate_variable_pay_summary(result.attributions, result.context)
    return AttributionResponse(attributions=result.attributions, context=result.context, summary=summary)


class AggregateRequest(BaseModel):
    metric: PlanMetric
    total_actual_usd: float = Field(..., examples=[120000])
    target_usd: float = Field(..., examples=[100000])
    bonus_allocation_usd: float = Field(..., examples=[20000])


class AggregateResponse(BaseModel):
    achievement_pct: float
    multiplier: float
    total_variable_pay_usd: float

    model_config = {
        "json_schema_extra": {
            "example": {"achievement_pct": 120.0, "multiplier": 1.2, "total_variable_pay_usd": 28800.0}
        }
    }


@router.post("/aggregate", response_model=AggregateResponse)
async def aggregate_variable_pay(payload: AggregateRequest) -> AggregateResponse:
    """Aggregate variable pay for one metric."""
    result = calculate_aggregate_variable_pay(
        payload.total_actual_usd, payload.target_usd, payload.bonus_allocation_usd, payload.metric
    )
    return AggregateResponse(
        achievement_pct=round_currency(result.achievement_pct),
        multiplier=result.multiplier,
        total_variable_pay_usd=round_currency(result.total_variable_pay),
    )


# ---------- Renewal multipliers ----------

class RenewalLookupRequest(BaseModel):
    renewal_years: int = Field(..., ge=1, examples=[3])
    tiers: List[RenewalMultiplierTier] = []


class RenewalLookupResponse(BaseModel):
    renewal_years: int
    multiplier: float


@router.post(
    "/renewal-multiplier",
    response_model=RenewalLookupResponse,
    responses={400: {"description": "Overlapping tiers"}},
)
async def lookup_renewal_multiplier(payload: RenewalLookupRequest) -> RenewalLookupResponse:
    try:
        schedule = renewal.validate_renewal_tiers(payload.tiers)
    except ValueError as exc:
        raise _bad_request(exc)
    return RenewalLookupResponse(
        renewal_years=payload.renewal_years,
        multiplier=renewal.lookup_renewal_multiplier(payload.renewal_years, schedule),
    )


class ClosingArrRequest(BaseModel):
    fiscal_year: int = Field(..., examples=[2025])
    tiers: List[RenewalMultiplierTier] = []
    records: List[ClosingArrRecord] = []


class ClosingArrResponse(BaseModel):
    details: List[ClosingArrPayoutDetail]
    closing_arr_actual_usd: float


@router.post("/closing-arr", response_model=ClosingArrResponse, responses={400: {"description": "Invalid input"}})
async def evaluate_closing_arr(payload: ClosingArrRequest) -> ClosingArrResponse:
    """Eligibility and renewal-adjusted ARR for Closing ARR records."""
    try:
        schedule = renewal.validate_renewal_tiers(payload.tiers)
    except ValueError as exc:
        raise _bad_request(exc)
    details = renewal.evaluate_closing_arr(payload.records, schedule, payload.fiscal_year)
    return ClosingArrResponse(details=details, closing_arr_actual_usd=renewal.calculate_closing_arr_actual(details))


# ---------- F&F settlement ----------

class Tranche1Request(BaseModel):
    settlement: FnFSettlement
    held_payouts: List[HeldPayout] = []
    clawbacks: List[ClawbackLedgerEntry] = []
    earned_settlements: List[FnFSettlementLine] = []


@router.post("/settlements/tranche1", response_model=Tranche1Result)
async def calculate_tranche1(payload: Tranche1Request) -> Tranche1Result:
    return settlement.calculate_tranche1(
        payload.settlement, payload.held_payouts, payload.clawbacks, payload.earned_settlements
    )


class Tranche2Request(BaseModel):
    settlement: FnFSettlement
    held_payouts: List[HeldPayout] = []
    collections: List[DealCollection] = []
    carryforward_usd: Optional[float] = None
    as_of: Optional[date] = None


@router.post(
    "/settlements/tranche2",
    response_model=Tranche2Result,
    responses={409: {"description": "Tranche 2 is not yet eligible"}},
)
async def calculate_tranche2(payload: Tranche2Request, config: ConfigManager = Depends(get_config)) -> Tranche2Result:
    """Release or forfeit collection holdbacks after the grace period.

    A settlement without its own grace period uses the configured one.
    """
    fnf = payload.settlement
    if "collection_grace_days" not in fnf.model_fields_set:
        fnf = fnf.model_copy(update={"collection_grace_days": config.collection_grace_days()})
    carryforward = payload.carryforward_usd
    if carryforward is None:
        carryforward = fnf.clawback_carryforward_usd
    try:
        return settlement.calculate_tranche2(
            fnf,
            payload.held_payouts,
            payload.collections,
            carryforward,
            payload.as_of or date.today(),
        )
    except TrancheNotEligibleError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))


class StatusTransitionRequest(BaseModel):
    current: TrancheStatus
    target: TrancheStatus


class StatusTransitionResponse(BaseModel):
    status: TrancheStatus


@router.post(
    "/settlements/status",
    response_model=StatusTransitionResponse,
    responses={409: {"description": "Transition not allowed"}},
)
async def transition_status(payload: StatusTransitionRequest) -> StatusTransitionResponse:
    try:
        new_status = settlement.transition_tranche_status(payload.current, payload.target)
    except InvalidTransitionError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    return StatusTransitionResponse(status=new_status)


# ---------- Clawbacks ----------

class ClawbackDetectionRequest(BaseModel):
    collections: List[DealCollection] = []
    attributions: List[DealVariablePayAttribution] = []
    as_of: Optional[date] = Field(None, examples=["2025-06-30"])


class ClawbackDetectionResponse(BaseModel):
    entries: List[ClawbackLedgerEntry]
    totals_by_employee: Dict[str, float]
    triggered_deal_ids: List[str]
    total_clawbacks_usd: float
    clawback_count: int


@router.post("/clawbacks/detect", response_model=ClawbackDetectionResponse)
async def detect_clawbacks(payload: ClawbackDetectionRequest) -> ClawbackDetectionResponse:
    """Clawback ledger entries for deals past their first milestone without collection."""
    result = clawbacks.detect_clawbacks(payload.collections, payload.attributions, payload.as_of or date.today())
    return ClawbackDetectionResponse(
        entries=result.entries,
        totals_by_employee=result.totals_by_employee,
        triggered_deal_ids=result.triggered_deal_ids,
        total_clawbacks_usd=result.total_clawbacks_usd,
        clawback_count=result.clawback_count,
    )


# ---------- Plans and runs ----------

@router.post("/plans/validate")
async def validate_plan(plan: Dict[str, Any]) -> Dict[str, Any]:
    """Validate a plan definition without saving it."""
    return validate_plan_configuration(plan)


class PayoutRunRequest(BaseModel):
    month_year: str = Field(..., examples=["2025-06"])
    employees: List[EmployeePayoutInput] = []
    collections: Optional[List[DealCollection]] = None
    prior_attributions: List[DealVariablePayAttribution] = []
    as_of: Optional[date] = None


@router.post("/run")
async def run_payouts(payload: PayoutRunRequest) -> Dict[str, Any]:
    """Calculate a month's payouts; failed employees are reported, not raised."""
    result = payout_run.run_payout_calculation(
        payload.month_year,
        payload.employees,
        collections=payload.collections,
        prior_attributions=payload.prior_attributions,
        as_of=payload.as_of,
    )
    return {
        "run_id": result.run_id,
        "month_year": result.month_year,
        "calculated_at": result.calculated_at,
        "total_employees": result.total_employees,
        "total_payout_usd": result.total_payout_usd,
        "total_variable_pay_usd": result.total_variable_pay_usd,
        "total_commissions_usd": result.total_commissions_usd,
        "total_clawbacks_usd": result.total_clawbacks_usd,
        "clawbacks": [e.model_dump() for e in result.clawbacks.entries] if result.clawbacks else [],
        "failed": [o.model_dump(exclude={"result"}) for o in result.failed],
        "employees": [
            o.result.model_dump(exclude={"vp_attributions", "commission_calculations"})
            for o in result.outcomes
            if o.success
        ],
    }
