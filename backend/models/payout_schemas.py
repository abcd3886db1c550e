# models/payout_schemas.py - Pydantic models for the payout calculation engine
"""
These models are the single validation boundary of the engine. Raw records
coming from the persistence client are parsed into them once; the core
calculators only ever see validated, typed objects.

Groups:
  Plan configuration: PlanMetric, MultiplierGridBand, PayoutSplit, CompPlan,
    PlanCommission, SpiffConfig, RenewalMultiplierTier/Schedule
  Calculation inputs: DealForAttribution, ClosingArrRecord, NRRDeal,
    HeldPayout, DealCollection, ClawbackLedgerEntry, EmployeePayoutInput
  Derived results: attributions, contexts, tranche results, run outcomes
"""
from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional, List, Dict
from datetime import date
from enum import Enum

SPLIT_TOLERANCE = 0.01


class LogicType(str, Enum):
    LINEAR = "Linear"
    GATED_THRESHOLD = "Gated_Threshold"
    STEPPED_ACCELERATOR = "Stepped_Accelerator"


class TrancheStatus(str, Enum):
    DRAFT = "draft"
    REVIEW = "review"
    APPROVED = "approved"
    FINALIZED = "finalized"
    PAID = "paid"


class SettlementLineType(str, Enum):
    YEAR_END_RELEASE = "year_end_release"
    VP_SETTLEMENT = "vp_settlement"
    NRR_SETTLEMENT = "nrr_settlement"
    SPIFF_SETTLEMENT = "spiff_settlement"
    CLAWBACK_DEDUCTION = "clawback_deduction"
    CLAWBACK_CARRYFORWARD = "clawback_carryforward"
    COLLECTION_RELEASE = "collection_release"
    COLLECTION_FORFEIT = "collection_forfeit"
    CLAWBACK_WRITEOFF = "clawback_writeoff"


class ClawbackStatus(str, Enum):
    PENDING = "pending"
    PARTIAL = "partial"
    RECOVERED = "recovered"
    WRITTEN_OFF = "written_off"


def _normalize_month_year(value: str) -> str:
    """Accept 'YYYY-MM' or 'YYYY-MM-DD' and return 'YYYY-MM'."""
    text = str(value).strip()
    if len(text) >= 7 and text[4] == "-":
        year, month = text[:4], text[5:7]
        if year.isdigit() and month.isdigit() and 1 <= int(month) <= 12:
            return f"{year}-{month}"
    raise ValueError(f"month_year must look like YYYY-MM, got {value!r}")


# ---------- Plan configuration ----------

class PayoutSplit(BaseModel):
    """Booking / collection / year-end percentages of a payout (sum to 100)."""
    booking_pct: float = Field(..., ge=0, le=100)
    collection_pct: float = Field(..., ge=0, le=100)
    year_end_pct: float = Field(0.0, ge=0, le=100)

    @model_validator(mode="after")
    def _check_total(self):
        total = self.booking_pct + self.collection_pct + self.year_end_pct
        if abs(total - 100) > SPLIT_TOLERANCE:
            raise ValueError(f"Payout split must sum to 100, got {total}")
        return self


# Schema default for plans that have not configured their own split. Each
# plan is expected to carry its own; this is a fallback only.
DEFAULT_PAYOUT_SPLIT = PayoutSplit(booking_pct=70, collection_pct=25, year_end_pct=5)


class MultiplierGridBand(BaseModel):
    """One achievement band [min_pct, max_pct) of a multiplier grid."""
    min_pct: float = Field(..., ge=0)
    max_pct: float
    multiplier_value: float = Field(..., ge=0)

    @model_validator(mode="after")
    def _check_band(self):
        if self.max_pct <= self.min_pct:
            raise ValueError(f"Grid band max_pct ({self.max_pct}) must exceed min_pct ({self.min_pct})")
        return self


class PlanMetric(BaseModel):
    """A plan-level compensation rule (e.g. 'New Software Booking ARR')."""
    id: Optional[str] = None
    metric_name: str
    weightage_percent: float = Field(..., ge=0, le=100)
    logic_type: LogicType = LogicType.LINEAR
    gate_threshold_percent: Optional[float] = Field(None, ge=0)
    multiplier_grids: List[MultiplierGridBand] = []
    payout_split: Optional[PayoutSplit] = None

    @field_validator("multiplier_grids")
    @classmethod
    def _sort_and_check_grid(cls, bands: List[MultiplierGridBand]) -> List[MultiplierGridBand]:
        ordered = sorted(bands, key=lambda b: b.min_pct)
        for prev, nxt in zip(ordered, ordered[1:]):
            if nxt.min_pct < prev.max_pct:
                raise ValueError(
                    f"Multiplier grid bands overlap: {prev.min_pct}-{prev.max_pct} and {nxt.min_pct}-{nxt.max_pct}"
                )
        return ordered

    @property
    def is_gated(self) -> bool:
        return self.logic_type == LogicType.GATED_THRESHOLD and bool(self.gate_threshold_percent)

    @property
    def effective_payout_split(self) -> PayoutSplit:
        return self.payout_split or DEFAULT_PAYOUT_SPLIT


class PlanCommission(BaseModel):
    """A commission rate for one booking type (Perpetual License, CR/ER, ...)."""
    commission_type: str
    commission_rate_pct: float = Field(..., ge=0)
    min_threshold_usd: Optional[float] = None
    is_active: bool = True
    payout_split: Optional[PayoutSplit] = None

    @property
    def effective_payout_split(self) -> PayoutSplit:
        return self.payout_split or DEFAULT_PAYOUT_SPLIT


class SpiffConfig(BaseModel):
    """A SPIFF linked to a plan metric."""
    id: Optional[str] = None
    spiff_name: str
    linked_metric_name: str
    spiff_rate_pct: float = Field(..., ge=0)
    min_deal_value_usd: Optional[float] = None
    is_active: bool = True


class RenewalMultiplierTier(BaseModel):
    """Closing-ARR multiplier for deals renewing for [min_years, max_years]."""
    min_years: int = Field(..., ge=1)
    max_years: Optional[int] = None
    multiplier_value: float = Field(1.0, ge=0)

    @model_validator(mode="after")
    def _check_range(self):
        if self.max_years is not None and self.max_years < self.min_years:
            raise ValueError(f"max_years ({self.max_years}) must be >= min_years ({self.min_years})")
        return self

    def covers(self, renewal_years: int) -> bool:
        upper = self.max_years if self.max_years is not None else float("inf")
        return self.min_years <= renewal_years <= upper

    def overlaps(self, other: "RenewalMultiplierTier") -> bool:
        own_max = self.max_years if self.max_years is not None else float("inf")
        other_max = other.max_years if other.max_years is not None else float("inf")
        return self.min_years <= other_max and own_max >= other.min_years


class RenewalMultiplierSchedule(BaseModel):
    """The renewal tiers of one plan. Tiers must be disjoint."""
    tiers: List[RenewalMultiplierTier] = []

    @field_validator("tiers")
    @classmethod
    def _check_overlap(cls, tiers: List[RenewalMultiplierTier]) -> List[RenewalMultiplierTier]:
        ordered = sorted(tiers, key=lambda t: t.min_years)
        for i, tier in enumerate(ordered):
            for other in ordered[i + 1:]:
                if tier.overlaps(other):
                    raise ValueError(
                        f"Renewal tier {tier.min_years}-{tier.max_years or '∞'} overlaps "
                        f"{other.min_years}-{other.max_years or '∞'}"
                    )
        return ordered


class CompPlan(BaseModel):
    """A compensation plan with everything the payout run needs."""
    id: str
    name: str
    metrics: List[PlanMetric] = []
    commissions: List[PlanCommission] = []
    spiffs: List[SpiffConfig] = []
    renewal_multipliers: RenewalMultiplierSchedule = RenewalMultiplierSchedule()
    nrr_ote_percent: float = Field(0.0, ge=0, le=100)
    cr_er_min_gp_margin_pct: float = 0.0
    impl_min_gp_margin_pct: float = 0.0

    @model_validator(mode="after")
    def _check_weightage(self):
        if self.metrics:
            total = sum(m.weightage_percent for m in self.metrics)
            if abs(total - 100) > SPLIT_TOLERANCE:
                raise ValueError(f"Metric weightage for plan '{self.name}' must sum to 100, got {total}")
        return self

    def get_metric(self, name: str) -> Optional[PlanMetric]:
        for metric in self.metrics:
            if metric.metric_name == name:
                return metric
        return None


# ---------- Variable pay attribution ----------

class DealForAttribution(BaseModel):
    """A deal contributing to a metric's actuals."""
    id: str
    project_id: str
    customer_name: Optional[str] = None
    value_usd: Optional[float] = None
    month_year: str

    @field_validator("month_year", mode="before")
    @classmethod
    def _month(cls, v):
        return _normalize_month_year(v)

    @property
    def is_attributable(self) -> bool:
        return self.value_usd is not None and self.value_usd > 0


class DealVariablePayAttribution(BaseModel):
    deal_id: str
    project_id: str
    customer_name: Optional[str] = None
    employee_id: str
    metric_name: str
    deal_value_usd: float
    proportion_pct: float
    variable_pay_split_usd: float
    payout_on_booking_usd: float
    payout_on_collection_usd: float
    payout_on_year_end_usd: float
    clawback_eligible_usd: float


class AggregateVariablePayContext(BaseModel):
    total_actual_usd: float
    target_usd: float
    achievement_pct: float
    multiplier: float
    bonus_allocation_usd: float
    total_variable_pay_usd: float
    metric_name: str
    fiscal_year: int
    calculation_month: str


class DealAttributionResult(BaseModel):
    attributions: List[DealVariablePayAttribution] = []
    context: AggregateVariablePayContext


class VariablePaySummary(BaseModel):
    total_deals: int
    total_arr_usd: float
    target_usd: float
    achievement_pct: float
    multiplier: float
    total_variable_pay_usd: float
    total_payout_on_booking_usd: float
    total_payout_on_collection_usd: float
    total_payout_on_year_end_usd: float
    total_clawback_eligible_usd: float


# ---------- Closing ARR ----------

class ClosingArrRecord(BaseModel):
    """A Closing ARR actual row for one project/product."""
    id: str
    pid: str
    customer_name: Optional[str] = None
    month_year: str
    end_date: Optional[date] = None
    is_multi_year: bool = False
    renewal_years: int = Field(1, ge=1)
    closing_arr_usd: float = 0.0

    @field_validator("month_year", mode="before")
    @classmethod
    def _month(cls, v):
        return _normalize_month_year(v)


class ClosingArrPayoutDetail(BaseModel):
    closing_arr_actual_id: str
    pid: str
    customer_name: Optional[str] = None
    month_year: str
    end_date: Optional[date] = None
    is_multi_year: bool
    renewal_years: int
    closing_arr_usd: float
    multiplier: float
    adjusted_arr_usd: float
    is_eligible: bool
    exclusion_reason: Optional[str] = None


# ---------- Commissions / SPIFF / NRR ----------

class CommissionCalculation(BaseModel):
    deal_id: str
    commission_type: str
    tcv_usd: float
    commission_rate_pct: float
    min_threshold_usd: Optional[float] = None
    qualifies: bool
    gross_commission: float
    paid_amount: float
    holdback_amount: float
    year_end_holdback: float


class SpiffDeal(BaseModel):
    id: str
    project_id: str
    customer_name: Optional[str] = None
    new_software_booking_arr_usd: Optional[float] = None


class SpiffDealBreakdown(BaseModel):
    deal_id: str
    project_id: str
    customer_name: Optional[str] = None
    deal_arr_usd: float
    spiff_payout_usd: float
    spiff_name: str
    spiff_rate_pct: float
    is_eligible: bool
    exclusion_reason: Optional[str] = None


class SpiffCalculationResult(BaseModel):
    total_spiff_usd: float = 0.0
    deal_breakdowns: List[SpiffDealBreakdown] = []
    software_variable_ote_usd: float = 0.0
    linked_metric_weightage: float = 0.0


class SpiffAggregateResult(BaseModel):
    total_spiff_usd: float = 0.0
    breakdowns: List[SpiffDealBreakdown] = []
    software_target_usd: float = 0.0
    eligible_actuals_usd: float = 0.0
    software_variable_ote_usd: float = 0.0
    spiff_rate_pct: float = 0.0


class NRRDeal(BaseModel):
    id: str
    cr_usd: Optional[float] = None
    er_usd: Optional[float] = None
    implementation_usd: Optional[float] = None
    gp_margin_percent: Optional[float] = None


class NRRDealBreakdown(BaseModel):
    deal_id: str
    cr_er_usd: float
    impl_usd: float
    gp_margin_pct: Optional[float] = None
    is_eligible: bool
    exclusion_reason: Optional[str] = None
    eligible_value_usd: float


class NRRCalculationResult(BaseModel):
    eligible_cr_er_usd: float = 0.0
    total_cr_er_usd: float = 0.0
    eligible_impl_usd: float = 0.0
    total_impl_usd: float = 0.0
    nrr_actuals: float = 0.0
    nrr_target: float = 0.0
    achievement_pct: float = 0.0
    payout_usd: float = 0.0
    deal_breakdowns: List[NRRDealBreakdown] = []


# ---------- F&F settlement ----------

class FnFSettlement(BaseModel):
    """Full & final settlement header for a departing employee."""
    id: str
    employee_id: str
    departure_date: date
    fiscal_year: int
    collection_grace_days: int = Field(90, ge=0)
    tranche1_status: TrancheStatus = TrancheStatus.DRAFT
    tranche1_total_usd: float = 0.0
    tranche2_status: TrancheStatus = TrancheStatus.DRAFT
    tranche2_total_usd: float = 0.0
    clawback_carryforward_usd: float = 0.0
    local_currency: str = "USD"
    compensation_exchange_rate: float = 1.0


class FnFSettlementLine(BaseModel):
    settlement_id: str
    tranche: int = Field(..., ge=1, le=2)
    line_type: SettlementLineType
    payout_type: Optional[str] = None
    amount_usd: float
    amount_local: float = 0.0
    local_currency: str = "USD"
    exchange_rate_used: float = 1.0
    deal_id: Optional[str] = None
    source_payout_id: Optional[str] = None
    notes: str = ""


class HeldPayout(BaseModel):
    """A prior monthly payout with amounts held back for year-end or collection."""
    id: str
    employee_id: str
    month_year: str
    payout_type: str
    deal_id: Optional[str] = None
    year_end_amount_usd: float = 0.0
    year_end_amount_local: float = 0.0
    collection_amount_usd: float = 0.0
    collection_amount_local: float = 0.0
    local_currency: str = "USD"
    exchange_rate_used: float = 1.0

    @field_validator("month_year", mode="before")
    @classmethod
    def _month(cls, v):
        return _normalize_month_year(v)


class DealCollection(BaseModel):
    """Collection status of a booked deal."""
    deal_id: str
    project_id: Optional[str] = None
    customer_name: Optional[str] = None
    is_collected: bool = False
    collection_date: Optional[date] = None
    first_milestone_due_date: Optional[date] = None
    is_clawback_triggered: bool = False


class ClawbackLedgerEntry(BaseModel):
    id: str
    employee_id: str
    deal_id: Optional[str] = None
    original_amount_usd: float = 0.0
    recovered_amount_usd: float = 0.0
    remaining_amount_usd: Optional[float] = None
    status: ClawbackStatus = ClawbackStatus.PENDING

    @property
    def outstanding_usd(self) -> float:
        if self.remaining_amount_usd is not None:
            return self.remaining_amount_usd
        return self.original_amount_usd - self.recovered_amount_usd


class ClawbackDetectionResult(BaseModel):
    entries: List[ClawbackLedgerEntry] = []
    totals_by_employee: Dict[str, float] = {}
    triggered_deal_ids: List[str] = []
    total_clawbacks_usd: float = 0.0

    @property
    def clawback_count(self) -> int:
        return len(self.triggered_deal_ids)


class Tranche1Result(BaseModel):
    lines: List[FnFSettlementLine] = []
    total_usd: float = 0.0
    clawback_carryforward_usd: float = 0.0


class Tranche2Result(BaseModel):
    lines: List[FnFSettlementLine] = []
    total_usd: float = 0.0
    eligible_date: date


# ---------- Payout run ----------

class EmployeeDeal(BaseModel):
    """A deal row as the payout run sees it (VP and commission components)."""
    id: str
    project_id: str
    customer_name: Optional[str] = None
    month_year: str
    new_software_booking_arr_usd: Optional[float] = None
    perpetual_license_usd: Optional[float] = None
    managed_services_usd: Optional[float] = None
    implementation_usd: Optional[float] = None
    cr_usd: Optional[float] = None
    er_usd: Optional[float] = None

    @field_validator("month_year", mode="before")
    @classmethod
    def _month(cls, v):
        return _normalize_month_year(v)


class EmployeePayoutInput(BaseModel):
    """Everything needed to compute one employee's monthly payout."""
    employee_id: str
    employee_code: str
    full_name: str
    local_currency: str = "USD"
    compensation_exchange_rate: Optional[float] = None
    market_exchange_rate: float = 1.0
    target_bonus_usd: float = 0.0
    plan: Optional[CompPlan] = None
    targets_by_metric: Dict[str, float] = {}
    deals: List[EmployeeDeal] = []


class EmployeePayoutResult(BaseModel):
    employee_id: str
    employee_name: str
    employee_code: str
    local_currency: str
    variable_pay_usd: float = 0.0
    variable_pay_local: float = 0.0
    vp_compensation_rate: float = 1.0
    vp_booking_usd: float = 0.0
    vp_collection_usd: float = 0.0
    vp_year_end_usd: float = 0.0
    commissions_usd: float = 0.0
    commissions_local: float = 0.0
    commission_market_rate: float = 1.0
    comm_booking_usd: float = 0.0
    comm_collection_usd: float = 0.0
    comm_year_end_usd: float = 0.0
    total_payout_usd: float = 0.0
    total_payout_local: float = 0.0
    plan_id: Optional[str] = None
    plan_name: Optional[str] = None
    deals_count: int = 0
    vp_attributions: List[DealVariablePayAttribution] = []
    commission_calculations: List[CommissionCalculation] = []


class EmployeeRunOutcome(BaseModel):
    employee_id: str
    success: bool
    error: Optional[str] = None
    result: Optional[EmployeePayoutResult] = None


class PayoutRunResult(BaseModel):
    run_id: Optional[str] = None
    month_year: str
    calculated_at: str
    total_employees: int
    total_payout_usd: float
    total_variable_pay_usd: float
    total_commissions_usd: float
    total_clawbacks_usd: float = 0.0
    outcomes: List[EmployeeRunOutcome] = []
    clawbacks: Optional[ClawbackDetectionResult] = None

    @property
    def failed(self) -> List[EmployeeRunOutcome]:
        return [o for o in self.outcomes if not o.success]
