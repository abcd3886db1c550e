"""
Monthly payout run.

Calculates variable pay and commissions for every employee in a batch. Each
employee is calculated (and optionally persisted) independently; a failure is
recorded against that employee and the run moves on.
"""

import logging
from datetime import date, datetime
from typing import Callable, Iterable, List, Optional

import pandas as pd

from ...models.payout_schemas import (
    DealCollection,
    DealForAttribution,
    DealVariablePayAttribution,
    EmployeeDeal,
    EmployeePayoutInput,
    EmployeePayoutResult,
    EmployeeRunOutcome,
    PayoutRunResult,
    PlanMetric,
)
from ..utils.logging_utils import CalculationRunLogger, CorrelationFilter, LoggerAdapter
from ..utils.money import round_currency, sum_currency
from .achievement import calculate_metric_bonus_allocation
from .attribution import calculate_deal_variable_pay_attributions
from .clawbacks import detect_clawbacks
from .commissions import calculate_deal_commissions, calculate_total_commission

logger = logging.getLogger(__name__)

VP_METRIC_KEYWORDS = ("new software", "new bookings")

ProgressCallback = Callable[[int, int], None]
PersistCallback = Callable[[EmployeePayoutResult], None]


def find_variable_pay_metric(metrics: Iterable[PlanMetric]) -> Optional[PlanMetric]:
    """The New Software Booking ARR metric that drives deal-level variable pay."""
    for metric in metrics:
        name = metric.metric_name.lower()
        if any(keyword in name for keyword in VP_METRIC_KEYWORDS):
            return metric
    return None


def _ytd_deals(deals: Iterable[EmployeeDeal], month_year: str) -> List[EmployeeDeal]:
    year_start = f"{month_year[:4]}-01"
    return [d for d in deals if year_start <= d.month_year <= month_year]


def calculate_employee_payout(inp: EmployeePayoutInput, month_year: str) -> EmployeePayoutResult:
    """Variable pay (YTD, deal-attributed) plus this month's commissions for one employee."""
    log = LoggerAdapter(logger, {'employee_id': inp.employee_id, 'month': month_year})
    plan = inp.plan
    compensation_rate = inp.compensation_exchange_rate or 1.0
    market_rate = inp.market_exchange_rate

    result = EmployeePayoutResult(
        employee_id=inp.employee_id,
        employee_name=inp.full_name,
        employee_code=inp.employee_code,
        local_currency=inp.local_currency,
        vp_compensation_rate=compensation_rate,
        commission_market_rate=market_rate,
        plan_id=plan.id if plan else None,
        plan_name=plan.name if plan else None,
    )
    if plan is None:
        log.info("No plan assigned; nothing to pay")
        return result

    # Variable pay
    vp_metric = find_variable_pay_metric(plan.metrics)
    target_usd = inp.targets_by_metric.get(vp_metric.metric_name, 0.0) if vp_metric else 0.0
    if vp_metric is not None and target_usd != 0:
        attribution_deals = [
            DealForAttribution(
                id=d.id,
                project_id=d.project_id,
                customer_name=d.customer_name,
                value_usd=d.new_software_booking_arr_usd,
                month_year=d.month_year,
            )
            for d in _ytd_deals(inp.deals, month_year)
        ]
        attribution = calculate_deal_variable_pay_attributions(
            attribution_deals,
            inp.employee_id,
            vp_metric,
            target_usd,
            calculate_metric_bonus_allocation(inp.target_bonus_usd, vp_metric),
            int(month_year[:4]),
            month_year,
        )
        result.vp_attributions = attribution.attributions
        result.variable_pay_usd = attribution.context.total_variable_pay_usd
        result.vp_booking_usd = sum_currency(a.payout_on_booking_usd for a in attribution.attributions)
        result.vp_collection_usd = sum_currency(a.payout_on_collection_usd for a in attribution.attributions)
        result.vp_year_end_usd = sum_currency(a.payout_on_year_end_usd for a in attribution.attributions)
    else:
        log.debug("No variable pay metric or target; skipping variable pay")

    # Commissions on this month's deals
    calculations = []
    for deal in inp.deals:
        if deal.month_year == month_year:
            calculations.extend(calculate_deal_commissions(deal, plan.commissions))
    totals = calculate_total_commission(calculations)
    result.commission_calculations = calculations
    result.commissions_usd = totals.total_gross
    result.comm_booking_usd = totals.total_paid
    result.comm_collection_usd = totals.total_holdback
    result.comm_year_end_usd = totals.total_year_end

    result.variable_pay_local = round_currency(result.variable_pay_usd * compensation_rate)
    result.commissions_local = round_currency(result.commissions_usd * market_rate)
    result.total_payout_usd = sum_currency([result.variable_pay_usd, result.commissions_usd])
    result.total_payout_local = sum_currency([result.variable_pay_local, result.commissions_local])
    result.deals_count = len(result.vp_attributions)

    log.info(f"Calculated payout {result.total_payout_usd:.2f} USD "
             f"(VP {result.variable_pay_usd:.2f}, commissions {result.commissions_usd:.2f})")
    return result


def run_payout_calculation(
    month_year: str,
    employees: List[EmployeePayoutInput],
    on_progress: Optional[ProgressCallback] = None,
    persist: Optional[PersistCallback] = None,
    run_logger: Optional[CalculationRunLogger] = None,
    collections: Optional[Iterable[DealCollection]] = None,
    prior_attributions: Iterable[DealVariablePayAttribution] = (),
    as_of: Optional[date] = None,
    run_id: Optional[str] = None,
) -> PayoutRunResult:
    """Calculate payouts for every employee of a month.

    Args:
        month_year: Period being paid, YYYY-MM
        employees: Pre-loaded employee inputs
        on_progress: Called with (current, total) after each employee
        persist: Called with each successful result; a raised exception marks
            that employee as failed
        run_logger: Optional step logger recording one step per employee
        collections: Deal collection statuses; when given, overdue deals are
            clawed back before employees are calculated
        prior_attributions: Stored attributions the clawbacks are taken from
        as_of: Date for the overdue check (defaults to today)
        run_id: Correlation id stamped on this module's log records

    Returns:
        PayoutRunResult with one outcome per employee
    """
    correlation = CorrelationFilter(run_id)
    logger.addFilter(correlation)
    try:
        calculated_at = datetime.now().isoformat()
        total = len(employees)
        outcomes: List[EmployeeRunOutcome] = []

        logger.info(f"Starting payout run {correlation.correlation_id} for {month_year} with {total} employees")

        clawbacks = None
        if collections is not None:
            clawbacks = detect_clawbacks(collections, prior_attributions, as_of or date.today())
            logger.info(f"{clawbacks.clawback_count} deal(s) clawed back for "
                        f"{clawbacks.total_clawbacks_usd:.2f} USD")

        for index, employee in enumerate(employees, start=1):
            if run_logger:
                run_logger.log_step_start(f"{employee.employee_code} - {employee.full_name}")
                if employee.plan is None:
                    run_logger.log_step_warning("No plan assigned")
            try:
                result = calculate_employee_payout(employee, month_year)
                if persist:
                    persist(result)
                outcomes.append(EmployeeRunOutcome(employee_id=employee.employee_id, success=True, result=result))
                if run_logger:
                    run_logger.log_step_success(details={
                        'total_payout_usd': result.total_payout_usd,
                        'deals_count': result.deals_count,
                    })
            except Exception as e:
                logger.exception(f"Payout calculation failed for employee {employee.employee_id}: {str(e)}")
                outcomes.append(EmployeeRunOutcome(employee_id=employee.employee_id, success=False, error=str(e)))
                if run_logger:
                    run_logger.log_step_failure(str(e), e)

            if on_progress:
                on_progress(index, total)

        successful = [o.result for o in outcomes if o.success]
        run = PayoutRunResult(
            run_id=correlation.correlation_id,
            month_year=month_year,
            calculated_at=calculated_at,
            total_employees=len(successful),
            total_payout_usd=sum_currency(r.total_payout_usd for r in successful),
            total_variable_pay_usd=sum_currency(r.variable_pay_usd for r in successful),
            total_commissions_usd=sum_currency(r.commissions_usd for r in successful),
            total_clawbacks_usd=clawbacks.total_clawbacks_usd if clawbacks else 0.0,
            outcomes=outcomes,
            clawbacks=clawbacks,
        )

        logger.info(f"Payout run {month_year} complete: {len(successful)} succeeded, {len(run.failed)} failed, "
                    f"total {run.total_payout_usd:.2f} USD")
        return run
    finally:
        logger.removeFilter(correlation)


SUMMARY_COLUMNS = [
    'employee_id', 'employee_code', 'employee_name', 'local_currency', 'success', 'error',
    'variable_pay_usd', 'commissions_usd', 'total_payout_usd', 'total_payout_local', 'deals_count',
]


def summarize_payout_run(result: PayoutRunResult) -> pd.DataFrame:
    """One row per employee outcome, failed employees included with their error."""
    rows = []
    for outcome in result.outcomes:
        row = {'employee_id': outcome.employee_id, 'success': outcome.success, 'error': outcome.error}
        if outcome.result is not None:
            r = outcome.result
            row.update({
                'employee_code': r.employee_code,
                'employee_name': r.employee_name,
                'local_currency': r.local_currency,
                'variable_pay_usd': r.variable_pay_usd,
                'commissions_usd': r.commissions_usd,
                'total_payout_usd': r.total_payout_usd,
                'total_payout_local': r.total_payout_local,
                'deals_count': r.deals_count,
            })
        rows.append(row)
    return pd.DataFrame(rows, columns=SUMMARY_COLUMNS)
