"""
SPIFF payouts.

A SPIFF rewards individual deals on top of regular variable pay. It is linked
to a plan metric and priced off that metric's share of the variable OTE:

    software variable OTE = variable OTE x linked metric weightage
    deal SPIFF            = software variable OTE x (deal ARR / target) x SPIFF rate
"""

import logging
from typing import Dict, Iterable, List, Sequence

from ...models.payout_schemas import (
    PlanMetric,
    SpiffAggregateResult,
    SpiffCalculationResult,
    SpiffConfig,
    SpiffDeal,
    SpiffDealBreakdown,
)
from ..utils.money import round_currency, sum_currency

logger = logging.getLogger(__name__)


def calculate_spiff_payout(
    spiff: SpiffConfig,
    deals: Iterable[SpiffDeal],
    metrics: Sequence[PlanMetric],
    variable_ote_usd: float,
    target_usd: float,
) -> SpiffCalculationResult:
    if not spiff.is_active or target_usd == 0:
        return SpiffCalculationResult()

    linked = next((m for m in metrics if m.metric_name == spiff.linked_metric_name), None)
    linked_weightage = linked.weightage_percent if linked else 0.0
    if linked_weightage == 0:
        logger.debug(f"SPIFF '{spiff.spiff_name}' is linked to '{spiff.linked_metric_name}' with no weightage")
        return SpiffCalculationResult()

    software_ote = variable_ote_usd * (linked_weightage / 100)
    breakdowns: List[SpiffDealBreakdown] = []

    for deal in deals:
        deal_arr = deal.new_software_booking_arr_usd or 0.0
        if deal_arr <= 0:
            continue

        if spiff.min_deal_value_usd and deal_arr < spiff.min_deal_value_usd:
            breakdowns.append(SpiffDealBreakdown(
                deal_id=deal.id,
                project_id=deal.project_id,
                customer_name=deal.customer_name,
                deal_arr_usd=deal_arr,
                spiff_payout_usd=0.0,
                spiff_name=spiff.spiff_name,
                spiff_rate_pct=spiff.spiff_rate_pct,
                is_eligible=False,
                exclusion_reason=f"Deal ARR ${deal_arr:,.0f} below minimum ${spiff.min_deal_value_usd:,.0f}",
            ))
            continue

        payout = software_ote * (deal_arr / target_usd) * (spiff.spiff_rate_pct / 100)
        breakdowns.append(SpiffDealBreakdown(
            deal_id=deal.id,
            project_id=deal.project_id,
            customer_name=deal.customer_name,
            deal_arr_usd=deal_arr,
            spiff_payout_usd=round_currency(payout),
            spiff_name=spiff.spiff_name,
            spiff_rate_pct=spiff.spiff_rate_pct,
            is_eligible=True,
        ))

    return SpiffCalculationResult(
        total_spiff_usd=sum_currency(b.spiff_payout_usd for b in breakdowns if b.is_eligible),
        deal_breakdowns=breakdowns,
        software_variable_ote_usd=round_currency(software_ote),
        linked_metric_weightage=linked_weightage,
    )


def calculate_all_spiffs(
    spiffs: Iterable[SpiffConfig],
    deals: Sequence[SpiffDeal],
    metrics: Sequence[PlanMetric],
    variable_ote_usd: float,
    targets_by_metric: Dict[str, float],
) -> SpiffAggregateResult:
    """Run every active SPIFF of a plan and aggregate the payouts."""
    aggregate = SpiffAggregateResult()
    totals = []

    for spiff in spiffs:
        if not spiff.is_active:
            continue
        target = targets_by_metric.get(spiff.linked_metric_name, 0.0)
        result = calculate_spiff_payout(spiff, deals, metrics, variable_ote_usd, target)

        totals.append(result.total_spiff_usd)
        aggregate.breakdowns.extend(result.deal_breakdowns)
        aggregate.software_target_usd = target
        aggregate.software_variable_ote_usd = result.software_variable_ote_usd
        aggregate.spiff_rate_pct = spiff.spiff_rate_pct
        aggregate.eligible_actuals_usd += sum(b.deal_arr_usd for b in result.deal_breakdowns if b.is_eligible)

    aggregate.total_spiff_usd = sum_currency(totals)
    return aggregate
