"""
Deal-level pro-rata attribution of aggregate variable pay.

Variable pay is computed once on the aggregate actuals of a metric, then
split back across the contributing deals in proportion to each deal's value.
Each deal's share is further split into booking / collection / year-end
buckets for payout timing and clawback tracking.
"""

import logging
from typing import Iterable, List

import pandas as pd

from ...models.payout_schemas import (
    AggregateVariablePayContext,
    DealAttributionResult,
    DealForAttribution,
    DealVariablePayAttribution,
    PlanMetric,
    VariablePaySummary,
)
from ..utils.money import round_currency, sum_currency
from .variable_pay import calculate_aggregate_variable_pay

logger = logging.getLogger(__name__)


def _empty_context(metric: PlanMetric, target_usd: float, bonus_allocation_usd: float,
                   fiscal_year: int, calculation_month: str) -> AggregateVariablePayContext:
    return AggregateVariablePayContext(
        total_actual_usd=0.0,
        target_usd=target_usd,
        achievement_pct=0.0,
        multiplier=0.0,
        bonus_allocation_usd=bonus_allocation_usd,
        total_variable_pay_usd=0.0,
        metric_name=metric.metric_name,
        fiscal_year=fiscal_year,
        calculation_month=calculation_month,
    )


def calculate_deal_variable_pay_attributions(
    deals: Iterable[DealForAttribution],
    employee_id: str,
    metric: PlanMetric,
    target_usd: float,
    bonus_allocation_usd: float,
    fiscal_year: int,
    calculation_month: str,
) -> DealAttributionResult:
    """Attribute a metric's aggregate variable pay back to individual deals.

    Deals with a null, zero or negative value do not contribute. With no
    contributing deals the result is empty with a zeroed context.

    Every money field and proportion is rounded to cents independently, so the
    rounded per-deal splits sum to the total within 0.01 per deal.
    """
    valid_deals = [d for d in deals if d.is_attributable]

    if not valid_deals:
        logger.debug(f"No attributable deals for employee {employee_id} on '{metric.metric_name}'")
        return DealAttributionResult(
            attributions=[],
            context=_empty_context(metric, target_usd, bonus_allocation_usd, fiscal_year, calculation_month),
        )

    total_actual_usd = sum(d.value_usd for d in valid_deals)
    aggregate = calculate_aggregate_variable_pay(total_actual_usd, target_usd, bonus_allocation_usd, metric)

    split = metric.effective_payout_split
    if metric.payout_split is None:
        logger.debug(f"'{metric.metric_name}' has no payout split configured; using default {split.booking_pct}/"
                     f"{split.collection_pct}/{split.year_end_pct}")

    attributions: List[DealVariablePayAttribution] = []
    for deal in valid_deals:
        proportion_pct = (deal.value_usd / total_actual_usd) * 100
        vp_split = (aggregate.total_variable_pay * proportion_pct) / 100
        booking = (vp_split * split.booking_pct) / 100
        collection = (vp_split * split.collection_pct) / 100
        year_end = (vp_split * split.year_end_pct) / 100

        attributions.append(DealVariablePayAttribution(
            deal_id=deal.id,
            project_id=deal.project_id,
            customer_name=deal.customer_name,
            employee_id=employee_id,
            metric_name=metric.metric_name,
            deal_value_usd=deal.value_usd,
            proportion_pct=round_currency(proportion_pct),
            variable_pay_split_usd=round_currency(vp_split),
            payout_on_booking_usd=round_currency(booking),
            payout_on_collection_usd=round_currency(collection),
            payout_on_year_end_usd=round_currency(year_end),
            clawback_eligible_usd=round_currency(booking),
        ))

    context = AggregateVariablePayContext(
        total_actual_usd=total_actual_usd,
        target_usd=target_usd,
        achievement_pct=round_currency(aggregate.achievement_pct),
        multiplier=aggregate.multiplier,
        bonus_allocation_usd=bonus_allocation_usd,
        total_variable_pay_usd=round_currency(aggregate.total_variable_pay),
        metric_name=metric.metric_name,
        fiscal_year=fiscal_year,
        calculation_month=calculation_month,
    )

    logger.info(
        f"Attributed {context.total_variable_pay_usd:.2f} USD of '{metric.metric_name}' variable pay "
        f"across {len(attributions)} deals for employee {employee_id}"
    )
    return DealAttributionResult(attributions=attributions, context=context)


def calculate_variable_pay_summary(
    attributions: List[DealVariablePayAttribution],
    context: AggregateVariablePayContext,
) -> VariablePaySummary:
    """Roll attributions up into per-bucket totals."""
    return VariablePaySummary(
        total_deals=len(attributions),
        total_arr_usd=context.total_actual_usd,
        target_usd=context.target_usd,
        achievement_pct=context.achievement_pct,
        multiplier=context.multiplier,
        total_variable_pay_usd=context.total_variable_pay_usd,
        total_payout_on_booking_usd=sum_currency(a.payout_on_booking_usd for a in attributions),
        total_payout_on_collection_usd=sum_currency(a.payout_on_collection_usd for a in attributions),
        total_payout_on_year_end_usd=sum_currency(a.payout_on_year_end_usd for a in attributions),
        total_clawback_eligible_usd=sum_currency(a.clawback_eligible_usd for a in attributions),
    )


def attributions_to_frame(attributions: List[DealVariablePayAttribution]) -> pd.DataFrame:
    """One row per deal attribution, for review screens and exports."""
    columns = list(DealVariablePayAttribution.model_fields.keys())
    if not attributions:
        return pd.DataFrame(columns=columns)
    return pd.DataFrame([a.model_dump() for a in attributions], columns=columns)
